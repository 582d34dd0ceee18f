"""SDK 上下文。

宿主应用构造一次 PlayKitContext，并把它（或从它取得的客户端）传给需要的地方；
SDK 不维护任何进程级单例。

    ctx = PlayKitContext(PlayKitSettings(app_id="my-game"), login_flow=MyLoginFlow())
    if await ctx.authenticate():
        reply = await ctx.chat().complete([Message("user", "hi")])
"""

from pathlib import Path
from typing import Optional

from playkit_core.agents.npc_agent import NpcAgent, NpcConfig
from playkit_core.auth.player import PlayerSession
from playkit_core.auth.session import AuthSession
from playkit_core.config.settings import PlayKitSettings
from playkit_core.domain.conversation import ConversationStore
from playkit_core.domain.schemas import SchemaRegistry
from playkit_core.infrastructure.logging.logger import setup_logger
from playkit_core.infrastructure.storage.json_store import JsonConversationStore
from playkit_core.infrastructure.storage.token_store import EncryptedFileTokenStore, JsonFileTokenStore
from playkit_core.providers.chat_client import ChatSession
from playkit_core.providers.image_client import ImageClient
from playkit_core.providers.object_client import StructuredOutputSession
from playkit_core.providers.pipeline import RequestPipeline


class PlayKitContext:
    def __init__(
        self,
        settings: Optional[PlayKitSettings] = None,
        *,
        local_store=None,
        shared_store=None,
        login_flow=None,
        schema_registry: Optional[SchemaRegistry] = None,
        conversation_store: Optional[ConversationStore] = None,
    ):
        self.settings = settings or PlayKitSettings()
        setup_logger(self.settings)
        if local_store is None:
            app_dir = Path(self.settings.token_storage_dir).expanduser() / (self.settings.app_id or "default")
            local_store = JsonFileTokenStore(app_dir / "token.json")
        if shared_store is None:
            shared_store = EncryptedFileTokenStore(
                self.settings.shared_token_path,
                key=self.settings.shared_token_key,
                read_only=self.settings.shared_store_read_only,
            )
        self.auth = AuthSession(
            self.settings,
            local_store=local_store,
            shared_store=shared_store,
            login_flow=login_flow,
        )
        self.player = PlayerSession(self.settings, bearer_source=self.auth)
        self.auth.set_verifier(self.player)
        self.pipeline = RequestPipeline(self.settings, self.auth)
        self.schema_registry = schema_registry
        self._conversation_store = conversation_store
        self._chat: Optional[ChatSession] = None
        self._objects: Optional[StructuredOutputSession] = None
        self._images: Optional[ImageClient] = None

    async def authenticate(self) -> bool:
        return await self.auth.authenticate()

    def chat(self) -> ChatSession:
        if self._chat is None:
            self._chat = ChatSession(self.pipeline, self.settings)
        return self._chat

    def objects(self) -> StructuredOutputSession:
        if self._objects is None:
            self._objects = StructuredOutputSession(self.pipeline, self.settings, registry=self.schema_registry)
        return self._objects

    def images(self) -> ImageClient:
        if self._images is None:
            self._images = ImageClient(self.pipeline, self.settings)
        return self._images

    @property
    def conversation_store(self) -> ConversationStore:
        if self._conversation_store is None:
            self._conversation_store = JsonConversationStore(root=self.settings.storage_root)
        return self._conversation_store

    def set_schema_registry(self, registry: Optional[SchemaRegistry]) -> None:
        self.schema_registry = registry
        if self._objects is not None:
            self._objects.set_registry(registry)

    def npc(self, character_prompt: str = "", **options) -> NpcAgent:
        """创建一个新的 NPC；options 透传给 NpcConfig（model、temperature、conversation_id 等）。"""

        config = NpcConfig(character_prompt=character_prompt, **options)
        return NpcAgent(
            self.chat(),
            objects=self.objects(),
            config=config,
            store=self.conversation_store,
        )
