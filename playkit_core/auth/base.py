"""认证相关的协作者协议。

AuthSession 不直接依赖具体平台实现，而是依赖这些协议：

- TokenStore: 键值字符串存储（平台相关：内存、JSON 文件、加密文件、浏览器存储……）。
- LoginFlow: 交互式登录流程，产出一次性登录凭证，或在用户取消时返回 None。
- TokenVerifier: 远程校验 token（由 PlayerSession 实现，调用玩家资料接口）。
- BearerSource: 提供当前 bearer token 与应用 ID（由 AuthSession 实现）。
"""

from typing import Optional, Protocol

from playkit_core.domain.models import PlayerInfo, TokenExchange
from playkit_core.domain.results import Result


class TokenStore(Protocol):
    read_only: bool

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class LoginFlow(Protocol):
    async def request_login_credential(self) -> Optional[str]:
        """执行交互式登录，返回一次性凭证；用户取消时返回 None。"""

        ...


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Result[PlayerInfo]:
        """远端拒绝时返回非可重试错误；网络故障返回可重试错误（NETWORK_ERROR 等）。"""

        ...

    async def exchange_login_credential(self, credential: str) -> Result[TokenExchange]:
        ...


class BearerSource(Protocol):
    app_id: str

    def get_bearer_token(self) -> str:
        ...
