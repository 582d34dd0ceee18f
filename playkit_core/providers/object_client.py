"""结构化对象生成客户端（/v1/generateObject）。

三种调用方式共享同一套校验、请求与结果解包：

- generate_by_name: 按名字从 SchemaRegistry 取 schema，配合单条 prompt。
- generate_by_name_with_history: 按名字取 schema，携带完整对话历史。
- generate_with_inline_schema: 直接传入 schema JSON 文本，不需要注册表。

所有本地校验（没有注册表、名字不存在、schema 不是 JSON 对象、历史为空）
都在发起网络请求之前失败返回。
"""

from typing import Any, Dict, Iterable, Optional

from playkit_core.domain.errors import ErrorCode, make_error
from playkit_core.domain.exceptions import BusinessError, ValidationError
from playkit_core.domain.models import ChatRequest, Message
from playkit_core.domain.results import ObjectResult
from playkit_core.domain.schemas import SchemaEntry, SchemaRegistry, parse_schema_text
from playkit_core.infrastructure.logging.logger import get_logger
from playkit_core.providers.base import RequestTransport
from playkit_core.providers.registry import OBJECT

log = get_logger("object")


class StructuredOutputSession:
    name = "object"

    def __init__(
        self,
        transport: RequestTransport,
        settings,
        registry: Optional[SchemaRegistry] = None,
        model: Optional[str] = None,
    ):
        self._transport = transport
        self._settings = settings
        self._registry = registry
        self.model = model or settings.default_object_model

    @property
    def registry(self) -> Optional[SchemaRegistry]:
        return self._registry

    def set_registry(self, registry: Optional[SchemaRegistry]) -> None:
        self._registry = registry

    async def generate_by_name(
        self,
        schema_name: str,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ObjectResult:
        try:
            entry, schema = self._resolve(schema_name)
            if not prompt:
                raise ValidationError(code=ErrorCode.MISSING_REQUIRED_FIELD, message="Prompt is empty", field="prompt")
        except BusinessError as e:
            return ObjectResult.fail(e.record)
        req = ChatRequest(
            model=model or self.model,
            prompt=prompt,
            schema=schema,
            schema_name=entry.name,
            schema_description=entry.description or None,
            max_tokens=max_tokens,
            system=system,
        )
        return await self._dispatch(req)

    async def generate_by_name_with_history(
        self,
        schema_name: str,
        history: Iterable[Message],
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ObjectResult:
        messages = list(history)
        try:
            entry, schema = self._resolve(schema_name)
            if not messages:
                raise ValidationError(code=ErrorCode.EMPTY_HISTORY)
        except BusinessError as e:
            return ObjectResult.fail(e.record)
        req = ChatRequest(
            model=model or self.model,
            messages=messages,
            schema=schema,
            schema_name=entry.name,
            schema_description=entry.description or None,
            max_tokens=max_tokens,
            system=system,
        )
        return await self._dispatch(req)

    async def generate_with_inline_schema(
        self,
        schema_json_text: str,
        prompt: str,
        *,
        model: Optional[str] = None,
        schema_name: Optional[str] = None,
        schema_description: Optional[str] = None,
        max_tokens: Optional[int] = None,
        system: Optional[str] = None,
    ) -> ObjectResult:
        schema = parse_schema_text(schema_json_text)
        if schema is None:
            return ObjectResult.fail(make_error(ErrorCode.INVALID_SCHEMA))
        if not prompt:
            return ObjectResult.fail(make_error(ErrorCode.MISSING_REQUIRED_FIELD, "Prompt is empty", field="prompt"))
        req = ChatRequest(
            model=model or self.model,
            prompt=prompt,
            schema=schema,
            schema_name=schema_name,
            schema_description=schema_description,
            max_tokens=max_tokens,
            system=system,
        )
        return await self._dispatch(req)

    def _resolve(self, schema_name: str) -> tuple:
        """从注册表取出 schema 并解析，失败时抛 ValidationError。"""

        if self._registry is None:
            raise ValidationError(code=ErrorCode.NO_SCHEMA_REGISTRY)
        entry: Optional[SchemaEntry] = self._registry.get(schema_name) if schema_name else None
        if entry is None:
            raise ValidationError(
                code=ErrorCode.SCHEMA_NOT_FOUND,
                message=f"Schema not found: {schema_name!r}",
                schema_name=schema_name,
            )
        schema = entry.parse()
        if schema is None:
            raise ValidationError(
                code=ErrorCode.INVALID_SCHEMA,
                message=f"Schema {schema_name!r} is not a valid JSON object",
                schema_name=schema_name,
            )
        return entry, schema

    async def _dispatch(self, req: ChatRequest) -> ObjectResult:
        try:
            data = await self._transport.post(OBJECT, self._transport.build_body(req))
        except BusinessError as e:
            return ObjectResult.fail(e.record)
        return self._unwrap(data)

    @staticmethod
    def _unwrap(data: Dict[str, Any]) -> ObjectResult:
        if "object" not in data:
            log.warning("generateObject response has no object field")
            return ObjectResult.fail(make_error(ErrorCode.INVALID_RESPONSE, "Response has no object"))
        return ObjectResult.ok(data["object"], raw=data)
