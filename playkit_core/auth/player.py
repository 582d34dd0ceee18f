"""玩家会话：登录凭证兑换与玩家资料缓存。

- exchange_login_credential: 用一次性登录凭证换取长期会话 token。本身不持久化
  token（那是 AuthSession 的职责），但成功后会立即尽力拉取一次玩家资料。
- fetch_profile: 拉取 {userId, credits}，成功时缓存并通知 profile_updated 观察者。
- verify: TokenVerifier 协议实现，用资料接口校验某个 token 是否仍然有效。
"""

from datetime import datetime
from typing import Any, Optional

from playkit_core.auth.base import BearerSource
from playkit_core.domain.errors import ErrorCode, parse_remote_error
from playkit_core.domain.events import Signal
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.models import PlayerInfo, TokenExchange
from playkit_core.domain.results import Result
from playkit_core.infrastructure.logging.logger import get_logger, mask_token
from playkit_core.providers.pipeline import send_json
from playkit_core.providers.registry import EXCHANGE_JWT, PLAYER_INFO, build_url, timeout_for

log = get_logger("player")


def _to_unix(value: Any) -> Optional[int]:
    """expiresAt 既可能是 Unix 秒，也可能是 ISO-8601 字符串。"""

    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None


class PlayerSession:
    def __init__(self, settings, bearer_source: Optional[BearerSource] = None):
        self._settings = settings
        self._bearer_source = bearer_source
        self._profile: Optional[PlayerInfo] = None
        self.profile_updated = Signal("profile_updated")

    @property
    def profile(self) -> Optional[PlayerInfo]:
        return self._profile

    def set_bearer_source(self, bearer_source: BearerSource) -> None:
        self._bearer_source = bearer_source

    async def exchange_login_credential(self, credential: str) -> Result[TokenExchange]:
        if not credential:
            return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, "Login credential is empty", field="credential")
        url = build_url(self._settings.base_url, EXCHANGE_JWT)
        try:
            data = await send_json(
                "POST",
                url,
                bearer=credential,
                timeout=timeout_for(self._settings, EXCHANGE_JWT),
                payload={},
            )
        except BusinessError as e:
            log.warning("Credential exchange failed", extra={"extra": {"code": e.code}})
            return Result.from_exception(e)

        if data.get("success") is False:
            return Result.fail(parse_remote_error(data, 200))
        token = data.get("playerToken")
        if not token:
            return Result.failure(ErrorCode.INVALID_RESPONSE, "Exchange response has no player token")

        exchange = TokenExchange(
            token=str(token),
            user_id=str(data.get("userId") or ""),
            token_name=str(data.get("tokenName") or ""),
            created_at=str(data.get("createdAt") or ""),
            expires_at=_to_unix(data.get("expiresAt")),
        )
        log.info("Exchanged login credential", extra={"extra": {"user_id": exchange.user_id, "token": mask_token(exchange.token)}})

        # 尽力而为：资料拉取失败不影响兑换结果
        profile = await self.fetch_profile(token=exchange.token)
        if not profile.success:
            log.warning("Profile fetch after exchange failed", extra={"extra": {"code": profile.error_code}})
        return Result.ok(exchange)

    async def fetch_profile(self, token: Optional[str] = None) -> Result[PlayerInfo]:
        bearer = token or (self._bearer_source.get_bearer_token() if self._bearer_source else "")
        if not bearer:
            return Result.failure(ErrorCode.NOT_AUTHENTICATED)
        url = build_url(self._settings.base_url, PLAYER_INFO)
        try:
            data = await send_json("GET", url, bearer=bearer, timeout=timeout_for(self._settings, PLAYER_INFO))
        except BusinessError as e:
            return Result.from_exception(e)

        try:
            credits = float(data.get("credits") or 0)
        except (TypeError, ValueError):
            return Result.failure(ErrorCode.INVALID_RESPONSE, "Player info has invalid credits")
        info = PlayerInfo(user_id=str(data.get("userId") or ""), credits=credits)
        self._profile = info
        self.profile_updated.emit(info)
        return Result.ok(info)

    async def verify(self, token: str) -> Result[PlayerInfo]:
        """资料接口能用该 token 取回数据即视为有效；失败结果原样返回，由调用方区分拒绝与网络故障。"""

        return await self.fetch_profile(token=token)
