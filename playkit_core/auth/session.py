"""Bearer token 生命周期管理。

状态机：Unauthenticated → Authenticating → Authenticated → (Expired | Revoked) → Unauthenticated

获取 token 的优先级（非开发者模式）：
1. 跨应用共享存储（平台相关；Web 上只读）；
2. 应用内存储；
3. 交互式登录流程（LoginFlow），再用一次性凭证兑换会话 token。

每个候选 token 都要经过 verify_with_remote，第一个通过校验的胜出。
保存 token 时总是同时写入应用内存储与共享存储（只读平台除外）；登出时两边都清，
校验失败时只清除存有该 token 的存储项。
"""

import time
from enum import Enum
from typing import Callable, Optional, Union

from playkit_core.auth.base import LoginFlow, TokenStore, TokenVerifier
from playkit_core.domain.errors import ErrorCode, ErrorRecord, make_error
from playkit_core.domain.events import Signal
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.models import NEVER_EXPIRES, AuthToken, TokenOrigin
from playkit_core.infrastructure.logging.logger import get_logger, mask_token

log = get_logger("auth")

TOKEN_KEY = "player_token"
EXPIRY_KEY = "player_token_expires_at"
SHARED_TOKEN_KEY = "shared_player_token"
SHARED_EXPIRY_KEY = "shared_player_token_expires_at"


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REVOKED = "revoked"


def _parse_expiry(raw: Optional[str]) -> Union[int, str, None]:
    """存储中的过期时间：'never' 为永不过期；缺失、0 或无法解析都返回 None（未知）。"""

    if raw == NEVER_EXPIRES:
        return NEVER_EXPIRES
    try:
        value = int(raw) if raw is not None else 0
    except ValueError:
        return None
    return value if value > 0 else None


def _format_expiry(expires_at: Union[int, str, None]) -> str:
    if expires_at == NEVER_EXPIRES:
        return NEVER_EXPIRES
    return str(expires_at) if isinstance(expires_at, int) and expires_at > 0 else "0"


class AuthSession:
    def __init__(
        self,
        settings,
        *,
        local_store: TokenStore,
        shared_store: Optional[TokenStore] = None,
        login_flow: Optional[LoginFlow] = None,
        verifier: Optional[TokenVerifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._local_store = local_store
        self._shared_store = shared_store
        self._login_flow = login_flow
        self._verifier = verifier
        self._clock = clock
        self._check_expiry = settings.local_expiry_check
        self._token: Optional[AuthToken] = None
        self._state = AuthState.UNAUTHENTICATED
        self.last_error: Optional[ErrorRecord] = None
        self.app_id = settings.app_id or ""
        self.state_changed = Signal("state_changed")
        self.token_received = Signal("token_received")
        if settings.developer_token:
            self.configure(self.app_id, settings.developer_token)

    # ---- 属性 ----

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def token(self) -> Optional[AuthToken]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._state == AuthState.AUTHENTICATED and self._token is not None

    @property
    def is_developer_mode(self) -> bool:
        return self._token is not None and self._token.origin == TokenOrigin.DEVELOPER

    def set_verifier(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier

    def set_login_flow(self, login_flow: LoginFlow) -> None:
        self._login_flow = login_flow

    # ---- 公开操作 ----

    def configure(self, app_id: str, developer_token: Optional[str] = None) -> None:
        """设置应用 ID；给出开发者 token 时进入永久信任模式（仅限本地测试）。"""

        self.app_id = app_id or ""
        if developer_token:
            log.warning("Developer token in use, remote verification is disabled. For local testing only.")
            self._accept(AuthToken(value=developer_token, expires_at=NEVER_EXPIRES, origin=TokenOrigin.DEVELOPER))

    def get_bearer_token(self) -> str:
        return self._token.value if self._token else ""

    async def authenticate(self) -> bool:
        if self.is_developer_mode:
            return True
        self.last_error = None
        self._set_state(AuthState.AUTHENTICATING)

        loaders = (
            ("shared", lambda: self._load(self._shared_store, SHARED_TOKEN_KEY, SHARED_EXPIRY_KEY, TokenOrigin.SHARED)),
            ("local", lambda: self._load(self._local_store, TOKEN_KEY, EXPIRY_KEY, TokenOrigin.SESSION)),
            ("login", None),
        )
        for source, loader in loaders:
            if loader is None:
                candidate = await self._login_interactively()
            else:
                candidate = loader()
            if candidate is None:
                continue
            if await self.verify_with_remote(candidate):
                self._save(candidate)
                self._accept(candidate)
                log.info("Authenticated", extra={"extra": {"source": source, "token": mask_token(candidate.value)}})
                return True
            self._set_state(AuthState.AUTHENTICATING)

        self._token = None
        if self.last_error is None:
            self.last_error = make_error(ErrorCode.NOT_AUTHENTICATED, "No valid token from any source")
        self._set_state(AuthState.UNAUTHENTICATED)
        return False

    async def verify_with_remote(self, token: Union[AuthToken, str]) -> bool:
        """校验 token：开发者 token 直接通过；本地已过期则不发请求直接失败并清除。

        远端明确拒绝时清除该 token；网络故障等可重试错误只记录 last_error，存储保持不动。
        """

        if isinstance(token, str):
            if self.is_developer_mode and token == self._token.value:
                return True
            token = AuthToken(value=token, expires_at=None, origin=TokenOrigin.SESSION)
        if token.origin == TokenOrigin.DEVELOPER:
            return True
        if self._check_expiry and token.is_expired(self._clock()):
            log.warning("Token expired locally, purging", extra={"extra": {"token": mask_token(token.value)}})
            self.last_error = make_error(ErrorCode.TOKEN_EXPIRED)
            self._set_state(AuthState.EXPIRED)
            self._purge(token)
            return False
        if self._verifier is None:
            self.last_error = make_error(ErrorCode.MISSING_CONFIGURATION, "No token verifier configured")
            return False
        result = await self._verifier.verify(token.value)
        if result.success:
            return True
        self.last_error = result.error
        if result.error.retryable:
            log.warning(
                "Remote verification unavailable, keeping stored token",
                extra={"extra": {"token": mask_token(token.value), "code": result.error.code}},
            )
            return False
        log.warning(
            "Remote verification failed, purging",
            extra={"extra": {"token": mask_token(token.value), "code": result.error.code}},
        )
        self._set_state(AuthState.REVOKED)
        self._purge(token)
        return False

    def logout(self) -> None:
        self._clear_stores()
        self._token = None
        self._set_state(AuthState.UNAUTHENTICATED)
        log.info("Logged out")

    # ---- 内部 ----

    async def _login_interactively(self) -> Optional[AuthToken]:
        if self._login_flow is None or self._verifier is None:
            return None
        credential = await self._login_flow.request_login_credential()
        if not credential:
            log.info("Login flow cancelled")
            self.last_error = make_error(ErrorCode.LOGIN_CANCELLED)
            return None
        result = await self._verifier.exchange_login_credential(credential)
        if not result.success:
            self.last_error = result.error
            return None
        exchange = result.value
        return AuthToken(value=exchange.token, expires_at=exchange.expires_at, origin=TokenOrigin.SESSION)

    def _load(self, store, token_key: str, expiry_key: str, origin: TokenOrigin) -> Optional[AuthToken]:
        if store is None:
            return None
        value = store.get(token_key)
        if not value:
            return None
        expires_at = _parse_expiry(store.get(expiry_key))
        if expires_at is None:
            log.warning("Stored token has unknown expiry, purging", extra={"extra": {"origin": origin.value}})
            self._guard_store("purge", lambda: _delete_pair(store, token_key, expiry_key))
            return None
        return AuthToken(value=value, expires_at=expires_at, origin=origin)

    def _shared_writable(self) -> bool:
        return self._shared_store is not None and not getattr(self._shared_store, "read_only", False)

    def _save(self, token: AuthToken) -> None:
        """写入两边存储；写失败只记录 last_error，已校验通过的 token 照常生效。"""

        expiry = _format_expiry(token.expires_at)
        self._guard_store("save", lambda: _write_pair(self._local_store, TOKEN_KEY, EXPIRY_KEY, token.value, expiry))
        if self._shared_writable():
            self._guard_store(
                "save",
                lambda: _write_pair(self._shared_store, SHARED_TOKEN_KEY, SHARED_EXPIRY_KEY, token.value, expiry),
            )

    def _clear_stores(self) -> None:
        self._guard_store("clear", lambda: _delete_pair(self._local_store, TOKEN_KEY, EXPIRY_KEY))
        if self._shared_writable():
            self._guard_store("clear", lambda: _delete_pair(self._shared_store, SHARED_TOKEN_KEY, SHARED_EXPIRY_KEY))

    def _purge(self, token: AuthToken) -> None:
        """只清除存有该 token 的存储项，其他来源的候选保持不动。"""

        self._guard_store("purge", lambda: _forget(self._local_store, TOKEN_KEY, EXPIRY_KEY, token.value))
        if self._shared_writable():
            self._guard_store(
                "purge",
                lambda: _forget(self._shared_store, SHARED_TOKEN_KEY, SHARED_EXPIRY_KEY, token.value),
            )
        if self._token is not None and self._token.value == token.value:
            self._token = None
            self._set_state(AuthState.UNAUTHENTICATED)

    def _guard_store(self, action: str, op: Callable[[], None]) -> None:
        try:
            op()
        except BusinessError as e:
            log.warning("Token store %s failed", action, extra={"extra": {"code": e.code, "error": e.message}})
            self.last_error = e.record

    def _accept(self, token: AuthToken) -> None:
        self._token = token
        self._set_state(AuthState.AUTHENTICATED)
        self.token_received.emit(token)

    def _set_state(self, new_state: AuthState) -> None:
        old = self._state
        if old == new_state:
            return
        self._state = new_state
        log.info("Auth state changed", extra={"extra": {"from": old.value, "to": new_state.value}})
        self.state_changed.emit(old, new_state)


def _write_pair(store, token_key: str, expiry_key: str, value: str, expiry: str) -> None:
    store.set(token_key, value)
    store.set(expiry_key, expiry)


def _delete_pair(store, token_key: str, expiry_key: str) -> None:
    store.delete(token_key)
    store.delete(expiry_key)


def _forget(store, token_key: str, expiry_key: str, value: str) -> None:
    if store.get(token_key) == value:
        _delete_pair(store, token_key, expiry_key)
