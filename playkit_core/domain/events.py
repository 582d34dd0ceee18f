"""显式观察者注册。

替代“信号”式的隐式事件：每个可观察的状态变化都对应一个 Signal，
调用方通过 connect() 注册回调，回调严格按注册顺序同步触发。
单个回调抛出的异常只记日志，不会中断其他回调，也不会影响 SDK 状态。
"""

from typing import Callable, List

from playkit_core.infrastructure.logging.logger import get_logger

log = get_logger("events")

Unsubscribe = Callable[[], None]


class Signal:
    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[..., None]] = []

    def connect(self, handler: Callable[..., None]) -> Unsubscribe:
        """注册回调，返回一个取消注册的函数。"""

        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, *args) -> None:
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception:
                log.exception("Observer for %s failed", self.name)

    def __len__(self) -> int:
        return len(self._handlers)
