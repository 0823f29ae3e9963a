from typing import Callable, Generic, List, TypeVar

from scenedepth.core.logging import get_logger

E = TypeVar("E")

Unsubscribe = Callable[[], None]


class EventEmitter(Generic[E]):
    """
    Minimal synchronous publish/subscribe channel.

    Handlers are called in subscription order. A handler raising does not
    prevent delivery to the remaining handlers; the failure is logged.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[[E], None]] = []
        self.logger = get_logger(f"events.{name}")

    def subscribe(self, handler: Callable[[E], None]) -> Unsubscribe:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: E) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                self.logger.error("event.handler.failed", event=type(event).__name__, error=str(e), exc_info=True)

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)
