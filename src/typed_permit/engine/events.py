"""
Typed notifications emitted by the ledger and the authorization state machine.

Events carry their own data and are published only after the state change
they describe has been committed.  Subscribers run synchronously, in
registration order, on the thread that committed the change and while the
ledger lock is still held, so history order matches commit order.
"""

import inspect
import logging
from collections import deque
from abc import ABC, abstractmethod
from typing import Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Ledger Events ====================

class TransferEvent(BaseModel, BaseEvent):
    """Balance moved from ``sender`` to ``recipient`` (sender is the zero address on mint)."""
    sender: str
    recipient: str
    value: int

    model_config = ConfigDict(frozen=True)

    def __repr__(self) -> str:
        return f"TransferEvent(from={self.sender}, to={self.recipient}, value={self.value})"


class ApprovalEvent(BaseModel, BaseEvent):
    """Allowance of ``spender`` over ``owner``'s balance set to ``value``."""
    owner: str
    spender: str
    value: int

    model_config = ConfigDict(frozen=True)

    def __repr__(self) -> str:
        return f"ApprovalEvent(owner={self.owner}, spender={self.spender}, value={self.value})"


# ==================== Authorization Events ====================

class PermitUsedEvent(BaseModel, BaseEvent):
    """A signed Permit was consumed; ``nonce`` is the value it was signed over."""
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    model_config = ConfigDict(frozen=True)

    def __repr__(self) -> str:
        return f"PermitUsedEvent(owner={self.owner}, spender={self.spender}, nonce={self.nonce})"


class TransferWithPermitEvent(BaseModel, BaseEvent):
    """A signed Transfer was consumed by ``executor``."""
    sender: str
    recipient: str
    value: int
    nonce: int
    executor: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def __repr__(self) -> str:
        return (
            f"TransferWithPermitEvent(from={self.sender}, to={self.recipient}, "
            f"nonce={self.nonce}, executor={self.executor})"
        )


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent], None]
EventHookFunc = Callable[[BaseEvent], None]

DEFAULT_HISTORY_LIMIT = 1024


class EventBus:
    """
    Event dispatcher for publishing and subscribing to events.

    Args:
        history_limit: Number of most recent events kept in ``history``;
            ``None`` keeps every event, ``0`` keeps none.
    """

    def __init__(self, history_limit: Optional[int] = DEFAULT_HISTORY_LIMIT) -> None:
        if history_limit is not None and history_limit < 0:
            raise ValueError(f"history_limit must be non-negative, got {history_limit}")
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}
        self._history: Deque[BaseEvent] = deque(maxlen=history_limit)

    @staticmethod
    def _check_handler(handler: Callable) -> None:
        if not callable(handler) or inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a plain callable, got {type(handler).__name__}")

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register a handler for the given event class.
        Multiple handlers can be subscribed to the same event type; they run in
        registration order.

        Args:
            event_class: The event class to subscribe to.
            handler: The function to call when the event is published.

        Raises:
            TypeError: If handler is not callable or is a coroutine function.
        """
        self._check_handler(handler)
        self._subscribers.setdefault(event_class, []).append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.
        Hooks are executed before subscribers when the event is dispatched.
        """
        self._check_handler(hook_func)
        self._hooks.setdefault(event_class, []).append(hook_func)

    def dispatch(self, event: BaseEvent) -> None:
        """
        Record ``event`` and deliver it to its hooks, then its subscribers.

        An exception raised by a hook or subscriber propagates to the caller;
        the event stays recorded because the state change it describes has
        already been committed.
        """
        self._history.append(event)
        logger.debug("Dispatching %r", event)
        for hook in self._hooks.get(type(event), []):
            hook(event)
        for handler in self._subscribers.get(type(event), []):
            handler(event)

    @property
    def history(self) -> List[BaseEvent]:
        """The most recent dispatched events, oldest first."""
        return list(self._history)

    def events_of(self, event_class: type[BaseEvent]) -> List[BaseEvent]:
        return [event for event in self._history if isinstance(event, event_class)]
