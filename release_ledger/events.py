"""
Audit events emitted by the ledger and the release gate.

Events are appended to an in-memory log and then handed to subscribers.
Subscribers run synchronously, after the state change they describe has
been committed.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TRANSFER = "Transfer"
APPROVAL = "Approval"
RELEASED = "Released"

MAX_INT_BITS = 256


@dataclass(frozen=True)
class Event:
    """A single emitted event."""
    name: str
    args: dict = field(default_factory=dict)
    index: int = 0

    def to_dict(self) -> dict:
        return {'name': self.name, 'args': dict(self.args), 'index': self.index}


def _check_value(key: str, value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value < 0 or value.bit_length() > MAX_INT_BITS:
            raise ValueError(f"Event arg '{key}' out of range")
        return value
    raise ValueError(f"Unsupported event arg type for '{key}': {type(value).__name__}")


class EventLog:
    def __init__(self):
        self._events: list[Event] = []
        self._subscribers: list[Callable[[Event], None]] = []

    def subscribe(self, listener: Callable[[Event], None]):
        self._subscribers.append(listener)

    def unsubscribe(self, listener: Callable[[Event], None]):
        if listener in self._subscribers:
            self._subscribers.remove(listener)

    def emit(self, name: str, **args) -> Event:
        """
        Record an event and notify subscribers.

        A subscriber that raises is logged; the event stays recorded since
        the state it reports is already final.
        """
        checked = {key: _check_value(key, value) for key, value in args.items()}
        event = Event(name=name, args=checked, index=len(self._events))
        self._events.append(event)

        for listener in list(self._subscribers):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event subscriber failed on {name} #{event.index}")
        return event

    def events(self, name: Optional[str] = None) -> tuple[Event, ...]:
        if name is None:
            return tuple(self._events)
        return tuple(e for e in self._events if e.name == name)

    def __len__(self) -> int:
        return len(self._events)
