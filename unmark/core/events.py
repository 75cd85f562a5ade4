"""
Event Hooks - Optional Processing Statistics
============================================
Every engine operation accepts an optional ``events`` callable which
receives ``(event_name, payload)``. Passing ``None`` disables reporting.

Event names:
- mask.preprocessed, mask.loaded, mask.load_failed, mask.selected
- detect.geometry_mismatch, detect.result
- unblend.done
- manual.done
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

EventHook = Callable[[str, Dict[str, Any]], None]


def emit(hook: Optional[EventHook], event: str, **payload: Any) -> None:
    """Send an event to the hook if one is installed."""
    if hook is not None:
        hook(event, payload)


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def print_event(event: str, payload: Dict[str, Any]) -> None:
    """Print one line per event to stdout."""
    details = ", ".join(f"{key}={_format_value(value)}" for key, value in payload.items())
    print(f"[{event}] {details}")


class EventRecorder:
    """
    Collects events in memory.

    Useful for tests and for summarising a batch run without printing.
    """

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def last(self, event: str) -> Optional[Dict[str, Any]]:
        """Return the payload of the most recent event with this name."""
        for name, payload in reversed(self.events):
            if name == event:
                return payload
        return None

    def clear(self):
        self.events.clear()
