"""Observable UI-facing state of a session.

Each field keeps its current value and a change channel. A disabled
field still stores writes but does not publish them; enabling it again
does not replay what was missed. Only the active session's model is
enabled, so a UI may subscribe to every session and still see one.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from .channel import Channel, Subscription
from .models import ModelField

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObservableField(Generic[T]):
    """A value holder with change notification and an enabled flag."""

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._value = initial
        self._enabled = False
        self._disposed = False
        self._changed: Channel[T] = Channel(name)

    @property
    def value(self) -> T:
        return self._value

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def disposed(self) -> bool:
        return self._disposed

    def set(self, value: T) -> None:
        if self._disposed:
            return
        self._value = value
        if self._enabled:
            self._changed.publish(value)

    def subscribe(self, handler: Callable[[T], None]) -> Subscription:
        return self._changed.subscribe(handler)

    def enable(self) -> None:
        if not self._disposed:
            self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def dispose(self) -> None:
        self._disposed = True
        self._enabled = False
        self._changed.close()


_INITIAL_VALUES: dict[ModelField, Any] = {
    ModelField.IS_INDEXING: False,
    ModelField.IS_ANALYZING: False,
    ModelField.NAVIGATION_TEXT: "",
    ModelField.PARSER_STATUS_TEXT: "",
    ModelField.ACTIVE_CONFIG_NAME: "",
}


class SessionModel:
    """The set of observable fields owned by one session."""

    def __init__(self) -> None:
        self._fields: dict[ModelField, ObservableField[Any]] = {
            name: ObservableField(name.value, initial)
            for name, initial in _INITIAL_VALUES.items()
        }
        self._active = False
        self._disposed = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def disposed(self) -> bool:
        return self._disposed

    def field(self, name: ModelField | str) -> ObservableField[Any] | None:
        try:
            key = ModelField(name)
        except ValueError:
            key = None
        found = self._fields.get(key) if key is not None else None
        assert found is not None, f"Unknown session model field: {name!r}"
        return found

    def get(self, name: ModelField | str) -> Any:
        found = self.field(name)
        return found.value if found is not None else None

    def set_field(self, name: ModelField | str, value: Any) -> None:
        found = self.field(name)
        if found is not None:
            found.set(value)

    def subscribe(
        self,
        name: ModelField | str,
        handler: Callable[[Any], None],
    ) -> Subscription:
        found = self.field(name)
        if found is None:
            return Subscription()
        return found.subscribe(handler)

    def activate(self) -> None:
        if self._disposed:
            return
        for item in self._fields.values():
            item.enable()
        self._active = True

    def deactivate(self) -> None:
        for item in self._fields.values():
            item.disable()
        self._active = False

    def snapshot(self) -> dict[str, Any]:
        return {name.value: item.value for name, item in self._fields.items()}

    def dispose(self) -> None:
        self._disposed = True
        self._active = False
        for item in self._fields.values():
            item.dispose()
