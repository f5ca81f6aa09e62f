"""Status bar: bottom bar showing the active folder's analysis state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.text import Text
from textual.reactive import reactive
from textual.widget import Widget

from lsclients.engine.channel import Subscription
from lsclients.engine.models import ModelField

if TYPE_CHECKING:
    from lsclients.engine.registry import AnySession, SessionRegistry


def _format_status(
    session_name: str,
    config_name: str,
    navigation: str,
    parser_status: str,
    indexing: bool,
    analyzing: bool,
    supported: bool = True,
) -> Text:
    """Build the single-line status text."""
    bar = Text()
    bar.append(f" {session_name or 'No folder'} ", style="bold")
    if not supported:
        bar.append(" │ ", style="dim")
        bar.append("● language server unavailable", style="red bold")
        return bar

    if config_name:
        bar.append(" │ ", style="dim")
        bar.append(config_name, style="cyan")
    if navigation:
        bar.append(" │ ", style="dim")
        bar.append(navigation)

    bar.append(" │ ", style="dim")
    if indexing:
        bar.append("● indexing", style="yellow")
        if parser_status:
            bar.append(f" ({parser_status})", style="dim")
    elif analyzing:
        bar.append("● analyzing", style="yellow")
    else:
        bar.append("● ready", style="green")
    return bar


_FIELD_ATTRS = {
    ModelField.IS_INDEXING: "indexing",
    ModelField.IS_ANALYZING: "analyzing",
    ModelField.NAVIGATION_TEXT: "navigation",
    ModelField.PARSER_STATUS_TEXT: "parser_status",
    ModelField.ACTIVE_CONFIG_NAME: "config_name",
}


class StatusBar(Widget):
    """Single-line status bar following the active session's model."""

    session_name: reactive[str] = reactive("")
    config_name: reactive[str] = reactive("")
    navigation: reactive[str] = reactive("")
    parser_status: reactive[str] = reactive("")
    indexing: reactive[bool] = reactive(False)
    analyzing: reactive[bool] = reactive(False)
    supported: reactive[bool] = reactive(True)

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._registry_subscriptions: list[Subscription] = []
        # Keyed by folder; a replacement session takes over its predecessor's entry.
        self._model_subscriptions: dict[str, list[Subscription]] = {}

    def bind(self, registry: SessionRegistry) -> None:
        """Follow *registry*: every session's model, shown for the active one."""
        self.unbind()
        self._registry_subscriptions = [
            registry.session_added.subscribe(self._watch_session),
            registry.active_changed.subscribe(self.show_session),
        ]
        for session in registry.sessions:
            self._watch_session(session)

    def unbind(self) -> None:
        for subscription in self._registry_subscriptions:
            subscription.dispose()
        for subscriptions in self._model_subscriptions.values():
            for subscription in subscriptions:
                subscription.dispose()
        self._registry_subscriptions = []
        self._model_subscriptions = {}

    def _watch_session(self, session: AnySession) -> None:
        # Inactive models do not publish, so listening to all of them
        # only ever shows the active one.
        for subscription in self._model_subscriptions.pop(session.key, []):
            subscription.dispose()
        self._model_subscriptions[session.key] = [
            session.model.subscribe(name, self._setter(attr))
            for name, attr in _FIELD_ATTRS.items()
        ]
        # The first registered session becomes active without an announcement.
        if session.model.active:
            self.show_session(session)

    def _setter(self, attr: str):
        def update(value: Any) -> None:
            setattr(self, attr, value)
        return update

    def show_session(self, session: AnySession) -> None:
        """Copy the current values; enabling a model does not replay them."""
        snapshot = session.model.snapshot()
        self.session_name = session.name
        self.supported = session.is_supported
        for name, attr in _FIELD_ATTRS.items():
            setattr(self, attr, snapshot[name.value])

    def on_unmount(self) -> None:
        self.unbind()

    def render(self) -> Text:
        return _format_status(
            self.session_name,
            self.config_name,
            self.navigation,
            self.parser_status,
            self.indexing,
            self.analyzing,
            self.supported,
        )
