"""Observable session model and the channels behind it."""

from __future__ import annotations

import pytest

from lsclients.engine.channel import Channel, Subscription
from lsclients.engine.models import ModelField
from lsclients.engine.session_model import SessionModel


def test_inactive_model_stores_but_does_not_publish():
    model = SessionModel()
    seen: list[str] = []
    model.subscribe(ModelField.NAVIGATION_TEXT, seen.append)

    model.set_field(ModelField.NAVIGATION_TEXT, "main()")
    assert seen == []
    assert model.get(ModelField.NAVIGATION_TEXT) == "main()"

    model.activate()
    # Enabling does not replay what was missed.
    assert seen == []
    model.set_field(ModelField.NAVIGATION_TEXT, "helper()")
    assert seen == ["helper()"]


def test_deactivate_silences_every_field():
    model = SessionModel()
    model.activate()
    seen: list = []
    model.subscribe("is_indexing", seen.append)
    model.deactivate()
    model.set_field("is_indexing", True)
    assert seen == []
    assert model.snapshot()["is_indexing"] is True


def test_unknown_field_is_an_assertion_failure():
    model = SessionModel()
    with pytest.raises(AssertionError):
        model.field("no_such_field")


def test_disposed_model_ignores_writes_and_activation():
    model = SessionModel()
    seen: list = []
    model.subscribe(ModelField.PARSER_STATUS_TEXT, seen.append)
    model.dispose()
    model.activate()
    model.set_field(ModelField.PARSER_STATUS_TEXT, "Parsing")
    assert seen == []
    assert model.get(ModelField.PARSER_STATUS_TEXT) == ""
    assert not model.active


def test_snapshot_has_initial_values():
    assert SessionModel().snapshot() == {
        "is_indexing": False,
        "is_analyzing": False,
        "navigation_text": "",
        "parser_status_text": "",
        "active_config_name": "",
    }


def test_channel_handlers_run_in_order_and_survive_failures(caplog):
    channel: Channel[int] = Channel("numbers")
    seen: list[int] = []

    def broken(_):
        raise RuntimeError("boom")

    channel.subscribe(broken)
    channel.subscribe(seen.append)
    channel.publish(1)
    assert seen == [1]
    assert "Subscriber of numbers failed" in caplog.text


def test_subscription_dispose_detaches_once():
    channel: Channel[int] = Channel("numbers")
    seen: list[int] = []
    subscription = channel.subscribe(seen.append)
    subscription.dispose()
    subscription.dispose()
    channel.publish(1)
    assert seen == []
    assert len(channel) == 0


def test_closed_channel_hands_out_inert_subscriptions():
    channel: Channel[int] = Channel("numbers")
    channel.close()
    subscription = channel.subscribe(lambda _: None)
    assert isinstance(subscription, Subscription)
    assert subscription.disposed
    channel.publish(1)
