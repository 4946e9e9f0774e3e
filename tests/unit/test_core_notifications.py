"""Unit tests for the user-visible error channel."""

from unittest.mock import Mock

from mindvault.core.exceptions import ConflictError
from mindvault.core.notifications import ErrorChannel


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_report_exception_with_context():
    channel = ErrorChannel()
    notice = channel.report(ConflictError("stale tag"), "Failed to add item")
    assert notice.message == "Failed to add item: stale tag"
    assert isinstance(notice.error, ConflictError)
    assert channel.current is notice


def test_report_plain_message():
    notice = ErrorChannel().report("something broke")
    assert notice.message == "something broke"
    assert notice.error is None


def test_report_exception_without_text_uses_class_name():
    assert ErrorChannel().report(ConflictError()).message == "ConflictError"


def test_notice_expires_after_ttl():
    clock = FakeClock()
    channel = ErrorChannel(ttl=5.0, clock=clock)
    channel.report("oops")
    clock.now += 4.9
    assert channel.current is not None
    clock.now += 0.2
    assert channel.current is None
    # history keeps it
    assert [n.message for n in channel.history] == ["oops"]


def test_latest_notice_replaces_previous():
    channel = ErrorChannel()
    channel.report("first")
    channel.report("second")
    assert channel.current.message == "second"
    assert len(channel.history) == 2


def test_dismiss():
    channel = ErrorChannel()
    channel.report("oops")
    channel.dismiss()
    assert channel.current is None


def test_subscribers_called(caplog):
    channel = ErrorChannel()
    callback = Mock()
    channel.subscribe(callback)
    with caplog.at_level("ERROR"):
        notice = channel.report("oops", "ctx")
    callback.assert_called_once_with(notice)
    assert "ctx: oops" in caplog.text
