"""
Tests for the in-process notification feed.

The feed is a plain object: each test gets its own instance.
"""
from unittest.mock import MagicMock

import pytest

from effluent_monitor.alerting import NotificationFeed, NotificationLevel


def add(feed, title="High pH", level=NotificationLevel.WARNING, device_id="WW-001"):
    return feed.add(title, f"{title} on {device_id}", level, device_id)


class TestAdd:
    """Tests for add()."""

    def test_assigns_id_timestamp_unread(self, feed):
        notification = add(feed)

        assert notification.id
        assert notification.timestamp is not None
        assert notification.read is False

    def test_newest_first(self, feed):
        add(feed, title="first")
        add(feed, title="second")

        assert [n.title for n in feed.get_notifications()] == ["second", "first"]

    def test_unique_ids(self, feed):
        ids = {add(feed).id for _ in range(20)}
        assert len(ids) == 20

    def test_capped_at_max_notifications(self):
        feed = NotificationFeed(max_notifications=3)
        for i in range(5):
            add(feed, title=f"n{i}")

        assert [n.title for n in feed.get_notifications()] == ["n4", "n3", "n2"]

    def test_accepts_level_string(self, feed):
        notification = feed.add("t", "m", "critical", "WW-001")
        assert notification.level == NotificationLevel.CRITICAL

    def test_returned_copies_do_not_mutate_feed(self, feed):
        notification = add(feed)
        notification.read = True

        feed.get_notifications()[0].read = True

        assert feed.get_unread_count() == 1


class TestReadState:
    """Tests for read flags and unread count."""

    def test_mark_as_read(self, feed):
        first = add(feed)
        add(feed)

        assert feed.mark_as_read(first.id) is True
        assert feed.get_unread_count() == 1
        assert feed.get(first.id).read is True

    def test_mark_unknown_id(self, feed):
        assert feed.mark_as_read("missing") is False

    def test_mark_all_then_add_counts_one(self, feed):
        for _ in range(4):
            add(feed)

        feed.mark_all_as_read()
        assert feed.get_unread_count() == 0

        add(feed)
        assert feed.get_unread_count() == 1


class TestSubscribers:
    """Tests for subscribe/unsubscribe."""

    def test_subscriber_receives_full_list(self, feed):
        callback = MagicMock()
        feed.subscribe(callback)

        add(feed, title="a")
        add(feed, title="b")

        latest = callback.call_args[0][0]
        assert [n.title for n in latest] == ["b", "a"]

    def test_mutations_renotify(self, feed):
        callback = MagicMock()
        notification = add(feed)
        feed.subscribe(callback)

        feed.mark_as_read(notification.id)
        feed.mark_all_as_read()

        assert callback.call_count == 2

    def test_unsubscribe_is_idempotent(self, feed):
        callback = MagicMock()
        unsubscribe = feed.subscribe(callback)

        unsubscribe()
        unsubscribe()
        add(feed)

        callback.assert_not_called()
        assert feed.subscriber_count == 0

    def test_same_callback_twice_unsubscribes_once_each(self, feed):
        callback = MagicMock()
        first = feed.subscribe(callback)
        feed.subscribe(callback)

        first()
        first()

        assert feed.subscriber_count == 1

    def test_failing_subscriber_isolated(self, feed):
        broken = MagicMock(side_effect=RuntimeError("render failed"))
        healthy = MagicMock()
        feed.subscribe(broken)
        feed.subscribe(healthy)

        add(feed)

        healthy.assert_called_once()
        assert len(feed.get_notifications()) == 1
