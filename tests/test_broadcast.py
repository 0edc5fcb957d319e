"""Tests for the broadcast channel."""

import threading

import pytest

from lspmux.broadcast import BroadcastChannel
from lspmux.exceptions import ChannelClosed, Lagged


class TestFanOut:
    """Every subscriber observes every message once, in order."""

    def test_each_subscriber_gets_each_message(self) -> None:
        channel = BroadcastChannel(capacity=10)
        subscriptions = [channel.subscribe() for _ in range(3)]
        assert channel.subscriber_count == 3

        assert channel.publish("a") == 3
        assert channel.publish("b") == 3

        for subscription in subscriptions:
            assert subscription.recv(timeout=1) == "a"
            assert subscription.recv(timeout=1) == "b"

    def test_subscribers_advance_independently(self) -> None:
        channel = BroadcastChannel(capacity=10)
        fast = channel.subscribe()
        slow = channel.subscribe()

        for value in range(3):
            channel.publish(value)
        assert [fast.recv(timeout=1) for _ in range(3)] == [0, 1, 2]

        channel.publish(3)
        assert [slow.recv(timeout=1) for _ in range(4)] == [0, 1, 2, 3]
        assert fast.recv(timeout=1) == 3

    def test_late_subscriber_sees_only_future_messages(self) -> None:
        channel = BroadcastChannel(capacity=10)
        channel.publish("before")
        subscription = channel.subscribe()
        channel.publish("after")

        assert subscription.recv(timeout=1) == "after"

    def test_recv_waits_for_publish_from_another_thread(self) -> None:
        channel = BroadcastChannel()
        subscription = channel.subscribe()
        received = []

        consumer = threading.Thread(target=lambda: received.append(subscription.recv(timeout=5)))
        consumer.start()
        channel.publish({"id": 1})
        consumer.join(timeout=5)

        assert received == [{"id": 1}]

    def test_recv_times_out(self) -> None:
        channel = BroadcastChannel()
        subscription = channel.subscribe()
        with pytest.raises(TimeoutError):
            subscription.recv(timeout=0.05)


class TestOverflow:
    """A subscriber that falls more than capacity messages behind is told so."""

    def test_lagged_subscriber_gets_missed_count(self) -> None:
        channel = BroadcastChannel(capacity=3)
        subscription = channel.subscribe()
        for value in range(5):
            channel.publish(value)

        with pytest.raises(Lagged) as excinfo:
            subscription.recv(timeout=1)
        assert excinfo.value.missed == 2

    def test_lagged_subscriber_resumes_from_oldest_retained(self) -> None:
        channel = BroadcastChannel(capacity=3)
        subscription = channel.subscribe()
        for value in range(5):
            channel.publish(value)

        with pytest.raises(Lagged):
            subscription.recv(timeout=1)
        assert [subscription.recv(timeout=1) for _ in range(3)] == [2, 3, 4]

    def test_lag_is_not_reported_as_closure(self) -> None:
        channel = BroadcastChannel(capacity=1)
        subscription = channel.subscribe()
        channel.publish(1)
        channel.publish(2)
        channel.close()

        with pytest.raises(Lagged):
            subscription.recv(timeout=1)
        assert subscription.recv(timeout=1) == 2
        with pytest.raises(ChannelClosed):
            subscription.recv(timeout=1)

    def test_exactly_capacity_behind_is_not_lagged(self) -> None:
        channel = BroadcastChannel(capacity=3)
        subscription = channel.subscribe()
        for value in range(3):
            channel.publish(value)

        assert [subscription.recv(timeout=1) for _ in range(3)] == [0, 1, 2]

    def test_slow_subscriber_does_not_affect_others(self) -> None:
        channel = BroadcastChannel(capacity=2)
        slow = channel.subscribe()
        fast = channel.subscribe()
        for value in range(4):
            channel.publish(value)
            assert fast.recv(timeout=1) == value

        with pytest.raises(Lagged):
            slow.recv(timeout=1)


class TestClose:
    """Closing the channel."""

    def test_subscribers_drain_before_closed(self) -> None:
        channel = BroadcastChannel()
        subscription = channel.subscribe()
        channel.publish("last")
        channel.close()

        assert subscription.recv(timeout=1) == "last"
        with pytest.raises(ChannelClosed):
            subscription.recv(timeout=1)

    def test_close_wakes_waiting_subscriber(self) -> None:
        channel = BroadcastChannel()
        subscription = channel.subscribe()
        errors = []

        def consume() -> None:
            try:
                subscription.recv(timeout=5)
            except ChannelClosed as e:
                errors.append(e)

        consumer = threading.Thread(target=consume)
        consumer.start()
        channel.close()
        consumer.join(timeout=5)

        assert len(errors) == 1
        assert channel.closed

    def test_publish_after_close_raises(self) -> None:
        channel = BroadcastChannel()
        channel.close()
        with pytest.raises(ChannelClosed):
            channel.publish("too late")


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BroadcastChannel(capacity=0)
