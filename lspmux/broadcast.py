"""Single-producer, multi-consumer broadcast channel.

Every published message is appended to a shared history of bounded
capacity. Each subscription keeps its own cursor into that history and
advances independently. A subscription whose cursor falls out of the
retained history gets a ``Lagged`` error carrying the number of messages it
missed, and its cursor is moved to the oldest message still retained.
"""

import collections
import threading
from typing import Any, Deque, Optional

from lspmux.exceptions import ChannelClosed, Lagged

DEFAULT_CAPACITY = 100


class BroadcastChannel:
    """Fan-out channel that hands every published message to every subscriber."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Initialize the channel.

        Args:
            capacity: Number of messages retained for slow subscribers.
        """
        if capacity < 1:
            raise ValueError(f"Channel capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._history: Deque[Any] = collections.deque(maxlen=capacity)
        self._next_seq = 0
        self._closed = False
        self._subscribers = 0
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return self._subscribers

    def subscribe(self) -> "Subscription":
        """Create a subscription that observes messages published from now on."""
        with self._cond:
            self._subscribers += 1
            return Subscription(self, self._next_seq)

    def publish(self, message: Any) -> int:
        """Publish a message to all subscribers.

        Never blocks. A subscriber that is too slow loses the oldest messages.

        Returns:
            The number of subscribers the message was published to.

        Raises:
            ChannelClosed: If the channel has been closed.
        """
        with self._cond:
            if self._closed:
                raise ChannelClosed("Cannot publish on a closed channel")
            self._history.append(message)
            self._next_seq += 1
            self._cond.notify_all()
            return self._subscribers

    def close(self) -> None:
        """Close the channel. Subscribers still receive what is retained."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def _receive(self, subscription: "Subscription", timeout: Optional[float]) -> Any:
        with self._cond:
            ready = self._cond.wait_for(
                lambda: subscription.cursor < self._next_seq or self._closed,
                timeout=timeout,
            )
            if not ready:
                raise TimeoutError("No message published before the timeout expired")

            oldest = self._next_seq - len(self._history)
            if subscription.cursor < oldest:
                missed = oldest - subscription.cursor
                subscription.cursor = oldest
                raise Lagged(missed)

            if subscription.cursor < self._next_seq:
                message = self._history[subscription.cursor - oldest]
                subscription.cursor += 1
                return message

            raise ChannelClosed("Broadcast channel closed")


class Subscription:
    """One consumer's view of a BroadcastChannel. Not shared between threads."""

    def __init__(self, channel: BroadcastChannel, cursor: int):
        self.channel = channel
        self.cursor = cursor

    def recv(self, timeout: Optional[float] = None) -> Any:
        """Wait for the next message.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            The next message in publication order.

        Raises:
            Lagged: If messages were dropped before this subscriber read them.
                The next call resumes from the oldest retained message.
            ChannelClosed: If the channel is closed and fully drained.
            TimeoutError: If the timeout expired first.
        """
        return self.channel._receive(self, timeout)
