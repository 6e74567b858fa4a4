"""Output sinks receiving decoded backend messages in stream order."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Protocol, runtime_checkable

from pgwire_decoder.protocol.messages import BackendMessage


@runtime_checkable
class MessageSink(Protocol):
    """Write-only channel the decoder emits messages into."""

    def write(self, message: BackendMessage) -> None:
        """Accept the next decoded message."""
        ...


class ListSink:
    """Collects messages in arrival order."""

    def __init__(self) -> None:
        self.messages: list[BackendMessage] = []

    def write(self, message: BackendMessage) -> None:
        self.messages.append(message)

    def drain(self) -> list[BackendMessage]:
        """Return the collected messages and start a new batch."""
        messages, self.messages = self.messages, []
        return messages

    def __iter__(self) -> Iterator[BackendMessage]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)


class CallbackSink:
    """Forwards each message to a callable, e.g. a connection state machine."""

    def __init__(self, callback: Callable[[BackendMessage], None]) -> None:
        self._callback = callback

    def write(self, message: BackendMessage) -> None:
        self._callback(message)
