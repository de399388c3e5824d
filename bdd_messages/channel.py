"""Publish/subscribe channel replaying buffered envelopes to late subscribers."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from bdd_messages.models.messages import Envelope


class MessageSink(Protocol):
    """Consumer of protocol messages."""

    async def emit(self, envelope: Envelope) -> None:
        """Handle one message."""


@dataclass(kw_only=True)
class ListSink:
    """Sink collecting envelopes in memory."""

    envelopes: list[Envelope] = field(default_factory=list)

    async def emit(self, envelope: Envelope) -> None:
        """Append the envelope."""
        self.envelopes.append(envelope)


@dataclass(kw_only=True)
class EnvelopeChannel:
    """Buffers a finished envelope sequence and fans it out to subscribers.

    Subscribers attached before publication receive the sequence when it is
    published; later ones get it replayed in full. Either way each subscriber
    sees every envelope exactly once per subscription.
    """

    _buffer: list[Envelope] = field(default_factory=list, init=False)
    _subscribers: list[MessageSink] = field(default_factory=list, init=False)
    _closed: bool = field(default=False, init=False)

    @property
    def closed(self) -> bool:
        """Check if no more envelopes will be published."""
        return self._closed

    @property
    def envelopes(self) -> Sequence[Envelope]:
        """Published envelopes."""
        return tuple(self._buffer)

    async def publish_all(self, envelopes: Sequence[Envelope]) -> None:
        """Buffer the complete sequence, close the channel and fan it out.

        The buffer is complete before any subscriber runs.
        """
        if self._closed:
            raise RuntimeError("Cannot publish to a closed channel")
        self._buffer.extend(envelopes)
        self._closed = True
        subscribers, self._subscribers = self._subscribers, []
        for subscriber in subscribers:
            for envelope in envelopes:
                await subscriber.emit(envelope)

    async def subscribe(self, sink: MessageSink) -> None:
        """Replay the published sequence to sink, or deliver it once published."""
        for envelope in tuple(self._buffer):
            await sink.emit(envelope)
        if not self._closed:
            self._subscribers.append(sink)
