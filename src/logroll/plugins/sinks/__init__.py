from __future__ import annotations

from typing import Protocol, runtime_checkable

from ...core.serialization import Message


@runtime_checkable
class BaseSink(Protocol):
    """Base async sink interface.

    Sinks persist a stream of messages to a destination. Implementations
    should be non-blocking and resilient; errors must be contained and must
    not crash the surrounding pipeline.
    """

    async def start(self) -> None:  # Optional lifecycle hook
        ...

    async def stop(self) -> None:  # Optional lifecycle hook
        ...

    async def write(self, _message: Message) -> None:  # noqa: ARG002, D401
        """Write a single message to the sink destination."""
        ...


__all__ = ["BaseSink"]
