"""Protocol interfaces for invalidation distribution."""

from abc import abstractmethod
from typing import Awaitable, Callable, Protocol, runtime_checkable

from .events import GrantChangeEvent


RemoteEventHandler = Callable[[GrantChangeEvent], Awaitable[object]]


@runtime_checkable
class InvalidationDistributor(Protocol):
    """Broadcasts grant-change events to other processes."""

    @abstractmethod
    async def publish(self, event: GrantChangeEvent) -> bool:
        """Publish an event that was applied locally."""
        ...

    @abstractmethod
    async def start(self, handler: RemoteEventHandler) -> None:
        """Start delivering events from other processes to ``handler``."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening."""
        ...
