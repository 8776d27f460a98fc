"""Base chat transport abstract class."""

import asyncio
import logging
import random
from abc import ABC, abstractmethod

from ..models import Identity, TransportEvent

logger = logging.getLogger(__name__)

# Exponential backoff constants for reconnection
INITIAL_RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_DELAY = 60.0  # seconds
RECONNECT_BACKOFF_FACTOR = 2.0
RECONNECT_JITTER = 0.1  # 10% jitter to prevent thundering herd

EVENT_QUEUE_SIZE = 500


class BaseTransport(ABC):
    """Abstract base class for chat transports.

    A transport owns the wire connection and its retry policy. Inbound
    events are pushed, in arrival order, onto a bounded queue that a single
    consumer drains.
    """

    def __init__(self, channel_id: str, identity: Identity, max_reconnect_attempts: int = 10):
        self._channel_id = channel_id
        self._identity = identity
        self._reconnect_delay: float = INITIAL_RECONNECT_DELAY
        self._should_stop: bool = False  # Set for intentional disconnect
        self._max_reconnect_attempts = max_reconnect_attempts  # 0 = unlimited
        self._task: asyncio.Task | None = None
        self.events: asyncio.Queue[TransportEvent] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the connection loop on the running event loop."""
        if self.is_running:
            return
        self._should_stop = False
        self._task = asyncio.create_task(self._run_guarded())

    async def close(self) -> None:
        """Stop the connection loop and release the connection."""
        self._should_stop = True
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._cleanup()

    @abstractmethod
    async def run(self) -> None:
        """Connect, read, and reconnect until stopped."""

    @abstractmethod
    async def emit(self, event: str, payload: dict) -> None:
        """Send an event to the server.

        Raises:
            TransportFailure: If the connection is not open or the write fails.
        """

    async def _cleanup(self) -> None:
        """Release connection resources. Called on close."""

    async def _run_guarded(self) -> None:
        try:
            await self.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"{self.__class__.__name__}: connection loop crashed")
            await self._push("error", {"message": f"Connection failed: {e}"})
            await self._push("disconnected")

    async def _push(self, name: str, data: dict | None = None) -> None:
        await self.events.put(TransportEvent(name=name, data=data or {}))

    def _reset_backoff(self) -> None:
        """Reset reconnection backoff delay after successful connection."""
        self._reconnect_delay = INITIAL_RECONNECT_DELAY

    def _get_next_backoff(self) -> float:
        """Get the next backoff delay with jitter and update for next call."""
        delay = self._reconnect_delay
        jitter = delay * RECONNECT_JITTER * (2 * random.random() - 1)
        delay_with_jitter = delay + jitter

        self._reconnect_delay = min(
            self._reconnect_delay * RECONNECT_BACKOFF_FACTOR,
            MAX_RECONNECT_DELAY,
        )

        return delay_with_jitter

    async def _sleep_with_backoff(self) -> None:
        """Sleep for the current backoff delay before reconnecting."""
        delay = self._get_next_backoff()
        logger.info(
            f"{self.__class__.__name__}: reconnecting in {delay:.1f}s "
            f"(next delay: {self._reconnect_delay:.1f}s)"
        )
        await asyncio.sleep(delay)
