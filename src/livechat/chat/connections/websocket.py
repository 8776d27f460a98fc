"""WebSocket chat transport."""

import asyncio
import json
import logging

import aiohttp

from ..errors import TransportFailure
from ..models import Identity
from .base import BaseTransport

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 30.0


class WebSocketTransport(BaseTransport):
    """Chat transport over a JSON WebSocket.

    Frames in both directions are ``{"event": name, "data": {...}}``. The
    channel and the viewer's token are passed as query parameters.
    """

    def __init__(
        self,
        url: str,
        channel_id: str,
        identity: Identity,
        max_reconnect_attempts: int = 10,
    ):
        super().__init__(channel_id, identity, max_reconnect_attempts)
        self._url = url
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    async def run(self) -> None:
        failures = 0
        while not self._should_stop:
            await self._push("connecting")
            try:
                if self._session is None or self._session.closed:
                    self._session = aiohttp.ClientSession()
                self._ws = await self._session.ws_connect(
                    self._url, params=self._connect_params(), heartbeat=HEARTBEAT_SECONDS
                )
                logger.info(f"Chat socket connected for {self._channel_id}")
                self._reset_backoff()
                failures = 0
                await self._push("connected")

                await self._read_loop()

            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                if not self._should_stop:
                    await self._push("error", {"message": f"Connection failed: {e}"})
            finally:
                await self._close_ws()

            if self._should_stop:
                break

            await self._push("disconnected")
            failures += 1
            if self._max_reconnect_attempts and failures >= self._max_reconnect_attempts:
                logger.warning(
                    f"Giving up on {self._channel_id} after {failures} reconnect attempts"
                )
                break
            await self._sleep_with_backoff()

    async def emit(self, event: str, payload: dict) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportFailure("Chat connection is not open")
        try:
            await self._ws.send_str(json.dumps({"event": event, "data": payload}))
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportFailure(f"Failed to send {event}: {e}") from e

    def _connect_params(self) -> dict[str, str]:
        params = {"channelId": self._channel_id}
        if self._identity.token:
            params["token"] = self._identity.token
        return params

    async def _read_loop(self) -> None:
        """Read frames until the socket closes."""
        async for msg in self._ws:
            if self._should_stop:
                break

            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.debug(f"Ignoring non-JSON frame: {msg.data[:100]!r}")
                    continue
                if not isinstance(frame, dict) or not frame.get("event"):
                    continue
                data = frame.get("data")
                await self._push(str(frame["event"]), data if isinstance(data, dict) else {})

            elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                break

    async def _close_ws(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None

    async def _cleanup(self) -> None:
        await self._close_ws()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
