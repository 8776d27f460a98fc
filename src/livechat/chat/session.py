"""Chat session - one logical connection to a channel's chat."""

import asyncio
import logging
import uuid
from collections.abc import Callable

from PySide6.QtCore import QObject, Signal

from .connections.base import BaseTransport
from .errors import NotAuthenticated, NotConnected
from .models import (
    ChatBadge,
    ChatUser,
    ConnectionState,
    DonationMessage,
    Emote,
    Identity,
    ModerationEvent,
    SendKind,
    StandardMessage,
    SystemMessage,
    SystemStyle,
    TransportEvent,
    now_iso,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, Identity], BaseTransport]

CHAT_CLEARED_TEXT = "The chat has been cleared by a moderator."


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _parse_author(data: dict) -> ChatUser:
    author = data.get("author")
    if isinstance(author, dict):
        username = str(author.get("username", "") or author.get("name", ""))
        return ChatUser(
            id=str(author.get("id", author.get("userId", "")) or ""),
            username=username,
            display_name=str(author.get("displayName", "") or username),
            color=author.get("color"),
        )
    username = str(author or data.get("username", ""))
    return ChatUser(id=str(data.get("userId", "") or ""), username=username, display_name=username)


def _parse_emotes(records) -> tuple[Emote, ...]:
    """Emote records attached to a message; bare ids resolve later via the catalog."""
    emotes: list[Emote] = []
    for record in records or ():
        if not isinstance(record, dict):
            continue
        try:
            emotes.append(Emote.from_dict(record))
        except ValueError:
            continue
    return tuple(emotes)


def _parse_badges(records) -> tuple[ChatBadge, ...]:
    badges: list[ChatBadge] = []
    for record in records or ():
        if isinstance(record, dict):
            badge_id = str(record.get("id", "") or record.get("type", ""))
            badges.append(
                ChatBadge(
                    id=badge_id,
                    name=str(record.get("name", "") or badge_id),
                    image_url=str(record.get("imageUrl", "") or record.get("url", "")),
                )
            )
        elif isinstance(record, str) and record:
            badges.append(ChatBadge(id=record, name=record))
    return tuple(badges)


def _parse_style(value) -> SystemStyle:
    try:
        return SystemStyle(value or SystemStyle.INFO.value)
    except ValueError:
        return SystemStyle.INFO


def _reason_suffix(reason: str) -> str:
    return f": {reason}" if reason else ""


def parse_chat_message(data: dict) -> StandardMessage:
    return StandardMessage(
        id=str(data.get("id", "") or _new_id("msg")),
        author=_parse_author(data),
        text=str(data.get("text", data.get("content", "")) or ""),
        timestamp=str(data.get("timestamp", "") or now_iso()),
        emotes=_parse_emotes(data.get("emotes")),
        badges=_parse_badges(data.get("badges")),
    )


def parse_donation(data: dict) -> DonationMessage:
    """Donation ids are namespaced so they never collide with chat message ids."""
    effects = data.get("effects")
    return DonationMessage(
        id=f"donation_{data.get('id', '') or uuid.uuid4().hex}",
        author=_parse_author(data),
        amount=int(data.get("amount", 0)),
        text=str(data.get("text", data.get("message", "")) or ""),
        timestamp=str(data.get("timestamp", "") or now_iso()),
        emotes=_parse_emotes(data.get("emotes")),
        effects=effects if isinstance(effects, dict) else {},
    )


def parse_system_message(data: dict) -> SystemMessage:
    return SystemMessage(
        id=_new_id("system"),
        content=str(data["content"]),
        style=_parse_style(data.get("severity", data.get("style"))),
        timestamp=str(data.get("timestamp", "") or now_iso()),
    )


class ConnectionSession(QObject):
    """Owns at most one live transport and turns its events into log changes.

    Inbound events are drained from the transport's queue by a single
    dispatch task and handled one at a time, in arrival order. Every log
    change is delivered synchronously through ``message_appended`` or
    ``log_cleared``.
    """

    # A new entry for the chat log (ChatMessage)
    message_appended = Signal(object)
    # The whole log must be emptied
    log_cleared = Signal()
    # The local viewer was timed out or banned (ModerationEvent)
    self_affected = Signal(object)
    # ConnectionState changes
    state_changed = Signal(object)
    # Transient, user-facing transport error text
    error = Signal(str)

    def __init__(self, transport_factory: TransportFactory, parent: QObject | None = None):
        super().__init__(parent)
        self._transport_factory = transport_factory
        self._transport: BaseTransport | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._closing: set[asyncio.Task] = set()
        self._generation = 0
        self._state = ConnectionState.DISCONNECTED
        self._channel_id = ""
        self._identity = Identity()

        self._handlers: dict[str, Callable[[dict], None]] = {
            "connecting": self._on_connecting,
            "connected": self._on_connected,
            "disconnected": self._on_disconnected,
            "error": self._on_error,
            "chat-message": self._on_chat_message,
            "donation": self._on_donation,
            "system-message": self._on_system_message,
            "user-timeout": self._on_user_timeout,
            "user-ban": self._on_user_ban,
            "chat-cleared": self._on_chat_cleared,
            # Moderator-initiated echoes of the same actions
            "mod-timeout": self._on_user_timeout,
            "mod-ban": self._on_user_ban,
            "mod-clear": self._on_chat_cleared,
        }

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def identity(self) -> Identity:
        return self._identity

    def open(self, channel_id: str, identity: Identity) -> None:
        """Bind a new transport for ``channel_id``, replacing any existing one.

        Returns without waiting for the connection. Nothing the previous
        transport delivers reaches the log once this returns.
        """
        self._generation += 1
        generation = self._generation
        self._channel_id = channel_id
        self._identity = identity
        self._set_state(ConnectionState.CONNECTING)

        try:
            self._detach()
            transport = self._transport_factory(channel_id, identity)
            self._transport = transport
            transport.start()
            self._dispatch_task = asyncio.create_task(self._dispatch_loop(transport, generation))
        except Exception as e:
            logger.error(f"Failed to open chat transport for {channel_id}: {e}")
            self._detach()
            self._set_state(ConnectionState.DISCONNECTED)
            self.error.emit(f"Failed to connect to chat: {e}")
            return

        logger.info(f"Opening chat session for {channel_id}")

    async def close(self) -> None:
        """Release the transport and its dispatch task."""
        self._generation += 1
        task, transport = self._dispatch_task, self._transport
        self._dispatch_task = None
        self._transport = None
        try:
            if task is not None:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            if transport is not None:
                await transport.close()
            if self._closing:
                await asyncio.gather(*self._closing, return_exceptions=True)
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def send(self, kind: SendKind | str, payload: dict) -> None:
        """Send an outbound event.

        Raises:
            NotConnected: The session is not connected.
            NotAuthenticated: The identity has no user id or token.
            TransportFailure: The transport rejected the write.
        """
        kind = SendKind(kind)
        if self._state != ConnectionState.CONNECTED or self._transport is None:
            raise NotConnected()
        if not self._identity.is_authenticated:
            raise NotAuthenticated()
        await self._transport.emit(kind.value, payload)

    def _detach(self) -> None:
        """Unbind the current transport now and close it in the background."""
        task, transport = self._dispatch_task, self._transport
        self._dispatch_task = None
        self._transport = None
        if task is not None:
            task.cancel()
        if transport is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            logger.warning(f"Cannot close chat transport for {transport.channel_id}: {e}")
            return
        closing = loop.create_task(self._close_transport(transport))
        self._closing.add(closing)
        closing.add_done_callback(self._closing.discard)

    async def _close_transport(self, transport: BaseTransport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.warning(f"Error closing chat transport for {transport.channel_id}: {e}")

    async def _dispatch_loop(self, transport: BaseTransport, generation: int) -> None:
        while True:
            event = await transport.events.get()
            if generation != self._generation:
                return
            self._dispatch(event)

    def _dispatch(self, event: TransportEvent) -> None:
        handler = self._handlers.get(event.name)
        if handler is None:
            logger.debug(f"Ignoring unknown chat event: {event.name}")
            return
        try:
            handler(event.data)
        except Exception as e:
            logger.warning(f"Dropping malformed {event.name} event: {e!r}")

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Chat session {self._channel_id}: {self._state.value} -> {state.value}")
        self._state = state
        self.state_changed.emit(state)

    def _append(self, message) -> None:
        self.message_appended.emit(message)

    def _is_self(self, user_id: str) -> bool:
        return bool(self._identity.user_id) and user_id == self._identity.user_id

    def _on_connecting(self, data: dict) -> None:
        self._set_state(ConnectionState.CONNECTING)

    def _on_connected(self, data: dict) -> None:
        self._set_state(ConnectionState.CONNECTED)

    def _on_disconnected(self, data: dict) -> None:
        self._set_state(ConnectionState.DISCONNECTED)

    def _on_error(self, data: dict) -> None:
        message = str(data.get("message", "") or "Chat connection error")
        logger.error(f"Chat connection error ({self._channel_id}): {message}")
        self._set_state(ConnectionState.DISCONNECTED)
        self.error.emit(message)

    def _on_chat_message(self, data: dict) -> None:
        self._append(parse_chat_message(data))

    def _on_donation(self, data: dict) -> None:
        self._append(parse_donation(data))

    def _on_system_message(self, data: dict) -> None:
        self._append(parse_system_message(data))

    def _moderation_event(self, kind: str, data: dict) -> ModerationEvent:
        duration = None
        if kind == "timeout":
            duration = int(data.get("durationSeconds", data.get("duration", 0)) or 0)
        return ModerationEvent(
            type=kind,
            user_id=str(data.get("userId", data.get("targetUserId", "")) or ""),
            username=str(data.get("username", "") or ""),
            duration=duration,
            reason=str(data.get("reason", "") or ""),
            moderator=str(data.get("moderator", "") or ""),
        )

    def _on_user_timeout(self, data: dict) -> None:
        event = self._moderation_event("timeout", data)
        by = f" by {event.moderator}" if event.moderator else ""
        self._append(
            SystemMessage(
                id=_new_id("timeout"),
                content=(
                    f"{event.username} has been timed out{by} for {event.duration} seconds"
                    f"{_reason_suffix(event.reason)}."
                ),
                style=SystemStyle.WARNING,
            )
        )
        if self._is_self(event.user_id):
            self.self_affected.emit(event)

    def _on_user_ban(self, data: dict) -> None:
        event = self._moderation_event("ban", data)
        by = f" by {event.moderator}" if event.moderator else ""
        self._append(
            SystemMessage(
                id=_new_id("ban"),
                content=f"{event.username} has been banned{by}{_reason_suffix(event.reason)}.",
                style=SystemStyle.ERROR,
            )
        )
        if self._is_self(event.user_id):
            self.self_affected.emit(event)

    def _on_chat_cleared(self, data: dict) -> None:
        self.log_cleared.emit()
        self._append(SystemMessage(id=_new_id("clear"), content=CHAT_CLEARED_TEXT))
