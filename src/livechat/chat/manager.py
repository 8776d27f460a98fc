"""Chat manager - ties the session, emote catalog and chat log together."""

import asyncio
import logging

from PySide6.QtCore import QObject, Signal

from ..api.client import ChatApiClient
from ..core.settings import Settings
from .connections.base import BaseTransport
from .connections.websocket import WebSocketTransport
from .emotes.catalog import EmoteCatalog
from .emotes.provider import RemoteEmoteProvider
from .emotes.recent import RecencyTracker
from .errors import ChatError, NotAuthorized, RemoteFetchFailure
from .models import (
    ChatMessage,
    ConnectionState,
    DonationMessage,
    Emote,
    Identity,
    ModAction,
    ModerationEvent,
    SendKind,
    SystemMessage,
)
from .pipeline import MessagePipeline
from .session import (
    ConnectionSession,
    TransportFactory,
    parse_chat_message,
    parse_donation,
    parse_system_message,
)
from .timer import HOVER_INTENT_MS, SEARCH_DEBOUNCE_MS, CancellableTimer

logger = logging.getLogger(__name__)

NO_REASON = "No reason provided"


def _history_message(record: dict) -> ChatMessage:
    kind = record.get("type")
    if kind == "system":
        return parse_system_message(record)
    if kind == "donation":
        return parse_donation(record)
    return parse_chat_message(record)


class ChatManager(QObject):
    """Runs one channel's chat for the local viewer.

    Owns the connection session and the chat log, and bridges session
    signals to the UI. The emote catalog and recency list can be shared
    between managers.
    """

    # Emitted with each message added to the log (ChatMessage)
    message_appended = Signal(object)
    # Emitted when the log is emptied
    messages_cleared = Signal()
    # Emitted with user-facing notices (errors, moderation of the viewer)
    notice = Signal(str)
    # Emitted once start() has loaded history and opened the session
    ready = Signal()
    # Emitted on ConnectionState changes
    state_changed = Signal(object)
    # Emitted with debounced emote search results (list[Emote])
    search_results = Signal(list)
    # Emitted with {"id", "username"} after hover intent, or None on hover end
    user_hovered = Signal(object)
    # Emitted with a user's profile record
    user_card = Signal(dict)

    def __init__(
        self,
        settings: Settings,
        api: ChatApiClient | None = None,
        catalog: EmoteCatalog | None = None,
        recent: RecencyTracker | None = None,
        transport_factory: TransportFactory | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.settings = settings
        self._api = api or ChatApiClient(settings.api_base_url, settings.account.access_token)
        self._owns_api = api is None
        self._catalog = catalog or EmoteCatalog(RemoteEmoteProvider(self._api))
        self._recent = recent if recent is not None else RecencyTracker()
        self._pipeline = MessagePipeline(self._catalog, self._recent)

        self._session = ConnectionSession(transport_factory or self._create_transport, parent=self)
        self._session.message_appended.connect(self._on_message_appended)
        self._session.log_cleared.connect(self._on_log_cleared)
        self._session.self_affected.connect(self._on_self_affected)
        self._session.state_changed.connect(self._on_state_changed)
        self._session.error.connect(self._on_session_error)

        self._messages: list[ChatMessage] = []
        self._channel: dict = {}
        self._moderators: list[dict] = []
        self._emotes: list[Emote] = []
        self._is_moderator = False

        self._search_query = ""
        self._search_task: asyncio.Task | None = None
        self._search_timer = CancellableTimer(SEARCH_DEBOUNCE_MS, self._run_search)
        self._hover_timer = CancellableTimer(HOVER_INTENT_MS, lambda: None)

    @property
    def session(self) -> ConnectionSession:
        return self._session

    @property
    def catalog(self) -> EmoteCatalog:
        return self._catalog

    @property
    def pipeline(self) -> MessagePipeline:
        return self._pipeline

    @property
    def recent(self) -> RecencyTracker:
        return self._recent

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def channel(self) -> dict:
        return self._channel

    @property
    def moderators(self) -> list[dict]:
        return list(self._moderators)

    @property
    def emotes(self) -> list[Emote]:
        """Emotes available to the viewer in this channel."""
        return list(self._emotes)

    @property
    def is_moderator(self) -> bool:
        return self._is_moderator

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    async def start(self, channel_id: str, identity: Identity) -> None:
        """Load channel state and open the chat session.

        Each remote fetch degrades on its own; a channel with no metadata,
        moderators or history still gets a live session.
        """
        logger.info(f"Starting chat for channel {channel_id}")
        self._channel, self._moderators, history, self._emotes = await asyncio.gather(
            self._fetch_channel(channel_id),
            self._fetch_moderators(channel_id),
            self._fetch_history(channel_id),
            self._catalog.get_all(channel_id, identity.tier),
        )
        self._is_moderator = self._check_moderator(identity)

        self._messages = []
        self.messages_cleared.emit()
        for record in history:
            if not isinstance(record, dict):
                continue
            try:
                self._append(_history_message(record))
            except Exception as e:
                logger.debug(f"Skipping malformed history record: {e!r}")

        self._session.open(channel_id, identity)
        self.ready.emit()

    async def stop(self) -> None:
        """Close the session and release network resources."""
        self._search_timer.cancel()
        self._hover_timer.cancel()
        if self._search_task is not None:
            self._search_task.cancel()
            await asyncio.gather(self._search_task, return_exceptions=True)
            self._search_task = None
        await self._session.close()
        if self._owns_api:
            await self._api.close()

    async def send_message(self, text: str) -> bool:
        """Send a chat message. Returns False (and emits a notice) on failure."""
        text = text.strip()
        if not text:
            return False
        parsed = self._pipeline.parse_outbound(text, self._emotes)
        return await self._send(
            SendKind.CHAT_MESSAGE, {"text": parsed.text, "emoteIds": parsed.emote_ids}
        )

    async def send_donation(self, amount: int, text: str = "", effects: dict | None = None) -> bool:
        """Send a token donation with an optional message.

        Token balance checks happen server side.
        """
        if amount <= 0:
            self.notice.emit("Donation amount must be positive")
            return False
        parsed = self._pipeline.parse_outbound(text, self._emotes)
        payload = {
            "amount": amount,
            "text": parsed.text,
            "emoteIds": parsed.emote_ids,
            "effects": effects or {},
        }
        return await self._send(SendKind.DONATION, payload)

    async def mod_action(
        self, action: ModAction | str, target_user_id: str = "", **options
    ) -> bool:
        """Perform a moderator action against a user (or the whole chat for clear)."""
        try:
            action = ModAction(action)
        except ValueError:
            logger.error(f"Unknown mod action: {action}")
            return False

        if not self._is_moderator:
            self.notice.emit(str(NotAuthorized()))
            return False

        return await self._send(action.send_kind, {"targetUserId": target_user_id, **options})

    async def show_user_card(self, user_id: str) -> dict | None:
        """Fetch a user's profile and emit it as ``user_card``."""
        try:
            user = await self._api.get_user(user_id)
        except RemoteFetchFailure as e:
            logger.warning(f"Failed to load user {user_id}: {e}")
            self.notice.emit("Failed to load user data")
            return None
        self.user_card.emit(user)
        return user

    def search_emotes(self, query: str) -> None:
        """Debounced emote search; results arrive via ``search_results``."""
        self._search_query = query
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
        if not query.strip():
            self._search_timer.cancel()
            self.search_results.emit([])
            return
        self._search_timer.start()

    def hover_user(self, user_id: str, username: str) -> None:
        """Start hover intent; ``user_hovered`` fires if the pointer stays."""
        self._hover_timer.start(
            lambda: self.user_hovered.emit({"id": user_id, "username": username})
        )

    def hover_end(self) -> None:
        self._hover_timer.cancel()
        self.user_hovered.emit(None)

    def render_html(self, message: ChatMessage) -> str:
        """Safe HTML body for a log entry."""
        if isinstance(message, SystemMessage):
            return self._pipeline.render_html(message.content)
        return self._pipeline.render_html(message.text, message.emotes)

    def render_text(self, message: ChatMessage) -> str:
        """One-line plain-text form of a log entry."""
        if isinstance(message, SystemMessage):
            return f"* {message.content}"
        body = self._pipeline.render_text(message.text, message.emotes)
        if isinstance(message, DonationMessage):
            line = f"$ {message.author.label} donated {message.amount} tokens"
            return f"{line}: {body}" if body else line
        return f"{message.author.label}: {body}"

    def _create_transport(self, channel_id: str, identity: Identity) -> BaseTransport:
        return WebSocketTransport(
            self.settings.socket_url,
            channel_id,
            identity,
            max_reconnect_attempts=self.settings.connection.max_reconnect_attempts,
        )

    async def _send(self, kind: SendKind, payload: dict) -> bool:
        try:
            await self._session.send(kind, payload)
        except ChatError as e:
            logger.warning(f"Failed to send {kind.value}: {e}")
            self.notice.emit(str(e))
            return False
        return True

    async def _fetch_channel(self, channel_id: str) -> dict:
        try:
            return await self._api.get_channel(channel_id)
        except RemoteFetchFailure as e:
            logger.warning(f"Failed to load channel {channel_id}: {e}")
            return {}

    async def _fetch_moderators(self, channel_id: str) -> list[dict]:
        try:
            return await self._api.get_moderators(channel_id)
        except RemoteFetchFailure as e:
            logger.warning(f"Failed to load moderators for {channel_id}: {e}")
            return []

    async def _fetch_history(self, channel_id: str) -> list[dict]:
        try:
            return await self._api.get_messages(channel_id, limit=self.settings.history_limit)
        except RemoteFetchFailure as e:
            logger.warning(f"Failed to load chat history for {channel_id}: {e}")
            return []

    def _check_moderator(self, identity: Identity) -> bool:
        """Moderators are listed explicitly; the channel owner always is one."""
        if not identity.user_id:
            return False
        if str(self._channel.get("ownerId", "")) == identity.user_id:
            return True
        return any(
            isinstance(mod, dict) and str(mod.get("userId", "")) == identity.user_id
            for mod in self._moderators
        )

    def _append(self, message: ChatMessage) -> None:
        self._messages.append(message)
        overflow = len(self._messages) - self.settings.max_messages
        if overflow > 0:
            del self._messages[:overflow]
        self.message_appended.emit(message)

    def _run_search(self) -> None:
        self._search_task = asyncio.create_task(self._search(self._search_query))

    async def _search(self, query: str) -> None:
        try:
            results = await self._catalog.search(query)
        except Exception as e:
            logger.warning(f"Emote search for {query!r} failed: {e}")
            results = []
        # A newer query supersedes this one
        if query == self._search_query:
            self.search_results.emit(results)

    def _on_message_appended(self, message: ChatMessage) -> None:
        self._append(message)

    def _on_log_cleared(self) -> None:
        self._messages = []
        self.messages_cleared.emit()

    def _on_self_affected(self, event: ModerationEvent) -> None:
        reason = event.reason or NO_REASON
        if event.type == "timeout":
            text = f"You have been timed out for {event.duration} seconds: {reason}"
        else:
            text = f"You have been banned from this channel: {reason}"
        self.notice.emit(text)

    def _on_session_error(self, message: str) -> None:
        logger.error(f"Chat error for {self._session.channel_id}: {message}")
        self.notice.emit(message)

    def _on_state_changed(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTED:
            logger.info(f"Chat connected: {self._session.channel_id}")
        self.state_changed.emit(state)
