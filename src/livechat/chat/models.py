"""Data models for the chat client."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

DEFAULT_EMOTE_SIZE = 28


class EmoteTier(str, Enum):
    """Source tier an emote was loaded from."""

    GLOBAL = "global"
    CHANNEL = "channel"
    TIER = "tier"


class ConnectionState(str, Enum):
    """Session connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SystemStyle(str, Enum):
    """Severity style of a system message."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SendKind(str, Enum):
    """Outbound event names."""

    CHAT_MESSAGE = "chat-message"
    DONATION = "donation"
    MOD_TIMEOUT = "mod-timeout"
    MOD_BAN = "mod-ban"
    MOD_UNBAN = "mod-unban"
    MOD_DELETE = "mod-delete"
    MOD_CLEAR = "mod-clear"


class ModAction(str, Enum):
    """Moderator actions and the event each one is sent as."""

    TIMEOUT = "timeout"
    BAN = "ban"
    UNBAN = "unban"
    DELETE = "delete"
    CLEAR = "clear"

    @property
    def send_kind(self) -> SendKind:
        return SendKind(f"mod-{self.value}")


@dataclass(frozen=True)
class Emote:
    """A chat emote from one of the catalog tiers."""

    id: str
    code: str  # Trigger text, e.g. ":smile:"
    name: str = ""
    url: str = ""
    is_animated: bool = False
    width: int = DEFAULT_EMOTE_SIZE
    height: int = DEFAULT_EMOTE_SIZE
    source_tier: EmoteTier = EmoteTier.GLOBAL
    category: str = ""

    @property
    def bare_code(self) -> str:
        """Lowercased code without the surrounding colons."""
        return self.code.replace(":", "").lower()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "url": self.url,
            "isAnimated": self.is_animated,
            "width": self.width,
            "height": self.height,
            "sourceTier": self.source_tier.value,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict, tier: EmoteTier | None = None) -> Emote:
        """Build an Emote from a backend or storage record.

        Raises:
            ValueError: If the record has no id or code.
        """
        emote_id = str(data.get("id", "") or "")
        code = str(data.get("code", "") or "")
        if not emote_id or not code:
            raise ValueError(f"Emote record missing id/code: {data!r}")

        if tier is None:
            try:
                tier = EmoteTier(data.get("sourceTier", data.get("source_tier", "global")))
            except ValueError:
                tier = EmoteTier.GLOBAL

        return cls(
            id=emote_id,
            code=code,
            name=str(data.get("name", "") or code.strip(":")),
            url=str(data.get("url", "") or ""),
            is_animated=bool(data.get("isAnimated", data.get("is_animated", False))),
            width=_to_int(data.get("width"), DEFAULT_EMOTE_SIZE),
            height=_to_int(data.get("height"), DEFAULT_EMOTE_SIZE),
            source_tier=tier,
            category=str(data.get("category", "") or ""),
        )


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_emote_list(records: Any, tier: EmoteTier) -> list[Emote]:
    """Parse a list of emote records, skipping malformed entries."""
    emotes: list[Emote] = []
    if not isinstance(records, list):
        return emotes
    for record in records:
        if not isinstance(record, dict):
            continue
        try:
            emotes.append(Emote.from_dict(record, tier))
        except ValueError:
            continue
    return emotes


@dataclass(frozen=True)
class ChatBadge:
    """Represents a chat badge (sub, mod, etc.)."""

    id: str
    name: str
    image_url: str = ""


@dataclass(frozen=True)
class ChatUser:
    """Represents a chat message author."""

    id: str
    username: str
    display_name: str = ""
    color: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.username


@dataclass(frozen=True)
class Identity:
    """The local viewer's identity for a session."""

    user_id: str = ""
    username: str = ""
    token: str = ""
    tier: str = "free"  # Subscription tier name

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id and self.token)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StandardMessage:
    """A regular chat message."""

    kind: ClassVar[str] = "standard"

    id: str
    author: ChatUser
    text: str
    timestamp: str = field(default_factory=now_iso)
    emotes: tuple[Emote, ...] = ()
    badges: tuple[ChatBadge, ...] = ()


@dataclass(frozen=True)
class SystemMessage:
    """A notice generated by the server or by the session itself."""

    kind: ClassVar[str] = "system"

    id: str
    content: str
    style: SystemStyle = SystemStyle.INFO
    timestamp: str = field(default_factory=now_iso)


@dataclass(frozen=True)
class DonationMessage:
    """A token donation with an optional message."""

    kind: ClassVar[str] = "donation"

    id: str
    author: ChatUser
    amount: int
    text: str = ""
    timestamp: str = field(default_factory=now_iso)
    emotes: tuple[Emote, ...] = ()
    effects: dict = field(default_factory=dict)


ChatMessage = StandardMessage | SystemMessage | DonationMessage


@dataclass(frozen=True)
class ModerationEvent:
    """A timeout or ban reported by the server."""

    type: str  # "timeout" or "ban"
    user_id: str
    username: str
    duration: int | None = None  # Timeout duration in seconds
    reason: str = ""
    moderator: str = ""


@dataclass(frozen=True)
class TransportEvent:
    """A single inbound event read from a transport."""

    name: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedMessage:
    """Outbound text with emote triggers replaced by placeholders."""

    text: str
    emotes: tuple[Emote, ...] = ()

    @property
    def emote_ids(self) -> list[str]:
        return [emote.id for emote in self.emotes]


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class EmoteSegment:
    emote: Emote


Segment = TextSegment | EmoteSegment
