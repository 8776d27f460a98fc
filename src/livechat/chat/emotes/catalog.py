"""Three-tier emote catalog (global / channel / subscription tier)."""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from ..errors import RemoteFetchFailure
from ..models import Emote, EmoteTier
from .provider import BaseEmoteProvider

logger = logging.getLogger(__name__)

FREE_TIER = "free"
INVALIDATE_SCOPES = ("global", "channel", "tier", "all")

# Served when the backend is unreachable. Never cached.
FALLBACK_GLOBAL_EMOTES: tuple[Emote, ...] = (
    Emote(id="smile", code=":smile:", name="Smile", url="/assets/emotes/smile.png"),
    Emote(id="lol", code=":lol:", name="LOL", url="/assets/emotes/lol.png"),
    Emote(id="clipt", code=":clipt:", name="Clipt", url="/assets/emotes/clipt.png"),
    Emote(id="love", code=":love:", name="Love", url="/assets/emotes/love.png"),
)

FALLBACK_TIER_EMOTES: dict[str, tuple[Emote, ...]] = {
    "pro": (
        Emote(
            id="pro_hype",
            code=":prohype:",
            name="Pro Hype",
            url="/assets/emotes/pro_hype.gif",
            is_animated=True,
            source_tier=EmoteTier.TIER,
        ),
        Emote(
            id="pro_cool",
            code=":procool:",
            name="Pro Cool",
            url="/assets/emotes/pro_cool.png",
            source_tier=EmoteTier.TIER,
        ),
    ),
    "maxed": (
        Emote(
            id="maxed_fire",
            code=":maxedfire:",
            name="Maxed Fire",
            url="/assets/emotes/maxed_fire.gif",
            is_animated=True,
            source_tier=EmoteTier.TIER,
        ),
        Emote(
            id="maxed_king",
            code=":maxedking:",
            name="Maxed King",
            url="/assets/emotes/maxed_king.gif",
            is_animated=True,
            source_tier=EmoteTier.TIER,
        ),
    ),
}


@dataclass(frozen=True)
class CatalogSnapshot:
    """Merged, indexed view of every cached tier.

    ``emotes`` keeps the first occurrence of each id (global first), while
    ``by_code`` is written in tier order so the last tier indexed wins.
    """

    emotes: tuple[Emote, ...] = ()
    by_code: dict[str, Emote] = field(default_factory=dict)
    by_id: dict[str, Emote] = field(default_factory=dict)


class EmoteCatalog:
    """Process-wide emote cache shared by every session.

    Each tier is cached independently. After any fetch or invalidation the
    index is rebuilt into a new snapshot and swapped in, so readers never
    see a half-built index.
    """

    def __init__(self, provider: BaseEmoteProvider):
        self._provider = provider
        self._global: list[Emote] | None = None
        self._channels: dict[str, list[Emote]] = {}
        self._tiers: dict[str, list[Emote]] = {}
        self._snapshot = CatalogSnapshot()

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    async def fetch_global(self, force_refresh: bool = False) -> list[Emote]:
        if self._global is not None and not force_refresh:
            return list(self._global)

        try:
            emotes = await self._provider.get_global_emotes()
        except RemoteFetchFailure as e:
            logger.warning(f"Global emotes unavailable, using fallback: {e}")
            return list(FALLBACK_GLOBAL_EMOTES)

        self._global = emotes
        self._rebuild_index()
        return list(emotes)

    async def fetch_channel(self, channel_id: str, force_refresh: bool = False) -> list[Emote]:
        if channel_id in self._channels and not force_refresh:
            return list(self._channels[channel_id])

        try:
            emotes = await self._provider.get_channel_emotes(channel_id)
        except RemoteFetchFailure as e:
            logger.warning(f"Channel emotes unavailable for {channel_id}: {e}")
            return []

        self._channels[channel_id] = emotes
        self._rebuild_index()
        return list(emotes)

    async def fetch_tier(self, tier_name: str, force_refresh: bool = False) -> list[Emote]:
        if tier_name in self._tiers and not force_refresh:
            return list(self._tiers[tier_name])

        try:
            emotes = await self._provider.get_tier_emotes(tier_name)
        except RemoteFetchFailure as e:
            logger.warning(f"Tier emotes unavailable for {tier_name}, using fallback: {e}")
            return list(FALLBACK_TIER_EMOTES.get(tier_name, ()))

        self._tiers[tier_name] = emotes
        self._rebuild_index()
        return list(emotes)

    async def get_all(self, channel_id: str | None = None, tier: str = FREE_TIER) -> list[Emote]:
        """All emotes available to a viewer of ``tier`` in ``channel_id``.

        The three tiers are fetched concurrently and merged global, channel,
        tier; the first occurrence of an id wins.
        """
        global_emotes, channel_emotes, tier_emotes = await asyncio.gather(
            self.fetch_global(),
            self.fetch_channel(channel_id) if channel_id else _no_emotes(),
            self.fetch_tier(tier) if tier and tier != FREE_TIER else _no_emotes(),
        )

        merged: list[Emote] = []
        seen: set[str] = set()
        for emote in [*global_emotes, *channel_emotes, *tier_emotes]:
            if emote.id in seen:
                continue
            seen.add(emote.id)
            merged.append(emote)
        return merged

    def lookup_by_code(self, code: str) -> Emote | None:
        """Case-insensitive lookup; the last tier indexed wins on collisions."""
        return self._snapshot.by_code.get(code.lower())

    def lookup_by_id(self, emote_id: str) -> Emote | None:
        return self._snapshot.by_id.get(emote_id)

    def invalidate(self, scope: str = "all", key: str | None = None) -> None:
        """Drop cached tiers and rebuild the index.

        Args:
            scope: "global", "channel", "tier" or "all".
            key: Channel id or tier name; without it every entry of the
                scope is dropped.
        """
        if scope not in INVALIDATE_SCOPES:
            raise ValueError(f"Unknown invalidate scope: {scope}")

        if scope in ("global", "all"):
            self._global = None
        if scope in ("channel", "all"):
            if key:
                self._channels.pop(key, None)
            else:
                self._channels = {}
        if scope in ("tier", "all"):
            if key:
                self._tiers.pop(key, None)
            else:
                self._tiers = {}

        logger.debug(f"Invalidated emote cache: scope={scope} key={key}")
        self._rebuild_index()

    async def search(self, query: str) -> list[Emote]:
        """Remote full-text search, degrading to a scan of the cached tiers."""
        query = query.strip()
        if not query:
            return []

        try:
            return await self._provider.search_emotes(query)
        except RemoteFetchFailure as e:
            logger.info(f"Remote emote search failed, searching locally: {e}")

        needle = query.lower()
        results: list[Emote] = []
        seen: set[str] = set()
        for emote in self._iter_cached():
            if emote.id in seen:
                continue
            if needle in emote.code.lower() or needle in emote.name.lower():
                seen.add(emote.id)
                results.append(emote)
        return results

    def _iter_cached(self) -> Iterator[Emote]:
        """Replay cached tiers in index order: global, channels, tiers."""
        if self._global:
            yield from self._global
        for emotes in self._channels.values():
            yield from emotes
        for emotes in self._tiers.values():
            yield from emotes

    def _rebuild_index(self) -> None:
        emotes: list[Emote] = []
        by_code: dict[str, Emote] = {}
        by_id: dict[str, Emote] = {}
        for emote in self._iter_cached():
            by_code[emote.code.lower()] = emote
            if emote.id not in by_id:
                by_id[emote.id] = emote
                emotes.append(emote)
        self._snapshot = CatalogSnapshot(emotes=tuple(emotes), by_code=by_code, by_id=by_id)


async def _no_emotes() -> list[Emote]:
    return []
