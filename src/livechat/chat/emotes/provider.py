"""Emote providers backing the catalog tiers."""

import logging
from abc import ABC, abstractmethod

from ...api.client import ChatApiClient
from ..models import Emote, EmoteTier, parse_emote_list

logger = logging.getLogger(__name__)


class BaseEmoteProvider(ABC):
    """Remote source of emote lists.

    Implementations raise RemoteFetchFailure when a list cannot be fetched.
    """

    @abstractmethod
    async def get_global_emotes(self) -> list[Emote]:
        """Fetch platform-wide emotes."""

    @abstractmethod
    async def get_channel_emotes(self, channel_id: str) -> list[Emote]:
        """Fetch a streamer's channel emotes."""

    @abstractmethod
    async def get_tier_emotes(self, tier: str) -> list[Emote]:
        """Fetch the emotes unlocked by a subscription tier."""

    @abstractmethod
    async def search_emotes(self, query: str) -> list[Emote]:
        """Full-text emote search."""


class RemoteEmoteProvider(BaseEmoteProvider):
    """Emote provider using the chat backend's REST API."""

    def __init__(self, client: ChatApiClient):
        self._client = client

    async def get_global_emotes(self) -> list[Emote]:
        emotes = parse_emote_list(await self._client.get_global_emotes(), EmoteTier.GLOBAL)
        logger.debug(f"Fetched {len(emotes)} global emotes")
        return emotes

    async def get_channel_emotes(self, channel_id: str) -> list[Emote]:
        records = await self._client.get_channel_emotes(channel_id)
        emotes = parse_emote_list(records, EmoteTier.CHANNEL)
        logger.debug(f"Fetched {len(emotes)} channel emotes for {channel_id}")
        return emotes

    async def get_tier_emotes(self, tier: str) -> list[Emote]:
        emotes = parse_emote_list(await self._client.get_tier_emotes(tier), EmoteTier.TIER)
        logger.debug(f"Fetched {len(emotes)} emotes for tier {tier}")
        return emotes

    async def search_emotes(self, query: str) -> list[Emote]:
        records = await self._client.search_emotes(query)
        # Search results carry their own sourceTier
        emotes: list[Emote] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                emotes.append(Emote.from_dict(record))
            except ValueError:
                continue
        return emotes
