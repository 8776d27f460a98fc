"""Message pipeline: emote substitution around the send/receive path."""

import logging
from collections.abc import Iterable

from .emotes.catalog import EmoteCatalog
from .emotes.matcher import substitute_triggers
from .emotes.recent import RecencyTracker
from .emotes.renderer import resolve_message_segments, segments_to_html, segments_to_text
from .models import Emote, ParsedMessage, Segment

logger = logging.getLogger(__name__)


class MessagePipeline:
    """Outbound trigger parsing and inbound placeholder resolution."""

    def __init__(self, catalog: EmoteCatalog, recent: RecencyTracker):
        self._catalog = catalog
        self._recent = recent

    def parse_outbound(self, text: str, emotes_in_scope: Iterable[Emote] = ()) -> ParsedMessage:
        """Replace ``:name:`` triggers with placeholders.

        Triggers resolve against ``emotes_in_scope`` first and the catalog's
        code index second. Every emote used is pushed to the recency list.
        """
        scope: dict[str, Emote] = {}
        for emote in emotes_in_scope:
            scope[emote.bare_code] = emote

        def resolve(word: str) -> Emote | None:
            key = word.lower()
            return scope.get(key) or self._catalog.lookup_by_code(f":{key}:")

        parsed_text, used = substitute_triggers(text, resolve)
        for emote in used:
            self._recent.add(emote)

        if used:
            logger.debug(f"Parsed {len(used)} emotes in outgoing message")
        return ParsedMessage(text=parsed_text, emotes=tuple(used))

    def prepare_inbound(self, text: str, emotes: Iterable[Emote] = ()) -> list[Segment]:
        """Resolve placeholders in a received message. Never fails."""
        return resolve_message_segments(text, emotes, self._catalog.lookup_by_id)

    def render_html(self, text: str, emotes: Iterable[Emote] = ()) -> str:
        """Escaped, linkified HTML for a received message body."""
        return segments_to_html(self.prepare_inbound(text, emotes))

    def render_text(self, text: str, emotes: Iterable[Emote] = ()) -> str:
        return segments_to_text(self.prepare_inbound(text, emotes))
