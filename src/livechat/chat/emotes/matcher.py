"""Emote trigger and placeholder matching."""

from __future__ import annotations

import re
from collections.abc import Callable

from ..models import Emote

# Colon-delimited trigger typed by users, e.g. ":smile:"
TRIGGER_RE = re.compile(r":(\w+):", re.ASCII)
# Marker stored in message text in place of a resolved emote
PLACEHOLDER_RE = re.compile(r"<emote:([^<>\s]+)>")


def placeholder(emote_id: str) -> str:
    return f"<emote:{emote_id}>"


def substitute_triggers(
    text: str,
    resolve: Callable[[str], Emote | None],
) -> tuple[str, list[Emote]]:
    """Replace resolvable triggers in text with placeholders.

    Triggers are scanned left to right without overlap; unresolved ones are
    kept verbatim.

    Args:
        text: Free text typed by the viewer.
        resolve: Maps a bare trigger word (no colons) to an emote.

    Returns:
        The rewritten text and the emotes used, deduplicated by id in
        order of first use.
    """
    if not text:
        return "", []

    used: list[Emote] = []
    seen: set[str] = set()

    def replace(match: re.Match) -> str:
        emote = resolve(match.group(1))
        if emote is None:
            return match.group(0)
        if emote.id not in seen:
            seen.add(emote.id)
            used.append(emote)
        return placeholder(emote.id)

    return TRIGGER_RE.sub(replace, text), used


def split_placeholders(text: str) -> list[tuple[str, str | None]]:
    """Split text into (chunk, emote_id) pairs.

    Plain chunks have ``emote_id`` None; placeholder chunks carry the id and
    their literal placeholder text.
    """
    parts: list[tuple[str, str | None]] = []
    last_end = 0
    for match in PLACEHOLDER_RE.finditer(text):
        if match.start() > last_end:
            parts.append((text[last_end : match.start()], None))
        parts.append((match.group(0), match.group(1)))
        last_end = match.end()
    if last_end < len(text):
        parts.append((text[last_end:], None))
    return parts
