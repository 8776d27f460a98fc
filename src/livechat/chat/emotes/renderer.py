"""Emote renderer - resolves message text into render segments and safe HTML."""

import html
import re
from collections.abc import Callable, Iterable

from ..models import Emote, EmoteSegment, Segment, TextSegment
from .matcher import split_placeholders

URL_RE = re.compile(r'https?://[^\s<>\[\]"\'`)\]]+')

LINK_CLASS = "chat-message__link"
EMOTE_CLASS = "chat-message__emote"


def resolve_message_segments(
    text: str,
    emotes: Iterable[Emote],
    fallback: Callable[[str], Emote | None] | None = None,
) -> list[Segment]:
    """Resolve placeholder text into render segments.

    Ids are looked up in the message's own emotes first, then through
    ``fallback``. Unknown ids stay as their literal placeholder text.
    """
    if not text:
        return []

    by_id = {emote.id: emote for emote in emotes}
    segments: list[Segment] = []
    pending = ""

    for chunk, emote_id in split_placeholders(text):
        emote = None
        if emote_id is not None:
            emote = by_id.get(emote_id)
            if emote is None and fallback is not None:
                emote = fallback(emote_id)
        if emote is None:
            pending += chunk
            continue
        if pending:
            segments.append(TextSegment(pending))
            pending = ""
        segments.append(EmoteSegment(emote))

    if pending:
        segments.append(TextSegment(pending))
    return segments


def linkify(text: str) -> str:
    """Escape text and wrap http(s) URLs in anchors."""
    out: list[str] = []
    last_end = 0
    for match in URL_RE.finditer(text):
        out.append(html.escape(text[last_end : match.start()]))
        url = html.escape(match.group(0))
        out.append(
            f'<a href="{url}" target="_blank" rel="noopener noreferrer" '
            f'class="{LINK_CLASS}">{url}</a>'
        )
        last_end = match.end()
    out.append(html.escape(text[last_end:]))
    return "".join(out)


def emote_html(emote: Emote) -> str:
    classes = EMOTE_CLASS
    if emote.is_animated:
        classes += f" {EMOTE_CLASS}--animated"
    code = html.escape(emote.code)
    return (
        f'<span class="{classes}" title="{code}">'
        f'<img src="{html.escape(emote.url)}" alt="{code}" '
        f'width="{int(emote.width)}" height="{int(emote.height)}" /></span>'
    )


def segments_to_html(segments: Iterable[Segment]) -> str:
    """Render segments as HTML.

    All markup in the output is generated here; message text is always
    escaped.
    """
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, EmoteSegment):
            parts.append(emote_html(segment.emote))
        else:
            parts.append(linkify(segment.text))
    return "".join(parts)


def segments_to_text(segments: Iterable[Segment]) -> str:
    """Plain-text form, with emotes shown as their codes."""
    return "".join(
        s.emote.code if isinstance(s, EmoteSegment) else s.text for s in segments
    )
