"""Tests for outbound emote parsing and inbound rendering."""

import asyncio

from livechat.chat.models import Emote, EmoteSegment, TextSegment
from livechat.chat.pipeline import MessagePipeline


def test_parse_outbound_in_scope(catalog, recent, smile):
    pipeline = MessagePipeline(catalog, recent)
    parsed = pipeline.parse_outbound("hello :smile: world", [smile])

    assert parsed.text == "hello <emote:e1> world"
    assert parsed.emote_ids == ["e1"]
    assert [e.id for e in recent.get()] == ["e1"]


def test_parse_outbound_unknown_trigger(catalog, recent):
    pipeline = MessagePipeline(catalog, recent)
    parsed = pipeline.parse_outbound("see :unknown_xyz:", [])

    assert parsed.text == "see :unknown_xyz:"
    assert parsed.emotes == ()
    assert recent.get() == []


def test_parse_outbound_case_insensitive(catalog, recent, smile):
    pipeline = MessagePipeline(catalog, recent)
    parsed = pipeline.parse_outbound(":SMILE:", [smile])
    assert parsed.text == "<emote:e1>"


def test_parse_outbound_falls_back_to_catalog(catalog, recent):
    asyncio.run(catalog.get_all("chan1"))
    pipeline = MessagePipeline(catalog, recent)

    parsed = pipeline.parse_outbound("hi :wave:", [])
    assert parsed.text == "hi <emote:e2>"
    assert parsed.emote_ids == ["e2"]


def test_in_scope_list_beats_catalog(catalog, recent):
    asyncio.run(catalog.get_all(None))
    local = Emote(id="local", code=":smile:")
    pipeline = MessagePipeline(catalog, recent)

    assert pipeline.parse_outbound(":smile:", [local]).emote_ids == ["local"]


def test_parse_outbound_pushes_each_used_emote(catalog, recent, smile, wave):
    pipeline = MessagePipeline(catalog, recent)
    pipeline.parse_outbound(":smile: :wave: :smile:", [smile, wave])
    assert [e.id for e in recent.get()] == ["e2", "e1"]


def test_prepare_inbound_uses_message_emotes(catalog, recent, smile):
    pipeline = MessagePipeline(catalog, recent)
    segments = pipeline.prepare_inbound("hi <emote:e1>!", [smile])
    assert segments == [TextSegment("hi "), EmoteSegment(smile), TextSegment("!")]


def test_prepare_inbound_falls_back_to_catalog(catalog, recent, wave):
    asyncio.run(catalog.get_all("chan1"))
    pipeline = MessagePipeline(catalog, recent)
    assert pipeline.prepare_inbound("<emote:e2>", []) == [EmoteSegment(wave)]


def test_prepare_inbound_keeps_unknown_placeholder(catalog, recent):
    pipeline = MessagePipeline(catalog, recent)
    segments = pipeline.prepare_inbound("a <emote:nope> b", [])
    assert segments == [TextSegment("a <emote:nope> b")]


def test_prepare_inbound_empty(catalog, recent):
    assert MessagePipeline(catalog, recent).prepare_inbound("", []) == []


def test_render_text_shows_codes(catalog, recent, smile):
    pipeline = MessagePipeline(catalog, recent)
    assert pipeline.render_text("hi <emote:e1>", [smile]) == "hi :smile:"
