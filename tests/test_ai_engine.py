import pytest

from novah import ai_engine
from novah.ai_engine import (
    clean_and_parse_json,
    complete,
    complete_and_parse,
    parse_or_fallback,
)
from novah.core.config import settings
from novah.core.exceptions import MalformedUpstreamOutput, UpstreamFailure
from novah.schemas.mindmap import ChunkTreeNode
from tests.helpers.fake_llm import FailingLLM, ScriptedLLM


def test_clean_and_parse_json_strips_code_fences():
    raw = '```json\n{"title": "Solar"}\n```'
    assert clean_and_parse_json(raw) == {"title": "Solar"}


def test_clean_and_parse_json_finds_object_after_preamble():
    raw = 'Sure! Here is the tree: {"title": "Wind", "children": []} Hope it helps.'
    assert clean_and_parse_json(raw)["title"] == "Wind"


def test_clean_and_parse_json_accepts_arrays():
    assert clean_and_parse_json('[{"query": "a"}]') == [{"query": "a"}]


@pytest.mark.parametrize("raw", ["", "   ", "not json at all", '{"title": '])
def test_clean_and_parse_json_rejects_garbage(raw):
    with pytest.raises(MalformedUpstreamOutput):
        clean_and_parse_json(raw)


def test_parse_or_fallback_returns_fallback_on_validation_error():
    result = parse_or_fallback(
        '{"title": ""}',
        ChunkTreeNode.model_validate,
        lambda: ChunkTreeNode(title="fallback"),
        label="TEST",
    )
    assert result.title == "fallback"


def test_parse_or_fallback_returns_validated_value():
    result = parse_or_fallback(
        '{"title": "Grid storage", "keywords": "battery, pumped hydro"}',
        ChunkTreeNode.model_validate,
        lambda: None,
    )
    assert result.title == "Grid storage"
    assert result.keywords == ["battery", "pumped hydro"]


@pytest.mark.asyncio
async def test_complete_and_parse_falls_back_when_call_raises():
    llm = FailingLLM()
    result = await complete_and_parse(llm, "prompt", ChunkTreeNode.model_validate, lambda: "fallback")
    assert result == "fallback"
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_complete_and_parse_forwards_keyword_arguments():
    llm = ScriptedLLM([{"title": "ok"}])
    await complete_and_parse(
        llm, "prompt", ChunkTreeNode.model_validate, lambda: None, json_mode=False,
    )
    assert llm.calls[0].kwargs == {"json_mode": False}


@pytest.mark.asyncio
async def test_complete_raises_upstream_failure_without_providers(monkeypatch):
    monkeypatch.setattr(settings, "AI_PROVIDER", "hybrid")
    monkeypatch.setattr(settings, "GOOGLE_API_KEY", None)
    monkeypatch.setattr(ai_engine, "groq_client", None)

    with pytest.raises(UpstreamFailure):
        await complete("anything")
