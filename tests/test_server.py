"""Memoria MCP server tests -- registry consistency and handler flows."""
import json

import pytest
import pytest_asyncio

from memoria.server.handlers import HANDLERS, _clamp_int
from memoria.server.tool_schemas import TOOL_SCHEMAS
from memoria.service import get_service, reset_service


# ============================================================================
# Schema / Registry Tests
# ============================================================================

def test_all_tools_have_handlers():
    for schema in TOOL_SCHEMAS:
        assert schema["name"] in HANDLERS, f"Missing handler for {schema['name']}"


def test_tool_schemas_valid():
    for schema in TOOL_SCHEMAS:
        assert schema["description"]
        assert schema["inputSchema"]["type"] == "object"
        for required in schema["inputSchema"].get("required", []):
            assert required in schema["inputSchema"]["properties"]


def test_handler_count():
    assert {s["name"] for s in TOOL_SCHEMAS} == set(HANDLERS)
    assert len(TOOL_SCHEMAS) == 18


def test_clamp_int():
    assert _clamp_int("5", 10) == 5
    assert _clamp_int(0, 10) == 1
    assert _clamp_int(10_000, 10) == 1000
    assert _clamp_int("lots", 10) == 10


# ============================================================================
# Fixture: fresh service singleton per test
# ============================================================================

@pytest_asyncio.fixture(autouse=True)
async def _fresh_service(tmp_memoria_home):
    await reset_service()
    yield
    await reset_service()


def _payload(result):
    return json.loads(result["content"][0]["text"])


async def _call(name, **arguments):
    result = await HANDLERS[name](arguments)
    assert not result.get("isError"), result
    body = _payload(result)
    assert body["status"] == "ok"
    return body


async def _call_error(name, **arguments):
    result = await HANDLERS[name](arguments)
    assert result.get("isError") is True
    body = _payload(result)
    assert body["status"] == "error"
    return body


# ============================================================================
# Session
# ============================================================================

@pytest.mark.asyncio
async def test_banner_on_empty_store():
    body = await _call("generateBanner")
    assert body["memory_count"] == 0
    assert body["last_accessed"] == "Never"
    assert "Total Memories: 0" in body["formatted_banner"]


@pytest.mark.asyncio
async def test_check_health():
    await _call("storeUserMessage", content="hello")
    body = await _call("checkHealth")
    assert body["message_count"] == 1
    assert body["mode"] == "persistent"


@pytest.mark.asyncio
async def test_init_and_end_conversation():
    init = await _call("initConversation", content="help me fix this python bug")
    assert init["internal"]["messageStored"] is True
    assert init["display"]["banner"]["memory_count"] == 1
    assert set(init["internal"]["context"]) >= {"shortTerm", "longTerm", "episodic", "semantic", "system"}

    end = await _call(
        "endConversation",
        content="Fixed the off-by-one in the tokenizer",
        milestone_title="Tokenizer fix",
        milestone_description="Off-by-one in line counting",
    )
    results = end["results"]
    assert results["milestone"]["title"] == "Tokenizer fix"
    assert results["episode"]["action"] == "completion"

    episodes = (await _call("getRecentEpisodes", context="conversation"))["episodes"]
    assert [e["content"] for e in episodes] == ["Completed: Tokenizer fix"]


@pytest.mark.asyncio
async def test_missing_required_arguments():
    body = await _call_error("initConversation")
    assert body["error"] == "content required"
    body = await _call_error("endConversation", content="done")
    assert body["error"] == "milestone_title required"


# ============================================================================
# Records
# ============================================================================

@pytest.mark.asyncio
async def test_messages_round_trip():
    first = await _call("storeUserMessage", content="first", importance="high")
    await _call("storeAssistantMessage", content="second")
    messages = (await _call("getRecentMessages", limit=10))["messages"]
    assert [m["content"] for m in messages] == ["second", "first"]
    assert messages[0]["role"] == "assistant"

    high = (await _call("getRecentMessages", importance="high"))["messages"]
    assert [m["id"] for m in high] == [first["id"]]


@pytest.mark.asyncio
async def test_invalid_importance_is_an_error():
    body = await _call_error("storeUserMessage", content="x", importance="urgent")
    assert "importance" in body["error"]


@pytest.mark.asyncio
async def test_track_active_file(tmp_path):
    path = tmp_path / "app.py"
    path.write_text("def main():\n    return 0\n")
    await _call("trackActiveFile", filename=str(path), action="open")
    await _call("trackActiveFile", filename=str(path), action="edit")

    service = await get_service()
    await service.drain()
    files = (await _call("getActiveFiles"))["files"]
    assert len(files) == 1
    assert files[0]["last_action"] == "edit"
    assert files[0]["code_file_id"] is not None

    stats = (await _call("getMemoryStats"))["stats"]
    assert stats["fingerprintsByType"]["code_file"] == 1
    assert stats["fingerprintsByType"]["code_snippet"] == 1


@pytest.mark.asyncio
async def test_long_term_records_and_context():
    await _call("storeMilestone", title="v1 shipped", importance="high")
    await _call("storeDecision", title="use sqlite", content="single file", reasoning="no server")
    await _call("storeRequirement", title="offline", content="must work offline")
    await _call("recordEpisode", actor="user", action="ran", content="make test")
    service = await get_service()
    await service.drain()

    context = (await _call("getComprehensiveContext"))["context"]
    assert [m["title"] for m in context["longTerm"]["milestones"]] == ["v1 shipped"]
    assert [d["title"] for d in context["longTerm"]["decisions"]] == ["use sqlite"]
    assert [r["title"] for r in context["longTerm"]["requirements"]] == ["offline"]
    assert context["semantic"] == {}

    ranked = (await _call("getComprehensiveContext", query="use sqlite\nsingle file\nno server"))["context"]
    assert ranked["longTerm"]["decisions"][0]["relevance"] == pytest.approx(1.0, abs=1e-5)


@pytest.mark.asyncio
async def test_record_episode_requires_fields():
    body = await _call_error("recordEpisode", actor="user", content="x")
    assert body["error"] == "action required"


# ============================================================================
# Vectors
# ============================================================================

@pytest.mark.asyncio
async def test_manage_vector_lifecycle():
    stored = (await _call(
        "manageVector", operation="store", contentId=1, contentType="custom", vector=[1.0, 0.0, 0.0]
    ))["result"]
    assert stored["dimensions"] == 3
    vector_id = stored["id"]

    hits = (await _call("manageVector", operation="search", vector=[1.0, 0.1, 0.0], threshold=0.5))["result"]
    assert [h["id"] for h in hits] == [vector_id]
    assert hits[0]["contentType"] == "custom"

    updated = (await _call(
        "manageVector", operation="update", vectorId=vector_id, vector=[0.0, 1.0, 0.0]
    ))["result"]
    assert updated["id"] == vector_id

    hits = (await _call("manageVector", operation="search", vector=[1.0, 0.1, 0.0], threshold=0.5))["result"]
    assert hits == []

    deleted = (await _call("manageVector", operation="delete", vectorId=vector_id))["result"]
    assert deleted == {"id": vector_id, "deleted": True}

    body = await _call_error("manageVector", operation="delete", vectorId=vector_id)
    assert body["error"] == f"Vector with ID {vector_id} not found"


@pytest.mark.asyncio
async def test_manage_vector_validation():
    body = await _call_error("manageVector", operation="explode")
    assert "operation must be one of" in body["error"]
    body = await _call_error("manageVector", operation="store", contentType="custom", vector=[1.0])
    assert "required for store" in body["error"]
    body = await _call_error("manageVector", operation="search")
    assert body["error"] == "vector is required for search operation"
    body = await _call_error("manageVector", operation="update", vectorId=999, vector=[1.0])
    assert body["error"] == "Vector with ID 999 not found"


# ============================================================================
# Maintenance
# ============================================================================

@pytest.mark.asyncio
async def test_run_maintenance():
    await _call("manageVector", operation="store", contentId=404, contentType="milestone", vector=[0.5] * 128)
    results = (await _call("runMaintenance", forceRebuild=True))["results"]
    assert results["orphansRemoved"] == 1
    assert results["indexesRebuilt"] is True
    assert results["errors"] == []


@pytest.mark.asyncio
async def test_run_maintenance_string_flags():
    await _call("manageVector", operation="store", contentId=404, contentType="milestone", vector=[0.5] * 128)
    results = (await _call("runMaintenance", cleanOrphans="false"))["results"]
    assert results["orphansRemoved"] == 0
    results = (await _call("runMaintenance", cleanOrphans="true"))["results"]
    assert results["orphansRemoved"] == 1


@pytest.mark.asyncio
async def test_run_maintenance_rejects_unknown_flag_value():
    body = await _call_error("runMaintenance", forceRebuild="maybe")
    assert body["error"] == "expected a boolean, got 'maybe'"
