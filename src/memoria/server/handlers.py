"""
Memoria MCP Handlers -- Maps tool names to async handler functions.

Each handler delegates to the MemoryService singleton and returns an
MCP-compatible response dict whose single text block is a JSON document:
``{"status": "ok", ...}`` on success, ``{"status": "error", "error": ...}``
with ``isError`` set on failure.
"""

import json
import logging
from typing import Any, Dict, Optional

from memoria.errors import MemoriaError, NotFound
from memoria.service import BANNER_UNAVAILABLE, get_service

logger = logging.getLogger("memoria.server.handlers")


def _clamp_int(value, default: int, min_val: int = 1, max_val: int = 1000) -> int:
    """Clamp a numeric argument to safe bounds."""
    try:
        v = int(value)
        return max(min_val, min(v, max_val))
    except (TypeError, ValueError):
        return default


def _optional_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"threshold must be a number, got {value!r}") from None


def _flag(value, default: bool) -> bool:
    """Read a boolean argument; JSON clients sometimes send "true"/"false" strings."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    if isinstance(value, int):
        return value != 0
    raise ValueError(f"expected a boolean, got {value!r}")


# ============================================================================
# Response Helpers
# ============================================================================


def mcp_response(payload: Dict[str, Any]) -> dict:
    """Build a successful MCP response."""
    body = {"status": "ok", **payload}
    return {"content": [{"type": "text", "text": json.dumps(body, default=str)}]}


def mcp_error(text: str, **extra: Any) -> dict:
    """Build an error MCP response."""
    body = {"status": "error", "error": str(text), **extra}
    return {"content": [{"type": "text", "text": json.dumps(body, default=str)}], "isError": True}


def _required(arguments: dict, *names: str) -> Optional[str]:
    missing = [n for n in names if not str(arguments.get(n) or "").strip()]
    return f"{', '.join(missing)} required" if missing else None


# ============================================================================
# Session
# ============================================================================


async def handle_generate_banner(arguments: dict) -> dict:
    try:
        service = await get_service()
        return mcp_response(await service.banner())
    except Exception as e:
        logger.error("generateBanner failed: %s", e)
        return mcp_error(e, formatted_banner=BANNER_UNAVAILABLE)


async def handle_check_health(arguments: dict) -> dict:
    try:
        service = await get_service()
        return mcp_response(await service.health())
    except Exception as e:
        logger.error("checkHealth failed: %s", e)
        return mcp_error(f"Health check failed: {e}")


async def handle_init_conversation(arguments: dict) -> dict:
    err = _required(arguments, "content")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        result = await service.init_conversation(
            arguments["content"],
            importance=arguments.get("importance", "low"),
            metadata=arguments.get("metadata"),
        )
        return mcp_response(result)
    except Exception as e:
        logger.error("initConversation failed: %s", e)
        return mcp_error(e, display={"banner": {"formatted_banner": BANNER_UNAVAILABLE}})


async def handle_end_conversation(arguments: dict) -> dict:
    err = _required(arguments, "content", "milestone_title")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        results = await service.end_conversation(
            arguments["content"],
            arguments["milestone_title"],
            arguments.get("milestone_description"),
            importance=arguments.get("importance", "medium"),
            metadata=arguments.get("metadata"),
        )
        return mcp_response({"results": results})
    except Exception as e:
        logger.error("endConversation failed: %s", e)
        return mcp_error(e)


# ============================================================================
# Records
# ============================================================================


async def _store_message(role: str, arguments: dict) -> dict:
    err = _required(arguments, "content")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        message_id = await service.store_message(
            role,
            arguments["content"],
            importance=arguments.get("importance", "low"),
            metadata=arguments.get("metadata"),
        )
        return mcp_response({"id": message_id, "role": role})
    except Exception as e:
        logger.error("store %s message failed: %s", role, e)
        return mcp_error(e)


async def handle_store_user_message(arguments: dict) -> dict:
    return await _store_message("user", arguments)


async def handle_store_assistant_message(arguments: dict) -> dict:
    return await _store_message("assistant", arguments)


async def handle_track_active_file(arguments: dict) -> dict:
    err = _required(arguments, "filename", "action")
    if err:
        return mcp_error(err)
    filename = arguments["filename"]
    action = arguments["action"]
    try:
        service = await get_service()
        file_id = await service.track_file(filename, action, arguments.get("metadata"))
        return mcp_response({"id": file_id, "filename": filename, "action": action})
    except Exception as e:
        logger.error("trackActiveFile %s failed: %s", filename, e)
        return mcp_error(e)


async def handle_get_recent_messages(arguments: dict) -> dict:
    limit = _clamp_int(arguments.get("limit", 10), default=10)
    try:
        service = await get_service()
        messages = await service.recent_messages(limit, arguments.get("importance"))
        return mcp_response({"messages": messages})
    except Exception as e:
        logger.error("getRecentMessages failed: %s", e)
        return mcp_error(e)


async def handle_get_active_files(arguments: dict) -> dict:
    limit = _clamp_int(arguments.get("limit", 10), default=10)
    try:
        service = await get_service()
        return mcp_response({"files": await service.active_files(limit)})
    except Exception as e:
        logger.error("getActiveFiles failed: %s", e)
        return mcp_error(e)


async def handle_store_milestone(arguments: dict) -> dict:
    err = _required(arguments, "title")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        milestone_id = await service.store_milestone(
            arguments["title"],
            arguments.get("description"),
            importance=arguments.get("importance", "medium"),
            metadata=arguments.get("metadata"),
        )
        return mcp_response({"id": milestone_id, "title": arguments["title"]})
    except Exception as e:
        logger.error("storeMilestone failed: %s", e)
        return mcp_error(e)


async def handle_store_decision(arguments: dict) -> dict:
    err = _required(arguments, "title", "content")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        decision_id = await service.store_decision(
            arguments["title"],
            arguments["content"],
            reasoning=arguments.get("reasoning"),
            importance=arguments.get("importance", "medium"),
            metadata=arguments.get("metadata"),
        )
        return mcp_response({"id": decision_id, "title": arguments["title"]})
    except Exception as e:
        logger.error("storeDecision failed: %s", e)
        return mcp_error(e)


async def handle_store_requirement(arguments: dict) -> dict:
    err = _required(arguments, "title", "content")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        requirement_id = await service.store_requirement(
            arguments["title"],
            arguments["content"],
            importance=arguments.get("importance", "medium"),
            metadata=arguments.get("metadata"),
        )
        return mcp_response({"id": requirement_id, "title": arguments["title"]})
    except Exception as e:
        logger.error("storeRequirement failed: %s", e)
        return mcp_error(e)


async def handle_record_episode(arguments: dict) -> dict:
    err = _required(arguments, "actor", "action", "content")
    if err:
        return mcp_error(err)
    try:
        service = await get_service()
        episode_id = await service.record_episode(
            arguments["actor"],
            arguments["action"],
            arguments["content"],
            importance=arguments.get("importance", "low"),
            context=arguments.get("context"),
        )
        return mcp_response({"id": episode_id, "actor": arguments["actor"], "action": arguments["action"]})
    except Exception as e:
        logger.error("recordEpisode failed: %s", e)
        return mcp_error(e)


async def handle_get_recent_episodes(arguments: dict) -> dict:
    limit = _clamp_int(arguments.get("limit", 10), default=10)
    try:
        service = await get_service()
        episodes = await service.recent_episodes(limit, arguments.get("context"))
        return mcp_response({"episodes": episodes})
    except Exception as e:
        logger.error("getRecentEpisodes failed: %s", e)
        return mcp_error(e)


# ============================================================================
# Retrieval
# ============================================================================


async def handle_get_comprehensive_context(arguments: dict) -> dict:
    """Partition failures are reported inside the snapshot, not as a tool error."""
    query = (arguments.get("query") or "").strip() or None
    try:
        service = await get_service()
        return mcp_response({"context": await service.context(query)})
    except Exception as e:
        logger.error("getComprehensiveContext failed: %s", e)
        return mcp_error(e)


async def handle_get_memory_stats(arguments: dict) -> dict:
    try:
        service = await get_service()
        return mcp_response({"stats": await service.stats()})
    except Exception as e:
        logger.error("getMemoryStats failed: %s", e)
        return mcp_error(e)


# ============================================================================
# Vectors
# ============================================================================


async def handle_manage_vector(arguments: dict) -> dict:
    operation = arguments.get("operation")
    if operation not in ("store", "search", "update", "delete"):
        return mcp_error(f"operation must be one of store, search, update, delete, got {operation!r}")

    try:
        service = await get_service()
        if operation == "store":
            if arguments.get("contentId") is None or not arguments.get("contentType") or not arguments.get("vector"):
                return mcp_error("contentId, contentType, and vector are required for store operation")
            result = await service.store_vector(
                int(arguments["contentId"]),
                arguments["contentType"],
                arguments["vector"],
                arguments.get("metadata"),
            )
        elif operation == "search":
            if not arguments.get("vector"):
                return mcp_error("vector is required for search operation")
            result = await service.search_vectors(
                arguments["vector"],
                content_type=arguments.get("contentType"),
                limit=_clamp_int(arguments.get("limit", 10), default=10),
                threshold=_optional_float(arguments.get("threshold")),
            )
        elif operation == "update":
            if arguments.get("vectorId") is None or not arguments.get("vector"):
                return mcp_error("vectorId and vector are required for update operation")
            result = await service.update_vector(
                int(arguments["vectorId"]), arguments["vector"], arguments.get("metadata")
            )
        else:
            if arguments.get("vectorId") is None:
                return mcp_error("vectorId is required for delete operation")
            result = await service.delete_vector(int(arguments["vectorId"]))
        return mcp_response({"operation": operation, "result": result})
    except NotFound as e:
        return mcp_error(e)
    except (MemoriaError, ValueError, TypeError) as e:
        logger.warning("manageVector %s rejected: %s", operation, e)
        return mcp_error(e)
    except Exception as e:
        logger.error("manageVector %s failed: %s", operation, e)
        return mcp_error(e)


async def handle_run_maintenance(arguments: dict) -> dict:
    try:
        flags = dict(
            force_rebuild=_flag(arguments.get("forceRebuild"), False),
            clean_orphans=_flag(arguments.get("cleanOrphans"), True),
            optimize_storage=_flag(arguments.get("optimizeStorage"), True),
        )
    except ValueError as e:
        logger.warning("runMaintenance rejected: %s", e)
        return mcp_error(e)
    try:
        service = await get_service()
        report = await service.run_maintenance(**flags)
        return mcp_response({"results": report.to_dict()})
    except Exception as e:
        logger.error("runMaintenance failed: %s", e)
        return mcp_error(e)


# ============================================================================
# Handler Registry
# ============================================================================

HANDLERS: Dict[str, Any] = {
    "generateBanner": handle_generate_banner,
    "checkHealth": handle_check_health,
    "initConversation": handle_init_conversation,
    "endConversation": handle_end_conversation,
    "storeUserMessage": handle_store_user_message,
    "storeAssistantMessage": handle_store_assistant_message,
    "trackActiveFile": handle_track_active_file,
    "getRecentMessages": handle_get_recent_messages,
    "getActiveFiles": handle_get_active_files,
    "storeMilestone": handle_store_milestone,
    "storeDecision": handle_store_decision,
    "storeRequirement": handle_store_requirement,
    "recordEpisode": handle_record_episode,
    "getRecentEpisodes": handle_get_recent_episodes,
    "getComprehensiveContext": handle_get_comprehensive_context,
    "getMemoryStats": handle_get_memory_stats,
    "manageVector": handle_manage_vector,
    "runMaintenance": handle_run_maintenance,
}
