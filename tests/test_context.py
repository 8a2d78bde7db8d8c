"""Context snapshot assembly across every memory partition."""
import pytest

from memoria.context import group_snippets_by_file, iso


class TestHelpers:
    def test_iso(self):
        assert iso(0) == "1970-01-01T00:00:00.000Z"
        assert iso(None) is None

    def test_group_snippets_by_file(self):
        groups = group_snippets_by_file([
            {"file_path": "a.py", "similarity": 0.7},
            {"file_path": "b.py", "similarity": 0.9},
            {"file_path": "a.py", "similarity": 0.8},
        ])
        assert [g["file_path"] for g in groups] == ["b.py", "a.py"]
        assert groups[1]["relevance"] == 0.8
        assert len(groups[1]["snippets"]) == 2


class TestSnapshotWithoutQuery:
    @pytest.mark.asyncio
    async def test_empty_store(self, service):
        snapshot = await service.context()
        assert snapshot["shortTerm"] == {"recentMessages": [], "activeFiles": []}
        assert snapshot["longTerm"] == {"milestones": [], "decisions": [], "requirements": []}
        assert snapshot["episodic"] == {"recentEpisodes": []}
        assert snapshot["semantic"] == {}
        assert snapshot["system"]["healthy"] is True
        assert snapshot["system"]["mode"] == "persistent"
        assert "error" not in snapshot

    @pytest.mark.asyncio
    async def test_keeps_newest_five_messages(self, service):
        for i in range(1, 21):
            await service.store_message("user", f"message number {i}")
        await service.drain()

        messages = (await service.context())["shortTerm"]["recentMessages"]
        assert [m["id"] for m in messages] == [20, 19, 18, 17, 16]
        assert all(m["relevance"] is None for m in messages)
        assert messages[0]["created_at"].endswith("Z")

    @pytest.mark.asyncio
    async def test_long_term_skips_low_importance(self, service):
        await service.store_milestone("minor tidy", importance="low")
        await service.store_milestone("shipped v1", importance="high")
        await service.store_decision("use sqlite", "one file, no server", importance="medium")
        await service.store_requirement("py3.9+", "support 3.9", importance="critical")
        await service.drain()

        long_term = (await service.context())["longTerm"]
        assert [m["title"] for m in long_term["milestones"]] == ["shipped v1"]
        assert [d["title"] for d in long_term["decisions"]] == ["use sqlite"]
        assert [r["title"] for r in long_term["requirements"]] == ["py3.9+"]

    @pytest.mark.asyncio
    async def test_episodes_include_tracking_entries(self, service):
        await service.track_file("/nonexistent/notes.txt", "close")
        await service.record_episode("user", "ran", "pytest -q", context="terminal")
        episodes = (await service.context())["episodic"]["recentEpisodes"]
        assert [e["action"] for e in episodes] == ["ran", "close"]
        assert episodes[1]["context"] == "file-tracking"

    @pytest.mark.asyncio
    async def test_partition_failure_is_contained(self, service, monkeypatch):
        async def broken(limit):
            raise RuntimeError("decisions table is locked")

        monkeypatch.setattr(service.records, "recent_decisions", broken)
        await service.store_milestone("still here", importance="high")
        snapshot = await service.context()
        assert snapshot["longTerm"]["decisions"] == {"error": "decisions table is locked"}
        assert [m["title"] for m in snapshot["longTerm"]["milestones"]] == ["still here"]
        assert snapshot["shortTerm"]["recentMessages"] == []


class TestSnapshotWithQuery:
    @pytest.mark.asyncio
    async def test_matching_message_ranks_first(self, service):
        await service.store_message("user", "what's for lunch today")
        target = await service.store_message("user", "how do I rotate the api key")
        await service.store_message("assistant", "quarterly numbers look fine")
        await service.drain()

        snapshot = await service.context("how do I rotate the api key")
        messages = snapshot["shortTerm"]["recentMessages"]
        assert messages[0]["id"] == target
        assert messages[0]["relevance"] == pytest.approx(1.0, abs=1e-5)
        relevances = [m["relevance"] for m in messages]
        assert relevances == sorted(relevances, reverse=True)
        assert all(r >= service.config.relevance_threshold for r in relevances)

        similar = snapshot["semantic"]["similarMessages"]
        assert similar[0]["id"] == target
        assert similar[0]["content"] == "how do I rotate the api key"
        assert similar[0]["type"] == "user_message"
        assert len(similar) <= 3

    @pytest.mark.asyncio
    async def test_semantic_partition_shape(self, service):
        await service.store_milestone("parser rewrite", "recursive descent", importance="high")
        await service.drain()
        snapshot = await service.context("parser rewrite\nrecursive descent")
        assert set(snapshot["semantic"]) == {"similarMessages", "similarFiles", "similarSnippets"}
        milestones = snapshot["longTerm"]["milestones"]
        assert milestones[0]["title"] == "parser rewrite"
        assert milestones[0]["relevance"] == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_unfingerprinted_rows_are_dropped(self, service):
        await service.records.add_message("user", "inserted without a fingerprint")
        snapshot = await service.context("inserted without a fingerprint")
        assert snapshot["shortTerm"]["recentMessages"] == []

    @pytest.mark.asyncio
    async def test_semantic_failure_is_contained(self, service, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("search offline")

        monkeypatch.setattr(service.search, "search", broken)
        snapshot = await service.context("anything")
        assert snapshot["semantic"]["similarMessages"] == {"error": "search offline"}
        assert snapshot["semantic"]["similarFiles"] == {"error": "search offline"}
        assert snapshot["semantic"]["similarSnippets"] == {"error": "search offline"}
        assert snapshot["shortTerm"]["recentMessages"] == []
