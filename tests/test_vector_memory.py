"""Tests for VectorMemory (long-term tier) — exhaustive cosine search + JSON snapshots."""

import json
import os
import random
import stat
import sys
from unittest.mock import patch

import pytest

from tiered_memory.errors import (
    EmbedderUnavailableError,
    EmbeddingTransportError,
    EntryNotFoundError,
    PersistenceError,
)
from tiered_memory.models import MemoryTier, VectorMetadata
from tiered_memory.vector_memory import VectorMemory


@pytest.fixture
def memory():
    return VectorMemory()


class TestAdd:
    """Test insertion and id generation."""

    def test_generates_id(self, memory):
        entry_id = memory.add([1.0, 0.0], content="hello")
        assert entry_id.startswith("vec_0_")
        assert memory.count() == 1

    def test_keeps_supplied_id(self, memory):
        entry_id = memory.add([1.0], VectorMetadata(id="custom", content="x"))
        assert entry_id == "custom"
        assert memory.get("custom").content == "x"

    def test_does_not_mutate_caller_metadata(self, memory):
        meta = VectorMetadata(content="x")
        memory.add([1.0], meta)
        assert meta.id == ""

    def test_sets_timestamp(self, memory):
        entry_id = memory.add([1.0], content="x")
        assert memory.get(entry_id).metadata.timestamp > 0

    def test_generated_ids_never_reused(self, memory):
        with patch("tiered_memory.vector_memory.time.time_ns", return_value=1000):
            a = memory.add([1.0], content="A")
            b = memory.add([1.0], content="B")
            memory.delete(a)
            c = memory.add([1.0], content="C")

        assert len({a, b, c}) == 3
        assert memory.count() == 2
        assert memory.get(b).content == "B"

    def test_no_duplicate_detection(self, memory):
        memory.add([1.0], content="same")
        memory.add([1.0], content="same")
        assert memory.count() == 2

    def test_add_entry(self, memory, make_entry):
        entry = make_entry("remember me", tier=MemoryTier.LONG, metadata={"session": "s1", "tags": ["a"]})
        memory.add_entry(entry, [0.0, 1.0])

        record = memory.get(entry.id)
        assert record.vector == [0.0, 1.0]
        assert record.metadata.tags == ["a"]
        assert record.metadata.custom == {"session": "s1"}

    def test_add_entry_without_vector(self, memory, make_entry):
        entry = make_entry("no vector", tier=MemoryTier.LONG)
        memory.add_entry(entry)
        assert memory.get(entry.id).vector is None
        assert memory.count() == 1


class TestSearch:
    """Test similarity ranking."""

    def test_exact_match_scenario(self, memory):
        """[1,0,0] and [0,1,0] stored; query [1,0,0] limit 1 -> first with score 1.0."""
        first = memory.add([1.0, 0.0, 0.0], content="first")
        memory.add([0.0, 1.0, 0.0], content="second")

        results = memory.search([1.0, 0.0, 0.0], limit=1)

        assert len(results) == 1
        assert results[0].id == first
        assert results[0].score == pytest.approx(1.0)

    def test_sorted_descending_and_bounded(self, memory):
        rng = random.Random(42)
        for i in range(30):
            memory.add([rng.uniform(-1, 1) for _ in range(4)], content=str(i))

        query = [0.3, -0.2, 0.9, 0.1]
        for limit in (1, 5, 30, 100):
            results = memory.search(query, limit)
            scores = [r.score for r in results]
            assert scores == sorted(scores, reverse=True)
            assert len(results) <= limit
            assert len(results) <= memory.count()

    def test_empty_store(self, memory):
        assert memory.search([1.0, 0.0]) == []

    def test_empty_query(self, memory):
        memory.add([1.0], content="x")
        assert memory.search([]) == []

    def test_non_positive_limit_defaults(self, memory):
        for i in range(12):
            memory.add([1.0, float(i)], content=str(i))
        assert len(memory.search([1.0, 0.0], limit=0)) == 10

    def test_mixed_dimensions_score_zero(self, memory):
        memory.add([1.0, 0.0], content="2d")
        memory.add([1.0, 0.0, 0.0], content="3d")

        results = memory.search([1.0, 0.0, 0.0])

        assert results[0].content == "3d"
        assert results[1].score == 0.0

    def test_vectorless_entries_not_candidates(self, memory):
        memory.add(None, content="unsearchable")
        memory.add([1.0, 0.0], content="searchable")

        results = memory.search([1.0, 0.0])

        assert [r.content for r in results] == ["searchable"]
        assert memory.count() == 2

    def test_numpy_query(self, memory):
        np = pytest.importorskip("numpy")
        memory.add([1.0, 0.0], content="x")

        assert memory.search(np.array([1.0, 0.0]))[0].score == pytest.approx(1.0)
        assert memory.search(np.array([])) == []

    def test_negative_scores(self, memory):
        memory.add([-1.0, 0.0], content="opposite")
        assert memory.search([1.0, 0.0])[0].score == pytest.approx(-1.0)


class TestTextOperations:
    """add_text / search_text need an embedder."""

    def test_add_text_without_embedder(self, memory):
        with pytest.raises(EmbedderUnavailableError):
            memory.add_text("hello")

    def test_search_text_without_embedder(self, memory):
        with pytest.raises(EmbedderUnavailableError):
            memory.search_text("hello")

    def test_add_and_search_text(self, embedder):
        memory = VectorMemory(embedder)
        memory.add_text("dentist appointment", tags=["health"], custom={"source": "chat"})
        memory.add_text("coffee order", tags=["food"])

        results = memory.search_text("dentist", limit=1)

        assert results[0].content == "dentist appointment"
        assert results[0].metadata.tags == ["health"]
        assert results[0].metadata.custom == {"source": "chat"}

    def test_transport_error_propagates(self, failing_embedder):
        memory = VectorMemory(failing_embedder)
        with pytest.raises(EmbeddingTransportError):
            memory.add_text("hello")
        assert memory.count() == 0

    def test_unexpected_embedder_error_wrapped(self):
        class Broken:
            def embed(self, text):
                raise RuntimeError("boom")

        memory = VectorMemory(Broken())
        with pytest.raises(EmbeddingTransportError, match="boom"):
            memory.search_text("hello")


class TestLookup:
    """get / delete / list / count."""

    def test_get_unknown(self, memory):
        with pytest.raises(EntryNotFoundError) as exc:
            memory.get("missing")
        assert exc.value.id == "missing"

    def test_not_found_is_key_error(self, memory):
        with pytest.raises(KeyError):
            memory.get("missing")

    def test_delete_removes_vector_too(self, memory):
        entry_id = memory.add([1.0, 0.0], content="gone")
        memory.delete(entry_id)

        assert memory.count() == 0
        assert memory.search([1.0, 0.0]) == []
        with pytest.raises(EntryNotFoundError):
            memory.get(entry_id)

    def test_delete_unknown(self, memory):
        with pytest.raises(EntryNotFoundError):
            memory.delete("missing")

    def test_list_pagination(self, memory):
        ids = [memory.add([float(i)], content=str(i)) for i in range(7)]

        assert [e.id for e in memory.list(3, 0)] == ids[:3]
        assert [e.id for e in memory.list(3, 3)] == ids[3:6]
        assert [e.id for e in memory.list(3, 6)] == ids[6:]
        assert memory.list(3, 10) == []

    def test_get_entry_projection(self, memory, make_entry):
        entry = make_entry("projected", tier=MemoryTier.SHORT, metadata={"session": "s1"})
        memory.add_entry(entry, [1.0])

        projected = memory.get_entry(entry.id)

        assert projected.tier is MemoryTier.LONG
        assert projected.content == "projected"
        assert projected.metadata == {"session": "s1"}
        assert projected.embedding == [1.0]

    def test_clear(self, memory):
        memory.add([1.0], content="x")
        memory.clear()
        assert memory.count() == 0
        assert len(memory) == 0


class TestPersistence:
    """save / load snapshots."""

    def test_round_trip(self, memory, tmp_path):
        memory.add([1.0, 0.0, 0.0], VectorMetadata(content="a", tags=["t1", "t2"], custom={"k": "v"}))
        memory.add([0.0, 0.5, 0.5], content="b")
        memory.add(None, content="no vector")
        path = str(tmp_path / "nested" / "dir" / "memory.json")

        memory.save(path)
        restored = VectorMemory()
        restored.load(path)

        assert sorted(restored.ids()) == sorted(memory.ids())
        for entry_id in memory.ids():
            before, after = memory.get(entry_id), restored.get(entry_id)
            assert after.vector == before.vector
            assert after.metadata == before.metadata

    def test_save_creates_parent_dirs(self, memory, tmp_path):
        path = tmp_path / "a" / "b" / "c.json"
        memory.save(str(path))
        assert path.exists()
        assert json.loads(path.read_text()) == {}

    def test_file_format(self, memory, tmp_path):
        memory.add([0.25, 0.75], VectorMetadata(id="m1", content="hello", timestamp=1700000000, tags=["x"]))
        path = tmp_path / "snap.json"
        memory.save(str(path))

        data = json.loads(path.read_text())

        assert data == {
            "m1": {
                "vector": [0.25, 0.75],
                "metadata": {
                    "id": "m1",
                    "content": "hello",
                    "timestamp": 1700000000,
                    "tags": ["x"],
                    "custom": {},
                },
            }
        }

    def test_load_missing_file(self, memory, tmp_path):
        memory.load(str(tmp_path / "does-not-exist.json"))
        assert memory.count() == 0

    def test_load_malformed_json(self, memory, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError) as exc:
            memory.load(str(path))
        assert exc.value.path == str(path)

    def test_load_invalid_utf8(self, memory, tmp_path):
        path = tmp_path / "binary.json"
        path.write_bytes(b'{"a": "\xff\xfe"}')
        with pytest.raises(PersistenceError):
            memory.load(str(path))

    def test_load_wrong_root_type(self, memory, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(PersistenceError):
            memory.load(str(path))

    def test_load_malformed_record(self, memory, tmp_path):
        path = tmp_path / "record.json"
        path.write_text(json.dumps({"x": {"vector": ["nan?"], "metadata": {}}}))
        with pytest.raises(PersistenceError):
            memory.load(str(path))

    def test_failed_load_keeps_existing(self, memory, tmp_path):
        memory.add([1.0], content="keep")
        path = tmp_path / "bad.json"
        path.write_text("garbage")
        with pytest.raises(PersistenceError):
            memory.load(str(path))
        assert memory.count() == 1

    def test_load_replaces_contents(self, memory, tmp_path):
        memory.add([1.0], VectorMetadata(id="old", content="old"))
        other = VectorMemory()
        other.add([1.0], VectorMetadata(id="new", content="new"))
        path = str(tmp_path / "snap.json")
        other.save(path)

        memory.load(path)

        assert memory.ids() == ["new"]

    def test_load_fills_missing_metadata_id(self, memory, tmp_path):
        path = tmp_path / "snap.json"
        path.write_text(json.dumps({"k1": {"vector": [1.0], "metadata": {"content": "c", "timestamp": 5}}}))
        memory.load(str(path))
        assert memory.get("k1").metadata.id == "k1"

    def test_save_leaves_no_temp_files(self, memory, tmp_path):
        memory.add([1.0], content="x")
        memory.save(str(tmp_path / "snap.json"))
        assert os.listdir(tmp_path) == ["snap.json"]

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    def test_snapshot_world_readable(self, memory, tmp_path):
        path = tmp_path / "snap.json"
        memory.add([1.0], content="x")
        memory.save(str(path))
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o644
