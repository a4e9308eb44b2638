"""
Unit tests for replication ids, history entries and the log store.
"""

import hashlib
import tempfile
from datetime import datetime, timezone

import pytest

from dbaas.wsrepl_server.errors import ReplicationConflictError, ReplicationLogNotFoundError
from dbaas.wsrepl_server.replication import (
    HistoryEntry,
    ReplicationLog,
    ReplicationLogStore,
    make_replication_id,
)
from dbaas.wsrepl_server.replication.replication_log import format_timestamp
from dbaas.wsrepl_server.storage import SiteStore


def entry(recorded_seq, session_id="s"):
    return HistoryEntry(
        recorded_seq=recorded_seq,
        start_time="Mon, 19 Oct 2026 09:15:02 UTC",
        session_id=session_id,
    )


class TestReplicationId:
    """Tests for make_replication_id."""

    def test_is_md5_of_newline_joined_pair(self):
        expected = hashlib.md5(b"live\nstage").hexdigest()
        assert make_replication_id("live", "stage") == expected

    def test_direction_matters(self):
        assert make_replication_id("live", "stage") != make_replication_id("stage", "live")

    def test_deterministic(self):
        assert make_replication_id("a", "b") == make_replication_id("a", "b")

    def test_no_concatenation_collision(self):
        assert make_replication_id("ab", "c") != make_replication_id("a", "bc")


class TestFormatTimestamp:
    def test_format(self):
        moment = datetime(2026, 10, 19, 9, 15, 2, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "Mon, 19 Oct 2026 09:15:02 UTC"


class TestReplicationLog:
    """Tests for ReplicationLog in memory."""

    def test_new_log_watermark(self):
        log = ReplicationLog("rid", "live", "stage")

        assert log.is_new
        assert log.last_sequence_id == 0

    def test_add_history_prepends(self):
        log = ReplicationLog("rid", "live", "stage")

        log.add_history(entry(2, "s1"))
        log.add_history(entry(5, "s2"))

        assert [e.recorded_seq for e in log.history] == [5, 2]
        assert log.last_sequence_id == 5
        assert log.session_id == "s2"
        assert log.source_last_seq == 5

    def test_history_limit_prunes_oldest(self):
        log = ReplicationLog("rid", "live", "stage", history_limit=2)

        for seq in (1, 2, 3):
            log.add_history(entry(seq))

        assert [e.recorded_seq for e in log.history] == [3, 2]

    def test_unbounded_history(self):
        log = ReplicationLog("rid", "live", "stage", history_limit=0)

        for seq in range(1, 61):
            log.add_history(entry(seq))

        assert len(log.history) == 60

    def test_history_entry_from_partial_dict(self):
        """Rows written without counters still load."""
        loaded = HistoryEntry.from_dict(
            {"recorded_seq": "3", "start_time": "t", "session_id": "s"}
        )

        assert loaded.recorded_seq == 3
        assert loaded.docs_written == 0
        assert loaded.end_time == ""

    def test_to_dict_shape(self):
        log = ReplicationLog("rid", "live", "stage")
        log.add_history(entry(2, "s1"))

        data = log.to_dict()

        assert data["replication_id"] == "rid"
        assert data["history"][0]["recorded_seq"] == 2
        assert set(data["history"][0]) == {
            "recorded_seq",
            "start_time",
            "session_id",
            "end_time",
            "missing_checked",
            "missing_found",
            "docs_read",
            "docs_written",
        }


class TestReplicationLogStore:
    """Tests for ReplicationLogStore."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    async def logs(self, data_dir):
        store = SiteStore(data_dir, wal_mode=False)
        await store.initialize()
        return ReplicationLogStore(store, history_limit=3)

    @pytest.mark.asyncio
    async def test_load_missing(self, logs):
        with pytest.raises(ReplicationLogNotFoundError):
            await logs.load("nope")

    @pytest.mark.asyncio
    async def test_load_or_create_is_not_persisted(self, logs):
        log = await logs.load_or_create("rid", "live", "stage")

        assert log.is_new
        assert log.history == []
        with pytest.raises(ReplicationLogNotFoundError):
            await logs.load("rid")

    @pytest.mark.asyncio
    async def test_save_and_load(self, logs):
        log = await logs.load_or_create("rid", "live", "stage")
        log.add_history(entry(2, "s1"))

        saved = await logs.save(log)

        assert saved.version == 1
        loaded = await logs.load("rid")
        assert loaded.last_sequence_id == 2
        assert loaded.session_id == "s1"
        assert loaded.history_limit == 3
        assert loaded.history[0] == entry(2, "s1")

    @pytest.mark.asyncio
    async def test_saves_advance_version(self, logs):
        log = await logs.load_or_create("rid", "live", "stage")
        log.add_history(entry(1))
        await logs.save(log)
        log.add_history(entry(2))
        await logs.save(log)

        loaded = await logs.load("rid")

        assert loaded.version == 2
        assert [e.recorded_seq for e in loaded.history] == [2, 1]

    @pytest.mark.asyncio
    async def test_stale_save_conflicts(self, logs):
        """Two writers loading the same version cannot both save."""
        first = await logs.load_or_create("rid", "live", "stage")
        second = await logs.load_or_create("rid", "live", "stage")

        first.add_history(entry(1, "a"))
        await logs.save(first)

        second.add_history(entry(1, "b"))
        with pytest.raises(ReplicationConflictError) as exc_info:
            await logs.save(second)

        assert exc_info.value.details["expected_version"] == 0
        assert exc_info.value.details["actual_version"] == 1
        assert (await logs.load("rid")).session_id == "a"

    @pytest.mark.asyncio
    async def test_list_logs(self, logs):
        for rid in ("r1", "r2"):
            log = await logs.load_or_create(rid, "live", "stage")
            log.add_history(entry(1))
            await logs.save(log)

        assert {log.replication_id for log in await logs.list_logs()} == {"r1", "r2"}
