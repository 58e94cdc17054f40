"""
Tests for the thread-safe job store.
"""

import threading

import pytest

from sitemirror.errors import JobConflict, JobNotFound
from sitemirror.job_store import JobStore
from sitemirror.models import JobStatus


# ====================================================================
# 1. Registry contract
# ====================================================================

class TestRegistry:
    """create / get / list / delete."""

    def test_create_is_queued(self, store):
        job_id = store.create("https://example.com/")
        job = store.get(job_id)
        assert job.status == JobStatus.QUEUED
        assert job.progress == 0
        assert job.logs == ()
        assert job.archive_path is None
        assert job.output_dir.endswith(job_id)

    def test_ids_unique(self, store):
        ids = {store.create("https://example.com/") for _ in range(20)}
        assert len(ids) == 20

    def test_explicit_id_conflict(self, store):
        store.create("https://example.com/", job_id="abc")
        with pytest.raises(JobConflict):
            store.create("https://example.com/", job_id="abc")

    def test_get_unknown(self, store):
        with pytest.raises(JobNotFound):
            store.get("missing")

    def test_job_not_found_is_key_error(self, store):
        with pytest.raises(KeyError):
            store.get("missing")

    def test_list_in_creation_order(self, store):
        ids = [store.create(f"https://example.com/{i}") for i in range(5)]
        assert [job.id for job in store.list()] == ids

    def test_snapshot_isolated(self, store):
        """Mutating a returned record does not touch the stored job."""
        job_id = store.create("https://example.com/")
        snap = store.get(job_id)
        snap.progress = 99
        snap.status = JobStatus.FAILED
        assert store.get(job_id).progress == 0
        assert store.get(job_id).status == JobStatus.QUEUED

    def test_snapshot_logs_do_not_grow(self, store):
        job_id = store.create("https://example.com/")
        store.append_log(job_id, "one")
        snap = store.get(job_id)
        store.append_log(job_id, "two")
        assert [e.message for e in snap.logs] == ["one"]
        assert [e.message for e in store.get(job_id).logs] == ["one", "two"]

    def test_delete_removes_record_and_archive(self, store, tmp_path):
        job_id = store.create("https://example.com/")
        archive = tmp_path / "a.zip"
        archive.write_bytes(b"PK")
        store.set_archive(job_id, str(archive))
        store.delete(job_id)
        assert job_id not in store
        assert not archive.exists()
        with pytest.raises(JobNotFound):
            store.get(job_id)

    def test_delete_unknown(self, store):
        with pytest.raises(JobNotFound):
            store.delete("missing")

    def test_to_dict(self, store):
        job_id = store.create("https://example.com/")
        data = store.get(job_id).to_dict()
        assert data["status"] == "queued"
        assert data["archive_available"] is False
        assert data["logs"] == []


# ====================================================================
# 2. Lifecycle rules
# ====================================================================

class TestLifecycle:
    """Progress monotonicity, legal transitions, terminal freeze."""

    def test_progress_never_decreases(self, store):
        job_id = store.create("https://example.com/")
        store.set_progress(job_id, 40)
        store.set_progress(job_id, 20)
        assert store.get(job_id).progress == 40

    def test_progress_clamped(self, store):
        job_id = store.create("https://example.com/")
        store.set_progress(job_id, 250)
        assert store.get(job_id).progress == 100

    def test_completed_sets_progress_100(self, store):
        job_id = store.create("https://example.com/")
        store.set_status(job_id, JobStatus.RUNNING)
        store.set_status(job_id, JobStatus.COMPLETED)
        job = store.get(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100

    def test_illegal_transition_rejected(self, store):
        job_id = store.create("https://example.com/")
        assert store.set_status(job_id, JobStatus.COMPLETED) is False
        assert store.get(job_id).status == JobStatus.QUEUED

    def test_terminal_job_frozen(self, store):
        job_id = store.create("https://example.com/")
        store.set_status(job_id, JobStatus.RUNNING)
        store.set_status(job_id, JobStatus.FAILED, error="boom")
        assert store.append_log(job_id, "late") is False
        assert store.set_progress(job_id, 50) is False
        assert store.set_status(job_id, JobStatus.RUNNING) is False
        job = store.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "boom"
        assert job.logs == ()

    def test_updates_to_unknown_job_ignored(self, store):
        assert store.append_log("missing", "x") is False
        assert store.set_progress("missing", 10) is False


# ====================================================================
# 3. Run ownership and cancellation
# ====================================================================

class TestRunOwnership:
    """At most one run per job; cancellation flags."""

    def test_second_claim_conflicts(self, store):
        job_id = store.create("https://example.com/")
        store.claim_run(job_id)
        with pytest.raises(JobConflict):
            store.claim_run(job_id)
        store.release_run(job_id)
        assert not store.is_running(job_id)

    def test_claim_terminal_conflicts(self, store):
        job_id = store.create("https://example.com/")
        store.set_status(job_id, JobStatus.CANCELLED)
        with pytest.raises(JobConflict):
            store.claim_run(job_id)

    def test_claim_unknown(self, store):
        with pytest.raises(JobNotFound):
            store.claim_run("missing")

    def test_request_cancel(self, store):
        job_id = store.create("https://example.com/")
        assert store.request_cancel(job_id) is True
        assert store.handle(job_id).cancel_requested

    def test_cancel_terminal_is_noop(self, store):
        job_id = store.create("https://example.com/")
        store.set_status(job_id, JobStatus.FAILED)
        assert store.request_cancel(job_id) is False

    def test_deleted_job_reads_as_cancelled(self, store):
        job_id = store.create("https://example.com/")
        handle = store.handle(job_id)
        store.delete(job_id)
        assert handle.cancel_requested


# ====================================================================
# 4. Concurrency
# ====================================================================

class TestConcurrency:
    """Concurrent writers on different jobs never corrupt each other."""

    def test_parallel_writers(self, tmp_path):
        store = JobStore(output_root=str(tmp_path))
        ids = [store.create(f"https://example.com/{i}") for i in range(8)]

        def work(job_id):
            for n in range(200):
                store.append_log(job_id, f"{job_id}:{n}")
                store.set_progress(job_id, n // 2)

        threads = [threading.Thread(target=work, args=(job_id,)) for job_id in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for job_id in ids:
            job = store.get(job_id)
            assert len(job.logs) == 200
            assert all(e.message.startswith(job_id) for e in job.logs)
            assert job.progress == 99
