"""End-to-end engine tests over the in-memory transport."""

import logging

import pytest

from refsync import ConfigError, SyncConfig, SyncEngine, sync
from refsync.refs import RefKind
from refsync.stats import FileSyncStats

B, T = RefKind.BRANCH, RefKind.TAG


def _config(**kw):
    kw.setdefault("batch_size", 10)
    kw.setdefault("max_parallel_jobs", 4)
    return SyncConfig(**kw)


# ---------------------------------------------------------------------------
# Batched sync
# ---------------------------------------------------------------------------

class TestBatchedSync:
    def test_initial_push(self, fake_transport, many_branches):
        local = {**many_branches(25), "refs/tags/v1": "t1", "refs/tags/v2": "t2"}
        t = fake_transport(local=local)
        result = sync(t, _config())
        assert result.ok
        assert result.mode == "batched"
        assert result.stats.pushed == {B: 25, T: 2}
        assert t.remote == local
        assert [p.batches for p in result.phases] == [[10, 10, 5], [2]]

    def test_remote_listed_once(self, fake_transport, many_branches):
        t = fake_transport(local={**many_branches(5), "refs/tags/v1": "t1"})
        sync(t, _config())
        assert t.list_calls == 1

    def test_branches_before_tags(self, fake_transport, many_branches):
        t = fake_transport(local={**many_branches(30), "refs/tags/v1": "t1"}, delay=0.002)
        sync(t, _config(batch_size=5, max_parallel_jobs=3))
        kinds = [kind for kind, _, _ in t.calls]
        assert kinds == [B] * 6 + [T]

    def test_target_ahead_left_alone_every_run(self, fake_transport):
        t = fake_transport(local={"refs/heads/main": "c1"},
                           remote={"refs/heads/main": "unfetched"})
        for _ in range(2):
            result = sync(t, _config())
            assert result.ok
            assert result.stats.diverged == ()
            assert result.phases[0].up_to_date == 1
        assert t.calls == []
        assert t.remote["refs/heads/main"] == "unfetched"

    def test_idempotent(self, fake_transport, many_branches):
        local = {**many_branches(12), "refs/tags/v1": "t1"}
        t = fake_transport(local=local)
        sync(t, _config())
        calls_after_first = len(t.calls)
        second = sync(t, _config())
        assert len(t.calls) == calls_after_first
        assert second.stats.total_pushed == 0
        assert second.phases[0].up_to_date == 12
        assert second.phases[1].up_to_date == 1

    def test_peak_concurrency_bounded(self, fake_transport, many_branches):
        t = fake_transport(local=many_branches(40), delay=0.01)
        result = sync(t, _config(batch_size=2, max_parallel_jobs=3))
        assert t.peak <= 3
        assert result.peak_jobs <= 3
        assert result.max_parallel_jobs == 3

    def test_conservation(self, fake_transport):
        local = {
            "refs/heads/new": "n1",
            "refs/heads/same": "s1",
            "refs/heads/ahead": "a2",
            "refs/heads/diverged": "d2",
            "refs/heads/broken": "x",
            "refs/heads/erroring": "e1",
            "refs/tags/moved": "m2",
        }
        remote = {
            "refs/heads/same": "s1",
            "refs/heads/ahead": "a1",
            "refs/heads/diverged": "d1",
            "refs/tags/moved": "m1",
        }
        t = fake_transport(local=local, remote=remote, parents={"a2": "a1"},
                           reject={"refs/heads/diverged", "refs/tags/moved"},
                           errors={"refs/heads/erroring"}, invalid={"refs/heads/broken"},
                           objects={"d1"})
        result = sync(t, _config())
        branches, tags = result.phases
        assert (branches.new, branches.changed, branches.up_to_date, branches.invalid) \
            == (2, 2, 1, 1)
        stats = result.stats
        assert stats.pushed == {B: 2, T: 0}
        assert set(stats.diverged) == {(B, "diverged"), (T, "moved")}
        assert stats.failed == ((B, "erroring"),)
        for phase in result.phases:
            kind = phase.kind
            outcomes = (stats.pushed[kind] + stats.skipped_diverged[kind]
                        + sum(1 for k, _ in stats.failed if k is kind))
            assert outcomes == phase.dispatched
        assert not result.ok

    def test_diverged_tag_does_not_fail_run(self, fake_transport):
        t = fake_transport(local={"refs/tags/v1": "new"}, remote={"refs/tags/v1": "old"},
                           reject={"refs/tags/v1"})
        result = sync(t, _config())
        assert result.ok
        assert result.stats.diverged == ((T, "v1"),)
        assert result.stats.skipped_diverged[T] == 1
        assert t.remote["refs/tags/v1"] == "old"

    def test_force_push_overwrites_divergence(self, fake_transport):
        t = fake_transport(local={"refs/tags/v1": "new"}, remote={"refs/tags/v1": "old"},
                           reject={"refs/tags/v1"})
        result = sync(t, _config(force_push=True))
        assert result.ok
        assert result.stats.pushed[T] == 1
        assert t.remote["refs/tags/v1"] == "new"
        assert all(force for _, _, force in t.calls)

    def test_dry_run_transfers_nothing(self, fake_transport, many_branches, caplog):
        t = fake_transport(local={**many_branches(3), "refs/tags/v1": "t1"})
        with caplog.at_level(logging.INFO, logger="refsync"):
            result = sync(t, _config(dry_run=True))
        assert t.calls == []
        assert t.remote == {}
        assert result.dry_run
        assert result.stats.total_pushed == 0
        assert [p.dispatched for p in result.phases] == [3, 1]
        assert "DRY RUN MODE" in caplog.text

    def test_external_stats_store(self, fake_transport, tmp_path):
        t = fake_transport(local={"refs/heads/a": "1"})
        stats = FileSyncStats(tmp_path / "stats")
        SyncEngine(t, _config(), stats=stats).run()
        assert (tmp_path / "stats" / "pushed_branch").read_text().strip() == "1"

    def test_listing_failure_raises(self, fake_transport):
        from refsync import TransportError

        t = fake_transport(local={"refs/heads/a": "1"})

        def unreachable():
            raise TransportError("Cannot access target repository: nowhere")

        t.remote_ref_map = unreachable
        with pytest.raises(TransportError):
            sync(t, _config())
        assert t.calls == []


# ---------------------------------------------------------------------------
# Pruning
# ---------------------------------------------------------------------------

class TestPrune:
    def test_prune_deletes_remote_only(self, fake_transport):
        t = fake_transport(local={"refs/heads/a": "1"},
                           remote={"refs/heads/a": "1", "refs/heads/gone": "2",
                                   "refs/tags/old": "3", "refs/notes/x": "4"})
        result = sync(t, _config(prune_deleted=True))
        assert t.prune_calls == [["refs/heads/gone", "refs/tags/old"]]
        assert result.stats.pruned == {B: 1, T: 1}
        assert "refs/notes/x" in t.remote

    def test_no_prune_by_default(self, fake_transport):
        t = fake_transport(local={"refs/heads/a": "1"}, remote={"refs/heads/gone": "2"})
        sync(t, _config())
        assert t.prune_calls == []
        assert "refs/heads/gone" in t.remote

    def test_prune_dry_run(self, fake_transport):
        t = fake_transport(remote={"refs/heads/gone": "2"})
        result = sync(t, _config(prune_deleted=True, dry_run=True))
        assert t.prune_calls == []
        assert result.stats.total_pruned == 0

    def test_prune_failure_marks_failed(self, fake_transport):
        from refsync.transport import TransferResult

        t = fake_transport(remote={"refs/heads/gone": "2"})
        t.prune_remote_only = lambda stale: TransferResult.error("remote: denied")
        result = sync(t, _config(prune_deleted=True))
        assert result.stats.failed == ((B, "gone"),)
        assert not result.ok


# ---------------------------------------------------------------------------
# Mirror mode
# ---------------------------------------------------------------------------

class TestMirror:
    def test_requires_force(self, fake_transport):
        t = fake_transport(local={"refs/heads/a": "1"})
        with pytest.raises(ConfigError, match="force"):
            sync(t, SyncConfig(use_mirror_push=True))
        assert t.mirror_calls == 0
        assert t.list_calls == 0

    def test_single_push(self, fake_transport, many_branches):
        local = {**many_branches(20), "refs/tags/v1": "t1"}
        t = fake_transport(local=local, remote={"refs/heads/stale": "x"})
        result = sync(t, SyncConfig(use_mirror_push=True, force_push=True))
        assert result.mode == "mirror"
        assert t.mirror_calls == 1
        assert t.calls == []
        assert t.remote == local
        assert result.stats.pushed == {B: 20, T: 1}
        assert result.stats.pruned == {B: 1, T: 0}
        assert result.phases == []

    def test_in_sync_skips_push(self, fake_transport):
        t = fake_transport(local={"refs/heads/a": "1"}, remote={"refs/heads/a": "1"})
        result = sync(t, SyncConfig(use_mirror_push=True, force_push=True))
        assert t.mirror_calls == 0
        assert result.mirror_diff.in_sync
        assert result.ok

    def test_dry_run(self, fake_transport):
        t = fake_transport(local={"refs/heads/a": "1"})
        result = sync(t, SyncConfig(use_mirror_push=True, force_push=True, dry_run=True))
        assert t.mirror_calls == 0
        assert [c.ref for c in result.mirror_diff.add] == ["refs/heads/a"]

    def test_failure_sets_error(self, fake_transport):
        from refsync.transport import TransferResult

        t = fake_transport(local={"refs/heads/a": "1"})
        t.mirror = lambda: TransferResult.error("remote: hook declined")
        result = sync(t, SyncConfig(use_mirror_push=True, force_push=True))
        assert result.error == "remote: hook declined"
        assert not result.ok
        assert result.stats.total_pushed == 0


class TestEngineDefaults:
    def test_default_config(self, fake_transport):
        engine = SyncEngine(fake_transport())
        assert engine.config.batch_size == 100
        assert engine.config.max_parallel_jobs == 8

    def test_invalid_config_raises_before_listing(self, fake_transport):
        t = fake_transport()
        with pytest.raises(ConfigError):
            sync(t, SyncConfig(batch_size=0))
        assert t.list_calls == 0

    def test_duration_recorded(self, fake_transport):
        result = sync(fake_transport(local={"refs/heads/a": "1"}), _config())
        assert result.duration >= 0
