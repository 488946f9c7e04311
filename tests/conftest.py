"""Shared fixtures for refsync tests."""

import logging
import threading
import time

import pytest
from click.testing import CliRunner
from dulwich.objects import Blob, Commit, Tag, Tree
from dulwich.repo import Repo as DulwichRepo

from refsync.transport import TransferResult, Transport


@pytest.fixture(autouse=True)
def _reset_refsync_logger():
    """The CLI installs its own handler; put the logger back for caplog."""
    yield
    logger = logging.getLogger("refsync")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# dulwich repo builders
# ---------------------------------------------------------------------------

def _commit(drepo, parents=(), content=b"content", message=b"commit\n"):
    blob = Blob.from_string(content)
    drepo.object_store.add_object(blob)
    tree = Tree()
    tree.add(b"file.txt", 0o100644, blob.id)
    drepo.object_store.add_object(tree)
    c = Commit()
    c.tree = tree.id
    c.parents = list(parents)
    c.author = c.committer = b"test <test@test>"
    c.author_time = c.commit_time = int(time.time())
    c.author_timezone = c.commit_timezone = 0
    c.encoding = b"UTF-8"
    c.message = message
    drepo.object_store.add_object(c)
    return c.id


def _tag(drepo, name, target, message=b"tag\n"):
    tag = Tag()
    tag.name = name.encode()
    tag.object = (Commit, target)
    tag.tagger = b"test <test@test>"
    tag.tag_time = int(time.time())
    tag.tag_timezone = 0
    tag.message = message
    drepo.object_store.add_object(tag)
    drepo.refs[b"refs/tags/" + name.encode()] = tag.id
    return tag.id


@pytest.fixture
def make_commit():
    """``make_commit(drepo, parents=(), content=b"...")`` -> commit id (bytes)."""
    return _commit


@pytest.fixture
def make_tag():
    """``make_tag(drepo, name, target)`` -> annotated tag id (bytes)."""
    return _tag


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def src_path(tmp_path):
    """Bare source repo: branches main and feature, lightweight tag v1,
    annotated tag v2.
    """
    p = str(tmp_path / "src.git")
    drepo = DulwichRepo.init_bare(p, mkdir=True)
    root = _commit(drepo, content=b"root")
    tip = _commit(drepo, [root], content=b"second")
    feature = _commit(drepo, [root], content=b"feature")
    drepo.refs[b"refs/heads/main"] = tip
    drepo.refs[b"refs/heads/feature"] = feature
    drepo.refs[b"refs/tags/v1"] = root
    _tag(drepo, "v2", tip)
    drepo.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
    drepo.close()
    return p


@pytest.fixture
def dst_path(tmp_path):
    """Empty bare target repo."""
    p = str(tmp_path / "dst.git")
    DulwichRepo.init_bare(p, mkdir=True).close()
    return p


def get_refs(repo_path):
    """Return {ref_name_str: sha_hex_str} for a bare repo, excluding HEAD."""
    with DulwichRepo(repo_path) as repo:
        return {
            ref.decode(): sha.decode()
            for ref, sha in repo.get_refs().items()
            if ref != b"HEAD"
        }


@pytest.fixture
def refs_of():
    return get_refs


def _diverge(src_path, dst_path, ref_name, content=b"diverged"):
    """Point *ref_name* on the target at a new root commit that the source
    also holds (unreferenced), so the divergence is visible locally.
    """
    with DulwichRepo(src_path) as src, DulwichRepo(dst_path) as dst:
        commit_id = _commit(src, content=content)
        commit = src.object_store[commit_id]
        tree = src.object_store[commit.tree]
        for obj in [src.object_store[entry.sha] for entry in tree.iteritems()] + [tree, commit]:
            dst.object_store.add_object(obj)
        dst.refs[ref_name.encode()] = commit_id
    return commit_id.decode()


@pytest.fixture
def diverge():
    """``diverge(src_path, dst_path, "refs/heads/x")`` -> target's new hex SHA."""
    return _diverge


# ---------------------------------------------------------------------------
# In-memory transport
# ---------------------------------------------------------------------------

class FakeTransport(Transport):
    """Transport over plain dicts, with linear-ish commit parents.

    Attributes:
        local / remote: ``{full_ref_name: oid}``.
        parents: ``{oid: parent_oid}``; ancestry follows first parents.
        reject: Full ref names the "remote" refuses as non-fast-forward
            unless forced.
        errors: Full ref names whose transfer always errors.
        fail_batches: Any multi-ref transfer errors.
        delay: Seconds each transfer sleeps, to overlap workers.
        objects: Extra oids present "locally"; local tips and every oid in
            *parents* are present too.
    """

    def __init__(self, local=None, remote=None, parents=None, *, reject=(), errors=(),
                 fail_batches=False, delay=0.0, invalid=(), objects=()):
        self.local = dict(local or {})
        self.remote = dict(remote or {})
        self.parents = dict(parents or {})
        self.reject = set(reject)
        self.errors = set(errors)
        self.invalid = set(invalid)
        self.objects = set(objects)
        self.fail_batches = fail_batches
        self.delay = delay
        self.calls = []
        self.list_calls = 0
        self.prune_calls = []
        self.mirror_calls = 0
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def remote_ref_map(self):
        self.list_calls += 1
        return dict(self.remote)

    def local_ref_map(self):
        return dict(self.local)

    def resolve_local(self, ref):
        if ref.full_name in self.invalid:
            return None
        return self.local.get(ref.full_name)

    def has_object(self, oid):
        return (oid in self.objects or oid in self.parents
                or oid in self.parents.values() or oid in self.local.values())

    def ancestry_distance(self, old, new):
        distance, cur = 0, new
        while cur is not None:
            if cur == old:
                return distance
            cur = self.parents.get(cur)
            distance += 1
        return None

    def transfer(self, kind, refs, *, force=False):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append((kind, [r.name for r in refs], force))
        try:
            if self.delay:
                time.sleep(self.delay)
            names = [r.full_name for r in refs]
            if self.fail_batches and len(refs) > 1:
                return TransferResult.error("remote: batch too large\nline 2\nline 3\nline 4")
            if any(n in self.errors for n in names):
                return TransferResult.error("remote: boom")
            rejected = [n for n in names if n in self.reject] if not force else []
            if rejected:
                return TransferResult.reject(rejected)
            with self._lock:
                for n in names:
                    self.remote[n] = self.local[n]
            return TransferResult.success()
        finally:
            with self._lock:
                self.active -= 1

    def prune_remote_only(self, stale):
        self.prune_calls.append([r.full_name for r in stale])
        for r in stale:
            self.remote.pop(r.full_name, None)
        return TransferResult.success()

    def mirror(self):
        self.mirror_calls += 1
        self.remote = dict(self.local)
        return TransferResult.success()


@pytest.fixture
def fake_transport():
    """Factory for :class:`FakeTransport`."""
    return FakeTransport


def branches(n, prefix="b"):
    """``{refs/heads/b000: oid-b000, ...}`` for *n* branches."""
    return {f"refs/heads/{prefix}{i:03d}": f"oid-{prefix}{i:03d}" for i in range(n)}


@pytest.fixture
def many_branches():
    return branches
