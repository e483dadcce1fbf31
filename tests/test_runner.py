"""
Tests for target resolution, run orchestration and the summary table.
"""

import io

import pytest
from rich.console import Console

from mtimefix.errors import CommitFailed, NoTargets
from mtimefix.model import MTIME_THRESHOLD, RunStats, Target
from mtimefix.runner import RunController, format_elapsed, render_stats, resolve_targets
from mtimefix.users import UserDirectory


@pytest.fixture
def users(conn):
    for uid in ("carol", "alice", "bob"):
        UserDirectory(conn).register(uid)
    conn.commit()
    return UserDirectory(conn)


class EchoRecorder:
    def __init__(self):
        self.lines = []

    def __call__(self, message="", err=False):
        self.lines.append((message, err))

    def text(self):
        return "\n".join(line for line, _ in self.lines)


class TestResolveTargets:

    def test_path_derives_user(self, users):
        assert resolve_targets(users, path="alice/files/Music/") == [Target("alice", "/alice/files/Music")]

    def test_path_wins_over_all_and_ids(self, users):
        targets = resolve_targets(users, path="/bob", all_users=True, user_ids=["alice"])
        assert targets == [Target("bob", "/bob")]

    def test_all_wins_over_ids(self, users):
        targets = resolve_targets(users, all_users=True, user_ids=["zed"])
        assert [t.user_id for t in targets] == ["alice", "bob", "carol"]

    def test_explicit_ids_keep_order(self, users):
        targets = resolve_targets(users, user_ids=["carol", "nobody"])
        assert targets == [Target.for_user("carol"), Target.for_user("nobody")]

    def test_nothing_selected(self, users):
        with pytest.raises(NoTargets):
            resolve_targets(users)

    def test_root_path_names_no_user(self, users):
        with pytest.raises(NoTargets):
            resolve_targets(users, path="/")

    def test_all_with_no_users(self, conn):
        with pytest.raises(NoTargets):
            resolve_targets(UserDirectory(conn), all_users=True)


def test_target_must_stay_in_user_namespace():
    with pytest.raises(ValueError):
        Target("alice", "/bob/files")
    with pytest.raises(ValueError):
        Target("alice", "/alicefoo")


@pytest.mark.parametrize("seconds, expected", [
    (0, "00:00:00"),
    (59.6, "00:01:00"),
    (3661.4, "01:01:01"),
    (360000, "100:00:00"),
])
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


def test_render_stats_table():
    stats = RunStats(files_fixed=250)
    buf = io.StringIO()

    render_stats(stats, Console(file=buf, width=80))

    out = buf.getvalue()
    assert "Fixed files" in out
    assert "Elapsed time" in out
    assert "250" in out
    assert "00:00:00" in out


def test_run_reports_progress_and_unknown_users(make_user, make_engine, conn):
    make_user("alice", {"a.txt": 0})
    make_user("bob", {"b.txt": 0, "c.txt": 0})
    echo = EchoRecorder()
    controller = RunController(UserDirectory(conn), make_engine(), echo=echo)
    targets = [Target.for_user("alice"), Target.for_user("ghost"), Target.for_user("bob")]

    stats = controller.run(targets)

    assert stats.files_fixed == 3
    assert stats.unknown_users == ["ghost"]
    assert ("Starting scan for user 1 out of 3 (alice)", False) in echo.lines
    assert ("Starting scan for user 3 out of 3 (bob)", False) in echo.lines
    assert any("Unknown user 2 ghost" in line and err for line, err in echo.lines)
    assert stats.finished_at is not None


def test_malformed_ids_are_unknown_users(make_user, make_engine, conn, catalog_mtimes):
    make_user("alice", {"a.txt": 0})
    make_user("a", {"b/c.txt": 0})
    echo = EchoRecorder()
    targets = resolve_targets(UserDirectory(conn), user_ids=["a/b", "", "alice"])

    stats = RunController(UserDirectory(conn), make_engine(), echo=echo).run(targets)

    assert stats.unknown_users == ["a/b", ""]
    assert any("Unknown user 1 a/b" in line and err for line, err in echo.lines)
    assert ("Starting scan for user 3 out of 3 (alice)", False) in echo.lines
    assert catalog_mtimes("alice")["/alice/files/a.txt"] > MTIME_THRESHOLD
    assert catalog_mtimes("a")["/a/files/b/c.txt"] == 0


def test_cancellation_skips_remaining_targets(make_user, make_engine, conn, catalog_mtimes, monkeypatch):
    make_user("alice", {"a.txt": 0})
    make_user("bob", {"b.txt": 0})
    engine = make_engine()
    original_commit = engine.store.commit

    def commit_then_cancel():
        original_commit()
        engine.cancel.cancel()

    monkeypatch.setattr(engine.store, "commit", commit_then_cancel)
    echo = EchoRecorder()

    stats = RunController(UserDirectory(conn), engine, echo=echo).run(
        [Target.for_user("alice"), Target.for_user("bob")]
    )

    assert stats.cancelled
    assert stats.files_fixed == 1
    assert stats.failed_targets == []
    assert catalog_mtimes("bob")["/bob/files/b.txt"] == 0
    assert "Starting scan for user 2 out of 2 (bob)" not in echo.text()


def test_commit_failure_only_aborts_that_target(make_user, make_engine, conn, catalog_mtimes, monkeypatch):
    make_user("alice", {"a.txt": 0, "b.txt": 0})
    make_user("bob", {"c.txt": 0})
    engine = make_engine()
    original_commit = engine.store.commit
    calls = []

    def fail_first_commit():
        calls.append(1)
        if len(calls) == 1:
            raise CommitFailed("Commit failed: database or disk is full")
        original_commit()

    monkeypatch.setattr(engine.store, "commit", fail_first_commit)
    echo = EchoRecorder()

    stats = RunController(UserDirectory(conn), engine, echo=echo).run(
        [Target.for_user("alice"), Target.for_user("bob")]
    )

    assert stats.failed_targets == ["alice"]
    assert set(catalog_mtimes("alice").values()) == {0}
    assert catalog_mtimes("bob")["/bob/files/c.txt"] > MTIME_THRESHOLD
    # counters already applied for the failed page are still reported
    assert stats.files_fixed == 3
    assert any("aborted" in line and err for line, err in echo.lines)


def test_verbose_run_prints_target_summary(make_user, make_engine, conn):
    make_user("alice", {"a.txt": 0, "b.txt": 0})
    echo = EchoRecorder()

    RunController(UserDirectory(conn), make_engine(), echo=echo, verbose=True).run(
        [Target.for_user("alice")], dry_run=True
    )

    assert "/alice: 2 listed, 0 skipped, 1 queries" in echo.text()
