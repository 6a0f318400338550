"""Tests for writing topogit repositories into real git repositories."""

import pytest

from topogit.scenarios import build_clock_skew, build_multi_round, build_two_colliding_skips
from topogit.storage import GitBackend

pytestmark = pytest.mark.requires_git


@pytest.fixture
def backend(tmp_path, request):
    return GitBackend(tmp_path / "repo.git", request.config.getoption("--git-binary"))


def git(backend, *args):
    return backend._run(list(args)).stdout.strip()


def test_object_ids_are_deterministic(tmp_path, backend):
    scenario = build_clock_skew()
    other = GitBackend(tmp_path / "other.git", backend.git_binary)

    assert backend.materialize(scenario.client) == other.materialize(scenario.client)


def test_rematerializing_is_harmless(backend):
    scenario = build_clock_skew()
    first = backend.materialize(scenario.client)
    assert backend.materialize(scenario.client) == first


def test_refs_tags_and_dates(backend):
    client = build_clock_skew().client
    shas = backend.materialize(client)
    refs = backend.list_refs()

    assert refs["refs/heads/main"] == shas[client.resolve("c2")]
    assert refs["refs/tags/old1"] == shas[client.resolve("old1")]
    assert git(backend, "show", "-s", "--format=%ct", shas[client.resolve("old1")]) == "1000000000"
    assert git(backend, "rev-parse", f"{shas[client.resolve('old1')]}^") == shas[client.resolve("c1")]


def test_trees_accumulate_along_first_parent(backend):
    client = build_clock_skew().client
    shas = backend.materialize(client)

    files = git(backend, "ls-tree", "--name-only", shas[client.resolve("old2")]).splitlines()
    assert files == ["c1.t", "old1.t", "old2.t"]


def test_detached_head(backend):
    client = build_two_colliding_skips().client
    shas = backend.materialize(client)

    assert backend.rev_parse("HEAD") == shas[client.resolve("c5side")]
    assert backend._run(["symbolic-ref", "-q", "HEAD"], check=False).returncode != 0


def test_shared_history_has_shared_object_ids(tmp_path, backend):
    scenario = build_multi_round()
    server = GitBackend(tmp_path / "server.git", backend.git_binary)

    client_ids = backend.materialize(scenario.client)
    server_ids = server.materialize(scenario.server)

    b1_tip = scenario.client.resolve("b1")
    assert server_ids[b1_tip] == client_ids[b1_tip]
    assert server.rev_parse("HEAD") == server_ids[scenario.server.resolve("commit-on-b1")]
    assert server.rev_parse("HEAD~1") == client_ids[b1_tip]


def test_acceleration_index(backend):
    backend.materialize(build_clock_skew().client)
    assert backend.index_digest() is None

    backend.rebuild_acceleration_index()
    backend.repack()

    assert backend.commit_graph_files()
    assert backend.index_digest() is not None


def test_rev_parse_miss(backend):
    backend.materialize(build_clock_skew().client)
    assert backend.rev_parse("refs/heads/nope") is None
