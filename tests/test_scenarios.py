"""Shape checks for the hand-built and random scenarios."""

import pytest

from topogit.clock import LogicalClock
from topogit.errors import InvalidState
from topogit.models.graph import Repository, RepoRole
from topogit.scenarios import (
    SCENARIOS,
    Scenario,
    build_all,
    build_clock_skew,
    build_multi_round,
    build_no_parents,
    build_scenario,
    build_two_colliding_skips,
    random_scenario,
)


def labels(repo, ids):
    return {repo.commits[i].label for i in ids}


def all_reachable(repo):
    result = set()
    for name in repo.branches:
        result |= repo.reachable(name)
    result |= repo.reachable("HEAD")
    return result


def assert_parents_precede_children(repo):
    for commit in repo.commits.values():
        for parent in commit.parents:
            assert repo.commits[parent].seq < commit.seq


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_graphs_are_acyclic_and_ordered(name):
    scenario = build_scenario(name)
    for repo in (scenario.client, scenario.server):
        assert_parents_precede_children(repo)
        assert repo.dangling_refs() == []
        generations = repo.generation_numbers()
        assert len(generations) == len(repo.commits)


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_scenarios_are_frozen(name):
    scenario = build_scenario(name)
    assert scenario.client.frozen and scenario.server.frozen
    with pytest.raises(InvalidState):
        scenario.client.add_commit("x", "x", (), 1)


def test_no_parents_histories_are_disjoint():
    scenario = build_no_parents()
    server = labels(scenario.server, all_reachable(scenario.server))
    client = labels(scenario.client, all_reachable(scenario.client))

    assert server == {"to_fetch"}
    assert client == {f"c{i}" for i in range(1, 8)}
    assert all_reachable(scenario.server).isdisjoint(all_reachable(scenario.client))
    assert scenario.tips == ("main",)


def test_two_colliding_skips_diverges_at_c5():
    scenario = build_two_colliding_skips()
    client = scenario.client

    head = client.reachable("HEAD")
    main = client.reachable("main")

    assert client.commits[client.resolve("HEAD")].label == "c5side"
    assert client.commits[client.resolve("main")].label == "c11"
    assert labels(client, head & main) == {f"c{i}" for i in range(1, 6)}
    assert labels(client, head - main) == {"c5side"}
    assert client.head_branch is None
    assert scenario.tips == ("HEAD", "main")


def test_multi_round_has_eight_deep_orphan_branches():
    scenario = build_multi_round()
    client = scenario.client

    assert len(client.roots()) == 8
    assert sorted(client.branches) == [f"b{i}" for i in range(1, 9)]
    generations = client.generation_numbers()
    for name, branch in client.branches.items():
        assert len(client.reachable(name)) >= 20
        assert generations[branch.tip_id] >= 20
    for i in range(1, 9):
        for j in range(i + 1, 9):
            assert client.reachable(f"b{i}").isdisjoint(client.reachable(f"b{j}"))
    assert scenario.tips == tuple(f"b{i}" for i in range(1, 9))


def test_multi_round_server_knows_b1_ahead_of_time():
    scenario = build_multi_round()
    server = scenario.server

    assert server.head_branch == "b1"
    assert server.commits[server.resolve("b1")].label == "commit-on-b1"
    assert scenario.client.reachable("b1") < server.reachable("b1")
    assert labels(server, server.reachable("main")) == {"to_fetch"}


def test_clock_skew_timestamps_run_backwards():
    scenario = build_clock_skew()
    client = scenario.client
    stamp = {c.label: c.timestamp for c in client.commits.values()}

    assert stamp["c1"] == 2000000000
    assert stamp["c2"] == 2000000060
    assert [stamp[f"old{i}"] for i in range(1, 5)] == [1000000000 + 60 * i for i in range(4)]
    assert client.commits[client.resolve("HEAD")].label == "old4"

    skewed = [
        c for c in client.commits.values()
        if any(client.commits[p].timestamp > c.timestamp for p in c.parents)
    ]
    assert {c.label for c in skewed} == {"old1"}


def test_commit_ids_are_unique_across_scenarios():
    seen = set()
    for scenario in build_all():
        for repo in (scenario.client, scenario.server):
            own = {c.id for c in repo.commits.values() if c.id.startswith(f"{scenario.name}/{repo.name}:")}
            assert own.isdisjoint(seen)
            seen |= own


def test_unknown_scenario():
    with pytest.raises(ValueError):
        build_scenario("nope")


def test_scenario_needs_tips():
    with pytest.raises(ValueError):
        Scenario(
            name="empty",
            server=Repository("server", RepoRole.SERVER),
            client=Repository("client", RepoRole.CLIENT),
            tips=(),
        )


@pytest.mark.parametrize("seed", range(12))
def test_random_scenarios_are_well_formed(seed):
    scenario = random_scenario(seed)
    client = scenario.client

    assert len(client.commits) == 40
    assert_parents_precede_children(client)
    assert_parents_precede_children(scenario.server)
    assert client.dangling_refs() == []
    assert "HEAD" in scenario.tips
    for tip in scenario.tips:
        assert client.resolve(tip) is not None


@pytest.mark.parametrize("seed", [0, 7, 42])
def test_random_scenarios_are_reproducible(seed):
    def shape(scenario):
        return [
            (c.label, tuple(scenario.client.commits[p].label for p in c.parents), c.timestamp)
            for c in scenario.client.in_creation_order()
        ]

    first, second = random_scenario(seed), random_scenario(seed)
    assert shape(first) == shape(second)
    assert first.tips == second.tips
    assert sorted(first.server.commits) == sorted(second.server.commits)


def test_multi_round_server_commit_restarts_the_clock():
    scenario = build_multi_round()
    server = scenario.server
    commit = server.commits[server.resolve("b1")]

    assert commit.timestamp == LogicalClock.DEFAULT_START
    parent = server.commits[commit.parents[0]]
    assert parent.timestamp > commit.timestamp
