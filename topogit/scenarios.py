"""
Hand-built negotiation scenarios.

Each builder returns a frozen Scenario: a server holding the commit a
fetch would want, a client whose history is offered as "haves", and the
negotiation tips to advertise.

Usage:
    from topogit.scenarios import build_scenario

    scenario = build_scenario("clock_skew")
    scenario.client.reachable("HEAD")
"""

import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .builder import TopologyBuilder, merge_reference
from .clock import LogicalClock
from .models.graph import Repository, RepoRole


@dataclass(frozen=True)
class Scenario:
    """Server/client pair plus the tips to negotiate with. Freezes both repositories."""
    name: str
    server: Repository
    client: Repository
    tips: Tuple[str, ...]
    description: str = ""

    def __post_init__(self):
        if not self.tips:
            raise ValueError(f"Scenario '{self.name}' needs at least one negotiation tip")
        self.server.freeze()
        self.client.freeze()


def _pair(name: str) -> Tuple[TopologyBuilder, TopologyBuilder]:
    # Every repository starts from the same clock value.
    server = TopologyBuilder(
        Repository("server", RepoRole.SERVER), LogicalClock(), namespace=f"{name}/server"
    )
    client = TopologyBuilder(
        Repository("client", RepoRole.CLIENT), LogicalClock(), namespace=f"{name}/client"
    )
    server.commit("to_fetch")
    return server, client


def build_no_parents() -> Scenario:
    server, client = _pair("no_parents")
    for i in range(1, 8):
        client.commit(f"c{i}")
    return Scenario(
        name="no_parents",
        server=server.repo,
        client=client.repo,
        tips=("main",),
        description="Client and server histories share no commit.",
    )


def build_two_colliding_skips() -> Scenario:
    server, client = _pair("two_colliding_skips")
    for i in range(1, 12):
        client.commit(f"c{i}")
    client.checkout("c5")
    client.commit("c5side")
    return Scenario(
        name="two_colliding_skips",
        server=server.repo,
        client=client.repo,
        tips=("HEAD", "main"),
        description="Side line forked at c5 so both tips' skip walks reach the same commits.",
    )


def build_multi_round(branches: int = 8, generations: int = 20) -> Scenario:
    server, client = _pair("multi_round")
    for i in range(1, branches + 1):
        client.fork_orphan(f"b{i}", f"b{i}.c0")
    for j in range(1, generations):
        for i in range(1, branches + 1):
            client.checkout(f"b{i}")
            client.commit(f"b{i}.c{j}")

    # The server learns about b1 before the negotiation.
    merge_reference(client.repo, server.repo, "b1")
    server.checkout("b1")
    # The server commit gets its own clock, starting over at the default time.
    server.clock = LogicalClock()
    server.commit("commit-on-b1")

    return Scenario(
        name="multi_round",
        server=server.repo,
        client=client.repo,
        tips=tuple(sorted(client.repo.branches)),
        description="Wide disjoint history that needs several negotiation rounds.",
    )


def build_clock_skew() -> Scenario:
    server, client = _pair("clock_skew")
    client.clock.set(2000000000)
    client.commit("c1")
    client.commit("c2")

    client.clock.set(1000000000)
    client.checkout("c1")
    for i in range(1, 5):
        client.commit(f"old{i}")

    return Scenario(
        name="clock_skew",
        server=server.repo,
        client=client.repo,
        tips=("HEAD", "main"),
        description="Descendants of c1 are dated decades before it.",
    )


SCENARIOS: Dict[str, Callable[[], Scenario]] = {
    "no_parents": build_no_parents,
    "two_colliding_skips": build_two_colliding_skips,
    "multi_round": build_multi_round,
    "clock_skew": build_clock_skew,
}


def build_scenario(name: str) -> Scenario:
    builder = SCENARIOS.get(name)
    if builder is None:
        raise ValueError(f"Scenario '{name}' not found (known: {', '.join(SCENARIOS)})")
    return builder()


def build_all(names: Optional[List[str]] = None) -> List[Scenario]:
    return [build_scenario(name) for name in (names or list(SCENARIOS))]


def random_scenario(
    seed: int,
    commits: int = 40,
    orphan_probability: float = 0.1,
    checkout_probability: float = 0.15,
    skew_probability: float = 0.2,
    share_probability: float = 0.5,
) -> Scenario:
    """
    Seeded random topology for fuzzing negotiation behaviour.

    The client grows ``commits`` commits, occasionally starting orphan
    branches, detaching HEAD at an older commit, or stamping a commit
    with a time far in the past. With ``share_probability`` the server
    pulls one client branch before the run. Same seed, same scenario.
    """
    rng = random.Random(seed)
    name = f"random_{seed}"
    server, client = _pair(name)

    client.commit("r0")
    orphan_count = 0
    for n in range(1, commits):
        label = f"r{n}"
        roll = rng.random()
        if roll < orphan_probability:
            orphan_count += 1
            client.fork_orphan(f"orphan{orphan_count}", label)
            continue
        if roll < orphan_probability + checkout_probability:
            if rng.random() < 0.5:
                client.checkout(rng.choice(sorted(client.repo.branches)))
            else:
                client.checkout(rng.choice(client.repo.in_creation_order()).label)
        commit = client.commit(label)
        if rng.random() < skew_probability:
            client.assign_timestamp(commit, commit.timestamp - rng.randint(1, 10_000_000))

    branch_names = sorted(client.repo.branches)
    # "main" already exists on the server, so it is never pulled.
    shareable = [b for b in branch_names if b not in server.repo.branches]
    if shareable and rng.random() < share_probability:
        shared = rng.choice(shareable)
        merge_reference(client.repo, server.repo, shared)
        server.checkout(shared)
        server.commit("server_tip")

    tips = ["HEAD"] + branch_names
    return Scenario(
        name=name,
        server=server.repo,
        client=client.repo,
        tips=tuple(tips),
        description=f"Random topology (seed {seed}).",
    )
