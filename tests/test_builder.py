"""Tests for TopologyBuilder operations."""

import pytest

from topogit.builder import TopologyBuilder, merge_reference
from topogit.clock import LogicalClock
from topogit.errors import DuplicateCommit, GraphCycleError, InvalidState, UnknownBranch
from topogit.models.graph import Repository, RepoRole


def make_builder(name="client", role=RepoRole.CLIENT):
    return TopologyBuilder(Repository(name, role), LogicalClock())


class TestCommits:

    def test_root_commit_starts_unborn_main(self):
        b = make_builder()
        commit = b.create_root_commit("c1")

        assert commit.is_root
        assert commit.timestamp == LogicalClock.DEFAULT_START
        assert b.repo.branches["main"].tip_id == commit.id
        assert b.repo.head_tip() == commit.id

    def test_second_root_commit_on_same_head_is_rejected(self):
        b = make_builder()
        b.create_root_commit("c1")
        with pytest.raises(InvalidState):
            b.create_root_commit("c2")

    def test_extend_advances_named_branch_only(self):
        b = make_builder()
        c1 = b.commit("c1")
        b.fork_orphan("other", "o1")
        c2 = b.extend("main", "c2")

        assert c2.parents == (c1.id,)
        assert b.repo.branches["main"].tip_id == c2.id
        assert b.repo.head_branch == "other"
        assert b.repo.head_tip() == b.repo.resolve("o1")

    def test_extend_unknown_branch(self):
        b = make_builder()
        b.commit("c1")
        with pytest.raises(UnknownBranch):
            b.extend("nope", "c2")

    def test_extend_head_of_empty_repository(self):
        b = make_builder()
        with pytest.raises(UnknownBranch):
            b.extend(None, "c1")

    def test_timestamps_follow_the_clock_unless_given(self):
        b = make_builder()
        c1 = b.commit("c1")
        c2 = b.commit("c2", timestamp=5)
        c3 = b.commit("c3")

        assert c2.timestamp == 5
        assert c3.timestamp == c1.timestamp + LogicalClock.DEFAULT_STEP

    def test_ids_are_namespaced(self):
        b = TopologyBuilder(Repository("client", RepoRole.CLIENT), namespace="scn/client")
        assert b.commit("c1").id == "scn/client:c1"


class TestCheckout:

    def test_checkout_branch_attaches_head(self):
        b = make_builder()
        b.commit("c1")
        b.fork_orphan("side", "s1")
        handle = b.checkout("main")

        assert handle.name == "main"
        assert not handle.detached
        assert b.repo.head_branch == "main"

    def test_checkout_commit_detaches_and_leaves_branch(self):
        b = make_builder()
        for i in range(1, 4):
            b.commit(f"c{i}")
        handle = b.checkout("c2")
        side = b.commit("c2side")

        assert handle.detached
        assert side.parents == (b.repo.resolve("c2"),)
        assert b.repo.detached_tip == side.id
        assert b.repo.branches["main"].tip_id == b.repo.resolve("c3")

    def test_checkout_unknown(self):
        b = make_builder()
        b.commit("c1")
        with pytest.raises(UnknownBranch):
            b.checkout("missing")


class TestOrphansAndSkew:

    def test_fork_orphan_is_independent(self):
        b = make_builder()
        b.commit("c1")
        root = b.fork_orphan("b1", "b1.c0")
        b.commit("b1.c1")

        assert root.is_root
        assert b.repo.head_branch == "b1"
        assert b.repo.reachable("b1").isdisjoint(b.repo.reachable("main"))

    def test_fork_orphan_existing_branch(self):
        b = make_builder()
        b.commit("c1")
        with pytest.raises(InvalidState):
            b.fork_orphan("main", "x")

    def test_assign_timestamp_keeps_creation_order(self):
        b = make_builder()
        c1 = b.commit("c1")
        c2 = b.commit("c2")
        skewed = b.assign_timestamp(c2, c1.timestamp - 3600)

        assert skewed.timestamp < c1.timestamp
        assert skewed.seq == c2.seq
        assert b.repo.get_commit("c2").timestamp == skewed.timestamp

    def test_assign_timestamp_unknown_commit(self):
        b = make_builder()
        with pytest.raises(UnknownBranch):
            b.assign_timestamp("ghost", 1)


class TestStructuralErrors:

    def test_frozen_repository_rejects_changes(self):
        b = make_builder()
        c1 = b.commit("c1")
        b.repo.freeze()

        with pytest.raises(InvalidState):
            b.create_root_commit("x")
        with pytest.raises(InvalidState):
            b.extend("main", "c2")
        with pytest.raises(InvalidState):
            b.assign_timestamp(c1, 1)
        with pytest.raises(InvalidState):
            b.checkout("main")

    def test_duplicate_label(self):
        b = make_builder()
        b.commit("c1")
        with pytest.raises(DuplicateCommit):
            b.commit("c1")

    def test_parent_must_exist_first(self):
        repo = Repository("client", RepoRole.CLIENT)
        with pytest.raises(GraphCycleError):
            repo.add_commit("a", "a", ("b",), 1)
        with pytest.raises(GraphCycleError):
            repo.add_commit("a", "a", ("a",), 1)


class TestMergeReference:

    def test_copies_history_with_same_ids(self):
        client = make_builder()
        client.fork_orphan("b1", "b1.c0")
        client.commit("b1.c1")
        client.fork_orphan("b2", "b2.c0")
        server = make_builder("server", RepoRole.SERVER)
        server.commit("to_fetch")

        copied = merge_reference(client.repo, server.repo, "b1")

        assert copied == 2
        assert server.repo.branches["b1"].tip_id == client.repo.branches["b1"].tip_id
        copy, original = server.repo.get_commit("b1.c1"), client.repo.get_commit("b1.c1")
        assert (copy.id, copy.parents, copy.timestamp) == (original.id, original.parents, original.timestamp)
        assert server.repo.get_commit("b2.c0") is None

    def test_unknown_source_branch(self):
        with pytest.raises(UnknownBranch):
            merge_reference(make_builder().repo, make_builder("server").repo, "b1")

    def test_existing_target_branch(self):
        client = make_builder()
        client.commit("c1")
        server = make_builder("server", RepoRole.SERVER)
        server.commit("to_fetch")
        with pytest.raises(InvalidState):
            merge_reference(client.repo, server.repo, "main")
