import logging
from typing import Optional, Union

from .clock import LogicalClock
from .errors import InvalidState, UnknownBranch
from .models.graph import BranchHandle, Commit, Repository

logger = logging.getLogger(__name__)


class TopologyBuilder:
    """
    Builds the commit graph of one repository.

    Mirrors the handful of git porcelain commands negotiation test setups
    use (commit, checkout, checkout --orphan) on an in-memory graph.
    Timestamps come from an explicit LogicalClock unless given.
    """

    def __init__(
        self,
        repo: Repository,
        clock: Optional[LogicalClock] = None,
        namespace: Optional[str] = None,
    ):
        """
        Initialize TopologyBuilder.

        Args:
            repo: Repository to build into
            clock: Timestamp source (a fresh LogicalClock if omitted)
            namespace: Prefix for commit ids (defaults to the repository name)
        """
        self.repo = repo
        self.clock = clock or LogicalClock()
        self.namespace = namespace or repo.name

    def _commit_id(self, label: str) -> str:
        return f"{self.namespace}:{label}"

    def _timestamp(self, timestamp: Optional[int]) -> int:
        return self.clock.tick() if timestamp is None else timestamp

    # ─── Commits ──────────────────────────────────────────────────

    def create_root_commit(self, label: str, timestamp: Optional[int] = None) -> Commit:
        """
        Create a parentless commit on the (unborn) HEAD branch.

        Raises:
            InvalidState: repository frozen, or HEAD already has history
        """
        if self.repo.frozen:
            raise InvalidState(f"Repository '{self.repo.name}' is frozen")
        if self.repo.head_tip() is not None:
            raise InvalidState(
                f"HEAD of '{self.repo.name}' already has history; use fork_orphan"
            )
        commit = self.repo.add_commit(
            self._commit_id(label), label, (), self._timestamp(timestamp)
        )
        self._advance_head(commit)
        return commit

    def extend(
        self,
        branch_ref: Optional[str],
        label: str,
        timestamp: Optional[int] = None,
    ) -> Commit:
        """
        Create a commit on top of a branch and advance the branch.

        Args:
            branch_ref: Branch name, or None for whatever HEAD points at
            label: Commit label (also its tag name once materialized)
            timestamp: Explicit time; next clock tick if None

        Returns:
            The new Commit
        """
        if branch_ref is None:
            parent = self.repo.head_tip()
            if parent is None:
                raise UnknownBranch(self.repo.head_branch or "HEAD", self.repo.name)
        else:
            branch = self.repo.branches.get(branch_ref)
            if branch is None:
                raise UnknownBranch(branch_ref, self.repo.name)
            parent = branch.tip_id

        commit = self.repo.add_commit(
            self._commit_id(label), label, (parent,), self._timestamp(timestamp)
        )
        if branch_ref is None:
            self._advance_head(commit)
        else:
            self.repo.set_branch(branch_ref, commit.id)
        return commit

    def commit(self, label: str, timestamp: Optional[int] = None) -> Commit:
        """Commit on HEAD, starting the branch if it is unborn."""
        if self.repo.head_tip() is None:
            return self.create_root_commit(label, timestamp)
        return self.extend(None, label, timestamp)

    def _advance_head(self, commit: Commit):
        if self.repo.head_branch is None:
            self.repo.detach_head(commit.id)
        else:
            self.repo.set_branch(self.repo.head_branch, commit.id)

    # ─── Branches ─────────────────────────────────────────────────

    def checkout(self, name: str) -> BranchHandle:
        """
        Point HEAD at a branch, or detach it at a commit label/id.

        Raises:
            UnknownBranch: name is neither a branch nor a commit
        """
        if self.repo.frozen:
            raise InvalidState(f"Repository '{self.repo.name}' is frozen")
        if name in self.repo.branches:
            self.repo.attach_head(name)
            return BranchHandle(name=name, tip_id=self.repo.branches[name].tip_id)

        commit = self.repo.get_commit(name)
        if commit is None:
            raise UnknownBranch(name, self.repo.name)
        self.repo.detach_head(commit.id)
        return BranchHandle(name=None, tip_id=commit.id)

    def fork_orphan(
        self,
        new_branch_name: str,
        label: str,
        timestamp: Optional[int] = None,
    ) -> Commit:
        """Start a new branch at a fresh root commit and check it out."""
        if new_branch_name in self.repo.branches:
            raise InvalidState(
                f"Branch '{new_branch_name}' already exists in '{self.repo.name}'"
            )
        commit = self.repo.add_commit(
            self._commit_id(label), label, (), self._timestamp(timestamp)
        )
        self.repo.set_branch(new_branch_name, commit.id)
        self.repo.attach_head(new_branch_name)
        return commit

    def assign_timestamp(self, commit: Union[Commit, str], timestamp: int) -> Commit:
        """Override a commit's time regardless of when it was created."""
        ref = commit.id if isinstance(commit, Commit) else commit
        target = self.repo.get_commit(ref)
        if target is None:
            raise UnknownBranch(ref, self.repo.name)
        return self.repo.replace_timestamp(target.id, timestamp)


def merge_reference(source_repo: Repository, target_repo: Repository, branch_name: str) -> int:
    """
    Copy a branch and its history from one repository into another.

    Commits keep their ids, labels and timestamps, so both repositories
    materialize them to identical git objects. Commits the target already
    holds are shared rather than copied.

    Returns:
        Number of commits copied
    """
    branch = source_repo.branches.get(branch_name)
    if branch is None:
        raise UnknownBranch(branch_name, source_repo.name)
    if target_repo.frozen:
        raise InvalidState(f"Repository '{target_repo.name}' is frozen")
    if branch_name in target_repo.branches:
        raise InvalidState(f"Branch '{branch_name}' already exists in '{target_repo.name}'")

    history = sorted(source_repo.ancestry(branch.tip_id), key=lambda c: c.seq)
    copied = 0
    for commit in history:
        if commit.id in target_repo.commits:
            continue
        target_repo.add_commit(commit.id, commit.label, commit.parents, commit.timestamp)
        copied += 1

    target_repo.set_branch(branch_name, branch.tip_id)
    logger.debug(
        f"Copied {copied} commits of '{branch_name}' from '{source_repo.name}' to '{target_repo.name}'"
    )
    return copied
