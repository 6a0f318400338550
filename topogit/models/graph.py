from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..errors import DuplicateCommit, GraphCycleError, InvalidState, UnknownBranch


DEFAULT_BRANCH = "main"


class RepoRole(Enum):
    SERVER = "server"
    CLIENT = "client"


@dataclass(frozen=True)
class Commit:
    """Immutable node of the commit DAG."""
    id: str
    label: str
    parents: Tuple[str, ...]
    timestamp: int
    seq: int  # creation order within the owning repository

    @property
    def is_root(self) -> bool:
        return not self.parents


@dataclass
class BranchRef:
    """Named pointer to a commit. Only moved while the repository is being built."""
    name: str
    tip_id: str


@dataclass(frozen=True)
class BranchHandle:
    """Where HEAD points after a checkout."""
    name: Optional[str]
    tip_id: Optional[str]

    @property
    def detached(self) -> bool:
        return self.name is None


class Repository:
    """
    Self-contained commit graph with branches and a HEAD.

    Commits are only added, never removed. Once ``freeze()`` has been
    called every mutating method raises InvalidState.
    """

    def __init__(self, name: str, role: RepoRole):
        self.name = name
        self.role = role
        self.commits: Dict[str, Commit] = {}
        self.branches: Dict[str, BranchRef] = {}
        self._labels: Dict[str, str] = {}
        # HEAD is attached to a branch name (possibly unborn) or detached at a commit.
        self.head_branch: Optional[str] = DEFAULT_BRANCH
        self.detached_tip: Optional[str] = None
        self.frozen = False

    # ─── Mutation ─────────────────────────────────────────────────

    def _check_mutable(self):
        if self.frozen:
            raise InvalidState(f"Repository '{self.name}' is frozen")

    def add_commit(self, commit_id: str, label: str, parents: Tuple[str, ...], timestamp: int) -> Commit:
        self._check_mutable()
        if commit_id in self.commits:
            raise DuplicateCommit(f"Commit '{commit_id}' already exists in '{self.name}'")
        if label in self._labels:
            raise DuplicateCommit(f"Label '{label}' already used in '{self.name}'")
        for parent in parents:
            if parent == commit_id or parent not in self.commits:
                raise GraphCycleError(
                    f"Commit '{commit_id}' references parent '{parent}' which does not exist yet"
                )
        commit = Commit(
            id=commit_id,
            label=label,
            parents=tuple(parents),
            timestamp=timestamp,
            seq=len(self.commits),
        )
        self.commits[commit_id] = commit
        self._labels[label] = commit_id
        return commit

    def replace_timestamp(self, commit_id: str, timestamp: int) -> Commit:
        self._check_mutable()
        commit = self.get_commit(commit_id)
        if commit is None:
            raise UnknownBranch(commit_id, self.name)
        updated = replace(commit, timestamp=timestamp)
        self.commits[commit_id] = updated
        return updated

    def set_branch(self, name: str, tip_id: str):
        self._check_mutable()
        if tip_id not in self.commits:
            raise UnknownBranch(tip_id, self.name)
        if name in self.branches:
            self.branches[name].tip_id = tip_id
        else:
            self.branches[name] = BranchRef(name=name, tip_id=tip_id)

    def attach_head(self, branch: str):
        self._check_mutable()
        self.head_branch = branch
        self.detached_tip = None

    def detach_head(self, commit_id: str):
        self._check_mutable()
        self.head_branch = None
        self.detached_tip = commit_id

    def freeze(self):
        self.frozen = True

    # ─── Queries ──────────────────────────────────────────────────

    def get_commit(self, ref: str) -> Optional[Commit]:
        """Look up a commit by id or label."""
        if ref in self.commits:
            return self.commits[ref]
        commit_id = self._labels.get(ref)
        return self.commits[commit_id] if commit_id else None

    def head_tip(self) -> Optional[str]:
        if self.head_branch is None:
            return self.detached_tip
        branch = self.branches.get(self.head_branch)
        return branch.tip_id if branch else None

    def resolve(self, ref: str) -> Optional[str]:
        """Resolve HEAD, a branch name, a label or an id to a commit id."""
        if ref == "HEAD":
            return self.head_tip()
        if ref in self.branches:
            return self.branches[ref].tip_id
        commit = self.get_commit(ref)
        return commit.id if commit else None

    def in_creation_order(self) -> List[Commit]:
        return sorted(self.commits.values(), key=lambda c: c.seq)

    def ancestry(self, commit_id: str) -> Iterator[Commit]:
        """Yield ``commit_id`` and all its ancestors, each exactly once."""
        seen: Set[str] = set()
        stack = [commit_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            commit = self.commits[current]
            yield commit
            stack.extend(commit.parents)

    def reachable(self, ref: str) -> Set[str]:
        commit_id = self.resolve(ref)
        if commit_id is None:
            raise UnknownBranch(ref, self.name)
        return {c.id for c in self.ancestry(commit_id)}

    def roots(self) -> List[Commit]:
        return [c for c in self.in_creation_order() if c.is_root]

    def generation_numbers(self) -> Dict[str, int]:
        """Topological level of every commit; roots are generation 1."""
        generations: Dict[str, int] = {}
        for commit in self.in_creation_order():
            generations[commit.id] = 1 + max(
                (generations[p] for p in commit.parents), default=0
            )
        return generations

    def dangling_refs(self) -> List[str]:
        """Branch names (or HEAD) pointing at commits that are not in the graph."""
        dangling = [
            b.name for b in self.branches.values() if b.tip_id not in self.commits
        ]
        if self.detached_tip is not None and self.detached_tip not in self.commits:
            dangling.append("HEAD")
        return dangling

    def __repr__(self) -> str:
        return (
            f"Repository(name={self.name!r}, role={self.role.value}, "
            f"commits={len(self.commits)}, branches={sorted(self.branches)})"
        )
