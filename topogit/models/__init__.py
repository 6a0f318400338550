"""Data models for topogit"""

from .graph import (
    DEFAULT_BRANCH,
    Commit,
    BranchRef,
    BranchHandle,
    Repository,
    RepoRole,
)

__all__ = [
    "DEFAULT_BRANCH",
    "Commit",
    "BranchRef",
    "BranchHandle",
    "Repository",
    "RepoRole",
]
