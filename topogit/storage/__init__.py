"""Storage backends for topogit"""

from .git_backend import GitBackend, git_environment

__all__ = [
    "GitBackend",
    "git_environment",
]
