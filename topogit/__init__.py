"""
topogit - Deterministic commit topologies for negotiation testing
"""

from .builder import TopologyBuilder, merge_reference
from .clock import LogicalClock
from .errors import (
    TopologyError,
    InvalidState,
    UnknownBranch,
    DuplicateCommit,
    GraphCycleError,
)
from .models.graph import Commit, BranchRef, BranchHandle, Repository, RepoRole
from .scenarios import Scenario, SCENARIOS, build_scenario, build_all, random_scenario

__version__ = "0.1.0"
__all__ = [
    "TopologyBuilder",
    "merge_reference",
    "LogicalClock",
    "TopologyError",
    "InvalidState",
    "UnknownBranch",
    "DuplicateCommit",
    "GraphCycleError",
    "Commit",
    "BranchRef",
    "BranchHandle",
    "Repository",
    "RepoRole",
    "Scenario",
    "SCENARIOS",
    "build_scenario",
    "build_all",
    "random_scenario",
]
