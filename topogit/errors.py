"""Errors raised while building commit topologies."""


class TopologyError(Exception):
    """Base class for structural errors in a scenario definition."""


class InvalidState(TopologyError):
    """Topology built out of order, or modified after the repository was frozen."""


class UnknownBranch(TopologyError):
    """Reference to a branch (or commit) that was never created."""

    def __init__(self, name: str, repository: str = ""):
        self.name = name
        self.repository = repository
        where = f" in '{repository}'" if repository else ""
        super().__init__(f"Branch '{name}' not found{where}")


class DuplicateCommit(TopologyError):
    """A commit identifier or label was created twice."""


class GraphCycleError(TopologyError):
    """A commit names a parent that does not exist yet."""
