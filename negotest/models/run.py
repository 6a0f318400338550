"""
Run models for negotest.

A scenario is prepared once and can then be negotiated once per
algorithm. Each (prepared run, algorithm) pair moves through its own
RunStatus; a finished pair needs a fresh prepare() to run again.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Set, Union

from topogit.scenarios import Scenario

from negotest.models.trace import Algorithm, NegotiationTrace


class RunStatus(Enum):
    """Lifecycle of one (scenario, algorithm) run"""
    UNPREPARED = "unprepared"
    PREPARED = "prepared"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class PreparedRun:
    """Materialized, indexed and repacked scenario, ready to negotiate against"""

    scenario: Scenario
    root: Path
    client_dir: Path
    server_dir: Path
    client_ids: Dict[str, str]      # commit id -> git object id
    server_ids: Dict[str, str]
    names: Dict[str, str]           # git object id -> commit label
    index_digest: Optional[str]     # SHA-256 of the client's commit-graph

    _runs: Dict[Algorithm, RunStatus] = field(default_factory=dict, compare=False, repr=False)
    _active: Set[Algorithm] = field(default_factory=set, compare=False, repr=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, compare=False, repr=False)

    @property
    def server_url(self) -> str:
        return self.server_dir.resolve().as_uri()

    def status(self, algorithm: Union[Algorithm, str]) -> RunStatus:
        with self._guard:
            return self._runs.get(Algorithm(algorithm), RunStatus.PREPARED)

    def claim(self, algorithm: Union[Algorithm, str]) -> bool:
        """Reserve the algorithm's run. False if it already ran (or is running)."""
        algorithm = Algorithm(algorithm)
        with self._guard:
            if algorithm in self._runs or algorithm in self._active:
                return False
            self._active.add(algorithm)
            return True

    def finish(self, algorithm: Union[Algorithm, str], status: RunStatus):
        if status not in (RunStatus.COMPLETED, RunStatus.FAILED):
            raise ValueError(f"{status.value} is not a terminal run status")
        algorithm = Algorithm(algorithm)
        with self._guard:
            self._active.discard(algorithm)
            self._runs[algorithm] = status


@dataclass
class RunOutcome:
    """Result of one pairing inside a matrix run; failures are data here"""

    scenario: str
    algorithm: Algorithm
    status: RunStatus
    trace: Optional[NegotiationTrace] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    artifact: Optional[Path] = None
    metadata: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.COMPLETED
