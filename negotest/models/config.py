"""
Configuration model for negotest.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from negotest.models.trace import Algorithm

DEFAULT_ALGORITHMS = ["noop", "consecutive", "skipping"]
# noop never sends a have, so it is left out of the default ordering.
DEFAULT_HAVE_ORDER = ["consecutive", "skipping"]


@dataclass
class HarnessConfig:
    """Configuration for preparing scenarios and running negotiations"""

    work_dir: str = ".negotest"
    algorithms: List[str] = field(default_factory=lambda: list(DEFAULT_ALGORITHMS))

    # Git invocation
    git_binary: str = "git"
    git_config: Dict[str, str] = field(default_factory=dict)  # extra -c pairs for the fetch
    timeout_seconds: float = 60.0

    # Scheduling
    max_workers: int = 4

    # Label under which traces are stored, e.g. the git build under test
    revision: str = ""

    # Expected non-increasing order of have counts
    have_order: List[str] = field(default_factory=lambda: list(DEFAULT_HAVE_ORDER))

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        known = {a.value for a in Algorithm}
        unknown = [a for a in list(self.algorithms) + list(self.have_order) if a not in known]
        if unknown:
            raise ValueError(f"Unknown negotiation algorithm(s): {', '.join(unknown)}")

    def to_dict(self) -> dict:
        """Convert config to dictionary for storage"""
        return {
            "work_dir": self.work_dir,
            "algorithms": self.algorithms,
            "git_binary": self.git_binary,
            "git_config": self.git_config,
            "timeout_seconds": self.timeout_seconds,
            "max_workers": self.max_workers,
            "revision": self.revision,
            "have_order": self.have_order,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'HarnessConfig':
        """Create config from dictionary"""
        return cls(
            work_dir=data.get("work_dir", ".negotest"),
            algorithms=data.get("algorithms", list(DEFAULT_ALGORITHMS)),
            git_binary=data.get("git_binary", "git"),
            git_config=data.get("git_config", {}),
            timeout_seconds=data.get("timeout_seconds", 60.0),
            max_workers=data.get("max_workers", 4),
            revision=data.get("revision", ""),
            have_order=data.get("have_order", list(DEFAULT_HAVE_ORDER)),
        )

    @classmethod
    def load(cls, path: str) -> 'HarnessConfig':
        """Read a JSON config file"""
        with open(path) as f:
            return cls.from_dict(json.load(f))
