"""
negotest pytest plugin
"""
import shutil

import pytest

from negotest.harness import NegotiationHarness
from negotest.models.config import HarnessConfig


def pytest_addoption(parser):
    """Add negotest CLI options to pytest"""
    group = parser.getgroup("negotest")
    group.addoption(
        "--git-binary",
        default="git",
        help="git executable whose negotiation is under test",
    )
    group.addoption(
        "--negotest-revision",
        default="",
        help="Revision label for traces persisted by tests",
    )


def pytest_configure(config):
    """Register negotest marker"""
    config.addinivalue_line(
        "markers",
        "requires_git: test runs real git commands",
    )


def pytest_collection_modifyitems(config, items):
    """Skip git-backed tests when no git executable is available"""
    if shutil.which(config.getoption("--git-binary")):
        return
    skip = pytest.mark.skip(reason="git executable not found")
    for item in items:
        if "requires_git" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def harness_config(request, tmp_path):
    """HarnessConfig rooted in the test's temporary directory"""
    return HarnessConfig(
        work_dir=str(tmp_path / "negotest"),
        git_binary=request.config.getoption("--git-binary"),
        revision=request.config.getoption("--negotest-revision"),
        timeout_seconds=60.0,
        max_workers=2,
    )


@pytest.fixture
def negotiation_harness(harness_config):
    """Harness with its own trace store, closed after the test"""
    harness = NegotiationHarness.standalone(harness_config)
    yield harness
    harness.close()
