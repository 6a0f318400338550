import json

import pytest

from negotest.models.config import DEFAULT_ALGORITHMS, DEFAULT_HAVE_ORDER, HarnessConfig


def test_defaults():
    config = HarnessConfig()
    assert config.algorithms == DEFAULT_ALGORITHMS
    assert config.have_order == DEFAULT_HAVE_ORDER
    assert config.revision == ""


def test_dict_round_trip():
    config = HarnessConfig(work_dir="/tmp/nt", algorithms=["skipping"], git_config={"a.b": "c"})
    assert HarnessConfig.from_dict(config.to_dict()) == config


def test_load_fills_missing_keys(tmp_path):
    path = tmp_path / "negotest.json"
    path.write_text(json.dumps({"max_workers": 1, "revision": "v2.43"}))

    config = HarnessConfig.load(str(path))

    assert config.max_workers == 1
    assert config.revision == "v2.43"
    assert config.timeout_seconds == 60.0


@pytest.mark.parametrize("overrides", [
    {"max_workers": 0},
    {"timeout_seconds": 0},
    {"algorithms": ["bogus"]},
    {"have_order": ["consecutive", "bogus"]},
])
def test_invalid_values(overrides):
    with pytest.raises(ValueError):
        HarnessConfig(**overrides)
