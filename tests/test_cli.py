import pytest
from click.testing import CliRunner

from negotest.cli.main import cli


@pytest.fixture
def invoke(tmp_path):
    runner = CliRunner()
    work_dir = str(tmp_path / "work")

    def run(*args):
        return runner.invoke(cli, ["--work-dir", work_dir, *args])
    return run


def test_scenarios_lists_every_name(invoke):
    result = invoke("scenarios")

    assert result.exit_code == 0
    for name in ("no_parents", "two_colliding_skips", "multi_round", "clock_skew"):
        assert name in result.output


def test_unknown_scenario_is_a_usage_error(invoke):
    assert invoke("run", "nope").exit_code == 2
    assert invoke("build", "nope").exit_code == 2


def test_unknown_algorithm_is_a_usage_error(invoke):
    assert invoke("run", "clock_skew", "-a", "bogus").exit_code == 2


def test_compare_without_traces(invoke):
    result = invoke("compare", "clock_skew", "consecutive", "skipping")
    assert result.exit_code == 2


def test_check_without_traces(invoke):
    assert invoke("check", "clock_skew").exit_code == 2


def test_config_file(tmp_path):
    config = tmp_path / "negotest.json"
    config.write_text('{"max_workers": 0}')

    result = CliRunner().invoke(cli, ["--config", str(config), "scenarios"])

    assert result.exit_code != 0
    assert isinstance(result.exception, ValueError)


@pytest.mark.requires_git
class TestWithGit:

    def test_build(self, invoke):
        result = invoke("build", "clock_skew")

        assert result.exit_code == 0, result.output
        assert "clock_skew: 6 client commits, 1 server commits" in result.output

    def test_run_compare_check(self, invoke):
        run = invoke("run", "clock_skew", "-a", "consecutive", "-a", "skipping")
        assert run.exit_code == 0, run.output
        assert "clock_skew/consecutive:" in run.output
        assert "clock_skew/skipping:" in run.output

        again = invoke("run", "clock_skew", "-a", "consecutive")
        assert again.exit_code == 0, again.output

        compare = invoke("compare", "clock_skew", "consecutive", "skipping")
        assert compare.exit_code == 0, compare.output
        assert "clock_skew/consecutive vs clock_skew/skipping" in compare.output

        check = invoke("check", "clock_skew")
        assert check.exit_code == 0, check.output
        assert "consecutive" in check.output

    def test_revisions_are_kept_apart(self, invoke):
        assert invoke("run", "no_parents", "-a", "consecutive", "--revision", "old").exit_code == 0
        assert invoke("run", "no_parents", "-a", "consecutive", "--revision", "new").exit_code == 0

        result = invoke(
            "compare", "no_parents", "consecutive", "consecutive",
            "--revision", "old", "--against-revision", "new",
        )
        assert result.exit_code == 0, result.output
        assert "identical" in result.output

    def test_unknown_tip_fails_the_run(self, invoke):
        result = invoke("run", "clock_skew", "-a", "consecutive", "--tip", "nope")

        assert result.exit_code == 1
        assert "clock_skew/consecutive: FAILED (unresolved_tip)" in result.output
