"""
negotest CLI - Main entry point
"""
import logging
import sys

import click

from topogit.scenarios import SCENARIOS, build_all, build_scenario

from negotest.comparator import have_count_violations, render_diff
from negotest.errors import PreparationError
from negotest.harness import NegotiationHarness
from negotest.models.config import HarnessConfig
from negotest.models.trace import Algorithm

ALGORITHM_CHOICE = click.Choice([a.value for a in Algorithm])


def _scenario(name):
    try:
        return build_scenario(name)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="SCENARIO")


@click.group()
@click.version_option(version="0.1.0")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="JSON configuration file")
@click.option("--work-dir", type=click.Path(file_okay=False), help="Where repositories and traces live")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config_path, work_dir, verbose):
    """negotest - Compare git fetch negotiation algorithms on crafted histories"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = HarnessConfig.load(config_path) if config_path else HarnessConfig()
    if work_dir:
        config.work_dir = work_dir
    ctx.obj = config


@cli.command()
def scenarios():
    """List scenario names"""
    for name, builder in SCENARIOS.items():
        click.echo(f"{name:22} {builder().description}")


@cli.command()
@click.argument("names", nargs=-1)
@click.pass_obj
def build(config, names):
    """Build and prepare scenarios (all of them by default)"""
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        raise click.BadParameter(f"unknown scenario(s): {', '.join(unknown)}", param_hint="NAMES")

    harness = NegotiationHarness(config)
    failed = False
    for scenario in build_all(list(names) or None):
        try:
            prepared = harness.prepare(scenario)
        except PreparationError as e:
            click.echo(f"{scenario.name}: FAILED {e}", err=True)
            failed = True
            continue
        click.echo(
            f"{scenario.name}: {len(prepared.client_ids)} client commits, "
            f"{len(prepared.server_ids)} server commits, tips {' '.join(scenario.tips)}"
        )
    if failed:
        sys.exit(1)


@cli.command()
@click.argument("scenario_name", metavar="SCENARIO")
@click.option("-a", "--algorithm", "algorithms", multiple=True, type=ALGORITHM_CHOICE,
              help="Algorithm to run (repeatable, default: all configured)")
@click.option("--tip", "tips", multiple=True, help="Negotiation tip (repeatable, default: the scenario's)")
@click.option("--revision", default=None, help="Label to store the traces under")
@click.pass_obj
def run(config, scenario_name, algorithms, tips, revision):
    """Run the negotiation harness over one scenario"""
    scenario = _scenario(scenario_name)
    if revision is not None:
        config.revision = revision

    harness = NegotiationHarness.standalone(config)
    try:
        outcomes = harness.run_matrix(
            [scenario],
            algorithms=list(algorithms) or None,
            tips=list(tips) or None,
            persist=True,
        )
    finally:
        harness.close()

    for outcome in outcomes:
        if outcome.ok:
            click.echo(
                f"{outcome.scenario}/{outcome.algorithm.value}: "
                f"{outcome.trace.have_count} haves, {outcome.trace.round_count} rounds -> {outcome.artifact}"
            )
        else:
            click.echo(f"{outcome.scenario}/{outcome.algorithm.value}: FAILED ({outcome.reason}) {outcome.error}", err=True)

    if not all(o.ok for o in outcomes):
        sys.exit(1)


@cli.command()
@click.argument("scenario_name", metavar="SCENARIO")
@click.argument("baseline", type=ALGORITHM_CHOICE)
@click.argument("candidate", type=ALGORITHM_CHOICE)
@click.option("--revision", default=None, help="Revision the traces were stored under")
@click.option("--against-revision", default=None, help="Revision of the candidate trace, if different")
@click.pass_obj
def compare(config, scenario_name, baseline, candidate, revision, against_revision):
    """Diff two stored traces frame by frame"""
    harness = NegotiationHarness.standalone(config)
    try:
        trace_a = harness.load(scenario_name, baseline, revision)
        trace_b = harness.load(
            scenario_name, candidate, against_revision if against_revision is not None else revision
        )
        missing = [a for a, t in ((baseline, trace_a), (candidate, trace_b)) if t is None]
        if missing:
            click.echo(f"No stored trace for {scenario_name}/{', '.join(missing)}; run it first", err=True)
            sys.exit(2)

        diff = harness.compare(trace_a, trace_b)
    finally:
        harness.close()

    status = "identical" if diff.identical else "differs"
    click.echo(f"{diff.baseline_label} vs {diff.candidate_label}: {status} ({diff.comparison_id})")
    click.echo(
        f"  haves {diff.baseline_have_count} -> {diff.candidate_have_count}, "
        f"rounds {diff.baseline_round_count} -> {diff.candidate_round_count}"
    )
    if not diff.identical:
        click.echo(
            f"  first mismatch at position {diff.root_cause_index}, "
            f"+{diff.added} -{diff.removed} ~{diff.diverged + diff.cascaded}"
        )
        click.echo(render_diff(trace_a, trace_b), nl=False)


@cli.command()
@click.argument("scenario_name", metavar="SCENARIO")
@click.option("--revision", default=None, help="Revision the traces were stored under")
@click.pass_obj
def check(config, scenario_name, revision):
    """Check stored have counts against the expected algorithm ordering"""
    harness = NegotiationHarness.standalone(config)
    try:
        traces = {}
        for name in config.have_order:
            trace = harness.load(scenario_name, name, revision)
            if trace is not None:
                traces[name] = trace
    finally:
        harness.close()

    if len(traces) < 2:
        click.echo(f"Need at least two stored traces of {', '.join(config.have_order)}", err=True)
        sys.exit(2)

    for name, trace in traces.items():
        click.echo(f"{name:12} {trace.have_count} haves")
    violations = have_count_violations(traces, config.have_order)
    for violation in violations:
        click.echo(f"regression candidate: {violation.describe()}")
    if not violations:
        click.echo("ordering holds")


if __name__ == "__main__":
    cli()
