"""
NegotiationHarness - Central orchestrator for negotest.

Materializes a frozen Scenario into a pair of bare git repositories,
then runs one negotiation-only fetch per algorithm against them and
captures the packet trace of each.

Usage:
    from topogit.scenarios import build_scenario
    from negotest.harness import NegotiationHarness

    harness = NegotiationHarness.standalone()
    prepared = harness.prepare(build_scenario("clock_skew"))
    trace = harness.run(prepared, "consecutive")
    harness.persist(trace)
"""

import logging
import os
import signal
import subprocess
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from topogit.scenarios import Scenario
from topogit.storage.git_backend import GitBackend, git_environment

from negotest.comparator import TraceComparator
from negotest.errors import (
    Cancelled,
    NegotiationError,
    PreparationError,
    TraceConflictError,
    TransportFailure,
    UnresolvedTip,
)
from negotest.models.comparison import TraceDiff
from negotest.models.config import HarnessConfig
from negotest.models.run import PreparedRun, RunOutcome, RunStatus
from negotest.models.trace import Algorithm, NegotiationTrace
from negotest.packet_trace import parse_packet_trace
from negotest.storage.trace_store import TraceStore

logger = logging.getLogger(__name__)

# How often a running fetch is checked for cancellation and timeout.
POLL_INTERVAL = 0.1

# Keep the client's on-disk state untouched by the fetch itself.
_FETCH_CONFIG = {
    "protocol.version": "2",
    "gc.auto": "0",
    "maintenance.auto": "false",
}


class NegotiationHarness:
    """
    Prepares scenarios and records negotiation traces.

    Preparation of a scenario is serialized by a per-scenario lock; once
    prepared, any number of runs may execute concurrently against it.
    """

    def __init__(self, config: Optional[HarnessConfig] = None, store: Optional[TraceStore] = None):
        """
        Initialize NegotiationHarness.

        Args:
            config: Harness configuration (defaults if omitted)
            store: Optional TraceStore that persisted traces are recorded in
        """
        self.config = config or HarnessConfig()
        self.work_dir = Path(self.config.work_dir).resolve()
        self.store = store
        self.comparator = TraceComparator()

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def standalone(cls, config: Optional[HarnessConfig] = None) -> 'NegotiationHarness':
        """Create a harness with its own TraceStore inside the work directory."""
        config = config or HarnessConfig()
        work_dir = Path(config.work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        return cls(config, TraceStore(str(work_dir / "traces.sqlite")))

    def _scenario_lock(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(name, threading.Lock())

    # ==================== Preparation ====================

    def prepare(self, scenario: Scenario) -> PreparedRun:
        """
        Materialize a scenario and bring the client into canonical form.

        Writes both repositories, checks that every client branch
        resolves, then rebuilds the client's commit-graph and repacks it.
        Safe to call repeatedly.

        Raises:
            PreparationError: dangling references or a failing git command
        """
        for repo in (scenario.client, scenario.server):
            dangling = repo.dangling_refs()
            if dangling:
                raise PreparationError(
                    f"{scenario.name}: dangling references in {repo.name}: {', '.join(dangling)}"
                )

        root = self.work_dir / scenario.name
        with self._scenario_lock(scenario.name):
            try:
                server = GitBackend(root / "server.git", self.config.git_binary)
                client = GitBackend(root / "client.git", self.config.git_binary)
                server_ids = server.materialize(scenario.server)
                client_ids = client.materialize(scenario.client)

                unresolved = [
                    name for name in sorted(scenario.client.branches)
                    if client.rev_parse(f"refs/heads/{name}") is None
                ]
                if client.rev_parse("HEAD") is None:
                    unresolved.append("HEAD")
                if unresolved:
                    raise PreparationError(
                        f"{scenario.name}: client references do not resolve: {', '.join(unresolved)}"
                    )

                client.rebuild_acceleration_index()
                client.repack()
                index_digest = client.index_digest()
            except subprocess.CalledProcessError as e:
                detail = (e.stderr or "").strip() if isinstance(e.stderr, str) else ""
                raise PreparationError(f"{scenario.name}: {e}: {detail}") from e
            except OSError as e:
                raise PreparationError(f"{scenario.name}: {e}") from e

        names = {sha: scenario.server.commits[cid].label for cid, sha in server_ids.items()}
        names.update({sha: scenario.client.commits[cid].label for cid, sha in client_ids.items()})

        logger.info(
            f"Prepared {scenario.name}: {len(client_ids)} client / {len(server_ids)} server commits"
        )
        return PreparedRun(
            scenario=scenario,
            root=root,
            client_dir=client.git_dir,
            server_dir=server.git_dir,
            client_ids=client_ids,
            server_ids=server_ids,
            names=names,
            index_digest=index_digest,
        )

    # ==================== Negotiation ====================

    def run(
        self,
        prepared: PreparedRun,
        algorithm: Union[Algorithm, str],
        tips: Optional[Sequence[str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NegotiationTrace:
        """
        Run one negotiation-only fetch and return its frames.

        Args:
            prepared: Result of prepare()
            algorithm: Negotiation algorithm to select
            tips: Negotiation tips (the scenario's tips if None)
            cancel: Event that aborts the run when set

        Raises:
            PreparationError: this algorithm already ran on ``prepared``
            Cancelled: cancel was set before or during the fetch
            TransportFailure: server missing, timeout, or nothing exchanged
            UnresolvedTip: a tip does not name a client commit
        """
        algorithm = Algorithm(algorithm)
        name = prepared.scenario.name
        if not prepared.claim(algorithm):
            status = prepared.status(algorithm)
            state = "already running" if status == RunStatus.PREPARED else f"run {status.value}"
            raise PreparationError(
                f"{name}/{algorithm.value}: {state}; "
                f"prepare the scenario again to re-run it"
            )

        try:
            trace = self._negotiate_once(prepared, algorithm, tips, cancel)
        except Exception:
            prepared.finish(algorithm, RunStatus.FAILED)
            raise
        prepared.finish(algorithm, RunStatus.COMPLETED)
        return trace

    def _negotiate_once(
        self,
        prepared: PreparedRun,
        algorithm: Algorithm,
        tips: Optional[Sequence[str]],
        cancel: Optional[threading.Event],
    ) -> NegotiationTrace:
        tips = tuple(tips) if tips else prepared.scenario.tips
        name = prepared.scenario.name

        if cancel is not None and cancel.is_set():
            raise Cancelled(f"{name}/{algorithm.value}: cancelled before start", name, algorithm.value)
        if not (prepared.server_dir / "HEAD").exists():
            raise TransportFailure(
                f"{name}/{algorithm.value}: server repository {prepared.server_dir} is missing",
                name,
                algorithm.value,
            )
        tip_ids = self._resolve_tips(prepared, algorithm, tips)

        fd, trace_file = tempfile.mkstemp(prefix=f"packet.{algorithm.value}.", dir=prepared.root)
        os.close(fd)
        trace_path = Path(trace_file)
        try:
            returncode, stderr = self._negotiate(prepared, algorithm, tips, trace_path, cancel)
            text = trace_path.read_text(encoding="utf-8", errors="replace")
        finally:
            trace_path.unlink(missing_ok=True)

        frames = parse_packet_trace(text)
        if not frames:
            raise TransportFailure(
                f"{name}/{algorithm.value}: no protocol frames exchanged "
                f"(git exited {returncode}): {stderr.strip()}",
                name,
                algorithm.value,
            )
        if returncode != 0:
            logger.warning(f"{name}/{algorithm.value}: fetch exited {returncode}: {stderr.strip()}")

        trace = NegotiationTrace(
            scenario=name,
            algorithm=algorithm,
            tips=tips,
            frames=tuple(frames),
            exit_status=returncode,
            names=dict(prepared.names),
            tip_ids=tip_ids,
        )
        logger.info(
            f"{name}/{algorithm.value}: {len(frames)} frames, "
            f"{trace.have_count} haves, {trace.round_count} rounds"
        )
        return trace

    def _resolve_tips(
        self,
        prepared: PreparedRun,
        algorithm: Algorithm,
        tips: Tuple[str, ...],
    ) -> Tuple[str, ...]:
        """Client object id of every tip, in order."""
        name = prepared.scenario.name
        if not (prepared.client_dir / "HEAD").exists():
            raise UnresolvedTip(
                f"{name}/{algorithm.value}: client repository {prepared.client_dir} is missing",
                name,
                algorithm.value,
            )
        client = GitBackend(prepared.client_dir, self.config.git_binary)
        try:
            resolved = [(tip, client.rev_parse(tip)) for tip in tips]
        except OSError as e:
            raise TransportFailure(f"{name}/{algorithm.value}: cannot start git: {e}", name, algorithm.value) from e

        unresolved = [tip for tip, sha in resolved if sha is None]
        if unresolved:
            raise UnresolvedTip(
                f"{name}/{algorithm.value}: tips do not resolve in the client: {', '.join(unresolved)}",
                name,
                algorithm.value,
            )
        return tuple(sha for _, sha in resolved)

    def _negotiate(
        self,
        prepared: PreparedRun,
        algorithm: Algorithm,
        tips: Tuple[str, ...],
        trace_path: Path,
        cancel: Optional[threading.Event],
    ) -> Tuple[int, str]:
        scenario = prepared.scenario.name
        name = f"{scenario}/{algorithm.value}"
        cmd = [self.config.git_binary, "--git-dir", str(prepared.client_dir)]
        fetch_config = {**_FETCH_CONFIG, **self.config.git_config}
        fetch_config["fetch.negotiationAlgorithm"] = algorithm.value
        for key, value in sorted(fetch_config.items()):
            cmd.extend(["-c", f"{key}={value}"])
        cmd.extend(["fetch", "--negotiate-only"])
        cmd.extend(f"--negotiation-tip={tip}" for tip in tips)
        cmd.extend([
            # Only the client side of the exchange is traced.
            "--upload-pack", "unset GIT_TRACE_PACKET; git-upload-pack",
            prepared.server_url,
        ])

        logger.debug(f"{name}: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=git_environment({"GIT_TRACE_PACKET": str(trace_path)}),
                # Own process group, so upload-pack and other children die with git.
                start_new_session=True,
            )
        except OSError as e:
            raise TransportFailure(f"{name}: cannot start git: {e}", scenario, algorithm.value) from e

        deadline = time.monotonic() + self.config.timeout_seconds
        while True:
            try:
                _, stderr = proc.communicate(timeout=POLL_INTERVAL)
                return proc.returncode, stderr or ""
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    self._kill(proc)
                    raise Cancelled(f"{name}: cancelled during fetch", scenario, algorithm.value)
                if time.monotonic() > deadline:
                    self._kill(proc)
                    raise TransportFailure(
                        f"{name}: no answer within {self.config.timeout_seconds}s",
                        scenario, algorithm.value,
                    )

    @staticmethod
    def _kill(proc: subprocess.Popen):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.communicate()

    def run_matrix(
        self,
        scenarios: Iterable[Scenario],
        algorithms: Optional[Sequence[Union[Algorithm, str]]] = None,
        tips: Optional[Sequence[str]] = None,
        cancel: Optional[threading.Event] = None,
        persist: bool = False,
    ) -> List[RunOutcome]:
        """
        Run every (scenario, algorithm) pairing on a worker pool.

        A failure only affects its own pairing and is reported in the
        returned outcomes, which follow scenario x algorithm order.
        """
        scenarios = list(scenarios)
        algorithms = [Algorithm(a) for a in (algorithms or self.config.algorithms)]
        outcomes: Dict[Tuple[str, Algorithm], RunOutcome] = {}

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            prepare_futures = [(s, pool.submit(self.prepare, s)) for s in scenarios]

            run_futures = []
            for scenario, future in prepare_futures:
                try:
                    prepared = future.result()
                except PreparationError as e:
                    logger.error(f"Preparation of {scenario.name} failed: {e}", exc_info=True)
                    for algorithm in algorithms:
                        outcomes[(scenario.name, algorithm)] = RunOutcome(
                            scenario=scenario.name,
                            algorithm=algorithm,
                            status=RunStatus.UNPREPARED,
                            error=str(e),
                            reason="preparation_error",
                        )
                    continue
                for algorithm in algorithms:
                    run_futures.append(
                        pool.submit(self._run_outcome, prepared, algorithm, tips, cancel)
                    )

            for future in run_futures:
                outcome = future.result()
                outcomes[(outcome.scenario, outcome.algorithm)] = outcome

        if persist:
            for outcome in outcomes.values():
                if outcome.ok:
                    self._persist_outcome(outcome)

        return [outcomes[(s.name, a)] for s in scenarios for a in algorithms]

    def _run_outcome(
        self,
        prepared: PreparedRun,
        algorithm: Algorithm,
        tips: Optional[Sequence[str]],
        cancel: Optional[threading.Event],
    ) -> RunOutcome:
        try:
            trace = self.run(prepared, algorithm, tips, cancel)
        except NegotiationError as e:
            logger.error(f"Negotiation {prepared.scenario.name}/{algorithm.value} failed: {e}", exc_info=True)
            return RunOutcome(
                scenario=prepared.scenario.name,
                algorithm=algorithm,
                status=RunStatus.FAILED,
                error=str(e),
                reason=e.reason,
            )
        return RunOutcome(
            scenario=prepared.scenario.name,
            algorithm=algorithm,
            status=RunStatus.COMPLETED,
            trace=trace,
            metadata={"index_digest": prepared.index_digest},
        )

    def _persist_outcome(self, outcome: RunOutcome):
        try:
            outcome.artifact = self.persist(outcome.trace)
        except TraceConflictError as e:
            logger.error(f"Trace {outcome.scenario}/{outcome.algorithm.value} conflicts: {e}")
            outcome.status = RunStatus.FAILED
            outcome.error = str(e)
            outcome.reason = "trace_conflict"

    # ==================== Artifacts ====================

    def artifact_dir(self, scenario: str, revision: str = "") -> Path:
        directory = self.work_dir / scenario
        if revision:
            directory = directory / revision.replace("/", "_")
        return directory

    def artifact_path(self, scenario: str, algorithm: Union[Algorithm, str], revision: str = "") -> Path:
        algorithm = Algorithm(algorithm)
        return self.artifact_dir(scenario, revision) / f"baseline.{algorithm.value}"

    def tips_path(self, scenario: str, revision: str = "") -> Path:
        """Resolved tip ids, one per line, shared by every baseline of the scenario."""
        return self.artifact_dir(scenario, revision) / "tips"

    def persist(self, trace: NegotiationTrace, revision: Optional[str] = None) -> Path:
        """
        Write the trace artifact and its tips file, and record the trace in the store.

        Artifacts are write-once: identical content is accepted again,
        anything else raises TraceConflictError. All baselines of a
        scenario must have been negotiated from the same tip commits.
        """
        revision = self.config.revision if revision is None else revision
        artifact = self.artifact_path(trace.scenario, trace.algorithm, revision)
        tips_file = self.tips_path(trace.scenario, revision)
        text = trace.to_text()
        tips_text = "".join(f"{sha}\n" for sha in trace.tip_ids)

        if artifact.exists() and artifact.read_text(encoding="utf-8") != text:
            raise TraceConflictError(f"{artifact} already holds a different trace")
        if trace.tip_ids and tips_file.exists() and tips_file.read_text(encoding="utf-8") != tips_text:
            raise TraceConflictError(f"{tips_file} records different tips than {trace.tips}")

        artifact.parent.mkdir(parents=True, exist_ok=True)
        if not artifact.exists():
            artifact.write_text(text, encoding="utf-8")
        if trace.tip_ids and not tips_file.exists():
            tips_file.write_text(tips_text, encoding="utf-8")

        if self.store is not None:
            self.store.insert_trace(trace, revision)
        return artifact

    def load(self, scenario: str, algorithm: Union[Algorithm, str], revision: Optional[str] = None) -> Optional[NegotiationTrace]:
        """Read a persisted trace back, from the store if there is one, else from its artifacts."""
        revision = self.config.revision if revision is None else revision
        algorithm = Algorithm(algorithm)
        if self.store is not None:
            return self.store.get_trace(scenario, algorithm.value, revision)
        artifact = self.artifact_path(scenario, algorithm, revision)
        if not artifact.exists():
            return None
        tips_file = self.tips_path(scenario, revision)
        tip_ids = tips_file.read_text(encoding="utf-8").split() if tips_file.exists() else ()
        return NegotiationTrace.from_text(
            artifact.read_text(encoding="utf-8"),
            scenario=scenario,
            algorithm=algorithm,
            tip_ids=tuple(tip_ids),
        )

    # ==================== Comparison ====================

    def compare(self, trace_a: NegotiationTrace, trace_b: NegotiationTrace) -> TraceDiff:
        """Diff two traces; the result is stored when a TraceStore is attached."""
        diff = self.comparator.compare(trace_a, trace_b)
        if self.store is not None:
            self.store.insert_comparison(diff)
        return diff

    # ==================== Lifecycle ====================

    def close(self):
        if self.store is not None:
            self.store.close()
