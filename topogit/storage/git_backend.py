import hashlib
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from ..models.graph import Repository

logger = logging.getLogger(__name__)

# Variables that would redirect git away from the repository we pass explicitly.
_SCRUBBED_ENV = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_TRACE_PACKET",
)


def git_environment(extra: Optional[dict] = None) -> dict:
    """Environment for git subprocesses, isolated from system and user config."""
    env = {k: v for k, v in os.environ.items() if k not in _SCRUBBED_ENV}
    env.update({
        "GIT_CONFIG_NOSYSTEM": "1",
        "GIT_CONFIG_GLOBAL": os.devnull,
        "GIT_TERMINAL_PROMPT": "0",
        "LC_ALL": "C",
    })
    if extra:
        env.update(extra)
    return env


class GitBackend:
    """
    Uses git plumbing to write a topogit Repository into a bare git
    repository, and runs the maintenance commands (commit-graph, repack)
    negotiation depends on.

    Commits get a one-file-per-commit tree and fixed identities, so the
    same model always produces the same object ids.
    """

    AUTHOR = ("A U Thor", "author@example.com")
    COMMITTER = ("C O Mitter", "committer@example.com")
    TIMEZONE = "-0700"

    def __init__(self, git_dir: Path, git_binary: str = "git"):
        self.git_dir = Path(git_dir)
        self.git_binary = git_binary
        if not (self.git_dir / "HEAD").exists():
            self._init_bare_repo()

    def _init_bare_repo(self):
        self.git_dir.parent.mkdir(parents=True, exist_ok=True)
        subprocess.run(
            [self.git_binary, "init", "--bare", "-q", str(self.git_dir)],
            check=True,
            capture_output=True,
            env=git_environment(),
        )

    def _run(
        self,
        args: List[str],
        stdin: Optional[str] = None,
        env: Optional[dict] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command against the bare repository."""
        logger.debug(f"git --git-dir {self.git_dir} {' '.join(args)}")
        return subprocess.run(
            [self.git_binary, "--git-dir", str(self.git_dir)] + args,
            input=stdin,
            capture_output=True,
            text=True,
            check=check,
            env=env or git_environment(),
        )

    # ─── Objects ──────────────────────────────────────────────────

    def _create_blob(self, content: str) -> str:
        return self._run(["hash-object", "-w", "--stdin"], stdin=content).stdout.strip()

    def _write_tree(self, files: Dict[str, str]) -> str:
        """Build a flat tree object from {file name: blob sha}."""
        lines = [f"100644 blob {sha}\t{name}" for name, sha in sorted(files.items())]
        tree_input = "\n".join(lines) + "\n" if lines else ""
        return self._run(["mktree"], stdin=tree_input).stdout.strip()

    def _create_commit(self, tree_sha: str, message: str, parents: List[str], timestamp: int) -> str:
        cmd = ["commit-tree", tree_sha, "-m", message]
        for parent in parents:
            cmd.extend(["-p", parent])
        date = f"{timestamp} {self.TIMEZONE}"
        env = git_environment({
            "GIT_AUTHOR_NAME": self.AUTHOR[0],
            "GIT_AUTHOR_EMAIL": self.AUTHOR[1],
            "GIT_AUTHOR_DATE": date,
            "GIT_COMMITTER_NAME": self.COMMITTER[0],
            "GIT_COMMITTER_EMAIL": self.COMMITTER[1],
            "GIT_COMMITTER_DATE": date,
        })
        return self._run(cmd, env=env).stdout.strip()

    def materialize(self, repo: Repository) -> Dict[str, str]:
        """
        Write every commit, branch, label tag and HEAD of ``repo``.

        Each commit adds ``<label>.t`` to its first parent's tree, as git's
        test_commit helper does. Rewriting an already materialized
        repository is a no-op apart from re-checking objects.

        Returns:
            {commit id: git object id}
        """
        shas: Dict[str, str] = {}
        trees: Dict[str, Dict[str, str]] = {}

        for commit in repo.in_creation_order():
            files: Dict[str, str] = {}
            # First parent wins on name clashes.
            for parent in reversed(commit.parents):
                files.update(trees[parent])
            files[f"{commit.label}.t"] = self._create_blob(commit.label + "\n")

            tree_sha = self._write_tree(files)
            shas[commit.id] = self._create_commit(
                tree_sha,
                commit.label,
                [shas[p] for p in commit.parents],
                commit.timestamp,
            )
            trees[commit.id] = files

        updates = [
            f"update refs/tags/{commit.label} {shas[commit.id]}\n"
            for commit in repo.in_creation_order()
        ]
        updates += [
            f"update refs/heads/{branch.name} {shas[branch.tip_id]}\n"
            for branch in sorted(repo.branches.values(), key=lambda b: b.name)
        ]
        if updates:
            self._run(["update-ref", "--stdin"], stdin="".join(updates))

        if repo.head_branch is not None:
            self._run(["symbolic-ref", "HEAD", f"refs/heads/{repo.head_branch}"])
        elif repo.detached_tip is not None:
            self._run(["update-ref", "--no-deref", "HEAD", shas[repo.detached_tip]])

        logger.debug(f"Materialized {len(shas)} commits of '{repo.name}' into {self.git_dir}")
        return shas

    # ─── Maintenance ──────────────────────────────────────────────

    def rebuild_acceleration_index(self):
        """Write the commit-graph file over everything reachable from refs."""
        self._run(["commit-graph", "write", "--no-progress", "--reachable"])

    def repack(self):
        self._run(["repack", "-adq"])

    def commit_graph_files(self) -> List[Path]:
        info = self.git_dir / "objects" / "info"
        single = info / "commit-graph"
        if single.exists():
            return [single]
        chain_dir = info / "commit-graphs"
        return sorted(chain_dir.glob("*.graph")) if chain_dir.exists() else []

    def index_digest(self) -> Optional[str]:
        """SHA-256 over the commit-graph file(s), or None when there is none."""
        files = self.commit_graph_files()
        if not files:
            return None
        digest = hashlib.sha256()
        for path in files:
            digest.update(path.read_bytes())
        return digest.hexdigest()

    # ─── Queries ──────────────────────────────────────────────────

    def rev_parse(self, rev: str) -> Optional[str]:
        """Resolve ``rev`` to a commit id, or None if it does not resolve."""
        result = self._run(
            ["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"],
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def list_refs(self) -> Dict[str, str]:
        """{ref name: object id} for every ref in the repository."""
        result = self._run(["for-each-ref", "--format=%(refname) %(objectname)"])
        refs: Dict[str, str] = {}
        for line in result.stdout.splitlines():
            name, _, sha = line.partition(" ")
            refs[name] = sha
        return refs
