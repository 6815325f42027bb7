# reconciler.py
"""Brings the local Unity project checkout to an exact commit before a build.

The reconciler avoids network traffic when it can: nothing is fetched if
HEAD already is the requested commit, and the branch is only pulled when the
commit is still unknown locally after a fetch. Pulls are fast-forward only,
so a diverged local branch fails loudly instead of producing a merge commit.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .command_runner import CommandResult, CommandRunner, run_command
from .errors import RequestValidationError
from .log import get_logger
from .stop_signal import StopSignal

logger = get_logger(__name__)


class ReconcileState(str, Enum):
    UNKNOWN = "UNKNOWN"
    FETCHED = "FETCHED"
    VERIFIED_LOCAL = "VERIFIED_LOCAL"
    NEEDS_PULL = "NEEDS_PULL"
    VERIFIED_AFTER_PULL = "VERIFIED_AFTER_PULL"
    CHECKED_OUT = "CHECKED_OUT"
    FAILED = "FAILED"


@dataclass
class ReconcileResult:
    ok: bool
    state: ReconcileState
    message: str = ""
    # The last state reached before a failure, useful when reading logs.
    failed_from: Optional[ReconcileState] = None


class GitClient:
    """Thin wrapper over the git CLI for one working tree."""

    def __init__(
        self,
        repo_path: Union[str, Path],
        runner: CommandRunner = run_command,
        timeout: Optional[float] = None,
        stop_signal: Optional[StopSignal] = None,
        git_executable: str = "git",
    ):
        self.repo_path = Path(repo_path)
        self.runner = runner
        self.timeout = timeout
        self.stop_signal = stop_signal
        self.git_executable = git_executable

    def run(self, *args: str) -> CommandResult:
        return self.runner(
            [self.git_executable, *args],
            cwd=self.repo_path,
            timeout=self.timeout,
            stop_signal=self.stop_signal,
        )

    def head_commit(self) -> CommandResult:
        return self.run("rev-parse", "HEAD")

    def fetch_all(self) -> CommandResult:
        return self.run("fetch", "--all")

    def object_type(self, object_id: str) -> CommandResult:
        return self.run("cat-file", "-t", object_id)

    def checkout_branch(self, branch_name: str) -> CommandResult:
        return self.run("checkout", branch_name)

    def pull_ff_only(self, branch_name: str, remote: str = "origin") -> CommandResult:
        return self.run("pull", "--ff-only", remote, branch_name)

    def checkout_commit(self, commit_hash: str) -> CommandResult:
        return self.run("checkout", "--detach", commit_hash)


def head_matches(head: str, commit_hash: str) -> bool:
    """True if ``head`` is ``commit_hash``, or starts with it when an abbreviated hash was requested."""
    head = head.strip().lower()
    wanted = commit_hash.strip().lower()
    if not head or not wanted:
        return False
    return head == wanted or (len(wanted) < len(head) and head.startswith(wanted))


class CommitReconciler:
    """Leaves the working tree checked out (detached) at the requested commit, or reports why it could not."""

    def __init__(self, git: GitClient):
        self.git = git
        self.state = ReconcileState.UNKNOWN
        self.transitions: List[ReconcileState] = []

    def _move(self, state: ReconcileState) -> None:
        logger.debug(f"[Git] {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    def _fail(self, message: str, result: Optional[CommandResult] = None) -> ReconcileResult:
        if result is not None:
            message = f"{message}: {result.describe()}"
            if result.output:
                message = f"{message}\n{result.output}"
        failed_from = self.state
        self._move(ReconcileState.FAILED)
        logger.error(f"[Git] {message}")
        return ReconcileResult(ok=False, state=ReconcileState.FAILED, message=message, failed_from=failed_from)

    def _is_commit(self, commit_hash: str) -> Tuple[bool, CommandResult]:
        result = self.git.object_type(commit_hash)
        return result.ok and result.stdout.strip() == "commit", result

    def reconcile(self, branch_name: str, commit_hash: str) -> ReconcileResult:
        """Checks out ``commit_hash``, fetching and fast-forwarding ``branch_name`` only if needed.

        Args:
            branch_name: Branch expected to contain the commit.
            commit_hash: Full or abbreviated commit hash to build from.
        Returns:
            ReconcileResult: ``ok`` is True once the tree is at the commit.
        Raises:
            RequestValidationError: If ``commit_hash`` is empty. No git command runs.
        """
        commit_hash = (commit_hash or "").strip()
        branch_name = (branch_name or "").strip()
        if not commit_hash:
            raise RequestValidationError("commit_hash is required to reconcile the checkout")

        self.state = ReconcileState.UNKNOWN
        self.transitions = [ReconcileState.UNKNOWN]
        logger.info(f"[Git] Reconciling {self.git.repo_path} to {branch_name}@{commit_hash}")

        head = self.git.head_commit()
        if head.ok and head_matches(head.stdout, commit_hash):
            logger.info(f"[Git] HEAD is already at {commit_hash}, skipping fetch and checkout.")
            self._move(ReconcileState.CHECKED_OUT)
            return ReconcileResult(ok=True, state=self.state, message="already at requested commit")

        fetch = self.git.fetch_all()
        if not fetch.ok:
            return self._fail("git fetch failed", fetch)
        self._move(ReconcileState.FETCHED)

        is_commit, type_query = self._is_commit(commit_hash)
        if is_commit:
            self._move(ReconcileState.VERIFIED_LOCAL)
        else:
            logger.info(
                f"[Git] {commit_hash} not available locally after fetch "
                f"({type_query.output or 'no output'}); updating branch '{branch_name}'."
            )
            self._move(ReconcileState.NEEDS_PULL)
            if not branch_name:
                return self._fail(f"Commit {commit_hash} is not available locally and no branch was given to pull")

            checkout = self.git.checkout_branch(branch_name)
            if not checkout.ok:
                return self._fail(f"git checkout {branch_name} failed", checkout)

            pull = self.git.pull_ff_only(branch_name)
            if not pull.ok:
                return self._fail(f"git pull --ff-only {branch_name} failed", pull)

            is_commit, type_query = self._is_commit(commit_hash)
            if not is_commit:
                return self._fail(
                    f"Commit {commit_hash} is still not a commit object after fetch and pull of '{branch_name}'",
                    type_query,
                )
            self._move(ReconcileState.VERIFIED_AFTER_PULL)

        checkout = self.git.checkout_commit(commit_hash)
        if not checkout.ok:
            return self._fail(f"git checkout {commit_hash} failed", checkout)

        self._move(ReconcileState.CHECKED_OUT)
        logger.info(f"[Git] Checked out {commit_hash} (detached).")
        return ReconcileResult(ok=True, state=self.state, message=f"checked out {commit_hash}")
