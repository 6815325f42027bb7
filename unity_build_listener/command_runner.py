# command_runner.py

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .log import get_logger
from .stop_signal import StopSignal

logger = get_logger(__name__)

# Seconds to wait after terminate() before falling back to kill().
TERMINATE_GRACE_SECONDS = 5


@dataclass
class CommandResult:
    args: List[str]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    @property
    def output(self) -> str:
        """Stdout followed by stderr, stripped. Used for verbatim failure logs."""
        return "\n".join(part.strip() for part in (self.stdout, self.stderr) if part and part.strip())

    def describe(self) -> str:
        command = " ".join(self.args)
        if self.cancelled:
            return f"'{command}' was cancelled by the stop signal"
        if self.timed_out:
            return f"'{command}' timed out"
        return f"'{command}' exited with code {self.returncode}"


CommandRunner = Callable[..., CommandResult]


def _stop_process(process: subprocess.Popen):
    """Terminates the process, killing it if it ignores the request. Returns remaining output."""
    process.terminate()
    try:
        return process.communicate(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning(f"[Command] PID {process.pid} did not terminate gracefully, killing it.")
        process.kill()
        return process.communicate()


def run_command(
    args: Sequence[Union[str, Path]],
    cwd: Optional[Union[str, Path]] = None,
    timeout: Optional[float] = None,
    stop_signal: Optional[StopSignal] = None,
    poll_interval: float = 1.0,
) -> CommandResult:
    """Runs an external command to completion and captures its output.

    The call blocks until the process exits, ``timeout`` seconds pass, or
    ``stop_signal`` is raised. In the last two cases the process is
    terminated (then killed) and the result is marked accordingly.

    Args:
        args: Executable followed by its arguments.
        cwd: Working directory for the process.
        timeout: Maximum wall-clock seconds, or None for no limit.
        stop_signal: Cancellation token checked every ``poll_interval`` seconds.
        poll_interval: How often to check the timeout and stop signal.
    Returns:
        CommandResult: Exit code and captured output. A missing executable
        gives ``returncode=None`` instead of raising.
    """
    argv = [str(a) for a in args]
    logger.debug(f"[Command] Running: {' '.join(argv)} (cwd={cwd})")

    try:
        process = subprocess.Popen(
            argv,
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        logger.error(f"[Command] Could not start '{argv[0]}': {e}")
        return CommandResult(args=argv, returncode=None, stderr=str(e))

    deadline = time.monotonic() + timeout if timeout else None
    stdout, stderr = "", ""
    while True:
        wait_for = poll_interval
        if deadline is not None:
            wait_for = max(0.0, min(poll_interval, deadline - time.monotonic()))
        try:
            stdout, stderr = process.communicate(timeout=wait_for)
            break
        except subprocess.TimeoutExpired:
            pass

        if stop_signal is not None and stop_signal.is_set():
            logger.warning(f"[Command] Stop signal observed, cancelling: {' '.join(argv)}")
            stdout, stderr = _stop_process(process)
            return CommandResult(argv, process.returncode, stdout or "", stderr or "", cancelled=True)

        if deadline is not None and time.monotonic() >= deadline:
            logger.error(f"[Command] Timed out after {timeout}s: {' '.join(argv)}")
            stdout, stderr = _stop_process(process)
            return CommandResult(argv, process.returncode, stdout or "", stderr or "", timed_out=True)

    return CommandResult(argv, process.returncode, stdout or "", stderr or "")
