# unity_builder.py

from collections import deque
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .command_runner import CommandRunner, run_command
from .config import ListenerConfig
from .fs_utils import ensure_folder
from .log import get_logger
from .stop_signal import StopSignal

logger = get_logger(__name__)

LOG_TAIL_LINES = 20


class UnityBuilder:
    """Runs Unity in batch mode against the configured project.

    Success means Unity exited with code 0. The Unity log file is the only
    diagnostic output; this class never parses it, it only echoes its tail
    when a build fails.
    """

    def __init__(
        self,
        config: ListenerConfig,
        runner: CommandRunner = run_command,
        stop_signal: Optional[StopSignal] = None,
    ):
        self.config = config
        self.runner = runner
        self.stop_signal = stop_signal

    def command_line(self, method: str, extra_args: Sequence[Union[str, Path]] = ()) -> List[str]:
        return [
            str(self.config.unity_executable),
            "-batchmode",
            "-nographics",
            "-quit",
            "-projectPath", str(self.config.unity_project_path),
            "-logFile", str(self.config.unity_log_file),
            "-executeMethod", method,
            *[str(a) for a in extra_args],
        ]

    def invoke(self, method: str, extra_args: Sequence[Union[str, Path]] = ()) -> bool:
        """Runs one Unity entry point and blocks until Unity exits.

        Args:
            method: Static C# method passed to ``-executeMethod``.
            extra_args: Extra command line arguments read by that method.
        Returns:
            bool: True iff the exit code is exactly 0.
        """
        ensure_folder(self.config.unity_log_file.parent)
        args = self.command_line(method, extra_args)
        logger.info(f"[Unity] Starting batch build: {' '.join(args)}")

        result = self.runner(
            args,
            cwd=self.config.unity_project_path,
            timeout=self.config.unity_timeout,
            stop_signal=self.stop_signal,
        )
        if result.ok:
            logger.info(f"[Unity] {method} finished successfully.")
            return True

        logger.error(f"[Unity] {method} failed: {result.describe()}. See log at {self.config.unity_log_file}")
        tail = self._log_tail()
        if tail:
            logger.error(f"[Unity] Last lines of the Unity log:\n{tail}")
        return False

    def build_game(self, output_dir: Union[str, Path], executable_name: Optional[str] = None) -> bool:
        """Full player build written to ``output_dir/executable_name``."""
        output = ensure_folder(output_dir)
        target = output / (executable_name or self.config.executable_name)
        return self.invoke(self.config.build_method, ["-customBuildPath", target])

    def build_asset_bundles(self, session_id: str, output_dir: Union[str, Path]) -> bool:
        """Asset bundle build for the models a user uploaded in ``session_id``."""
        output = ensure_folder(output_dir)
        return self.invoke(
            self.config.asset_bundle_method,
            ["-sessionId", session_id, "-assetBundleOutput", output],
        )

    def _log_tail(self) -> str:
        try:
            with open(self.config.unity_log_file, "r", encoding="utf-8", errors="replace") as f:
                return "".join(deque(f, maxlen=LOG_TAIL_LINES)).rstrip()
        except OSError:
            return ""
