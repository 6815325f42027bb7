# listener.py

import argparse
import sys
import time
from typing import Callable, Optional

from .config import ListenerConfig, load_config
from .errors import ConfigurationError, MessageParseError, UnrecognizedCommandError
from .log import get_logger, setup_logging
from .messages import RECOGNIZED_COMMANDS, BuildResult, decode_request
from .pipeline import BuildPipeline
from .publisher import CompletionPublisher
from .queue_poller import QueuePoller
from .reconciler import CommitReconciler, GitClient
from .stop_signal import StopSignal
from .unity_builder import UnityBuilder
from .uploader import ArtifactUploader

logger = get_logger(__name__)


class BuildListener:
    """Polls for build requests and runs them one at a time until the stop file appears."""

    def __init__(
        self,
        config: ListenerConfig,
        poller: QueuePoller,
        pipeline: BuildPipeline,
        stop_signal: StopSignal,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.poller = poller
        self.pipeline = pipeline
        self.stop_signal = stop_signal
        self.sleep = sleep

    def run_once(self) -> Optional[BuildResult]:
        """Pulls and handles at most one request.

        Returns:
            The published BuildResult, or None if there was no message or it was dropped.
        """
        message = self.poller.poll_once()
        if message is None:
            return None

        try:
            request = decode_request(message.data, message.attributes, self.config.default_branch)
        except MessageParseError as e:
            logger.error(f"[Listener] Could not parse message {message.message_id}: {e}")
            return None

        if request.command not in RECOGNIZED_COMMANDS:
            logger.warning(f"[Listener] Dropping message {message.message_id}: {UnrecognizedCommandError(request.command)}")
            return None

        logger.info(
            f"[Listener] Request {request.build_id}: command={request.command} "
            f"format={request.message_format}"
        )
        return self.pipeline.handle(request)

    def run(self, max_iterations: Optional[int] = None) -> int:
        """Main loop. Returns the number of iterations performed."""
        logger.info(f"[Listener] Listening on {self.poller.subscription_path} (stop file: {self.stop_signal.path})")
        iterations = 0
        while max_iterations is None or iterations < max_iterations:
            if self.stop_signal.is_set():
                logger.info(f"[Listener] Stop file {self.stop_signal.path} found, shutting down.")
                break

            iterations += 1
            result = None
            try:
                result = self.run_once()
            except Exception:
                logger.exception("[Listener] Unexpected error in listener iteration")

            if max_iterations is not None and iterations >= max_iterations:
                break
            # Only idle polls wait before the next pull.
            if result is None and not self.stop_signal.is_set():
                self.sleep(self.config.poll_interval)

        logger.info(f"[Listener] Stopped after {iterations} iteration(s).")
        return iterations


def build_listener(config: ListenerConfig) -> BuildListener:
    """Wires every component from one configuration."""
    stop_signal = StopSignal(config.stop_file)
    git = GitClient(config.unity_project_path, timeout=config.git_timeout, stop_signal=stop_signal)
    pipeline = BuildPipeline(
        config,
        reconciler=CommitReconciler(git),
        builder=UnityBuilder(config, stop_signal=stop_signal),
        uploader=ArtifactUploader(config),
        publisher=CompletionPublisher(config),
    )
    return BuildListener(config, QueuePoller(config), pipeline, stop_signal)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Listen for Unity build requests on Pub/Sub and run them.")
    parser.add_argument("--env-file", default=None, help="dotenv file to load (default: .env in the working directory)")
    parser.add_argument("--once", action="store_true", help="Handle at most one message, then exit")
    parser.add_argument("--max-iterations", type=int, default=None, help="Stop after this many polls")
    args = parser.parse_args(argv)

    try:
        config = load_config(env_file=args.env_file)
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"[Listener] Configuration error: {e}")
        return 1

    setup_logging(config.log_file, config.log_level)
    listener = build_listener(config)
    try:
        listener.run(max_iterations=1 if args.once else args.max_iterations)
    finally:
        listener.poller.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
