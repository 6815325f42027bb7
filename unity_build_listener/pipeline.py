# pipeline.py
"""Runs one build request through the git, build and upload phases and reports the result."""

from pathlib import Path
from typing import Callable, Optional

from .config import ListenerConfig
from .errors import RequestValidationError, TransientToolError
from .fs_utils import clear_folder
from .log import get_logger
from .messages import (
    COMMAND_ASSET_BUILD,
    COMMAND_START_BUILD,
    STATUS_FAILED,
    STATUS_GIT_FAILED,
    STATUS_NOBUILD,
    STATUS_SUCCESS,
    STATUS_UNITY_BUILD_FAILED,
    STATUS_UPLOAD_FAILED,
    BuildRequest,
    BuildResult,
    utc_timestamp,
    validate_request,
)
from .publisher import CompletionPublisher
from .reconciler import CommitReconciler
from .unity_builder import UnityBuilder
from .uploader import ArtifactUploader, asset_bundle_prefix, build_object_prefix

logger = get_logger(__name__)

PLACEHOLDER_FILE_NAME = "placeholder.txt"


class BuildPipeline:
    def __init__(
        self,
        config: ListenerConfig,
        reconciler: CommitReconciler,
        builder: UnityBuilder,
        uploader: ArtifactUploader,
        publisher: CompletionPublisher,
        clock: Optional[Callable[[], str]] = None,
    ):
        self.config = config
        self.reconciler = reconciler
        self.builder = builder
        self.uploader = uploader
        self.publisher = publisher
        self.clock = clock or utc_timestamp

    def handle(self, request: BuildRequest) -> BuildResult:
        """Processes the request and publishes its completion message.

        A failed publish is logged by the publisher and otherwise ignored:
        the request was already acknowledged when it was pulled.
        """
        result = self.process(request)
        if not self.publisher.publish(result):
            logger.warning(f"[Pipeline] Completion for build {result.build_id} ({result.status}) was not delivered.")
        return result

    def process(self, request: BuildRequest) -> BuildResult:
        result = BuildResult(
            build_id=request.build_id,
            status=STATUS_FAILED,
            commit=request.commit_hash,
            branch=request.branch_name,
            session_id=request.session_id,
            is_test_build=request.is_test_build,
        )
        try:
            validate_request(request)
            if request.command == COMMAND_START_BUILD:
                self._run_game_build(request, result)
            elif request.command == COMMAND_ASSET_BUILD:
                self._run_asset_build(request, result)
        except RequestValidationError as e:
            logger.error(f"[Pipeline] Rejected request {request.build_id}: {e}")
            result.status = STATUS_FAILED
        except Exception:
            logger.exception(f"[Pipeline] Unexpected error while processing build {request.build_id}")
            result.status = STATUS_FAILED
            result.gcs_path = ""

        result.timestamp = self.clock()
        logger.info(f"[Pipeline] Build {result.build_id} finished with status '{result.status}'.")
        return result

    def _run_game_build(self, request: BuildRequest, result: BuildResult) -> None:
        logger.info(
            f"[Pipeline] Build {request.build_id}: {request.branch_name}@{request.commit_hash} "
            f"(test build: {request.is_test_build})"
        )

        reconciled = self.reconciler.reconcile(request.branch_name, request.commit_hash)
        if not reconciled.ok:
            result.status = STATUS_GIT_FAILED
            return

        output_dir = clear_folder(self.config.build_output_dir)
        if request.is_test_build:
            logger.info("[Pipeline] Test build requested, skipping Unity and uploading a placeholder.")
            self._write_placeholder(output_dir, request)
            built_status = STATUS_NOBUILD
        else:
            if not self.builder.build_game(output_dir, self.config.executable_name):
                result.status = STATUS_UNITY_BUILD_FAILED
                return
            built_status = STATUS_SUCCESS

        prefix = build_object_prefix(request.branch_name, request.commit_hash, request.is_test_build)
        self._upload(output_dir, prefix, result, built_status)

    def _run_asset_build(self, request: BuildRequest, result: BuildResult) -> None:
        # The orchestrator routes completions without a commit to its asset bundle statuses.
        result.commit = ""
        result.branch = ""
        logger.info(f"[Pipeline] Asset bundle build {request.build_id} for session {request.session_id}")

        if request.gcs_asset_location_url:
            import_dir = clear_folder(Path(self.config.asset_import_dir) / request.session_id)
            try:
                self.uploader.download_prefix(request.gcs_asset_location_url, import_dir)
            except TransientToolError as e:
                logger.error(f"[Pipeline] Could not fetch user assets: {e}")
                result.status = STATUS_FAILED
                return

        output_dir = clear_folder(self.config.asset_bundle_output_dir)
        if request.is_test_build:
            logger.info("[Pipeline] Test asset build requested, skipping Unity and uploading a placeholder.")
            self._write_placeholder(output_dir, request)
            built_status = STATUS_NOBUILD
        else:
            if not self.builder.build_asset_bundles(request.session_id, output_dir):
                result.status = STATUS_UNITY_BUILD_FAILED
                return
            built_status = STATUS_SUCCESS

        self._upload(output_dir, asset_bundle_prefix(request.session_id), result, built_status)

    def _upload(self, output_dir: Path, prefix: str, result: BuildResult, built_status: str) -> None:
        upload = self.uploader.upload_folder(output_dir, prefix, archive=True)
        if not upload.ok:
            result.status = STATUS_UPLOAD_FAILED
            result.gcs_path = ""
            return
        result.status = built_status
        result.gcs_path = upload.gcs_path

    @staticmethod
    def _write_placeholder(output_dir: Path, request: BuildRequest) -> Path:
        placeholder = Path(output_dir) / PLACEHOLDER_FILE_NAME
        placeholder.write_text(
            f"Test build placeholder\n"
            f"build_id: {request.build_id}\n"
            f"branch: {request.branch_name}\n"
            f"commit: {request.commit_hash}\n"
            f"session_id: {request.session_id}\n",
            encoding="utf-8",
        )
        return placeholder
