# uploader.py

import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from google.cloud import storage

from .config import ListenerConfig
from .errors import TransientToolError
from .fs_utils import ensure_folder
from .log import get_logger

logger = get_logger(__name__)

GAME_BUILD_ROOT = "game-builds/universal"
TEST_BUILD_ROOT = "game-builds/test"
USER_ASSET_ROOT = "user-asset-files"


@dataclass
class UploadResult:
    ok: bool
    gcs_path: str = ""


def normalize_prefix(prefix: str) -> str:
    """Makes an object-key prefix safe: forward slashes only, no empty or edge segments."""
    prefix = (prefix or "").replace("\\", "/")
    prefix = re.sub(r"/{2,}", "/", prefix)
    return prefix.strip().strip("/")


def build_object_prefix(branch: str, commit: str, is_test_build: bool = False) -> str:
    """Prefix for a game build, following the cache scheme ``game-builds/universal/<branch>/<commit>``."""
    root = TEST_BUILD_ROOT if is_test_build else GAME_BUILD_ROOT
    return normalize_prefix(f"{root}/{branch}/{commit}")


def asset_bundle_prefix(session_id: str) -> str:
    return normalize_prefix(f"{USER_ASSET_ROOT}/{session_id}/bundles")


def parse_gcs_url(url: str) -> Tuple[str, str]:
    """Splits ``gs://bucket/some/prefix/`` into ``("bucket", "some/prefix")``."""
    if not url or not url.startswith("gs://"):
        raise ValueError(f"Not a gs:// URL: {url!r}")
    bucket, _, prefix = url[len("gs://"):].partition("/")
    if not bucket:
        raise ValueError(f"gs:// URL has no bucket: {url!r}")
    return bucket, normalize_prefix(prefix)


class ArtifactUploader:
    """Copies local build output to the build bucket."""

    def __init__(self, config: ListenerConfig, client: Optional[storage.Client] = None):
        self.config = config
        self.client = client or storage.Client(project=config.project_id)

    def upload_folder(self, local_folder: Union[str, Path], prefix: str, archive: bool = True) -> UploadResult:
        """Uploads a folder to ``gs://<bucket>/<prefix>``.

        Args:
            local_folder: Folder holding the build output.
            prefix: Destination object-key prefix. Normalized before use.
            archive: If True, zip the folder into ``<prefix>/<last segment>.zip``.
                Otherwise copy every file recursively under the prefix.
        Returns:
            UploadResult: ``ok`` and the final ``gs://`` path, or ``ok=False`` and no path.
        """
        folder = Path(local_folder)
        prefix = normalize_prefix(prefix)
        if not prefix:
            logger.error("[GCS] Refusing to upload with an empty destination prefix.")
            return UploadResult(ok=False)
        if not folder.is_dir() or not any(folder.iterdir()):
            logger.error(f"[GCS] Nothing to upload: {folder} is missing or empty.")
            return UploadResult(ok=False)

        try:
            if archive:
                gcs_path = self._upload_archive(folder, prefix)
            else:
                gcs_path = self._upload_tree(folder, prefix)
        except Exception as e:
            logger.error(f"[GCS] Upload of {folder} to gs://{self.config.bucket_name}/{prefix} failed: {e}")
            return UploadResult(ok=False)

        logger.info(f"[GCS] Uploaded {folder} to {gcs_path}")
        return UploadResult(ok=True, gcs_path=gcs_path)

    def _upload_archive(self, folder: Path, prefix: str) -> str:
        archive_name = prefix.rsplit("/", 1)[-1]
        bucket = self.client.bucket(self.config.bucket_name)
        # The temporary directory (and the zip inside it) is removed however the upload ends.
        with tempfile.TemporaryDirectory(prefix="unity-build-") as tmp_dir:
            archive_path = shutil.make_archive(str(Path(tmp_dir) / archive_name), "zip", root_dir=str(folder))
            blob_name = f"{prefix}/{archive_name}.zip"
            logger.info(f"[GCS] Uploading archive {archive_path} to gs://{self.config.bucket_name}/{blob_name}")
            bucket.blob(blob_name).upload_from_filename(archive_path, timeout=self.config.upload_timeout)
        return f"gs://{self.config.bucket_name}/{blob_name}"

    def _upload_tree(self, folder: Path, prefix: str) -> str:
        bucket = self.client.bucket(self.config.bucket_name)
        count = 0
        for path in sorted(folder.rglob("*")):
            if not path.is_file():
                continue
            blob_name = f"{prefix}/{path.relative_to(folder).as_posix()}"
            bucket.blob(blob_name).upload_from_filename(str(path), timeout=self.config.upload_timeout)
            count += 1
        logger.info(f"[GCS] Copied {count} file(s) under gs://{self.config.bucket_name}/{prefix}/")
        return f"gs://{self.config.bucket_name}/{prefix}/"

    def download_prefix(self, gcs_url: str, local_folder: Union[str, Path]) -> int:
        """Downloads every object under a ``gs://bucket/prefix/`` URL into ``local_folder``.

        Returns:
            int: Number of files written.
        Raises:
            TransientToolError: If the URL is invalid, listing or download fails, or nothing is found.
        """
        try:
            bucket_name, prefix = parse_gcs_url(gcs_url)
        except ValueError as e:
            raise TransientToolError(str(e))

        target = ensure_folder(local_folder)
        root = target.resolve()
        count = 0
        try:
            for blob in self.client.list_blobs(bucket_name, prefix=f"{prefix}/" if prefix else None):
                if blob.name.endswith("/"):
                    continue
                relative = blob.name[len(prefix):].lstrip("/") if prefix else blob.name
                destination = target / relative
                resolved = destination.resolve()
                if resolved == root or not resolved.is_relative_to(root):
                    raise TransientToolError(f"Object {blob.name} would be written outside {target}")
                destination.parent.mkdir(parents=True, exist_ok=True)
                blob.download_to_filename(str(destination), timeout=self.config.upload_timeout)
                count += 1
        except TransientToolError:
            raise
        except Exception as e:
            raise TransientToolError(f"Download from {gcs_url} failed: {e}")

        if count == 0:
            raise TransientToolError(f"No objects found under {gcs_url}")
        logger.info(f"[GCS] Downloaded {count} file(s) from {gcs_url} to {target}")
        return count
