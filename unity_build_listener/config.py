# config.py

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_SUBSCRIPTION_ID = "unity-build-request-subscription"
DEFAULT_COMPLETION_TOPIC_ID = "unity-build-completion-topic"
DEFAULT_BUILD_METHOD = "BuildScript.PerformBuild"
DEFAULT_ASSET_BUNDLE_METHOD = "AssetBundleBuilder.BuildAllAssetBundles"


@dataclass(frozen=True)
class ListenerConfig:
    """Settings for one listener process. Built once at startup, never mutated."""

    project_id: str
    subscription_id: str
    completion_topic_id: str
    bucket_name: str

    unity_executable: Path
    unity_project_path: Path
    unity_log_file: Path
    build_output_dir: Path
    asset_bundle_output_dir: Path
    asset_import_dir: Path
    executable_name: str = "Game.exe"
    build_method: str = DEFAULT_BUILD_METHOD
    asset_bundle_method: str = DEFAULT_ASSET_BUNDLE_METHOD

    stop_file: Path = Path("stop_listener.flag")
    log_file: Optional[Path] = Path("listener.log")
    log_level: str = "INFO"
    default_branch: str = "main"

    poll_interval: float = 10.0
    git_timeout: float = 600.0
    unity_timeout: float = 7200.0
    upload_timeout: float = 1800.0
    publish_timeout: float = 60.0


def _require(env: Mapping[str, str], key: str) -> str:
    value = (env.get(key) or "").strip()
    if not value:
        raise ConfigurationError(f"{key} is not set. Set it as an environment variable or in .env.")
    return value


def _number(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None, env_file: Optional[str] = None) -> ListenerConfig:
    """Builds the listener configuration from the environment.

    Args:
        env: Mapping to read settings from. Defaults to ``os.environ`` after
            loading ``.env`` (or ``env_file``) with python-dotenv.
        env_file: Optional explicit path to a dotenv file.
    Returns:
        ListenerConfig: The validated, immutable configuration.
    Raises:
        ConfigurationError: If a required value is missing or a path does not exist.
    """
    if env is None:
        load_dotenv(dotenv_path=env_file)
        env = os.environ

    project_id = _require(env, "GOOGLE_CLOUD_PROJECT")
    bucket_name = _require(env, "GCS_BUILD_BUCKET_NAME")

    unity_executable = Path(_require(env, "UNITY_EXECUTABLE_PATH"))
    if not unity_executable.is_file():
        raise ConfigurationError(f"Unity executable not found at {unity_executable}")

    project_path = Path(_require(env, "UNITY_PROJECT_PATH"))
    if not project_path.is_dir():
        raise ConfigurationError(f"Unity project folder not found at {project_path}")

    def path_setting(key: str, default: Path) -> Path:
        raw = (env.get(key) or "").strip()
        return Path(raw) if raw else default

    log_file_raw = env.get("LISTENER_LOG_FILE", "listener.log").strip()

    return ListenerConfig(
        project_id=project_id,
        subscription_id=env.get("UNITY_BUILD_SUBSCRIPTION_ID") or DEFAULT_SUBSCRIPTION_ID,
        completion_topic_id=env.get("UNITY_BUILD_COMPLETION_TOPIC_ID") or DEFAULT_COMPLETION_TOPIC_ID,
        bucket_name=bucket_name,
        unity_executable=unity_executable,
        unity_project_path=project_path,
        unity_log_file=path_setting("UNITY_LOG_FILE", project_path / "Logs" / "unity_build.log"),
        build_output_dir=path_setting("BUILD_OUTPUT_DIR", project_path / "Builds"),
        asset_bundle_output_dir=path_setting("ASSET_BUNDLE_OUTPUT_DIR", project_path / "AssetBundles"),
        asset_import_dir=path_setting("ASSET_IMPORT_DIR", project_path / "Assets" / "ImportedAssets"),
        executable_name=env.get("BUILD_EXECUTABLE_NAME") or "Game.exe",
        build_method=env.get("UNITY_BUILD_METHOD") or DEFAULT_BUILD_METHOD,
        asset_bundle_method=env.get("UNITY_ASSET_BUNDLE_METHOD") or DEFAULT_ASSET_BUNDLE_METHOD,
        stop_file=path_setting("LISTENER_STOP_FILE", Path.cwd() / "stop_listener.flag"),
        log_file=Path(log_file_raw) if log_file_raw else None,
        log_level=(env.get("LISTENER_LOG_LEVEL") or "INFO").upper(),
        default_branch=env.get("DEFAULT_BRANCH") or "main",
        poll_interval=_number(env, "POLL_INTERVAL_SECONDS", 10.0),
        git_timeout=_number(env, "GIT_TIMEOUT_SECONDS", 600.0),
        unity_timeout=_number(env, "UNITY_TIMEOUT_SECONDS", 7200.0),
        upload_timeout=_number(env, "UPLOAD_TIMEOUT_SECONDS", 1800.0),
        publish_timeout=_number(env, "PUBLISH_TIMEOUT_SECONDS", 60.0),
    )
