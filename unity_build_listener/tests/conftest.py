# unity_build_listener/tests/conftest.py
import logging

import pytest
from unittest.mock import MagicMock

from unity_build_listener.config import ListenerConfig


@pytest.fixture(autouse=True)
def mock_gcp_clients_globally(monkeypatch):
    """
    Globally mocks the Storage and Pub/Sub clients so no test ever
    authenticates against Google Cloud or touches the network.
    Tests that care about the calls pass their own MagicMock clients in.
    """
    mock_blob_instance = MagicMock()
    mock_bucket_instance = MagicMock()
    mock_bucket_instance.blob.return_value = mock_blob_instance
    mock_client_instance = MagicMock()
    mock_client_instance.bucket.return_value = mock_bucket_instance

    monkeypatch.setattr("google.cloud.storage.Client", MagicMock(return_value=mock_client_instance))
    monkeypatch.setattr("google.cloud.pubsub_v1.SubscriberClient", MagicMock())
    monkeypatch.setattr("google.cloud.pubsub_v1.PublisherClient", MagicMock())


@pytest.fixture(autouse=True)
def restore_listener_logger():
    """Undo setup_logging() side effects so caplog keeps working across tests."""
    logger = logging.getLogger("unity_build_listener")
    handlers, propagate, level = list(logger.handlers), logger.propagate, logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = propagate
    logger.setLevel(level)


@pytest.fixture
def listener_config(tmp_path) -> ListenerConfig:
    project = tmp_path / "UnityProject"
    project.mkdir()
    unity = tmp_path / "Unity.exe"
    unity.write_text("")
    return ListenerConfig(
        project_id="test-project",
        subscription_id="unity-build-request-subscription",
        completion_topic_id="unity-build-completion-topic",
        bucket_name="test-build-bucket",
        unity_executable=unity,
        unity_project_path=project,
        unity_log_file=project / "Logs" / "unity_build.log",
        build_output_dir=project / "Builds",
        asset_bundle_output_dir=project / "AssetBundles",
        asset_import_dir=project / "Assets" / "ImportedAssets",
        stop_file=tmp_path / "stop_listener.flag",
        log_file=None,
        poll_interval=0.01,
    )

