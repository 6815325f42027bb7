from unittest.mock import MagicMock

from unity_build_listener.messages import BuildResult, decode_completion
from unity_build_listener.publisher import CompletionPublisher


def make_publisher(listener_config, message_id="msg-1"):
    client = MagicMock()
    client.topic_path.return_value = "projects/test-project/topics/unity-build-completion-topic"
    future = MagicMock()
    future.result.return_value = message_id
    client.publish.return_value = future
    return CompletionPublisher(listener_config, publisher=client), client, future


def test_publish_sends_encoded_payload_with_attributes(listener_config):
    publisher, client, future = make_publisher(listener_config)
    result = BuildResult(
        build_id="b-42",
        status="success",
        gcs_path="gs://test-build-bucket/game-builds/universal/main/abc123/abc123.zip",
        commit="abc123",
        branch="main",
    )

    assert publisher.publish(result) is True

    client.topic_path.assert_called_once_with("test-project", "unity-build-completion-topic")
    args, kwargs = client.publish.call_args
    assert args == ("projects/test-project/topics/unity-build-completion-topic",)
    assert kwargs["build_id"] == "b-42"
    assert kwargs["status"] == "success"
    assert kwargs["session_id"] == ""
    payload = decode_completion(kwargs["data"])
    assert payload["build_id"] == "b-42"
    assert payload["status"] == "success"
    assert payload["gcs_path"] == result.gcs_path
    future.result.assert_called_once_with(timeout=listener_config.publish_timeout)


def test_publish_failure_is_swallowed(listener_config):
    publisher, client, future = make_publisher(listener_config)
    future.result.side_effect = Exception("DeadlineExceeded")

    assert publisher.publish(BuildResult(build_id="b-1", status="failed")) is False


def test_publish_client_error_is_swallowed(listener_config):
    publisher, client, _ = make_publisher(listener_config)
    client.publish.side_effect = RuntimeError("topic not found")

    assert publisher.publish(BuildResult(build_id="b-1", status="failed")) is False
