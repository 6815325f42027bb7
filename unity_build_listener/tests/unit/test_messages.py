import base64
import json

import pytest

from unity_build_listener.errors import MessageParseError, RequestValidationError, UnrecognizedCommandError
from unity_build_listener.messages import (
    FORMAT_JSON,
    FORMAT_LEGACY,
    STATUS_SUCCESS,
    BuildRequest,
    BuildResult,
    completion_attributes,
    decode_completion,
    decode_request,
    encode_completion,
    parse_bool,
    validate_request,
)

REQUEST = {
    "build_id": "2b7c1f0e-build",
    "command": "start_build",
    "branch_name": "main",
    "commit_hash": "abc123",
    "is_test_build": False,
    "request_timestamp": "2025-06-11T10:00:00",
}


def test_decode_raw_json_body():
    request = decode_request(json.dumps(REQUEST).encode("utf-8"))

    assert request == BuildRequest(
        command="start_build",
        build_id="2b7c1f0e-build",
        branch_name="main",
        commit_hash="abc123",
        is_test_build=False,
        message_format=FORMAT_JSON,
    )


def test_decode_base64_json_body():
    body = base64.b64encode(json.dumps(dict(REQUEST, is_test_build=True)).encode("utf-8"))

    request = decode_request(body)

    assert request.message_format == FORMAT_JSON
    assert request.commit_hash == "abc123"
    assert request.is_test_build is True


def test_decode_asset_build_request():
    payload = {
        "build_id": "asset-1",
        "command": "asset-build",
        "gcs_asset_location_url": "gs://bucket/user-asset-files/session-9/assets/",
        "session_id": "session-9",
    }

    request = decode_request(json.dumps(payload).encode("utf-8"))

    assert request.command == "asset-build"
    assert request.session_id == "session-9"
    assert request.gcs_asset_location_url.endswith("/assets/")


def test_json_without_build_id_gets_one():
    payload = dict(REQUEST)
    del payload["build_id"]

    request = decode_request(json.dumps(payload).encode("utf-8"))

    assert request.build_id


def test_decode_legacy_command_with_git_ref_and_attributes():
    request = decode_request(
        b"start_build:abc123",
        {"build_id": "legacy-7", "nobuild": "true", "branch_name": "develop"},
    )

    assert request.message_format == FORMAT_LEGACY
    assert request.command == "start_build"
    assert request.commit_hash == "abc123"
    assert request.build_id == "legacy-7"
    assert request.branch_name == "develop"
    assert request.is_test_build is True


def test_legacy_command_without_branch_uses_default():
    request = decode_request(b"start_build:abc123", {"build_id": "legacy-8"}, default_branch="trunk")

    assert request.branch_name == "trunk"
    assert request.is_test_build is False


def test_legacy_command_without_ref_has_no_commit():
    request = decode_request(b"start_build", {})

    assert request.commit_hash == ""
    with pytest.raises(RequestValidationError):
        validate_request(request)


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"   ",
        b'{"command": "start_build",',
        b"[1, 2, 3]",
        b"\xff\xfe\x00",
        b"start build now",
        base64.b64encode(b'{"command": '),
    ],
)
def test_malformed_bodies_raise_parse_error(body):
    with pytest.raises(MessageParseError):
        decode_request(body)


def test_json_without_command_is_parse_error():
    with pytest.raises(MessageParseError):
        decode_request(json.dumps({"build_id": "x"}).encode("utf-8"))


def test_validate_rejects_unknown_command():
    request = BuildRequest(command="deploy", build_id="b1", branch_name="main", commit_hash="abc")

    with pytest.raises(UnrecognizedCommandError):
        validate_request(request)


def test_validate_rejects_empty_commit_hash():
    request = BuildRequest(command="start_build", build_id="b1", branch_name="main", commit_hash="")

    with pytest.raises(RequestValidationError):
        validate_request(request)


def test_validate_accepts_empty_branch():
    request = BuildRequest(command="start_build", build_id="b1", branch_name="", commit_hash="abc123")

    assert validate_request(request) is request


@pytest.mark.parametrize(
    "branch_name,commit_hash",
    [("main", "--upload-pack=touch /tmp/x"), ("--orphan", "abc123"), ("-b", "abc123")],
)
def test_validate_rejects_refs_that_look_like_options(branch_name, commit_hash):
    request = BuildRequest(command="start_build", build_id="b1", branch_name=branch_name, commit_hash=commit_hash)

    with pytest.raises(RequestValidationError, match="looks like an option"):
        validate_request(request)


def test_validate_rejects_asset_build_without_session():
    with pytest.raises(RequestValidationError):
        validate_request(BuildRequest(command="asset-build", build_id="b1"))


@pytest.mark.parametrize(
    "value,expected",
    [(True, True), (False, False), ("true", True), ("False", False), ("1", True), ("0", False), ("yes", True), (None, False), (1, True)],
)
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


def test_parse_bool_rejects_garbage():
    with pytest.raises(MessageParseError):
        parse_bool("maybe")


def test_completion_payload_survives_transport():
    result = BuildResult(
        build_id="2b7c1f0e-build",
        status=STATUS_SUCCESS,
        gcs_path="gs://test-build-bucket/game-builds/universal/main/abc123/abc123.zip",
        commit="abc123",
        branch="main",
        timestamp="2025-06-11T10:05:00Z",
    )

    decoded = decode_completion(encode_completion(result))

    assert decoded["build_id"] == result.build_id
    assert decoded["status"] == result.status
    assert decoded["gcs_path"] == result.gcs_path
    assert decoded["timestamp"] == "2025-06-11T10:05:00Z"


def test_completion_attributes_are_strings():
    result = BuildResult(build_id="b1", status="nobuild", session_id="")

    assert completion_attributes(result) == {"build_id": "b1", "status": "nobuild", "session_id": ""}


def test_default_timestamp_format():
    timestamp = BuildResult(build_id="b1", status="success").timestamp

    assert len(timestamp) == 20
    assert timestamp.endswith("Z")
    assert timestamp[10] == "T"
