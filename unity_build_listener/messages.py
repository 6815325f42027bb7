# messages.py
"""Build request / build result shapes and the decoders for inbound queue messages.

Two inbound formats exist:

* JSON body (optionally base64 encoded) carrying every field of the request,
  as published by the orchestrator's ``publish_build_request`` tool.
* Legacy plain-string body such as ``start_build`` or ``start_build:<gitRef>``
  with ``build_id`` / ``nobuild`` / ``branch_name`` sent as message attributes.

``decode_request`` probes the body shape and hands it to exactly one decoder.
"""

import base64
import binascii
import json
import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .errors import MessageParseError, RequestValidationError, UnrecognizedCommandError

# --- Commands ---
COMMAND_START_BUILD = "start_build"
COMMAND_ASSET_BUILD = "asset-build"
RECOGNIZED_COMMANDS = (COMMAND_START_BUILD, COMMAND_ASSET_BUILD)

# --- Completion statuses ---
STATUS_SUCCESS = "success"
STATUS_NOBUILD = "nobuild"
STATUS_GIT_FAILED = "git_failed"
STATUS_UNITY_BUILD_FAILED = "unity_build_failed"
STATUS_UPLOAD_FAILED = "upload_failed"
STATUS_FAILED = "failed"
STATUSES = (
    STATUS_SUCCESS,
    STATUS_NOBUILD,
    STATUS_GIT_FAILED,
    STATUS_UNITY_BUILD_FAILED,
    STATUS_UPLOAD_FAILED,
    STATUS_FAILED,
)

FORMAT_JSON = "json"
FORMAT_LEGACY = "legacy"

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off", ""}
_LEGACY_BODY = re.compile(r"^(?P<command>[A-Za-z][A-Za-z0-9_\-]*)(?::(?P<ref>\S+))?$")


def parse_bool(value: Any) -> bool:
    """Accepts real booleans and the usual string spellings ("true", "0", "no", ...)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise MessageParseError(f"Cannot interpret {value!r} as a boolean")


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Formats a timestamp the way the orchestrator parses it: ``YYYY-MM-DDTHH:MM:SSZ``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class BuildRequest:
    command: str
    build_id: str
    branch_name: str = ""
    commit_hash: str = ""
    is_test_build: bool = False
    session_id: str = ""
    gcs_asset_location_url: str = ""
    message_format: str = FORMAT_JSON


@dataclass
class BuildResult:
    build_id: str
    status: str
    gcs_path: str = ""
    commit: str = ""
    branch: str = ""
    timestamp: str = field(default_factory=utc_timestamp)
    session_id: str = ""
    is_test_build: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# --- Inbound decoders ---
class JsonRequestDecoder:
    """Decodes the structured JSON body published by the orchestrator."""

    format_name = FORMAT_JSON

    def decode(self, payload: Dict[str, Any], attributes: Mapping[str, str]) -> BuildRequest:
        command = payload.get("command")
        if not isinstance(command, str) or not command.strip():
            raise MessageParseError(f"JSON build request has no 'command' field: {payload}")

        return BuildRequest(
            command=command.strip(),
            build_id=str(payload.get("build_id") or attributes.get("build_id") or uuid.uuid4()),
            branch_name=str(payload.get("branch_name") or "").strip(),
            commit_hash=str(payload.get("commit_hash") or "").strip(),
            is_test_build=parse_bool(payload.get("is_test_build", False)),
            session_id=str(payload.get("session_id") or "").strip(),
            gcs_asset_location_url=str(payload.get("gcs_asset_location_url") or "").strip(),
            message_format=self.format_name,
        )


class LegacyCommandDecoder:
    """Decodes the older ``command[:gitRef]`` string body with attribute metadata."""

    format_name = FORMAT_LEGACY

    def __init__(self, default_branch: str = "main"):
        self.default_branch = default_branch

    def decode(self, body: str, attributes: Mapping[str, str]) -> BuildRequest:
        match = _LEGACY_BODY.match(body.strip())
        if not match:
            raise MessageParseError(f"Legacy message body is not 'command[:gitRef]': {body!r}")

        return BuildRequest(
            command=match.group("command"),
            build_id=str(attributes.get("build_id") or uuid.uuid4()),
            branch_name=(attributes.get("branch_name") or self.default_branch).strip(),
            commit_hash=(match.group("ref") or "").strip(),
            is_test_build=parse_bool(attributes.get("nobuild", False)),
            session_id=(attributes.get("session_id") or "").strip(),
            message_format=self.format_name,
        )


def _as_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Returns the parsed object if ``text`` looks like a JSON object, None if it does not look like one."""
    if not text.startswith("{"):
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MessageParseError(f"Malformed JSON payload ({e}): {text!r}")
    if not isinstance(payload, dict):
        raise MessageParseError(f"JSON payload is not an object: {text!r}")
    return payload


def decode_request(
    data: bytes,
    attributes: Optional[Mapping[str, str]] = None,
    default_branch: str = "main",
) -> BuildRequest:
    """Turns a raw queue message into a BuildRequest.

    Args:
        data: Raw message body bytes.
        attributes: Message attributes (legacy messages carry metadata here).
        default_branch: Branch used by legacy messages without a branch attribute.
    Returns:
        BuildRequest: The decoded request. Not yet validated.
    Raises:
        MessageParseError: If the body matches neither format.
    """
    attributes = dict(attributes or {})
    try:
        text = data.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise MessageParseError(f"Message body is not UTF-8: {e}")
    if not text:
        raise MessageParseError("Message body is empty")

    payload = _as_json_object(text)
    if payload is None:
        # Pub/Sub CLI tooling hands the body over base64 encoded.
        try:
            decoded = base64.b64decode(text, validate=True).decode("utf-8").strip()
        except (binascii.Error, ValueError):
            decoded = ""
        payload = _as_json_object(decoded)

    if payload is not None:
        return JsonRequestDecoder().decode(payload, attributes)
    return LegacyCommandDecoder(default_branch).decode(text, attributes)


def validate_request(request: BuildRequest) -> BuildRequest:
    """Rejects requests the pipeline cannot act on before any side effect happens."""
    if request.command not in RECOGNIZED_COMMANDS:
        raise UnrecognizedCommandError(request.command)

    if request.command == COMMAND_START_BUILD:
        if not request.commit_hash:
            raise RequestValidationError(f"Build {request.build_id}: commit_hash is empty")
        # Both end up as positional git arguments.
        for field_name in ("commit_hash", "branch_name"):
            value = getattr(request, field_name) or ""
            if value.startswith("-"):
                raise RequestValidationError(f"Build {request.build_id}: {field_name} {value!r} looks like an option")
    elif request.command == COMMAND_ASSET_BUILD:
        if not request.session_id:
            raise RequestValidationError(f"Asset build {request.build_id}: session_id is empty")
    return request


# --- Outbound completion payload ---
def encode_completion(result: BuildResult) -> bytes:
    """JSON-serializes the result and base64 encodes it for transport."""
    message_json = json.dumps(result.to_dict())
    return base64.b64encode(message_json.encode("utf-8"))


def decode_completion(data: bytes) -> Dict[str, Any]:
    """Inverse of ``encode_completion``; mirrors what the orchestrator's listener does."""
    return json.loads(base64.b64decode(data).decode("utf-8"))


def completion_attributes(result: BuildResult) -> Dict[str, str]:
    return {
        "build_id": str(result.build_id),
        "status": str(result.status),
        "session_id": str(result.session_id or ""),
    }
