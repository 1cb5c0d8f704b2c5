import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Union

from errors import PayloadTooLarge

APP_TAG = "TrustSphere"
MAX_NOTE_BYTES = 1024
RECORD_TYPES = ("attendance", "vote", "complaint", "certificate")


@dataclass(frozen=True)
class FieldRule:
    """A required slot in a record payload.

    The slot is satisfied when every field of at least one alternative is present.
    """

    name: str
    alternatives: tuple[tuple[str, ...], ...]


REQUIRED_FIELDS: dict[str, tuple[FieldRule, ...]] = {
    "attendance": (
        FieldRule("sessionId", (("sessionId",),)),
        FieldRule("studentId", (("studentId",), ("studentHash",))),
    ),
    "vote": (
        FieldRule("electionId", (("electionId",),)),
        FieldRule("anonymousToken", (("anonymousToken",), ("choiceHash",))),
    ),
    "complaint": (FieldRule("hash", (("hash",),)),),
    "certificate": (
        FieldRule("title", (("title",), ("student", "event", "role"))),
        FieldRule("recipientId", (("recipientId",),)),
    ),
}


@dataclass
class Record:
    app: Any
    record_type: Any
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"app": self.app, "type": self.record_type, "data": self.data, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Decoded:
    record: Record


@dataclass(frozen=True)
class Undecodable:
    raw: bytes


DecodeResult = Union[Decoded, Undecodable]


def canonical_json(data: Mapping[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(str(text).encode("utf-8")).hexdigest()


def utc_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def missing_fields(record_type: str, payload: Mapping[str, Any]) -> list[str]:
    missing = []
    for rule in REQUIRED_FIELDS.get(record_type, ()):
        satisfied = any(
            all(not _is_blank(payload.get(name)) for name in alternative)
            for alternative in rule.alternatives
        )
        if not satisfied:
            missing.append(rule.name)
    return missing


def validate_payload(record_type: Any, payload: Any) -> list[str]:
    """Collect every problem with a payload instead of stopping at the first one."""
    errors = []
    if record_type not in RECORD_TYPES:
        errors.append(f'Invalid type "{record_type}". Must be one of: {", ".join(RECORD_TYPES)}')
    if not isinstance(payload, Mapping):
        errors.append("data must be a non-null object")
        return errors
    if record_type in RECORD_TYPES:
        errors.extend(f"{record_type} requires data.{name}" for name in missing_fields(record_type, payload))
    return errors


def encode(record_type: str, payload: Mapping[str, Any], now: datetime | None = None) -> bytes:
    note = {
        "app": APP_TAG,
        "type": record_type,
        "data": dict(payload),
        "timestamp": utc_timestamp(now),
    }
    note_bytes = canonical_json(note).encode("utf-8")
    if len(note_bytes) > MAX_NOTE_BYTES:
        raise PayloadTooLarge(
            f"Note payload ({len(note_bytes)} bytes) exceeds Algorand limit of {MAX_NOTE_BYTES} bytes"
        )
    return note_bytes


def decode(note: bytes) -> DecodeResult:
    try:
        parsed = json.loads(note.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return Undecodable(raw=note)
    if not isinstance(parsed, dict):
        return Undecodable(raw=note)
    data = parsed.get("data")
    return Decoded(
        Record(
            app=parsed.get("app"),
            record_type=parsed.get("type"),
            data=data if isinstance(data, dict) else {},
            timestamp=parsed.get("timestamp"),
        )
    )
