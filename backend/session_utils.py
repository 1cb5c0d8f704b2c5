import base64
import hashlib
import hmac
import json
import os
import time
from dataclasses import dataclass
from typing import Any

from flask import request

from errors import AuthError, PermissionDenied

ROLES = ("student", "teacher", "admin")


@dataclass(frozen=True)
class SessionUser:
    id: str
    role: str
    wallet_address: str | None = None


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("ascii"))


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def _session_secret() -> bytes:
    secret = os.getenv("SESSION_SECRET")
    if not secret:
        raise RuntimeError("SESSION_SECRET is required")
    return secret.encode("utf-8")


def create_session_token(
    user_id: str, role: str, wallet_address: str | None = None, ttl_seconds: int = 3600
) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role {role!r}")
    payload = {
        "sub": str(user_id),
        "role": role,
        "wallet": wallet_address,
        "exp": int(time.time()) + int(ttl_seconds),
    }
    payload_part = _b64url_encode(_canonical_json(payload).encode("utf-8"))
    signature = hmac.new(_session_secret(), payload_part.encode("ascii"), hashlib.sha256).digest()
    return f"{payload_part}.{_b64url_encode(signature)}"


def verify_session_token(token: str) -> dict[str, Any]:
    try:
        payload_part, signature_part = token.split(".", 1)
        provided = _b64url_decode(signature_part)
    except ValueError as exc:
        raise ValueError("Invalid session token format") from exc

    expected = hmac.new(_session_secret(), payload_part.encode("ascii"), hashlib.sha256).digest()
    if not hmac.compare_digest(expected, provided):
        raise ValueError("Invalid session token signature")

    payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    if int(payload.get("exp", 0)) < int(time.time()):
        raise ValueError("Session token expired")
    return payload


def current_user(*roles: str) -> SessionUser:
    """Resolve the bearer token on the active request, optionally checking its role."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthError("Authentication required")
    token = auth_header.split(" ", 1)[1].strip()
    try:
        payload = verify_session_token(token)
    except ValueError as exc:
        raise AuthError(str(exc)) from exc

    user = SessionUser(id=str(payload["sub"]), role=payload.get("role", ""), wallet_address=payload.get("wallet"))
    if roles and user.role not in roles:
        raise PermissionDenied("Insufficient permissions")
    return user
