from typing import Any


class TrustSphereError(Exception):
    """Base class for errors rendered as JSON responses.

    ``code`` is the stable machine-checkable classification, ``errors`` carries
    every individual violation when more than one was found.
    """

    status_code = 500
    code = "internal_error"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])
        self.details = dict(details or {})
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        body.update(self.details)
        return body


class ValidationError(TrustSphereError):
    status_code = 400
    code = "validation_error"


class InvalidAddress(ValidationError):
    code = "invalid_address"


class InvalidPayload(ValidationError):
    code = "invalid_payload"


class PayloadTooLarge(ValidationError):
    code = "note_payload_too_large"


class DecodeError(ValidationError):
    code = "decode_error"


class AuthError(TrustSphereError):
    status_code = 401
    code = "unauthorized"


class PermissionDenied(TrustSphereError):
    status_code = 403
    code = "forbidden"


class NotFoundError(TrustSphereError):
    status_code = 404
    code = "not_found"


class ConflictError(TrustSphereError):
    status_code = 409
    code = "conflict"


class RateLimitExceeded(TrustSphereError):
    status_code = 429
    code = "rate_limited"


class UpstreamError(TrustSphereError):
    status_code = 502
    code = "upstream_error"


class NetworkUnavailable(UpstreamError):
    code = "network_unavailable"


class BroadcastRejected(UpstreamError):
    code = "broadcast_rejected"


class ConfirmationTimeout(TrustSphereError):
    """Transaction was accepted by the node but not seen confirmed in time.

    This is a soft failure: the transaction may still confirm later.
    """

    status_code = 202
    code = "confirmation_timeout"

    def __init__(self, transaction_id: str, rounds: int) -> None:
        super().__init__(f"Transaction {transaction_id} not confirmed after {rounds} rounds")
        self.transaction_id = transaction_id
        self.rounds = rounds
