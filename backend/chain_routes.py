"""Chain-backed governance flows: attendance, voting, complaints, certificates.

Every write is two-phase. The ``*unsigned`` routes validate domain state and return
an unsigned transaction for the user's wallet to sign. The ``submit`` routes bind
the signed blob to the request, claim the domain slot in the mirror, and only then
broadcast.
"""
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from flask import Blueprint, jsonify, request
from loguru import logger

import ai
from app import get_services, json_body, submission_response
from errors import BroadcastRejected, ConflictError, NotFoundError, TrustSphereError, ValidationError
from record_codec import APP_TAG, Record, sha256_hex, utc_timestamp
from repositories import (
    Attendee,
    Candidate,
    Certificate,
    Complaint,
    Election,
    Session,
    User,
    Voter,
    new_id,
    utcnow,
)
from session_utils import ROLES, current_user
from submission import SignedEnvelope, SubmissionResult
from verification import cross_check

chain = Blueprint("chain", __name__, url_prefix="/api")


class BodyCheck:
    """Collects every problem in a request body before failing."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data
        self.errors: list[str] = []

    def string(self, name: str, required: bool = True, min_len: int = 0, max_len: int | None = None) -> str:
        value = self.data.get(name)
        if value is None or value == "":
            if required:
                self.errors.append(f"{name} is required")
            return ""
        if not isinstance(value, str):
            self.errors.append(f"{name} must be a string")
            return ""
        if len(value) < min_len:
            self.errors.append(f"{name} must be at least {min_len} characters")
        if max_len is not None and len(value) > max_len:
            self.errors.append(f"{name} must be at most {max_len} characters")
        return value

    def integer(self, name: str, minimum: int = 0) -> int:
        value = self.data.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            self.errors.append(f"{name} must be an integer")
            return -1
        if value < minimum:
            self.errors.append(f"{name} must be >= {minimum}")
        return value

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationError("Invalid request", errors=self.errors)


def _iso(value: datetime | None) -> str | None:
    return utc_timestamp(value) if value is not None else None


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def explorer_url(tx_id: str) -> str:
    return f"{get_services().settings.explorer_tx_url}{tx_id}"


def cert_verify_url(tx_id: str) -> str:
    return f"{get_services().settings.frontend_url.rstrip('/')}/verify/cert/{tx_id}"


def device_hash() -> str:
    raw = "|".join(
        [
            request.headers.get("User-Agent", ""),
            request.headers.get("Accept-Language", ""),
            request.remote_addr or "",
        ]
    )
    return sha256_hex(raw)


def signed_record(signed_txn: str, record_type: str, **expected: Any) -> tuple[SignedEnvelope, Record]:
    """Decode a signed blob and check that its note is the record this request is about."""
    envelope = get_services().pipeline.inspect(signed_txn)
    record = envelope.record
    if record is None or record.app != APP_TAG:
        raise ValidationError("Signed transaction does not carry a TrustSphere note")
    errors = []
    if record.record_type != record_type:
        errors.append(f'Signed note type is "{record.record_type}", expected "{record_type}"')
    for key, value in expected.items():
        if record.data.get(key) != value:
            errors.append(f"Signed note data.{key} does not match this request")
    if errors:
        raise ValidationError("Signed transaction does not match this request", errors=errors)
    return envelope, record


def submit_claimed(signed_txn: str, release: Callable[[], None]) -> SubmissionResult:
    """Broadcast after a mirror claim, giving the claim back only if the node never took the transaction."""
    pipeline = get_services().pipeline
    try:
        tx_id = pipeline.broadcast(signed_txn)
    except TrustSphereError:
        release()
        raise
    try:
        return pipeline.confirm(tx_id)
    except BroadcastRejected:
        # pool error: the node dropped it
        release()
        raise


def verification_block(verification) -> dict[str, Any]:
    body = verification.to_dict()
    body.pop("valid", None)
    body.pop("integrityMatch", None)
    return body


@chain.route("/users", methods=["POST"])
def user_register():
    current_user("admin")
    data = json_body()
    check = BodyCheck(data)
    email = check.string("email", min_len=3, max_len=254)
    role = check.string("role")
    wallet = check.string("walletAddress", required=False) or None
    if role and role not in ROLES:
        check.errors.append(f"role must be one of: {', '.join(ROLES)}")
    check.raise_if_invalid()

    user = get_services().mirror.users.insert(
        User(id=data.get("id") or new_id(), email=email, role=role, wallet_address=wallet)
    )
    return jsonify({"user": {"id": user.id, "email": user.email, "role": user.role}}), 201


@chain.route("/session/create", methods=["POST"])
def session_create():
    user = current_user("teacher", "admin")
    data = json_body()
    check = BodyCheck(data)
    title = check.string("title", min_len=3, max_len=100)
    location = data.get("location") or {}
    if not isinstance(location, dict):
        check.errors.append("location must be an object")
        location = {}
    check.raise_if_invalid()

    ttl = get_services().settings.qr_ttl_seconds
    session = Session(
        id=new_id(),
        teacher_id=user.id,
        title=title,
        qr_secret=str(uuid.uuid4()),
        qr_expires_at=utcnow() + timedelta(seconds=ttl),
        location={
            "lat": location.get("lat", 0),
            "lng": location.get("lng", 0),
            "radius": location.get("radius", 100),
        },
    )
    get_services().mirror.sessions.insert(session)
    logger.info("Session {} created by {}", session.id, user.id)
    return (
        jsonify(
            {
                "session": {
                    "id": session.id,
                    "title": session.title,
                    "qrCode": session.qr_secret,
                    "expiresAt": _iso(session.qr_expires_at),
                }
            }
        ),
        201,
    )


def _active_session(session_id: str) -> Session:
    session = get_services().mirror.sessions.find_by_id(session_id)
    if session is None or not session.active:
        raise NotFoundError("Session not found or inactive")
    return session


@chain.route("/chain/attendance/create-unsigned", methods=["POST"])
def attendance_create_unsigned():
    user = current_user("student")
    data = json_body()
    check = BodyCheck(data)
    session_id = check.string("sessionId")
    qr_code = check.string("qrCode")
    selfie = check.string("selfieBase64", required=False)
    sender_address = check.string("senderAddress")
    check.raise_if_invalid()

    session = _active_session(session_id)
    if session.qr_secret != qr_code or utcnow() > session.qr_expires_at:
        raise ValidationError("QR code expired or invalid")

    student_hash = sha256_hex(user.id)
    if session.attendee(student_hash) is not None:
        raise ConflictError("Attendance already marked for this session")

    if selfie:
        liveness = ai.check_liveness(selfie)
        if not liveness.alive:
            raise ValidationError("Liveness check failed")

    attendance_data = {
        "studentHash": student_hash,
        "sessionId": session.id,
        "faceHash": sha256_hex(selfie) if selfie else sha256_hex("no-selfie"),
        "deviceHash": device_hash(),
        "time": utc_timestamp(),
    }
    unsigned_txn = get_services().builder.build(sender_address, "attendance", attendance_data)
    return jsonify(
        {
            "unsignedTxn": unsigned_txn,
            "attendanceData": attendance_data,
            "message": "Sign this transaction with your Pera Wallet to mark attendance",
        }
    )


@chain.route("/chain/attendance/submit-signed", methods=["POST"])
def attendance_submit_signed():
    user = current_user("student")
    data = json_body()
    check = BodyCheck(data)
    signed_txn = check.string("signedTxn")
    session_id = check.string("sessionId")
    check.raise_if_invalid()

    session = _active_session(session_id)
    student_hash = sha256_hex(user.id)
    envelope, _ = signed_record(signed_txn, "attendance", sessionId=session.id, studentHash=student_hash)

    sessions = get_services().mirror.sessions
    claimed = sessions.claim_attendance(session.id, Attendee(student_hash=student_hash, tx_id=envelope.transaction_id))
    if not claimed:
        raise ConflictError("Attendance already marked for this session")

    result = submit_claimed(signed_txn, lambda: sessions.release_attendance(session.id, student_hash))
    return submission_response(
        result,
        message="Attendance recorded on Algorand blockchain",
        explorerUrl=explorer_url(result.transaction_id),
    )


@chain.route("/chain/attendance/verify/<tx_id>", methods=["GET"])
def attendance_verify(tx_id: str):
    verification = get_services().verifier.verify(tx_id, "attendance")

    database = None
    session = get_services().mirror.sessions.find_by_attendee_tx(tx_id)
    if session is not None:
        attendee = next(a for a in session.attendees if a.tx_id == tx_id)
        cross_check(verification, attendee.student_hash, "studentHash")
        database = {
            "sessionTitle": session.title,
            "sessionDate": _iso(session.created_at),
            "markedAt": _iso(attendee.marked_at),
        }

    return jsonify(
        {
            "verified": verification.valid,
            "integrityMatch": bool(verification.integrity_match),
            "blockchain": verification_block(verification),
            "database": database,
            "explorerUrl": explorer_url(tx_id),
        }
    )


def _attendee_view(attendee: Attendee) -> dict[str, Any]:
    return {
        "studentHash": attendee.student_hash,
        "txId": attendee.tx_id,
        "markedAt": _iso(attendee.marked_at),
        "explorerUrl": explorer_url(attendee.tx_id),
    }


@chain.route("/attendance/history", methods=["GET"])
def attendance_history():
    """Teachers see their sessions with every attendee, students only their own check-ins."""
    user = current_user()
    sessions = get_services().mirror.sessions
    if user.role in ("teacher", "admin"):
        found = sessions.find_by_teacher(user.id)
        views = [(s, s.attendees) for s in found]
    else:
        student_hash = sha256_hex(user.id)
        found = sessions.find_by_attendee(student_hash)
        views = [(s, [s.attendee(student_hash)]) for s in found]

    return jsonify(
        {
            "sessions": [
                {
                    "id": session.id,
                    "title": session.title,
                    "active": session.active,
                    "createdAt": _iso(session.created_at),
                    "attendees": [_attendee_view(a) for a in attendees],
                }
                for session, attendees in views
            ]
        }
    )


@chain.route("/election/create", methods=["POST"])
def election_create():
    user = current_user("teacher", "admin")
    data = json_body()
    check = BodyCheck(data)
    title = check.string("title", min_len=3, max_len=200)
    ends_at_raw = check.string("endsAt")

    candidates: list[Candidate] = []
    raw_candidates = data.get("candidates")
    if not isinstance(raw_candidates, list) or len(raw_candidates) < 2:
        check.errors.append("candidates must be a list of at least 2 entries")
    else:
        for i, item in enumerate(raw_candidates):
            if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not item["name"].strip():
                check.errors.append(f"candidates[{i}].name is required")
                continue
            candidates.append(Candidate(name=item["name"].strip(), party=str(item.get("party") or "")))

    ends_at = None
    if ends_at_raw:
        try:
            ends_at = _parse_datetime(ends_at_raw)
        except ValueError:
            check.errors.append("endsAt must be an ISO-8601 datetime")
        else:
            if ends_at <= utcnow():
                check.errors.append("endsAt must be in the future")
    check.raise_if_invalid()

    election = Election(id=new_id(), title=title, created_by=user.id, ends_at=ends_at, candidates=candidates)
    get_services().mirror.elections.insert(election)
    logger.info("Election {} created by {} with {} candidates", election.id, user.id, len(candidates))
    return jsonify({"election": _election_summary(election)}), 201


def _election_summary(election: Election) -> dict[str, Any]:
    total = election.total_votes
    return {
        "id": election.id,
        "title": election.title,
        "status": election.status,
        "endsAt": _iso(election.ends_at),
        "createdAt": _iso(election.created_at),
        "totalVotes": total,
        "totalVoters": len(election.voters),
        "candidates": [
            {
                "name": c.name,
                "party": c.party,
                "votes": c.vote_count,
                "percentage": f"{c.vote_count / total * 100:.1f}" if total else "0.0",
            }
            for c in election.candidates
        ],
    }


@chain.route("/election/list", methods=["GET"])
def election_list():
    current_user()
    elections = get_services().mirror.elections.list_all()
    return jsonify(
        {
            "elections": [
                {
                    "id": e.id,
                    "title": e.title,
                    "status": e.status,
                    "endsAt": _iso(e.ends_at),
                    "candidates": [{"name": c.name, "party": c.party, "votes": c.vote_count} for c in e.candidates],
                    "voters": len(e.voters),
                }
                for e in elections
            ]
        }
    )


def _open_election(election_id: str, candidate_index: int) -> Election:
    elections = get_services().mirror.elections
    election = elections.find_by_id(election_id)
    if election is None:
        raise NotFoundError("Election not found")
    if election.status != "active":
        raise ValidationError("Election is not active")
    if utcnow() > election.ends_at:
        elections.update_status(election.id, "closed")
        raise ValidationError("Election has ended")
    if candidate_index >= len(election.candidates):
        raise ValidationError("Invalid candidate index")
    return election


def choice_hash(election_id: str, candidate_index: int, nonce: str) -> str:
    return sha256_hex(f"{election_id}:{candidate_index}:{nonce}")


def anonymous_token(wallet: str, election_id: str) -> str:
    return sha256_hex(wallet + election_id)


@chain.route("/chain/vote/unsigned", methods=["POST"])
def vote_unsigned():
    current_user()
    data = json_body()
    check = BodyCheck(data)
    election_id = check.string("electionId")
    candidate_index = check.integer("candidateIndex")
    sender_address = check.string("senderAddress")
    check.raise_if_invalid()

    election = _open_election(election_id, candidate_index)
    if election.has_voted(sender_address):
        raise ConflictError("This wallet has already voted in this election")

    # The nonce never goes on-chain; only the voter can open the commitment.
    nonce = secrets.token_hex(16)
    vote_data = {
        "electionId": election.id,
        "choiceHash": choice_hash(election.id, candidate_index, nonce),
        "anonymousToken": anonymous_token(sender_address, election.id),
    }
    unsigned_txn = get_services().builder.build(sender_address, "vote", vote_data)
    return jsonify(
        {
            "unsignedTxn": unsigned_txn,
            "choiceHash": vote_data["choiceHash"],
            "choiceNonce": nonce,
            "electionTitle": election.title,
            "candidateName": election.candidates[candidate_index].name,
            "message": "Sign this transaction with your Pera Wallet to cast your vote",
        }
    )


@chain.route("/chain/vote/submit", methods=["POST"])
def vote_submit():
    current_user()
    data = json_body()
    check = BodyCheck(data)
    signed_txn = check.string("signedTxn")
    election_id = check.string("electionId")
    candidate_index = check.integer("candidateIndex")
    nonce = check.string("choiceNonce")
    check.raise_if_invalid()

    election = _open_election(election_id, candidate_index)
    envelope, record = signed_record(
        signed_txn,
        "vote",
        electionId=election.id,
        choiceHash=choice_hash(election.id, candidate_index, nonce),
    )
    if record.data.get("anonymousToken") != anonymous_token(envelope.sender, election.id):
        raise ValidationError("Signed note anonymousToken does not belong to the signing wallet")

    elections = get_services().mirror.elections
    voter = Voter(wallet=envelope.sender, tx_id=envelope.transaction_id)
    if not elections.claim_vote(election.id, candidate_index, voter):
        raise ConflictError("This wallet has already voted in this election")

    result = submit_claimed(
        signed_txn, lambda: elections.release_vote(election.id, candidate_index, envelope.sender)
    )
    return submission_response(
        result,
        message="Vote cast and recorded on Algorand blockchain",
        explorerUrl=explorer_url(result.transaction_id),
    )


@chain.route("/chain/vote/result/<election_id>", methods=["GET"])
def vote_result(election_id: str):
    election = get_services().mirror.elections.find_by_id(election_id)
    if election is None:
        raise NotFoundError("Election not found")
    return jsonify(
        {
            "election": _election_summary(election),
            "onChain": {
                "network": get_services().settings.network_name,
                "recordType": "vote",
                "immutable": True,
                "voterWalletsRecorded": len(election.voters),
            },
        }
    )


def _complaint_fields(check: BodyCheck) -> tuple[str, str | None]:
    text = check.string("text", min_len=10, max_len=5000)
    category = check.string("category", required=False) or None
    if category is not None and category not in ai.COMPLAINT_CATEGORIES:
        check.errors.append(f"category must be one of: {', '.join(ai.COMPLAINT_CATEGORIES)}")
    return text, category


@chain.route("/chain/complaint/submit-unsigned", methods=["POST"])
def complaint_submit_unsigned():
    current_user()
    check = BodyCheck(json_body())
    text, category = _complaint_fields(check)
    sender_address = check.string("senderAddress")
    check.raise_if_invalid()

    # Only the hash and the classification go on-chain, never the text.
    classification = ai.classify_complaint(ai.anonymize_text(text))
    complaint_data = {
        "hash": sha256_hex(text),
        "category": category or classification.category,
        "priority": classification.priority,
    }
    unsigned_txn = get_services().builder.build(sender_address, "complaint", complaint_data)
    return jsonify(
        {
            "unsignedTxn": unsigned_txn,
            "complaintData": complaint_data,
            "message": "Sign this transaction to submit your complaint with blockchain proof",
        }
    )


@chain.route("/chain/complaint/submit-signed", methods=["POST"])
def complaint_submit_signed():
    current_user()
    check = BodyCheck(json_body())
    signed_txn = check.string("signedTxn")
    text, category = _complaint_fields(check)
    check.raise_if_invalid()

    original_hash = sha256_hex(text)
    envelope, _ = signed_record(signed_txn, "complaint", hash=original_hash)

    anonymized = ai.anonymize_text(text)
    classification = ai.classify_complaint(anonymized)
    complaints = get_services().mirror.complaints
    complaint = complaints.insert(
        Complaint(
            id=new_id(),
            original_hash=original_hash,
            anonymized_text=anonymized,
            category=category or classification.category,
            priority=classification.priority,
            priority_score=classification.priority_score,
            tx_id=envelope.transaction_id,
        )
    )

    result = submit_claimed(signed_txn, lambda: complaints.delete(complaint.id))
    return submission_response(
        result,
        message="Complaint submitted with blockchain integrity proof",
        complaintId=complaint.id,
        explorerUrl=explorer_url(result.transaction_id),
    )


@chain.route("/chain/complaint/verify/<tx_id>", methods=["GET"])
def complaint_verify(tx_id: str):
    verification = get_services().verifier.verify(tx_id, "complaint")

    database = None
    complaint = get_services().mirror.complaints.find_by_tx(tx_id)
    if complaint is not None:
        cross_check(verification, complaint.original_hash, "hash")
        database = {
            "id": complaint.id,
            "category": complaint.category,
            "priority": complaint.priority,
            "createdAt": _iso(complaint.created_at),
            "integrityMatch": bool(verification.integrity_match),
        }

    return jsonify(
        {
            "verified": verification.valid,
            "integrityMatch": bool(verification.integrity_match),
            "blockchain": verification_block(verification),
            "database": database,
            "explorerUrl": explorer_url(tx_id),
        }
    )


@chain.route("/chain/complaint/list", methods=["GET"])
def complaint_list():
    current_user("admin")
    complaints = get_services().mirror.complaints.list_all()
    return jsonify(
        {
            "complaints": [
                {
                    "id": c.id,
                    "anonymizedText": c.anonymized_text,
                    "category": c.category,
                    "priority": c.priority,
                    "priorityScore": c.priority_score,
                    "txId": c.tx_id,
                    "createdAt": _iso(c.created_at),
                    "explorerUrl": explorer_url(c.tx_id),
                }
                for c in complaints
            ]
        }
    )


def cert_hash(student: str, event: str, role: str, issued_at: str) -> str:
    return sha256_hex(f"{student}:{event}:{role}:{issued_at}")


def _certificate_fields(check: BodyCheck) -> dict[str, str]:
    return {
        "recipientId": check.string("recipientId"),
        "student": check.string("student", min_len=1, max_len=200),
        "event": check.string("event", min_len=1, max_len=300),
        "role": check.string("role", min_len=1, max_len=100),
        "ipfsHash": check.string("ipfsHash", required=False),
    }


@chain.route("/chain/cert/mint-unsigned", methods=["POST"])
def cert_mint_unsigned():
    user = current_user("teacher", "admin")
    check = BodyCheck(json_body())
    fields = _certificate_fields(check)
    check.string("description", required=False, max_len=1000)
    sender_address = check.string("senderAddress")
    check.raise_if_invalid()

    mirror = get_services().mirror
    if mirror.users.find_by_id(fields["recipientId"]) is None:
        raise NotFoundError("Recipient user not found")
    existing = mirror.certificates.find_by_recipient_and_title(fields["recipientId"], fields["event"])
    if existing is not None:
        raise ConflictError(
            "Certificate already issued for this student and event",
            details={"existingTxHash": existing.tx_id},
        )

    issued_at = utc_timestamp()
    cert_data = {
        **fields,
        "issuedBy": user.id,
        "issuedAt": issued_at,
        "certHash": cert_hash(fields["student"], fields["event"], fields["role"], issued_at),
    }
    unsigned_txn = get_services().builder.build(sender_address, "certificate", cert_data)
    return jsonify(
        {
            "unsignedTxn": unsigned_txn,
            "certData": cert_data,
            "message": "Sign this transaction with your Pera Wallet to mint the certificate",
        }
    )


@chain.route("/chain/cert/submit", methods=["POST"])
def cert_submit():
    user = current_user("teacher", "admin")
    check = BodyCheck(json_body())
    signed_txn = check.string("signedTxn")
    fields = _certificate_fields(check)
    description = check.string("description", required=False, max_len=1000)
    check.raise_if_invalid()

    envelope, record = signed_record(
        signed_txn,
        "certificate",
        recipientId=fields["recipientId"],
        student=fields["student"],
        event=fields["event"],
        role=fields["role"],
        issuedBy=user.id,
    )
    issued_at = record.data.get("issuedAt") or ""
    expected_hash = cert_hash(fields["student"], fields["event"], fields["role"], issued_at)
    if record.data.get("certHash") != expected_hash:
        raise ValidationError("Signed note certHash does not match the certificate fields")

    certificates = get_services().mirror.certificates
    certificate = certificates.insert(
        Certificate(
            id=new_id(),
            recipient_id=fields["recipientId"],
            title=fields["event"],
            issuer=user.id,
            description=description or f"{fields['role']} - {fields['event']}",
            metadata={
                "standard": "arc3",
                "student": fields["student"],
                "event": fields["event"],
                "role": fields["role"],
                "ipfsHash": record.data.get("ipfsHash", ""),
                "issuedAt": issued_at,
                "issuedBy": user.id,
                "certHash": expected_hash,
            },
            tx_id=envelope.transaction_id,
        )
    )

    result = submit_claimed(signed_txn, lambda: certificates.delete(certificate.id))
    qr_data = cert_verify_url(result.transaction_id)
    return submission_response(
        result,
        message="Certificate minted on Algorand blockchain",
        certificate={
            "id": certificate.id,
            "title": certificate.title,
            "student": fields["student"],
            "event": fields["event"],
            "role": fields["role"],
            "txHash": result.transaction_id,
            "confirmed": result.confirmed,
            "round": result.round,
        },
        verification={
            "qrData": qr_data,
            "verifyUrl": qr_data,
            "explorerUrl": explorer_url(result.transaction_id),
        },
    )


@chain.route("/chain/cert/verify/<tx_id>", methods=["GET"])
def cert_verify(tx_id: str):
    mirror = get_services().mirror
    verification = get_services().verifier.verify(tx_id, "certificate")
    data = verification.record.data if verification.record else None

    database = None
    cert = mirror.certificates.find_by_tx(tx_id)
    if cert is not None:
        cross_check(verification, cert.metadata.get("certHash"), "certHash")
        recipient = mirror.users.find_by_id(cert.recipient_id)
        database = {
            "id": cert.id,
            "title": cert.title,
            "description": cert.description,
            "recipientEmail": recipient.email if recipient else None,
            "metadata": cert.metadata,
            "issuedAt": _iso(cert.created_at),
        }

    certificate = None
    if data is not None:
        certificate = {
            key: data.get(key) or None
            for key in ("student", "event", "role", "ipfsHash", "issuedBy", "issuedAt", "certHash")
        }
    ipfs_hash = data.get("ipfsHash") if data else None

    return jsonify(
        {
            "verified": verification.valid,
            "integrityMatch": bool(verification.integrity_match),
            "blockchain": verification_block(verification),
            "certificate": certificate,
            "database": database,
            "links": {
                "explorerUrl": explorer_url(tx_id),
                "qrVerifyUrl": cert_verify_url(tx_id),
                "ipfsUrl": f"https://ipfs.io/ipfs/{ipfs_hash}" if ipfs_hash else None,
            },
        }
    )


@chain.route("/certificates", methods=["GET"])
def certificate_list():
    user = current_user()
    certificates = get_services().mirror.certificates.find_by_recipient(user.id)
    return jsonify(
        {
            "certificates": [
                {
                    "id": c.id,
                    "title": c.title,
                    "description": c.description,
                    "issuer": c.issuer,
                    "metadata": c.metadata,
                    "txHash": c.tx_id,
                    "issuedAt": _iso(c.created_at),
                    "verifyUrl": cert_verify_url(c.tx_id),
                }
                for c in certificates
            ]
        }
    )
