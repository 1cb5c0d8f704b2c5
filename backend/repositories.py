"""Off-chain mirror of governance entities.

Each entity gets a small typed repository. The in-memory implementations here
back tests and single-process demos; ``pg_repositories`` provides the PostgreSQL
ones. Claims (attendance, votes) are compare-and-set operations: they succeed at
most once per key, which is what enforces one vote per wallet and one check-in per
student, not the chain write.
"""
import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from errors import ConflictError


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    email: str
    role: str
    wallet_address: str | None = None


@dataclass
class Attendee:
    student_hash: str
    tx_id: str
    marked_at: datetime = field(default_factory=utcnow)


@dataclass
class Session:
    id: str
    teacher_id: str
    title: str
    qr_secret: str
    qr_expires_at: datetime
    active: bool = True
    location: dict[str, Any] = field(default_factory=dict)
    attendees: list[Attendee] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def attendee(self, student_hash: str) -> Attendee | None:
        return next((a for a in self.attendees if a.student_hash == student_hash), None)


@dataclass
class Candidate:
    name: str
    party: str = ""
    vote_count: int = 0


@dataclass
class Voter:
    wallet: str
    tx_id: str
    voted_at: datetime = field(default_factory=utcnow)


@dataclass
class Election:
    id: str
    title: str
    created_by: str
    ends_at: datetime
    status: str = "active"
    candidates: list[Candidate] = field(default_factory=list)
    voters: list[Voter] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def has_voted(self, wallet: str) -> bool:
        return any(v.wallet == wallet for v in self.voters)

    @property
    def total_votes(self) -> int:
        return sum(c.vote_count for c in self.candidates)


@dataclass
class Complaint:
    id: str
    original_hash: str
    anonymized_text: str
    category: str
    priority: str
    priority_score: int
    tx_id: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Certificate:
    id: str
    recipient_id: str
    title: str
    issuer: str
    description: str
    metadata: dict[str, Any]
    tx_id: str
    created_at: datetime = field(default_factory=utcnow)


class UserRepository(Protocol):
    def find_by_id(self, user_id: str) -> User | None: ...
    def insert(self, user: User) -> User: ...


class SessionRepository(Protocol):
    def find_by_id(self, session_id: str) -> Session | None: ...
    def find_by_attendee_tx(self, tx_id: str) -> Session | None: ...
    def find_by_teacher(self, teacher_id: str) -> list[Session]: ...
    def find_by_attendee(self, student_hash: str) -> list[Session]: ...
    def insert(self, session: Session) -> Session: ...
    def claim_attendance(self, session_id: str, attendee: Attendee) -> bool: ...
    def release_attendance(self, session_id: str, student_hash: str) -> None: ...


class ElectionRepository(Protocol):
    def find_by_id(self, election_id: str) -> Election | None: ...
    def list_all(self) -> list[Election]: ...
    def insert(self, election: Election) -> Election: ...
    def update_status(self, election_id: str, status: str) -> None: ...
    def claim_vote(self, election_id: str, candidate_index: int, voter: Voter) -> bool: ...
    def release_vote(self, election_id: str, candidate_index: int, wallet: str) -> None: ...


class ComplaintRepository(Protocol):
    def find_by_tx(self, tx_id: str) -> Complaint | None: ...
    def list_all(self) -> list[Complaint]: ...
    def insert(self, complaint: Complaint) -> Complaint: ...
    def delete(self, complaint_id: str) -> None: ...


class CertificateRepository(Protocol):
    def find_by_tx(self, tx_id: str) -> Certificate | None: ...
    def find_by_recipient_and_title(self, recipient_id: str, title: str) -> Certificate | None: ...
    def find_by_recipient(self, recipient_id: str) -> list[Certificate]: ...
    def insert(self, certificate: Certificate) -> Certificate: ...
    def delete(self, certificate_id: str) -> None: ...


@dataclass
class Mirror:
    users: UserRepository
    sessions: SessionRepository
    elections: ElectionRepository
    complaints: ComplaintRepository
    certificates: CertificateRepository

    @classmethod
    def in_memory(cls) -> "Mirror":
        return cls(
            users=InMemoryUserRepository(),
            sessions=InMemorySessionRepository(),
            elections=InMemoryElectionRepository(),
            complaints=InMemoryComplaintRepository(),
            certificates=InMemoryCertificateRepository(),
        )


class _InMemoryStore:
    def __init__(self) -> None:
        self._items: dict[str, Any] = {}
        self._lock = threading.RLock()

    def _get(self, item_id: str) -> Any:
        with self._lock:
            item = self._items.get(item_id)
            return copy.deepcopy(item) if item is not None else None

    def _find(self, predicate) -> Any:
        with self._lock:
            for item in self._items.values():
                if predicate(item):
                    return copy.deepcopy(item)
        return None

    def _filter(self, predicate) -> list[Any]:
        """Matching items, newest first."""
        with self._lock:
            items = [copy.deepcopy(item) for item in self._items.values() if predicate(item)]
        return sorted(items, key=lambda item: item.created_at, reverse=True)

    def _put(self, item_id: str, item: Any) -> Any:
        with self._lock:
            self._items[item_id] = copy.deepcopy(item)
        return item


class InMemoryUserRepository(_InMemoryStore):
    def find_by_id(self, user_id: str) -> User | None:
        return self._get(user_id)

    def insert(self, user: User) -> User:
        with self._lock:
            if user.id in self._items or any(u.email == user.email for u in self._items.values()):
                raise ConflictError("A user with this id or email already exists")
            return self._put(user.id, user)


class InMemorySessionRepository(_InMemoryStore):
    def find_by_id(self, session_id: str) -> Session | None:
        return self._get(session_id)

    def find_by_attendee_tx(self, tx_id: str) -> Session | None:
        return self._find(lambda s: any(a.tx_id == tx_id for a in s.attendees))

    def find_by_teacher(self, teacher_id: str) -> list[Session]:
        return self._filter(lambda s: s.teacher_id == teacher_id)

    def find_by_attendee(self, student_hash: str) -> list[Session]:
        return self._filter(lambda s: s.attendee(student_hash) is not None)

    def insert(self, session: Session) -> Session:
        return self._put(session.id, session)

    def claim_attendance(self, session_id: str, attendee: Attendee) -> bool:
        with self._lock:
            session = self._items.get(session_id)
            if session is None or session.attendee(attendee.student_hash) is not None:
                return False
            session.attendees.append(copy.deepcopy(attendee))
            return True

    def release_attendance(self, session_id: str, student_hash: str) -> None:
        with self._lock:
            session = self._items.get(session_id)
            if session is not None:
                session.attendees = [a for a in session.attendees if a.student_hash != student_hash]


class InMemoryElectionRepository(_InMemoryStore):
    def find_by_id(self, election_id: str) -> Election | None:
        return self._get(election_id)

    def list_all(self) -> list[Election]:
        return self._filter(lambda e: True)

    def insert(self, election: Election) -> Election:
        return self._put(election.id, election)

    def update_status(self, election_id: str, status: str) -> None:
        with self._lock:
            election = self._items.get(election_id)
            if election is not None:
                election.status = status

    def claim_vote(self, election_id: str, candidate_index: int, voter: Voter) -> bool:
        with self._lock:
            election = self._items.get(election_id)
            if election is None or election.has_voted(voter.wallet):
                return False
            if not 0 <= candidate_index < len(election.candidates):
                return False
            election.voters.append(copy.deepcopy(voter))
            election.candidates[candidate_index].vote_count += 1
            return True

    def release_vote(self, election_id: str, candidate_index: int, wallet: str) -> None:
        with self._lock:
            election = self._items.get(election_id)
            if election is None or not election.has_voted(wallet):
                return
            election.voters = [v for v in election.voters if v.wallet != wallet]
            election.candidates[candidate_index].vote_count -= 1


class InMemoryComplaintRepository(_InMemoryStore):
    def find_by_tx(self, tx_id: str) -> Complaint | None:
        return self._find(lambda c: c.tx_id == tx_id)

    def list_all(self) -> list[Complaint]:
        return self._filter(lambda c: True)

    def insert(self, complaint: Complaint) -> Complaint:
        with self._lock:
            if any(c.tx_id == complaint.tx_id for c in self._items.values()):
                raise ConflictError("Complaint already recorded for this transaction")
            return self._put(complaint.id, complaint)

    def delete(self, complaint_id: str) -> None:
        with self._lock:
            self._items.pop(complaint_id, None)


class InMemoryCertificateRepository(_InMemoryStore):
    def find_by_tx(self, tx_id: str) -> Certificate | None:
        return self._find(lambda c: c.tx_id == tx_id)

    def find_by_recipient_and_title(self, recipient_id: str, title: str) -> Certificate | None:
        return self._find(lambda c: c.recipient_id == recipient_id and c.title == title)

    def find_by_recipient(self, recipient_id: str) -> list[Certificate]:
        return self._filter(lambda c: c.recipient_id == recipient_id)

    def insert(self, certificate: Certificate) -> Certificate:
        with self._lock:
            existing = self.find_by_recipient_and_title(certificate.recipient_id, certificate.title)
            if existing is not None or any(c.tx_id == certificate.tx_id for c in self._items.values()):
                raise ConflictError("Certificate already issued for this student and event")
            return self._put(certificate.id, certificate)

    def delete(self, certificate_id: str) -> None:
        with self._lock:
            self._items.pop(certificate_id, None)
