import json
from typing import Any

from psycopg2 import errors as pg_errors

import db
from errors import ConflictError
from repositories import (
    Attendee,
    Candidate,
    Certificate,
    Complaint,
    Election,
    Mirror,
    Session,
    User,
    Voter,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    role TEXT NOT NULL,
    wallet_address TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    teacher_id TEXT NOT NULL,
    title TEXT NOT NULL,
    qr_secret TEXT NOT NULL,
    qr_expires_at TIMESTAMPTZ NOT NULL,
    active BOOLEAN NOT NULL DEFAULT TRUE,
    location_json TEXT NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS session_attendees (
    session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    student_hash TEXT NOT NULL,
    tx_id TEXT NOT NULL,
    marked_at TIMESTAMPTZ DEFAULT NOW(),
    PRIMARY KEY (session_id, student_hash)
);

CREATE TABLE IF NOT EXISTS elections (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    created_by TEXT NOT NULL,
    status TEXT NOT NULL,
    ends_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS election_candidates (
    election_id TEXT NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    idx INTEGER NOT NULL,
    name TEXT NOT NULL,
    party TEXT NOT NULL DEFAULT '',
    vote_count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (election_id, idx)
);

CREATE TABLE IF NOT EXISTS election_voters (
    election_id TEXT NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    wallet TEXT NOT NULL,
    tx_id TEXT NOT NULL,
    voted_at TIMESTAMPTZ DEFAULT NOW(),
    PRIMARY KEY (election_id, wallet)
);

CREATE TABLE IF NOT EXISTS complaints (
    id TEXT PRIMARY KEY,
    original_hash TEXT NOT NULL,
    anonymized_text TEXT NOT NULL,
    category TEXT NOT NULL,
    priority TEXT NOT NULL,
    priority_score INTEGER NOT NULL,
    tx_id TEXT UNIQUE NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS certificates (
    id TEXT PRIMARY KEY,
    recipient_id TEXT NOT NULL,
    title TEXT NOT NULL,
    issuer TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    metadata_json TEXT NOT NULL,
    tx_id TEXT UNIQUE NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (recipient_id, title)
);
"""


def ensure_schema() -> None:
    with db.transaction() as conn:
        cur = conn.cursor()
        try:
            cur.execute(SCHEMA)
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS session_attendees_tx_id ON session_attendees (tx_id);"
            )
        finally:
            cur.close()


def _fetchone(sql: str, params: tuple[Any, ...]) -> tuple[Any, ...] | None:
    with db.transaction() as conn:
        cur = conn.cursor()
        try:
            cur.execute(sql, params)
            return cur.fetchone()
        finally:
            cur.close()


def _execute(sql: str, params: tuple[Any, ...]) -> None:
    with db.transaction() as conn:
        cur = conn.cursor()
        try:
            cur.execute(sql, params)
        finally:
            cur.close()


class PgUserRepository:
    def find_by_id(self, user_id: str) -> User | None:
        row = _fetchone("SELECT id, email, role, wallet_address FROM users WHERE id = %s", (user_id,))
        return User(*row) if row else None

    def insert(self, user: User) -> User:
        try:
            _execute(
                "INSERT INTO users (id, email, role, wallet_address) VALUES (%s, %s, %s, %s)",
                (user.id, user.email, user.role, user.wallet_address),
            )
        except pg_errors.UniqueViolation as exc:
            raise ConflictError("A user with this id or email already exists") from exc
        return user


class PgSessionRepository:
    def _load(self, cur, session_id: str) -> Session | None:
        cur.execute(
            """
            SELECT id, teacher_id, title, qr_secret, qr_expires_at, active, location_json, created_at
            FROM sessions WHERE id = %s
            """,
            (session_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        cur.execute(
            "SELECT student_hash, tx_id, marked_at FROM session_attendees WHERE session_id = %s ORDER BY marked_at",
            (session_id,),
        )
        attendees = [Attendee(student_hash=r[0], tx_id=r[1], marked_at=r[2]) for r in cur.fetchall()]
        return Session(
            id=row[0],
            teacher_id=row[1],
            title=row[2],
            qr_secret=row[3],
            qr_expires_at=row[4],
            active=row[5],
            location=json.loads(row[6] or "{}"),
            attendees=attendees,
            created_at=row[7],
        )

    def find_by_id(self, session_id: str) -> Session | None:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                return self._load(cur, session_id)
            finally:
                cur.close()

    def find_by_attendee_tx(self, tx_id: str) -> Session | None:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute("SELECT session_id FROM session_attendees WHERE tx_id = %s", (tx_id,))
                row = cur.fetchone()
                return self._load(cur, row[0]) if row else None
            finally:
                cur.close()

    def _load_many(self, sql: str, params: tuple[Any, ...]) -> list[Session]:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute(sql, params)
                ids = [row[0] for row in cur.fetchall()]
                return [self._load(cur, session_id) for session_id in ids]
            finally:
                cur.close()

    def find_by_teacher(self, teacher_id: str) -> list[Session]:
        return self._load_many(
            "SELECT id FROM sessions WHERE teacher_id = %s ORDER BY created_at DESC", (teacher_id,)
        )

    def find_by_attendee(self, student_hash: str) -> list[Session]:
        return self._load_many(
            """
            SELECT s.id FROM sessions s
            JOIN session_attendees a ON a.session_id = s.id
            WHERE a.student_hash = %s
            ORDER BY s.created_at DESC
            """,
            (student_hash,),
        )

    def insert(self, session: Session) -> Session:
        _execute(
            """
            INSERT INTO sessions (id, teacher_id, title, qr_secret, qr_expires_at, active, location_json, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                session.id,
                session.teacher_id,
                session.title,
                session.qr_secret,
                session.qr_expires_at,
                session.active,
                json.dumps(session.location),
                session.created_at,
            ),
        )
        return session

    def claim_attendance(self, session_id: str, attendee: Attendee) -> bool:
        row = _fetchone(
            """
            INSERT INTO session_attendees (session_id, student_hash, tx_id, marked_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING student_hash
            """,
            (session_id, attendee.student_hash, attendee.tx_id, attendee.marked_at),
        )
        return row is not None

    def release_attendance(self, session_id: str, student_hash: str) -> None:
        _execute(
            "DELETE FROM session_attendees WHERE session_id = %s AND student_hash = %s",
            (session_id, student_hash),
        )


class PgElectionRepository:
    def _load(self, cur, election_id: str) -> Election | None:
        cur.execute(
            "SELECT id, title, created_by, ends_at, status, created_at FROM elections WHERE id = %s",
            (election_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        cur.execute(
            "SELECT name, party, vote_count FROM election_candidates WHERE election_id = %s ORDER BY idx",
            (election_id,),
        )
        candidates = [Candidate(name=r[0], party=r[1], vote_count=r[2]) for r in cur.fetchall()]
        cur.execute(
            "SELECT wallet, tx_id, voted_at FROM election_voters WHERE election_id = %s ORDER BY voted_at",
            (election_id,),
        )
        voters = [Voter(wallet=r[0], tx_id=r[1], voted_at=r[2]) for r in cur.fetchall()]
        return Election(
            id=row[0],
            title=row[1],
            created_by=row[2],
            ends_at=row[3],
            status=row[4],
            candidates=candidates,
            voters=voters,
            created_at=row[5],
        )

    def find_by_id(self, election_id: str) -> Election | None:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                return self._load(cur, election_id)
            finally:
                cur.close()

    def list_all(self) -> list[Election]:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute("SELECT id FROM elections ORDER BY created_at DESC")
                ids = [row[0] for row in cur.fetchall()]
                return [self._load(cur, election_id) for election_id in ids]
            finally:
                cur.close()

    def insert(self, election: Election) -> Election:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    """
                    INSERT INTO elections (id, title, created_by, status, ends_at, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (election.id, election.title, election.created_by, election.status, election.ends_at, election.created_at),
                )
                for idx, candidate in enumerate(election.candidates):
                    cur.execute(
                        """
                        INSERT INTO election_candidates (election_id, idx, name, party, vote_count)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (election.id, idx, candidate.name, candidate.party, candidate.vote_count),
                    )
            finally:
                cur.close()
        return election

    def update_status(self, election_id: str, status: str) -> None:
        _execute("UPDATE elections SET status = %s WHERE id = %s", (status, election_id))

    def claim_vote(self, election_id: str, candidate_index: int, voter: Voter) -> bool:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    """
                    INSERT INTO election_voters (election_id, wallet, tx_id, voted_at)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (election_id, wallet) DO NOTHING
                    RETURNING wallet
                    """,
                    (election_id, voter.wallet, voter.tx_id, voter.voted_at),
                )
                if cur.fetchone() is None:
                    return False
                cur.execute(
                    """
                    UPDATE election_candidates SET vote_count = vote_count + 1
                    WHERE election_id = %s AND idx = %s
                    """,
                    (election_id, candidate_index),
                )
                if cur.rowcount != 1:
                    conn.rollback()
                    return False
                return True
            finally:
                cur.close()

    def release_vote(self, election_id: str, candidate_index: int, wallet: str) -> None:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    "DELETE FROM election_voters WHERE election_id = %s AND wallet = %s",
                    (election_id, wallet),
                )
                if cur.rowcount:
                    cur.execute(
                        """
                        UPDATE election_candidates SET vote_count = vote_count - 1
                        WHERE election_id = %s AND idx = %s
                        """,
                        (election_id, candidate_index),
                    )
            finally:
                cur.close()


COMPLAINT_COLUMNS = "id, original_hash, anonymized_text, category, priority, priority_score, tx_id, created_at"


class PgComplaintRepository:
    def find_by_tx(self, tx_id: str) -> Complaint | None:
        row = _fetchone(f"SELECT {COMPLAINT_COLUMNS} FROM complaints WHERE tx_id = %s", (tx_id,))
        return Complaint(*row) if row else None

    def list_all(self) -> list[Complaint]:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute(f"SELECT {COMPLAINT_COLUMNS} FROM complaints ORDER BY created_at DESC")
                return [Complaint(*row) for row in cur.fetchall()]
            finally:
                cur.close()

    def insert(self, complaint: Complaint) -> Complaint:
        try:
            _execute(
                f"INSERT INTO complaints ({COMPLAINT_COLUMNS}) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    complaint.id,
                    complaint.original_hash,
                    complaint.anonymized_text,
                    complaint.category,
                    complaint.priority,
                    complaint.priority_score,
                    complaint.tx_id,
                    complaint.created_at,
                ),
            )
        except pg_errors.UniqueViolation as exc:
            raise ConflictError("Complaint already recorded for this transaction") from exc
        return complaint

    def delete(self, complaint_id: str) -> None:
        _execute("DELETE FROM complaints WHERE id = %s", (complaint_id,))


CERTIFICATE_COLUMNS = "id, recipient_id, title, issuer, description, metadata_json, tx_id, created_at"


def _certificate(row: tuple[Any, ...]) -> Certificate:
    return Certificate(
        id=row[0],
        recipient_id=row[1],
        title=row[2],
        issuer=row[3],
        description=row[4],
        metadata=json.loads(row[5]),
        tx_id=row[6],
        created_at=row[7],
    )


class PgCertificateRepository:
    def find_by_tx(self, tx_id: str) -> Certificate | None:
        row = _fetchone(f"SELECT {CERTIFICATE_COLUMNS} FROM certificates WHERE tx_id = %s", (tx_id,))
        return _certificate(row) if row else None

    def find_by_recipient_and_title(self, recipient_id: str, title: str) -> Certificate | None:
        row = _fetchone(
            f"SELECT {CERTIFICATE_COLUMNS} FROM certificates WHERE recipient_id = %s AND title = %s",
            (recipient_id, title),
        )
        return _certificate(row) if row else None

    def find_by_recipient(self, recipient_id: str) -> list[Certificate]:
        with db.transaction() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    f"SELECT {CERTIFICATE_COLUMNS} FROM certificates WHERE recipient_id = %s ORDER BY created_at DESC",
                    (recipient_id,),
                )
                return [_certificate(row) for row in cur.fetchall()]
            finally:
                cur.close()

    def insert(self, certificate: Certificate) -> Certificate:
        try:
            _execute(
                f"INSERT INTO certificates ({CERTIFICATE_COLUMNS}) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    certificate.id,
                    certificate.recipient_id,
                    certificate.title,
                    certificate.issuer,
                    certificate.description,
                    json.dumps(certificate.metadata),
                    certificate.tx_id,
                    certificate.created_at,
                ),
            )
        except pg_errors.UniqueViolation as exc:
            raise ConflictError("Certificate already issued for this student and event") from exc
        return certificate

    def delete(self, certificate_id: str) -> None:
        _execute("DELETE FROM certificates WHERE id = %s", (certificate_id,))


def postgres_mirror() -> Mirror:
    return Mirror(
        users=PgUserRepository(),
        sessions=PgSessionRepository(),
        elections=PgElectionRepository(),
        complaints=PgComplaintRepository(),
        certificates=PgCertificateRepository(),
    )
