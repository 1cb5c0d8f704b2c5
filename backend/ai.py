"""Stand-ins for the ML services: liveness, PII redaction, complaint triage.

Each returns a structured result so a real model can be dropped in behind the
same call.
"""
import re
from dataclasses import dataclass

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?\d{3,5}\)?[-.\s]?\d{3,4}[-.\s]?\d{3,4}")
NATIONAL_ID_RE = re.compile(r"\b\d{4}\s?\d{4}\s?\d{4}\b")
TITLED_NAME_RE = re.compile(r"(Mr\.|Mrs\.|Ms\.|Dr\.|Prof\.)\s+[A-Z][a-z]+(\s+[A-Z][a-z]+)?")

CATEGORY_KEYWORDS = {
    "Infrastructure": [
        "building", "road", "electricity", "water", "wifi", "internet",
        "lab", "classroom", "toilet", "washroom", "parking",
    ],
    "Academic": ["exam", "marks", "grade", "syllabus", "lecture", "assignment", "project", "professor", "teacher", "class"],
    "Hostel": ["hostel", "mess", "food", "room", "warden", "curfew", "laundry", "roommate"],
    "Faculty": ["professor", "teacher", "faculty", "lecturer", "behaviour", "behavior", "harassment", "discrimination"],
}
URGENT_WORDS = ["urgent", "immediately", "danger", "unsafe", "emergency", "critical", "harassment", "threat"]
COMPLAINT_CATEGORIES = ("Infrastructure", "Academic", "Hostel", "Faculty", "Other")


@dataclass(frozen=True)
class LivenessResult:
    alive: bool
    confidence: float
    message: str


@dataclass(frozen=True)
class Classification:
    category: str
    priority: str
    priority_score: int


def check_liveness(image_base64: str) -> LivenessResult:
    # stub: every selfie passes
    return LivenessResult(alive=True, confidence=0.95, message="Liveness check passed (stub)")


def anonymize_text(text: str) -> str:
    cleaned = EMAIL_RE.sub("[EMAIL REDACTED]", text)
    cleaned = PHONE_RE.sub("[PHONE REDACTED]", cleaned)
    cleaned = NATIONAL_ID_RE.sub("[ID REDACTED]", cleaned)
    cleaned = TITLED_NAME_RE.sub("[NAME REDACTED]", cleaned)
    return cleaned


def classify_complaint(text: str) -> Classification:
    lower = text.lower()

    category = "Other"
    max_hits = 0
    for name, keywords in CATEGORY_KEYWORDS.items():
        hits = sum(1 for kw in keywords if kw in lower)
        if hits > max_hits:
            max_hits = hits
            category = name

    urgent_hits = sum(1 for word in URGENT_WORDS if word in lower)
    score = min(100.0, 30 + urgent_hits * 20 + min(len(text) / 10, 20))

    priority = "low"
    if score >= 80:
        priority = "critical"
    elif score >= 60:
        priority = "high"
    elif score >= 40:
        priority = "medium"

    return Classification(category=category, priority=priority, priority_score=int(score + 0.5))
