import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import case, distinct, func
from sqlmodel import Session, select

from bookshare.models.report import ChatReport


class SignalType:
    KEYWORD_MATCH = "keyword_match"
    PATTERN_MATCH = "pattern_match"
    USER_HISTORY = "user_history"
    MULTIPLE_REPORTS = "multiple_reports"


SIGNAL_WEIGHTS = {
    SignalType.KEYWORD_MATCH: 30,
    SignalType.PATTERN_MATCH: 25,
    SignalType.USER_HISTORY: 20,
    SignalType.MULTIPLE_REPORTS: 35,
}

MAX_KEYWORD_WEIGHT = 40

# scam, payment solicitation, credential harvesting, harassment, spam
HARMFUL_KEYWORDS = [
    re.compile(r"scam|fraud|fake", re.IGNORECASE),
    re.compile(r"send\s+money|payment|wire\s+transfer", re.IGNORECASE),
    re.compile(r"personal\s+information|password|credit\s+card", re.IGNORECASE),
    re.compile(r"harassment|threat|harm", re.IGNORECASE),
    re.compile(r"spam|advertisement|promotion", re.IGNORECASE),
]

UPPERCASE_RE = re.compile(r"[A-Z]")
SPECIAL_CHAR_RE = re.compile(r"[!@#$%^&*]")
URL_RE = re.compile(r"https?://")

CAPS_RATIO_LIMIT = 0.7
SPECIAL_CHAR_RATIO_LIMIT = 0.3
SHORT_URL_MESSAGE_LENGTH = 50

HISTORY_WINDOW = timedelta(days=30)
HISTORY_MIN_REPORTS = 3
CLUSTER_WINDOW = timedelta(hours=1)
CLUSTER_MIN_REPORTERS = 2


@dataclass
class Signal:
    type: str
    weight: float
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReportContext:
    reporter_id: int
    reported_id: int
    chat_id: int
    message_text: Optional[str] = None


def analyze_message_text(text: str) -> list[Signal]:
    """Keyword and shape heuristics over a single chat message."""
    signals = []
    if not text:
        return signals

    matches = sum(1 for pattern in HARMFUL_KEYWORDS if pattern.search(text))
    if matches > 0:
        signals.append(Signal(
            type=SignalType.KEYWORD_MATCH,
            weight=min(SIGNAL_WEIGHTS[SignalType.KEYWORD_MATCH] * matches, MAX_KEYWORD_WEIGHT),
            data={"matches": matches},
        ))

    length = len(text)
    caps_ratio = len(UPPERCASE_RE.findall(text)) / length
    special_char_ratio = len(SPECIAL_CHAR_RE.findall(text)) / length
    has_urls = bool(URL_RE.search(text))

    if (
        caps_ratio > CAPS_RATIO_LIMIT
        or special_char_ratio > SPECIAL_CHAR_RATIO_LIMIT
        or (has_urls and length < SHORT_URL_MESSAGE_LENGTH)
    ):
        signals.append(Signal(
            type=SignalType.PATTERN_MATCH,
            weight=SIGNAL_WEIGHTS[SignalType.PATTERN_MATCH],
            data={
                "caps_ratio": round(caps_ratio, 4),
                "special_char_ratio": round(special_char_ratio, 4),
                "has_urls": has_urls,
            },
        ))

    return signals


class SignalCollector:
    """Gathers evidence for a report; only signals whose condition holds are returned."""

    def __init__(self, session: Session, now: Optional[datetime] = None):
        self.session = session
        self.now = now or datetime.utcnow()

    def collect(self, context: ReportContext) -> list[Signal]:
        signals = []
        if context.message_text is not None:
            signals.extend(analyze_message_text(context.message_text))
        signals.extend(self.user_history(context.reported_id))
        signals.extend(self.multiple_reports(context.reported_id, context.chat_id))
        return signals

    def user_history(self, reported_id: int) -> list[Signal]:
        total, valid = self.session.exec(
            select(
                func.count(ChatReport.id),
                func.sum(case((ChatReport.auto_resolved == True, 1), else_=0)),  # noqa: E712
            )
            .where(ChatReport.reported_id == reported_id)
            .where(ChatReport.created >= self.now - HISTORY_WINDOW)
        ).one()
        total = total or 0
        valid = valid or 0

        if total < HISTORY_MIN_REPORTS:
            return []

        return [Signal(
            type=SignalType.USER_HISTORY,
            weight=SIGNAL_WEIGHTS[SignalType.USER_HISTORY] * (valid / total),
            data={"total": total, "valid": valid},
        )]

    def multiple_reports(self, reported_id: int, chat_id: int) -> list[Signal]:
        reporters = self.session.exec(
            select(func.count(distinct(ChatReport.reporter_id)))
            .where(ChatReport.reported_id == reported_id)
            .where(ChatReport.chat_id == chat_id)
            .where(ChatReport.created >= self.now - CLUSTER_WINDOW)
        ).one() or 0

        if reporters < CLUSTER_MIN_REPORTERS:
            return []

        return [Signal(
            type=SignalType.MULTIPLE_REPORTS,
            weight=SIGNAL_WEIGHTS[SignalType.MULTIPLE_REPORTS],
            data={"reporters": reporters},
        )]
