"""Pure scoring helpers for report adjudication.

Nothing here touches the database, so the adjudicator and the tests share the
exact same math.
"""
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional

TRUST_SCORE_WEIGHT = 0.3
SIGNAL_COMBINE_WEIGHT = 0.7
TRUST_COMBINE_WEIGHT = 0.3

CONFIDENCE_THRESHOLD = 70.0
MIN_SIGNAL_COUNT = 2

MAX_CONFIDENCE = 100.0


def _weight(signal: Any) -> float:
    if isinstance(signal, Mapping):
        value = signal.get("weight", 0)
    else:
        value = getattr(signal, "weight", 0)
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_confidence(
    signals: Iterable[Any],
    trust_score: float,
    trust_score_weight: float = TRUST_SCORE_WEIGHT,
    signal_combine_weight: float = SIGNAL_COMBINE_WEIGHT,
    trust_combine_weight: float = TRUST_COMBINE_WEIGHT,
) -> float:
    """
    Combine signal weights and the reporter's trust score into 0..100.

    signal_score = sum of raw weights
    trust_factor = (trust / 100) * trust_score_weight * 100
    final        = signal_score * 0.7 + trust_factor * 0.3, capped at 100

    An empty signal list always scores 0.
    """
    signals = list(signals)
    if not signals:
        return 0.0

    signal_score = sum(_weight(s) for s in signals)
    trust = min(max(float(trust_score or 0), 0.0), 100.0)
    trust_factor = (trust / 100) * trust_score_weight * 100

    final_score = signal_score * signal_combine_weight + trust_factor * trust_combine_weight
    return min(max(final_score, 0.0), MAX_CONFIDENCE)


def should_auto_resolve(
    confidence: float,
    signal_count: int,
    threshold: float = CONFIDENCE_THRESHOLD,
    min_signals: int = MIN_SIGNAL_COUNT,
) -> bool:
    # both thresholds are required; one heavy signal is never enough
    return confidence >= threshold and signal_count >= min_signals


def is_in_cooldown(trust: Any, now: Optional[datetime] = None) -> bool:
    if trust is None:
        return False
    if isinstance(trust, Mapping):
        cooldown_until = trust.get("cooldown_until")
    else:
        cooldown_until = getattr(trust, "cooldown_until", None)
    if not cooldown_until:
        return False
    if isinstance(cooldown_until, str):
        cooldown_until = datetime.fromisoformat(cooldown_until)
    now = now or datetime.utcnow()
    if cooldown_until.tzinfo is not None and now.tzinfo is None:
        cooldown_until = cooldown_until.astimezone(timezone.utc).replace(tzinfo=None)
    return cooldown_until > now
