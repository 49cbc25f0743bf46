# bookshare/services/audit_service.py

from datetime import datetime
from typing import Optional
from sqlmodel import Session
from bookshare.models.cancellation import CancellationHistory
from bookshare.models.report import ReportAuditLog


def log_cancellation_event(
    session: Session,
    cancellation_id: int,
    action: str,
    actor_id: Optional[int] = None,
    details: Optional[dict] = None,
):
    """
    Append-only history for a cancellation request (actor None = system)
    """

    entry = CancellationHistory(
        cancellation_id=cancellation_id,
        action=action,
        actor_id=actor_id,
        details=details,
        created=datetime.utcnow(),
    )

    session.add(entry)
    return entry


def log_report_event(
    session: Session,
    report_id: int,
    action: str,
    actor_type: str = "system",
    actor_id: Optional[int] = None,
    old_status: Optional[str] = None,
    new_status: Optional[str] = None,
    details: Optional[dict] = None,
):
    """
    Append-only audit trail for report decisions
    """

    entry = ReportAuditLog(
        report_id=report_id,
        action=action,
        actor_type=actor_type,
        actor_id=actor_id,
        old_status=old_status,
        new_status=new_status,
        details=details,
        created=datetime.utcnow(),
    )

    session.add(entry)
    return entry
