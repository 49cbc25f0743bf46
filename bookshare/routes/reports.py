from fastapi import APIRouter, Depends, status
from sqlmodel import Session, select

from bookshare.database import get_session
from bookshare.dependencies.admin import require_admin
from bookshare.dependencies.services import get_report_adjudicator
from bookshare.models.report import ChatReport
from bookshare.models.user import User
from bookshare.schemas.report_schemas import (
    AppealRequest,
    AppealResolveRequest,
    AppealResponse,
    ReportAgainstMe,
    ReportSubmit,
    ReportSubmitResponse,
    ReportSummary,
    TrustScoreResponse,
)
from bookshare.services.report_adjudicator import ReportAdjudicator, get_trust_summary
from bookshare.utils.pagination import PageParams, page_params, paginate
from bookshare.utils.token import get_current_user

router = APIRouter()


@router.post("/submit", status_code=status.HTTP_201_CREATED, response_model=ReportSubmitResponse)
def submit_report(
    request: ReportSubmit,
    adjudicator: ReportAdjudicator = Depends(get_report_adjudicator),
    current_user: User = Depends(get_current_user),
):
    outcome = adjudicator.submit(
        reporter_id=current_user.id,
        reported_id=request.reported_user_id,
        chat_id=request.chat_id,
        reason=request.reason.value,
        message_id=request.message_id,
        description=request.description,
    )

    return ReportSubmitResponse(
        report_id=outcome.report_id,
        auto_resolved=outcome.auto_resolved,
        confidence=round(outcome.confidence, 2),
        signal_count=outcome.signal_count,
        penalty_applied=outcome.penalty_applied,
        message=(
            "Report submitted and automatically resolved"
            if outcome.auto_resolved
            else "Report submitted and pending review"
        ),
    )


@router.post("/appeal/{report_id}", response_model=AppealResponse)
def appeal_report(
    report_id: int,
    request: AppealRequest,
    adjudicator: ReportAdjudicator = Depends(get_report_adjudicator),
    current_user: User = Depends(get_current_user),
):
    report = adjudicator.appeal(report_id, current_user.id, request.appeal_reason)

    return AppealResponse(
        report_id=report.id,
        appeal_status=report.appeal_status,
        message="Appeal submitted successfully. It will be reviewed by staff.",
    )


@router.post("/appeal/{report_id}/resolve", response_model=AppealResponse)
def resolve_appeal(
    report_id: int,
    request: AppealResolveRequest,
    adjudicator: ReportAdjudicator = Depends(get_report_adjudicator),
    admin: User = Depends(require_admin),
):
    report = adjudicator.resolve_appeal(report_id, admin.id, request.upheld, request.note)

    return AppealResponse(
        report_id=report.id,
        appeal_status=report.appeal_status,
        appeal_outcome=report.appeal_outcome,
        message="Appeal resolved",
    )


@router.get("/my-reports")
def my_reports(
    params: PageParams = Depends(page_params),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    query = (
        select(ChatReport)
        .where(ChatReport.reporter_id == current_user.id)
        .order_by(ChatReport.created.desc(), ChatReport.id.desc())
    )

    return paginate(
        session,
        query,
        params,
        serialize=lambda r: ReportSummary.model_validate(r, from_attributes=True),
    )


@router.get("/against-me")
def reports_against_me(
    params: PageParams = Depends(page_params),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    query = (
        select(ChatReport)
        .where(ChatReport.reported_id == current_user.id)
        .order_by(ChatReport.created.desc(), ChatReport.id.desc())
    )

    return paginate(
        session,
        query,
        params,
        serialize=lambda r: ReportAgainstMe.model_validate(r, from_attributes=True),
    )


@router.get("/trust-score", response_model=TrustScoreResponse)
def trust_score(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return TrustScoreResponse(**get_trust_summary(session, current_user.id))
