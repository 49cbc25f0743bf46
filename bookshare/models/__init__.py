from bookshare.models.user import User
from bookshare.models.book import Book
from bookshare.models.transaction import Transaction
from bookshare.models.chat import Chat, ChatMessage
from bookshare.models.notifications import Notification
from bookshare.models.credit_history import CreditHistory
from bookshare.models.cancellation import CancellationRequest, CancellationHistory
from bookshare.models.report import (
    ChatReport,
    ReportSignal,
    ReportAuditLog,
    ReporterTrustScore,
)

# add ALL models here
