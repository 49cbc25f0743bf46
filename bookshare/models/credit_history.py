from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class CreditHistory(SQLModel, table=True):
    __tablename__ = "credit_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    transaction_id: Optional[int] = Field(default=None, index=True)
    report_id: Optional[int] = Field(default=None, index=True)

    credit_change: int
    reason: str
    old_balance: int
    new_balance: int
    remark: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
