"""
Ledger models used when crediting imported balances.
"""

from typing import Optional
from datetime import datetime
from enum import Enum

from models.base import BaseSchema


class TransactionType(str, Enum):
    BULK_IMPORT = "bulk_import"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    POSTED = "posted"
    REJECTED = "rejected"


class LedgerTransactionResponse(BaseSchema):
    id: str
    account_id: str
    transaction_type: TransactionType
    amount: float
    status: TransactionStatus
    description: Optional[str] = None
    source_employee_id: Optional[str] = None
    target_employee_id: Optional[str] = None
    created_at: datetime
    posted_at: Optional[datetime] = None
