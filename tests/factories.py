"""
Test data factories.

Uses factory pattern to generate consistent test data: database rows as
dicts, merged rows as models.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from models.bulk_import import MatchType, MergedRow


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EmployeeFactory:
    """
    Factory for employee rows.

    Usage:
        employee = EmployeeFactory.create()
        employee = EmployeeFactory.create(email="ana@example.com")
        employees = EmployeeFactory.create_batch(5)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        name: Optional[str] = None,
        email: Optional[str] = None,
        is_admin: bool = False
    ) -> dict:
        counter = cls._next_counter()
        return {
            "id": id or str(uuid4()),
            "name": name or f"Employee {counter}",
            "email": email or f"employee{counter}@example.com",
            "is_admin": is_admin,
            "created_at": _now(),
        }

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        return [cls.create(**overrides) for _ in range(count)]


class AccountFactory:
    """Factory for account rows."""

    @classmethod
    def create(
        cls,
        employee_id: str,
        id: Optional[str] = None,
        balance: float = 0
    ) -> dict:
        return {
            "id": id or str(uuid4()),
            "employee_id": employee_id,
            "balance": balance,
            "created_at": _now(),
        }


class MergedRowFactory:
    """
    Factory for MergedRow models.

    Usage:
        row = MergedRowFactory.create(email="ana@example.com", amount=250)
        rows = MergedRowFactory.create_batch(3)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        name: Optional[str] = None,
        email: Optional[str] = None,
        amount: float = 100,
        confidence: float = 1.0,
        match_type: MatchType = MatchType.AUTO,
        market: Optional[str] = None,
        balance_row_index: Optional[int] = None
    ) -> MergedRow:
        counter = cls._next_counter()
        return MergedRow(
            name=name or f"Person {counter}",
            email=f"person{counter}@example.com" if email is None else email,
            amount=amount,
            market=market,
            confidence=confidence,
            match_type=match_type,
            balance_row_index=counter if balance_row_index is None else balance_row_index,
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        return [cls.create(**overrides) for _ in range(count)]

    @classmethod
    def create_unmatched(cls, **overrides) -> MergedRow:
        """Row the matcher found no email for."""
        return cls.create(email="", confidence=0.0, match_type=MatchType.NONE, **overrides)


class ImportJobFactory:
    """Factory for bulk_import_jobs rows."""

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        name: str = "Test import",
        status: str = "completed",
        created_by_id: Optional[str] = None,
        total_rows: int = 0,
        success_count: int = 0,
        error_count: int = 0,
        created_at: Optional[str] = None
    ) -> dict:
        return {
            "id": id or str(uuid4()),
            "name": name,
            "status": status,
            "created_by_id": created_by_id,
            "total_rows": total_rows,
            "processed_rows": total_rows,
            "success_count": success_count,
            "error_count": error_count,
            "column_mapping": {},
            "error_log": None,
            "created_at": created_at or _now(),
            "completed_at": None,
        }


class PendingBalanceFactory:
    """
    Factory for pending_import_balances rows.

    Usage:
        pending = PendingBalanceFactory.create(import_job_id=job["id"])
        claimed = PendingBalanceFactory.create_claimed(import_job_id=job["id"])
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        import_job_id: str,
        id: Optional[str] = None,
        recipient_email: Optional[str] = None,
        recipient_name: Optional[str] = None,
        amount: float = 100,
        status: str = "pending",
        invite_sent_at: Optional[str] = None,
        created_at: Optional[str] = None
    ) -> dict:
        counter = cls._next_counter()
        return {
            "id": id or str(uuid4()),
            "import_job_id": import_job_id,
            "recipient_email": recipient_email or f"newhire{counter}@example.com",
            "recipient_name": recipient_name or f"New Hire {counter}",
            "amount": amount,
            "status": status,
            "transaction_id": None,
            "invite_sent_at": invite_sent_at,
            "claimed_at": None,
            "created_at": created_at or _now(),
        }

    @classmethod
    def create_claimed(cls, import_job_id: str, **overrides) -> dict:
        return cls.create(import_job_id, status="claimed", **overrides)

    @classmethod
    def create_expired(cls, import_job_id: str, **overrides) -> dict:
        return cls.create(import_job_id, status="expired", **overrides)
