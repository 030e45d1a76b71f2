"""
Ledger transaction service.

Creates and posts the transactions that credit imported balances to
employee accounts.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from models.ledger import (
    LedgerTransactionResponse,
    TransactionStatus,
    TransactionType,
)
from exceptions import (
    DatabaseError,
    TransactionNotFoundError,
    TransactionAlreadyPostedError,
)

logger = structlog.get_logger(__name__)

CREDIT_ATTEMPTS = 3


class TransactionService:
    """
    Service for ledger transactions.

    Handles:
    - Creating pending transactions
    - Posting them (status change + account balance update)
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "ledger_transactions"
        self.accounts_table = "accounts"

    def create_pending_transaction(
        self,
        account_id: str,
        transaction_type: TransactionType,
        amount: float,
        description: str,
        source_employee_id: Optional[str] = None,
        target_employee_id: Optional[str] = None
    ) -> LedgerTransactionResponse:
        """
        Create a transaction in pending state.

        Args:
            account_id: Account to credit
            transaction_type: Ledger transaction type
            amount: Amount in Guincoins
            description: Shown in the employee's history
            source_employee_id: Who initiated it (admin)
            target_employee_id: Who receives it

        Returns:
            Created transaction
        """
        record = {
            "account_id": account_id,
            "transaction_type": transaction_type.value,
            "amount": amount,
            "status": TransactionStatus.PENDING.value,
            "description": description,
            "source_employee_id": source_employee_id,
            "target_employee_id": target_employee_id,
        }

        try:
            result = self.db.table(self.table).insert(record).execute()
        except Exception as e:
            logger.error(
                "transaction_create_failed",
                account_id=account_id,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "No data returned from insert")

        row = result.data[0]
        logger.debug(
            "transaction_created",
            id=row["id"],
            account_id=account_id,
            amount=amount
        )
        return self._row_to_response(row)

    def get_by_id(self, transaction_id: str) -> LedgerTransactionResponse:
        result = self.db.table(self.table).select("*").eq("id", transaction_id).execute()
        if not result.data:
            raise TransactionNotFoundError(transaction_id)
        return self._row_to_response(result.data[0])

    def post_transaction(self, transaction_id: str) -> LedgerTransactionResponse:
        """
        Post a pending transaction and credit its account.

        The status flips to posted first, only while still pending, so a
        transaction is credited at most once. If the credit fails the
        status goes back to pending.

        Raises:
            TransactionNotFoundError: If transaction doesn't exist
            TransactionAlreadyPostedError: If it isn't pending
            DatabaseError: If the account can't be credited
        """
        transaction = self.get_by_id(transaction_id)

        if transaction.status != TransactionStatus.PENDING:
            raise TransactionAlreadyPostedError(transaction_id, transaction.status.value)

        try:
            result = (
                self.db.table(self.table)
                .update({
                    "status": TransactionStatus.POSTED.value,
                    "posted_at": datetime.now(timezone.utc).isoformat(),
                })
                .eq("id", transaction_id)
                .eq("status", TransactionStatus.PENDING.value)
                .execute()
            )
        except Exception as e:
            logger.error(
                "transaction_post_failed",
                id=transaction_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            # Posted by someone else between the read and the update
            raise TransactionAlreadyPostedError(transaction_id, TransactionStatus.POSTED.value)

        try:
            self._credit_account(transaction.account_id, transaction.amount)
        except Exception as e:
            logger.error(
                "transaction_credit_failed",
                id=transaction_id,
                account_id=transaction.account_id,
                error=str(e)
            )
            self._revert_to_pending(transaction_id)
            if isinstance(e, DatabaseError):
                raise
            raise DatabaseError("update", str(e))

        logger.info(
            "transaction_posted",
            id=transaction_id,
            account_id=transaction.account_id,
            amount=transaction.amount
        )
        return self._row_to_response(result.data[0])

    def _credit_account(self, account_id: str, amount: float) -> None:
        """
        Add amount to the account balance.

        The write only applies while the balance still holds the value
        read, so concurrent credits retry instead of overwriting each other.
        """
        for _ in range(CREDIT_ATTEMPTS):
            account = (
                self.db.table(self.accounts_table)
                .select("id, balance")
                .eq("id", account_id)
                .execute()
            )
            if not account.data:
                raise DatabaseError("select", f"Account {account_id} not found")

            current = account.data[0].get("balance")
            updated = (
                self.db.table(self.accounts_table)
                .update({"balance": float(current or 0) + amount})
                .eq("id", account_id)
                .eq("balance", current)
                .execute()
            )
            if updated.data:
                return

            logger.debug("account_credit_retry", account_id=account_id)

        raise DatabaseError("update", f"Account {account_id} balance kept changing")

    def _revert_to_pending(self, transaction_id: str) -> None:
        try:
            self.db.table(self.table).update({
                "status": TransactionStatus.PENDING.value,
                "posted_at": None,
            }).eq("id", transaction_id).execute()
        except Exception as e:
            logger.error(
                "transaction_revert_failed",
                id=transaction_id,
                error=str(e)
            )

    def _row_to_response(self, row: dict) -> LedgerTransactionResponse:
        """Convert database row to response model."""
        return LedgerTransactionResponse(
            id=row["id"],
            account_id=row["account_id"],
            transaction_type=TransactionType(row["transaction_type"]),
            amount=float(row["amount"]),
            status=TransactionStatus(row["status"]),
            description=row.get("description"),
            source_employee_id=row.get("source_employee_id"),
            target_employee_id=row.get("target_employee_id"),
            created_at=row["created_at"],
            posted_at=row.get("posted_at"),
        )


# Singleton instance
_transaction_service: Optional[TransactionService] = None


def get_transaction_service() -> TransactionService:
    """Get or create TransactionService instance."""
    global _transaction_service
    if _transaction_service is None:
        _transaction_service = TransactionService()
    return _transaction_service
