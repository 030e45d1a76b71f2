"""
Bulk balance import service.

Reconciles uploaded balance files against the employee directory and turns
them into ledger credits:

- Registered recipients (employee with an account) are credited at once
  with a posted bulk_import transaction.
- Everyone else gets a pending balance that is claimed when they first sign
  in, or expired by an admin.

Each committed row ends up as exactly one of the two, or as an entry in the
job's error log when persisting it fails.
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Optional
import structlog

from config import get_supabase_client, settings
from integrations.mail_messages import render_message
from integrations.mailer import send_email, MailerError
from models.bulk_import import (
    BalanceColumnMapping,
    BulkImportJobDetailResponse,
    BulkImportJobResponse,
    BulkImportStatus,
    EmailColumnMapping,
    ImportJobResult,
    IssueSeverity,
    JobCreator,
    JobReference,
    JobStats,
    MergedRow,
    PendingBalanceStatus,
    PendingImportBalanceResponse,
    PreviewResponse,
    RowError,
    ValidationIssue,
    ValidationResult,
    ValidationSummary,
)
from models.ledger import TransactionType
from parsers.spreadsheet_parser import (
    ParsedSpreadsheet,
    build_email_lookup,
    check_mapping_columns,
    extract_balance_data,
    extract_email_data,
)
from services.name_matching_service import (
    merge_data_files,
    rows_from_single_file,
    summarize_preview,
)
from services.transaction_service import TransactionService
from exceptions import (
    AppError,
    DatabaseError,
    EmailDeliveryError,
    ImportJobNotFoundError,
    PendingBalanceNotFoundError,
    PendingBalanceNotPendingError,
)

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# processed_rows is written back every N rows while a job runs
PROGRESS_EVERY = 10

JOB_SELECT = "*, created_by:employees!created_by_id(id, name, email), pending_import_balances(count)"
PENDING_SELECT = "*, import_job:bulk_import_jobs(id, name)"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_preview(
    balance_sheet: ParsedSpreadsheet,
    balance_mapping: BalanceColumnMapping,
    email_sheet: Optional[ParsedSpreadsheet] = None,
    email_mapping: Optional[EmailColumnMapping] = None,
    threshold: Optional[float] = None
) -> PreviewResponse:
    """
    Merge the uploaded files into scored rows.

    With a separate email file, names are fuzzy-matched against it.
    Otherwise emails come from the balance file's own email column.

    Raises:
        InvalidColumnMappingError: If a mapping is incomplete or names unknown columns
    """
    check_mapping_columns(balance_sheet, balance_mapping)
    balance_rows = extract_balance_data(balance_sheet.rows, balance_mapping)

    if email_sheet is not None and email_mapping is not None:
        check_mapping_columns(email_sheet, email_mapping)
        email_rows = extract_email_data(email_sheet.rows, email_mapping)
        rows = merge_data_files(
            balance_rows,
            email_rows,
            threshold=settings.bulk_import_match_threshold if threshold is None else threshold
        )
    else:
        lookup = build_email_lookup(balance_sheet.rows, balance_mapping)
        rows = rows_from_single_file(balance_rows, lookup)

    return PreviewResponse(rows=rows, summary=summarize_preview(rows))


class BulkImportService:
    """
    Service for bulk imports and their pending balances.

    Handles:
    - Validating merged rows against the employee directory
    - Committing import jobs
    - Claiming pending balances on sign-in
    - Invitation emails and expiry
    - Listing jobs and pending balances
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.jobs_table = "bulk_import_jobs"
        self.pending_table = "pending_import_balances"
        self.transactions = TransactionService()

    # ===================
    # EMPLOYEE DIRECTORY
    # ===================

    def _load_employee_directory(self) -> dict[str, dict[str, Optional[str]]]:
        """
        Map lower-cased email → {"id", "account_id"}.

        account_id is None for employees without an account.
        """
        try:
            employees = self.db.table("employees").select("id, email").execute()
            accounts = self.db.table("accounts").select("id, employee_id").execute()
        except Exception as e:
            logger.error("employee_directory_load_failed", error=str(e))
            raise DatabaseError("select", str(e))

        account_by_employee = {
            a["employee_id"]: a["id"] for a in (accounts.data or []) if a.get("employee_id")
        }
        return {
            e["email"].strip().lower(): {
                "id": e["id"],
                "account_id": account_by_employee.get(e["id"]),
            }
            for e in (employees.data or [])
            if e.get("email")
        }

    # ===================
    # VALIDATION
    # ===================

    def validate_import_data(self, rows: list[MergedRow]) -> ValidationResult:
        """
        Check merged rows before commit.

        Problems are returned as data: errors block the import, warnings
        don't. Rows are numbered from 1.

        Args:
            rows: Merged rows as edited in the preview

        Returns:
            ValidationResult with per-row issues and counts
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        seen_emails: dict[str, int] = {}
        registered = 0
        unregistered = 0
        duplicates = 0

        directory = self._load_employee_directory()

        for index, row in enumerate(rows):
            row_num = index + 1
            email = row.email.strip().lower()

            if not email:
                errors.append(ValidationIssue(
                    row=row_num,
                    field="email",
                    message="Email address is required",
                    severity=IssueSeverity.ERROR,
                ))
                continue

            if not EMAIL_PATTERN.match(email):
                errors.append(ValidationIssue(
                    row=row_num,
                    field="email",
                    message=f"Invalid email format: {row.email}",
                    severity=IssueSeverity.ERROR,
                ))
                continue

            if email in seen_emails:
                warnings.append(ValidationIssue(
                    row=row_num,
                    field="email",
                    message=f"Duplicate email (first seen in row {seen_emails[email]})",
                    severity=IssueSeverity.WARNING,
                ))
                duplicates += 1
            else:
                seen_emails[email] = row_num

            if row.amount <= 0:
                errors.append(ValidationIssue(
                    row=row_num,
                    field="amount",
                    message="Amount must be greater than 0",
                    severity=IssueSeverity.ERROR,
                ))
                continue

            if row.amount > settings.bulk_import_large_amount:
                warnings.append(ValidationIssue(
                    row=row_num,
                    field="amount",
                    message=f"Large amount: {row.amount:g} Guincoins",
                    severity=IssueSeverity.WARNING,
                ))

            if email in directory:
                registered += 1
            else:
                unregistered += 1

        error_rows = {issue.row for issue in errors}
        result = ValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            summary=ValidationSummary(
                total_rows=len(rows),
                valid_rows=len(rows) - len(error_rows),
                registered_users=registered,
                unregistered_users=unregistered,
                duplicates=duplicates,
            ),
        )

        logger.info(
            "import_data_validated",
            total_rows=len(rows),
            errors=len(errors),
            warnings=len(warnings),
            registered=registered,
            unregistered=unregistered
        )

        return result

    # ===================
    # COMMIT
    # ===================

    def create_import_job(
        self,
        name: str,
        rows: list[MergedRow],
        column_mapping: Optional[dict[str, Any]] = None,
        created_by_id: Optional[str] = None
    ) -> ImportJobResult:
        """
        Create an import job and credit every row with an email and amount > 0.

        Rows are processed one at a time; a failing row is logged in the
        job's error log and the rest continue. Nothing is retried.

        Args:
            name: Job name shown in the history and transaction descriptions
            rows: Merged rows (row numbers in errors refer to this list)
            column_mapping: Mapping used for the upload, stored for reference
            created_by_id: Admin employee id

        Returns:
            ImportJobResult with success/error counts
        """
        commit_rows = [
            (index + 1, row) for index, row in enumerate(rows)
            if row.email.strip() and row.amount > 0
        ]

        logger.info(
            "import_job_starting",
            name=name,
            submitted_rows=len(rows),
            commit_rows=len(commit_rows),
            created_by_id=created_by_id
        )

        try:
            job_result = self.db.table(self.jobs_table).insert({
                "name": name,
                "created_by_id": created_by_id,
                "total_rows": len(commit_rows),
                "column_mapping": column_mapping or {},
                "status": BulkImportStatus.PROCESSING.value,
            }).execute()
        except Exception as e:
            logger.error("import_job_create_failed", name=name, error=str(e))
            raise DatabaseError("insert", str(e))

        if not job_result.data:
            raise DatabaseError("insert", "No data returned from insert")
        job_id = job_result.data[0]["id"]

        directory = self._load_employee_directory()
        errors: list[RowError] = []
        success_count = 0
        processed = 0

        for row_num, row in commit_rows:
            processed += 1
            email = row.email.strip().lower()

            try:
                employee = directory.get(email)
                if employee and employee["account_id"]:
                    transaction = self.transactions.create_pending_transaction(
                        account_id=employee["account_id"],
                        transaction_type=TransactionType.BULK_IMPORT,
                        amount=row.amount,
                        description=f"Bulk import: {name}",
                        source_employee_id=created_by_id,
                        target_employee_id=employee["id"],
                    )
                    self.transactions.post_transaction(transaction.id)
                else:
                    self.db.table(self.pending_table).insert({
                        "import_job_id": job_id,
                        "recipient_email": email,
                        "recipient_name": row.name,
                        "amount": row.amount,
                        "status": PendingBalanceStatus.PENDING.value,
                    }).execute()
                success_count += 1

            except Exception as e:
                message = e.message if isinstance(e, AppError) else str(e)
                logger.warning(
                    "import_row_failed",
                    job_id=job_id,
                    row=row_num,
                    error=message
                )
                errors.append(RowError(row=row_num, message=message))

            if processed % PROGRESS_EVERY == 0:
                self.db.table(self.jobs_table).update({
                    "processed_rows": processed
                }).eq("id", job_id).execute()

        failed = bool(commit_rows) and success_count == 0
        status = BulkImportStatus.FAILED if failed else BulkImportStatus.COMPLETED

        self.db.table(self.jobs_table).update({
            "status": status.value,
            "processed_rows": len(commit_rows),
            "success_count": success_count,
            "error_count": len(errors),
            "error_log": [e.model_dump() for e in errors] if errors else None,
            "completed_at": _now(),
        }).eq("id", job_id).execute()

        logger.info(
            "import_job_finished",
            job_id=job_id,
            status=status.value,
            success_count=success_count,
            error_count=len(errors)
        )

        return ImportJobResult(
            job_id=job_id,
            total_rows=len(commit_rows),
            processed_rows=len(commit_rows),
            success_count=success_count,
            error_count=len(errors),
            errors=errors,
        )

    # ===================
    # PENDING BALANCE LIFECYCLE
    # ===================

    def claim_pending_balances(self, recipient_email: str) -> int:
        """
        Credit every pending balance waiting for this email.

        Called when an employee signs in. Does nothing until the employee
        and their account exist. Failures are logged per balance and the
        balance stays pending for the next sign-in.

        Returns:
            Number of balances claimed
        """
        email = (recipient_email or "").strip().lower()
        if not email:
            return 0

        employees = self.db.table("employees").select("id, email").eq("email", email).execute()
        if not employees.data:
            return 0
        employee_id = employees.data[0]["id"]

        accounts = self.db.table("accounts").select("id").eq("employee_id", employee_id).execute()
        if not accounts.data:
            return 0
        account_id = accounts.data[0]["id"]

        pending = (
            self.db.table(self.pending_table)
            .select(PENDING_SELECT)
            .eq("recipient_email", email)
            .eq("status", PendingBalanceStatus.PENDING.value)
            .execute()
        )
        if not pending.data:
            return 0

        claimed = 0
        claimed_amount = 0.0
        for row in pending.data:
            job_name = (row.get("import_job") or {}).get("name") or "bulk import"

            # Reserve the balance before crediting; only one claim can win it
            try:
                reserved = (
                    self.db.table(self.pending_table)
                    .update({
                        "status": PendingBalanceStatus.CLAIMED.value,
                        "claimed_at": _now(),
                    })
                    .eq("id", row["id"])
                    .eq("status", PendingBalanceStatus.PENDING.value)
                    .execute()
                )
            except Exception as e:
                logger.error(
                    "pending_balance_claim_failed",
                    id=row["id"],
                    email=email,
                    error=str(e)
                )
                continue

            if not reserved.data:
                logger.debug("pending_balance_already_claimed", id=row["id"])
                continue

            try:
                transaction = self.transactions.create_pending_transaction(
                    account_id=account_id,
                    transaction_type=TransactionType.BULK_IMPORT,
                    amount=float(row["amount"]),
                    description=f"Imported balance from: {job_name}",
                    target_employee_id=employee_id,
                )
                self.transactions.post_transaction(transaction.id)
            except Exception as e:
                logger.error(
                    "pending_balance_claim_failed",
                    id=row["id"],
                    email=email,
                    error=str(e)
                )
                self._release_claim(row["id"])
                continue

            claimed += 1
            claimed_amount += float(row["amount"])

            try:
                self.db.table(self.pending_table).update({
                    "transaction_id": transaction.id,
                }).eq("id", row["id"]).execute()
            except Exception as e:
                # Credited and claimed; only the link to the ledger is missing
                logger.error(
                    "pending_balance_link_failed",
                    id=row["id"],
                    transaction_id=transaction.id,
                    error=str(e)
                )

        if claimed:
            logger.info(
                "pending_balances_claimed",
                email=email,
                claimed=claimed,
                amount=claimed_amount
            )

        return claimed

    def _release_claim(self, pending_id: str) -> None:
        """Put a reserved balance back to pending after a failed credit."""
        try:
            self.db.table(self.pending_table).update({
                "status": PendingBalanceStatus.PENDING.value,
                "claimed_at": None,
            }).eq("id", pending_id).execute()
        except Exception as e:
            logger.error(
                "pending_balance_release_failed",
                id=pending_id,
                error=str(e)
            )

    def _get_pending_row(self, pending_id: str) -> dict:
        result = self.db.table(self.pending_table).select("*").eq("id", pending_id).execute()
        if not result.data:
            raise PendingBalanceNotFoundError(pending_id)
        return result.data[0]

    def send_invitation(self, pending_id: str) -> PendingImportBalanceResponse:
        """
        Email the recipient of a pending balance.

        Single attempt; records invite_sent_at on success.

        Raises:
            PendingBalanceNotFoundError: Unknown id
            PendingBalanceNotPendingError: Balance already claimed or expired
            EmailDeliveryError: Mail not configured or SMTP failure
        """
        row = self._get_pending_row(pending_id)
        if row["status"] != PendingBalanceStatus.PENDING.value:
            raise PendingBalanceNotPendingError(pending_id, row["status"], "send invitation")

        email = row["recipient_email"]
        subject, text, html = render_message(
            "bulk_import_invitation",
            recipient_name=row.get("recipient_name") or email.split("@")[0],
            amount=float(row["amount"]),
            signin_url=f"{settings.frontend_url.rstrip('/')}/login",
        )

        try:
            sent = send_email(email, subject, text, html)
        except MailerError as e:
            raise EmailDeliveryError(email, str(e)) from e
        if not sent:
            raise EmailDeliveryError(email, "email delivery is not configured")

        result = self.db.table(self.pending_table).update({
            "invite_sent_at": _now()
        }).eq("id", pending_id).execute()

        logger.info("invitation_sent", id=pending_id, email=email)
        return self._row_to_pending(result.data[0] if result.data else row)

    def send_bulk_invitations(self, job_id: str) -> tuple[int, int]:
        """
        Invite every pending, not-yet-invited recipient of a job.

        Sends one at a time with a short pause in between.

        Returns:
            Tuple of (sent, failed)
        """
        self._get_job_row(job_id)

        pending = (
            self.db.table(self.pending_table)
            .select("id")
            .eq("import_job_id", job_id)
            .eq("status", PendingBalanceStatus.PENDING.value)
            .is_("invite_sent_at", "null")
            .execute()
        )

        sent = 0
        failed = 0
        delay = settings.bulk_import_invitation_delay_ms / 1000

        for index, row in enumerate(pending.data or []):
            if index and delay:
                time.sleep(delay)
            try:
                self.send_invitation(row["id"])
                sent += 1
            except AppError as e:
                logger.warning(
                    "invitation_failed",
                    id=row["id"],
                    job_id=job_id,
                    error=e.message
                )
                failed += 1

        logger.info("bulk_invitations_sent", job_id=job_id, sent=sent, failed=failed)
        return sent, failed

    def expire_pending_balance(self, pending_id: str) -> PendingImportBalanceResponse:
        """
        Cancel a pending balance. Irreversible.

        Raises:
            PendingBalanceNotFoundError: Unknown id
            PendingBalanceNotPendingError: Balance already claimed or expired
        """
        row = self._get_pending_row(pending_id)
        if row["status"] != PendingBalanceStatus.PENDING.value:
            raise PendingBalanceNotPendingError(pending_id, row["status"], "expire balance")

        result = self.db.table(self.pending_table).update({
            "status": PendingBalanceStatus.EXPIRED.value
        }).eq("id", pending_id).execute()

        logger.info("pending_balance_expired", id=pending_id, email=row["recipient_email"])
        return self._row_to_pending(result.data[0] if result.data else {**row, "status": "expired"})

    # ===================
    # QUERIES
    # ===================

    def _get_job_row(self, job_id: str) -> dict:
        result = self.db.table(self.jobs_table).select(JOB_SELECT).eq("id", job_id).execute()
        if not result.data:
            raise ImportJobNotFoundError(job_id)
        return result.data[0]

    def get_import_jobs(
        self,
        limit: int = 50,
        offset: int = 0
    ) -> tuple[list[BulkImportJobResponse], int]:
        """
        List import jobs, newest first.

        Returns:
            Tuple of (jobs, total count)
        """
        try:
            result = (
                self.db.table(self.jobs_table)
                .select(JOB_SELECT, count="exact")
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            logger.error("import_jobs_get_all_failed", error=str(e))
            raise DatabaseError("select", str(e))

        jobs = [self._row_to_job(row) for row in result.data]
        return jobs, result.count or 0

    def get_import_job(self, job_id: str) -> BulkImportJobDetailResponse:
        """
        Get one job with its pending balances (oldest first) and stats.

        Raises:
            ImportJobNotFoundError: Unknown id
        """
        row = self._get_job_row(job_id)

        pending_result = (
            self.db.table(self.pending_table)
            .select("*")
            .eq("import_job_id", job_id)
            .order("created_at")
            .execute()
        )
        balances = [self._row_to_pending(p) for p in pending_result.data or []]

        stats = JobStats(
            total_pending=sum(1 for b in balances if b.status == PendingBalanceStatus.PENDING),
            total_claimed=sum(1 for b in balances if b.status == PendingBalanceStatus.CLAIMED),
            total_expired=sum(1 for b in balances if b.status == PendingBalanceStatus.EXPIRED),
            invites_sent=sum(1 for b in balances if b.invite_sent_at),
        )

        job = self._row_to_job(row)
        return BulkImportJobDetailResponse(
            **job.model_dump(exclude={"pending_balance_count"}),
            pending_balance_count=len(balances),
            pending_balances=balances,
            stats=stats,
        )

    def get_pending_balances(
        self,
        status: Optional[PendingBalanceStatus] = None,
        email: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> tuple[list[PendingImportBalanceResponse], int]:
        """
        List pending balances, newest first.

        Args:
            status: Filter by status
            email: Case-insensitive substring of the recipient email
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (balances, total count)
        """
        try:
            query = self.db.table(self.pending_table).select(PENDING_SELECT, count="exact")

            if status:
                query = query.eq("status", status.value)
            if email:
                query = query.ilike("recipient_email", f"%{email.strip().lower()}%")

            result = (
                query
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            logger.error("pending_balances_get_all_failed", error=str(e))
            raise DatabaseError("select", str(e))

        balances = [self._row_to_pending(row) for row in result.data]
        return balances, result.count or 0

    # ===================
    # ROW CONVERSION
    # ===================

    def _row_to_job(self, row: dict) -> BulkImportJobResponse:
        """Convert database row to response model."""
        creator = row.get("created_by")
        pending = row.get("pending_import_balances")
        if isinstance(pending, list):
            # PostgREST aggregate: [{"count": n}]
            pending_count = pending[0].get("count", 0) if pending else 0
        else:
            pending_count = int(pending or 0)

        return BulkImportJobResponse(
            id=row["id"],
            name=row["name"],
            status=BulkImportStatus(row["status"]),
            created_by_id=row.get("created_by_id"),
            created_by=JobCreator(**creator) if isinstance(creator, dict) else None,
            total_rows=row.get("total_rows") or 0,
            processed_rows=row.get("processed_rows") or 0,
            success_count=row.get("success_count") or 0,
            error_count=row.get("error_count") or 0,
            column_mapping=row.get("column_mapping") or {},
            error_log=row.get("error_log"),
            created_at=row["created_at"],
            completed_at=row.get("completed_at"),
            pending_balance_count=pending_count,
        )

    def _row_to_pending(self, row: dict) -> PendingImportBalanceResponse:
        """Convert database row to response model."""
        job = row.get("import_job")
        return PendingImportBalanceResponse(
            id=row["id"],
            import_job_id=row["import_job_id"],
            recipient_email=row["recipient_email"],
            recipient_name=row.get("recipient_name"),
            amount=float(row["amount"]),
            status=PendingBalanceStatus(row["status"]),
            transaction_id=row.get("transaction_id"),
            invite_sent_at=row.get("invite_sent_at"),
            claimed_at=row.get("claimed_at"),
            created_at=row["created_at"],
            import_job=JobReference(**job) if isinstance(job, dict) and job.get("id") else None,
        )


# Singleton instance
_bulk_import_service: Optional[BulkImportService] = None


def get_bulk_import_service() -> BulkImportService:
    """Get or create BulkImportService instance."""
    global _bulk_import_service
    if _bulk_import_service is None:
        _bulk_import_service = BulkImportService()
    return _bulk_import_service
