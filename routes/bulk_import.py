"""
Bulk balance import API routes.

Wizard stages: upload → preview → validate → commit (jobs), plus job
history and the pending-balance lifecycle (invite, expire, claim).
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from typing import Optional
import structlog

from config import settings
from models.bulk_import import (
    BalanceColumnMapping,
    BulkImportJobDetailResponse,
    ClaimRequest,
    ClaimResponse,
    CreateImportJobRequest,
    EmailColumnMapping,
    ImportJobResult,
    InvitationBatchResult,
    JobListResponse,
    MessageResponse,
    PendingBalanceListResponse,
    PendingBalanceStatus,
    PreviewResponse,
    UploadedFileInfo,
    UploadResponse,
    ValidateRequest,
    ValidationResult,
)
from parsers.spreadsheet_parser import ParsedSpreadsheet, is_allowed_file, parse_spreadsheet
from routes.dependencies import get_admin_id, require_admin
from services.bulk_import_service import build_preview, get_bulk_import_service
from services.column_detection_service import suggest_mapping
from exceptions import (
    AppError,
    FileTooLargeError,
    InvalidColumnMappingError,
    InvalidFileTypeError,
)

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


# ===================
# HELPERS
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


async def _read_spreadsheet(file: UploadFile) -> ParsedSpreadsheet:
    """Check type and size of an upload, then parse it."""
    filename = file.filename or "upload"
    if not is_allowed_file(filename, file.content_type):
        raise InvalidFileTypeError(filename, file.content_type)

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise FileTooLargeError(filename, len(content), settings.max_upload_bytes)

    return parse_spreadsheet(content, filename)


def _describe(sheet: ParsedSpreadsheet) -> UploadedFileInfo:
    return UploadedFileInfo(
        filename=sheet.filename,
        row_count=sheet.row_count,
        headers=sheet.headers,
        preview=sheet.preview(),
    )


def _parse_mapping(raw: str, model):
    try:
        return model.model_validate_json(raw)
    except PydanticValidationError as e:
        raise InvalidColumnMappingError(
            "Column mapping must be a JSON object",
            details={"errors": e.errors(include_url=False, include_context=False)}
        )


# ===================
# WIZARD
# ===================

@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    balance_file: UploadFile = File(..., alias="balanceFile"),
    email_file: Optional[UploadFile] = File(None, alias="emailFile")
):
    """
    Parse uploaded spreadsheet(s).

    Returns headers, row counts, the first rows of each file and a
    suggested column mapping guessed from the headers.

    Raises:
        400: Unreadable file, wrong type or too large
    """
    logger.info(
        "bulk_import_upload_started",
        balance_file=balance_file.filename,
        email_file=email_file.filename if email_file else None
    )

    try:
        balance_sheet = await _read_spreadsheet(balance_file)
        email_sheet = await _read_spreadsheet(email_file) if email_file else None

        return UploadResponse(
            balance_file=_describe(balance_sheet),
            email_file=_describe(email_sheet) if email_sheet else None,
            suggested_mapping=suggest_mapping(
                balance_sheet.headers,
                email_sheet.headers if email_sheet else None
            ),
        )

    except Exception as e:
        return handle_error(e)


@router.post("/preview", response_model=PreviewResponse)
async def preview_import(
    balance_file: UploadFile = File(..., alias="balanceFile"),
    balance_mapping: str = Form(..., alias="balanceMapping"),
    email_file: Optional[UploadFile] = File(None, alias="emailFile"),
    email_mapping: Optional[str] = Form(None, alias="emailMapping")
):
    """
    Merge balance rows with emails and score each match.

    The mappings are JSON strings in the multipart form. Without an email
    file, emails come from the balance file's mapped email column.

    Raises:
        400: Unreadable file or invalid column mapping
    """
    try:
        parsed_balance_mapping = _parse_mapping(balance_mapping, BalanceColumnMapping)
        balance_sheet = await _read_spreadsheet(balance_file)

        email_sheet = None
        parsed_email_mapping = None
        if email_file and email_mapping:
            parsed_email_mapping = _parse_mapping(email_mapping, EmailColumnMapping)
            email_sheet = await _read_spreadsheet(email_file)

        preview = build_preview(
            balance_sheet,
            parsed_balance_mapping,
            email_sheet,
            parsed_email_mapping
        )

        logger.info(
            "bulk_import_preview_built",
            rows=preview.summary.total,
            auto=preview.summary.auto_matched,
            review=preview.summary.needs_review,
            manual=preview.summary.manual_required
        )

        return preview

    except Exception as e:
        return handle_error(e)


@router.post("/validate", response_model=ValidationResult)
async def validate_import(request: ValidateRequest):
    """
    Check merged rows against the employee directory.

    Row problems are returned in the result; only request-level failures
    produce an error response.
    """
    try:
        service = get_bulk_import_service()
        return service.validate_import_data(request.rows)

    except Exception as e:
        return handle_error(e)


@router.post("/jobs", response_model=ImportJobResult)
async def create_import_job(
    request: CreateImportJobRequest,
    admin_id: Optional[str] = Depends(get_admin_id)
):
    """
    Commit an import.

    Registered recipients are credited immediately; others get a pending
    balance. Per-row failures are reported in the result, not retried.
    """
    try:
        service = get_bulk_import_service()
        return service.create_import_job(
            name=request.name,
            rows=request.rows,
            column_mapping=request.column_mapping,
            created_by_id=admin_id
        )

    except Exception as e:
        return handle_error(e)


# ===================
# JOBS
# ===================

@router.get("/jobs", response_model=JobListResponse)
async def list_import_jobs(
    limit: int = Query(50, ge=1, le=200, description="Max jobs to return"),
    offset: int = Query(0, ge=0, description="Jobs to skip")
):
    """List import jobs, newest first, with pending-balance counts."""
    try:
        service = get_bulk_import_service()
        jobs, total = service.get_import_jobs(limit=limit, offset=offset)
        return JobListResponse(jobs=jobs, total=total)

    except Exception as e:
        return handle_error(e)


@router.get("/jobs/{job_id}", response_model=BulkImportJobDetailResponse)
async def get_import_job(job_id: str):
    """
    Get one job with its pending balances and stats.

    Raises:
        404: Job not found
    """
    try:
        service = get_bulk_import_service()
        return service.get_import_job(job_id)

    except Exception as e:
        return handle_error(e)


@router.post("/jobs/{job_id}/send-invitations", response_model=InvitationBatchResult)
def send_job_invitations(job_id: str):
    """Email every pending recipient of a job who hasn't been invited yet."""
    try:
        service = get_bulk_import_service()
        sent, failed = service.send_bulk_invitations(job_id)
        return InvitationBatchResult(
            message=f"Sent {sent} invitation(s)",
            sent=sent,
            failed=failed
        )

    except Exception as e:
        return handle_error(e)


# ===================
# PENDING BALANCES
# ===================

@router.get("/pending", response_model=PendingBalanceListResponse)
async def list_pending_balances(
    status: Optional[PendingBalanceStatus] = Query(None, description="Filter by status"),
    email: Optional[str] = Query(None, description="Recipient email contains"),
    limit: int = Query(50, ge=1, le=200, description="Max balances to return"),
    offset: int = Query(0, ge=0, description="Balances to skip")
):
    """List pending balances, newest first."""
    try:
        service = get_bulk_import_service()
        balances, total = service.get_pending_balances(
            status=status,
            email=email,
            limit=limit,
            offset=offset
        )
        return PendingBalanceListResponse(balances=balances, total=total)

    except Exception as e:
        return handle_error(e)


@router.post("/pending/claim", response_model=ClaimResponse)
async def claim_pending_balances(request: ClaimRequest):
    """
    Credit pending balances to a newly signed-in employee.

    Called by the sign-in flow once the employee and account exist.
    """
    try:
        service = get_bulk_import_service()
        return ClaimResponse(claimed=service.claim_pending_balances(request.email))

    except Exception as e:
        return handle_error(e)


@router.post("/pending/{pending_id}/send-invitation", response_model=MessageResponse)
def send_pending_invitation(pending_id: str):
    """
    Email the recipient of one pending balance.

    Raises:
        404: Balance not found
        409: Balance already claimed or expired
        503: Email delivery failed
    """
    try:
        service = get_bulk_import_service()
        service.send_invitation(pending_id)
        return MessageResponse(message="Invitation sent successfully")

    except Exception as e:
        return handle_error(e)


@router.post("/pending/{pending_id}/expire", response_model=MessageResponse)
async def expire_pending_balance(pending_id: str):
    """
    Expire a pending balance. Cannot be undone.

    Raises:
        404: Balance not found
        409: Balance already claimed or expired
    """
    try:
        service = get_bulk_import_service()
        service.expire_pending_balance(pending_id)
        return MessageResponse(message="Balance expired successfully")

    except Exception as e:
        return handle_error(e)
