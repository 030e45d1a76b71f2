"""
HTTP client for the bulk import admin API.

One method per endpoint, returning the same pydantic models the server
responds with. Every call is a single attempt: failures raise
BulkImportClientError carrying the server's error message, or the call
site's fallback text when the server didn't send one.
"""

from typing import Any, Optional, Union
import requests
import structlog

from models.bulk_import import (
    BalanceColumnMapping,
    BulkImportJobDetailResponse,
    ClaimResponse,
    EmailColumnMapping,
    ImportJobResult,
    InvitationBatchResult,
    JobListResponse,
    MergedRow,
    MessageResponse,
    PendingBalanceListResponse,
    PendingBalanceStatus,
    PreviewResponse,
    UploadResponse,
    ValidationResult,
)

logger = structlog.get_logger(__name__)

# (filename, content) as accepted by requests' files=
FileUpload = tuple[str, bytes]

DEFAULT_TIMEOUT = 30


class BulkImportClientError(Exception):
    """API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def get_api_error_message(error: Any, fallback: str) -> str:
    """
    Pull a human-readable message out of a failed call.

    Understands both {"error": "text"} and
    {"error": {"code": ..., "message": "text"}} bodies.

    Args:
        error: A requests.Response, a RequestException, or anything else
        fallback: Text to use when no server message is available

    Returns:
        Message suitable for a toast
    """
    response = error if isinstance(error, requests.Response) else getattr(error, "response", None)
    if response is None:
        return fallback

    try:
        body = response.json()
    except ValueError:
        return fallback

    if not isinstance(body, dict):
        return fallback

    detail = body.get("error")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return fallback


def _mapping_json(mapping: Union[BalanceColumnMapping, EmailColumnMapping]) -> str:
    return mapping.model_dump_json(by_alias=True)


class BulkImportClient:
    """
    Client for /api/admin/bulk-import.

    Usage:
        client = BulkImportClient("https://rewards.example.com", api_key="...")
        upload = client.upload(("balances.csv", data))
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        admin_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT
    ):
        self.base_url = base_url.rstrip("/") + "/api/admin/bulk-import"
        self.session = session or requests.Session()
        self.timeout = timeout
        if api_key:
            self.session.headers["X-API-Key"] = api_key
        if admin_id:
            self.session.headers["X-Admin-Id"] = admin_id

    def _request(self, method: str, path: str, fallback: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning("bulk_import_request_failed", method=method, path=path, error=str(e))
            raise BulkImportClientError(fallback) from e

        if not response.ok:
            message = get_api_error_message(response, fallback)
            logger.warning(
                "bulk_import_api_error",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message
            )
            raise BulkImportClientError(message, response.status_code)

        return response.json()

    @staticmethod
    def _files(balance_file: FileUpload, email_file: Optional[FileUpload]) -> dict:
        files = {"balanceFile": balance_file}
        if email_file:
            files["emailFile"] = email_file
        return files

    # ===================
    # WIZARD
    # ===================

    def upload(
        self,
        balance_file: FileUpload,
        email_file: Optional[FileUpload] = None
    ) -> UploadResponse:
        data = self._request(
            "POST", "/upload", "Failed to upload files",
            files=self._files(balance_file, email_file)
        )
        return UploadResponse.model_validate(data)

    def preview(
        self,
        balance_file: FileUpload,
        balance_mapping: BalanceColumnMapping,
        email_file: Optional[FileUpload] = None,
        email_mapping: Optional[EmailColumnMapping] = None
    ) -> PreviewResponse:
        form = {"balanceMapping": _mapping_json(balance_mapping)}
        if email_file and email_mapping:
            form["emailMapping"] = _mapping_json(email_mapping)
        else:
            email_file = None

        data = self._request(
            "POST", "/preview", "Failed to preview data",
            files=self._files(balance_file, email_file),
            data=form
        )
        return PreviewResponse.model_validate(data)

    def validate(self, rows: list[MergedRow]) -> ValidationResult:
        payload = {"rows": [row.model_dump(mode="json", by_alias=True) for row in rows]}
        data = self._request("POST", "/validate", "Validation failed", json=payload)
        return ValidationResult.model_validate(data)

    def create_job(
        self,
        name: str,
        rows: list[MergedRow],
        column_mapping: Optional[dict[str, Any]] = None
    ) -> ImportJobResult:
        payload = {
            "name": name,
            "rows": [row.model_dump(mode="json", by_alias=True) for row in rows],
            "columnMapping": column_mapping or {},
        }
        data = self._request("POST", "/jobs", "Import failed", json=payload)
        return ImportJobResult.model_validate(data)

    # ===================
    # JOBS
    # ===================

    def list_jobs(self, limit: int = 50, offset: int = 0) -> JobListResponse:
        data = self._request(
            "GET", "/jobs", "Failed to load import jobs",
            params={"limit": limit, "offset": offset}
        )
        return JobListResponse.model_validate(data)

    def get_job(self, job_id: str) -> BulkImportJobDetailResponse:
        data = self._request("GET", f"/jobs/{job_id}", "Failed to load job details")
        return BulkImportJobDetailResponse.model_validate(data)

    def send_job_invitations(self, job_id: str) -> InvitationBatchResult:
        data = self._request(
            "POST", f"/jobs/{job_id}/send-invitations", "Failed to send invitations"
        )
        return InvitationBatchResult.model_validate(data)

    # ===================
    # PENDING BALANCES
    # ===================

    def list_pending(
        self,
        status: Optional[PendingBalanceStatus] = None,
        email: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> PendingBalanceListResponse:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = PendingBalanceStatus(status).value
        if email:
            params["email"] = email

        data = self._request("GET", "/pending", "Failed to load pending balances", params=params)
        return PendingBalanceListResponse.model_validate(data)

    def send_pending_invitation(self, pending_id: str) -> MessageResponse:
        data = self._request(
            "POST", f"/pending/{pending_id}/send-invitation", "Failed to send invitation"
        )
        return MessageResponse.model_validate(data)

    def expire_pending(self, pending_id: str) -> MessageResponse:
        data = self._request("POST", f"/pending/{pending_id}/expire", "Failed to expire balance")
        return MessageResponse.model_validate(data)

    def claim_pending(self, email: str) -> ClaimResponse:
        data = self._request(
            "POST", "/pending/claim", "Failed to claim pending balances",
            json={"email": email}
        )
        return ClaimResponse.model_validate(data)
