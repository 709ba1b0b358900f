from __future__ import annotations

from typing import Any, Dict

from pharmamarket.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or code or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Impossible de terminer l'operation.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404


class QuotaExceeded(UserActionError):
    default_code = "quota_exceeded"
    default_message_key = "quota_exceeded"
    default_http_status = 422


class SelectionRequired(UserActionError):
    default_code = "selection_required"
    default_message_key = "selection_required"
    default_http_status = 422


class EmptyResponse(UserActionError):
    default_code = "empty_response"
    default_message_key = "empty_response"
    default_http_status = 422


class OfferNotActive(UserActionError):
    default_code = "offer_not_active"
    default_message_key = "offer_not_active"
    default_http_status = 409


class TenderNotOpen(UserActionError):
    """The tender is closed or canceled; the actor must refresh their view."""

    default_code = "tender_not_open"
    default_message_key = "tender_not_open"
    default_http_status = 409


class TenderAlreadyClosed(TenderNotOpen):
    """Lost the compare-and-set race on tender acceptance."""

    default_code = "tender_already_closed"
    default_message_key = "tender_already_closed"


class StaleResponse(UserActionError):
    default_code = "stale_response"
    default_message_key = "stale_response"
    default_http_status = 409


class ReconciliationMismatch(AppError):
    default_code = "reconciliation_mismatch"
    default_message_key = "reconciliation_mismatch"
    default_http_status = 500
    default_critical = True


class PersistenceFailure(AppError):
    default_code = "persistence_failure"
    default_message_key = "persistence_failure"
    default_http_status = 503
    default_critical = True


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


class AuthRequired(UserActionError):
    default_code = "auth_required"
    default_message_key = "auth_required"
    default_http_status = 401
