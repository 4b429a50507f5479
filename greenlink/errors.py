"""Domain error taxonomy shared by the dispatcher, mutator and routes."""

from __future__ import annotations

from fastapi import HTTPException, status


class GreenLinkError(Exception):
	"""Base class; carries a stable ``code`` and the HTTP status it maps to."""

	code = "internal"
	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

	def __init__(self, detail: str) -> None:
		super().__init__(detail)
		self.detail = detail

	def to_payload(self) -> dict[str, str]:
		return {"error": self.code, "message": self.detail}


class BadRequestError(GreenLinkError, ValueError):
	"""Missing or malformed required field; nothing persisted."""

	code = "bad_request"
	status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(GreenLinkError, ValueError):
	"""Field present but outside its declared numeric range."""

	code = "validation_error"
	status_code = status.HTTP_400_BAD_REQUEST

	def __init__(self, detail: str, *, field: str | None = None) -> None:
		super().__init__(detail)
		self.field = field


class NotFoundError(GreenLinkError, LookupError):
	code = "not_found"
	status_code = status.HTTP_404_NOT_FOUND


class InvalidActionError(GreenLinkError, ValueError):
	code = "invalid_action"
	status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(GreenLinkError):
	code = "forbidden"
	status_code = status.HTTP_403_FORBIDDEN


class AlreadyResolvedError(GreenLinkError):
	code = "already_resolved"
	status_code = status.HTTP_409_CONFLICT


class StoreUnavailableError(GreenLinkError):
	"""Persistent store failed or timed out; the operation was aborted."""

	code = "store_unavailable"
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def to_http_exception(exc: Exception) -> HTTPException:
	if isinstance(exc, GreenLinkError):
		return HTTPException(status_code=exc.status_code, detail=exc.to_payload())
	return HTTPException(
		status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
		detail={"error": "internal", "message": "Unexpected server failure"},
	)
