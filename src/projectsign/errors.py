# src/projectsign/errors.py

"""
Jerarquía de errores de la aplicación.

Los servicios lanzan estas excepciones; un único handler registrado en la
app las convierte en respuestas JSON ``{"error": ...}`` con el status HTTP
de cada clase.
"""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from projectsign.utils.logger import get_logger

logger = get_logger(__name__)

INVALID_LINK_MESSAGE = "הקישור אינו תקף או שפג תוקפו"
ALREADY_SIGNED_MESSAGE = "already signed"
FORM_CHANGED_MESSAGE = "form changed, reload and sign again"


class ProjectSignError(Exception):
    """Base exception for all application errors."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class Unauthorized(ProjectSignError):
    """Raised when an owner endpoint is called without a valid session."""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(ProjectSignError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFound(ProjectSignError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id=None):
        msg = f"{resource} not found"
        super().__init__(msg, {"resource": resource, "id": resource_id})


class InvalidOrExpiredToken(ProjectSignError):
    """
    Token inexistente, vencido o ya utilizado.

    Los tres casos comparten un único mensaje para no dar pistas a quien
    intente adivinar tokens.
    """
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self):
        super().__init__(INVALID_LINK_MESSAGE)


class AlreadySigned(ProjectSignError):
    """Raised on any mutation attempt against a signed form."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, form_id=None):
        super().__init__(
            ALREADY_SIGNED_MESSAGE,
            {"form_id": form_id, "message": "לא ניתן לשנות טופס שכבר נחתם"}
        )


class FormChanged(ProjectSignError):
    """El dueño editó el formulario mientras se procesaba la firma."""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, form_id=None):
        super().__init__(
            FORM_CHANGED_MESSAGE,
            {"form_id": form_id, "message": "הטופס עודכן, יש לטעון את הדף ולחתום מחדש", "retryable": True}
        )


class ValidationError(ProjectSignError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message, {"validation_errors": errors or []})


class IntegrityMismatch(ProjectSignError):
    """Stored payload no longer matches the hash recorded at signing time."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, form_id=None):
        super().__init__(
            "Integridad comprometida: hash no coincide",
            {"form_id": form_id}
        )


class DependencyFailure(ProjectSignError):
    """An external collaborator (storage, email, SMS, PDF) failed."""
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, dependency: str, message: str):
        super().__init__(message, {"dependency": dependency, "retryable": True})


async def projectsign_error_handler(request: Request, exc: ProjectSignError) -> JSONResponse:
    content = {"error": exc.message}
    if isinstance(exc, ValidationError):
        content["details"] = exc.details.get("validation_errors", [])
    elif isinstance(exc, (AlreadySigned, FormChanged)):
        content["details"] = exc.details.get("message")
    if exc.status_code >= 500:
        logger.error("dependency_error", error=exc.message, **exc.details)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid data", "details": errors}
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProjectSignError, projectsign_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
