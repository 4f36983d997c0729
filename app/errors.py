"""Domain errors for the agreement and invitation workflows, and their HTTP mapping.

Services raise these; routers never translate them by hand. Each class carries the
HTTP status it maps to so the handlers below stay a single function.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class DomainError(Exception):
    status_code = 400
    default_detail = "Request could not be completed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(DomainError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(DomainError):
    status_code = 409
    default_detail = "Conflict"


class InvalidStateError(DomainError):
    status_code = 409
    default_detail = "Operation not allowed in the current state"


class ExpiredError(DomainError):
    status_code = 410
    default_detail = "Expired"


class AlreadySignedError(DomainError):
    status_code = 409
    default_detail = "Already signed"


class InvalidTokenError(NotFoundError):
    default_detail = "Invalid invitation token"


class AlreadyAcceptedError(ConflictError):
    default_detail = "Invitation has already been accepted"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    def domain_error(request: Request, exc: DomainError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
