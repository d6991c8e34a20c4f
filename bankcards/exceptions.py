"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  The service layer raises domain-specific errors (like InsufficientFundsError)
  without importing HTTP concepts. The handler layer translates these into
  HTTP responses, so service code stays testable without a web server and
  error bodies stay consistent across endpoints.

Exception hierarchy:
    BankAPIError (base)
    ├── NotFoundError                       -> 404
    │   ├── CardNotFoundError
    │   ├── UserNotFoundError
    │   └── BlockRequestNotFoundError
    ├── ForbiddenOperationError             -> 403
    ├── InvalidCardStateError               -> 400
    │   ├── InsufficientFundsError
    │   ├── InvalidTransferError
    │   ├── InvalidCardStatusChangeError
    │   ├── AdminCardCreationError
    │   ├── CardDeletionError
    │   └── BlockRequestAlreadyProcessedError
    ├── InvalidCredentialsError             -> 401
    ├── DuplicateEmailError                 -> 409
    └── TransferAbortedError                -> 503
        └── CardLockTimeoutError

TransferAbortedError is the only transient family: the operation was rolled
back and may be retried as-is. Every other error is a deterministic outcome
of the current data and will fail identically on retry.
"""

import uuid
from decimal import Decimal

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all Bank Cards API domain errors."""

    error_type = "bank_api_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# 404 family
# ---------------------------------------------------------------------------

class NotFoundError(BankAPIError):
    """Raised when a referenced resource does not exist."""

    error_type = "not_found"


class CardNotFoundError(NotFoundError):
    """Raised when a requested card does not exist."""

    error_type = "card_not_found"

    def __init__(self, card_id: uuid.UUID):
        self.card_id = card_id
        super().__init__(f"Card {card_id} not found")


class UserNotFoundError(NotFoundError):
    error_type = "user_not_found"

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class BlockRequestNotFoundError(NotFoundError):
    error_type = "block_request_not_found"

    def __init__(self, request_id: uuid.UUID):
        self.request_id = request_id
        super().__init__(f"Block request {request_id} not found")


# ---------------------------------------------------------------------------
# 403 family
# ---------------------------------------------------------------------------

class ForbiddenOperationError(BankAPIError):
    """Raised when a user attempts to act on a resource they don't own."""

    error_type = "forbidden_operation"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# 400 family
# ---------------------------------------------------------------------------

class InvalidCardStateError(BankAPIError):
    """
    Raised when a card's current state rejects the operation.

    Covers inactive cards taking part in a transfer, and is the parent of
    every other "valid request, wrong state" error.
    """

    error_type = "invalid_card_state"


class InsufficientFundsError(InvalidCardStateError):
    """
    Raised when a transfer would cause a negative balance.

    Attributes:
        card_id: The card that lacks sufficient funds.
        requested: The amount the user tried to move.
        available: The card balance at the time of the check.
    """

    error_type = "insufficient_funds"

    def __init__(self, card_id: uuid.UUID, requested: Decimal, available: Decimal):
        self.card_id = card_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient funds: requested {requested}, available {available}"
        )


class InvalidTransferError(InvalidCardStateError):
    """Raised for a transfer request that can never succeed (same card, non-positive amount)."""

    error_type = "invalid_transfer"


class InvalidCardStatusChangeError(InvalidCardStateError):
    error_type = "invalid_card_status_change"


class AdminCardCreationError(InvalidCardStateError):
    """Raised when an administrator account is chosen as a card owner."""

    error_type = "admin_card_creation"

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"Cards cannot be issued to administrator {user_id}")


class CardDeletionError(InvalidCardStateError):
    error_type = "card_deletion"


class BlockRequestAlreadyProcessedError(InvalidCardStateError):
    error_type = "block_request_already_processed"

    def __init__(self, request_id: uuid.UUID):
        self.request_id = request_id
        super().__init__(f"Block request {request_id} has already been processed")


# ---------------------------------------------------------------------------
# Authentication / registration
# ---------------------------------------------------------------------------

class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""

    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


class DuplicateEmailError(BankAPIError):
    """Raised when attempting to register with an email that's already in use."""

    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


# ---------------------------------------------------------------------------
# Transient failures (503)
# ---------------------------------------------------------------------------

class TransferAbortedError(BankAPIError):
    """
    Raised when a transfer fails for a storage reason after it started.

    The atomic unit has been rolled back: no balance changed and no history
    record exists, so the caller may retry safely.
    """

    error_type = "transfer_aborted"

    def __init__(self, detail: str = "Transfer aborted, no changes were applied. Please retry."):
        super().__init__(detail)


class CardLockTimeoutError(TransferAbortedError):
    """Raised when waiting for a card lock exceeds the configured timeout."""

    error_type = "card_lock_timeout"

    def __init__(self, card_id: uuid.UUID, timeout: float):
        self.card_id = card_id
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout}s waiting for card {card_id}. Please retry."
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_response(status_code: int, exc: BankAPIError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.detail, "error_type": exc.error_type},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Handlers are registered per family; Starlette resolves a raised
    exception to the handler of its nearest registered base class, so every
    subclass above inherits its family's status code.

    This is called once during app creation in main.py.
    """

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(ForbiddenOperationError)
    async def forbidden_handler(
        request: Request, exc: ForbiddenOperationError
    ) -> JSONResponse:
        return _error_response(status.HTTP_403_FORBIDDEN, exc)

    @app.exception_handler(InsufficientFundsError)
    async def insufficient_funds_handler(
        request: Request, exc: InsufficientFundsError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": exc.detail,
                "error_type": exc.error_type,
                "requested": str(exc.requested),
                "available": str(exc.available),
            },
        )

    @app.exception_handler(InvalidCardStateError)
    async def invalid_state_handler(
        request: Request, exc: InvalidCardStateError
    ) -> JSONResponse:
        return _error_response(status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return _error_response(status.HTTP_401_UNAUTHORIZED, exc)

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(
        request: Request, exc: DuplicateEmailError
    ) -> JSONResponse:
        return _error_response(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(TransferAbortedError)
    async def transfer_aborted_handler(
        request: Request, exc: TransferAbortedError
    ) -> JSONResponse:
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed request bodies are client errors like any other: 400, not 422
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": jsonable_encoder(exc.errors()),
                "error_type": "validation_error",
            },
        )
