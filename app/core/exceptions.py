"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code: str = "APP_ERROR"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.extra = extra or {}
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        """Body rendered by the application exception handler."""
        return {"detail": self.detail, "code": self.code, **self.extra}


class ValidationError(AppException):
    """Validation error exception."""

    code = "VALIDATION_ERROR"

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthorizationError(AppException):
    """Authorization denied exception."""

    code = "FORBIDDEN"

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(AppException):
    """Request conflicts with an existing record."""

    code = "CONFLICT"

    def __init__(self, detail: str = "Resource already exists") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class StayNotAccepting(AppException):
    """Stay is closed to new applications."""

    code = "STAY_NOT_ACCEPTING"

    def __init__(self, stay_id: str) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Stay '{stay_id}' is not accepting applications",
        )


class InvalidState(AppException):
    """Booking status does not allow the requested operation."""

    code = "INVALID_STATE"

    def __init__(self, current_status: str, detail: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail or f"Operation not allowed. Booking status is: {current_status}",
            extra={"current_status": current_status},
        )


class UnsupportedChain(AppException):
    """Chain id is not present in the chain registry."""

    code = "UNSUPPORTED_CHAIN"

    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported chain ID: {chain_id}",
        )


class UnsupportedToken(AppException):
    """Token is not configured on the requested chain."""

    code = "UNSUPPORTED_TOKEN"

    def __init__(self, token: str, chain_id: int) -> None:
        self.token = token
        self.chain_id = chain_id
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Token {token} not supported on chain {chain_id}",
        )


class TokenMismatch(AppException):
    """Submitted token differs from the locked token."""

    code = "TOKEN_MISMATCH"

    def __init__(self, locked_token: str, submitted_token: str) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment was locked for {locked_token}, not {submitted_token}",
            extra={"locked_token": locked_token},
        )


class ChainMismatch(AppException):
    """Submitted chain differs from the locked chain."""

    code = "CHAIN_MISMATCH"

    def __init__(self, locked_chain_id: int, submitted_chain_id: int) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment was locked on chain {locked_chain_id}, not {submitted_chain_id}",
            extra={"locked_chain_id": locked_chain_id},
        )


class TransactionAlreadyUsed(AppException):
    """Transaction hash was already accepted for a booking."""

    code = "TRANSACTION_ALREADY_USED"

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="This transaction has already been used for another booking",
        )


class ExternalServiceError(AppException):
    """External service error."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"External service '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)


class NotificationError(Exception):
    """Email delivery failed. Never fatal to the calling transition."""
