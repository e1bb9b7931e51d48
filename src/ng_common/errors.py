"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Identity / authorization
  2xxx: Negotiation
  3xxx: Settlement token
  9xxx: System

Expected policy outcomes (rate limit, terminal session, ...) are carried
inside an Outcome by the core and only raised at the HTTP edge.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Identity ---

class NotAuthorizedError(AppError):
    def __init__(self, detail: str = "Not authorized for this negotiation") -> None:
        super().__init__(1001, detail, 403)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Invalid or expired token", 401)


# --- 2xxx: Negotiation ---

class NegotiationNotFoundError(AppError):
    def __init__(self, negotiation_id: str) -> None:
        super().__init__(2001, f"Negotiation not found: {negotiation_id}", 404)


class DuplicateActiveSessionError(AppError):
    def __init__(self, item_id: str) -> None:
        super().__init__(
            2002, f"An active negotiation already exists for item {item_id}", 409
        )


class SessionTerminalError(AppError):
    def __init__(self, status: str) -> None:
        super().__init__(2003, f"Negotiation is not active (status: {status})", 409)


class SessionExpiredError(AppError):
    def __init__(self) -> None:
        super().__init__(2004, "Negotiation has expired", 410)


class RateLimitExceededError(AppError):
    def __init__(self) -> None:
        super().__init__(
            2005,
            "Rate limit exceeded. Please wait before sending another message.",
            429,
        )


class InvalidFieldError(AppError):
    """Malformed caller input; `field` names the offending attribute."""

    def __init__(self, field: str, detail: str) -> None:
        self.field = field
        super().__init__(2006, f"{field}: {detail}", 422)


class NoOfferToAcceptError(AppError):
    def __init__(self) -> None:
        super().__init__(2007, "No offer to accept", 422)


class AlreadyReportedError(AppError):
    def __init__(self) -> None:
        super().__init__(2008, "Already reported by you", 409)


class ConcurrentModificationError(AppError):
    def __init__(self, negotiation_id: str) -> None:
        super().__init__(
            2009, f"Negotiation {negotiation_id} was modified concurrently, retry", 409
        )


# --- 3xxx: Settlement token ---

class TokenNotFoundError(AppError):
    def __init__(self) -> None:
        super().__init__(3001, "Discount code not found", 404)


class TokenAlreadyUsedError(AppError):
    def __init__(self) -> None:
        super().__init__(3002, "Discount code has already been used", 409)


class TokenExpiredError(AppError):
    def __init__(self) -> None:
        super().__init__(3003, "Discount code has expired", 410)


class TokenGenerationError(AppError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            3004, f"Could not generate a unique discount code after {attempts} attempts", 500
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9001, detail, 500)
