"""
Typed ledger failures.

They are HTTPExceptions so the core can raise them from deep inside a ledger
operation and FastAPI renders them unchanged; callers that use the core
directly can still catch them by type.
"""

from fastapi import HTTPException


class LedgerError(HTTPException):
    status_code = 400
    default_detail = "ledger operation rejected"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class InvalidAmount(LedgerError):
    default_detail = "amount must be > 0"


class InvalidAdvance(InvalidAmount):
    default_detail = "advance must be between 0 and the sale total"


class NotFound(LedgerError):
    status_code = 404
    default_detail = "not found"


class ConcurrencyConflict(LedgerError):
    status_code = 409
    default_detail = "record changed concurrently; reload and retry"


class StoreFailure(LedgerError):
    status_code = 503
    default_detail = "ledger store unavailable; nothing was applied, retry"
