"""Exceptions raised by the reconciliation engine and its store.

Every error carries a stable code and the HTTP status the API maps it to.
"""


class ReconciliationError(Exception):
    """Base class for all errors surfaced by the service."""

    def __init__(self, message: str, code: str, http_status: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidRequestError(ReconciliationError):
    """Neither email nor phoneNumber was supplied."""

    def __init__(self, message: str = "Either email or phoneNumber must be provided"):
        super().__init__(message, "VALIDATION_ERROR", 400)


class ContactNotFoundError(ReconciliationError):
    def __init__(self, contact_id: int):
        super().__init__(f"Contact {contact_id} not found", "CONTACT_NOT_FOUND", 404)
        self.contact_id = contact_id


class ChainIntegrityError(ReconciliationError):
    """A chain has no live primary contact, e.g. it was tombstoned by an administrator."""

    def __init__(self, chain_id: int):
        super().__init__(
            f"Contact chain {chain_id} has no primary contact",
            "CHAIN_INTEGRITY_ERROR",
            409,
        )
        self.chain_id = chain_id


class StoreError(ReconciliationError):
    """The contact store failed. Nothing was committed; the call is safe to retry."""

    def __init__(self, operation: str):
        super().__init__(f"Contact store {operation} failed", "STORE_ERROR", 503)
        self.operation = operation
