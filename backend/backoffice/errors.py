# Overview: Failure taxonomy shared by the sales, drawer, and ledger engines.

"""
Every engine failure carries:
- message: human-readable reason
- details: structured context for API consumers
- kind: validation | not_found | state_conflict | configuration | consistency
- http_status: how the thin HTTP layer reports it

Validation errors are raised before any write. State conflicts reflect the
persisted state at the time of the call. Configuration errors persist until
an operator fixes the data. Consistency violations mean a re-check failed and
the unit of work was aborted.
"""

from __future__ import annotations

KIND_VALIDATION = "validation"
KIND_NOT_FOUND = "not_found"
KIND_STATE_CONFLICT = "state_conflict"
KIND_CONFIGURATION = "configuration"
KIND_CONSISTENCY = "consistency"


class EngineError(Exception):
    """Base class for every failure the engines surface to callers."""
    kind = KIND_VALIDATION
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "code": type(self).__name__,
            "details": self.details,
        }


# =============================================================================
# VALIDATION (rejected before any write)
# =============================================================================

class InvalidRequest(EngineError):
    """Malformed input: non-positive quantities, negative amounts, bad ids."""


class InvalidPaymentMethod(EngineError):
    pass


class NoPaymentsProvided(EngineError):
    pass


class PaymentsExceedTotal(EngineError):
    pass


class SplitValidationError(EngineError):
    """Rent/profit arithmetic does not satisfy the distribution rules."""


# =============================================================================
# NOT FOUND
# =============================================================================

class _NotFound(EngineError):
    kind = KIND_NOT_FOUND
    http_status = 404


class UserNotFound(_NotFound):
    http_status = 400


class ProductNotFound(_NotFound):
    http_status = 400


class SaleNotFound(_NotFound):
    pass


class SaleLineNotFound(_NotFound):
    pass


class PaymentNotFound(_NotFound):
    pass


class AccountNotFound(_NotFound):
    pass


class DrawerNotFound(_NotFound):
    pass


class LotNotFound(_NotFound):
    pass


class CategoryNotFound(_NotFound):
    pass


class WithdrawalNotFound(_NotFound):
    pass


# =============================================================================
# STATE CONFLICTS
# =============================================================================

class _StateConflict(EngineError):
    kind = KIND_STATE_CONFLICT
    http_status = 409


class InsufficientStock(_StateConflict):
    pass


class DrawerAlreadyOpen(_StateConflict):
    pass


class NoDrawerOpen(_StateConflict):
    pass


class DrawerNotOpen(_StateConflict):
    """A specific drawer was addressed but it is closed."""


class CutExceedsBalance(_StateConflict):
    pass


class DrawerBalanceUnderflow(_StateConflict):
    pass


class DrawerOpen(_StateConflict):
    """Closed-books operation attempted while a drawer is open."""


class AlreadyAccounted(_StateConflict):
    pass


class InsufficientFunds(_StateConflict):
    pass


class PaymentRemovalNotAllowed(_StateConflict):
    pass


# =============================================================================
# CONFIGURATION
# =============================================================================

class _ConfigurationError(EngineError):
    kind = KIND_CONFIGURATION
    http_status = 500


class StandardAccountsMissing(_ConfigurationError):
    pass


class CategoryMisconfigured(_ConfigurationError):
    http_status = 422


# =============================================================================
# CONSISTENCY
# =============================================================================

class _ConsistencyError(EngineError):
    kind = KIND_CONSISTENCY
    http_status = 409


class InventoryConsistencyViolation(_ConsistencyError):
    pass


class LedgerBalanceMismatch(_ConsistencyError):
    pass
