"""
Typed Exception Hierarchy for the Farm Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the purchasing engine (the API layer, batch importers, tests) must
react to failures precisely. Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.update_order(order_id, payload, actor_id)
    except Exception as e:
        if "not editable" in str(e):  # FRAGILE - message might change
            refresh_view()

Example - RIGHT way (what this module enables):
    try:
        service.update_order(order_id, payload, actor_id)
    except EditNotAllowedError as e:
        refresh_view(status=e.current_status)   # Structured data
        api_response(code=e.code)               # Machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from FarmKernelError:

    FarmKernelError (base)
    |
    +-- ValidationError
    |
    +-- OrderError
    |   +-- OrderNotFoundError
    |   +-- InvalidTransitionError
    |   +-- EditNotAllowedError
    |
    +-- PaymentTermsError
    |   +-- UnknownPaymentTermsError
    |
    +-- ExchangeRateError
    |   +-- InvalidExchangeRateError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed/missing/unknown input fields
----------------|-----------------------------|-----------------------------------------
Order           | ORDER_NOT_FOUND             | Order ID doesn't exist
                | INVALID_TRANSITION          | Target not in allowed-next set
                | EDIT_NOT_ALLOWED            | Mutation outside the initial status
----------------|-----------------------------|-----------------------------------------
Payment terms   | UNKNOWN_PAYMENT_TERMS       | Strict lookup of a code not in catalog
----------------|-----------------------------|-----------------------------------------
Exchange rate   | INVALID_EXCHANGE_RATE       | Rate is zero/negative/invalid
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Version token moved under the caller

Reconciliation failures are NOT exceptions: they are reported as a
``ReconciliationWarning`` value (see ``farm_modules.purchasing.models``)
because the approval they accompany has already succeeded.

===============================================================================
HANDLING PATTERNS
===============================================================================

1. STATE-GUARD ERRORS NAME THE AUTHORITATIVE STATUS:

    except InvalidTransitionError as e:
        return {
            "error": e.code,
            "current": e.current_status,
            "requested": e.requested_status,
            "allowed": list(e.allowed),
        }

2. CONCURRENCY ERRORS ARE RETRYABLE AFTER A REFRESH:

    except OptimisticLockError:
        order = service.get_order(order_id)
        # re-apply the user's change on the fresh copy
"""


class FarmKernelError(Exception):
    """
    Base exception for all farm kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FARM_KERNEL_ERROR"


# Validation


class ValidationError(FarmKernelError):
    """
    Input payload failed validation.

    Raised before any persistence happens. ``field_errors`` is a list of
    ``{"field": ..., "message": ...}`` dicts, surfaced verbatim to callers.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_errors: list[dict]):
        self.field_errors = field_errors
        summary = "; ".join(
            f"{err.get('field')}: {err.get('message')}" for err in field_errors
        )
        super().__init__(
            f"Validation failed with {len(field_errors)} error(s): {summary}"
        )

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        """Build a ValidationError for one field."""
        return cls([{"field": field, "message": message}])


# Order-related exceptions


class OrderError(FarmKernelError):
    """Base exception for purchase order errors."""

    code: str = "ORDER_ERROR"


class OrderNotFoundError(OrderError):
    """Purchase order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Purchase order not found: {order_id}")


class InvalidTransitionError(OrderError):
    """
    Requested status is not in the allowed-next set of the current status.

    ``current_status`` is always the authoritative (freshly read) status.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        allowed: tuple[str, ...],
    ):
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed = tuple(allowed)
        allowed_text = ", ".join(self.allowed) if self.allowed else "none"
        super().__init__(
            f"Invalid transition {current_status} -> {requested_status}. "
            f"Allowed from {current_status}: {allowed_text}"
        )


class EditNotAllowedError(OrderError):
    """Order is past its initial status; edits and deletion are rejected."""

    code: str = "EDIT_NOT_ALLOWED"

    def __init__(self, current_status: str, order_id: str | None = None):
        self.current_status = current_status
        self.order_id = order_id
        super().__init__(
            f"Order cannot be modified in status '{current_status}'"
        )


# Payment terms exceptions


class PaymentTermsError(FarmKernelError):
    """Base exception for payment terms errors."""

    code: str = "PAYMENT_TERMS_ERROR"


class UnknownPaymentTermsError(PaymentTermsError):
    """Payment terms code is not in the catalog."""

    code: str = "UNKNOWN_PAYMENT_TERMS"

    def __init__(self, terms_code: str):
        self.terms_code = terms_code
        super().__init__(f"Unknown payment terms code: {terms_code!r}")


# Exchange rate exceptions


class ExchangeRateError(FarmKernelError):
    """Base exception for exchange rate errors."""

    code: str = "EXCHANGE_RATE_ERROR"


class InvalidExchangeRateError(ExchangeRateError):
    """Exchange rate value is invalid (zero, negative, or not a number)."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate: str, reason: str):
        self.rate = rate
        self.reason = reason
        super().__init__(f"Invalid exchange rate {rate}: {reason}")


# Concurrency exceptions


class ConcurrencyError(FarmKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
