"""
Centralized domain exceptions for consistent error handling.

Every error raised across the engine boundary is one of these. Callers
branch on the class (or on ``code``) and show ``detail`` to the cashier.

Usage:
    from shared.utils.exceptions import LineItemNotFoundError, AuthorityError

    raise LineItemNotFoundError("item_ab12")
    raise AuthorityError("Discount not permitted", item_id="item_ab12")
"""

from decimal import Decimal
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """
    Base exception with automatic logging.

    All engine exceptions inherit from this class so every raise leaves a
    structured log line with its context.
    """

    code: str = "error"

    def __init__(
        self,
        detail: str,
        log_level: str = "warning",
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, code=self.code, **log_context)

        self.detail = detail
        self.context = log_context
        super().__init__(detail)


# =============================================================================
# Validation Errors (bad input at the mutation boundary)
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error.

    Usage:
        raise ValidationError("Quantity must be positive", field="quantity", value=-1)
    """

    code = "validation"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="warning", **log_context)


class EmptyCartError(ValidationError):
    """Operation needs at least one line item."""

    def __init__(self, operation: str | None = None, **log_context: Any):
        detail = "Cart is empty"
        if operation:
            detail = f"Cannot {operation}: cart is empty"
        super().__init__(detail, operation=operation, **log_context)


class InvalidQuantityError(ValidationError):
    """Quantity outside the accepted range."""

    def __init__(self, quantity: Any, **log_context: Any):
        super().__init__(f"Invalid quantity: {quantity}", quantity=quantity, **log_context)


class InvalidDiscountError(ValidationError):
    """Discount percentage or amount outside the accepted range."""

    def __init__(self, value: Any, reason: str, **log_context: Any):
        super().__init__(f"Invalid discount ({value}): {reason}", value=value, **log_context)


class DiscountExceedsCeilingError(ValidationError):
    """Requested discount is above the rep's ceiling for this item."""

    def __init__(self, requested_pct: Decimal, ceiling_pct: Decimal, **log_context: Any):
        detail = f"Discount {requested_pct}% exceeds your limit of {ceiling_pct}%"
        super().__init__(
            detail,
            requested_pct=requested_pct,
            ceiling_pct=ceiling_pct,
            **log_context,
        )
        self.requested_pct = requested_pct
        self.ceiling_pct = ceiling_pct


class UnknownJurisdictionError(ValidationError):
    """Tax jurisdiction code is not in the rate table."""

    def __init__(self, code: str, **log_context: Any):
        super().__init__(f"Unknown tax jurisdiction '{code}'", jurisdiction=code, **log_context)


class MissingSalespersonError(ValidationError):
    """Checkout attempted without a salesperson."""

    def __init__(self, **log_context: Any):
        super().__init__("Salesperson is required", **log_context)


class PaymentMismatchError(ValidationError):
    """Tendered payments do not cover the amount due."""

    def __init__(self, tendered: Decimal, amount_due: Decimal, **log_context: Any):
        detail = f"Payments total {tendered} but {amount_due} is due"
        super().__init__(detail, tendered=tendered, amount_due=amount_due, **log_context)


class DuplicateEntityError(ValidationError):
    """Entity already exists."""

    def __init__(self, entity: str, identifier: str | None = None, **log_context: Any):
        if identifier:
            detail = f"{entity} with identifier '{identifier}' already exists"
        else:
            detail = f"{entity} already exists"

        super().__init__(detail, entity=entity, identifier=identifier, **log_context)


class InvalidTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(detail, entity=entity, from_status=from_status, to_status=to_status, **log_context)


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found.

    Usage:
        raise NotFoundError("Trade-in", 42)
    """

    code = "not_found"

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} '{entity_id}' not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class LineItemNotFoundError(NotFoundError):
    """Cart line item not found."""

    def __init__(self, item_id: str | int | None = None, **log_context: Any):
        super().__init__("Line item", item_id, **log_context)


class HeldCartNotFoundError(NotFoundError):
    """Held cart not found."""

    def __init__(self, held_id: str | None = None, **log_context: Any):
        super().__init__("Held cart", held_id, **log_context)


class EscalationNotFoundError(NotFoundError):
    """Discount escalation not found."""

    def __init__(self, escalation_id: int | None = None, **log_context: Any):
        super().__init__("Escalation", escalation_id, **log_context)


class TradeInNotFoundError(NotFoundError):
    """Trade-in assessment not found on the cart."""

    def __init__(self, trade_in_id: int | None = None, **log_context: Any):
        super().__init__("Trade-in", trade_in_id, **log_context)


# =============================================================================
# Authority Errors
# =============================================================================


class AuthorityError(AppException):
    """
    The discount authority refused an operation.

    Usage:
        raise AuthorityError("Weekly budget exhausted", item_id=item.id)
    """

    code = "authority"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="warning", **log_context)


class EscalationAlreadyUsedError(AuthorityError):
    """Approved escalation has already been consumed by a transaction."""

    def __init__(self, escalation_id: int, transaction_id: int | None = None, **log_context: Any):
        super().__init__(
            f"Escalation {escalation_id} has already been used",
            escalation_id=escalation_id,
            transaction_id=transaction_id,
            **log_context,
        )


# =============================================================================
# Backend Errors
# =============================================================================


class BackendError(AppException):
    """
    A backend service returned an error or could not be reached.

    Usage:
        raise BackendError("discount-authority", status_code=500)
    """

    code = "backend"

    def __init__(
        self,
        service: str,
        detail: str | None = None,
        status_code: int | None = None,
        **log_context: Any,
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(
            detail or f"Error communicating with {service}",
            log_level="error",
            service=service,
            status_code=status_code,
            **log_context,
        )


class BackendUnavailableError(BackendError):
    """Backend unreachable after retries (timeout or connection failure)."""

    def __init__(self, service: str, **log_context: Any):
        super().__init__(service, f"Service {service} temporarily unavailable", **log_context)


# =============================================================================
# Fatal State Errors
# =============================================================================


class FatalStateError(AppException):
    """
    Session is not in a state where the operation can run at all.

    Usage:
        raise FatalStateError("Shift is closed")
    """

    code = "fatal_state"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="error", **log_context)


class NoActiveShiftError(FatalStateError):
    """No open shift for the register."""

    def __init__(self, **log_context: Any):
        super().__init__("No active shift. Please open a shift first.", **log_context)


class TierNotLoadedError(FatalStateError):
    """Discount authority tier has not been loaded for this session."""

    def __init__(self, **log_context: Any):
        super().__init__("Discount authority has not been loaded", **log_context)
