"""
Workflow Service - Quotation and order status state machines

This module provides:
- QuotationStatus / OrderStatus enums matching the documents table columns
- Allowed transition tables for both document types
- Pure transition legality checks with human-readable reasons
- Quotation expiry check
- Spanish status labels and badge colors for display

No database access here. Executing a transition (status write + history)
lives in status_service.
"""

from enum import Enum
from typing import List, Dict, Optional, Union
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


class DocumentType(str, Enum):
    """Value of documents.type"""
    QUOTATION = "quotation"
    ORDER = "order"


class QuotationStatus(str, Enum):
    """
    Quotation status enum.

    Values are strings matching documents.quotation_status.
    """
    DRAFT = "draft"
    GENERATED = "generated"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"  # Final


class OrderStatus(str, Enum):
    """
    Order status enum.

    Values are strings matching documents.order_status.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"  # Final
    CANCELLED = "cancelled"  # Final


# status_history.status_type per document type
STATUS_TYPES: Dict[DocumentType, str] = {
    DocumentType.QUOTATION: "quotation_status",
    DocumentType.ORDER: "order_status",
}


# =============================================================================
# ALLOWED TRANSITIONS
# =============================================================================

QUOTATION_TRANSITIONS: Dict[QuotationStatus, List[QuotationStatus]] = {
    QuotationStatus.DRAFT: [QuotationStatus.GENERATED],
    QuotationStatus.GENERATED: [QuotationStatus.UNDER_REVIEW, QuotationStatus.EXPIRED],
    QuotationStatus.UNDER_REVIEW: [
        QuotationStatus.APPROVED,
        QuotationStatus.REJECTED,
        QuotationStatus.EXPIRED,
    ],
    QuotationStatus.APPROVED: [QuotationStatus.CONVERTED, QuotationStatus.EXPIRED],
    QuotationStatus.REJECTED: [QuotationStatus.GENERATED],  # Regenerate after rejection
    QuotationStatus.EXPIRED: [QuotationStatus.GENERATED],  # Regenerate after expiry
    QuotationStatus.CONVERTED: [],
}

ORDER_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED],
    OrderStatus.IN_PROGRESS: [OrderStatus.READY, OrderStatus.CANCELLED],
    OrderStatus.READY: [OrderStatus.SHIPPED, OrderStatus.CANCELLED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
}

FINAL_QUOTATION_STATUSES = {QuotationStatus.CONVERTED}
FINAL_ORDER_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Orders can be cancelled until they leave the warehouse
CANCELLABLE_ORDER_STATUSES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.READY,
}


# =============================================================================
# DISPLAY METADATA
# =============================================================================

QUOTATION_STATUS_LABELS: Dict[QuotationStatus, str] = {
    QuotationStatus.DRAFT: "Borrador",
    QuotationStatus.GENERATED: "Generada",
    QuotationStatus.UNDER_REVIEW: "En Revisión",
    QuotationStatus.APPROVED: "Aprobada",
    QuotationStatus.REJECTED: "Rechazada",
    QuotationStatus.EXPIRED: "Expirada",
    QuotationStatus.CONVERTED: "Convertida",
}

ORDER_STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Pendiente",
    OrderStatus.CONFIRMED: "Confirmada",
    OrderStatus.IN_PROGRESS: "En Proceso",
    OrderStatus.READY: "Lista",
    OrderStatus.SHIPPED: "Enviada",
    OrderStatus.DELIVERED: "Entregada",
    OrderStatus.CANCELLED: "Cancelada",
}

# Tailwind CSS classes for badges
QUOTATION_STATUS_COLORS: Dict[QuotationStatus, str] = {
    QuotationStatus.DRAFT: "bg-gray-100 text-gray-800",
    QuotationStatus.GENERATED: "bg-blue-100 text-blue-800",
    QuotationStatus.UNDER_REVIEW: "bg-yellow-100 text-yellow-800",
    QuotationStatus.APPROVED: "bg-green-100 text-green-800",
    QuotationStatus.REJECTED: "bg-red-100 text-red-800",
    QuotationStatus.EXPIRED: "bg-gray-100 text-gray-800",
    QuotationStatus.CONVERTED: "bg-purple-100 text-purple-800",
}

ORDER_STATUS_COLORS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "bg-yellow-100 text-yellow-800",
    OrderStatus.CONFIRMED: "bg-blue-100 text-blue-800",
    OrderStatus.IN_PROGRESS: "bg-purple-100 text-purple-800",
    OrderStatus.READY: "bg-indigo-100 text-indigo-800",
    OrderStatus.SHIPPED: "bg-orange-100 text-orange-800",
    OrderStatus.DELIVERED: "bg-green-100 text-green-800",
    OrderStatus.CANCELLED: "bg-red-100 text-red-800",
}

DEFAULT_STATUS_COLOR = "bg-gray-100 text-gray-800"


@dataclass
class StatusTransitionCheck:
    """
    Result of a transition legality check.

    Attributes:
        from_status: Current status value
        to_status: Requested status value
        is_valid: Whether the transition is in the table
        reason: Why it is not allowed (None when valid)
    """
    from_status: str
    to_status: str
    is_valid: bool
    reason: Optional[str] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _value(status: Union[Enum, str]) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def _parse(enum_cls, status):
    if isinstance(status, enum_cls):
        return status
    try:
        return enum_cls(status)
    except ValueError:
        return None


def validate_status_transition(
    from_status: Union[QuotationStatus, str],
    to_status: Union[QuotationStatus, str]
) -> StatusTransitionCheck:
    """
    Check a quotation status transition against QUOTATION_TRANSITIONS.

    Example:
        >>> validate_status_transition('draft', 'approved').reason
        'Cannot transition from draft to approved'
    """
    from_value, to_value = _value(from_status), _value(to_status)
    current = _parse(QuotationStatus, from_status)
    target = _parse(QuotationStatus, to_status)

    if current is None or target is None:
        invalid = from_value if current is None else to_value
        return StatusTransitionCheck(from_value, to_value, False, f"Invalid status: {invalid}")

    if target in QUOTATION_TRANSITIONS[current]:
        return StatusTransitionCheck(from_value, to_value, True)

    if current == target:
        reason = "Status is already set to this value"
    elif current in FINAL_QUOTATION_STATUSES:
        reason = "Cannot change status of converted quotations"
    else:
        reason = f"Cannot transition from {current.value} to {target.value}"

    return StatusTransitionCheck(from_value, to_value, False, reason)


def validate_order_status_transition(
    from_status: Union[OrderStatus, str],
    to_status: Union[OrderStatus, str]
) -> StatusTransitionCheck:
    """Check an order status transition against ORDER_TRANSITIONS."""
    from_value, to_value = _value(from_status), _value(to_status)
    current = _parse(OrderStatus, from_status)
    target = _parse(OrderStatus, to_status)

    if current is None or target is None:
        invalid = from_value if current is None else to_value
        return StatusTransitionCheck(from_value, to_value, False, f"Invalid status: {invalid}")

    if target in ORDER_TRANSITIONS[current]:
        return StatusTransitionCheck(from_value, to_value, True)

    if current == target:
        reason = "Status is already set to this value"
    elif current in FINAL_ORDER_STATUSES:
        reason = f"Cannot change status of {current.value} orders"
    else:
        reason = f"Cannot transition from {current.value} to {target.value}"

    return StatusTransitionCheck(from_value, to_value, False, reason)


def validate_transition_for_type(
    document_type: Union[DocumentType, str],
    from_status: str,
    to_status: str
) -> StatusTransitionCheck:
    """Dispatch to the state machine of the given document type."""
    if _parse(DocumentType, document_type) == DocumentType.ORDER:
        return validate_order_status_transition(from_status, to_status)
    return validate_status_transition(from_status, to_status)


def get_valid_next_statuses(current_status: Union[QuotationStatus, str]) -> List[QuotationStatus]:
    """Quotation statuses reachable from current_status (empty for converted)."""
    status = _parse(QuotationStatus, current_status)
    if status is None:
        return []
    return list(QUOTATION_TRANSITIONS[status])


def get_valid_next_order_statuses(current_status: Union[OrderStatus, str]) -> List[OrderStatus]:
    """Order statuses reachable from current_status (empty for final statuses)."""
    status = _parse(OrderStatus, current_status)
    if status is None:
        return []
    return list(ORDER_TRANSITIONS[status])


def is_final_status(status: str) -> bool:
    """True for converted quotations and delivered/cancelled orders."""
    quotation_status = _parse(QuotationStatus, status)
    if quotation_status is not None:
        return quotation_status in FINAL_QUOTATION_STATUSES
    return _parse(OrderStatus, status) in FINAL_ORDER_STATUSES


def can_cancel_order(status: Union[OrderStatus, str]) -> bool:
    return _parse(OrderStatus, status) in CANCELLABLE_ORDER_STATUSES


def can_convert_quotation(status: Union[QuotationStatus, str]) -> bool:
    return _parse(QuotationStatus, status) == QuotationStatus.APPROVED


def get_status_type(document_type: Union[DocumentType, str]) -> str:
    """status_history.status_type for a document type."""
    return STATUS_TYPES[DocumentType(_value(document_type))]


def _parse_iso(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_quotation_expired(
    issue_date: Union[str, datetime],
    validity_days: int,
    now: Optional[datetime] = None
) -> bool:
    """
    Check whether a quotation validity window has elapsed.

    Expiry is issue_date + validity_days measured in elapsed time, not
    calendar days. Naive datetimes are treated as UTC.

    Args:
        issue_date: ISO-8601 string or datetime
        validity_days: Validity window in days (0 expires immediately)
        now: Reference time (default: current UTC time)

    Example:
        >>> is_quotation_expired("2025-01-01T00:00:00Z", 30,
        ...                      now=datetime(2025, 2, 1, tzinfo=timezone.utc))
        True
    """
    issued = _parse_iso(issue_date)
    reference = _parse_iso(now) if now is not None else datetime.now(timezone.utc)
    return reference >= issued + timedelta(days=validity_days)


# =============================================================================
# DISPLAY HELPERS
# =============================================================================

def get_status_label(status: str, document_type: Union[DocumentType, str] = DocumentType.QUOTATION) -> str:
    """
    Get Spanish label for a status.

    Returns the raw value for unknown statuses.
    """
    if _parse(DocumentType, document_type) == DocumentType.ORDER:
        parsed = _parse(OrderStatus, status)
        return ORDER_STATUS_LABELS.get(parsed, _value(status))
    parsed = _parse(QuotationStatus, status)
    return QUOTATION_STATUS_LABELS.get(parsed, _value(status))


def get_status_color(status: str, document_type: Union[DocumentType, str] = DocumentType.QUOTATION) -> str:
    """Get Tailwind CSS classes for a status badge."""
    if _parse(DocumentType, document_type) == DocumentType.ORDER:
        return ORDER_STATUS_COLORS.get(_parse(OrderStatus, status), DEFAULT_STATUS_COLOR)
    return QUOTATION_STATUS_COLORS.get(_parse(QuotationStatus, status), DEFAULT_STATUS_COLOR)


def get_status_display(status: str, document_type: Union[DocumentType, str] = DocumentType.QUOTATION) -> Dict[str, str]:
    """Label and color pair for display collaborators."""
    return {
        "status": _value(status),
        "label": get_status_label(status, document_type),
        "color": get_status_color(status, document_type),
    }
