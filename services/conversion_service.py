"""
Conversion Service - Turn an approved quotation into an order

Flow of convert_quotation_to_order:
1. Pre-conversion validation (status, existing order, items, actor, integrity)
2. Order folio generation and uniqueness check
3. Load quotation with items
4. Insert the order row (pending, linked via quotation_id)
5. Copy items; on failure the new order is deleted
6. Move the quotation to converted (failure is only a warning)
7. Initial history entry of the order

The unique constraint on documents.quotation_id for orders is what prevents
duplicate orders; the existing-order check in step 1 is an early exit.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from supabase import Client

from .document_service import (
    Document,
    create_order_from_quotation,
    delete_document,
    get_document_with_items,
    insert_document_items,
)
from .folio_service import generate_order_folio
from .status_service import record_status_change, update_document_status
from .validation_service import validate_folio_uniqueness, validate_pre_conversion
from .workflow_service import (
    DocumentType,
    OrderStatus,
    QuotationStatus,
    can_convert_quotation,
)

logger = logging.getLogger(__name__)


UNIQUE_VIOLATION_CODE = "23505"


class ConversionError(str, Enum):
    """Failure codes of a quotation -> order conversion."""
    VALIDATION_FAILED = "VALIDATION_FAILED"
    FOLIO_VALIDATION_FAILED = "FOLIO_VALIDATION_FAILED"
    QUOTATION_NOT_FOUND = "QUOTATION_NOT_FOUND"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"
    ORDER_ALREADY_EXISTS = "ORDER_ALREADY_EXISTS"
    ITEMS_COPY_FAILED = "ITEMS_COPY_FAILED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass
class ConversionResult:
    """
    Result of a conversion attempt.

    Attributes:
        success: Whether the order was created
        message: Human-readable outcome
        error: Failure code, None on success
        order_id: UUID of the new order
        order_folio: Folio of the new order
        errors: Blocking errors (validation failures)
        warnings: Non-fatal concerns collected along the way
    """
    success: bool
    message: str
    error: Optional[ConversionError] = None
    order_id: Optional[str] = None
    order_folio: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _is_unique_violation(error: Exception) -> bool:
    if getattr(error, "code", None) == UNIQUE_VIOLATION_CODE:
        return True
    return "duplicate key" in str(error).lower()


def _failure(error: ConversionError, message: str, **kwargs) -> ConversionResult:
    return ConversionResult(success=False, message=message, error=error, **kwargs)


def convert_quotation_to_order(
    supabase: Client,
    quotation_id: str,
    actor_id: str,
    access_token: Optional[str] = None
) -> ConversionResult:
    """
    Convert an approved quotation into a pending order.

    Args:
        supabase: Client used for every read and write
        quotation_id: UUID of the quotation
        actor_id: UUID of the admin performing the conversion
        access_token: JWT to confirm instead of the client's session

    Returns:
        ConversionResult with the new order id and folio on success

    Example:
        >>> result = convert_quotation_to_order(client, "quote-uuid", "admin-uuid")
        >>> result.order_folio
        'ORD-00000042'
    """
    try:
        # Step 1: Pre-conversion validation
        validation = validate_pre_conversion(supabase, quotation_id, actor_id, access_token=access_token)
        warnings = list(validation.warnings)
        if warnings:
            logger.warning(f"Conversion warnings for quotation {quotation_id}: {warnings}")

        if not validation.valid:
            return _failure(
                ConversionError.VALIDATION_FAILED,
                f"Validation failed: {'; '.join(validation.errors)}",
                errors=validation.errors,
                warnings=warnings,
            )

        # Step 2: Folio
        folio = generate_order_folio(supabase)
        folio_check = validate_folio_uniqueness(supabase, folio, DocumentType.ORDER.value)
        if not folio_check.valid:
            return _failure(
                ConversionError.FOLIO_VALIDATION_FAILED,
                f"Folio validation failed: {'; '.join(folio_check.errors)}",
                errors=folio_check.errors,
                warnings=warnings + folio_check.warnings,
            )

        # Step 3: Quotation with items
        quotation = get_document_with_items(supabase, quotation_id, DocumentType.QUOTATION.value)
        if quotation is None:
            return _failure(
                ConversionError.QUOTATION_NOT_FOUND,
                "Quotation not found",
                warnings=warnings,
            )

        # Step 4: Order row
        try:
            order = create_order_from_quotation(supabase, quotation, folio, actor_id)
        except Exception as e:
            if _is_unique_violation(e):
                logger.warning(f"Order already exists for quotation {quotation.folio}: {e}")
                return _failure(
                    ConversionError.ORDER_ALREADY_EXISTS,
                    f"An order already exists for quotation {quotation.folio}",
                    warnings=warnings,
                )
            logger.error(f"Failed to create order for quotation {quotation.folio}: {e}")
            return _failure(
                ConversionError.ORDER_CREATION_FAILED,
                f"Failed to create order: {e}",
                warnings=warnings,
            )

        if order is None:
            return _failure(
                ConversionError.ORDER_CREATION_FAILED,
                "Failed to create order",
                warnings=warnings,
            )

        # Step 5: Items, with rollback of the order on failure
        items_error = _copy_items(supabase, quotation, order)
        if items_error is not None:
            logger.error(f"Failed to copy items to order {order.folio}: {items_error}")
            try:
                delete_document(supabase, order.id)
            except Exception as e:
                logger.error(f"Rollback of order {order.folio} failed: {e}")
                warnings.append(f"Order {order.folio} could not be removed after failed item copy")
            return _failure(
                ConversionError.ITEMS_COPY_FAILED,
                f"Failed to copy quotation items: {items_error}",
                warnings=warnings,
            )

        # Step 6: Quotation -> converted
        status_result = update_document_status(
            supabase,
            quotation.id,
            QuotationStatus.CONVERTED.value,
            actor_id,
            reason=f"Converted to order {order.folio}",
            document_type=DocumentType.QUOTATION.value,
            access_token=access_token,
        )
        if not status_result.success:
            logger.warning(
                f"Order {order.folio} created but quotation {quotation.folio} "
                f"status update failed: {status_result.message}"
            )
            warnings.append(f"Quotation status could not be updated: {status_result.message}")
        else:
            warnings.extend(status_result.warnings)

        # Step 7: Order history
        try:
            record_status_change(
                supabase, order.id, DocumentType.ORDER.value,
                None, OrderStatus.PENDING.value, actor_id,
                reason=f"Created from quotation {quotation.folio}",
            )
        except Exception as e:
            logger.warning(f"Failed to create initial history entry for order {order.folio}: {e}")
            warnings.append("Order created but history entry could not be recorded")

        logger.info(f"Quotation {quotation.folio} converted to order {order.folio}")
        return ConversionResult(
            success=True,
            message=f"Quotation {quotation.folio} converted to order {order.folio}",
            order_id=order.id,
            order_folio=order.folio,
            warnings=warnings,
        )

    except Exception as e:
        logger.error(f"Error converting quotation {quotation_id}: {e}", exc_info=True)
        return _failure(ConversionError.UNEXPECTED_ERROR, "An unexpected error occurred during conversion")


def _copy_items(supabase: Client, quotation: Document, order: Document) -> Optional[str]:
    """Copy quotation items to the order. Returns an error message, None on success."""
    items = [item.copy_to(order.id) for item in quotation.items]
    try:
        inserted = insert_document_items(supabase, items)
    except Exception as e:
        return str(e)
    if inserted != len(items):
        return f"{inserted} of {len(items)} items stored"
    return None


def get_quotation_for_conversion(supabase: Client, quotation_id: str) -> Optional[Dict[str, Any]]:
    """
    Preview of a quotation before conversion.

    Returns:
        Dict with the quotation, its items, and whether it can be converted,
        or None if the quotation does not exist
    """
    try:
        quotation = get_document_with_items(supabase, quotation_id, DocumentType.QUOTATION.value)
    except Exception as e:
        logger.error(f"Error fetching quotation {quotation_id} for conversion: {e}")
        return None

    if quotation is None:
        return None

    return {
        "quotation": quotation,
        "items": quotation.items,
        "can_convert": can_convert_quotation(quotation.quotation_status) and bool(quotation.items),
    }
