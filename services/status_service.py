"""
Status Service - Execute quotation and order status changes

This module provides:
- update_document_status: authenticated, validated status change with audit
- update_quotation_status / update_order_status: type-pinned wrappers
- Status history reads
- Auto-expiry sweep for quotations past their validity window
- Status summaries for dashboards

Operations never raise: every outcome is a result object. Write order is
status first, history second; a failed history write is logged and reported
as a warning, the status change stays.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from supabase import Client

from .document_service import (
    DOCUMENTS_TABLE,
    HISTORY_TABLE,
    Document,
    StatusHistoryEntry,
    get_document,
    get_status_rows,
    get_user_role,
    insert_status_history,
    set_document_status,
    utc_now_iso,
)
from .validation_service import (
    ValidationResult,
    confirm_actor,
    validate_order_business_rules,
    validate_quotation_business_rules,
)
from .workflow_service import (
    DocumentType,
    OrderStatus,
    QuotationStatus,
    get_status_type,
    is_quotation_expired,
    validate_transition_for_type,
)

logger = logging.getLogger(__name__)


class StatusUpdateError(str, Enum):
    """Failure codes of a status update."""
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    UPDATE_FAILED = "UPDATE_FAILED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass
class StatusUpdateResult:
    """
    Result of a status update attempt.

    Attributes:
        success: Whether the status was written
        message: Human-readable outcome (embeds folio and status on success)
        error: Failure code, None on success
        document_id: Document that was targeted
        folio: Folio of the document, when it was loaded
        from_status: Status before the change
        to_status: Requested status
        errors: Every blocking error found
        warnings: Non-fatal concerns (business warnings, history write failure)
        history_entry: The audit record written, if any
    """
    success: bool
    message: str
    error: Optional[StatusUpdateError] = None
    document_id: Optional[str] = None
    folio: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    history_entry: Optional[StatusHistoryEntry] = None


@dataclass
class AutoExpireResult:
    success: bool
    expired_count: int
    message: str
    expired_folios: List[str] = field(default_factory=list)


_DOCUMENT_LABELS = {
    DocumentType.QUOTATION.value: "Quotation",
    DocumentType.ORDER.value: "Order",
}


def _status_value(status: Union[Enum, str]) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def _business_rules(document: Document, new_status: str, role: Optional[str]) -> ValidationResult:
    if document.type == DocumentType.ORDER.value:
        return validate_order_business_rules(document.status, new_status, role)
    return validate_quotation_business_rules(
        document.status,
        new_status,
        role,
        issue_date=document.issue_date,
        validity_days=document.validity_days,
    )


def record_status_change(
    supabase: Client,
    document_id: str,
    document_type: str,
    old_status: Optional[str],
    new_status: str,
    changed_by: Optional[str],
    reason: Optional[str] = None,
    notes: Optional[str] = None
) -> StatusHistoryEntry:
    """Append one history entry. Errors from the store propagate."""
    entry = StatusHistoryEntry(
        document_id=document_id,
        status_type=get_status_type(document_type),
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        changed_at=utc_now_iso(),
        reason=reason,
        notes=notes,
    )
    return insert_status_history(supabase, entry)


def update_document_status(
    supabase: Client,
    document_id: str,
    new_status: Union[QuotationStatus, OrderStatus, str],
    actor_id: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    document_type: Optional[str] = None,
    access_token: Optional[str] = None
) -> StatusUpdateResult:
    """
    Change the status of a quotation or order.

    Steps:
    1. Confirm the actor with the auth collaborator
    2. Load the document (and check its type) and the actor's role
    3. Business rules (errors and warnings collected separately)
    4. State machine check; its reason wins over business errors
    5. Write status, then append the history entry (best effort)

    Args:
        supabase: Client used for every read and write
        document_id: UUID of the document
        new_status: Target status
        actor_id: UUID of the user making the change
        reason: Optional reason stored in history
        notes: Optional notes stored in history
        document_type: 'quotation' or 'order' to reject documents of the other type
        access_token: JWT to confirm instead of the client's session

    Returns:
        StatusUpdateResult

    Example:
        >>> result = update_document_status(client, "order-uuid", "shipped", "admin-uuid")
        >>> result.message
        'Order ORD-00000042 status updated to shipped'
    """
    target = _status_value(new_status)
    kind = _DOCUMENT_LABELS.get(document_type, "Document")

    try:
        # Step 1: Authentication
        if not confirm_actor(supabase, actor_id, access_token):
            return StatusUpdateResult(
                success=False,
                message="Authentication failed - unauthorized user",
                error=StatusUpdateError.UNAUTHORIZED,
                document_id=document_id,
                to_status=target,
            )

        # Step 2: Current state and role
        document = get_document(supabase, document_id, document_type)
        if document is None:
            return StatusUpdateResult(
                success=False,
                message=f"{kind} not found: {document_id}",
                error=StatusUpdateError.NOT_FOUND,
                document_id=document_id,
                to_status=target,
            )

        kind = _DOCUMENT_LABELS.get(document.type, "Document")
        current = document.status
        role = get_user_role(supabase, actor_id)

        # Step 3: Business rules
        business = _business_rules(document, target, role)

        # Step 4: State machine
        transition = validate_transition_for_type(document.type, current, target)
        if not transition.is_valid:
            return StatusUpdateResult(
                success=False,
                message=transition.reason or "Invalid status transition",
                error=StatusUpdateError.INVALID_TRANSITION,
                document_id=document_id,
                folio=document.folio,
                from_status=current,
                to_status=target,
                errors=[transition.reason] + business.errors,
                warnings=business.warnings,
            )

        if not business.valid:
            return StatusUpdateResult(
                success=False,
                message=business.errors[0],
                error=StatusUpdateError.BUSINESS_RULE_VIOLATION,
                document_id=document_id,
                folio=document.folio,
                from_status=current,
                to_status=target,
                errors=business.errors,
                warnings=business.warnings,
            )

        warnings = list(business.warnings)
        if warnings:
            logger.warning(f"{kind} {document.folio} status update warnings: {warnings}")

        # Step 5: Status first, history second
        try:
            updated = set_document_status(supabase, document, target)
        except Exception as e:
            logger.error(f"Failed to update status of {document.folio}: {e}")
            updated = False

        if not updated:
            return StatusUpdateResult(
                success=False,
                message=f"Failed to update {kind.lower()} status",
                error=StatusUpdateError.UPDATE_FAILED,
                document_id=document_id,
                folio=document.folio,
                from_status=current,
                to_status=target,
                warnings=warnings,
            )

        history_entry = None
        try:
            history_entry = record_status_change(
                supabase, document.id, document.type, current, target, actor_id, reason, notes
            )
        except Exception as e:
            logger.warning(f"Failed to create status history entry for {document.folio}: {e}")
            warnings.append("Status updated but history entry could not be recorded")

        return StatusUpdateResult(
            success=True,
            message=f"{kind} {document.folio} status updated to {target}",
            document_id=document_id,
            folio=document.folio,
            from_status=current,
            to_status=target,
            warnings=warnings,
            history_entry=history_entry,
        )

    except Exception as e:
        logger.error(f"Error updating status of document {document_id}: {e}", exc_info=True)
        return StatusUpdateResult(
            success=False,
            message="An unexpected error occurred",
            error=StatusUpdateError.UNEXPECTED_ERROR,
            document_id=document_id,
            to_status=target,
        )


def update_quotation_status(
    supabase: Client,
    quotation_id: str,
    new_status: Union[QuotationStatus, str],
    actor_id: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    access_token: Optional[str] = None
) -> StatusUpdateResult:
    return update_document_status(
        supabase, quotation_id, new_status, actor_id, reason, notes,
        document_type=DocumentType.QUOTATION.value,
        access_token=access_token,
    )


def update_order_status(
    supabase: Client,
    order_id: str,
    new_status: Union[OrderStatus, str],
    actor_id: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    access_token: Optional[str] = None
) -> StatusUpdateResult:
    return update_document_status(
        supabase, order_id, new_status, actor_id, reason, notes,
        document_type=DocumentType.ORDER.value,
        access_token=access_token,
    )


# =============================================================================
# HISTORY AND SUMMARIES
# =============================================================================

def get_status_history(
    supabase: Client,
    document_id: str,
    status_type: Optional[str] = None
) -> List[StatusHistoryEntry]:
    """
    Status history of a document, most recent first.

    Returns an empty list if the history cannot be read.
    """
    try:
        query = supabase.table(HISTORY_TABLE).select("*").eq("document_id", document_id)
        if status_type:
            query = query.eq("status_type", status_type)
        response = query.order("changed_at", desc=True).execute()
        return [StatusHistoryEntry.from_dict(row) for row in response.data or []]
    except Exception as e:
        logger.error(f"Error fetching status history for {document_id}: {e}")
        return []


def auto_expire_quotations(
    supabase: Client,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> AutoExpireResult:
    """
    Mark generated/under_review quotations past their validity as expired.

    Each expired quotation gets a history entry attributed to actor_id
    (a system user, or None for scheduled sweeps).
    """
    try:
        response = supabase.table(DOCUMENTS_TABLE) \
            .select("id, folio, issue_date, validity_days, quotation_status") \
            .eq("type", DocumentType.QUOTATION.value) \
            .in_("quotation_status", [QuotationStatus.GENERATED.value, QuotationStatus.UNDER_REVIEW.value]) \
            .execute()
    except Exception as e:
        logger.error(f"Failed to fetch quotations for expiry check: {e}")
        return AutoExpireResult(False, 0, "Failed to fetch quotations for expiry check")

    expired = []
    for row in response.data or []:
        if not row.get("issue_date") or row.get("validity_days") is None:
            continue
        try:
            if is_quotation_expired(row["issue_date"], row["validity_days"], now):
                expired.append(row)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping quotation {row.get('folio')} with invalid issue date: {e}")

    if not expired:
        return AutoExpireResult(True, 0, "No quotations to expire")

    # Status guard: rows moved out of an open status since the select stay as they are
    try:
        updated = supabase.table(DOCUMENTS_TABLE) \
            .update({"quotation_status": QuotationStatus.EXPIRED.value, "updated_at": utc_now_iso()}) \
            .in_("id", [row["id"] for row in expired]) \
            .in_("quotation_status", [QuotationStatus.GENERATED.value, QuotationStatus.UNDER_REVIEW.value]) \
            .execute()
    except Exception as e:
        logger.error(f"Failed to update expired quotations: {e}")
        return AutoExpireResult(False, 0, "Failed to update expired quotations")

    updated_ids = {row["id"] for row in updated.data or []}
    expired = [row for row in expired if row["id"] in updated_ids]
    if not expired:
        return AutoExpireResult(True, 0, "No quotations to expire")

    for row in expired:
        try:
            record_status_change(
                supabase, row["id"], DocumentType.QUOTATION.value,
                row.get("quotation_status"), QuotationStatus.EXPIRED.value, actor_id,
                reason="Validity period ended",
            )
        except Exception as e:
            logger.warning(f"Failed to record expiry history for {row.get('folio')}: {e}")

    logger.info(f"{len(expired)} quotations marked as expired")
    return AutoExpireResult(
        success=True,
        expired_count=len(expired),
        message=f"{len(expired)} quotations marked as expired",
        expired_folios=[row.get("folio") for row in expired],
    )


def _summarize(supabase: Client, document_type: str, column: str, statuses) -> Dict[str, int]:
    summary = {status.value: 0 for status in statuses}
    try:
        rows = get_status_rows(supabase, document_type, column)
    except Exception as e:
        logger.error(f"Error fetching {document_type} status summary: {e}")
        return summary

    for row in rows:
        status = row.get(column)
        if status in summary:
            summary[status] += 1
    return summary


def get_status_summary(supabase: Client) -> Dict[str, int]:
    """Count of quotations per status (every status present, zero if none)."""
    return _summarize(supabase, DocumentType.QUOTATION.value, "quotation_status", QuotationStatus)


def get_order_status_summary(supabase: Client) -> Dict[str, int]:
    """Count of orders per status."""
    return _summarize(supabase, DocumentType.ORDER.value, "order_status", OrderStatus)
