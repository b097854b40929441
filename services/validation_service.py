"""
Validation Service - Business rule checks for status changes and conversion

Complements database constraints with application-level validation:
- Order and quotation business rules (role permissions, shipping order)
- Quotation -> order conversion eligibility
- Folio format and uniqueness
- Document data integrity (required fields, item consistency, totals)
- Pre-conversion validation composing all of the above

Errors block the operation; warnings never do and are only logged by the
caller. Results compose with `+` so independent checks are merged, never
short-circuited.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from supabase import Client

from calculation_engine import calculate_document_totals
from calculation_models import ROUNDING_TOLERANCE
from .document_service import (
    count_document_items,
    find_document_by_folio,
    find_order_for_quotation,
    get_company_status,
    get_document,
    get_document_with_items,
    get_user_role,
)
from .workflow_service import (
    DocumentType,
    OrderStatus,
    QuotationStatus,
    is_quotation_expired,
)

logger = logging.getLogger(__name__)


ADMIN_ROLE = "admin"
CLIENT_ROLE = "client"

QUOTATION_NOT_FOUND = "Quotation not found or access denied"
QUOTATION_WITHOUT_ITEMS = "Quotation must have at least one item to convert to order"
DOCUMENT_WITHOUT_ITEMS = "Document must have at least one item"

FOLIO_PATTERNS = {
    DocumentType.QUOTATION: re.compile(r"^COT-\d{8}$"),
    DocumentType.ORDER: re.compile(r"^ORD-\d{8}$"),
}

FOLIO_FORMAT_ERRORS = {
    DocumentType.QUOTATION: "Quotation folio must follow format COT-XXXXXXXX",
    DocumentType.ORDER: "Order folio must follow format ORD-XXXXXXXX",
}

# Quotation moves a client user may make from the portal
CLIENT_QUOTATION_TRANSITIONS = {
    (QuotationStatus.GENERATED.value, QuotationStatus.UNDER_REVIEW.value),
    (QuotationStatus.UNDER_REVIEW.value, QuotationStatus.APPROVED.value),
    (QuotationStatus.UNDER_REVIEW.value, QuotationStatus.REJECTED.value),
}


@dataclass
class ValidationResult:
    """
    Errors and warnings collected by a validation.

    Attributes:
        errors: Blocking problems
        warnings: Non-fatal concerns, surfaced for logging only
    """
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def __add__(self, other: 'ValidationResult') -> 'ValidationResult':
        return ValidationResult(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
        )

    @classmethod
    def merge(cls, *results: 'ValidationResult') -> 'ValidationResult':
        merged = cls()
        for result in results:
            merged = merged + result
        return merged


def confirm_actor(supabase: Client, actor_id: str, access_token: Optional[str] = None) -> bool:
    """
    Confirm with the auth collaborator that actor_id is the signed-in user.

    Uses the session of the (request-scoped) client, or access_token when
    given. Any auth failure counts as not confirmed.
    """
    if not actor_id:
        return False
    try:
        response = supabase.auth.get_user(access_token)
    except Exception as e:
        logger.warning(f"Auth check failed for actor {actor_id}: {e}")
        return False

    user = getattr(response, "user", None) if response else None
    return bool(user) and str(user.id) == str(actor_id)


# =============================================================================
# STATUS CHANGE BUSINESS RULES
# =============================================================================

def validate_order_business_rules(
    current_status: str,
    new_status: str,
    user_role: Optional[str] = None
) -> ValidationResult:
    """
    Business rules for an order status change.

    Only admins may change order status. Skipping 'ready' before shipping or
    'shipped' before delivery is a warning: the state machine decides
    legality.
    """
    result = ValidationResult()

    if user_role != ADMIN_ROLE:
        result.errors.append("Only admin users can change order status")

    if current_status == OrderStatus.DELIVERED.value and new_status != current_status:
        result.errors.append("Cannot change status of delivered orders")

    if current_status == OrderStatus.CANCELLED.value and new_status != current_status:
        result.errors.append("Cannot change status of cancelled orders")

    if new_status == OrderStatus.SHIPPED.value and current_status != OrderStatus.READY.value:
        result.warnings.append("Orders should typically be marked as ready before shipping")

    if new_status == OrderStatus.DELIVERED.value and current_status != OrderStatus.SHIPPED.value:
        result.warnings.append("Orders should typically be shipped before marking as delivered")

    return result


def validate_quotation_business_rules(
    current_status: str,
    new_status: str,
    user_role: Optional[str] = None,
    issue_date: Optional[str] = None,
    validity_days: Optional[int] = None
) -> ValidationResult:
    """
    Business rules for a quotation status change.

    Clients may only send a generated quotation to review and approve or
    reject it. Only admins convert. A quotation can be marked expired only
    once its validity window has ended.
    """
    result = ValidationResult()

    if user_role == ADMIN_ROLE:
        pass
    elif user_role == CLIENT_ROLE:
        if (current_status, new_status) not in CLIENT_QUOTATION_TRANSITIONS:
            result.errors.append("Clients can only review, approve or reject quotations")
    else:
        result.errors.append("User role could not be verified")

    if new_status == QuotationStatus.CONVERTED.value and user_role != ADMIN_ROLE:
        result.errors.append("Only admin users can convert quotations")

    if new_status == QuotationStatus.EXPIRED.value:
        if not issue_date or validity_days is None:
            result.warnings.append("Unable to verify quotation validity period")
        elif not is_quotation_expired(issue_date, validity_days):
            result.errors.append("Cannot mark quotation as expired - validity period has not ended")

    return result


# =============================================================================
# CONVERSION VALIDATIONS
# =============================================================================

def validate_quotation_conversion(
    supabase: Client,
    quotation_id: str,
    actor_id: str,
    access_token: Optional[str] = None
) -> ValidationResult:
    """
    Check a quotation can be converted to an order.

    Collects every problem found: status, existing order, items, actor
    authentication and role, total. An inactive company is only a warning.
    """
    result = ValidationResult()

    quotation = get_document(supabase, quotation_id, DocumentType.QUOTATION.value)
    if quotation is None:
        result.errors.append(QUOTATION_NOT_FOUND)
        return result

    if quotation.quotation_status == QuotationStatus.CONVERTED.value:
        result.errors.append("Quotation has already been converted to an order")
    elif quotation.quotation_status != QuotationStatus.APPROVED.value:
        result.errors.append(
            f"Quotation {quotation.folio} is not approved "
            f"(current status: {quotation.quotation_status})"
        )

    # Early exit only; the unique constraint on quotation_id is authoritative
    try:
        existing_order = find_order_for_quotation(supabase, quotation_id)
    except Exception as e:
        logger.error(f"Error checking existing order for quotation {quotation_id}: {e}")
        result.errors.append("Error checking for existing order")
    else:
        if existing_order:
            result.errors.append(f"Order {existing_order.get('folio')} already exists for this quotation")

    try:
        item_count = count_document_items(supabase, quotation_id)
    except Exception as e:
        logger.warning(f"Unable to verify items of quotation {quotation_id}: {e}")
        result.warnings.append("Unable to verify quotation items")
    else:
        if item_count == 0:
            result.errors.append(QUOTATION_WITHOUT_ITEMS)

    if not confirm_actor(supabase, actor_id, access_token):
        result.errors.append("Invalid user authentication")

    try:
        role = get_user_role(supabase, actor_id)
    except Exception as e:
        logger.warning(f"Unable to load role of user {actor_id}: {e}")
        role = None
    if role is None:
        result.warnings.append("Unable to verify user permissions")
        result.errors.append("Only admin users can convert quotations to orders")
    elif role != ADMIN_ROLE:
        result.errors.append("Only admin users can convert quotations to orders")

    if quotation.total <= 0:
        result.errors.append("Quotation total must be greater than zero")

    if quotation.company_id:
        try:
            company_status = get_company_status(supabase, quotation.company_id)
        except Exception as e:
            logger.warning(f"Unable to load company {quotation.company_id}: {e}")
            company_status = None
        if company_status is None:
            result.warnings.append("Unable to verify company status")
        elif company_status != "active":
            result.warnings.append("Company is not active - consider verifying before processing order")

    return result


def validate_folio_format(folio: str, document_type: str) -> ValidationResult:
    result = ValidationResult()
    doc_type = DocumentType(document_type)
    if not folio or not FOLIO_PATTERNS[doc_type].match(folio):
        result.errors.append(FOLIO_FORMAT_ERRORS[doc_type])
    return result


def validate_folio_uniqueness(
    supabase: Client,
    folio: str,
    document_type: str
) -> ValidationResult:
    """
    Check the folio is unused by any document (of either type) and matches
    the format of its type.
    """
    result = ValidationResult()

    try:
        existing = find_document_by_folio(supabase, folio)
    except Exception as e:
        logger.error(f"Error checking folio uniqueness for {folio}: {e}")
        result.errors.append("Error checking folio uniqueness")
    else:
        if existing:
            result.errors.append(f"Folio {folio} already exists for {existing.get('type')}")

    return result + validate_folio_format(folio, document_type)


def validate_document_data_integrity(supabase: Client, document_id: str) -> ValidationResult:
    """
    Check a document is complete and internally consistent.

    Item sums that disagree with the stored subtotal/tax beyond the rounding
    tolerance are warnings, not errors.
    """
    result = ValidationResult()

    document = get_document_with_items(supabase, document_id)
    if document is None:
        result.errors.append("Document not found")
        return result

    if not document.folio.strip():
        result.errors.append("Document folio is required")

    if not document.company_id:
        result.errors.append("Company ID is required")

    if not document.issue_date:
        result.errors.append("Issue date is required")

    if document.total <= 0:
        result.errors.append("Document total must be greater than zero")

    if document.subtotal <= 0:
        result.errors.append("Document subtotal must be greater than zero")

    if not document.items:
        result.errors.append(DOCUMENT_WITHOUT_ITEMS)
        return result

    for item in document.items:
        if item.quantity <= 0:
            result.errors.append(f'Item "{item.description}" has invalid quantity')
        if item.unit_price <= 0:
            result.errors.append(f'Item "{item.description}" has invalid unit price')
        if item.total <= 0:
            result.errors.append(f'Item "{item.description}" has invalid total')

    calculated = calculate_document_totals(
        [{"subtotal": i.subtotal, "tax_amount": i.tax_amount} for i in document.items]
    )

    if abs(calculated.subtotal - document.subtotal) > ROUNDING_TOLERANCE:
        result.warnings.append("Calculated subtotal does not match document subtotal")

    if abs(calculated.tax_amount - document.tax_amount) > ROUNDING_TOLERANCE:
        result.warnings.append("Calculated taxes do not match document taxes")

    return result


def validate_pre_conversion(
    supabase: Client,
    quotation_id: str,
    actor_id: str,
    proposed_folio: Optional[str] = None,
    access_token: Optional[str] = None
) -> ValidationResult:
    """
    Run every pre-conversion check and merge the results.

    Args:
        proposed_folio: Order folio to check as well, if already known
    """
    eligibility = validate_quotation_conversion(supabase, quotation_id, actor_id, access_token)
    results = [eligibility]

    if proposed_folio is not None:
        results.append(validate_folio_uniqueness(supabase, proposed_folio, DocumentType.ORDER.value))

    if QUOTATION_NOT_FOUND not in eligibility.errors:
        integrity = validate_document_data_integrity(supabase, quotation_id)
        if QUOTATION_WITHOUT_ITEMS in eligibility.errors:
            integrity.errors = [e for e in integrity.errors if e != DOCUMENT_WITHOUT_ITEMS]
        results.append(integrity)

    return ValidationResult.merge(*results)
