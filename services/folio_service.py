"""
Folio Service - Human-readable document identifiers

Format: PREFIX-XXXXXXXX where XXXXXXXX is 8 decimal digits
(COT-00000042 for quotations, ORD-00000042 for orders).

Order folios come from the get_next_order_folio database function when it
is available. Without it, a candidate is built from the clock plus a random
suffix and checked against existing folios, retrying on collision. Both
paths emit the same format the folio validator expects.
"""

import logging
import random
import time
from typing import Optional

from supabase import Client

from .document_service import find_document_by_folio
from .workflow_service import DocumentType

logger = logging.getLogger(__name__)


FOLIO_PREFIXES = {
    DocumentType.QUOTATION: "COT",
    DocumentType.ORDER: "ORD",
}

FOLIO_DIGITS = 8
MAX_FOLIO_RETRIES = 5


def format_folio(document_type: str, number: int) -> str:
    """
    Build a folio from a sequence number.

    Example:
        >>> format_folio("order", 42)
        'ORD-00000042'
    """
    prefix = FOLIO_PREFIXES[DocumentType(document_type)]
    return f"{prefix}-{number % 10 ** FOLIO_DIGITS:0{FOLIO_DIGITS}d}"


def generate_folio(document_type: str) -> str:
    """
    Candidate folio from the clock: last 6 digits of the millisecond
    timestamp followed by 2 random digits.
    """
    timestamp = int(time.time() * 1000) % 10 ** 6
    suffix = random.randint(0, 99)
    return format_folio(document_type, timestamp * 100 + suffix)


def _folio_from_rpc(supabase: Client) -> Optional[str]:
    try:
        response = supabase.rpc("get_next_order_folio", {}).execute()
    except Exception as e:
        logger.warning(f"get_next_order_folio not available, using fallback: {e}")
        return None

    data = response.data
    if isinstance(data, str) and data:
        return data
    if isinstance(data, int) and not isinstance(data, bool):
        return format_folio(DocumentType.ORDER.value, data)
    return None


def generate_folio_with_retry(
    supabase: Client,
    document_type: str,
    max_retries: int = MAX_FOLIO_RETRIES
) -> str:
    """
    Generate a folio not used by any document.

    After max_retries collisions the last candidate is returned anyway; the
    uniqueness validation that follows rejects it.
    """
    folio = generate_folio(document_type)
    for attempt in range(1, max_retries + 1):
        try:
            if find_document_by_folio(supabase, folio) is None:
                return folio
        except Exception as e:
            logger.error(f"Folio generation attempt {attempt} failed: {e}")

        if attempt < max_retries:
            time.sleep(attempt * 0.01)
            folio = generate_folio(document_type)

    return folio


def generate_order_folio(supabase: Client) -> str:
    """Next order folio (database sequence first, clock-based fallback)."""
    folio = _folio_from_rpc(supabase)
    if folio:
        return folio
    return generate_folio_with_retry(supabase, DocumentType.ORDER.value)
