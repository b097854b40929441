"""
Document Service - Quotation and order rows

This module maps the documents, document_items and status_history tables to
dataclasses and wraps the reads/writes the workflow needs:
- Load documents, their items, and the users/companies lookups
- Find existing orders for a quotation and folio collisions
- Insert order rows and copied items, delete (rollback) an order
- Append status history entries
- Order list and detail queries

Every function receives the Supabase client as first argument. Errors from
the client propagate to the caller; the orchestrators decide how a failed
read or write is reported.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from .workflow_service import DocumentType, OrderStatus


DOCUMENTS_TABLE = "documents"
ITEMS_TABLE = "document_items"
HISTORY_TABLE = "status_history"


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _money(value: Optional[Decimal]) -> Optional[float]:
    # PostgREST takes numeric columns as JSON numbers
    return float(value) if value is not None else None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class DocumentItem:
    """One line of a quotation or order."""
    id: Optional[str]
    document_id: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    product_id: Optional[str] = None
    unit: Optional[str] = None
    order_index: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'DocumentItem':
        return cls(
            id=data.get('id'),
            document_id=data.get('document_id'),
            description=data.get('description') or data.get('product_name') or '',
            quantity=_decimal(data.get('quantity')),
            unit_price=_decimal(data.get('unit_price')),
            tax_rate=_decimal(data.get('tax_rate')),
            subtotal=_decimal(data.get('subtotal')),
            tax_amount=_decimal(data.get('tax_amount')),
            total=_decimal(data.get('total')),
            product_id=data.get('product_id'),
            unit=data.get('unit'),
            order_index=data.get('order_index') or 0,
        )

    def to_dict(self) -> dict:
        """Row for insert (without id, the store assigns it)."""
        return {
            'document_id': self.document_id,
            'product_id': self.product_id,
            'description': self.description,
            'unit': self.unit,
            'quantity': float(self.quantity),
            'unit_price': _money(self.unit_price),
            'tax_rate': float(self.tax_rate),
            'subtotal': _money(self.subtotal),
            'tax_amount': _money(self.tax_amount),
            'total': _money(self.total),
            'order_index': self.order_index,
        }

    def copy_to(self, document_id: str) -> 'DocumentItem':
        """Same line linked to another document."""
        return DocumentItem(
            id=None,
            document_id=document_id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total=self.total,
            product_id=self.product_id,
            unit=self.unit,
            order_index=self.order_index,
        )


@dataclass
class Document:
    """
    A quotation or an order (discriminated by type).

    Quotations carry quotation_status and validity_days; orders carry
    order_status and the quotation_id they were converted from.
    """
    id: str
    type: str
    folio: str
    company_id: Optional[str]
    issue_date: Optional[str]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    quotation_status: Optional[str] = None
    order_status: Optional[str] = None
    validity_days: Optional[int] = None
    quotation_id: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    items: List[DocumentItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'Document':
        """Create a Document from a documents row (embedded items optional)."""
        return cls(
            id=data['id'],
            type=data.get('type', DocumentType.QUOTATION.value),
            folio=data.get('folio') or '',
            company_id=data.get('company_id'),
            issue_date=data.get('issue_date'),
            subtotal=_decimal(data.get('subtotal')),
            tax_amount=_decimal(data.get('tax_amount')),
            total=_decimal(data.get('total')),
            quotation_status=data.get('quotation_status'),
            order_status=data.get('order_status'),
            validity_days=data.get('validity_days'),
            quotation_id=data.get('quotation_id'),
            contact_name=data.get('contact_name'),
            contact_email=data.get('contact_email'),
            contact_phone=data.get('contact_phone'),
            notes=data.get('notes'),
            created_by=data.get('created_by'),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
            items=[DocumentItem.from_dict(i) for i in data.get('document_items') or []],
        )

    @property
    def status(self) -> Optional[str]:
        """Status in the column that applies to this document type."""
        if self.type == DocumentType.ORDER.value:
            return self.order_status
        return self.quotation_status

    @property
    def status_column(self) -> str:
        if self.type == DocumentType.ORDER.value:
            return 'order_status'
        return 'quotation_status'


@dataclass
class StatusHistoryEntry:
    """Append-only audit record of one status change."""
    document_id: str
    status_type: str
    old_status: Optional[str]
    new_status: str
    changed_by: Optional[str]
    changed_at: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'StatusHistoryEntry':
        return cls(
            id=data.get('id'),
            document_id=data['document_id'],
            status_type=data.get('status_type'),
            old_status=data.get('old_status'),
            new_status=data['new_status'],
            changed_by=data.get('changed_by'),
            changed_at=data.get('changed_at'),
            reason=data.get('reason'),
            notes=data.get('notes'),
        )

    def to_dict(self) -> dict:
        return {
            'document_id': self.document_id,
            'status_type': self.status_type,
            'old_status': self.old_status,
            'new_status': self.new_status,
            'changed_by': self.changed_by,
            'changed_at': self.changed_at,
            'reason': self.reason,
            'notes': self.notes,
        }


# ============================================================================
# READ Operations
# ============================================================================

def get_document(
    supabase: Client,
    document_id: str,
    document_type: Optional[str] = None
) -> Optional[Document]:
    """
    Get a document by ID, optionally restricted to one type.

    Returns:
        Document without items, or None if not found
    """
    query = supabase.table(DOCUMENTS_TABLE).select("*").eq("id", document_id)
    if document_type:
        query = query.eq("type", document_type)

    result = query.limit(1).execute()
    if not result.data:
        return None
    return Document.from_dict(result.data[0])


def get_document_items(supabase: Client, document_id: str) -> List[DocumentItem]:
    """Get the items of a document ordered by position."""
    result = supabase.table(ITEMS_TABLE) \
        .select("*") \
        .eq("document_id", document_id) \
        .order("order_index") \
        .execute()
    return [DocumentItem.from_dict(row) for row in result.data or []]


def get_document_with_items(
    supabase: Client,
    document_id: str,
    document_type: Optional[str] = None
) -> Optional[Document]:
    document = get_document(supabase, document_id, document_type)
    if document is None:
        return None
    document.items = get_document_items(supabase, document_id)
    return document


def count_document_items(supabase: Client, document_id: str) -> int:
    result = supabase.table(ITEMS_TABLE) \
        .select("id") \
        .eq("document_id", document_id) \
        .limit(1) \
        .execute()
    return len(result.data or [])


def find_order_for_quotation(supabase: Client, quotation_id: str) -> Optional[Dict[str, Any]]:
    """Existing order row ({id, folio}) referencing the quotation, if any."""
    result = supabase.table(DOCUMENTS_TABLE) \
        .select("id, folio") \
        .eq("quotation_id", quotation_id) \
        .eq("type", DocumentType.ORDER.value) \
        .limit(1) \
        .execute()
    return result.data[0] if result.data else None


def find_document_by_folio(supabase: Client, folio: str) -> Optional[Dict[str, Any]]:
    """Any document ({id, type, folio}) already using the folio."""
    result = supabase.table(DOCUMENTS_TABLE) \
        .select("id, type, folio") \
        .eq("folio", folio) \
        .limit(1) \
        .execute()
    return result.data[0] if result.data else None


def get_user_role(supabase: Client, user_id: str) -> Optional[str]:
    """Role of a user ('admin' or 'client'), None if unknown."""
    result = supabase.table("users") \
        .select("role") \
        .eq("id", user_id) \
        .limit(1) \
        .execute()
    return result.data[0].get("role") if result.data else None


def get_company_status(supabase: Client, company_id: str) -> Optional[str]:
    result = supabase.table("companies") \
        .select("status") \
        .eq("id", company_id) \
        .limit(1) \
        .execute()
    return result.data[0].get("status") if result.data else None


def get_order_by_id(supabase: Client, order_id: str) -> Optional[Document]:
    """Order with its items, or None."""
    return get_document_with_items(supabase, order_id, DocumentType.ORDER.value)


def get_orders_list(
    supabase: Client,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10
) -> Tuple[List[Document], int]:
    """
    Paginated order list, newest issue date first.

    Args:
        status: Filter by order_status
        search: Folio substring (SQL wildcards are stripped)
        page: 1-based page number (values below 1 read as 1)
        limit: Page size (at least 1)

    Returns:
        (orders, total_count)
    """
    query = supabase.table(DOCUMENTS_TABLE) \
        .select("*", count="exact") \
        .eq("type", DocumentType.ORDER.value)

    if status:
        query = query.eq("order_status", status)

    if search:
        sanitized = search.translate(str.maketrans('', '', "%_\\'\""))
        if sanitized:
            query = query.ilike("folio", f"%{sanitized}%")

    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    result = query.order("issue_date", desc=True).range(start, start + limit - 1).execute()

    orders = [Document.from_dict(row) for row in result.data or []]
    return orders, result.count or 0


def get_status_rows(supabase: Client, document_type: str, status_column: str) -> List[Dict[str, Any]]:
    result = supabase.table(DOCUMENTS_TABLE) \
        .select(status_column) \
        .eq("type", document_type) \
        .execute()
    return result.data or []


# ============================================================================
# WRITE Operations
# ============================================================================

def set_document_status(
    supabase: Client,
    document: Document,
    new_status: str
) -> bool:
    """Write the status column of a document. True if a row was updated."""
    result = supabase.table(DOCUMENTS_TABLE) \
        .update({document.status_column: new_status, "updated_at": utc_now_iso()}) \
        .eq("id", document.id) \
        .execute()
    return bool(result.data)


def insert_status_history(supabase: Client, entry: StatusHistoryEntry) -> StatusHistoryEntry:
    """Append a history entry and return it as stored."""
    result = supabase.table(HISTORY_TABLE).insert(entry.to_dict()).execute()
    if result.data:
        return StatusHistoryEntry.from_dict(result.data[0])
    return entry


def create_order_from_quotation(
    supabase: Client,
    quotation: Document,
    folio: str,
    created_by: str
) -> Optional[Document]:
    """
    Insert the order row for a quotation.

    Copies company, contact, totals and notes. The order starts pending.
    """
    order_data = {
        'type': DocumentType.ORDER.value,
        'folio': folio,
        'order_status': OrderStatus.PENDING.value,
        'quotation_id': quotation.id,
        'company_id': quotation.company_id,
        'issue_date': utc_now_iso(),
        'contact_name': quotation.contact_name,
        'contact_email': quotation.contact_email,
        'contact_phone': quotation.contact_phone,
        'subtotal': _money(quotation.subtotal),
        'tax_amount': _money(quotation.tax_amount),
        'total': _money(quotation.total),
        'notes': quotation.notes,
        'created_by': created_by,
    }

    result = supabase.table(DOCUMENTS_TABLE).insert(order_data).execute()
    if not result.data:
        return None
    return Document.from_dict(result.data[0])


def insert_document_items(supabase: Client, items: List[DocumentItem]) -> int:
    """Insert items in one request. Returns number of rows stored."""
    if not items:
        return 0
    result = supabase.table(ITEMS_TABLE).insert([item.to_dict() for item in items]).execute()
    return len(result.data or [])


def delete_document(supabase: Client, document_id: str) -> bool:
    """Delete a document with its items (items first)."""
    supabase.table(ITEMS_TABLE).delete().eq("document_id", document_id).execute()
    result = supabase.table(DOCUMENTS_TABLE).delete().eq("id", document_id).execute()
    return bool(result.data)
