"""
Quotation & Order Services

Status workflow for quotations and orders.
Validation of business rules and quotation -> order conversion.
Persistence wrappers over the documents tables.
"""

from .database import get_supabase, get_anon_client, get_user_client
from .workflow_service import (
    # Enums
    DocumentType,
    QuotationStatus,
    OrderStatus,
    # Transition tables
    QUOTATION_TRANSITIONS,
    ORDER_TRANSITIONS,
    StatusTransitionCheck,
    # State machine checks
    validate_status_transition,
    validate_order_status_transition,
    validate_transition_for_type,
    get_valid_next_statuses,
    get_valid_next_order_statuses,
    is_final_status,
    can_cancel_order,
    can_convert_quotation,
    is_quotation_expired,
    # Display helpers
    get_status_label,
    get_status_color,
    get_status_display,
)
from .document_service import (
    Document,
    DocumentItem,
    StatusHistoryEntry,
    get_document,
    get_document_items,
    get_document_with_items,
    get_order_by_id,
    get_orders_list,
)
from .validation_service import (
    ValidationResult,
    validate_order_business_rules,
    validate_quotation_business_rules,
    validate_quotation_conversion,
    validate_folio_format,
    validate_folio_uniqueness,
    validate_document_data_integrity,
    validate_pre_conversion,
)
from .folio_service import format_folio, generate_folio, generate_order_folio
from .status_service import (
    StatusUpdateError,
    StatusUpdateResult,
    AutoExpireResult,
    update_document_status,
    update_quotation_status,
    update_order_status,
    get_status_history,
    auto_expire_quotations,
    get_status_summary,
    get_order_status_summary,
)
from .conversion_service import (
    ConversionError,
    ConversionResult,
    convert_quotation_to_order,
    get_quotation_for_conversion,
)

__all__ = [
    # Database
    'get_supabase',
    'get_anon_client',
    'get_user_client',
    # Workflow
    'DocumentType',
    'QuotationStatus',
    'OrderStatus',
    'QUOTATION_TRANSITIONS',
    'ORDER_TRANSITIONS',
    'StatusTransitionCheck',
    'validate_status_transition',
    'validate_order_status_transition',
    'validate_transition_for_type',
    'get_valid_next_statuses',
    'get_valid_next_order_statuses',
    'is_final_status',
    'can_cancel_order',
    'can_convert_quotation',
    'is_quotation_expired',
    'get_status_label',
    'get_status_color',
    'get_status_display',
    # Documents
    'Document',
    'DocumentItem',
    'StatusHistoryEntry',
    'get_document',
    'get_document_items',
    'get_document_with_items',
    'get_order_by_id',
    'get_orders_list',
    # Validation
    'ValidationResult',
    'validate_order_business_rules',
    'validate_quotation_business_rules',
    'validate_quotation_conversion',
    'validate_folio_format',
    'validate_folio_uniqueness',
    'validate_document_data_integrity',
    'validate_pre_conversion',
    # Folios
    'format_folio',
    'generate_folio',
    'generate_order_folio',
    # Status updates
    'StatusUpdateError',
    'StatusUpdateResult',
    'AutoExpireResult',
    'update_document_status',
    'update_quotation_status',
    'update_order_status',
    'get_status_history',
    'auto_expire_quotations',
    'get_status_summary',
    'get_order_status_summary',
    # Conversion
    'ConversionError',
    'ConversionResult',
    'convert_quotation_to_order',
    'get_quotation_for_conversion',
]
