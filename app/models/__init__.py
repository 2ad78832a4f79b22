from .user import User, ROLE_ADMIN, ROLE_USER
from .customer import Customer
from .catalog import MaterialCatalogItem, ServiceCatalogItem
from .estimate import Estimate, EstimateItem
from .change_order import ChangeOrder, ChangeOrderItem
from .invoice import Invoice, InvoiceItem
from .service_call import ServiceCall, ServiceCallItem
from .email_log import EmailLog
from .payment_event import PaymentEventLog

from app.services.lifecycle import DocumentKind

DOCUMENT_MODELS = {
    DocumentKind.ESTIMATE: Estimate,
    DocumentKind.CHANGE_ORDER: ChangeOrder,
    DocumentKind.INVOICE: Invoice,
    DocumentKind.SERVICE_CALL: ServiceCall,
}

ITEM_MODELS = {
    DocumentKind.ESTIMATE: EstimateItem,
    DocumentKind.CHANGE_ORDER: ChangeOrderItem,
    DocumentKind.INVOICE: InvoiceItem,
    DocumentKind.SERVICE_CALL: ServiceCallItem,
}

__all__ = [
    "User", "ROLE_ADMIN", "ROLE_USER", "Customer",
    "MaterialCatalogItem", "ServiceCatalogItem",
    "Estimate", "EstimateItem", "ChangeOrder", "ChangeOrderItem",
    "Invoice", "InvoiceItem", "ServiceCall", "ServiceCallItem",
    "EmailLog", "PaymentEventLog", "DOCUMENT_MODELS", "ITEM_MODELS",
]
