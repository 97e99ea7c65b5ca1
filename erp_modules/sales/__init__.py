"""Sales module: customer invoices with FIFO cost of goods sold."""

from erp_modules.sales.models import Invoice, InvoiceLine, SaleLineRequest, SaleResult
from erp_modules.sales.service import SalesService

__all__ = ["Invoice", "InvoiceLine", "SaleLineRequest", "SaleResult", "SalesService"]
