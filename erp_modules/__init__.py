"""
ERP Modules.

Business workflows over the kernel, engines and services.  Each public
service method owns its transaction boundary: it commits on success and
rolls back (then re-raises) on failure.

Modules:
- Inventory: item master, receipts, opening balances
- Production: multi-stage production runs with WIP cost rollup
- Sales: customer invoices with COGS
- Contracts: service contracts and the recurring refill scheduler
"""
