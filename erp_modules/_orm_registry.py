"""
Module ORM Registry (``erp_modules._orm_registry``).

Ensures every SQLAlchemy model is imported so that ``Base.metadata`` holds
the complete schema before ``create_tables()`` runs.  Kernel tables are
registered first because module tables reference them (items, accounts,
journal entries).
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``erp_modules.*.orm`` module (idempotent)."""
    import erp_kernel.models  # noqa: F401
    import erp_modules.contracts.orm  # noqa: F401
    import erp_modules.sales.orm  # noqa: F401
