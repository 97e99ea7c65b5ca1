"""
Stateful services over the ERP kernel.

    layer_store: InventoryLayerStore (FIFO cost layers, valuation).
    sync_auditor: SyncAuditor (item cache drift detection and resync).
"""
