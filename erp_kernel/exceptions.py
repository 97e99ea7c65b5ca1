"""
Typed Exception Hierarchy for the ERP Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the inventory and ledger core must react to failures precisely:
a sale screen shows "only 40 units left" for a stock shortfall, while an
unbalanced journal entry is a programming defect that must abort the whole
unit of work. Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        store.deplete(item_id, Decimal("150"), actor_id=actor)
    except InsufficientStockError as e:
        api_response(code=e.code, requested=e.requested, available=e.available)

Non-fatal conditions (yield outside tolerance, cache drift) are NOT
exceptions. They are returned as values (``YieldWarning``, ``SyncDrift``)
so that they never abort a unit of work.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ErpKernelError (base)
    |
    +-- InventoryError
    |   +-- ItemNotFoundError
    |   +-- InsufficientStockError
    |   +-- InvalidQuantityError
    |
    +-- CalculationError
    |   +-- InvalidDiscountError
    |   +-- InvalidLineInputError
    |
    +-- ProductionError
    |   +-- UnknownStageTypeError
    |   +-- InvalidStageError
    |
    +-- PostingError
    |   +-- EmptyEntryError
    |   +-- InvalidJournalLineError
    |   +-- UnbalancedEntryError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |
    +-- PeriodError
    |   +-- PeriodLockedError
    |   +-- PeriodAlreadyClosedError
    |   +-- TrialBalanceMismatchError
    |
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- EntryAlreadyReversedError
    |
    +-- ContractError
    |   +-- ContractNotFoundError
    |   +-- ContractStateError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|---------------------------------------
Inventory    | ITEM_NOT_FOUND           | Item id does not exist
             | INSUFFICIENT_STOCK       | Depletion exceeds open layer quantity
             | INVALID_QUANTITY         | Non-positive receive/deplete quantity
-------------|--------------------------|---------------------------------------
Calculation  | INVALID_DISCOUNT         | Discount exceeds gross (or negative)
             | INVALID_LINE_INPUT       | Negative qty/price, rate out of range
-------------|--------------------------|---------------------------------------
Production   | UNKNOWN_STAGE_TYPE       | Stage type not configured
             | INVALID_STAGE            | Malformed stage or production run
-------------|--------------------------|---------------------------------------
Posting      | EMPTY_ENTRY              | Fewer than two journal lines
             | INVALID_JOURNAL_LINE     | Line without exactly one positive side
             | UNBALANCED_ENTRY         | Debits != Credits
-------------|--------------------------|---------------------------------------
Account      | ACCOUNT_NOT_FOUND        | Account code does not exist
             | ACCOUNT_INACTIVE         | Account is deactivated
-------------|--------------------------|---------------------------------------
Period       | PERIOD_LOCKED            | Entry date on/before the lock date
             | PERIOD_ALREADY_CLOSED    | Lock date would not move forward
             | TRIAL_BALANCE_MISMATCH   | Ledger does not balance at close
-------------|--------------------------|---------------------------------------
Reversal     | ENTRY_NOT_FOUND          | Journal entry id does not exist
             | ENTRY_ALREADY_REVERSED   | Entry was already reversed
-------------|--------------------------|---------------------------------------
Contract     | CONTRACT_NOT_FOUND       | Service contract id does not exist
             | CONTRACT_STATE           | Transition not allowed from status
-------------|--------------------------|---------------------------------------
Immutability | IMMUTABILITY_VIOLATION   | Update/delete of append-only record

===============================================================================
"""


class ErpKernelError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ERP_KERNEL_ERROR"


# Inventory-related exceptions


class InventoryError(ErpKernelError):
    """Base exception for inventory layer errors."""

    code: str = "INVENTORY_ERROR"


class ItemNotFoundError(InventoryError):
    """Item does not exist."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class InsufficientStockError(InventoryError):
    """Requested depletion exceeds the quantity remaining in open layers."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, requested: str, available: str):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidQuantityError(InventoryError):
    """Quantity is not a positive number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, operation: str):
        self.quantity = quantity
        self.operation = operation
        super().__init__(f"Invalid quantity {quantity} for {operation}: must be positive")


# Calculation-related exceptions


class CalculationError(ErpKernelError):
    """Base exception for line calculation errors."""

    code: str = "CALCULATION_ERROR"


class InvalidDiscountError(CalculationError):
    """Discount amount is negative or exceeds the gross line amount."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, discount: int, gross: int):
        self.discount = discount
        self.gross = gross
        super().__init__(
            f"Invalid discount {discount}: must be between 0 and gross amount {gross}"
        )


class InvalidLineInputError(CalculationError):
    """Line input field is out of its allowed range."""

    code: str = "INVALID_LINE_INPUT"

    def __init__(self, field_name: str, value: str, reason: str):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field_name}={value}: {reason}")


# Production-related exceptions


class ProductionError(ErpKernelError):
    """Base exception for production cost rollup errors."""

    code: str = "PRODUCTION_ERROR"


class UnknownStageTypeError(ProductionError):
    """Stage type has no configured definition."""

    code: str = "UNKNOWN_STAGE_TYPE"

    def __init__(self, stage_type: str):
        self.stage_type = stage_type
        super().__init__(f"No stage definition configured for stage type: {stage_type}")


class InvalidStageError(ProductionError):
    """Stage or production run input is malformed."""

    code: str = "INVALID_STAGE"

    def __init__(self, stage_type: str | None, reason: str):
        self.stage_type = stage_type
        self.reason = reason
        label = stage_type or "production run"
        super().__init__(f"Invalid stage {label}: {reason}")


# Posting-related exceptions


class PostingError(ErpKernelError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class EmptyEntryError(PostingError):
    """Journal entry has fewer than two lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, line_count: int):
        self.line_count = line_count
        super().__init__(
            f"Journal entry requires at least two lines, got {line_count}"
        )


class InvalidJournalLineError(PostingError):
    """Journal line does not carry exactly one positive debit or credit."""

    code: str = "INVALID_JOURNAL_LINE"

    def __init__(self, line_index: int, account_code: str, reason: str):
        self.line_index = line_index
        self.account_code = account_code
        self.reason = reason
        super().__init__(
            f"Invalid journal line {line_index} ({account_code}): {reason}"
        )


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: int, credits: int):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Unbalanced entry: debits={debits}, credits={credits}")


# Account-related exceptions


class AccountError(ErpKernelError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account code does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account not found: {account_code}")


class AccountInactiveError(AccountError):
    """Account is inactive."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


# Period-related exceptions


class PeriodError(ErpKernelError):
    """Base exception for period lock errors."""

    code: str = "PERIOD_ERROR"


class PeriodLockedError(PeriodError):
    """Entry date falls on or before the period lock date."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, entry_date: str, lock_date: str):
        self.entry_date = entry_date
        self.lock_date = lock_date
        super().__init__(
            f"Cannot post on {entry_date}: books are locked through {lock_date}"
        )


class PeriodAlreadyClosedError(PeriodError):
    """Requested close date does not move the lock date forward."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_end: str, lock_date: str):
        self.period_end = period_end
        self.lock_date = lock_date
        super().__init__(
            f"Period ending {period_end} is already closed (locked through {lock_date})"
        )


class TrialBalanceMismatchError(PeriodError):
    """Ledger totals do not balance, so the period cannot be closed."""

    code: str = "TRIAL_BALANCE_MISMATCH"

    def __init__(self, total_debits: int, total_credits: int):
        self.total_debits = total_debits
        self.total_credits = total_credits
        super().__init__(
            f"Trial balance does not balance: debits={total_debits}, credits={total_credits}"
        )


# Reversal-related exceptions


class ReversalError(ErpKernelError):
    """Base exception for reversal-related errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry does not exist."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry not found: {journal_entry_id}")


class EntryAlreadyReversedError(ReversalError):
    """Entry has already been reversed."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Entry {journal_entry_id} has already been reversed")


# Contract-related exceptions


class ContractError(ErpKernelError):
    """Base exception for service contract errors."""

    code: str = "CONTRACT_ERROR"


class ContractNotFoundError(ContractError):
    """Service contract does not exist."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Service contract not found: {contract_id}")


class ContractStateError(ContractError):
    """Contract status does not allow the requested transition."""

    code: str = "CONTRACT_STATE"

    def __init__(self, contract_number: str, status: str, action: str):
        self.contract_number = contract_number
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} contract {contract_number} in status {status}"
        )


# Immutability-related exceptions


class ImmutabilityError(ErpKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Journal entries, journal lines and layer depletions are immutable once
    written. Inventory layers are never deleted and only their remaining
    quantity may decrease.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
