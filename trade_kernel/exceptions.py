"""
Typed Exception Hierarchy for the Trade Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Invoice postings move money and stock.  Callers (invoice controllers) must be
able to tell a user-correctable business rule apart from an internal
invariant violation without parsing message strings.  Therefore:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (amounts, ids) for rendering

Example:
    try:
        machine.confirm(invoice_id, actor_id)
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available,
                "required": e.required, "shortfall": e.shortfall}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TradeKernelError (base)
    |
    +-- ValidationError            caller input malformed, nothing attempted
    |   +-- InvalidLineError
    |   +-- InvoiceNotFoundError
    |   +-- PartyNotFoundError
    |   +-- AccountNotFoundError
    |   +-- InvalidPaymentAmountError
    |   +-- InvalidTaxRateError
    |
    +-- BusinessRuleError          whole transition aborted, never partial
    |   +-- InsufficientStockError
    |   +-- CreditLimitExceededError
    |   +-- SchemeExceedsQuantityError
    |   +-- ClaimAccountRequiredError
    |   +-- ClaimAccountNotFoundError
    |   +-- ClaimAccountInactiveError
    |   +-- ClaimAccountTypeError
    |   +-- BatchExpiredError
    |   +-- InvalidBatchDatesError
    |   +-- DuplicateBatchNumberError
    |   +-- InvalidInvoiceStatusError
    |   +-- CannotCancelPaidInvoiceError
    |   +-- InvoiceLockedError
    |   +-- InvoiceHasActiveReturnsError
    |   +-- ReturnQuantityExceededError
    |   +-- TaxConfigNotFoundError
    |   +-- AccountInactiveError
    |   +-- SchemeClaimAlreadyPostedError
    |   +-- NoSchemeQuantitiesError
    |
    +-- ConsistencyError           internal invariant violated, refuse to commit
    |   +-- UnbalancedPostingError
    |   +-- BatchQuantityInvariantError
    |   +-- ImmutabilityViolationError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. BusinessRuleError -> render to the user with the structured attributes.
2. ConsistencyError  -> page someone; this is a programming error.
3. ConcurrencyError  -> the caller MAY resubmit.  The engine never retries
   on its own: financial postings must not be replayed blindly.
"""

from decimal import Decimal


class TradeKernelError(Exception):
    """
    Base exception for all trade kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TRADE_KERNEL_ERROR"


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(TradeKernelError):
    """Base exception for malformed caller input."""

    code: str = "VALIDATION_ERROR"


class InvalidLineError(ValidationError):
    """An invoice line failed construction-time validation."""

    code: str = "INVALID_LINE"

    def __init__(self, field: str, reason: str, item_id: str | None = None):
        self.field = field
        self.reason = reason
        self.item_id = item_id
        where = f" (item {item_id})" if item_id else ""
        super().__init__(f"Invalid line field '{field}'{where}: {reason}")


class InvoiceNotFoundError(ValidationError):
    """Invoice with given ID does not exist."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class PartyNotFoundError(ValidationError):
    """Customer or supplier does not exist."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party not found: {party_id}")


class AccountNotFoundError(ValidationError):
    """Ledger account does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class InvalidPaymentAmountError(ValidationError):
    """Partial payment amount is outside (0, grand_total)."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, invoice_id: str, amount: Decimal, grand_total: Decimal):
        self.invoice_id = invoice_id
        self.amount = amount
        self.grand_total = grand_total
        super().__init__(
            f"Invalid payment amount {amount} for invoice {invoice_id} "
            f"(grand total {grand_total})"
        )


class InvalidTaxRateError(ValidationError):
    """A tax rate is negative or not one of the permitted values."""

    code: str = "INVALID_TAX_RATE"

    def __init__(self, rate: Decimal, reason: str):
        self.rate = rate
        self.reason = reason
        super().__init__(f"Invalid tax rate {rate}: {reason}")


# =============================================================================
# Business rule violations
# =============================================================================


class BusinessRuleError(TradeKernelError):
    """Base exception for business rule violations."""

    code: str = "BUSINESS_RULE_VIOLATION"


class InsufficientStockError(BusinessRuleError):
    """Eligible batches cannot cover the requested quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        warehouse_id: str,
        available: Decimal,
        required: Decimal,
    ):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.required = required
        self.shortfall = required - available
        super().__init__(
            f"Insufficient stock for item {item_id} in warehouse {warehouse_id}: "
            f"available={available}, required={required}, shortfall={self.shortfall}"
        )


class CreditLimitExceededError(BusinessRuleError):
    """Outstanding balance plus the invoice would exceed the credit limit."""

    code: str = "CREDIT_LIMIT_EXCEEDED"

    def __init__(
        self,
        party_id: str,
        credit_limit: Decimal,
        outstanding: Decimal,
        invoice_total: Decimal,
    ):
        self.party_id = party_id
        self.credit_limit = credit_limit
        self.outstanding = outstanding
        self.invoice_total = invoice_total
        self.excess = outstanding + invoice_total - credit_limit
        super().__init__(
            f"Invoice amount {invoice_total} with outstanding {outstanding} "
            f"exceeds credit limit {credit_limit} for party {party_id}"
        )


class SchemeExceedsQuantityError(BusinessRuleError):
    """Scheme quantities are negative or exceed the line quantity."""

    code: str = "SCHEME_EXCEEDS_QUANTITY"

    def __init__(
        self,
        item_id: str,
        quantity: Decimal,
        scheme1_quantity: Decimal,
        scheme2_quantity: Decimal,
    ):
        self.item_id = item_id
        self.quantity = quantity
        self.scheme1_quantity = scheme1_quantity
        self.scheme2_quantity = scheme2_quantity
        super().__init__(
            f"Scheme quantities for item {item_id} are invalid: "
            f"scheme1={scheme1_quantity}, scheme2={scheme2_quantity}, "
            f"quantity={quantity}"
        )


class ClaimAccountRequiredError(BusinessRuleError):
    """Discount2 or scheme2 present but the invoice has no claim account."""

    code: str = "CLAIM_ACCOUNT_REQUIRED"

    def __init__(self, invoice_ref: str, reason: str, amount: Decimal):
        self.invoice_ref = invoice_ref
        self.reason = reason
        self.amount = amount
        super().__init__(
            f"Claim account required for invoice {invoice_ref}: {reason} "
            f"(amount {amount})"
        )


class ClaimAccountNotFoundError(BusinessRuleError):
    """Referenced claim account does not exist."""

    code: str = "CLAIM_ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Claim account not found: {account_id}")


class ClaimAccountInactiveError(BusinessRuleError):
    """Referenced claim account is deactivated."""

    code: str = "CLAIM_ACCOUNT_INACTIVE"

    def __init__(self, account_id: str, account_name: str):
        self.account_id = account_id
        self.account_name = account_name
        super().__init__(f"Claim account {account_name} ({account_id}) is not active")


class ClaimAccountTypeError(BusinessRuleError):
    """Account type cannot absorb scheme claims."""

    code: str = "CLAIM_ACCOUNT_TYPE_INVALID"

    def __init__(self, account_id: str, account_type: str, allowed: tuple[str, ...]):
        self.account_id = account_id
        self.account_type = account_type
        self.allowed = allowed
        super().__init__(
            f"Account {account_id} of type {account_type} cannot be used for claims; "
            f"allowed types: {', '.join(allowed)}"
        )


class BatchExpiredError(BusinessRuleError):
    """Inbound batch is already expired."""

    code: str = "BATCH_EXPIRED"

    def __init__(self, batch_number: str, expiry_date: str, as_of: str):
        self.batch_number = batch_number
        self.expiry_date = expiry_date
        self.as_of = as_of
        super().__init__(
            f"Batch {batch_number} expired on {expiry_date} (as of {as_of})"
        )


class InvalidBatchDatesError(BusinessRuleError):
    """Expiry date is not after the manufacturing date."""

    code: str = "INVALID_BATCH_DATES"

    def __init__(self, batch_number: str, manufacturing_date: str, expiry_date: str):
        self.batch_number = batch_number
        self.manufacturing_date = manufacturing_date
        self.expiry_date = expiry_date
        super().__init__(
            f"Batch {batch_number}: expiry date {expiry_date} must be after "
            f"manufacturing date {manufacturing_date}"
        )


class DuplicateBatchNumberError(BusinessRuleError):
    """Batch number already exists for this item in this warehouse."""

    code: str = "DUPLICATE_BATCH_NUMBER"

    def __init__(self, batch_number: str, item_id: str, warehouse_id: str):
        self.batch_number = batch_number
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        super().__init__(
            f"Batch number {batch_number} already exists for item {item_id} "
            f"in warehouse {warehouse_id}"
        )


class InvalidInvoiceStatusError(BusinessRuleError):
    """Requested transition is not legal from the current status."""

    code: str = "INVALID_INVOICE_STATUS"

    def __init__(self, invoice_id: str, status: str, operation: str):
        self.invoice_id = invoice_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} invoice {invoice_id} with status: {status}"
        )


class CannotCancelPaidInvoiceError(BusinessRuleError):
    """Paid invoices are closed by a return, not a cancellation."""

    code: str = "CANNOT_CANCEL_PAID_INVOICE"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(
            f"Cannot cancel paid invoice {invoice_id}. Issue a return instead."
        )


class InvoiceLockedError(BusinessRuleError):
    """Lines may only change while the invoice is a draft."""

    code: str = "INVOICE_LOCKED"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(
            f"Cannot modify lines of invoice {invoice_id} with status: {status}"
        )


class InvoiceHasActiveReturnsError(BusinessRuleError):
    """Invoice still has non-cancelled returns; cancelling would double-count."""

    code: str = "INVOICE_HAS_ACTIVE_RETURNS"

    def __init__(self, invoice_id: str, return_ids: list[str]):
        self.invoice_id = invoice_id
        self.return_ids = return_ids
        super().__init__(
            f"Invoice {invoice_id} has {len(return_ids)} active return(s); "
            f"cancel them first"
        )


class ReturnQuantityExceededError(BusinessRuleError):
    """Return quantity is more than what remains returnable."""

    code: str = "RETURN_QUANTITY_EXCEEDED"

    def __init__(
        self,
        original_line_id: str,
        requested: Decimal,
        original_quantity: Decimal,
        already_returned: Decimal,
    ):
        self.original_line_id = original_line_id
        self.requested = requested
        self.original_quantity = original_quantity
        self.already_returned = already_returned
        self.available = original_quantity - already_returned
        super().__init__(
            f"Cannot return {requested} units of line {original_line_id}. "
            f"Only {self.available} available ({original_quantity} original, "
            f"{already_returned} already returned)"
        )


class TaxConfigNotFoundError(BusinessRuleError):
    """Referenced tax code is missing or inactive."""

    code: str = "TAX_CONFIG_NOT_FOUND"

    def __init__(self, tax_code: str, reason: str = "missing"):
        self.tax_code = tax_code
        self.reason = reason
        super().__init__(f"Tax configuration {tax_code} not usable: {reason}")


class AccountInactiveError(BusinessRuleError):
    """Posting targets a deactivated account."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str, account_code: str):
        self.account_id = account_id
        self.account_code = account_code
        super().__init__(f"Account {account_code} ({account_id}) is not active")


class SchemeClaimAlreadyPostedError(BusinessRuleError):
    """Scheme2 claim for this invoice has already been posted."""

    code: str = "SCHEME_CLAIM_ALREADY_POSTED"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Scheme claim already posted for invoice {invoice_id}")


class NoSchemeQuantitiesError(BusinessRuleError):
    """Claim link requested for an invoice without scheme2 quantities."""

    code: str = "NO_SCHEME_QUANTITIES"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"No scheme2 quantities found in invoice {invoice_id}")


# =============================================================================
# Consistency failures (internal invariant violations)
# =============================================================================


class ConsistencyError(TradeKernelError):
    """Base exception for internal invariant violations."""

    code: str = "CONSISTENCY_ERROR"


class UnbalancedPostingError(ConsistencyError):
    """Posting debits do not equal credits."""

    code: str = "UNBALANCED_POSTING"

    def __init__(self, reference_id: str, debits: Decimal, credits: Decimal):
        self.reference_id = reference_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Unbalanced posting for {reference_id}: debits={debits}, credits={credits}"
        )


class BatchQuantityInvariantError(ConsistencyError):
    """A batch write would leave remaining_quantity outside [0, quantity]."""

    code: str = "BATCH_QUANTITY_INVARIANT"

    def __init__(self, batch_id: str, remaining: Decimal, delta: Decimal, quantity: Decimal):
        self.batch_id = batch_id
        self.remaining = remaining
        self.delta = delta
        self.quantity = quantity
        super().__init__(
            f"Batch {batch_id}: applying {delta} to remaining {remaining} "
            f"leaves it outside [0, {quantity}]"
        )


class ImmutabilityViolationError(ConsistencyError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyError(TradeKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """A row changed underneath this transaction."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, detail: str):
        self.entity_type = entity_type
        self.detail = detail
        super().__init__(
            f"Concurrent modification detected on {entity_type}: {detail}"
        )
