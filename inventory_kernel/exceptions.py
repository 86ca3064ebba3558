"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Warehouse handlers must react to failures precisely: a full storage location
is answered by picking another location, an unknown code by re-scanning, a
lost transaction by retrying the whole operation. Callers therefore catch by
TYPE and read structured attributes, never parse messages:

    try:
        operations.scan_item(ctx, raw, storage_id)
    except CapacityExceededError as e:
        suggest_other_storage(deficit=e.deficit)
        api_response(code=e.code, storage=e.storage_id)

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as instance attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError            rejected before any transaction opens
    |   +-- InvalidCodeFormatError
    |   +-- InvalidQuantityError
    |   +-- InvalidFailureCategoryError
    |   +-- MissingFieldError
    |
    +-- NotFoundError
    |   +-- CodeNotFoundError
    |   +-- ItemNotFoundError
    |   +-- StorageNotFoundError
    |   +-- ShipmentNotFoundError
    |   +-- OrderNotFoundError
    |   +-- OrderLineNotFoundError
    |   +-- DeliveryNotFoundError
    |   +-- ResolutionNotFoundError
    |
    +-- CapacityError
    |   +-- CapacityExceededError
    |   |   +-- InsufficientCapacityError
    |   +-- CapacityUnderflowError
    |   +-- CapacityBelowUsageError
    |   +-- StorageNotEmptyError
    |
    +-- AllocationError
    |   +-- GenerationExhaustedError
    |   +-- CodeAlreadyUsedError
    |   +-- CodeAlreadyBoundError
    |   +-- DuplicateReceiptNumberError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |   +-- ResolutionAlreadyCompletedError
    |   +-- DeliveryAlreadyActiveError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
RETRY POLICY
===============================================================================

Nothing is retried by the kernel. ConcurrencyError is the only category that
is safe to retry from scratch (no partial state was committed). Capacity and
stock errors reflect real resource limits; transition errors reflect a wrong
caller assumption about state.
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Validation exceptions


class ValidationError(InventoryKernelError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"


class InvalidCodeFormatError(ValidationError):
    """Scanned or typed input does not match any known code format."""

    code: str = "INVALID_CODE_FORMAT"

    def __init__(self, raw_value: str):
        self.raw_value = raw_value
        super().__init__(f"Invalid code format: {raw_value!r}")


class InvalidQuantityError(ValidationError):
    """A requested quantity is outside its permitted range."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: int, minimum: int, maximum: int | None = None):
        self.field = field
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        bound = f">= {minimum}" if maximum is None else f"in {minimum}..{maximum}"
        super().__init__(f"{field} must be {bound}, got {value}")


class InvalidFailureCategoryError(ValidationError):
    """Delivery failure category is not one of the known categories."""

    code: str = "INVALID_FAILURE_CATEGORY"

    def __init__(self, category: str, allowed: tuple[str, ...]):
        self.category = category
        self.allowed = allowed
        super().__init__(
            f"Unknown failure category {category!r}; expected one of {', '.join(allowed)}"
        )


class MissingFieldError(ValidationError):
    """A required field was empty."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Required field missing: {field}")


# Not-found exceptions


class NotFoundError(InventoryKernelError):
    """Base exception for unknown references."""

    code: str = "NOT_FOUND"


class CodeNotFoundError(NotFoundError):
    """Code is not in the organization's code pool."""

    code: str = "CODE_NOT_FOUND"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Code not found: {value}")


class ItemNotFoundError(NotFoundError):
    """No shipment item carries the given code."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Shipment item not found for code: {item_code}")


class StorageNotFoundError(NotFoundError):
    """Storage location not found."""

    code: str = "STORAGE_NOT_FOUND"

    def __init__(self, storage_id: str):
        self.storage_id = storage_id
        super().__init__(f"Storage not found: {storage_id}")


class ShipmentNotFoundError(NotFoundError):
    """Shipment not found."""

    code: str = "SHIPMENT_NOT_FOUND"

    def __init__(self, shipment_id: str):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


class OrderNotFoundError(NotFoundError):
    """Order not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class OrderLineNotFoundError(NotFoundError):
    """Order has no pending line for the product of the scanned unit."""

    code: str = "ORDER_LINE_NOT_FOUND"

    def __init__(self, order_id: str, product_id: str):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(
            f"Order {order_id} has no pending line for product {product_id}"
        )


class DeliveryNotFoundError(NotFoundError):
    """Delivery not found."""

    code: str = "DELIVERY_NOT_FOUND"

    def __init__(self, delivery_id: str):
        self.delivery_id = delivery_id
        super().__init__(f"Delivery not found: {delivery_id}")


class ResolutionNotFoundError(NotFoundError):
    """Delivery resolution not found."""

    code: str = "RESOLUTION_NOT_FOUND"

    def __init__(self, resolution_id: str):
        self.resolution_id = resolution_id
        super().__init__(f"Delivery resolution not found: {resolution_id}")


# Capacity exceptions


class CapacityError(InventoryKernelError):
    """Base exception for capacity ledger errors."""

    code: str = "CAPACITY_ERROR"


class CapacityExceededError(CapacityError):
    """
    Admission would push used capacity above the storage's capacity.

    ``deficit`` is how many units do not fit.
    """

    code: str = "CAPACITY_EXCEEDED"

    def __init__(self, storage_id: str, requested: int, available: int):
        self.storage_id = storage_id
        self.requested = requested
        self.available = available
        self.deficit = requested - available
        super().__init__(
            f"Storage {storage_id} cannot admit {requested} unit(s): "
            f"{available} available, deficit {self.deficit}"
        )


class InsufficientCapacityError(CapacityExceededError):
    """A bulk admission does not fit; no unit of the batch was admitted."""

    code: str = "INSUFFICIENT_CAPACITY"

    def __init__(self, storage_id: str, requested: int, available: int):
        super().__init__(storage_id, requested, available)
        self.shortfall = self.deficit


class CapacityUnderflowError(CapacityError):
    """Release would push used capacity below zero."""

    code: str = "CAPACITY_UNDERFLOW"

    def __init__(self, storage_id: str, requested: int, used: int):
        self.storage_id = storage_id
        self.requested = requested
        self.used = used
        super().__init__(
            f"Storage {storage_id} cannot release {requested} unit(s): only {used} in use"
        )


class CapacityBelowUsageError(CapacityError):
    """New capacity would be smaller than the units already stored."""

    code: str = "CAPACITY_BELOW_USAGE"

    def __init__(self, storage_id: str, capacity: int, used: int):
        self.storage_id = storage_id
        self.capacity = capacity
        self.used = used
        super().__init__(
            f"Storage {storage_id} capacity {capacity} is below current usage {used}"
        )


class StorageNotEmptyError(CapacityError):
    """Storage still holds units and cannot be deleted."""

    code: str = "STORAGE_NOT_EMPTY"

    def __init__(self, storage_id: str, used: int):
        self.storage_id = storage_id
        self.used = used
        super().__init__(f"Storage {storage_id} still holds {used} unit(s)")


# Allocation exceptions


class AllocationError(InventoryKernelError):
    """Base exception for code allocation errors."""

    code: str = "ALLOCATION_ERROR"


class GenerationExhaustedError(AllocationError):
    """Attempt budget ran out before enough unique codes were generated."""

    code: str = "GENERATION_EXHAUSTED"

    def __init__(self, requested: int, generated: int, attempts: int):
        self.requested = requested
        self.generated = generated
        self.attempts = attempts
        super().__init__(
            f"Generated only {generated} of {requested} unique codes "
            f"after {attempts} attempts"
        )


class CodeAlreadyUsedError(AllocationError):
    """Pooled code has already been claimed."""

    code: str = "CODE_ALREADY_USED"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Code already used: {value}")


class CodeAlreadyBoundError(AllocationError):
    """Code is already stamped on another shipment item."""

    code: str = "CODE_ALREADY_BOUND"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Code already bound to a shipment item: {value}")


class DuplicateReceiptNumberError(AllocationError):
    """A shipment with this receipt number already exists."""

    code: str = "DUPLICATE_RECEIPT_NUMBER"

    def __init__(self, receipt_number: str):
        self.receipt_number = receipt_number
        super().__init__(f"Receipt number already recorded: {receipt_number}")


# Transition exceptions


class TransitionError(InventoryKernelError):
    """Base exception for illegal state transitions."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """Operation attempted from a state that disallows it."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current: str, target: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(
            f"{entity_type} {entity_id} cannot move from {current} to {target}"
        )


class ResolutionAlreadyCompletedError(TransitionError):
    """Resolution was already processed; its effects are never re-applied."""

    code: str = "RESOLUTION_ALREADY_COMPLETED"

    def __init__(self, resolution_id: str, resolution_type: str | None):
        self.resolution_id = resolution_id
        self.resolution_type = resolution_type
        super().__init__(
            f"Resolution {resolution_id} already completed ({resolution_type})"
        )


class DeliveryAlreadyActiveError(TransitionError):
    """The order already has a delivery waiting to be delivered."""

    code: str = "DELIVERY_ALREADY_ACTIVE"

    def __init__(self, order_id: str, delivery_id: str):
        self.order_id = order_id
        self.delivery_id = delivery_id
        super().__init__(
            f"Order {order_id} already has an active delivery {delivery_id}"
        )


# Stock exceptions


class StockError(InventoryKernelError):
    """Base exception for stock availability errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Fewer received units exist than the order requests."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Product {product_id}: requested {requested}, only {available} in stock"
        )


# Concurrency exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Transaction lost to a concurrent writer. Safe to retry from scratch."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Concurrency conflict during {operation}: {detail}")


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only or never-deleted record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
