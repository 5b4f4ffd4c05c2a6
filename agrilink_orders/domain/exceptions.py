class DomainException(Exception):
    pass


class ValidationError(DomainException):
    pass


class EmptyCartError(ValidationError):
    def __init__(self):
        super().__init__("At least one item is required")


class ProductNotAvailableForSegmentError(ValidationError):
    def __init__(self, product_id: str, segment: str):
        self.product_id = product_id
        self.segment = segment
        super().__init__(f"Product {product_id} not available for {segment} marketplace")


class BelowMinimumQuantityError(ValidationError):
    def __init__(self, product_id: str, min_quantity: int, unit: str, requested: int):
        self.product_id = product_id
        self.min_quantity = min_quantity
        self.unit = unit
        self.requested = requested
        super().__init__(f"Minimum quantity for B2B is {min_quantity} {unit}")


class InsufficientInventoryError(ValidationError):
    def __init__(self, product_id: str, available: int, required: int):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient inventory for product {product_id}. Available: {available}, requested: {required}"
        )


class MixedFarmerCartError(ValidationError):
    def __init__(self, expected_farmer_id: str, found_farmer_id: str):
        self.expected_farmer_id = expected_farmer_id
        self.found_farmer_id = found_farmer_id
        super().__init__("All items in an order must come from the same farmer")


class PaymentAlreadyCompletedError(ValidationError):
    pass


class ChargeAmountTooSmallError(ValidationError):
    def __init__(self, amount_minor: int, minimum_minor: int):
        self.amount_minor = amount_minor
        self.minimum_minor = minimum_minor
        super().__init__(f"Minimum payment amount is ₵{minimum_minor / 100:.2f}")


class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class NotAuthorizedError(DomainException):
    pass


class InvalidTransitionError(DomainException):
    def __init__(self, current, target, reason: str | None = None):
        self.current = current
        self.target = target
        message = f"Cannot transition order from {_value(current)} to {_value(target)}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InventoryExhaustedError(DomainException):
    def __init__(self, product_id: str, required: int):
        self.product_id = product_id
        self.required = required
        super().__init__(f"Not enough stock left for product {product_id} to settle {required} units")


class GatewayError(DomainException):
    pass


class PersistenceError(DomainException):
    pass


def _value(status) -> str:
    return getattr(status, "value", str(status))
