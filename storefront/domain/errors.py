from uuid import UUID


class StorefrontError(Exception):
    """Base class for all domain errors"""
    pass


# === Order placement ===

class CartEmpty(StorefrontError):
    """Raised when an order is placed from an empty (or missing) cart"""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Your cart is empty.")


class InvalidInput(StorefrontError):
    """Raised when shipping address or payment method are malformed"""
    pass


class ProductNotFound(StorefrontError):
    """Raised when a cart line references a product that no longer exists"""

    def __init__(self, product_id: UUID):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} not found.")


class VariantNotFound(StorefrontError):
    """Raised when a cart line references a variant the product doesn't have"""

    def __init__(self, product_id: UUID, variant_id: UUID):
        self.product_id = product_id
        self.variant_id = variant_id
        super().__init__(f"Product variant with ID {variant_id} not found for product {product_id}.")


class InsufficientStock(StorefrontError):
    """Raised when a requested quantity exceeds the variant's stock"""

    def __init__(self, variant_id: UUID, available: int, requested: int, label: str | None = None):
        self.variant_id = variant_id
        self.available = available
        self.requested = requested
        name = label or str(variant_id)
        super().__init__(
            f"Not enough stock for {name}. Available: {available}, Requested: {requested}."
        )


class SequenceUnavailable(StorefrontError):
    """Raised when the next order number can't be obtained"""

    def __init__(self, sequence_name: str):
        self.sequence_name = sequence_name
        super().__init__(f"Could not obtain next value for sequence '{sequence_name}'.")


class PersistenceFailed(StorefrontError):
    """Raised when the order record can't be saved"""
    pass


# === Order management ===

class OrderNotFound(StorefrontError):
    """Raised when an order doesn't exist or isn't visible to the caller"""

    def __init__(self, order_id: UUID):
        self.order_id = order_id
        super().__init__("Order not found or you do not have permission to access it.")


class PermissionDenied(StorefrontError):
    """Raised when the caller's role doesn't allow the operation"""
    pass


class InvalidStatusTransition(StorefrontError):
    """Raised when an order status change isn't allowed by the transition table"""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}.")


# === Cart ===

class CartItemNotFound(StorefrontError):
    """Raised when a cart line doesn't exist in the user's cart"""

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Cart item {item_id} not found.")
