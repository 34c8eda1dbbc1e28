from enum import Enum

from storefront.domain.errors import InvalidStatusTransition, PermissionDenied
from storefront.domain.order.models import OrderStatus


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


# Forward-only graph; Delivered and Cancelled are terminal
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Transitions a customer may perform on their own order
CUSTOMER_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset({
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
})


def is_terminal(status: OrderStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def check_transition(current: OrderStatus, requested: OrderStatus, role: Role) -> None:
    """
    Validate a status change for the given role.

    Raises:
        InvalidStatusTransition: transition not in the graph (incl. same status)
        PermissionDenied: allowed in the graph but not for this role
    """
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, requested.value)

    if role == Role.ADMIN:
        return

    if (current, requested) not in CUSTOMER_TRANSITIONS:
        raise PermissionDenied(
            f"Customers can only cancel pending orders (requested {current.value} -> {requested.value})."
        )
