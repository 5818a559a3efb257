"""
Error taxonomy

Creation-path errors surface synchronously to the caller. Consumers translate
them into HandlerResult outcomes instead of letting them escape.
"""


class TicketingError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(TicketingError):
    """A creation command was rejected before any write."""


class ConflictError(TicketingError):
    """An order with the same identity already exists."""


class OrderNotFoundError(TicketingError):
    """The addressed order does not exist."""

    def __init__(self, order_id: str):
        super().__init__(f"order {order_id} not found")
        self.order_id = order_id


class TransientDependencyError(TicketingError):
    """Store, scoring capability or router unavailable or timed out."""


class MalformedResponseError(TicketingError):
    """The scoring capability returned output that does not fit the schema."""


class NotificationError(TicketingError):
    """An alert could not be delivered."""
