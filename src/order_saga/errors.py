class OrderSagaError(Exception):
    """Base class for errors raised by the order saga services."""


class ValidationError(OrderSagaError, ValueError):
    """Input rejected before any state changed. Fix the input; do not retry."""


class DuplicateOrderError(OrderSagaError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} already exists")
        self.order_id = order_id


class HandlerError(OrderSagaError):
    """
    A subscriber failed while an event was being dispatched.
    The bus catches it, logs it and journals it; it never reaches the publisher.
    """

    def __init__(self, topic: str, handler: str, message: str):
        super().__init__(f"Error in event listener {handler} for {topic}: {message}")
        self.topic = topic
        self.handler = handler
