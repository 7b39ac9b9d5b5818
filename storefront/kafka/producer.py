import json
import logging
from kafka import KafkaProducer
from storefront.core.config import settings

logger = logging.getLogger(__name__)

_producer = None

def get_producer():
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    p = get_producer()
    p.send(topic, key=key, value=value)
    p.flush(5)

def emit_order_event(event_type: str, order, **extra):
    """Publish an order event after the change it describes has been committed."""
    if not settings.KAFKA_ENABLED:
        return
    value = {
        "type": event_type,
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "order_status": order.order_status.value,
        "total_amount": str(order.total_amount),
        **extra,
    }
    try:
        send(settings.TOPIC_ORDER_EVENTS, key=order.order_number, value=value)
    except Exception:
        # the database change is already committed; a lost event must not fail the request
        logger.exception("Failed to publish %s for order %s", event_type, order.order_number)
