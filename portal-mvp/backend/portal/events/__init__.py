import logging

from .factory import get_event_bus, reset_event_bus
from .types import DomainEvent, event_from_payload

__all__ = ['DomainEvent', 'event_from_payload', 'get_event_bus', 'publish_safely', 'reset_event_bus']

logger = logging.getLogger(__name__)


def publish_safely(event: DomainEvent) -> None:
    """service 层调用入口：bus 本身构造失败也只记日志，不影响业务动作。"""
    try:
        get_event_bus().publish(event)
    except Exception:
        logger.exception('Failed to publish event %s (id=%s)', event.event_type, event.event_id)
