"""
具体 EventBusPort 实现。

已注册：
  in_memory — InMemoryEventBusAdapter
  celery    — CeleryEventBusAdapter
"""

import logging
from collections import defaultdict

from .base import BaseEventBus, EventHandler
from .types import DomainEvent

logger = logging.getLogger(__name__)


# ── InMemoryEventBusAdapter ────────────────────────────────────────────────
#
# 同进程、同步、按注册顺序调用 handler。
# 每个 handler 单独 try/except，出错记日志后继续下一个。

class InMemoryEventBusAdapter(BaseEventBus):

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug('Subscribed %s to %s', getattr(handler, '__name__', handler), event_type)

    def handlers_for(self, event_type: str) -> list[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    def publish(self, event: DomainEvent) -> None:
        logger.info('Publishing event %s (id=%s)', event.event_type, event.event_id)
        self.dispatch(event)

    def dispatch(self, event: DomainEvent) -> int:
        """把事件交给所有 handler，返回失败的 handler 数量。"""
        failures = 0
        for handler in self.handlers_for(event.event_type):
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    'Event handler %s failed for %s (id=%s)',
                    getattr(handler, '__name__', repr(handler)), event.event_type, event.event_id,
                )
        return failures


# ── CeleryEventBusAdapter ──────────────────────────────────────────────────
#
# publish → portal.tasks.deliver_domain_event.delay(payload)
# worker 端重建事件，再交给 worker 进程里注册的 handler（同一套 in-memory 分发）。
# 任务 acks_late + reject_on_worker_lost：worker 崩溃时消息会重投（at-least-once）。

class CeleryEventBusAdapter(BaseEventBus):

    def __init__(self):
        self._local = InMemoryEventBusAdapter()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._local.subscribe(event_type, handler)

    def publish(self, event: DomainEvent) -> None:
        from ..tasks import deliver_domain_event

        try:
            deliver_domain_event.delay(event.to_payload())
            logger.info('Enqueued event %s (id=%s)', event.event_type, event.event_id)
        except Exception:
            # broker 不可用时不能影响业务动作
            logger.exception('Failed to enqueue event %s (id=%s)', event.event_type, event.event_id)

    def dispatch(self, event: DomainEvent) -> int:
        return self._local.dispatch(event)
