import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # 初始重试延迟（秒），指数退避会乘以 2^retry_count
    acks_late=True,           # 任务执行完才 ack，防止 worker 崩溃时事件丢失
    reject_on_worker_lost=True,
)
def deliver_domain_event(self, payload: dict):
    """
    在 worker 进程里投递一个领域事件（CeleryEventBusAdapter 的消费端）。

    - 事件重建失败（未知 eventType / payload 损坏）→ 记 error，不重试
    - handler 自己的失败由 dispatch() 隔离并记日志，不会触发重试
    - 只有 bus 本身构造失败才按指数退避重试：10s → 20s → 40s

    at-least-once：同一个 eventId 可能被投递多次，handler 需要能容忍重复。
    """
    from portal.events import event_from_payload, get_event_bus

    logger.info("[Celery][deliver_domain_event] 开始投递 event_id=%s type=%s (attempt %d/%d)",
                payload.get('eventId'), payload.get('eventType'),
                self.request.retries + 1, self.max_retries + 1)

    try:
        event = event_from_payload(payload)
    except (KeyError, ValueError, TypeError) as exc:
        logger.error("[Celery] 无法重建事件 %s: %s，跳过", payload.get('eventId'), exc)
        return 0  # 不重试，直接结束

    try:
        bus = get_event_bus()
    except Exception as exc:
        if self.request.retries < self.max_retries:
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            logger.warning("[Celery] event bus 不可用，%ds 后重试: %s", countdown, exc)
            raise self.retry(exc=exc, countdown=countdown)
        logger.error("[Celery] event_id=%s 已达最大重试次数，放弃投递", event.event_id)
        return 0

    failures = bus.dispatch(event)
    logger.info("[Celery] event_id=%s 投递完成，失败 handler 数=%d", event.event_id, failures)
    return failures
