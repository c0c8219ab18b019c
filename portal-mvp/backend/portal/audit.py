"""
审计日志。

log_event() 是 best-effort 的：写审计失败只记日志，绝不影响调用方的业务动作。
所以 service 层要在自己的 transaction.atomic() 块退出之后再调用它，
log_event 自己再开一个 savepoint，失败时只回滚这一条审计记录。
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.db import transaction

from .auth import get_auth_provider
from .models import AuditEvent, User

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class Page:
    items: list
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size


def _resolve_actor(ctx) -> User | None:
    identity = get_auth_provider().get_current_user(ctx)
    if identity is None:
        return None
    return User.objects.filter(id=identity.id).first()


def log_event(
    ctx,
    event_type: str,
    resource_type: str,
    resource_id,
    action: str,
    correlation_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent | None:
    """
    记录一条审计事件，返回写入的记录；任何失败都返回 None。

    correlation_id 优先用显式传入的，其次 ctx.correlation_id，都没有就新生成一个。
    """
    try:
        if not correlation_id:
            correlation_id = getattr(ctx, 'correlation_id', None) or str(uuid.uuid4())

        with transaction.atomic():
            record = AuditEvent.objects.create(
                event_type=event_type,
                user=_resolve_actor(ctx),
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                action=action,
                correlation_id=correlation_id,
                ip_address=getattr(ctx, 'ip_address', '') or '',
                metadata=metadata,
            )
    except Exception:
        logger.exception(
            'Failed to write audit event %s for %s %s', event_type, resource_type, resource_id,
        )
        return None

    logger.debug('Audit %s %s/%s by %s', event_type, resource_type, resource_id, record.actor)
    return record


def get_audit_events(
    event_type: str | None = None,
    user_id: int | None = None,
    action: str | None = None,
    correlation_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 0,
    size: int = DEFAULT_PAGE_SIZE,
) -> Page:
    """按条件分页查询审计事件，新的在前；size 上限 MAX_PAGE_SIZE。"""
    qs = AuditEvent.objects.select_related('user')
    if event_type:
        qs = qs.filter(event_type=event_type)
    if user_id is not None:
        qs = qs.filter(user_id=user_id)
    if action:
        qs = qs.filter(action=action)
    if correlation_id:
        qs = qs.filter(correlation_id=correlation_id)
    if start is not None:
        qs = qs.filter(created_at__gte=start)
    if end is not None:
        qs = qs.filter(created_at__lte=end)

    return paginate(qs.order_by('-created_at', '-id'), page, size)


def paginate(qs, page: int = 0, size: int = DEFAULT_PAGE_SIZE) -> Page:
    """service 层共用的分页：qs 需已排好序。"""
    page = max(int(page or 0), 0)
    size = min(max(int(size or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    offset = page * size
    return Page(items=list(qs[offset:offset + size]), total=qs.count(), page=page, size=size)
