"""
默认的事件订阅：把领域事件转成通知。

通知是 best-effort：发送失败在这里 catch 并记日志，不会影响其他 handler。
"""

import logging

from ..notifications import get_notifier
from .base import BaseEventBus
from .types import AffiliationVerified, EnrollmentStatusChanged, EnrollmentSubmitted

logger = logging.getLogger(__name__)


def notify_enrollment_status_change(event):
    try:
        get_notifier().notify_enrollment_status_change(
            event.user_email, event.patient_name,
            'SUBMITTED' if isinstance(event, EnrollmentSubmitted) else event.to_status,
        )
    except Exception:
        logger.exception('Failed to send enrollment notification for enrollment %s', event.enrollment_id)


def notify_affiliation_approved(event: AffiliationVerified):
    if not event.approved:
        return
    try:
        get_notifier().notify_provider_affiliation_approved(event.user_email, event.provider_name)
    except Exception:
        logger.exception('Failed to send affiliation notification for affiliation %s', event.affiliation_id)


def register_default_handlers(bus: BaseEventBus) -> None:
    bus.subscribe(EnrollmentSubmitted.event_type, notify_enrollment_status_change)
    bus.subscribe(EnrollmentStatusChanged.event_type, notify_enrollment_status_change)
    bus.subscribe(AffiliationVerified.event_type, notify_affiliation_approved)
