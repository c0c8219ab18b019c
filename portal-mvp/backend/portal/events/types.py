"""
领域事件。

事件在业务动作发生的那一刻创建，只发布一次，之后不再修改（frozen）。
payload 格式：{eventId, occurredAt, eventType, ...子类字段}，
消息队列型的 event bus 用 to_payload() / event_from_payload() 在进程之间传递。
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar

_EVENT_TYPES: dict[str, type['DomainEvent']] = {}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def register_event(cls):
    _EVENT_TYPES[cls.event_type] = cls
    return cls


@dataclass(frozen=True)
class DomainEvent:
    event_type: ClassVar[str] = 'DOMAIN_EVENT'

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), kw_only=True)
    occurred_at: datetime = field(default_factory=_utcnow, kw_only=True)

    def to_payload(self) -> dict[str, Any]:
        payload = {
            'eventId': self.event_id,
            'occurredAt': self.occurred_at.isoformat(),
            'eventType': self.event_type,
        }
        for f in fields(self):
            if f.name not in ('event_id', 'occurred_at'):
                payload[f.name] = getattr(self, f.name)
        return payload


def event_from_payload(payload: dict[str, Any]) -> DomainEvent:
    """
    Raises:
        ValueError: 未知的 eventType
    """
    event_type = payload.get('eventType')
    event_cls = _EVENT_TYPES.get(event_type)
    if event_cls is None:
        raise ValueError(f'Unknown event type: {event_type!r}')

    kwargs = {
        f.name: payload[f.name]
        for f in fields(event_cls)
        if f.name not in ('event_id', 'occurred_at') and f.name in payload
    }
    return event_cls(
        event_id=payload['eventId'],
        occurred_at=datetime.fromisoformat(payload['occurredAt']),
        **kwargs,
    )


@register_event
@dataclass(frozen=True)
class PatientCreated(DomainEvent):
    event_type: ClassVar[str] = 'PATIENT_CREATED'

    patient_id: int
    reference_id: str
    created_by_id: int


@register_event
@dataclass(frozen=True)
class AffiliationVerified(DomainEvent):
    event_type: ClassVar[str] = 'AFFILIATION_VERIFIED'

    affiliation_id: int
    user_email: str
    provider_name: str
    approved: bool


@register_event
@dataclass(frozen=True)
class EnrollmentSubmitted(DomainEvent):
    event_type: ClassVar[str] = 'ENROLLMENT_SUBMITTED'

    enrollment_id: int
    patient_id: int
    program_id: int
    user_email: str
    patient_name: str


@register_event
@dataclass(frozen=True)
class EnrollmentStatusChanged(DomainEvent):
    event_type: ClassVar[str] = 'ENROLLMENT_STATUS_CHANGED'

    enrollment_id: int
    from_status: str | None
    to_status: str
    user_email: str
    patient_name: str


@register_event
@dataclass(frozen=True)
class BenefitsInvestigationCompleted(DomainEvent):
    event_type: ClassVar[str] = 'BENEFITS_INVESTIGATION_COMPLETED'

    investigation_id: int
    patient_id: int
    investigation_type: str
    coverage_type: str
    prior_auth_required: bool


@register_event
@dataclass(frozen=True)
class FormUploaded(DomainEvent):
    event_type: ClassVar[str] = 'FORM_UPLOADED'

    form_id: int
    title: str
    uploaded_by_id: int


@register_event
@dataclass(frozen=True)
class MessageSent(DomainEvent):
    event_type: ClassVar[str] = 'MESSAGE_SENT'

    message_id: int
    thread_id: int
    sent_by_id: int
