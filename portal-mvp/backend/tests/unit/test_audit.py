"""
审计日志：
- log_event 记录操作者（无身份时为 system）、correlation id、ip
- 写入失败只记日志，返回 None，不抛给调用方
- AuditEvent 只能追加
- get_audit_events 过滤 + 分页 + 新的在前
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from portal.audit import MAX_PAGE_SIZE, Page, get_audit_events, log_event, paginate
from portal.context import RequestContext
from portal.models import AuditEvent
from tests.conftest import UserFactory, ctx_for


@pytest.mark.django_db
class TestLogEvent:

    def test_records_actor_and_context(self):
        user = UserFactory()
        record = log_event(
            ctx_for(user), 'PATIENT_CREATED', 'PATIENT', 42, 'CREATE', metadata={'referenceId': 'PT000001'},
        )

        stored = AuditEvent.objects.get(id=record.id)
        assert stored.user_id == user.id
        assert stored.actor == str(user.id)
        assert stored.resource_id == '42'
        assert stored.correlation_id == 'test-correlation-id'
        assert stored.ip_address == '10.0.0.1'
        assert stored.metadata == {'referenceId': 'PT000001'}

    def test_system_actor_without_identity(self):
        record = log_event(RequestContext.system(), 'CLEANUP', 'SYSTEM', None, 'DELETE')

        assert record.user is None
        assert record.actor == 'system'
        assert record.resource_id is None

    def test_explicit_correlation_id_wins(self):
        record = log_event(ctx_for(UserFactory()), 'X', 'Y', 1, 'READ', correlation_id='explicit')
        assert record.correlation_id == 'explicit'

    def test_correlation_id_generated_when_missing(self):
        record = log_event(RequestContext(correlation_id=''), 'X', 'Y', 1, 'READ')
        assert len(record.correlation_id) == 36

    def test_context_correlation_id_used(self):
        ctx = RequestContext(correlation_id='from-header')
        assert log_event(ctx, 'X', 'Y', 1, 'READ').correlation_id == 'from-header'

    def test_write_failure_is_swallowed(self):
        with patch.object(AuditEvent.objects, 'create', side_effect=RuntimeError('db down')):
            assert log_event(RequestContext.system(), 'X', 'Y', 1, 'READ') is None

    def test_failure_does_not_break_outer_transaction(self):
        from django.db import transaction

        user = UserFactory()
        with transaction.atomic():
            with patch.object(AuditEvent.objects, 'create', side_effect=RuntimeError('db down')):
                log_event(ctx_for(user), 'X', 'Y', 1, 'READ')
            user.first_name = 'Changed'
            user.save()

        user.refresh_from_db()
        assert user.first_name == 'Changed'


@pytest.mark.django_db
class TestAppendOnly:

    def test_update_rejected(self):
        record = log_event(RequestContext.system(), 'X', 'Y', 1, 'READ')
        record.action = 'DELETE'
        with pytest.raises(RuntimeError):
            record.save()

    def test_delete_rejected(self):
        record = log_event(RequestContext.system(), 'X', 'Y', 1, 'READ')
        with pytest.raises(RuntimeError):
            record.delete()
        assert AuditEvent.objects.filter(id=record.id).exists()


@pytest.mark.django_db
class TestGetAuditEvents:

    @pytest.fixture(autouse=True)
    def events(self, db):
        self.alice = UserFactory()
        self.bob = UserFactory()
        log_event(ctx_for(self.alice, correlation_id='c-1'), 'PATIENT_CREATED', 'PATIENT', 1, 'CREATE')
        log_event(ctx_for(self.bob, correlation_id='c-2'), 'FORM_DOWNLOADED', 'FORM_RESOURCE', 9, 'READ')
        log_event(ctx_for(self.alice, correlation_id='c-3'), 'FORM_DOWNLOADED', 'FORM_RESOURCE', 9, 'READ')

    def test_newest_first(self):
        page = get_audit_events()
        assert page.total == 3
        assert [e.correlation_id for e in page.items] == ['c-3', 'c-2', 'c-1']

    def test_filters(self):
        assert get_audit_events(event_type='FORM_DOWNLOADED').total == 2
        assert get_audit_events(user_id=self.alice.id).total == 2
        assert get_audit_events(action='CREATE').total == 1
        assert get_audit_events(correlation_id='c-2').items[0].user_id == self.bob.id
        assert get_audit_events(event_type='FORM_DOWNLOADED', user_id=self.bob.id).total == 1

    def test_time_window(self):
        now = timezone.now()
        assert get_audit_events(start=now - timedelta(minutes=5), end=now + timedelta(minutes=5)).total == 3
        assert get_audit_events(start=now + timedelta(minutes=5)).total == 0

    def test_paging(self):
        page = get_audit_events(page=1, size=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert [e.correlation_id for e in page.items] == ['c-1']


@pytest.mark.django_db
class TestPaginate:

    def test_size_capped(self):
        page = paginate(AuditEvent.objects.order_by('id'), 0, 1000)
        assert page.size == MAX_PAGE_SIZE

    @pytest.mark.parametrize('page,size,expected', [(-1, 10, (0, 10)), (None, None, (0, 20)), (2, 0, (2, 20))])
    def test_normalizes_arguments(self, page, size, expected):
        result = paginate(AuditEvent.objects.order_by('id'), page, size)
        assert (result.page, result.size) == expected


def test_total_pages():
    assert Page(items=[], total=0, page=0, size=20).total_pages == 0
    assert Page(items=[], total=41, page=0, size=20).total_pages == 3
