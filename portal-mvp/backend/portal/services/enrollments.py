import logging

from django.db import transaction
from django.utils import timezone

from .. import audit
from ..context import require_user
from ..events import publish_safely
from ..events.types import EnrollmentStatusChanged, EnrollmentSubmitted
from ..exceptions import NotFound, ValidationFailure
from ..models import Enrollment, EnrollmentStatusHistory, Patient, Program, Provider, User
from ..validation import int_field, parse_text, text_field

logger = logging.getLogger(__name__)

STATUSES = {choice for choice, _ in Enrollment.STATUS_CHOICES}

EDITABLE_FIELDS = ('diagnosis_code', 'diagnosis_description', 'medication_name', 'notes')


def _get_or_404(model, resource, pk):
    obj = model.objects.filter(id=pk).first()
    if obj is None:
        raise NotFound(resource, pk)
    return obj


def _record_status_change(enrollment, from_status, to_status, reason, changed_by):
    EnrollmentStatusHistory.objects.create(
        enrollment=enrollment,
        from_status=from_status,
        to_status=to_status,
        reason=reason or '',
        changed_by=changed_by,
    )


def create_or_update_enrollment(ctx, patient_id, data):
    """
    保存患者的 enrollment。

    患者已有 DRAFT 就在它上面改，否则新建一条；data['submit'] 为真时直接提交：
    状态改为 SUBMITTED、写 submitted_at 和状态历史、审计 ENROLLMENT_SUBMITTED、发布 EnrollmentSubmitted。
    """
    identity = require_user(ctx)

    program_id = int_field(data, 'program_id', required=True)
    prescriber_id = int_field(data, 'prescriber_id')
    fields = {name: text_field(data, name) or '' for name in EDITABLE_FIELDS}

    patient = _get_or_404(Patient, 'Patient', patient_id)
    program = _get_or_404(Program, 'Program', program_id)
    prescriber = None
    if prescriber_id is not None:
        prescriber = _get_or_404(Provider, 'Prescriber', prescriber_id)

    submit = bool(data.get('submit'))
    user = User.objects.get(id=identity.id)

    with transaction.atomic():
        enrollment = (
            Enrollment.objects
            .select_for_update()
            .filter(patient=patient, status='DRAFT')
            .order_by('id')
            .first()
        )
        if enrollment is None:
            enrollment = Enrollment(patient=patient, created_by=user)

        enrollment.program = program
        enrollment.prescriber = prescriber
        for name, value in fields.items():
            setattr(enrollment, name, value)

        if submit:
            enrollment.status = 'SUBMITTED'
            enrollment.submitted_at = timezone.now()
        enrollment.save()

        if submit:
            _record_status_change(enrollment, None, 'SUBMITTED', 'Initial submission', user)

    if not submit:
        logger.info('Enrollment saved as draft: id=%s, patient=%s, program=%s',
                    enrollment.id, patient.id, program.id)
        return enrollment

    logger.info('Enrollment submitted: id=%s, patient=%s, program=%s', enrollment.id, patient.id, program.id)
    audit.log_event(
        ctx, 'ENROLLMENT_SUBMITTED', 'ENROLLMENT', enrollment.id, 'SUBMIT',
        metadata={'patientId': patient.id, 'programId': program.id},
    )
    publish_safely(EnrollmentSubmitted(
        enrollment_id=enrollment.id,
        patient_id=patient.id,
        program_id=program.id,
        user_email=user.email,
        patient_name=patient.full_name,
    ))
    return enrollment


def update_enrollment_status(ctx, enrollment_id, new_status, reason=None):
    identity = require_user(ctx)

    new_status = (parse_text(new_status, 'status') or '').upper()
    reason = parse_text(reason, 'reason')
    if new_status not in STATUSES:
        raise ValidationFailure(
            f'Invalid enrollment status: {new_status!r}',
            code='INVALID_STATUS',
            detail={'allowed': sorted(STATUSES)},
        )

    user = User.objects.get(id=identity.id)

    with transaction.atomic():
        enrollment = (
            Enrollment.objects
            .select_for_update()
            .select_related('patient', 'created_by')
            .filter(id=enrollment_id)
            .first()
        )
        if enrollment is None:
            raise NotFound('Enrollment', enrollment_id)

        old_status = enrollment.status
        enrollment.status = new_status
        if new_status == 'SUBMITTED' and enrollment.submitted_at is None:
            enrollment.submitted_at = timezone.now()
        enrollment.save()
        _record_status_change(enrollment, old_status, new_status, reason, user)

    logger.info('Enrollment status updated: id=%s, from=%s, to=%s, by=%s',
                enrollment.id, old_status, new_status, identity.id)

    audit.log_event(
        ctx, 'ENROLLMENT_STATUS_CHANGED', 'ENROLLMENT', enrollment.id, 'UPDATE',
        metadata={'fromStatus': old_status, 'toStatus': new_status, 'reason': reason},
    )
    # 通知发给 enrollment 的创建者，而不是改状态的人
    publish_safely(EnrollmentStatusChanged(
        enrollment_id=enrollment.id,
        from_status=old_status,
        to_status=new_status,
        user_email=enrollment.created_by.email,
        patient_name=enrollment.patient.full_name,
    ))
    return enrollment


def get_patient_enrollments(ctx, patient_id):
    require_user(ctx)
    _get_or_404(Patient, 'Patient', patient_id)
    return list(
        Enrollment.objects
        .filter(patient_id=patient_id)
        .select_related('program', 'prescriber', 'patient', 'created_by')
        .order_by('-created_at', '-id')
    )


def get_enrollment(ctx, enrollment_id):
    require_user(ctx)
    enrollment = (
        Enrollment.objects
        .select_related('program', 'prescriber', 'patient', 'created_by')
        .filter(id=enrollment_id)
        .first()
    )
    if enrollment is None:
        raise NotFound('Enrollment', enrollment_id)
    return enrollment


def get_status_history(ctx, enrollment_id):
    enrollment = get_enrollment(ctx, enrollment_id)
    return list(enrollment.status_history.select_related('changed_by').order_by('changed_at', 'id'))
