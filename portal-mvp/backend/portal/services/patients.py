import logging
from datetime import date

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.db.models.functions import Length

from .. import audit
from ..events import publish_safely
from ..events.types import PatientCreated
from ..exceptions import BlockError, NotFound, ValidationFailure
from ..models import Patient, User
from ..validation import parse_text
from .affiliations import require_approved_affiliation

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = 'PT'
# 并发创建时 reference_id 可能撞 unique 约束，重算后重试
REFERENCE_ID_ATTEMPTS = 3

REQUIRED_FIELDS = ('first_name', 'last_name', 'date_of_birth')
OPTIONAL_FIELDS = (
    'gender', 'phone', 'email', 'address_line1', 'address_line2', 'city', 'state', 'zip_code',
)


def next_reference_id() -> str:
    """
    PT + 至少 6 位序号，取当前最大值 + 1。

    超过 PT999999 之后位数变多，按字符串排序会排错，所以先比长度再比值。
    """
    latest = (
        Patient.objects
        .filter(reference_id__startswith=REFERENCE_PREFIX)
        .annotate(reference_length=Length('reference_id'))
        .order_by('-reference_length', '-reference_id')
        .values_list('reference_id', flat=True)
        .first()
    )
    seq = 0
    if latest:
        try:
            seq = int(latest[len(REFERENCE_PREFIX):])
        except ValueError:
            seq = Patient.objects.count()
    return f'{REFERENCE_PREFIX}{seq + 1:06d}'


def _clean_patient_data(data):
    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        raise ValidationFailure(
            f'Missing required fields: {", ".join(missing)}',
            code='MISSING_FIELDS',
            detail={'fields': missing},
        )

    dob = data['date_of_birth']
    if not isinstance(dob, date):
        try:
            dob = date.fromisoformat(dob)
        except (TypeError, ValueError):
            raise ValidationFailure('date_of_birth must be YYYY-MM-DD', code='INVALID_DATE')

    cleaned = {
        'first_name': parse_text(data['first_name'], 'first_name', required=True),
        'last_name': parse_text(data['last_name'], 'last_name', required=True),
        'date_of_birth': dob,
    }
    for name in OPTIONAL_FIELDS:
        value = parse_text(data.get(name), name)
        if value is not None:
            cleaned[name] = value
    return cleaned


def create_patient(ctx, data):
    """
    创建患者。

    - 当前用户必须有 approved affiliation，否则 Forbidden
    - reference_id 自动分配（PT000001 起）
    """
    identity = require_approved_affiliation(ctx, 'create patients')
    fields = _clean_patient_data(data)
    created_by = User.objects.get(id=identity.id)

    patient = None
    for _ in range(REFERENCE_ID_ATTEMPTS):
        try:
            with transaction.atomic():
                patient = Patient.objects.create(
                    reference_id=next_reference_id(),
                    created_by=created_by,
                    **fields,
                )
            break
        except IntegrityError:
            logger.warning('Reference id collision while creating patient, retrying')

    if patient is None:
        raise BlockError('Could not allocate a patient reference id', code='REFERENCE_ID_CONFLICT')

    logger.info('Patient created: id=%s, referenceId=%s, createdBy=%s',
                patient.id, patient.reference_id, identity.id)

    audit.log_event(ctx, 'PATIENT_CREATED', 'PATIENT', patient.id, 'CREATE')
    publish_safely(PatientCreated(
        patient_id=patient.id,
        reference_id=patient.reference_id,
        created_by_id=identity.id,
    ))
    return patient


def search_patients(ctx, search=None, page=0, size=audit.DEFAULT_PAGE_SIZE):
    """名字（不区分大小写）或 reference_id 模糊匹配；不传 search 返回全部。"""
    require_approved_affiliation(ctx, 'view patients')

    qs = Patient.objects.all()
    search = (search or '').strip()
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search)
            | Q(last_name__icontains=search)
            | Q(reference_id__contains=search)
        )
    return audit.paginate(qs.order_by('-created_at', '-id'), page, size)


def get_patient(ctx, patient_id):
    require_approved_affiliation(ctx, 'view patients')
    patient = Patient.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFound('Patient', patient_id)
    return patient
