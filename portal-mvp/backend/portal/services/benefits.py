import logging
from datetime import date

from django.db import transaction

from .. import audit
from ..benefits import BenefitsInvestigationRequest, InvestigationType, get_benefits_investigator
from ..events import publish_safely
from ..events.types import BenefitsInvestigationCompleted
from ..exceptions import NotFound, ValidationFailure
from ..models import BenefitsInvestigation, Patient, Program, User
from ..validation import int_field, text_field
from .affiliations import require_approved_affiliation

logger = logging.getLogger(__name__)

REQUEST_TEXT_FIELDS = ('payer_name', 'payer_plan_id', 'member_id', 'patient_state', 'medication_name')


def _parse_investigation_type(value) -> InvestigationType:
    try:
        return InvestigationType(value.strip().upper())
    except (AttributeError, ValueError):
        raise ValidationFailure(
            f'Invalid investigation type: {value!r}',
            code='INVALID_INVESTIGATION_TYPE',
            detail={'allowed': [t.value for t in InvestigationType]},
        )


def _parse_dob(value):
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationFailure('patient_dob must be YYYY-MM-DD', code='INVALID_DATE')


def run_investigation(ctx, patient_id, data):
    """
    跑一次 benefits investigation 并落库。

    分派到 benefits port 的 medical / pharmacy 方法；结果字段原样保存，additional_data 存到 result_payload。
    """
    identity = require_approved_affiliation(ctx, 'run benefits investigations')
    investigation_type = _parse_investigation_type(data.get('investigation_type'))
    program_id = int_field(data, 'program_id')
    fields = {name: text_field(data, name) for name in REQUEST_TEXT_FIELDS}
    patient_dob = _parse_dob(data.get('patient_dob'))

    patient = Patient.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFound('Patient', patient_id)

    program = Program.objects.filter(id=program_id).first() if program_id is not None else None
    if program is None:
        raise NotFound('Program', program_id)

    request = BenefitsInvestigationRequest(
        investigation_type=investigation_type,
        patient_id=patient.id,
        program_id=program.id,
        patient_dob=patient_dob,
        **fields,
    )

    logger.info('Running %s benefits investigation for patient %s', investigation_type.value, patient.id)
    investigator = get_benefits_investigator()
    if investigation_type is InvestigationType.MEDICAL:
        result = investigator.investigate_medical_coverage(request)
    else:
        result = investigator.investigate_pharmacy_coverage(request)

    with transaction.atomic():
        investigation = BenefitsInvestigation.objects.create(
            patient=patient,
            program=program,
            investigation_type=investigation_type.value,
            payer_name=request.payer_name or '',
            payer_plan_id=request.payer_plan_id or '',
            member_id=request.member_id or '',
            patient_state=request.patient_state or '',
            medication_name=request.medication_name or '',
            coverage_status=result.coverage_status,
            coverage_type=result.coverage_type,
            prior_auth_required=result.prior_auth_required,
            deductible_applies=result.deductible_applies,
            specialty_pharmacy_required=result.specialty_pharmacy_required,
            notes=result.notes or '',
            result_payload=result.additional_data or {},
            created_by=User.objects.get(id=identity.id),
        )

    logger.info('Benefits investigation completed and saved with id %s', investigation.id)

    audit.log_event(ctx, 'BENEFITS_INVESTIGATION_RUN', 'BENEFITS_INVESTIGATION', investigation.id, 'CREATE',
                    metadata={'patientId': patient.id, 'investigationType': investigation_type.value})
    publish_safely(BenefitsInvestigationCompleted(
        investigation_id=investigation.id,
        patient_id=patient.id,
        investigation_type=investigation_type.value,
        coverage_type=investigation.coverage_type,
        prior_auth_required=investigation.prior_auth_required,
    ))
    return investigation


def _investigations():
    return BenefitsInvestigation.objects.select_related('patient', 'program')


def get_patient_investigations(ctx, patient_id):
    require_approved_affiliation(ctx, 'view benefits investigations')
    if not Patient.objects.filter(id=patient_id).exists():
        raise NotFound('Patient', patient_id)
    return list(_investigations().filter(patient_id=patient_id).order_by('-created_at', '-id'))


def get_latest_investigation(ctx, patient_id, investigation_type):
    require_approved_affiliation(ctx, 'view benefits investigations')
    investigation_type = _parse_investigation_type(investigation_type)
    investigation = (
        _investigations()
        .filter(patient_id=patient_id, investigation_type=investigation_type.value)
        .order_by('-created_at', '-id')
        .first()
    )
    if investigation is None:
        raise NotFound(
            'Investigation',
            message=f'No {investigation_type.value} investigation found for patient: {patient_id}',
        )
    return investigation


def get_investigation(ctx, investigation_id):
    require_approved_affiliation(ctx, 'view benefits investigations')
    investigation = _investigations().filter(id=investigation_id).first()
    if investigation is None:
        raise NotFound('Investigation', investigation_id)
    return investigation


def benefits_service_available() -> bool:
    try:
        return bool(get_benefits_investigator().is_available())
    except Exception:
        logger.exception('Benefits availability check failed')
        return False
