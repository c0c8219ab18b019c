"""
具体 BenefitsInvestigationPort 实现。

已注册：
  rule_based — RuleBasedBenefitsAdapter
  http       — HttpBenefitsApiAdapter  (PORTAL_BENEFITS_API_URL / _KEY / _TIMEOUT)
"""

import logging
from typing import Any

import requests
from django.conf import settings

from ..exceptions import TransportFailure
from .base import BaseBenefitsInvestigator
from .types import (
    BenefitsInvestigationRequest,
    BenefitsInvestigationResult,
    CoverageType,
    InvestigationType,
)

logger = logging.getLogger(__name__)


# ── RuleBasedBenefitsAdapter ───────────────────────────────────────────────
#
# 按 payer 名称 / plan id 的关键字做确定性判断，不调外部 API。
# 关键字都是大小写不敏感的子串匹配。
#
# 已知的 MVP 简化：coverage_status 永远是 ACTIVE，deductible 永远适用，
# 没有拒绝路径。

MEDICARE_KEYWORDS = ('medicare', 'cms', 'part d', 'part b')
MEDICAID_KEYWORDS = ('medicaid',)
COMMERCIAL_KEYWORDS = ('blue', 'aetna', 'cigna', 'uhc', 'united healthcare', 'anthem', 'humana')
SPECIALTY_PHARMACY_KEYWORDS = (
    'optum', 'caremark', 'express scripts', 'accredo', 'cvs specialty', 'walgreens specialty',
)
PRIOR_AUTH_PLAN_PREFIX = 'PA-'
MVP_DISCLAIMER = 'This is a rule-based determination for MVP purposes.'


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def determine_coverage_type(payer_name: str | None) -> CoverageType:
    # 优先级：Medicare > Medicaid > 商业险
    if payer_name is None or not payer_name.strip():
        return CoverageType.UNKNOWN

    lower = payer_name.lower()
    if _contains_any(lower, MEDICARE_KEYWORDS):
        return CoverageType.MEDICARE
    if _contains_any(lower, MEDICAID_KEYWORDS):
        return CoverageType.MEDICAID
    if _contains_any(lower, COMMERCIAL_KEYWORDS):
        return CoverageType.COMMERCIAL
    return CoverageType.UNKNOWN


def determine_prior_auth_required(payer_name: str | None, payer_plan_id: str | None) -> bool:
    if payer_plan_id and payer_plan_id.upper().startswith(PRIOR_AUTH_PLAN_PREFIX):
        return True
    if payer_name and 'hmo' in payer_name.lower():
        return True
    return False


def determine_specialty_pharmacy_required(payer_name: str | None) -> bool:
    if not payer_name:
        return False
    return _contains_any(payer_name.lower(), SPECIALTY_PHARMACY_KEYWORDS)


def generate_notes(coverage_type: CoverageType, prior_auth_required: bool,
                   investigation_type: InvestigationType) -> str:
    notes = f'{investigation_type.value} coverage determined as {coverage_type.value}. '
    if prior_auth_required:
        notes += 'Prior authorization is required. '
    else:
        notes += 'No prior authorization required. '
    return notes + MVP_DISCLAIMER


class RuleBasedBenefitsAdapter(BaseBenefitsInvestigator):

    def investigate_medical_coverage(self, request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        logger.info('Investigating medical coverage for patient %s with payer %s',
                    request.patient_id, request.payer_name)
        return self._investigate(request, InvestigationType.MEDICAL)

    def investigate_pharmacy_coverage(self, request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        logger.info('Investigating pharmacy coverage for patient %s with payer %s',
                    request.patient_id, request.payer_name)
        return self._investigate(request, InvestigationType.PHARMACY)

    def is_available(self) -> bool:
        return True

    def _investigate(self, request: BenefitsInvestigationRequest,
                     investigation_type: InvestigationType) -> BenefitsInvestigationResult:
        coverage_type = determine_coverage_type(request.payer_name)
        prior_auth_required = determine_prior_auth_required(request.payer_name, request.payer_plan_id)

        additional_data: dict[str, Any] = {
            'investigationType': investigation_type.value,
            'payerName': request.payer_name,
            'memberId': request.member_id,
        }

        # 医疗险不走专科药房
        specialty_pharmacy_required = False
        if investigation_type is InvestigationType.PHARMACY:
            specialty_pharmacy_required = determine_specialty_pharmacy_required(request.payer_name)
            additional_data['medicationName'] = request.medication_name

        return BenefitsInvestigationResult(
            coverage_status='ACTIVE',
            coverage_type=coverage_type.value,
            prior_auth_required=prior_auth_required,
            deductible_applies=True,
            specialty_pharmacy_required=specialty_pharmacy_required,
            notes=generate_notes(coverage_type, prior_auth_required, investigation_type),
            additional_data=additional_data,
        )


# ── HttpBenefitsApiAdapter ─────────────────────────────────────────────────
#
# 外部 eligibility API，JSON over HTTP。
#   POST {base}/investigations/medical | /investigations/pharmacy
#   GET  {base}/health
# 所有请求都带超时；网络错误 / 非 2xx → TransportFailure，不在这里重试。

class HttpBenefitsApiAdapter(BaseBenefitsInvestigator):

    def __init__(self, base_url: str | None = None, api_key: str | None = None,
                 timeout: float | None = None, session: requests.Session | None = None):
        self.base_url = (base_url or settings.PORTAL_BENEFITS_API_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else settings.PORTAL_BENEFITS_API_KEY
        self.timeout = timeout or settings.PORTAL_BENEFITS_API_TIMEOUT
        self.session = session or requests.Session()
        if self.api_key:
            self.session.headers['Authorization'] = f'Bearer {self.api_key}'

    def investigate_medical_coverage(self, request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        return self._post(InvestigationType.MEDICAL, request)

    def investigate_pharmacy_coverage(self, request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        return self._post(InvestigationType.PHARMACY, request)

    def is_available(self) -> bool:
        try:
            response = self.session.get(f'{self.base_url}/health', timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning('Benefits API health check failed: %s', exc)
            return False
        return response.ok

    def _post(self, investigation_type: InvestigationType,
              request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        url = f'{self.base_url}/investigations/{investigation_type.value.lower()}'
        payload = {
            'investigationType': investigation_type.value,
            'payerName': request.payer_name,
            'payerPlanId': request.payer_plan_id,
            'memberId': request.member_id,
            'patientState': request.patient_state,
            'medicationName': request.medication_name,
            'patientDob': request.patient_dob.isoformat() if request.patient_dob else None,
        }

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            logger.error('Benefits API call failed: %s', url, exc_info=exc)
            raise TransportFailure('Benefits investigation service unavailable') from exc
        except ValueError as exc:
            logger.error('Benefits API returned invalid JSON: %s', url, exc_info=exc)
            raise TransportFailure('Benefits investigation service returned an invalid response') from exc

        return BenefitsInvestigationResult(
            coverage_status=body.get('coverageStatus') or 'UNKNOWN',
            coverage_type=body.get('coverageType') or CoverageType.UNKNOWN.value,
            prior_auth_required=bool(body.get('priorAuthRequired', False)),
            deductible_applies=bool(body.get('deductibleApplies', False)),
            specialty_pharmacy_required=bool(body.get('specialtyPharmacyRequired', False)),
            notes=body.get('notes') or '',
            additional_data=body.get('additionalData') or {},
        )
