"""
Benefits investigation port 的输入 / 输出结构。

所有 adapter 都收 BenefitsInvestigationRequest、返回 BenefitsInvestigationResult；
service 层只认识这两个结构，不知道背后是规则引擎还是外部 eligibility API。
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any


class InvestigationType(str, Enum):
    MEDICAL = 'MEDICAL'
    PHARMACY = 'PHARMACY'


class CoverageType(str, Enum):
    MEDICARE = 'MEDICARE'
    MEDICAID = 'MEDICAID'
    COMMERCIAL = 'COMMERCIAL'
    UNKNOWN = 'UNKNOWN'


@dataclass
class BenefitsInvestigationRequest:
    investigation_type: InvestigationType
    payer_name: str | None = None
    payer_plan_id: str | None = None
    member_id: str | None = None
    patient_state: str | None = None
    medication_name: str | None = None
    patient_id: int | None = None
    program_id: int | None = None
    patient_dob: date | None = None


@dataclass
class BenefitsInvestigationResult:
    coverage_status: str              # ACTIVE / INACTIVE / UNKNOWN
    coverage_type: str                # CoverageType 的 value
    prior_auth_required: bool
    deductible_applies: bool
    specialty_pharmacy_required: bool
    notes: str = ''
    additional_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
