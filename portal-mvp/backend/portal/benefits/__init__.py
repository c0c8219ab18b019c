from .factory import get_benefits_investigator, reset_benefits_investigator
from .types import (
    BenefitsInvestigationRequest,
    BenefitsInvestigationResult,
    CoverageType,
    InvestigationType,
)

__all__ = [
    'BenefitsInvestigationRequest',
    'BenefitsInvestigationResult',
    'CoverageType',
    'InvestigationType',
    'get_benefits_investigator',
    'reset_benefits_investigator',
]
