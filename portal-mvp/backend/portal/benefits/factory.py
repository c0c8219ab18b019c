"""
工厂函数：根据 settings.PORTAL_BENEFITS_PROVIDER 返回 BenefitsInvestigationPort 实例。
"""

from django.conf import settings

from .base import BaseBenefitsInvestigator

_instance: BaseBenefitsInvestigator | None = None


def _build_registry() -> dict[str, type[BaseBenefitsInvestigator]]:
    from .adapters import HttpBenefitsApiAdapter, RuleBasedBenefitsAdapter

    return {
        'rule_based': RuleBasedBenefitsAdapter,
        'http':       HttpBenefitsApiAdapter,
    }


def get_benefits_investigator() -> BaseBenefitsInvestigator:
    """
    Raises:
        ValueError: PORTAL_BENEFITS_PROVIDER 未知
    """
    global _instance
    if _instance is not None:
        return _instance

    provider = getattr(settings, 'PORTAL_BENEFITS_PROVIDER', 'rule_based')
    registry = _build_registry()
    investigator_cls = registry.get(provider)

    if investigator_cls is None:
        raise ValueError(
            f'Unknown PORTAL_BENEFITS_PROVIDER: {provider!r}. '
            f'Known providers: {list(registry.keys())}'
        )

    _instance = investigator_cls()
    return _instance


def reset_benefits_investigator() -> None:
    global _instance
    _instance = None
