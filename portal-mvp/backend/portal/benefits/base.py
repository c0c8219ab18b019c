"""
BenefitsInvestigationPort — 保险福利调查的 port。

实现：
  rule_based — RuleBasedBenefitsAdapter（MVP，纯规则，无 I/O）
  http       — HttpBenefitsApiAdapter（外部 eligibility API）

两个 investigate 方法对规则 adapter 来说是纯函数，但 port 必须支持真正走网络的 adapter，
所以调用方要把它们当成"可能慢、可能失败"的调用。
"""

from abc import ABC, abstractmethod

from .types import BenefitsInvestigationRequest, BenefitsInvestigationResult


class BaseBenefitsInvestigator(ABC):

    @abstractmethod
    def investigate_medical_coverage(self, request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        """医疗险覆盖调查。"""

    @abstractmethod
    def investigate_pharmacy_coverage(self, request: BenefitsInvestigationRequest) -> BenefitsInvestigationResult:
        """药房险覆盖调查。"""

    @abstractmethod
    def is_available(self) -> bool:
        """低成本的存活探测，供 health check 用。"""
