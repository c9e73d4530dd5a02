"""Approver Identity Resolution - who holds a role inside a company"""
from typing import Dict, Mapping, Optional, Protocol

from ..config.settings import settings
from ..domain.enums import ApproverRole
from ..domain.errors import ApproverResolutionError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ApproverResolver(Protocol):
    """Resolve the approver responsible for a role in a company"""

    def resolve_approver(self, role: ApproverRole, company_id: str) -> str:
        ...


class StaticApproverResolver:
    """
    Resolver backed by a static role -> approver mapping

    A per-company override map is consulted first, then the default
    mapping. Swap for an org-chart backed resolver without touching the
    engine.
    """

    def __init__(
        self,
        default_approvers: Optional[Mapping[str, str]] = None,
        company_overrides: Optional[Mapping[str, Mapping[str, str]]] = None
    ):
        if default_approvers is None:
            default_approvers = settings.default_approver_ids_map
        if company_overrides is None:
            company_overrides = settings.company_approver_overrides_map
        self._defaults: Dict[str, str] = dict(default_approvers)
        self._overrides: Dict[str, Dict[str, str]] = {
            company: dict(mapping) for company, mapping in company_overrides.items()
        }

    def resolve_approver(self, role: ApproverRole, company_id: str) -> str:
        approver_id = self._overrides.get(company_id, {}).get(role.value) or self._defaults.get(role.value)
        if not approver_id:
            logger.error(
                f"No approver configured for role {role.value}",
                extra={"company_id": company_id, "approver_role": role.value}
            )
            raise ApproverResolutionError(
                f"No approver configured for role {role.value}",
                details={"role": role.value, "company_id": company_id}
            )
        return approver_id
