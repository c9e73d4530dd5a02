"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Depends, Header

from ..domain.models import ActorContext
from ..domain.errors import AuthenticationError, AuthorizationError
from ..services.approval_service import ApprovalService
from ..services.expense_service import ExpenseService
from ..services.dashboard_service import DashboardService
from ..utils.jwt import get_current_user as _jwt_get_current_user  # Internal use only
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing
    
    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_user_dep(
    authorization: Optional[str] = Header(None)
) -> ActorContext:
    """
    Dependency to get current user from Authorization header
    
    Validates JWT token and extracts user, company and role.
    
    Raises:
        AuthenticationError: Token is invalid or missing (401)
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")
    return _jwt_get_current_user(authorization)


async def get_approver_dep(
    actor: ActorContext = Depends(get_current_user_dep)
) -> ActorContext:
    """
    Dependency for approver-only endpoints
    
    Raises:
        AuthorizationError: Caller acts as EMPLOYEE
    """
    if actor.approver_role is None:
        raise AuthorizationError(
            "Approver role required",
            details={"role": actor.role.value}
        )
    return actor


# =============================================================================
# Service providers (overridable via app.dependency_overrides)
# =============================================================================

def get_approval_service() -> ApprovalService:
    return ApprovalService()


def get_expense_service() -> ExpenseService:
    return ExpenseService()


def get_dashboard_service() -> DashboardService:
    return DashboardService()
