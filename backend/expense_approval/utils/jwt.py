"""JWT Token Validation - HS256 bearer tokens issued by the account service"""
import jwt
from datetime import timedelta
from typing import Any, Dict, Optional

from ..config.settings import settings
from ..domain.enums import ActorRole
from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from .time import utc_now
from .logger import get_logger

logger = get_logger(__name__)


class JWTValidator:
    """
    Bearer token validator

    Tokens carry the acting user id (`sub`), the company (`company_id`)
    and the role the user acts in (`role`).
    """

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret = secret or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate a bearer token

        Args:
            token: Bearer token (with or without 'Bearer ' prefix)

        Returns:
            Decoded token claims

        Raises:
            AuthenticationError: If token is invalid
        """
        if not token:
            raise AuthenticationError("Token is missing")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": True, "require": ["sub"]}
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.PyJWTError as e:
            logger.warning(f"JWT validation error: {e}")
            raise AuthenticationError(f"Invalid token: {str(e)}")

    def get_actor_context(self, token: str) -> ActorContext:
        """Extract actor context from a validated token"""
        claims = self.validate_token(token)

        company_id = claims.get("company_id")
        if not company_id:
            raise AuthenticationError("Token has no company")

        role = claims.get("role", ActorRole.EMPLOYEE.value)
        try:
            actor_role = ActorRole(role)
        except ValueError:
            raise AuthenticationError(f"Unknown role in token: {role}")

        return ActorContext(
            user_id=claims["sub"],
            company_id=company_id,
            role=actor_role,
            display_name=claims.get("name"),
            email=claims.get("email")
        )

    def issue_token(
        self,
        user_id: str,
        company_id: str,
        role: ActorRole,
        expires_in_minutes: int = 60,
        **extra_claims: Any
    ) -> str:
        """Issue a token (used by seed scripts and tests)"""
        now = utc_now()
        claims = {
            "sub": user_id,
            "company_id": company_id,
            "role": role.value,
            "iat": now,
            "exp": now + timedelta(minutes=expires_in_minutes),
            **extra_claims,
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)


# Global validator instance
_jwt_validator: Optional[JWTValidator] = None


def get_jwt_validator() -> JWTValidator:
    """Get global JWT validator instance"""
    global _jwt_validator
    if _jwt_validator is None:
        _jwt_validator = JWTValidator()
    return _jwt_validator


def get_current_user(authorization: str) -> ActorContext:
    """
    Get current user from authorization header

    Args:
        authorization: Authorization header value

    Returns:
        ActorContext
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    return get_jwt_validator().get_actor_context(authorization)
