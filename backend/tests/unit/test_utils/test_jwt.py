"""
JWT Validator Tests
"""

import jwt
import pytest

from expense_approval.domain.enums import ActorRole, ApproverRole
from expense_approval.domain.errors import AuthenticationError
from expense_approval.utils.jwt import JWTValidator, get_current_user, get_jwt_validator

SECRET = "test-secret-key-long-enough-for-hs256"


@pytest.fixture
def validator() -> JWTValidator:
    return JWTValidator(secret=SECRET, algorithm="HS256")


class TestValidateToken:

    def test_issued_token_round_trips(self, validator):
        token = validator.issue_token("USR-manager01", "CMP-test0001", ActorRole.MANAGER, name="Maya")

        actor = validator.get_actor_context(f"Bearer {token}")

        assert actor.user_id == "USR-manager01"
        assert actor.company_id == "CMP-test0001"
        assert actor.role == ActorRole.MANAGER
        assert actor.approver_role == ApproverRole.MANAGER
        assert actor.display_name == "Maya"

    def test_employee_has_no_approver_role(self, validator):
        token = validator.issue_token("USR-employee01", "CMP-test0001", ActorRole.EMPLOYEE)

        assert validator.get_actor_context(token).approver_role is None

    def test_expired(self, validator):
        token = validator.issue_token("USR-employee01", "CMP-test0001", ActorRole.EMPLOYEE, expires_in_minutes=-5)

        with pytest.raises(AuthenticationError, match="expired"):
            validator.validate_token(token)

    def test_wrong_secret(self, validator):
        token = JWTValidator(secret="another-secret-also-long-enough-xx").issue_token(
            "USR-employee01", "CMP-test0001", ActorRole.EMPLOYEE
        )

        with pytest.raises(AuthenticationError, match="Invalid token"):
            validator.validate_token(token)

    def test_missing_token(self, validator):
        with pytest.raises(AuthenticationError):
            validator.validate_token("")

    def test_missing_subject(self, validator):
        token = jwt.encode({"company_id": "CMP-test0001"}, SECRET, algorithm="HS256")

        with pytest.raises(AuthenticationError):
            validator.validate_token(token)


class TestActorContext:

    def test_missing_company(self, validator):
        token = jwt.encode({"sub": "USR-employee01"}, SECRET, algorithm="HS256")

        with pytest.raises(AuthenticationError, match="no company"):
            validator.get_actor_context(token)

    def test_unknown_role(self, validator):
        token = jwt.encode({"sub": "USR-x", "company_id": "CMP-test0001", "role": "JANITOR"}, SECRET, algorithm="HS256")

        with pytest.raises(AuthenticationError, match="Unknown role"):
            validator.get_actor_context(token)

    def test_role_defaults_to_employee(self, validator):
        token = jwt.encode({"sub": "USR-x", "company_id": "CMP-test0001"}, SECRET, algorithm="HS256")

        assert validator.get_actor_context(token).role == ActorRole.EMPLOYEE

    def test_get_current_user_requires_header(self):
        with pytest.raises(AuthenticationError):
            get_current_user("")

    def test_get_current_user_uses_global_validator(self):
        token = get_jwt_validator().issue_token("USR-cfo000001", "CMP-test0001", ActorRole.CFO)

        assert get_current_user(f"Bearer {token}").role == ActorRole.CFO
