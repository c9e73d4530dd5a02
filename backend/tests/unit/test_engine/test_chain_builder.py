"""
Approval Chain Builder Tests

The chain shape depends only on the converted amount and the override flags;
approver identities come from the injected resolver.
"""

import pytest

from expense_approval.domain.models import ApprovalOptions
from expense_approval.domain.enums import ApproverRole, ApprovalRuleType, StepStatus
from expense_approval.domain.errors import ApproverResolutionError
from expense_approval.engine.chain_builder import ApprovalChainBuilder
from expense_approval.engine.identity import StaticApproverResolver

from ...conftest import APPROVER_IDS, COMPANY_ID, OTHER_COMPANY_ID

M, F, D = ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.DIRECTOR


@pytest.fixture
def builder(resolver):
    return ApprovalChainBuilder(resolver, manager_only_max_amount=100, finance_max_amount=1000)


class TestTiers:
    """Tiered chains on converted amount"""

    @pytest.mark.parametrize("amount, roles", [
        (50, [M]),
        (100, [M]),
        (100.01, [M, F]),
        (500, [M, F]),
        (1000, [M, F]),
        (1000.01, [M, F, D]),
        (5000, [M, F, D]),
    ])
    def test_roles_follow_amount(self, builder, make_expense, amount, roles):
        chain = builder.build(make_expense(amount=amount), COMPANY_ID)

        assert chain.roles == roles
        assert chain.rules.type == ApprovalRuleType.SEQUENTIAL

    def test_tiers_compare_converted_amount(self, builder, make_expense):
        """A large foreign amount that converts small stays manager-only"""
        expense = make_expense(amount=8000, currency="INR", converted_amount=100, conversion_rate=0.0125)

        assert builder.build(expense, COMPANY_ID).roles == [M]

    def test_same_input_same_chain(self, builder, make_expense):
        expense = make_expense(amount=750)

        first = builder.build(expense, COMPANY_ID)
        second = builder.build(expense, COMPANY_ID)

        assert first.roles == second.roles
        assert [s.approver_id for s in first.steps] == [s.approver_id for s in second.steps]

    def test_thresholds_come_from_constructor(self, resolver, make_expense):
        builder = ApprovalChainBuilder(resolver, manager_only_max_amount=500, finance_max_amount=2000)

        assert builder.build(make_expense(amount=400), COMPANY_ID).roles == [M]
        assert builder.build(make_expense(amount=1500), COMPANY_ID).roles == [M, F]


class TestOverrides:
    """director_only and manager_only overrides"""

    @pytest.mark.parametrize("amount", [10, 500, 50000])
    def test_director_only_regardless_of_amount(self, builder, make_expense, amount):
        chain = builder.build(make_expense(amount=amount), COMPANY_ID, ApprovalOptions(director_only=True))

        assert chain.roles == [D]
        assert chain.rules.type == ApprovalRuleType.DIRECTOR_ONLY

    def test_manager_only(self, builder, make_expense):
        chain = builder.build(make_expense(amount=5000), COMPANY_ID, ApprovalOptions(manager_only=True))

        assert chain.roles == [M]
        assert chain.rules.type == ApprovalRuleType.MANAGER_ONLY

    def test_director_only_takes_precedence(self, builder, make_expense):
        options = ApprovalOptions(director_only=True, manager_only=True)

        assert builder.build(make_expense(amount=50), COMPANY_ID, options).roles == [D]


class TestSteps:
    """Shape of the produced steps"""

    def test_steps_are_numbered_and_only_first_is_pending(self, builder, make_expense):
        chain = builder.build(make_expense(amount=5000), COMPANY_ID)

        assert [s.step for s in chain.steps] == [1, 2, 3]
        assert [s.status for s in chain.steps] == [StepStatus.PENDING, StepStatus.WAITING, StepStatus.WAITING]
        assert all(s.acted_at is None and s.comments is None for s in chain.steps)

    def test_approver_ids_resolved_per_role(self, builder, make_expense):
        chain = builder.build(make_expense(amount=5000), COMPANY_ID)

        assert [s.approver_id for s in chain.steps] == [
            APPROVER_IDS["MANAGER"], APPROVER_IDS["FINANCE"], APPROVER_IDS["DIRECTOR"]
        ]

    def test_company_override_wins(self, make_expense):
        resolver = StaticApproverResolver(APPROVER_IDS, {OTHER_COMPANY_ID: {"MANAGER": "USR-othermgr"}})
        builder = ApprovalChainBuilder(resolver, manager_only_max_amount=100, finance_max_amount=1000)

        assert builder.build(make_expense(amount=50), OTHER_COMPANY_ID).steps[0].approver_id == "USR-othermgr"
        assert builder.build(make_expense(amount=50), COMPANY_ID).steps[0].approver_id == APPROVER_IDS["MANAGER"]

    def test_expense_not_modified(self, builder, make_expense):
        expense = make_expense(amount=5000)
        before = expense.model_dump()

        builder.build(expense, COMPANY_ID)

        assert expense.model_dump() == before

    def test_missing_approver_raises(self, make_expense):
        resolver = StaticApproverResolver({"MANAGER": "USR-manager01"}, {})
        builder = ApprovalChainBuilder(resolver, manager_only_max_amount=100, finance_max_amount=1000)

        with pytest.raises(ApproverResolutionError):
            builder.build(make_expense(amount=500), COMPANY_ID)
