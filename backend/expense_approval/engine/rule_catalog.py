"""Rule Catalog - Conditional rules available for attaching to expenses"""
import json
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from ..config.settings import settings
from ..domain.models import (
    ConditionalRule, KnownConditionalRule, KNOWN_RULE_TYPES, PercentageRule,
    SpecificRule, HybridRule, PercentageCondition, SpecificCondition,
    AmountThresholdRule, CategorySpecificRule, UnrecognizedRule
)
from ..domain.enums import ApproverRole, ExpenseCategory
from ..domain.errors import ValidationError
from ..utils.logger import get_logger

logger = get_logger(__name__)

_rules_adapter = TypeAdapter(List[ConditionalRule])
_known_rule_adapter = TypeAdapter(KnownConditionalRule)


def _error_list(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"]}
        for err in error.errors(include_url=False)
    ]


def builtin_rules() -> List[ConditionalRule]:
    """The default rule set, one rule per variant"""
    return [
        PercentageRule(
            id="rule_percentage_60",
            description="Auto-approve when 60% of approvals are received",
            threshold=60,
        ),
        SpecificRule(
            id="rule_specific_cfo",
            description="Auto-approve when CFO approves",
            approver_role=ApproverRole.CFO,
        ),
        HybridRule(
            id="rule_hybrid_60_or_cfo",
            description="Auto-approve when 60% OR CFO approves",
            rule="60% OR CFO",
            conditions=[
                PercentageCondition(threshold=60),
                SpecificCondition(approver_role=ApproverRole.CFO),
            ],
        ),
        AmountThresholdRule(
            id="rule_amount_1000",
            description="Auto-approve when amount >= 1000",
            threshold=1000,
        ),
        CategorySpecificRule(
            id="rule_category_office_supplies",
            description="Auto-approve when OFFICE_SUPPLIES category and DIRECTOR approves",
            category=ExpenseCategory.OFFICE_SUPPLIES,
            approver_role=ApproverRole.DIRECTOR,
        ),
    ]


class RuleCatalog:
    """
    Source of conditional rule definitions

    Rules come from the JSON file named by `rule_catalog_path` when set,
    otherwise from the built-in set.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path if path is not None else settings.rule_catalog_path

    def load_available_rules(self) -> List[ConditionalRule]:
        if not self.path:
            return builtin_rules()

        try:
            with open(self.path, encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read rule catalog {self.path}: {e}")
            raise ValidationError(
                "Rule catalog could not be loaded",
                details={"path": self.path, "reason": str(e)}
            )

        try:
            rules = _rules_adapter.validate_python(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                "Rule catalog contains invalid rules",
                details={"path": self.path, "errors": _error_list(e)}
            )

        errors = self._malformed_known_rules(rules, raw)
        if errors:
            raise ValidationError(
                "Rule catalog contains invalid rules",
                details={"path": self.path, "errors": errors}
            )

        logger.info(f"Loaded {len(rules)} conditional rules from {self.path}")
        return rules

    @staticmethod
    def _malformed_known_rules(rules: List[ConditionalRule], raw: List[Any]) -> List[Dict[str, Any]]:
        """Known rule types that only loaded as UnrecognizedRule, with the reason"""
        errors = []
        for index, rule in enumerate(rules):
            if not isinstance(rule, UnrecognizedRule) or rule.type not in KNOWN_RULE_TYPES:
                continue
            try:
                _known_rule_adapter.validate_python(raw[index])
            except PydanticValidationError as e:
                errors.append({"index": index, "id": rule.id, "type": rule.type, "errors": _error_list(e)})
        return errors

    def select(self, rule_ids: Optional[List[str]] = None) -> List[ConditionalRule]:
        """Rules with the given ids, or every rule when no ids are given"""
        rules = self.load_available_rules()
        if not rule_ids:
            return rules

        selected = [rule for rule in rules if rule.id in rule_ids]
        missing = sorted(set(rule_ids) - {rule.id for rule in selected})
        if missing:
            raise ValidationError(
                "Unknown conditional rule ids",
                details={"unknown_rule_ids": missing}
            )
        return selected
