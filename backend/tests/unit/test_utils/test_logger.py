"""
JSON Log Formatter Tests
"""

import json
import logging

from expense_approval.domain.enums import ExpenseStatus
from expense_approval.utils.logger import JsonFormatter, set_correlation_id


def make_record(**extra):
    record = logging.LogRecord("expense_approval.test", logging.INFO, __file__, 1, "Step %s approved", (1,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_known_extra_fields_are_top_level():
    output = json.loads(JsonFormatter().format(make_record(expense_id="EXP-1", status=ExpenseStatus.APPROVED)))

    assert output["message"] == "Step 1 approved"
    assert output["level"] == "INFO"
    assert output["expense_id"] == "EXP-1"
    assert output["status"] == "APPROVED"
    assert output["timestamp"].endswith("Z")


def test_unknown_extra_fields_are_dropped():
    output = json.loads(JsonFormatter().format(make_record(favourite_colour="teal")))

    assert "favourite_colour" not in output


def test_correlation_id_from_context():
    set_correlation_id("COR-formatter")

    output = json.loads(JsonFormatter().format(make_record()))

    assert output["correlation_id"] == "COR-formatter"
