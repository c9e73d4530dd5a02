"""Approval Engine - Chain building, rule evaluation and state transitions"""
from .chain_builder import ApprovalChainBuilder, ApprovalChain
from .rule_evaluator import RuleEvaluator
from .state_machine import WorkflowStateMachine, Transition, LogEntry
from .identity import ApproverResolver, StaticApproverResolver
from .rule_catalog import RuleCatalog, builtin_rules
from .audit_writer import AuditWriter
from .effects import EffectRunner, Notifier

__all__ = [
    "ApprovalChainBuilder",
    "ApprovalChain",
    "RuleEvaluator",
    "WorkflowStateMachine",
    "Transition",
    "LogEntry",
    "ApproverResolver",
    "StaticApproverResolver",
    "RuleCatalog",
    "builtin_rules",
    "AuditWriter",
    "EffectRunner",
    "Notifier",
]
