"""Statutory rule loading, caching and validation."""

from statutory_engine.rules.cache import RuleSetCache
from statutory_engine.rules.repository import StatutoryRuleRepository
from statutory_engine.rules.validation import validate_rule_set

__all__ = ["RuleSetCache", "StatutoryRuleRepository", "validate_rule_set"]
