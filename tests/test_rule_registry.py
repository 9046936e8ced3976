"""Tests for the rule registry."""

from itertools import permutations

import pytest

from app.services.sql_conversion import Dialect, RuleConfigurationError, Severity, WarningKind
from app.services.sql_conversion.converters.function_dispatcher import FunctionDispatcher
from app.services.sql_conversion.rules.registry import ParameterTransform, RuleRegistry


class TestDefaultRegistry:
    """Test the registry loaded from the JSON tables."""

    def test_every_pair_configured(self, registry: RuleRegistry) -> None:
        """All six ordered dialect pairs have a table."""
        assert set(registry.pairs()) == set(permutations(Dialect, 2))

    def test_lookup_is_case_insensitive(self, registry: RuleRegistry) -> None:
        """Function lookups ignore case."""
        rule = registry.get_rule(Dialect.ORACLE, Dialect.MYSQL, 'nvl')
        assert rule is not None
        assert rule.target_function == 'IFNULL'
        assert rule.parameter_transform is ParameterTransform.RENAME

    def test_pair_specific_targets(self, registry: RuleRegistry) -> None:
        """The same function maps differently per target."""
        assert registry.get_rule(Dialect.ORACLE, Dialect.POSTGRESQL, 'NVL').target_function == 'COALESCE'
        assert registry.get_rule(Dialect.MYSQL, Dialect.ORACLE, 'IFNULL').target_function == 'NVL'

    def test_unknown_function(self, registry: RuleRegistry) -> None:
        """Unknown functions have no rule."""
        assert registry.get_rule(Dialect.ORACLE, Dialect.MYSQL, 'NO_SUCH_FN') is None

    def test_rule_warning(self, registry: RuleRegistry) -> None:
        """A rule with a warning definition exposes it."""
        warning = registry.get_rule(Dialect.ORACLE, Dialect.MYSQL, 'DECODE').warning
        assert warning.kind is WarningKind.SYNTAX_DIFFERENCE
        assert warning.severity is Severity.INFO

    def test_identity_pair_is_empty(self, registry: RuleRegistry) -> None:
        """No rules exist for a dialect to itself."""
        assert registry.get_rules(Dialect.MYSQL, Dialect.MYSQL) == ()
        assert registry.get_syntax_fixes(Dialect.ORACLE, Dialect.ORACLE) == ()


class TestTableValidation:
    """Test that malformed tables are rejected at construction."""

    def test_duplicate_rule(self) -> None:
        """Two rules for one function are rejected."""
        table = {'function_mappings': [
            {'source': 'NVL', 'target': 'IFNULL'},
            {'source': 'nvl', 'target': 'COALESCE'},
        ]}
        with pytest.raises(RuleConfigurationError, match='duplicate'):
            RuleRegistry.from_tables({(Dialect.ORACLE, Dialect.MYSQL): table})

    def test_unknown_transform(self) -> None:
        """An unknown transform name is rejected."""
        table = {'function_mappings': [{'source': 'NVL', 'target': 'IFNULL', 'transform': 'REVERSE'}]}
        with pytest.raises(RuleConfigurationError, match='oracle_mysql'):
            RuleRegistry.from_tables({(Dialect.ORACLE, Dialect.MYSQL): table})

    def test_bad_syntax_fix_regex(self) -> None:
        """An invalid regex in a syntax fix is rejected."""
        table = {'syntax_fixes': [{'name': 'broken', 'regex': '(unclosed', 'replacement': ''}]}
        with pytest.raises(RuleConfigurationError, match='broken'):
            RuleRegistry.from_tables({(Dialect.ORACLE, Dialect.MYSQL): table})

    def test_case_rule_for_unsupported_function(self) -> None:
        """A CASE transform on a function the CASE builder cannot handle fails at dispatcher construction."""
        table = {'function_mappings': [{'source': 'UPPER', 'target': 'CASE', 'transform': 'TO_CASE_WHEN'}]}
        registry = RuleRegistry.from_tables({(Dialect.ORACLE, Dialect.MYSQL): table})
        with pytest.raises(RuleConfigurationError):
            FunctionDispatcher(Dialect.ORACLE, Dialect.MYSQL, registry)
