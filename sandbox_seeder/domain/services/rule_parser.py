"""
Rule Parser - static analysis of validation-rule formulas.

Turns raw formula text into a ParsedFormula: referenced fields, pattern tags,
complexity class, risk level and the cross-field dependencies the formula
implies. Analysis works on the same AST the evaluator executes, but never
evaluates anything.

Key Responsibilities:
    - Extract distinct field references, including dotted cross-object paths
    - Tag structural patterns (required check, conditional requirement, ...)
    - Classify complexity and risk
    - Derive FieldDependency entries from guard + blank-check shapes
    - Aggregate analysis across an object's rule set

A formula that cannot be parsed is never an error here: it is classified as
complex, medium risk, with no fields, and the parser message is kept on the
result for diagnostics.

Example:
    >>> parser = ValidationRuleParser()
    >>> parsed = parser.parse_validation_rule_formula(
    ...     'AND(ISPICKVAL(Type, "Customer"), ISBLANK(Industry))', "Account")
    >>> parsed.fields
    ('Type', 'Industry')
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from functools import lru_cache

from sandbox_seeder.domain.entities.analysis import ParsedFormula, RuleSetAnalysis
from sandbox_seeder.domain.entities.constraints import DependencyKind, DependencyOperator, FieldDependency
from sandbox_seeder.domain.entities.validation_rule import Complexity, RiskLevel, RulePattern, ValidationRule
from sandbox_seeder.domain.exceptions import ParseError

from .formula import SUPPORTED_FUNCTIONS, BinaryOp, FieldRef, FunctionCall, Literal, Node, UnaryOp, depth, walk
from .formula.parser import parse_formula

logger = logging.getLogger(__name__)

BLANK_CHECK_FUNCTIONS = frozenset({"ISBLANK", "ISNULL"})
NOT_BLANK_FUNCTIONS = frozenset({"ISNOTBLANK", "ISNOTNULL"})
DATE_FUNCTIONS = frozenset(
    {"TODAY", "NOW", "DATE", "DATEVALUE", "DATETIMEVALUE", "YEAR", "MONTH", "DAY", "ADDMONTHS", "WEEKDAY"}
)
FORMAT_FUNCTIONS = frozenset({"REGEX", "CONTAINS", "BEGINS", "LEN"})
SYSTEM_CONTEXT_FUNCTIONS = frozenset({"PRIORVALUE", "ISCHANGED", "ISNEW", "ISCLONE"})
PREDICATE_FUNCTIONS = (
    BLANK_CHECK_FUNCTIONS
    | NOT_BLANK_FUNCTIONS
    | SYSTEM_CONTEXT_FUNCTIONS
    | frozenset({"ISPICKVAL", "CONTAINS", "BEGINS", "REGEX", "INCLUDES", "ISNUMBER"})
)
COMPARISON_OPERATORS = frozenset({"=", "!=", "<", "<=", ">", ">="})
ORDERING_OPERATORS = frozenset({"<", "<=", ">", ">="})

# Complexity thresholds
SIMPLE_MAX_PREDICATES = 1
SIMPLE_MAX_DEPTH = 3
MODERATE_MAX_PREDICATES = 3
MODERATE_MAX_DEPTH = 6


def blank_check_target(node: Node) -> str | None:
    """Field name when node is ``ISBLANK(Field)`` or ``ISNULL(Field)``."""
    if (
        isinstance(node, FunctionCall)
        and node.name in BLANK_CHECK_FUNCTIONS
        and len(node.args) == 1
        and isinstance(node.args[0], FieldRef)
    ):
        return node.args[0].path
    return None


def is_numeric_literal(node: Node) -> bool:
    if isinstance(node, UnaryOp) and node.op == "-":
        return is_numeric_literal(node.operand)
    return isinstance(node, Literal) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool)


def referenced_fields(node: Node) -> list[str]:
    """Distinct record field references under node, in order of first appearance."""
    seen: list[str] = []
    for item in walk(node):
        if isinstance(item, FieldRef) and not item.is_global and item.path not in seen:
            seen.append(item.path)
    return seen


class ValidationRuleParser:
    """Extracts fields, patterns, complexity and risk from rule formulas."""

    def __init__(self, cache_size: int = 512) -> None:
        self._analyse = lru_cache(maxsize=cache_size)(self._analyse_formula)

    def parse_validation_rule_formula(
        self, formula: str, object_name: str = "", rule_id: str | None = None
    ) -> ParsedFormula:
        """
        Analyse one formula.

        Args:
            formula: Rule formula text
            object_name: Owning object, used for diagnostics
            rule_id: Stamped on the derived dependencies when given

        Returns:
            ParsedFormula; conservative classification when parsing fails
        """
        parsed = self._analyse(formula or "")
        if parsed.parse_error:
            logger.debug(f"Could not parse rule {rule_id or '?'} on {object_name or '?'}: {parsed.parse_error}")
        if rule_id and parsed.dependencies:
            parsed = replace(
                parsed,
                dependencies=tuple(replace(dep, source_rule_id=rule_id) for dep in parsed.dependencies),
            )
        return parsed

    def parse_rule(self, rule: ValidationRule, object_name: str = "") -> tuple[ValidationRule, ParsedFormula]:
        """Analyse a rule and return an analysed copy alongside the raw analysis."""
        parsed = self.parse_validation_rule_formula(rule.formula, object_name, rule.id)
        analysed = rule.with_analysis(parsed.fields, parsed.complexity, parsed.risk_level, parsed.patterns)
        return analysed, parsed

    def parse_object_validation_rules(
        self, rules: Sequence[ValidationRule], object_name: str
    ) -> RuleSetAnalysis:
        """
        Aggregate analysis over an object's rule set.

        Only active rules contribute fields, dependencies and scores; inactive
        rules are counted in ``total_rules`` only.
        """
        analysis = RuleSetAnalysis(object_name=object_name, total_rules=len(rules))
        active = [rule for rule in rules if rule.active]
        analysis.active_rules = len(active)

        complexity_total = 0
        risk_total = 0
        for rule in active:
            parsed = self.parse_validation_rule_formula(rule.formula, object_name, rule.id)
            analysis.parsed_rules[rule.id] = parsed

            for name in parsed.fields:
                if name not in analysis.all_fields:
                    analysis.all_fields.append(name)
            for dependency in parsed.dependencies:
                if dependency not in analysis.all_dependencies:
                    analysis.all_dependencies.append(dependency)
            for pattern in parsed.patterns:
                analysis.patterns[pattern] = analysis.patterns.get(pattern, 0) + 1

            complexity_total += parsed.complexity.score
            risk_total += parsed.risk_level.score

        if active:
            analysis.overall_complexity = _level_from_mean(
                complexity_total / len(active), Complexity.SIMPLE, Complexity.MODERATE, Complexity.COMPLEX
            )
            analysis.overall_risk = _level_from_mean(
                risk_total / len(active), RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH
            )

        logger.debug(
            f"Analysed {analysis.active_rules}/{analysis.total_rules} rules for {object_name}: "
            f"{len(analysis.all_fields)} fields, {len(analysis.all_dependencies)} dependencies"
        )
        return analysis

    def _analyse_formula(self, formula: str) -> ParsedFormula:
        try:
            root = parse_formula(formula)
        except ParseError as e:
            return ParsedFormula(
                formula=formula,
                complexity=Complexity.COMPLEX,
                risk_level=RiskLevel.MEDIUM,
                parse_error=str(e) or type(e).__name__,
            )

        nodes = list(walk(root))
        functions = _distinct(node.name for node in nodes if isinstance(node, FunctionCall))
        operators = _distinct(node.op for node in nodes if isinstance(node, (BinaryOp, UnaryOp)))
        unsupported = tuple(name for name in functions if name not in SUPPORTED_FUNCTIONS)

        patterns = self._detect_patterns(nodes, functions, unsupported)
        complexity = self._classify_complexity(root, nodes)
        risk = self._assess_risk(patterns, complexity)

        return ParsedFormula(
            formula=formula,
            fields=tuple(referenced_fields(root)),
            complexity=complexity,
            risk_level=risk,
            patterns=frozenset(patterns),
            functions=functions,
            operators=operators,
            unsupported_functions=unsupported,
            dependencies=tuple(self._extract_dependencies(nodes)),
        )

    def _detect_patterns(
        self, nodes: list[Node], functions: tuple[str, ...], unsupported: tuple[str, ...]
    ) -> set[RulePattern]:
        patterns: set[RulePattern] = set()
        used = set(functions)

        if any(blank_check_target(node) for node in nodes):
            patterns.add(RulePattern.REQUIRED_FIELD_CHECK)
        if any(self._is_conditional_requirement(node) for node in nodes):
            patterns.add(RulePattern.CONDITIONAL_REQUIREMENT)
        if used & DATE_FUNCTIONS:
            patterns.add(RulePattern.DATE_VALIDATION)
        if any(isinstance(node, FieldRef) and node.is_cross_object for node in nodes):
            patterns.add(RulePattern.CROSS_OBJECT_VALIDATION)
        if "ISPICKVAL" in used:
            patterns.add(RulePattern.PICKLIST_VALIDATION)
        if any(
            isinstance(node, BinaryOp)
            and node.op in ORDERING_OPERATORS
            and (is_numeric_literal(node.left) or is_numeric_literal(node.right))
            for node in nodes
        ):
            patterns.add(RulePattern.RANGE_VALIDATION)
        if used & FORMAT_FUNCTIONS:
            patterns.add(RulePattern.FORMAT_VALIDATION)
        if used & SYSTEM_CONTEXT_FUNCTIONS or any(
            isinstance(node, FieldRef) and node.is_global for node in nodes
        ):
            patterns.add(RulePattern.SYSTEM_CONTEXT)
        if unsupported:
            patterns.add(RulePattern.UNSUPPORTED_FUNCTION)
        return patterns

    @staticmethod
    def _is_conditional_requirement(node: Node) -> bool:
        operands = _conjunction_operands(node)
        if operands is not None:
            has_blank = any(blank_check_target(item) for item in operands)
            has_guard = any(blank_check_target(item) is None for item in operands)
            return has_blank and has_guard
        if isinstance(node, FunctionCall) and node.name == "IF" and len(node.args) >= 2:
            return any(
                blank_check_target(item) for branch in node.args[1:] for item in walk(branch)
            )
        return False

    @staticmethod
    def _classify_complexity(root: Node, nodes: list[Node]) -> Complexity:
        predicates = sum(
            1
            for node in nodes
            if (isinstance(node, BinaryOp) and node.op in COMPARISON_OPERATORS)
            or (
                isinstance(node, FunctionCall)
                and (node.name in PREDICATE_FUNCTIONS or node.name not in SUPPORTED_FUNCTIONS)
            )
        )
        tree_depth = depth(root)

        if predicates <= SIMPLE_MAX_PREDICATES and tree_depth <= SIMPLE_MAX_DEPTH:
            return Complexity.SIMPLE
        if predicates <= MODERATE_MAX_PREDICATES and tree_depth <= MODERATE_MAX_DEPTH:
            return Complexity.MODERATE
        return Complexity.COMPLEX

    @staticmethod
    def _assess_risk(patterns: set[RulePattern], complexity: Complexity) -> RiskLevel:
        if patterns & {
            RulePattern.CROSS_OBJECT_VALIDATION,
            RulePattern.DATE_VALIDATION,
            RulePattern.SYSTEM_CONTEXT,
        }:
            return RiskLevel.HIGH
        if (
            complexity is Complexity.COMPLEX
            or RulePattern.CONDITIONAL_REQUIREMENT in patterns
            or RulePattern.UNSUPPORTED_FUNCTION in patterns
            or len(patterns) > 3
        ):
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def _extract_dependencies(self, nodes: list[Node]) -> list[FieldDependency]:
        dependencies: list[FieldDependency] = []

        def add(dependency: FieldDependency) -> None:
            if dependency.source_field != dependency.target_field and dependency not in dependencies:
                dependencies.append(dependency)

        for node in nodes:
            if isinstance(node, FunctionCall) and node.name == "IF" and len(node.args) >= 2:
                target = blank_check_target(node.args[1])
                if target:
                    self._add_required_if([node.args[0]], [target], add)
                continue

            operands = _conjunction_operands(node)
            if operands is not None:
                targets = [name for name in map(blank_check_target, operands) if name]
                guards = [item for item in operands if blank_check_target(item) is None]
                if targets and guards:
                    self._add_required_if(guards, targets, add)
                elif len(targets) >= 2:
                    self._add_conditional(targets, DependencyOperator.AND, add)
                continue

            operands = _disjunction_operands(node)
            if operands is not None:
                targets = [name for name in map(blank_check_target, operands) if name]
                if len(targets) == len(operands) and len(targets) >= 2:
                    self._add_conditional(targets, DependencyOperator.OR, add)

        return dependencies

    @staticmethod
    def _add_required_if(guards: list[Node], targets: list[str], add) -> None:
        if len(guards) == 1:
            condition = guards[0].to_formula()
        else:
            condition = FunctionCall("AND", tuple(guards)).to_formula()
        sources = _distinct(name for guard in guards for name in referenced_fields(guard))
        for target in targets:
            for source in sources:
                add(FieldDependency(source, target, DependencyKind.REQUIRED_IF, condition))

    @staticmethod
    def _add_conditional(targets: list[str], operator: DependencyOperator, add) -> None:
        first = targets[0]
        for other in targets[1:]:
            condition = f"{operator.value}(ISBLANK({first}), ISBLANK({other}))"
            add(FieldDependency(first, other, DependencyKind.CONDITIONAL, condition, operator))


def _conjunction_operands(node: Node) -> tuple[Node, ...] | None:
    if isinstance(node, FunctionCall) and node.name == "AND":
        return node.args
    if isinstance(node, BinaryOp) and node.op == "&&":
        return (node.left, node.right)
    return None


def _disjunction_operands(node: Node) -> tuple[Node, ...] | None:
    if isinstance(node, FunctionCall) and node.name == "OR":
        return node.args
    if isinstance(node, BinaryOp) and node.op == "||":
        return (node.left, node.right)
    return None


def _distinct(items: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


def _level_from_mean(mean: float, low, medium, high):
    if mean >= 2.5:
        return high
    if mean >= 1.5:
        return medium
    return low


def blank_checked_fields(formula: str) -> list[str]:
    """Fields tested with ISBLANK/ISNULL anywhere in the formula; empty if it does not parse."""
    try:
        root = parse_formula(formula)
    except ParseError:
        return []
    names: list[str] = []
    for node in walk(root):
        target = blank_check_target(node)
        if target and target not in names:
            names.append(target)
    return names
