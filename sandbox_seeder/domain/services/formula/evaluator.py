"""
Formula Evaluator - interprets validation-rule formulas against a record.

The evaluator walks the AST produced by ``parse_formula`` once per call, so cost
is linear in node count. It never raises for user-supplied formulas: malformed
text, unsupported functions and type mismatches all evaluate to ``False``, the
conservative answer for a rule-violation check. Callers that need to know *why*
use ``can_evaluate`` and ``get_unsupported_functions``.

Blank semantics are shared with every other component through ``is_blank``:
a value is blank iff it is ``None``, an empty string or whitespace only.

Example:
    >>> evaluator = FormulaEvaluator()
    >>> evaluator.evaluate('AND(Type = "Customer", ISBLANK(Industry))',
    ...                    {"Type": "Customer", "Industry": ""})
    True
"""

import logging
import math
from collections.abc import Callable, Generator, Mapping, Sequence
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sandbox_seeder.domain.entities.schema import FieldMetadata, FieldType
from sandbox_seeder.domain.exceptions import DomainException, EvaluationError, UnsupportedFunctionError
from .nodes import BinaryOp, FieldRef, FunctionCall, Literal, Node, UnaryOp, walk
from .parser import parse_formula

logger = logging.getLogger(__name__)

FieldMetadataInput = Mapping[str, FieldMetadata] | Sequence[FieldMetadata] | None


def is_blank(value: Any) -> bool:
    """True iff value is None, an empty string or a whitespace-only string."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def coerce_field_value(value: Any, field_type: FieldType | None) -> Any:
    """Convert a raw record value into the Python type the evaluator compares with."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        value = float(value)
    if field_type is None or (isinstance(value, str) and is_blank(value)):
        return value

    if field_type is FieldType.DATE:
        return _to_date(value) or value
    if field_type is FieldType.DATETIME:
        return _to_datetime(value) or value
    if field_type.is_numeric:
        number = _to_number(value)
        return value if number is None else number
    if field_type is FieldType.BOOLEAN and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
    return value


def _normalise_metadata(field_metadata: FieldMetadataInput) -> dict[str, FieldMetadata]:
    if not field_metadata:
        return {}
    items = field_metadata.values() if isinstance(field_metadata, Mapping) else field_metadata
    return {item.name.lower(): item for item in items}


def resolve_path(record: Mapping[str, Any], path: str) -> Any:
    """
    Resolve a (possibly dotted) field path against a record.

    Exact keys win, then case-insensitive keys, then one step of relationship
    navigation per dot. Absent paths resolve to ``None``.
    """
    if path in record:
        return record[path]

    lowered = path.lower()
    for key, value in record.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value

    if "." not in path:
        return None

    head, rest = path.split(".", 1)
    child = resolve_path(record, head)
    if isinstance(child, Mapping):
        return resolve_path(child, rest)
    return None


# Handlers are generators: they yield a child node and receive its value back.
# ``_Interpreter.visit`` keeps the suspended handlers on an explicit stack, so
# evaluation depth is bounded by memory rather than the interpreter's frame limit.
Step = Generator[Node, Any, Any]


class _Interpreter:
    """Evaluates one AST against one record."""

    def __init__(
        self,
        record: Mapping[str, Any],
        metadata: dict[str, FieldMetadata],
        clock: Callable[[], datetime],
    ) -> None:
        self.record = record
        self.metadata = metadata
        self.clock = clock

    def visit(self, root: Node) -> Any:
        if isinstance(root, (Literal, FieldRef)):
            return self._leaf(root)

        stack = [self._start(root)]
        value: Any = None
        while stack:
            try:
                child = stack[-1].send(value)
            except StopIteration as done:
                stack.pop()
                value = done.value
                continue
            if isinstance(child, (Literal, FieldRef)):
                value = self._leaf(child)
            else:
                stack.append(self._start(child))
                value = None
        return value

    def _leaf(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, FieldRef):
            return self._field(node.path)
        raise EvaluationError(f"Unknown node type: {type(node).__name__}")

    def _start(self, node: Node) -> Step:
        if isinstance(node, FunctionCall):
            handler = FUNCTIONS.get(node.name)
            if handler is None:
                raise UnsupportedFunctionError(node.name)
            return handler(self, node.args)
        if isinstance(node, BinaryOp):
            return self._binary(node)
        if isinstance(node, UnaryOp):
            return self._unary(node)
        raise EvaluationError(f"Unknown node type: {type(node).__name__}")

    def _field(self, path: str) -> Any:
        value = resolve_path(self.record, path)
        meta = self.metadata.get(path.lower())
        return coerce_field_value(value, meta.type if meta else None)

    def _unary(self, node: UnaryOp) -> Step:
        value = yield node.operand
        if node.op == "!":
            return not truthy(value)
        number = _to_number(value)
        if number is None:
            return None
        return -number if node.op == "-" else number

    def _binary(self, node: BinaryOp) -> Step:
        op = node.op
        if op == "&&":
            return truthy((yield node.left)) and truthy((yield node.right))
        if op == "||":
            return truthy((yield node.left)) or truthy((yield node.right))

        left = yield node.left
        right = yield node.right

        if op == "=":
            return values_equal(left, right)
        if op == "!=":
            return not values_equal(left, right)
        if op in ("<", "<=", ">", ">="):
            return compare_values(op, left, right)
        if op == "&":
            return _text(left) + _text(right)
        return self._arithmetic(op, left, right)

    def _arithmetic(self, op: str, left: Any, right: Any) -> Any:
        if op == "+" and (isinstance(left, str) or isinstance(right, str)):
            if _to_number(left) is None or _to_number(right) is None:
                return _text(left) + _text(right)

        left_date = left if isinstance(left, date) else None
        right_date = right if isinstance(right, date) else None
        if left_date is not None and op in ("+", "-"):
            if right_date is not None and op == "-":
                return (_to_date(left_date) - _to_date(right_date)).days
            days = _to_number(right)
            if days is None:
                return None
            delta = timedelta(days=days)
            return left_date + delta if op == "+" else left_date - delta

        a = _to_number(left)
        b = _to_number(right)
        if a is None or b is None:
            return None
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            if b == 0:
                raise EvaluationError("Division by zero")
            return a / b
        raise EvaluationError(f"Unsupported operator: {op}")

    # Argument helpers

    def _args(self, args: tuple[Node, ...], name: str, minimum: int, maximum: int | None = None) -> Step:
        upper = minimum if maximum is None else maximum
        if len(args) < minimum or len(args) > upper:
            raise EvaluationError(f"{name} expects {minimum}-{upper} argument(s), got {len(args)}")
        values = []
        for arg in args:
            values.append((yield arg))
        return values

    def _numbers(self, values: list[Any]) -> list[float] | None:
        numbers = [_to_number(value) for value in values]
        if any(number is None for number in numbers):
            return None
        return numbers  # type: ignore[return-value]

    # Blank checks

    def fn_isblank(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "ISBLANK", 1)
        return is_blank(value)

    def fn_isnotblank(self, args: tuple[Node, ...]) -> Step:
        return not (yield from self.fn_isblank(args))

    def fn_blankvalue(self, args: tuple[Node, ...]) -> Step:
        if len(args) != 2:
            raise EvaluationError("BLANKVALUE expects 2 arguments")
        value = yield args[0]
        if is_blank(value):
            return (yield args[1])
        return value

    # Logical

    def fn_and(self, args: tuple[Node, ...]) -> Step:
        if not args:
            raise EvaluationError("AND expects at least one argument")
        for arg in args:
            if not truthy((yield arg)):
                return False
        return True

    def fn_or(self, args: tuple[Node, ...]) -> Step:
        if not args:
            raise EvaluationError("OR expects at least one argument")
        for arg in args:
            if truthy((yield arg)):
                return True
        return False

    def fn_not(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "NOT", 1)
        return not truthy(value)

    def fn_if(self, args: tuple[Node, ...]) -> Step:
        if len(args) not in (2, 3):
            raise EvaluationError("IF expects 2 or 3 arguments")
        if truthy((yield args[0])):
            return (yield args[1])
        if len(args) == 3:
            return (yield args[2])
        return None

    # Text

    def fn_len(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "LEN", 1)
        return len(_text(value))

    def fn_left(self, args: tuple[Node, ...]) -> Step:
        value, count = yield from self._args(args, "LEFT", 2)
        return _text(value)[: max(int(_to_number(count) or 0), 0)]

    def fn_right(self, args: tuple[Node, ...]) -> Step:
        value, count = yield from self._args(args, "RIGHT", 2)
        size = max(int(_to_number(count) or 0), 0)
        return _text(value)[-size:] if size else ""

    def fn_mid(self, args: tuple[Node, ...]) -> Step:
        value, start, count = yield from self._args(args, "MID", 3)
        begin = max(int(_to_number(start) or 1), 1) - 1
        return _text(value)[begin : begin + max(int(_to_number(count) or 0), 0)]

    def fn_upper(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "UPPER", 1)
        return _text(value).upper()

    def fn_lower(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "LOWER", 1)
        return _text(value).lower()

    def fn_trim(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "TRIM", 1)
        return _text(value).strip()

    def fn_contains(self, args: tuple[Node, ...]) -> Step:
        value, fragment = yield from self._args(args, "CONTAINS", 2)
        return _text(fragment) in _text(value)

    def fn_begins(self, args: tuple[Node, ...]) -> Step:
        value, prefix = yield from self._args(args, "BEGINS", 2)
        return _text(value).startswith(_text(prefix))

    def fn_substitute(self, args: tuple[Node, ...]) -> Step:
        value, old, new = yield from self._args(args, "SUBSTITUTE", 3)
        if _text(old) == "":
            return _text(value)
        return _text(value).replace(_text(old), _text(new))

    def fn_includes(self, args: tuple[Node, ...]) -> Step:
        value, option = yield from self._args(args, "INCLUDES", 2)
        return _text(option) in [item.strip() for item in _text(value).split(";")]

    def fn_text(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "TEXT", 1)
        return _text(value)

    def fn_value(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "VALUE", 1)
        number = _to_number(value)
        if number is None:
            raise EvaluationError(f"VALUE cannot convert {value!r}")
        return number

    # Math

    def fn_abs(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "ABS", 1)))
        return None if numbers is None else abs(numbers[0])

    def fn_min(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "MIN", 1, len(args) or 1)))
        return None if numbers is None else min(numbers)

    def fn_max(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "MAX", 1, len(args) or 1)))
        return None if numbers is None else max(numbers)

    def fn_round(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "ROUND", 1, 2)))
        if numbers is None:
            return None
        digits = int(numbers[1]) if len(numbers) > 1 else 0
        scale = 10**digits
        # half away from zero, like the platform rather than banker's rounding
        return math.copysign(math.floor(abs(numbers[0]) * scale + 0.5) / scale, numbers[0])

    def fn_floor(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "FLOOR", 1)))
        return None if numbers is None else float(math.floor(numbers[0]))

    def fn_ceiling(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "CEILING", 1)))
        return None if numbers is None else float(math.ceil(numbers[0]))

    # Dates

    def fn_today(self, args: tuple[Node, ...]) -> Step:
        yield from self._args(args, "TODAY", 0)
        return self.clock().date()

    def fn_now(self, args: tuple[Node, ...]) -> Step:
        yield from self._args(args, "NOW", 0)
        return self.clock()

    def fn_date(self, args: tuple[Node, ...]) -> Step:
        numbers = self._numbers((yield from self._args(args, "DATE", 3)))
        if numbers is None:
            return None
        try:
            return date(int(numbers[0]), int(numbers[1]), int(numbers[2]))
        except ValueError as e:
            raise EvaluationError(f"Invalid date: {e}") from e

    def fn_datevalue(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "DATEVALUE", 1)
        return _to_date(value)

    def fn_year(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "YEAR", 1)
        parsed = _to_date(value)
        return None if parsed is None else parsed.year

    def fn_month(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "MONTH", 1)
        parsed = _to_date(value)
        return None if parsed is None else parsed.month

    def fn_day(self, args: tuple[Node, ...]) -> Step:
        (value,) = yield from self._args(args, "DAY", 1)
        parsed = _to_date(value)
        return None if parsed is None else parsed.day

    # Picklists

    def fn_ispickval(self, args: tuple[Node, ...]) -> Step:
        value, literal = yield from self._args(args, "ISPICKVAL", 2)
        if is_blank(value):
            return is_blank(literal)
        return _text(value) == _text(literal)


FUNCTIONS: dict[str, Callable[[_Interpreter, tuple[Node, ...]], Step]] = {
    "ISBLANK": _Interpreter.fn_isblank,
    "ISNULL": _Interpreter.fn_isblank,
    "ISNOTBLANK": _Interpreter.fn_isnotblank,
    "ISNOTNULL": _Interpreter.fn_isnotblank,
    "BLANKVALUE": _Interpreter.fn_blankvalue,
    "AND": _Interpreter.fn_and,
    "OR": _Interpreter.fn_or,
    "NOT": _Interpreter.fn_not,
    "IF": _Interpreter.fn_if,
    "LEN": _Interpreter.fn_len,
    "LEFT": _Interpreter.fn_left,
    "RIGHT": _Interpreter.fn_right,
    "MID": _Interpreter.fn_mid,
    "UPPER": _Interpreter.fn_upper,
    "LOWER": _Interpreter.fn_lower,
    "TRIM": _Interpreter.fn_trim,
    "CONTAINS": _Interpreter.fn_contains,
    "BEGINS": _Interpreter.fn_begins,
    "SUBSTITUTE": _Interpreter.fn_substitute,
    "INCLUDES": _Interpreter.fn_includes,
    "TEXT": _Interpreter.fn_text,
    "VALUE": _Interpreter.fn_value,
    "ABS": _Interpreter.fn_abs,
    "MIN": _Interpreter.fn_min,
    "MAX": _Interpreter.fn_max,
    "ROUND": _Interpreter.fn_round,
    "FLOOR": _Interpreter.fn_floor,
    "CEILING": _Interpreter.fn_ceiling,
    "TODAY": _Interpreter.fn_today,
    "NOW": _Interpreter.fn_now,
    "DATE": _Interpreter.fn_date,
    "DATEVALUE": _Interpreter.fn_datevalue,
    "YEAR": _Interpreter.fn_year,
    "MONTH": _Interpreter.fn_month,
    "DAY": _Interpreter.fn_day,
    "ISPICKVAL": _Interpreter.fn_ispickval,
}

SUPPORTED_FUNCTIONS = frozenset(FUNCTIONS)


def truthy(value: Any) -> bool:
    """Formula truthiness: only True (or a non-zero number) counts as true."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Bring two operands to a comparable type where one is obviously intended."""
    if isinstance(left, datetime) or isinstance(right, datetime):
        if isinstance(left, datetime) and isinstance(right, datetime):
            return left, right
        if isinstance(left, datetime) and isinstance(right, date):
            return left.date(), right
        if isinstance(right, datetime) and isinstance(left, date):
            return left, right.date()
        other_dt = _to_datetime(right if isinstance(left, datetime) else left)
        if other_dt is not None:
            return (left, other_dt) if isinstance(left, datetime) else (other_dt, right)
        return left, right

    if isinstance(left, date) or isinstance(right, date):
        return _to_date(left) or left, _to_date(right) or right

    left_number = _to_number(left)
    right_number = _to_number(right)
    if left_number is not None and right_number is not None:
        if not (isinstance(left, str) and isinstance(right, str)):
            return left_number, right_number
    return left, right


def values_equal(left: Any, right: Any) -> bool:
    if is_blank(left) or is_blank(right):
        return is_blank(left) and is_blank(right)
    a, b = _coerce_pair(left, right)
    return a == b


def compare_values(op: str, left: Any, right: Any) -> bool:
    if is_blank(left) or is_blank(right):
        return False
    a, b = _coerce_pair(left, right)
    try:
        if op == "<":
            return a < b
        if op == "<=":
            return a <= b
        if op == ">":
            return a > b
        return a >= b
    except TypeError:
        return False


def _utc_now() -> datetime:
    return datetime.now(UTC)


class FormulaEvaluator:
    """
    Evaluates validation-rule formulas.

    Args:
        clock: Returns the current datetime for TODAY()/NOW(); defaults to UTC now
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now

    def parse(self, formula: str) -> Node:
        """
        Parse formula text into an AST.

        Raises:
            ParseError: If the formula is malformed
        """
        return parse_formula(formula)

    def evaluate(self, formula: str, record: Mapping[str, Any], field_metadata: FieldMetadataInput = None) -> Any:
        """
        Evaluate a formula against a record.

        Args:
            formula: Formula text
            record: Field name to value mapping
            field_metadata: Optional metadata used to coerce raw values

        Returns:
            The formula's value, or False when it cannot be evaluated
        """
        try:
            node = self.parse(formula)
        except DomainException as e:
            logger.debug(f"Formula evaluated to False ({e}): {formula}")
            return False
        return self.evaluate_node(node, record, field_metadata)

    def evaluate_node(self, node: Node, record: Mapping[str, Any], field_metadata: FieldMetadataInput = None) -> Any:
        """Evaluate an already parsed AST; same failure semantics as ``evaluate``."""
        interpreter = _Interpreter(record, _normalise_metadata(field_metadata), self._clock)
        try:
            return interpreter.visit(node)
        except DomainException as e:
            logger.debug(f"Formula evaluation failed: {e}")
            return False
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.debug(f"Formula evaluation failed with {type(e).__name__}: {e}")
            return False

    def is_violated(
        self, formula: str, record: Mapping[str, Any], field_metadata: FieldMetadataInput = None
    ) -> bool:
        """True when a rule formula evaluates to true (the rule is broken)."""
        return truthy(self.evaluate(formula, record, field_metadata))

    def can_evaluate(self, formula: str) -> bool:
        """True when the formula parses and only uses supported functions."""
        try:
            node = self.parse(formula)
        except DomainException:
            return False
        return not self._unsupported(node)

    def get_unsupported_functions(self, formula: str) -> list[str]:
        """Functions used by the formula that this evaluator does not implement."""
        try:
            node = self.parse(formula)
        except DomainException:
            return []
        return self._unsupported(node)

    def get_supported_functions(self) -> list[str]:
        return sorted(SUPPORTED_FUNCTIONS)

    @staticmethod
    def _unsupported(node: Node) -> list[str]:
        unsupported: list[str] = []
        for item in walk(node):
            if isinstance(item, FunctionCall) and item.name not in SUPPORTED_FUNCTIONS:
                if item.name not in unsupported:
                    unsupported.append(item.name)
        return unsupported
