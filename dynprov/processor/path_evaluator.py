"""Path expressions over arbitrary nested JSON-like data.

Paths are dot separated (``data.items.0.cost``). A path may be a fallback
chain ``cost|price|amount``: each alternative is evaluated in full and the
first non-None result wins.

Context accessors (only valid as a whole path, they do not traverse data):
``$``, ``$key``, ``$value``, ``$index``, ``$parentKey``, ``$grandParentKey``,
``$operatorKey``.

Data accessors usable at any segment:

- navigation: ``$firstKey``, ``$firstValue``, ``$first``, ``$last``,
  ``$lastKey``, ``$lastValue``, ``$keys``, ``$values``, ``$entries``
- lists: ``$length``/``$count``, ``$join:<sep>``, ``$sum``, ``$min``,
  ``$max``, ``$avg``/``$average``, ``$unique``, ``$flatten``, ``$reverse``,
  ``$sort``, ``$slice:<start>:<end>``
- strings: ``$lower``, ``$upper``, ``$trim``, ``$split:<sep>``,
  ``$replace:<pattern>:<new>``, ``$substring:<start>:<end>``,
  ``$padStart:<len>:<fill>``, ``$padEnd:<len>:<fill>``
- conversion: ``$number``, ``$int``, ``$float``, ``$string``/``$str``,
  ``$boolean``/``$bool``, ``$json``, ``$stringify``
- objects: ``$pick:<a,b>``, ``$omit:<a,b>``
- missing values: ``$default:<v>``, ``$ifEmpty:<v>``, ``$exists``, ``$type``

Since segments are split on ``.`` and chains on ``|``, accessor arguments
cannot contain either character.
"""

import json
import math
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from dynprov.models.data_models import ExtractionContext


_INDEXED_SEGMENT = re.compile(r"^([^\[\]]*)((?:\[-?\d+\])+)$")

_CONTEXT_ACCESSORS: Dict[str, Callable[[ExtractionContext], Any]] = {
    "$key": lambda ctx: ctx.key,
    "$value": lambda ctx: ctx.value,
    "$index": lambda ctx: ctx.index,
    "$parentKey": lambda ctx: ctx.parent_key,
    "$grandParentKey": lambda ctx: ctx.grand_parent_key,
    "$grandparentKey": lambda ctx: ctx.grand_parent_key,
    "$operatorKey": lambda ctx: ctx.operator_key,
}

_EMPTY_CONTEXT = ExtractionContext()


def _first_key(o: Any) -> Any:
    if isinstance(o, dict):
        return next(iter(o), None)
    if isinstance(o, list):
        return 0 if o else None
    return None


def _last_key(o: Any) -> Any:
    if isinstance(o, dict):
        return next(reversed(o), None) if o else None
    if isinstance(o, list):
        return len(o) - 1 if o else None
    return None


def _values(o: Any) -> Optional[List[Any]]:
    if isinstance(o, dict):
        return list(o.values())
    if isinstance(o, list):
        return o
    return None


def to_number(o: Any) -> Any:
    if isinstance(o, bool):
        return int(o)
    if isinstance(o, (int, float)):
        return o
    try:
        text = str(o).strip()
        number = float(text)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number


def _numbers(o: Any) -> List[Any]:
    values = _values(o) or []
    return [n for n in (to_number(v) for v in values) if n is not None]


def _type_name(o: Any) -> str:
    if o is None:
        return "null"
    if isinstance(o, bool):
        return "boolean"
    if isinstance(o, (int, float)):
        return "number"
    if isinstance(o, str):
        return "string"
    if isinstance(o, list):
        return "array"
    return "object"


def _unique(items: List[Any]) -> List[Any]:
    result: List[Any] = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


def _flatten(items: List[Any]) -> List[Any]:
    result: List[Any] = []
    for item in items:
        if isinstance(item, list):
            result.extend(_flatten(item))
        else:
            result.append(item)
    return result


def _sorted(items: List[Any]) -> List[Any]:
    try:
        return sorted(items)
    except TypeError:
        # Mixed types compare by their text
        return sorted(items, key=str)


def _int_arg(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None


def _bounds(arg: str) -> Tuple[int, Optional[int]]:
    start, _, end = arg.partition(":")
    return _int_arg(start) or 0, _int_arg(end) if end else None


def _pad(text: str, arg: str, at_start: bool) -> str:
    width, _, fill = arg.partition(":")
    width_n = _int_arg(width) or 0
    fill = fill or " "
    missing = width_n - len(text)
    if missing <= 0:
        return text
    padding = (fill * (missing // len(fill) + 1))[:missing]
    return padding + text if at_start else text + padding


def _apply_accessor(o: Any, accessor: str) -> Any:
    """Apply a ``$`` data accessor to the current value."""
    name, _, arg = accessor.partition(":")

    # These tolerate a missing value
    if name == "$default":
        return arg if o is None else o
    if name == "$ifEmpty":
        return arg if o is None or o == "" else o
    if name == "$exists":
        return o is not None
    if name == "$type":
        return _type_name(o)
    if o is None:
        return None

    if name == "$firstKey":
        return _first_key(o)
    if name == "$firstValue" or name == "$first":
        key = _first_key(o)
        if key is None:
            return o if name == "$first" and not isinstance(o, (dict, list)) else None
        return o[key]
    if name == "$lastKey":
        return _last_key(o)
    if name == "$lastValue" or name == "$last":
        key = _last_key(o)
        if key is None:
            return o if name == "$last" and not isinstance(o, (dict, list)) else None
        return o[key]
    if name == "$keys":
        if isinstance(o, dict):
            return list(o.keys())
        return list(range(len(o))) if isinstance(o, list) else None
    if name == "$values":
        return _values(o)
    if name in ("$length", "$count"):
        return len(o) if isinstance(o, (dict, list, str)) else None
    if name == "$join":
        return arg.join(str(v) for v in o) if isinstance(o, list) else o
    if name == "$sum":
        return sum(_numbers(o))
    if name == "$min":
        numbers = _numbers(o)
        return min(numbers) if numbers else None
    if name == "$max":
        numbers = _numbers(o)
        return max(numbers) if numbers else None
    if name in ("$lower", "$lowercase"):
        return str(o).lower()
    if name in ("$upper", "$uppercase"):
        return str(o).upper()
    if name == "$trim":
        return str(o).strip()
    if name == "$number":
        return to_number(o)
    if name in ("$string", "$str"):
        return str(o)
    if name == "$split":
        return str(o).split(arg) if arg else [o]

    if name in ("$avg", "$average"):
        numbers = _numbers(o)
        return sum(numbers) / len(numbers) if numbers else None
    if name == "$unique":
        return _unique(o) if isinstance(o, list) else o
    if name == "$flatten":
        return _flatten(o) if isinstance(o, list) else o
    if name == "$reverse":
        return list(reversed(o)) if isinstance(o, list) else o
    if name == "$sort":
        return _sorted(o) if isinstance(o, list) else o
    if name == "$slice":
        start, end = _bounds(arg)
        return o[start:end] if isinstance(o, list) else o
    if name == "$substring":
        start, end = _bounds(arg)
        return str(o)[max(start, 0):end]
    if name == "$replace":
        old, _, new = arg.partition(":")
        if not isinstance(o, str) or not old:
            return o
        try:
            return re.sub(old, new, o)
        except re.error:
            return o.replace(old, new)
    if name in ("$padStart", "$padEnd"):
        return _pad(str(o), arg, name == "$padStart")
    if name == "$int":
        number = to_number(o)
        return math.floor(number) if number is not None else None
    if name == "$float":
        number = to_number(o)
        return float(number) if number is not None else None
    if name in ("$boolean", "$bool"):
        if isinstance(o, str):
            return o.strip().lower() in ("true", "1", "yes")
        return bool(o)
    if name == "$json":
        if not isinstance(o, str):
            return o
        try:
            return json.loads(o)
        except ValueError:
            return o
    if name == "$stringify":
        try:
            return json.dumps(o, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return str(o)
    if name == "$entries":
        if isinstance(o, dict):
            return [[k, v] for k, v in o.items()]
        if isinstance(o, list):
            return [[str(i), v] for i, v in enumerate(o)]
        return []
    if name in ("$pick", "$omit"):
        if not isinstance(o, dict):
            return o
        keys = [k.strip() for k in arg.split(",") if k.strip()]
        if name == "$pick":
            return {k: o[k] for k in keys if k in o}
        return {k: v for k, v in o.items() if k not in keys}

    # Unknown accessors fall through to a plain property lookup
    return _lookup(o, accessor)


def _lookup(o: Any, key: str) -> Any:
    if isinstance(o, dict):
        return o.get(key)
    if isinstance(o, list):
        try:
            return o[int(key)]
        except (ValueError, IndexError):
            return None
    return None


def _segments(path: str) -> List[str]:
    """Split a dotted path, expanding ``sms[0]`` into ``sms``, ``0``."""
    result = []
    for part in path.split("."):
        match = _INDEXED_SEGMENT.match(part)
        if match and not part.startswith("$"):
            if match.group(1):
                result.append(match.group(1))
            result.extend(re.findall(r"-?\d+", match.group(2)))
        else:
            result.append(part)
    return result


def _traverse(data: Any, path: str) -> Any:
    current = data
    for segment in _segments(path):
        if segment == "$" or segment == "":
            continue
        if segment.startswith("$"):
            current = _apply_accessor(current, segment)
        elif current is None:
            return None
        else:
            current = _lookup(current, segment)
    return current


def evaluate_path(data: Any, path: Optional[str], context: Optional[ExtractionContext] = None) -> Any:
    """
    Evaluate ``path`` against ``data``.

    Args:
        data: Source item (dict, list or scalar)
        path: Path expression, optionally a ``|`` fallback chain
        context: Extraction context for ``$key``-style accessors

    Returns:
        The resolved value, or None when every alternative is exhausted
    """
    if not path or path == "$":
        return data

    context = context or _EMPTY_CONTEXT

    if "|" in path:
        for alternative in path.split("|"):
            value = evaluate_path(data, alternative.strip(), context)
            if value is not None:
                return value
        return None

    accessor = _CONTEXT_ACCESSORS.get(path)
    if accessor is not None:
        return accessor(context)

    return _traverse(data, path)


def values_by_path(data: Any, path: str) -> List[Any]:
    """
    Collect values along a path where ``*`` expands every child.

    ``data.*.items`` on ``{"data": {"a": {"items": 1}, "b": {"items": 2}}}``
    returns ``[1, 2]``.
    """
    current = [data]
    for segment in _segments(path):
        if segment in ("$", ""):
            continue
        expanded: List[Any] = []
        for item in current:
            if item is None:
                continue
            if segment == "*":
                expanded.extend(_values(item) or [])
            else:
                value = _apply_accessor(item, segment) if segment.startswith("$") else _lookup(item, segment)
                if value is not None:
                    expanded.append(value)
        current = expanded
    return current
