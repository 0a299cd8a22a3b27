"""Extraction strategies, one per ``ExtractionType``.

Every strategy takes ``(root, mapping, context)`` and returns an ordered list
of canonical records. The dictionary strategy is a pure recursive walk that
threads an immutable ``ExtractionContext`` downwards.
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from dynprov.models.config import MappingDefinition
from dynprov.models.data_models import CanonicalRecord, ExtractionContext, ExtractionType
from dynprov.processor.field_mapper import apply_transform, map_item, resolve_effective_fields


Strategy = Callable[[Any, MappingDefinition, ExtractionContext], List[CanonicalRecord]]

# A dictionary value holding one of these as a primitive is a data leaf
DATA_FIELD_NAMES = (
    "cost", "price", "amount", "value", "balance",
    "count", "qty", "stock", "quantity", "available", "physicalCount",
    "rate", "rate720", "rate168", "rate72", "rate24", "rate1",
    "id", "code", "name", "provider_id", "activation", "phone", "status",
)

DEFAULT_REQUIRED_OPERATOR_FIELD = "provider_id"

_JS_NAMED_GROUP = re.compile(r"\(\?<([A-Za-z_][A-Za-z0-9_]*)>")


def has_data_fields(obj: Any) -> bool:
    """True when ``obj`` carries at least one recognized data field with a primitive value."""
    if not isinstance(obj, dict):
        return False
    return any(
        isinstance(obj.get(name), (str, int, float, bool))
        for name in DATA_FIELD_NAMES
    )


def _declares_fields(obj: Any, mapping: MappingDefinition) -> bool:
    """True when a non-context field path of ``mapping`` starts at a key of ``obj``."""
    if not isinstance(obj, dict):
        return False
    for source in mapping.fields.values():
        for alternative in source.split("|"):
            head = alternative.strip().split(".", 1)[0]
            if head and not head.startswith("$") and obj.get(head) is not None:
                return True
    return False


def is_leaf(obj: Any, mapping: MappingDefinition) -> bool:
    """
    A dictionary value is mapped as a record, not descended into, when it
    carries a recognized data field or a key that one of the mapping's own
    field paths starts from (``{"iso": "ru", "text_en": "Russia"}`` with
    ``name: text_en``).
    """
    return has_data_fields(obj) or _declares_fields(obj, mapping)


def _apply_transforms(record: CanonicalRecord, mapping: MappingDefinition) -> CanonicalRecord:
    for target, rule in mapping.transform.items():
        if record.get(target) is not None:
            record[target] = apply_transform(record[target], rule)
    return record


def _entries(container: Any) -> Iterable[Tuple[str, Any]]:
    if isinstance(container, dict):
        return ((str(k), v) for k, v in container.items())
    if isinstance(container, list):
        return ((str(i), v) for i, v in enumerate(container))
    return ()


def extract_object(root: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """Map a single object (or bare scalar) once."""
    if root is None:
        return []
    return [map_item(root, mapping, context.child(value=root))]


def extract_array(root: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """Map each element, binding its index."""
    if not isinstance(root, list):
        return []
    return [
        map_item(element, mapping, context.child(index=index, value=element))
        for index, element in enumerate(root)
    ]


def _extract_operators(
    service_key: str,
    providers: Any,
    mapping: MappingDefinition,
    context: ExtractionContext,
    required_field: Optional[str],
) -> List[CanonicalRecord]:
    records = []
    for operator_key, operator_data in _entries(providers):
        if not isinstance(operator_data, dict):
            continue
        if required_field and operator_data.get(required_field) is None:
            continue
        record = map_item(operator_data, mapping, context.child(
            key=service_key,
            operator_key=operator_key,
            value=operator_data,
            parent_key=context.parent_key or context.key,
        ))
        record["service"] = service_key
        if not record.get("operator"):
            record["operator"] = operator_key
        records.append(record)
    return records


def _walk_dictionary(
    obj: Any,
    mapping: MappingDefinition,
    context: ExtractionContext,
) -> List[CanonicalRecord]:
    nesting = mapping.nesting_levels
    extract_operators = bool(nesting and nesting.extract_operators)
    providers_key = nesting.providers_key if nesting else None
    required_field = nesting.required_field if nesting and nesting.required_field else (
        DEFAULT_REQUIRED_OPERATOR_FIELD if extract_operators else None
    )

    records: List[CanonicalRecord] = []
    for key, value in _entries(obj):
        if not isinstance(value, (dict, list)):
            wrapped = {"value": value}
            records.append(map_item(wrapped, mapping, context.child(key=key, value=value)))
            continue

        if providers_key and isinstance(value, dict) and value.get(providers_key):
            records.extend(_extract_operators(key, value[providers_key], mapping, context, required_field))
            continue

        if is_leaf(value, mapping):
            record = map_item(value, mapping, context.child(key=key, value=value))
            # Strict operator mode never invents an operator from a structural key
            if nesting is not None and not extract_operators and not record.get("operator"):
                record["operator"] = key
            records.append(record)
        else:
            records.extend(_walk_dictionary(value, mapping, context.child(
                grand_parent_key=context.key or context.parent_key,
                parent_key=key,
            )))

    return records


def extract_dictionary(root: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """Map every leaf of a keyed (possibly multi-level) dictionary."""
    if not isinstance(root, (dict, list)):
        return []
    return _walk_dictionary(root, mapping, context)


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile a vendor regex; ``(?<name>...)`` groups are accepted."""
    return re.compile(_JS_NAMED_GROUP.sub(r"(?P<\1>", pattern), re.MULTILINE)


def _group_value(match: "re.Match[str]", reference: str, by_name: bool) -> Optional[str]:
    if by_name and reference in match.re.groupindex:
        value = match.group(reference)
        if value is not None:
            return value
    if reference.isdigit():
        index = int(reference)
        if index <= (match.re.groups or 0):
            value = match.group(index)
            # Legacy numbered mode ignores empty groups
            if value is not None and (by_name or value != ""):
                return value
    return None


def extract_text_regex(text: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """One record per regex match."""
    if not mapping.regex or not isinstance(text, str):
        return []

    pattern = compile_pattern(mapping.regex)
    has_named = bool(pattern.groupindex)
    records: List[CanonicalRecord] = []

    for match in pattern.finditer(text):
        source: Dict[str, Any] = {
            name: value for name, value in match.groupdict().items() if value is not None
        }
        for index in range(pattern.groups + 1):
            if match.group(index) is not None:
                source[str(index)] = match.group(index)

        record: CanonicalRecord = {}
        if has_named and not mapping.fields:
            record.update({k: v for k, v in match.groupdict().items() if v is not None})
        else:
            for target, references in resolve_effective_fields(source, mapping).items():
                for reference in (r.strip() for r in references.split("|")):
                    value = _group_value(match, reference, has_named)
                    if value is not None:
                        record[target] = value
                        break

        _apply_transforms(record, mapping)
        records.append(record)

    return records


def extract_text_lines(text: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """Split into lines, then each line on the separator; fields map to indices."""
    if not isinstance(text, str):
        return []

    separator = mapping.separator or ":"
    records: List[CanonicalRecord] = []

    for line in text.strip().splitlines():
        parts = line.split(separator)
        record: CanonicalRecord = {}
        for target, index_ref in mapping.fields.items():
            for reference in (r.strip() for r in index_ref.split("|")):
                if not reference.lstrip("-").isdigit():
                    continue
                index = int(reference)
                if -len(parts) <= index < len(parts) and parts[index].strip():
                    record[target] = parts[index].strip()
                    break
        _apply_transforms(record, mapping)
        if record:
            records.append(record)

    return records


# Checked in order on an object handed to the value strategy
VALUE_WRAPPER_KEYS = ("balance", "amount", "result", "data", "value", "status")


def extract_value(root: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """Wrap a single value (``123.45`` or ``{"balance": 123.45}``) as one record under ``valueField``."""
    if root is None:
        return []
    value_field = mapping.value_field or "value"
    if isinstance(root, dict):
        for key in VALUE_WRAPPER_KEYS:
            if root.get(key) is not None:
                return [_apply_transforms({value_field: root[key]}, mapping)]
        if mapping.fields:
            return [map_item(root, mapping, context.child(value=root))]
        return [_apply_transforms(dict(root), mapping)]
    return [_apply_transforms({value_field: root}, mapping)]


def _is_index(reference: str) -> bool:
    return reference.strip().lstrip("-").isdigit()


def position_map(mapping: MappingDefinition) -> Dict[int, str]:
    """
    Array index -> target field.

    ``positionFields`` wins. Otherwise ``fields`` is read either way round,
    so ``{"0": "id"}`` and ``{"id": "0"}`` both bind index 0 to ``id``.
    """
    if mapping.position_fields:
        pairs: Iterable[Tuple[str, str]] = mapping.position_fields.items()
    else:
        pairs = ((k, v) if _is_index(k) else (v, k) for k, v in mapping.fields.items())
    return {int(index): target for index, target in pairs if _is_index(index) and target}


def _positional_record(row: List[Any], positions: Dict[int, str]) -> CanonicalRecord:
    return {
        target: row[index]
        for index, target in positions.items()
        if -len(row) <= index < len(row) and row[index] is not None
    }


def extract_array_positional(
    root: Any, mapping: MappingDefinition, context: ExtractionContext
) -> List[CanonicalRecord]:
    """Map array positions to fields; a flat array is one row, an array of arrays is many."""
    if root is None:
        return []
    if not isinstance(root, list):
        rows: List[Any] = [[root]]
    elif root and isinstance(root[0], list):
        rows = root
    else:
        rows = [root]

    positions = position_map(mapping)
    records: List[CanonicalRecord] = []
    for row in rows:
        record = _positional_record(row, positions) if isinstance(row, list) else {"value": row}
        if record:
            records.append(_apply_transforms(record, mapping))
    return records


def extract_keyed_value(root: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """``{"501": "pending"}`` becomes ``[{keyField: "501", valueField: "pending"}]``."""
    if not isinstance(root, dict):
        return []

    key_field = mapping.key_field or "id"
    value_field = mapping.value_field or "value"
    records: List[CanonicalRecord] = []
    for key, value in _entries(root):
        if isinstance(value, (dict, list)):
            if mapping.fields:
                record = map_item(value, mapping, context.child(key=key, value=value))
            else:
                record = _apply_transforms(dict(value) if isinstance(value, dict) else {value_field: value}, mapping)
            record[key_field] = key
        else:
            record = _apply_transforms({key_field: key, value_field: value}, mapping)
        records.append(record)
    return records


def extract_nested_array(root: Any, mapping: MappingDefinition, context: ExtractionContext) -> List[CanonicalRecord]:
    """
    Map a table-like array of rows.

    Column names come from the first row when ``headerRow`` is set, else from
    the position map, else they default to ``col_<i>``. With a header row and
    declared fields, each row is then mapped by header name. A flat array is
    handed to the positional strategy.
    """
    if not isinstance(root, list) or not root:
        return []
    if not isinstance(root[0], list):
        return extract_array_positional(root, mapping, context)

    rows = root
    by_header = False
    if mapping.header_row:
        headers = {index: str(name) for index, name in enumerate(root[0])}
        rows = root[1:]
        by_header = bool(mapping.fields)
    else:
        headers = position_map(mapping) or {index: f"col_{index}" for index in range(len(root[0]))}

    records: List[CanonicalRecord] = []
    for index, row in enumerate(rows):
        if not isinstance(row, list):
            continue
        record = {headers[i]: value for i, value in enumerate(row) if headers.get(i)}
        if not record:
            continue
        if by_header:
            record = map_item(record, mapping, context.child(index=index, value=row))
        else:
            _apply_transforms(record, mapping)
        if record:
            records.append(record)
    return records


STRATEGIES: Dict[ExtractionType, Strategy] = {
    ExtractionType.OBJECT: extract_object,
    ExtractionType.ARRAY: extract_array,
    ExtractionType.DICTIONARY: extract_dictionary,
    ExtractionType.TEXT_REGEX: extract_text_regex,
    ExtractionType.TEXT_LINES: extract_text_lines,
    ExtractionType.VALUE: extract_value,
    ExtractionType.ARRAY_POSITIONAL: extract_array_positional,
    ExtractionType.KEYED_VALUE: extract_keyed_value,
    ExtractionType.NESTED_ARRAY: extract_nested_array,
}

TEXT_TYPES = frozenset({ExtractionType.TEXT_REGEX, ExtractionType.TEXT_LINES})

# Declared for a specific data shape, never replaced by auto-detection
SHAPE_TYPES = frozenset({
    ExtractionType.VALUE,
    ExtractionType.ARRAY_POSITIONAL,
    ExtractionType.KEYED_VALUE,
    ExtractionType.NESTED_ARRAY,
})

_missing = set(ExtractionType) - set(STRATEGIES)
if _missing:
    raise RuntimeError(f"No extraction strategy registered for: {sorted(t.value for t in _missing)}")


def run_strategy(
    extraction_type: ExtractionType,
    root: Any,
    mapping: MappingDefinition,
    context: Optional[ExtractionContext] = None,
) -> List[CanonicalRecord]:
    return STRATEGIES[extraction_type](root, mapping, context or ExtractionContext())
