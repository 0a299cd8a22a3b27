"""Apply a declared field map to one source item."""

import math
import re
from typing import Any, Dict, List, Optional

from dynprov.models.config import MappingDefinition
from dynprov.models.data_models import CanonicalRecord, ExtractionContext
from dynprov.processor.path_evaluator import evaluate_path, to_number


# Tried in order when a target field's own path resolves to nothing
FIELD_ALIASES: Dict[str, List[str]] = {
    "name": ["name", "eng", "title", "text", "label", "rus", "chn"],
    "countryName": ["name", "eng", "title", "country_name", "rus"],
    "serviceName": ["name", "title", "service", "service_name"],
    "id": ["id", "code", "key", "value"],
    "code": ["code", "id", "short_name", "iso"],
    "countryId": ["id", "code", "country_id", "country_code"],
    "countryISO": ["iso", "iso2", "code", "country_code"],
    "serviceId": ["id", "code", "service_id", "service_code"],
}

_TEMPLATE_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def is_truthy(value: Any) -> bool:
    """Truthiness as vendor payloads mean it: empty containers count as present."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    return True


def resolve_effective_fields(item: Any, mapping: MappingDefinition) -> Dict[str, str]:
    """Merge every conditional override whose condition path is truthy on ``item``.

    Later conditions win on conflicting target fields.
    """
    effective = dict(mapping.fields)
    for condition_path, overrides in mapping.conditional_fields.items():
        if is_truthy(evaluate_path(item, condition_path)):
            effective.update(overrides)
    return effective


def _fallback_value(paths: List[str], item: Any, context: ExtractionContext) -> Any:
    for path in paths:
        value = evaluate_path(item, path, context)
        if value is None and isinstance(context.value, dict) and context.value is not item:
            value = evaluate_path(context.value, path, context)
        if value is not None:
            return value
    return None


def _alias_value(target: str, item: Any, context: ExtractionContext) -> Any:
    for alias in FIELD_ALIASES.get(target, ()):
        if isinstance(item, dict) and item.get(alias) is not None:
            return item[alias]
        if isinstance(context.value, dict) and context.value.get(alias) is not None:
            return context.value[alias]
    return None


def _unwrap(target: str, value: Any) -> Any:
    """``{"cost": 10.5}`` mapped onto ``cost`` becomes ``10.5``."""
    if isinstance(value, dict):
        lowered = target.lower()
        for key in value:
            if str(key).lower() == lowered:
                return value[key]
    return value


def _to_boolean(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def apply_transform(value: Any, rule: str) -> Any:
    """Apply one transform rule to a non-None value."""
    if rule == "number":
        number = to_number(value)
        return value if number is None else number
    if rule == "string":
        return str(value)
    if rule == "boolean":
        return _to_boolean(value)
    if rule == "uppercase":
        return str(value).upper()
    if rule == "lowercase":
        return str(value).lower()
    if "{value}" in rule:
        return rule.replace("{value}", str(value))
    return value


def _fill_icon_template(template: str, record: CanonicalRecord, item: Any, context: ExtractionContext) -> str:
    def lookup(match: "re.Match[str]") -> str:
        name = match.group(1).strip()
        if record.get(name) is not None:
            return str(record[name])
        if isinstance(item, dict) and item.get(name) is not None:
            return str(item[name])
        context_value = getattr(context, name, None)
        if context_value is not None:
            return str(context_value)
        return match.group(0)

    return _TEMPLATE_PLACEHOLDER.sub(lookup, template)


def map_fields(
    item: Any,
    fields: Dict[str, str],
    context: Optional[ExtractionContext] = None,
    transform: Optional[Dict[str, str]] = None,
    icon_url_template: Optional[str] = None,
    fallbacks: Optional[Dict[str, List[str]]] = None,
) -> CanonicalRecord:
    """
    Build one canonical record from ``item``.

    For each target field the source path is evaluated; when it resolves to
    nothing the configured fallback paths are tried, then the alias table,
    each against the item and then the context's bound raw value. Values
    that are still missing are omitted from the record rather than defaulted.

    Args:
        item: Source item
        fields: Target field -> source path (fallback chains allowed)
        context: Extraction context
        transform: Target field -> transform rule
        icon_url_template: ``{{field}}`` template for ``iconUrl``
        fallbacks: Target field -> extra paths tried before the alias table

    Returns:
        Canonical record
    """
    context = context or ExtractionContext()
    record: CanonicalRecord = {}

    for target, source in fields.items():
        value = evaluate_path(item, source, context)
        if value is None and fallbacks and target in fallbacks:
            value = _fallback_value(fallbacks[target], item, context)
        if value is None:
            value = _alias_value(target, item, context)
        value = _unwrap(target, value)
        if value is not None:
            record[target] = value

    for target, rule in (transform or {}).items():
        if record.get(target) is not None:
            record[target] = apply_transform(record[target], rule)

    if icon_url_template:
        current = record.get("iconUrl")
        if not (isinstance(current, str) and current.startswith("http")):
            record["iconUrl"] = _fill_icon_template(icon_url_template, record, item, context)

    return record


def map_item(item: Any, mapping: MappingDefinition, context: Optional[ExtractionContext] = None) -> CanonicalRecord:
    """Map ``item`` with the mapping's conditional fields, transforms and icon template."""
    return map_fields(
        item,
        resolve_effective_fields(item, mapping),
        context,
        transform=mapping.transform,
        icon_url_template=mapping.icon_url_template,
        fallbacks=mapping.field_fallbacks,
    )
