"""Turn a classified response into canonical records for one operation."""

from typing import Any, List, Optional

from dynprov.models.config import MappingDefinition, ProviderConfig
from dynprov.models.data_models import (
    CanonicalRecord,
    ClassifiedResponse,
    ExtractionContext,
    ExtractionType,
    ResponseType,
)
from dynprov.monitoring.logger import StructuredLogger
from dynprov.processor.error_patterns import check_for_errors
from dynprov.processor.path_evaluator import evaluate_path, values_by_path
from dynprov.processor.strategies import SHAPE_TYPES, TEXT_TYPES, run_strategy


COMMON_WRAPPER_KEYS = ("data", "result", "results", "items", "list", "response")

# Envelope keys peeled when an operation has no mapping at all
GENERIC_ENVELOPE_KEYS = ("data", "countries", "services", "items", "result", "list")


def wrapper_keys_for(operation_key: str) -> List[str]:
    """Common envelope keys plus the ones implied by the operation name."""
    lowered = operation_key.lower()
    keys = list(COMMON_WRAPPER_KEYS)
    if "country" in lowered:
        keys.append("countries")
    if "service" in lowered:
        keys.append("services")
    if "number" in lowered:
        keys.append("numbers")
    return keys


def is_object_of_objects(root: Any) -> bool:
    """A non-empty dict whose first value is itself a dict."""
    if not isinstance(root, dict) or not root:
        return False
    return isinstance(next(iter(root.values())), dict)


def generic_unwrap(data: Any) -> List[CanonicalRecord]:
    """
    Best-effort records for operations without a mapping.

    Lists map elements directly (scalars become ``{id: index, value}``),
    common envelopes are peeled, an object of objects becomes one record per
    key with ``id`` set to that key, and anything else is wrapped.
    """
    if isinstance(data, list):
        return [
            item if isinstance(item, dict) else {"id": index, "value": item}
            for index, item in enumerate(data)
        ]

    if isinstance(data, dict):
        for key in GENERIC_ENVELOPE_KEYS:
            if data.get(key):
                return generic_unwrap(data[key])
        if is_object_of_objects(data):
            return [
                {"id": key, **value} if isinstance(value, dict) else {"id": key, "value": value}
                for key, value in data.items()
            ]
        return [data]

    if data is None:
        return []
    return [{"value": data}]


def _merge_objects(values: List[Any]) -> dict:
    merged: dict = {}
    for value in values:
        if isinstance(value, dict):
            merged.update(value)
    return merged


class MappingResolver:
    """Selects the mapping and extraction strategy for a provider's responses."""

    def __init__(self, config: ProviderConfig, logger: Optional[StructuredLogger] = None):
        self.config = config
        self.logger = logger or StructuredLogger()

    def mapping_for(self, operation_key: str) -> Optional[MappingDefinition]:
        return self.config.mappings.get(operation_key)

    def apply_root_path(self, data: Any, mapping: MappingDefinition) -> Any:
        """Select the extraction root; ``*`` flattens one level."""
        root_path = mapping.root_path
        if not root_path or root_path == "$":
            return data
        if "*" in root_path:
            flat = values_by_path(data, root_path)
            if mapping.type in (ExtractionType.DICTIONARY, ExtractionType.KEYED_VALUE):
                return _merge_objects(flat)
            return [item for value in flat for item in (value if isinstance(value, list) else [value])]
        return evaluate_path(data, root_path)

    def unwrap(self, root: Any, operation_key: str) -> Any:
        """Descend into the first common wrapper key present on a plain object."""
        if not isinstance(root, dict):
            return root
        for key in wrapper_keys_for(operation_key):
            if isinstance(root.get(key), (dict, list)):
                self.logger.log(
                    "mapping_unwrap", provider=self.config.name, operation=operation_key, wrapper=key
                )
                return root[key]
        return root

    def effective_type(self, root: Any, mapping: MappingDefinition, operation_key: str) -> ExtractionType:
        """Correct the declared type when the data's shape contradicts it.

        Shape-specific types (value, positional, keyed value, nested array)
        already describe the data and are kept as declared.
        """
        declared = mapping.type
        if not self.config.auto_detect or declared in SHAPE_TYPES:
            return declared

        effective = declared
        if isinstance(root, list):
            effective = ExtractionType.ARRAY
        elif is_object_of_objects(root):
            effective = ExtractionType.DICTIONARY

        if effective != declared:
            self.logger.auto_switch(self.config.name, operation_key, declared.value, effective.value)
        return effective

    def parse(self, response: ClassifiedResponse, operation_key: str) -> List[CanonicalRecord]:
        """
        Produce the ordered canonical records for ``operation_key``.

        Vendor error patterns are checked first, so a matching error response
        raises ``ProviderError`` instead of yielding records.

        Args:
            response: Classified response
            operation_key: Logical operation name

        Returns:
            Canonical records, possibly empty
        """
        mapping = self.mapping_for(operation_key)
        check_for_errors(response.data, self.config, mapping)

        if mapping is None:
            self.logger.mapping_fallback(self.config.name, operation_key, "no mapping configured")
            return generic_unwrap(response.data)

        context = ExtractionContext(mapping_key=operation_key)

        if response.type == ResponseType.TEXT:
            if mapping.type not in TEXT_TYPES:
                self.logger.mapping_fallback(
                    self.config.name, operation_key, f"text response for {mapping.type.value} mapping"
                )
                return []
            return run_strategy(mapping.type, response.data, mapping, context)

        if mapping.type in TEXT_TYPES:
            self.logger.mapping_fallback(
                self.config.name, operation_key, f"json response for {mapping.type.value} mapping"
            )
            return generic_unwrap(response.data)

        root = self.apply_root_path(response.data, mapping)
        if self.config.auto_detect:
            root = self.unwrap(root, operation_key)

        if root is None:
            self.logger.mapping_fallback(
                self.config.name, operation_key, f"root path {mapping.root_path} resolved to nothing"
            )
            return []

        extraction_type = self.effective_type(root, mapping, operation_key)
        return run_strategy(extraction_type, root, mapping, context)
