"""Response classification and mapping to canonical records."""

from .classifier import classify_body, classify_response
from .mapping_resolver import MappingResolver, generic_unwrap
from .path_evaluator import evaluate_path, values_by_path

__all__ = ["MappingResolver", "classify_body", "classify_response", "evaluate_path", "generic_unwrap", "values_by_path"]
