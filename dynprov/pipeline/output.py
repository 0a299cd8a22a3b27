"""JSON output formatter for operation results.

Output structure:
{
    "provider": "5sim",
    "operation": "getPrices",
    "params": {"country": "russia"},
    "executed_at": "2026-01-01T00:00:00+00:00",
    "record_count": 2,
    "records": [...],
    "trace": {"method": "GET", "url": "...", "status": 200, "elapsed_ms": 12.5}
}
"""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from dynprov.models.data_models import OperationResult, RequestTrace


class JSONOutputFormatter:
    """Formats ``OperationResult`` objects as JSON documents."""

    def format(self, result: OperationResult) -> Dict[str, Any]:
        """
        Format an operation result as a JSON-serializable dictionary.

        Args:
            result: Result of one operation run

        Returns:
            Dictionary with run metadata, records and the request trace
        """
        return {
            "provider": result.provider,
            "operation": result.operation,
            "params": result.params,
            "executed_at": result.executed_at,
            "record_count": len(result.records),
            "records": result.records,
            "trace": self._format_trace(result.trace),
        }

    def _format_trace(self, trace: Optional[RequestTrace]) -> Optional[Dict[str, Any]]:
        """Trace without the response body, which is already reflected in records."""
        if trace is None:
            return None
        data = asdict(trace)
        data.pop("response_body", None)
        return data

    def save(self, result: OperationResult, path: str) -> None:
        """
        Save formatted result to a JSON file, creating parent directories.

        Args:
            result: Operation result to save
            path: Output file path
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.format(result), f, indent=2, ensure_ascii=False, default=str)
