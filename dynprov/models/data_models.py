"""Core data models for the dynamic provider engine."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


CanonicalRecord = Dict[str, Any]


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class AuthType(str, Enum):
    """How the vendor credential is attached to outbound requests."""
    NONE = "none"
    QUERY_PARAM = "query_param"
    BEARER = "bearer"
    HEADER = "header"


class ExtractionType(str, Enum):
    """Closed set of response extraction strategies."""
    OBJECT = "object"
    ARRAY = "array"
    DICTIONARY = "dictionary"
    TEXT_REGEX = "text_regex"
    TEXT_LINES = "text_lines"
    VALUE = "value"
    ARRAY_POSITIONAL = "array_positional"
    KEYED_VALUE = "keyed_value"
    NESTED_ARRAY = "nested_array"


class ResponseType(str, Enum):
    JSON = "json"
    TEXT = "text"


class NumberStatus(str, Enum):
    """Canonical activation status."""
    PENDING = "pending"
    RECEIVED = "received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ExtractionContext:
    """Structural metadata threaded through recursive parsing.

    Instances are immutable; use ``child`` to derive the context for the
    next level down.
    """
    key: Optional[str] = None
    parent_key: Optional[str] = None
    grand_parent_key: Optional[str] = None
    operator_key: Optional[str] = None
    index: Optional[int] = None
    value: Any = None
    mapping_key: Optional[str] = None

    def child(self, **changes: Any) -> "ExtractionContext":
        return replace(self, **changes)


@dataclass(frozen=True)
class ResolvedRequest:
    """Concrete HTTP request produced by the endpoint resolver."""
    method: str
    url: str
    params: List[tuple] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ClassifiedResponse:
    """Response body tagged as JSON or text."""
    type: ResponseType
    data: Any


@dataclass
class RequestTrace:
    """Diagnostic snapshot of the last request made by an adapter."""
    method: str
    url: str
    headers: Dict[str, str]
    response_status: int
    response_body: Any
    elapsed_ms: float


@dataclass
class Country:
    id: str
    name: str
    code: Optional[str] = None
    flag_url: Optional[str] = None


@dataclass
class Service:
    id: str
    name: str
    code: Optional[str] = None
    icon_url: Optional[str] = None


@dataclass
class NumberResult:
    """A purchased number."""
    activation_id: str
    phone_number: str
    country_code: str
    service_code: str
    price: Optional[float]
    operator: Optional[str] = None


@dataclass
class SmsMessage:
    id: str
    sender: str
    content: str
    code: Optional[str]
    received_at: datetime


@dataclass
class StatusResult:
    status: NumberStatus
    messages: List[SmsMessage] = field(default_factory=list)
    raw_status: Optional[str] = None


@dataclass
class PriceData:
    country: str
    service: str
    cost: float
    count: Optional[int]
    operator: Optional[str] = None


@dataclass
class OperationResult:
    """Outcome of one CLI-driven operation run."""
    provider: str
    operation: str
    params: Dict[str, Any]
    records: List[Dict[str, Any]]
    trace: Optional[RequestTrace] = None
    executed_at: str = ""
