"""Build concrete HTTP requests from declarative endpoint definitions."""

import re
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from dynprov.exceptions import ConfigurationError
from dynprov.models.config import EndpointDefinition, ProviderConfig
from dynprov.models.data_models import AuthType, ResolvedRequest


DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
}

_BRACE_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_DOLLAR_PLACEHOLDER = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")
_SENSITIVE_HEADER = re.compile(r"(authorization|token|key|secret)", re.IGNORECASE)


def _is_present(value: Any) -> bool:
    return value is not None


def build_url(
    base_url: str,
    path: str,
    params: Dict[str, Any],
    auth_key: Optional[str] = None
) -> Tuple[str, Set[str]]:
    """
    Join the path onto the base URL and substitute placeholders.

    Both ``{name}`` and ``$name`` placeholders are filled from ``params``
    (``authKey`` when a credential is set). Unresolved placeholders stay literal.

    Returns:
        The URL and the set of caller parameter names consumed by it
    """
    if path.startswith(("http://", "https://")):
        url = path
    else:
        base = (base_url or "").rstrip("/")
        if path and not path.startswith(("/", "?")):
            path = "/" + path
        url = base + path

    values = dict(params)
    if auth_key:
        values["authKey"] = auth_key
    consumed: Set[str] = set()

    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in values and _is_present(values[name]):
            if name != "authKey":
                consumed.add(name)
            return quote(str(values[name]), safe="")
        return match.group(0)

    url = _BRACE_PLACEHOLDER.sub(substitute, url)
    url = _DOLLAR_PLACEHOLDER.sub(substitute, url)
    return url, consumed


def resolve_query_params(
    config_params: Dict[str, str],
    params: Dict[str, Any],
    method: str = "GET",
    auth_type: AuthType = AuthType.NONE,
    auth_key: Optional[str] = None,
    auth_query_param: Optional[str] = None,
    consumed: Optional[Set[str]] = None,
    existing_keys: Optional[Set[str]] = None
) -> List[Tuple[str, str]]:
    """
    Resolve the query string in priority order.

    1. ``$var|fallback`` references resolved against caller params; absent
       variables are omitted entirely
    2. Literal values passed through
    3. Query-param auth injected
    4. For GET, remaining unconsumed caller params appended without
       overwriting a key that is already set

    Args:
        config_params: Configured query parameters
        params: Caller parameters
        method: HTTP method
        auth_type: Provider auth type
        auth_key: Provider credential
        auth_query_param: Query parameter name carrying the credential
        consumed: Caller params already used elsewhere (e.g. in the path)
        existing_keys: Query keys already present in the URL

    Returns:
        Ordered list of (name, value) pairs
    """
    query: List[Tuple[str, str]] = []
    handled = set(consumed or ())
    set_keys = set(existing_keys or ())

    for name, template in config_params.items():
        if template.startswith("$"):
            for var_name in (part.strip() for part in template[1:].split("|")):
                if _is_present(params.get(var_name)):
                    query.append((name, str(params[var_name])))
                    handled.add(var_name)
                    set_keys.add(name)
                    break
        else:
            query.append((name, template))
            set_keys.add(name)

    if auth_type == AuthType.QUERY_PARAM and auth_query_param and auth_key:
        if auth_query_param not in set_keys:
            query.append((auth_query_param, auth_key))
            set_keys.add(auth_query_param)

    if method == "GET":
        for name, value in params.items():
            if name in handled or name in set_keys or not _is_present(value):
                continue
            if isinstance(value, (list, tuple)):
                value = ",".join(str(v) for v in value)
            query.append((name, str(value)))
            set_keys.add(name)

    return query


def build_headers(
    config_headers: Dict[str, str],
    auth_type: AuthType = AuthType.NONE,
    auth_key: Optional[str] = None,
    auth_header: Optional[str] = None,
    origin: str = "http://localhost"
) -> Dict[str, str]:
    """Merge default browser-like headers, endpoint overrides and auth."""
    headers = {**DEFAULT_HEADERS, "Referer": origin, **config_headers}

    if auth_type == AuthType.BEARER and auth_key:
        headers["Authorization"] = f"Bearer {auth_key}"
    elif auth_type == AuthType.HEADER and auth_header and auth_key:
        headers[auth_header] = auth_key

    return headers


def mask_value(value: str) -> str:
    if len(value) <= 8:
        return "***"
    return value[:4] + "***"


def mask_headers(headers: Dict[str, str], extra_sensitive: Optional[str] = None) -> Dict[str, str]:
    """Copy of ``headers`` with credentials masked for traces and logs."""
    masked = {}
    for name, value in headers.items():
        if _SENSITIVE_HEADER.search(name) or (extra_sensitive and name.lower() == extra_sensitive.lower()):
            masked[name] = mask_value(value)
        else:
            masked[name] = value
    return masked


def mask_url(url: str, auth_key: Optional[str]) -> str:
    if auth_key:
        return url.replace(quote(auth_key, safe=""), "***").replace(auth_key, "***")
    return url


class EndpointResolver:
    """Resolves operation keys to concrete requests for one provider."""

    def __init__(self, config: ProviderConfig):
        self.config = config

    def endpoint_for(self, operation_key: str) -> EndpointDefinition:
        endpoint = self.config.endpoints.get(operation_key)
        if endpoint is None:
            raise ConfigurationError(
                f"Endpoint {operation_key} not configured for provider {self.config.name}",
                provider=self.config.name,
                operation=operation_key,
            )
        return endpoint

    def has_endpoint(self, operation_key: str) -> bool:
        return operation_key in self.config.endpoints

    def resolve(self, operation_key: str, params: Optional[Dict[str, Any]] = None) -> ResolvedRequest:
        """
        Build the request for ``operation_key``.

        Raises:
            ConfigurationError: If the operation has no endpoint
        """
        endpoint = self.endpoint_for(operation_key)
        params = params or {}
        cfg = self.config

        url, consumed = build_url(cfg.api_base_url, endpoint.path, params, cfg.auth_key)
        parts = urlsplit(url)
        existing = parse_qsl(parts.query, keep_blank_values=True)

        query = resolve_query_params(
            endpoint.query_params,
            params,
            method=endpoint.method,
            auth_type=cfg.auth_type,
            auth_key=cfg.auth_key,
            auth_query_param=cfg.auth_query_param,
            consumed=consumed,
            existing_keys={name for name, _ in existing},
        )

        if query:
            joined = parts.query + ("&" if parts.query else "") + urlencode(query)
            url = urlunsplit((parts.scheme, parts.netloc, parts.path, joined, parts.fragment))

        origin = f"{parts.scheme}://{parts.netloc}" if parts.netloc else "http://localhost"
        headers = build_headers(endpoint.headers, cfg.auth_type, cfg.auth_key, cfg.auth_header, origin)

        return ResolvedRequest(
            method=endpoint.method,
            url=url,
            params=existing + query,
            headers=headers,
        )
