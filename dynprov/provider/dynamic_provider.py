"""Configuration-driven adapter for one upstream number vendor."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from dynprov.exceptions import ConfigurationError, MissingFieldError, ProviderApiError, ProviderError
from dynprov.fetcher.circuit_breaker import CircuitBreaker
from dynprov.fetcher.endpoint_resolver import EndpointResolver
from dynprov.fetcher.http_client import AsyncHTTPClient
from dynprov.fetcher.rate_limiter import RateLimiter
from dynprov.fetcher.request_executor import RequestExecutor
from dynprov.fetcher.retry_handler import RetryHandler
from dynprov.models.config import EngineSettings, ProviderConfig
from dynprov.models.data_models import (
    CanonicalRecord,
    ClassifiedResponse,
    Country,
    NumberResult,
    NumberStatus,
    PriceData,
    RequestTrace,
    Service,
    SmsMessage,
    StatusResult,
)
from dynprov.monitoring.logger import StructuredLogger
from dynprov.processor.classifier import classify_response
from dynprov.processor.mapping_resolver import MappingResolver
from dynprov.processor.path_evaluator import to_number


ID_FIELDS = ("id", "activationId", "orderId")
PHONE_FIELDS = ("phone", "phoneNumber", "number")
BALANCE_FIELDS = ("balance", "amount", "value")


def first_present(record: Dict[str, Any], names: tuple) -> Any:
    """First value among ``names`` that is neither None nor an empty string."""
    for name in names:
        value = record.get(name)
        if value is not None and value != "":
            return value
    return None


def _chunks(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class DynamicProvider:
    """
    One vendor adapter built entirely from a ``ProviderConfig``.

    Owns the vendor's rate-limit watermark, circuit breaker and last request
    trace. May be shared by concurrent callers.

    Usage:
        async with DynamicProvider(config) as provider:
            countries = await provider.get_countries()
    """

    def __init__(
        self,
        config: ProviderConfig,
        settings: Optional[EngineSettings] = None,
        http_client: Optional[AsyncHTTPClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[StructuredLogger] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleeper: Callable[[float], Any] = asyncio.sleep,
        now: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the adapter.

        Args:
            config: Vendor configuration
            settings: Engine settings (defaults from the environment)
            http_client: Shared HTTP client; when omitted the adapter owns one
            transport: Custom httpx transport for an owned client
            logger: Structured logger
            circuit_breaker: Shared circuit breaker
            rate_limiter: Rate limiter; defaults to the vendor's configured spacing
            sleeper: Async sleep used for rate limiting and backoff
            now: Monotonic clock
        """
        self.config = config
        self.settings = settings or EngineSettings.from_env()
        self.logger = logger or StructuredLogger(level=self.settings.log_level)

        self._owns_client = http_client is None
        self.http_client = http_client or AsyncHTTPClient(
            timeout=self.settings.request_timeout,
            transport=transport,
        )

        self.rate_limiter = rate_limiter or RateLimiter(
            min_spacing=config.rate_limit_delay_ms / 1000.0,
            now=now,
            sleeper=sleeper,
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=self.settings.circuit_breaker_failure_threshold,
            cooldown_seconds=self.settings.circuit_breaker_cooldown,
            logger=self.logger,
        )
        self.endpoints = EndpointResolver(config)
        self.mappings = MappingResolver(config, self.logger)
        self.executor = RequestExecutor(
            provider=config.name,
            http_client=self.http_client,
            rate_limiter=self.rate_limiter,
            retry_handler=RetryHandler(
                max_attempts=self.settings.max_attempts,
                base_delay=self.settings.retry_base_delay,
                retry_after_buffer=self.settings.retry_after_buffer,
            ),
            circuit_breaker=self.circuit_breaker,
            logger=self.logger,
            sleeper=sleeper,
            now=now,
            auth_key=config.auth_key,
            auth_header=config.auth_header,
        )
        self.last_raw_response: Any = None

    async def __aenter__(self):
        await self.http_client.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def last_request_trace(self) -> Optional[RequestTrace]:
        """Masked snapshot of the most recent attempt (last writer wins)."""
        return self.executor.last_trace

    async def request(self, operation_key: str, params: Optional[Dict[str, Any]] = None) -> ClassifiedResponse:
        """Resolve, send and classify one operation's request."""
        resolved = self.endpoints.resolve(operation_key, params)
        if not self.http_client.is_open:
            await self.http_client.open()
        response = await self.executor.execute(resolved)
        classified = classify_response(response)
        self.last_raw_response = classified.data
        return classified

    async def perform_operation(
        self,
        operation_key: str,
        params: Optional[Dict[str, Any]] = None
    ) -> List[CanonicalRecord]:
        """
        Run a logical operation and return its canonical records.

        Args:
            operation_key: Operation name, e.g. ``getCountries``
            params: Caller parameters for placeholders and query params

        Returns:
            Ordered canonical records

        Raises:
            ConfigurationError: If no endpoint is configured for the operation
            ProviderApiError: On transport failure after retries
            ProviderError: If the response matches a vendor error pattern
        """
        classified = await self.request(operation_key, params)
        return self.mappings.parse(classified, operation_key)

    async def get_countries(self) -> List[Country]:
        records = await self.perform_operation("getCountries")
        countries = []
        for index, record in enumerate(records):
            raw_id = record.get("id")
            country_id = str(index if raw_id is None else raw_id)
            code = str(first_present(record, ("code", "id")) or "").lower()
            countries.append(Country(
                id=country_id,
                name=str(first_present(record, ("name", "country")) or country_id),
                code=code if code and code != country_id else None,
                flag_url=first_present(record, ("flagUrl", "flag", "icon")),
            ))
        return countries

    async def get_services(self, country: Optional[str] = None) -> List[Service]:
        params = {"country": country} if country is not None else {}
        records = await self.perform_operation("getServices", params)
        services = []
        for index, record in enumerate(records):
            raw_id = first_present(record, ("id", "code"))
            service_id = str(index if raw_id is None else raw_id)
            code = str(first_present(record, ("code", "id")) or "")
            services.append(Service(
                id=service_id,
                name=str(first_present(record, ("name",)) or service_id),
                code=code if code and code != service_id else None,
                icon_url=first_present(record, ("iconUrl", "icon")),
            ))
        return services

    async def get_number(
        self,
        country: str,
        service: str,
        operator: Optional[str] = None,
        max_price: Optional[float] = None,
    ) -> NumberResult:
        """
        Purchase a number.

        Raises:
            MissingFieldError: If the response carries no id-like or no phone-like field
        """
        params: Dict[str, Any] = {"country": country, "service": service}
        if operator:
            params["operator"] = operator
        if max_price is not None:
            params["maxPrice"] = str(max_price)

        records = await self.perform_operation("getNumber", params)
        mapped = records[0] if records else {}

        activation_id = first_present(mapped, ID_FIELDS)
        phone = first_present(mapped, PHONE_FIELDS)
        missing = []
        if activation_id is None:
            missing.append("id/activationId")
        if phone is None:
            missing.append("phone/number")
        if missing:
            raise MissingFieldError("getNumber", missing, mapped or self.last_raw_response)

        price = to_number(first_present(mapped, ("price", "cost")))
        return NumberResult(
            activation_id=str(activation_id),
            phone_number=str(phone),
            country_code=country,
            service_code=service,
            price=float(price) if price is not None else None,
            operator=str(mapped["operator"]) if mapped.get("operator") else operator,
        )

    def map_status(self, raw_status: Any, mapping_key: str = "getStatus") -> NumberStatus:
        """Translate a vendor status via ``statusMapping``; unmapped means pending.

        A mapping without its own ``statusMapping`` borrows the one declared
        on ``getStatus``.
        """
        status_map: Dict[str, NumberStatus] = {}
        for key in (mapping_key, "getStatus"):
            mapping = self.mappings.mapping_for(key)
            if mapping is not None and mapping.status_mapping:
                status_map = mapping.status_mapping
                break
        if raw_status is None or not status_map:
            return NumberStatus.PENDING

        raw = str(raw_status).strip()
        for candidate in (raw.upper(), raw.lower(), raw):
            if candidate in status_map:
                return status_map[candidate]
        return NumberStatus.PENDING

    def extract_messages(self, item: Dict[str, Any], activation_id: str) -> List[SmsMessage]:
        """SMS messages in a status record, with ids stable across polls."""
        if not (item.get("sms") or item.get("code") or item.get("message")):
            return []

        sms = item.get("sms")
        entries = sms if isinstance(sms, list) else [sms or item]
        messages = []
        for entry in entries:
            if not entry:
                continue
            if not isinstance(entry, dict):
                entry = {"text": str(entry)}
            code = first_present(entry, ("code", "text", "message")) or ""
            messages.append(SmsMessage(
                id=str(entry.get("id") or f"sms_{activation_id}_{code}"),
                sender=str(first_present(entry, ("sender", "from")) or "System"),
                content=str(first_present(entry, ("text", "content", "message")) or ""),
                code=str(entry["code"]) if entry.get("code") is not None else None,
                received_at=datetime.now(timezone.utc),
            ))
        return messages

    def _status_result(self, item: Dict[str, Any], activation_id: str, mapping_key: str) -> StatusResult:
        raw = item.get("status")
        return StatusResult(
            status=self.map_status(raw, mapping_key),
            messages=self.extract_messages(item, activation_id),
            raw_status=str(raw) if raw is not None else None,
        )

    async def get_status(self, activation_id: str) -> StatusResult:
        records = await self.perform_operation("getStatus", {"id": activation_id})
        mapped = records[0] if records else {}
        return self._status_result(mapped, activation_id, "getStatus")

    async def get_status_batch(self, activation_ids: List[str]) -> Dict[str, StatusResult]:
        """
        Status for many activations at once.

        Uses the vendor's ``getStatusBatch`` endpoint when configured, falling
        back to concurrent ``get_status`` calls. Activations whose status could
        not be fetched are reported as pending.
        """
        results: Dict[str, StatusResult] = {}
        if not activation_ids:
            return results

        if self.endpoints.has_endpoint("getStatusBatch"):
            try:
                records = await self.perform_operation("getStatusBatch", {"ids": ",".join(activation_ids)})
            except (ProviderApiError, ProviderError) as e:
                self.logger.mapping_fallback(self.name, "getStatusBatch", f"batch failed, polling individually: {e}")
            else:
                for item in records:
                    item_id = first_present(item, ("id", "activationId"))
                    if item_id is not None and str(item_id) in activation_ids:
                        results[str(item_id)] = self._status_result(item, str(item_id), "getStatusBatch")
                for activation_id in activation_ids:
                    results.setdefault(activation_id, StatusResult(status=NumberStatus.PENDING))
                return results

        for chunk in _chunks(activation_ids, self.settings.batch_status_concurrency):
            outcomes = await asyncio.gather(
                *(self.get_status(activation_id) for activation_id in chunk),
                return_exceptions=True
            )
            for activation_id, outcome in zip(chunk, outcomes):
                if isinstance(outcome, ConfigurationError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    self.logger.mapping_fallback(self.name, "getStatus", f"{activation_id}: {outcome}")
                    results[activation_id] = StatusResult(status=NumberStatus.PENDING)
                else:
                    results[activation_id] = outcome
        return results

    async def cancel_number(self, activation_id: str) -> None:
        await self.perform_operation("cancelNumber", {"id": activation_id})

    async def set_status(self, activation_id: str, status: Any) -> Dict[str, Any]:
        """
        Send an activation status code (SMS-Activate style ``setStatus``).

        Returns:
            ``raw`` response, first ``parsed`` record and a ``success`` flag.
            A 404 from the vendor is reported with ``success`` False.
        """
        try:
            records = await self.perform_operation("setStatus", {"id": activation_id, "status": str(status)})
        except ProviderApiError as e:
            if e.status == 404:
                return {"raw": None, "parsed": {}, "success": False, "error": str(e)}
            raise
        return {"raw": self.last_raw_response, "parsed": records[0] if records else {}, "success": True}

    async def next_sms(self, activation_id: str) -> None:
        await self.perform_operation("nextSms", {"id": activation_id})

    async def get_balance(self) -> float:
        records = await self.perform_operation("getBalance")
        mapped = records[0] if records else {}
        balance = to_number(first_present(mapped, BALANCE_FIELDS))
        if balance is None:
            raise MissingFieldError("getBalance", ["balance/amount/value"], mapped or self.last_raw_response)
        return float(balance)

    async def get_prices(self, country: Optional[str] = None, service: Optional[str] = None) -> List[PriceData]:
        params: Dict[str, Any] = {}
        if country:
            params["country"] = country
        if service:
            params["service"] = service

        records = await self.perform_operation("getPrices", params)
        prices = []
        skipped = 0
        for record in records:
            cost = to_number(first_present(record, ("cost", "price")))
            if cost is None:
                skipped += 1
                continue
            count = to_number(first_present(record, ("count", "qty")))
            prices.append(PriceData(
                country=str(record.get("country") or country or ""),
                service=str(record.get("service") or service or ""),
                cost=float(cost),
                count=int(count) if count is not None else None,
                operator=str(record["operator"]) if record.get("operator") else None,
            ))
        if skipped:
            self.logger.mapping_fallback(self.name, "getPrices", f"{skipped} records without a cost were skipped")
        return prices
