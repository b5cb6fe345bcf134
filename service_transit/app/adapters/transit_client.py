"""
Upstream journey-planning backend client.
"""

import asyncio
import json
import threading
import uuid
from typing import Any, Dict, List, Mapping, Optional, TextIO, Tuple, Union
from urllib.parse import quote

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.config import GatewaySettings
from shared.errors import BackendError, ValidationError
from shared.logging import get_logger, get_request_id
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry

from service_transit.app.domain import Operation


# Upstream REST paths; ``{name}`` segments are filled from the arguments.
OPERATION_PATHS: Dict[Operation, str] = {
    Operation.LOCATIONS: "/locations",
    Operation.NEARBY: "/locations/nearby",
    Operation.REACHABLE_FROM: "/stops/reachable-from",
    Operation.STOP: "/stops/{id}",
    Operation.DEPARTURES: "/stops/{id}/departures",
    Operation.ARRIVALS: "/stops/{id}/arrivals",
    Operation.JOURNEYS: "/journeys",
    Operation.REFRESH_JOURNEY: "/journeys/{ref}",
    Operation.TRIP: "/trips/{id}",
    Operation.TRIPS_BY_NAME: "/trips",
    Operation.RADAR: "/radar",
}

PATH_ARGUMENTS: Dict[Operation, Tuple[str, ...]] = {
    Operation.STOP: ("id",),
    Operation.DEPARTURES: ("id",),
    Operation.ARRIVALS: ("id",),
    Operation.REFRESH_JOURNEY: ("ref",),
    Operation.TRIP: ("id",),
}


class UpstreamUnavailableError(BackendError):
    """5xx responses and unusable payloads; these count against the circuit breaker."""


def encode_query_value(value: Any) -> str:
    """Encode one argument or option as a query string value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


class TransitClient:
    """Client for the upstream journey-planning REST backend."""

    def __init__(
        self,
        base_url: str,
        *,
        user_agent: str,
        timeout: float = 10.0,
        max_attempts: int = 2,
        request_log_path: Optional[str] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("transit.backend_client")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            transport=transport,
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            tracked_exceptions=(RetryError, UpstreamUnavailableError),
            name="upstream",
        )
        self.retry_config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=0.5,
            max_delay=6.0,
        )

        self._request_log: Optional[TextIO] = None
        self._request_log_lock = threading.Lock()
        if request_log_path:
            # append-only JSON lines
            self._request_log = open(request_log_path, "a", encoding="utf-8")

    @classmethod
    def from_settings(cls, settings: GatewaySettings, **kwargs) -> "TransitClient":
        return cls(
            settings.upstream_url,
            user_agent=settings.user_agent,
            timeout=settings.upstream_timeout,
            max_attempts=settings.upstream_max_attempts,
            request_log_path=settings.request_log_file,
            **kwargs,
        )

    async def close(self) -> None:
        """Close the HTTP client and the request log."""
        await self._client.aclose()
        with self._request_log_lock:
            if self._request_log is not None:
                self._request_log.close()
                self._request_log = None

    async def call(
        self,
        operation: Operation,
        arguments: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Run one operation upstream and return the decoded JSON result."""
        operation = Operation(operation)
        path, params = self.build_request(operation, arguments, options or {})

        try:
            result = await self.circuit_breaker.call(
                call_with_retry,
                self._request,
                path,
                params,
                exceptions=(httpx.TransportError,),
                config=self.retry_config,
                name=operation.value,
            )
        except BackendError as exc:
            self._record_call(operation, "client_error" if exc.client_error else "error")
            raise
        except CircuitBreakerOpenException as exc:
            self._record_call(operation, "rejected")
            raise BackendError(str(exc), details={"operation": operation.value}) from exc
        except RetryError as exc:
            self._record_call(operation, "error")
            self.logger.error(
                "Upstream request failed",
                operation=operation.value,
                path=path,
                error=str(exc.last_exception),
            )
            raise BackendError(
                f"Upstream unreachable: {exc.last_exception}",
                details={"operation": operation.value, "attempts": exc.attempts},
            ) from exc

        self._record_call(operation, "ok")
        return result

    def build_request(
        self,
        operation: Operation,
        arguments: Mapping[str, Any],
        options: Mapping[str, Any],
    ) -> Tuple[str, Dict[str, Union[str, List[str]]]]:
        """Map an operation call onto an upstream path and query parameters.

        List arguments (repeated query parameters) are sent repeated; options
        are always JSON-encoded into a single value.
        """
        path_names = PATH_ARGUMENTS.get(operation, ())
        path_values = {}
        for name in path_names:
            value = arguments.get(name)
            if value in (None, ""):
                raise ValidationError(
                    f"Missing required argument '{name}' for {operation.value}",
                    {"operation": operation.value, "argument": name},
                )
            path_values[name] = quote(str(value), safe="")

        path = OPERATION_PATHS[operation].format(**path_values)
        params: Dict[str, Union[str, List[str]]] = {}
        for key, value in arguments.items():
            if key in path_names:
                continue
            if isinstance(value, list):
                params[key] = [encode_query_value(item) for item in value]
            else:
                params[key] = encode_query_value(value)
        for key, value in options.items():
            params[key] = encode_query_value(value)
        return path, params

    async def _request(self, path: str, params: Dict[str, Any]) -> Any:
        request_id = get_request_id() or uuid.uuid4().hex
        request = self._client.build_request("GET", path, params=params)
        await self._log_exchange(request_id, "req", str(request.url))
        response = await self._client.send(request)
        await self._log_exchange(request_id, "res", response.text)

        if response.is_success:
            try:
                return response.json()
            except ValueError as exc:
                raise UpstreamUnavailableError(
                    "Upstream returned invalid JSON",
                    status_code=response.status_code,
                    details={"path": path},
                ) from exc

        detail = self._error_message(response)
        if 400 <= response.status_code < 500:
            self.logger.info(
                "Upstream rejected request",
                path=path,
                status_code=response.status_code,
                message=detail,
            )
            raise BackendError(
                detail,
                status_code=response.status_code,
                client_error=True,
                details={"path": path, "upstream_status": response.status_code},
            )

        self.logger.error(
            "Upstream request failed",
            path=path,
            status_code=response.status_code,
            message=detail,
        )
        raise UpstreamUnavailableError(
            detail,
            status_code=response.status_code,
            details={"path": path, "upstream_status": response.status_code},
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            message = payload.get("msg") or payload.get("message") or payload.get("error")
            if message:
                return str(message)
        return f"Upstream responded with status {response.status_code}"

    async def _log_exchange(self, request_id: str, kind: str, payload: str) -> None:
        if self._request_log is None:
            return
        line = json.dumps([request_id, kind, payload]) + "\n"
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_log_line, line)
        except OSError as exc:
            self.logger.error("Request log write failed", error=str(exc))

    def _write_log_line(self, line: str) -> None:
        with self._request_log_lock:
            if self._request_log is None:
                return
            self._request_log.write(line)
            self._request_log.flush()

    def _record_call(self, operation: Operation, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "backend_calls_total",
                operation=operation.value,
                outcome=outcome,
            )
