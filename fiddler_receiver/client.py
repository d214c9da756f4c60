"""
Fiddler API Client - Typed access to the v3 REST API.

============================================================
RESPONSIBILITY
============================================================
Executes typed requests against the Fiddler API.

- Lists models (paginated), metric definitions and baselines
- Posts batched monitoring queries
- Attaches the bearer token to every call
- Converts HTTP, connection and payload failures to FetchError

============================================================
ENDPOINTS
============================================================
GET  /v3/models
GET  /v3/models/{model_id}/metrics
GET  /v3/models/{model_id}/baselines
POST /v3/queries

============================================================
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

import aiohttp

from fiddler_receiver.exceptions import FetchError
from fiddler_receiver.types import (
    Baseline,
    Column,
    MetricDefinition,
    Model,
    ModelMetrics,
    QueryResponse,
)


logger = logging.getLogger(__name__)


class FiddlerClient:
    """
    Async client for the Fiddler v3 API.

    The client owns its aiohttp session unless one is injected.
    Cancellation of the awaiting task (e.g. a cycle deadline)
    propagates through every request.
    """

    DEFAULT_TIMEOUT = 300.0
    DEFAULT_PAGE_SIZE = 100
    USER_AGENT = "fiddler-receiver/1.0"

    def __init__(
        self,
        endpoint: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._page_size = page_size
        self._session = session
        self._owns_session = session is None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    # =========================================================
    # CATALOG
    # =========================================================

    async def list_models(self, project_id: Optional[str] = None) -> List[Model]:
        """
        List every model visible to the token.

        Args:
            project_id: Optional project filter

        Raises:
            FetchError: On HTTP, connection or payload errors
        """
        models: List[Model] = []
        seen: Set[str] = set()
        offset = 0

        while True:
            params: Dict[str, Any] = {"limit": self._page_size, "offset": offset}
            if project_id:
                params["project_id"] = project_id

            payload = await self._make_request("GET", "/v3/models", params=params)
            data = self._get_data(payload, "/v3/models")
            items = data.get("items")
            if not isinstance(items, list):
                raise FetchError(
                    message="Malformed models payload: data.items is not a list",
                    request_url=self._url("/v3/models"),
                )

            try:
                page = [Model.from_dict(item) for item in items]
            except (KeyError, TypeError, AttributeError) as e:
                raise FetchError(
                    message=f"Malformed model record: {e}",
                    request_url=self._url("/v3/models"),
                    original_error=e,
                )

            new_models = 0
            for model in page:
                if model.id not in seen:
                    seen.add(model.id)
                    models.append(model)
                    new_models += 1

            # Servers that ignore limit/offset keep returning the same page
            if not new_models:
                break

            offset += len(items)
            total = data.get("total")
            if len(items) < self._page_size or (isinstance(total, int) and offset >= total):
                break

        return models

    async def list_metrics(self, model_id: str) -> ModelMetrics:
        """
        Fetch metric definitions and columns for a model.

        Raises:
            FetchError: On HTTP, connection or payload errors
        """
        path = f"/v3/models/{model_id}/metrics"
        payload = await self._make_request("GET", path)
        data = self._get_data(payload, path)

        try:
            return ModelMetrics(
                metrics=[MetricDefinition.from_dict(m) for m in data.get("metrics") or []],
                columns=[Column.from_dict(c) for c in data.get("columns") or []],
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise FetchError(
                message=f"Malformed metrics payload: {e}",
                request_url=self._url(path),
                original_error=e,
            )

    async def list_baselines(self, model_id: str) -> List[Baseline]:
        """
        Fetch baselines for a model, in API order.

        Raises:
            FetchError: On HTTP, connection or payload errors
        """
        path = f"/v3/models/{model_id}/baselines"
        payload = await self._make_request("GET", path)
        data = self._get_data(payload, path)

        try:
            return [Baseline.from_dict(b) for b in data.get("items") or []]
        except (KeyError, TypeError, AttributeError) as e:
            raise FetchError(
                message=f"Malformed baselines payload: {e}",
                request_url=self._url(path),
                original_error=e,
            )

    # =========================================================
    # QUERIES
    # =========================================================

    async def run_queries(self, request: Dict[str, Any]) -> QueryResponse:
        """
        Post a batched query request.

        Args:
            request: Body built by query_builder.build_query_request()

        Raises:
            FetchError: On HTTP, connection or payload errors
        """
        payload = await self._make_request("POST", "/v3/queries", json_body=request)

        try:
            return QueryResponse.from_dict(payload)
        except (KeyError, TypeError, AttributeError) as e:
            raise FetchError(
                message=f"Malformed query response: {e}",
                request_url=self._url("/v3/queries"),
                original_error=e,
            )

    # =========================================================
    # HTTP PLUMBING
    # =========================================================

    def _url(self, path: str) -> str:
        return f"{self._endpoint}{path}"

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._token}",
            "User-Agent": self.USER_AGENT,
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
            self._owns_session = True
        return self._session

    @staticmethod
    def _get_data(payload: Any, path: str) -> Dict[str, Any]:
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise FetchError(message=f"Malformed payload from {path}: missing data object")
        return data

    async def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make HTTP request with error handling."""
        session = await self._get_session()
        url = self._url(path)

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._get_default_headers(),
            ) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status} from {method} {path}",
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise FetchError(
                        message=f"Invalid JSON from {method} {path}",
                        status_code=response.status,
                        request_url=url,
                        original_error=e,
                    )

                logger.debug(f"{method} {path} completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                request_url=url,
                original_error=e,
            )
        except asyncio.TimeoutError as e:
            raise FetchError(
                message=f"Request timeout after {self._timeout}s",
                request_url=url,
                original_error=e,
            )

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "FiddlerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(endpoint={self._endpoint})>"
