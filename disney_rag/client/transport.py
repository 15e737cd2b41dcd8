"""Backend RAG API client using httpx.

One long-lived ``httpx.AsyncClient`` is kept per ``RagClient`` so the
backend's session cookie (which carries the rate-limit tier) survives
between calls.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from disney_rag.client.errors import ErrorKind, RagError
from disney_rag.client.models import QueryResult, ServiceAvailability, TierState
from disney_rag.config import settings

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/rag/query"
STATUS_PATH = "/api/rag/status"
TIER_STATUS_PATH = "/api/rag/tier-status"
UNLOCK_PATH = "/api/rag/unlock-premium"

ADMIN_KEY_HEADER = "X-Admin-API-Key"
RATE_LIMIT_HEADER = "X-RateLimit-Limit"


def _json_body(resp: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, or return ``{}`` if it isn't one."""
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _declared_limit(resp: httpx.Response) -> int | None:
    """Pull the server-declared hourly limit out of a 429 response."""
    raw = _json_body(resp).get("limit", resp.headers.get(RATE_LIMIT_HEADER))
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def error_for_query_status(resp: httpx.Response) -> RagError:
    """Translate a non-2xx query response into the error taxonomy."""
    status = resp.status_code
    if status == 429:
        return RagError(ErrorKind.RATE_LIMITED, status=status, limit=_declared_limit(resp))
    if status == 503:
        return RagError(ErrorKind.SERVICE_UNAVAILABLE, status=status)
    if status == 400:
        return RagError(ErrorKind.INVALID_INPUT, status=status)
    return RagError(ErrorKind.REQUEST_FAILED, status=status)


class RagClient:
    """Typed async access to the ``/api/rag`` endpoints.

    Args:
        base_url: Backend origin (default from settings).
        api_key: Admin API key sent as ``X-Admin-API-Key`` (default from settings).
        timeout: Per-request timeout in seconds (default from settings).
        http_client: Pre-built client, mainly for tests. Not closed by ``aclose``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.get_api_base_url()).rstrip("/")
        self._api_key = settings.admin_api_key if api_key is None else api_key
        self._timeout = timeout or settings.request_timeout_seconds
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Return (and lazily create) the shared httpx client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers[ADMIN_KEY_HEADER] = self._api_key
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> RagClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Queries ---------------------------------------------------------------

    async def submit_query(
        self,
        question: str,
        *,
        content_type: str | None = None,
        top_k: int | None = None,
    ) -> QueryResult:
        """Ask the assistant a question.

        The caller is responsible for rejecting blank questions. Raises
        ``RagError`` with the kind matching the failure.
        """
        payload: dict[str, Any] = {"query": question}
        if content_type:
            payload["content_type"] = content_type
        if top_k is not None:
            payload["top_k"] = top_k

        try:
            resp = await self._get_client().post(QUERY_PATH, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("RAG query failed (network error): %s", exc)
            raise RagError(ErrorKind.NETWORK_ERROR) from exc

        if not resp.is_success:
            error = error_for_query_status(resp)
            logger.warning(
                "RAG query rejected: status=%d kind=%s body=%s",
                resp.status_code,
                error.kind,
                resp.text[:200],
            )
            raise error

        try:
            result = QueryResult.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.error("RAG query returned an unreadable body: %s", resp.text[:200])
            raise RagError(ErrorKind.REQUEST_FAILED, status=resp.status_code) from exc

        logger.info(
            "RAG query answered: %d source(s), %d chars, cached=%s",
            len(result.sources),
            len(result.answer),
            result.cached,
        )
        return result

    # -- Status ----------------------------------------------------------------

    async def fetch_service_status(self) -> ServiceAvailability:
        """Return the kill-switch state. Any failure raises ``RagError(UNKNOWN)``."""
        body = await self._get_json(STATUS_PATH)
        try:
            return ServiceAvailability.model_validate(body)
        except ValidationError as exc:
            logger.warning("Unreadable service status body: %s", body)
            raise RagError(ErrorKind.UNKNOWN) from exc

    async def fetch_tier_status(self) -> TierState:
        """Return the session's tier and usage. Any failure raises ``RagError(UNKNOWN)``."""
        body = await self._get_json(TIER_STATUS_PATH)
        try:
            return TierState.model_validate(body)
        except ValidationError as exc:
            logger.warning("Unreadable tier status body: %s", body)
            raise RagError(ErrorKind.UNKNOWN) from exc

    async def unlock_tier(self, code: str) -> TierState:
        """Exchange a premium access code for a new tier.

        A 4xx answer raises ``RagError(INVALID_CODE)``; anything else that
        isn't a readable tier payload raises ``RagError(UNKNOWN)``.
        """
        try:
            resp = await self._get_client().post(UNLOCK_PATH, json={"code": code})
        except httpx.HTTPError as exc:
            logger.warning("Premium unlock failed (network error): %s", exc)
            raise RagError(ErrorKind.UNKNOWN) from exc

        if 400 <= resp.status_code < 500:
            logger.info(
                "Premium unlock refused: status=%d error=%s",
                resp.status_code,
                _json_body(resp).get("error", ""),
            )
            raise RagError(ErrorKind.INVALID_CODE, status=resp.status_code)
        if not resp.is_success:
            logger.warning("Premium unlock failed: status=%d", resp.status_code)
            raise RagError(ErrorKind.UNKNOWN, status=resp.status_code)

        try:
            tier = TierState.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Premium unlock returned an unreadable body: %s", resp.text[:200])
            raise RagError(ErrorKind.UNKNOWN, status=resp.status_code) from exc

        logger.info("Premium unlock succeeded: tier=%s limit=%d", tier.tier, tier.limit)
        return tier

    # -- Internal --------------------------------------------------------------

    async def _get_json(self, path: str) -> Any:
        try:
            resp = await self._get_client().get(path)
        except httpx.HTTPError as exc:
            logger.debug("GET %s failed (network error): %s", path, exc)
            raise RagError(ErrorKind.UNKNOWN) from exc
        if not resp.is_success:
            logger.debug("GET %s failed: status=%d", path, resp.status_code)
            raise RagError(ErrorKind.UNKNOWN, status=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise RagError(ErrorKind.UNKNOWN, status=resp.status_code) from exc
