"""
Prediction API Client

Async HTTP client for the maternal, cardiovascular and glucose prediction
services. One POST per cohort (or per record); nothing is retried.

Failures surface as two distinct errors so the UI can tell them apart:
- NetworkError: the request never got an HTTP response ("Network error: ...")
- ApiError: the service answered non-2xx; carries status and raw body text
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from caresight.config import settings
from caresight.utils import get_logger, log_api_response, ApiError, NetworkError

logger = get_logger(__name__)

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


@dataclass
class PredictionClientConfig:
    """Endpoints and transport settings."""
    maternal_url: str = settings.maternal_api_url
    cardiovascular_url: str = settings.cardiovascular_api_url
    glucose_url: str = settings.glucose_api_url
    # None or 0 waits forever
    timeout_seconds: Optional[float] = settings.prediction_timeout_seconds

    @property
    def glucose_cohort_url(self) -> str:
        return f"{self.glucose_url.rstrip('/')}/cohort"


@dataclass
class SeriesOutcome:
    """Per-row result of a series fan-out run without fail-fast."""
    index: int
    prediction: Optional[Dict[str, Any]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PredictionClient:
    """
    Client for the external prediction services.

    A fresh httpx.AsyncClient is opened per call (or per series batch).
    Pass ``transport`` to route requests elsewhere, e.g. httpx.MockTransport
    in tests.
    """

    def __init__(
        self,
        config: Optional[PredictionClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config or PredictionClientConfig()
        self._transport = transport
        self._request_count = 0

    def _client(self) -> httpx.AsyncClient:
        timeout = self.config.timeout_seconds or None
        return httpx.AsyncClient(transport=self._transport, timeout=timeout)

    async def post_json(
        self,
        url: str,
        body: Any,
        client: Optional[httpx.AsyncClient] = None
    ) -> Any:
        """
        POST a JSON body and return the decoded JSON response.

        Raises:
            NetworkError: transport failure (DNS, refused, timeout)
            ApiError: non-2xx status, or a 2xx body that is not JSON
        """
        if client is None:
            async with self._client() as own_client:
                return await self.post_json(url, body, own_client)

        logger.info(f"POST {url}")
        try:
            response = await client.post(url, content=json.dumps(body), headers=JSON_HEADERS)
        except httpx.TransportError as e:
            logger.error(f"Network error calling {url}: {e!r}")
            raise NetworkError(str(e) or type(e).__name__, url=url) from e

        self._request_count += 1
        logger.info(f"{url} responded {response.status_code}")

        if not response.is_success:
            logger.error(f"API error response from {url}: {response.text[:500]}")
            raise ApiError(
                status=response.status_code,
                body=response.text,
                url=url,
                reason=response.reason_phrase,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(
                status=response.status_code,
                body=response.text,
                url=url,
                reason="Invalid JSON",
            ) from e

        log_api_response(logger, url, data)
        return data

    # ── Maternal ────────────────────────────────────────────────────────

    async def predict_maternal(self, record: Dict[str, float]) -> Dict[str, Any]:
        return await self.post_json(self.config.maternal_url, record)

    async def predict_maternal_series(
        self,
        records: Sequence[Dict[str, float]],
        fail_fast: bool = True
    ) -> Union[List[Dict[str, Any]], List[SeriesOutcome]]:
        """
        Predict every record concurrently.

        With ``fail_fast`` (default) the batch is all-or-nothing: the first
        failure cancels the in-flight siblings and is re-raised. Without it,
        every row reports its own SeriesOutcome.
        """
        async with self._client() as client:
            if fail_fast:
                tasks = [
                    asyncio.create_task(self.post_json(self.config.maternal_url, r, client))
                    for r in records
                ]
                try:
                    return list(await asyncio.gather(*tasks))
                except BaseException:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise

            results = await asyncio.gather(
                *(self.post_json(self.config.maternal_url, r, client) for r in records),
                return_exceptions=True,
            )

        outcomes = []
        for index, result in enumerate(results):
            if isinstance(result, Exception):
                outcomes.append(SeriesOutcome(index=index, error=result))
            else:
                outcomes.append(SeriesOutcome(index=index, prediction=result))
        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.warning(f"Maternal series: {failed}/{len(outcomes)} request(s) failed")
        return outcomes

    # ── Cardiovascular ──────────────────────────────────────────────────

    async def predict_cardiovascular(self, patients: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self.post_json(self.config.cardiovascular_url, {"patients": patients})

    # ── Diabetes / glucose ──────────────────────────────────────────────

    @staticmethod
    def is_cohort(payload: Dict[str, Any]) -> bool:
        patients = payload.get("patients")
        return isinstance(patients, list) and len(patients) > 1

    def glucose_target(self, payload: Dict[str, Any]) -> tuple:
        """(url, body): cohort endpoint for >1 patient, else the single patient object."""
        if self.is_cohort(payload):
            return self.config.glucose_cohort_url, payload
        patients = payload.get("patients") or []
        return self.config.glucose_url, (patients[0] if patients else payload)

    async def predict_glucose(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url, body = self.glucose_target(payload)
        return await self.post_json(url, body)

    async def forward_glucose_cohort(self, body: Any) -> httpx.Response:
        """Pass a cohort body through untouched; the caller relays status and content."""
        self._request_count += 1
        async with self._client() as client:
            return await client.post(
                self.config.glucose_cohort_url,
                content=json.dumps(body),
                headers={"Content-Type": "application/json"},
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "request_count": self._request_count,
            "maternal_url": self.config.maternal_url,
            "cardiovascular_url": self.config.cardiovascular_url,
            "glucose_url": self.config.glucose_url,
        }
