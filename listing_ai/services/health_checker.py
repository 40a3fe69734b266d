# listing_ai/services/health_checker.py

"""Inference Service connectivity health checker."""

import asyncio
import logging
import time
from dataclasses import dataclass

from curl_cffi import requests as curl_requests

from listing_ai.config.settings import Settings

logger = logging.getLogger("listing_ai.health")


@dataclass
class HealthResult:
    """Result of a single endpoint health check."""

    target: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


def probe_inference_service(
    api_key: str | None = None,
    model: str | None = None,
) -> HealthResult:
    """Fetch the configured model's metadata and time the round trip."""
    settings = Settings()
    key = api_key if api_key is not None else settings.GEMINI_API_KEY
    model_name = model or settings.GEMINI_MODEL
    target = f"gemini:{model_name}"

    if not key:
        return HealthResult(
            target=target,
            status="down",
            latency_ms=0.0,
            message="No API key configured (set GEMINI_API_KEY)",
        )

    url = f"{settings.GEMINI_API_BASE}/models/{model_name}"
    start = time.monotonic()
    try:
        session = curl_requests.Session()
        resp = session.get(
            url,
            headers={
                **settings.DEFAULT_HEADERS,
                "x-goog-api-key": key,
            },
            timeout=settings.HEALTH_TIMEOUT,
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        if resp.status_code != 200:
            return HealthResult(
                target=target,
                status="down",
                latency_ms=elapsed_ms,
                message=f"HTTP {resp.status_code}",
            )

        if elapsed_ms > settings.HEALTH_SLOW_MS:
            return HealthResult(
                target=target,
                status="slow",
                latency_ms=elapsed_ms,
                message="High latency",
            )

        return HealthResult(
            target=target,
            status="ok",
            latency_ms=elapsed_ms,
            message="",
        )

    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            target=target,
            status="down",
            latency_ms=elapsed_ms,
            message=str(exc)[:80],
        )


class HealthChecker:
    """Runs the Inference Service probe off the event loop."""

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key

    async def check_all(self) -> list[HealthResult]:
        results = [
            await asyncio.to_thread(
                probe_inference_service, self.api_key
            )
        ]
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.target,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
