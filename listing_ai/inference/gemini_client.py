# listing_ai/inference/gemini_client.py

"""Inference Service boundary and its Gemini REST implementation."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from curl_cffi.requests import AsyncSession
from pydantic import BaseModel, ValidationError

from listing_ai.config.settings import Settings
from listing_ai.errors import InferenceFailure
from listing_ai.models.image_asset import ImageAsset
from listing_ai.models.research import GroundingSource

logger = logging.getLogger("listing_ai.inference")

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class InferenceRequest:
    """A single request to the Inference Service."""

    instruction: str
    images: tuple[ImageAsset, ...] = ()
    web_search: bool = False
    response_schema: dict[str, Any] | None = None
    thinking_budget: int | None = None
    expect_json: bool = False


@dataclass(frozen=True)
class InferenceResponse:
    """Text returned by the Inference Service plus any provenance."""

    text: str
    grounding_sources: tuple[GroundingSource, ...] = field(
        default_factory=tuple
    )


class InferenceService(Protocol):
    """Anything that can answer an :class:`InferenceRequest`."""

    async def generate(
        self, request: InferenceRequest
    ) -> InferenceResponse: ...


def parse_structured(
    response: InferenceResponse, model: type[ModelT]
) -> ModelT:
    """Parse the JSON object in *response* and validate it against *model*.

    Tolerates Markdown code fences or chatter around the object, but any
    parse or validation failure raises :class:`InferenceFailure`.
    """
    text = response.text.strip()
    if not text:
        raise InferenceFailure("Inference Service returned no result")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise InferenceFailure(
                "Inference Service returned unparseable output"
            ) from None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise InferenceFailure(
                f"Inference Service returned unparseable output: {exc}"
            ) from exc
    if not isinstance(data, dict):
        raise InferenceFailure(
            "Inference Service returned JSON that is not an object"
        )
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.debug("Validation failed for %s: %s", model.__name__, exc)
        raise InferenceFailure(
            f"Inference Service output failed {model.__name__} "
            f"validation ({exc.error_count()} error(s))"
        ) from exc


class GeminiClient:
    """Inference Service backed by the Gemini ``generateContent`` REST API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.settings = Settings()
        self.api_key = (
            api_key if api_key is not None else self.settings.GEMINI_API_KEY
        )
        self.model = model or self.settings.GEMINI_MODEL
        self.timeout = (
            timeout
            if timeout is not None
            else self.settings.INFERENCE_TIMEOUT
        )
        self._session: AsyncSession | None = None

    @property
    def endpoint(self) -> str:
        return (
            f"{self.settings.GEMINI_API_BASE}/models/"
            f"{self.model}:generateContent"
        )

    def _get_session(self) -> AsyncSession:
        if self._session is None:
            self._session = AsyncSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def build_payload(self, request: InferenceRequest) -> dict[str, Any]:
        """Translate an :class:`InferenceRequest` into the REST body."""
        parts: list[dict[str, Any]] = [
            {
                "inline_data": {
                    "mime_type": image.media_type,
                    "data": image.to_base64(),
                }
            }
            for image in request.images
        ]
        parts.append({"text": request.instruction})

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
        }
        generation_config: dict[str, Any] = {}
        if request.response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = request.response_schema
        elif request.expect_json:
            generation_config["responseMimeType"] = "application/json"
        if request.thinking_budget is not None:
            generation_config["thinkingConfig"] = {
                "thinkingBudget": request.thinking_budget
            }
        if generation_config:
            payload["generationConfig"] = generation_config
        if request.web_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    async def generate(
        self, request: InferenceRequest
    ) -> InferenceResponse:
        """Send *request* and return the candidate text and provenance."""
        if not self.api_key:
            raise InferenceFailure(
                "No Gemini API key configured (set GEMINI_API_KEY)"
            )
        headers = {
            **self.settings.DEFAULT_HEADERS,
            "x-goog-api-key": self.api_key,
        }
        payload = self.build_payload(request)
        logger.debug(
            "Inference request: model=%s images=%d web_search=%s schema=%s",
            self.model,
            len(request.images),
            request.web_search,
            request.response_schema is not None,
        )
        session = self._get_session()
        try:
            resp = await asyncio.wait_for(
                session.post(
                    self.endpoint,
                    headers=headers,
                    json=payload,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise InferenceFailure(
                f"Inference Service timed out after {self.timeout:.0f}s"
            ) from exc
        except Exception as exc:
            logger.warning(
                "Inference transport error: %s", exc, exc_info=True
            )
            raise InferenceFailure(
                f"Inference Service request failed: {exc}"
            ) from exc

        if resp.status_code != 200:
            logger.warning(
                "Inference HTTP %d: %s",
                resp.status_code,
                resp.text[:300],
            )
            raise InferenceFailure(
                f"Inference Service returned HTTP {resp.status_code}"
            )
        try:
            body: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise InferenceFailure(
                "Inference Service returned a non-JSON envelope"
            ) from exc
        return self.parse_envelope(body)

    @staticmethod
    def parse_envelope(body: dict[str, Any]) -> InferenceResponse:
        """Extract text and grounding sources from a ``generateContent`` body."""
        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise InferenceFailure(
                f"Prompt blocked: {feedback['blockReason']}"
            )
        candidates = body.get("candidates") or []
        if not candidates:
            raise InferenceFailure("Inference Service returned no candidates")
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(
            p.get("text", "")
            for p in parts
            if not p.get("thought")
        ).strip()
        if not text:
            reason = candidate.get("finishReason", "unknown")
            raise InferenceFailure(
                f"Inference Service returned an empty result "
                f"(finishReason={reason})"
            )

        grounding: list[GroundingSource] = []
        seen: set[str] = set()
        metadata = candidate.get("groundingMetadata") or {}
        for chunk in metadata.get("groundingChunks") or []:
            web = chunk.get("web") or {}
            uri = web.get("uri")
            if not uri or uri in seen:
                continue
            seen.add(uri)
            grounding.append(
                GroundingSource(uri=uri, title=web.get("title") or "")
            )
        return InferenceResponse(
            text=text, grounding_sources=tuple(grounding)
        )
