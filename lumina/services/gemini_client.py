import json
import logging
from time import perf_counter
from typing import Any, Dict, List

import google.generativeai as genai

from ..config import settings
from ..errors import AnalysisServiceError, MalformedGenerationError
from ..models import AnalysisRequest, AnalysisResponse, ModelTier

logger = logging.getLogger("lumina")


def model_for_tier(tier: ModelTier) -> str:
    return settings.deep_model if tier == "deep" else settings.fast_model


class GeminiAnalysisService:
    """Sends slide images plus an instruction to Gemini and returns text or JSON."""

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        if self.api_key:
            genai.configure(api_key=self.api_key)

    def _build_parts(self, request: AnalysisRequest) -> List[Any]:
        parts: List[Any] = []
        for item in request.images:
            if item.label:
                parts.append(item.label)
            parts.append({"mime_type": item.image.mime_type, "data": item.image.raw()})
        parts.append(request.instruction)
        return parts

    def _generation_config(self, request: AnalysisRequest) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        if request.temperature is not None:
            config["temperature"] = request.temperature
        if request.output_schema is not None:
            config["response_mime_type"] = "application/json"
            config["response_schema"] = request.output_schema
        return config

    def _strip_code_fences(self, text: str) -> str:
        t = text.strip()
        if t.startswith("```"):
            parts = t.split("\n", 1)
            if len(parts) == 2:
                t = parts[1]
            if t.endswith("```"):
                t = t[:-3]
        if t.startswith("json\n"):
            t = t[5:]
        return t.strip()

    def _try_slice_to_json(self, text: str) -> Any:
        for open_ch, close_ch in (("{", "}"), ("[", "]")):
            first = text.find(open_ch)
            last = text.rfind(close_ch)
            if first != -1 and last > first:
                try:
                    return json.loads(text[first:last + 1])
                except ValueError:
                    continue
        return None

    def _response_text(self, response: Any) -> str:
        try:
            raw_text = (response.text or "").strip()
        except ValueError:
            # .text raises when the candidate has no simple text part
            raw_text = ""
        if not raw_text and getattr(response, "candidates", None):
            try:
                parts = response.candidates[0].content.parts
                raw_text = "".join(getattr(p, "text", "") for p in parts)
            except (AttributeError, IndexError):
                raw_text = ""
        return raw_text

    def parse_structured(self, raw_text: str) -> Any:
        cleaned = self._strip_code_fences(raw_text)
        try:
            return json.loads(cleaned)
        except ValueError:
            sliced = self._try_slice_to_json(cleaned)
            if sliced is None:
                raise MalformedGenerationError("payload_unparseable")
            return sliced

    async def submit(self, request: AnalysisRequest) -> AnalysisResponse:
        if not self.api_key:
            logger.warning({"event": "gemini_no_api_key"})
            raise AnalysisServiceError("analysis_service_unconfigured")
        model_name = model_for_tier(request.tier)
        logger.debug({
            "event": "gemini_request",
            "model": model_name,
            "images": len(request.images),
            "structured": request.output_schema is not None,
        })
        try:
            model = genai.GenerativeModel(
                model_name,
                generation_config=self._generation_config(request),
                system_instruction=request.system_instruction,
            )
            t0 = perf_counter()
            response = await model.generate_content_async(self._build_parts(request))
            latency_ms = int((perf_counter() - t0) * 1000)
        except Exception as exc:
            logger.exception("gemini_call_failed")
            raise AnalysisServiceError(str(exc) or "gemini_call_failed") from exc
        raw_text = self._response_text(response)
        logger.debug({"event": "gemini_response", "model": model_name, "preview": raw_text[:200], "latency_ms": latency_ms})
        if request.output_schema is not None:
            return AnalysisResponse(data=self.parse_structured(raw_text))
        return AnalysisResponse(text=raw_text)
