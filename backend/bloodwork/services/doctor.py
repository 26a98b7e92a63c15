"""AI doctor chat and lab-report scanning via the OpenAI Responses API.

The service is a thin adapter: prompt assembly lives in
``context_builder`` and catalog resolution of scanned names in
``resolve_scan_result``, so both are testable without a model.
"""

import base64
import logging
import time
from functools import lru_cache
from typing import Any

from openai import AsyncOpenAI

from bloodwork.config import settings
from bloodwork.schemas.ai import ScanResult
from bloodwork.schemas.reference import ReferenceValue
from bloodwork.services.reference_catalog import match_reference_value

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 4096
MAX_HISTORY_MESSAGES = 20

SCAN_PROMPT = """Lies alle Laborwerte aus diesem Befund aus.
Gib für jeden Wert den Namen exakt wie gedruckt, den numerischen Messwert (Punkt als Dezimaltrennzeichen)
und die Einheit an. Übernimm, falls vorhanden, die Abschnittsüberschrift als Kategorie.
Gib das Abnahmedatum als YYYY-MM-DD und den Namen des Labors an, falls sie auf dem Befund stehen.
Lass Werte ohne numerisches Ergebnis weg. Erfinde keine Werte."""


class DoctorService:
    """LLM-backed chat and document extraction.

    Example:
        service = DoctorService()
        reply = await service.chat(system_prompt, "Ist mein Ferritin ok?", history)
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ):
        """Initialize DoctorService.

        Args:
            client: Optional pre-configured AsyncOpenAI client (for testing).
                   If not provided, creates one from settings.
            model: Model name. Defaults to ``settings.openai_model``.
            max_output_tokens: Maximum tokens in a response.

        Raises:
            ValueError: If no client provided and OPENAI_API_KEY is not configured.
        """
        if client is not None:
            self._client = client
        else:
            if not settings.openai_api_key:
                raise ValueError(
                    "OPENAI_API_KEY environment variable is required. "
                    "Set it in your .env file or environment."
                )
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)

        self._model = model or settings.openai_model
        self._max_output_tokens = max_output_tokens

    async def close(self) -> None:
        """Close the OpenAI client connection."""
        await self._client.close()

    @staticmethod
    def _build_input_messages(
        system_prompt: str,
        message: str,
        history: list[dict[str, str]] | None = None,
    ) -> list[dict[str, str]]:
        """System prompt, the last ``MAX_HISTORY_MESSAGES`` turns, then the new message."""
        messages = [{"role": "system", "content": system_prompt}]

        for msg in (history or [])[-MAX_HISTORY_MESSAGES:]:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role in ("user", "assistant") and content:
                messages.append({"role": role, "content": content})

        messages.append({"role": "user", "content": message})
        return messages

    async def chat(
        self,
        system_prompt: str,
        message: str,
        history: list[dict[str, str]] | None = None,
    ) -> str:
        """Answer one user message in the context of their lab values.

        Raises:
            ValueError: If message is empty.
            RuntimeError: If the model returned no text.
        """
        if not message or not message.strip():
            raise ValueError("message cannot be empty")

        t0 = time.perf_counter()
        input_messages = self._build_input_messages(system_prompt, message, history)
        logger.info(
            "chat: model=%s, messages=%d, prompt_chars=%d",
            self._model,
            len(input_messages),
            sum(len(m["content"]) for m in input_messages),
        )

        response = await self._client.responses.create(
            model=self._model,
            input=input_messages,
            max_output_tokens=self._max_output_tokens,
        )
        content = getattr(response, "output_text", None)
        if not content:
            raise RuntimeError("LLM returned an empty response")

        logger.info("chat complete: %.1fs, chars=%d", time.perf_counter() - t0, len(content))
        return content

    async def scan(self, data: bytes, mime_type: str, filename: str = "befund") -> ScanResult:
        """Extract lab values from an image or PDF using structured output.

        Raises:
            RuntimeError: If the response could not be parsed.
        """
        t0 = time.perf_counter()
        data_url = f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"

        attachment: dict[str, Any]
        if mime_type == "application/pdf":
            attachment = {"type": "input_file", "filename": filename, "file_data": data_url}
        else:
            attachment = {"type": "input_image", "image_url": data_url}

        response = await self._client.responses.parse(
            model=self._model,
            input=[
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": SCAN_PROMPT}, attachment],
                }
            ],
            text_format=ScanResult,
            max_output_tokens=self._max_output_tokens,
        )

        parsed = response.output_parsed
        if parsed is None:
            logger.warning("Structured parsing returned None, attempting fallback")
            raw_output = getattr(response, "output_text", None)
            if not raw_output:
                raise RuntimeError("Lab report could not be read")
            parsed = ScanResult.model_validate_json(raw_output)

        logger.info(
            "scan complete: %.1fs, mime=%s, bytes=%d, values=%d",
            time.perf_counter() - t0,
            mime_type,
            len(data),
            len(parsed.values),
        )
        return parsed


def resolve_scan_result(result: ScanResult, catalog: list[ReferenceValue]) -> ScanResult:
    """Attach catalog ids to scanned values (exact match, then fuzzy).

    Matched values inherit the catalog category, and the catalog unit when
    the report printed none.
    """
    resolved = []
    for value in result.values:
        ref = match_reference_value(catalog, value.name)
        if ref is None:
            resolved.append(value)
            continue
        resolved.append(
            value.model_copy(
                update={
                    "ref_id": ref.id,
                    "category": ref.category,
                    "unit": value.unit or ref.unit,
                    "short_name": value.short_name or ref.short_name,
                    "long_name": value.long_name or ref.long_name,
                }
            )
        )
    return result.model_copy(update={"values": resolved})


@lru_cache
def get_doctor_service() -> DoctorService:
    """FastAPI dependency; raises ValueError when OpenAI is not configured."""
    return DoctorService()
