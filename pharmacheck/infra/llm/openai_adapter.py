# pharmacheck/infra/llm/openai_adapter.py
from __future__ import annotations
import os, json, logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, APIError

from pharmacheck.domain.errors import ProviderUnavailableError
from pharmacheck.domain.ports import TextAnalysisPort

log = logging.getLogger("pharmacheck.llm")

SYSTEM_PROMPT = (
    "You extract facts from pharmaceutical packaging text. Be literal: never invent batch numbers, "
    "drug names or manufacturers that are not in the text. Reply with a single JSON object."
)
EXPECTED_KEYS = ("drug_names", "manufacturers", "batch_numbers")


class OpenAITextAnalysis(TextAnalysisPort):
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, dev_mode: Optional[bool] = None):
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.dev_mode = dev_mode if dev_mode is not None else os.getenv("DEV_MODE", "0") in {"1", "true", "True"}
        self.model = model or os.getenv("LLM_MODEL", "gpt-4o-mini")
        self._client: AsyncOpenAI | None = None

    def _client_ok(self) -> bool:
        return bool(self.api_key) and not self.dev_mode

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    @staticmethod
    def _normalize(data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return {k: [] for k in EXPECTED_KEYS}
        out: Dict[str, Any] = {}
        for k in EXPECTED_KEYS:
            v = data.get(k) or []
            out[k] = [str(x) for x in (v if isinstance(v, list) else [v]) if x]
        return out

    async def analyze(self, prompt: str) -> Dict[str, Any]:
        if not self._client_ok():
            # dev/offline: caller falls back to regex-only extraction
            raise ProviderUnavailableError("text_analysis", "OpenAI not configured or DEV_MODE on")
        client = self._ensure_client()
        try:
            rsp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=float(os.getenv("LLM_TEMPERATURE", "0")),
                max_tokens=int(os.getenv("LLM_MAX_TOKENS", "300")),
                response_format={"type": "json_object"},
            )
        except APIError as e:
            log.warning("[llm] text analysis call failed: %s", e)
            raise ProviderUnavailableError("text_analysis", str(e)) from e
        content = (rsp.choices[0].message.content or "").strip()
        try:
            return self._normalize(json.loads(content))
        except json.JSONDecodeError as e:
            raise ProviderUnavailableError("text_analysis", f"non-JSON reply: {e}") from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
