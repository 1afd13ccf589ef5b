# pharmacheck/infra/llm/openai_embedder.py
from __future__ import annotations
import os, asyncio, logging
from typing import Dict, List, Optional

import numpy as np
from openai import AsyncOpenAI, APIConnectionError, APIError, RateLimitError

from pharmacheck.domain.errors import ProviderUnavailableError
from pharmacheck.domain.ports import SimilarityModel

log = logging.getLogger("pharmacheck.embeddings")

_DEFAULT_MODEL = "text-embedding-3-small"
MAX_ATTEMPTS = 3
MEMO_SIZE = 512


def cosine(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return max(0.0, min(1.0, float(np.dot(a, b) / denom)))


class OpenAIEmbedder(SimilarityModel):
    """Embedding cosine similarity. Small per-instance memo; one instance per process."""

    def __init__(self, *, model: str | None = None, api_key: str | None = None, dev_mode: bool = False):
        self.model = model or os.getenv("EMBED_MODEL", _DEFAULT_MODEL)
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.dev_mode = dev_mode
        self._client: AsyncOpenAI | None = None
        self._memo: Dict[str, np.ndarray] = {}

    @property
    def client(self) -> AsyncOpenAI:
        if not self.api_key or self.dev_mode:
            raise ProviderUnavailableError("embeddings", "OPENAI_API_KEY missing or DEV_MODE on")
        if self._client is None:
            base = os.getenv("OPENAI_API_BASE") or os.getenv("OPENAI_BASE_URL")
            kwargs = {"api_key": self.api_key}
            if base:
                kwargs["base_url"] = base
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def _embed(self, inputs: List[str]) -> List[np.ndarray]:
        client = self.client
        # simple backoff for rate limit / connection hiccups
        for attempt in range(MAX_ATTEMPTS):
            try:
                rsp = await client.embeddings.create(model=self.model, input=inputs)
                return [np.asarray(d.embedding, dtype=np.float32) for d in rsp.data]
            except (RateLimitError, APIConnectionError) as e:
                if attempt == MAX_ATTEMPTS - 1:
                    raise ProviderUnavailableError("embeddings", str(e)) from e
                log.warning("[embeddings] %s on attempt %d, retrying", e.__class__.__name__, attempt + 1)
                await asyncio.sleep(min(2 ** attempt, 4))
            except APIError as e:
                raise ProviderUnavailableError("embeddings", str(e)) from e
        raise ProviderUnavailableError("embeddings", "no response")

    async def embed(self, text: str) -> np.ndarray:
        key = (text or "").replace("\n", " ").strip()
        if key not in self._memo:
            if len(self._memo) >= MEMO_SIZE:
                self._memo.clear()
            self._memo[key] = (await self._embed([key]))[0]
        return self._memo[key]

    async def similarity(self, a: str, b: str) -> float:
        va = await self.embed(a)
        vb = await self.embed(b)
        return cosine(va, vb)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
