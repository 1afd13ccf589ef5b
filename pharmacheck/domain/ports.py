# pharmacheck/domain/ports.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pharmacheck.domain.entities import ImageFeatures, ScoringContext
from pharmacheck.domain.models import Alert, ProductImage

# ===== Read side of the alert corpus (populated by the crawler, never written here) =====

class AlertCorpusPort(ABC):
    @abstractmethod
    async def list_active_alerts(self) -> List[Alert]: ...

    @abstractmethod
    async def get_alert_by_id(self, alert_id: str) -> Optional[Alert]: ...

    @abstractmethod
    async def find_by_url(self, url: str) -> Optional[Alert]: ...

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

# ===== Providers (all optional; failure degrades the verdict, never fails it) =====

class OcrPort(ABC):
    @abstractmethod
    async def extract(self, image: ProductImage) -> str: ...

class TextAnalysisPort(ABC):
    """Structured extraction from free text. Returns {"drug_names": [...], "manufacturers": [...], "batch_numbers": [...]}."""
    @abstractmethod
    async def analyze(self, prompt: str) -> Dict[str, Any]: ...

class SimilarityModel(ABC):
    @abstractmethod
    async def similarity(self, a: str, b: str) -> float: ...  # 0..1

class PageFetcherPort(ABC):
    @abstractmethod
    async def fetch(self, url: str) -> str: ...  # main text of the page

class ImageInspector(ABC):
    """Sync; called from an executor by the heuristic scorer."""
    @abstractmethod
    def inspect(self, image: ProductImage) -> ImageFeatures: ...

# ===== Scorers =====

class Scorer(ABC):
    name: str = "scorer"

    @abstractmethod
    async def evaluate(self, ctx: ScoringContext) -> Any: ...
