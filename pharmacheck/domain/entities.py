# pharmacheck/domain/entities.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pharmacheck.domain.models import Alert, KnownCounterfeitHit, ProductQuery


class EvidenceTag(str, Enum):
    EXACT_PRODUCT_MATCH = "exact_product_match"
    SEMANTIC_PRODUCT_MATCH = "semantic_product_match"
    COUNTERFEIT_INDICATOR = "counterfeit_indicator"
    DESCRIPTION_KEYWORDS = "description_keywords"
    EXACT_BATCH_MATCH = "exact_batch_match"
    FUZZY_BATCH_MATCH = "fuzzy_batch_match"
    WEAK_BATCH_MATCH = "weak_batch_match"
    MANUFACTURER_INFO = "manufacturer_info"
    SERIOUS_ALERT_TYPE = "serious_alert_type"


@dataclass(frozen=True)
class BatchCandidate:
    value: str           # upper-case
    weight: float        # from the rule that produced it (user batch = 1.0)
    rule: str            # rule name, "user" or "text_analysis"


@dataclass(frozen=True)
class ProductMetadata:
    """Everything extracted from name/description/OCR for one request."""
    batch_candidates: Tuple[BatchCandidate, ...] = ()
    drug_names: frozenset = frozenset()
    expiry_dates: frozenset = frozenset()
    manufacturer_mentions: frozenset = frozenset()
    detected_text: str = ""

    @property
    def batch_numbers(self) -> frozenset:
        return frozenset(c.value for c in self.batch_candidates)

    def batches_at_least(self, min_weight: float) -> List[str]:
        """Ordered (strongest first) batch values whose rule weight is >= min_weight."""
        return [c.value for c in self.batch_candidates if c.weight >= min_weight]


@dataclass
class MatchCandidate:
    alert: Alert
    score: float
    matched_evidence: List[EvidenceTag] = field(default_factory=list)

    def has(self, tag: EvidenceTag) -> bool:
        return tag in self.matched_evidence


@dataclass(frozen=True)
class DetailedAlertInfo:
    url: str
    full_description: str
    affected_batches: frozenset = frozenset()
    counterfeit_keyword_hits: str = ""
    regulatory_action_hits: str = ""
    strong_indicator_hits: str = ""
    risk_indicator_count: int = 0
    page_confidence: float = 20.0     # 0..100
    tags: Tuple[str, ...] = ()        # "batch_info" | "risk_indicators" | "basic_match" | "error"

    @property
    def failed(self) -> bool:
        return "error" in self.tags


@dataclass(frozen=True)
class RankerVerdict:
    """Corpus-matching opinion: ranker + detail page + confirmation gate."""
    is_counterfeit: bool
    confidence: float                         # 0..100
    matched_alert: Optional[Alert] = None
    candidates: Tuple[MatchCandidate, ...] = ()
    detail: Optional[DetailedAlertInfo] = None
    similarity: float = 0.0                   # name similarity of the top match, 0..100
    match_probability: int = 0                # 0..100, only set when an alert matched
    risk_factors: Tuple[str, ...] = ()
    recommendation: str = ""
    degraded: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ImageFeatures:
    quality: float
    layout: float
    hologram: float


@dataclass(frozen=True)
class HeuristicAssessment:
    visual_integrity_score: float
    text_consistency_score: float
    anomaly_score: float
    multimodal_score: float
    is_authentic: bool
    confidence: float                         # 0..1
    risk_factors: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    known_counterfeit: Optional[KnownCounterfeitHit] = None
    image_features: Dict[int, ImageFeatures] = field(default_factory=dict)
    degraded: Tuple[str, ...] = ()

    @property
    def packaging_quality(self) -> float:
        if not self.image_features:
            return 0.5
        vals = [v for f in self.image_features.values() for v in (f.quality, f.layout)]
        return sum(vals) / len(vals)


@dataclass(frozen=True)
class ProductInfo:
    """What the heuristic scorer sees about the product besides the raw photos."""
    product_name: str
    description: str = ""
    batch_numbers: Tuple[str, ...] = ()
    manufacturers: Tuple[str, ...] = ()
    image_texts: Tuple[str, ...] = ()    # OCR text per image, same order as the images


@dataclass
class ScoringContext:
    query: ProductQuery
    metadata: ProductMetadata
    image_texts: List[str] = field(default_factory=list)

    def product_info(self, min_batch_weight: float = 0.6) -> ProductInfo:
        return ProductInfo(
            product_name=self.query.product_name,
            description=self.query.description,
            batch_numbers=tuple(self.metadata.batches_at_least(min_batch_weight)),
            manufacturers=tuple(sorted(self.metadata.manufacturer_mentions)),
            image_texts=tuple(self.image_texts),
        )
