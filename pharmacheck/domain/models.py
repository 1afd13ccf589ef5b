# pharmacheck/domain/models.py
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskLevel(str, Enum):
    SAFE = "SAFE"
    LOW_RISK = "LOW_RISK"
    MEDIUM_RISK = "MEDIUM_RISK"
    HIGH_RISK = "HIGH_RISK"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def at_least(self, other: "RiskLevel") -> "RiskLevel":
        return self if self.rank >= other.rank else other


_RISK_ORDER = [RiskLevel.SAFE, RiskLevel.LOW_RISK, RiskLevel.MEDIUM_RISK, RiskLevel.HIGH_RISK, RiskLevel.CRITICAL]


class Alert(BaseModel):
    """Regulator alert as published by the crawler. Read-only for the matching core."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    excerpt: str = ""
    url: str
    date: str | None = None
    batch_numbers: frozenset[str] = frozenset()
    product_names: frozenset[str] = frozenset()
    manufacturer: str | None = None
    severity: Severity = Severity.MEDIUM
    active: bool = True
    alert_type: str | None = None   # "Product Recall" | "Safety Alert" | "Regulatory Action" | "Safety Notice"

    @field_validator("batch_numbers", mode="before")
    @classmethod
    def _upper_batches(cls, v):
        return frozenset(str(b).strip().upper() for b in (v or []) if str(b).strip())

    @field_validator("product_names", mode="before")
    @classmethod
    def _lower_names(cls, v):
        return frozenset(str(n).strip().lower() for n in (v or []) if str(n).strip())

    @property
    def full_text(self) -> str:
        return f"{self.title} {self.excerpt}".strip()


class ProductImage(BaseModel):
    """Opaque uploaded photo; only OCR and the image inspector look inside."""
    data: bytes
    content_type: str | None = None
    filename: str | None = None


class ProductQuery(BaseModel):
    product_name: str
    description: str
    user_batch_number: Optional[str] = None
    images: List[ProductImage] = Field(default_factory=list)


class KnownCounterfeitHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_name: str
    batch: str
    url: str


class Verdict(BaseModel):
    is_counterfeit: bool
    risk_level: RiskLevel
    confidence: float = Field(ge=0.0, le=100.0)
    summary: str
    matched_alert: Optional[Alert] = None
    recommendations: List[str] = Field(default_factory=list)
    known_counterfeit: Optional[KnownCounterfeitHit] = None
    risk_factors: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    degraded: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _counterfeit_needs_anchor(self):
        # never flag counterfeit without an alert or a registry hit behind it
        if self.is_counterfeit and self.matched_alert is None and self.known_counterfeit is None:
            raise ValueError("counterfeit verdict requires matched_alert or known_counterfeit")
        return self
