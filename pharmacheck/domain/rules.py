# pharmacheck/domain/rules.py
"""
Rule tables for extraction, ranking and heuristics.

Everything here has an in-code default so the service runs with no config file;
``pharmacheck.config.load_rulebook`` overlays ``config/rules.yaml`` on top.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern

# ─────────────────────────────────────────────────────────────
# Batch cascade (ordered, first = strongest)
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BatchRule:
    name: str
    pattern: str
    weight: float
    flags: str = "i"          # "i" -> IGNORECASE
    require_digit: bool = False

    def compile(self) -> Pattern[str]:
        fl = re.IGNORECASE if "i" in self.flags.lower() else 0
        return re.compile(self.pattern, fl)


DEFAULT_BATCH_RULES: List[BatchRule] = [
    BatchRule("batch_number", r"\bbatch\s*(?:number|no\.?)\s*:?\s*([A-Z0-9][A-Z0-9\-]{2,14})", 0.9),
    BatchRule("batch", r"\bbatch\s*:?\s*([A-Z0-9][A-Z0-9\-]{2,14})", 0.9, require_digit=True),
    BatchRule("lot", r"\blot\s*(?:number|no\.?)?\s*:?\s*([A-Z0-9][A-Z0-9\-]{2,14})", 0.9, require_digit=True),
    BatchRule("bno", r"\bbno\s*:?\s*([A-Z0-9][A-Z0-9\-]{2,14})", 0.9),
    BatchRule("bare_mixed", r"\b([A-Z]\d+[A-Z]?\d*[A-Z]?)\b", 0.6, flags=""),
    BatchRule("bare_prefixed", r"\b([A-Z]{1,3}\d{3,8}[A-Z]{0,3})\b", 0.6, flags=""),
    BatchRule("generic", r"\b([A-Z0-9]{3,10})\b", 0.2, require_digit=True),
]

# dosage strengths and units that look like batch tokens
DEFAULT_BATCH_EXCLUSIONS: List[str] = [
    r"^\d+(?:\.\d+)?(?:MG|MCG|ML|G|IU|KG|L)$",
    r"^\d+X\d+$",
    r"^\d{1,2}$",
    r"^(?:19|20)\d{2}$",
]

DEFAULT_DRUG_NAMES: List[str] = [
    "paracetamol", "ibuprofen", "amoxicillin", "ciprofloxacin", "metronidazole",
    "diclofenac", "acetaminophen", "erythromycin", "azithromycin", "omeprazole",
    "ranitidine", "cefuroxime", "cefadroxil", "cefotaxime", "gentamicin",
    "levonorgestrel", "postinor", "artemether", "lumefantrine", "chloroquine",
    "antibiotic", "analgesic", "anti-inflammatory",
]

DEFAULT_MANUFACTURERS: List[str] = [
    "emzor", "may & baker", "fidson", "neimeth", "swiss pharma", "nipco",
    "glaxosmithkline", "gsk", "smithkline", "pfizer", "novartis", "sanofi",
    "roche", "merck", "abbott", "johnson & johnson", "janssen", "gedeon richter",
]

DEFAULT_MANUFACTURER_PATTERNS: List[str] = [
    r"manufactured\s*by\s*:?\s*([A-Za-z][A-Za-z&.\- ]{2,40}?)(?:[,.\n\r]|$)",
    r"made\s*by\s*:?\s*([A-Za-z][A-Za-z&.\- ]{2,40}?)(?:[,.\n\r]|$)",
    r"producer\s*:?\s*([A-Za-z][A-Za-z&.\- ]{2,40}?)(?:[,.\n\r]|$)",
    r"marketed\s*by\s*:?\s*([A-Za-z][A-Za-z&.\- ]{2,40}?)(?:[,.\n\r]|$)",
]

DEFAULT_EXPIRY_PATTERNS: List[str] = [
    r"exp\.?\s*date\s*:?\s*([A-Z0-9][A-Z0-9\-/]{3,10})",
    r"expiry\s*(?:date)?\s*:?\s*([A-Z0-9][A-Z0-9\-/]{3,10})",
    r"expires\s*:?\s*([A-Z0-9][A-Z0-9\-/]{3,10})",
    r"\bexp\s*:?\s*([A-Z0-9][A-Z0-9\-/]{3,10})",
]

# ─────────────────────────────────────────────────────────────
# Keyword lists
# ─────────────────────────────────────────────────────────────

DEFAULT_COUNTERFEIT_TERMS = ["fake", "counterfeit", "unsafe", "falsified"]
DEFAULT_RISK_KEYWORDS = ["counterfeit", "fake", "falsified", "unauthorized", "substandard", "unsafe", "dangerous", "recall"]
DEFAULT_STRONG_INDICATORS = [
    "counterfeit", "fake", "falsified", "adulterated", "substandard", "spurious", "dangerous", "unsafe",
    "impure", "incorrect strength", "wrong formula", "harmful", "toxic", "potential health risk",
]
DEFAULT_ACTION_KEYWORDS = ["recall", "withdraw", "seizure", "destroy", "ban", "suspend"]
DEFAULT_OFFICIAL_TERMS = [
    "national agency for food and drug administration and control",
    "nafdac", "safety alert", "public notice", "public alert",
]
DEFAULT_SUSPICIOUS_TERMS = ["promo", "bargain", "cheap", "discount", "generic"]
DEFAULT_PRICE_TERMS = ["affordable", "budget", "low cost", "expensive", "premium"]

DEFAULT_SUSPICIOUS_NAME_PATTERNS = [
    "PENIS ENLARGEMENT", "BREAST ENHANCER", "ULTRA PREMIUM", "VIRGINITY",
    "ANTI-AGING", "HERBAL", "NATURAL", "MAGIC", "INSTANT", "PERFECT",
]

DEFAULT_LEGIT_BATCH_FORMATS = [
    r"^T\d{5,6}B$",
    r"^N\d{6}[A-Z]?$",
    r"^[A-Z]{2}\d{4,6}$",
    r"^20\d{2}\d{3,4}$",
]

# ─────────────────────────────────────────────────────────────
# Ranker weights & gate
# ─────────────────────────────────────────────────────────────

DEFAULT_RANKER_WEIGHTS: Dict[str, float] = {
    "name_floor": 30.0,            # name score counted only above this
    "counterfeit_indicator": 20.0,
    "description_word": 4.0,
    "description_max_words": 3,
    "batch_multiplier": 50.0,
    "exact_batch_bonus": 30.0,
    "fuzzy_batch_bonus": 15.0,
    "manufacturer": 25.0,
    "serious_alert": 15.0,
    "min_score": 60.0,
    "strong_score": 70.0,
    "multi_tag_score": 80.0,
    "top_n": 2,
}


@dataclass
class RuleBook:
    batch_rules: List[BatchRule] = field(default_factory=lambda: list(DEFAULT_BATCH_RULES))
    batch_exclusions: List[str] = field(default_factory=lambda: list(DEFAULT_BATCH_EXCLUSIONS))
    drug_names: List[str] = field(default_factory=lambda: list(DEFAULT_DRUG_NAMES))
    manufacturers: List[str] = field(default_factory=lambda: list(DEFAULT_MANUFACTURERS))
    manufacturer_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_MANUFACTURER_PATTERNS))
    expiry_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXPIRY_PATTERNS))
    counterfeit_terms: List[str] = field(default_factory=lambda: list(DEFAULT_COUNTERFEIT_TERMS))
    risk_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_RISK_KEYWORDS))
    action_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_ACTION_KEYWORDS))
    strong_indicators: List[str] = field(default_factory=lambda: list(DEFAULT_STRONG_INDICATORS))
    official_terms: List[str] = field(default_factory=lambda: list(DEFAULT_OFFICIAL_TERMS))
    regulator_domain: str = "nafdac.gov.ng"
    suspicious_terms: List[str] = field(default_factory=lambda: list(DEFAULT_SUSPICIOUS_TERMS))
    price_terms: List[str] = field(default_factory=lambda: list(DEFAULT_PRICE_TERMS))
    suspicious_name_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_SUSPICIOUS_NAME_PATTERNS))
    legit_batch_formats: List[str] = field(default_factory=lambda: list(DEFAULT_LEGIT_BATCH_FORMATS))
    ranker: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_RANKER_WEIGHTS))
    name_cutoff: float = 0.6       # fuzzy cut-off for product names
    batch_cutoff: float = 0.7      # fuzzy cut-off for batch numbers
    authenticity_threshold: float = 0.65

    @classmethod
    def from_dict(cls, cfg: dict) -> "RuleBook":
        """Overlay a parsed YAML mapping on the defaults; unknown keys are ignored."""
        rb = cls()
        if not cfg:
            return rb
        if "batch_rules" in cfg:
            rb.batch_rules = [
                BatchRule(
                    name=str(r["name"]),
                    pattern=str(r["pattern"]),
                    weight=float(r.get("weight", 0.5)),
                    flags=str(r.get("flags", "i")),
                    require_digit=bool(r.get("require_digit", False)),
                )
                for r in cfg["batch_rules"]
            ]
            # fail early on a broken pattern
            for r in rb.batch_rules:
                r.compile()
        for key in (
            "batch_exclusions", "drug_names", "manufacturers", "manufacturer_patterns",
            "expiry_patterns", "counterfeit_terms", "risk_keywords", "action_keywords", "strong_indicators",
            "official_terms", "suspicious_terms", "price_terms", "suspicious_name_patterns",
            "legit_batch_formats",
        ):
            if key in cfg:
                setattr(rb, key, [str(x) for x in (cfg[key] or [])])
        if "ranker" in cfg:
            rb.ranker.update({k: float(v) for k, v in (cfg["ranker"] or {}).items()})
        for key in ("name_cutoff", "batch_cutoff", "authenticity_threshold"):
            if key in cfg:
                setattr(rb, key, float(cfg[key]))
        if "regulator_domain" in cfg:
            rb.regulator_domain = str(cfg["regulator_domain"]).lower()
        return rb
