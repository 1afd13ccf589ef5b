# pharmacheck/domain/extraction.py
from __future__ import annotations

import re
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from pharmacheck.domain.entities import BatchCandidate, ProductMetadata
from pharmacheck.domain.rules import RuleBook

MIN_BATCH_LEN = 3
MAX_BATCH_LEN = 15
USER_BATCH_WEIGHT = 1.0
ANALYSIS_BATCH_WEIGHT = 0.9

_DIGIT = re.compile(r"\d")


def classify_alert_type(text: str) -> str:
    t = (text or "").lower()
    if "recall" in t or "withdraw" in t:
        return "Product Recall"
    if "alert" in t or "warning" in t:
        return "Safety Alert"
    if "ban" in t or "prohibit" in t:
        return "Regulatory Action"
    return "Safety Notice"


class TextExtractor:
    """Regex cascade over name + description + OCR text. Rules come from the RuleBook."""

    def __init__(self, rules: Optional[RuleBook] = None):
        self.rules = rules or RuleBook()
        self._batch_rules: List[Tuple[str, Pattern[str], float, bool]] = [
            (r.name, r.compile(), r.weight, r.require_digit) for r in self.rules.batch_rules
        ]
        self._exclusions = [re.compile(p, re.IGNORECASE) for p in self.rules.batch_exclusions]
        self._manu_patterns = [re.compile(p, re.IGNORECASE) for p in self.rules.manufacturer_patterns]
        self._expiry_patterns = [re.compile(p, re.IGNORECASE) for p in self.rules.expiry_patterns]
        self._drug_patterns = [
            (d.lower(), re.compile(rf"\b{re.escape(d)}\b", re.IGNORECASE)) for d in self.rules.drug_names
        ]

    # ---------- batches ----------
    def _acceptable(self, token: str, require_digit: bool) -> bool:
        if not (MIN_BATCH_LEN <= len(token) <= MAX_BATCH_LEN):
            return False
        if require_digit and not _DIGIT.search(token):
            return False
        return not any(x.search(token) for x in self._exclusions)

    def extract_batches(self, text: str) -> List[BatchCandidate]:
        """Ordered by rule strength, deduplicated case-insensitively (first rule wins)."""
        seen: Dict[str, BatchCandidate] = {}
        for name, pat, weight, require_digit in self._batch_rules:
            for m in pat.finditer(text or ""):
                token = (m.group(1) if m.groups() else m.group(0)).strip().strip("-").upper()
                if token in seen or not self._acceptable(token, require_digit):
                    continue
                seen[token] = BatchCandidate(value=token, weight=weight, rule=name)
        return sorted(seen.values(), key=lambda c: -c.weight)

    # ---------- the rest ----------
    def extract_drug_names(self, text: str) -> List[str]:
        return [name for name, pat in self._drug_patterns if pat.search(text or "")]

    def extract_manufacturers(self, text: str) -> List[str]:
        found: List[str] = []
        for pat in self._manu_patterns:
            for m in pat.finditer(text or ""):
                val = m.group(1).strip(" .,-").lower()
                if len(val) > 3 and val not in found:
                    found.append(val)
        low = (text or "").lower()
        for manu in self.rules.manufacturers:
            if re.search(rf"\b{re.escape(manu.lower())}\b", low) and manu.lower() not in found:
                found.append(manu.lower())
        return found

    def extract_expiry_dates(self, text: str) -> List[str]:
        found: List[str] = []
        for pat in self._expiry_patterns:
            for m in pat.finditer(text or ""):
                val = m.group(1).strip().upper()
                if _DIGIT.search(val) and val not in found:
                    found.append(val)
        return found

    def extract(
        self,
        product_name: str,
        description: str,
        user_batch: Optional[str] = None,
        ocr_text: str = "",
    ) -> ProductMetadata:
        combined = "\n".join(s for s in (product_name, description, ocr_text) if s)

        candidates: List[BatchCandidate] = []
        user = (user_batch or "").strip().upper()
        if user:
            candidates.append(BatchCandidate(value=user, weight=USER_BATCH_WEIGHT, rule="user"))
        for c in self.extract_batches(combined):
            if c.value != user:
                candidates.append(c)

        return ProductMetadata(
            batch_candidates=tuple(candidates),
            drug_names=frozenset(self.extract_drug_names(combined)),
            expiry_dates=frozenset(self.extract_expiry_dates(combined)),
            manufacturer_mentions=frozenset(self.extract_manufacturers(combined)),
            detected_text=ocr_text or "",
        )

    def merge_analysis(self, metadata: ProductMetadata, analysis: Dict[str, Any], source_text: str) -> ProductMetadata:
        """Fold text-analysis output in. Batches only count if they literally occur in source_text."""
        upper_src = (source_text or "").upper()
        batches = list(metadata.batch_candidates)
        known = {c.value for c in batches}
        for raw in _as_list(analysis.get("batch_numbers")):
            token = raw.strip().upper()
            if not token or token in known or token not in upper_src:
                continue
            if not (MIN_BATCH_LEN <= len(token) <= MAX_BATCH_LEN):
                continue
            batches.append(BatchCandidate(value=token, weight=ANALYSIS_BATCH_WEIGHT, rule="text_analysis"))
            known.add(token)
        batches.sort(key=lambda c: -c.weight)

        drugs = set(metadata.drug_names) | {d.strip().lower() for d in _as_list(analysis.get("drug_names")) if d.strip()}
        manus = set(metadata.manufacturer_mentions) | {
            m.strip().lower() for m in _as_list(analysis.get("manufacturers")) if len(m.strip()) > 2
        }
        return replace(
            metadata,
            batch_candidates=tuple(batches),
            drug_names=frozenset(drugs),
            manufacturer_mentions=frozenset(manus),
        )


def _as_list(v: Any) -> Iterable[str]:
    if not v:
        return []
    if isinstance(v, str):
        return [v]
    return [str(x) for x in v if x is not None]
