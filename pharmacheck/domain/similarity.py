# pharmacheck/domain/similarity.py
"""
Pure string-similarity helpers (rapidfuzz). No I/O, no state.

product_similarity  -> how close a user product name is to an alert title/name
batch_similarity    -> how close an extracted batch is to an alert batch
text_similarity     -> lexical token-set similarity, fallback for embeddings
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from rapidfuzz import fuzz

NAME_CUTOFF = 0.6
BATCH_CUTOFF = 0.7
HIGH_SIMILARITY = 0.7
SHORT_QUERY_LEN = 4

_NUMBER_FORMS = {
    "1": ("i", "one"),
    "2": ("ii", "two"),
    "3": ("iii", "three"),
    "4": ("iv", "four"),
    "5": ("v", "five"),
}
_ROMAN_TO_DIGIT = {forms[0]: d for d, forms in _NUMBER_FORMS.items()}
_WS = re.compile(r"\s+")


@dataclass(frozen=True)
class NameSimilarity:
    score: float
    is_high: bool


def _norm(s: Optional[str]) -> str:
    return _WS.sub(" ", (s or "").lower()).strip()


def name_variants(name: str) -> List[str]:
    """Orthographic variants: 'postinor 2' -> postinor2, postinor-2, postinor ii, postinor two ..."""
    base = _norm(name)
    out = {base, base.replace(" ", ""), base.replace(" ", "-")}
    for digit, forms in _NUMBER_FORMS.items():
        if re.search(rf"\b{digit}\b", base):
            for w in forms:
                out.add(re.sub(rf"\b{digit}\b", w, base))
    for roman, digit in _ROMAN_TO_DIGIT.items():
        if re.search(rf"\b{roman}\b", base):
            out.add(re.sub(rf"\b{roman}\b", digit, base))
    # digit glued to the word, e.g. "postinor2"
    m = re.fullmatch(r"(.*?[a-z])([1-5])", base)
    if m:
        out.add(f"{m.group(1)} {m.group(2)}")
    out.discard("")
    return sorted(out)


def _fuzzy(a: str, b: str, cutoff: float) -> float:
    return fuzz.partial_ratio(a, b, score_cutoff=cutoff * 100) / 100.0


def product_similarity(query: Optional[str], target: Optional[str], cutoff: float = NAME_CUTOFF) -> NameSimilarity:
    q, t = _norm(query), _norm(target)
    if not q or not t:
        return NameSimilarity(0.0, False)

    if len(q) < SHORT_QUERY_LEN:
        # too little signal: no containment or variant boosts
        score = 0.5 * (fuzz.partial_ratio(q, t) / 100.0)
        return NameSimilarity(score, score > HIGH_SIMILARITY)

    score = _fuzzy(q, t, cutoff)
    if q in t or score > 0.8:
        score = max(score, 0.9)

    t_compact = t.replace(" ", "")
    for v in name_variants(q):
        if v == q:
            continue
        if v in t or v in t_compact:
            score = max(score, 0.85)
        else:
            score = max(score, _fuzzy(v, t, cutoff))

    score = min(score, 1.0)
    return NameSimilarity(score, score > HIGH_SIMILARITY)


def _token_in_text(token: str, text: str) -> bool:
    return re.search(rf"(?<![A-Za-z0-9]){re.escape(token)}(?![A-Za-z0-9])", text, re.IGNORECASE) is not None


def batch_similarity(
    extracted: Optional[str],
    alert_batch: Optional[str],
    alert_full_text: str = "",
    cutoff: float = BATCH_CUTOFF,
) -> float:
    e = (extracted or "").strip().upper()
    if not e:
        return 0.0
    a = (alert_batch or "").strip().upper()
    if a:
        if e == a:
            return 1.0
        score = fuzz.ratio(e, a, score_cutoff=cutoff * 100) / 100.0
        if score > 0:
            return score
    if alert_full_text and _token_in_text(e, alert_full_text):
        return 0.9
    return 0.0


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    a, b = _norm(a), _norm(b)
    if not a or not b:
        return 0.0
    return fuzz.token_set_ratio(a, b) / 100.0
