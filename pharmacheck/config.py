# pharmacheck/config.py
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

from pharmacheck.domain.rules import RuleBook

log = logging.getLogger("pharmacheck.config")

OCR_MAX_IMAGES_CAP = 3


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("[config] %s=%r is not a number, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    ocr_timeout_seconds: float = 12.0
    ocr_max_images: int = 2
    alert_corpus: str = "mongo"              # mongo | static
    alerts_file: str = "config/alerts.yaml"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "pharmacheck"
    mongo_alerts_coll: str = "nafdac_alerts"
    redis_url: Optional[str] = None
    alert_cache_ttl: int = 900
    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    embed_model: str = "text-embedding-3-small"
    dev_mode: bool = False
    rules_cfg: str = "config/rules.yaml"
    known_fakes_cfg: str = "config/known_counterfeits.yaml"
    page_fetch_timeout: float = 10.0
    authenticity_threshold: Optional[float] = None   # None -> rules.yaml / default
    require_api_key: bool = False
    service_api_key: Optional[str] = None
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        max_images = int(_env_float("OCR_MAX_IMAGES", 2))
        if max_images > OCR_MAX_IMAGES_CAP:
            log.warning("[config] OCR_MAX_IMAGES=%s above cap, clamped to %s", max_images, OCR_MAX_IMAGES_CAP)
        raw_thr = os.getenv("AUTHENTICITY_THRESHOLD")
        raw_origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
        return cls(
            ocr_timeout_seconds=_env_float("OCR_TIMEOUT_SECONDS", 12.0),
            ocr_max_images=max(0, min(max_images, OCR_MAX_IMAGES_CAP)),
            alert_corpus=os.getenv("ALERT_CORPUS", "mongo").strip().lower(),
            alerts_file=os.getenv("ALERTS_FILE", "config/alerts.yaml"),
            mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            mongo_db=os.getenv("MONGO_DB", "pharmacheck"),
            mongo_alerts_coll=os.getenv("MONGO_ALERTS_COLL", "nafdac_alerts"),
            redis_url=os.getenv("REDIS_URL") or None,
            alert_cache_ttl=int(_env_float("ALERT_CACHE_TTL", 900)),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            embed_model=os.getenv("EMBED_MODEL", "text-embedding-3-small"),
            dev_mode=_env_bool("DEV_MODE"),
            rules_cfg=os.getenv("RULES_CFG", "config/rules.yaml"),
            known_fakes_cfg=os.getenv("KNOWN_FAKES_CFG", "config/known_counterfeits.yaml"),
            page_fetch_timeout=_env_float("PAGE_FETCH_TIMEOUT", 10.0),
            authenticity_threshold=_env_float("AUTHENTICITY_THRESHOLD", 0.65) if raw_thr else None,
            require_api_key=_env_bool("REQUIRE_API_KEY"),
            service_api_key=os.getenv("SERVICE_API_KEY") or None,
            cors_allow_origins=[o.strip().rstrip("/") for o in raw_origins.split(",") if o.strip()],
        )


def _load_yaml(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"top-level YAML in {path} must be a mapping")
    return data


def load_rulebook(path: Optional[str] = None, authenticity_threshold: Optional[float] = None) -> RuleBook:
    """Rule book from YAML over in-code defaults. Missing/invalid file -> defaults + warning."""
    path = path or os.getenv("RULES_CFG", "config/rules.yaml")
    try:
        rb = RuleBook.from_dict(_load_yaml(path))
    except FileNotFoundError:
        log.warning("[config] rules file %s not found, using defaults", path)
        rb = RuleBook()
    except (yaml.YAMLError, ValueError, KeyError, TypeError, re.error) as e:
        log.warning("[config] load %s failed: %s, using defaults", path, e)
        rb = RuleBook()
    if authenticity_threshold is not None:
        rb.authenticity_threshold = authenticity_threshold
    return rb


def load_known_counterfeits(path: Optional[str] = None) -> Optional[List[dict]]:
    """Raw registry rows from YAML; None when the file is unusable (caller keeps its defaults)."""
    path = path or os.getenv("KNOWN_FAKES_CFG", "config/known_counterfeits.yaml")
    try:
        data = _load_yaml(path)
    except FileNotFoundError:
        log.warning("[config] registry file %s not found, using built-in entries", path)
        return None
    except (yaml.YAMLError, ValueError) as e:
        log.warning("[config] load %s failed: %s, using built-in entries", path, e)
        return None
    rows = data.get("known_counterfeits")
    if not isinstance(rows, list):
        log.warning("[config] %s has no known_counterfeits list, using built-in entries", path)
        return None
    return rows
