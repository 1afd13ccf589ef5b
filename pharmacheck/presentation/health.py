# pharmacheck/presentation/health.py
from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/healthz")
async def healthz():
    # Liveness: process is up
    return {"ok": True}

@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness:
    - alert corpus reachable (required)
    - OCR engine present, OpenAI configured (informational; both degrade gracefully)
    """
    c = request.app.state.container
    checks = {}
    try:
        checks["corpus"] = bool(await c.corpus.ping())
    except Exception as e:
        checks["corpus"] = False
        checks["corpus_error"] = str(e)

    available = getattr(c.ocr, "available", None)
    checks["ocr"] = bool(available()) if callable(available) else c.ocr is not None
    checks["openai_configured"] = bool(c.settings.openai_api_key) and not c.settings.dev_mode
    checks["known_counterfeits"] = len(c.registry.entries)
    return {"ok": checks["corpus"], **checks}
