# pharmacheck/presentation/routers.py
from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from pharmacheck.application.verify_use_case import VerifyProductUseCase
from pharmacheck.domain.errors import InvalidQueryError
from pharmacheck.domain.models import ProductImage, Verdict
from pharmacheck.infra.api.security import require_api_key
from pharmacheck.presentation.schemas import ImagePayload, VerificationResponse, VerifyRequest

logger = logging.getLogger("pharmacheck.api")

ALLOWED_CT = {"image/jpeg", "image/png", "image/webp"}
MAX_IMAGE_BYTES = 8 * 1024 * 1024


def get_verify_uc(request: Request) -> VerifyProductUseCase:
    return request.app.state.container.verify_uc


def _bad_request(message: str, field: Optional[str] = None) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": message, "field": field})


def _decode_image(i: int, p: ImagePayload) -> ProductImage:
    raw = p.data_base64.strip()
    ct = p.content_type
    if raw.startswith("data:"):
        head, _, raw = raw.partition(",")
        ct = ct or head[5:].split(";")[0] or None
    if ct and ct not in ALLOWED_CT:
        raise _bad_request(f"image {i}: unsupported content type {ct}", "images")
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise _bad_request(f"image {i}: invalid base64", "images")
    if len(data) > MAX_IMAGE_BYTES:
        raise _bad_request(f"image {i}: larger than {MAX_IMAGE_BYTES // (1024 * 1024)} MB", "images")
    return ProductImage(data=data, content_type=ct, filename=p.filename)


def _respond(verdict: Verdict, t0: float) -> VerificationResponse:
    return VerificationResponse(**verdict.model_dump(), elapsed_ms=int((time.perf_counter() - t0) * 1000))


# All endpoints under /v1 are behind X-Api-Key
router = APIRouter(prefix="/v1", dependencies=[Depends(require_api_key)])

# ── VERIFY: JSON ─────────────────────────────────────────────────
@router.post("/verify", response_model=VerificationResponse)
async def verify_product(req: VerifyRequest, uc: VerifyProductUseCase = Depends(get_verify_uc)):
    t0 = time.perf_counter()
    images = [_decode_image(i, p) for i, p in enumerate(req.images, start=1)]
    try:
        verdict = await uc.verify(req.product_name, req.description, images, req.batch_number)
    except InvalidQueryError as e:
        raise _bad_request(str(e), e.field)
    logger.info("[verify] json name=%r images=%d -> %s", req.product_name, len(images), verdict.risk_level.value)
    return _respond(verdict, t0)

# ── VERIFY: MULTIPART (with photos) ──────────────────────────────
@router.post("/verify-photo", response_model=VerificationResponse)
async def verify_product_photo(
    product_name: str = Form(...),
    description: str = Form(...),
    batch_number: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    uc: VerifyProductUseCase = Depends(get_verify_uc),
):
    t0 = time.perf_counter()
    decoded: List[ProductImage] = []
    for i, up in enumerate(images or [], start=1):
        if up.content_type not in ALLOWED_CT:
            raise _bad_request(f"image {i}: unsupported content type {up.content_type}", "images")
        data = await up.read()
        if len(data) > MAX_IMAGE_BYTES:
            raise _bad_request(f"image {i}: larger than {MAX_IMAGE_BYTES // (1024 * 1024)} MB", "images")
        decoded.append(ProductImage(data=data, content_type=up.content_type, filename=up.filename))
    try:
        verdict = await uc.verify(product_name, description, decoded, batch_number)
    except InvalidQueryError as e:
        raise _bad_request(str(e), e.field)
    logger.info("[verify] photo name=%r images=%d -> %s", product_name, len(decoded), verdict.risk_level.value)
    return _respond(verdict, t0)
