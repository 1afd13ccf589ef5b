# pharmacheck/presentation/schemas.py
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Optional

from pharmacheck.domain.models import Verdict

# ── VERIFY (JSON) ────────────────────────────────────────────────
class ImagePayload(BaseModel):
    data_base64: str = Field(..., description="Image bytes, base64 (a data: URL prefix is accepted)")
    content_type: Optional[str] = Field(None, description="image/jpeg | image/png | image/webp")
    filename: Optional[str] = None

class VerifyRequest(BaseModel):
    product_name: str = Field(..., description="Product name as printed on the pack")
    description: str = Field(..., description="Free-text description (strength, form, where bought ...)")
    batch_number: Optional[str] = Field(None, description="Batch/lot number if the user typed one")
    images: List[ImagePayload] = Field(default_factory=list, description="Up to 3 photos of the pack")

# ── RESPONSE ─────────────────────────────────────────────────────
class VerificationResponse(Verdict):
    elapsed_ms: int = 0

class ErrorDetail(BaseModel):
    message: str
    field: Optional[str] = None
