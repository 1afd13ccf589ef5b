# pharmacheck/application/commands.py
from __future__ import annotations

import re
from typing import List, Optional

from pydantic import BaseModel, Field

from pharmacheck.domain.errors import InvalidQueryError
from pharmacheck.domain.models import ProductImage, ProductQuery

NAME_MIN, NAME_MAX = 2, 200
DESC_MIN, DESC_MAX = 5, 1000
BATCH_MAX = 50
MAX_IMAGES = 3

_UNSAFE = re.compile(r"[<>\"';&]")
_WS = re.compile(r"\s+")
_BATCH_OK = re.compile(r"^[A-Z0-9\-_\s]+$", re.IGNORECASE)


def sanitize(s: Optional[str]) -> str:
    return _WS.sub(" ", _UNSAFE.sub("", s or "")).strip()


class VerifyProductCommand(BaseModel):
    product_name: str
    description: str
    user_batch_number: Optional[str] = None
    images: List[ProductImage] = Field(default_factory=list)

    def to_query(self) -> ProductQuery:
        """Sanitise and validate. Raises InvalidQueryError before any matching work."""
        name = sanitize(self.product_name)
        desc = sanitize(self.description)
        if not (NAME_MIN <= len(name) <= NAME_MAX):
            raise InvalidQueryError(f"product name must be {NAME_MIN}-{NAME_MAX} characters", field="product_name")
        if not (DESC_MIN <= len(desc) <= DESC_MAX):
            raise InvalidQueryError(f"description must be {DESC_MIN}-{DESC_MAX} characters", field="description")

        batch = sanitize(self.user_batch_number) or None
        if batch is not None:
            if len(batch) > BATCH_MAX or not _BATCH_OK.match(batch):
                raise InvalidQueryError("batch number may only contain letters, digits, '-', '_' and spaces",
                                        field="user_batch_number")
            batch = batch.upper()

        if len(self.images) > MAX_IMAGES:
            raise InvalidQueryError(f"at most {MAX_IMAGES} images per request", field="images")
        if any(not img.data for img in self.images):
            raise InvalidQueryError("empty image upload", field="images")

        return ProductQuery(product_name=name, description=desc, user_batch_number=batch, images=self.images)
