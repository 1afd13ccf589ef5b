# pharmacheck/infra/ocr/tesseract_adapter.py
import asyncio, io, logging, os
from typing import Union

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

from pharmacheck.domain.errors import ProviderUnavailableError
from pharmacheck.domain.models import ProductImage
from pharmacheck.domain.ports import OcrPort

log = logging.getLogger("pharmacheck.ocr")


class TesseractAdapter(OcrPort):
    def __init__(self, lang: str | None = None, config: str | None = None):
        self.lang = lang or os.getenv("OCR_LANG", "eng")
        self.config = config or os.getenv("OCR_TESSERACT_CONFIG", "--psm 6")

    @staticmethod
    def _to_pil(img: Union[ProductImage, bytes, bytearray, np.ndarray, Image.Image]) -> Image.Image:
        """Accept ProductImage/bytes/ndarray/PIL and hand pytesseract an RGB PIL image."""
        if isinstance(img, ProductImage):
            img = img.data
        if isinstance(img, (bytes, bytearray)):
            pil = Image.open(io.BytesIO(bytes(img)))
        elif isinstance(img, np.ndarray):
            pil = Image.fromarray(img)
        elif isinstance(img, Image.Image):
            pil = img
        else:
            raise TypeError(f"Unsupported image type: {type(img)}")
        return pil.convert("RGB") if pil.mode not in ("RGB", "L") else pil

    def _run(self, img) -> str:
        pil = self._to_pil(img)
        return pytesseract.image_to_string(pil, lang=self.lang, config=self.config)

    async def extract(self, image: ProductImage) -> str:
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self._run, image)
        except (UnidentifiedImageError, TypeError) as e:
            raise ProviderUnavailableError("ocr", f"unreadable image: {e}") from e
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError) as e:
            raise ProviderUnavailableError("ocr", str(e)) from e
        log.info("[ocr] %d chars from %s", len(text or ""), image.filename or "upload")
        return text or ""

    @staticmethod
    def available() -> bool:
        try:
            pytesseract.get_tesseract_version()
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False
