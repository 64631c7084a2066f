import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from typing import List, Optional, Sequence

import fitz  # PyMuPDF

from ..config import settings
from ..errors import IngestionError
from ..models import NewSlide, SlideImage

logger = logging.getLogger("lumina")

PDF_MIME = "application/pdf"
PDF_ERROR = "Failed to parse PDF file. It might be password protected or corrupted."


@dataclass
class UploadedFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def mime_type(self) -> str:
        if self.content_type and self.content_type != "application/octet-stream":
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or ""


def rasterize_pdf(data: bytes, scale: float | None = None, quality: int | None = None) -> List[bytes]:
    """Render every page of a PDF to JPEG bytes, in page order."""
    scale = scale or settings.pdf_scale
    quality = quality or settings.jpeg_quality
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        logger.exception("pdf_open_failed")
        raise IngestionError(PDF_ERROR) from exc
    try:
        if doc.needs_pass or doc.page_count == 0:
            raise IngestionError(PDF_ERROR)
        matrix = fitz.Matrix(scale, scale)
        pages: List[bytes] = []
        for page in doc:
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            pages.append(pix.tobytes("jpeg", jpg_quality=quality))
        return pages
    except IngestionError:
        raise
    except Exception as exc:
        logger.exception("pdf_render_failed")
        raise IngestionError(PDF_ERROR) from exc
    finally:
        doc.close()


async def pdf_to_slides(upload: UploadedFile) -> List[NewSlide]:
    pages = await asyncio.to_thread(rasterize_pdf, upload.data)
    logger.info({"event": "pdf_rasterized", "file": upload.filename, "pages": len(pages)})
    return [
        NewSlide(name=f"Pg {number} - {upload.filename}", image=SlideImage.from_bytes(jpeg, "image/jpeg"))
        for number, jpeg in enumerate(pages, 1)
    ]


async def ingest_files(files: Sequence[UploadedFile]) -> List[NewSlide]:
    """Turn uploads into slides in upload order; a PDF contributes its pages in order.

    Either every usable file converts or IngestionError is raised and nothing
    is returned, so the caller's deck stays as it was.
    """
    new_slides: List[NewSlide] = []
    usable = 0
    for upload in files:
        mime = upload.mime_type
        if mime == PDF_MIME:
            usable += 1
            new_slides.extend(await pdf_to_slides(upload))
        elif mime.startswith("image/"):
            usable += 1
            new_slides.append(NewSlide(name=upload.filename, image=SlideImage.from_bytes(upload.data, mime)))
        else:
            logger.warning({"event": "upload_skipped", "file": upload.filename, "mime": mime})
    if not usable:
        raise IngestionError("Please upload image files (JPG, PNG, WebP) or PDF documents.")
    return new_slides
