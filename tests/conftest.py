"""
Pytest configuration and shared fixtures.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, List, Optional

import fitz
import pytest

from lumina.errors import AnalysisServiceError
from lumina.models import AnalysisRequest, AnalysisResponse, NewSlide, SlideImage
from lumina.services.workspace import StudyWorkspace

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-payload"


class FakeAnalysisService:
    """Records every request and answers from a scripted responder."""

    def __init__(self, responder: Optional[Callable[[AnalysisRequest], Any]] = None) -> None:
        self.requests: List[AnalysisRequest] = []
        self.responder = responder
        self.fail = False
        self.blocker: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def submit(self, request: AnalysisRequest) -> AnalysisResponse:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.blocker is not None:
                await self.blocker.wait()
            else:
                await asyncio.sleep(0)
            if self.fail:
                raise AnalysisServiceError("model_unavailable")
            if self.responder is not None:
                result = self.responder(request)
                if isinstance(result, AnalysisResponse):
                    return result
                if request.output_schema is not None:
                    return AnalysisResponse(data=result)
                return AnalysisResponse(text=result)
            return AnalysisResponse(text=f"answer {len(self.requests)}")
        finally:
            self.in_flight -= 1


def make_new_slides(count: int, prefix: str = "slide") -> List[NewSlide]:
    return [
        NewSlide(name=f"{prefix}-{i}.png", image=SlideImage.from_bytes(PNG_BYTES + str(i).encode(), "image/png"))
        for i in range(count)
    ]


def build_pdf(pages: int, width: float = 200, height: float = 100) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((10, 50), f"Page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def mcq_payload(count: int = 3) -> dict:
    return {
        "questions": [
            {
                "id": i + 1,
                "type": "mcq",
                "question": f"Question {i + 1}?",
                "options": ["A", "B", "C", "D"],
                "correctAnswer": i % 4,
                "explanation": f"Because {i + 1}",
            }
            for i in range(count)
        ]
    }


def subjective_payload(count: int = 2) -> dict:
    return {
        "questions": [
            {
                "id": i + 1,
                "type": "subjective",
                "question": f"Explain topic {i + 1}",
                "modelAnswer": f"Model answer {i + 1}",
                "explanation": f"Key idea {i + 1}",
            }
            for i in range(count)
        ]
    }


@pytest.fixture
def fake_service() -> FakeAnalysisService:
    return FakeAnalysisService()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def workspace(fake_service: FakeAnalysisService, data_dir: Path) -> StudyWorkspace:
    return StudyWorkspace(fake_service, data_dir=str(data_dir), workspace_id="test-workspace", autosave_delay=60)
