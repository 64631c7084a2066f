import contextlib
import logging
from typing import AsyncIterator, List, Sequence, Tuple

from ..config import settings
from ..errors import AnalysisServiceError, EmptyDeckError, GateBusyError, WorkspaceChangedError
from ..models import (
    ExplanationResponse,
    Message,
    ModelTier,
    QuizStatus,
    Slide,
    SlideSummary,
    WorkspaceState,
)
from ..state import WorkspaceSession
from .gemini_client import model_for_tier
from .ingestion import UploadedFile, ingest_files
from .orchestrator import AnalysisOrchestrator, AnalysisService
from .persistence import SnapshotStore, WorkspacePersistence
from .quiz_engine import QuizEngine

logger = logging.getLogger("lumina")

STUDY_GUIDE_REQUEST = "Generate a comprehensive study guide for the entire document."
STUDY_GUIDE_FAILED = "Error: Could not complete full document analysis. Please try again later."
CHAT_FAILED = "Error: Could not analyze this slide. Please try again."
EXPLAIN_FAILED = "Sorry, I couldn't analyze this slide. Please try again."
SUMMARIZE_FAILED = "Sorry, I couldn't summarize this slide. Please try again."


class InFlightGate:
    """Allows one holder at a time; a second caller is rejected, not queued."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.busy = False

    @contextlib.asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        if self.busy:
            raise GateBusyError(self.name)
        self.busy = True
        try:
            yield
        finally:
            self.busy = False


class StudyWorkspace:
    def __init__(
        self,
        service: AnalysisService,
        data_dir: str | None = None,
        workspace_id: str | None = None,
        autosave_delay: float | None = None,
    ) -> None:
        self.session = WorkspaceSession()
        self.persistence = WorkspacePersistence(
            self.session,
            SnapshotStore(data_dir or settings.data_dir, workspace_id or settings.workspace_id),
            autosave_delay,
        )
        self.orchestrator = AnalysisOrchestrator(service)
        self.quiz = QuizEngine(self.orchestrator)
        self.chat_gate = InFlightGate("chat")
        self.tier: ModelTier = "deep" if settings.default_tier == "deep" else "fast"

    # preferences

    def set_tier(self, tier: ModelTier) -> str:
        self.tier = tier
        logger.info({"event": "tier_selected", "tier": tier, "model": model_for_tier(tier)})
        return model_for_tier(tier)

    # deck

    async def upload(self, files: Sequence[UploadedFile]) -> List[Slide]:
        new_slides = await ingest_files(files)
        created = self.session.add_slides(new_slides)
        logger.info({"event": "slides_added", "files": len(files), "slides": len(created), "total": len(self.session.slides)})
        return created

    def navigate(self, index: int) -> bool:
        accepted = self.session.navigate(index)
        if not accepted:
            logger.debug({"event": "navigate_rejected", "index": index, "total": len(self.session.slides)})
        return accepted

    def _require_active_slide(self) -> Slide:
        slide = self.session.active_slide
        if slide is None:
            raise EmptyDeckError("no_slides")
        return slide

    async def _explain(self, summarize: bool) -> ExplanationResponse:
        slide = self._require_active_slide()
        async with self.chat_gate.hold():
            try:
                if summarize:
                    text = await self.orchestrator.summarize_slide(slide, self.tier)
                else:
                    text = await self.orchestrator.explain_slide(slide, self.tier)
            except AnalysisServiceError:
                logger.exception("explain_failed")
                return ExplanationResponse(slide_id=slide.id, text=SUMMARIZE_FAILED if summarize else EXPLAIN_FAILED, ok=False)
        # attached to the slide captured at request time, even if the user moved on
        self.session.attach_explanation(slide.id, text)
        return ExplanationResponse(slide_id=slide.id, text=text, ok=True)

    async def explain_active(self) -> ExplanationResponse:
        return await self._explain(summarize=False)

    async def summarize_active(self) -> ExplanationResponse:
        return await self._explain(summarize=True)

    def _require_same_session(self, generation: int, event: str) -> None:
        if generation != self.session.generation:
            logger.info({"event": event, "reason": "workspace_changed"})
            raise WorkspaceChangedError("workspace_changed")

    async def send_message(self, text: str) -> Tuple[bool, Message]:
        slide = self._require_active_slide()
        async with self.chat_gate.hold():
            self.session.add_message("user", text)
            generation = self.session.generation
            try:
                answer = await self.orchestrator.ask(slide, text, self.tier)
            except AnalysisServiceError:
                logger.exception("chat_failed")
                self._require_same_session(generation, "chat_reply_dropped")
                return False, self.session.add_message("system", CHAT_FAILED)
            self._require_same_session(generation, "chat_reply_dropped")
            return True, self.session.add_message("model", answer)

    async def summarize_deck(self) -> Tuple[bool, Message]:
        slides = self.session.slides
        if not slides:
            raise EmptyDeckError("no_slides")
        async with self.chat_gate.hold():
            self.session.add_message("user", STUDY_GUIDE_REQUEST)
            generation = self.session.generation
            try:
                document = await self.orchestrator.summarize_deck(slides, self.tier)
            except AnalysisServiceError:
                logger.exception("deck_summary_failed")
                self._require_same_session(generation, "deck_summary_dropped")
                return False, self.session.add_message("system", STUDY_GUIDE_FAILED)
            self._require_same_session(generation, "deck_summary_dropped")
            return True, self.session.add_message("model", document)

    # quiz

    async def start_quiz(self) -> QuizStatus:
        await self.quiz.start(self.session.slides, self.tier)
        return self.quiz.status()

    async def generate_question_bank(self) -> QuizStatus:
        await self.quiz.generate_question_bank(self.session.slides, self.tier)
        return self.quiz.status()

    # persistence

    def resume(self) -> bool:
        return self.persistence.resume() is not None

    def clear(self) -> None:
        self.persistence.clear()
        if self.quiz.phase != "generating":
            self.quiz.reset()

    def shutdown(self) -> None:
        self.persistence.flush()

    def state(self) -> WorkspaceState:
        return WorkspaceState(
            slides=[SlideSummary(id=s.id, name=s.name, explanation=s.explanation) for s in self.session.slides],
            messages=list(self.session.messages),
            active_index=self.session.active_index,
            tier=self.tier,
        )
