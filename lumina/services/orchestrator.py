import logging
import math
from typing import Any, Dict, List, Protocol, Sequence

from pydantic import ValidationError

from ..config import settings
from ..errors import EmptyDeckError, MalformedGenerationError
from ..models import (
    AnalysisRequest,
    AnalysisResponse,
    LabelledImage,
    McqQuestion,
    ModelTier,
    QuizConfig,
    QuizQuestion,
    Slide,
    SubjectiveQuestion,
    quiz_question_adapter,
)
from .prompt_builder import (
    BANK_INSTRUCTION,
    BANK_SYSTEM,
    BATCH_INSTRUCTION,
    BATCH_SEPARATOR,
    BATCH_SYSTEM,
    DEFAULT_CHAT_INSTRUCTION,
    EXPLAIN_INSTRUCTION,
    EXPLAIN_SYSTEM,
    STUDY_GUIDE_HEADER,
    TAKEAWAYS_INSTRUCTION,
    TAKEAWAYS_SYSTEM,
    PromptBuilder,
    slide_label,
)

logger = logging.getLogger("lumina")


class AnalysisService(Protocol):
    async def submit(self, request: AnalysisRequest) -> AnalysisResponse: ...


def batch_slides(slides: Sequence[Slide], size: int) -> List[List[Slide]]:
    """Split slides into consecutive groups of `size`, keeping deck order."""
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [list(slides[i:i + size]) for i in range(0, len(slides), size)]


def sample_indices(total: int, target: int) -> List[int]:
    """Pick at most `target` indices spread evenly over `total` slides.

    step = ceil(total / target); indices are 0, step, 2*step, ... below total.
    With total <= target every index is returned.
    """
    if total <= 0:
        raise ValueError("cannot sample an empty deck")
    if target <= 0:
        raise ValueError("sample target must be positive")
    step = math.ceil(total / target)
    return list(range(0, total, step))


def _coerce_payload_to_list(obj: Any) -> List[Any]:
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        if "questions" in obj and isinstance(obj["questions"], list):
            return obj["questions"]
    return []


def parse_quiz_payload(payload: Any, config: QuizConfig) -> List[QuizQuestion]:
    items = _coerce_payload_to_list(payload)
    if not items:
        raise MalformedGenerationError("quiz_payload_empty")
    questions: List[QuizQuestion] = []
    for item in items:
        try:
            question = quiz_question_adapter.validate_python(item)
        except ValidationError as exc:
            raise MalformedGenerationError(f"quiz_question_invalid: {exc.errors()[0].get('msg')}") from exc
        if question.type != config.type:
            raise MalformedGenerationError("quiz_question_type_mismatch")
        questions.append(question)
    return questions


class AnalysisOrchestrator:
    """Turns slides into analysis requests and assembles the answers.

    No retries, caching or rate limiting happen here; each call maps to one
    independent request, except deck summaries which send their batches one
    after another.
    """

    def __init__(self, service: AnalysisService, batch_size: int | None = None, sample_size: int | None = None) -> None:
        self.service = service
        self.batch_size = batch_size or settings.batch_size
        self.sample_size = sample_size or settings.sample_size
        self.prompts = PromptBuilder()

    def _single(self, slide: Slide) -> List[LabelledImage]:
        return [LabelledImage(image=slide.image)]

    def _labelled(self, slides: Sequence[Slide], positions: Sequence[int]) -> List[LabelledImage]:
        return [LabelledImage(label=slide_label(pos), image=slides[pos].image) for pos in positions]

    def _sampled(self, slides: Sequence[Slide]) -> List[LabelledImage]:
        if not slides:
            raise EmptyDeckError("no_slides")
        positions = sample_indices(len(slides), self.sample_size)
        logger.debug({"event": "deck_sampled", "total": len(slides), "sampled": positions})
        return self._labelled(slides, positions)

    async def explain_slide(self, slide: Slide, tier: ModelTier) -> str:
        response = await self.service.submit(AnalysisRequest(
            images=self._single(slide),
            instruction=EXPLAIN_INSTRUCTION,
            tier=tier,
            system_instruction=EXPLAIN_SYSTEM,
            temperature=0.4,
        ))
        return response.text or "Unable to generate analysis."

    async def summarize_slide(self, slide: Slide, tier: ModelTier) -> str:
        response = await self.service.submit(AnalysisRequest(
            images=self._single(slide),
            instruction=TAKEAWAYS_INSTRUCTION,
            tier=tier,
            system_instruction=TAKEAWAYS_SYSTEM,
            temperature=0.2,
        ))
        return response.text or "Unable to extract takeaways."

    async def ask(self, slide: Slide, question: str, tier: ModelTier) -> str:
        response = await self.service.submit(AnalysisRequest(
            images=self._single(slide),
            instruction=question.strip() or DEFAULT_CHAT_INSTRUCTION,
            tier=tier,
            system_instruction=EXPLAIN_SYSTEM,
            temperature=0.4,
        ))
        return response.text or "Unable to generate analysis."

    async def summarize_deck(self, slides: Sequence[Slide], tier: ModelTier) -> str:
        if not slides:
            raise EmptyDeckError("no_slides")
        document = STUDY_GUIDE_HEADER
        offset = 0
        batches = batch_slides(slides, self.batch_size)
        for number, batch in enumerate(batches, 1):
            positions = range(offset, offset + len(batch))
            response = await self.service.submit(AnalysisRequest(
                images=self._labelled(slides, positions),
                instruction=BATCH_INSTRUCTION,
                tier=tier,
                system_instruction=BATCH_SYSTEM,
                temperature=0.3,
            ))
            logger.debug({"event": "deck_batch_done", "batch": number, "of": len(batches), "slides": len(batch)})
            document += (response.text or "") + BATCH_SEPARATOR
            offset += len(batch)
        return document

    async def generate_quiz(self, slides: Sequence[Slide], config: QuizConfig, tier: ModelTier, question_count: int | None = None) -> List[QuizQuestion]:
        count = question_count or settings.quiz_questions
        schema: Dict[str, Any] = self.prompts.quiz_schema(config)
        response = await self.service.submit(AnalysisRequest(
            images=self._sampled(slides),
            instruction=self.prompts.quiz_instruction(config, count),
            tier=tier,
            system_instruction=self.prompts.quiz_system(config),
            temperature=0.4,
            output_schema=schema,
        ))
        questions = parse_quiz_payload(response.data, config)
        logger.debug({
            "event": "quiz_parsed",
            "type": config.type,
            "difficulty": config.difficulty,
            "count": len(questions),
            "mcq": sum(1 for q in questions if isinstance(q, McqQuestion)),
            "subjective": sum(1 for q in questions if isinstance(q, SubjectiveQuestion)),
        })
        return questions

    async def generate_question_bank(self, slides: Sequence[Slide], tier: ModelTier) -> str:
        response = await self.service.submit(AnalysisRequest(
            images=self._sampled(slides),
            instruction=BANK_INSTRUCTION,
            tier=tier,
            system_instruction=BANK_SYSTEM,
            temperature=0.5,
        ))
        return response.text or "Could not generate question bank."
