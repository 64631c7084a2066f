import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..errors import AnalysisServiceError, EmptyDeckError, GateBusyError, InvalidQuizAction
from ..models import (
    CurrentQuestion,
    McqQuestion,
    ModelTier,
    QuestionState,
    QuizConfig,
    QuizDifficulty,
    QuizPhase,
    QuizQuestion,
    QuizResult,
    QuizStatus,
    QuizType,
    QuizView,
    Slide,
    SubjectiveQuestion,
)
from .orchestrator import AnalysisOrchestrator

logger = logging.getLogger("lumina")


@dataclass
class QuizSession:
    config: QuizConfig
    questions: List[QuizQuestion]
    current_index: int = 0
    score: int = 0
    states: List[QuestionState] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.states:
            self.states = [QuestionState() for _ in self.questions]

    @property
    def current(self) -> QuizQuestion:
        return self.questions[self.current_index]

    @property
    def state(self) -> QuestionState:
        return self.states[self.current_index]

    @property
    def is_last(self) -> bool:
        return self.current_index == len(self.questions) - 1


class QuizEngine:
    def __init__(self, orchestrator: AnalysisOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.bank_in_flight = False
        self._generation = 0
        self._reset_state()

    def _reset_state(self) -> None:
        self.phase: QuizPhase = "setup"
        self.view: QuizView = "quiz"
        self.config = QuizConfig()
        self.session: Optional[QuizSession] = None
        self.last_error: Optional[str] = None
        self.question_bank: Optional[str] = None

    # setup

    def configure(self, type: Optional[QuizType] = None, difficulty: Optional[QuizDifficulty] = None) -> QuizConfig:
        self._require_phase("setup")
        update = {}
        if type is not None:
            update["type"] = type
        if difficulty is not None:
            update["difficulty"] = difficulty
        self.config = self.config.model_copy(update=update)
        return self.config

    async def start(self, slides: Sequence[Slide], tier: ModelTier) -> QuizSession:
        self._require_phase("setup")
        if not slides:
            raise EmptyDeckError("no_slides")
        config = self.config
        self.phase = "generating"
        self.last_error = None
        logger.debug({"event": "quiz_generation_start", "type": config.type, "difficulty": config.difficulty, "slides": len(slides)})
        try:
            questions = await self.orchestrator.generate_quiz(slides, config, tier)
        except AnalysisServiceError as exc:
            self.phase = "setup"
            self.last_error = str(exc) or "quiz_generation_failed"
            logger.warning({"event": "quiz_generation_failed", "error": self.last_error})
            raise
        self.session = QuizSession(config=config, questions=questions)
        self.phase = "active"
        logger.debug({"event": "quiz_active", "questions": len(questions)})
        return self.session

    # active

    def select_option(self, index: int) -> QuestionState:
        session = self._require_active()
        question = session.current
        if not isinstance(question, McqQuestion):
            raise InvalidQuizAction("select_requires_mcq")
        if session.state.status != "unanswered":
            return session.state
        if not 0 <= index < len(question.options):
            raise InvalidQuizAction("option_out_of_range")
        session.states[session.current_index] = QuestionState(status="answered", selected_option=index)
        if index == question.correct_answer:
            session.score += 1
        return session.state

    def reveal(self) -> QuestionState:
        session = self._require_active()
        if not isinstance(session.current, SubjectiveQuestion):
            raise InvalidQuizAction("reveal_requires_subjective")
        if session.state.status == "unanswered":
            session.states[session.current_index] = QuestionState(status="revealed")
        return session.state

    def rate_self(self, correct: bool) -> QuizStatus:
        session = self._require_active()
        if not isinstance(session.current, SubjectiveQuestion):
            raise InvalidQuizAction("rate_requires_subjective")
        if session.state.status != "revealed":
            raise InvalidQuizAction("rate_requires_revealed")
        if correct:
            session.score += 1
        self._advance(session)
        return self.status()

    def advance(self) -> QuizStatus:
        session = self._require_active()
        question = session.current
        if isinstance(question, McqQuestion):
            if session.state.status != "answered":
                raise InvalidQuizAction("advance_requires_answer")
        elif isinstance(question, SubjectiveQuestion):
            # subjective questions move on through rate_self
            raise InvalidQuizAction("advance_requires_rating")
        else:
            raise TypeError(f"unknown question variant: {type(question).__name__}")
        self._advance(session)
        return self.status()

    def _advance(self, session: QuizSession) -> None:
        if session.is_last:
            self.phase = "finished"
            logger.debug({"event": "quiz_finished", "score": session.score, "total": len(session.questions)})
            return
        session.current_index += 1
        session.states[session.current_index] = QuestionState()

    @property
    def result(self) -> Optional[QuizResult]:
        if self.phase != "finished" or self.session is None:
            return None
        total = len(self.session.questions)
        return QuizResult(score=self.session.score, total=total, ratio=self.session.score / total)

    def reset(self) -> None:
        if self.phase == "generating":
            raise InvalidQuizAction("generation_in_flight")
        self._generation += 1
        self._reset_state()

    # question bank

    async def generate_question_bank(self, slides: Sequence[Slide], tier: ModelTier) -> str:
        if self.phase == "generating":
            raise InvalidQuizAction("bank_unavailable_while_generating")
        if self.bank_in_flight:
            raise GateBusyError("question_bank")
        generation = self._generation
        self.bank_in_flight = True
        try:
            text = await self.orchestrator.generate_question_bank(slides, tier)
        finally:
            self.bank_in_flight = False
        if generation != self._generation:
            logger.info({"event": "question_bank_discarded", "reason": "quiz_reset"})
            return text
        self.question_bank = text
        # a quiz that started generating meanwhile keeps the quiz view
        if self.phase != "generating":
            self.view = "bank"
        return text

    def open_bank(self) -> str:
        if self.question_bank is None:
            raise InvalidQuizAction("no_question_bank")
        if self.phase == "generating":
            raise InvalidQuizAction("bank_unavailable_while_generating")
        self.view = "bank"
        return self.question_bank

    def close_bank(self) -> None:
        self.view = "quiz"

    # views

    def _require_phase(self, phase: QuizPhase) -> None:
        if self.view != "quiz":
            raise InvalidQuizAction("question_bank_open")
        if self.phase != phase:
            raise InvalidQuizAction(f"requires_{phase}")

    def _require_active(self) -> QuizSession:
        self._require_phase("active")
        if self.session is None:
            raise InvalidQuizAction("requires_active")
        return self.session

    def _current_view(self, session: QuizSession) -> CurrentQuestion:
        question = session.current
        state = session.state
        view = CurrentQuestion(id=question.id, type=question.type, question=question.question, status=state.status)
        if isinstance(question, McqQuestion):
            view.options = list(question.options)
            if state.status == "answered":
                view.selected_option = state.selected_option
                view.correct_answer = question.correct_answer
                view.explanation = question.explanation
        elif isinstance(question, SubjectiveQuestion):
            if state.status == "revealed":
                view.model_answer = question.model_answer
                view.explanation = question.explanation
        else:
            raise TypeError(f"unknown question variant: {type(question).__name__}")
        return view

    def status(self) -> QuizStatus:
        status = QuizStatus(
            phase=self.phase,
            view=self.view,
            config=self.config,
            last_error=self.last_error,
            question_bank=self.question_bank if self.view == "bank" else None,
            bank_in_flight=self.bank_in_flight,
        )
        session = self.session
        if session is not None and self.phase in ("active", "finished"):
            status.total = len(session.questions)
            status.current_index = session.current_index
            status.score = session.score
            if self.phase == "active":
                status.question = self._current_view(session)
            status.result = self.result
        return status
