import base64
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

ModelTier = Literal["fast", "deep"]
MessageRole = Literal["user", "model", "system"]
QuizType = Literal["mcq", "subjective"]
QuizDifficulty = Literal["easy", "medium", "hard"]
QuizPhase = Literal["setup", "generating", "active", "finished"]
QuizView = Literal["quiz", "bank"]
QuestionStatus = Literal["unanswered", "answered", "revealed"]


class SlideImage(BaseModel):
    mime_type: str
    data: str  # base64

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "SlideImage":
        return cls(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))

    def raw(self) -> bytes:
        return base64.b64decode(self.data)


class NewSlide(BaseModel):
    name: str
    image: SlideImage


class Slide(BaseModel):
    id: str
    name: str
    image: SlideImage
    explanation: Optional[str] = None


class Message(BaseModel):
    id: str
    role: MessageRole
    content: str
    timestamp: int


class QuizConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: QuizType = "mcq"
    difficulty: QuizDifficulty = "medium"


class McqQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    type: Literal["mcq"]
    question: str
    explanation: str
    options: List[str] = Field(min_length=2)
    correct_answer: int = Field(alias="correctAnswer")

    @model_validator(mode="after")
    def _answer_in_options(self) -> "McqQuestion":
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError("correct_answer_out_of_range")
        return self


class SubjectiveQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    type: Literal["subjective"]
    question: str
    explanation: str
    model_answer: str = Field(alias="modelAnswer")


QuizQuestion = Annotated[Union[McqQuestion, SubjectiveQuestion], Field(discriminator="type")]
quiz_question_adapter: TypeAdapter = TypeAdapter(QuizQuestion)


class QuestionState(BaseModel):
    status: QuestionStatus = "unanswered"
    selected_option: Optional[int] = None


class WorkspaceSnapshot(BaseModel):
    slides: List[Slide]
    messages: List[Message]
    last_active_index: int
    saved_at: datetime

    @model_validator(mode="after")
    def _cursor_in_range(self) -> "WorkspaceSnapshot":
        if self.slides and not 0 <= self.last_active_index < len(self.slides):
            raise ValueError("last_active_index_out_of_range")
        if not self.slides and self.last_active_index != 0:
            raise ValueError("last_active_index_without_slides")
        return self


class LabelledImage(BaseModel):
    label: Optional[str] = None
    image: SlideImage


class AnalysisRequest(BaseModel):
    images: List[LabelledImage]
    instruction: str
    tier: ModelTier = "fast"
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    output_schema: Optional[Dict[str, Any]] = None


class AnalysisResponse(BaseModel):
    text: Optional[str] = None
    data: Any = None


# HTTP payloads

class SlideSummary(BaseModel):
    id: str
    name: str
    explanation: Optional[str] = None


class WorkspaceState(BaseModel):
    slides: List[SlideSummary]
    messages: List[Message]
    active_index: int
    tier: ModelTier


class ResumeResponse(BaseModel):
    resumed: bool
    workspace: WorkspaceState


class NavigateRequest(BaseModel):
    index: int


class NavigateResponse(BaseModel):
    accepted: bool
    active_index: int
    explanation: Optional[str] = None


class ExplanationResponse(BaseModel):
    slide_id: str
    text: str
    ok: bool


class ChatRequest(BaseModel):
    text: str = ""


class ChatResponse(BaseModel):
    ok: bool
    message: Message


class TierRequest(BaseModel):
    tier: ModelTier


class TierResponse(BaseModel):
    tier: ModelTier
    model: str


class QuizConfigRequest(BaseModel):
    type: Optional[QuizType] = None
    difficulty: Optional[QuizDifficulty] = None


class SelectOptionRequest(BaseModel):
    index: int


class RateRequest(BaseModel):
    correct: bool


class CurrentQuestion(BaseModel):
    id: int
    type: QuizType
    question: str
    status: QuestionStatus
    options: Optional[List[str]] = None
    selected_option: Optional[int] = None
    correct_answer: Optional[int] = None
    model_answer: Optional[str] = None
    explanation: Optional[str] = None


class QuizResult(BaseModel):
    score: int
    total: int
    ratio: float


class QuizStatus(BaseModel):
    phase: QuizPhase
    view: QuizView
    config: QuizConfig
    total: int = 0
    current_index: int = 0
    score: int = 0
    question: Optional[CurrentQuestion] = None
    result: Optional[QuizResult] = None
    last_error: Optional[str] = None
    question_bank: Optional[str] = None
    bank_in_flight: bool = False
