from fastapi import FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import List
import logging
from time import perf_counter
from datetime import datetime, timezone
from .config import settings
from .errors import AnalysisServiceError, EmptyDeckError, GateBusyError, IngestionError, InvalidQuizAction, LuminaError, WorkspaceChangedError
from .models import (
	ChatRequest,
	ChatResponse,
	ExplanationResponse,
	NavigateRequest,
	NavigateResponse,
	QuizConfigRequest,
	QuizStatus,
	RateRequest,
	ResumeResponse,
	SelectOptionRequest,
	TierRequest,
	TierResponse,
	WorkspaceState,
)
from .services.gemini_client import GeminiAnalysisService, model_for_tier
from .services.ingestion import UploadedFile
from .services.workspace import StudyWorkspace

logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("lumina")

app = FastAPI(default_response_class=ORJSONResponse)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

workspace = StudyWorkspace(GeminiAnalysisService())

_STATUS_BY_ERROR = (
	(IngestionError, 400),
	(EmptyDeckError, 400),
	(GateBusyError, 409),
	(InvalidQuizAction, 409),
	(WorkspaceChangedError, 409),
	(AnalysisServiceError, 502),
)

@app.exception_handler(LuminaError)
async def lumina_error_handler(request: Request, exc: LuminaError):
	status_code = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
	logger.debug({"event": "request_failed", "path": request.url.path, "error": type(exc).__name__, "detail": str(exc)})
	return ORJSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})

@app.on_event("startup")
def on_startup() -> None:
	logger.info({
		"event": "api_startup",
		"utc_time": datetime.now(timezone.utc).isoformat(),
		"fast_model": settings.fast_model,
		"deep_model": settings.deep_model,
		"workspace_id": settings.workspace_id,
		"autosave_delay": settings.autosave_delay,
	})

@app.on_event("shutdown")
def on_shutdown() -> None:
	workspace.shutdown()

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

# workspace

@app.get("/api/workspace", response_model=WorkspaceState)
async def get_workspace():
	return workspace.state()

@app.post("/api/workspace/resume", response_model=ResumeResponse)
async def resume_workspace():
	resumed = workspace.resume()
	return ResumeResponse(resumed=resumed, workspace=workspace.state())

@app.delete("/api/workspace", response_model=WorkspaceState)
async def clear_workspace():
	workspace.clear()
	return workspace.state()

@app.get("/api/model", response_model=TierResponse)
async def get_model():
	return TierResponse(tier=workspace.tier, model=model_for_tier(workspace.tier))

@app.put("/api/model", response_model=TierResponse)
async def set_model(payload: TierRequest):
	model = workspace.set_tier(payload.tier)
	return TierResponse(tier=payload.tier, model=model)

# slides

@app.post("/api/slides", response_model=WorkspaceState)
async def upload_slides(files: List[UploadFile] = File(...)):
	uploads = [UploadedFile(filename=f.filename or "upload", data=await f.read(), content_type=f.content_type) for f in files]
	await workspace.upload(uploads)
	return workspace.state()

@app.get("/api/slides/{slide_id}/image")
async def get_slide_image(slide_id: str):
	slide = workspace.session.store.get(slide_id)
	if slide is None:
		raise HTTPException(status_code=404, detail="slide_not_found")
	return Response(content=slide.image.raw(), media_type=slide.image.mime_type)

@app.post("/api/slides/navigate", response_model=NavigateResponse)
async def navigate(payload: NavigateRequest):
	accepted = workspace.navigate(payload.index)
	active = workspace.session.active_slide
	return NavigateResponse(
		accepted=accepted,
		active_index=workspace.session.active_index,
		explanation=active.explanation if active else None,
	)

@app.post("/api/slides/explain", response_model=ExplanationResponse)
async def explain_slide():
	return await workspace.explain_active()

@app.post("/api/slides/summarize", response_model=ExplanationResponse)
async def summarize_slide():
	return await workspace.summarize_active()

@app.post("/api/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest):
	ok, message = await workspace.send_message(payload.text)
	return ChatResponse(ok=ok, message=message)

@app.post("/api/deck/summary", response_model=ChatResponse)
async def deck_summary():
	ok, message = await workspace.summarize_deck()
	return ChatResponse(ok=ok, message=message)

# quiz

@app.get("/api/quiz", response_model=QuizStatus)
async def get_quiz():
	return workspace.quiz.status()

@app.post("/api/quiz/config", response_model=QuizStatus)
async def configure_quiz(payload: QuizConfigRequest):
	workspace.quiz.configure(type=payload.type, difficulty=payload.difficulty)
	return workspace.quiz.status()

@app.post("/api/quiz/start", response_model=QuizStatus)
async def start_quiz():
	return await workspace.start_quiz()

@app.post("/api/quiz/select", response_model=QuizStatus)
async def select_option(payload: SelectOptionRequest):
	workspace.quiz.select_option(payload.index)
	return workspace.quiz.status()

@app.post("/api/quiz/reveal", response_model=QuizStatus)
async def reveal_answer():
	workspace.quiz.reveal()
	return workspace.quiz.status()

@app.post("/api/quiz/rate", response_model=QuizStatus)
async def rate_answer(payload: RateRequest):
	return workspace.quiz.rate_self(payload.correct)

@app.post("/api/quiz/next", response_model=QuizStatus)
async def next_question():
	return workspace.quiz.advance()

@app.post("/api/quiz/reset", response_model=QuizStatus)
async def reset_quiz():
	workspace.quiz.reset()
	return workspace.quiz.status()

@app.post("/api/quiz/bank", response_model=QuizStatus)
async def generate_question_bank():
	return await workspace.generate_question_bank()

@app.post("/api/quiz/bank/open", response_model=QuizStatus)
async def open_question_bank():
	workspace.quiz.open_bank()
	return workspace.quiz.status()

@app.post("/api/quiz/bank/close", response_model=QuizStatus)
async def close_question_bank():
	workspace.quiz.close_bank()
	return workspace.quiz.status()
