import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    fast_model: str = os.getenv("LUMINA_FAST_MODEL", "gemini-2.5-flash")
    deep_model: str = os.getenv("LUMINA_DEEP_MODEL", "gemini-3-pro-preview")
    default_tier: str = os.getenv("LUMINA_DEFAULT_TIER", "fast")
    data_dir: str = os.getenv("LUMINA_DATA_DIR", "data")
    workspace_id: str = os.getenv("LUMINA_WORKSPACE_ID", "lumina-workspace")
    autosave_delay: float = float(os.getenv("LUMINA_AUTOSAVE_DELAY", "2.0"))
    batch_size: int = int(os.getenv("LUMINA_BATCH_SIZE", "4"))
    sample_size: int = int(os.getenv("LUMINA_SAMPLE_SIZE", "10"))
    quiz_questions: int = int(os.getenv("LUMINA_QUIZ_QUESTIONS", "5"))
    pdf_scale: float = float(os.getenv("LUMINA_PDF_SCALE", "2.0"))
    jpeg_quality: int = int(os.getenv("LUMINA_JPEG_QUALITY", "85"))

settings = Settings()
