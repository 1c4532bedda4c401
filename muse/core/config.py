import os
from pathlib import Path
from dotenv import load_dotenv

# Load variables from .env file
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings:
    PROJECT_NAME: str = "Muse Tales"
    VERSION: str = "1.0.0"

    # Text generation (Groq)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY")
    TEXT_MODEL: str = os.getenv("TEXT_MODEL", "llama-3.3-70b-versatile")
    TEXT_TEMPERATURE: float = float(os.getenv("TEXT_TEMPERATURE", "0.8"))
    # Number of previous scenes quoted back to the writer
    CONTEXT_WINDOW: int = int(os.getenv("CONTEXT_WINDOW", "3"))

    # Image generation (ModelsLab text-to-image)
    IMAGE_API_KEY: str = os.getenv("IMAGE_API_KEY")
    IMAGE_API_URL: str = os.getenv("IMAGE_API_URL", "https://modelslab.com/api/v7/images/text-to-image")
    IMAGE_MODEL: str = os.getenv("IMAGE_MODEL", "nano-banana-t2i")
    IMAGE_WIDTH: int = int(os.getenv("IMAGE_WIDTH", "1024"))
    IMAGE_HEIGHT: int = int(os.getenv("IMAGE_HEIGHT", "576"))  # 16:9
    IMAGES_DIR: Path = Path(os.getenv("IMAGES_DIR", str(BASE_DIR / "static" / "images")))

    # "none": a failed illustration stays absent
    # "placeholder": a failed illustration is replaced by PLACEHOLDER_IMAGE_URL
    IMAGE_FALLBACK: str = os.getenv("IMAGE_FALLBACK", "none")
    PLACEHOLDER_IMAGE_URL: str = os.getenv("PLACEHOLDER_IMAGE_URL", "https://picsum.photos/800/450?blur=2")

    # Upper bound for a single collaborator call, in seconds
    GENERATION_TIMEOUT: float = float(os.getenv("GENERATION_TIMEOUT", "90"))

    # Story engines kept in memory; the least recently used is evicted beyond this
    MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "1000"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOGS_DIR: Path = Path(os.getenv("LOGS_DIR", str(BASE_DIR.parent / "logs")))


settings = Settings()
