from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from pathlib import Path

from muse.core.config import settings
from muse.core.logger import logger
from muse.web import routes as web_routes

@asynccontextmanager
async def lifespan(app: FastAPI):
    Path(settings.IMAGES_DIR).mkdir(parents=True, exist_ok=True)
    logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} ready (image fallback: {settings.IMAGE_FALLBACK})")
    yield

app = FastAPI(title="Muse Tales API", version=settings.VERSION, lifespan=lifespan)

#Mount Static Files
BASE_DIR = Path(__file__).resolve().parent
app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

#Include Routers
app.include_router(web_routes.router)
