from fastapi import APIRouter, Request, Response, BackgroundTasks, HTTPException, Depends
from fastapi.responses import PlainTextResponse
from fastapi.templating import Jinja2Templates
from collections import OrderedDict
from pathlib import Path
from pydantic import BaseModel, Field
import uuid

from muse.agents.narrative.writer import write_scene
from muse.agents.narrative.painter import build_painter
from muse.core.config import settings
from muse.core.errors import InvalidShareToken
from muse.core.logger import get_logger
from muse.core.session.machine import StoryEngine
from muse.core.session.export import export_story_text, EXPORT_FILENAME
from muse.core.session.share import encode_share_token, build_share_url
from muse.core.session.state import Genre

# Setup Templates
BASE_DIR = Path(__file__).resolve().parent.parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

router = APIRouter()
logger = get_logger("web")

SESSION_COOKIE = "muse_session"

# In-memory store, one story engine per browser, least recently used first
story_sessions: "OrderedDict[str, StoryEngine]" = OrderedDict()


class StartRequest(BaseModel):
    genre: Genre
    protagonist: str = Field(..., min_length=1)


class ChoiceRequest(BaseModel):
    option: str


class RestoreRequest(BaseModel):
    token: str


def get_engine(request: Request, response: Response) -> StoryEngine:
    """Returns the engine bound to the session cookie, creating both if needed."""
    session_id = request.cookies.get(SESSION_COOKIE)
    engine = story_sessions.get(session_id) if session_id else None
    if engine is not None:
        story_sessions.move_to_end(session_id)
        return engine

    session_id = uuid.uuid4().hex
    engine = StoryEngine(writer=write_scene, painter=build_painter(), session_id=session_id[:8])
    story_sessions[session_id] = engine
    while len(story_sessions) > max(settings.MAX_SESSIONS, 1):
        _, evicted = story_sessions.popitem(last=False)
        evicted.reset()
        logger.info(f"Evicted least recently used story session {evicted.session_id}")
    logger.info(f"New story session {engine.session_id} ({len(story_sessions)} active)")
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return engine


def snapshot(engine: StoryEngine) -> dict:
    data = engine.session.model_dump(mode="json")
    data["phase"] = engine.phase.value
    return data


def ensure_idle(engine: StoryEngine):
    if engine.busy:
        raise HTTPException(status_code=409, detail="A story transition is already running")


@router.get("/")
async def home(request: Request, engine: StoryEngine = Depends(get_engine)):
    return templates.TemplateResponse(request, "story.html", {"genres": [g.value for g in Genre]})


@router.get("/api/genres")
async def list_genres():
    return {"genres": [g.value for g in Genre]}


@router.get("/api/story")
async def get_story(engine: StoryEngine = Depends(get_engine)):
    return snapshot(engine)


@router.post("/api/story/start")
async def start_story(payload: StartRequest, engine: StoryEngine = Depends(get_engine)):
    ensure_idle(engine)
    if not payload.protagonist.strip():
        raise HTTPException(status_code=422, detail="Protagonist name is required")

    await engine.start(payload.genre, payload.protagonist)
    return snapshot(engine)


@router.post("/api/story/choose")
async def choose_option(
    payload: ChoiceRequest,
    background_tasks: BackgroundTasks,
    engine: StoryEngine = Depends(get_engine)
):
    """
    Writes the next scene and answers as soon as it is appended.
    The illustration is painted in a background task; poll /api/story to see it.
    """
    ensure_idle(engine)
    if not engine.session.chapters:
        raise HTTPException(status_code=400, detail="Start a story first")

    pending = await engine.advance(payload.option)
    if pending is not None:
        background_tasks.add_task(engine.complete, pending)
    return snapshot(engine)


@router.post("/api/story/undo")
async def undo_choice(engine: StoryEngine = Depends(get_engine)):
    ensure_idle(engine)
    engine.undo()
    return snapshot(engine)


@router.post("/api/story/chapters/{chapter_id}/image")
async def regenerate_image(chapter_id: str, engine: StoryEngine = Depends(get_engine)):
    if engine.session.find_chapter(chapter_id) is None:
        raise HTTPException(status_code=404, detail="Chapter not found")
    ensure_idle(engine)

    await engine.regenerate_image(chapter_id)
    return snapshot(engine)


@router.post("/api/story/reset")
async def reset_story(engine: StoryEngine = Depends(get_engine)):
    engine.reset()
    return snapshot(engine)


@router.post("/api/story/dismiss-error")
async def dismiss_error(engine: StoryEngine = Depends(get_engine)):
    engine.dismiss_error()
    return snapshot(engine)


@router.get("/api/story/share")
async def share_story(request: Request, engine: StoryEngine = Depends(get_engine)):
    if not engine.session.chapters:
        raise HTTPException(status_code=400, detail="Nothing to share yet")
    try:
        return {
            "token": encode_share_token(engine.session),
            "url": build_share_url(str(request.url_for("home")), engine.session)
        }
    except InvalidShareToken:
        raise HTTPException(status_code=400, detail="Nothing to share yet")


@router.post("/api/story/restore")
async def restore_story(payload: RestoreRequest, engine: StoryEngine = Depends(get_engine)):
    if not engine.restore(payload.token):
        raise HTTPException(status_code=400, detail="Invalid share token")
    return snapshot(engine)


@router.get("/api/story/export")
async def export_story(engine: StoryEngine = Depends(get_engine)):
    return PlainTextResponse(
        export_story_text(engine.session),
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'}
    )
