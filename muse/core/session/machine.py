"""
Story session state machine.

One StoryEngine owns one Session. Transitions call out to two collaborators,
a writer (next scene) and a painter (illustration), and fold their results
back into the session. The `busy` flag is the only gate: while a transition
is outstanding, every other transition except reset is ignored.

Choosing an option is split in two phases so the new chapter can be shown
before its picture exists:

    pending = await engine.advance("Open the door")   # chapter appended
    ...render...
    await engine.complete(pending)                    # illustration patched

`choose()` runs both phases back to back.

Every transition records the engine epoch it started in. reset(), restore()
and start() move to a new epoch, and a completion arriving for an older epoch
is dropped without touching the session.
"""
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from muse.core.errors import AdvanceFailed, StartFailed, StoryError, VisualizationFailed
from muse.core.logger import get_logger, log_error, log_story_event
from muse.core.session.share import decode_share_token
from muse.core.session.state import Chapter, Genre, SceneDraft, Session, SessionPhase

logger = get_logger("session")

WriterFn = Callable[[Genre, str, List[str], Optional[str]], Awaitable[SceneDraft]]
PainterFn = Callable[[str], Awaitable[str]]
ChangeListener = Callable[[Session], None]


@dataclass(frozen=True)
class PendingIllustration:
    """Continuation of a choice whose chapter is committed but not yet illustrated."""

    chapter_id: str
    image_prompt: str
    epoch: int


class StoryEngine:
    def __init__(
        self,
        writer: WriterFn,
        painter: PainterFn,
        on_change: Optional[ChangeListener] = None,
        session_id: Optional[str] = None,
    ):
        self.writer = writer
        self.painter = painter
        self.on_change = on_change
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.session = Session()
        self.last_failure: Optional[StoryError] = None
        self._epoch = 0
        self._pending_phase: Optional[SessionPhase] = None

    # --- state inspection ---

    @property
    def busy(self) -> bool:
        return self.session.busy

    @property
    def phase(self) -> SessionPhase:
        if self.session.busy and self._pending_phase is not None:
            return self._pending_phase
        return SessionPhase.ACTIVE if self.session.chapters else SessionPhase.EMPTY

    # --- internals ---

    def _notify(self):
        if self.on_change is not None:
            self.on_change(self.session)

    def _begin(self, phase: SessionPhase) -> int:
        self.session.busy = True
        self._pending_phase = phase
        self._notify()
        return self._epoch

    def _is_stale(self, epoch: int, action: str) -> bool:
        if epoch != self._epoch:
            log_story_event(self.session_id, f"{action} discarded", "session was reset meanwhile")
            return True
        return False

    def _finish(self, error: Optional[StoryError] = None):
        self.session.busy = False
        self._pending_phase = None
        if error is not None:
            self.last_failure = error
            self.session.last_error = error.user_message
            log_error(f"{type(error).__name__}", error.cause, {"session": self.session_id})
        self._notify()

    # --- transitions ---

    async def start(self, genre: Genre, protagonist: str) -> Optional[Chapter]:
        """Begin a new story. Returns the opening chapter, or None on failure or when busy."""
        protagonist = protagonist.strip()
        if not protagonist:
            raise ValueError("protagonist must not be empty")
        if self.busy:
            logger.info(f"[{self.session_id}] start ignored: a transition is already running")
            return None

        genre = Genre(genre)
        self._epoch += 1
        self.session.genre = genre
        self.session.protagonist = protagonist
        self.session.chapters = []
        epoch = self._begin(SessionPhase.STARTING)
        log_story_event(self.session_id, "start", f"genre={genre.value} protagonist={protagonist}")

        try:
            draft = await self.writer(genre, protagonist, [], None)
            illustration = await self.painter(draft.image_prompt)
        except Exception as e:
            if self._is_stale(epoch, "start"):
                return None
            self._finish(StartFailed(e))
            return None

        if self._is_stale(epoch, "start"):
            return None

        chapter = draft.to_chapter(illustration=illustration)
        self.session.chapters.append(chapter)
        self.session.last_error = None
        self._finish()
        log_story_event(self.session_id, "started", f"chapter={chapter.id}")
        return chapter

    async def advance(self, option: str) -> Optional[PendingIllustration]:
        """
        First half of a choice: write the next scene and append it without
        an illustration. The session stays busy until complete() runs.
        """
        if self.busy:
            logger.info(f"[{self.session_id}] choice ignored: a transition is already running")
            return None
        if not self.session.chapters:
            logger.info(f"[{self.session_id}] choice ignored: story has not started")
            return None

        context = [chapter.narrative for chapter in self.session.chapters]
        epoch = self._begin(SessionPhase.ADVANCING)
        log_story_event(self.session_id, "advance", f"option={option!r} context={len(context)}")

        try:
            draft = await self.writer(self.session.genre, self.session.protagonist, context, option)
        except Exception as e:
            if self._is_stale(epoch, "advance"):
                return None
            self._finish(AdvanceFailed(e))
            return None

        if self._is_stale(epoch, "advance"):
            return None

        chapter = draft.to_chapter()
        self.session.chapters.append(chapter)
        self.session.last_error = None
        self._notify()
        return PendingIllustration(chapter_id=chapter.id, image_prompt=chapter.image_prompt, epoch=epoch)

    async def complete(self, pending: PendingIllustration) -> Optional[Chapter]:
        """
        Second half of a choice: illustrate the chapter committed by advance().
        A failed illustration is dropped silently; the narrative stays.
        """
        try:
            illustration = await self.painter(pending.image_prompt)
        except Exception as e:
            if self._is_stale(pending.epoch, "illustration"):
                return None
            logger.warning(f"[{self.session_id}] illustration skipped for {pending.chapter_id}: {e}")
            self._finish()
            return None

        if self._is_stale(pending.epoch, "illustration"):
            return None

        chapter = self.session.find_chapter(pending.chapter_id)
        if chapter is not None:
            chapter.illustration = illustration
        self._finish()
        log_story_event(self.session_id, "advanced", f"chapter={pending.chapter_id}")
        return chapter

    async def choose(self, option: str) -> Optional[Chapter]:
        pending = await self.advance(option)
        if pending is None:
            return None
        chapter = await self.complete(pending)
        return chapter if chapter is not None else self.session.find_chapter(pending.chapter_id)

    def undo(self) -> Optional[Chapter]:
        """Drop the last chapter. Returns it, or None when busy or empty."""
        if self.busy or not self.session.chapters:
            return None
        removed = self.session.chapters.pop()
        self.session.last_error = None
        self._notify()
        log_story_event(self.session_id, "undo", f"chapter={removed.id} remaining={len(self.session.chapters)}")
        return removed

    async def regenerate_image(self, chapter_id: str) -> Optional[Chapter]:
        chapter = self.session.find_chapter(chapter_id)
        if chapter is None or self.busy:
            return None

        epoch = self._begin(SessionPhase.REGENERATING_IMAGE)
        log_story_event(self.session_id, "regenerate image", f"chapter={chapter_id}")

        try:
            illustration = await self.painter(chapter.image_prompt)
        except Exception as e:
            if self._is_stale(epoch, "regenerate image"):
                return None
            self._finish(VisualizationFailed(e))
            return None

        if self._is_stale(epoch, "regenerate image"):
            return None

        chapter = self.session.find_chapter(chapter_id)
        if chapter is not None:
            chapter.illustration = illustration
        self.session.last_error = None
        self._finish()
        return chapter

    def reset(self):
        """Return to an empty session, whatever is running."""
        self._epoch += 1
        self._pending_phase = None
        self.session = Session()
        self.last_failure = None
        self._notify()
        log_story_event(self.session_id, "reset")

    def dismiss_error(self):
        self.session.last_error = None
        self._notify()

    def restore(self, token: str) -> bool:
        """Replace the session with one decoded from a share token. Invalid tokens change nothing."""
        restored = decode_share_token(token)
        if restored is None:
            log_story_event(self.session_id, "restore rejected", "invalid share token")
            return False
        self._epoch += 1
        self._pending_phase = None
        self.session = restored
        self.last_failure = None
        self._notify()
        log_story_event(self.session_id, "restored", f"chapters={len(restored.chapters)}")
        return True
