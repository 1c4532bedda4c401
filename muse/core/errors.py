"""
Error taxonomy for story sessions.

Every error here is recoverable: the session stays usable and the reader can
retry the same transition or pick another one.
"""
from typing import Optional

from muse.agents.context_loader import get_user_friendly_error


class StoryError(Exception):
    """Base class. `kind` keys into the user-facing message table."""

    kind: str = "GENERATION_ERROR"

    def __init__(self, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(self.user_message if cause is None else f"{self.user_message} ({cause})")

    @property
    def user_message(self) -> str:
        return get_user_friendly_error(self.kind)


class StartFailed(StoryError):
    kind = "START_FAILED"


class AdvanceFailed(StoryError):
    kind = "ADVANCE_FAILED"


class VisualizationFailed(StoryError):
    kind = "VISUALIZATION_FAILED"


class InvalidShareToken(StoryError):
    """Local to the share codec; never mutates a session."""

    kind = "INVALID_SHARE_TOKEN"
