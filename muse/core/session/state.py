import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Genre(str, Enum):
    FANTASY = "Fantasy"
    SCI_FI = "Sci-Fi"
    MYSTERY = "Mystery"
    HORROR = "Horror"
    ADVENTURE = "Adventure"
    CYBERPUNK = "Cyberpunk"


class SessionPhase(str, Enum):
    EMPTY = "empty"
    STARTING = "starting"                    # busy, no chapters yet
    ACTIVE = "active"
    ADVANCING = "advancing"                  # busy, mid-choice
    REGENERATING_IMAGE = "regenerating_image"


_last_stamp = 0


def new_chapter_id() -> str:
    """Zero-padded nanosecond stamp, strictly increasing within the process."""
    global _last_stamp
    stamp = max(time.time_ns(), _last_stamp + 1)
    _last_stamp = stamp
    return f"{stamp:020d}"


class Chapter(BaseModel):
    id: str = Field(default_factory=new_chapter_id)
    narrative: str
    image_prompt: str
    illustration: Optional[str] = None  # only field mutated after creation
    options: List[str]


class Session(BaseModel):
    genre: Optional[Genre] = None
    protagonist: str = ""
    chapters: List[Chapter] = Field(default_factory=list)
    busy: bool = False
    last_error: Optional[str] = None

    @property
    def current_chapter(self) -> Optional[Chapter]:
        return self.chapters[-1] if self.chapters else None

    def find_chapter(self, chapter_id: str) -> Optional[Chapter]:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None


class SceneDraft(BaseModel):
    """Structured scene returned by the writer agent."""

    narrative: str = Field(..., alias="storyText", min_length=1)
    image_prompt: str = Field(..., alias="imageDescription", min_length=1)
    options: List[str] = Field(..., alias="choices", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    def to_chapter(self, illustration: Optional[str] = None) -> Chapter:
        return Chapter(
            narrative=self.narrative,
            image_prompt=self.image_prompt,
            illustration=illustration,
            options=list(self.options),
        )
