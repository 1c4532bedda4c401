"""
Share links.

A session snapshot is projected to a compact JSON document, encoded as UTF-8
and then as URL-safe base64 without padding, so the token can sit after the
`#` of a link. Illustrations are left out to keep links short; a restored
session shows its chapters without pictures until they are regenerated.
"""
import base64
import json
import re
from typing import Annotated, List, Optional
from urllib.parse import urldefrag

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from muse.core.errors import InvalidShareToken
from muse.core.logger import get_logger
from muse.core.session.state import Chapter, Genre, Session

logger = get_logger("share")

# Standard and URL-safe base64 alphabets are both accepted on decode.
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9+/_-]*={0,2}$")


class SharedChapter(BaseModel):
    id: str
    narrative: str = Field(..., alias="text")
    image_prompt: str = Field(..., alias="imagePrompt")
    options: List[str] = Field(..., alias="choices")

    model_config = ConfigDict(populate_by_name=True)


class SharedStory(BaseModel):
    genre: Genre = Field(..., alias="g")
    protagonist: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)] = Field(..., alias="c")
    chapters: List[SharedChapter] = Field(..., alias="s")

    model_config = ConfigDict(populate_by_name=True)


def encode_share_token(session: Session) -> str:
    """
    Encode the shareable part of a session as a URL-fragment-safe token.

    Raises:
        InvalidShareToken: when the session has not been started (no genre or protagonist)
    """
    if session.genre is None or not session.protagonist.strip():
        raise InvalidShareToken(ValueError("only a started story can be shared"))

    shared = SharedStory(
        genre=session.genre,
        protagonist=session.protagonist,
        chapters=[
            SharedChapter(
                id=chapter.id,
                narrative=chapter.narrative,
                image_prompt=chapter.image_prompt,
                options=chapter.options,
            )
            for chapter in session.chapters
        ],
    )
    payload = json.dumps(shared.model_dump(mode="json", by_alias=True), ensure_ascii=False, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def _parse_token(token) -> SharedStory:
    if not isinstance(token, str):
        raise InvalidShareToken(TypeError(f"expected str, got {type(token).__name__}"))

    token = token.strip().lstrip("#")
    if not token or not _TOKEN_PATTERN.match(token):
        raise InvalidShareToken(ValueError("token is not base64 text"))

    token = token.rstrip("=").replace("+", "-").replace("/", "_")
    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        data = json.loads(raw.decode("utf-8"))
        return SharedStory.model_validate(data)
    except (ValueError, RecursionError) as e:
        # binascii.Error, UnicodeDecodeError, JSONDecodeError and pydantic's
        # ValidationError are all ValueErrors; deeply nested JSON recurses
        raise InvalidShareToken(e) from e


def decode_share_token(token) -> Optional[Session]:
    """
    Decode a share token into a partial session.

    Returns None for anything that is not a well-formed token; never raises.
    Restored chapters carry no illustration and the session is idle.
    """
    try:
        shared = _parse_token(token)
    except InvalidShareToken as e:
        logger.warning(f"Ignoring share token: {e}")
        return None

    return Session(
        genre=shared.genre,
        protagonist=shared.protagonist,
        chapters=[
            Chapter(
                id=chapter.id,
                narrative=chapter.narrative,
                image_prompt=chapter.image_prompt,
                options=chapter.options,
            )
            for chapter in shared.chapters
        ],
    )


def build_share_url(base_url: str, session: Session) -> str:
    """Return `base_url` with its fragment replaced by the session's token."""
    url, _ = urldefrag(base_url)
    return f"{url}#{encode_share_token(session)}"
