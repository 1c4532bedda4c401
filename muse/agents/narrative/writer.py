import asyncio
import json
from functools import lru_cache
from typing import List, Optional

from groq import Groq
from pydantic import ValidationError

from muse.agents.context_loader import load_context, wrap_scene_instructions, wrap_user_input
from muse.core.config import settings
from muse.core.logger import log_agent_action
from muse.core.session.state import Genre, SceneDraft


class WriterError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def get_client() -> Groq:
    return Groq(api_key=settings.GROQ_API_KEY)


def build_scene_prompt(genre: Genre, protagonist: str, previous_context: List[str], user_choice: Optional[str]) -> str:
    """
    Builds the user prompt for the next scene.
    Opening scene when there is no context yet, continuation otherwise.
    Only the last CONTEXT_WINDOW scenes are quoted back.
    """
    genre = Genre(genre).value
    hero = wrap_user_input(protagonist)

    if not previous_context:
        return f"""
Write the opening scene of a {genre} story featuring the protagonist named below.
{hero}
The tone should be engaging and descriptive.
Provide a detailed visual description for an accompanying illustration.
Provide 3 distinct choices for how the reader can continue the story.
"""

    recent = previous_context[-settings.CONTEXT_WINDOW:] if settings.CONTEXT_WINDOW > 0 else []
    instructions = f"""
Continue this {genre} story about the protagonist named in <user_input>.
The reader chose the action in <reader_choice>.
Write the next scene (approx 150-200 words).
Provide a detailed visual description for an accompanying illustration for this specific new scene.
Provide 3 distinct choices for how the reader can continue the story.
"""
    wrapped_instructions, wrapped_context = wrap_scene_instructions(instructions, "\n".join(recent))
    choice = wrap_user_input(user_choice or "", tag="reader_choice")

    return f"""
{wrapped_context}

{hero}

{choice}

{wrapped_instructions}
"""


def generate_scene(genre: Genre, protagonist: str, previous_context: List[str], user_choice: Optional[str]) -> SceneDraft:
    """
    Generates the next scene: narrative, illustration prompt and choices.

    Raises:
        WriterError: on API failure or a malformed response
    """
    prompt = build_scene_prompt(genre, protagonist, previous_context, user_choice)

    try:
        completion = get_client().chat.completions.create(
            model=settings.TEXT_MODEL,
            messages=[
                {"role": "system", "content": load_context("writer")},
                {"role": "user", "content": prompt}
            ],
            temperature=settings.TEXT_TEMPERATURE,
            max_tokens=1024,
            response_format={"type": "json_object"}
        )
        content = completion.choices[0].message.content
    except Exception as e:
        log_agent_action("writer", "generate_scene", str(e), success=False)
        raise WriterError(f"Writer Error: {str(e)}") from e

    if not content:
        log_agent_action("writer", "generate_scene", "empty response", success=False)
        raise WriterError("Writer Error: no text returned")

    try:
        draft = SceneDraft.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError) as e:
        log_agent_action("writer", "generate_scene", f"malformed scene: {e}", success=False)
        raise WriterError(f"Writer Error: malformed scene ({str(e)})") from e

    log_agent_action("writer", "generate_scene", f"context={len(previous_context)} choices={len(draft.options)}")
    return draft


async def write_scene(genre: Genre, protagonist: str, previous_context: List[str], user_choice: Optional[str]) -> SceneDraft:
    """Async collaborator used by the story engine, bounded by GENERATION_TIMEOUT."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(generate_scene, genre, protagonist, list(previous_context), user_choice),
            timeout=settings.GENERATION_TIMEOUT,
        )
    except asyncio.TimeoutError as e:
        log_agent_action("writer", "generate_scene", f"timed out after {settings.GENERATION_TIMEOUT}s", success=False)
        raise WriterError("Writer Error: timed out") from e
