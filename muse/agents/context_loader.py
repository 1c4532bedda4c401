"""
Context Loader Utility for Muse Tales Agents

This module provides loading of context files for the AI agents.
Context files contain system prompts hardened against prompt injection
coming from reader-provided text (protagonist names, chosen options).
"""

from pathlib import Path
from functools import lru_cache


# Base directory for agents
AGENTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=10)
def load_context(agent_name: str) -> str:
    """
    Load context file for a specific agent.

    Args:
        agent_name: Name of the agent (writer)

    Returns:
        Content of the context file as string

    Raises:
        FileNotFoundError: If context file doesn't exist
    """
    context_paths = {
        "writer": AGENTS_DIR / "narrative" / "context_writer.txt",
    }

    if agent_name not in context_paths:
        raise ValueError(f"Unknown agent: {agent_name}. Available: {list(context_paths.keys())}")

    context_path = context_paths[agent_name]

    if not context_path.exists():
        raise FileNotFoundError(f"Context file not found: {context_path}")

    return context_path.read_text(encoding="utf-8")


def _escape(text: str) -> str:
    return text.replace("<", "&lt;").replace(">", "&gt;")


def wrap_user_input(user_input: str, tag: str = "user_input") -> str:
    """
    Wrap reader-provided text in XML tags for input isolation.
    This helps the model distinguish between instructions and reader data.
    """
    return f"<{tag}>\n{_escape(user_input)}\n</{tag}>"


def wrap_scene_instructions(instructions: str, context: str) -> tuple[str, str]:
    """
    Wrap scene instructions and story-so-far for the writer agent.

    Returns:
        Tuple of (wrapped_instructions, wrapped_context)
    """
    wrapped_inst = f"<scene_instructions>\n{_escape(instructions)}\n</scene_instructions>"
    wrapped_ctx = f"<story_context>\n{_escape(context)}\n</story_context>"

    return wrapped_inst, wrapped_ctx


# User-friendly error messages (not exposing internal details)
ERROR_MESSAGES = {
    "START_FAILED": "Failed to awaken the muse. Please try again.",
    "ADVANCE_FAILED": "The story thread snapped. Please try again.",
    "VISUALIZATION_FAILED": "Failed to visualize this scene.",
    "INVALID_SHARE_TOKEN": "This shared story link is broken or incomplete.",
    "GENERATION_ERROR": "Something went wrong while writing. Please try again.",
}


def get_user_friendly_error(error_type: str) -> str:
    """
    Get user-friendly error message without exposing internal details.

    Args:
        error_type: Internal error type identifier

    Returns:
        User-friendly error message
    """
    return ERROR_MESSAGES.get(error_type, ERROR_MESSAGES["GENERATION_ERROR"])
