from muse.core.session.state import Session

EXPORT_FILENAME = "muse-story.txt"
SCENE_SEPARATOR = "\n---\n"


def export_story_text(session: Session) -> str:
    """Render the chapters as a plain text document, one block per scene."""
    return SCENE_SEPARATOR.join(
        f"Scene {index}:\n{chapter.narrative}\n"
        for index, chapter in enumerate(session.chapters, start=1)
    )
