import pytest
from fastapi.testclient import TestClient

from muse.main import app
from muse.web.routes import get_engine
from muse.core.session.machine import StoryEngine
from muse.core.session.state import SceneDraft


class FakeWriter:
    """Scripted writer: returns numbered scenes and records every call."""

    def __init__(self):
        self.calls = []
        self.fail_next = False
        self.before_return = None  # hook run before a successful return

    async def __call__(self, genre, protagonist, previous_context, user_choice):
        self.calls.append({
            "genre": genre,
            "protagonist": protagonist,
            "context": list(previous_context),
            "choice": user_choice,
        })
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("Writer Error: service unavailable")
        if self.before_return is not None:
            self.before_return()

        n = len(self.calls)
        label = user_choice or "opening"
        return SceneDraft(
            narrative=f"Scene {n}: {protagonist} ({label})",
            image_prompt=f"Illustration of scene {n}",
            options=[f"Option {n}.1", f"Option {n}.2", f"Option {n}.3"],
        )


class FakePainter:
    """Returns deterministic image references; can be told to fail."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self.on_call = None  # hook run with the prompt before answering

    async def __call__(self, prompt):
        self.calls.append(prompt)
        if self.on_call is not None:
            self.on_call(prompt)
        if self.fail:
            raise RuntimeError("Painter Error: no image")
        return f"/static/images/{len(self.calls)}.png"


@pytest.fixture(name="writer")
def writer_fixture():
    return FakeWriter()


@pytest.fixture(name="painter")
def painter_fixture():
    return FakePainter()


@pytest.fixture(name="engine")
def engine_fixture(writer: FakeWriter, painter: FakePainter):
    return StoryEngine(writer=writer, painter=painter, session_id="test")


@pytest.fixture(name="client")
def client_fixture(engine: StoryEngine):

    def get_engine_override():
        return engine

    app.dependency_overrides[get_engine] = get_engine_override

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
