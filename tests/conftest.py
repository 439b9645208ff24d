import pytest

from src.output_parser import OutputParser
from src.parsing.events import EventKind


class EventRecorder:
    """Subscriber that keeps every event it receives, in order."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of(self, kind: EventKind) -> list:
        return [e for e in self.events if e.kind is kind]

    def kinds(self, *, include_state_changes: bool = False) -> list[EventKind]:
        return [
            e.kind for e in self.events
            if include_state_changes or e.kind is not EventKind.STATE_CHANGE
        ]

    def clear(self):
        self.events.clear()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def parser(recorder):
    """Parser with default config; no event loop, so tests drive it with flush()."""
    p = OutputParser()
    p.subscribe(recorder)
    yield p
    p.destroy()


@pytest.fixture
def feed(parser):
    """Write text and force processing in one step."""

    def _feed(text):
        parser.write(text)
        parser.flush()

    return _feed


@pytest.fixture
def tmp_config(tmp_path):
    """Write a YAML config file and return its path."""
    import yaml

    def _write(data) -> str:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(data))
        return str(path)

    return _write
