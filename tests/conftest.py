from datetime import datetime, timezone

import pytest

from cadence.application.config import EngineConfig
from cadence.application.graph_resolver import build_graph
from cadence.infrastructure.adapters.memory import (
    InMemoryCardStateRepository,
    InMemoryLessonProgressRepository,
)

CURRICULUM_YAML = """\
modules:
  - id: "1"
    title: Foundations
    lessons:
      - id: "1.1"
        title: Tensors
        sections: [intro, shapes]
        cards: [c-tensor-rank, c-tensor-shape]
      - id: "1.2"
        title: Broadcasting
        prerequisites: ["1.1"]
        sections: [rules]
        cards: [c-broadcast]
  - id: "2"
    title: Training
    lessons:
      - id: "2.1"
        title: Gradient descent
        prerequisites: ["1.2"]
        sections: [update-rule]
        cards: [c-gd-step]
"""


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("CADENCE_BACKEND", "CADENCE_STORE_PATH", "CADENCE_CURRICULUM_PATH"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def config(mock_home):
    return EngineConfig(backend="memory")


@pytest.fixture
def now():
    return datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def card_repo():
    return InMemoryCardStateRepository()


@pytest.fixture
def progress_repo():
    return InMemoryLessonProgressRepository()


@pytest.fixture
def curriculum_file(tmp_path):
    path = tmp_path / "curriculum.yaml"
    path.write_text(CURRICULUM_YAML, encoding="utf-8")
    return path


@pytest.fixture
def graph():
    import yaml

    return build_graph(yaml.safe_load(CURRICULUM_YAML))
