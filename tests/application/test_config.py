import pytest
from pydantic import ValidationError

from cadence.application.config import EngineConfig, resolve_config
from cadence.domain.constants import DEFAULT_WEIGHTS


def test_defaults(mock_home):
    config = EngineConfig()

    assert config.backend == "json"
    assert config.store_path == mock_home / ".config/cadence/store.json"
    assert config.curriculum_path is None
    assert config.target_retention == 0.9
    assert config.weights == DEFAULT_WEIGHTS
    assert config.learning_steps_minutes == (1, 10, 1440)
    assert config.demotion_policy == "badge"


def test_env_overrides_defaults(mock_home, monkeypatch):
    monkeypatch.setenv("CADENCE_BACKEND", "memory")
    monkeypatch.setenv("CADENCE_TARGET_RETENTION", "0.85")

    config = EngineConfig()

    assert config.backend == "memory"
    assert config.target_retention == 0.85


def test_toml_file_is_read(mock_home):
    config_dir = mock_home / ".config/cadence"
    config_dir.mkdir(parents=True)
    (config_dir / "config.toml").write_text(
        'backend = "memory"\ndemotion_policy = "review-lock"\nmastered_stability_days = 21.0\n'
    )

    config = EngineConfig()

    assert config.backend == "memory"
    assert config.demotion_policy == "review-lock"
    assert config.mastered_stability_days == 21.0


def test_resolve_config_skips_none(mock_home, tmp_path):
    config = resolve_config({"backend": "memory", "store_path": None, "curriculum_path": tmp_path})

    assert config.backend == "memory"
    assert config.store_path.name == "store.json"
    assert config.curriculum_path == tmp_path.resolve()


@pytest.mark.parametrize(
    "overrides",
    [
        {"weights": (1.0, 2.0)},
        {"learning_steps_minutes": ()},
        {"learning_steps_minutes": (10, 1)},
        {"relearning_steps_minutes": (0,)},
        {"target_retention": 1.2},
        {"familiar_stability_days": 10.0, "proficient_stability_days": 7.0},
        {"difficulty_min": 0},
        {"difficulty_min": 11.0},
        {"backend": "sqlite"},
        {"demotion_policy": "hide"},
    ],
)
def test_invalid_values(mock_home, overrides):
    with pytest.raises(ValidationError):
        EngineConfig(**overrides)
