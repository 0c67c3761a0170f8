import json

import pytest

from dual_n_back.config import (
    GameMode,
    SessionConfig,
    estimate_session_minutes,
    validate_config,
)
from dual_n_back.constants import SETTINGS_KEY
from dual_n_back.settings import PreferenceStore, Settings, load_settings, save_settings


@pytest.fixture
def store(tmp_path):
    return PreferenceStore(tmp_path / "prefs" / "settings.json")


class TestPreferenceStore:
    def test_missing_file_reads_as_empty(self, store):
        assert store.get_item("anything") is None
        assert store.get_object("anything") is None

    def test_item_round_trip(self, store):
        store.set_item("greeting", "hello")
        assert store.get_item("greeting") == "hello"
        assert PreferenceStore(store.path).get_item("greeting") == "hello"

    def test_remove_item(self, store):
        store.set_item("a", "1")
        store.set_item("b", "2")
        store.remove_item("a")
        store.remove_item("missing")
        assert store.get_item("a") is None
        assert store.get_item("b") == "2"

    def test_object_round_trip(self, store):
        store.set_object("obj", {"x": [1, 2, 3]})
        assert store.get_object("obj") == {"x": [1, 2, 3]}

    def test_malformed_file_is_logged(self, store, caplog):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")
        assert store.get_item("a") is None
        assert "Failed to read preferences" in caplog.text

    def test_non_object_file_ignored(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("[1, 2]", encoding="utf-8")
        assert store.get_item("a") is None

    def test_undecodable_object(self, store):
        store.set_item("obj", "{broken")
        assert store.get_object("obj") is None


class TestSettings:
    def test_defaults(self, store):
        settings = load_settings(store)
        assert settings == Settings()
        assert settings.is_adaptive_difficulty_enabled is False

    def test_save_and_load(self, store):
        settings = Settings(
            adaptive_difficulty_enabled=True,
            high_contrast=True,
            last_config=SessionConfig(n_level=4, mode=GameMode.SINGLE_AUDIO),
        )
        save_settings(store, settings)
        loaded = load_settings(store)
        assert loaded == settings
        assert loaded.last_config.mode is GameMode.SINGLE_AUDIO

    def test_stored_under_settings_key(self, store):
        save_settings(store, Settings(adaptive_difficulty_enabled=True))
        raw = json.loads(store.path.read_text(encoding="utf-8"))
        assert json.loads(raw[SETTINGS_KEY])["adaptive_difficulty_enabled"] is True

    def test_unknown_keys_ignored(self, store):
        store.set_object(SETTINGS_KEY, {"adaptive_difficulty_enabled": True, "theme": "dark"})
        assert load_settings(store).adaptive_difficulty_enabled is True

    def test_invalid_settings_fall_back_to_defaults(self, store):
        store.set_object(SETTINGS_KEY, {"last_config": {"mode": "triple"}})
        assert load_settings(store) == Settings()


class TestValidateConfig:
    def test_defaults_are_valid(self):
        config = SessionConfig()
        assert validate_config(config) is config

    @pytest.mark.parametrize(
        "changes",
        [
            {"n_level": 0},
            {"n_level": 11},
            {"num_trials": 0},
            {"num_trials": 101},
            {"stimulus_duration_ms": 499},
            {"stimulus_duration_ms": 10_001},
            {"inter_trial_interval_ms": -1},
        ],
    )
    def test_out_of_range(self, changes):
        with pytest.raises(ValueError):
            validate_config(SessionConfig().with_changes(**changes))

    def test_bounds_inclusive(self):
        validate_config(SessionConfig(n_level=10, num_trials=100, stimulus_duration_ms=500))
        validate_config(SessionConfig(n_level=1, num_trials=1, stimulus_duration_ms=10_000))


class TestConfigHelpers:
    def test_estimate_session_minutes(self):
        assert estimate_session_minutes(20, 3000) == 2
        assert estimate_session_minutes(15, 3000) == 1
        assert estimate_session_minutes(16, 3000) == 2
        assert estimate_session_minutes(0, 3000) == 0

    def test_mode_labels(self):
        assert GameMode.SINGLE_VISUAL.label == "Single Visual"
        assert GameMode.SINGLE_AUDIO.label == "Single Audio"
        assert GameMode.DUAL.label == "Dual"

    def test_config_dict_round_trip(self):
        config = SessionConfig(n_level=3, mode=GameMode.DUAL, audio_enabled=False)
        data = config.to_dict()
        assert data["mode"] == "dual"
        assert SessionConfig.from_dict(data) == config
