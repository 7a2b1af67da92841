"""
Tests for the settings loader.
"""

from dooriq.settings import DEFAULTS, DotDict, _deep_merge, load_settings, reload_settings, validate_settings


class TestLoadSettings:

    def test_bundled_settings_are_valid(self):
        assert validate_settings(load_settings()) == []

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.simulation.max_turns == DEFAULTS["simulation"]["max_turns"]
        assert settings.llm.timeout == DEFAULTS["llm"]["timeout"]

    def test_partial_file_merges_with_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("simulation:\n  max_turns: 12\n", encoding="utf-8")
        settings = load_settings(path)
        assert settings.simulation.max_turns == 12
        assert settings.simulation.close_turn_threshold == 10
        assert settings.evaluation.pass_threshold == 80

    def test_get_nested(self):
        settings = DotDict({"logging": {"log_prompts": True}})
        assert settings.get_nested("logging.log_prompts") is True
        assert settings.get_nested("logging.missing", "x") == "x"


class TestValidateSettings:

    def _settings(self, **overrides):
        return DotDict(_deep_merge(DEFAULTS, overrides))

    def test_close_threshold_below_max_turns(self):
        errors = validate_settings(self._settings(simulation={"close_turn_threshold": 25}))
        assert any("close_turn_threshold" in e for e in errors)

    def test_threshold_order(self):
        errors = validate_settings(self._settings(evaluation={"partial_threshold": 90}))
        assert any("thresholds" in e for e in errors)

    def test_unknown_backends(self):
        errors = validate_settings(self._settings(
            simulation={"reply_backend": "psychic"},
            storage={"backend": "redis"},
        ))
        assert len(errors) == 2

    def test_reload(self):
        reloaded = reload_settings()
        assert reloaded.storage.backend in ("sqlite", "memory")
