"""Tests for engine settings and logging setup."""

from __future__ import annotations

import logging
import logging.handlers

import pytest
from pydantic import ValidationError

from timetable_engine.config import EngineSettings, get_settings
from timetable_engine.constraints import ConstraintWeights
from timetable_engine.log import setup_logging


class TestEngineSettings:

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.node_budget_per_occurrence == 200
        assert settings.min_node_budget == 20_000
        assert settings.time_limit_seconds == 30.0
        assert settings.repair_iterations == 20_000
        assert settings.parallel_trials == 1
        assert settings.lease_ttl_seconds == 900.0
        assert settings.environment == "development"

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("TIMETABLE_TIME_LIMIT_SECONDS", "5")
        monkeypatch.setenv("TIMETABLE_PARALLEL_TRIALS", "4")
        monkeypatch.setenv("TIMETABLE_WEIGHT_CLASS_GAPS", "7")
        settings = EngineSettings()
        assert settings.time_limit_seconds == 5.0
        assert settings.parallel_trials == 4
        assert settings.weight_class_gaps == 7

    def test_environment_normalized(self):
        assert EngineSettings(environment="  Production ").environment == "production"

    def test_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            EngineSettings(parallel_trials=0)
        with pytest.raises(ValidationError):
            EngineSettings(time_limit_seconds=0)

    def test_weights(self):
        settings = EngineSettings(weight_teacher_load=1, weight_subject_spread=0)
        assert settings.weights() == ConstraintWeights(
            teacher_load=1, teacher_gaps=2, class_gaps=2, subject_spread=0,
        )

    def test_node_budget_scales_with_size(self):
        settings = EngineSettings(min_node_budget=1000, node_budget_per_occurrence=50)
        assert settings.node_budget_for(10) == 1000
        assert settings.node_budget_for(100) == 5000

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


# =============================================================================
# Logging
# =============================================================================

def detach_root_handlers(monkeypatch) -> logging.Logger:
    """
    Empty the root logger's handler list for the rest of the test.

    pytest attaches its capture handlers when the test call starts, so
    this has to run inside the test body, not in a fixture.
    """
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    return root


@pytest.fixture
def restore_root_level(monkeypatch):
    """Put the root level back and close file handlers setup_logging opened."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.mark.usefixtures("restore_root_level")
class TestSetupLogging:

    def test_development_logs_debug_to_console(self, monkeypatch, tmp_path):
        root = detach_root_handlers(monkeypatch)
        setup_logging(environment="development", log_dir=tmp_path)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert not list(tmp_path.iterdir())

    def test_production_adds_rotating_file(self, monkeypatch, tmp_path):
        root = detach_root_handlers(monkeypatch)
        setup_logging(environment="Production", log_dir=tmp_path)
        assert root.level == logging.INFO
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
        assert (tmp_path / "timetable_engine.log").exists()

    def test_explicit_level(self, monkeypatch):
        root = detach_root_handlers(monkeypatch)
        setup_logging(level="warning")
        assert root.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        root = detach_root_handlers(monkeypatch)
        setup_logging(level="chatty")
        assert root.level == logging.INFO

    def test_existing_handlers_left_alone(self, monkeypatch):
        root = detach_root_handlers(monkeypatch)
        handler = logging.NullHandler()
        root.addHandler(handler)
        setup_logging(environment="production")
        assert root.handlers == [handler]

    def test_capture_handlers_count_as_configured(self, caplog, tmp_path):
        root = logging.getLogger()
        before = list(root.handlers)
        setup_logging(environment="production", log_dir=tmp_path)
        assert root.handlers == before
        assert not list(tmp_path.iterdir())

        logging.getLogger("timetable_engine").warning("still captured")
        assert "still captured" in caplog.text
