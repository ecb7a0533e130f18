# tests/unit/config/test_unit_settings.py — v1
"""Tests for config/settings.py — typed configuration and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from booknest.config.settings import ConfigurationError, Settings, load_settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    # No .env from the working tree and no inherited overrides
    monkeypatch.chdir(tmp_path)
    for var in ("BATCH_SIZE", "SOURCE_DIR", "EBOOKS_DIR", "PROCESSED_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_defaults(self):
        s = load_settings()
        assert s.batch_size == 25
        assert s.retry_max_retries == 5
        assert s.retry_base_delay_s == 10.0
        assert s.conversion_timeout_s == 120.0
        assert s.image_max_bytes == 5 * 1024 * 1024
        assert s.log_format == "json"

    def test_assets_dir_points_at_bundled_images(self):
        assert (load_settings().assets_dir / "default_author.jpg").is_file()

    def test_retry_config(self):
        cfg = load_settings(retry_max_retries=3, retry_base_delay_s=0.5).retry_config
        assert (cfg.max_retries, cfg.base_delay_s) == (3, 0.5)


class TestEnvironment:
    def test_env_vars_override(self, monkeypatch):
        monkeypatch.setenv("BATCH_SIZE", "10")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        s = Settings()
        assert s.batch_size == 10
        assert s.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("SOURCE_DIR=/data/incoming\nCALIBRE_PATH=/opt/cc\n")
        s = Settings()
        assert s.source_dir == Path("/data/incoming")
        assert s.calibre_path == "/opt/cc"


class TestValidation:
    @pytest.mark.parametrize("size", [0, 501])
    def test_batch_size_bounds(self, size):
        with pytest.raises(ValidationError, match="batch_size"):
            load_settings(batch_size=size)

    def test_retry_counts(self):
        with pytest.raises(ValidationError, match="retry counts"):
            load_settings(retry_max_retries=0)
        with pytest.raises(ValidationError, match="retry counts"):
            load_settings(conversion_max_retries=0)

    def test_negative_durations(self):
        with pytest.raises(ValidationError, match="durations"):
            load_settings(conversion_timeout_s=-1)

    def test_source_and_ebooks_must_differ(self, tmp_path):
        with pytest.raises(ConfigurationError, match="SOURCE_DIR and EBOOKS_DIR"):
            load_settings(source_dir=tmp_path / "lib", ebooks_dir=tmp_path / "lib")

    def test_processed_not_inside_source(self, tmp_path):
        with pytest.raises(ConfigurationError, match="PROCESSED_DIR"):
            load_settings(source_dir=tmp_path / "src", processed_dir=tmp_path / "src" / "done")

    def test_image_size_bounds(self):
        with pytest.raises(ConfigurationError, match="IMAGE_MIN_BYTES"):
            load_settings(image_min_bytes=10, image_max_bytes=10)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            load_settings(log_level="TRACE")
