import os

import pytest

from lapse.config import AppConfig


def test_default_config_validates():
    AppConfig.default().validate()


def test_apply_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("LAPSE_VERBOSE", "0")
    monkeypatch.setenv("LAPSE_TEMP_DIR", str(tmp_path))
    monkeypatch.setenv("LAPSE_FETCH_TIMEOUT", "2.5")
    monkeypatch.delenv("OPENCV_LOG_LEVEL", raising=False)

    cfg = AppConfig.default()
    cfg.apply_env()

    assert cfg.verbose is False
    assert cfg.paths.temp_dir == str(tmp_path)
    assert cfg.fetch.timeout_s == 2.5
    assert os.environ["OPENCV_LOG_LEVEL"] == "ERROR"


def test_validate_rejects_bad_volume():
    cfg = AppConfig.default()
    cfg.audio.default_volume = 1.5
    with pytest.raises(AssertionError):
        cfg.validate()
