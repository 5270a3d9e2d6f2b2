"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest

from rulier.config_validator import ConfigValidator, config_summary, load_config
from rulier.exceptions import ConfigurationError


def test_defaults_without_config_file(tmp_path):
    cfg = load_config(tmp_path)
    assert cfg.ROOT_DIR == tmp_path
    assert cfg.OUTPUT_SUBDIR == "filtered-files"
    assert cfg.DETECTOR_CONFIG["default_detector"] == "directional-profile"
    assert set(config_summary(cfg)) == {
        "IMAGE_CONFIG", "DETECTOR_CONFIG", "OPTIMIZER_CONFIG", "PERFORMANCE_CONFIG", "LOGGING_CONFIG",
    }


def test_user_config_overrides_single_keys(tmp_path):
    (tmp_path / "config.py").write_text(
        'IMAGE_CONFIG = {"pdf_dpi": 200}\nDETECTOR_CONFIG = {"default_detector": "zero-triads"}\nOUTPUT_SUBDIR = "clean"\n',
        encoding="utf-8",
    )
    cfg = load_config(tmp_path)
    assert cfg.IMAGE_CONFIG["pdf_dpi"] == 200
    assert cfg.IMAGE_CONFIG["gray_threshold"] == 128
    assert cfg.DETECTOR_CONFIG["default_detector"] == "zero-triads"
    assert cfg.OUTPUT_SUBDIR == "clean"

    # defaults are not shared between loads
    other = tmp_path / "other"
    other.mkdir()
    assert load_config(other).IMAGE_CONFIG["pdf_dpi"] == 300


def test_bad_config_files(tmp_path):
    (tmp_path / "config.py").write_text("IMAGE_CONFIG = [1, 2]\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(tmp_path)

    (tmp_path / "config.py").write_text("IMAGE_CONFIG = {\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(tmp_path)


def test_validator_accepts_defaults(tmp_path):
    is_valid, errors, _ = ConfigValidator(load_config(tmp_path)).validate_all()
    assert is_valid, errors


def test_validator_reports_each_problem(tmp_path):
    (tmp_path / "config.py").write_text(
        "\n".join([
            'IMAGE_CONFIG = {"gray_threshold": 0, "pdf_dpi": 10}',
            'DETECTOR_CONFIG = {"default_detector": "hough"}',
            'OPTIMIZER_CONFIG = {"iterations": 0, "seed": "abc"}',
            'LOGGING_CONFIG = {"level": "LOUD"}',
        ]),
        encoding="utf-8",
    )
    validator = ConfigValidator(load_config(tmp_path))
    assert len(validator.validate_image_config()) == 2
    assert len(validator.validate_detector_config()) == 1
    assert len(validator.validate_optimizer_config()) == 2
    assert len(validator.validate_logging_config()) == 1

    is_valid, errors, _ = validator.validate_all()
    assert not is_valid
    assert len(errors) == 6


def test_missing_root_directory(tmp_path):
    validator = ConfigValidator(load_config(tmp_path / "nowhere"))
    assert validator.validate_paths()
