"""
Smoke tests for the batch CLI.

The goal is to run the filter and optimize commands end to end on tiny
synthetic scans so regressions in wiring or filesystem layout are caught
early.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from rulier.image_utils import to_image
from rulier.main import gather_inputs, main as cli_main
from rulier.parameters import load_preferences
from rulier.filters import ZERO_TRIADS, create_detector

from conftest import ruled_page, text_blob


def _save(path: Path, raster: np.ndarray) -> Path:
    Image.fromarray(to_image(raster)).save(path)
    return path


def test_cli_filter_smoke(tmp_path):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    source = _save(input_dir / "sample.png", np.minimum(ruled_page(), text_blob()))

    cli_main(["--root", str(tmp_path), "filter", str(input_dir), "--detector", ZERO_TRIADS])

    filtered = input_dir / "filtered-files" / "(filtered) sample.png"
    assert filtered.exists(), "CLI did not write the filtered scan"

    result = np.array(Image.open(filtered).convert("L"))
    assert result.shape == (60, 120)
    assert (result[30:32, :] == 255).all()
    assert (result[10:15, 50:55] == 0).all()

    # earlier outputs are never picked up as inputs
    (input_dir / "(filtered) old.png").write_bytes(filtered.read_bytes())
    assert gather_inputs([input_dir]) == [source.resolve()]


def test_cli_filter_with_output_dir_and_override(tmp_path):
    source = _save(tmp_path / "sample.png", np.minimum(ruled_page(), text_blob()))
    output_dir = tmp_path / "out"

    cli_main([
        "--root", str(tmp_path), "filter", str(source),
        "-o", str(output_dir), "--detector", ZERO_TRIADS, "--set", "part=1",
    ])

    result = np.array(Image.open(output_dir / "(filtered) sample.png").convert("L"))
    # part = 1 finds no rule line, so the scan comes back unchanged
    assert (result[30:32, :] == 0).all()


def test_cli_optimize_smoke(tmp_path, capsys):
    gt = _save(tmp_path / "gt.png", ruled_page())
    text = _save(tmp_path / "text.png", text_blob())
    preferences = tmp_path / "filters.pref"

    cli_main([
        "--root", str(tmp_path), "optimize",
        "--detector", ZERO_TRIADS,
        "--ground-truth", str(gt),
        "--text-only", str(text),
        "--iterations", "2",
        "--seed", "1",
        "--params", str(preferences),
    ])

    assert "Energy:" in capsys.readouterr().out
    assert preferences.exists()
    assert load_preferences(preferences, [create_detector(ZERO_TRIADS)]) == 1


def test_cli_without_command(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli_main(["--root", str(tmp_path)])
    assert excinfo.value.code == 2


def test_cli_check_config(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli_main(["--root", str(tmp_path), "--check-config"])
    assert excinfo.value.code == 0
    assert "설정 검증" in capsys.readouterr().out


def test_filter_file_logs_progress(tmp_path, caplog):
    from rulier.config_validator import load_config
    from rulier.main import filter_file

    cfg = load_config(tmp_path)
    source = _save(tmp_path / "sample.png", np.minimum(ruled_page(), text_blob()))

    with caplog.at_level(logging.INFO, logger="rulier.main"):
        record = filter_file(
            source, create_detector(ZERO_TRIADS), tmp_path / "out",
            cfg.IMAGE_CONFIG, cfg.PERFORMANCE_CONFIG["memory_limit_mb"],
        )

    assert record["success"]
    assert "[sample.png] 100%" in caplog.text
