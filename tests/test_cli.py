"""
Tests for configuration and the command-line entry point.
"""

import os
from datetime import datetime

import cv2
import numpy as np
import pytest

from zeroblur.cli_main import create_parser, expand_inputs, main, run_focus_stacking
from zeroblur.config import StackConfig


def _write_burst(folder, frames):
    folder.mkdir(parents=True, exist_ok=True)
    paths = []
    for i, rgb in enumerate(frames):
        path = folder / f"IMG_{i:03d}.png"
        cv2.imwrite(str(path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
        paths.append(path)
    return paths


class TestStackConfig:
    """Tests for configuration validation."""

    def test_defaults(self):
        config = StackConfig()
        assert config.levels == 5
        assert config.align_max_dim == 1000
        assert config.ecc_max_iterations == 50
        assert config.ecc_epsilon == pytest.approx(1e-3)
        assert config.clamp_align_scale is True
        assert config.detail_measure == "abs"
        assert config.workers == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"levels": 0},
            {"align_max_dim": 0},
            {"ecc_max_iterations": 0},
            {"ecc_epsilon": 0.0},
            {"ecc_gauss_filter_size": 4},
            {"detail_measure": "gradient"},
            {"workers": 0},
            {"jpeg_quality": 101},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            StackConfig(**kwargs)

    def test_debug_dir_becomes_path(self, tmp_path):
        config = StackConfig(debug_dir=str(tmp_path))
        assert config.debug_dir == tmp_path


class TestRunFocusStacking:
    """Tests for the file-level entry point."""

    def test_directory_input(self, tmp_path, sharp_square_stack):
        _write_burst(tmp_path / "burst", sharp_square_stack())
        messages = []

        path = run_focus_stacking(
            inputs=[tmp_path / "burst"],
            output_dir=tmp_path / "out",
            capture_time=datetime(2024, 7, 1, 12, 0, 0),
            log_callback=messages.append,
        )

        assert path == tmp_path / "out" / "ZeroBlur_20240701_120000.jpg"
        assert path.exists()
        assert "Loading image 1..." in messages
        assert "Saving result..." in messages

    def test_capture_time_from_first_input(self, tmp_path, solid_gray_stack):
        paths = _write_burst(tmp_path / "burst", solid_gray_stack(n=2, height=32, width=32))
        stamp = datetime(2023, 11, 5, 8, 30, 15).timestamp()
        os.utime(paths[0], (stamp, stamp))

        path = run_focus_stacking(inputs=paths, output_dir=tmp_path / "out")

        assert path.name == "ZeroBlur_20231105_083015.jpg"

    def test_no_inputs(self, tmp_path):
        (tmp_path / "empty").mkdir()
        assert run_focus_stacking(inputs=[tmp_path / "empty"], output_dir=tmp_path / "out") is None

    def test_nothing_decodes(self, tmp_path):
        bad = tmp_path / "bad.jpg"
        bad.write_bytes(b"garbage")
        assert run_focus_stacking(inputs=[bad], output_dir=tmp_path / "out") is None
        assert not (tmp_path / "out").exists()

    def test_unwritable_output_returns_none(self, tmp_path, solid_gray_stack):
        """An output path that is a file yields no result instead of raising."""
        paths = _write_burst(tmp_path / "burst", solid_gray_stack(n=2, height=32, width=32))
        blocker = tmp_path / "out"
        blocker.write_bytes(b"")
        messages = []

        path = run_focus_stacking(inputs=paths, output_dir=blocker, log_callback=messages.append)

        assert path is None
        assert any(m.startswith("Failed to save stacked image") for m in messages)

    def test_expand_inputs(self, tmp_path, solid_gray_stack):
        paths = _write_burst(tmp_path / "burst", solid_gray_stack(n=2, height=8, width=8))
        extra = tmp_path / "extra.png"
        assert expand_inputs([tmp_path / "burst", extra]) == paths + [extra]


class TestMain:
    """Tests for the argument parser and exit codes."""

    def test_parser_defaults(self):
        args = create_parser().parse_args(["burst"])
        assert args.levels == 5
        assert args.align_max_dim == 1000
        assert args.workers == 1
        assert not args.no_align

    def test_success(self, tmp_path, solid_gray_stack, capsys):
        _write_burst(tmp_path / "burst", solid_gray_stack(n=3, height=32, width=32))

        code = main([str(tmp_path / "burst"), "-o", str(tmp_path / "out"), "--levels", "3", "--prefix", "Test"])

        assert code == 0
        written = list((tmp_path / "out").glob("Test_*.jpg"))
        assert len(written) == 1
        assert str(written[0]) in capsys.readouterr().out

    def test_failure_exit_code(self, tmp_path):
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"garbage")
        assert main([str(bad), "-o", str(tmp_path / "out")]) == 1

    def test_unwritable_output_exit_code(self, tmp_path, solid_gray_stack):
        _write_burst(tmp_path / "burst", solid_gray_stack(n=2, height=32, width=32))
        (tmp_path / "out").write_bytes(b"")
        assert main([str(tmp_path / "burst"), "-o", str(tmp_path / "out"), "--levels", "3"]) == 1

    def test_invalid_config_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main([str(tmp_path), "--levels", "0"])
