"""Tests for the ``qrdx`` command line."""
import json

import numpy as np
import pytest
from PIL import Image

from qrdx.__main__ import EXIT_FOUND, EXIT_NOT_FOUND, EXIT_USAGE, build_parser, main

from fakes import finder_grid, render_qr


@pytest.fixture
def base_args(temp_dir):
    return ["--config", str(temp_dir / "absent.json"), "--worker-mode", "thread", "--log-level", "WARNING"]


def _save(temp_dir, name, image):
    path = temp_dir / name
    Image.fromarray(image).save(path)
    return str(path)


class TestParser:
    def test_detect_flags(self):
        args = build_parser().parse_args(
            ["detect", "a.png", "--kernel-size", "7", "--multiple", "--no-opencv", "--region-scan"]
        )

        assert args.command == "detect"
        assert args.kernel_size == 7
        assert args.multiple and args.no_opencv
        assert args.region_scan

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_shared_flags_after_subcommand(self):
        args = build_parser().parse_args(["detect", "a.png", "--json", "--worker-mode", "thread"])

        assert args.json is True
        assert args.worker_mode == "thread"
        assert args.config == "qrdx.json"

    def test_root_flags_survive_subcommand_defaults(self):
        args = build_parser().parse_args(["--json", "--worker-mode", "process", "finder", "a.png"])

        assert args.json is True
        assert args.worker_mode == "process"

    def test_subcommand_flag_overrides_root(self):
        args = build_parser().parse_args(["--worker-mode", "process", "detect", "a.png", "--worker-mode", "thread"])

        assert args.worker_mode == "thread"


class TestMain:
    def test_detect_prints_payload(self, base_args, temp_dir, capsys):
        path = _save(temp_dir, "qr.png", render_qr("cli payload"))

        code = main(base_args + ["detect", path, "--no-opencv"])

        assert code == EXIT_FOUND
        assert "cli payload" in capsys.readouterr().out

    def test_detect_json(self, base_args, temp_dir, capsys):
        path = _save(temp_dir, "qr.png", render_qr("json payload"))

        code = main(base_args + ["--json", "detect", path, "--no-opencv"])

        assert code == EXIT_FOUND
        data = json.loads(capsys.readouterr().out)
        assert data[0]["decoded_text"] == "json payload"
        assert data[0]["strategy_name"] == "direct"

    def test_nothing_found(self, base_args, temp_dir, capsys):
        path = _save(temp_dir, "blank.png", np.full((100, 100, 4), 255, dtype=np.uint8))

        code = main(base_args + ["detect", path, "--no-opencv"])

        assert code == EXIT_NOT_FOUND
        assert "No QR code found" in capsys.readouterr().out

    def test_missing_file(self, base_args, temp_dir, capsys):
        code = main(base_args + ["detect", str(temp_dir / "missing.png")])

        assert code == EXIT_USAGE
        assert "error" in capsys.readouterr().err

    def test_even_kernel_is_a_usage_error(self, base_args, temp_dir):
        path = _save(temp_dir, "qr.png", render_qr("k"))

        assert main(base_args + ["detect", path, "--kernel-size", "8", "--no-opencv"]) == EXIT_USAGE

    def test_finder(self, base_args, temp_dir, capsys):
        path = _save(temp_dir, "grid.png", finder_grid())

        code = main(base_args + ["--json", "finder", path])

        assert code == EXIT_FOUND
        assert len(json.loads(capsys.readouterr().out)) == 3

    def test_detect_json_after_image_path(self, temp_dir, capsys):
        path = _save(temp_dir, "qr.png", render_qr("trailing flags"))

        code = main(["--config", str(temp_dir / "absent.json"), "--log-level", "WARNING",
                     "detect", path, "--no-opencv", "--json", "--worker-mode", "thread"])

        assert code == EXIT_FOUND
        data = json.loads(capsys.readouterr().out)
        assert data[0]["decoded_text"] == "trailing flags"

    def test_finder_json_after_image_path(self, base_args, temp_dir, capsys):
        path = _save(temp_dir, "grid.png", finder_grid())

        code = main(base_args + ["finder", path, "--json"])

        assert code == EXIT_FOUND
        assert len(json.loads(capsys.readouterr().out)) == 3
