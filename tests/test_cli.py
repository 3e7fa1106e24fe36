from __future__ import annotations

import json
from pathlib import Path

import yaml
from PIL import Image
from typer.testing import CliRunner

from codeanim_cli.cli import app

runner = CliRunner()


def _project(tmp_path: Path, **settings) -> Path:
    (tmp_path / "main.py").write_text("def f(x):\n    return x + 1\n\nprint(f(1))\n", encoding="utf-8")
    data = {
        "name": "demo",
        "language": "python",
        "code_file": "main.py",
        "slides": [
            {"id": "a", "name": "Def", "line_ranges": [{"start": 1, "end": 2}], "duration_ms": 500},
            {
                "id": "b",
                "name": "Call",
                "line_ranges": [{"start": 4, "end": 4}],
                "duration_ms": 500,
                "animation_style": "typewriter",
                "order": 1,
            },
        ],
    }
    if settings:
        data["settings"] = settings
    path = tmp_path / "project.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestValidateCommand:
    def test_ok(self, tmp_path: Path):
        result = runner.invoke(app, ["validate", str(_project(tmp_path))])
        assert result.exit_code == 0
        assert "OK" in result.output

    def test_errors_exit_2(self, tmp_path: Path):
        path = tmp_path / "project.yaml"
        path.write_text("name: broken\ncode: 'x'\nslides:\n  - {id: a, name: A, duration_ms: 0}\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 2
        assert "Errors" in result.output

    def test_verbose_flag(self, tmp_path: Path):
        result = runner.invoke(app, ["--verbose", "validate", str(_project(tmp_path))])
        assert result.exit_code == 0


class TestTimelineCommand:
    def test_table_and_json(self, tmp_path: Path):
        out = tmp_path / "timeline.json"
        result = runner.invoke(app, ["timeline", str(_project(tmp_path)), "--speed", "2", "--out", str(out)])
        assert result.exit_code == 0, result.output
        assert "Timeline" in result.output
        data = json.loads(out.read_text())
        assert data["total_duration_ms"] == 500


class TestFrameCommand:
    def test_writes_png(self, tmp_path: Path):
        out = tmp_path / "frame.png"
        result = runner.invoke(
            app,
            [
                "frame", str(_project(tmp_path)),
                "--time", "0.75",
                "--out", str(out),
                "--config", str(tmp_path / "codeanim.toml"),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Slide 1" in result.output
        assert Image.open(out).size == (800, 450)

    def test_past_end(self, tmp_path: Path):
        out = tmp_path / "frame.png"
        result = runner.invoke(
            app,
            ["frame", str(_project(tmp_path)), "--time", "9", "--out", str(out),
             "--config", str(tmp_path / "codeanim.toml")],
        )
        assert result.exit_code == 0
        assert "No slide active" in result.output


class TestExportCommand:
    def test_gif_export_with_sidecar(self, tmp_path: Path):
        config = tmp_path / "codeanim.toml"
        config.write_text("[viewport]\nwidth = 320\nheight = 180\n")
        out = tmp_path / "out" / "demo.gif"
        result = runner.invoke(
            app,
            [
                "export", str(_project(tmp_path)),
                "--format", "gif",
                "--fps", "5",
                "--resolution", "720p",
                "--out", str(out),
                "--config", str(config),
            ],
        )
        assert result.exit_code == 0, result.output
        assert out.exists()
        sidecar = json.loads((out.parent / "demo.gif.version.json").read_text())
        assert sidecar["metadata"]["frame_count"] == 8
        assert sidecar["metadata"]["resolution"] == "720p"

    def test_unsupported_format(self, tmp_path: Path):
        result = runner.invoke(
            app,
            ["export", str(_project(tmp_path)), "--format", "avi",
             "--config", str(tmp_path / "codeanim.toml")],
        )
        assert result.exit_code == 1
        assert "validation" in result.output

    def test_bad_config(self, tmp_path: Path):
        config = tmp_path / "codeanim.toml"
        config.write_text("[viewport]\nbogus = 1\n")
        result = runner.invoke(app, ["export", str(_project(tmp_path)), "--config", str(config)])
        assert result.exit_code == 2
        assert "Config error" in result.output


class TestSchemaCommand:
    def test_export_jsonschema(self, tmp_path: Path):
        result = runner.invoke(app, ["schema", "export-jsonschema", "--out-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert (tmp_path / "project.schema.json").exists()
        assert (tmp_path / "timeline.schema.json").exists()
