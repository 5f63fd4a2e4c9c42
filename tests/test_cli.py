import json
from pathlib import Path

import yaml
from PIL import Image
from typer.testing import CliRunner

from posterkit.cli import app

runner = CliRunner()


def _no_config(tmp_path: Path) -> list[str]:
    return ["--config", str(tmp_path / "missing-config.yaml")]


def _write_template(tmp_path: Path) -> Path:
    Image.new("RGB", (64, 64), (20, 40, 60)).save(tmp_path / "bg.png")
    record = {
        "id": "cli-test",
        "name": "CLI Test",
        "schemaVersion": 2,
        "imageUrls": {"full": "bg.png"},
        "layoutConfig": {
            "layoutStyle": "zone",
            "textZones": [
                {"type": "name", "x": 200, "y": 200, "width": 1600, "height": 300, "fontSize": 120},
                {"type": "title", "x": 200, "y": 600, "width": 1600, "height": 200, "fontSize": 60},
            ],
        },
    }
    path = tmp_path / "cli-test.yaml"
    path.write_text(yaml.safe_dump(record), encoding="utf-8")
    return path


def test_templates_lists_builtins() -> None:
    result = runner.invoke(app, ["templates"])
    assert result.exit_code == 0
    assert "classic-endorsement" in result.output
    assert "photo_above" in result.output


def test_layout_prints_json(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        [
            "layout",
            "classic-endorsement",
            "--name",
            "Jo",
            "--title",
            "Mayor",
            "--measurer",
            "approx",
            *_no_config(tmp_path),
        ],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert [item["zone_type"] for item in payload] == ["name", "title"]
    assert payload[0]["lines"] == ["JO"]
    assert payload[0]["font_size_px"] == 65


def test_layout_rejects_unknown_measurer(tmp_path: Path) -> None:
    args = ["layout", "classic-endorsement", "--name", "Jo", "--measurer", "laser", *_no_config(tmp_path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 1


def test_check_reports_consistent_scales(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["check", "classic-endorsement", "--name", "Jo", "--title", "Mayor", "--no-exact", *_no_config(tmp_path)],
    )
    assert result.exit_code == 0, result.output
    assert "consistent" in result.output


def test_check_long_name_on_builtin_template(tmp_path: Path) -> None:
    args = ["check", "classic-endorsement", "--name", "Christopher Alexander Johnson", "--title", "Mayor"]
    result = runner.invoke(app, [*args, "--no-exact", *_no_config(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Scale drift" not in result.output


def test_render_writes_png(tmp_path: Path) -> None:
    template = _write_template(tmp_path)
    out_dir = tmp_path / "posters"
    result = runner.invoke(
        app,
        [
            "render",
            str(template),
            "--name",
            "Jo Smith",
            "--title",
            "Mayor",
            "--mode",
            "final",
            "--size",
            "120",
            "--out",
            str(out_dir),
            "--session",
            "s1",
            *_no_config(tmp_path),
        ],
    )
    assert result.exit_code == 0, result.output
    files = list((out_dir / "final").glob("*.png"))
    assert len(files) == 1
    assert files[0].name.startswith("s1_final_")
    assert Image.open(files[0]).size == (120, 120)


def test_render_names_files_with_default_template(tmp_path: Path) -> None:
    template = _write_template(tmp_path)
    out_dir = tmp_path / "posters"
    args = ["render", str(template), "--name", "Jo", "--mode", "preview", "--size", "64", "--out", str(out_dir)]
    result = runner.invoke(app, [*args, *_no_config(tmp_path)])
    assert result.exit_code == 0, result.output
    files = list((out_dir / "preview").glob("*.png"))
    assert len(files) == 1
    assert files[0].name.startswith("anonymous_preview_")


def test_render_missing_template_image_fails(tmp_path: Path) -> None:
    template = _write_template(tmp_path)
    (tmp_path / "bg.png").unlink()
    args = ["render", str(template), "--name", "Jo", "--mode", "final", "--size", "80", *_no_config(tmp_path)]
    result = runner.invoke(app, args)
    assert result.exit_code == 1


def test_render_rejects_size_with_both_modes(tmp_path: Path) -> None:
    template = _write_template(tmp_path)
    result = runner.invoke(app, ["render", str(template), "--size", "80", *_no_config(tmp_path)])
    assert result.exit_code == 1


def test_migrate_writes_current_schema(tmp_path: Path) -> None:
    legacy = {
        "id": "legacy",
        "schemaVersion": 1,
        "imageUrls": {"full": "https://example.com/bg.png"},
        "layoutConfig": {
            "layoutStyle": "zone",
            "textZones": [
                {"type": "name", "x": 108, "y": 540, "width": 864, "height": 100, "fontSize": 0.05},
                {"type": "title", "x": 108, "y": 660, "width": 864, "height": 60, "fontSize": 0.025},
            ],
        },
    }
    source = tmp_path / "legacy.json"
    source.write_text(json.dumps(legacy), encoding="utf-8")
    target = tmp_path / "migrated.yaml"

    result = runner.invoke(app, ["migrate", str(source), "--out", str(target)])
    assert result.exit_code == 0, result.output
    migrated = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert migrated["schemaVersion"] == 2
    assert migrated["layoutConfig"]["textZones"][0]["fontSize"] == 100
    assert migrated["layoutConfig"]["textZones"][0]["x"] == 200


def test_init_config_writes_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr("posterkit.config.platform.system", lambda: "Linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    result = runner.invoke(app, ["init-config"])
    assert result.exit_code == 0
    target = tmp_path / "posterkit" / "config.yaml"
    assert target.exists()
    assert yaml.safe_load(target.read_text(encoding="utf-8"))["final_size"] == 1080


def test_migrate_reports_malformed_zone(tmp_path: Path) -> None:
    legacy = {
        "id": "legacy",
        "schemaVersion": 1,
        "imageUrls": {"full": "https://example.com/bg.png"},
        "layoutConfig": {"layoutStyle": "zone", "textZones": ["name", {"type": "title"}]},
    }
    source = tmp_path / "legacy.json"
    source.write_text(json.dumps(legacy), encoding="utf-8")

    result = runner.invoke(app, ["migrate", str(source)])
    assert result.exit_code == 1
    assert "zone is not a mapping" in result.output
