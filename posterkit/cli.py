from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

import typer

from posterkit import constants
from posterkit.config import DEFAULT_CONFIG, layout_tuning_from_config, load_config, write_default_config
from posterkit.consistency import check_backend_consistency, check_scale_consistency
from posterkit.errors import PosterError
from posterkit.models import DebugOverrides, RenderRequest, UserContent
from posterkit.naming import build_output_name
from posterkit.render.layout import compute_layout
from posterkit.render.typography import ApproxMeasurer, FontResolver, PillowMeasurer, build_measurer
from posterkit.service import PosterRenderer, RenderResult
from posterkit.template_loader import (
    dump_template_dict,
    list_builtin_templates,
    load_template,
    load_template_file,
    migrate_template_dict,
)

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Poster composition CLI.")
LOGGER = logging.getLogger("posterkit")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(1)


def _load_overrides(path: Path | None) -> DebugOverrides | None:
    if path is None:
        return None
    data = load_template_file(path)
    return DebugOverrides.from_dict(data)


def _save_result(result: RenderResult, out_dir: Path, name_template: str, session: str | None, template_id: str) -> Path:
    name = build_output_name(
        name_template,
        session,
        result.mode,
        result.size,
        template_name=template_id,
        timestamp=datetime.now(),
    )
    target = out_dir / result.mode / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(result.png)
    return target


@app.command()
def render(
    template: str = typer.Argument(..., help="Built-in template id or template file path."),
    name: str = typer.Option("", "--name", help="Name text."),
    title: str = typer.Option("", "--title", help="Title text."),
    photo: str | None = typer.Option(None, "--photo", help="Photo path, URL or data URI."),
    mode: str = typer.Option("both", "--mode", help="preview|final|both"),
    size: int | None = typer.Option(None, "--size", min=1, help="Override the output size for a single mode."),
    out: Path = typer.Option(Path("posters"), "--out", help="Output directory."),
    session: str | None = typer.Option(None, "--session", help="Session id used in output file names."),
    overrides_file: Path | None = typer.Option(None, "--overrides", exists=True, dir_okay=False, help="YAML/JSON debug offsets."),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path."),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Render a poster PNG for one template and one set of user content."""
    _setup_logging(log_level)
    mode = mode.lower()
    if mode not in (*constants.RENDER_MODES, "both"):
        _fail(f"mode must be preview, final or both, got: {mode!r}")
    if size is not None and mode == "both":
        _fail("--size needs --mode preview or --mode final")

    try:
        cfg = load_config(config_path)
        tpl = load_template(template)
        overrides = _load_overrides(overrides_file)
        renderer = PosterRenderer(cfg)
    except (PosterError, ValueError, FileNotFoundError) as exc:
        _fail(str(exc))

    content = UserContent(name=name, title=title, photo=photo)
    try:
        if mode == "both":
            pair = asyncio.run(renderer.render_pair(tpl, content, overrides=overrides))
            results = [pair.preview, pair.final]
        else:
            target = size or int(cfg.get(f"{mode}_size") or constants.DEFAULT_FINAL_SIZE)
            results = [asyncio.run(renderer.render(RenderRequest(tpl, content, target, mode, overrides)))]
    except PosterError as exc:
        _fail(f"Render failed: {exc}")
    finally:
        renderer.close()

    name_template = str(cfg.get("name_template") or DEFAULT_CONFIG["name_template"])
    for result in results:
        path = _save_result(result, out, name_template, session, tpl.id)
        LOGGER.info("OK   %s %dpx -> %s", result.mode, result.size, path)
        for degraded in result.degraded_zones:
            typer.secho(f"  degraded {degraded.zone_type}: {degraded.reason}", fg=typer.colors.YELLOW)
    typer.echo(f"Done. rendered={len(results)}")


@app.command()
def layout(
    template: str = typer.Argument(..., help="Built-in template id or template file path."),
    name: str = typer.Option("", "--name"),
    title: str = typer.Option("", "--title"),
    size: int = typer.Option(constants.DEFAULT_FINAL_SIZE, "--size", min=1),
    measurer: str = typer.Option("pillow", "--measurer", help="pillow|approx"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path."),
) -> None:
    """Print the computed zone layout as JSON."""
    try:
        cfg = load_config(config_path)
        tpl = load_template(template)
        backend = build_measurer(measurer, FontResolver(cfg.get("font_dirs") or []))
        results = compute_layout(
            tpl,
            UserContent(name=name, title=title),
            size,
            backend,
            tuning=layout_tuning_from_config(cfg),
        )
    except (PosterError, ValueError, FileNotFoundError) as exc:
        _fail(str(exc))
    typer.echo(json.dumps([result.to_dict() for result in results], ensure_ascii=False, indent=2))


@app.command()
def check(
    template: str = typer.Argument(..., help="Built-in template id or template file path."),
    name: str = typer.Option("", "--name"),
    title: str = typer.Option("", "--title"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path."),
    exact_backend: bool = typer.Option(True, "--exact/--no-exact", help="Also compare against installed fonts."),
) -> None:
    """Compare preview and final layouts, and the cheap and exact measurers."""
    try:
        cfg = load_config(config_path)
        tpl = load_template(template)
        tuning = layout_tuning_from_config(cfg)
    except (PosterError, ValueError, FileNotFoundError) as exc:
        _fail(str(exc))

    content = UserContent(name=name, title=title)
    preview_size = int(cfg.get("preview_size") or constants.DEFAULT_PREVIEW_SIZE)
    final_size = int(cfg.get("final_size") or constants.DEFAULT_FINAL_SIZE)
    report = check_scale_consistency(tpl, content, [preview_size, final_size], ApproxMeasurer(), tuning=tuning)
    drift = report.get(final_size, [])
    if drift:
        typer.secho(f"Scale drift {preview_size} -> {final_size}:", fg=typer.colors.RED)
        for item in drift:
            typer.secho(f"  {item}", fg=typer.colors.RED)
    else:
        typer.echo(f"Scale {preview_size} -> {final_size}: consistent")

    if exact_backend:
        exact = PillowMeasurer(FontResolver(cfg.get("font_dirs") or []))
        mismatches = check_backend_consistency(tpl, content, final_size, exact, ApproxMeasurer(), tuning=tuning)
        if mismatches:
            typer.secho(f"Measurer mismatch at {final_size}px (approx vs pillow):", fg=typer.colors.YELLOW)
            for item in mismatches:
                typer.secho(f"  {item}", fg=typer.colors.YELLOW)
        else:
            typer.echo(f"Measurers at {final_size}px: consistent")

    if drift:
        raise typer.Exit(1)


@app.command("templates")
def templates_cmd() -> None:
    """List built-in templates."""
    for template_id in list_builtin_templates():
        try:
            tpl = load_template(template_id)
        except PosterError as exc:
            typer.secho(f"{template_id}: {exc}", fg=typer.colors.RED)
            continue
        typer.echo(f"{tpl.id}\t{tpl.category}\t{tpl.layout.layout_style}\t{tpl.name}")


@app.command()
def migrate(
    file: Path = typer.Argument(..., exists=True, resolve_path=True, dir_okay=False),
    out: Path | None = typer.Option(None, "--out", help="Write here instead of stdout."),
    schema_version: int | None = typer.Option(None, "--schema-version", help="Version of records that do not declare one."),
) -> None:
    """Rewrite a template file into the current schema."""
    try:
        data = load_template_file(file)
        migrated = migrate_template_dict(data, schema_version=schema_version)
    except (PosterError, ValueError) as exc:
        _fail(f"Migration failed: {exc}")
    text = dump_template_dict(migrated)
    if out is None:
        typer.echo(text, nl=False)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    typer.echo(f"Migrated: {out}")


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    path = write_default_config(force=force)
    typer.echo(f"Config initialized: {path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
