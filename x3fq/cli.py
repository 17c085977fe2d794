# x3fq/cli.py
"""
x3fq command line

Queues Sigma X3F files, converts them with x3f_extract, and (for DNG)
applies flat-field opcodes and the original EXIF data with exiftool.
"""
import dataclasses
import signal
import sys
from pathlib import Path

import click
from PySide6.QtCore import QCoreApplication, QThread, QTimer

from .models.job import ColorProfile, ConversionStatus, OutputFormat
from .models.queue import ConversionQueue, metadata_issues
from .utils.logs import clear_logs, log_file_paths, setup_logging
from .utils.opcodes import OpcodeResolver, opcode_info
from .utils.settings import ConversionSettings, load_settings
from .workers.batch import BatchWorker
from .workers.pipeline import validate_setup


def _settings(ctx) -> ConversionSettings:
    return ctx.obj["settings"]


@click.group()
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False, path_type=Path),
              help="Settings JSON file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, settings_file: Path | None, verbose: bool):
    """x3fq - batch X3F to DNG/JPG/TIFF converter"""
    ctx.ensure_object(dict)
    settings = ConversionSettings.from_dict(load_settings(settings_file))
    debug = verbose or settings.debug_logging_enabled
    setup_logging(settings.log_dir, debug=debug, console=verbose)
    ctx.obj["settings"] = settings


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--output-dir", "-o", type=click.Path(file_okay=False, path_type=Path),
              help="Write output here instead of next to each source file")
@click.option("--format", "fmt", type=click.Choice([f.value for f in OutputFormat]), help="Output format")
@click.option("--no-denoise", is_flag=True, help="Disable x3f_extract denoising")
@click.option("--no-compress", is_flag=True, help="Do not compress DNG/TIFF output")
@click.option("--fast", is_flag=True, help="Use OpenCL acceleration")
@click.option("--color", type=click.Choice([c.value for c in ColorProfile]), help="Output color profile")
@click.option("--all", "reprocess_all", is_flag=True, help="Reprocess files that already have output")
@click.pass_context
def convert(ctx, paths, output_dir, fmt, no_denoise, no_compress, fast, color, reprocess_all):
    """Convert X3F files (or folders containing them)."""
    settings = _settings(ctx)
    overrides = {}
    if output_dir:
        overrides["output_directory"] = str(output_dir)
    if fmt:
        overrides["output_format"] = OutputFormat(fmt)
    if no_denoise:
        overrides["denoise"] = False
    if no_compress:
        overrides["compress"] = False
    if fast:
        overrides["faster_processing"] = True
    if color:
        overrides["color_profile"] = ColorProfile(color)
    if reprocess_all:
        overrides["only_process_new_items"] = False
    settings = dataclasses.replace(settings, **overrides)

    queue = ConversionQueue()
    added = queue.add_paths(paths)
    if not added:
        click.echo("No X3F files found.", err=True)
        sys.exit(2)
    click.echo(f"Queued {len(added)} file(s)")

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    worker = BatchWorker(queue, settings)
    thread = QThread()
    worker.moveToThread(thread)
    worker.line_out.connect(lambda _id, text: click.echo(text))
    worker.batch_finished.connect(lambda summary: click.echo(summary))
    worker.finished.connect(thread.quit)
    thread.finished.connect(app.quit)
    thread.started.connect(worker.run)

    # Ctrl-C stops the batch cooperatively; the timer lets Python see the signal
    signal.signal(signal.SIGINT, lambda *_: worker.stop())
    tick = QTimer()
    tick.timeout.connect(lambda: None)
    tick.start(200)

    thread.start()
    app.exec()
    thread.wait()
    tick.stop()
    signal.signal(signal.SIGINT, signal.default_int_handler)

    for job in queue.sorted_jobs(settings.sort_field, settings.sort_ascending):
        if job.message:
            click.echo(f"  {job.file_name}: {job.display_status} - {job.message}")
        if job.status is ConversionStatus.WARNING:
            for issue in metadata_issues(job):
                click.echo(f"    - {issue}")
    if queue.has_failed:
        sys.exit(1)


@main.command()
@click.pass_context
def check(ctx):
    """Report missing tools or profiles."""
    issues = validate_setup(_settings(ctx))
    for issue in issues:
        click.echo(f"- {issue}")
    if issues:
        sys.exit(1)
    click.echo("Setup OK")


@main.command()
@click.option("--model", help="Only profiles for this model code (e.g. DP2M)")
@click.option("--details", is_flag=True, help="Show model, lens and aperture per profile")
@click.pass_context
def opcodes(ctx, model: str | None, details: bool):
    """List available flat-field profiles."""
    resolver = OpcodeResolver(_settings(ctx).opcodes_dir)
    names = resolver.opcodes_for_model(model) if model else resolver.available_opcodes()
    for name in names:
        if not details:
            click.echo(name)
            continue
        info = opcode_info(name)
        if not info:
            click.echo(f"{name}: not a profile name")
            continue
        lens = f" lens {info['lens']}" if "lens" in info else ""
        click.echo(f"{name}: {info['model']}{lens} f/{info['aperture']}")


@main.command()
@click.option("--clear", is_flag=True, help="Truncate the log files")
@click.pass_context
def logs(ctx, clear: bool):
    """Show (or clear) the conversion, error and debug logs."""
    log_dir = _settings(ctx).log_dir
    if clear:
        clear_logs(log_dir)
        click.echo(f"Cleared logs in {log_dir}")
        return
    for path in log_file_paths(log_dir):
        if path.exists():
            click.echo(f"{path} ({path.stat().st_size} bytes)")


if __name__ == "__main__":
    main()
