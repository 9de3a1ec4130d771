# vidq/cli.py
import signal
import sys
from pathlib import Path

import click
from PySide6.QtCore import QCoreApplication, QTimer

from .errors import SubmitRejected
from .models.job import Job, JobStatus
from .models.media import format_bytes
from .models.profile import PROFILES, get_profile
from .models.store import JobStore
from .utils.history import HistoryStore
from .utils.log import configure_logging
from .utils.settings import config_dir, job_options, load_settings
from .workers.info_probe import MetadataProbe
from .workers.scheduler import JobScheduler
from .workers.transcoder import ProcessSupervisor


def _history(settings: dict) -> HistoryStore:
    return HistoryStore(config_dir() / "history.json", int(settings.get("history_limit", 100)))


def _print_job(job: Job):
    if job.status is JobStatus.PROCESSING:
        if p := job.progress:
            click.echo(f"\r  {job.name}: {p.percent_text} • {p.fps:.1f} fps • ETA {p.eta_text} • {p.size_text}   ", nl=False)
        else:
            click.echo(f"▶ {job.name}")
    elif job.status is JobStatus.COMPLETED:
        click.echo(f"\n✔ {job.name} → {job.destination} ({format_bytes(job.original_size or 0)} → {format_bytes(job.compressed_size or 0)})")
    elif job.status is JobStatus.FAILED:
        first = (job.error or "").splitlines()[0] if job.error else "unknown error"
        click.echo(f"\n✘ {job.name}: {first}", err=True)
    elif job.status is JobStatus.CANCELLED:
        click.echo(f"\n■ {job.name}: cancelled")


@click.group()
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None,
              help="Override the log level from settings.")
@click.pass_context
def main(ctx: click.Context, log_level: str | None):
    """Queue video files and compress them with ffmpeg, one at a time."""
    settings = load_settings()
    configure_logging(log_level or settings.get("log_level", "info"), config_dir() / "vidq.log")
    ctx.obj = settings


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("--recursive/--no-recursive", default=None, help="Descend into sub-folders.")
@click.option("--profile", "profile_name", type=click.Choice(sorted(PROFILES)), default=None)
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("--suffix", default=None, help="Appended to the output file name.")
@click.option("--remove-audio/--keep-audio", default=None)
@click.option("--delete-source/--keep-source", default=None, help="Delete originals that compressed successfully.")
@click.option("--hwaccel/--no-hwaccel", default=None)
@click.pass_obj
def compress(settings: dict, paths, recursive, profile_name, output_dir, suffix, remove_audio, delete_source, hwaccel):
    """Compress PATHS (files or folders)."""
    overrides = {
        "output_dir": str(output_dir) if output_dir else None,
        "output_suffix": suffix,
        "remove_audio": remove_audio,
        "delete_source": delete_source,
        "hardware_acceleration": hwaccel,
    }
    settings = {**settings, **{k: v for k, v in overrides.items() if v is not None}}
    options = job_options(settings)
    try:
        profile = get_profile(profile_name or settings.get("profile", "default"))
    except KeyError as e:
        raise click.BadParameter(e.args[0], param_hint="--profile") from None
    if recursive is None:
        recursive = bool(settings.get("recursive_scan", False))

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    scheduler = JobScheduler(
        JobStore(),
        ProcessSupervisor(settings["ffmpeg_path"], grace_period=float(settings["grace_period"])),
        probe=MetadataProbe(settings["ffprobe_path"], timeout=float(settings["probe_timeout"])),
        history=_history(settings),
    )

    for p in paths:
        try:
            if p.is_dir():
                scheduler.submit_directory(p, recursive, profile, options)
            else:
                scheduler.submit(p, profile, options)
        except SubmitRejected as e:
            click.echo(f"skip: {e.message}", err=True)

    if not scheduler.jobs():
        raise click.ClickException("Nothing to compress.")
    click.echo(f"{len(scheduler.jobs())} file(s) queued with profile {profile.name}")

    scheduler.job_updated.connect(_print_job)
    scheduler.queue_stopped.connect(app.quit)
    previous = signal.signal(signal.SIGINT, lambda *_: scheduler.cancel_all())
    # Python only runs signal handlers between bytecodes; wake up regularly.
    # The tick also catches a queue that stopped before exec() was entered.
    def _tick():
        if not scheduler.is_running:
            app.quit()

    tick = QTimer()
    tick.timeout.connect(_tick)
    tick.start(200)

    try:
        scheduler.start()
        app.exec()
        scheduler.wait()
    finally:
        tick.stop()
        signal.signal(signal.SIGINT, previous)

    jobs = scheduler.jobs()
    done = sum(1 for j in jobs if j.status is JobStatus.COMPLETED)
    click.echo(f"\n{done}/{len(jobs)} completed")
    if done != len(jobs):
        sys.exit(1)


@main.command()
def profiles():
    """List the built-in compression profiles."""
    for p in PROFILES.values():
        click.echo(f"{p.name:<14} crf={p.crf:<3} preset={p.preset:<9} gop={p.gop:<4} bf={p.bframes} refs={p.refs}  {p.description}")


@main.command()
@click.option("--clear", is_flag=True, help="Forget all recorded compressions.")
@click.pass_obj
def history(settings: dict, clear: bool):
    """Show past compressions."""
    store = _history(settings)
    if clear:
        store.clear()
        click.echo("History cleared.")
        return
    if not store.records:
        click.echo("No history yet.")
        return
    for r in store.records:
        click.echo(
            f"{r.timestamp:%Y-%m-%d %H:%M}  {Path(r.source).name}  "
            f"{format_bytes(r.original_size)} → {format_bytes(r.compressed_size)} ({r.ratio * 100:.1f}%)  [{r.profile}]"
        )
    click.echo(
        f"\n{len(store.records)} file(s), saved {format_bytes(store.total_saved)}, "
        f"average size {store.average_ratio * 100:.1f}% of original"
    )
