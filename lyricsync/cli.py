from __future__ import annotations

import json
import secrets
import time
from pathlib import Path

import typer

from lyricsync.auth.credentials import CredentialManager
from lyricsync.auth.oauth import SpotifyOAuth
from lyricsync.cache.files import LyricCacheStore
from lyricsync.config import AppConfig, load_config, save_config_value
from lyricsync.engine import LyricSnapshot, SyncEngine, read_shared_snapshot
from lyricsync.errors import CredentialInvalid, LyricSyncError, PreconditionFailed
from lyricsync.i18n import set_lang, t
from lyricsync.logging_setup import setup_logging
from lyricsync.lrc.autosync import generate_timing
from lyricsync.lrc.export import export_json, export_srt, serialize_lrc
from lyricsync.lrc.model import PlainLyrics, SyncedLyrics
from lyricsync.lrc.parse import parse_lrc_with_stats
from lyricsync.render.ansi import AnsiRenderer
from lyricsync.shared import SharedStore
from lyricsync.sources.service import LyricsService, ResolutionStatus

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _config(debug: bool = False) -> AppConfig:
    cfg = load_config()
    setup_logging(debug)
    set_lang(cfg.lang)
    return cfg


def _credentials(cfg: AppConfig) -> CredentialManager:
    try:
        return CredentialManager.from_config(cfg, SharedStore(cfg.shared_store_path))
    except PreconditionFailed:
        typer.echo(t("missing_client"), err=True)
        raise typer.Exit(code=2)


def _service(cfg: AppConfig) -> LyricsService:
    cache = LyricCacheStore(cfg.cache_dir, ttl_days=cfg.cache_ttl_days)
    return LyricsService.from_config(cfg, cache)


def _fmt_duration(seconds: float | None) -> str:
    if not seconds:
        return "?"
    s = int(seconds)
    return f"{s // 60}:{s % 60:02d}"


@app.command()
def watch(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    background: bool = typer.Option(False, "--background", help="Use the slower background poll interval"),
    no_alt_screen: bool = typer.Option(False, "--no-alt-screen", help="Do not use alternate screen buffer"),
    context_lines: int | None = typer.Option(None, "--context", help="Lines above/below current line"),
):
    """
    Follow the Spotify player and show synced lyrics in the terminal.
    """
    cfg = _config(debug)
    try:
        engine = SyncEngine.from_config(cfg)
    except PreconditionFailed:
        typer.echo(t("missing_client"), err=True)
        raise typer.Exit(code=2)
    if not engine.credentials.logged_in:
        typer.echo(t("not_logged_in"), err=True)
        raise typer.Exit(code=1)

    context = cfg.context_lines if context_lines is None else context_lines
    renderer = AnsiRenderer(use_alt_screen=cfg.use_alt_screen and not no_alt_screen)

    def _draw(snap: LyricSnapshot) -> None:
        doc = engine.document
        title = f"{snap.artist} - {snap.song_title}" if snap.artist else snap.song_title
        if isinstance(doc, SyncedLyrics):
            lines = [ln.text for ln in doc.lines]
            renderer.render(title, lines, engine.current_index, context, engine.status)
        elif isinstance(doc, PlainLyrics):
            renderer.render(title, doc.lines, -1, context, engine.status)
        else:
            renderer.render(title, [], -1, context, engine.status)

    engine.subscribe(_draw)
    engine.set_foreground(not background)
    renderer.enter()
    try:
        engine.start()
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        engine.stop()
        renderer.exit()


@app.command()
def login():
    """Authorize access to the Spotify player status."""
    cfg = _config()
    creds = _credentials(cfg)
    typer.echo(t("login_open_url"))
    typer.echo(creds.authorize_url(secrets.token_urlsafe(16)))
    answer = typer.prompt(t("login_paste"))
    try:
        creds.login(SpotifyOAuth.code_from_redirect(answer))
    except LyricSyncError as e:
        typer.echo(t("login_failed", reason=str(e)), err=True)
        raise typer.Exit(code=1)
    typer.echo(t("login_ok"))


@app.command()
def logout():
    """Forget the stored credential."""
    cfg = _config()
    _credentials(cfg).logout()
    typer.echo(t("logout_ok"))


@app.command()
def status(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the last published lyric snapshot and the login state."""
    cfg = _config()
    reading = read_shared_snapshot(SharedStore(cfg.shared_store_path), cfg.stale_after_s)
    try:
        credential = CredentialManager.from_config(cfg).state.value
    except PreconditionFailed:
        credential = "unconfigured"

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "credential": credential,
                    "stale": reading.stale,
                    "age_s": reading.age_s,
                    "snapshot": None
                    if reading.snapshot is None
                    else {
                        "current_lyric": reading.snapshot.current_lyric,
                        "song_title": reading.snapshot.song_title,
                        "artist": reading.snapshot.artist,
                        "timestamp": reading.snapshot.timestamp,
                    },
                },
                indent=2,
                ensure_ascii=False,
            )
        )
        return

    typer.echo(f"credential={credential}")
    snap = reading.snapshot
    if snap is None:
        typer.echo(t("snapshot_none"))
        return
    freshness = t("snapshot_stale") if reading.stale else t("snapshot_fresh")
    typer.echo(f"{snap.artist} - {snap.song_title} [{freshness}, {reading.age_s:.0f}s]")
    typer.echo(snap.current_lyric)


@app.command()
def resolve(
    artist: str,
    title: str,
    album: str = typer.Option("", "--album", help="Album name"),
    duration: float | None = typer.Option(None, "--duration", help="Track duration in seconds"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Resolve lyrics for a track through the cache and the online sources."""
    cfg = _config(debug)
    svc = _service(cfg)
    res = svc.resolve(artist, title, album=album, duration=duration)
    typer.echo(f"status={res.status.value} source={res.source or '-'}", err=True)

    if res.status is ResolutionStatus.SYNCED and res.document is not None:
        typer.echo(serialize_lrc(res.document), nl=False)
    elif res.status is ResolutionStatus.PLAIN and res.plain_text and duration:
        try:
            doc = generate_timing(res.plain_text, duration, cfg.autosync_lead_in_s)
        except PreconditionFailed as e:
            typer.echo(f"{t('status_unsynced')}: {e}", err=True)
            typer.echo(res.plain_text)
            return
        lrc = serialize_lrc(doc)
        svc.cache.put(artist, title, lrc)
        typer.echo(t("status_autosynced"), err=True)
        typer.echo(lrc, nl=False)
    elif res.status is ResolutionStatus.AMBIGUOUS:
        typer.echo(t("status_ambiguous"), err=True)
        for i, c in enumerate(res.candidates, 1):
            typer.echo(f"{i}. {c.display} ({_fmt_duration(c.duration)})  ID: {c.id}")
    elif res.plain_text:
        typer.echo(res.plain_text)
    else:
        typer.echo(t("status_not_found"), err=True)
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum results to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Search lrclib by free text or "Artist - Title".
    """
    cfg = _config()
    artist, sep, title = query.partition(" - ")
    q = f"{artist.strip()} {title.strip()}" if sep else query
    results = _service(cfg).search(q)[:limit]

    if not results:
        typer.echo(t("no_results"))
        return

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": r.id,
                        "track_name": r.name,
                        "artist_name": r.artist_name,
                        "album_name": r.album_name,
                        "duration": r.duration,
                        "instrumental": r.instrumental,
                    }
                    for r in results
                ],
                indent=2,
                ensure_ascii=False,
            )
        )
        return

    for i, r in enumerate(results, 1):
        inst_str = " [instrumental]" if r.instrumental else ""
        typer.echo(f"{i}. {r.display} ({_fmt_duration(r.duration)}){inst_str}")
        if r.album_name:
            typer.echo(f"   Album: {r.album_name}")
        typer.echo(f"   ID: {r.id}")


@app.command()
def parse(lrc_path: Path):
    """Parse LRC and print stats."""
    text = lrc_path.read_text(encoding="utf-8")
    doc, stats = parse_lrc_with_stats(text)
    typer.echo(f"lines_total={stats.lines_total}")
    typer.echo(f"lines_with_timestamps={stats.lines_with_timestamps}")
    typer.echo(f"lines_ignored={stats.lines_ignored}")
    typer.echo(f"events_total={stats.events_total}")
    typer.echo(f"tags={doc.tags or {}}")


@app.command()
def export(
    lrc_path: Path,
    fmt: str = typer.Option("srt", "--format", case_sensitive=False, help="lrc|srt|json"),
    out: Path | None = typer.Option(None, "--out", help="Output file (default: stdout)"),
):
    """Export LRC to SRT/JSON/LRC (normalized)."""
    text = lrc_path.read_text(encoding="utf-8")
    doc, _stats = parse_lrc_with_stats(text)
    fmt_l = fmt.lower()
    if fmt_l == "json":
        data = export_json(doc)
    elif fmt_l == "lrc":
        data = serialize_lrc(doc, include_tags=True)
    elif fmt_l == "srt":
        data = export_srt(doc)
    else:
        raise typer.BadParameter("format must be one of: lrc, srt, json")

    if out:
        out.write_text(data, encoding="utf-8")
    else:
        typer.echo(data, nl=False)


@app.command()
def autosync(
    text_path: Path,
    duration: float = typer.Option(..., "--duration", help="Track duration in seconds"),
    lead_in: float | None = typer.Option(None, "--lead-in", help="Start of the first line in seconds"),
    out: Path | None = typer.Option(None, "--out", help="Output file (default: stdout)"),
):
    """Estimate LRC timing for plain lyrics from word counts."""
    cfg = load_config()
    text = text_path.read_text(encoding="utf-8")
    try:
        doc = generate_timing(text, duration, cfg.autosync_lead_in_s if lead_in is None else lead_in)
    except PreconditionFailed as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    data = serialize_lrc(doc)
    if out:
        out.write_text(data, encoding="utf-8")
    else:
        typer.echo(data, nl=False)


@app.command()
def cache(
    clear: bool = typer.Option(False, "--clear", help="Remove every cached document"),
    evict: bool = typer.Option(False, "--evict", help="Remove entries not used for the TTL"),
    list_entries: bool = typer.Option(False, "--list", help="List cached entries"),
):
    """Manage the lyrics cache."""
    cfg = load_config()
    store = LyricCacheStore(cfg.cache_dir, ttl_days=cfg.cache_ttl_days)
    set_lang(cfg.lang)

    if clear:
        store.clear()
        typer.echo(t("cache_cleared", path=str(cfg.cache_dir)))
    elif evict:
        typer.echo(t("cache_evicted", count=store.evict_expired()))
    elif list_entries:
        for path in store.records():
            stamp = time.strftime("%Y-%m-%d", time.localtime(path.stat().st_mtime))
            typer.echo(f"{stamp}  {path.stem}")
    else:
        typer.echo("Use --clear, --evict or --list")


@app.command("config")
def config_cmd(
    lang: str | None = typer.Option(None, "--lang", help="Interface language: en|ru"),
    client_id: str | None = typer.Option(None, "--client-id", help="Spotify application client id"),
    client_secret: str | None = typer.Option(None, "--client-secret", help="Spotify application client secret"),
):
    """Show or change persistent settings."""
    if lang is not None and lang.upper() not in ("EN", "RU"):
        raise typer.BadParameter("lang must be one of: en, ru")
    changes = {"lang": lang, "client_id": client_id, "client_secret": client_secret}
    path = None
    for key, value in changes.items():
        if value is not None:
            path = save_config_value(key, value)
    if path is not None:
        typer.echo(f"Saved {path}")
        return

    cfg = load_config()
    typer.echo(f"lang={cfg.lang}")
    typer.echo(f"client_id={'set' if cfg.client_id else 'unset'}")
    typer.echo(f"client_secret={'set' if cfg.client_secret else 'unset'}")
    typer.echo(f"sources={','.join(cfg.sources)}")
    typer.echo(f"cache_dir={cfg.cache_dir}")
    typer.echo(f"token_path={cfg.token_path}")


def main() -> None:
    try:
        app()
    except CredentialInvalid:
        typer.echo(t("status_reconnect"), err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
