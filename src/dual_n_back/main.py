import json
import logging
from pathlib import Path

import typer

from dual_n_back.adaptive import propose_next_level
from dual_n_back.config import GameMode, estimate_session_minutes, validate_config
from dual_n_back.constants import (
    DEFAULT_NUM_TRIALS,
    DEFAULT_STIMULUS_DURATION_MS,
    FONT_SIZES,
    SETTINGS_FILE,
)
from dual_n_back.settings import PreferenceStore, load_settings, save_settings
from dual_n_back.simulate import SimulatedPlayer, simulate_practice, simulate_sessions

app = typer.Typer()
settings_app = typer.Typer()
app.add_typer(settings_app, name="settings")


@app.callback()
def main(log_level: str = typer.Option("WARNING", help="Python logging level.")):
    """
    Dual n-back training engine.
    """
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def simulate(
    mode: GameMode | None = typer.Option(None, help="Defaults to the last mode used."),
    n: int | None = typer.Option(None, help="Defaults to the last N used."),
    trials: int | None = None,
    stim_ms: int | None = None,
    iti_ms: int | None = None,
    hit_rate: float = 0.8,
    false_alarm_rate: float = 0.1,
    sessions: int = 1,
    adaptive: bool | None = typer.Option(
        None,
        "--adaptive/--no-adaptive",
        help="Override the persisted adaptive difficulty setting.",
    ),
    seed: int | None = None,
    settings_file: Path = SETTINGS_FILE,
):
    """
    Run one or more sessions with a simulated player and print the results.
    Options left out fall back to the last configuration played.
    """
    store = PreferenceStore(settings_file)
    settings = load_settings(store)
    overrides = {
        "mode": mode,
        "n_level": n,
        "num_trials": trials,
        "stimulus_duration_ms": stim_ms,
        "inter_trial_interval_ms": iti_ms,
    }
    config = settings.last_config.with_changes(
        **{k: v for k, v in overrides.items() if v is not None}
    )
    try:
        validate_config(config)
    except ValueError as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)

    if adaptive is None:
        adaptive = settings.adaptive_difficulty_enabled

    player = SimulatedPlayer(hit_rate=hit_rate, false_alarm_rate=false_alarm_rate, seed=seed)
    results = simulate_sessions(
        config, player, sessions=sessions, adaptive=adaptive, seed=seed
    )
    for session in results:
        typer.echo(json.dumps(session.to_dict()))

    settings.last_config = config
    if results:
        last = results[-1]
        settings.last_config = config.with_changes(
            n_level=propose_next_level(last.n_level, last.accuracy, adaptive)
        )
    save_settings(store, settings)


@app.command()
def practice(
    hit_rate: float = 0.8,
    false_alarm_rate: float = 0.1,
    seed: int | None = None,
):
    """
    Run the 1-back practice round with a simulated player.
    """

    def show(message, outcome):
        typer.echo(f"[{outcome.value}] {message}")

    player = SimulatedPlayer(hit_rate=hit_rate, false_alarm_rate=false_alarm_rate, seed=seed)
    trials = simulate_practice(player, seed=seed, on_feedback=show)
    typer.echo(f"Practice complete! {len(trials)} trials.")


@app.command()
def estimate(
    trials: int = DEFAULT_NUM_TRIALS,
    stim_ms: int = DEFAULT_STIMULUS_DURATION_MS,
):
    """
    Estimate how long a session takes, in minutes.
    """
    typer.echo(f"~{estimate_session_minutes(trials, stim_ms)} min")


@settings_app.command("show")
def settings_show(settings_file: Path = SETTINGS_FILE):
    """Print persisted preferences."""
    settings = load_settings(PreferenceStore(settings_file))
    typer.echo(json.dumps(settings.to_dict(), indent=2))


@settings_app.command("set-adaptive")
def settings_set_adaptive(
    enabled: bool = typer.Argument(..., help="true/false"),
    settings_file: Path = SETTINGS_FILE,
):
    """Turn adaptive difficulty on or off."""
    store = PreferenceStore(settings_file)
    settings = load_settings(store)
    settings.adaptive_difficulty_enabled = enabled
    save_settings(store, settings)
    typer.echo(f"Adaptive difficulty {'enabled' if enabled else 'disabled'}.")


@settings_app.command("set-display")
def settings_set_display(
    high_contrast: bool | None = typer.Option(None, "--high-contrast/--normal-contrast"),
    font_size: str | None = typer.Option(None, help="default, large or xlarge"),
    settings_file: Path = SETTINGS_FILE,
):
    """Store display preferences for the host UI."""
    store = PreferenceStore(settings_file)
    settings = load_settings(store)
    if high_contrast is not None:
        settings.high_contrast = high_contrast
    if font_size is not None:
        if font_size not in FONT_SIZES:
            typer.echo(f"Unknown font size: {font_size}", err=True)
            raise typer.Exit(code=1)
        settings.font_size = font_size
    save_settings(store, settings)
    typer.echo(
        f"High contrast {'on' if settings.high_contrast else 'off'}, "
        f"font size {settings.font_size}."
    )


if __name__ == "__main__":
    app()
