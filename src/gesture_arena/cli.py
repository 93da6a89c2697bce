"""GestureArena CLI.

Usage:
    gesture-arena simulate    Run a headless AI-vs-AI match
    gesture-arena classify    Classify hand landmarks from a JSON file
    gesture-arena benchmark   Measure classifier throughput
"""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from gesture_arena.config import ArenaConfig, ConfigError

app = typer.Typer(
    name="gesture-arena",
    help="🥊 Gesture-driven two-fighter match engine.",
    add_completion=False,
)


@app.callback()
def configure(
    log_level: str = typer.Option("warning", help="Log level"),
):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _load_config(path: Optional[str]) -> ArenaConfig:
    if not path:
        return ArenaConfig()
    try:
        return ArenaConfig.from_yaml(path)
    except ConfigError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)


def _describe(event) -> str:
    details = ", ".join(f"{k}={v}" for k, v in event.data.items())
    return f"[{event.timestamp:7.1f}s] {event.kind.value}" + (f" ({details})" if details else "")


@app.command()
def simulate(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to arena YAML config"),
    rounds: Optional[int] = typer.Option(None, help="Override number of rounds"),
    round_seconds: Optional[int] = typer.Option(None, help="Override round duration"),
    seed: Optional[int] = typer.Option(None, help="Random seed"),
    realtime: bool = typer.Option(False, help="Run on the wall clock instead of a virtual one"),
    quiet: bool = typer.Option(False, help="Only print the result"),
):
    """Run a match with both fighters driven by the AI."""
    from gesture_arena.ai import AIOpponentController
    from gesture_arena.clock import ThreadingScheduler, VirtualClock
    from gesture_arena.engine import MatchEngine, MatchPhase
    from gesture_arena.events import EventKind

    config = _load_config(config_path)
    if rounds is not None:
        config.match.total_rounds = rounds
    if round_seconds is not None:
        config.match.round_duration_seconds = round_seconds
    try:
        config.match.validate()
    except ConfigError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    rng = random.Random(seed)
    scheduler = ThreadingScheduler() if realtime else VirtualClock()
    engine = MatchEngine(config.match, scheduler=scheduler, rng=random.Random(rng.random()))
    for index in (0, 1):
        AIOpponentController(
            engine, config.ai, rng=random.Random(rng.random()), fighter_index=index
        ).attach()

    finished = threading.Event()
    engine.on(EventKind.MATCH_END, lambda event: finished.set())
    if not quiet:
        for kind in EventKind:
            engine.on(kind, lambda event: typer.echo(_describe(event)))

    typer.echo(
        f"🥊 {config.match.fighter_names[0]} vs {config.match.fighter_names[1]}: "
        f"{config.match.total_rounds} x {config.match.round_duration_seconds}s"
    )
    engine.start()

    try:
        if realtime:
            while not finished.wait(0.5):
                pass
        else:
            while engine.phase == MatchPhase.RUNNING:
                scheduler.advance(1.0)
    except KeyboardInterrupt:
        typer.echo("\n⏹  Interrupted")
    finally:
        state = engine.get_state()
        engine.dispose()

    first, second = state.fighters
    typer.echo(f"\n🏆 Winner: {state.winner or '-'}")
    for fighter in (first, second):
        typer.echo(
            f"   {fighter.name:15s} health={fighter.health:3d} "
            f"score={fighter.score:4d} combo={fighter.combo_count}"
        )


def _load_hands(path: Path) -> list:
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("hands", [])
    array = np.asarray(data, dtype=np.float32)
    if array.ndim == 2:
        return [array]
    return list(array)


@app.command()
def classify(
    landmarks_file: str = typer.Argument(..., help="JSON file: one hand (21x3), a list of hands, or {hands: [...]}"),
    profile: str = typer.Option("finger", help="Gesture profile: finger or boxing"),
    priority_finger: Optional[str] = typer.Option(None, help="Finger that wins a two-finger tie"),
):
    """Classify hand landmarks without a camera."""
    from gesture_arena.classifier import GestureClassifier
    from gesture_arena.gestures import make_profile
    from gesture_arena.landmarks import FINGER_NAMES, InvalidLandmarksError

    path = Path(landmarks_file)
    if not path.exists():
        typer.echo(f"❌ Landmarks file not found: {landmarks_file}", err=True)
        raise typer.Exit(1)

    options = {"priority_finger": priority_finger} if priority_finger and profile == "finger" else {}
    try:
        classifier = GestureClassifier(profile=make_profile(profile, **options))
        hands = _load_hands(path)
    except (ValueError, json.JSONDecodeError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    for i, hand in enumerate(hands):
        try:
            gesture = classifier.classify(hand)
        except InvalidLandmarksError as e:
            typer.echo(f"   hand {i}: ❌ {e}", err=True)
            continue
        confidence = classifier.confidence(hand, gesture)
        extended = classifier.extension(hand)
        raised = [name for name, up in zip(FINGER_NAMES, extended) if up] or ["none"]
        typer.echo(f"   hand {i}: {gesture} (confidence: {confidence:.2f}, extended: {', '.join(raised)})")


@app.command()
def benchmark(
    iterations: int = typer.Option(1000, min=1, help="Number of iterations"),
    hands: int = typer.Option(1, help="Simulated hands per frame"),
    profile: str = typer.Option("finger", help="Gesture profile"),
):
    """Run performance benchmarks on the classifier."""
    from gesture_arena.classifier import GestureClassifier
    from gesture_arena.gestures import make_profile

    typer.echo(f"⚡ Running benchmark: {iterations} iterations, {hands} hand(s)")

    classifier = GestureClassifier(profile=make_profile(profile), process_interval=0.0)
    rng = np.random.default_rng(42)
    landmarks = [rng.random((21, 3)).astype(np.float32) for _ in range(hands)]

    times = []
    counts: dict[str, int] = {}
    for _ in range(iterations):
        t0 = time.perf_counter()
        results = classifier.process_landmarks(landmarks)
        times.append(time.perf_counter() - t0)
        for r in results:
            counts[r.gesture] = counts.get(r.gesture, 0) + 1

    avg_ms = sum(times) / len(times) * 1000
    p95_ms = sorted(times)[int(len(times) * 0.95)] * 1000
    fps = 1000 / avg_ms if avg_ms > 0 else 0

    typer.echo(f"\n📊 Results:")
    typer.echo(f"   Average latency: {avg_ms:.3f} ms")
    typer.echo(f"   P95 latency:     {p95_ms:.3f} ms")
    typer.echo(f"   Throughput:      {fps:.0f} FPS")
    typer.echo(f"   Gestures:        {counts}")


def main():
    app()


if __name__ == "__main__":
    main()
