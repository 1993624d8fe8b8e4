"""Command line interface for the flood kiosk engine.

Usage examples (from repository root):

  python -m flood_kiosk.cli simulate --rain 100 --ticks 60 --seed 7
  python -m flood_kiosk.cli demo --seed 7
  python -m flood_kiosk.cli serve --port 8008
  python -m flood_kiosk.cli snapshot --kind sky --dir snapshots

`simulate` and `demo` run headless on a virtual clock, so a full demo cycle
completes in well under a second of wall time.
"""
from __future__ import annotations

import argparse
import json
import random
import sys
from typing import List

from flood_kiosk.config import settings
from flood_kiosk.domain.eta import eta_label
from flood_kiosk.domain.simulation import simulate_series
from flood_kiosk.domain.status import DemoPhase
from flood_kiosk.logging_setup import configure_logging
from flood_kiosk.persistence.snapshot_store import FileSnapshotStore, MemorySnapshotStore
from flood_kiosk.scheduling.scheduler import ManualScheduler
from flood_kiosk.services.runtime import KioskRuntime


def _cmd_simulate(args: argparse.Namespace) -> int:
    # Pure computational run; no timers, no transport.
    sim = simulate_series([args.rain] * args.ticks, seed=args.seed,
                          thresholds=settings.thresholds())
    print("tick | rain | level m | flow m/s | Q m3/s | likelihood | status | overflow ETA")
    for point in sim["series"]:
        eta = "-" if point["overflow_eta_s"] is None else f"{point['overflow_eta_s']}s"
        print(f"{point['tick']:4d} | {point['rain']:4d} | {point['level']:7.3f} | "
              f"{point['flow']:8.3f} | {point['discharge_q']:6.1f} | "
              f"{point['likelihood']:9.1f}% | {point['status']:<9} | {eta}")
    print(f"Max likelihood: {sim['max_likelihood']}%")
    return 0


def _cmd_demo(args: argparse.Namespace) -> int:
    scheduler = ManualScheduler()
    runtime = KioskRuntime(scheduler, store=MemorySnapshotStore(),
                           rng=random.Random(args.seed).random)
    try:
        runtime.start()
        display = runtime.open_display(rng=random.Random(args.seed).random)
        control = runtime.control
        control.start_demo()
        seen_phases = [control.demo.phase]
        seen_toasts = set()
        print(f"[{scheduler.now_ms() / 1000:6.2f}s] phase -> {control.demo.phase.value}")
        limit_ms = args.max_seconds * 1000
        while scheduler.now_ms() < limit_ms:
            scheduler.advance(control.tick_ms)
            phase = control.demo.phase
            if phase != seen_phases[-1]:
                seen_phases.append(phase)
                s = control.state
                print(f"[{scheduler.now_ms() / 1000:6.2f}s] phase -> {phase.value} "
                      f"(rain={s.rain}%, likelihood={s.likelihood:.1f}%, status={s.status.value})")
            for toast in control.alerts.toasts:
                if toast.id not in seen_toasts:
                    seen_toasts.add(toast.id)
                    print(f"[{scheduler.now_ms() / 1000:6.2f}s] ALERT {toast.title}: {toast.message}")
            if phase == DemoPhase.IDLE and len(seen_phases) > 1:
                break
        s = control.state
        print(f"Final: rain={s.rain}% likelihood={s.likelihood:.1f}% status={s.status.value} "
              f"eta='{eta_label(s.eta)}'")
        print(f"Display sees: {display.sky['flood_likelihood_pct']}% {display.sky['status']} "
              f"video={display.video_state}")
        return 0 if seen_phases[-1] == DemoPhase.IDLE else 1
    finally:
        runtime.shutdown()


def _cmd_serve(args: argparse.Namespace) -> int:
    from flood_kiosk.main import serve
    serve(host=args.host, port=args.port, simulation=not args.no_simulation)
    return 0


def _cmd_snapshot(args: argparse.Namespace) -> int:
    store = FileSnapshotStore(args.dir)
    record = store.get(args.kind)
    if record is None:
        print(f"No snapshot stored for kind '{args.kind}' in {args.dir}")
        return 1
    print(json.dumps({"kind": args.kind, **record.model_dump(mode="json")}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flood-kiosk",
        description="Flood kiosk simulation engine CLI",
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL,
                        help="Logging level (default from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_sim = sub.add_parser(
        "simulate", help="Hold a rain level and print the per-tick model output")
    p_sim.add_argument("--rain", type=int, required=True,
                       help="Rain intensity 0..100 held for every tick")
    p_sim.add_argument("--ticks", type=int, default=40,
                       help="Number of ticks to run")
    p_sim.add_argument("--seed", type=int, default=None,
                       help="Seed for sensor jitter")
    p_sim.set_defaults(func=_cmd_simulate)

    p_demo = sub.add_parser(
        "demo", help="Run one scripted demo cycle headless and print transitions")
    p_demo.add_argument("--seed", type=int, default=None)
    p_demo.add_argument("--max-seconds", type=float, default=180.0,
                        help="Virtual seconds before giving up")
    p_demo.set_defaults(func=_cmd_demo)

    p_serve = sub.add_parser("serve", help="Run the HTTP control service")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8008)
    p_serve.add_argument("--no-simulation", action="store_true",
                         help="Serve the API without starting the tick loop")
    p_serve.set_defaults(func=_cmd_serve)

    p_snap = sub.add_parser(
        "snapshot", help="Print the last cached snapshot from a file store")
    p_snap.add_argument("--kind", required=True, help="river, sky or control")
    p_snap.add_argument("--dir", default=settings.SNAPSHOT_DIR,
                        help="Snapshot directory")
    p_snap.set_defaults(func=_cmd_snapshot)

    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
