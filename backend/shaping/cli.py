"""
Headless demo runner.

    python -m shaping --scenario circle --duration 120
    python -m shaping --scenario avoidance --architecture residual-mlp --pretrain 500
    python -m shaping --realtime --duration 30 --json

Without --realtime the session runs on a ManualScheduler, stepping
simulated time as fast as the machine allows; training still happens on
the background trainer thread.
"""

import argparse
import json
import logging
import sys
import time

from .config import ARCHITECTURES, PRESETS, get_config
from .pretrain import pretrain
from .scenarios import SCENARIOS
from .scheduling import ManualScheduler, ThreadScheduler
from .session import ShapingSession

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shaping Lab headless trainer")
    parser.add_argument("--preset", type=str, default="default", choices=sorted(PRESETS),
                        help="Config preset (default: default)")
    parser.add_argument("--scenario", type=str, default="circle", choices=sorted(SCENARIOS),
                        help="Auto-training scenario (default: circle)")
    parser.add_argument("--architecture", type=str, choices=ARCHITECTURES,
                        help="Policy topology (default: from preset)")
    parser.add_argument("--duration", type=float, default=60.0, help="Simulated seconds to run")
    parser.add_argument("--step", type=float, default=0.1, help="Simulated seconds per step (non-realtime)")
    parser.add_argument("--realtime", action="store_true", help="Run on the wall clock with a scheduler thread")
    parser.add_argument("--pretrain", type=int, default=0, help="Object-interest examples to pretrain on")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--json", action="store_true", help="Print the final status as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def run(args) -> dict:
    config = get_config(args.preset)
    if args.architecture:
        config = config.with_updates(network_architecture=args.architecture)

    scheduler = ThreadScheduler() if args.realtime else ManualScheduler()
    session = ShapingSession(config, scheduler=scheduler, seed=args.seed)
    try:
        session.set_scenario(args.scenario)

        if args.pretrain > 0:
            pretrain(session.learner, session.arena, count=args.pretrain, seed=args.seed)

        session.start()
        if args.realtime:
            time.sleep(args.duration)
        else:
            elapsed = 0.0
            while elapsed < args.duration:
                step = min(args.step, args.duration - elapsed)
                session.tick(step)
                elapsed += step
        session.stop()
        session.learner.wait_for_training(timeout=30.0)
        return session.get_status()
    finally:
        session.close()


def print_summary(status: dict):
    learner = status["learner"]
    dispatcher = status["dispatcher"]
    agent = status["agent"]
    print(f"\n{'='*60}")
    print(f"Scenario: {status['scenario']} | Topology: {learner['topology']}")
    print(f"Ticks: {status['loop']['ticks']} | Agent at ({agent['x']}, {agent['y']})")
    events = dispatcher["events"]
    print(f"Events: reward={events['reward']} punishment={events['punishment']} "
          f"intrinsic={events['intrinsic']} rejected={dispatcher['rejected']}")
    print(f"Training: cycles={learner['completed_cycles']} failed={learner['failed_cycles']} "
          f"examples={learner['examples_trained']} last_loss={learner['last_loss']}")
    print(f"{'='*60}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        status = run(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130

    if args.json:
        json.dump(status, sys.stdout, indent=2, default=str)
        print()
    else:
        print_summary(status)
    return 0
