"""
Command-line interface.

    mindloop stats                     learner statistics
    mindloop values mining             Q-values of a state's actions
    mindloop best mining               greedy action for a state
    mindloop reset --yes               forget everything learned
    mindloop simulate --seconds 600    offline run against a static world
    mindloop serve --port 8000         REST API (needs the api extra)

Every command works on the learning documents in ``--data-dir``.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import AgentConfig, load_config
from .errors import ConfigurationError
from .logging_config import configure_logging
from .orchestrator import Orchestrator, create_agent
from .scheduler import ManualClock
from .types import Observation, RecordingExecutor, StaticObservationSource

logger = logging.getLogger(__name__)


def _build_agent(config: AgentConfig, clock=None) -> Orchestrator:
    agent = create_agent(config, StaticObservationSource(Observation()), RecordingExecutor(), clock=clock)
    agent.register_catalogue()
    return agent


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def cmd_stats(agent: Orchestrator, args) -> int:
    _print_json(agent.learning.get_statistics())
    return 0


def cmd_values(agent: Orchestrator, args) -> int:
    manager = agent.learning
    if args.state not in manager.states:
        print(f"Unknown state: {args.state}", file=sys.stderr)
        return 1
    values = manager.get_state_values(args.state)
    for action, value in sorted(values.items(), key=lambda kv: kv[1], reverse=True):
        print(f"{action:20s} {value:+.4f}")
    return 0


def cmd_best(agent: Orchestrator, args) -> int:
    action = agent.learning.get_best_action(args.state)
    if action is None:
        print(f"Unknown state: {args.state}", file=sys.stderr)
        return 1
    print(action)
    return 0


def cmd_reset(agent: Orchestrator, args) -> int:
    if not args.yes:
        print("Refusing to reset without --yes", file=sys.stderr)
        return 1
    agent.learning.reset_learning()
    print("Learning data reset")
    return 0


def cmd_simulate(agent: Orchestrator, args) -> int:
    agent.start()
    agent.scheduler.advance(args.seconds)
    agent.stop()
    stats = agent.get_statistics()
    print(
        f"Simulated {args.seconds:.0f}s: {stats['decisions']} decisions, "
        f"state {stats['current_state']}, "
        f"success rate {stats['learning']['success_rate']:.2f}"
    )
    return 0


def cmd_serve(agent: Orchestrator, args) -> int:
    from .api import FASTAPI_AVAILABLE, create_app, run_server

    if not FASTAPI_AVAILABLE:
        print("FastAPI not installed. Install with:", file=sys.stderr)
        print("  pip install mindloop[api]", file=sys.stderr)
        return 1
    # The app starts the agent on startup and stops it (saving) on shutdown
    run_server(create_app(orchestrator=agent, drive_agent=True), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="mindloop",
        description="mindloop - behavior learning for game agents",
    )
    ap.add_argument("--config", help="JSON or YAML configuration file")
    ap.add_argument("--data-dir", help="Directory holding the learning documents")
    ap.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="Show learner statistics")

    values = sub.add_parser("values", help="Show Q-values of a state")
    values.add_argument("state")

    best = sub.add_parser("best", help="Show the greedy action of a state")
    best.add_argument("state")

    reset = sub.add_parser("reset", help="Forget everything learned")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")

    simulate = sub.add_parser("simulate", help="Run the agent offline against a static world")
    simulate.add_argument("--seconds", type=float, default=600.0, help="Simulated seconds")
    simulate.add_argument("--seed", type=int, help="Seed for all randomness")

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind to")

    return ap


COMMANDS = {
    "stats": cmd_stats,
    "values": cmd_values,
    "best": cmd_best,
    "reset": cmd_reset,
    "simulate": cmd_simulate,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    if args.data_dir:
        config.data_dir = args.data_dir

    configure_logging("DEBUG" if args.verbose else config.log_level, log_dir=config.log_dir)

    clock = None
    if args.command == "simulate":
        clock = ManualClock()
        if args.seed is not None:
            config.learning.prng_seed = args.seed
            config.approximation.prng_seed = args.seed
            config.orchestrator.prng_seed = args.seed

    agent = _build_agent(config, clock=clock)
    return COMMANDS[args.command](agent, args)


if __name__ == "__main__":
    sys.exit(main())
