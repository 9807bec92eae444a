"""Command-line interface for the blue-green controller.

Provides subcommands for simulating a deployment cycle against the in-memory
substrate, rendering a saved deployment record, and showing package
information.

Entry point
-----------
The ``main()`` function is registered as a console script in
``pyproject.toml``::

    [project.scripts]
    blue-green = "blue_green.cli:main"

Usage examples::

    blue-green simulate --service web --version v2
    blue-green simulate --version v2 --fail-at-poll 2 --audit
    blue-green simulate --version v2 --never-ready --json
    blue-green report --input record.json
    blue-green info

``simulate`` exits with 0 when the deployment finalized, 3 when it rolled
back or was aborted, and 1 when it needs manual intervention.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_EXIT_ROLLED_BACK = 3


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="blue-green",
        description=(
            "Blue-green deployment controller -- simulate deployment cycles "
            "and inspect deployment records."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show package version and exit.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- simulate ------------------------------------------------------------
    sim_parser = subparsers.add_parser(
        "simulate",
        help="Run one deployment cycle against in-memory infrastructure.",
        description=(
            "Adopt a running fleet as the blue pool, deploy a new version as "
            "the green candidate and print the resulting record."
        ),
    )
    sim_parser.add_argument(
        "--service", type=str, default="web", help="Service name. (default: web)"
    )
    sim_parser.add_argument(
        "--from-version",
        type=str,
        default="v1",
        help="Version of the running fleet. (default: v1)",
    )
    sim_parser.add_argument(
        "--version",
        dest="target_version",
        type=str,
        default="v2",
        help="Version to deploy. (default: v2)",
    )
    sim_parser.add_argument(
        "--desired-count",
        type=int,
        default=1,
        help="Tasks per pool. (default: 1)",
    )
    sim_parser.add_argument(
        "--bake-duration",
        type=float,
        default=None,
        help="Bake window in seconds. (default: from config, 120)",
    )
    sim_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON or YAML file with health_check / controller / routing sections.",
    )
    sim_parser.add_argument(
        "--fail-at-poll",
        type=int,
        default=None,
        help=(
            "Candidate endpoints start failing health checks at this bake "
            "poll (the verdict flips once the unhealthy threshold is reached)."
        ),
    )
    sim_parser.add_argument(
        "--never-ready",
        action="store_true",
        default=False,
        help="The candidate never reports readiness.",
    )
    sim_parser.add_argument(
        "--provision-fail",
        action="store_true",
        default=False,
        help="The substrate rejects the candidate outright.",
    )
    sim_parser.add_argument(
        "--abort-after",
        type=float,
        default=None,
        help="Request an operator abort this many seconds after the start.",
    )
    sim_parser.add_argument(
        "--realtime",
        action="store_true",
        default=False,
        help="Use the wall clock instead of fast-forwarding simulated time.",
    )
    sim_parser.add_argument(
        "--audit",
        action="store_true",
        default=False,
        help="Also print the audit trail.",
    )
    sim_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the final record as JSON instead of tables.",
    )
    sim_parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the final record to this JSON file.",
    )

    # -- report --------------------------------------------------------------
    report_parser = subparsers.add_parser(
        "report",
        help="Display a saved deployment record.",
        description="Load a deployment record exported as JSON or YAML and display it.",
    )
    report_parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to the record file (.json, .yaml or .yml).",
    )
    report_parser.add_argument(
        "--format",
        type=str,
        default="table",
        choices=["table", "json", "yaml"],
        help="Display format. (default: table)",
    )

    # -- info ----------------------------------------------------------------
    subparsers.add_parser(
        "info",
        help="Show package version, dependencies and configuration defaults.",
        description="Display version, dependency status and default configuration.",
    )

    return parser


# =========================================================================
# Helpers
# =========================================================================

def _load_config_file(path: Path) -> dict[str, Any]:
    from blue_green.infrastructure.config import (
        load_config_from_json,
        load_config_from_yaml,
    )

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        return load_config_from_yaml(text)
    return load_config_from_json(text)


def _schedule_abort(stack: Any, seconds: float, realtime: bool) -> None:
    """Abort the deployment *seconds* after it starts."""
    from blue_green.domain.events import DeploymentStarted
    from blue_green.domain.exceptions import BlueGreenError

    def on_started(event: Any) -> None:
        def fire() -> None:
            try:
                stack.controller.abort_deployment(event.deployment_id)
            except BlueGreenError as exc:
                logger.warning("Abort not applied: %s", exc)

        if realtime:
            timer = threading.Timer(seconds, fire)
            timer.daemon = True
            timer.start()
        else:
            stack.clock.call_after(seconds, fire)

    stack.event_bus.subscribe(DeploymentStarted, on_started)


def _inject_bake_failure(stack: Any, poll: int) -> None:
    """Make every probe fail from bake poll *poll* onwards."""
    from blue_green.domain.enums import ControllerState
    from blue_green.domain.events import BakePolled, DeploymentStateChanged

    def go_down() -> None:
        stack.probe.set_default(False)

    def on_state(event: Any) -> None:
        if event.new_state is ControllerState.BAKING and poll <= 1:
            go_down()

    def on_poll(event: Any) -> None:
        if event.poll_number == poll - 1:
            go_down()

    stack.event_bus.subscribe(DeploymentStateChanged, on_state)
    stack.event_bus.subscribe(BakePolled, on_poll)


# =========================================================================
# Subcommand handlers
# =========================================================================

def _cmd_simulate(args: argparse.Namespace) -> int:
    """Handle the ``simulate`` subcommand."""
    from blue_green.domain.enums import DeploymentOutcome
    from blue_green.domain.exceptions import UnresolvedDeploymentError
    from blue_green.domain.values import PoolSpec
    from blue_green.infrastructure.clock import SystemClock
    from blue_green.infrastructure.serialization import to_json
    from blue_green.infrastructure.substrate import ProvisionBehavior
    from blue_green.presentation.console import ConsoleDashboard
    from blue_green.testing.fakes import ScriptedProbe, build_in_memory_stack

    sections: dict[str, Any] = {}
    if args.config is not None:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: file not found: {config_path}", file=sys.stderr)
            return 1
        sections = _load_config_file(config_path)

    stack = build_in_memory_stack(
        service=args.service,
        version=args.from_version,
        desired_count=args.desired_count,
        probe=ScriptedProbe(),
        clock=SystemClock() if args.realtime else None,
        health_config=sections.get("health_check"),
        controller_config=sections.get("controller"),
        routing_config=sections.get("routing"),
    )
    if args.never_ready or args.provision_fail:
        stack.substrate.script(
            ProvisionBehavior(fail=args.provision_fail, never_ready=args.never_ready)
        )
    if args.fail_at_poll is not None:
        _inject_bake_failure(stack, args.fail_at_poll)
    if args.abort_after is not None:
        _schedule_abort(stack, args.abort_after, args.realtime)

    spec = PoolSpec(
        service=args.service,
        version=args.target_version,
        desired_count=args.desired_count,
    )
    exit_code = 0
    try:
        record = stack.controller.start_deployment(spec, bake_duration=args.bake_duration)
    except UnresolvedDeploymentError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        record = exc.record
        exit_code = 1
    finally:
        stack.controller.shutdown()

    if record is None:
        return 1
    if exit_code == 0 and record.outcome is not DeploymentOutcome.FINALIZED:
        exit_code = _EXIT_ROLLED_BACK

    if args.output is not None:
        Path(args.output).write_text(to_json(record), encoding="utf-8")

    if args.json:
        print(to_json(record))
        return exit_code

    dashboard = ConsoleDashboard()
    dashboard.print_record(record)
    dashboard.print_routes(stack.routing.routes(), stack.pools.pools())
    if args.audit:
        dashboard.print_audit(stack.audit_trail.query(deployment_id=record.deployment_id))
    return exit_code


def _cmd_report(args: argparse.Namespace) -> int:
    """Handle the ``report`` subcommand."""
    import yaml

    from blue_green.domain.entities import DeploymentRecord
    from blue_green.infrastructure.serialization import deserialize, to_json, to_yaml
    from blue_green.presentation.console import ConsoleDashboard

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        return 1

    try:
        text = input_path.read_text(encoding="utf-8")
        if input_path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        record = deserialize(data, DeploymentRecord)
    except (json.JSONDecodeError, yaml.YAMLError, OSError) as exc:
        print(f"Error reading {input_path}: {exc}", file=sys.stderr)
        return 1
    except (KeyError, ValueError, TypeError) as exc:
        print(f"Error: {input_path} is not a deployment record: {exc}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(to_json(record))
    elif args.format == "yaml":
        print(to_yaml(record), end="")
    else:
        ConsoleDashboard().print_record(record)
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    """Handle the ``info`` subcommand."""
    from blue_green import __version__
    from blue_green.infrastructure.config import (
        ControllerConfig,
        HealthCheckConfig,
        RoutingConfig,
    )

    print(f"blue-green controller v{__version__}")
    print()

    deps = {
        "langgraph": "Deployment state machine",
        "httpx": "HTTP health probes",
        "rich": "Console dashboard",
        "yaml": "YAML configuration and export (PyYAML)",
    }
    print("Dependencies:")
    for pkg, desc in deps.items():
        try:
            mod = __import__(pkg)
            version = getattr(mod, "__version__", "unknown")
            print(f"  [installed] {pkg} {version} -- {desc}")
        except ImportError:
            print(f"  [missing]   {pkg} -- {desc}")
    print()

    print("Default configuration:")
    for section, cfg in (
        ("health_check", HealthCheckConfig()),
        ("controller", ControllerConfig()),
        ("routing", RoutingConfig()),
    ):
        print(f"  {section}:")
        for key, value in cfg.to_dict().items():
            print(f"    {key}: {value}")
    print()

    print("Controller states:")
    print("  idle -> provisioning -> test_validating -> cutting_over -> baking")
    print("       -> finalizing | rolling_back -> idle")
    return 0


# =========================================================================
# Main entry point
# =========================================================================

def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from blue_green import __version__
        print(f"blue-green {__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handlers: dict[str, Any] = {
        "simulate": _cmd_simulate,
        "report": _cmd_report,
        "info": _cmd_info,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = 130
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)
