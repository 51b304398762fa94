"""
CLI Module

Architectural Intent:
- Command-line interface for ops (`ops deploy`, `ops build`, `ops pool`, `ops node-group`)
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug/--quiet flags for log level and console verbosity

Exit Codes:
- 0 when every target succeeded, 1 on any error or any failed target
"""

import argparse
import asyncio
import logging
import sys
import traceback

from opsfleet.application.dtos.deployment_dtos import (
    BuildRequest,
    DeployOptions,
    DeployRequest,
)
from opsfleet.domain.entities.app_config import parse_env_assignments
from opsfleet.domain.errors import OpsError, PartialFailure
from opsfleet.infrastructure.config import load_settings
from opsfleet.infrastructure.console import Verbosity
from opsfleet.infrastructure.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ops", description="ops: deploy apps to a fleet of nodes"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Only print results and errors"
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; use defaults for every question",
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit diagnostic logs as JSON"
    )
    parser.add_argument("--config", help="Path to CLI settings (JSON)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy an app to its nodes")
    deploy_parser.add_argument(
        "--file", "-f", default="ops.toml", help="Path to ops.toml"
    )
    deploy_parser.add_argument("--service", help="Deploy a single compose service")
    deploy_parser.add_argument("--app", help="Deploy an app group from [[apps]]")
    deploy_parser.add_argument(
        "--restart-only", action="store_true", help="Restart services without syncing"
    )
    deploy_parser.add_argument(
        "--set",
        dest="env_vars",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable for compose (repeatable)",
    )
    deploy_parser.add_argument("--node", type=int, help="Deploy to this node only")
    deploy_parser.add_argument("--region", help="Deploy to nodes in this region only")
    deploy_parser.add_argument(
        "--rolling", action="store_true", help="Deploy to one node at a time"
    )
    deploy_parser.add_argument(
        "--force", action="store_true", help="Remove running containers without asking"
    )

    build_parser_ = subparsers.add_parser("build", help="Build images on a build node")
    build_parser_.add_argument(
        "--file", "-f", default="ops.toml", help="Path to ops.toml"
    )
    build_parser_.add_argument("--ref", help="Git ref to build")
    build_parser_.add_argument("--service", help="Build a single service image")
    build_parser_.add_argument("--tag", help="Image tag (default: latest)")
    build_parser_.add_argument(
        "--no-push", action="store_true", help="Build without pushing"
    )
    build_parser_.add_argument(
        "--jobs", "-j", type=int, help="Parallel image builds per batch"
    )

    pool_parser = subparsers.add_parser("pool", help="Manage an app's node pool")
    pool_sub = pool_parser.add_subparsers(dest="pool_command")
    status_p = pool_sub.add_parser("status", help="Show pool members and health")
    status_p.add_argument("target", help="app.project")
    strategy_p = pool_sub.add_parser("strategy", help="Set the load-balancing strategy")
    strategy_p.add_argument("target", help="app.project")
    strategy_p.add_argument(
        "strategy", help="round-robin | geo | weighted | failover"
    )
    drain_p = pool_sub.add_parser("drain", help="Stop routing traffic to a node")
    drain_p.add_argument("target", help="app.project")
    drain_p.add_argument("--node", type=int, required=True, dest="node_id")
    undrain_p = pool_sub.add_parser("undrain", help="Return a drained node to rotation")
    undrain_p.add_argument("target", help="app.project")
    undrain_p.add_argument("--node", type=int, required=True, dest="node_id")

    group_parser = subparsers.add_parser("node-group", help="Manage node groups")
    group_sub = group_parser.add_subparsers(dest="group_command")
    create_p = group_sub.add_parser("create", help="Create a node group")
    create_p.add_argument("--project", required=True)
    create_p.add_argument("--env", required=True, dest="environment")
    create_p.add_argument("--name")
    create_p.add_argument("--strategy", default="round-robin")
    list_p = group_sub.add_parser("list", help="List node groups")
    list_p.add_argument("--project")
    show_p = group_sub.add_parser("show", help="Show a node group")
    show_p.add_argument("group_id", type=int)
    nodes_p = group_sub.add_parser("nodes", help="List nodes of app.project")
    nodes_p.add_argument("target", help="app.project")

    return parser


async def _deploy(container, args, interactive: bool) -> int:
    options = DeployOptions(
        service=args.service,
        app=args.app,
        restart_only=args.restart_only,
        env_vars=parse_env_assignments(args.env_vars),
        force=args.force,
        interactive=interactive,
    )
    request = DeployRequest(
        config_path=args.file,
        options=options,
        node_id=args.node,
        region=args.region,
        rolling=args.rolling,
    )
    summary = await container.deploy_fleet.execute(request)
    if summary.failed:
        raise PartialFailure(summary)
    return summary.exit_code


async def _build(container, args) -> int:
    request = BuildRequest(
        config_path=args.file,
        git_ref=args.ref,
        service=args.service,
        tag=args.tag,
        no_push=args.no_push,
        jobs=args.jobs,
    )
    result = await container.build_images.execute(request)
    return 1 if result.failed else 0


async def _pool(container, args) -> int:
    pool = container.pool
    if args.pool_command == "status":
        await pool.status(args.target)
    elif args.pool_command == "strategy":
        await pool.set_strategy(args.target, args.strategy)
    elif args.pool_command == "drain":
        await pool.drain(args.target, args.node_id)
    elif args.pool_command == "undrain":
        await pool.undrain(args.target, args.node_id)
    else:
        print("[-] Usage: ops pool {status,strategy,drain,undrain} ...")
        return 1
    return 0


async def _node_group(container, args) -> int:
    groups = container.node_groups
    if args.group_command == "create":
        await groups.create(args.project, args.environment, args.name, args.strategy)
    elif args.group_command == "list":
        await groups.list_groups(args.project)
    elif args.group_command == "show":
        await groups.show(args.group_id)
    elif args.group_command == "nodes":
        await groups.nodes(args.target)
    else:
        print("[-] Usage: ops node-group {create,list,show,nodes} ...")
        return 1
    return 0


async def async_main():
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging based on flags
    if args.debug:
        configure_logging(level=logging.DEBUG, json_format=args.json_logs)
    elif args.verbose:
        configure_logging(level=logging.INFO, json_format=args.json_logs)
    else:
        configure_logging(level=logging.WARNING, json_format=args.json_logs)

    if args.command is None:
        parser.print_help()
        return

    verbose = args.verbose or args.debug
    if args.quiet:
        verbosity = Verbosity.QUIET
    elif verbose:
        verbosity = Verbosity.VERBOSE
    else:
        verbosity = Verbosity.NORMAL
    interactive = not args.non_interactive and sys.stdin.isatty()

    from opsfleet.composition_root import create_container

    try:
        settings = load_settings(args.config)
        container = create_container(
            settings, interactive=interactive, verbosity=verbosity
        )
    except ValueError as e:
        print(f"[-] Invalid settings: {e}")
        sys.exit(1)

    await container.telemetry.initialize()
    try:
        if args.command == "deploy":
            code = await _deploy(container, args, interactive)
        elif args.command == "build":
            code = await _build(container, args)
        elif args.command == "pool":
            code = await _pool(container, args)
        else:
            code = await _node_group(container, args)
    except KeyboardInterrupt:
        print("\n[*] Interrupted.")
        sys.exit(130)
    except (OpsError, ValueError) as e:
        print(f"[-] {e}")
        if args.debug:
            traceback.print_exc()
        sys.exit(1)
    except Exception as e:
        print(f"[-] {args.command} failed: {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)
    finally:
        await container.telemetry.shutdown()

    if code:
        sys.exit(code)


def main():
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
