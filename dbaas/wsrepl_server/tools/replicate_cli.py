"""
Replication CLI tool.

This tool drives the replication service from the command line:
- replicate: Replicate missing revisions from source to target
- log: Show the replication log of a source/target pair
- workspace create / workspace list: Manage workspaces

Usage:
    wsrepl workspace create stage --label "Stage"
    wsrepl replicate workspace:live workspace:stage
    wsrepl log workspace:live workspace:stage

Invariants:
    - Output is JSON on stdout (sorted keys)
    - Exit code 0 on success, 1 on replication, storage or configuration
      errors, 2 on usage errors

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Any

from ..config import ServiceConfig
from ..errors import ReplicationError
from ..main import ReplicationService, setup_logging

logger = logging.getLogger(__name__)


class ReplicateCLI:
    """Command implementations over a started ReplicationService."""

    def __init__(self, service: ReplicationService) -> None:
        self.service = service

    async def replicate(self, source: str, target: str) -> dict[str, Any]:
        log = await self.service.replicate(source, target)
        return log.to_dict()

    async def log(self, source: str, target: str) -> dict[str, Any]:
        log = await self.service.get_log_for(source, target)
        return log.to_dict()

    async def create_workspace(self, workspace_id: str, label: str | None) -> dict[str, Any]:
        workspace = await self.service.create_workspace(workspace_id, label=label)
        return workspace.to_dict()

    async def list_workspaces(self) -> list[dict[str, Any]]:
        return [ws.to_dict() for ws in await self.service.list_workspaces()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wsrepl", description="Workspace replication tool"
    )
    parser.add_argument("--data-dir", help="Directory of the site database (overrides WSREPL_DATA_DIR)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    replicate_parser = subparsers.add_parser("replicate", help="Replicate source to target")
    replicate_parser.add_argument("source", help="Source upstream id, e.g. workspace:live")
    replicate_parser.add_argument("target", help="Target upstream id, e.g. workspace:stage")

    log_parser = subparsers.add_parser("log", help="Show the replication log of a pair")
    log_parser.add_argument("source", help="Source upstream id")
    log_parser.add_argument("target", help="Target upstream id")

    workspace_parser = subparsers.add_parser("workspace", help="Manage workspaces")
    workspace_sub = workspace_parser.add_subparsers(dest="workspace_command", required=True)
    create_parser = workspace_sub.add_parser("create", help="Create a workspace")
    create_parser.add_argument("workspace_id", help="Workspace id")
    create_parser.add_argument("--label", help="Human-readable name")
    workspace_sub.add_parser("list", help="List workspaces")

    return parser


async def _run(args: argparse.Namespace, config: ServiceConfig) -> Any:
    service = ReplicationService(config)
    await service.start()
    cli = ReplicateCLI(service)

    if args.command == "replicate":
        return await cli.replicate(args.source, args.target)
    if args.command == "log":
        return await cli.log(args.source, args.target)
    if args.workspace_command == "create":
        return await cli.create_workspace(args.workspace_id, args.label)
    return await cli.list_workspaces()


def _print_error(message: str, code: str, details: dict[str, Any]) -> None:
    print(
        json.dumps({"error": message, "error_code": code, "details": details}, sort_keys=True),
        file=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Process exit code
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        _print_error(str(e), "INVALID_CONFIG", {})
        return 1
    if args.data_dir:
        config = replace(config, storage=replace(config.storage, data_dir=args.data_dir))
    setup_logging(config)

    try:
        result = asyncio.run(_run(args, config))
    except ReplicationError as e:
        _print_error(e.message, e.code, e.details)
        return 1

    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
