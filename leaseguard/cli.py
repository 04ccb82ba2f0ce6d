"""
Leaseguard Command Line Interface

Inspect and manage orchestration state in a local store.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from leaseguard.bootstrap import build_engine
from leaseguard.core.config import LeaseguardConfig
from leaseguard.logging import setup_logging
from leaseguard.orchestration.engine import WorkflowEngine
from leaseguard.orchestration.exceptions import ExecutionNotFoundError, OrchestrationError
from leaseguard.orchestration.types import ExecutionStatus


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="leaseguard",
        description="Leaseguard - land-lease compliance orchestration",
    )
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument("--db", type=Path, help="SQLite database path")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Workflow commands
    workflows_parser = subparsers.add_parser("workflows", help="Workflow definitions")
    workflows_sub = workflows_parser.add_subparsers(dest="workflows_command")
    workflows_sub.add_parser("seed", help="Install the built-in workflows")
    workflows_sub.add_parser("list", help="List workflows")

    # Execution commands
    executions_parser = subparsers.add_parser("executions", help="Workflow executions")
    executions_sub = executions_parser.add_subparsers(dest="executions_command")
    executions_list = executions_sub.add_parser("list", help="List executions, newest first")
    executions_list.add_argument("--workflow", help="Filter by workflow ID")
    executions_list.add_argument(
        "--status",
        choices=[s.value for s in ExecutionStatus],
        help="Filter by status",
    )
    executions_list.add_argument("--limit", type=int, default=None)
    executions_show = executions_sub.add_parser("show", help="Show one execution")
    executions_show.add_argument("execution_id", help="Execution ID")

    # Approval commands
    approvals_parser = subparsers.add_parser("approvals", help="Human approvals")
    approvals_sub = approvals_parser.add_subparsers(dest="approvals_command")
    approvals_sub.add_parser("pending", help="List pending approvals")
    approvals_respond = approvals_sub.add_parser("respond", help="Approve or reject")
    approvals_respond.add_argument("approval_id", help="Approval ID")
    approvals_respond.add_argument("decision", choices=["approve", "reject"])
    approvals_respond.add_argument("--by", required=True, help="Who is responding")
    approvals_respond.add_argument("--reason", help="Reason for the decision")
    approvals_respond.add_argument("--modifications", type=json.loads, default=None)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    config = load_config(args.config, args.db)
    setup_logging(config.monitoring.log_level.value, config.monitoring.log_format)

    if args.command == "workflows":
        if args.workflows_command == "seed":
            return asyncio.run(_run(config, cmd_workflows_seed))
        if args.workflows_command == "list":
            return asyncio.run(_run(config, cmd_workflows_list))
        workflows_parser.print_help()

    elif args.command == "executions":
        if args.executions_command == "list":
            return asyncio.run(_run(
                config, cmd_executions_list, args.workflow, args.status, args.limit
            ))
        if args.executions_command == "show":
            return asyncio.run(_run(config, cmd_executions_show, args.execution_id))
        executions_parser.print_help()

    elif args.command == "approvals":
        if args.approvals_command == "pending":
            return asyncio.run(_run(config, cmd_approvals_pending))
        if args.approvals_command == "respond":
            return asyncio.run(_run(
                config,
                cmd_approvals_respond,
                args.approval_id,
                args.decision,
                args.by,
                args.reason,
                args.modifications,
            ))
        approvals_parser.print_help()

    return 1


def load_config(config_path: Optional[Path], db_path: Optional[Path]) -> LeaseguardConfig:
    """Load configuration; the CLI always works against SQLite."""
    config = LeaseguardConfig.from_file(config_path) if config_path else LeaseguardConfig()
    config.store.backend = "sqlite"
    if db_path is not None:
        config.store.path = db_path
    return config


async def _run(config: LeaseguardConfig, command, *args: Any) -> int:
    engine = build_engine(config)
    await engine.initialize()
    try:
        await command(engine, *args)
    except OrchestrationError as e:
        _print(e.to_dict())
        return 2
    finally:
        await engine.shutdown()
    return 0


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


async def cmd_workflows_seed(engine: WorkflowEngine) -> None:
    """Install the built-in workflows."""
    created = await engine.create_default_workflows()
    _print([{"id": w.id, "name": w.name} for w in created])


async def cmd_workflows_list(engine: WorkflowEngine) -> None:
    """List workflows."""
    workflows = await engine.list_workflows()
    for workflow in workflows:
        schedule = workflow.trigger.schedule or workflow.trigger.type.value
        print(f"- {workflow.id}  {workflow.name}  [{workflow.status.value}, {schedule}]")


async def cmd_executions_list(
    engine: WorkflowEngine,
    workflow_id: Optional[str],
    status: Optional[str],
    limit: Optional[int],
) -> None:
    """List executions."""
    executions = await engine.get_workflow_executions(workflow_id, status, limit)
    rows: List[Dict[str, Any]] = [
        {
            "id": e.id,
            "workflow_id": e.workflow_id,
            "status": e.status.value,
            "started_at": e.started_at,
            "current_step": e.current_step,
            "error": e.error,
        }
        for e in executions
    ]
    _print(rows)


async def cmd_executions_show(engine: WorkflowEngine, execution_id: str) -> None:
    """Show an execution with its step runs."""
    execution = await engine.get_execution(execution_id)
    if execution is None:
        raise ExecutionNotFoundError(execution_id)
    _print(execution.to_dict())


async def cmd_approvals_pending(engine: WorkflowEngine) -> None:
    """List pending approvals."""
    approvals = await engine.get_pending_approvals()
    _print([
        {
            "id": a.id,
            "execution_id": a.execution_id,
            "step_id": a.step_id,
            "description": a.description,
            "timeout_at": a.timeout_at,
        }
        for a in approvals
    ])


async def cmd_approvals_respond(
    engine: WorkflowEngine,
    approval_id: str,
    decision: str,
    responded_by: str,
    reason: Optional[str],
    modifications: Optional[Dict[str, Any]],
) -> None:
    """Approve or reject an approval."""
    approval = await engine.approve_human_approval(
        approval_id,
        decision,
        responded_by,
        reason=reason,
        modifications=modifications,
    )
    _print({"id": approval.id, "status": approval.status.value})


if __name__ == "__main__":
    raise SystemExit(main())
