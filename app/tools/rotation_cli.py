"""Operator CLI for the assignment engine.

Usage:
    python -m app.tools.rotation_cli allocate --agent 7 --ref deal-123 --capability enterprise:1
    python -m app.tools.rotation_cli manual --agent 7 --consultant 3 --ref deal-123 --reason "VIP"
    python -m app.tools.rotation_cli reassign 42 --reason "timezone mismatch"
    python -m app.tools.rotation_cli history 42
    python -m app.tools.rotation_cli release 42 --status completed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from app.adapters.persistence.database import session_scope
from app.application.use_cases.allocate_consultant import AllocationResult
from app.application.use_cases.results import AllocationFailure
from app.container import build_services
from app.domain.entities.reassignment import ReassignmentRecord
from app.domain.value_objects.capability import CapabilityRequirement
from app.domain.value_objects.enums import AssignmentStatus, ReassignmentSource

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)


def parse_capability(raw: str) -> CapabilityRequirement:
    """``enterprise`` or ``enterprise:2`` → CapabilityRequirement."""
    name, _, priority = raw.partition(":")
    if not priority:
        return CapabilityRequirement(id=name.strip())
    try:
        return CapabilityRequirement(id=name.strip(), priority=int(priority))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid capability priority in '{raw}'") from None


def _print_failure(failure: AllocationFailure) -> int:
    print(f"FAILED [{failure.kind.value}] {failure.user_message}")
    print(f"  detail: {failure.detail}")
    if failure.retryable:
        print("  (retryable: run the command again)")
    if failure.record is not None:
        print(f"  logged as reassignment attempt #{failure.record.sequence_number}")
    return 1


def _print_allocation(result: AllocationResult) -> int:
    a = result.assignment
    print(f"Assignment {a.id}: agent {a.agent_id} → consultant {result.consultant.name} (#{a.consultant_id})")
    print(f"  method:   {a.method.value}")
    if result.fairness_score is not None:
        print(f"  fairness: {result.fairness_score:.2f}")
    print(f"  match:    {result.match_score:.2f} (fallback={result.fallback_used})")
    if result.emergency_fallback_used:
        print("  emergency fallback relaxed the cool-down / availability rules")
    for alt in result.alternatives:
        print(f"  alternative: consultant {alt.consultant_id} (score {alt.fairness_score:.2f})")
    return 0


def _print_record(record: ReassignmentRecord) -> None:
    status = "ok" if record.success else f"failed: {record.error_detail}"
    target = record.to_consultant_id if record.to_consultant_id is not None else "-"
    print(
        f"  #{record.sequence_number} {record.timestamp:%Y-%m-%d %H:%M} "
        f"{record.from_consultant_id} → {target} [{record.source.value}] {status}"
    )


async def _run(args: argparse.Namespace) -> int:
    async with session_scope() as session:
        services = build_services(session)

        if args.command == "allocate":
            result = await services.allocate.execute(
                args.agent, args.ref, args.ref_name, args.capability or []
            )
            if isinstance(result, AllocationFailure):
                return _print_failure(result)
            return _print_allocation(result)

        if args.command == "manual":
            result = await services.allocate.execute_manual(
                args.agent, args.consultant, args.ref, args.reason,
                external_reference_name=args.ref_name,
                capability_requirements=args.capability or [],
            )
            if isinstance(result, AllocationFailure):
                return _print_failure(result)
            return _print_allocation(result)

        if args.command == "reassign":
            result = await services.reassign.execute(
                args.assignment_id, args.reason, ReassignmentSource(args.source)
            )
            if isinstance(result, AllocationFailure):
                return _print_failure(result)
            print(f"Assignment {result.assignment_id} reassigned:")
            _print_record(result)
            return 0

        if args.command == "history":
            result = await services.history.execute(args.assignment_id)
            if isinstance(result, AllocationFailure):
                return _print_failure(result)
            print(f"Assignment {args.assignment_id}: {len(result)} reassignment attempt(s)")
            for record in result:
                _print_record(record)
            return 0

        if args.command == "release":
            result = await services.release.execute(
                args.assignment_id, AssignmentStatus(args.status)
            )
            if isinstance(result, AllocationFailure):
                return _print_failure(result)
            print(f"Assignment {result.id} is now {result.status.value}")
            return 0

    logger.error("Unknown command: %s", args.command)
    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Consultant rotation engine")
    sub = parser.add_subparsers(dest="command", required=True)

    def _request_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--agent", type=int, required=True, help="Requesting SDR id")
        p.add_argument("--ref", required=True, help="External reference id (deal, lead)")
        p.add_argument("--ref-name", default=None, help="External reference display name")
        p.add_argument(
            "--capability", type=parse_capability, action="append",
            help="Required capability as id[:priority], repeatable",
        )

    allocate = sub.add_parser("allocate", help="Allocate the fairest eligible consultant")
    _request_args(allocate)

    manual = sub.add_parser("manual", help="Bind a named consultant (manual override)")
    _request_args(manual)
    manual.add_argument("--consultant", type=int, required=True)
    manual.add_argument("--reason", required=True)

    reassign = sub.add_parser("reassign", help="Move an assignment to a different consultant")
    reassign.add_argument("assignment_id", type=int)
    reassign.add_argument("--reason", default=None)
    reassign.add_argument(
        "--source", default=ReassignmentSource.AGENT_REQUEST.value,
        choices=[s.value for s in ReassignmentSource],
    )

    history = sub.add_parser("history", help="Show the reassignment history")
    history.add_argument("assignment_id", type=int)

    release = sub.add_parser("release", help="Complete or cancel an assignment")
    release.add_argument("assignment_id", type=int)
    release.add_argument(
        "--status", default=AssignmentStatus.COMPLETED.value,
        choices=[AssignmentStatus.COMPLETED.value, AssignmentStatus.CANCELLED.value],
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
