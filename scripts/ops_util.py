"""
Operations utilities - CLI tools for inspecting the capture registry.
"""

import argparse
import json
import sys
from pathlib import Path

# Add the repository root to sys.path to import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import validate_config
from src.core.maintenance import check_registry_integrity
from src.core.registry import CaptureRegistry
from util.logging import logger


def integrity_command(registry: CaptureRegistry, args) -> int:
    """Run the integrity audit; non-zero exit when issues are found."""
    report = check_registry_integrity(registry)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print("🔍 Registry integrity check")
        print(f"   Records: {report.metadata.get('record_count', 0)}")
        print(f"   Issues found: {report.issues_found}")
        for error in report.errors:
            print(f"   ❌ {error}")
        for recommendation in report.recommendations:
            print(f"   💡 {recommendation}")
        if report.passed:
            print("✅ Registry invariants hold")

    return 0 if report.passed else 1


def show_command(registry: CaptureRegistry, args) -> int:
    """Print a record with its status, tags, grants and revisions."""
    record = registry.get_record(args.record_id)
    if record is None:
        print(f"❌ Record {args.record_id} not found")
        return 1

    status = registry.get_status(record.id)
    tag_set = registry.get_tags(record.id)
    output = {
        "id": record.id,
        "fingerprint": record.fingerprint_hex,
        "owner": record.owner,
        "created": record.created,
        "volume": record.volume,
        "method": record.method,
        "location": record.location,
        "metadata": record.metadata,
        "status": {
            "status": status.status,
            "visible": status.visible,
            "last_update": status.last_update,
        } if status else None,
        "tags": tag_set.tags if tag_set else [],
        "collaborators": [
            {"collaborator": g.collaborator, "role": g.role, "permissions": g.permissions, "added": g.added}
            for g in registry.list_collaborators(record.id)
        ],
        "revisions": [
            {"revision": r.revision, "fingerprint": r.fingerprint.hex(), "notes": r.notes, "created": r.created}
            for r in registry.list_revisions(record.id)
        ],
    }
    print(json.dumps(output, indent=2))
    return 0


def events_command(registry: CaptureRegistry, args) -> int:
    """Print recent audit events, newest first."""
    for event in registry.list_events(record_id=args.record_id, limit=args.limit):
        print(json.dumps({
            "id": event.id,
            "record_id": event.record_id,
            "actor": event.actor,
            "action": event.action,
            "sequence": event.sequence,
            "payload": event.payload,
        }))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Capture registry operations")
    parser.add_argument("--db-path", default=None, help="Registry database (default: DB_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    integrity = subparsers.add_parser("integrity", help="Check registry invariants")
    integrity.add_argument("--json", action="store_true", help="Output results in JSON format")
    integrity.set_defaults(func=integrity_command)

    show = subparsers.add_parser("show", help="Show one record")
    show.add_argument("record_id", type=int)
    show.set_defaults(func=show_command)

    events = subparsers.add_parser("events", help="List audit events")
    events.add_argument("--record-id", type=int, default=None)
    events.add_argument("--limit", type=int, default=20)
    events.set_defaults(func=events_command)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"❌ Config: {issue}")
        return 2

    registry = CaptureRegistry(db_path=args.db_path)
    try:
        return args.func(registry, args)
    except Exception as e:
        logger.error(f"CLI {args.command} failed: {e}")
        raise


if __name__ == "__main__":
    sys.exit(main())
