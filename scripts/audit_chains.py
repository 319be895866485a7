"""Verify students' hash chains and report breaks.

With no ids, every student holding at least one record is audited. Exits
non-zero when any chain is broken. Nothing is repaired: remediation is a
manual process.
"""

from __future__ import annotations

import argparse
import importlib
import json

from config import get_settings_module

from sport_attendance.container import build_container


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("student_ids", nargs="*", type=int, help="students to audit (default: all with records)")
    args = parser.parse_args()

    settings = importlib.import_module(get_settings_module())
    container = build_container(db_config=dict(settings.DB_CONFIG), storage_backend="mysql")

    if args.student_ids:
        results = {student_id: container.ledger.audit(student_id) for student_id in args.student_ids}
    else:
        results = container.ledger.audit_all()

    broken = 0
    for student_id, result in results.items():
        print(json.dumps({"student_id": student_id, **result.to_dict()}))
        if not result.valid:
            broken += 1

    if broken:
        raise SystemExit(f"{broken} broken chain(s)")


if __name__ == "__main__":
    main()
