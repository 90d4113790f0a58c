#!/usr/bin/env python3
"""
Rebuild doctors' booked-slot index from the appointment ledger
Usage: python reconcile_slots.py [--doctor DOCTOR_ID] [--dry-run]

Run after an operator alert about a failed rollback, or any time the
booked slots shown to patients look wrong.
"""

import argparse
import sys

from medibook import models  # noqa: F401
from medibook.database import Base, SessionLocal, engine
from medibook.domain.appointments.service import AppointmentService
from medibook.errors import AppError


def reconcile(doctor_id=None, dry_run=False):
    """Print the drift per doctor; returns the number of doctors that drifted"""
    Base.metadata.create_all(bind=engine, checkfirst=True)
    db = SessionLocal()

    try:
        mode = "DRY RUN" if dry_run else "APPLY"
        target = doctor_id or "all doctors"
        print(f"🔍 Reconciling booked slots for {target} ({mode})...\n")

        try:
            report = AppointmentService(db).reconcile_slots(doctor_id=doctor_id, dry_run=dry_run)
        except AppError as e:
            print(f"❌ {e.message}")
            return -1

        if not report:
            print("✅ Slot index matches the appointment ledger")
            return 0

        for current_id, drift in report.items():
            print(f"👨‍⚕️ Doctor {current_id}")
            for label, entries in (
                ("Missing from index", drift["missing"]),
                ("Stale in index", drift["stale"]),
                ("Double booked", drift["duplicates"]),
            ):
                if entries:
                    print(f"   - {label}: {', '.join(entries)}")

        if dry_run:
            print(f"\n💡 {len(report)} doctor(s) drifted; rerun without --dry-run to fix the index")
        else:
            print(f"\n✅ Rebuilt the index for {len(report)} doctor(s)")
        if any(drift["duplicates"] for drift in report.values()):
            print("⚠️ Double-booked slots need a manual cancellation")
        return len(report)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rebuild doctors' booked slots from appointments")
    parser.add_argument("--doctor", help="Only reconcile this doctor id")
    parser.add_argument("--dry-run", action="store_true", help="Report drift without writing")
    args = parser.parse_args()

    result = reconcile(doctor_id=args.doctor, dry_run=args.dry_run)
    sys.exit(1 if result < 0 else 0)
