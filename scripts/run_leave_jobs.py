"""
Run the leave jobs from cron: monthly earned-leave accrual, year-end carry
forward and the overstay check. All three are idempotent, so re-running a
month, year or day credits or flags nothing twice.

Usage:
  python scripts/run_leave_jobs.py accrual --month 2026-03
  python scripts/run_leave_jobs.py year-close --year 2026
  python scripts/run_leave_jobs.py overstay [--date 2026-03-20]
"""
import argparse
import sys
from datetime import date
from pathlib import Path

# Add project root so app is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy.orm import Session
from app.core.logging import setup_logging
from app.db import session as db_session
from app.services.accrual_service import run_monthly_accrual
from app.services.overstay_service import run_overstay_check
from app.services.year_close_service import run_year_close


def main():
    parser = argparse.ArgumentParser(description="Run leave jobs")
    sub = parser.add_subparsers(dest="job", required=True)
    accrual = sub.add_parser("accrual", help="Credit one month of earned leave")
    accrual.add_argument("--month", required=True, help="Month as YYYY-MM (e.g. 2026-03)")
    close = sub.add_parser("year-close", help="Carry capped balances into the next year")
    close.add_argument("--year", type=int, required=True, help="Calendar year being closed")
    overstay = sub.add_parser("overstay", help="Flag approved leave not followed by a duty return")
    overstay.add_argument("--date", type=date.fromisoformat, default=None, help="Check as of YYYY-MM-DD (default: today)")
    args = parser.parse_args()

    setup_logging()
    db: Session = db_session.SessionLocal()
    try:
        if args.job == "accrual":
            year, month = (int(part) for part in args.month.split("-"))
            result = run_monthly_accrual(db, year, month)
            print(f"Accrual {result['month']}: credited {result['credited_count']} of {result['total_employees_processed']} employees")
        elif args.job == "year-close":
            result = run_year_close(db, args.year)
            print(f"Year close {args.year}: {result['rows_processed']} balances, {result['total_carry_forward']} days carried to {result['next_year']}")
        else:
            result = run_overstay_check(db, args.date)
            print(f"Overstay check {result['today']}: flagged {result['flagged_count']} of {result['checked']} ended leaves")
    finally:
        db.close()


if __name__ == "__main__":
    main()
