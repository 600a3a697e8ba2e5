"""
Command-line interface for billing intake.

Usage:
    billing-intake upload --carrier "AT&T Mobility" --input att_march.csv --user analyst
    billing-intake approve --batch-id <batch_id> --reviewer supervisor
"""

import argparse
import json
import sys
from pathlib import Path

import pdfplumber

from billing_intake.batch.lifecycle import BatchLifecycle
from billing_intake.config import load_settings
from billing_intake.core.errors import IntakeError
from billing_intake.core.models import FileType, ReviewAction
from billing_intake.ingest.detail_of_charges import DetailOfChargesParser
from billing_intake.ingest.provider_headers import ProviderHeaderConfig
from billing_intake.ingest.tabular import TabularReader
from billing_intake.ingest.upload import IntakeService
from billing_intake.ingest.wired_reports import WiredReportService
from billing_intake.observability.logger import get_logger
from billing_intake.strategies.registry import default_registry
from billing_intake.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "resources" / "init-db.sql"


def create_pool(args) -> DatabaseConnectionPool:
    """
    Open a connection pool from command-line arguments.

    Arguments left unset fall back to the DB_* environment variables.
    """
    pool = DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    pool.open()
    return pool


def build_lifecycle(pool: DatabaseConnectionPool) -> BatchLifecycle:
    settings = load_settings()
    return BatchLifecycle(
        pool,
        default_registry(),
        rejection_reason_max_length=settings.rejection_reason_max_length,
    )


def build_intake(pool: DatabaseConnectionPool) -> IntakeService:
    settings = load_settings()
    headers = ProviderHeaderConfig.load(settings.provider_headers_path)
    return IntakeService(build_lifecycle(pool), TabularReader(headers))


def print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _require_file(path: str) -> Path:
    input_path = Path(path)
    if not input_path.exists():
        logger.error(f"Input file not found: {path}")
        sys.exit(1)
    return input_path


# =======================
# COMMANDS
# =======================

def init_db_command(args, pool):
    schema = Path(args.schema).read_text()
    pool.execute_script(schema)
    logger.info(f"Applied schema from {args.schema}")


def upload_command(args, pool):
    input_path = _require_file(args.input)
    file_type = FileType.INVENTORY if args.inventory else FileType.INVOICE
    with input_path.open("rb") as stream:
        batch_id = build_intake(pool).upload_detail_file(
            stream, input_path.name, args.carrier, args.user, file_type=file_type
        )
    logger.info(f"Created batch {batch_id} awaiting approval")
    print(batch_id)


def upload_zip_command(args, pool):
    input_path = _require_file(args.input)
    with input_path.open("rb") as stream:
        batch_id = build_intake(pool).upload_zip(stream, input_path.name, args.carrier, args.user)
    logger.info(f"Created batch {batch_id} awaiting approval")
    print(batch_id)


def status_command(args, pool):
    batch = build_lifecycle(pool).get_batch(args.batch_id)
    print_json(batch.model_dump(mode="json"))


def review_command(args, pool):
    review = build_lifecycle(pool).get_batch_for_review(args.batch_id)
    print_json(review.model_dump(mode="json"))


def approve_command(args, pool):
    batch = build_lifecycle(pool).decide(args.batch_id, ReviewAction.APPROVE, args.reviewer)
    logger.info(f"Batch {batch.batch_id} is {batch.status.value}")


def reject_command(args, pool):
    batch = build_lifecycle(pool).decide(
        args.batch_id, ReviewAction.REJECT, args.reviewer, args.reason
    )
    logger.info(f"Batch {batch.batch_id} is {batch.status.value}")


def show_approved_command(args, pool):
    approved = build_lifecycle(pool).get_approved_batch(args.batch_id)
    print_json(approved.model_dump(mode="json"))


def mark_failed_command(args, pool):
    if build_lifecycle(pool).mark_failed(args.batch_id, args.reason):
        logger.info(f"Batch {args.batch_id} marked FAILED")
    else:
        logger.warning(f"Batch {args.batch_id} left unchanged")


def parse_pdf_command(args, pool):
    input_path = _require_file(args.input)
    if pool is None:
        with pdfplumber.open(input_path) as pdf:
            reports = DetailOfChargesParser().parse(pdf)
        print_json([report.model_dump(mode="json") for report in reports])
        return
    saved = WiredReportService(pool).process_report(input_path)
    logger.info(f"Stored {saved} wired report lines")


COMMANDS = {
    "init-db": init_db_command,
    "upload": upload_command,
    "upload-zip": upload_zip_command,
    "status": status_command,
    "review": review_command,
    "approve": approve_command,
    "reject": reject_command,
    "show-approved": show_approved_command,
    "mark-failed": mark_failed_command,
    "parse-pdf": parse_pdf_command,
}


def add_db_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db-host", default=None, help="Database host (default: $DB_HOST)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: $DB_PORT)")
    parser.add_argument("--db-name", default=None, help="Database name (default: $DB_NAME)")
    parser.add_argument("--db-user", default=None, help="Database user (default: $DB_USER)")
    parser.add_argument("--db-password", default=None, help="Database password (default: $DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="billing-intake",
        description="Carrier billing document intake",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Stage an AT&T invoice detail report
  billing-intake upload --carrier "AT&T Mobility" --input att_march.csv --user analyst

  # Stage a FirstNet device inventory
  billing-intake upload --carrier FirstNet --input inventory.xlsx --user analyst --inventory

  # Stage a ZIP of invoice PDFs plus detail reports
  billing-intake upload-zip --carrier "AT&T Mobility" --input march.zip --user analyst

  # Check where a batch stands
  billing-intake status --batch-id <batch_id>

  # Review, then approve or reject
  billing-intake review --batch-id <batch_id>
  billing-intake approve --batch-id <batch_id> --reviewer supervisor
  billing-intake reject --batch-id <batch_id> --reviewer supervisor --reason "wrong month"

  # Parse a CALNET statement without storing it
  billing-intake parse-pdf --input calnet.pdf --dry-run
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument(
        "--schema", default=str(DEFAULT_SCHEMA_PATH), help="Path to the schema SQL file"
    )

    upload_parser = subparsers.add_parser("upload", help="Stage a CSV or XLSX detail file")
    upload_parser.add_argument("--carrier", required=True, help="Carrier name")
    upload_parser.add_argument("--input", required=True, help="Path to the detail file")
    upload_parser.add_argument("--user", required=True, help="Uploader identity")
    upload_parser.add_argument(
        "--inventory", action="store_true", help="File is a device inventory, not an invoice"
    )

    zip_parser = subparsers.add_parser("upload-zip", help="Stage a ZIP of PDFs and detail files")
    zip_parser.add_argument("--carrier", required=True, help="Carrier name")
    zip_parser.add_argument("--input", required=True, help="Path to the ZIP file")
    zip_parser.add_argument("--user", required=True, help="Uploader identity")

    status_parser = subparsers.add_parser("status", help="Show batch metadata")
    status_parser.add_argument("--batch-id", required=True)

    review_parser = subparsers.add_parser("review", help="Show a batch with its staged records")
    review_parser.add_argument("--batch-id", required=True)

    approve_parser = subparsers.add_parser("approve", help="Approve a pending batch")
    approve_parser.add_argument("--batch-id", required=True)
    approve_parser.add_argument("--reviewer", required=True, help="Reviewer identity")

    reject_parser = subparsers.add_parser("reject", help="Reject a pending batch")
    reject_parser.add_argument("--batch-id", required=True)
    reject_parser.add_argument("--reviewer", required=True, help="Reviewer identity")
    reject_parser.add_argument("--reason", default=None, help="Rejection reason")

    approved_parser = subparsers.add_parser("show-approved", help="Show an approved batch")
    approved_parser.add_argument("--batch-id", required=True)

    failed_parser = subparsers.add_parser("mark-failed", help="Move a pending batch to FAILED")
    failed_parser.add_argument("--batch-id", required=True)
    failed_parser.add_argument("--reason", required=True)

    pdf_parser = subparsers.add_parser("parse-pdf", help="Parse a CALNET Detail of Charges PDF")
    pdf_parser.add_argument("--input", required=True, help="Path to the statement PDF")
    pdf_parser.add_argument(
        "--dry-run", action="store_true", help="Print parsed lines as JSON instead of storing them"
    )

    for subparser in subparsers.choices.values():
        add_db_arguments(subparser)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    dry_run = args.command == "parse-pdf" and args.dry_run
    pool = None
    try:
        if not dry_run:
            pool = create_pool(args)
        COMMANDS[args.command](args, pool)
    except IntakeError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error during {args.command}: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if pool is not None:
            pool.close()


if __name__ == "__main__":
    main()
