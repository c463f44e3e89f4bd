"""Command-line interface for the loan-book synchroniser."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import load_config
from .exceptions import StoreError
from .parsing import parse_amount
from .report import format_sync_time
from .runner import run_loan_book_sync
from .store import LoanBookStore
from .template import export_store_template


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loanbook-sync",
        description="Reconcile loan-book arrears against customers and tickets",
    )
    parser.add_argument("--database-url", help="SQLAlchemy URL of the store")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the store tables")

    sync = commands.add_parser("sync", help="Apply a loan-book feed (.xlsx or .csv)")
    sync.add_argument("feed", help="Loan-book feed file")
    sync.add_argument("--output", help="Optional JSON report path")
    sync.add_argument("--chunk-size", type=int, help="Rows per store transaction")
    sync.add_argument("--operator", help="Operator recorded on the sync batch")
    sync.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Attempt later chunks after a chunk fails",
    )

    template = commands.add_parser("template", help="Write the identifier template")
    template.add_argument("output", help="Template path (.xlsx or .csv)")

    pending = commands.add_parser("pending", help="List tickets awaiting confirmation")
    pending.add_argument("--agent", help="Only tickets assigned to this agent")

    confirm = commands.add_parser("confirm", help="Resolve a Pending Confirmation ticket")
    confirm.add_argument("ticket_id")
    confirm.add_argument("--operator", help="Operator confirming the resolution")

    reopen = commands.add_parser("reopen", help="Reopen a cleared or resolved ticket")
    reopen.add_argument("ticket_id")
    reopen.add_argument("--amount", help="New amount owed")
    reopen.add_argument("--operator", help="Operator reopening the ticket")

    commands.add_parser("last-sync", help="Show when the last sync ran")
    return parser


def _sync(args: argparse.Namespace) -> int:
    path = run_loan_book_sync(
        args.feed,
        database_url=args.database_url,
        operator_id=args.operator,
        output_path=args.output,
        chunk_size=args.chunk_size,
        halt_on_chunk_failure=False if args.continue_on_error else None,
    )
    with path.open(encoding="utf-8") as f:
        payload = json.load(f)
    print(
        f"Sync {payload['status']}: {payload['processed']} processed, "
        f"{payload['updated']} updated, {payload['maintained']} maintained, "
        f"{payload['not_found']} not found"
    )
    print(f"Report written to {path}")
    return 0 if payload["success"] else 1


def _run_store_command(args: argparse.Namespace, store: LoanBookStore) -> int:
    if args.command == "init-db":
        store.create_schema()
        print("Store tables created")
        return 0

    if args.command == "template":
        path = export_store_template(store, args.output)
        print(f"Template written to {path}")
        return 0

    if args.command == "pending":
        tickets = store.pending_confirmations(args.agent)
        for ticket in tickets:
            print(f"{ticket.id}\t{ticket.assigned_agent_id or '-'}\tK{ticket.amount_owed:,.2f}")
        print(f"{len(tickets)} ticket(s) pending confirmation")
        return 0

    if args.command == "confirm":
        operator = args.operator or load_config().operator_id
        ticket = store.confirm_resolution(args.ticket_id, operator)
        print(f"Ticket {ticket.id} is now {ticket.status}")
        return 0

    if args.command == "reopen":
        amount = None
        if args.amount is not None:
            amount = parse_amount(args.amount)
            if amount is None:
                print(f"Invalid amount: {args.amount}", file=sys.stderr)
                return 2
        operator = args.operator or load_config().operator_id
        ticket = store.reopen_ticket(args.ticket_id, amount, operator)
        print(f"Ticket {ticket.id} is now {ticket.status} (K{ticket.amount_owed:,.2f} owed)")
        return 0

    # last-sync
    batch = store.last_sync()
    if batch is None:
        print(format_sync_time(None))
    else:
        print(f"{format_sync_time(batch.created_at)} ({batch.status})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "sync":
        return _sync(args)

    database_url = args.database_url or load_config().database_url
    try:
        return _run_store_command(args, LoanBookStore(database_url))
    except (StoreError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
