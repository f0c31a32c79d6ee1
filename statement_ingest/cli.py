"""CLI entry point for statement ingestion."""

import argparse
import csv
import sys
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from pathlib import Path

from loguru import logger

from statement_ingest.categories import load_categories
from statement_ingest.config import DateFallback, IngestSettings
from statement_ingest.logging_config import configure_logging
from statement_ingest.models import CategoriesConfig
from statement_ingest.pipeline import IngestionCancelled, IngestionRequestError, Pipeline
from statement_ingest.store import InMemoryTransactionStore, StoreError

SUPPORTED_SUFFIXES = {".pdf", ".csv", ".tsv", ".txt"}


def generate_summary(
    input_path: Path,
    output_path: Path,
    categories: CategoriesConfig | None = None,
) -> dict[tuple[str, str], Decimal]:
    """Write totals per month key and category from a transactions CSV.

    Args:
        input_path: CSV with 'month_key', 'amount' and 'category' columns
        output_path: Path for output summary CSV
        categories: Optional categories config to include zero-amount categories

    Returns:
        Totals keyed by (month_key, category)

    Raises:
        ValueError: If a required column is missing
    """
    totals: dict[tuple[str, str], Decimal] = defaultdict(Decimal)
    months: set[str] = set()

    with open(input_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        for column in ("month_key", "amount", "category"):
            if column not in fieldnames:
                raise ValueError(f"Input CSV must have a '{column}' column")

        for row in reader:
            try:
                amount = Decimal(row["amount"].replace("$", "").replace(",", ""))
            except InvalidOperation:
                logger.warning(f"Skipping invalid amount: {row['amount']}")
                continue
            months.add(row["month_key"])
            totals[(row["month_key"], row["category"])] += amount

    if categories:
        for month in months:
            for name in categories.get_category_names():
                totals.setdefault((month, name), Decimal("0"))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["month_key", "category", "total"])
        writer.writeheader()
        if categories:
            order = {name: i for i, name in enumerate(categories.get_category_names())}
            keys = sorted(totals, key=lambda k: (k[0], order.get(k[1], len(order)), k[1]))
        else:
            keys = sorted(totals, key=lambda k: (k[0], -totals[k], k[1]))
        for month, category in keys:
            writer.writerow({"month_key": month, "category": category, "total": f"{totals[(month, category)]:.2f}"})

    logger.info(f"Wrote summary to {output_path}")
    return dict(totals)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Ingest bank statements (PDF, CSV, TSV, TXT) into categorized transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Parse and categorize statement files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s statement.pdf -o transactions.csv
  %(prog)s exports/*.csv -o transactions.csv --append
  %(prog)s statement.csv --month 2024-03 --no-llm
        """,
    )
    ingest_parser.add_argument("inputs", nargs="+", type=Path, help="Statement file(s) to ingest")
    ingest_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("transactions.csv"),
        help="Output CSV file path (default: transactions.csv)",
    )
    ingest_parser.add_argument(
        "-c",
        "--categories",
        type=Path,
        default=None,
        help="Categories JSON file (default: built-in categories)",
    )
    ingest_parser.add_argument("--user", default="local", help="User id stored on every record (default: local)")
    ingest_parser.add_argument(
        "--month",
        default=None,
        help="Statement month (YYYY-MM) used when a transaction date cannot be read",
    )
    ingest_parser.add_argument(
        "--skip-undated",
        action="store_true",
        help="Drop lines whose date cannot be read instead of using today's date",
    )
    ingest_parser.add_argument("--no-llm", action="store_true", help="Use keyword rules only")
    ingest_parser.add_argument(
        "--append",
        action="store_true",
        help="Keep existing rows of the output file and skip duplicates of them",
    )
    ingest_parser.add_argument(
        "--summary",
        action="store_true",
        help="Also write a summary CSV with totals per month and category",
    )
    ingest_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    ingest_parser.add_argument("--debug", action="store_true", help="Enable debug output and save artifacts")

    summary_parser = subparsers.add_parser(
        "summary",
        help="Generate a summary CSV from an existing transactions CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s transactions.csv -o summary.csv
  %(prog)s transactions.csv -o summary.csv -c categories.json  # Include all categories
        """,
    )
    summary_parser.add_argument("input", type=Path, help="Transactions CSV written by 'ingest'")
    summary_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("summary.csv"),
        help="Output summary CSV file path (default: summary.csv)",
    )
    summary_parser.add_argument(
        "-c",
        "--categories",
        type=Path,
        default=None,
        help="Categories JSON file (optional, fills zeros for missing categories)",
    )
    summary_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)
    return args


def run_ingest(args: argparse.Namespace) -> int:
    """Run the ingest command."""
    paths: list[Path] = []
    for input_path in args.inputs:
        if not input_path.exists():
            logger.error(f"File not found: {input_path}")
            return 1
        if input_path.suffix.lower() not in SUPPORTED_SUFFIXES:
            logger.warning(f"Skipping unsupported file: {input_path}")
            continue
        paths.append(input_path)

    if not paths:
        logger.error("No supported statement files provided")
        return 1

    try:
        categories = load_categories(args.categories)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to load categories: {e}")
        return 1

    settings = IngestSettings.from_env(
        use_llm=False if args.no_llm else None,
        date_fallback=DateFallback.SKIP if args.skip_undated else None,
        debug_dir=args.output.parent / "debug" if args.debug else None,
    )

    store = InMemoryTransactionStore()
    if args.append and args.output.exists():
        try:
            store.load_csv(args.output, user_id=args.user)
        except StoreError as e:
            logger.error(str(e))
            return 1

    try:
        with Pipeline(store, settings=settings, categories=categories) as pipeline:
            summary = pipeline.process_files(paths, user_id=args.user, month_hint=args.month)
    except IngestionRequestError as e:
        logger.error(str(e))
        return 1
    except (KeyboardInterrupt, IngestionCancelled):
        print("\nInterrupted by user")
        return 130

    for file_summary in summary.files:
        status = "ok" if file_summary.success else "FAILED"
        print(f"  {file_summary.filename:30s} {status:6s} {file_summary.message}")
    print(summary.message)

    if store.transactions:
        store.write_csv(args.output)
        print(f"\nOutput written to: {args.output}")
        if args.summary:
            summary_path = args.output.with_stem(args.output.stem + "_summary")
            generate_summary(args.output, summary_path, categories)
            print(f"Summary written to: {summary_path}")
    else:
        print("No transactions found.")

    return 0 if summary.success else 1


def run_summary(args: argparse.Namespace) -> int:
    """Run the summary command to generate summary from existing CSV."""
    if not args.input.exists():
        logger.error(f"File not found: {args.input}")
        return 1

    try:
        categories = load_categories(args.categories) if args.categories else None
        generate_summary(args.input, args.output, categories)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Summary generation failed: {e}")
        return 1

    print(f"Summary written to: {args.output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    verbose = getattr(args, "verbose", False)
    debug = getattr(args, "debug", False)
    configure_logging(verbose=verbose, debug=debug)

    if args.command == "ingest":
        return run_ingest(args)
    elif args.command == "summary":
        return run_summary(args)
    else:
        logger.error(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
