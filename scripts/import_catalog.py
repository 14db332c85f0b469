"""
Catalog import script. Runs a full import session against Supabase.

Usage:
    # Import with images, auto-fixing what can be fixed
    python scripts/import_catalog.py --file data/equipamentos.csv --auto-fix

    # Explicit mapping, no images, dry run (stops after the preview)
    python scripts/import_catalog.py --file data/equipamentos.xlsx \
        --map name=Nome --map category=Categoria --skip-media --dry-run
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from exceptions import AppError
from models.import_run import ImportConfig, ImportOutcome
from models.source import SourceKind
from services.import_session import ImportSession


# ─────────────────────────────────────────────────────────────
# OUTPUT
# ─────────────────────────────────────────────────────────────

def print_progress(outcome: ImportOutcome) -> None:
    print(
        f"  {outcome.progress:3d}%  processed {outcome.processed_records}/{outcome.total_records}"
        f"  ok={outcome.success_count}  failed={outcome.error_count}"
    )


def print_outcome(outcome: ImportOutcome) -> None:
    separator = "=" * 60
    print(separator)
    print("IMPORT ABORTED" if outcome.aborted else "IMPORT COMPLETE")
    print(f"  Records:   {outcome.total_records}")
    print(f"  Imported:  {outcome.success_count}")
    print(f"  Failed:    {outcome.error_count}")
    for failure in outcome.errors:
        print(f"    - {failure.record_id}: {failure.error}")
    for failure in outcome.reference_errors:
        print(f"    ! reference {failure.record_id}: {failure.error}")
    print(separator)


def parse_mapping(pairs: list[str]) -> dict[str, str]:
    """field=Header pairs -> mapping."""
    mapping = {}
    for pair in pairs:
        field, sep, header = pair.partition("=")
        if not sep or not field.strip() or not header.strip():
            raise ValueError(f"Invalid --map value '{pair}' (expected field=Header)")
        mapping[field.strip()] = header.strip()
    return mapping


# ─────────────────────────────────────────────────────────────
# SESSION
# ─────────────────────────────────────────────────────────────

def run_import(args: argparse.Namespace) -> bool:
    with open(args.file, "rb") as f:
        content = f.read()

    config = ImportConfig.from_settings(
        batch_size=args.batch_size,
        skip_media=args.skip_media or None,
        missing_name_template=args.missing_name_template,
        use_placeholder=False if args.no_placeholder else None,
    )
    session = ImportSession(config=config)

    print(f"Loading {args.file}...")
    result = session.load_source(content, SourceKind.from_filename(args.file), delimiter=args.delimiter)
    print(f"  {len(result.headers)} columns, {len(result.rows)} rows")
    for entry in result.diagnostics.warnings:
        print(f"  [{entry.level}] {entry.message} (x{entry.count})")

    report = session.prevalidate()
    for warning in report.warnings:
        print(f"  [{warning.severity}] {warning.message}")

    mapping = parse_mapping(args.map) if args.map else session.suggest_mapping()
    print(f"Mapping: {mapping}")
    session.apply_mapping(mapping)

    context = session.resolve_references()
    pending = context.pending()
    if pending:
        print(f"  {len(pending)} reference entities will be created: {[c.name for c in pending]}")

    validation = session.preview()
    if args.auto_fix and validation.fixable_row_count:
        print(f"Auto-fixing {validation.fixable_row_count} rows...")
        validation = session.auto_fix()

    for summary in validation.summary():
        print(f"  {summary.issue_type.value} on {summary.field}: {summary.count}")
    print(f"  {len(validation.importable_rows)} importable, {len(validation.blocked_rows)} blocked")

    if args.dry_run:
        print("Dry run: stopping before media and import.")
        return True

    if config.skip_media:
        session.skip_media()
    else:
        tasks = session.resolve_media()
        resolved = sum(1 for t in tasks if t.is_resolved)
        print(f"Images: {resolved}/{len(tasks)} resolved")

    outcome = session.execute_import(on_progress=print_progress)
    print_outcome(outcome)
    return outcome.error_count == 0 and not outcome.aborted


# ─────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Import an equipment spreadsheet (CSV/XLS/XLSX) into the catalog."
    )
    parser.add_argument(
        "--file",
        required=True,
        help="Path to the spreadsheet",
    )
    parser.add_argument(
        "--map",
        action="append",
        default=[],
        help="Mapping entry field=Header (repeatable). Auto-mapped when omitted.",
    )
    parser.add_argument(
        "--delimiter",
        default=None,
        help="Force the CSV delimiter (auto-detected otherwise)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Records per bulk insert (default from settings)",
    )
    parser.add_argument(
        "--auto-fix",
        action="store_true",
        help="Apply every fixable correction before importing",
    )
    parser.add_argument(
        "--missing-name-template",
        default=None,
        help="Fallback for blank names, e.g. 'Equipment {row}'",
    )
    parser.add_argument(
        "--skip-media",
        action="store_true",
        help="Import without resolving images",
    )
    parser.add_argument(
        "--no-placeholder",
        action="store_true",
        help="Do not fall back to placeholder images",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Stop after validation; nothing is written",
    )

    args = parser.parse_args()

    if not os.path.isfile(args.file):
        print(f"ERROR: File not found: {args.file}")
        sys.exit(1)

    try:
        success = run_import(args)
    except (AppError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
