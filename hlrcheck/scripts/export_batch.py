# hlrcheck/scripts/export_batch.py
"""
Recovery tool: dump whatever results a batch has to CSV, e.g. for a
batch stuck in "processing" after a worker crash.

    python -m hlrcheck.scripts.export_batch 42 --kind hlr -o batch42.csv
    python -m hlrcheck.scripts.export_batch 42 --resume   # finish it inline first
"""
import argparse
import logging
import sys

from hlrcheck.app.db import SessionLocal, init_db
from hlrcheck.app.repositories.batch_repository import batch_repository_for
from hlrcheck.app.services import export_service
from hlrcheck.app.services.batch_processor import run_batch

logger = logging.getLogger("export_batch")


def export_batch(kind: str, batch_id: int, fields=None, result_filter: str = "all") -> bytes:
    db = SessionLocal()
    try:
        repo = batch_repository_for(kind, db)
        batch = repo.get(batch_id)
        if batch is None:
            raise LookupError(f"{kind} batch {batch_id} not found")
        rows = export_service.filter_results(repo.list_results(batch.id), result_filter)
        logger.info("batch %s (%s): %d/%d results exported", batch.id, batch.status, len(rows), batch.total or 0)
        return export_service.render(rows, kind, export_service.resolve_fields(kind, fields), "csv")
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Export the results of a batch to CSV")
    parser.add_argument("batch_id", type=int)
    parser.add_argument("--kind", choices=("hlr", "email"), default="hlr")
    parser.add_argument("--fields", help="comma separated field keys (default: all)")
    parser.add_argument("--filter", choices=export_service.FILTERS, default="all")
    parser.add_argument("--resume", action="store_true", help="process unchecked items before exporting")
    parser.add_argument("-o", "--output", help="output file (default: stdout)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    init_db()

    if args.resume:
        result = run_batch(args.kind, args.batch_id)
        logger.info("resume finished: %s", result)

    fields = [f.strip() for f in args.fields.split(",") if f.strip()] if args.fields else None
    try:
        content = export_batch(args.kind, args.batch_id, fields, args.filter)
    except (LookupError, ValueError) as e:
        logger.error("%s", e)
        return 1

    if args.output:
        with open(args.output, "wb") as f:
            f.write(content)
    else:
        sys.stdout.buffer.write(content)
    return 0


if __name__ == "__main__":
    sys.exit(main())
