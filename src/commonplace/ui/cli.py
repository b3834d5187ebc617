# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from commonplace.adapters.staging_payloads import StagingPayloadError
from commonplace.app import (
    find_duplicates,
    import_staging,
    list_pending_embeddings,
    merge_records,
    scan_duplicates,
    seriate_records,
    store_embedding,
    sync_sources,
    undo_merge,
    upgrade_database,
)
from commonplace.config import configure_logging
from commonplace.domain.mapping import mappable_sources
from commonplace.domain.merging import MergePreconditionError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from commonplace.domain.mapping import MappingRunResult
    from commonplace.domain.model import IntegrationSource
    from commonplace.domain.similarity import DuplicateCandidate

log = logging.getLogger(__name__)


class CommandError(ValueError):
    """Raised for invalid command input detected after argument parsing."""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {number}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commonplace", description="Maintain the commonplace record graph"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Map staging rows into the canonical graph")
    sync.add_argument(
        "sources",
        nargs="+",
        choices=[source.value for source in mappable_sources()],
        help="Integration sources to sync, in order",
    )
    sync.add_argument(
        "--batch-size",
        type=_positive_int,
        default=None,
        help="Number of staging rows per transaction (defaults to config)",
    )
    sync.add_argument(
        "--relink",
        action="store_true",
        help="Re-resolve parents and links of previously mapped rows",
    )

    merge = subparsers.add_parser("merge", help="Merge one record into another")
    merge.add_argument("source_id", type=int, help="Record that is merged away")
    merge.add_argument("target_id", type=int, help="Record that survives the merge")
    merge.add_argument("--created-by", type=str, help="Who requested the merge")

    undo = subparsers.add_parser("undo-merge", help="Restore the record removed by a merge")
    undo.add_argument("merge_id", type=int, help="Id of the merge audit row")

    duplicates = subparsers.add_parser("duplicates", help="Find duplicate candidates")
    group = duplicates.add_mutually_exclusive_group(required=True)
    group.add_argument("record_id", type=int, nargs="?", help="Record to find duplicates of")
    group.add_argument("--scan", action="store_true", help="Scan all records for duplicate pairs")
    duplicates.add_argument("--limit", type=_positive_int, help="Maximum number of candidates")

    seriate = subparsers.add_parser("seriate", help="Order records by embedding similarity")
    seriate.add_argument("record_ids", type=int, nargs="+", help="Records in ranked order")

    importer = subparsers.add_parser("import", help="Import a JSON-lines staging export")
    importer.add_argument(
        "source",
        choices=[source.value for source in mappable_sources()],
        help="Integration source the export belongs to",
    )
    importer.add_argument("path", type=Path, help="Path of the JSON-lines file")

    embeddings = subparsers.add_parser("embeddings", help="Embedding worker hooks")
    embeddings_sub = embeddings.add_subparsers(dest="embeddings_command", required=True)
    pending = embeddings_sub.add_parser("pending", help="List records awaiting an embedding")
    pending.add_argument("--limit", type=_positive_int, help="Maximum number of records")
    store = embeddings_sub.add_parser("store", help="Store an embedding for a record")
    store.add_argument("record_id", type=int, help="Record the embedding belongs to")
    store.add_argument("path", type=Path, help="JSON file holding the vector as a list")

    database = subparsers.add_parser("db", help="Database maintenance")
    database_sub = database.add_subparsers(dest="db_command", required=True)
    database_sub.add_parser("upgrade", help="Apply pending schema migrations")

    return parser


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    return _build_parser().parse_args(list(argv))


def _print_sync_results(results: dict[IntegrationSource, list[MappingRunResult]]) -> None:
    for source, source_results in results.items():
        for result in source_results:
            print(
                f"{source}/{result.namespace}: processed={result.processed} "
                f"created={result.created} refreshed={result.refreshed} "
                f"skipped={result.skipped} failed={result.failed} "
                f"linked={result.linked} unresolved={result.unresolved}"
            )


def _print_candidates(candidates: Sequence[DuplicateCandidate]) -> None:
    if not candidates:
        print("No duplicate candidates found")
        return
    for candidate in candidates:
        similarity = (
            f"{candidate.embedding_similarity:.3f}"
            if candidate.embedding_similarity is not None
            else "-"
        )
        distance = (
            f"{candidate.trigram_distance:.3f}" if candidate.trigram_distance is not None else "-"
        )
        print(
            f"{candidate.record_id}\t{candidate.candidate_id}\tcosine={similarity}\t"
            f"trigram={distance}\tfield={candidate.matched_field or '-'}\t"
            f"same_url={candidate.same_url}"
        )


def _load_vector(path: Path) -> list[float]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CommandError(f"{path} is not valid JSON: {exc.msg}") from exc
    if not isinstance(payload, list) or not all(
        isinstance(value, int | float) for value in payload
    ):
        raise CommandError(f"{path} must contain a JSON list of numbers")
    return [float(value) for value in payload]


def _run(args: argparse.Namespace) -> None:
    if args.command == "sync":
        results = sync_sources(args.sources, batch_size=args.batch_size, relink=args.relink)
        _print_sync_results(results)
    elif args.command == "merge":
        outcome = merge_records(args.source_id, args.target_id, created_by=args.created_by)
        message = f"Merged record {outcome.deleted_record_id} into {outcome.record.id}"
        if outcome.merge is not None and outcome.merge.id is not None:
            message += f" (merge {outcome.merge.id})"
        print(message)
    elif args.command == "undo-merge":
        undone = undo_merge(args.merge_id)
        print(f"Restored record {undone.record.id} from {undone.target.id}")
    elif args.command == "duplicates":
        if args.scan:
            _print_candidates(scan_duplicates())
        else:
            _print_candidates(find_duplicates(args.record_id, limit=args.limit))
    elif args.command == "seriate":
        print(" ".join(str(record_id) for record_id in seriate_records(args.record_ids)))
    elif args.command == "import":
        result = import_staging(args.source, args.path)
        print(f"added={result.added} refreshed={result.refreshed} unchanged={result.unchanged}")
    elif args.command == "embeddings" and args.embeddings_command == "pending":
        for pending in list_pending_embeddings(limit=args.limit):
            print(json.dumps({"record_id": pending.record_id, "text": pending.text}))
    elif args.command == "embeddings" and args.embeddings_command == "store":
        store_embedding(args.record_id, _load_vector(args.path))
    elif args.command == "db" and args.db_command == "upgrade":
        upgrade_database()
    else:
        raise CommandError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        _run(parsed_args)
    except (CommandError, MergePreconditionError, StagingPayloadError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:
        log.exception("Command %s failed", parsed_args.command)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    print("\nClosed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
