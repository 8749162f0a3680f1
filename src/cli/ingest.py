# =============================================================================
# src/cli/ingest.py -- Knowledge-Base Management CLI
# =============================================================================
#
# Operator tool for an assistant's knowledge base, working directly against
# the same SQLite database and embedding provider as the API server.
#
# Supported subcommands:
#
#   upload  -- Upload one or more files and wait until each is ready/error
#   list    -- List an assistant's documents (optionally by status)
#   delete  -- Delete a document and all of its chunks
#   search  -- Run a retrieval query and print the formatted context
#   stats   -- Display store statistics (documents, chunks, by status)
#
# Usage examples:
#   python -m src.cli.ingest upload --assistant a1 handbook.pdf notes.md
#   python -m src.cli.ingest list --assistant a1 --status error
#   python -m src.cli.ingest search --assistant a1 "refund policy"
#   python -m src.cli.ingest delete --assistant a1 --document <uuid> --yes
#   python -m src.cli.ingest stats
# =============================================================================

"""Standalone CLI for managing assistant knowledge bases.

Usage::

    python -m src.cli.ingest upload --assistant a1 handbook.pdf notes.md

    python -m src.cli.ingest search --assistant a1 "refund policy"

    python -m src.cli.ingest stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from src.config.settings import Settings


async def _build(app_settings: Settings) -> dict[str, Any]:
    """Assemble the same components the API server uses.

    Imports are deferred so ``--help`` does not load the provider SDKs.
    """
    from src.main import build_components

    return await build_components(app_settings)


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _upload_one(components: dict[str, Any], assistant_id: str, path: Path, name: str | None):
    from src.utils.errors import KnowledgeBaseError

    service = components["document_service"]
    try:
        document = await service.upload(
            assistant_id=assistant_id,
            filename=path.name,
            mime_type=None,
            payload=path.read_bytes(),
            name=name,
        )
    except KnowledgeBaseError as exc:
        print(f"  {path.name}: rejected: {exc.message}")
        return None

    print(f"  {path.name}: accepted as {document.document_id}, processing...")
    return await service.wait_for(assistant_id, document.document_id)


async def _handle_upload(args: argparse.Namespace, app_settings: Settings) -> int:
    """Upload files and wait for each one's ingestion to finish."""
    from src.utils.concurrency import throttled_gather

    paths = [Path(p) for p in args.files]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        print(f"Error: not a file: {', '.join(missing)}", file=sys.stderr)
        return 1
    if args.name and len(paths) > 1:
        print("Error: --name can only be used with a single file.", file=sys.stderr)
        return 1

    components = await _build(app_settings)
    print(f"Uploading {len(paths)} file(s) to assistant '{args.assistant}'")
    try:
        results = await throttled_gather(
            [_upload_one(components, args.assistant, p, args.name) for p in paths],
            asyncio.Semaphore(args.parallel),
        )
    finally:
        components["embedding_pool"].close()

    failures = 0
    print("\nResults:")
    for path, document in zip(paths, results):
        if document is None:
            failures += 1
            print(f"  {path.name:<30} rejected")
            continue
        line = f"  {path.name:<30} {document.status.value:<10} {document.chunks_count} chunks"
        if document.error_message:
            failures += 1
            line += f"  ({document.error_message})"
        print(line)
    return 1 if failures else 0


async def _handle_list(args: argparse.Namespace, app_settings: Settings) -> int:
    """List an assistant's documents, newest first."""
    from src.models.document import DocumentStatus

    components = await _build(app_settings)
    status = DocumentStatus(args.status) if args.status else None
    documents = await components["document_service"].list_documents(args.assistant, status)
    components["embedding_pool"].close()

    if not documents:
        print(f"No documents for assistant '{args.assistant}'.")
        return 0

    print(f"{'ID':<38} {'STATUS':<11} {'CHUNKS':>6}  NAME")
    for doc in documents:
        print(f"{doc.document_id:<38} {doc.status.value:<11} {doc.chunks_count:>6}  {doc.name}")
        if doc.error_message:
            print(f"{'':<38} error: {doc.error_message}")
    return 0


async def _handle_delete(args: argparse.Namespace, app_settings: Settings) -> int:
    """Delete a document and its chunks.  Asks for confirmation unless --yes."""
    components = await _build(app_settings)
    service = components["document_service"]
    try:
        document = await service.get_document(args.assistant, args.document)
        if document is None:
            print(f"Document {args.document} not found for assistant '{args.assistant}'.")
            return 1

        if not args.yes:
            prompt = f"  Delete '{document.name}' ({document.chunks_count} chunks)? [y/N] "
            if input(prompt).strip().lower() not in ("y", "yes"):
                print("  Aborted.")
                return 0

        await service.delete_document(args.assistant, args.document)
        print(f"Deleted {args.document}.")
        return 0
    finally:
        components["embedding_pool"].close()


async def _handle_search(args: argparse.Namespace, app_settings: Settings) -> int:
    """Retrieve and print the context a chat message would receive."""
    components = await _build(app_settings)
    retrieval = components["retrieval_service"]
    try:
        matches = await retrieval.retrieve_context(
            args.query,
            args.assistant,
            top_k=args.top_k,
            similarity_threshold=args.threshold,
        )
    finally:
        components["embedding_pool"].close()

    print(retrieval.summarize(matches))
    if not matches:
        return 0

    budget = args.max_tokens or components["settings"].context_max_tokens
    formatted = components["context_formatter"].format(matches, budget)
    for source in formatted.sources:
        print(f"  [Source {source.label}] {source.document_name} #{source.chunk_index} "
              f"({source.similarity:.0%})")
    print(f"\n{formatted.token_count} tokens, {formatted.dropped} match(es) over budget\n")
    print(formatted.text)
    return 0


async def _handle_stats(app_settings: Settings) -> int:
    """Display store statistics."""
    components = await _build(app_settings)
    components["embedding_pool"].close()
    stats = await components["vector_store"].get_stats()

    print("Knowledge Base Statistics")
    print("=" * 40)
    print(f"  Assistants:       {stats.total_assistants}")
    print(f"  Documents:        {stats.total_documents}")
    print(f"  Chunks:           {stats.total_chunks}")
    if stats.documents_by_status:
        print("\n  Documents by status:")
        for status, count in sorted(stats.documents_by_status.items()):
            print(f"    {status:<12} {count}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge-base CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Manage assistant knowledge bases.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload files and wait for ingestion")
    upload_parser.add_argument("--assistant", required=True, help="Owning assistant id")
    upload_parser.add_argument("--name", default=None, help="Display name (single file only)")
    upload_parser.add_argument(
        "--parallel",
        type=int,
        default=2,
        help="Files ingested at the same time (default: 2)",
    )
    upload_parser.add_argument("files", nargs="+", help="PDF, DOCX, TXT or Markdown files")

    # -- list --
    list_parser = subparsers.add_parser("list", help="List an assistant's documents")
    list_parser.add_argument("--assistant", required=True, help="Assistant id")
    list_parser.add_argument(
        "--status",
        choices=["processing", "ready", "error"],
        default=None,
        help="Only show documents in this status",
    )

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a document and its chunks")
    delete_parser.add_argument("--assistant", required=True, help="Assistant id")
    delete_parser.add_argument("--document", required=True, help="Document id")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Retrieve context for a query")
    search_parser.add_argument("--assistant", required=True, help="Assistant id")
    search_parser.add_argument("--top-k", type=int, default=None, dest="top_k")
    search_parser.add_argument("--threshold", type=float, default=None)
    search_parser.add_argument("--max-tokens", type=int, default=None, dest="max_tokens")
    search_parser.add_argument("query", help="Query text")

    # -- stats --
    subparsers.add_parser("stats", help="Show store statistics")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, loads Settings from the environment / .env file,
    and dispatches to the matching handler.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()

    if args.command == "upload":
        exit_code = asyncio.run(_handle_upload(args, app_settings))
    elif args.command == "list":
        exit_code = asyncio.run(_handle_list(args, app_settings))
    elif args.command == "delete":
        exit_code = asyncio.run(_handle_delete(args, app_settings))
    elif args.command == "search":
        exit_code = asyncio.run(_handle_search(args, app_settings))
    elif args.command == "stats":
        exit_code = asyncio.run(_handle_stats(app_settings))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
