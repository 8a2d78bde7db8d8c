"""Memoria CLI -- server management, stats, context preview, maintenance and indexing."""

import argparse
import asyncio
import json
import logging
import sys

from memoria.config import MemoriaConfig
from memoria.errors import ConfigurationError


def _load_config() -> MemoriaConfig:
    try:
        return MemoriaConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


def _with_service(work):
    """Run ``work(service)`` against a freshly started service, then close it."""
    from memoria.service import MemoryService

    config = _load_config()
    logging.basicConfig(level=getattr(logging, config.log_level), stream=sys.stderr)

    async def runner():
        service = await MemoryService(config).start(schedule_maintenance=False)
        try:
            result = await work(service)
            await service.drain()
            return result
        finally:
            await service.close()

    return asyncio.run(runner())


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def cmd_serve(args):
    """Run the Memoria MCP server (stdio mode)."""
    from memoria.server.mcp_server import main

    _load_config()
    asyncio.run(main())


def cmd_serve_http(args):
    """Run the Memoria MCP server over streamable HTTP."""
    from memoria.server.http_server import get_or_create_api_key, run_http
    from memoria.server.mcp_server import configure_logging

    config = _load_config()
    configure_logging(config)
    api_key = None if args.no_auth else get_or_create_api_key(config.home)
    if api_key:
        print(f"API key: {config.home / 'api_key'}", file=sys.stderr)
    asyncio.run(run_http(args.host, args.port, api_key))


def cmd_stats(args):
    """Show record counts and fingerprint distribution."""

    async def work(service):
        return await service.stats()

    stats = _with_service(work)
    if args.json:
        _print_json(stats)
        return

    print(f"Mode:           {stats['mode']}")
    print(f"Vector index:   {'yes' if stats['vectorIndex'] else 'no (full scans)'}")
    print(f"Memories:       {stats['memoryCount']}")
    print(f"Latest:         {stats['latestActivity'] or 'never'}")
    print()
    for table, count in stats["counts"].items():
        print(f"  {table:<14} {count}")
    if stats["fingerprintsByType"]:
        print()
        print("Fingerprints by type:")
        for content_type, count in stats["fingerprintsByType"].items():
            print(f"  {content_type:<24} {count}")


def cmd_context(args):
    """Print the context snapshot, optionally ranked against a query."""
    query = " ".join(args.query_text) if args.query_text else None

    async def work(service):
        return await service.context(query)

    _print_json(_with_service(work))


def cmd_maintain(args):
    """Remove orphaned and duplicate fingerprints, optionally rebuild the index."""

    async def work(service):
        return await service.run_maintenance(
            force_rebuild=args.force_rebuild,
            clean_orphans=not args.keep_orphans,
            optimize_storage=not args.keep_duplicates,
        )

    report = _with_service(work)
    _print_json(report.to_dict())
    if report.errors:
        sys.exit(1)


def cmd_index(args):
    """Index source files into code_files, code_snippets and fingerprints."""

    async def work(service):
        results = {}
        for path in args.paths:
            results[path] = await service.index_file(path, "update")
        return results

    results = _with_service(work)
    failed = [p for p, ok in results.items() if not ok]
    print(f"Indexed {len(results) - len(failed)}/{len(results)} files")
    for path in failed:
        print(f"  failed: {path}", file=sys.stderr)
    if failed:
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        prog="memoria",
        description="Memoria -- Persistent conversation and code memory for MCP clients",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Run MCP server (stdio mode)")

    http_parser = subparsers.add_parser("serve-http", help="Run MCP server over streamable HTTP")
    http_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    http_parser.add_argument("--port", type=int, default=8089, help="HTTP port (default: 8089)")
    http_parser.add_argument("--no-auth", action="store_true", help="Disable the API key check")

    stats_parser = subparsers.add_parser("stats", help="Show record counts and fingerprint distribution")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")

    context_parser = subparsers.add_parser("context", help="Print the ranked context snapshot")
    context_parser.add_argument("query_text", nargs="*", help="Optional query to rank against")

    maintain_parser = subparsers.add_parser("maintain", help="Clean orphaned/duplicate fingerprints")
    maintain_parser.add_argument("--force-rebuild", action="store_true", help="Rebuild the vector index")
    maintain_parser.add_argument("--keep-orphans", action="store_true", help="Skip orphan cleanup")
    maintain_parser.add_argument("--keep-duplicates", action="store_true", help="Skip duplicate collapse")

    index_parser = subparsers.add_parser("index", help="Index source files for code search")
    index_parser.add_argument("paths", nargs="+", help="Files to index")

    args = parser.parse_args()

    commands = {
        "serve": cmd_serve,
        "serve-http": cmd_serve_http,
        "stats": cmd_stats,
        "context": cmd_context,
        "maintain": cmd_maintain,
        "index": cmd_index,
    }

    if args.command in commands:
        commands[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
