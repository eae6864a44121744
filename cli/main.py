"""Command line interface for docforge.

``docforge ingest`` builds a content snapshot from configured sources,
``docforge serve`` exposes a snapshot through the documentation tools, and
``docforge run`` does both in one process without writing files.
"""

import sys
import asyncio
import argparse
import logging
from typing import List, Optional

from config.settings import Settings, get_settings
from indexer.build_index import load_snapshot, write_snapshot
from indexer.source_schema import ConfigError, DocforgeError, ProcessedContent
from observability.logging import setup_logging
from pipelines.aggregator import ContentAggregator
from server.api import serve as serve_http
from server.mcp_server import MCPServer
from server.query_engine import QueryEngine
from sources.loader import (
    DEFAULT_MAX_DEPTH, GITHUB, LOCAL, SOURCE_TYPES, TRANSPORTS, WEBSITE,
    GeneratorConfig, GitHubSource, LocalSource, OutputOptions, ProcessingOptions,
    WebsiteSource, load_config
)

logger = logging.getLogger(__name__)


def _add_source_arguments(parser: argparse.ArgumentParser):
    group = parser.add_argument_group("source selection")
    group.add_argument("--config", "-c", help="Configuration file (YAML or JSON)")
    group.add_argument("--source", "-s", choices=sorted(SOURCE_TYPES), help="Single source type")
    group.add_argument("--name", help="Source name (default: <type>-source)")
    group.add_argument("--url", "-u", help="Website URL to crawl")
    group.add_argument("--repo", "-r", help="GitHub repository as owner/repo")
    group.add_argument("--path", "-p", help="Local file or directory")
    group.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH, help="Maximum crawl depth")
    group.add_argument("--branch", help="Repository branch (default: main, then master)")
    group.add_argument("--include-wiki", action="store_true", help="Also ingest the repository wiki")
    group.add_argument("--no-readme", action="store_true", help="Skip README probing")
    group.add_argument("--format", choices=["markdown", "text", "auto"], default="auto",
                       help="Local file format")
    group.add_argument("--exclude", action="append", default=None, help="Exclude pattern (repeatable)")


def _add_serve_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--transport", "-t", choices=TRANSPORTS, default=None,
                        help="Serving transport (default: stdio)")
    parser.add_argument("--host", default=None, help="HTTP bind address")
    parser.add_argument("--port", type=int, default=None, help="HTTP port")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docforge",
        description="Turn documentation sources into a searchable MCP tool server"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest sources and write a content snapshot")
    _add_source_arguments(ingest)
    ingest.add_argument("--output", "-o", help="Output directory for content.json and index.json")
    ingest.add_argument("--dry-run", action="store_true", help="Preview sources without ingesting")

    serve = subparsers.add_parser("serve", help="Serve an existing content snapshot")
    serve.add_argument("--snapshot", required=True, help="content.json file or directory holding one")
    serve.add_argument("--name", default="docforge", help="Server name")
    _add_serve_arguments(serve)

    run = subparsers.add_parser("run", help="Ingest sources and serve them from memory")
    _add_source_arguments(run)
    run.add_argument("--dry-run", action="store_true", help="Preview sources without ingesting")
    _add_serve_arguments(run)

    return parser


def config_from_args(args: argparse.Namespace, settings: Settings) -> GeneratorConfig:
    """Build a configuration from a config file or single-source flags."""
    if args.config:
        config = load_config(args.config)
        if getattr(args, "output", None):
            config.output.directory = args.output
        return config

    if not args.source:
        raise ConfigError("Either --config or --source must be specified")

    name = args.name or f"{args.source}-source"
    if args.source == WEBSITE:
        if not args.url:
            raise ConfigError("--url is required for website sources")
        source = WebsiteSource(name=name, url=args.url, max_depth=args.max_depth,
                               exclude=args.exclude or [])
    elif args.source == GITHUB:
        if not args.repo:
            raise ConfigError("--repo is required for github sources")
        source = GitHubSource(name=name, repo=args.repo, branch=args.branch,
                              include_readme=not args.no_readme, include_wiki=args.include_wiki,
                              exclude=args.exclude)
    elif args.source == LOCAL:
        if not args.path:
            raise ConfigError("--path is required for local sources")
        source = LocalSource(name=name, path=args.path, exclude=args.exclude, format=args.format)
    else:
        raise ConfigError(f"Unsupported source type: {args.source}")

    return GeneratorConfig(
        sources=[source],
        processing=ProcessingOptions(max_concurrency=settings.max_concurrency,
                                     timeout=settings.request_timeout),
        output=OutputOptions(directory=getattr(args, "output", None))
    )


def _ingest(config: GeneratorConfig, settings: Settings, dry_run: bool) -> Optional[ProcessedContent]:
    aggregator = ContentAggregator(config, settings)
    if dry_run:
        print(aggregator.describe())
        return None
    return asyncio.run(aggregator.process())


def _serve(content: ProcessedContent, transport: str, host: str, port: int, name: str,
           settings: Settings):
    engine = QueryEngine(content)
    if transport == "http":
        serve_http(engine, host=host, port=port, name=name, cors_origins=settings.cors_origins)
    else:
        asyncio.run(MCPServer(engine, name=name).serve_stdio())


def cmd_ingest(args: argparse.Namespace, settings: Settings) -> int:
    config = config_from_args(args, settings)
    if not args.dry_run and not config.output.directory:
        raise ConfigError("An output directory is required (--output or output.directory)")
    content = _ingest(config, settings, args.dry_run)
    if content is not None:
        path = write_snapshot(content, config.output.directory)
        print(f"Processed {content.total_items} items from {len(content.sources)} sources into {path}")
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    content = load_snapshot(args.snapshot)
    _serve(content, args.transport or "stdio", args.host or settings.host,
           args.port or settings.port, args.name, settings)
    return 0


def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    config = config_from_args(args, settings)
    content = _ingest(config, settings, args.dry_run)
    if content is None:
        return 0
    transport = args.transport or config.output.transport
    port = args.port or config.output.port or settings.port
    _serve(content, transport, args.host or settings.host, port, "docforge", settings)
    return 0


COMMANDS = {
    "ingest": cmd_ingest,
    "serve": cmd_serve,
    "run": cmd_run,
}


def _uses_stdio(args: argparse.Namespace) -> bool:
    if args.command == "ingest":
        return False
    return (args.transport or "stdio") == "stdio"


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    # stdout carries JSON-RPC in stdio mode, so logs go to stderr there
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_file=settings.log_file,
        use_json=args.json_logs or settings.json_logs,
        use_colors=sys.stderr.isatty(),
        stream=sys.stderr if _uses_stdio(args) else None
    )

    try:
        return COMMANDS[args.command](args, settings)
    except DocforgeError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
