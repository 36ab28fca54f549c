#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK
"""
Command-line interface for Treasure Trove
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import argcomplete

from . import extraction, labels, printing
from ._version import __version__
from .config import Config
from .errors import InvalidPayloadError, PrintUnavailableError
from .storage import JsonItemStore, item_view, store_candidates


def _open_store(config: Config) -> JsonItemStore:
    return JsonItemStore(config.store_file)


def extract_command(text: str, config: Config, as_json: bool = False, use_llm: bool = True) -> int:
    """Show the items that would be extracted from text."""
    if not use_llm:
        config.data.setdefault("llm", {})["enabled"] = False
    items = extraction.extract(text, config)

    if as_json:
        print(json.dumps([item.to_dict() for item in items], indent=2, ensure_ascii=False))
        return 0

    if not items:
        print("No items found")
        return 0
    for item in items:
        print(f"{item.quantity} × {item.name}  ({item.confidence.value})")
    return 0


def add_command(
    text: str,
    config: Config,
    bin_name: str | None = None,
    location: str | None = None,
    print_labels: bool = False,
) -> int:
    """Extract items from text, store them and optionally print their labels."""
    store = _open_store(config)
    candidates = extraction.extract(text, config)
    if not candidates:
        print("⚠️  No items found in text")
        return 1

    items = store_candidates(store, candidates, container=bin_name, location=location)
    for item in items:
        view = item_view(store, item)
        line = f"✅ #{item.id}: {item.quantity} × {item.name}"
        if view["container"]:
            line += f" — Bin: {view['container']}"
        if view["location"]:
            line += f" — Location: {view['location']}"
        print(line)

    if print_labels:
        failed = 0
        for item in items:
            if print_command(item.id, config, store=store) != 0:
                failed += 1
        return 1 if failed else 0
    return 0


def list_command(config: Config) -> int:
    """List stored items."""
    store = _open_store(config)
    items = store.list_items()
    if not items:
        print("No items stored")
        return 0
    for item in items:
        view = item_view(store, item)
        where = " / ".join(part for part in (view["location"], view["container"]) if part)
        print(f"{item.id:>5}  {item.quantity:>3} × {item.name}" + (f"  [{where}]" if where else ""))
    return 0


def label_command(
    item_id: int,
    config: Config,
    output: Path | None = None,
    preview: Path | None = None,
) -> int:
    """Write an item's ZPL label to stdout or a file, or render a PNG preview."""
    store = _open_store(config)
    try:
        item = store.get(item_id)
    except KeyError:
        print(f"❌ Item {item_id} not found", file=sys.stderr)
        return 1

    layout = labels.LabelLayout.from_config(config)
    container_name = store.container_name(item.container_id)
    location_name = store.location_name(item.location_id)

    if preview is not None:
        try:
            img = labels.render_preview(item, container_name, location_name, layout)
        except ImportError as e:
            print(f"Missing required package: {e}")
            print("\nInstall preview dependencies:")
            print('  pip install "treasure-trove[preview]"')
            return 1
        img.save(preview)
        print(f"✅ Created {preview}")
        return 0

    payload = labels.compose(item, container_name, location_name, layout)
    if output is not None:
        output.write_text(payload, encoding="utf-8")
        print(f"✅ Created {output}")
    else:
        sys.stdout.write(payload)
    return 0


def print_command(
    item_id: int,
    config: Config,
    queue: str | None = None,
    store: JsonItemStore | None = None,
) -> int:
    """Print an item's label."""
    store = store or _open_store(config)
    try:
        item = store.get(item_id)
    except KeyError:
        print(f"❌ Item {item_id} not found", file=sys.stderr)
        return 1

    try:
        job = printing.print_item(
            item,
            config,
            container_name=store.container_name(item.container_id),
            location_name=store.location_name(item.location_id),
            queue=queue,
        )
    except PrintUnavailableError as e:
        print(f"❌ Printer offline, retry later: {e}", file=sys.stderr)
        return 1
    except InvalidPayloadError as e:
        print(f"❌ Internal error, please report it: {e}", file=sys.stderr)
        return 1

    job_info = f" (job {job.job_id})" if job.job_id else ""
    print(f"🖨️  Printed label for #{item.id} {item.name} on {job.target_queue}{job_info}")
    return 0


def serve_command(config: Config, host: str, port: int) -> int:
    """Start the web form and JSON API server."""
    try:
        import uvicorn

        from . import api_server
    except ImportError as e:
        print(f"❌ Missing required package: {e}")
        print("\nInstall API server dependencies:")
        print('  pip install "treasure-trove[api]"')
        return 1

    api_server.config = config
    print("🚀 Starting Treasure Trove...")
    print(f"🌐 Server will run at: http://{host}:{port}")
    print(f"📦 Item store: {config.store_file or '(in memory)'}")
    if config.llm_enabled:
        print(f"🤖 Language model: {config.llm_provider} {config.llm_model}")
    else:
        print("ℹ️  Language model disabled, using rule-based extraction")
    print("Press Ctrl+C to stop\n")

    try:
        uvicorn.run(api_server.app, host=host, port=port, log_level="info")
    except KeyboardInterrupt:
        print("\n\n👋 Server stopped")
    return 0


def config_command(config: Config, show: bool = False, show_path: bool = False) -> int:
    """Show configuration information.

    With no flags the merged configuration is shown; ``--path`` alone only
    prints the config file path, and ``--path --show`` prints both.
    """
    if show_path:
        print(config.path if config.path else "No configuration file found")
        if not show:
            return 0

    if config.path:
        print(f"# Configuration loaded from: {config.path}")
    else:
        print("# No configuration file found, showing defaults")
    print()
    print(json.dumps(config.data, indent=2))
    return 0


def build_parser(config: Config) -> argparse.ArgumentParser:
    parser_cli = argparse.ArgumentParser(
        prog="treasure-trove",
        description="Treasure Trove - a household ledger for tools and treasures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # See what would be extracted
  treasure-trove extract "two boxes of screws and a hammer"

  # Store items in a bin and print their labels
  treasure-trove add "2 hammers, tape" --bin "Spring 1" --location Garage --print

  # Start the web form
  treasure-trove serve
        """,
    )
    parser_cli.add_argument('--version', '-V', action='version', version=f'%(prog)s {__version__}')
    parser_cli.add_argument('--verbose', '-v', action='store_true', help='Show debug logging')
    parser_cli.add_argument('--config', '-c', type=Path, help='Config file (default: search standard locations)')

    subparsers = parser_cli.add_subparsers(dest='command', help='Command to run')

    config_parser = subparsers.add_parser('config', help='Show configuration')
    config_parser.add_argument('--show', action='store_true', help='Show merged configuration')
    config_parser.add_argument('--path', action='store_true', help='Show config file path')

    extract_parser = subparsers.add_parser('extract', help='Extract items from text without storing them')
    extract_parser.add_argument('text', help='Free text, e.g. "2 hammers and a saw"')
    extract_parser.add_argument('--json', '-j', action='store_true', help='Output as JSON')
    extract_parser.add_argument('--no-llm', action='store_true', help='Only use rule-based extraction')

    add_parser = subparsers.add_parser('add', help='Extract items from text and store them')
    add_parser.add_argument('text', help='Free text, e.g. "2 hammers and a saw"')
    add_parser.add_argument('--bin', '-b', type=str, help='Bin (container) to store the items in')
    add_parser.add_argument('--location', '-l', type=str, help='Location of the items')
    add_parser.add_argument('--print', '-p', action='store_true', dest='print_labels', help='Print a label per item')

    subparsers.add_parser('list', help='List stored items')

    label_parser = subparsers.add_parser('label', help='Show the ZPL label of an item')
    label_parser.add_argument('item_id', type=int, help='Item id')
    label_parser.add_argument('--output', '-o', type=Path, help='Write ZPL to this file')
    label_parser.add_argument('--preview', type=Path, metavar='PNG', help='Render a PNG preview instead')

    print_parser = subparsers.add_parser('print', help='Print the label of an item')
    print_parser.add_argument('item_id', type=int, help='Item id')
    print_parser.add_argument('--queue', '-q', type=str, default=None,
                              help=f'Print queue or printer address (default: {config.printer_queue})')

    serve_parser = subparsers.add_parser('serve', help='Start the web form and API server')
    serve_parser.add_argument('--port', '-p', type=int, default=None, help=f'Port number (default: {config.api_port})')
    serve_parser.add_argument('--host', type=str, default=None, help=f'Host to bind to (default: {config.api_host})')

    return parser_cli


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    # Only --config matters before the real parser is built
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument('--config', '-c', type=Path)
    pre_args, _ = pre_parser.parse_known_args(argv)
    config = Config(pre_args.config)

    parser_cli = build_parser(config)
    argcomplete.autocomplete(parser_cli)
    args = parser_cli.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == 'config':
        return config_command(config, show=args.show, show_path=args.path)
    elif args.command == 'extract':
        return extract_command(args.text, config, as_json=args.json, use_llm=not args.no_llm)
    elif args.command == 'add':
        return add_command(args.text, config, args.bin, args.location, args.print_labels)
    elif args.command == 'list':
        return list_command(config)
    elif args.command == 'label':
        return label_command(args.item_id, config, args.output, args.preview)
    elif args.command == 'print':
        return print_command(args.item_id, config, queue=args.queue)
    elif args.command == 'serve':
        host = args.host if args.host is not None else config.api_host
        port = args.port if args.port is not None else config.api_port
        return serve_command(config, host, port)
    else:
        parser_cli.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
