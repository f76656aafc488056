"""Command-line interface for the pack builder."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

from .config import BACKENDS, Config, load_config, save_config
from .service import PackService
from .utils import ConfigError, PackBuilderError, PointerSyncError, format_bytes, setup_logging

T = TypeVar("T")


def _cli_header() -> str:
    return (
        "\n"
        f"{Fore.CYAN}Pack Builder{Style.RESET_ALL}\n"
        f"{Fore.WHITE}Publish content packs and keep the bootstrap pointer current.{Style.RESET_ALL}\n"
    )


def _command_showcase() -> List[Tuple[str, str, str]]:
    return [
        ("init", "Configure", "Write the .env file."),
        ("publish [folder] --version N", "Publish a pack", "Hash, upload, move pointer."),
        ("list [--limit N]", "List packs", "Newest version first."),
        ("info <pack_id>", "Pack details", "Assets and custom URLs."),
        ("delete <pack_id>", "Delete a pack", "Re-points the bootstrap record."),
        ("latest", "Resolve latest", "Show pointer and deep link."),
        ("repair", "Repair pointer", "Recompute after a failed delete."),
        ("serve-store", "Run store server", "HTTP record store on SQLite."),
    ]


def _print_command_help(title: str) -> None:
    print(_cli_header())
    print(title)
    print("Usage: python main.py <command> [options]")
    print("\nAvailable commands:\n")
    for command, label, usecase in _command_showcase():
        print(f"  {command:<30} - {label} ({usecase})")
    print("\nExamples:")
    print("  python main.py publish ./pack --version 3 --url https://example.com/notes")
    print("  python main.py publish --version 4 --file ./a.png --file ./b.png")
    print("  python main.py delete 5f0c2a...            # Pointer moves to the next version")
    print("")


class _FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        _print_command_help(f"{Fore.RED}Error:{Style.RESET_ALL} {message}")
        print(f"{Fore.YELLOW}Tip:{Style.RESET_ALL} Run `python main.py help` for examples.")
        raise SystemExit(2)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = _FriendlyArgumentParser(description="Pack Builder CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init", help="Write configuration")

    publish_parser = subparsers.add_parser("publish", help="Publish a content pack")
    publish_parser.add_argument("folder", nargs="?", help="Folder whose files form the pack")
    publish_parser.add_argument("--version", type=int, required=True, help="Pack version")
    publish_parser.add_argument(
        "--file", action="append", default=[], dest="files", help="Extra file (repeatable)"
    )
    publish_parser.add_argument(
        "--url", action="append", default=[], dest="urls", help="Custom URL (repeatable, max 5)"
    )

    list_parser = subparsers.add_parser("list", help="List packs")
    list_parser.add_argument("--limit", type=int, default=None, help="Maximum packs shown")

    info_parser = subparsers.add_parser("info", help="Pack details")
    info_parser.add_argument("pack_id", help="Pack ID")

    delete_parser = subparsers.add_parser("delete", help="Delete a pack")
    delete_parser.add_argument("pack_id", help="Pack ID")
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")

    subparsers.add_parser("latest", help="Show the bootstrap pointer")
    subparsers.add_parser("repair", help="Recompute the bootstrap pointer")

    serve_parser = subparsers.add_parser("serve-store", help="Run the HTTP record store")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind")
    serve_parser.add_argument("--port", type=int, default=8765, help="Port to bind")

    subparsers.add_parser("help", help="Show help and usage examples")
    return parser.parse_args(argv)


def _run_with_service(work: Callable[[PackService], Awaitable[T]]) -> T:
    async def _run() -> T:
        async with PackService.from_config() as service:
            return await work(service)

    return asyncio.run(_run())


def _prompt(label: str, default: Any) -> str:
    value = input(f"{label} [{default}]: ").strip()
    return value or str(default)


def command_init(_: argparse.Namespace) -> None:
    """
    Handle init command.
    """
    current = load_config()
    print(f"{Fore.CYAN}Pack Builder setup{Style.RESET_ALL}")
    backend = _prompt("Store backend (sqlite/http)", current.store_backend).lower()
    if backend not in BACKENDS:
        raise ConfigError(f"Unknown store backend: {backend}")
    updated = replace(
        current,
        store_backend=backend,
        store_url=_prompt("Store server URL", current.store_url).rstrip("/"),
        container_id=_prompt("Container ID", current.container_id),
        bootstrap_record_name=_prompt("Bootstrap record name", current.bootstrap_record_name),
        deep_link_scheme=_prompt("Deep link scheme", current.deep_link_scheme),
    )
    path = save_config(updated)
    Config.reset_instance()
    print(f"{Fore.GREEN}✅ Configuration saved to {path}{Style.RESET_ALL}")


def command_publish(args: argparse.Namespace) -> None:
    """
    Handle publish command.
    """
    if args.folder is None and not args.files:
        raise PackBuilderError("Give a folder, --file, or both.")
    folder = Path(args.folder) if args.folder else None
    extra_files = [Path(item) for item in args.files]
    if len(args.urls) > 5:
        print(f"{Fore.YELLOW}Only the first 5 custom URLs are kept.{Style.RESET_ALL}")

    progress = tqdm(total=0, desc="Hashing", unit="file")

    def _progress(done: int, total: int) -> None:
        progress.n = done
        progress.total = total
        progress.refresh()

    try:
        result = _run_with_service(
            lambda service: service.publish(
                folder,
                args.version,
                custom_urls=args.urls,
                extra_files=extra_files,
                progress_callback=_progress,
            )
        )
    finally:
        progress.close()
    print(
        f"{Fore.GREEN}✅ Published pack {result.pack_id} "
        f"(version {result.version}, {result.asset_count} assets){Style.RESET_ALL}"
    )


def command_list(args: argparse.Namespace) -> None:
    """
    Handle list command.
    """
    packs = _run_with_service(lambda service: service.list_packs(args.limit))
    if not packs:
        print("No packs found. Publish one with `python main.py publish <folder> --version 1`.")
        return
    print(f"{Fore.CYAN}Published packs:{Style.RESET_ALL}")
    print(f"{'Pack ID':<34}  {'Version':>8}  {'Assets':>7}  {'Created':<20}")
    print("-" * 75)
    for pack in packs:
        created = pack.created_at.strftime("%Y-%m-%d %H:%M:%S") if pack.created_at else "-"
        print(f"{pack.pack_id:<34}  {pack.version:>8}  {pack.asset_count:>7}  {created:<20}")


def command_info(args: argparse.Namespace) -> None:
    """
    Handle info command.
    """
    pack = _run_with_service(lambda service: service.get_pack(args.pack_id))
    print(f"{Fore.CYAN}Pack details{Style.RESET_ALL}")
    print(f"Pack ID: {pack.pack_id}")
    print(f"Version: {pack.version}")
    if pack.created_at:
        print(f"Created: {pack.created_at.isoformat()}")
    print(f"Assets: {len(pack.assets)}")
    for entry in pack.assets:
        size = entry.asset.size if entry.asset and entry.asset.size is not None else None
        size_text = format_bytes(size) if size is not None else "?"
        print(f"  {entry.key:<40} {entry.filename:<30} {size_text:>10}")
    if pack.custom_urls:
        print("Custom URLs:")
        for url in pack.custom_urls:
            print(f"  {url}")


def command_delete(args: argparse.Namespace) -> None:
    """
    Handle delete command.
    """
    if not args.yes:
        confirm = input(f"Delete pack {args.pack_id}? [y/N]: ").strip().lower()
        if confirm != "y":
            print("Delete cancelled.")
            return
    outcome = _run_with_service(lambda service: service.delete_pack(args.pack_id))
    print(f"{Fore.YELLOW}Deleted pack {outcome.pack_id}.{Style.RESET_ALL}")
    if outcome.head_id:
        print(f"Bootstrap pointer now names {outcome.head_id} (version {outcome.head_version}).")
    else:
        print("No packs left. Bootstrap pointer cleared.")


def command_latest(_: argparse.Namespace) -> None:
    """
    Handle latest command.
    """

    async def _work(service: PackService) -> Tuple[Any, str]:
        return await service.pointer_state(), service.bootstrap_link()

    state, link = _run_with_service(_work)
    if state.cleared:
        print(f"{Fore.YELLOW}Bootstrap pointer is cleared.{Style.RESET_ALL}")
    else:
        print(f"Latest pack: {state.pack_id} (version {state.version})")
    print(f"Deep link: {link}")


def command_repair(_: argparse.Namespace) -> None:
    """
    Handle repair command.
    """
    state = _run_with_service(lambda service: service.repair_pointer())
    if state.cleared:
        print(f"{Fore.GREEN}✅ Bootstrap pointer cleared (no packs).{Style.RESET_ALL}")
    else:
        print(
            f"{Fore.GREEN}✅ Bootstrap pointer set to {state.pack_id} "
            f"(version {state.version}).{Style.RESET_ALL}"
        )


def command_serve_store(args: argparse.Namespace) -> None:
    from .store_server import run

    run(args.host, args.port)


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point.
    """
    colorama_init()
    args = parse_arguments(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    handlers = {
        "init": command_init,
        "publish": command_publish,
        "list": command_list,
        "info": command_info,
        "delete": command_delete,
        "latest": command_latest,
        "repair": command_repair,
        "serve-store": command_serve_store,
    }
    try:
        if not args.command:
            _print_command_help("Choose a command to continue.")
            return
        if args.command == "help":
            _print_command_help("Pack Builder CLI Help")
            return
        handlers[args.command](args)
    except PointerSyncError as exc:
        print(f"{Fore.RED}Error: {exc}{Style.RESET_ALL}")
        print(f"{Fore.YELLOW}Tip:{Style.RESET_ALL} Run `python main.py repair` to fix the pointer.")
        raise SystemExit(1)
    except PackBuilderError as exc:
        print(f"{Fore.RED}Error: {exc}{Style.RESET_ALL}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
