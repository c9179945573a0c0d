"""
Command-line interface for the DNS sync layer.

This module provides the main CLI entry point with commands for:
- refresh: Refresh the cached domain lists of all (or one) accounts
- domains: List cached domains of an account, with search and tag filter
- records: List DNS records of a domain
- tags / favorite / tag: Domain metadata
- cache: Inspect or clear the persisted cache
- config: Configuration management
"""

import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from . import __version__
from .audit_logger import create_logger
from .config import (
    LoggingConfig,
    PaginationConfig,
    PersistenceConfig,
    ProviderLimitConfig,
    RemoteConfig,
    SystemConfig,
    TimingConfig,
)
from .enums import CacheStatus, NoticeLevel
from .remote import HttpRemoteClient
from .selection import parse_domain_key
from .storage import JsonFileStorage
from .sync_service import DomainSyncService, Notice

DEFAULT_HOME = Path.home() / ".dns_sync"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"
DEFAULT_STORAGE_PATH = DEFAULT_HOME / "storage.json"


def create_default_config(
    storage_path: Optional[Path] = None,
    base_url: str = "http://127.0.0.1:8787",
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        storage_path: Path of the persisted key/value file
        base_url: Backend root URL

    Returns:
        SystemConfig with default values
    """
    return SystemConfig(
        remote=RemoteConfig(base_url=base_url),
        persistence=PersistenceConfig(storage_path=storage_path or DEFAULT_STORAGE_PATH),
        logging=LoggingConfig(),
        pagination=PaginationConfig(),
        timing=TimingConfig(),
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        remote_data = data.get("remote", {})
        remote = RemoteConfig(
            base_url=remote_data.get("base_url", "http://127.0.0.1:8787"),
            timeout=float(remote_data.get("timeout", 15.0)),
            headers=dict(remote_data.get("headers", {})),
        )

        persistence_data = data.get("persistence", {})
        storage_path = persistence_data.get("storage_path")
        persistence = PersistenceConfig(
            storage_path=Path(storage_path) if storage_path else DEFAULT_STORAGE_PATH,
            key_prefix=persistence_data.get("key_prefix", "dns-sync:"),
            hmac_secret=persistence_data.get("hmac_secret"),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            audit_mode=logging_data.get("audit_mode", False),
            audit_signing_key=logging_data.get("audit_signing_key"),
            output_format=logging_data.get("output_format", "text"),
        )

        pagination_data = data.get("pagination", {})
        pagination = PaginationConfig(
            page_size=int(pagination_data.get("page_size", 20)),
            default_max_page_size=int(pagination_data.get("default_max_page_size", 100)),
        )
        if pagination.page_size < 1 or pagination.default_max_page_size < 1:
            raise ValueError("page sizes must be positive")

        timing_data = data.get("timing", {})
        timing = TimingConfig(
            scroll_save_debounce=float(timing_data.get("scroll_save_debounce", 0.3)),
            search_debounce=float(timing_data.get("search_debounce", 0.3)),
        )

        provider_limits = [
            ProviderLimitConfig(
                provider=item["provider"],
                max_page_size_domains=int(item["max_page_size_domains"]),
                max_page_size_records=int(item["max_page_size_records"]),
                supports_proxy=item.get("supports_proxy", False),
            )
            for item in data.get("provider_limits", [])
        ]

        return SystemConfig(
            remote=remote,
            persistence=persistence,
            logging=logging_config,
            pagination=pagination,
            timing=timing,
            provider_limits=provider_limits,
        )

    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "remote": {
                "base_url": config.remote.base_url,
                "timeout": config.remote.timeout,
                "headers": config.remote.headers,
            },
            "persistence": {
                "storage_path": str(config.persistence.storage_path),
                "key_prefix": config.persistence.key_prefix,
                "hmac_secret": config.persistence.hmac_secret,
            },
            "logging": {
                "level": config.logging.level,
                "audit_mode": config.logging.audit_mode,
                "audit_signing_key": config.logging.audit_signing_key,
                "output_format": config.logging.output_format,
            },
            "pagination": {
                "page_size": config.pagination.page_size,
                "default_max_page_size": config.pagination.default_max_page_size,
            },
            "timing": {
                "scroll_save_debounce": config.timing.scroll_save_debounce,
                "search_debounce": config.timing.search_debounce,
            },
            "provider_limits": [
                {
                    "provider": limit.provider,
                    "max_page_size_domains": limit.max_page_size_domains,
                    "max_page_size_records": limit.max_page_size_records,
                    "supports_proxy": limit.supports_proxy,
                }
                for limit in config.provider_limits
            ],
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def print_notice(notice: Notice) -> None:
    stream = sys.stderr if notice.level in (NoticeLevel.WARNING, NoticeLevel.ERROR) else sys.stdout
    print(f"[{notice.level.value}] {notice.message}", file=stream)


@asynccontextmanager
async def open_service(config: SystemConfig, verbose: bool = False) -> AsyncIterator[DomainSyncService]:
    """Build the backend client, file storage and service for one CLI run."""
    logger = None
    if verbose:
        logger = create_logger(
            level=config.logging.level,
            output_format=config.logging.output_format,
            signing_key=config.logging.audit_signing_key if config.logging.audit_mode else None,
        )

    storage = JsonFileStorage(
        config.persistence.storage_path,
        prefix=config.persistence.key_prefix,
        hmac_secret=config.persistence.hmac_secret,
        logger=logger,
    )
    async with HttpRemoteClient(
        config.remote.base_url,
        timeout=config.remote.timeout,
        headers=config.remote.headers,
    ) as remote:
        async with DomainSyncService(
            remote, storage, config=config, logger=logger, notifier=print_notice
        ) as service:
            yield service


def _resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    if args.config:
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
        return config

    config = load_config_from_file(DEFAULT_CONFIG_PATH)
    return config if config is not None else create_default_config()


async def refresh(config: SystemConfig, account_id: Optional[str], verbose: bool = False) -> int:
    async with open_service(config, verbose) as service:
        synced = await service.sync_accounts()
        if not synced.ok:
            return 1

        if account_id:
            if service.get_account(account_id) is None:
                print(f"Unknown account: {account_id}", file=sys.stderr)
                return 1
            result = await service.refresh_account(account_id)
            if not result.ok:
                return 1
            print(f"{account_id}: {len(service.get_domains_for_account(account_id))} domains")
            return 0

        summary = await service.refresh_all_accounts()
        for refreshed in summary.refreshed:
            print(f"{refreshed}: {len(service.get_domains_for_account(refreshed))} domains")
        for failure in summary.failed:
            print(f"{failure.account_id}: {failure.kind.value} - {failure.message}", file=sys.stderr)
        for skipped in summary.skipped_accounts:
            print(f"{skipped}: already refreshing, skipped")
        return 0 if summary.ok else 1


async def list_domains(
    config: SystemConfig,
    account_id: str,
    search: str = "",
    tags: Optional[list[str]] = None,
    more: int = 0,
    verbose: bool = False,
) -> int:
    async with open_service(config, verbose) as service:
        needs_network = more > 0 or service.cache_status(account_id) is CacheStatus.ABSENT
        if needs_network:
            synced = await service.sync_accounts()
            if not synced.ok:
                return 1

        if service.cache_status(account_id) is CacheStatus.ABSENT:
            result = await service.refresh_account(account_id)
            if not result.ok:
                return 1

        for _ in range(more):
            if not service.has_more_domains(account_id):
                break
            await service.load_more_domains(account_id)

        service.set_tag_filter(tags or [])
        domains = service.get_filtered_domains(account_id, search)
        for domain in domains:
            metadata = domain.metadata
            marker = "*" if metadata is not None and metadata.is_favorite else " "
            tag_text = f"  [{', '.join(domain.tags)}]" if domain.tags else ""
            print(f"{marker} {domain.id}  {domain.name}{tag_text}")

        total = len(service.get_domains_for_account(account_id))
        suffix = " (more available)" if service.has_more_domains(account_id) else ""
        print(f"{len(domains)} of {total} cached domains{suffix}")
        return 0


async def list_records(
    config: SystemConfig,
    account_id: str,
    domain_id: str,
    keyword: Optional[str] = None,
    record_type: Optional[str] = None,
    page: int = 1,
    verbose: bool = False,
) -> int:
    async with open_service(config, verbose) as service:
        synced = await service.sync_accounts()
        if not synced.ok:
            return 1

        result = await service.fetch_records(account_id, domain_id, keyword, record_type)
        if result.ok and page > 1:
            result = await service.jump_to_page(account_id, domain_id, page)
        if not result.ok:
            return 1

        state = service.records.state
        for record in state.items:
            extra = f" (priority {record.priority})" if record.priority is not None else ""
            print(f"{record.id}  {record.type.value:<5} {record.name}  {record.value}  ttl={record.ttl}{extra}")
        print(f"Page {state.page}, {len(state.items)} of {state.total_count} records")
        return 0


async def toggle_favorite(
    config: SystemConfig, account_id: str, domain_id: str, verbose: bool = False
) -> int:
    async with open_service(config, verbose) as service:
        result = await service.toggle_favorite(account_id, domain_id)
        if not result.ok:
            return 1
        print("Favorited" if result.value else "Unfavorited")
        return 0


async def batch_tags(
    config: SystemConfig,
    action: str,
    keys: list[str],
    tags: list[str],
    verbose: bool = False,
) -> int:
    async with open_service(config, verbose) as service:
        service.toggle_batch_mode()
        for key in keys:
            parsed = parse_domain_key(key)
            if parsed is None:
                print(f"Invalid domain key (expected ACCOUNT::DOMAIN): {key}", file=sys.stderr)
                return 1
            service.toggle_domain_selection(*parsed)

        if action == "add":
            result = await service.batch_add_tags(tags)
        elif action == "remove":
            result = await service.batch_remove_tags(tags)
        else:
            result = await service.batch_set_tags(tags)

        if result.value is not None:
            for failure in result.value.failures:
                print(f"  {failure.account_id}::{failure.domain_id}: {failure.reason}", file=sys.stderr)
        return 0 if result.ok else 1


def cmd_refresh(args: argparse.Namespace) -> int:
    """Handle the 'refresh' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(refresh(config, args.account, verbose=args.verbose))


def cmd_domains(args: argparse.Namespace) -> int:
    """Handle the 'domains' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(list_domains(
        config,
        args.account,
        search=args.search or "",
        tags=args.tag,
        more=args.more,
        verbose=args.verbose,
    ))


def cmd_records(args: argparse.Namespace) -> int:
    """Handle the 'records' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(list_records(
        config,
        args.account,
        args.domain,
        keyword=args.keyword,
        record_type=args.type,
        page=args.page,
        verbose=args.verbose,
    ))


def cmd_tags(args: argparse.Namespace) -> int:
    """Handle the 'tags' command (offline, reads the cache only)."""
    config = _resolve_config(args)
    if config is None:
        return 1

    async def run() -> int:
        async with open_service(config, args.verbose) as service:
            for tag in service.get_all_used_tags():
                print(tag)
        return 0

    return asyncio.run(run())


def cmd_favorite(args: argparse.Namespace) -> int:
    """Handle the 'favorite' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(toggle_favorite(config, args.account, args.domain, verbose=args.verbose))


def cmd_tag(args: argparse.Namespace) -> int:
    """Handle the 'tag' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(batch_tags(config, args.action, args.keys, args.tags, verbose=args.verbose))


def cmd_cache(args: argparse.Namespace) -> int:
    """Handle the 'cache' command."""
    config = _resolve_config(args)
    if config is None:
        return 1

    async def run() -> int:
        async with open_service(config, args.verbose) as service:
            if args.action == "clear":
                service.clear_all()
                print("Cache cleared.")
                return 0

            account_ids = service.cache.account_ids()
            if not account_ids:
                print("Cache is empty.")
            for account_id in account_ids:
                entry = service.cache.get(account_id)
                print(
                    f"{account_id}: {len(entry.items)} domains, page {entry.page}, "
                    f"has_more={entry.has_more}, status={service.cache_status(account_id).value}"
                )
            favorites = service.get_favorite_domains()
            if favorites:
                print(f"Favorites: {', '.join(f.domain.name for f in favorites)}")
            recent = service.recent_domains.entries()
            if recent:
                print(f"Recent: {', '.join(r.domain_name for r in recent)}")
            return 0

    return asyncio.run(run())


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Backend: {config.remote.base_url}")
        print(f"  Storage file: {config.persistence.storage_path}")
        print(f"  Key prefix: {config.persistence.key_prefix}")
        print(f"  Page size: {config.pagination.page_size}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Audit mode: {config.logging.audit_mode}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = create_default_config(base_url=args.base_url)
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dns-sync",
        description="Cached, paginated domain and DNS record sync for multiple DNS provider accounts",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'refresh' command
    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Refresh cached domain lists from the backend",
    )
    refresh_parser.add_argument(
        "--account", "-a",
        help="Only refresh this account",
    )
    _add_common_arguments(refresh_parser)
    refresh_parser.set_defaults(func=cmd_refresh)

    # 'domains' command
    domains_parser = subparsers.add_parser(
        "domains",
        help="List cached domains of an account",
    )
    domains_parser.add_argument("account", help="Account id")
    domains_parser.add_argument(
        "--search", "-s",
        help="Case-insensitive name filter",
    )
    domains_parser.add_argument(
        "--tag", "-t",
        action="append",
        help="Only show domains carrying this tag (repeatable, any-of)",
    )
    domains_parser.add_argument(
        "--more", "-m",
        type=int,
        default=0,
        help="Load this many additional pages first",
    )
    _add_common_arguments(domains_parser)
    domains_parser.set_defaults(func=cmd_domains)

    # 'records' command
    records_parser = subparsers.add_parser(
        "records",
        help="List DNS records of a domain",
    )
    records_parser.add_argument("account", help="Account id")
    records_parser.add_argument("domain", help="Domain id")
    records_parser.add_argument(
        "--keyword", "-k",
        help="Server-side keyword search",
    )
    records_parser.add_argument(
        "--type",
        help="Record type filter (e.g., A, CNAME)",
    )
    records_parser.add_argument(
        "--page", "-p",
        type=int,
        default=1,
        help="Page to show (default: 1)",
    )
    _add_common_arguments(records_parser)
    records_parser.set_defaults(func=cmd_records)

    # 'tags' command
    tags_parser = subparsers.add_parser(
        "tags",
        help="List every tag used by cached domains",
    )
    _add_common_arguments(tags_parser)
    tags_parser.set_defaults(func=cmd_tags)

    # 'favorite' command
    favorite_parser = subparsers.add_parser(
        "favorite",
        help="Toggle the favorite flag of a domain",
    )
    favorite_parser.add_argument("account", help="Account id")
    favorite_parser.add_argument("domain", help="Domain id")
    _add_common_arguments(favorite_parser)
    favorite_parser.set_defaults(func=cmd_favorite)

    # 'tag' command
    tag_parser = subparsers.add_parser(
        "tag",
        help="Add, remove or replace tags on several domains at once",
    )
    tag_parser.add_argument(
        "action",
        choices=["add", "remove", "set"],
        help="Tag operation",
    )
    tag_parser.add_argument(
        "keys",
        nargs="+",
        help="Domains as ACCOUNT::DOMAIN",
    )
    tag_parser.add_argument(
        "--tags",
        nargs="*",
        default=[],
        help="Tags to apply",
    )
    _add_common_arguments(tag_parser)
    tag_parser.set_defaults(func=cmd_tag)

    # 'cache' command
    cache_parser = subparsers.add_parser(
        "cache",
        help="Inspect or clear the persisted cache",
    )
    cache_parser.add_argument(
        "action",
        choices=["show", "clear"],
        help="Cache action",
    )
    _add_common_arguments(cache_parser)
    cache_parser.set_defaults(func=cmd_cache)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.add_argument(
        "--base-url",
        default="http://127.0.0.1:8787",
        help="Backend URL for new configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
