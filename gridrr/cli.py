"""Command-line interface for the gridrr application."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import pprint
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, parse_app_config, parse_env_config
from .models import SortOrder
from .runner import RunConfig, execute
from .store import NotFound, StoreError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Browse the curated website gallery from the terminal."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument(
        "--load-websites",
        metavar="PATH",
        help="Seed the local SQL store from a JSON snapshot before running.",
    )

    subparsers = parser.add_subparsers(dest="command")

    feed_parser = subparsers.add_parser("feed", help="List websites page by page.")
    feed_parser.add_argument(
        "--category", default=None, help="Category slug, e.g. 'web-design'."
    )
    feed_parser.add_argument(
        "--sort",
        choices=[order.value for order in SortOrder],
        default=SortOrder.LATEST.value,
    )
    feed_parser.add_argument(
        "--pages", type=int, default=1, help="Number of pages to load."
    )
    feed_parser.add_argument(
        "--format", dest="output_format", choices=["text", "html", "json"], default="text"
    )

    site_parser = subparsers.add_parser("site", help="Show one website.")
    site_parser.add_argument("website_id")
    site_parser.add_argument(
        "--format", dest="output_format", choices=["text", "json"], default="text"
    )

    categories_parser = subparsers.add_parser(
        "categories", help="Show website counts per category."
    )
    categories_parser.add_argument(
        "--format", dest="output_format", choices=["text", "json"], default="text"
    )

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def build_run_config(args: argparse.Namespace, app_config: AppConfig) -> RunConfig:
    """Merge parsed CLI arguments with the application configuration."""
    command = args.command or "feed"
    return RunConfig(
        command=command,
        category=getattr(args, "category", None),
        sort_order=getattr(args, "sort", SortOrder.LATEST.value),
        pages=getattr(args, "pages", 1),
        output_format=getattr(args, "output_format", "text"),
        website_id=getattr(args, "website_id", None),
        page_size=app_config.page_size,
        site_url=app_config.site_url,
        ref_tag=app_config.ref_tag,
        categories_file=app_config.categories_file,
        store_backend=app_config.store.backend,
        database_connection_string=app_config.store.connection_string,
        firestore_project_id=app_config.store.project_id,
        firestore_api_key_env=app_config.store.api_key_env,
        firestore_collection=app_config.store.collection,
        store_timeout=app_config.store.timeout,
        load_websites_path=args.load_websites,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        if app_config.env_file:
            env_vars = parse_env_config(app_config.env_file)
            os.environ.update(env_vars)

        # CLI overrides config
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        config = build_run_config(args, app_config)

        config_dict = dataclasses.asdict(config)
        if config_dict.get("database_connection_string"):
            config_dict["database_connection_string"] = "***MASKED***"

        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        result = execute(config)
    except ValueError as exc:
        parser.error(str(exc))
    except (NotFound, StoreError, RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    print(result.output_text)
    return 0 if result.success else 1
