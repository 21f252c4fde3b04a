#!/usr/bin/env python

# src/ddb_tools/cli.py

"""
Command-line entry point: ``ddbtools purge --table-name <table>``.

Parses arguments, loads configuration, builds the DynamoDB client, runs the
purge under a progress bar and reports the result. Exit codes:

    0  every observed item was deleted
    1  usage error (unknown subcommand, missing table name)
    2  configuration, credential or fatal purge error
    3  the purge ran but some deletions failed
"""

import argparse
import logging
import sys

from aws_lambda_powertools import Logger
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers
from botocore.exceptions import NoCredentialsError, NoRegionError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from .clients import build_dynamodb_client
from .config import AppConfig, get_config
from .core import TablePurger
from .exceptions import (
    ConfigurationError,
    DdbToolsError,
    MissingParameterError,
    ValidationError,
    get_error_context,
)
from .schemas import PurgeResult

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_ERROR = 2
EXIT_PARTIAL = 3

logger = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with exit code 1 instead of argparse's 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="ddbtools",
        description="Maintenance tools for DynamoDB tables.",
    )
    subparsers = parser.add_subparsers(dest="subcommand", metavar="subcommand")

    purge = subparsers.add_parser(
        "purge",
        help="Delete every item of a table, keeping the table itself.",
        description="Delete every item of a table, keeping its schema, throughput and ARN.",
    )
    purge.add_argument("-t", "--table-name", help="Name of the table to empty.")
    purge.add_argument("--region", help="AWS region (defaults to AWS_REGION / profile).")
    purge.add_argument(
        "--max-concurrency",
        type=int,
        help="Maximum number of BatchWriteItem requests in flight.",
    )
    purge.add_argument(
        "--log-level",
        type=str.upper,
        help="Log level for the structured logs written to stderr.",
    )
    purge.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output, including full exception tracebacks.",
    )
    return parser


def setup_logging(config: AppConfig) -> Logger:
    """
    Structured JSON logs on stderr, so stdout only carries the result line.
    The package's module loggers share the same handler and level.
    """
    logger = Logger(
        service=config.service_name,
        level=config.log_level,
        logger_handler=logging.StreamHandler(sys.stderr),
    )
    # Registers the package logger so its module loggers inherit the handler.
    logging.getLogger("ddb_tools")
    copy_config_to_registered_loggers(source_logger=logger, include={"ddb_tools"})
    return logger


def _report_error(console: Console, title: str, message: str) -> None:
    console.print("\n[bold red]❌ PURGE FAILED[/bold red]\n")
    console.print(Panel(message, title=title, border_style="red"))


def _report_result(console: Console, err_console: Console, result: PurgeResult) -> int:
    console.print(f"Deleted {result.item_count} items", highlight=False)

    summary = result.delete_summary
    if result.fully_deleted:
        return EXIT_OK

    err_console.print(
        f"[bold yellow]⚠ {summary.batches_failed} of {summary.batches_total} batches "
        f"failed; {summary.items_failed} items may remain in '{result.table_name}'.[/bold yellow]"
    )
    return EXIT_PARTIAL


def run_purge(args: argparse.Namespace, console: Console, err_console: Console) -> int:
    if not args.table_name:
        raise MissingParameterError("table-name")

    config = get_config().with_overrides(
        region=args.region,
        max_concurrency=args.max_concurrency,
        log_level=args.log_level,
    )
    purge_logger = setup_logging(config)
    client = build_dynamodb_client(config)

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"[cyan]Purging '{args.table_name}'", total=None)

        def on_batch_done(outcome):
            progress.update(task, total=purger.batch_count, advance=1)

        purger = TablePurger(
            client,
            max_batch_size=config.max_batch_size,
            max_concurrency=config.max_concurrency,
            on_batch_done=on_batch_done,
        )
        result = purger.purge(args.table_name)

    purge_logger.info(
        "Purge complete",
        extra={
            "table_name": result.table_name,
            "item_count": result.item_count,
            "confirmed_count": result.confirmed_count,
        },
    )
    return _report_result(console, err_console, result)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the ddbtools command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    console = Console()
    err_console = Console(stderr=True)

    if args.subcommand is None:
        err_console.print("missing subcommand", highlight=False)
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    try:
        return run_purge(args, console, err_console)

    except ValidationError as e:
        err_console.print(e.message, highlight=False, markup=False)
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    except ConfigurationError as e:
        _report_error(err_console, "Configuration Error", e.message)
        return EXIT_ERROR

    except NoCredentialsError:
        error_message = (
            "AWS credentials not found. Please configure them using one of the following methods:\n"
            "  1. Environment variables (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)\n"
            "  2. A shared credentials file (~/.aws/credentials) with a profile.\n"
            "  3. An IAM role attached to the EC2 instance or ECS task."
        )
        _report_error(err_console, "Authentication Error", error_message)
        return EXIT_ERROR

    except NoRegionError:
        error_message = (
            "An AWS region was not specified. Please configure it using one of the following methods:\n"
            "  1. The --region command-line flag.\n"
            "  2. The AWS_REGION or AWS_DEFAULT_REGION environment variables.\n"
            "  3. The 'region' setting in your ~/.aws/config file."
        )
        _report_error(err_console, "Configuration Error", error_message)
        return EXIT_ERROR

    except DdbToolsError as e:
        logger.error("Purge failed", extra={"error": get_error_context(e)})
        _report_error(err_console, "DynamoDB Error", e.message)
        if args.verbose:
            err_console.print_exception()
        return EXIT_ERROR

    except Exception as e:
        logger.exception("Unexpected error during purge", extra={"error": get_error_context(e)})
        _report_error(err_console, "Unexpected Error", str(e) or e.__class__.__name__)
        if args.verbose:
            err_console.print_exception()
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
