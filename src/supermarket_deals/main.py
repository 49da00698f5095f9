# ==============================================================================
#  Copyright 2025 Matthew Pounsett <matt@conundrum.com>
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
# ==============================================================================
"""CLI entry point for supermarket-deals."""

import argparse
import json
import logging
import sys

import httpx
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from supermarket_deals import __version__
from supermarket_deals.client import MAX_LIMIT, MarktguruClient
from supermarket_deals.config import (
    SET_USAGE,
    PreferenceStore,
    apply_setting,
    keys_path,
    parse_list,
)
from supermarket_deals.errors import ConfigError, SupermarketDealsError, UsageError
from supermarket_deals.formatting import format_deals_json, format_deals_table
from supermarket_deals.models import SearchMeta
from supermarket_deals.pipeline import aggregate

logger = logging.getLogger(__name__)

PROG = "supermarket-deals"
DEFAULT_LIMIT = 20

USAGE = f"""{PROG}

Search German supermarket flyers for product deals via Marktguru.
Results are ranked by best price per litre.

Usage:
  {PROG} search <query> [query ...] [--zip <PLZ>] [--stores <list>] [--limit <n>] [--json]
  {PROG} config
  {PROG} config set <zip|stores|reset> <value>

Options:
  --zip <PLZ>       Postal code to search (default: from config)
  --stores <list>   Comma-separated store filter, e.g. "Lidl,REWE,EDEKA"
  --limit <n>       Max results to show (default: {DEFAULT_LIMIT}, at most {MAX_LIMIT})
  --json            Output JSON
  -v, --verbose     Increase verbosity. Use -vv for debug output.
  --version         Show the program version

Examples:
  {PROG} search "Monster Energy" --zip 85540
  {PROG} search "Coca Cola Zero" "Pepsi Max" --zip 80331 --stores "Lidl,ALDI SÜD"
  {PROG} search "Haribo" --limit 5
  {PROG} config set zip 85540
  {PROG} config set stores "Lidl,REWE,EDEKA,ALDI SÜD,Kaufland"
"""


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser that raises instead of exiting on bad input."""

    def error(self, message: str) -> None:
        raise UsageError(message)


def positive_int(value: str) -> int:
    """Parse ``--limit``, capping it at the API maximum."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("--limit must be a positive integer") from None
    if number <= 0:
        raise argparse.ArgumentTypeError("--limit must be a positive integer")
    return min(number, MAX_LIMIT)


def add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity. Use -vv for debug output.",
    )


def build_search_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog=f"{PROG} search",
        description="Search flyers and rank the offers by price per litre.",
    )
    parser.add_argument("queries", nargs="*", metavar="QUERY", help="Product query.")
    parser.add_argument("--zip", metavar="PLZ", help="Postal code to search.")
    parser.add_argument(
        "--stores",
        type=parse_list,
        metavar="LIST",
        help="Comma-separated store filter.",
    )
    parser.add_argument(
        "--limit",
        type=positive_int,
        default=DEFAULT_LIMIT,
        help=f"Max results to show (default: {DEFAULT_LIMIT}).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Output JSON.",
    )
    add_verbose(parser)
    return parser


def build_config_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog=f"{PROG} config",
        description="Show or change the stored defaults.",
    )
    parser.add_argument("action", nargs="?", choices=["set"])
    parser.add_argument("key", nargs="?", metavar="KEY")
    parser.add_argument("value", nargs="*", metavar="VALUE")
    add_verbose(parser)
    return parser


def parse_args(args: list[str]) -> argparse.Namespace | None:
    """Parse command line arguments.

    Args:
        args: Command line arguments, without the program name.

    Returns:
        Parsed arguments namespace, or None when only the usage text should
        be shown.

    Raises:
        UsageError: On an unknown command or option.
    """
    if not args or args[0] in ("-h", "--help", "help"):
        return None

    command, rest = args[0], args[1:]
    if command == "search":
        parsed = build_search_parser().parse_intermixed_args(rest)
        if not parsed.queries:
            return None
    elif command == "config":
        parsed = build_config_parser().parse_args(rest)
    else:
        raise UsageError(f"Unknown command: {command}. Run with --help for usage.")

    parsed.command = command
    return parsed


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: Verbosity level (0=warning, 1=info, 2+=debug).
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def run_search(parsed_args: argparse.Namespace, console: Console, err_console: Console) -> None:
    """Run the queries and print the ranked deals.

    Args:
        parsed_args: Parsed ``search`` arguments.
        console: Rich console for results.
        err_console: Rich console for progress.
    """
    preferences = PreferenceStore().load()
    queries = [query.strip() for query in parsed_args.queries]
    zip_code = parsed_args.zip or preferences.default_zip
    stores = parsed_args.stores or preferences.default_stores

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    )

    total = len(queries)
    with progress, MarktguruClient() as client:
        task = progress.add_task("Searching...", total=total)

        def on_query(index: int, query: str) -> None:
            progress.update(
                task,
                completed=index,
                description=f"[{index + 1}/{total}] Searching for {escape(query)}...",
            )

        result = aggregate(
            client, queries, zip_code, stores, parsed_args.limit, on_query=on_query
        )
        progress.update(task, completed=total)

    if parsed_args.as_json:
        meta = SearchMeta(
            queries=queries,
            zip=zip_code,
            stores=stores,
            total_raw_results=result.total_raw_results,
            result_count=len(result.deals),
        )
        print(format_deals_json(result.deals, meta))
        return

    console.print(f"Queries: {', '.join(queries)} | ZIP: {zip_code} | Stores: {', '.join(stores)}")
    console.print(
        f"Found {len(result.deals)} deal(s) ({result.total_raw_results} total from API), "
        "ranked by EUR/L\n"
    )
    console.print(format_deals_table(result.deals))


def run_config(parsed_args: argparse.Namespace) -> None:
    """Print the preferences, applying a ``config set`` change first."""
    store = PreferenceStore()
    preferences = store.load()

    if parsed_args.action == "set":
        if not parsed_args.key:
            raise ConfigError(SET_USAGE)
        preferences = apply_setting(preferences, parsed_args.key, " ".join(parsed_args.value))
        store.save(preferences)
        logger.info("Preferences saved to: %s", store.path)

    document = {
        "configPath": str(store.path),
        "keysPath": str(keys_path()),
        "config": preferences.model_dump(by_alias=True),
    }
    print(json.dumps(document, indent=2, ensure_ascii=False))


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    if args is None:
        args = sys.argv[1:]

    console = Console(highlight=False, markup=False, emoji=False, soft_wrap=True)
    err_console = Console(
        stderr=True, highlight=False, markup=False, emoji=False, soft_wrap=True
    )

    if args and args[0] == "--version":
        print(f"{PROG} {__version__}")
        return 0

    try:
        parsed_args = parse_args(args)
        if parsed_args is None:
            print(USAGE)
            return 0

        setup_logging(parsed_args.verbose)
        if parsed_args.command == "search":
            run_search(parsed_args, console, err_console)
        else:
            run_config(parsed_args)
    except (SupermarketDealsError, httpx.HTTPError, OSError) as e:
        err_console.print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
