"""CLI entry point for EthicScreen."""

import argparse
import asyncio
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from ethicscreen.config import settings
from ethicscreen.connectors import DatabaseSource, MockSource, YahooFinanceConnector
from ethicscreen.models import BdsCategory, InvalidRequestError, ScreenResponse
from ethicscreen.screening import ScreeningService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_screen(
    payload: dict,
    output_path: Optional[Path] = None,
    use_mock: bool = False,
    as_json: bool = False,
) -> ScreenResponse:
    """Screen a request and report the results."""
    if use_mock:
        source = MockSource()
        logger.info("Using mock data source")
        service = ScreeningService(source=source, sink=source)
    else:
        store = DatabaseSource()
        logger.info(f"Using database at {settings.db_path}")
        service = ScreeningService(source=store, financials=YahooFinanceConnector(), sink=store)

    response = await service.screen(payload)

    if output_path:
        export_to_csv(response, output_path)
        logger.info(f"Results exported to {output_path}")

    if as_json:
        print(response.model_dump_json(by_alias=True, indent=2))
    else:
        print_summary(response)

    return response


def _section(parent: dict, key: str, path: str) -> dict:
    """Get a nested object of the request, creating it when absent or null."""
    value = parent.get(key)
    if value is None:
        value = parent[key] = {}
    elif not isinstance(value, dict):
        raise ValueError(f"'{path}' must be an object, not {type(value).__name__}")
    return value


def build_request(args: argparse.Namespace) -> dict:
    """
    Build a wire-format request from a request file and/or flags.

    Raises:
        OSError: If the request file cannot be read
        ValueError: If the file is not JSON or has the wrong shape
    """
    if args.request:
        with open(args.request, "r") as f:
            payload = json.load(f)
        if not isinstance(payload, dict):
            raise ValueError(f"Request file must hold a JSON object, not {type(payload).__name__}")
    else:
        payload = {}

    if args.symbols:
        symbols = payload.get("symbols") or []
        if not isinstance(symbols, list):
            raise ValueError(f"'symbols' must be a list, not {type(symbols).__name__}")
        payload["symbols"] = symbols + args.symbols

    filters = _section(payload, "filters", "filters")
    bds = _section(filters, "bds", "filters.bds")
    if args.no_bds:
        bds["enabled"] = False
    if args.bds_category:
        bds["categories"] = args.bds_category
    if args.no_defense:
        filters["defense"] = False
    if args.no_surveillance:
        filters["surveillance"] = False
    if args.no_shariah:
        filters["shariah"] = False

    options = _section(payload, "options", "options")
    if args.no_lookthrough:
        options["lookthrough"] = False
    if args.max_depth is not None:
        options["maxDepth"] = args.max_depth
    options.setdefault("maxDepth", settings.default_max_depth)

    return payload


def export_to_csv(response: ScreenResponse, output_path: Path):
    """Export results to CSV file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)

        # Header
        writer.writerow([
            "Symbol",
            "Name",
            "Verdict",
            "Confidence",
            "BDS",
            "Defense",
            "Surveillance",
            "Shariah",
            "Reasons",
            "Sources",
            "Audit ID",
        ])

        # Data rows
        for r in response.results:
            writer.writerow([
                r.symbol,
                r.instrument_name,
                r.final_verdict.value,
                r.confidence.value,
                r.statuses.bds.overall.value,
                r.statuses.defense.overall.value,
                r.statuses.surveillance.overall.value,
                r.statuses.shariah.overall.value,
                " | ".join(r.reasons),
                "; ".join(s.url for s in r.sources),
                r.audit_id,
            ])


def print_summary(response: ScreenResponse):
    """Print a summary of results to console."""
    print("\n" + "=" * 60)
    print("ETHICSCREEN - SCREENING RESULTS")
    print("=" * 60)

    counts = {}
    for r in response.results:
        counts[r.final_verdict.value] = counts.get(r.final_verdict.value, 0) + 1

    print(f"\nSymbols screened: {len(response.results)}")
    for verdict in ("PASS", "REVIEW", "EXCLUDED"):
        print(f"{verdict.capitalize()}: {counts.get(verdict, 0)}")

    print("\n" + "-" * 60)
    for r in response.results:
        print(f"\n{r.symbol} - {r.instrument_name}")
        print(f"   Verdict: {r.final_verdict.value} | Confidence: {r.confidence.value}")
        for reason in r.reasons[:5]:
            print(f"   - {reason}")
        if len(r.reasons) > 5:
            print(f"   ... {len(r.reasons) - 5} more")

    if response.warnings:
        print("\n" + "-" * 60)
        print("WARNINGS")
        for warning in response.warnings:
            print(f"   ! {warning}")

    print("\n" + "=" * 60)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="EthicScreen - Screen instruments and funds against ethical policies"
    )
    parser.add_argument(
        "symbols",
        nargs="*",
        help="Symbols to screen",
    )
    parser.add_argument(
        "--request", "-r",
        type=Path,
        help="Path to a screen request JSON file",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the built-in sample data instead of the database",
    )
    parser.add_argument("--no-bds", action="store_true", help="Skip the BDS policy")
    parser.add_argument("--no-defense", action="store_true", help="Skip the defense policy")
    parser.add_argument("--no-surveillance", action="store_true", help="Skip the surveillance policy")
    parser.add_argument("--no-shariah", action="store_true", help="Skip the shariah policy")
    parser.add_argument(
        "--bds-category",
        action="append",
        choices=[c.value for c in BdsCategory],
        help="Restrict BDS scoring to a category (repeatable)",
    )
    parser.add_argument(
        "--no-lookthrough",
        action="store_true",
        help="Do not look through fund holdings",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        help=f"Maximum look-through depth (default: {settings.default_max_depth})",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Write results to a CSV file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full response as JSON",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.request and not args.request.exists():
        logger.error(f"Request file not found: {args.request}")
        sys.exit(1)

    try:
        payload = build_request(args)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load request: {e}")
        sys.exit(1)

    try:
        asyncio.run(run_screen(
            payload,
            output_path=args.output,
            use_mock=args.mock,
            as_json=args.json,
        ))
    except InvalidRequestError as e:
        logger.error(str(e))
        for error in e.errors:
            logger.error(f"  {'.'.join(str(p) for p in error.get('loc', ()))}: {error.get('msg')}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Screening failed: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
