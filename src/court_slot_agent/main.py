"""Command-line entry point for the court slot agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional, Union

import structlog

from .browser import BrowserManager
from .config import Settings
from .errors import BrowserLaunchError, InvalidRequestError
from .queries import AvailabilityQuery, SlotPriceQuery, parse_availability_request, parse_slot_price_request
from .scraper import collect_availability, verify_slot_price


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog + stdlib logging."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


LOGGER = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """CLI argument parsing."""
    parser = argparse.ArgumentParser(description="Scrape court availability and prices from venue booking pages.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--debug", action="store_true", help="Include diagnostics in the JSON output.")
    commands = parser.add_subparsers(dest="command", required=True)

    availability = commands.add_parser("availability", help="List bookable slots for one or more venues.")
    availability.add_argument("venues", help="Venue slug, or several separated by commas.")
    availability.add_argument("date", help="Target date, YYYY-MM-DD.")
    availability.add_argument("--duration", type=int, help="Keep only slots of exactly this many minutes.")
    availability.add_argument("--earliest", help="Earliest start time, HH:MM.")
    availability.add_argument("--latest", help="Latest start time, HH:MM.")
    availability.add_argument("--screenshot", action="store_true", help="Attach a base64 screenshot to diagnostics.")

    slot_price = commands.add_parser("slot-price", help="Read the price of one exact slot.")
    slot_price.add_argument("venue", help="Venue slug.")
    slot_price.add_argument("date", help="Target date, YYYY-MM-DD.")
    slot_price.add_argument("resource_id", help="Court resource id.")
    slot_price.add_argument("start", help="Start time, HH:MM.")
    slot_price.add_argument("end", help="End time, HH:MM.")
    return parser


def build_query(args: argparse.Namespace) -> Union[AvailabilityQuery, SlotPriceQuery]:
    """Validate CLI arguments before any browser work starts."""
    if args.command == "availability":
        return parse_availability_request(
            args.venues,
            args.date,
            duration=args.duration,
            earliest=args.earliest,
            latest=args.latest,
            screenshot=args.screenshot,
        )
    return parse_slot_price_request(args.venue, args.date, args.resource_id, args.start, args.end)


async def run(query: Union[AvailabilityQuery, SlotPriceQuery], settings: Settings, *, with_debug: bool = False) -> dict:
    """Execute the query and return a JSON-serialisable result."""
    manager = BrowserManager(settings)
    try:
        if isinstance(query, AvailabilityQuery):
            result = await collect_availability(query, manager, settings)
            payload = {
                "date": result.target_date.isoformat(),
                "slots": [slot.to_dict() for slot in result.slots],
                "summary": result.summary.to_dict(),
                "venues": [{"slug": v.slug, "ok": v.ok, "error": v.error} for v in result.venues],
            }
            if with_debug:
                payload["debug"] = {v.slug: v.debug for v in result.venues}
            return payload

        outcome = await verify_slot_price(query, manager, settings)
        payload = asdict(outcome)
        if not with_debug:
            payload.pop("debug", None)
        return payload
    finally:
        await manager.shutdown()


def cli(argv: Optional[list[str]] = None) -> int:
    """Console script entrypoint."""
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = Settings()
    except Exception as exc:  # pragma: no cover - startup validation
        LOGGER.exception("settings.error", error=str(exc))
        return 2

    try:
        query = build_query(args)
    except InvalidRequestError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        payload = asyncio.run(run(query, settings, with_debug=args.debug))
    except BrowserLaunchError as exc:
        LOGGER.exception("agent.browser_unavailable", error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - top level
        LOGGER.exception("agent.failed", error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(cli())
