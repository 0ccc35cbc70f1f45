"""Command-line entry point standing in for the HTTP endpoints."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from hotel_aggregator.cache import PriceCache
from hotel_aggregator.config.run_config import RunConfig
from hotel_aggregator.config.settings import Settings
from hotel_aggregator.core.logging import configure_logging
from hotel_aggregator.matching import CanonicalMatcher, MatchThresholds
from hotel_aggregator.policies import calculate_refund, can_cancel_now, resolve_policy
from hotel_aggregator.providers import UnknownProviderError, build_registry
from hotel_aggregator.search import FanOutSearchCoordinator, SearchParams, SearchValidationError
from hotel_aggregator.services import (
    CanonicalHotelNotFoundError,
    PriceRefreshRequest,
    PriceRefreshService,
    SearchService,
)
from hotel_aggregator.storage import SqliteStore

DEFAULT_CHECK_IN = "+14d"

logger = logging.getLogger("run_search")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Query the hotel aggregator from the command line")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a TOML run profile (defaults to config/run_config.toml when present)",
    )
    parser.add_argument(
        "--no-config",
        action="store_true",
        help="Ignore config/run_config.toml even if it exists",
    )
    parser.add_argument(
        "--override",
        action="append",
        metavar="KEY=VALUE",
        help="Override a Settings attribute (repeatable). Values accept JSON literals.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search all providers and print merged listings")
    search.add_argument("--city", help="City/location code, e.g. NYC")
    search.add_argument("--check-in", help="ISO date or relative offset such as '+14d'")
    search.add_argument("--nights", type=int, default=None)
    search.add_argument("--adults", type=int, default=None)
    search.add_argument("--rooms", type=int, default=None)
    search.add_argument("--currency", default=None)
    search.add_argument("--hotel-name", default=None)
    search.add_argument("--provider", default=None, help="Restrict the search to one provider")

    prices = commands.add_parser("prices", help="Refresh live prices for one canonical hotel")
    prices.add_argument("--hotel-id", required=True, help="Canonical hotel id")
    prices.add_argument("--check-in", required=True)
    prices.add_argument("--check-out", required=True)
    prices.add_argument("--adults", type=int, default=None)
    prices.add_argument("--rooms", type=int, default=None)

    policy = commands.add_parser("policy", help="Evaluate a cancellation request")
    policy.add_argument("--override-text", default=None, help="Admin override policy text")
    policy.add_argument("--provider-text", default=None, help="Provider policy text")
    policy.add_argument("--amount", type=float, required=True, help="Booking amount")
    policy.add_argument("--check-in", required=True, help="ISO check-in date or datetime")
    policy.add_argument("--cancelled-at", default=None, help="ISO datetime (defaults to now)")
    return parser


def _decode_override(value: str) -> object:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _apply_overrides(settings: Settings, entries: list[str], parser: argparse.ArgumentParser) -> None:
    for entry in entries:
        if "=" not in entry:
            parser.error(f"Override must be in KEY=VALUE form (got '{entry}')")
        key, raw = entry.split("=", 1)
        key = key.strip()
        if not hasattr(settings, key):
            logger.warning("Ignoring unknown override '%s'", key)
            continue
        value = _decode_override(raw.strip())
        try:
            setattr(settings, key, value)
        except ValidationError as exc:
            parser.error(f"Invalid override {key}={raw.strip()!r}: {exc.errors()[0]['msg']}")
        logger.info("Override: set %s=%r", key, value)


def _search_params(args: argparse.Namespace, settings: Settings, run_config: Optional[RunConfig]) -> SearchParams:
    run_config = run_config or RunConfig()
    cli_values = {
        "city_code": args.city,
        "check_in": args.check_in,
        "nights": args.nights,
        "adults": args.adults,
        "rooms": args.rooms,
        "currency": args.currency,
        "hotel_name": args.hotel_name,
    }
    section = run_config.search.model_copy(
        update={key: value for key, value in cli_values.items() if value is not None}
    )
    if not section.check_in:
        section = section.model_copy(update={"check_in": DEFAULT_CHECK_IN})
    return run_config.model_copy(update={"search": section}).search_params(settings)


async def _run_search(settings: Settings, params: SearchParams, provider: Optional[str]) -> dict[str, object]:
    store = SqliteStore(
        settings.sqlite_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
    )
    registry = build_registry(settings)
    await store.initialize()
    try:
        coordinator = FanOutSearchCoordinator(registry, provider_timeout_s=settings.provider_timeout_s)
        matcher = CanonicalMatcher(store, thresholds=MatchThresholds.from_settings(settings))
        response = await SearchService(coordinator, matcher).search(params, provider_name=provider)
        return response.to_dict()
    finally:
        await registry.close()
        await store.close()


async def _run_prices(settings: Settings, request: PriceRefreshRequest) -> dict[str, object]:
    store = SqliteStore(
        settings.sqlite_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
    )
    registry = build_registry(settings)
    await store.initialize()
    try:
        coordinator = FanOutSearchCoordinator(registry, provider_timeout_s=settings.provider_timeout_s)
        price_cache = PriceCache(
            store,
            ttl_s=settings.price_cache_ttl_s,
            freshness_s=settings.price_cache_freshness_s,
        )
        await price_cache.purge_expired()
        result = await PriceRefreshService(store, coordinator, price_cache).refresh(request)
        return result.to_dict()
    finally:
        await registry.close()
        await store.close()


def _run_policy(args: argparse.Namespace) -> dict[str, object]:
    policy = resolve_policy(args.override_text, args.provider_text)
    check_in = datetime.fromisoformat(args.check_in)
    cancelled_at = datetime.fromisoformat(args.cancelled_at) if args.cancelled_at else None
    decision = calculate_refund(policy, args.amount, check_in, cancelled_at)
    allowed, reason = can_cancel_now(policy, check_in, cancelled_at)
    return {
        "policy": policy.to_dict(),
        "refund": decision.to_dict(),
        "can_cancel_now": allowed,
        "can_cancel_reason": reason,
    }


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    settings = Settings()
    config_path: Optional[Path] = None
    run_config: Optional[RunConfig] = None

    if not args.no_config:
        if args.config:
            config_path = args.config
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            default_path = Path("config/run_config.toml")
            if default_path.exists():
                config_path = default_path

    if config_path:
        run_config = RunConfig.load(config_path)
        run_config.apply_to(settings, base_dir=config_path.parent)

    if args.override:
        _apply_overrides(settings, args.override, parser)

    configure_logging(settings.log_level, settings.log_dir)
    settings.ensure_directories()
    logger.info("Configured providers: %s", ", ".join(settings.provider_names()) or "none")
    if run_config:
        logger.info("Loaded run profile '%s' from %s", run_config.profile, config_path)

    try:
        if args.command == "search":
            params = _search_params(args, settings, run_config)
            provider = args.provider or (run_config.search.provider if run_config else None)
            output = asyncio.run(_run_search(settings, params, provider))
        elif args.command == "prices":
            request = PriceRefreshRequest(
                canonical_hotel_id=args.hotel_id,
                check_in=date.fromisoformat(args.check_in),
                check_out=date.fromisoformat(args.check_out),
                adults=args.adults or settings.default_adults,
                rooms=args.rooms or settings.default_rooms,
                currency=settings.default_currency,
            )
            output = asyncio.run(_run_prices(settings, request))
        else:
            output = _run_policy(args)
    except (SearchValidationError, UnknownProviderError, CanonicalHotelNotFoundError) as exc:
        print(json.dumps({"error": str(exc)}, indent=2))
        return 2

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
