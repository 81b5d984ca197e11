"""CLI entrypoint: python -m frontpage {snapshot|rates|simulate}."""

from __future__ import annotations

import asyncio
import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path

from frontpage.config import get_image_base_url, get_log_dir, get_source_config, load_config


def setup_logging(config: dict) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    level = (config.get("logging") or {}).get("level", "INFO")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler (rotate at 5MB, keep 3 backups)
    log_dir = Path(get_log_dir(config))
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        str(log_dir / "frontpage.log"), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger("frontpage")


async def cmd_snapshot(config: dict) -> None:
    """Fetch the home snapshot once and print what it holds."""
    from frontpage.context import ContentContext
    from frontpage.images import canonical_image_url

    base_url = get_image_base_url(config)
    async with ContentContext.from_config(config) as ctx:
        view = ctx.view()
        snapshot = await view.load()
        if snapshot is None:
            print(f"Snapshot failed: {view.error}")
            sys.exit(1)

        print(f"Articles ({len(snapshot.articles)}):")
        for article in snapshot.articles:
            date = article.date.strftime("%Y-%m-%d %H:%M") if article.date else "-"
            image = article.images[0] if article.images else ""
            print(f"  [{article.featured_type:<9}] {date}  {article.title}")
            print(f"  {'':<11} {canonical_image_url(image, base_url)}")
        print("\nAd slots:")
        for placement, ads in snapshot.ad_slots.items():
            print(f"  {placement:<20} {len(ads)}")
        if snapshot.auxiliary:
            print(f"\nCurrency rates: {len(snapshot.auxiliary.rates)}")


async def cmd_rates(config: dict) -> None:
    """Fetch the currency widget rates."""
    from frontpage.sources import SOURCES

    cfg = get_source_config(config, "auxiliary") or {"type": "dolarapi"}
    source = SOURCES[cfg.get("type", "dolarapi")](cfg)
    rates = await source.fetch_rates()
    print(f"{'Name':<16} {'Buy':>10} {'Sell':>10}")
    print("-" * 38)
    for rate in rates:
        print(f"{rate.name:<16} {rate.buy:>10.2f} {rate.sell:>10.2f}")


async def cmd_simulate(config: dict) -> None:
    """Replay a JSON-lines file of behavior events and show what gets warmed."""
    from frontpage.context import ContentContext
    from frontpage.models import BehaviorEvent

    if len(sys.argv) < 3:
        print("Usage: python -m frontpage simulate events.jsonl")
        sys.exit(1)

    events = []
    with open(sys.argv[2]) as f:
        for line in f:
            line = line.strip()
            if line:
                events.append(BehaviorEvent.from_dict(json.loads(line)))

    async with ContentContext.from_config(config) as ctx:
        for event in events:
            ctx.record(event)
        await ctx.scheduler.run_once()
        await ctx.scheduler.drain()

        print("Interest ranking:")
        for target in ctx.interest.top_scores(10):
            warm = "warm" if ctx.cache.is_warm(target.key) else "cold"
            print(f"  {target.key:<30} {target.score:>8.3f}  {warm}")
        print("\nStats:")
        print(json.dumps(ctx.stats(), indent=2))


COMMANDS = {
    "snapshot": cmd_snapshot,
    "rates": cmd_rates,
    "simulate": cmd_simulate,
}


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        available = ", ".join(COMMANDS)
        print(f"Usage: python -m frontpage {{{available}}}")
        sys.exit(1)

    command = sys.argv[1]
    config = load_config(os.environ.get("CONFIG_PATH", "config.yaml"))
    setup_logging(config)
    asyncio.run(COMMANDS[command](config))


if __name__ == "__main__":
    main()
