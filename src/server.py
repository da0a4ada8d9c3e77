"""Protean Engine runner for the marketplace domain.

Only needed when PROTEAN_ENV selects async event processing (production):
the Engine picks up committed events and runs the event handlers, such as
order notifications, outside the request path.

Usage:
    python src/server.py
"""

import argparse
import asyncio

from protean.server.engine import Engine


def build_engine() -> Engine:
    from marketplace.domain import marketplace

    marketplace.init()
    return Engine(marketplace)


async def run():
    engine = build_engine()
    await asyncio.gather(engine.run())


def main():
    argparse.ArgumentParser(description="Marketplace Engine runner").parse_args()
    asyncio.run(run())


if __name__ == "__main__":
    main()
