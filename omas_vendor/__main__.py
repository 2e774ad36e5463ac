"""
Omas demo vendor agent CLI.

Usage:
    python -m omas_vendor [run] [--auto-accept | --auto-decline]
    python -m omas_vendor info
    python -m omas_vendor login
    python -m omas_vendor logout

Configuration comes from OMAS_* environment variables or .env (see config.py).
"""

import argparse
import asyncio
import logging
import sys

from omas_vendor.config import settings
from omas_vendor.core.errors import OmasError
from omas_vendor.core.structured_logging import setup_logging
from omas_vendor.main import VendorAgent, build_agent
from omas_vendor.services.decision_provider import Decision, FixedDecisionProvider

logger = logging.getLogger("omas_vendor")


async def _run(agent: VendorAgent) -> None:
    agent.install_signal_handlers()
    await agent.run()


async def _info(agent: VendorAgent) -> None:
    await agent.log_info()


async def _login(agent: VendorAgent) -> None:
    await agent.credentials.reauthorize()
    logger.info("Offline token stored at %s", agent.token_store.path)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="omas_vendor", description="Omas demo vendor order agent")
    parser.add_argument(
        "command", nargs="?", default="run", choices=["run", "info", "login", "logout"],
        help="run: poll and fulfill orders (default); info: show auth status; "
             "login: force device registration; logout: forget the offline token",
    )
    decision = parser.add_mutually_exclusive_group()
    decision.add_argument("--auto-accept", action="store_true", help="Accept every received order")
    decision.add_argument("--auto-decline", action="store_true", help="Decline every received order")
    parser.add_argument("--log-level", default=None, help=f"Log level (default {settings.log_level})")
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level)

    decisions = None
    if args.auto_accept:
        decisions = FixedDecisionProvider(Decision.ACCEPT)
    elif args.auto_decline:
        decisions = FixedDecisionProvider(Decision.DECLINE)

    agent = build_agent(settings, decisions=decisions)

    if args.command == "logout":
        agent.token_store.clear()
        return 0

    command = {"run": _run, "info": _info, "login": _login}[args.command]
    try:
        asyncio.run(command(agent))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except OmasError as e:
        logger.error("%s failed (%s): %s", args.command, e.code, e.detail or e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
