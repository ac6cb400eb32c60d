#!/usr/bin/env python3
"""
N4Y Contract Listener - processes tasks created on chain

Polls TaskManager for TaskCreated events and runs each new task through
assign → AI → IPFS → fulfill → claim fee, signing with PRIVATE_KEY.

Usage:
    python contract_listener.py
    python contract_listener.py --interval 6 --start-block 1200000
"""

import sys
import signal
import logging
import argparse

from web3 import Web3

from chain_client import ChainClient
from service_config import Settings, configure_logging, startup_warnings
from service_context import build_context
from service_errors import ConfigurationError
from task_ledger import TaskLedger
from task_poller import ChainEventPoller

logger = logging.getLogger(__name__)


def resolve_agent_id(chain, requested):
    """Use the requested LOGOS id if the registry knows it, else fall back to #1."""
    try:
        count = chain.agent_count()
    except Exception as e:
        logger.warning("could not read LOGOS count, using #%s: %s", requested, e)
        return requested

    logger.info("found %d LOGOS agents", count)
    if count == 0:
        logger.warning("no LOGOS agents registered yet; assignTask will revert until one exists")
        return requested
    if requested > count:
        logger.warning("DEFAULT_LOGOS_ID=%s exceeds registry count %d, using #1", requested, count)
        return 1

    try:
        agent = chain.get_agent(requested)
        logger.info("assigning tasks to LOGOS #%s (%s)", requested, agent.get("name", "unnamed"))
    except Exception as e:
        logger.warning("could not read LOGOS #%s: %s", requested, e)
    return requested


def log_connection(chain, settings):
    network = chain.network_info()
    logger.info("connected to %s (chain id %s)", network["name"], network["chainId"])
    logger.info("RPC: %s", settings.rpc_url)
    logger.info("TaskManager: %s", chain.task_manager.address)
    if chain.address:
        balance = chain.balance()
        logger.info("wallet: %s (%s ETH)", chain.address, Web3.from_wei(balance, "ether"))


def main(argv=None):
    parser = argparse.ArgumentParser(description="N4Y contract listener - process on-chain tasks")
    parser.add_argument("--interval", type=float, help="Poll interval in seconds")
    parser.add_argument("--start-block", type=int, help="First block to scan (default: current head)")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    for warning in startup_warnings(settings):
        logger.warning(warning)

    try:
        chain = ChainClient(settings)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    log_connection(chain, settings)
    settings.default_logos_id = resolve_agent_id(chain, settings.default_logos_id)

    # Separate ledger file: the web service owns tasks.json
    context = build_context(settings, chain=chain, ledger=TaskLedger(settings.chain_tasks_file))
    poller = ChainEventPoller(
        chain, context.ledger, context.pipeline,
        interval=args.interval or settings.chain_poll_interval_seconds,
        start_block=args.start_block if args.start_block is not None else settings.start_block,
    )

    def _shutdown(signum, frame):
        logger.info("signal %s received, finishing current tick", signum)
        poller.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info("listening for TaskCreated events (every %ss)", poller.interval)
    poller.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
