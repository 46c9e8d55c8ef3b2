# election_writer/__main__.py
"""
Entry point:
    python -m election_writer [--config ./config.yaml] [--once]
Env overrides (see config.py):
  ELECTION_WRITER_MANAGEMENT_ENDPOINT, ELECTION_WRITER_ETHEREUM_ENDPOINT,
  ELECTION_WRITER_SIGNER_ENDPOINT, ELECTION_WRITER_ELECTIONS_CONTRACT,
  ELECTION_WRITER_NODE_ADDRESS, ELECTION_WRITER_STATUS_PATH,
  ELECTION_WRITER_AUDIT_ONLY, ELECTION_WRITER_RUN_LOOP_SECONDS
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys

from . import __version__
from .config import get_log_level, load_config
from .errors import ConfigError
from .loop import RunLoop

log = logging.getLogger("election_writer")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="election-writer",
        description="Keep the node's on-chain election status in line with its health",
    )
    p.add_argument(
        "--config",
        default=os.environ.get("ELECTION_WRITER_CONFIG"),
        help="Path to YAML config (optional, defaults + env otherwise)",
    )
    p.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick, write the status file and exit",
    )
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=get_log_level(config), format="%(asctime)s [%(levelname)s] %(message)s")
    log.info("election-writer %s starting, node %s", __version__, config.node_orbs_address)

    loop = RunLoop.from_config(config)

    if args.once:
        result = loop.run_once()
        loop.sender.chain.close()
        return 1 if result.error else 0

    def _sig(*_):
        log.info("Shutting down...")
        loop.stop()

    signal.signal(signal.SIGINT, _sig)
    signal.signal(signal.SIGTERM, _sig)

    try:
        loop.run_forever()
    finally:
        loop.sender.chain.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
