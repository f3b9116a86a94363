#!/usr/bin/env python3
"""
Command-line front end: extract a transaction's state diff from a node.

Usage:
    evm-state-extract --tx-hash 0x... --rpc-url http://localhost:8545 --out vector.json
"""

import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

import structlog
import yaml

from .config import LOG_FORMATS, LOG_LEVELS, ExtractorConfig
from .errors import ExtractionError
from .ethereum.chain_client import ChainDataClient
from .extractor import extract_transaction
from .logging_config import configure_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    defaults = ExtractorConfig.from_env()
    parser = argparse.ArgumentParser(
        description="Reconstruct the pre/post state of a transaction from its opcode trace"
    )
    parser.add_argument("--tx-hash", "-t", required=True, help="Transaction hash")
    parser.add_argument(
        "--rpc-url",
        "-r",
        default=defaults.rpc_url,
        help=f"Node JSON-RPC URL with debug_traceTransaction (default: {defaults.rpc_url})",
    )
    parser.add_argument("--out", "-o", help="Output file (default: stdout)")
    parser.add_argument(
        "--format", choices=["json", "yaml"], default="json", help="Output format (default: json)"
    )
    parser.add_argument(
        "--exact-pre-balances",
        action="store_true",
        default=defaults.exact_pre_balances,
        help="Replay preceding transactions of the block to get exact pre-balances",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=defaults.max_workers,
        help=f"Concurrent RPC requests (default: {defaults.max_workers})",
    )
    parser.add_argument("--timeout", type=int, default=defaults.request_timeout, help="RPC timeout in seconds")
    parser.add_argument("--log-level", default=defaults.log_level, choices=LOG_LEVELS)
    parser.add_argument("--log-format", default=defaults.log_format, choices=LOG_FORMATS)
    return parser.parse_args(argv)


def write_result(result: Dict[str, Any], out: Optional[str], output_format: str) -> None:
    if output_format == "yaml":
        text = yaml.safe_dump(result, default_flow_style=False, sort_keys=False)
    else:
        text = json.dumps(result, indent=2)
    if not out:
        sys.stdout.write(text + "\n")
        return
    directory = os.path.dirname(os.path.abspath(out))
    os.makedirs(directory, exist_ok=True)
    with open(out, "w") as f:
        f.write(text)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = ExtractorConfig(
        rpc_url=args.rpc_url,
        request_timeout=args.timeout,
        max_workers=args.workers,
        exact_pre_balances=args.exact_pre_balances,
        log_level=args.log_level,
        log_format=args.log_format,
    )
    configure_logging(config.log_level, config.log_format)
    logger = structlog.get_logger("evm_state_extract")

    try:
        client = ChainDataClient(config.rpc_url, request_timeout=config.request_timeout)
        result = extract_transaction(client, args.tx_hash, config)
        write_result(result.to_dict(), args.out, args.format)
        if args.out:
            logger.info("Wrote state diff", path=args.out, format=args.format)
        return 0
    except KeyboardInterrupt:
        logger.info("Extraction interrupted by user")
        return 130
    except (ExtractionError, ConnectionError) as e:
        logger.error("Extraction failed", tx_hash=args.tx_hash, error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
