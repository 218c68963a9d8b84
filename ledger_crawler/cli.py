"""
Command-line entry point.

    ledger-crawler job.yaml --out mints.json --checkpoint crawl.ckpt --resume

Ctrl+C stops the sweep after abandoning the in-flight batch; the partial
result is still written.

Exit codes: 0 complete, 1 terminal listing error, 2 configuration error,
130 cancelled.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from .checkpoint import CursorCheckpoint
from .engine import CrawlEngine
from .errors import ConfigurationError
from .job import JobConfig, load_job
from .ledger.rpc_client import SolanaRpcReader
from .types import CrawlOutcome


EXIT_OK = 0
EXIT_TERMINAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130

logger = logging.getLogger("ledger_crawler")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ledger-crawler',
        description='Crawl an account\'s transaction history and extract instruction accounts'
    )
    parser.add_argument('job', help='YAML job file')
    parser.add_argument('--target', help='Override the target account address')
    parser.add_argument('--rpc-url', help='Override the JSON-RPC endpoint')
    parser.add_argument('--concurrency', type=int, help='Override the fetch worker limit')
    parser.add_argument('--out', help='Write JSON output here instead of stdout')
    parser.add_argument('--checkpoint', help='Cursor checkpoint file')
    parser.add_argument('--resume', action='store_true', help='Resume from --checkpoint')
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity'
    )
    return parser


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        stream=sys.stderr
    )


def _install_cancel_handler(cancel_event: asyncio.Event):
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; Ctrl+C raises instead
        logger.debug("SIGINT handler unavailable on this platform")


async def crawl(job: JobConfig, checkpoint: Optional[CursorCheckpoint] = None, resume: bool = False) -> CrawlOutcome:
    """Run one job against its JSON-RPC endpoint."""
    config = job.to_crawler_config()
    resume_from = checkpoint.load(config.target) if (checkpoint and resume) else None

    cancel_event = asyncio.Event()
    _install_cancel_handler(cancel_event)

    async with SolanaRpcReader(job.rpc_config()) as reader:
        engine = CrawlEngine(reader, config)
        outcome = await engine.run(cancel_event=cancel_event, resume_from=resume_from)
        logger.debug(f"Reader stats: {reader.get_stats()}")

    if checkpoint:
        checkpoint.save(config.target, outcome.summary.last_signature)
    return outcome


def write_output(outcome: CrawlOutcome, path: Optional[str]):
    text = json.dumps(outcome.to_dict(), indent=2)
    if path:
        with open(path, 'w') as f:
            f.write(text + "\n")
        logger.info(f"Wrote {path}")
    else:
        print(text)


def exit_code(outcome: CrawlOutcome) -> int:
    if outcome.summary.cancelled:
        return EXIT_CANCELLED
    if outcome.summary.terminal_error:
        return EXIT_TERMINAL_ERROR
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.resume and not args.checkpoint:
        logger.error("--resume needs --checkpoint")
        return EXIT_CONFIG_ERROR

    try:
        job = load_job(args.job)
        if args.target:
            job.target = args.target
        if args.rpc_url:
            job.rpc_url = args.rpc_url
        if args.concurrency is not None:
            job.concurrency = args.concurrency

        checkpoint = CursorCheckpoint(args.checkpoint) if args.checkpoint else None
        outcome = asyncio.run(crawl(job, checkpoint, resume=args.resume))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    write_output(outcome, args.out)
    return exit_code(outcome)


if __name__ == '__main__':
    sys.exit(main())
