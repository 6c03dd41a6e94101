from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from chatstress.config import ConfigError, RunConfig, TargetConfig, missing_vars, target_from_env
from chatstress.loadgen import BoundedClient, RunController
from chatstress.loadgen.runner import ClientFactory
from chatstress.metrics import format_report
from chatstress.storage import Storage, default_storage

logger = logging.getLogger(__name__)

USAGE_EPILOG = """\
required environment:
  AZURE_OPENAI_ENDPOINT    e.g. https://your-resource.openai.azure.com/
  AZURE_OPENAI_KEY         API key for the resource
  AZURE_OPENAI_DEPLOYMENT  chat model deployment name
optional environment:
  AZURE_OPENAI_API_VERSION, CHATSTRESS_REQUESTS, CHATSTRESS_WORKERS,
  CHATSTRESS_CONNECTIONS, CHATSTRESS_TIMEOUT, CHATSTRESS_DEADLINE
"""


def _env_default(name: str, default: object) -> str:
    raw = os.environ.get(name, "").strip()
    return raw or str(default)


def build_parser() -> argparse.ArgumentParser:
    defaults = RunConfig()
    parser = argparse.ArgumentParser(
        prog="chatstress",
        description="High-concurrency stress test for an Azure OpenAI chat deployment",
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--requests", type=int, default=_env_default("CHATSTRESS_REQUESTS", defaults.concurrent_requests))
    parser.add_argument("--workers", type=int, default=_env_default("CHATSTRESS_WORKERS", defaults.worker_pool_size))
    parser.add_argument(
        "--connections",
        type=int,
        default=_env_default("CHATSTRESS_CONNECTIONS", defaults.connection_pool_limit),
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=_env_default("CHATSTRESS_TIMEOUT", defaults.per_call_timeout_sec),
        help="Per-call connect/write/read timeout in seconds",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=_env_default("CHATSTRESS_DEADLINE", defaults.overall_deadline_sec),
        help="Overall wait for the run in seconds",
    )
    parser.add_argument("--pool-timeout", type=float, default=None, help="Max wait for a pooled connection")
    parser.add_argument("--grace", type=float, default=defaults.shutdown_grace_sec)
    parser.add_argument("--save", action="store_true", help="Persist the report to the run history")
    parser.add_argument("--db", type=Path, default=None, help="Run history database (implies --save)")
    parser.add_argument("--notes", default="")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _print_banner(config: RunConfig, target: TargetConfig) -> None:
    print("=== Azure OpenAI high concurrency test ===")
    print(f"Deployment: {target.deployment} @ {target.endpoint}")
    print(f"Concurrent requests: {config.concurrent_requests}")
    print(f"Worker pool size: {config.worker_pool_size}")
    print(f"Connection pool size: {config.connection_pool_limit}")
    print(f"Per-call timeout: {config.per_call_timeout_sec}s")
    print(f"Overall deadline: {config.overall_deadline_sec}s")
    print(f"Start time: {config.created_at:%Y-%m-%d %H:%M:%S}")
    print("=" * 40)


def main(argv: Sequence[str] | None = None, client_factory: ClientFactory = BoundedClient) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    missing = missing_vars()
    if missing:
        parser.print_usage(sys.stderr)
        print(f"chatstress: error: set these environment variables first: {', '.join(missing)}", file=sys.stderr)
        return 2

    try:
        target = target_from_env()
        config = RunConfig(
            concurrent_requests=args.requests,
            worker_pool_size=args.workers,
            connection_pool_limit=args.connections,
            per_call_timeout_sec=args.timeout,
            overall_deadline_sec=args.deadline,
            pool_timeout_sec=args.pool_timeout,
            shutdown_grace_sec=args.grace,
            notes=args.notes,
        )
    except ValueError as exc:
        parser.print_usage(sys.stderr)
        print(f"chatstress: error: {exc}", file=sys.stderr)
        return 2

    _print_banner(config, target)
    controller = RunController(config, target, client_factory)
    try:
        report = controller.run(on_report=lambda r: print(format_report(r), flush=True))
    except ConfigError as exc:
        print(f"chatstress: fatal: {exc}", file=sys.stderr)
        return 1

    if args.save or args.db is not None:
        storage = Storage(args.db) if args.db is not None else default_storage()
        storage.save_report(controller.config, target, report)
        logger.info("report %s saved to %s", report.run_id, storage.db_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
