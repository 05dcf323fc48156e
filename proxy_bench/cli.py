import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

import uvicorn

from proxy_bench.admin import create_admin_app
from proxy_bench.client import SessionError, run_benchmark
from proxy_bench.config import load_apps, load_run_config
from proxy_bench.proxy import ProxyServer
from proxy_bench.settings import ADMIN_HOST, DEFAULT_CONFIG_PATH, DEFAULT_MESSAGES, MAX_MESSAGES, setup_logging
from proxy_bench.stats import render_report

logger = logging.getLogger("proxy_bench.cli")

USAGE = (
    "must specify two positional arguments\n"
    f"1 - config file path                      (default: ./{DEFAULT_CONFIG_PATH})\n"
    f"2 - no of messages to send per connection (default: {DEFAULT_MESSAGES})\n\n"
    "example usage: proxy-bench config.json 50\n"
)


def parse_messages(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_MESSAGES
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_MESSAGES
    if not 0 <= value <= MAX_MESSAGES:
        return DEFAULT_MESSAGES
    return value


def client_main(argv: Optional[Sequence[str]] = None) -> int:
    args: List[str] = list(sys.argv[1:] if argv is None else argv)
    if len(args) == 1:
        print(USAGE)
        return 0

    setup_logging()
    config_path = args[0] if args else DEFAULT_CONFIG_PATH
    messages = parse_messages(args[1] if len(args) > 1 else None)
    try:
        config = load_run_config(config_path, messages)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(run_benchmark(config))
    except SessionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130

    print(render_report(result.report, result.rps))
    logger.debug(f"report: {result.report.as_dict()}")
    return 0


async def _serve_proxy(server: ProxyServer, admin_port: Optional[int]):
    await server.start()
    try:
        if admin_port is None:
            await server.serve_forever()
        else:
            admin = uvicorn.Server(uvicorn.Config(create_admin_app(server), host=ADMIN_HOST, port=admin_port))
            await admin.serve()
    finally:
        await server.stop()


def build_proxy_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Round-robin TCP proxy benchmarked by proxy-bench")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help=f"path to config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--admin-port", type=int, default=None, help="serve /health and /metrics on this port")
    return parser


def proxy_main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_proxy_parser().parse_args(argv)
    setup_logging()
    try:
        apps = load_apps(args.config)
    except (OSError, ValueError) as exc:
        print(f"failed to load config: {exc}", file=sys.stderr)
        return 1
    server = ProxyServer(apps)
    try:
        asyncio.run(_serve_proxy(server, args.admin_port))
    except KeyboardInterrupt:
        return 130
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(client_main())
