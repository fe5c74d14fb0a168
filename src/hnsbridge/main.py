from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List

from .bridge import ResolutionBridge
from .classifier import TLDAllowList
from .client import AdaptiveTimeout, OutcomeKind, ResolutionClient, ResolveMode
from .config.config_parser import BridgeConfig, ConfigError, load_config
from .config.logging_config import init_logging
from .lookup import DnsLookup
from .relay import start_relay_server


def build_allow_list(cfg: BridgeConfig) -> TLDAllowList:
    """Load the configured TLD table, or the packaged one."""
    if cfg.client.tld_file:
        return TLDAllowList.from_file(cfg.client.tld_file)
    return TLDAllowList.load_default()


def build_client(cfg: BridgeConfig) -> ResolutionClient:
    timeout_state = AdaptiveTimeout(
        cfg.client.initial_timeout_ms,
        cfg.client.max_timeout_ms,
        cfg.client.timeout_growth,
    )
    return ResolutionClient(cfg.client.api_base, timeout_state)


def _format_decision(url: str, decision) -> str:
    if decision.parsed is None:
        return f"{url} invalid"
    if not decision.needs_resolution:
        return f"{url} standard"
    outcome = decision.outcome
    if outcome.kind is OutcomeKind.RESOLVED:
        return f"{url} {','.join(outcome.addresses)}"
    return f"{url} {outcome.kind.value}"


def _cmd_check(cfg: BridgeConfig, args: argparse.Namespace) -> int:
    mode = ResolveMode.SYNC if args.sync else ResolveMode.ASYNC
    try:
        allow_list = build_allow_list(cfg)
    except OSError as exc:
        print(f"Cannot read TLD table: {exc}", file=sys.stderr)
        return 1
    bridge = ResolutionBridge(allow_list, build_client(cfg))
    rc = 0
    try:
        for url in args.urls:
            decision = bridge.lookup(url, mode)
            if decision.outcome is not None and decision.outcome.kind is OutcomeKind.ERROR:
                rc = 2
            print(_format_decision(url, decision))
    finally:
        bridge.client.close()
    return rc


def _cmd_serve(cfg: BridgeConfig, args: argparse.Namespace) -> int:
    logger = logging.getLogger("hnsbridge.main")
    relay_cfg = cfg.relay
    host = args.host or relay_cfg.host
    port = args.port if args.port is not None else relay_cfg.port
    lookup = DnsLookup(
        relay_cfg.nameservers or None,
        port=relay_cfg.dns_port,
        lifetime=relay_cfg.lifetime,
    )
    handle = start_relay_server(host, port, lookup, use_asyncio=relay_cfg.use_asyncio)
    if handle is None:
        logger.error("Relay failed to start on %s:%d", host, port)
        return 1

    try:
        while handle.is_running():
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down relay")
    finally:
        handle.stop()
    return 0


def main(argv: List[str] | None = None) -> int:
    """
    Entry point for the hnsbridge CLI.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            hnsbridge serve --config config.yaml
            hnsbridge check https://mysite.hns/ https://shop.xyz/
    """
    parser = argparse.ArgumentParser(
        description="Resolve non-standard TLDs through an HTTP resolution relay"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    # SUPPRESS keeps a subcommand from clobbering a --config given before it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", default=argparse.SUPPRESS, help="Path to YAML config"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", parents=[common], help="Run the resolution relay")
    serve.add_argument("--host", default=None, help="Listen address override")
    serve.add_argument("--port", type=int, default=None, help="Listen port override")

    check = sub.add_parser(
        "check", parents=[common], help="Classify URLs and resolve non-standard ones"
    )
    check.add_argument(
        "--sync",
        action="store_true",
        help="Resolve on the calling thread without the adaptive timeout",
    )
    check.add_argument("urls", nargs="+", help="URLs to classify")

    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    init_logging(cfg.logging)
    logging.getLogger("hnsbridge.main").debug("Loaded config from %s", args.config)

    if args.command == "serve":
        return _cmd_serve(cfg, args)
    return _cmd_check(cfg, args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
