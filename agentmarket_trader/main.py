"""Command line entry point for running the market agent."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional

from .config import AgentConfig, apply_env_overrides, load_config
from .engine import AgentRunner
from .gateway import GatewayError, MarketGateway
from .llm import create_completion_client

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def build_gateway(config: AgentConfig) -> Optional[MarketGateway]:
    if not config.gateway.base_url.strip():
        return None
    return MarketGateway(
        base_url=config.gateway.base_url,
        owner_uid=config.gateway.owner_uid,
        timeout=config.gateway.timeout,
    )


def run_agent(config: AgentConfig, once: bool = False) -> int:
    client = create_completion_client(config.llm)
    runner = AgentRunner(config, build_gateway(config), client)
    if config.agent_id:
        logger.info("agent running for %s (profile %s)", config.agent_id, runner.profile)
    else:
        logger.info("agent running")
    if client is not None:
        logger.info("llm provider: %s (%s)", client.provider, client.model)

    if once:
        outcome = runner.run_cycle()
        print(f"cycle {outcome.cycle}: {outcome.status} {outcome.error}".rstrip())
        return 0

    stop_event = threading.Event()

    def _stop(signum, frame):  # pragma: no cover - signal handler
        stop_event.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)
    runner.run(stop_event)
    return 0


def show_status(config: AgentConfig) -> int:
    if not config.agent_id:
        raise SystemExit("agent id is required")
    gateway = build_gateway(config)
    if gateway is None:
        raise SystemExit("gateway base_url is required")
    try:
        agent = gateway.get_agent(config.agent_id)
    except GatewayError as exc:
        logger.error("status lookup failed: %s", exc)
        return 1
    print("agent status")
    print(f"  id: {agent.agent_id}")
    print(f"  user: {agent.user_addr}")
    print(f"  status: {agent.status}")
    print(f"  strategy: {agent.strategy_uri} ({agent.strategy_version})")
    if agent.strategy_prompt.strip():
        print(f"  strategy prompt: {agent.strategy_prompt}")
    if agent.allowed_tokens:
        print(f"  allowed tokens: {', '.join(agent.allowed_tokens)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="LLM-driven autonomous market agent")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the decision loop")
    run_parser.add_argument("config", type=Path, help="Path to agent configuration file")
    run_parser.add_argument("--agent-id", dest="agent_id", help="Override the configured agent id")
    run_parser.add_argument("--once", action="store_true", help="Run a single decision cycle and exit")
    run_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    status_parser = subparsers.add_parser("status", help="Show the agent record")
    status_parser.add_argument("config", type=Path, help="Path to agent configuration file")
    status_parser.add_argument("--agent-id", dest="agent_id", help="Override the configured agent id")
    status_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    config = apply_env_overrides(load_config(args.config))
    if args.agent_id:
        config.agent_id = args.agent_id.strip()

    if args.command == "status":
        return show_status(config)
    return run_agent(config, once=args.once)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
