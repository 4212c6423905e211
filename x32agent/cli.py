#!/usr/bin/env python3
"""
Command-line entry point for the X32 agent.

Usage:
    python -m x32agent --x32IP 192.168.1.50 --config pipeline.yaml --verbosity 1
    x32agent --help

Exit codes:
    0: --help, or Ctrl+C shutdown
    1: invalid arguments, configuration load failure, socket bind failure,
       or the receive loop died (restart required)
"""

import argparse
import sys
from typing import List, Optional

import yaml

from x32agent import osc
from x32agent.config import load_config
from x32agent.dispatch import Dispatcher
from x32agent.engine import Agent
from x32agent.log import setup_logging, get_logger
from x32agent.transport import ReceiverStoppedError, Transport


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the agent's process parameters."""
    parser = argparse.ArgumentParser(
        prog="x32agent",
        description="Keep an X32 console in sync with a declarative OSC rule pipeline",
    )
    parser.add_argument(
        "--x32IP",
        default=osc.DEFAULT_MIXER_IP,
        help=f"IP address of the X32 mixer (default: {osc.DEFAULT_MIXER_IP})",
    )
    parser.add_argument(
        "--x32Port",
        type=int,
        default=osc.DEFAULT_MIXER_PORT,
        help=f"Port of the X32 mixer (default: {osc.DEFAULT_MIXER_PORT})",
    )
    parser.add_argument(
        "--localIP",
        default=osc.DEFAULT_LOCAL_IP,
        help=f"Local IP address to bind to (default: {osc.DEFAULT_LOCAL_IP})",
    )
    parser.add_argument(
        "--verbosity",
        type=int,
        choices=[0, 1, 2],
        default=0,
        help="Verbosity level (0: no logs, 1: value changes and dispatch, 2: all logs incl. raw bytes)",
    )
    parser.add_argument(
        "--config",
        default="pipeline.yaml",
        help="Path to YAML pipeline config (default: pipeline.yaml)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this rotating file",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=Agent.DEFAULT_POLL_INTERVAL,
        help=f"Seconds between cycles (default: {Agent.DEFAULT_POLL_INTERVAL})",
    )
    return parser


def print_parameters(args: argparse.Namespace) -> None:
    print("Current parameters:")
    print(f"  x32IP: {args.x32IP}")
    print(f"  x32Port: {args.x32Port}")
    print(f"  localIP: {args.localIP}")
    print(f"  verbosity: {args.verbosity}")
    print(f"  config: {args.config}")


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, load the pipeline and run the agent.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    print_parameters(args)

    try:
        osc.validate_port(args.x32Port)
        if args.poll_interval <= 0:
            raise ValueError(f"Poll interval must be > 0, got {args.poll_interval}")
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Configuration must be valid before any socket is opened
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Failed to load config: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid config: {e}", file=sys.stderr)
        return 1

    setup_logging(args.verbosity, log_file=args.log_file)
    logger = get_logger(__name__)
    logger.info(
        f"Loaded {args.config}: {len(config.watched)} watched, {len(config.enforced)} enforced"
    )

    transport = Transport(args.x32IP, args.x32Port, args.localIP, Dispatcher())
    agent = Agent(config, transport, poll_interval=args.poll_interval)

    try:
        transport.open()
    except OSError as e:
        print(f"Error: Failed to bind to local UDP port on {args.localIP}: {e}", file=sys.stderr)
        return 1

    transport.start_receiver()

    try:
        agent.run()
    except KeyboardInterrupt:
        logger.info("Shutdown requested (Ctrl+C)")
        return 0
    except ReceiverStoppedError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        agent.stop()
        transport.stop()
        print(f"X32 AGENT STATISTICS: {transport.stats.summary()}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
