"""CLI entry point for herald."""

import argparse
import json
import logging
import sys
import time

from .config import RegistryConfig, config_to_yaml, load_config, merge_cli_args
from .errors import RegistryError
from .registry import RedisRegistry


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add config flags shared by every subcommand."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--server-addr", type=str, dest="server_addr",
        help="Redis endpoint as host:port (default: localhost:6379)",
    )
    parser.add_argument("--password", type=str, help="Redis password")
    parser.add_argument("--db", type=int, help="Redis logical database index")
    parser.add_argument(
        "--cluster", type=str,
        help="Cluster this process registers into (default: default)",
    )
    parser.add_argument(
        "--key-prefix", type=str, dest="key_prefix",
        help="Prefix for registry hash keys and channels (default: registry.redis.)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Log debug output to stderr",
    )


def _build_config(args) -> RegistryConfig:
    """Build a RegistryConfig from a config file + CLI overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = RegistryConfig()
    merge_cli_args(config, args)
    return config


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(name)s] %(message)s",
        stream=sys.stderr,
    )


def _format_addresses(addresses, fmt: str) -> str:
    """Format a list of ServiceAddress objects for output."""
    if fmt == "json":
        return json.dumps([str(a) for a in addresses], indent=2)
    lines = [str(a) for a in addresses]
    return "\n".join(lines) if lines else "(no addresses)"


def _wait_for_interrupt() -> None:
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("", file=sys.stderr)


def cmd_register(args) -> None:
    """Register an address; with --hold keep the heartbeat alive until Ctrl-C."""
    config = _build_config(args)
    with RedisRegistry(config) as registry:
        address = registry.register(args.address)
        print(f"Registered {address} in cluster '{config.cluster}'", file=sys.stderr)
        if not args.hold:
            return
        print("Holding registration, press Ctrl-C to withdraw ...", file=sys.stderr)
        _wait_for_interrupt()
        registry.unregister(address)
        print(f"Unregistered {address}", file=sys.stderr)


def cmd_unregister(args) -> None:
    config = _build_config(args)
    with RedisRegistry(config) as registry:
        address = registry.unregister(args.address)
        print(f"Unregistered {address} from cluster '{config.cluster}'", file=sys.stderr)


def cmd_lookup(args) -> None:
    config = _build_config(args)
    with RedisRegistry(config) as registry:
        addresses = registry.lookup(args.key)
    print(_format_addresses(addresses, args.format))


def cmd_watch(args) -> None:
    """Print every raw event published for a cluster until interrupted."""
    config = _build_config(args)

    def _print_event(message: str) -> None:
        print(message, flush=True)

    with RedisRegistry(config) as registry:
        registry.subscribe(args.watch_cluster, _print_event)
        print(f"Watching cluster '{args.watch_cluster}', press Ctrl-C to stop ...", file=sys.stderr)
        _wait_for_interrupt()
        registry.unsubscribe(args.watch_cluster, _print_event)


def cmd_config(args) -> None:
    """Print the effective configuration as YAML."""
    print(config_to_yaml(_build_config(args)), end="")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="herald",
        description="herald: Redis-backed service discovery",
    )
    subparsers = parser.add_subparsers(dest="command")

    # register
    register_parser = subparsers.add_parser(
        "register", help="Register an address in the configured cluster",
    )
    _add_common_args(register_parser)
    register_parser.add_argument("address", type=str, help="Address as host:port")
    register_parser.add_argument(
        "--hold", action="store_true",
        help="Keep the registration alive with heartbeats until interrupted",
    )
    register_parser.set_defaults(func=cmd_register)

    # unregister
    unregister_parser = subparsers.add_parser(
        "unregister", help="Remove an address from the configured cluster",
    )
    _add_common_args(unregister_parser)
    unregister_parser.add_argument("address", type=str, help="Address as host:port")
    unregister_parser.set_defaults(func=cmd_unregister)

    # lookup
    lookup_parser = subparsers.add_parser(
        "lookup", help="List the live addresses for a key or cluster",
    )
    _add_common_args(lookup_parser)
    lookup_parser.add_argument("key", type=str, help="Lookup key or cluster name")
    lookup_parser.add_argument(
        "--format", choices=["text", "json"], default="text",
        help="Output format (default: text)",
    )
    lookup_parser.set_defaults(func=cmd_lookup)

    # watch
    watch_parser = subparsers.add_parser(
        "watch", help="Stream membership events for a cluster",
    )
    _add_common_args(watch_parser)
    watch_parser.add_argument("watch_cluster", metavar="CLUSTER", type=str, help="Cluster name")
    watch_parser.set_defaults(func=cmd_watch)

    # config
    config_parser = subparsers.add_parser(
        "config", help="Show the effective configuration",
    )
    _add_common_args(config_parser)
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _setup_logging(args.verbose)

    try:
        args.func(args)
    except RegistryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
