"""
Deployment tool for a release token.

    python -m release_ledger.deploy_tool sample-config --output token.json
    python -m release_ledger.deploy_tool create --config token.json --output-db ./data
    python -m release_ledger.deploy_tool inspect --db ./data
    python -m release_ledger.deploy_tool release --db ./data --key controller.pem \
        --to <hex address> --amount <units>
    python -m release_ledger.deploy_tool serve --config token.json --db ./data

`create` refuses to overwrite an existing database; the supply is minted
exactly once per deployment.
"""
import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Optional

from release_ledger.config import Config, TokenConfig
from release_ledger.core import Transaction, RELEASE
from release_ledger.crypto import (
    generate_key_pair, serialize_public_key, serialize_private_key,
    load_private_key, public_key_to_address,
)
from release_ledger.db import DB, LedgerStore
from release_ledger.errors import ValidationError
from release_ledger.monitoring import Monitor
from release_ledger.token import ReleaseToken

logger = logging.getLogger(__name__)


def generate_sample_config(output_path: str):
    """Writes a sample config plus a fresh controller key next to it."""
    priv, pub = generate_key_pair()
    controller = public_key_to_address(serialize_public_key(pub))

    config = Config.default()
    config.token = TokenConfig(controller=controller.hex())
    config.to_file(output_path)

    key_path = Path(output_path).with_suffix('.controller.pem')
    key_path.write_bytes(serialize_private_key(priv))

    print(f"Generated sample configuration at: {output_path}")
    print(f"Controller key written to: {key_path} (DO NOT USE IN PRODUCTION)")
    print(f"  - Controller address: {controller.hex()}")


def create_deployment(config_path: str, output_db_path: Optional[str] = None) -> int:
    print(f"Loading configuration from: {config_path}")
    config = Config.from_file(config_path)
    if output_db_path:
        config.database = replace(config.database, path=output_db_path)

    db_path = Path(config.database.path)
    if db_path.exists():
        print(f"Error: Output database path '{db_path}' already exists. Please remove it first.")
        return 1

    try:
        token = ReleaseToken.from_config(config)
    except ValidationError as e:
        print(f"Error: invalid configuration: {type(e).__name__}: {e}")
        return 1

    with DB.from_config(config.database) as db:
        LedgerStore(db).save(token)

    print("\nToken deployed successfully!")
    print(f"  - Supply: {token.format_amount(token.total_supply)} {token.symbol} in custody")
    print(f"  - Controller: {token.controller.hex()}")
    print(f"  - Transition: {token.transition}")
    print(f"Database initialized at: {db_path}")
    return 0


def inspect_deployment(db_path: str) -> int:
    with DB(db_path, create_if_missing=False) as db:
        token = LedgerStore(db).load()
    stats = token.get_stats()
    print(json.dumps(stats, indent=2, default=str))
    return 0


def release_from_custody(db_path: str, key_path: str, to_hex: str, amount: int) -> int:
    private_key = load_private_key(Path(key_path).read_bytes())
    public_pem = serialize_public_key(private_key.public_key())
    sender = public_key_to_address(public_pem)

    with DB(db_path, create_if_missing=False) as db:
        store = LedgerStore(db)
        token = store.load()

        tx = Transaction(
            sender_public_key=public_pem,
            tx_type=RELEASE,
            data={'to': to_hex, 'amount': str(amount)},
            nonce=token.nonce_of(sender),
            chain_id=token.chain_id,
        )
        tx.sign(private_key)

        try:
            tx_id = token.apply_transaction(tx)
        except ValidationError as e:
            print(f"Release rejected: {type(e).__name__}: {e}")
            return 1

        store.save(token)

    print(f"Released {token.format_amount(amount)} {token.symbol} to {to_hex}")
    print(f"  - Transaction: {tx_id.hex()}")
    return 0


def serve_metrics(config_path: str, db_path: str, interval: float = 15.0,
                  cycles: Optional[int] = None) -> int:
    """
    Expose Prometheus metrics for a stored deployment until interrupted.
    `cycles` bounds the refresh loop; None runs forever.
    """
    config = Config.from_file(config_path)
    if not config.monitoring.enabled:
        print("Error: monitoring is disabled in the configuration (monitoring.enabled).")
        return 1

    with DB(db_path, create_if_missing=False) as db:
        token = LedgerStore(db).load()

    monitor = Monitor.from_config(token, config.monitoring)
    print(f"Serving metrics for {token.symbol} on http://{monitor.host}:{monitor.port}/metrics")
    try:
        done = 0
        while cycles is None or done < cycles:
            time.sleep(interval)
            monitor.update()
            done += 1
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        monitor.stop_server()
    return 0


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Release token deployment tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample token config")
    parser_sample.add_argument("--output", type=str, default="token.json", help="Output file path")

    parser_create = subparsers.add_parser("create", help="Mint the supply into custody and persist it")
    parser_create.add_argument("--config", type=str, default="token.json", help="Path to token config file")
    parser_create.add_argument("--output-db", type=str, help="Path for the new database (default: database.path from the config)")

    parser_inspect = subparsers.add_parser("inspect", help="Show stored token state")
    parser_inspect.add_argument("--db", type=str, required=True, help="Database path")

    parser_release = subparsers.add_parser("release", help="Release the custodial balance")
    parser_release.add_argument("--db", type=str, required=True, help="Database path")
    parser_release.add_argument("--key", type=str, required=True, help="Controller private key (PEM)")
    parser_release.add_argument("--to", type=str, required=True, help="Recipient hex address")
    parser_release.add_argument("--amount", type=int, required=True, help="Amount in smallest units")

    parser_serve = subparsers.add_parser("serve", help="Expose Prometheus metrics for a stored deployment")
    parser_serve.add_argument("--config", type=str, default="token.json", help="Path to token config file")
    parser_serve.add_argument("--db", type=str, required=True, help="Database path")
    parser_serve.add_argument("--interval", type=float, default=15.0, help="Gauge refresh interval in seconds")

    args = parser.parse_args(argv)

    if args.command == "sample-config":
        generate_sample_config(args.output)
        return 0
    elif args.command == "create":
        return create_deployment(args.config, args.output_db)
    elif args.command == "inspect":
        return inspect_deployment(args.db)
    elif args.command == "release":
        return release_from_custody(args.db, args.key, args.to, args.amount)
    elif args.command == "serve":
        return serve_metrics(args.config, args.db, args.interval)
    return 2


if __name__ == '__main__':
    sys.exit(main())
