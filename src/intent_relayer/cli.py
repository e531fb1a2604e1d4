"""
intent-relayer command line.

Usage:
    intent-relayer run [--log-level DEBUG]
    intent-relayer info
    intent-relayer sign --key 0x... --chain-id 31337 --contract 0x... \\
        --from-token 0x... --to-token 0x... --amount-in 1000 --min-out 900 --nonce 0

Configuration comes from the environment; a `.env` file in the working
directory is loaded first.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time

from dotenv import load_dotenv

from intent_relayer.core.config import RelayerConfig
from intent_relayer.core.ledger import LedgerError
from intent_relayer.core.models import SignedIntent
from intent_relayer.core.wallet import RelayerWallet, WalletError
from intent_relayer.crypto.typed_data import IntentDomain, sign_intent, signed_intent_hash
from intent_relayer.errors import FatalInitError
from intent_relayer.relayer.scheduler import IntentRelayer

logger = logging.getLogger("intent_relayer.cli")


def run_command(args: argparse.Namespace) -> int:
    relayer = IntentRelayer.from_config(RelayerConfig.from_env())
    relayer.initialize()

    def _shutdown(signum, _frame):
        logger.info(f"Received signal {signum}, shutting down")
        relayer.stop(wait=False)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    relayer.run()
    return 0


def info_command(args: argparse.Namespace) -> int:
    relayer = IntentRelayer.from_config(RelayerConfig.from_env())
    info = relayer.contract_info()
    out = info.model_dump()
    out["fee_pct"] = info.fee_pct
    print(json.dumps(out, indent=2))
    return 0


def sign_command(args: argparse.Namespace) -> int:
    try:
        signer = RelayerWallet.from_private_key(args.key)
    except WalletError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    intent = SignedIntent(
        from_token=args.from_token,
        to_token=args.to_token,
        amount_in=args.amount_in,
        min_amount_out=args.min_out,
        recipient=args.recipient or signer.address,
        deadline=args.deadline or int(time.time()) + 3600,
        nonce=args.nonce,
    )
    domain = IntentDomain(chain_id=args.chain_id, verifying_contract=args.contract)
    key = args.key if args.key.startswith("0x") else "0x" + args.key
    out = {
        "intent": intent.model_dump(),
        "signature": sign_intent(key, intent, domain),
        "intent_hash": signed_intent_hash(intent),
    }
    print(json.dumps(out, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intent-relayer",
        description="Discover, validate and execute IntentSwap intents",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the relayer until interrupted")
    run.set_defaults(func=run_command)

    info = sub.add_parser("info", help="Print the contract's configuration as JSON")
    info.set_defaults(func=info_command)

    sign = sub.add_parser("sign", help="Sign a SwapIntent (for testing)")
    sign.add_argument("--key", required=True, help="Signer private key (hex)")
    sign.add_argument("--chain-id", type=int, required=True)
    sign.add_argument("--contract", required=True, help="IntentSwap contract address")
    sign.add_argument("--from-token", required=True)
    sign.add_argument("--to-token", required=True)
    sign.add_argument("--amount-in", type=int, required=True)
    sign.add_argument("--min-out", type=int, required=True)
    sign.add_argument("--nonce", type=int, required=True)
    sign.add_argument("--recipient", help="Defaults to the signer's address")
    sign.add_argument("--deadline", type=int, help="Unix time (default: one hour from now)")
    sign.set_defaults(func=sign_command)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except FatalInitError as e:
        logger.error(f"Fatal error during initialization ({e.kind.value}): {e}")
        return 1
    except LedgerError as e:
        logger.error(f"Ledger unreachable: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
