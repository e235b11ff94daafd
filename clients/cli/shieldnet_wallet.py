#!/usr/bin/env python3
# clients/cli/shieldnet_wallet.py
# CLI over the local shielded wallet: keys, notes, tree, relayed spends.

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from shieldnet import config
from shieldnet.api.logging_config import setup_logging
from shieldnet.api.relay_client import RelayClient
from shieldnet.crypto_core.field import to_int
from shieldnet.crypto_core.notes import random_field_element
from shieldnet.database.store import WalletStore
from shieldnet.errors import ShieldNetError
from shieldnet.wallet.calldata import Deposit
from shieldnet.wallet.circuit_inputs import OutputSpec
from shieldnet.wallet.shielded_wallet import ShieldedWallet
from shieldnet.wallet.units import format_units, parse_units


# ======== Color accents (no deps) ========
class C:
    OK   = "\033[92m"
    WARN = "\033[93m"
    ERR  = "\033[91m"
    DIM  = "\033[2m"
    BOLD = "\033[1m"
    RST  = "\033[0m"


def _short(h: str) -> str:
    return f"{h[:6]}…{h[-4:]}" if h and len(h) > 12 else h


def _open(args: argparse.Namespace, create: bool = False) -> ShieldedWallet:
    store = WalletStore(data_dir=args.data_dir)
    submitter = RelayClient(args.relayer) if getattr(args, "relayer", None) else RelayClient()
    return ShieldedWallet.open(store, submitter=submitter, depth=args.depth, create=create)


# ======== Commands ========
def cmd_init(args: argparse.Namespace) -> int:
    store = WalletStore(data_dir=args.data_dir)
    if store.exists():
        print(f"{C.WARN}Wallet already exists: {store.path}{C.RST}")
        return 1
    w = ShieldedWallet.open(store, depth=args.depth, create=True)
    print(f"{C.OK}Created {store.path}{C.RST}")
    print(f"  Public key   : {hex(w.keypair.public_key)}")
    print(f"  Viewing key  : {w.viewing_key.hex()}")
    return 0


def cmd_show_key(args: argparse.Namespace) -> int:
    w = _open(args)
    print(json.dumps({
        "public_key": hex(w.keypair.public_key),
        "viewing_key": w.viewing_key.hex(),
    }, indent=2))
    return 0


def cmd_balance(args: argparse.Namespace) -> int:
    w = _open(args)
    asset = to_int(args.asset) if args.asset else None
    print(format_units(w.balance(asset)))
    return 0


def cmd_notes(args: argparse.Namespace) -> int:
    w = _open(args)
    notes = w.ledger.notes() if args.all else w.ledger.unspent_notes()
    if args.json:
        print(json.dumps([n.to_dict() for n in notes], indent=2))
        return 0
    if not notes:
        print(f"{C.DIM}(no notes){C.RST}")
    for n in notes:
        flag = f"{C.DIM}spent{C.RST}" if n.spent else f"{C.OK}unspent{C.RST}"
        print(f"  #{n.leaf_index:<5} {format_units(n.amount):>24}  {_short(hex(n.commitment))}  {flag}")
    return 0


def cmd_root(args: argparse.Namespace) -> int:
    w = _open(args)
    print(f"Leaves : {len(w.tree)}")
    print(f"Root   : {hex(w.tree.get_root())}")
    return 0


def cmd_proof(args: argparse.Namespace) -> int:
    w = _open(args)
    p = w.tree.get_proof(args.index)
    print(json.dumps({
        "leaf": hex(p.leaf),
        "index": p.index,
        "root": hex(p.root),
        "siblings": [hex(s) for s in p.siblings],
        "path_bits": p.path_bits,
    }, indent=2))
    return 0


def cmd_sync_leaves(args: argparse.Namespace) -> int:
    """Leaves file: JSON list of the pool's commitments in insertion order."""
    w = _open(args)
    with open(args.file, "r", encoding="utf-8") as f:
        leaves = [to_int(x) for x in json.load(f)]
    added = w.sync_leaves(leaves)
    print(f"{C.OK}Appended {added} leaf/leaves; tree size {len(w.tree)}{C.RST}")
    return 0


def cmd_deposit(args: argparse.Namespace) -> int:
    """
    Print deposit calldata for the user's own account to invoke. After the
    deposit lands, run sync-leaves and then import-note with the printed values.
    """
    w = _open(args)
    amount = parse_units(args.amount)
    asset = to_int(args.asset) if args.asset else w.asset_id
    out = OutputSpec.new(amount, asset, w.keypair.public_key, random_field_element())
    calldata = Deposit(commitment=out.commitment, amount=amount).serialize()
    print(json.dumps({
        "contract": config.SHIELD_POOL_ADDRESS,
        "entrypoint": Deposit.KIND,
        "calldata": calldata.to_hex_strings(),
        "amount": str(amount),
        "asset_id": hex(asset),
        "blinding": hex(out.blinding),
        "commitment": hex(out.commitment),
    }, indent=2))
    return 0


def cmd_import_note(args: argparse.Namespace) -> int:
    w = _open(args)
    asset = to_int(args.asset) if args.asset else w.asset_id
    n = w.import_note(to_int(args.amount), asset, to_int(args.blinding), args.leaf_index)
    print(f"{C.OK}Imported note {_short(hex(n.commitment))} at leaf {n.leaf_index}{C.RST}")
    return 0


def cmd_receive_note(args: argparse.Namespace) -> int:
    w = _open(args)
    felts = [to_int(x) for x in json.loads(args.encrypted)]
    n = w.receive_note(felts, args.leaf_index)
    print(f"{C.OK}Received {format_units(n.amount)} at leaf {n.leaf_index}{C.RST}")
    return 0


def cmd_withdraw(args: argparse.Namespace) -> int:
    w = _open(args)
    res = w.withdraw(parse_units(args.amount), to_int(args.recipient), fee=parse_units(args.fee))
    print(f"{C.OK}Withdraw confirmed: {res.receipt.tx_hash}{C.RST}")
    return 0


def cmd_transfer(args: argparse.Namespace) -> int:
    w = _open(args)
    view = bytes.fromhex(args.viewing_key) if args.viewing_key else None
    res = w.transfer(parse_units(args.amount), to_int(args.to), view, fee=parse_units(args.fee))
    print(f"{C.OK}Transfer confirmed: {res.receipt.tx_hash}{C.RST}")
    # outputs were appended in calldata order: recipient, then change
    print(f"  Recipient leaf : {len(w.tree) - 2}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="shieldnet-wallet", description="ShieldNet shielded wallet")
    p.add_argument("--data-dir", default=config.DATA_DIR, help="Wallet directory (default: DATA_DIR)")
    p.add_argument("--depth", type=int, default=config.MERKLE_DEPTH, help="Merkle tree depth")
    p.add_argument("--relayer", default=None, help="Relayer base URL (default: RELAYER_URL)")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init", help="Create a new wallet").set_defaults(func=cmd_init)
    sub.add_parser("show-key", help="Print public and viewing keys").set_defaults(func=cmd_show_key)

    s = sub.add_parser("balance", help="Shielded balance")
    s.add_argument("--asset", default=None)
    s.set_defaults(func=cmd_balance)

    s = sub.add_parser("notes", help="List notes")
    s.add_argument("--all", action="store_true", help="Include spent notes")
    s.add_argument("--json", action="store_true")
    s.set_defaults(func=cmd_notes)

    sub.add_parser("root", help="Local Merkle root").set_defaults(func=cmd_root)

    s = sub.add_parser("proof", help="Merkle proof for a leaf")
    s.add_argument("index", type=int)
    s.set_defaults(func=cmd_proof)

    s = sub.add_parser("sync-leaves", help="Append pool leaves from a JSON file")
    s.add_argument("file")
    s.set_defaults(func=cmd_sync_leaves)

    s = sub.add_parser("deposit", help="Print deposit calldata")
    s.add_argument("amount", help="Token amount, e.g. 1.5")
    s.add_argument("--asset", default=None)
    s.set_defaults(func=cmd_deposit)

    s = sub.add_parser("import-note", help="Record a note already in the tree")
    s.add_argument("amount", help="Base units")
    s.add_argument("blinding")
    s.add_argument("leaf_index", type=int)
    s.add_argument("--asset", default=None)
    s.set_defaults(func=cmd_import_note)

    s = sub.add_parser("receive-note", help="Decrypt and record an incoming transfer note")
    s.add_argument("encrypted", help="JSON list of felts from the transfer calldata")
    s.add_argument("leaf_index", type=int)
    s.set_defaults(func=cmd_receive_note)

    s = sub.add_parser("withdraw", help="Unshield through the relayer")
    s.add_argument("amount")
    s.add_argument("recipient")
    s.add_argument("--fee", default="0")
    s.set_defaults(func=cmd_withdraw)

    s = sub.add_parser("transfer", help="Shielded transfer through the relayer")
    s.add_argument("amount")
    s.add_argument("to", help="Recipient public key")
    s.add_argument("--viewing-key", default=None, help="Recipient viewing key (hex)")
    s.add_argument("--fee", default="0")
    s.set_defaults(func=cmd_transfer)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)
    try:
        return args.func(args)
    except ShieldNetError as e:
        print(f"{C.ERR}{type(e).__name__}: {e}{C.RST}", file=sys.stderr)
        if getattr(e, "outcome_unknown", False):
            print(f"{C.WARN}The relayer may have broadcast it; run sync-leaves before retrying.{C.RST}", file=sys.stderr)
        return 2
    except FileNotFoundError as e:
        print(f"{C.ERR}No wallet found ({e}); run `init` first{C.RST}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted by user."); sys.exit(130)
