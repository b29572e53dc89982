"""Merkledrop CLI: command-line interface for building and running airdrops.

Usage:
    python -m merkledrop.cli build --input recipients.csv --output drop.json
    python -m merkledrop.cli proof --distribution drop.json --account 0x...
    python -m merkledrop.cli verify --root 0x... --account 0x... --amount 100 --proof 0x...
    python -m merkledrop.cli deploy --distribution drop.json --profile rotatable
    python -m merkledrop.cli claim --distribution drop.json
    python -m merkledrop.cli pause
    python -m merkledrop.cli status

The caller identity for state-changing commands comes from --from or is
derived from PRIVATE_KEY (read from the environment or a .env file).
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_account import Account

from merkledrop.crypto.distribution import Distribution, load_entries
from merkledrop.crypto.merkle import indexed_leaf_hash, leaf_hash, verify_proof
from merkledrop.models.airdrop import DropProfile, LeafScheme, Role
from merkledrop.models.evm import normalize_address
from merkledrop.persistence.event_log import EventLog
from merkledrop.persistence.state_store import StateStore
from merkledrop.policy.resolver import PolicyResolver
from merkledrop.runtime.proxy import LOGIC_REGISTRY
from merkledrop.service import AirdropService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _config_dir(args: argparse.Namespace) -> Path:
    if args.config is not None:
        return args.config
    env = os.getenv("AIRDROP_CONFIG_DIR")
    return Path(env) if env else DEFAULT_CONFIG


def _data_dir(args: argparse.Namespace) -> Path:
    if args.data_dir is not None:
        return args.data_dir
    env = os.getenv("AIRDROP_DATA_DIR")
    return Path(env) if env else DEFAULT_DATA


def _make_service(args: argparse.Namespace) -> AirdropService:
    """Create an AirdropService with durable persistence."""
    data_dir = _data_dir(args)
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(_config_dir(args))
    return AirdropService(
        resolver,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _sender(args: argparse.Namespace) -> str:
    """Resolve the caller: --from, else the account behind PRIVATE_KEY."""
    if getattr(args, "sender", None):
        return normalize_address(args.sender)
    key = os.getenv("PRIVATE_KEY")
    if not key:
        raise ValueError("No caller identity: pass --from or set PRIVATE_KEY")
    return Account.from_key(key).address


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _claim_args(args: argparse.Namespace, account: str) -> tuple[int, list[str], Optional[int]]:
    """Amount, proof and index either from a distribution file or the flags."""
    if args.distribution is not None:
        recipient = Distribution.load(args.distribution).recipient(account)
        if recipient is None:
            raise ValueError(f"{account} is not in the distribution")
        proof = ["0x" + p.hex() for p in recipient.proof]
        return recipient.amount, proof, recipient.index
    if args.amount is None:
        raise ValueError("Pass --distribution or --amount with --proof")
    return args.amount, list(args.proof), args.index


def cmd_build(args: argparse.Namespace) -> int:
    distribution = Distribution.build(load_entries(args.input), LeafScheme(args.scheme))
    distribution.save(args.output)
    print(json.dumps({
        "root": "0x" + distribution.root.hex(),
        "recipients": len(distribution.recipients),
        "token_total": str(distribution.token_total),
        "output": str(args.output),
    }, indent=2))
    return 0


def cmd_proof(args: argparse.Namespace) -> int:
    distribution = Distribution.load(args.distribution)
    if args.index is not None:
        try:
            recipient = distribution.recipient_at(args.index)
        except KeyError as e:
            print(f"Failed: {e}", file=sys.stderr)
            return 1
    else:
        recipient = distribution.recipient(args.account)
        if recipient is None:
            print(f"Failed: {args.account} is not in the distribution", file=sys.stderr)
            return 1
    print(json.dumps({"root": "0x" + distribution.root.hex(), **recipient.to_dict()}, indent=2))
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    if LeafScheme(args.scheme) == LeafScheme.INDEXED:
        if args.index is None:
            raise ValueError("--index is required for the indexed scheme")
        leaf = indexed_leaf_hash(args.index, args.account, args.amount)
    else:
        leaf = leaf_hash(args.account, args.amount)
    valid = verify_proof(args.proof, args.root, leaf)
    print(json.dumps({"valid": valid}))
    return 0 if valid else 1


def cmd_deploy(args: argparse.Namespace) -> int:
    service = _make_service(args)
    scheme = LeafScheme(args.scheme) if args.scheme else None
    if args.distribution is not None:
        distribution = Distribution.load(args.distribution)
        root: str = "0x" + distribution.root.hex()
        scheme = scheme or distribution.scheme
    elif args.root is not None:
        root = args.root
    else:
        raise ValueError("Pass --root or --distribution")
    result = service.deploy(
        _sender(args),
        root,
        profile=DropProfile(args.profile) if args.profile else None,
        admin=args.admin,
        max_claim_amount=args.max_claim,
        leaf_scheme=scheme,
    )
    return _report(result)


def cmd_claim(args: argparse.Namespace) -> int:
    service = _make_service(args)
    sender = _sender(args)
    amount, proof, index = _claim_args(args, sender)
    return _report(service.claim(sender, amount, proof, index))


def cmd_can_claim(args: argparse.Namespace) -> int:
    service = _make_service(args)
    account = normalize_address(args.account) if args.account else _sender(args)
    amount, proof, index = _claim_args(args, account)
    result = service.can_claim(account, amount, proof, index)
    if not result.success:
        return _report(result)
    print(json.dumps({"account": account, **result.data}))
    return 0 if result.data["eligible"] else 1


def cmd_set_root(args: argparse.Namespace) -> int:
    service = _make_service(args)
    if args.distribution is not None:
        root = "0x" + Distribution.load(args.distribution).root.hex()
    elif args.root is not None:
        root = args.root
    else:
        raise ValueError("Pass --root or --distribution")
    return _report(service.set_root(_sender(args), root))


def cmd_pause(args: argparse.Namespace) -> int:
    return _report(_make_service(args).pause(_sender(args)))


def cmd_unpause(args: argparse.Namespace) -> int:
    return _report(_make_service(args).unpause(_sender(args)))


def cmd_set_max(args: argparse.Namespace) -> int:
    return _report(_make_service(args).set_max_claim_amount(_sender(args), args.amount))


def cmd_withdraw(args: argparse.Namespace) -> int:
    return _report(_make_service(args).emergency_withdraw(_sender(args), args.amount))


def cmd_fund(args: argparse.Namespace) -> int:
    return _report(_make_service(args).fund(_sender(args), args.amount))


def cmd_grant_role(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.grant_role(_sender(args), Role(args.role), args.account))


def cmd_revoke_role(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.revoke_role(_sender(args), Role(args.role), args.account))


def cmd_upgrade(args: argparse.Namespace) -> int:
    return _report(_make_service(args).upgrade(_sender(args), args.logic))


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run policy invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(_config_dir(args))


def _add_sender(p: argparse.ArgumentParser) -> None:
    p.add_argument("--from", dest="sender", help="Caller address (default: PRIVATE_KEY account)")


def _add_claim_source(p: argparse.ArgumentParser) -> None:
    p.add_argument("--distribution", type=Path, help="Distribution JSON to take amount/proof from")
    p.add_argument("--amount", type=int, help="Entitled amount (base units)")
    p.add_argument("--proof", nargs="*", default=[], help="Proof hashes, 0x-hex")
    p.add_argument("--index", type=int, help="Leaf index (indexed scheme)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merkledrop",
        description="Merkledrop: Merkle airdrop CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config directory (default: $AIRDROP_CONFIG_DIR or config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Path to state directory (default: $AIRDROP_DATA_DIR or data/)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command")

    schemes = [s.value for s in LeafScheme]

    # build
    p_build = sub.add_parser("build", help="Build a distribution from a recipients file")
    p_build.add_argument("--input", type=Path, required=True, help="Recipients JSON or CSV")
    p_build.add_argument("--output", type=Path, required=True, help="Distribution JSON to write")
    p_build.add_argument("--scheme", default=LeafScheme.ACCOUNT.value, choices=schemes)

    # proof
    p_proof = sub.add_parser("proof", help="Look up a recipient's proof")
    p_proof.add_argument("--distribution", type=Path, required=True)
    target = p_proof.add_mutually_exclusive_group(required=True)
    target.add_argument("--account", help="Recipient address")
    target.add_argument("--index", type=int, help="Recipient leaf index")

    # verify
    p_verify = sub.add_parser("verify", help="Check a proof against a root")
    p_verify.add_argument("--root", required=True, help="Merkle root, 0x-hex")
    p_verify.add_argument("--account", required=True)
    p_verify.add_argument("--amount", type=int, required=True)
    p_verify.add_argument("--proof", nargs="*", default=[], help="Proof hashes, 0x-hex")
    p_verify.add_argument("--index", type=int, help="Leaf index (indexed scheme)")
    p_verify.add_argument("--scheme", default=LeafScheme.ACCOUNT.value, choices=schemes)

    # deploy
    p_deploy = sub.add_parser("deploy", help="Deploy token and airdrop")
    _add_sender(p_deploy)
    p_deploy.add_argument("--root", help="Merkle root, 0x-hex")
    p_deploy.add_argument("--distribution", type=Path, help="Take the root from a distribution")
    p_deploy.add_argument("--profile", choices=[p.value for p in DropProfile])
    p_deploy.add_argument("--admin", help="Initial admin (default: deployer)")
    p_deploy.add_argument("--max-claim", type=int, help="Per-claim bound (base units)")
    p_deploy.add_argument("--scheme", choices=schemes)

    # claim / can-claim
    p_claim = sub.add_parser("claim", help="Claim the caller's entitlement")
    _add_sender(p_claim)
    _add_claim_source(p_claim)

    p_can = sub.add_parser("can-claim", help="Check whether a claim would succeed")
    _add_sender(p_can)
    p_can.add_argument("--account", help="Account to check (default: caller)")
    _add_claim_source(p_can)

    # set-root
    p_root = sub.add_parser("set-root", help="Rotate the Merkle root")
    _add_sender(p_root)
    p_root.add_argument("--root", help="New root, 0x-hex")
    p_root.add_argument("--distribution", type=Path, help="Take the root from a distribution")

    # pause / unpause
    _add_sender(sub.add_parser("pause", help="Pause claims"))
    _add_sender(sub.add_parser("unpause", help="Resume claims"))

    # set-max / withdraw / fund
    for name, help_text in (
        ("set-max", "Set the per-claim bound"),
        ("withdraw", "Emergency-withdraw tokens held by the airdrop"),
        ("fund", "Mint tokens to the airdrop address"),
    ):
        p_amount = sub.add_parser(name, help=help_text)
        _add_sender(p_amount)
        p_amount.add_argument("--amount", type=int, required=True, help="Amount (base units)")

    # grant-role / revoke-role
    for name, help_text in (("grant-role", "Grant a role"), ("revoke-role", "Revoke a role")):
        p_role = sub.add_parser(name, help=help_text)
        _add_sender(p_role)
        p_role.add_argument("--role", required=True, choices=[r.value for r in Role])
        p_role.add_argument("--account", required=True)

    # upgrade
    p_up = sub.add_parser("upgrade", help="Swap the airdrop logic version")
    _add_sender(p_up)
    p_up.add_argument("--logic", required=True, choices=sorted(LOGIC_REGISTRY))

    # status
    sub.add_parser("status", help="Show deployment status")

    # check-invariants
    sub.add_parser("check-invariants", help="Run policy invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    load_dotenv(Path.cwd() / ".env")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "build": cmd_build,
        "proof": cmd_proof,
        "verify": cmd_verify,
        "deploy": cmd_deploy,
        "claim": cmd_claim,
        "can-claim": cmd_can_claim,
        "set-root": cmd_set_root,
        "pause": cmd_pause,
        "unpause": cmd_unpause,
        "set-max": cmd_set_max,
        "withdraw": cmd_withdraw,
        "fund": cmd_fund,
        "grant-role": cmd_grant_role,
        "revoke-role": cmd_revoke_role,
        "upgrade": cmd_upgrade,
        "status": cmd_status,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (ValueError, OSError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
