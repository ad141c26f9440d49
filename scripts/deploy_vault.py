"""
============================================================================
RaceFi Backend v1.0.0
Vault Deployment - Deploy, Fund and Smoke-Test a TokenWithdrawal Vault
============================================================================

Reliability Level: STANDARD
Input Constraints: 0x addresses, ether-denominated amounts
Side Effects: Prints the deployment summary and contract events

USAGE
-----
    # Deploy with one admin and two withdrawers, 10 ETH daily limit
    python scripts/deploy_vault.py --admin 0xaa.. --withdrawer 0xbb.. --withdrawer 0xcc..

    # Fund the vault and run a request / confirm / timelock / execute pass
    python scripts/deploy_vault.py --admin 0xaa.. --withdrawer 0xbb.. \\
        --withdrawer 0xcc.. --fund 5 --smoke

============================================================================
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv()

from app.chain.token_withdrawal import (
    WITHDRAWAL_DELAY,
    ContractRevert,
    ManualClock,
    TokenWithdrawal,
    deploy,
)
from app.chain.units import format_ether, is_address, parse_ether

SMOKE_RECIPIENT = "0x" + "0b" * 20


def run_smoke(vault: TokenWithdrawal, clock: ManualClock, withdrawers: list, amount: Decimal) -> None:
    """
    Request with the first withdrawer, confirm with the second, wait out
    the timelock and execute.
    """
    if len(withdrawers) < 2:
        raise SystemExit("--smoke needs at least two --withdrawer addresses")

    wei = parse_ether(amount)
    request_id = vault.request_eth_withdrawal(withdrawers[0], SMOKE_RECIPIENT, wei)
    vault.confirm_withdrawal(withdrawers[1], request_id)

    try:
        vault.execute_withdrawal(withdrawers[0], request_id)
    except ContractRevert as e:
        print(f"[OK] Early execution refused: {e.reason}")

    clock.advance(WITHDRAWAL_DELAY)
    vault.execute_withdrawal(withdrawers[0], request_id)
    received = vault.token_balance_of(None, SMOKE_RECIPIENT)
    print(f"[OK] Executed request {request_id} | recipient received {format_ether(received)} ETH")


def print_events(vault: TokenWithdrawal) -> None:
    print("-" * 60)
    for event in vault.events:
        args = ", ".join(f"{k}={v}" for k, v in event.args.items())
        print(f"{event.timestamp} {event.name}({args})")
    print("-" * 60)


def main() -> int:
    parser = argparse.ArgumentParser(description="Deploy a TokenWithdrawal vault")
    parser.add_argument("--admin", required=True, help="Admin address")
    parser.add_argument(
        "--withdrawer",
        action="append",
        default=[],
        help="Withdrawer address (repeatable)",
    )
    parser.add_argument("--daily-limit", default="10", help="Daily limit in ETH")
    parser.add_argument("--fund", default="0", help="ETH to deposit after deployment")
    parser.add_argument(
        "--smoke",
        action="store_true",
        help="Run a simulated request/confirm/execute pass",
    )
    args = parser.parse_args()

    addresses = [args.admin] + args.withdrawer
    invalid = [a for a in addresses if not is_address(a)]
    if invalid:
        print(f"ERROR: invalid address(es): {', '.join(invalid)}")
        return 1

    clock = ManualClock()
    try:
        vault = deploy(
            args.admin, args.withdrawer, parse_ether(Decimal(args.daily_limit)), clock=clock
        )
        fund = Decimal(args.fund)
        if fund > 0:
            vault.receive_eth(args.admin, parse_ether(fund))

        print("=" * 60)
        print("TOKEN WITHDRAWAL VAULT DEPLOYED")
        print("=" * 60)
        print(f"Admin:                  {args.admin.lower()}")
        print(f"Withdrawers:            {len(args.withdrawer)}")
        print(f"Required confirmations: {vault.required_confirmations}")
        print(f"Withdrawal delay:       {vault.withdrawal_delay}s")
        print(f"Daily limit:            {format_ether(vault.daily_withdrawal_limit)} ETH")
        print(f"ETH balance:            {format_ether(vault.balance_of(None))} ETH")

        if args.smoke:
            if fund <= 0:
                print("ERROR: --smoke needs a positive --fund")
                return 1
            run_smoke(vault, clock, args.withdrawer, min(fund, Decimal("1")))
    except ContractRevert as e:
        print(f"ERROR: vault call reverted: {e.reason}")
        return 1

    print_events(vault)
    return 0


if __name__ == "__main__":
    sys.exit(main())
