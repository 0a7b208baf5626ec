"""
Crowdfunding Escrow Command Line

Calls every operation of a deployed escrow from the terminal.
Install the project first (pip install -e .) so `contracts` is importable.

Usage:
    python scripts/crowdfund.py create --title "Robotics Club" --description "Parts" --goal 5000000 --days 30
    python scripts/crowdfund.py contribute 0 --amount 1000000
    python scripts/crowdfund.py settle 0
    python scripts/crowdfund.py show 0
    python scripts/crowdfund.py contributors 0
    python scripts/crowdfund.py sweep

Environment variables:
- ALGOD_SERVER, ALGOD_TOKEN: Algorand node
- DEPLOYER_MNEMONIC: signing account (use --mnemonic-env for another one)
- CROWDFUNDING_APP_ID: application ID (or pass --app-id)
- CROWDFUNDING_ARTIFACTS: compiler output directory (default: build)
"""

import argparse
import base64
import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from algosdk import encoding
from algosdk.atomic_transaction_composer import (
    AccountTransactionSigner,
    AtomicTransactionComposer,
)
from algosdk.error import AlgodHTTPError

from contracts.crowdfunding.client import (
    build_contribute,
    build_create_campaign,
    build_emergency_withdraw,
    build_settle,
    contribution_box_name,
    contributor_box_name,
    decode_events,
    get_account,
    get_algod_client,
    load_contract,
    platform_fee_split,
    read_campaign,
    read_campaign_count,
    settle_inner_txns,
)

load_dotenv()


def print_events(client, tx_ids):
    """Print the escrow events logged by the confirmed transactions."""
    for tx_id in tx_ids:
        info = client.pending_transaction_info(tx_id)
        for event in decode_events(info.get("logs", [])):
            name = event.pop("event")
            details = ", ".join(f"{key}={value}" for key, value in event.items())
            print(f"   📣 {name}: {details}")


def print_campaign(campaign_id, campaign):
    deadline = datetime.fromtimestamp(campaign["deadline"], tz=timezone.utc)
    print(f"\nCampaign {campaign_id}: {campaign['title']}")
    print(f"   Description: {campaign['description']}")
    print(f"   Creator: {campaign['creator']}")
    print(f"   Status: {campaign['status_name']}")
    print(f"   Raised: {campaign['raised_amount']} / {campaign['goal_amount']} microALGO")
    print(f"   Deadline: {deadline.isoformat()}")
    print(f"   Contributors: {campaign['contributor_count']}")

    payout, fee = platform_fee_split(campaign["raised_amount"])
    print(f"   Payout if withdrawn: {payout} (fee {fee})")


def has_contributed(client, app_id, campaign_id, address):
    """Whether the address already has a contribution box for the campaign."""
    try:
        client.application_box_by_name(app_id, contribution_box_name(campaign_id, address))
    except AlgodHTTPError:
        return False
    return True


def cmd_create(args, client, contract, sender, signer):
    campaign_id = read_campaign_count(client, args.app_id)

    atc = AtomicTransactionComposer()
    build_create_campaign(
        atc, contract, args.app_id, campaign_id, sender, signer,
        client.suggested_params(),
        title=args.title,
        description=args.description,
        goal_amount=args.goal,
        duration_days=args.days,
    )
    result = atc.execute(client, 4)

    print(f"   ✅ Campaign created! ID: {result.abi_results[0].return_value}")
    print_events(client, result.tx_ids)


def cmd_contribute(args, client, contract, sender, signer):
    campaign = read_campaign(client, args.app_id, args.campaign_id)
    first = not has_contributed(client, args.app_id, args.campaign_id, sender)

    atc = AtomicTransactionComposer()
    build_contribute(
        atc, contract, args.app_id, args.campaign_id, campaign["contributor_count"],
        sender, signer, client.suggested_params(),
        amount=args.amount,
        first_contribution=first,
    )
    result = atc.execute(client, 4)

    print(f"   ✅ Contributed {args.amount} microALGO to campaign {args.campaign_id}")
    print_events(client, result.tx_ids)


def cmd_settle(args, client, contract, sender, signer):
    owner = client.application_info(args.app_id)["params"]["creator"]
    campaign = read_campaign(client, args.app_id, args.campaign_id)

    atc = AtomicTransactionComposer()
    build_settle(
        atc, contract, args.app_id, args.campaign_id, sender, signer,
        client.suggested_params(),
        platform_owner=owner,
        inner_txns=settle_inner_txns(campaign, sender),
    )
    result = atc.execute(client, 4)

    print(f"   ✅ Campaign {args.campaign_id} settled for {sender}")
    print_events(client, result.tx_ids)


def cmd_show(args, client, contract, sender, signer):
    campaign = read_campaign(client, args.app_id, args.campaign_id)
    print_campaign(args.campaign_id, campaign)


def cmd_contributors(args, client, contract, sender, signer):
    campaign = read_campaign(client, args.app_id, args.campaign_id)

    print(f"\nContributors to campaign {args.campaign_id}:")
    for index in range(campaign["contributor_count"]):
        response = client.application_box_by_name(
            args.app_id, contributor_box_name(args.campaign_id, index)
        )
        address = encoding.encode_address(base64.b64decode(response["value"]))
        print(f"   {index + 1}. {address}")


def cmd_sweep(args, client, contract, sender, signer):
    atc = AtomicTransactionComposer()
    build_emergency_withdraw(atc, contract, args.app_id, sender, signer, client.suggested_params())
    atc.execute(client, 4)

    print("   ✅ Residual escrow balance swept to the platform owner")


COMMANDS = {
    "create": cmd_create,
    "contribute": cmd_contribute,
    "settle": cmd_settle,
    "show": cmd_show,
    "contributors": cmd_contributors,
    "sweep": cmd_sweep,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Interact with the Crowdfunding Escrow")
    parser.add_argument(
        "--app-id",
        type=int,
        default=int(os.getenv("CROWDFUNDING_APP_ID", "0")),
        help="Application ID (default: CROWDFUNDING_APP_ID)",
    )
    parser.add_argument(
        "--mnemonic-env",
        default="DEPLOYER_MNEMONIC",
        help="Environment variable holding the signer's mnemonic",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create a campaign")
    create.add_argument("--title", required=True)
    create.add_argument("--description", required=True)
    create.add_argument("--goal", type=int, required=True, help="Goal in microALGOs")
    create.add_argument("--days", type=int, required=True, help="Duration in days (1-365)")

    contribute = subparsers.add_parser("contribute", help="Contribute to a campaign")
    contribute.add_argument("campaign_id", type=int)
    contribute.add_argument("--amount", type=int, required=True, help="Amount in microALGOs")

    for name, help_text in (
        ("settle", "Withdraw (creator) or claim a refund (contributor)"),
        ("show", "Show campaign details"),
        ("contributors", "List campaign contributors"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("campaign_id", type=int)

    subparsers.add_parser("sweep", help="Emergency sweep (platform owner only)")

    return parser


def main():
    args = build_parser().parse_args()

    print("=" * 60)
    print(f"Crowdfunding Escrow - {args.command}")
    print("=" * 60)

    if not args.app_id:
        print("Error: Set CROWDFUNDING_APP_ID or pass --app-id")
        return

    client = get_algod_client()
    contract = load_contract(os.getenv("CROWDFUNDING_ARTIFACTS", "build"))

    try:
        private_key, sender = get_account(args.mnemonic_env)
    except ValueError as e:
        print(f"Error: {e}")
        return
    signer = AccountTransactionSigner(private_key)

    print(f"\n📍 App ID: {args.app_id}")
    print(f"📍 Sender: {sender}")

    try:
        COMMANDS[args.command](args, client, contract, sender, signer)
    except AlgodHTTPError as e:
        print(f"   ❌ Failed: {e}")


if __name__ == "__main__":
    main()
