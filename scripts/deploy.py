"""
Deployment Script for the Crowdfunding Escrow

Compiles the Puya TEAL output on the node, creates the application by
calling its create() method (the deployer becomes the platform owner) and
funds the application account with its minimum balance.

Run with: python scripts/deploy.py (after pip install -e .)

Build the contract first:
    algokit compile py contracts/crowdfunding/contract.py --out-dir build

Environment variables:
- ALGOD_SERVER: Algorand node URL
- ALGOD_TOKEN: Algorand node token
- DEPLOYER_MNEMONIC: 25-word mnemonic for deployer account
- NETWORK: localnet | testnet | mainnet
- CROWDFUNDING_ARTIFACTS: compiler output directory (default: build)
"""

import argparse
import base64
import json
import os
from pathlib import Path

from dotenv import load_dotenv
from algosdk import logic, transaction
from algosdk.atomic_transaction_composer import (
    AccountTransactionSigner,
    AtomicTransactionComposer,
)
from algosdk.v2client import algod

from contracts.crowdfunding.client import (
    CONTRACT_NAME,
    get_account,
    get_algod_client,
    load_contract,
)

# Load environment variables
load_dotenv()

# owner (bytes) + campaign_count (uint)
GLOBAL_SCHEMA = transaction.StateSchema(num_uints=1, num_byte_slices=1)
LOCAL_SCHEMA = transaction.StateSchema(num_uints=0, num_byte_slices=0)

# Minimum balance of the application account before any box exists
APP_ACCOUNT_MIN_BALANCE = 100_000


def compile_teal(client: algod.AlgodClient, path: Path) -> bytes:
    """Compile TEAL source code using the Algorand node."""
    response = client.compile(path.read_text())
    return base64.b64decode(response["result"])


def deploy_contract(
    client: algod.AlgodClient,
    private_key: str,
    sender: str,
    artifacts_dir: Path,
) -> tuple[int, str]:
    """
    Create the escrow application.

    Returns:
        Tuple of (app_id, tx_id)
    """
    contract = load_contract(artifacts_dir)

    approval_program = compile_teal(client, artifacts_dir / f"{CONTRACT_NAME}.approval.teal")
    clear_program = compile_teal(client, artifacts_dir / f"{CONTRACT_NAME}.clear.teal")

    atc = AtomicTransactionComposer()
    atc.add_method_call(
        app_id=0,
        method=contract.get_method_by_name("create"),
        sender=sender,
        sp=client.suggested_params(),
        signer=AccountTransactionSigner(private_key),
        approval_program=approval_program,
        clear_program=clear_program,
        global_schema=GLOBAL_SCHEMA,
        local_schema=LOCAL_SCHEMA,
    )
    result = atc.execute(client, 4)

    tx_id = result.tx_ids[0]
    app_id = client.pending_transaction_info(tx_id)["application-index"]

    return app_id, tx_id


def fund_app_account(
    client: algod.AlgodClient,
    private_key: str,
    sender: str,
    app_id: int,
    amount: int,
) -> str:
    """Fund the application account so it can hold boxes and send payments."""
    txn = transaction.PaymentTxn(
        sender=sender,
        sp=client.suggested_params(),
        receiver=logic.get_application_address(app_id),
        amt=amount,
        note=b"crowdfund-escrow-funding",
    )

    signed_txn = txn.sign(private_key)
    tx_id = client.send_transaction(signed_txn)
    transaction.wait_for_confirmation(client, tx_id, 4)

    return tx_id


def main():
    """Main deployment function."""
    parser = argparse.ArgumentParser(description="Deploy the Crowdfunding Escrow")
    parser.add_argument(
        "--fund",
        type=int,
        default=APP_ACCOUNT_MIN_BALANCE,
        help="microALGOs sent to the application account after creation",
    )
    parser.add_argument(
        "--output",
        default="deployment.json",
        help="Where to write the deployment info",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("Crowdfunding Escrow - Deployment")
    print("=" * 60)

    network = os.getenv("NETWORK", "localnet")
    artifacts_dir = Path(os.getenv("CROWDFUNDING_ARTIFACTS", "build"))
    print(f"\nNetwork: {network}")
    print(f"Artifacts: {artifacts_dir}")

    client = get_algod_client()

    try:
        private_key, deployer = get_account()
    except ValueError as e:
        print(f"Error: {e}")
        return
    print(f"Deployer: {deployer}")

    # Check balance
    try:
        account_info = client.account_info(deployer)
        balance = account_info["amount"] / 1_000_000
        print(f"Balance: {balance:.6f} ALGO")

        if balance < 1:
            print("\nWarning: Low balance. Fund your account before deploying.")
            if network == "localnet":
                print("Run: algokit goal clerk send -a 10000000 -f <dispenser> -t " + deployer)
    except Exception as e:
        print(f"Could not check balance: {e}")

    print("\n" + "-" * 60)
    print("Contract Deployment")
    print("-" * 60)

    try:
        app_id, tx_id = deploy_contract(client, private_key, deployer, artifacts_dir)
    except FileNotFoundError as e:
        print(f"   ❌ {e}")
        print("   Build first: algokit compile py contracts/crowdfunding/contract.py --out-dir build")
        return
    except Exception as e:
        print(f"   ❌ Failed: {e}")
        return

    app_address = logic.get_application_address(app_id)
    print(f"   Transaction ID: {tx_id}")
    print(f"   ✅ Deployed! App ID: {app_id}")
    print(f"   App address: {app_address}")

    if args.fund > 0:
        try:
            fund_tx_id = fund_app_account(client, private_key, deployer, app_id, args.fund)
            print(f"   ✅ Funded app account with {args.fund} microALGO (TX: {fund_tx_id})")
        except Exception as e:
            print(f"   ❌ Funding failed: {e}")

    # Save deployment info
    output_path = Path(args.output)
    deployment_info = {
        "network": network,
        "deployer": deployer,
        "platform_owner": deployer,
        "app_id": app_id,
        "app_address": app_address,
        "tx_id": tx_id,
    }

    with open(output_path, "w") as f:
        json.dump(deployment_info, f, indent=2)

    print(f"\nDeployment info saved to: {output_path}")
    print("\n📝 Add this to your .env file:")
    print(f"   CROWDFUNDING_APP_ID={app_id}")


if __name__ == "__main__":
    main()
