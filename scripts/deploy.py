"""
Deployment Script for the Benefactor Crowdfunding contracts

Deploys the FundraiserFactory application (which carries the
administration registry) and funds its account up to the base minimum
balance. Box storage is paid for by the calls that create boxes.
Run with: python scripts/deploy.py

Build the TEAL first:
    puyapy contracts/fundraiser_factory/contract.py --out-dir artifacts

Environment variables:
- ALGOD_SERVER: Algorand node URL
- ALGOD_TOKEN: Algorand node token
- DEPLOYER_MNEMONIC: 25-word mnemonic for deployer account (becomes admin)
- NETWORK: localnet | testnet | mainnet
- ARTIFACTS_DIR: Directory holding the compiled TEAL (default: artifacts)
- APP_FUNDING: microALGOs sent to the app account (default: 0.1 ALGO)
"""

import base64
import json
import os
from pathlib import Path

from algosdk import abi, account, mnemonic, transaction
from algosdk.v2client import algod
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

CONTRACT_NAME = "FundraiserFactory"

# admin (bytes) + pending_request_count, fundraiser_count (ints)
GLOBAL_INTS = 2
GLOBAL_BYTES = 1


def get_algod_client() -> algod.AlgodClient:
    """Create Algorand client from environment variables."""
    server = os.getenv("ALGOD_SERVER", "http://localhost:4001")
    token = os.getenv("ALGOD_TOKEN", "a" * 64)

    return algod.AlgodClient(token, server)


def get_deployer_account() -> tuple[str, str]:
    """Get deployer account from mnemonic."""
    mnemonic_phrase = os.getenv("DEPLOYER_MNEMONIC")

    if not mnemonic_phrase:
        raise ValueError("DEPLOYER_MNEMONIC not set in environment")

    private_key = mnemonic.to_private_key(mnemonic_phrase)
    address = account.address_from_private_key(private_key)

    return private_key, address


def compile_teal(client: algod.AlgodClient, path: Path) -> bytes:
    """Compile a TEAL file using the Algorand node."""
    response = client.compile(path.read_text())
    return base64.b64decode(response["result"])


def deploy_factory(
    client: algod.AlgodClient,
    private_key: str,
    sender: str,
    artifacts_dir: Path,
) -> int:
    """Create the application through its create() ABI method and return the app ID."""
    approval_program = compile_teal(client, artifacts_dir / f"{CONTRACT_NAME}.approval.teal")
    clear_program = compile_teal(client, artifacts_dir / f"{CONTRACT_NAME}.clear.teal")

    create_selector = abi.Method.from_signature("create()void").get_selector()

    txn = transaction.ApplicationCreateTxn(
        sender=sender,
        sp=client.suggested_params(),
        on_complete=transaction.OnComplete.NoOpOC,
        approval_program=approval_program,
        clear_program=clear_program,
        global_schema=transaction.StateSchema(GLOBAL_INTS, GLOBAL_BYTES),
        local_schema=transaction.StateSchema(0, 0),
        app_args=[create_selector],
    )

    signed_txn = txn.sign(private_key)
    tx_id = client.send_transaction(signed_txn)

    result = transaction.wait_for_confirmation(client, tx_id, 4)
    return result["application-index"]


def fund_application(
    client: algod.AlgodClient,
    private_key: str,
    sender: str,
    app_id: int,
    amount: int,
) -> str:
    """Send ALGO to the application account to cover its base minimum balance."""
    app_address = transaction.logic.get_application_address(app_id)

    txn = transaction.PaymentTxn(
        sender=sender,
        sp=client.suggested_params(),
        receiver=app_address,
        amt=amount,
    )

    tx_id = client.send_transaction(txn.sign(private_key))
    transaction.wait_for_confirmation(client, tx_id, 4)

    return app_address


def main():
    """Main deployment function."""
    print("=" * 60)
    print("Benefactor Crowdfunding - Contract Deployment")
    print("=" * 60)

    network = os.getenv("NETWORK", "localnet")
    artifacts_dir = Path(os.getenv("ARTIFACTS_DIR", "artifacts"))
    app_funding = int(os.getenv("APP_FUNDING", "100000"))
    print(f"\nNetwork: {network}")

    client = get_algod_client()
    private_key, deployer = get_deployer_account()
    print(f"Deployer (administrator): {deployer}")

    account_info = client.account_info(deployer)
    balance = account_info["amount"] / 1_000_000
    print(f"Balance: {balance:.6f} ALGO")

    if account_info["amount"] < app_funding:
        print("\nWarning: Balance is below the app funding amount.")

    print("\n" + "-" * 60)
    print(f"Deploying {CONTRACT_NAME} from {artifacts_dir}")
    print("-" * 60)

    app_id = deploy_factory(client, private_key, deployer, artifacts_dir)
    print(f"   ✅ Deployed: App ID {app_id}")

    app_address = fund_application(client, private_key, deployer, app_id, app_funding)
    print(f"   ✅ Funded {app_address} with {app_funding / 1_000_000:.6f} ALGO")

    output_path = Path("deployment.json")
    deployment_info = {
        "network": network,
        "admin": deployer,
        "contracts": {
            CONTRACT_NAME: {"app_id": app_id, "app_address": app_address},
        },
    }

    with open(output_path, "w") as f:
        json.dump(deployment_info, f, indent=2)

    print(f"\nDeployment info saved to: {output_path}")


if __name__ == "__main__":
    main()
