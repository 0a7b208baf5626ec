"""
Off-chain helpers for the Crowdfunding Escrow application.

Builds the transaction groups the contract expects (box references,
grouped payments, fees covering inner payments), reads campaign boxes
straight from algod and decodes the ARC-28 events the contract logs.
No smart contract code here - just algosdk utilities.
"""

import base64
import copy
import json
import os
from pathlib import Path
from typing import Optional

from algosdk import abi, account, encoding, logic, mnemonic, transaction
from algosdk.atomic_transaction_composer import (
    AccountTransactionSigner,
    AtomicTransactionComposer,
    TransactionWithSigner,
)
from algosdk.v2client import algod

from contracts.crowdfunding.constants import (
    BOX_BYTE_MBR,
    BOX_FLAT_MBR,
    CAMPAIGN_PREFIX,
    CONTRIBUTION_MBR,
    CONTRIBUTION_PREFIX,
    CONTRIBUTOR_PREFIX,
    PLATFORM_FEE_DENOMINATOR,
    PLATFORM_FEE_NUMERATOR,
    STATUS_ACTIVE,
    STATUS_FAILED,
    STATUS_SUCCESSFUL,
    STATUS_WITHDRAWN,
)

CONTRACT_NAME = "CrowdfundingEscrow"

MIN_TXN_FEE = 1000

# Static head of an encoded Campaign: address + 2 string offsets + 6 uint64
CAMPAIGN_HEAD_SIZE = 32 + 2 + 2 + 6 * 8

STATUS_NAMES = {
    STATUS_ACTIVE: "ACTIVE",
    STATUS_SUCCESSFUL: "SUCCESSFUL",
    STATUS_FAILED: "FAILED",
    STATUS_WITHDRAWN: "WITHDRAWN",
}

CAMPAIGN_TYPE = abi.ABIType.from_string(
    "(address,string,string,uint64,uint64,uint64,uint64,uint64,uint64)"
)
CAMPAIGN_FIELDS = (
    "creator",
    "title",
    "description",
    "goal_amount",
    "raised_amount",
    "deadline",
    "status",
    "created_at",
    "contributor_count",
)

# ARC-28 events: name -> (field names, ABI tuple type)
EVENTS = {
    "CampaignCreated": (
        ("campaign_id", "creator", "title", "goal_amount", "deadline"),
        "(uint64,address,string,uint64,uint64)",
    ),
    "ContributionMade": (
        ("campaign_id", "contributor", "amount", "raised_amount"),
        "(uint64,address,uint64,uint64)",
    ),
    "CampaignSuccessful": (
        ("campaign_id", "raised_amount"),
        "(uint64,uint64)",
    ),
    "RefundProcessed": (
        ("campaign_id", "contributor", "amount"),
        "(uint64,address,uint64)",
    ),
    "FundsWithdrawn": (
        ("campaign_id", "creator", "payout", "fee"),
        "(uint64,address,uint64,uint64)",
    ),
}


def get_algod_client() -> algod.AlgodClient:
    """Create Algorand client from environment variables."""
    server = os.getenv("ALGOD_SERVER", "http://localhost:4001")
    token = os.getenv("ALGOD_TOKEN", "a" * 64)
    return algod.AlgodClient(token, server)


def get_account(env_var: str = "DEPLOYER_MNEMONIC") -> tuple[str, str]:
    """
    Load an account from a 25-word mnemonic in the environment.

    Returns:
        Tuple of (private_key, address)
    """
    mnemonic_phrase = os.getenv(env_var)
    if not mnemonic_phrase:
        raise ValueError(f"{env_var} not set in environment")

    private_key = mnemonic.to_private_key(mnemonic_phrase)
    address = account.address_from_private_key(private_key)
    return private_key, address


def load_contract(artifacts_dir: str | Path = "build") -> abi.Contract:
    """
    Load the ABI description produced by the compiler.

    Prefers the ARC-56 app spec and falls back to ARC-32.

    Args:
        artifacts_dir: Directory holding the compiler output

    Returns:
        ABI contract with the escrow's methods
    """
    artifacts_dir = Path(artifacts_dir)

    arc56_path = artifacts_dir / f"{CONTRACT_NAME}.arc56.json"
    arc32_path = artifacts_dir / f"{CONTRACT_NAME}.arc32.json"

    if arc56_path.exists():
        spec = json.loads(arc56_path.read_text())
        return abi.Contract.undictify({"name": spec["name"], "methods": spec["methods"]})
    if arc32_path.exists():
        spec = json.loads(arc32_path.read_text())
        return abi.Contract.undictify(spec["contract"])

    raise FileNotFoundError(f"No app spec for {CONTRACT_NAME} in {artifacts_dir}")


def platform_fee_split(raised: int) -> tuple[int, int]:
    """
    Split a successful campaign's raised amount.

    Mirrors the contract: the fee is truncated and the remainder goes
    to the creator, so payout + fee == raised.

    Returns:
        Tuple of (creator_payout, platform_fee)
    """
    fee = raised * PLATFORM_FEE_NUMERATOR // PLATFORM_FEE_DENOMINATOR
    return raised - fee, fee


def campaign_box_name(campaign_id: int) -> bytes:
    return CAMPAIGN_PREFIX + campaign_id.to_bytes(8, "big")


def contribution_box_name(campaign_id: int, contributor: str) -> bytes:
    return CONTRIBUTION_PREFIX + campaign_id.to_bytes(8, "big") + encoding.decode_address(contributor)


def contributor_box_name(campaign_id: int, index: int) -> bytes:
    return CONTRIBUTOR_PREFIX + campaign_id.to_bytes(8, "big") + index.to_bytes(8, "big")


def box_mbr(name: bytes, value_size: int) -> int:
    """Minimum balance the escrow needs to hold a box."""
    return BOX_FLAT_MBR + BOX_BYTE_MBR * (len(name) + value_size)


def campaign_size(title: str, description: str) -> int:
    """Encoded size of a Campaign record."""
    return CAMPAIGN_HEAD_SIZE + 2 + len(title.encode()) + 2 + len(description.encode())


def campaign_mbr(title: str, description: str) -> int:
    """MBR payment create_campaign expects for a campaign with these texts."""
    return box_mbr(campaign_box_name(0), campaign_size(title, description))


def decode_campaign(raw: bytes) -> dict:
    """Decode a Campaign box value into a dict."""
    values = CAMPAIGN_TYPE.decode(raw)
    campaign = dict(zip(CAMPAIGN_FIELDS, values))
    campaign["status_name"] = STATUS_NAMES.get(campaign["status"], "UNKNOWN")
    return campaign


def read_campaign(client: algod.AlgodClient, app_id: int, campaign_id: int) -> dict:
    """Read a campaign straight from its box."""
    response = client.application_box_by_name(app_id, campaign_box_name(campaign_id))
    return decode_campaign(base64.b64decode(response["value"]))


def read_campaign_count(client: algod.AlgodClient, app_id: int) -> int:
    """Read the campaign counter from global state (also the next campaign ID)."""
    app_info = client.application_info(app_id)
    for item in app_info["params"].get("global-state", []):
        key = base64.b64decode(item["key"])
        if key == b"campaign_count":
            return item["value"]["uint"]
    return 0


def event_selector(name: str) -> bytes:
    """ARC-28 selector: first 4 bytes of SHA-512/256 of the event signature."""
    _, type_string = EVENTS[name]
    signature = f"{name}{type_string}"
    return encoding.checksum(signature.encode())[:4]


def decode_events(logs: list) -> list[dict]:
    """
    Decode ARC-28 events from application logs.

    Args:
        logs: Log entries, raw bytes or base64 strings as returned by algod

    Returns:
        List of dicts with an "event" key plus the event fields.
        Logs that are not escrow events are skipped.
    """
    selectors = {event_selector(name): name for name in EVENTS}

    events = []
    for log in logs:
        raw = base64.b64decode(log) if isinstance(log, str) else bytes(log)
        name = selectors.get(raw[:4])
        if name is None:
            continue

        fields, type_string = EVENTS[name]
        values = abi.ABIType.from_string(type_string).decode(raw[4:])
        events.append({"event": name, **dict(zip(fields, values))})

    return events


def _call_params(
    sp: transaction.SuggestedParams,
    inner_txns: int = 0,
) -> transaction.SuggestedParams:
    """Flat fee covering the call itself plus its inner payments."""
    params = copy.copy(sp)
    params.flat_fee = True
    params.fee = (sp.min_fee or MIN_TXN_FEE) * (1 + inner_txns)
    return params


def _mbr_payment(
    sender: str,
    signer: AccountTransactionSigner,
    app_id: int,
    amount: int,
    sp: transaction.SuggestedParams,
) -> TransactionWithSigner:
    txn = transaction.PaymentTxn(
        sender=sender,
        sp=sp,
        receiver=logic.get_application_address(app_id),
        amt=amount,
        note=b"crowdfund-box-mbr",
    )
    return TransactionWithSigner(txn, signer)


def build_create_campaign(
    atc: AtomicTransactionComposer,
    contract: abi.Contract,
    app_id: int,
    campaign_id: int,
    sender: str,
    signer: AccountTransactionSigner,
    sp: transaction.SuggestedParams,
    title: str,
    description: str,
    goal_amount: int,
    duration_days: int,
) -> AtomicTransactionComposer:
    """
    Add a create_campaign call with its MBR payment for the new box.

    Args:
        campaign_id: Expected ID of the new campaign (the current campaign count)

    Returns:
        The same composer, for chaining
    """
    mbr_payment = _mbr_payment(sender, signer, app_id, campaign_mbr(title, description), sp)

    atc.add_method_call(
        app_id=app_id,
        method=contract.get_method_by_name("create_campaign"),
        sender=sender,
        sp=_call_params(sp),
        signer=signer,
        method_args=[title, description, goal_amount, duration_days, mbr_payment],
        boxes=[(app_id, campaign_box_name(campaign_id))],
    )
    return atc


def build_contribute(
    atc: AtomicTransactionComposer,
    contract: abi.Contract,
    app_id: int,
    campaign_id: int,
    contributor_index: int,
    sender: str,
    signer: AccountTransactionSigner,
    sp: transaction.SuggestedParams,
    amount: int,
    first_contribution: bool = True,
) -> AtomicTransactionComposer:
    """
    Add a contribution: the MBR payment, the payment, the app call.

    Args:
        contributor_index: Current contributor_count of the campaign
        first_contribution: Whether the sender has never contributed to the
            campaign, in which case the ledger and contributor boxes are
            created and paid for. Otherwise the MBR payment is 0.

    Returns:
        The same composer, for chaining
    """
    mbr = CONTRIBUTION_MBR if first_contribution else 0

    payment = transaction.PaymentTxn(
        sender=sender,
        sp=sp,
        receiver=logic.get_application_address(app_id),
        amt=amount,
    )
    atc.add_method_call(
        app_id=app_id,
        method=contract.get_method_by_name("contribute"),
        sender=sender,
        sp=_call_params(sp),
        signer=signer,
        method_args=[
            campaign_id,
            _mbr_payment(sender, signer, app_id, mbr, sp),
            TransactionWithSigner(payment, signer),
        ],
        boxes=[
            (app_id, campaign_box_name(campaign_id)),
            (app_id, contribution_box_name(campaign_id, sender)),
            (app_id, contributor_box_name(campaign_id, contributor_index)),
        ],
    )
    return atc


def build_settle(
    atc: AtomicTransactionComposer,
    contract: abi.Contract,
    app_id: int,
    campaign_id: int,
    sender: str,
    signer: AccountTransactionSigner,
    sp: transaction.SuggestedParams,
    platform_owner: Optional[str] = None,
    inner_txns: int = 2,
) -> AtomicTransactionComposer:
    """
    Add a settle call.

    A withdrawal with a non-zero fee submits two inner payments (payout and
    fee); a refund or a zero-fee withdrawal submits one. The default covers
    the worst case, so pass inner_txns=1 to avoid overpaying a minimum fee.
    See settle_inner_txns().

    Args:
        platform_owner: Fee receiver, required when the creator withdraws
        inner_txns: Inner payments whose fees the call covers

    Returns:
        The same composer, for chaining
    """
    atc.add_method_call(
        app_id=app_id,
        method=contract.get_method_by_name("settle"),
        sender=sender,
        sp=_call_params(sp, inner_txns=inner_txns),
        signer=signer,
        method_args=[campaign_id],
        accounts=[platform_owner] if platform_owner else None,
        boxes=[
            (app_id, campaign_box_name(campaign_id)),
            (app_id, contribution_box_name(campaign_id, sender)),
        ],
    )
    return atc


def settle_inner_txns(campaign: dict, sender: str) -> int:
    """Inner payments a settle call by `sender` will submit for a decoded campaign."""
    withdrawing = (
        campaign["raised_amount"] >= campaign["goal_amount"]
        and campaign["status"] != STATUS_WITHDRAWN
        and campaign["creator"] == sender
    )
    if withdrawing and platform_fee_split(campaign["raised_amount"])[1] > 0:
        return 2
    return 1


def build_emergency_withdraw(
    atc: AtomicTransactionComposer,
    contract: abi.Contract,
    app_id: int,
    sender: str,
    signer: AccountTransactionSigner,
    sp: transaction.SuggestedParams,
) -> AtomicTransactionComposer:
    atc.add_method_call(
        app_id=app_id,
        method=contract.get_method_by_name("emergency_withdraw"),
        sender=sender,
        sp=_call_params(sp, inner_txns=1),
        signer=signer,
    )
    return atc
