"""Shared fixtures for the Crowdfunding Escrow tests."""

import pytest
from algopy import Account, UInt64, arc4
from algopy_testing import AlgopyTestContext, algopy_testing_context

from contracts.crowdfunding.client import campaign_mbr, decode_events
from contracts.crowdfunding.constants import CONTRIBUTION_MBR, MAX_CONTRIBUTORS_PAGE
from contracts.crowdfunding.contract import CrowdfundingEscrow

# Fixed "now" for every test, in seconds
NOW = 1_700_000_000


class CampaignDriver:
    """Calls the escrow on behalf of arbitrary accounts and moves the clock."""

    start = NOW

    def __init__(self, context: AlgopyTestContext, contract: CrowdfundingEscrow):
        self.context = context
        self.contract = contract

    @property
    def app_address(self) -> Account:
        return self.context.ledger.get_app(self.contract).address

    def as_sender(self, sender: Account):
        return self.context.txn.create_group(active_txn_overrides={"sender": sender})

    def set_time(self, timestamp: int) -> None:
        self.context.ledger.patch_global_fields(latest_timestamp=UInt64(timestamp))

    def mbr_payment(self, sender: Account, amount: int):
        return self.context.any.txn.payment(
            sender=sender,
            receiver=self.app_address,
            amount=UInt64(amount),
        )

    def create_campaign(
        self,
        creator: Account,
        goal: int = 1000,
        days: int = 30,
        title: str = "Robotics Club",
        description: str = "Parts for the regional competition",
        mbr: int | None = None,
    ) -> arc4.UInt64:
        if mbr is None:
            mbr = campaign_mbr(title, description)
        mbr_payment = self.mbr_payment(creator, mbr)
        with self.as_sender(creator):
            return self.contract.create_campaign(
                arc4.String(title),
                arc4.String(description),
                arc4.UInt64(goal),
                arc4.UInt64(days),
                mbr_payment,
            )

    def contribute(
        self,
        campaign_id: arc4.UInt64,
        contributor: Account,
        amount: int,
        mbr: int = CONTRIBUTION_MBR,
    ) -> None:
        """Contribute `amount`; by default the MBR for a first contribution is paid."""
        mbr_payment = self.mbr_payment(contributor, mbr)
        payment = self.context.any.txn.payment(
            sender=contributor,
            receiver=self.app_address,
            amount=UInt64(amount),
        )
        with self.as_sender(contributor):
            self.contract.contribute(campaign_id, mbr_payment, payment)

    def settle(self, campaign_id: arc4.UInt64, caller: Account) -> None:
        with self.as_sender(caller):
            self.contract.settle(campaign_id)

    def contribution(self, campaign_id: arc4.UInt64, contributor: Account) -> int:
        return self.contract.get_contribution(campaign_id, arc4.Address(contributor)).native

    def details(self, campaign_id: arc4.UInt64):
        return self.contract.get_campaign_details(campaign_id)

    def contributors(
        self,
        campaign_id: arc4.UInt64,
        start: int = 0,
        limit: int = MAX_CONTRIBUTORS_PAGE,
    ) -> list[Account]:
        page = self.contract.get_campaign_contributors(
            campaign_id, arc4.UInt64(start), arc4.UInt64(limit)
        )
        return [address.native for address in page]

    def events(self) -> list[dict]:
        """ARC-28 events logged by the last call, decoded."""
        txn = self.context.txn.last_active
        return decode_events([txn.logs(index).value for index in range(txn.num_logs.value)])

    def inner_payments(self, count: int) -> list:
        """First `count` inner payments of the last call, one per submit."""
        group = self.context.txn.last_group
        return [group.get_itxn_group(index).payment(0) for index in range(count)]


@pytest.fixture
def context() -> AlgopyTestContext:
    """Create a fresh testing context for each test."""
    with algopy_testing_context() as ctx:
        ctx.ledger.patch_global_fields(latest_timestamp=UInt64(NOW))
        yield ctx


@pytest.fixture
def contract(context: AlgopyTestContext) -> CrowdfundingEscrow:
    """Escrow created by the default sender, who becomes the platform owner."""
    escrow = CrowdfundingEscrow()
    escrow.create()
    return escrow


@pytest.fixture
def driver(context: AlgopyTestContext, contract: CrowdfundingEscrow) -> CampaignDriver:
    return CampaignDriver(context, contract)


@pytest.fixture
def creator(context: AlgopyTestContext) -> Account:
    return context.any.account()
