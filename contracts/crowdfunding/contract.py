"""
Crowdfunding Escrow Smart Contract

Time-boxed fundraising campaigns with all-or-nothing settlement.
Contributions are held in escrow by the application account until the
campaign resolves exactly once: the creator withdraws the raised amount
minus a platform fee, or every contributor pulls back their own pledge.

Features:
- Create campaigns with a goal and a duration in days
- Contribute via a grouped payment (creator cannot contribute)
- Automatic success as soon as the goal is reached
- One-shot withdrawal for the creator with a 0.25% platform fee
- Pull-based refunds, one contributor at a time
- Emergency sweep of the residual balance by the platform owner
- ARC-28 events for indexers
- Box storage paid by the caller through a grouped MBR payment

Algorand Primitives Used:
- AVM Application (smart contract)
- Escrow pattern (contract holds funds)
- Atomic Groups (payment + application call)
- Inner Transactions (for withdrawals and refunds)
- Boxes (for campaigns, the contribution ledger and contributor lists)
"""

from algopy import (
    ARC4Contract,
    Account,
    BoxMap,
    Bytes,
    Global,
    GlobalState,
    Txn,
    UInt64,
    arc4,
    gtxn,
    itxn,
    op,
    subroutine,
    urange,
)

from contracts.crowdfunding.constants import (
    BOX_BYTE_MBR,
    BOX_FLAT_MBR,
    CAMPAIGN_KEY_LENGTH,
    CAMPAIGN_PREFIX,
    CONTRIBUTION_MBR,
    CONTRIBUTION_PREFIX,
    CONTRIBUTOR_PREFIX,
    MAX_CONTRIBUTORS_PAGE,
    MAX_DESCRIPTION_LENGTH,
    MAX_DURATION_DAYS,
    MAX_TITLE_LENGTH,
    MIN_DURATION_DAYS,
    PLATFORM_FEE_DENOMINATOR,
    PLATFORM_FEE_NUMERATOR,
    SECONDS_PER_DAY,
    STATUS_ACTIVE,
    STATUS_FAILED,
    STATUS_SUCCESSFUL,
    STATUS_WITHDRAWN,
)
from contracts.crowdfunding.structs import (
    Campaign,
    CampaignCreated,
    CampaignSuccessful,
    ContributionMade,
    FundsWithdrawn,
    RefundProcessed,
)


@subroutine
def contribution_key(campaign_id: UInt64, contributor: Account) -> Bytes:
    return op.itob(campaign_id) + contributor.bytes


@subroutine
def contributor_key(campaign_id: UInt64, index: UInt64) -> Bytes:
    return op.itob(campaign_id) + op.itob(index)


@subroutine
def platform_fee(raised: UInt64) -> UInt64:
    """Fee owed to the platform; truncation leaves the remainder to the creator."""
    return raised * PLATFORM_FEE_NUMERATOR // PLATFORM_FEE_DENOMINATOR


@subroutine
def box_mbr(key_length: UInt64, value_length: UInt64) -> UInt64:
    return UInt64(BOX_FLAT_MBR) + UInt64(BOX_BYTE_MBR) * (key_length + value_length)


@subroutine
def check_mbr_payment(mbr_payment: gtxn.PaymentTransaction, required: UInt64) -> None:
    """Boxes are paid for by the caller, never out of escrowed contributions."""
    assert mbr_payment.receiver == Global.current_application_address, "MBR payment must be sent to the escrow"
    assert mbr_payment.sender == Txn.sender, "MBR payment must come from the caller"
    assert mbr_payment.amount >= required, "MBR payment too low"


class CrowdfundingEscrow(ARC4Contract):
    """
    Escrow for time-boxed fundraising campaigns.

    State Schema:
    - Global State:
        - owner: Platform owner (fee receiver, emergency sweep)
        - campaign_count: Total campaigns created, next campaign ID

    - Boxes:
        - camp_{id}: Campaign record
        - donor_{id}{address}: Outstanding contribution per contributor
        - contrib_{id}{index}: Contributors in first-contribution order
    """

    # Global State
    owner: GlobalState[Account]
    campaign_count: GlobalState[UInt64]

    def __init__(self) -> None:
        self.campaigns = BoxMap(UInt64, Campaign, key_prefix=CAMPAIGN_PREFIX)
        self.contributions = BoxMap(Bytes, UInt64, key_prefix=CONTRIBUTION_PREFIX)
        self.contributors = BoxMap(Bytes, arc4.Address, key_prefix=CONTRIBUTOR_PREFIX)

    @arc4.abimethod(create="require")
    def create(self) -> None:
        """
        Create the escrow. The creating account becomes the platform owner.
        """
        self.owner.value = Txn.sender
        self.campaign_count.value = UInt64(0)

    @arc4.abimethod
    def create_campaign(
        self,
        title: arc4.String,
        description: arc4.String,
        goal_amount: arc4.UInt64,
        duration_days: arc4.UInt64,
        mbr_payment: gtxn.PaymentTransaction,
    ) -> arc4.UInt64:
        """
        Create a new fundraising campaign owned by the caller.

        Args:
            title: Campaign title (at most 100 bytes)
            description: Campaign description (at most 800 bytes)
            goal_amount: Funding goal in microALGOs
            duration_days: Campaign length in days (1-365)
            mbr_payment: Payment from the caller covering the campaign box

        Returns:
            Campaign ID
        """
        assert title.native.bytes.length > UInt64(0), "Title must not be empty"
        assert description.native.bytes.length > UInt64(0), "Description must not be empty"
        assert title.native.bytes.length <= UInt64(MAX_TITLE_LENGTH), "Title too long"
        assert description.native.bytes.length <= UInt64(MAX_DESCRIPTION_LENGTH), "Description too long"
        assert goal_amount.native > UInt64(0), "Goal must be positive"
        assert (
            duration_days.native >= UInt64(MIN_DURATION_DAYS)
            and duration_days.native <= UInt64(MAX_DURATION_DAYS)
        ), "Duration must be between 1 and 365 days"

        now = Global.latest_timestamp
        deadline = now + duration_days.native * UInt64(SECONDS_PER_DAY)

        record = Campaign(
            creator=arc4.Address(Txn.sender),
            title=title,
            description=description,
            goal_amount=goal_amount,
            raised_amount=arc4.UInt64(0),
            deadline=arc4.UInt64(deadline),
            status=arc4.UInt64(STATUS_ACTIVE),
            created_at=arc4.UInt64(now),
            contributor_count=arc4.UInt64(0),
        )
        check_mbr_payment(mbr_payment, box_mbr(UInt64(CAMPAIGN_KEY_LENGTH), record.bytes.length))

        campaign_id = self.campaign_count.value
        self.campaign_count.value = campaign_id + UInt64(1)
        self.campaigns[campaign_id] = record.copy()

        arc4.emit(
            CampaignCreated(
                campaign_id=arc4.UInt64(campaign_id),
                creator=arc4.Address(Txn.sender),
                title=title,
                goal_amount=goal_amount,
                deadline=arc4.UInt64(deadline),
            )
        )

        return arc4.UInt64(campaign_id)

    @arc4.abimethod
    def contribute(
        self,
        campaign_id: arc4.UInt64,
        mbr_payment: gtxn.PaymentTransaction,
        payment: gtxn.PaymentTransaction,
    ) -> None:
        """
        Contribute to an active campaign.
        The contribution is the payment to the escrow grouped before this call.

        Args:
            campaign_id: ID of the campaign
            mbr_payment: Payment covering the ledger and contributor boxes
                on a first contribution (may be 0 afterwards)
            payment: Payment from the caller to the application account
        """
        campaign = self._load_campaign(campaign_id.native)

        assert campaign.status.native == STATUS_ACTIVE, "Campaign not active"
        assert Global.latest_timestamp < campaign.deadline.native, "Campaign deadline has passed"
        assert payment.amount > UInt64(0), "Contribution must be positive"
        assert Txn.sender != campaign.creator.native, "Creator cannot contribute to own campaign"
        assert payment.receiver == Global.current_application_address, "Payment must be sent to the escrow"
        assert payment.sender == Txn.sender, "Payment must come from the contributor"

        key = contribution_key(campaign_id.native, Txn.sender)
        first_contribution = key not in self.contributions

        required_mbr = UInt64(0)
        if first_contribution:
            required_mbr = UInt64(CONTRIBUTION_MBR)
        check_mbr_payment(mbr_payment, required_mbr)

        balance = self.contributions.get(key, default=UInt64(0))

        # First contribution: append to the ordered contributor list
        if first_contribution:
            index = campaign.contributor_count.native
            self.contributors[contributor_key(campaign_id.native, index)] = arc4.Address(Txn.sender)
            campaign.contributor_count = arc4.UInt64(index + UInt64(1))

        self.contributions[key] = balance + payment.amount

        raised = campaign.raised_amount.native + payment.amount
        campaign.raised_amount = arc4.UInt64(raised)

        reached_goal = raised >= campaign.goal_amount.native
        if reached_goal:
            campaign.status = arc4.UInt64(STATUS_SUCCESSFUL)

        self.campaigns[campaign_id.native] = campaign.copy()

        arc4.emit(
            ContributionMade(
                campaign_id=campaign_id,
                contributor=arc4.Address(Txn.sender),
                amount=arc4.UInt64(payment.amount),
                raised_amount=arc4.UInt64(raised),
            )
        )
        if reached_goal:
            arc4.emit(CampaignSuccessful(campaign_id=campaign_id, raised_amount=arc4.UInt64(raised)))

    @arc4.abimethod
    def settle(self, campaign_id: arc4.UInt64) -> None:
        """
        Resolve a campaign after its deadline.

        A successful campaign pays out once to its creator (minus the
        platform fee). Otherwise the caller is refunded their own
        outstanding contribution. Each contributor settles individually.

        Args:
            campaign_id: ID of the campaign
        """
        campaign = self._load_campaign(campaign_id.native)

        assert Global.latest_timestamp >= campaign.deadline.native, "Campaign deadline not reached"

        if (
            campaign.raised_amount.native >= campaign.goal_amount.native
            and campaign.status.native != STATUS_WITHDRAWN
        ):
            self._withdraw(campaign_id.native)
        else:
            self._refund(campaign_id.native)

    @subroutine
    def _withdraw(self, campaign_id: UInt64) -> None:
        campaign = self.campaigns[campaign_id].copy()
        creator = campaign.creator.native

        assert Txn.sender == creator, "Only creator can withdraw"
        assert campaign.status.native == STATUS_SUCCESSFUL, "Campaign not successful"

        # Flag before paying out so the success branch cannot run twice
        campaign.status = arc4.UInt64(STATUS_WITHDRAWN)
        self.campaigns[campaign_id] = campaign.copy()

        raised = campaign.raised_amount.native
        fee = platform_fee(raised)
        payout = raised - fee

        arc4.emit(
            FundsWithdrawn(
                campaign_id=arc4.UInt64(campaign_id),
                creator=campaign.creator,
                payout=arc4.UInt64(payout),
                fee=arc4.UInt64(fee),
            )
        )

        itxn.Payment(
            receiver=creator,
            amount=payout,
            fee=0,
        ).submit()

        if fee > UInt64(0):
            itxn.Payment(
                receiver=self.owner.value,
                amount=fee,
                fee=0,
            ).submit()

    @subroutine
    def _refund(self, campaign_id: UInt64) -> None:
        campaign = self.campaigns[campaign_id].copy()
        key = contribution_key(campaign_id, Txn.sender)

        # A withdrawn campaign owes nothing to its contributors
        owed = UInt64(0)
        if campaign.status.native != STATUS_WITHDRAWN:
            owed = self.contributions.get(key, default=UInt64(0))
        assert owed > UInt64(0), "No contribution found"

        if campaign.status.native == STATUS_ACTIVE:
            campaign.status = arc4.UInt64(STATUS_FAILED)
            self.campaigns[campaign_id] = campaign.copy()

        self.contributions[key] = UInt64(0)

        arc4.emit(
            RefundProcessed(
                campaign_id=arc4.UInt64(campaign_id),
                contributor=arc4.Address(Txn.sender),
                amount=arc4.UInt64(owed),
            )
        )

        itxn.Payment(
            receiver=Txn.sender,
            amount=owed,
            fee=0,
        ).submit()

    @arc4.abimethod
    def emergency_withdraw(self) -> None:
        """
        Sweep the spendable balance of the escrow to the platform owner.
        Does not touch any campaign or the contribution ledger.
        """
        assert Txn.sender == self.owner.value, "Only platform owner can sweep"

        escrow = Global.current_application_address
        residual = UInt64(0)
        if escrow.balance > escrow.min_balance:
            residual = escrow.balance - escrow.min_balance

        itxn.Payment(
            receiver=self.owner.value,
            amount=residual,
            fee=0,
        ).submit()

    @subroutine
    def _load_campaign(self, campaign_id: UInt64) -> Campaign:
        assert campaign_id in self.campaigns, "Campaign does not exist"
        return self.campaigns[campaign_id].copy()

    @arc4.abimethod(readonly=True)
    def get_campaign_details(self, campaign_id: arc4.UInt64) -> Campaign:
        """
        Get campaign details.

        Args:
            campaign_id: ID of the campaign

        Returns:
            The full campaign record, including contributor_count
        """
        return self._load_campaign(campaign_id.native)

    @arc4.abimethod(readonly=True)
    def get_contribution(
        self,
        campaign_id: arc4.UInt64,
        contributor: arc4.Address,
    ) -> arc4.UInt64:
        """
        Get a contributor's outstanding balance for a campaign.

        Args:
            campaign_id: ID of the campaign
            contributor: Address of the contributor

        Returns:
            Ledger balance, 0 if never contributed or already refunded
        """
        assert campaign_id.native in self.campaigns, "Campaign does not exist"
        key = contribution_key(campaign_id.native, contributor.native)
        return arc4.UInt64(self.contributions.get(key, default=UInt64(0)))

    @arc4.abimethod(readonly=True)
    def get_total_campaigns(self) -> arc4.UInt64:
        return arc4.UInt64(self.campaign_count.value)

    @arc4.abimethod(readonly=True)
    def get_campaign_contributors(
        self,
        campaign_id: arc4.UInt64,
        start: arc4.UInt64,
        limit: arc4.UInt64,
    ) -> arc4.DynamicArray[arc4.Address]:
        """
        Get a page of a campaign's contributors in first-contribution order.
        Refunded contributors stay listed. Page through with increasing
        `start` until an empty page comes back.

        Args:
            campaign_id: ID of the campaign
            start: Index of the first contributor to return
            limit: Page size, capped at 30 addresses

        Returns:
            Contributor addresses, empty once `start` is past the end
        """
        campaign = self._load_campaign(campaign_id.native)
        count = campaign.contributor_count.native

        contributors = arc4.DynamicArray[arc4.Address]()
        if start.native >= count:
            return contributors

        page = limit.native
        if page > UInt64(MAX_CONTRIBUTORS_PAGE):
            page = UInt64(MAX_CONTRIBUTORS_PAGE)
        end = start.native + page
        if end > count:
            end = count

        for index in urange(start.native, end):
            contributors.append(self.contributors[contributor_key(campaign_id.native, index)])
        return contributors

    @arc4.abimethod(readonly=True)
    def get_platform_info(
        self,
    ) -> arc4.Tuple[arc4.Address, arc4.UInt64, arc4.UInt64, arc4.UInt64]:
        """
        Get platform information.

        Returns:
            Tuple of (owner, fee_numerator, fee_denominator, campaign_count)
        """
        return arc4.Tuple((
            arc4.Address(self.owner.value),
            arc4.UInt64(PLATFORM_FEE_NUMERATOR),
            arc4.UInt64(PLATFORM_FEE_DENOMINATOR),
            arc4.UInt64(self.campaign_count.value),
        ))
