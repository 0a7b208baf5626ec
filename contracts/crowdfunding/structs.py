"""
ARC-4 types for the crowdfunding escrow: the stored campaign record and
the ARC-28 events emitted for indexers.
"""

from algopy import arc4


class Campaign(arc4.Struct):
    """Campaign record stored in the `camp_` box."""

    creator: arc4.Address
    title: arc4.String
    description: arc4.String
    goal_amount: arc4.UInt64
    raised_amount: arc4.UInt64
    deadline: arc4.UInt64
    status: arc4.UInt64
    created_at: arc4.UInt64
    contributor_count: arc4.UInt64


class CampaignCreated(arc4.Struct):
    campaign_id: arc4.UInt64
    creator: arc4.Address
    title: arc4.String
    goal_amount: arc4.UInt64
    deadline: arc4.UInt64


class ContributionMade(arc4.Struct):
    campaign_id: arc4.UInt64
    contributor: arc4.Address
    amount: arc4.UInt64
    raised_amount: arc4.UInt64


class CampaignSuccessful(arc4.Struct):
    campaign_id: arc4.UInt64
    raised_amount: arc4.UInt64


class RefundProcessed(arc4.Struct):
    campaign_id: arc4.UInt64
    contributor: arc4.Address
    amount: arc4.UInt64


class FundsWithdrawn(arc4.Struct):
    campaign_id: arc4.UInt64
    creator: arc4.Address
    payout: arc4.UInt64
    fee: arc4.UInt64
