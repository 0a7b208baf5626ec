"""
Shared constants for the crowdfunding escrow.

Plain integers and byte strings so that both the contract and the
off-chain client can import them.
"""

# Campaign status codes
STATUS_ACTIVE = 0
STATUS_SUCCESSFUL = 1
STATUS_FAILED = 2
STATUS_WITHDRAWN = 3

# Platform fee: 25 / 10000 = 0.25%, truncated
PLATFORM_FEE_NUMERATOR = 25
PLATFORM_FEE_DENOMINATOR = 10_000

MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 365
SECONDS_PER_DAY = 86_400

# Box key prefixes
CAMPAIGN_PREFIX = b"camp_"
CONTRIBUTION_PREFIX = b"donor_"
CONTRIBUTOR_PREFIX = b"contrib_"

# Box minimum balance: 2500 + 400 * (key length + value length)
BOX_FLAT_MBR = 2_500
BOX_BYTE_MBR = 400

# Full box key lengths
CAMPAIGN_KEY_LENGTH = 13  # camp_ + itob(id)
CONTRIBUTION_KEY_LENGTH = 46  # donor_ + itob(id) + address
CONTRIBUTOR_KEY_LENGTH = 24  # contrib_ + itob(id) + itob(index)

# First contribution: ledger box (uint64) + contributor box (address)
# 2500 + 400 * (46 + 8) + 2500 + 400 * (24 + 32)
CONTRIBUTION_MBR = 49_000

# ABI return values are a single log entry of at most 1024 bytes
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 800
MAX_CONTRIBUTORS_PAGE = 30
