from models.user import User
from models.affiliates import Affiliates
from models.affiliateLinks import ReferralLinks, LinkTypeEnum
from models.affiliateClicks import Clicks
from models.conversions import Conversions, ConversionStatusEnum
from models.balances import Balances
from models.affiliateEarnings import EarningsTransactions
from models.stats import (
    DailyStats,
    DeviceStats,
    SourceStats,
    AffiliateStats,
    LinkPerformance,
    MonthlyEarnings,
)
from models.emailOutbox import EmailOutbox, EmailStatusEnum
