import logging
import secrets
import uuid

from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError

from errors import Conflict, DependencyUnavailable, NotFound, Unauthorized
from models.user import User
from models.affiliates import Affiliates
from models.affiliateLinks import ReferralLinks
from models.conversions import Conversions
from services.balance_service import open_account, get_balance
from services.referral_codes import INITIAL_LINK_TYPES, generate_referral_code
from utils import get_hashed_password, normalize_email, verify_password, write_token

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5
RECENT_CONVERSIONS = 10
DUPLICATE_EMAIL = "This email is already registered. Please login with your existing account."


async def create_initial_referral_links(db, user_id):
    """One link per fixed link type, each code inserted in its own savepoint."""
    links = []
    for link_type in INITIAL_LINK_TYPES:
        for _ in range(MAX_CODE_ATTEMPTS):
            link = ReferralLinks(
                affiliate_id=user_id,
                link_type=link_type,
                ref_code=generate_referral_code(user_id, link_type),
                target_page="/",
                clicks=0,
                conversions=0,
                earnings=0,
            )
            try:
                async with db.begin_nested():
                    db.add(link)
            except IntegrityError:
                logger.warning("Referral code %s already taken, generating another", link.ref_code)
                continue
            links.append(link)
            break
        else:
            raise RuntimeError(f"Could not generate a unique {link_type.value} referral code for {user_id}")
    return links


def serialize_profile(profile):
    return {
        "id": profile.id,
        "name": profile.name,
        "email": profile.email,
        "phone": profile.phone,
        "website": profile.website,
        "bio": profile.bio,
        "role": profile.role,
        "totalReferrals": profile.total_referrals,
        "monthlyEarnings": profile.monthly_earnings,
        "totalEarnings": profile.total_earnings,
        "conversionRate": profile.conversion_rate,
        "createdAt": profile.created_at,
    }


def serialize_link(link):
    return {
        "id": link.id,
        "refCode": link.ref_code,
        "linkType": link.link_type.value,
        "clicks": link.clicks or 0,
        "conversions": link.conversions or 0,
        "earnings": link.earnings or 0,
    }


def serialize_conversion(conversion):
    return {
        "id": conversion.id,
        "affiliateId": conversion.affiliate_id,
        "linkId": conversion.link_id,
        "refCode": conversion.ref_code,
        "purchaseAmount": conversion.purchase_amount,
        "commissionAmount": conversion.commission_amount,
        "packageId": conversion.package_id,
        "packageName": conversion.package_name,
        "bookingId": conversion.booking_id,
        "sessionId": conversion.session_id,
        "status": conversion.status.value,
        "currency": conversion.currency,
        "customerEmail": conversion.customer_email,
        "customerName": conversion.customer_name,
        "clickId": conversion.click_id,
        "timestamp": conversion.created_at,
    }


class AffiliateService:
    def __init__(self, session_factory, notifier=None, token_secret=None):
        self._session_factory = session_factory
        self.notifier = notifier
        self.token_secret = token_secret

    def _session(self):
        if self._session_factory is None:
            raise DependencyUnavailable("Database not initialized")
        return self._session_factory()

    async def register(self, registration) -> uuid.UUID:
        """Create identity, profile, the five referral links and a zero balance in one transaction."""
        password = registration.password or secrets.token_hex(8)
        email = normalize_email(registration.email)
        try:
            async with self._session() as db:
                async with db.begin():
                    existing = await db.execute(select(User.user_id).where(User.email == email))
                    if existing.scalar() is not None:
                        raise Conflict(DUPLICATE_EMAIL)

                    user = User(
                        email=email,
                        password=get_hashed_password(password),
                        display_name=registration.name,
                    )
                    db.add(user)
                    await db.flush()

                    profile = Affiliates(
                        id=user.user_id,
                        name=registration.name,
                        email=email,
                        phone=registration.phone or "",
                        website=registration.website or "",
                        bio=registration.bio or "",
                        role="Travel Affiliate",
                        total_referrals=0,
                        monthly_earnings=0,
                        total_earnings=0,
                        conversion_rate=0,
                    )
                    db.add(profile)
                    await db.flush()

                    await create_initial_referral_links(db, user.user_id)
                    open_account(db, user.user_id)
        except IntegrityError:
            # same email registered concurrently
            raise Conflict(DUPLICATE_EMAIL)

        logger.info("Registered affiliate %s (%s)", user.user_id, email)

        if self.notifier is not None:
            try:
                await self.notifier.send_welcome_emails(
                    user.user_id,
                    {
                        "name": profile.name,
                        "email": profile.email,
                        "phone": profile.phone,
                        "website": profile.website,
                    },
                    registration.password,
                )
            except Exception:
                logger.exception("Error sending welcome emails to %s", email)

        return user.user_id

    async def authenticate(self, email, password) -> dict:
        async with self._session() as db:
            result = await db.execute(select(User).where(User.email == normalize_email(email)))
            user = result.scalars().first()

        if not user or not verify_password(password, user.password):
            raise Unauthorized("Invalid email or password")
        if not self.token_secret:
            raise DependencyUnavailable("Token signing key not configured")

        token = write_token({"user_id": str(user.user_id), "email": user.email}, self.token_secret)
        return {"accessToken": token, "tokenType": "bearer", "userId": user.user_id}

    async def dashboard(self, user_id) -> dict:
        try:
            user_uuid = uuid.UUID(str(user_id))
        except ValueError:
            raise Unauthorized("Unauthorized", "Token does not identify an affiliate")

        async with self._session() as db:
            profile = await db.get(Affiliates, user_uuid)
            if not profile:
                raise NotFound("Affiliate not found")

            balance = await get_balance(db, user_uuid)

            links_result = await db.execute(
                select(ReferralLinks)
                .where(ReferralLinks.affiliate_id == user_uuid)
                .order_by(ReferralLinks.created_at)
            )
            links = links_result.scalars().all()

            conversions_result = await db.execute(
                select(Conversions)
                .where(Conversions.affiliate_id == user_uuid)
                .order_by(desc(Conversions.created_at))
                .limit(RECENT_CONVERSIONS)
            )
            conversions = conversions_result.scalars().all()

        return {
            "profile": serialize_profile(profile),
            "balance": balance,
            "links": [serialize_link(link) for link in links],
            "conversions": [serialize_conversion(conversion) for conversion in conversions],
        }
