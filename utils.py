from jwt import encode, decode, exceptions
from passlib.context import CryptContext
from datetime import datetime, timedelta, date, timezone
from decimal import Decimal, ROUND_HALF_UP
from config.settings import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, JWT_SECRET_KEY
from errors import Unauthorized

CENT = Decimal("0.01")

password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def get_hashed_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_pass: str) -> bool:
    return password_context.verify(password, hashed_pass)


def utc_now() -> datetime:
    """Naive UTC with microseconds, for columns that are ordered by time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def expire_date(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)

def write_token(data: dict, secret: str = None) -> str:
    """Generate an access token valid for ACCESS_TOKEN_EXPIRE_MINUTES."""
    exp = expire_date(ACCESS_TOKEN_EXPIRE_MINUTES)
    return encode(payload={**data, "exp": exp}, key=secret or JWT_SECRET_KEY, algorithm=ALGORITHM)


def validate_token(token: str, secret: str = None) -> dict:
    if not (secret or JWT_SECRET_KEY):
        raise Unauthorized("Unauthorized", "Token signing key is not configured")
    try:
        return decode(token, key=secret or JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except exceptions.ExpiredSignatureError:
        raise Unauthorized("Unauthorized", "Token expired")
    except exceptions.InvalidTokenError:
        raise Unauthorized("Unauthorized", "Invalid token")


def to_money(value) -> Decimal:
    """Round to the currency minor unit, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_commission(purchase_amount, rate) -> Decimal:
    return to_money(Decimal(str(purchase_amount)) * Decimal(str(rate)))


def month_start(day: date) -> date:
    return day.replace(day=1)
