import secrets
import string
import time

from models.affiliateLinks import LinkTypeEnum

INITIAL_LINK_TYPES = [
    LinkTypeEnum.general,
    LinkTypeEnum.facebook,
    LinkTypeEnum.twitter,
    LinkTypeEnum.instagram,
    LinkTypeEnum.tiktok,
]

BASE36_ALPHABET = string.digits + string.ascii_lowercase


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_referral_code(user_id, link_type, now_ms: int = None) -> str:
    """Build ``{user}-{type}-{random}-{time}``, e.g. ``3f2a-fa-9c01be-m2xk``.

    Uniqueness is not checked here; the ref_code column is unique and
    callers regenerate on conflict.
    """
    if isinstance(link_type, LinkTypeEnum):
        link_type = link_type.value
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    prefix = str(user_id)[:4]
    type_prefix = link_type[:2]
    random_part = secrets.token_hex(3)
    timestamp = to_base36(now_ms)[:4]
    return f"{prefix}-{type_prefix}-{random_part}-{timestamp}"
