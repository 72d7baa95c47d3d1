import re
import secrets
import string
import time
from datetime import datetime

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_booking_number() -> str:
    """NB-YYYYMMDD-XXXXX"""
    date_str = datetime.utcnow().strftime("%Y%m%d")
    random_part = secrets.token_hex(3).upper()[:5]
    return f"NB-{date_str}-{random_part}"


def generate_case_number() -> str:
    """CASE-{base36 millis}-{4 random chars}"""
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"CASE-{timestamp}-{random_part}"


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower())
    return slug.strip("-")


def generate_lawyer_slug(first_name: str, last_name: str) -> str:
    return f"{slugify(first_name)}-{slugify(last_name)}-{secrets.token_hex(3)}"


def generate_token() -> str:
    return secrets.token_hex(32)


def simulated_gateway_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def format_paise(paise: int) -> str:
    """Render paise as Indian-grouped rupees, e.g. 150000000 -> '₹15,00,000.00'."""
    rupees, fraction = divmod(abs(int(paise)), 100)
    digits = str(rupees)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    sign = "-" if paise < 0 else ""
    return f"{sign}₹{digits}.{fraction:02d}"


def meeting_link_for_case(case_id: str) -> str:
    from app.constants import MEETING_BASE_URL

    alnum = re.sub(r"[^a-zA-Z0-9]", "", case_id)
    return f"{MEETING_BASE_URL}/NyayBooker_Case_{alnum}"
