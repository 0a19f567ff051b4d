"""Kenyan mobile-money number validation and normalization."""

import re

from stkpay.common.errors import ValidationError


COUNTRY_CODE = "254"

# Local (07.., 01..), bare country-code (2547.., 2541..) and "+254" forms.
# Safaricom mobile subscriber numbers start with 7 or 1 after the trunk/country prefix.
MSISDN_PATTERN = re.compile(r"^(?:\+?254|0)(?P<subscriber>[17]\d{8})$")
SEPARATORS = re.compile(r"[\s\-()]")


def normalize_msisdn(raw: str) -> str:
    """Return `raw` in canonical `254XXXXXXXXX` form.

    0712345678, 254712345678 and +254712345678 all normalize to
    254712345678. Spaces, dashes and parentheses are ignored.
    """

    cleaned = SEPARATORS.sub("", str(raw or ""))
    match = MSISDN_PATTERN.match(cleaned)
    if match is None:
        raise ValidationError(
            "Invalid phone number. Use 07XXXXXXXX, 2547XXXXXXXX or +2547XXXXXXXX",
            field="phone",
        )
    return COUNTRY_CODE + match.group("subscriber")
