"""Mobile number normalization for M-Pesa."""

DEFAULT_COUNTRY_CODE = "254"


def normalize_phone_number(phone_number: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Convert a mobile number to the international format M-Pesa expects.

    0712345678   -> 254712345678
    254712345678 -> 254712345678
    712345678    -> 254712345678

    Idempotent: normalizing an already normalized number returns it unchanged.
    """
    number = phone_number.strip().replace(" ", "")
    if number.startswith("+"):
        number = number[1:]

    if number.startswith(country_code):
        return number
    if number.startswith("0"):
        return country_code + number[1:]
    return country_code + number
