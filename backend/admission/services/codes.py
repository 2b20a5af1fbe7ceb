"""Human-facing identifiers: confirmation codes, barcodes, ticket and order numbers."""

import secrets

# No 0/O, 1/I to keep codes readable over the phone
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

CONFIRMATION_CODE_LENGTH = 6
BARCODE_LENGTH = 12
ORDER_SUFFIX_LENGTH = 8


def random_code(length: int, alphabet: str = CODE_ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_confirmation_code() -> str:
    return random_code(CONFIRMATION_CODE_LENGTH)


def generate_barcode() -> str:
    return random_code(BARCODE_LENGTH)


def order_prefix(attraction_name: str | None, default: str = "TKT") -> str:
    """Up to three initials of the attraction name, e.g. ``Haunted Hollow Manor`` -> ``HHM``."""
    if not attraction_name:
        return default
    initials = "".join(word[0] for word in attraction_name.split() if word[:1].isalnum())
    return initials[:3].upper() or default


def generate_order_number(prefix: str) -> str:
    return f"{prefix}-{random_code(ORDER_SUFFIX_LENGTH)}"


def generate_ticket_number(prefix: str) -> str:
    return f"{prefix}-T-{random_code(ORDER_SUFFIX_LENGTH)}"
