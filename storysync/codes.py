"""Human-readable session codes, e.g. ``K7Q2ZD``."""

import secrets
import string

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH = 6


def generate_session_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Generate a random session code of uppercase letters and digits."""
    if length <= 0:
        raise ValueError(f"Code length must be positive, got {length}")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
