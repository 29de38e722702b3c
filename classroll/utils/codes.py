"""Invitation code and account credential generation.

Everything here is pure: no database access. Callers that need uniqueness
(invitation codes) check against their store and retry.
"""

import re
import secrets
import string
import unicodedata
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from classroll.models.invitation import InvitationKind

# No 0/O or 1/I so codes can be read aloud and typed by hand
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_RANDOM_LENGTH = 6
MAX_PREFIX_LENGTH = 4

INVITATION_CODE_PATTERN = re.compile(r"^[A-Z0-9]{1,4}\d{2}-[A-Z0-9]{6}$")

DEFAULT_PREFIXES = {
    InvitationKind.COURSE: "C",
    InvitationKind.SPECIFIC_STUDENT: "E",
    InvitationKind.PERSONAL: "P",
}

PASSWORD_UPPERCASE = "ABCDEFGHJKLMNPQRSTUVWXYZ"
PASSWORD_LOWERCASE = "abcdefghijkmnopqrstuvwxyz"
PASSWORD_DIGITS = "23456789"

_random = secrets.SystemRandom()


@dataclass(frozen=True)
class GeneratedCredential:
    """Credentials for a new account. The password is shown once, never stored."""

    email: str
    password: str
    code: str
    email_generated: bool


def random_code(length: int = CODE_RANDOM_LENGTH) -> str:
    """Generate a random string from the unambiguous code alphabet."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_name_part(value: str) -> str:
    """Lower-case a name, strip accents and remove whitespace.

    Example: ``"María José"`` becomes ``"mariajose"``.
    """
    return re.sub(r"\s+", "", _strip_accents(value).lower())


def normalize_prefix(value: str | None) -> str:
    """Reduce a prefix hint to at most four upper-case alphanumerics."""
    if not value:
        return ""
    cleaned = re.sub(r"[^A-Z0-9]", "", _strip_accents(value).upper())
    return cleaned[:MAX_PREFIX_LENGTH]


def course_code_prefix(course_name: str | None) -> str:
    """Prefix for course invitations: first two letters of the course name."""
    prefix = normalize_prefix(course_name)[:2]
    return prefix or DEFAULT_PREFIXES[InvitationKind.COURSE]


def generate_invitation_code(
    kind: InvitationKind | str,
    year: int | None = None,
    prefix: str | None = None,
) -> str:
    """Build an invitation code such as ``CU25-AB3K7M``.

    Args:
        kind: Invitation kind, used for the default prefix
        year: Year whose last two digits are embedded (defaults to the current year)
        prefix: Optional disambiguation prefix that replaces the default one

    Returns:
        ``PREFIX + YY + '-' + 6 random characters``
    """
    kind = InvitationKind(kind)
    if year is None:
        year = datetime.now(timezone.utc).year

    head = normalize_prefix(prefix) or DEFAULT_PREFIXES[kind]
    return f"{head}{year % 100:02d}-{random_code()}"


def is_valid_invitation_code(code: str) -> bool:
    """Check if a string has the shape of an invitation code."""
    return bool(INVITATION_CODE_PATTERN.match(code))


def generate_password(length: int = 10) -> str:
    """Generate a random password with upper, lower and digit characters.

    One character of each class is guaranteed, the rest are drawn from the
    combined pool, and the result is shuffled so class positions are not
    predictable.
    """
    if length < 3:
        raise ValueError("Password length must be at least 3")

    pool = PASSWORD_UPPERCASE + PASSWORD_LOWERCASE + PASSWORD_DIGITS
    chars = [
        secrets.choice(PASSWORD_UPPERCASE),
        secrets.choice(PASSWORD_LOWERCASE),
        secrets.choice(PASSWORD_DIGITS),
    ]
    chars.extend(secrets.choice(pool) for _ in range(length - 3))
    _random.shuffle(chars)
    return "".join(chars)


def generate_student_code(first_name: str, last_name: str, year: int | None = None) -> str:
    """Generate a student code: ``EST`` + initials + 2-digit year + random suffix."""
    if year is None:
        year = datetime.now(timezone.utc).year
    initials = (normalize_prefix(first_name)[:1] or "X") + (normalize_prefix(last_name)[:1] or "X")
    return f"EST{initials}{year % 100:02d}{random_code()}"


def synthesize_email(first_name: str, last_name: str, domain: str) -> str:
    """Build a unique login email from the person's name.

    A random suffix is always appended, so two people with the same name
    never collide.
    """
    first = normalize_name_part(first_name) or "user"
    last = normalize_name_part(last_name) or "account"
    suffix = uuid.uuid4().hex[:8]
    return f"{first}.{last}.{suffix}@{domain}"


def generate_account_credentials(
    first_name: str,
    last_name: str,
    existing_email: str | None = None,
    existing_code: str | None = None,
    email_domain: str = "students.classroll.app",
    password_length: int = 10,
) -> GeneratedCredential:
    """Generate credentials for a new account.

    A submitted email or student code is reused as-is; missing ones are
    synthesized. The password is always freshly generated.
    """
    email = (existing_email or "").strip().lower() or None
    code = (existing_code or "").strip() or None
    return GeneratedCredential(
        email=email or synthesize_email(first_name, last_name, email_domain),
        password=generate_password(password_length),
        code=code or generate_student_code(first_name, last_name),
        email_generated=email is None,
    )
