"""
Clean-up helpers for AI generated cover letter text.

Language models like to append notes about the letter they just wrote
("This cover letter highlights...", "Feel free to customize...") and to leave
bracketed placeholders such as ``[Your Name]`` in the prose. Everything that is
saved or exported goes through ``clean_ai_output`` first and, when the user's
profile is known, through ``resolve_placeholders``.
"""
import logging
import re
from typing import Dict, Optional

from letter_studio.schemas import UserProfile

logger = logging.getLogger(__name__)

SEPARATOR = "---"

COMMENTARY_PREFIXES = (
    "this cover letter",
    "overall",
    "the above text",
    "in summary",
    "this version",
)

COMMENTARY_FRAGMENTS = (
    "aligns your experience",
    "demonstrates your qualifications",
    "effectively showcases",
    "feel free to customize",
)

PHONE_MARKER = "[Phone Number]"

# Canonical placeholder token -> profile field it stands for
PLACEHOLDER_FIELDS: Dict[str, str] = {
    "[Your Name]": "name",
    "[Your Email]": "email",
    "[Email Address]": "email",
    "[Your Phone]": "phone",
    "[Phone Number]": "phone",
    "[Your Location]": "location",
    "[Your Address]": "location",
}

MIN_LENGTHS = {
    "name": 2,
    "email": 5,
    "location": 2,
}

# Each token is recognised in its canonical, lowercase and uppercase spelling
_VARIANTS: Dict[str, str] = {}
for _token in PLACEHOLDER_FIELDS:
    for _variant in (_token, _token.lower(), _token.upper()):
        _VARIANTS[_variant] = _token

PLACEHOLDER_PATTERN = re.compile("|".join(re.escape(v) for v in sorted(_VARIANTS, key=len, reverse=True)))


def _is_commentary(line: str) -> bool:
    lower_line = line.lower()
    if lower_line.startswith(COMMENTARY_PREFIXES):
        return True
    return any(fragment in lower_line for fragment in COMMENTARY_FRAGMENTS)


def clean_ai_output(text: Optional[str]) -> str:
    """
    Remove AI meta-commentary from generated text.

    Everything from the first ``---`` separator onwards is dropped. Without a
    separator, lines that read like commentary about the letter are filtered out.
    """
    if not text:
        return ""

    cutoff = text.find(SEPARATOR)
    if cutoff != -1:
        return text[:cutoff].strip()

    lines = text.split("\n")
    kept = [line for line in lines if not _is_commentary(line)]
    if len(kept) != len(lines):
        logger.debug(f"Dropped {len(lines) - len(kept)} commentary line(s) from AI output")
    return "\n".join(kept).strip()


def _valid_value(value: Optional[str], field: str) -> Optional[str]:
    """Return the usable profile value for ``field`` or None when it would produce a malformed letter."""
    if value is None:
        return None
    value = value.strip()
    if len(value) < MIN_LENGTHS[field]:
        return None
    if "[" in value or "]" in value:
        return None
    return value


def _match_case(value: str, matched: str, canonical: str) -> str:
    if matched == canonical:
        return value
    if matched == canonical.lower():
        return value.lower()
    return value.upper()


def resolve_placeholders(text: Optional[str], profile: Optional[UserProfile]) -> str:
    """
    Replace bracketed placeholders with values from the user's profile.

    Fields that are missing or fail validation keep their placeholder form.
    The phone number is not part of the profile, so phone tokens are always
    normalised to ``[Phone Number]``.
    """
    if not text:
        return ""

    profile = profile or UserProfile()
    resolved = {
        "name": _valid_value(profile.name, "name"),
        "email": _valid_value(profile.email, "email"),
        "location": _valid_value(profile.location, "location"),
    }

    def _replace(match: re.Match) -> str:
        matched = match.group(0)
        canonical = _VARIANTS[matched]
        field = PLACEHOLDER_FIELDS[canonical]
        if field == "phone":
            return _match_case(PHONE_MARKER, matched, canonical)
        value = resolved[field]
        if value is None:
            return matched
        return _match_case(value, matched, canonical)

    # Substituted text can join with its neighbours into a new token, so run to a fixed point
    while True:
        updated = PLACEHOLDER_PATTERN.sub(_replace, text)
        if updated == text:
            return updated
        text = updated


def prepare_letter_body(text: Optional[str], profile: Optional[UserProfile] = None) -> str:
    """Clean AI commentary and, when a profile is available, fill in placeholders."""
    cleaned = clean_ai_output(text)
    if profile is None:
        return cleaned
    return resolve_placeholders(cleaned, profile)
