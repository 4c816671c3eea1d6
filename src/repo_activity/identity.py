from __future__ import annotations

UNKNOWN = "Unknown"


def normalize_name(name: str) -> str:
    return (name or "").strip() or UNKNOWN


def normalize_email(email: str) -> str:
    return (email or "").strip() or UNKNOWN


def contributor_key(name: str, email: str) -> tuple[str, str]:
    """
    Identity used to group commits per contributor.

    Only surrounding whitespace is dropped; no case folding and no merging of
    identities that share a name or an email.
    """
    return normalize_name(name), normalize_email(email)
