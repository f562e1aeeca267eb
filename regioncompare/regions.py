"""Region name canonicalization."""
import re

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def canonical_region(name: str) -> str:
    """Canonical form of an Azure location name.

    Upstream APIs mix programmatic names ("swedencentral") with display names
    ("Sweden Central"), in any casing.

    Args:
        name: Location name as returned by an API or typed by a user.

    Returns:
        str: Lower-cased name with every non-alphanumeric character removed.
    """
    return _NON_ALNUM.sub("", (name or "").lower())


def same_region(a: str, b: str) -> bool:
    """Check whether two location names refer to the same region."""
    return canonical_region(a) == canonical_region(b)
