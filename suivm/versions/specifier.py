"""Classification of user supplied version specifiers."""

import re
from typing import List

from .models import SpecifierKind

LATEST = "latest"
KEYWORDS = (LATEST,)

MIN_PREFIX_LENGTH = 4
FULL_HASH_LENGTH = 40

_HEX_RE = re.compile(r"^[0-9a-fA-F]{%d,%d}$" % (MIN_PREFIX_LENGTH, FULL_HASH_LENGTH))
_FORBIDDEN_REF_CHARS = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]")

# Resolution order when a string could be several things at once.
PRECEDENCE = (
    SpecifierKind.KEYWORD,
    SpecifierKind.TAG,
    SpecifierKind.BRANCH,
    SpecifierKind.COMMIT,
)


def is_ref_name(value: str) -> bool:
    """Check ``value`` against git's ref naming rules (git check-ref-format)."""
    if not value or value == "@":
        return False
    if _FORBIDDEN_REF_CHARS.search(value):
        return False
    if ".." in value or "@{" in value or "//" in value:
        return False
    if value.startswith(("/", ".", "-")) or value.endswith(("/", ".")):
        return False
    if value.endswith(".lock"):
        return False
    return all(not part.startswith(".") for part in value.split("/"))


def is_commit_hash(value: str) -> bool:
    return bool(_HEX_RE.match(value))


def normalize_hash(value: str) -> str:
    return value.strip().lower()


def classify(specifier: str) -> List[SpecifierKind]:
    """Return every kind ``specifier`` may denote, in precedence order.

    An empty list means the string cannot name anything.
    """
    value = specifier.strip()
    kinds = []
    if value.lower() in KEYWORDS:
        kinds.append(SpecifierKind.KEYWORD)
    if is_ref_name(value):
        kinds.append(SpecifierKind.TAG)
        kinds.append(SpecifierKind.BRANCH)
    if is_commit_hash(value):
        kinds.append(SpecifierKind.COMMIT)
    return [kind for kind in PRECEDENCE if kind in kinds]
