"""Case Key Normalizer - Canonical lookup key for human-entered case numbers"""
import re
import unicodedata
from typing import Optional

# Separator characters users type between case number parts
_SEPARATORS = re.compile(r"[\\/\-_.|:‐-―−]+")
_WHITESPACE = re.compile(r"\s+")

CANONICAL_SEPARATOR = "/"
_MAX_PASSES = 8


def normalize_case_key(raw: Optional[str]) -> str:
    """
    Canonicalize a free-text case number.

    Never raises and is idempotent. Whitespace (including NBSP) is removed,
    any run of separators becomes a single "/", leading and trailing
    separators are dropped and letters are upper-cased. An empty result means
    the report has no case.

    Examples:
        >>> normalize_case_key(" 7 / 42 ")
        '7/42'
        >>> normalize_case_key("7-42")
        '7/42'
        >>> normalize_case_key("ab_12.3")
        'AB/12/3'
    """
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raw = str(raw)

    # Case mapping and NFKC can each undo the other (decomposed upper-case
    # Greek, compatibility letters without a case mapping), so repeat the
    # pass until the key stops changing
    text = raw
    for _ in range(_MAX_PASSES):
        key = _normalize_once(text)
        if key == text:
            break
        text = key
    return text


def _normalize_once(text: str) -> str:
    # NFKC folds full-width digits and NBSP into their plain forms
    text = unicodedata.normalize("NFKC", text)
    text = unicodedata.normalize("NFKC", text.upper())
    text = _WHITESPACE.sub("", text)
    text = _SEPARATORS.sub(CANONICAL_SEPARATOR, text)
    return text.strip(CANONICAL_SEPARATOR)


def same_case(a: Optional[str], b: Optional[str]) -> bool:
    """True when both values name the same non-empty case"""
    key = normalize_case_key(a)
    return bool(key) and key == normalize_case_key(b)
