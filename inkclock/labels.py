import unicodedata
from typing import Optional, Tuple

# Words that only bridge a label and its time expression ("Call Mom in 15 min").
CONNECTOR_WORDS = frozenset({
    # English
    'in', 'at', 'for', 'by', 'after', 'before', 'about', 'around', 'within',
    # German
    'um', 'für', 'nach', 'bis', 'gegen', 'etwa',
    # French
    'à', 'dans', 'pour', 'vers',
    # Italian / Spanish
    'tra', 'fra', 'en', 'sobre', 'para', 'entro',
    '@',
})

EDGE_PUNCTUATION = ':-–—,;.'


def _is_filler(word):
    bare = word.strip(EDGE_PUNCTUATION)
    return not bare or bare.lower() in CONNECTOR_WORDS


def _strip_connectors(words):
    changed = True
    while changed and words:
        changed = False
        if _is_filler(words[-1]):
            words = words[:-1]
            changed = True
        if words and _is_filler(words[0]):
            words = words[1:]
            changed = True
    return words


def extract_label(text: str, span: Tuple[int, int]) -> Optional[str]:
    """Human label from the text around a matched time expression.

    - "Call Mom in 15 min"       -> "Call Mom"
    - "Pick up kids at 3:30 PM"  -> "Pick up kids"
    - "15 min"                   -> None
    """
    start, end = span
    words = _strip_connectors((text[:start] + ' ' + text[end:]).split())
    label = ' '.join(words).strip()
    label = label.strip(EDGE_PUNCTUATION + ' \t\r\n')
    return label or None


def canonical_token(value: str) -> str:
    """Case and diacritic folded, alphanumeric-only form ("15 Min." -> "15min")"""
    decomposed = unicodedata.normalize('NFKD', value)
    folded = ''.join(c for c in decomposed if not unicodedata.combining(c)).casefold()
    return ''.join(c for c in folded if c.isalnum())


def normalize_text(value: str) -> str:
    """Trimmed, lowercased text used for containment comparisons"""
    return value.strip().lower()
