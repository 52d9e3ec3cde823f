"""
Tokenizer and Combo Generator Service

Splits raw listing text into normalized tokens and produces contiguous 1-3 token
n-grams ("combos") per field.

Normalization steps, in order:
1. Unicode NFKC normalization
2. camelCase / acronym boundaries become spaces ("PhotoEditor" -> "Photo Editor",
   "PDFReader" -> "PDF Reader")
3. Apostrophes are removed inside words ("don't" -> "dont")
4. Locale-aware lowercasing (Turkish and Azeri dotted/dotless i)
5. Split on whitespace, punctuation, underscores, en and em dashes
6. Internal hyphens are kept ("check-in"), leading/trailing hyphens are stripped

Both functions are pure and total: empty or None text yields an empty sequence.
Identical (text, locale) input always yields an identical ordered sequence.
"""

import re
import unicodedata
from typing import Dict, Iterable, List, Optional

from listing_audit.models.enums import FieldSource
from listing_audit.models.schemas import Combo, ListingMetadata, Token


# Bumped whenever tokenization output can change for the same input
TOKENIZER_VERSION = "1.2.0"

MAX_COMBO_LENGTH = 3

_APOSTROPHES = re.compile(r"['’ʼ`]")
_SEPARATORS = re.compile(r"[^\w-]+|_")
_REPEATED_HYPHENS = re.compile(r"-{2,}")

_DOTLESS_I_LOCALES = ("tr", "az")

FIELD_ORDER = (FieldSource.TITLE, FieldSource.SUBTITLE, FieldSource.DESCRIPTION)


def _split_camel_case(text: str) -> str:
    out = []
    length = len(text)
    for i, ch in enumerate(text):
        if i > 0 and ch.isupper():
            prev = text[i - 1]
            nxt = text[i + 1] if i + 1 < length else ""
            if prev.islower():
                out.append(" ")
            elif prev.isupper() and nxt.islower():
                # End of an acronym: "PDFReader" -> "PDF Reader"
                out.append(" ")
        out.append(ch)
    return "".join(out)


def _lowercase(text: str, locale: Optional[str]) -> str:
    language = (locale or "").replace("_", "-").split("-")[0].lower()
    if language in _DOTLESS_I_LOCALES:
        text = text.replace("I", "ı")
    # str.lower() maps U+0130 to "i" plus a combining dot
    return text.replace("İ", "i").lower()


def normalize_text(text: Optional[str], locale: Optional[str] = None) -> List[str]:
    """
    Return the normalized token strings of `text` in order.

    Args:
        text: Raw field text, may be None or empty
        locale: BCP-47 locale controlling case folding

    Returns:
        List of token strings (letters, digits and internal hyphens only)
    """
    if not text:
        return []

    text = unicodedata.normalize("NFKC", text)
    text = _split_camel_case(text)
    text = _APOSTROPHES.sub("", text)
    text = _lowercase(text, locale)

    words = []
    for piece in _SEPARATORS.split(text):
        piece = _REPEATED_HYPHENS.sub("-", piece).strip("-")
        if piece:
            words.append(piece)
    return words


def tokenize(
    text: Optional[str],
    locale: Optional[str] = None,
    source: FieldSource = FieldSource.TITLE,
) -> List[Token]:
    """Tokenize one field into Token objects with positions starting at 0."""
    return [
        Token(text=word, source=source, position=position)
        for position, word in enumerate(normalize_text(text, locale))
    ]


def tokenize_listing(metadata: ListingMetadata, locale: Optional[str] = None) -> List[Token]:
    """Tokenize title, subtitle and description in field order."""
    locale = locale or metadata.locale
    tokens: List[Token] = []
    tokens.extend(tokenize(metadata.title, locale, FieldSource.TITLE))
    tokens.extend(tokenize(metadata.subtitle, locale, FieldSource.SUBTITLE))
    tokens.extend(tokenize(metadata.description, locale, FieldSource.DESCRIPTION))
    return tokens


def group_by_field(tokens: Iterable[Token]) -> Dict[FieldSource, List[Token]]:
    grouped: Dict[FieldSource, List[Token]] = {field: [] for field in FIELD_ORDER}
    for token in tokens:
        grouped[token.source].append(token)
    for field in FIELD_ORDER:
        grouped[field].sort(key=lambda t: t.position)
    return grouped


def generate_combos(
    tokens: Iterable[Token],
    stopwords: Optional[Iterable[str]] = None,
    max_length: int = MAX_COMBO_LENGTH,
) -> List[Combo]:
    """
    Produce every contiguous run of 1 to `max_length` tokens within each field.

    Combos never span two fields. A combo made only of stopwords is discarded.
    Output order: field order (title, subtitle, description), then start
    position, then length.
    """
    stopword_set = frozenset(stopwords or ())
    combos: List[Combo] = []

    for field, field_tokens in group_by_field(tokens).items():
        words = [t.text for t in field_tokens]
        for start in range(len(words)):
            for length in range(1, max_length + 1):
                if start + length > len(words):
                    break
                run = words[start:start + length]
                if all(word in stopword_set for word in run):
                    continue
                combos.append(
                    Combo(
                        text=" ".join(run),
                        length=length,
                        source=field,
                        position=field_tokens[start].position,
                        tokens=run,
                    )
                )
    return combos
