import functools
import unicodedata

import regex as re

from ..config import settings

STOP_WORDS_EN = (
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "a", "an", "is", "are", "was", "were",
)
STOP_WORDS_VI = ("và", "với", "của", "tại", "trong", "trên")

# Anything that is not a word character, whitespace or an accented Latin letter.
NON_WORD_PATTERN = re.compile(r"[^\w\s\u00C0-\u024F\u1E00-\u1EFF]")
WHITESPACE_PATTERN = re.compile(r"\s+")
STOP_WORD_PATTERN = re.compile(
    r"\b(?:" + "|".join(STOP_WORDS_EN + STOP_WORDS_VI) + r")\b"
)

if settings.NORMALIZE_CACHE_SIZE > 0:
    normalize_cache = functools.lru_cache(maxsize=settings.NORMALIZE_CACHE_SIZE)
else:
    def normalize_cache(func):
        return func


@normalize_cache
def _normalize(text: str) -> str:
    text = unicodedata.normalize("NFC", text.lower())
    text = NON_WORD_PATTERN.sub(" ", text)
    text = WHITESPACE_PATTERN.sub(" ", text).strip()
    text = STOP_WORD_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def normalize(text) -> str:
    """
    Lower-case a caption or keyword, strip punctuation and stop-words and
    collapse whitespace. Vietnamese diacritics are kept.

    Returns an empty string for None, non-string or empty input.
    """
    if not text or not isinstance(text, str):
        return ""
    return _normalize(text)
