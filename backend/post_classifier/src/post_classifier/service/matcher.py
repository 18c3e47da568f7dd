import math
from typing import Iterable, List

from ..models.schemas import Match, MatchType
from .normalizer import normalize

EXACT_MATCH_SCORE = 1.5
PARTIAL_MATCH_SCORE = 1.0
# Words this short are too common to count towards a partial match.
MIN_PARTIAL_WORD_LENGTH = 3


def find_matches(
    text,
    keywords: Iterable[str],
    exact_score: float = EXACT_MATCH_SCORE,
    partial_score: float = PARTIAL_MATCH_SCORE,
) -> List[Match]:
    """
    Compare every keyword against the text.

    A keyword found verbatim (after normalization of both sides) gives one
    exact match. Otherwise a multi-word keyword gives a partial match when
    at least half of its words, counting only words of 3+ characters, occur
    in the text; its score is scaled by the fraction of words found.

    Args:
        text: Caption to search, normalized here
        keywords: Keyword phrases, each normalized independently
        exact_score: Score of an exact match
        partial_score: Score of a partial match before scaling

    Returns:
        List of matches in keyword order, empty when nothing matches
    """
    processed_text = normalize(text)
    if not processed_text:
        return []

    matches: List[Match] = []
    for keyword in keywords or ():
        processed_keyword = normalize(keyword)
        if not processed_keyword:
            continue

        if processed_keyword in processed_text:
            matches.append(Match(keyword=keyword, type=MatchType.EXACT, score=exact_score))
            continue

        words = processed_keyword.split(" ")
        if len(words) < 2:
            continue

        matched_words = [
            word for word in words
            if len(word) >= MIN_PARTIAL_WORD_LENGTH and word in processed_text
        ]
        if len(matched_words) >= math.ceil(len(words) / 2):
            matches.append(
                Match(
                    keyword=keyword,
                    type=MatchType.PARTIAL,
                    score=partial_score * len(matched_words) / len(words),
                )
            )

    return matches
