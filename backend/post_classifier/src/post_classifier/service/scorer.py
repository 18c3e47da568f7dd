from typing import Optional

from ..models.schemas import CategoryProfile, CategoryScore, ScoringWeights
from .matcher import find_matches
from .normalizer import normalize


def score_category(
    caption,
    profile: CategoryProfile,
    weights: Optional[ScoringWeights] = None,
) -> CategoryScore:
    """
    Score one category for a caption.

    Every tier/language keyword list is matched separately, so a caption hitting
    both a Vietnamese and an English primary keyword accumulates both. The total
    is scaled by the category weight and mapped to a confidence with a fixed
    scale, which keeps confidences comparable across categories of different
    sizes (a category with many keywords still saturates faster).
    """
    weights = weights or ScoringWeights()
    text = normalize(caption)
    if not text:
        return CategoryScore(score=0.0, confidence=0.0)

    total = 0.0
    for tier, _language, keywords in profile.keyword_groups():
        if not keywords:
            continue
        tier_weight = weights.tier_weight(tier)
        for match in find_matches(text, keywords, weights.exact_match, weights.partial_match):
            total += match.score * tier_weight

    total *= profile.weight
    confidence = min(max(total / weights.confidence_scale, 0.0), 1.0)
    return CategoryScore(score=total, confidence=confidence)
