import logging
import math
from typing import List, Optional

from ..config import settings
from ..models.schemas import (
    ClassificationOutcome,
    ClassificationResult,
    KeywordDictionary,
    PreviewResponse,
)
from ..utils.loader import get_keyword_dictionary
from .scorer import score_category

logger = logging.getLogger(settings.SERVICE_NAME + ".classifier")


def round_confidence(confidence: float) -> float:
    """Round half-up to two decimals."""
    return min(math.floor(confidence * 100 + 0.5) / 100, 1.0)


class PostClassifier:
    """
    Assigns up to `max_tags` category tags to a caption.

    The classifier only reads its dictionary, so one instance can be shared
    between any number of callers. Build separate instances for separately
    configured dictionaries.
    """

    def __init__(self, dictionary: KeywordDictionary):
        self.dictionary = dictionary

    @property
    def categories(self) -> List[str]:
        return self.dictionary.category_names

    def classify_outcome(self, caption) -> ClassificationOutcome:
        """
        Classify a caption without ever raising.

        Args:
            caption: Caption text; anything that is not a non-empty string gives no results

        Returns:
            ClassificationOutcome with results sorted by descending confidence,
            or with `error` set if scoring failed
        """
        if not caption or not isinstance(caption, str):
            return ClassificationOutcome()

        weights = self.dictionary.scoring
        try:
            retained = []
            for profile in self.dictionary.categories:
                category_score = score_category(caption, profile, weights)
                if category_score.confidence >= weights.minimum_confidence:
                    retained.append((profile.name, category_score.confidence))

            # sorted() is stable, ties keep dictionary order
            retained = sorted(retained, key=lambda item: item[1], reverse=True)[: weights.max_tags]
            results = [
                ClassificationResult(tag=name, confidence=round_confidence(confidence))
                for name, confidence in retained
            ]
        except Exception as e:
            logger.warning(f"Classification failed, returning no tags: {e}", exc_info=True)
            return ClassificationOutcome(error=str(e) or type(e).__name__)

        logger.debug(f"Classified caption {caption[:100]!r}: {[r.model_dump() for r in results]}")
        return ClassificationOutcome(results=results)

    def classify(self, caption) -> List[ClassificationResult]:
        """Classify a caption; failures and invalid input give an empty list."""
        return self.classify_outcome(caption).results

    def preview(self, caption) -> PreviewResponse:
        results = self.classify(caption)
        return PreviewResponse(
            tags=[r.tag for r in results],
            confidence=[r.confidence for r in results],
            has_results=bool(results),
        )


_classifier_instance: Optional[PostClassifier] = None


def get_classifier() -> PostClassifier:
    """
    Get the process-wide classifier built from the configured dictionary.
    """
    global _classifier_instance
    if _classifier_instance is None:
        _classifier_instance = PostClassifier(get_keyword_dictionary())
    return _classifier_instance


def classify_post(caption) -> List[ClassificationResult]:
    """Classify a caption with the process-wide classifier."""
    return get_classifier().classify(caption)


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)

    for example in (
        "Tôi thích xem bóng đá và tennis mỗi ngày",
        "Mới mua iPhone từ Apple Store",
        "Xem bóng đá rồi đi ăn nhà hàng",
        "Hôm nay trời đẹp quá",
    ):
        print(example)
        for result in classify_post(example):
            print(f"  {result.tag}: {result.confidence}")
