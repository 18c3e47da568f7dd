import asyncio
import logging
import math
from collections import Counter, OrderedDict
from typing import Iterable, List, Optional, Sequence

from ..config import settings
from ..models.schemas import (
    BatchItem,
    CaseReport,
    ClassificationStats,
    PostIn,
    PostRecord,
    TaggedPost,
    ValidationCase,
    ValidationReport,
)
from .classifier import PostClassifier, round_confidence
from .store import PostSource, TagSink

logger = logging.getLogger(settings.SERVICE_NAME + ".batch")


def _case_scores(predicted: Sequence[str], expected: Sequence[str]):
    """Precision, recall and F1 of one prediction. Two empty sets agree perfectly."""
    predicted_set, expected_set = set(predicted), set(expected)
    hits = len(predicted_set & expected_set)
    if predicted_set:
        precision = hits / len(predicted_set)
    else:
        precision = 1.0 if not expected_set else 0.0
    if expected_set:
        recall = hits / len(expected_set)
    else:
        recall = 1.0 if not predicted_set else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
    return precision, recall, f1


class BatchClassificationService:
    """
    Applies a PostClassifier to stored posts and persists the tag names.

    Only tag names are written; confidences stay in memory. Posts without a
    confident category are never written, so they keep no tags at all.
    """

    def __init__(
        self,
        classifier: PostClassifier,
        sink: TagSink,
        source: Optional[PostSource] = None,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
    ):
        self.classifier = classifier
        self.sink = sink
        self.source = source if source is not None else sink
        limit = getattr(sink, "max_batch_size", None) or settings.WRITE_CHUNK_SIZE
        self.chunk_size = min(chunk_size or settings.WRITE_CHUNK_SIZE, limit)
        self.chunk_delay = settings.CHUNK_DELAY_SECONDS if chunk_delay is None else chunk_delay
        self.is_processing = False
        # Untagged posts that got no tags, with the caption they were tried with
        self.attempted: "OrderedDict[str, Optional[str]]" = OrderedDict()

    def _tag_post(self, post_id: str, caption) -> Optional[TaggedPost]:
        results = self.classifier.classify(caption)
        if not results:
            return None
        return TaggedPost(post_id=post_id, tags=[r.tag for r in results], results=results)

    async def classify_and_tag(self, post_id: Optional[str], caption) -> Optional[TaggedPost]:
        """
        Classify a new post and store its tags.

        Returns None without writing anything when there is no post id,
        no caption or no confident category. A failing write is logged and
        also returns None so that post creation is never blocked.
        """
        if not post_id or not caption:
            return None

        tagged = self._tag_post(post_id, caption)
        if tagged is None:
            logger.debug(f"No confident category for post {post_id}")
            return None

        try:
            await self.sink.write_tags(post_id, tagged.tags)
        except Exception as e:
            logger.error(f"Error writing tags for post {post_id}: {e}", exc_info=True)
            return None

        logger.info(f"Tagged post {post_id} with {tagged.tags}")
        return tagged

    def classify_batch(self, posts: Iterable) -> List[BatchItem]:
        return classify_posts(self.classifier, posts)

    async def update_posts_with_tags(self, tagged_posts: Sequence[TaggedPost]) -> int:
        """
        Write tags in atomic chunks of at most `chunk_size` posts.

        A failing chunk raises; chunks committed before it stay committed.

        Returns:
            Number of posts written
        """
        writable = [post for post in tagged_posts if post.tags]
        written = 0
        for start in range(0, len(writable), self.chunk_size):
            if start:
                await asyncio.sleep(self.chunk_delay)
            chunk = writable[start:start + self.chunk_size]
            await self.sink.write_tags_many(chunk)
            written += len(chunk)
            logger.debug(f"Committed chunk of {len(chunk)} tag writes ({written}/{len(writable)})")
        return written

    def _classify_records(self, posts: Iterable[PostRecord]) -> List[TaggedPost]:
        tagged_posts = []
        for post in posts:
            if not post.caption or not post.caption.strip():
                continue
            tagged = self._tag_post(post.id, post.caption)
            if tagged is not None:
                tagged_posts.append(tagged)
        return tagged_posts

    def _remember_attempted(self, posts: Sequence[PostRecord], tagged_posts: Sequence[TaggedPost]) -> None:
        tagged_ids = {post.post_id for post in tagged_posts}
        for post in posts:
            self.attempted.pop(post.id, None)
            if post.id not in tagged_ids:
                self.attempted[post.id] = post.caption
        while len(self.attempted) > settings.ATTEMPTED_CACHE_SIZE:
            self.attempted.popitem(last=False)

    async def classify_existing_posts(self, batch_size: Optional[int] = None) -> List[TaggedPost]:
        """
        Classify one page of posts that have no tags yet.

        Posts this instance already attempted without result are skipped
        until their caption changes, so they do not block later pages.
        Returns an empty list when another run is still in progress.
        """
        if self.is_processing:
            logger.warning("Batch classification already running, skipping request")
            return []

        self.is_processing = True
        try:
            batch_size = batch_size or settings.READ_BATCH_SIZE
            posts = await self.source.fetch_untagged(batch_size, exclude=self.attempted)
            if not posts:
                logger.info("No untagged posts to classify")
                return []

            tagged_posts = self._classify_records(posts)
            await self.update_posts_with_tags(tagged_posts)
            self._remember_attempted(posts, tagged_posts)
            logger.info(f"Batch classification tagged {len(tagged_posts)} of {len(posts)} posts")
            return tagged_posts
        except Exception as e:
            logger.error(f"Error in batch classification: {e}", exc_info=True)
            raise
        finally:
            self.is_processing = False

    async def reclassify_posts(self, batch_size: Optional[int] = None) -> List[TaggedPost]:
        """Re-run classification on a page of posts and overwrite their tags."""
        batch_size = batch_size or settings.RECLASSIFY_BATCH_SIZE
        try:
            posts = await self.source.fetch_posts(batch_size)
            tagged_posts = self._classify_records(posts)
            await self.update_posts_with_tags(tagged_posts)
        except Exception as e:
            logger.error(f"Error in reclassification: {e}", exc_info=True)
            raise
        logger.info(f"Reclassified {len(tagged_posts)} of {len(posts)} posts")
        return tagged_posts

    async def get_classification_stats(self) -> ClassificationStats:
        tag_lists = await self.source.iter_tag_lists()
        total = len(tag_lists)
        classified = [tags for tags in tag_lists if tags is not None]

        distribution = Counter(tag for tags in classified for tag in tags)
        return ClassificationStats(
            total_posts=total,
            classified_posts=len(classified),
            unclassified_posts=total - len(classified),
            classification_rate=math.floor(len(classified) / total * 100 + 0.5) if total else 0,
            tag_distribution=dict(distribution.most_common()),
        )

    def validate(self, cases: Iterable[ValidationCase]) -> ValidationReport:
        return validate_classifier(self.classifier, cases)


def validate_classifier(classifier: PostClassifier, cases: Iterable[ValidationCase]) -> ValidationReport:
    """
    Compare classifier output with labeled captions.

    Returns:
        Per-case precision/recall/F1 and their averages over all cases
    """
    reports: List[CaseReport] = []
    for case in cases:
        predicted = [r.tag for r in classifier.classify(case.caption)]
        precision, recall, f1 = _case_scores(predicted, case.expected_tags)
        reports.append(
            CaseReport(
                caption=case.caption,
                expected_tags=list(case.expected_tags),
                predicted_tags=predicted,
                precision=precision,
                recall=recall,
                f1=f1,
            )
        )

    if not reports:
        return ValidationReport()

    count = len(reports)
    exact = sum(1 for r in reports if set(r.predicted_tags) == set(r.expected_tags))
    return ValidationReport(
        cases=reports,
        average_precision=sum(r.precision for r in reports) / count,
        average_recall=sum(r.recall for r in reports) / count,
        average_f1=sum(r.f1 for r in reports) / count,
        exact_match_rate=exact / count,
    )


def classify_posts(classifier: PostClassifier, posts: Iterable) -> List[BatchItem]:
    """
    Classify posts without persisting anything. Every input post yields
    exactly one item, in order; posts without a string caption get no tags
    and confidence 0. Otherwise confidence is the mean over the assigned tags.

    Args:
        classifier: Classifier to apply
        posts: PostIn/PostRecord objects or dicts with `id` and `caption`
    """
    items: List[BatchItem] = []
    for post in posts:
        if isinstance(post, dict):
            caption = post.get("caption")
            post = PostIn(id=str(post["id"]), caption=caption if isinstance(caption, str) else None)
        if not post.caption:
            items.append(BatchItem(post_id=post.id, tags=[], confidence=0.0))
            continue
        results = classifier.classify(post.caption)
        confidence = sum(r.confidence for r in results) / max(len(results), 1)
        items.append(
            BatchItem(
                post_id=post.id,
                tags=[r.tag for r in results],
                confidence=round_confidence(confidence),
            )
        )
    return items
