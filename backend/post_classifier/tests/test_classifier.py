import pytest

from post_classifier.models.schemas import (
    CategoryProfile,
    KeywordDictionary,
    LocalizedKeywords,
    ScoringWeights,
)
from post_classifier.service import classifier as classifier_module
from post_classifier.service.classifier import PostClassifier, classify_post, get_classifier


def _profile(name, *en_primary, weight=1.0):
    return CategoryProfile(name=name, primary=LocalizedKeywords(en=tuple(en_primary)), weight=weight)


def test_single_category_caption():
    results = classify_post("Tôi thích xem bóng đá và tennis mỗi ngày")
    assert [r.tag for r in results] == ["Thể thao"]
    assert results[0].confidence == pytest.approx(0.65)


def test_brand_and_product_caption():
    results = classify_post("Mới mua iPhone từ Apple Store")
    assert results[0].tag == "Công nghệ"
    assert results[0].confidence >= 0.3


def test_two_category_caption():
    results = classify_post("Xem bóng đá rồi đi ăn nhà hàng")
    assert [r.tag for r in results[:2]] == ["Thể thao", "Ăn uống"]
    assert results[0].confidence == pytest.approx(0.35)
    assert results[1].confidence == pytest.approx(0.33)


def test_caption_without_keywords():
    assert classify_post("Hôm nay trời đẹp quá") == []


@pytest.mark.parametrize("caption", ["", None, 123, ["bóng đá"], "   ", "!!! ???"])
def test_invalid_captions_give_no_results(caption):
    assert classify_post(caption) == []


def test_at_most_three_results_sorted_by_confidence():
    caption = "bóng đá tennis phim điện ảnh âm nhạc ca sĩ nhà hàng món ăn"
    results = classify_post(caption)
    assert len(results) == 3
    confidences = [r.confidence for r in results]
    assert confidences == sorted(confidences, reverse=True)
    assert all(0.3 <= c <= 1.0 for c in confidences)
    assert len({r.tag for r in results}) == 3


def test_tags_come_from_dictionary():
    classifier = get_classifier()
    for caption in (
        "Concert tối qua ca sĩ hát bài hát mới trong album",
        "Bác sĩ khuyên đi tiêm vaccine để bảo vệ sức khỏe",
        "Just finished a great workout at the gym, fitness is life",
    ):
        for result in classifier.classify(caption):
            assert result.tag in classifier.categories


def test_classification_is_deterministic():
    caption = "Cuối tuần đi xem phim Marvel mới ở rạp chiếu"
    assert classify_post(caption) == classify_post(caption)


def test_confidences_have_two_decimals():
    for result in classify_post("Xem bóng đá rồi đi ăn nhà hàng"):
        assert round(result.confidence, 2) == result.confidence


def test_injected_dictionary():
    dictionary = KeywordDictionary(
        categories=(_profile("Sports", "football", "stadium"),),
        scoring=ScoringWeights(minimum_confidence=0.1),
    )
    classifier = PostClassifier(dictionary)
    assert classifier.categories == ["Sports"]
    results = classifier.classify("Football at the stadium tonight")
    assert [(r.tag, r.confidence) for r in results] == [("Sports", 0.3)]
    assert classifier.classify("Bóng đá") == []


def test_ties_keep_dictionary_order():
    weights = ScoringWeights(minimum_confidence=0.1)
    first, second = _profile("First", "match"), _profile("Second", "match")

    forward = PostClassifier(KeywordDictionary(categories=(first, second), scoring=weights))
    backward = PostClassifier(KeywordDictionary(categories=(second, first), scoring=weights))

    assert [r.tag for r in forward.classify("what a match")] == ["First", "Second"]
    assert [r.tag for r in backward.classify("what a match")] == ["Second", "First"]


def test_threshold_is_inclusive():
    dictionary = KeywordDictionary(
        categories=(_profile("Exactly", "football", weight=2.0),),
        scoring=ScoringWeights(minimum_confidence=0.3),
    )
    results = PostClassifier(dictionary).classify("football")
    assert [r.tag for r in results] == ["Exactly"]


def test_max_tags_setting():
    weights = ScoringWeights(minimum_confidence=0.1, max_tags=1)
    dictionary = KeywordDictionary(
        categories=(_profile("Low", "goal"), _profile("High", "goal", weight=2.0)),
        scoring=weights,
    )
    results = PostClassifier(dictionary).classify("what a goal")
    assert [r.tag for r in results] == ["High"]


def test_confidence_rounding_is_half_up():
    weights = ScoringWeights(secondary=5, minimum_confidence=0.0)
    profile = CategoryProfile(name="Food", secondary=LocalizedKeywords(vi=("hàng quán",)))
    dictionary = KeywordDictionary(categories=(profile,), scoring=weights)
    # "hàng quán" half-matches: 1.0 * 1/2 * 5 = 2.5 -> 0.025
    results = PostClassifier(dictionary).classify("nhà hàng")
    assert results[0].confidence == pytest.approx(0.03)


def test_internal_failure_is_reported_not_raised(monkeypatch):
    def broken_score(*args, **kwargs):
        raise RuntimeError("scoring exploded")

    monkeypatch.setattr(classifier_module, "score_category", broken_score)
    classifier = get_classifier()

    outcome = classifier.classify_outcome("Tôi thích xem bóng đá")
    assert not outcome.ok
    assert outcome.results == []
    assert "scoring exploded" in outcome.error
    assert classifier.classify("Tôi thích xem bóng đá") == []


def test_outcome_for_valid_caption():
    outcome = get_classifier().classify_outcome("Xem bóng đá rồi đi ăn nhà hàng")
    assert outcome.ok
    assert outcome.tags[:2] == ["Thể thao", "Ăn uống"]


def test_preview():
    preview = get_classifier().preview("Tôi thích xem bóng đá và tennis mỗi ngày")
    assert preview.has_results is True
    assert preview.tags == ["Thể thao"]
    assert preview.confidence == [0.65]

    empty = get_classifier().preview("Hôm nay trời đẹp quá")
    assert empty.has_results is False
    assert empty.tags == [] and empty.confidence == []
