import os

import pytest
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("STORE_BACKEND", "memory")
from post_classifier.api import app, create_app
from post_classifier.service.batch import BatchClassificationService
from post_classifier.service.classifier import get_classifier
from post_classifier.service.store import InMemoryPostStore


@pytest.fixture
def store():
    store = InMemoryPostStore()
    app.state.batch_service = BatchClassificationService(get_classifier(), sink=store, chunk_delay=0)
    yield store
    app.state.batch_service = None


def _client(application=app):
    return AsyncClient(transport=ASGITransport(app=application), base_url="http://test")


@pytest.mark.asyncio
async def test_health_check(store):
    async with _client() as ac:
        resp = await ac.get("/v1/healthz")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["dictionary_loaded"] is True
    assert data["categories_count"] == 19
    assert data["store_available"] is True


@pytest.mark.asyncio
async def test_classify_caption():
    async with _client() as ac:
        resp = await ac.post("/v1/classify", json={"caption": "Tôi thích xem bóng đá và tennis mỗi ngày"})
    assert resp.status_code == 200
    assert resp.json() == {"results": [{"tag": "Thể thao", "confidence": 0.65}]}


@pytest.mark.asyncio
async def test_classify_without_caption():
    async with _client() as ac:
        resp = await ac.post("/v1/classify", json={})
    assert resp.status_code == 200
    assert resp.json() == {"results": []}


@pytest.mark.asyncio
async def test_classify_rejects_unknown_fields():
    async with _client() as ac:
        resp = await ac.post("/v1/classify", json={"caption": "x", "language": "vi"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_preview():
    async with _client() as ac:
        resp = await ac.post("/v1/preview", json={"caption": "Hôm nay trời đẹp quá"})
    assert resp.status_code == 200
    assert resp.json() == {"tags": [], "confidence": [], "has_results": False}


@pytest.mark.asyncio
async def test_classify_and_tag_post(store):
    async with _client() as ac:
        resp = await ac.post("/v1/posts/p1/classify", json={"caption": "Mới mua iPhone từ Apple Store"})
    assert resp.status_code == 200
    assert resp.json()["tags"][0] == "Công nghệ"
    assert store.posts["p1"].tags[0] == "Công nghệ"


@pytest.mark.asyncio
async def test_classify_and_tag_post_with_empty_caption(store):
    async with _client() as ac:
        resp = await ac.post("/v1/posts/p1/classify", json={"caption": ""})
    assert resp.status_code == 200
    assert resp.json() is None
    assert "p1" not in store.posts


@pytest.mark.asyncio
async def test_store_endpoints_unavailable_without_service():
    get_classifier()
    async with _client(create_app()) as ac:
        resp = await ac.post("/v1/posts/p1/classify", json={"caption": "bóng đá"})
        health = await ac.get("/v1/healthz")
    assert resp.status_code == 503
    assert health.json()["store_available"] is False


@pytest.mark.asyncio
async def test_batch():
    posts = [
        {"id": "1", "caption": "Xem bóng đá rồi đi ăn nhà hàng"},
        {"id": "2", "caption": None},
    ]
    async with _client() as ac:
        resp = await ac.post("/v1/batch", json={"posts": posts})
    assert resp.status_code == 200
    items = resp.json()
    assert [item["post_id"] for item in items] == ["1", "2"]
    assert items[0]["tags"][:2] == ["Thể thao", "Ăn uống"]
    assert items[1] == {"post_id": "2", "tags": [], "confidence": 0.0}


@pytest.mark.asyncio
async def test_classify_untagged_and_stats(store):
    await store.save_post("a", "Tôi thích xem bóng đá và tennis mỗi ngày")
    await store.save_post("b", "Hôm nay trời đẹp quá")

    async with _client() as ac:
        resp = await ac.post("/v1/posts/classify-untagged", params={"batch_size": 10})
        stats = await ac.get("/v1/stats")

    assert resp.status_code == 200
    assert [post["post_id"] for post in resp.json()] == ["a"]
    assert stats.status_code == 200
    assert stats.json() == {
        "total_posts": 2,
        "classified_posts": 1,
        "unclassified_posts": 1,
        "classification_rate": 50,
        "tag_distribution": {"Thể thao": 1},
    }


@pytest.mark.asyncio
async def test_classify_untagged_rejects_bad_batch_size(store):
    async with _client() as ac:
        resp = await ac.post("/v1/posts/classify-untagged", params={"batch_size": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_reclassify(store):
    await store.save_post("a", "Xem bóng đá rồi đi ăn nhà hàng")
    await store.write_tags("a", ["Old tag"])

    async with _client() as ac:
        resp = await ac.post("/v1/posts/reclassify")

    assert resp.status_code == 200
    assert store.posts["a"].tags[:2] == ["Thể thao", "Ăn uống"]


@pytest.mark.asyncio
async def test_validate():
    cases = [
        {"caption": "Tôi thích xem bóng đá và tennis mỗi ngày", "expected_tags": ["Thể thao"]},
        {"caption": "Hôm nay trời đẹp quá", "expected_tags": []},
    ]
    async with _client() as ac:
        resp = await ac.post("/v1/validate", json={"cases": cases})
    assert resp.status_code == 200
    report = resp.json()
    assert report["average_f1"] == 1.0
    assert report["exact_match_rate"] == 1.0
    assert len(report["cases"]) == 2


@pytest.mark.asyncio
async def test_categories():
    async with _client() as ac:
        resp = await ac.get("/v1/categories")
    assert resp.status_code == 200
    names = resp.json()
    assert len(names) == 19
    assert names[0] == "Thể thao"
