"""
Tests for the random image endpoint and the sweep endpoint.
"""
from random_image_cache.config import settings
from random_image_cache.services import registry
from random_image_cache.utils.errors import RateLimited, UpstreamError, UpstreamForbidden


def test_miss_redirects_with_metadata_headers(client, configured):
    response = client.get("/?topics=nature&w=800", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["Location"] == "https://images.example.com/b1p0?w=800&h="
    assert response.headers["X-Cache-Status"] == "MISS"
    assert response.headers["X-Unsplash-Photographer"] == "Photographer 0"
    assert response.headers["X-Image-Width"] == "800"
    assert response.headers["X-Image-Height"] == "auto"
    assert response.headers["X-Image-Source-URL"] == "https://unsplash.com/photos/b1p0"
    assert response.headers["X-Image-File-Size"] == "unknown"
    assert "X-Image-File-Size-KB" not in response.headers
    assert response.headers["X-Unsplash-Category"] == "topics: nature"
    assert "no-store" in response.headers["Cache-Control"]
    assert response.headers["Pragma"] == "no-cache"
    assert response.headers["Expires"] == "0"


def test_second_request_is_served_from_pool(client, configured):
    client.get("/?query=cats", follow_redirects=False)

    response = client.get("/?query=cats", follow_redirects=False)

    assert response.status_code == 200
    assert response.content == b"bytes-b1p1"
    assert response.headers["Content-Type"] == "image/jpeg"
    assert response.headers["X-Cache-Status"] == "HIT"
    assert response.headers["X-Unsplash-Photographer"] == "Photographer 1"
    assert response.headers["X-Image-Width"] == "auto"
    assert response.headers["X-Image-File-Size"] == "10"
    assert response.headers["X-Image-File-Size-KB"] == "0.01"
    assert response.headers["X-Image-File-Size-MB"] == "0.00"
    assert response.headers["X-Unsplash-Category"] == "query: cats"
    assert len(configured.searches) == 1


def test_list_order_does_not_change_the_pool(client, configured):
    client.get("/?collections=2,1", follow_redirects=False)

    response = client.get("/?collections=1,2", follow_redirects=False)

    assert response.headers["X-Cache-Status"] == "HIT"
    assert len(configured.searches) == 1


def test_default_pool_for_no_parameters(client, configured):
    response = client.get("/", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["X-Unsplash-Category"] == "random"
    assert registry.get_metadata_store()._values.keys() == {"default"}


def test_topics_with_query_is_rejected_before_any_upstream_call(client, configured):
    response = client.get("/?topics=nature&query=cats", follow_redirects=False)

    assert response.status_code == 400
    data = response.json()
    assert data["error"]["code"] == "INVALID_INPUT"
    assert data["error"]["message"] == "Cannot use collections/topics with query parameter"
    assert configured.searches == []


def test_missing_access_key_is_configuration_error(client, configured, monkeypatch):
    monkeypatch.setattr(settings, "UNSPLASH_ACCESS_KEY", None)

    response = client.get("/", follow_redirects=False)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"
    assert "Unsplash API key not configured" in response.json()["error"]["message"]


def test_unknown_store_backend_is_configuration_error(client, configured, monkeypatch):
    monkeypatch.setattr(settings, "STORE_BACKEND", "redis")

    response = client.get("/", follow_redirects=False)

    assert response.status_code == 500
    assert "Store backend not configured" in response.json()["error"]["message"]


def test_filesystem_backend_requires_cache_dir(client, configured, monkeypatch):
    monkeypatch.setattr(settings, "STORE_BACKEND", "filesystem")
    monkeypatch.setattr(settings, "CACHE_DIR", None)

    response = client.get("/", follow_redirects=False)

    assert response.status_code == 500
    assert "Object store not configured" in response.json()["error"]["message"]


def test_filesystem_backend_serves_hits(client, configured, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "STORE_BACKEND", "filesystem")
    monkeypatch.setattr(settings, "CACHE_DIR", str(tmp_path))

    first = client.get("/?w=640&h=480", follow_redirects=False)
    second = client.get("/?h=480&w=640", follow_redirects=False)

    assert first.status_code == 302
    assert second.status_code == 200
    assert second.content == b"bytes-b1p1"
    assert second.headers["X-Image-Height"] == "480"


def test_upstream_forbidden_returns_403_with_hint(client, configured):
    configured.search_error = UpstreamForbidden("Forbidden")

    response = client.get("/?topics=wallpapers", follow_redirects=False)

    assert response.status_code == 403
    assert "Demo key" in response.json()["error"]["message"]


def test_rate_limited_returns_503_with_retry_after(client, configured):
    configured.search_error = RateLimited(120)

    response = client.get("/", follow_redirects=False)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "120"
    assert response.json()["error"]["retryable"] is True


def test_upstream_error_returns_502(client, configured):
    configured.search_error = UpstreamError(500, "boom")

    response = client.get("/", follow_redirects=False)

    assert response.status_code == 502
    assert response.json()["error"]["message"] == "Bad Gateway: Unsplash API error: 500"


def test_no_candidates_returns_502(client, configured):
    configured.available = 0

    response = client.get("/?query=nothingmatches", follow_redirects=False)

    assert response.status_code == 502
    assert response.json()["error"]["message"] == "No images available"
    assert registry.get_metadata_store()._values == {}


def test_cache_sweep_endpoint_reports(client, configured):
    client.get("/?query=cats", follow_redirects=False)

    response = client.post("/internal/cache-sweep")

    assert response.status_code == 200
    report = response.json()
    assert report["keysChecked"] == 1
    assert report["keysDeleted"] == 0
    assert report["errors"] == 0


def test_cache_sweep_does_not_need_access_key(client, monkeypatch):
    monkeypatch.setattr(settings, "STORE_BACKEND", "memory")
    monkeypatch.setattr(settings, "UNSPLASH_ACCESS_KEY", None)

    response = client.post("/internal/cache-sweep")

    assert response.status_code == 200
    assert response.json()["keysChecked"] == 0
