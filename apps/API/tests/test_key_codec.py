"""
Tests for cache key encoding and decoding.
"""
import pytest

from random_image_cache.models import CacheParams
from random_image_cache.services import key_codec
from random_image_cache.utils.errors import ValidationError


def test_encode_empty_params_is_default():
    assert key_codec.encode(CacheParams()) == "default"


def test_encode_sorts_list_values_and_fields():
    key = key_codec.encode(CacheParams(collections="b,a", width="100"))
    assert key == "collections=a,b&width=100"


def test_encode_all_fields_in_alphabetical_order():
    key = key_codec.encode(CacheParams(topics="nature", width="800", height="600", collections="9,1"))
    assert key == "collections=1,9&height=600&topics=nature&width=800"


def test_encode_ignores_value_order_and_whitespace():
    first = key_codec.encode(CacheParams(topics="travel, nature,film"))
    second = key_codec.encode(CacheParams(topics="film,nature,travel"))
    assert first == second == "topics=film,nature,travel"


def test_encode_does_not_reorder_dimensions():
    assert key_codec.encode(CacheParams(width="1920", height="1080")) == "height=1080&width=1920"


def test_encode_omits_empty_fields():
    assert key_codec.encode(CacheParams(query="", topics=" , ", width="")) == "default"


def test_decode_default():
    assert key_codec.decode("default") == CacheParams()


def test_decode_roundtrip_is_normalized():
    params = CacheParams(collections="z,y,x", height="300")
    decoded = key_codec.decode(key_codec.encode(params))
    assert decoded == CacheParams(collections="x,y,z", height="300")
    assert key_codec.encode(decoded) == key_codec.encode(params)


def test_decode_ignores_unknown_and_malformed_parts():
    assert key_codec.decode("bogus=1&query=cats&nonsense&width=") == CacheParams(query="cats")


def test_dimensions_from_key():
    assert key_codec.dimensions("height=600&query=cats&width=800") == ("800", "600")
    assert key_codec.dimensions("default") == (None, None)


@pytest.mark.parametrize(
    "params,label",
    [
        (CacheParams(topics="nature"), "topics: nature"),
        (CacheParams(query="cats"), "query: cats"),
        (CacheParams(collections="123"), "collections: 123"),
        (CacheParams(collections="123", topics="nature"), "topics: nature"),
        (CacheParams(width="100"), "random"),
    ],
)
def test_category_label(params, label):
    assert key_codec.category_label(params) == label


def test_validate_params_rejects_topics_with_query():
    with pytest.raises(ValidationError) as exc_info:
        key_codec.validate_params(CacheParams(topics="nature", query="cats"))
    assert exc_info.value.http_status == 400


def test_validate_params_rejects_collections_with_query():
    with pytest.raises(ValidationError):
        key_codec.validate_params(CacheParams(collections="1", query="cats"))


def test_validate_params_allows_collections_with_topics():
    key_codec.validate_params(CacheParams(collections="1", topics="nature"))
