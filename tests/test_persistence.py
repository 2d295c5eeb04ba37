"""Tests for fingerprints, the skip policy and embedding writes."""

import hashlib

import pytest

from docembed.errors import DocumentNotFoundError
from docembed.models import ContentInfo, Document, EmbeddingType, StoredEmbedding, TokenInfo
from docembed.pipeline.persistence import (
    FingerprintPolicy,
    PersistenceWriter,
    canonical_json,
    content_fingerprint,
    md5_hex,
)


def test_md5_hex_matches_hashlib():
    assert md5_hex("hello") == hashlib.md5(b"hello").hexdigest()


def test_canonical_json_ignores_key_order():
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
    assert canonical_json({"b": 1, "a": "é"}) == '{"a":"é","b":1}'


def test_text_fingerprint_prefers_stored_value():
    document = Document(id="d", text="hello", text_fingerprint="precomputed")
    assert content_fingerprint(document, EmbeddingType.TEXT) == "precomputed"
    assert content_fingerprint(Document(id="d", text="hello"), EmbeddingType.TEXT) == md5_hex("hello")


def test_fingerprint_of_missing_content_is_none():
    document = Document(id="d")
    for embedding_type in EmbeddingType:
        assert content_fingerprint(document, embedding_type) is None


def test_properties_and_image_fingerprints():
    document = Document(
        id="d",
        properties={"z": 1, "a": 2},
        content=ContentInfo(type="image/png", fingerprint="etag"),
    )
    assert content_fingerprint(document, EmbeddingType.PROPERTIES) == md5_hex('{"a":2,"z":1}')
    assert content_fingerprint(document, EmbeddingType.IMAGE) == "etag"


@pytest.fixture
def embedded():
    return Document(
        id="d",
        text="hello",
        embeddings={"text": StoredEmbedding(values=[1.0], model="m", fingerprint="fp")},
    )


def test_policy_skips_matching_fingerprint(embedded):
    assert FingerprintPolicy().should_skip(embedded, EmbeddingType.TEXT, "fp") is True


@pytest.mark.parametrize("policy,fingerprint,force", [
    (FingerprintPolicy(), "other", False),
    (FingerprintPolicy(), "fp", True),
    (FingerprintPolicy(), None, False),
    (FingerprintPolicy(skip_unchanged=False), "fp", False),
])
def test_policy_regenerates(embedded, policy, fingerprint, force):
    assert policy.should_skip(embedded, EmbeddingType.TEXT, fingerprint, force) is False


def test_policy_regenerates_missing_type(embedded):
    assert FingerprintPolicy().should_skip(embedded, EmbeddingType.PROPERTIES, "fp") is False


@pytest.mark.asyncio
async def test_write_embedding_is_one_update(document_store, metrics):
    document_store.add(Document(id="d", text="hello"))
    writer = PersistenceWriter(document_store, metrics)

    stored = await writer.write_embedding("d", EmbeddingType.TEXT, [0.5, 1.5], "model-a", "fp-1")

    assert stored == StoredEmbedding(values=[0.5, 1.5], model="model-a", fingerprint="fp-1")
    assert document_store.updates == [
        ("d", {"embeddings": {"text": {"values": [0.5, 1.5], "model": "model-a", "fingerprint": "fp-1"}}}),
    ]
    assert 'docembed_store_writes_total{record_kind="document"} 1.0' in metrics.get_metrics()


@pytest.mark.asyncio
async def test_write_keeps_other_embedding_types(document_store):
    document_store.add(Document(
        id="d",
        embeddings={"image": StoredEmbedding(values=[9.0], model="clip", fingerprint="etag")},
    ))
    writer = PersistenceWriter(document_store)

    await writer.write_embedding("d", EmbeddingType.TEXT, [1.0], "m", "fp")

    embeddings = document_store.get("d").embeddings
    assert set(embeddings) == {"image", "text"}
    assert embeddings["image"].values == [9.0]


@pytest.mark.asyncio
async def test_write_tokens(document_store):
    document_store.add(Document(id="d", text="a b c", tokens=TokenInfo(count=1)))

    await PersistenceWriter(document_store).write_tokens("d", 3, md5_hex("a b c"))

    assert document_store.get("d").tokens == TokenInfo(count=3, fingerprint=md5_hex("a b c"))


@pytest.mark.asyncio
async def test_write_to_unknown_record_raises(document_store):
    with pytest.raises(DocumentNotFoundError):
        await PersistenceWriter(document_store).write_embedding("nope", EmbeddingType.TEXT, [1.0], "m", None)
