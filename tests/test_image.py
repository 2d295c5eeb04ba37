"""Tests for image embeddings generated from JPEG renditions."""

import base64

import pytest

from docembed.errors import ConfigurationMissingError, DocumentNotFoundError, RenditionPendingError
from docembed.models import (
    ContentInfo,
    Document,
    EmbeddingType,
    GenerateEmbeddingsRequest,
    Rendition,
    RenditionResponse,
    RenditionStatus,
    RunStatus,
    StoredEmbedding,
)
from docembed.pipeline.image import is_image_content
from docembed.stores.memory import InMemoryRenditionService

PROJECT_ID = "project-1"
JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


def image_request(object_id="img-1", **kwargs):
    return GenerateEmbeddingsRequest(project_id=PROJECT_ID, object_id=object_id, type=EmbeddingType.IMAGE, **kwargs)


@pytest.fixture
def renditions():
    return InMemoryRenditionService()


@pytest.fixture
def image_document(document_store):
    document = Document(id="img-1", content=ContentInfo(type="image/png", fingerprint="etag-1"))
    document_store.add(document)
    return document


@pytest.mark.parametrize("content_type,expected", [
    ("image/png", True),
    ("image/jpeg", True),
    ("application/pdf", True),
    ("text/plain", False),
    (None, False),
])
def test_is_image_content(content_type, expected):
    document = Document(id="d", content=ContentInfo(type=content_type))
    assert is_image_content(document) is expected


def test_document_without_content_is_not_an_image():
    assert is_image_content(Document(id="d")) is False


@pytest.mark.asyncio
async def test_ready_rendition_is_embedded(make_pipeline, document_store, provider, renditions, image_document):
    renditions.set_response("img-1", RenditionResponse(
        status=RenditionStatus.READY,
        renditions=[Rendition(format="jpeg", url="blob://img-1.jpg")],
    ))
    renditions.set_blob("blob://img-1.jpg", JPEG)

    result = await make_pipeline(rendition_service=renditions).run(image_request())

    assert result.status == RunStatus.COMPLETED
    assert renditions.requests == [{
        "document_id": "img-1",
        "format": "jpeg",
        "max_hw": 1024,
        "generate_if_missing": True,
    }]
    sent, environment = provider.calls[0]
    assert sent.text is None
    assert base64.b64decode(sent.image) == JPEG
    assert environment == "env-1"

    stored = document_store.get("img-1").embeddings["image"]
    assert stored.fingerprint == "etag-1"
    assert len(stored.values) == 4


@pytest.mark.asyncio
async def test_generating_rendition_raises_pending(make_pipeline, provider, renditions, image_document):
    renditions.set_response("img-1", RenditionResponse(status=RenditionStatus.GENERATING))

    with pytest.raises(RenditionPendingError):
        await make_pipeline(rendition_service=renditions).run(image_request())
    assert provider.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    RenditionResponse(status=RenditionStatus.FAILED),
    RenditionResponse(status=RenditionStatus.READY, renditions=[]),
])
async def test_unusable_rendition_raises_not_found(make_pipeline, renditions, image_document, response):
    renditions.set_response("img-1", response)

    with pytest.raises(DocumentNotFoundError):
        await make_pipeline(rendition_service=renditions).run(image_request())


@pytest.mark.asyncio
async def test_non_image_content_fails(make_pipeline, document_store, provider, renditions):
    document_store.add(Document(id="doc-1", content=ContentInfo(type="text/plain")))

    result = await make_pipeline(rendition_service=renditions).run(image_request("doc-1"))

    assert result.status == RunStatus.FAILED
    assert result.message == "content is not an image"
    assert renditions.requests == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_unchanged_image_is_skipped(make_pipeline, document_store, provider, renditions):
    document_store.add(Document(
        id="img-1",
        content=ContentInfo(type="image/png", fingerprint="etag-1"),
        embeddings={"image": StoredEmbedding(values=[1.0], model="clip", fingerprint="etag-1")},
    ))

    result = await make_pipeline(rendition_service=renditions).run(image_request())

    assert result.status == RunStatus.SKIPPED
    assert renditions.requests == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_image_requires_rendition_service(make_pipeline, image_document):
    with pytest.raises(ConfigurationMissingError):
        await make_pipeline().run(image_request())
