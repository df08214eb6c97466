import json

import pytest

from core.copy_suggestion import (
    COPY_SUGGESTION_TYPE,
    ContentTypeId,
    CopySuggestion,
    CopySuggestionCodec,
)


def test_round_trip_and_fallback():
    codec = CopySuggestionCodec()
    payload = CopySuggestion(label="Copy share text", text="I just tokenized Wait by M83 🎵")
    assert codec.decode(codec.encode(payload)) == payload
    assert codec.fallback(payload) == payload.text


def test_wire_format_is_plain_json():
    codec = CopySuggestionCodec()
    encoded = codec.encode(CopySuggestion(label="Copy", text="hi"))
    assert json.loads(encoded.decode("utf-8")) == {"label": "Copy", "text": "hi"}


def test_decode_rejects_garbage():
    codec = CopySuggestionCodec()
    with pytest.raises(ValueError):
        codec.decode(b"not json")
    with pytest.raises(ValueError):
        codec.decode(b"[1, 2]")


def test_content_type_identity():
    codec = CopySuggestionCodec()
    assert codec.content_type == COPY_SUGGESTION_TYPE
    assert COPY_SUGGESTION_TYPE.same_as(ContentTypeId("songcast.xyz", "copy-suggestion", 1, 0))
    assert COPY_SUGGESTION_TYPE.same_as(
        {
            "authorityId": "songcast.xyz",
            "typeId": "copy-suggestion",
            "versionMajor": 1,
            "versionMinor": 0,
            "parameters": {"extra": True},
        }
    )
    assert not COPY_SUGGESTION_TYPE.same_as(ContentTypeId("songcast.xyz", "copy-suggestion", 2, 0))
    assert not COPY_SUGGESTION_TYPE.same_as(None)
    assert str(COPY_SUGGESTION_TYPE) == "songcast.xyz/copy-suggestion:1.0"
