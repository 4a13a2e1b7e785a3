# FILE: tests/test_backends.py

from types import SimpleNamespace

import pytest

from engine import GeminiBackend, ClaudeTextBackend, ITEM_SCHEMA


class _Recorder:
    """Records keyword arguments and returns a canned response."""

    def __init__(self, response):
        self.response = response
        self.kwargs = None

    def __call__(self, **kwargs):
        self.kwargs = kwargs
        return self.response


def _gemini(**models):
    backend = GeminiBackend("test-key")
    backend.client = SimpleNamespace(models=SimpleNamespace(**models))
    return backend


def _edit_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def test_generate_json_parses_stripped_text():
    call = _Recorder(SimpleNamespace(text='  {"name": "Sun Blade"}\n'))
    backend = _gemini(generate_content=call)
    assert backend.generate_json("prompt", ITEM_SCHEMA) == {"name": "Sun Blade"}
    assert call.kwargs["model"] == "gemini-2.5-pro"
    assert call.kwargs["config"].response_mime_type == "application/json"


def test_generate_json_propagates_parse_errors():
    backend = _gemini(generate_content=_Recorder(SimpleNamespace(text="not json")))
    with pytest.raises(ValueError):
        backend.generate_json("prompt", ITEM_SCHEMA)


def test_generate_image_returns_first_image_bytes():
    image = SimpleNamespace(image=SimpleNamespace(image_bytes=b"png"))
    call = _Recorder(SimpleNamespace(generated_images=[image]))
    backend = _gemini(generate_images=call)
    assert backend.generate_image("a sword", "16:9") == b"png"
    assert call.kwargs["config"].aspect_ratio == "16:9"
    assert call.kwargs["config"].number_of_images == 1


def test_generate_image_without_images_returns_empty():
    backend = _gemini(generate_images=_Recorder(SimpleNamespace(generated_images=None)))
    assert backend.generate_image("a sword", "1:1") == b""


def test_edit_image_takes_first_inline_part():
    text_part = SimpleNamespace(inline_data=None, text="here you go")
    image_part = SimpleNamespace(inline_data=SimpleNamespace(data=b"edited"))
    call = _Recorder(_edit_response(text_part, image_part))
    backend = _gemini(generate_content=call)
    assert backend.edit_image(b"src", "image/png", "make a token") == b"edited"
    assert call.kwargs["model"] == "gemini-2.5-flash-image"
    assert call.kwargs["contents"][1] == "make a token"


def test_edit_image_without_inline_data_returns_empty():
    backend = _gemini(generate_content=_Recorder(SimpleNamespace(candidates=[])))
    assert backend.edit_image(b"src", "image/png", "make a token") == b""


def test_claude_backend_extracts_json_object():
    backend = ClaudeTextBackend("test-key", "anthropic-key")
    reply = SimpleNamespace(content=[SimpleNamespace(text='Sure!\n{"name": "Ember Market"}\nEnjoy.')])
    create = _Recorder(reply)
    backend.text_client = SimpleNamespace(messages=SimpleNamespace(create=create))

    assert backend.generate_json("make a market", ITEM_SCHEMA) == {"name": "Ember Market"}
    assert create.kwargs["messages"] == [{"role": "user", "content": "make a market"}]
    assert '"isMagical"' in create.kwargs["system"]


def test_claude_backend_rejects_reply_without_json():
    backend = ClaudeTextBackend("test-key", "anthropic-key")
    reply = SimpleNamespace(content=[SimpleNamespace(text="I cannot help with that.")])
    backend.text_client = SimpleNamespace(messages=SimpleNamespace(create=_Recorder(reply)))
    with pytest.raises(ValueError):
        backend.generate_json("make a market", ITEM_SCHEMA)
