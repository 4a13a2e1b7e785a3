# FILE: tests/test_view.py

import asyncio

from conftest import FakeBackend
from engine import (
    GenerationConfig, GenerationView, GenerationError,
    ItemRequest, NpcRequest, generate_item, generate_npc_package,
    IDLE, VALIDATING, IN_FLIGHT, SUCCESS, ERROR,
)
from i18n import t


def _submit(view, generate, request, backend, lang="en", **kwargs):
    seen = []
    ok = asyncio.run(view.submit(
        generate, request, GenerationConfig(lang=lang),
        backend_factory=lambda: backend,
        on_change=lambda: seen.append(view.status),
        **kwargs,
    ))
    return ok, seen


def test_view_starts_idle():
    view = GenerationView()
    assert view.status == IDLE
    assert not view.busy


def test_successful_submission_walks_all_states(sample_item):
    view = GenerationView()
    request = ItemRequest(name="Sun Blade", is_magical=True, rarity="Rare")
    ok, seen = _submit(view, generate_item, request, FakeBackend(text=sample_item), mode="specific")
    assert ok
    assert seen == [VALIDATING, IN_FLIGHT, SUCCESS]
    assert view.result.name == "Sun Blade"
    assert view.error == ""
    assert view.mode == ""


def test_validation_error_never_builds_backend():
    view = GenerationView()
    built = []

    def factory():
        built.append(True)
        return FakeBackend()

    ok = asyncio.run(view.submit(generate_npc_package, NpcRequest(), GenerationConfig(lang="pt"),
                                 backend_factory=factory))
    assert not ok
    assert view.status == ERROR
    assert view.error == t("errors.npc_fields", "pt")
    assert built == []


def test_generic_error_is_stringified(sample_item):
    view = GenerationView()
    backend = FakeBackend(text=sample_item, image=RuntimeError("service unavailable"))
    ok, seen = _submit(view, generate_item, ItemRequest(random=True), backend)
    assert not ok
    assert seen[-1] == ERROR
    assert view.error == "service unavailable"
    assert view.result is None


def test_empty_exception_falls_back_to_unknown(sample_item):
    view = GenerationView()
    backend = FakeBackend(text=sample_item, image=RuntimeError())
    _submit(view, generate_item, ItemRequest(random=True), backend, lang="pt")
    assert view.error == t("errors.unknown", "pt")


def test_new_submission_clears_previous_result(sample_item):
    view = GenerationView()
    _submit(view, generate_item, ItemRequest(random=True), FakeBackend(text=sample_item))
    assert view.result is not None
    _submit(view, generate_item, ItemRequest(random=True), FakeBackend(text=sample_item, image=b""))
    assert view.result is None
    assert view.error == t("errors.item_image_generation", "en")


def test_submission_refused_while_in_flight():
    view = GenerationView(status=IN_FLIGHT)
    backend = FakeBackend()
    ok, seen = _submit(view, generate_item, ItemRequest(random=True), backend)
    assert not ok
    assert seen == []
    assert backend.calls == []
    assert view.status == IN_FLIGHT


def test_backend_factory_errors_are_shown():
    view = GenerationView()

    def factory():
        raise GenerationError("no key")

    ok = asyncio.run(view.submit(generate_item, ItemRequest(random=True), GenerationConfig(),
                                 backend_factory=factory))
    assert not ok
    assert view.error == "no key"


def test_unrenderable_result_becomes_error(sample_item):
    view = GenerationView()
    seen = []

    def render():
        seen.append(view.status)
        if view.status == SUCCESS:
            raise TypeError("'int' object is not iterable")

    ok = asyncio.run(view.submit(generate_item, ItemRequest(random=True), GenerationConfig(lang="en"),
                                 backend_factory=lambda: FakeBackend(text=sample_item),
                                 on_change=render))
    assert not ok
    assert seen == [VALIDATING, IN_FLIGHT, SUCCESS, ERROR]
    assert view.status == ERROR
    assert view.result is None
    assert view.error == "'int' object is not iterable"
