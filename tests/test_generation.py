# FILE: tests/test_generation.py

import base64

import pytest

from conftest import FakeBackend
from engine import (
    GenerationConfig, ValidationError, ImageGenerationError,
    ItemRequest, ScenarioRequest, MiniatureRequest, NpcRequest,
    generate_item, generate_scenario, generate_miniature_and_token, generate_npc_package,
    build_item_prompt, build_npc_prompt, validate_request,
    ITEM_SCHEMA, NPC_SCHEMA, PORTRAIT_ASPECT_RATIO,
)
from i18n import t

EN = GenerationConfig(lang="en")
PT = GenerationConfig(lang="pt")


# ---------------------------------------------------------------
# Validation: no remote call without required input
# ---------------------------------------------------------------

@pytest.mark.parametrize("generate, request_, error_key", [
    (generate_item, ItemRequest(name="Sun Blade", is_magical=True, rarity=""), "errors.item_fields"),
    (generate_item, ItemRequest(name="", is_magical=True, rarity="Rare"), "errors.item_fields"),
    (generate_item, ItemRequest(name="Sun Blade", is_magical=None, rarity="Rare"), "errors.item_fields"),
    (generate_scenario, ScenarioRequest(name="Ember Market", description="  "), "errors.scenario_fields"),
    (generate_scenario, ScenarioRequest(name="", description="fire bazaar"), "errors.scenario_fields"),
    (generate_miniature_and_token,
     MiniatureRequest(creature_name="Goblin", scenery="moss", creature_type="enemy"), "errors.all_fields"),
    (generate_miniature_and_token,
     MiniatureRequest(creature_name="Goblin", scenery="moss", creature_type="enemy",
                      image_bytes=b"%PDF", mime_type="application/pdf"), "errors.invalid_image"),
    (generate_npc_package, NpcRequest(npc_type="ally", gender=""), "errors.npc_fields"),
    (generate_npc_package, NpcRequest(npc_type="", gender="male"), "errors.npc_fields"),
])
@pytest.mark.parametrize("config", [EN, PT])
def test_missing_fields_never_call_remote(generate, request_, error_key, config):
    backend = FakeBackend()
    with pytest.raises(ValidationError) as exc:
        generate(backend, request_, config)
    assert exc.value.message == t(error_key, config.lang)
    assert backend.calls == []


def test_required_fields_do_not_depend_on_language():
    incomplete = ItemRequest(name="Sun Blade", is_magical=False)
    complete = ItemRequest(name="Sun Blade", is_magical=False, rarity="Raro")
    for lang in ("en", "pt"):
        with pytest.raises(ValidationError):
            validate_request(incomplete, lang)
        validate_request(complete, lang)


def test_random_mode_skips_field_validation():
    validate_request(ItemRequest(random=True), "en")
    validate_request(ScenarioRequest(random=True), "pt")


# ---------------------------------------------------------------
# Items and scenarios
# ---------------------------------------------------------------

def test_specific_item_generation(sample_item):
    backend = FakeBackend(text=sample_item, image=b"\x89PNG-sun")
    request = ItemRequest(name="Sun Blade", is_magical=True, rarity="Rare", aspect_ratio="1:1")

    asset = generate_item(backend, request, EN)

    assert asset.kind == "item"
    assert asset.data == sample_item
    assert asset.images["image"] == "data:image/png;base64," + base64.b64encode(b"\x89PNG-sun").decode()

    text_call, image_call = backend.calls
    assert text_call[0] == "generate_json"
    assert '"Sun Blade"' in text_call[1]
    assert "magical" in text_call[1] and "Rare" in text_call[1]
    assert text_call[2] is ITEM_SCHEMA
    assert image_call[0] == "generate_image"
    assert "Sun Blade" in image_call[1]
    assert sample_item["description"] in image_call[1]
    assert image_call[2] == "1:1"


def test_random_item_uses_random_template(sample_item):
    backend = FakeBackend(text=sample_item)
    generate_item(backend, ItemRequest(random=True, aspect_ratio="9:16"), EN)
    assert backend.calls[0][1] == t("prompts.item_random", "en")
    assert backend.calls[1][2] == "9:16"


def test_item_without_image_fails(sample_item):
    backend = FakeBackend(text=sample_item, image=b"")
    request = ItemRequest(name="Sun Blade", is_magical=True, rarity="Rare")
    with pytest.raises(ImageGenerationError) as exc:
        generate_item(backend, request, PT)
    assert exc.value.message == t("errors.item_image_generation", "pt")


def test_scenario_generation_uses_detailed_description():
    text = {"name": "Ember Market", "detailedDescription": "Stalls glowing with coals."}
    backend = FakeBackend(text=text)
    asset = generate_scenario(
        backend, ScenarioRequest(name="Ember Market", description="fire bazaar", aspect_ratio="21:9"), EN)
    assert asset.kind == "scenario"
    assert asset.data["detailedDescription"] == "Stalls glowing with coals."
    prompt, aspect = backend.calls[1][1], backend.calls[1][2]
    assert "Stalls glowing with coals." in prompt
    assert aspect == "21:9"


def test_scenario_without_image_fails():
    backend = FakeBackend(text={"name": "X", "detailedDescription": "Y"}, image=b"")
    with pytest.raises(ImageGenerationError) as exc:
        generate_scenario(backend, ScenarioRequest(random=True), EN)
    assert exc.value.message == t("errors.scenario_image_generation", "en")


def test_text_errors_propagate_untouched():
    backend = FakeBackend(text=ValueError("Expecting value: line 1 column 1"))
    with pytest.raises(ValueError, match="Expecting value"):
        generate_scenario(backend, ScenarioRequest(random=True), EN)
    assert backend.calls_named("generate_image") == []


def test_language_changes_prompt_not_requirements():
    request = ItemRequest(name="Sun Blade", is_magical=True, rarity="Rare")
    assert build_item_prompt(request, "en") != build_item_prompt(request, "pt")
    assert "Answer in English" in build_item_prompt(request, "en")


# ---------------------------------------------------------------
# Miniature & token
# ---------------------------------------------------------------

def _miniature_request(**overrides):
    fields = dict(creature_name="Goblin Shaman", scenery="mossy forest floor",
                  creature_type="enemy", image_bytes=b"source", mime_type="image/jpeg")
    fields.update(overrides)
    return MiniatureRequest(**fields)


def test_miniature_pair_success():
    backend = FakeBackend()
    asset = generate_miniature_and_token(backend, _miniature_request(), EN)

    assert asset.kind == "miniature"
    assert asset.name == "Goblin Shaman"
    assert asset.image_bytes("miniature") == b"mini-bytes"
    assert asset.image_bytes("token") == b"token-bytes"

    edits = backend.calls_named("edit_image")
    assert len(edits) == 2
    assert all(call[1] == b"source" and call[2] == "image/jpeg" for call in edits)
    instructions = " ".join(call[3] for call in edits)
    assert "red" in instructions
    assert "mossy forest floor" in instructions


def test_token_failure_fails_the_pair():
    backend = FakeBackend(token=b"")
    with pytest.raises(ImageGenerationError) as exc:
        generate_miniature_and_token(backend, _miniature_request(), EN)
    assert exc.value.message == t("errors.token_generation", "en")


def test_miniature_failure_reported_first():
    backend = FakeBackend(miniature=b"", token=b"")
    with pytest.raises(ImageGenerationError) as exc:
        generate_miniature_and_token(backend, _miniature_request(), PT)
    assert exc.value.message == t("errors.miniature_generation", "pt")


def test_edit_exception_fails_the_pair():
    backend = FakeBackend(token=RuntimeError("quota exceeded"))
    with pytest.raises(RuntimeError, match="quota exceeded"):
        generate_miniature_and_token(backend, _miniature_request(), EN)


# ---------------------------------------------------------------
# NPC package
# ---------------------------------------------------------------

def test_npc_package_chains_portrait_into_miniatures(sample_npc):
    backend = FakeBackend(text=sample_npc, image=b"portrait-bytes")
    asset = generate_npc_package(backend, NpcRequest(npc_type="neutral", gender="female"), EN)

    assert asset.kind == "npc"
    assert set(asset.images) == {"portrait", "miniature", "token"}
    assert asset.image_bytes("portrait") == b"portrait-bytes"

    text_call = backend.calls_named("generate_json")[0]
    assert text_call[2] is NPC_SCHEMA
    assert text_call[1] == build_npc_prompt(NpcRequest(npc_type="neutral", gender="female"), "en")

    image_call = backend.calls_named("generate_image")[0]
    assert image_call[2] == PORTRAIT_ASPECT_RATIO
    assert "Half-Elf" in image_call[1] and "Bard" in image_call[1]

    edits = backend.calls_named("edit_image")
    assert len(edits) == 2
    for _, source, mime, instruction in edits:
        assert source == b"portrait-bytes"
        assert mime == "image/png"
        assert "Mirela Voss" in instruction
        # neutral NPCs stand on the yellow "npc" base
        assert t("creature_bases.npc", "en") in instruction
    assert any("a crowded tavern" in call[3] for call in edits)


def test_npc_without_portrait_stops_before_miniatures(sample_npc):
    backend = FakeBackend(text=sample_npc, image=b"")
    with pytest.raises(ImageGenerationError) as exc:
        generate_npc_package(backend, NpcRequest(npc_type="enemy", gender="any"), PT)
    assert exc.value.message == t("errors.npc_image_generation", "pt")
    assert backend.calls_named("edit_image") == []


def test_npc_token_failure_discards_package(sample_npc):
    backend = FakeBackend(text=sample_npc, token=b"")
    with pytest.raises(ImageGenerationError):
        generate_npc_package(backend, NpcRequest(npc_type="ally", gender="male"), EN)
