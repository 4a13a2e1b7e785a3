#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RPG Toolbox - Tabletop Asset Generator - NiceGUI Frontend
"""

import asyncio

from nicegui import app, ui, Client, events

# ---------------------------------------------------------------------------
# Engine imports
# ---------------------------------------------------------------------------
from engine import (
    log, setup_file_logging, load_server_config, make_backend,
    GenerationConfig, GenerationView, GeneratedAsset, StatBlock,
    ItemRequest, ScenarioRequest, MiniatureRequest, NpcRequest,
    generate_item, generate_scenario, generate_miniature_and_token, generate_npc_package,
    export_asset_pdf, format_saves, safe_file_name, to_data_url,
    ERROR, SUCCESS,
)
from i18n import (
    t, E, UI_LANGUAGES, DEFAULT_LANG,
    get_rarities, get_creature_type_labels, get_npc_type_labels,
    get_gender_labels, get_aspect_ratio_options, get_stat_block_labels,
)

# ---------------------------------------------------------------------------
# Server configuration (cascade: defaults → config.json → ENV)
# ---------------------------------------------------------------------------
setup_file_logging()
_server_cfg = load_server_config()

SERVER_PORT = _server_cfg["port"]
DEFAULT_UI_LANG = _server_cfg["default_ui_lang"]
SSL_CERTFILE = _server_cfg["ssl_certfile"]
SSL_KEYFILE = _server_cfg["ssl_keyfile"]

if _server_cfg["api_key"]:
    log(f"[Config] API key loaded, text backend: {_server_cfg['text_backend']}")
else:
    log("[Config] No API key set (GEMINI_API_KEY). The UI starts, generation calls will fail.",
        level="warning")
if DEFAULT_UI_LANG:
    log(f"[Config] Default UI language: {DEFAULT_UI_LANG}")

# --- UI constants ---
RECONNECT_TIMEOUT_SEC = 180            # WebSocket reconnect timeout (generations can take a minute)
MAX_UPLOAD_BYTES = 10 * 1024 * 1024    # Matches the "up to 10MB" hint on the upload field
TAB_KINDS = ("miniature", "item", "scenario", "npc")
TAB_ICONS = {"miniature": "pets", "item": "diamond", "scenario": "landscape", "npc": "groups"}

CUSTOM_CSS = """<style>
.stat-block { background: #2a1d12; border-top: 4px solid #7f1d1d; border-bottom: 4px solid #7f1d1d; }
.stat-block .stat-name { color: #fca5a5; font-family: Georgia, serif; }
.asset-image { border-radius: 0.5rem; box-shadow: 0 4px 16px rgba(0,0,0,0.5); }
.result-text { white-space: pre-wrap; line-height: 1.6; }
</style>"""


# ---------------------------------------------------------------------------
# Session helpers (per-tab via app.storage.tab)
# ---------------------------------------------------------------------------

def S() -> dict:
    """Shortcut to per-tab storage."""
    return app.storage.tab


def _new_forms() -> dict:
    return {
        "miniature": {"creature_name": "", "scenery": "", "creature_type": "",
                      "image_bytes": b"", "mime_type": "", "file_name": ""},
        "item": {"name": "", "is_magical": None, "rarity": None, "aspect_ratio": "1:1"},
        "scenario": {"name": "", "description": "", "aspect_ratio": "16:9"},
        "npc": {"npc_type": "", "gender": ""},
    }


def init_session() -> None:
    """Initialize session state for a new tab."""
    s = S()
    s.setdefault("ui_lang", DEFAULT_UI_LANG or DEFAULT_LANG)
    s.setdefault("active_tab", TAB_KINDS[0])
    s.setdefault("forms", _new_forms())
    s.setdefault("views", {kind: GenerationView() for kind in TAB_KINDS})


class PageState:
    """Session storage of one browser tab plus its live panel containers.
    Panels are re-rendered from state, so a language switch or a finished
    generation never needs to patch individual widgets."""

    def __init__(self, session: dict):
        self.s = session
        self.panels = {}
        self.root = None
        session["page"] = self

    def live(self) -> "PageState":
        """The page currently attached to this browser tab. A reload builds a
        new PageState while a generation started on the old one may still run."""
        return self.s.get("page", self)

    @property
    def lang(self) -> str:
        return self.s.get("ui_lang", DEFAULT_UI_LANG or DEFAULT_LANG)

    def form(self, kind: str) -> dict:
        return self.s["forms"][kind]

    def view(self, kind: str) -> GenerationView:
        return self.s["views"][kind]

    def refresh(self, kind: str) -> None:
        panel = self.panels.get(kind)
        if panel is None or panel.is_deleted:
            return
        panel.clear()
        with panel:
            PANEL_RENDERERS[kind](self)

    def notify(self, message: str, **kwargs) -> None:
        root = self.root
        if root is None or root.is_deleted:
            return
        with root:
            ui.notify(message, **kwargs)


# ===============================================================
# GENERATION
# ===============================================================

def _generation_config(page: PageState) -> GenerationConfig:
    return GenerationConfig(lang=page.lang, text_backend=_server_cfg["text_backend"])


def live_refresher(page: PageState, kind: str):
    """View callback that always re-renders the tab's current page."""
    return lambda: page.live().refresh(kind)


async def run_generation(page: PageState, kind: str, generate, request, mode: str = "") -> None:
    """Submit one request through the tab's view and report the outcome."""
    view = page.view(kind)
    lang = page.lang
    if view.busy:
        ui.notify(t("common.still_processing", lang), type="warning")
        return
    config = _generation_config(page)
    ok = await view.submit(
        generate, request, config,
        backend_factory=lambda: make_backend(_server_cfg, config),
        mode=mode,
        on_change=live_refresher(page, kind),
    )
    if ok:
        log(f"[UI] {kind} ready: {view.result.name!r}")
    else:
        page.live().notify(view.error, type="negative")


async def submit_miniature(page: PageState) -> None:
    form = page.form("miniature")
    request = MiniatureRequest(
        creature_name=form["creature_name"],
        scenery=form["scenery"],
        creature_type=form["creature_type"],
        image_bytes=form["image_bytes"],
        mime_type=form["mime_type"],
    )
    await run_generation(page, "miniature", generate_miniature_and_token, request)


async def submit_item(page: PageState, random: bool = False) -> None:
    form = page.form("item")
    rarities = get_rarities(page.lang)
    idx = form["rarity"]
    request = ItemRequest(
        name=form["name"],
        is_magical=form["is_magical"],
        rarity=rarities[idx] if isinstance(idx, int) and 0 <= idx < len(rarities) else "",
        aspect_ratio=form["aspect_ratio"],
        random=random,
    )
    await run_generation(page, "item", generate_item, request,
                         mode="random" if random else "specific")


async def submit_scenario(page: PageState, random: bool = False) -> None:
    form = page.form("scenario")
    request = ScenarioRequest(
        name=form["name"],
        description=form["description"],
        aspect_ratio=form["aspect_ratio"],
        random=random,
    )
    await run_generation(page, "scenario", generate_scenario, request,
                         mode="random" if random else "specific")


async def submit_npc(page: PageState) -> None:
    form = page.form("npc")
    request = NpcRequest(npc_type=form["npc_type"], gender=form["gender"])
    await run_generation(page, "npc", generate_npc_package, request)


# ===============================================================
# SHARED WIDGETS
# ===============================================================

def _submit_button(page: PageState, kind: str, label: str, busy_label: str,
                   on_click, mode: str = "", color: str = "primary") -> None:
    view = page.view(kind)
    running_here = view.busy and view.mode == mode
    btn = ui.button(busy_label if running_here else label, on_click=on_click, color=color)
    btn.classes("flex-grow")
    if view.busy:
        btn.disable()
    if running_here:
        btn.props("loading")


def _aspect_ratio_toggle(form: dict, lang: str) -> None:
    ui.label(t("common.aspect_ratio", lang)).classes("text-sm text-gray-400")
    ui.toggle(get_aspect_ratio_options(), value=form["aspect_ratio"],
              on_change=lambda e: form.update(aspect_ratio=e.value or form["aspect_ratio"]))


def _download_button(asset: GeneratedAsset, role: str, label: str, suffix: str = "") -> None:
    ui.button(label, icon="download",
              on_click=lambda: ui.download(asset.image_bytes(role), asset.download_name(suffix))
              ).props("flat")


async def _export_pdf(asset: GeneratedAsset, lang: str) -> None:
    try:
        pdf_bytes = await asyncio.to_thread(export_asset_pdf, asset, lang)
    except Exception as e:
        log(f"[Export] PDF export failed: {e}", level="error")
        ui.notify(str(e) or t("errors.unknown", lang), type="negative")
        return
    ui.download(pdf_bytes, f"{safe_file_name(asset.name, asset.kind)}.pdf")


def _export_button(asset: GeneratedAsset, lang: str) -> None:
    ui.button(t("common.export_pdf", lang), icon="picture_as_pdf",
              on_click=lambda: _export_pdf(asset, lang)).props("flat")


def _text_section(title: str, body) -> None:
    if not body:
        return
    ui.label(title).classes("text-lg font-semibold text-amber-400 mt-2")
    ui.label(str(body)).classes("result-text text-gray-200")


def render_error_banner(message: str) -> None:
    with ui.card().classes("w-full bg-red-900/40 border border-red-700"):
        with ui.row().classes("items-center gap-2 no-wrap"):
            ui.icon("error", color="negative")
            ui.label(message).classes("text-red-200")


def render_result_area(page: PageState, kind: str) -> None:
    """Error banner, spinner or the finished asset, depending on the view."""
    view = page.view(kind)
    if view.status == ERROR:
        render_error_banner(view.error)
    elif view.busy:
        with ui.row().classes("w-full justify-center py-8"):
            ui.spinner("dots", size="lg", color="primary")
    elif view.status == SUCCESS and view.result is not None:
        RESULT_RENDERERS[kind](view.result, page.lang)


# ===============================================================
# MINIATURE & TOKEN TAB
# ===============================================================

def render_miniature_panel(page: PageState) -> None:
    lang = page.lang
    form = page.form("miniature")

    def on_upload(e: events.UploadEventArguments):
        if not (e.type or "").startswith("image/"):
            ui.notify(t("errors.invalid_image", lang), type="negative")
            return
        form.update(image_bytes=e.content.read(), mime_type=e.type, file_name=e.name)
        log(f"[UI] Source image uploaded: {e.name} ({e.type})")
        page.refresh("miniature")

    with ui.card().classes("w-full"):
        ui.label(t("miniature.title", lang)).classes("text-xl font-bold")
        ui.input(t("miniature.name", lang), placeholder=t("miniature.name_placeholder", lang),
                 value=form["creature_name"],
                 on_change=lambda e: form.update(creature_name=e.value or "")).classes("w-full")
        ui.input(t("miniature.scenery", lang), placeholder=t("miniature.scenery_placeholder", lang),
                 value=form["scenery"],
                 on_change=lambda e: form.update(scenery=e.value or "")).classes("w-full")
        ui.select(get_creature_type_labels(lang), label=t("miniature.creature_type", lang),
                  value=form["creature_type"] or None,
                  on_change=lambda e: form.update(creature_type=e.value or "")).classes("w-full")
        ui.label(t("miniature.image", lang)).classes("text-sm text-gray-400 mt-2")
        ui.upload(label=t("miniature.upload", lang), auto_upload=True,
                  max_file_size=MAX_UPLOAD_BYTES, on_upload=on_upload,
                  on_rejected=lambda: ui.notify(t("errors.invalid_image", lang), type="negative"),
                  ).props('accept="image/*" flat bordered').classes("w-full")
        ui.label(t("miniature.file_types", lang)).classes("text-xs text-gray-500")
        if form["image_bytes"]:
            ui.label(t("miniature.selected_file", lang, file_name=form["file_name"])).classes("text-sm")
            ui.image(to_data_url(form["image_bytes"], form["mime_type"])).classes("w-40 asset-image")
        with ui.row().classes("w-full mt-2"):
            _submit_button(page, "miniature", t("miniature.generate", lang),
                           t("miniature.generating", lang), lambda: submit_miniature(page))
    render_result_area(page, "miniature")


def _render_miniature_pair(asset: GeneratedAsset, lang: str) -> None:
    with ui.row().classes("w-full gap-4 justify-center"):
        for role, title_key, download_key in (
                ("miniature", "miniature.generated_miniature", "miniature.download_miniature"),
                ("token", "miniature.generated_token", "miniature.download_token")):
            with ui.card().classes("items-center"):
                ui.label(t(title_key, lang)).classes("font-semibold")
                ui.image(asset.images[role]).classes("w-64 asset-image")
                _download_button(asset, role, t(download_key, lang), role)


def render_miniature_result(asset: GeneratedAsset, lang: str) -> None:
    _render_miniature_pair(asset, lang)


# ===============================================================
# ITEM TAB
# ===============================================================

def render_item_panel(page: PageState) -> None:
    lang = page.lang
    form = page.form("item")
    rarity_options = dict(enumerate(get_rarities(lang)))

    with ui.card().classes("w-full"):
        ui.label(t("item.title", lang)).classes("text-xl font-bold")
        ui.input(t("item.name", lang), placeholder=t("item.name_placeholder", lang),
                 value=form["name"],
                 on_change=lambda e: form.update(name=e.value or "")).classes("w-full")
        ui.label(t("item.type", lang)).classes("text-sm text-gray-400")
        ui.toggle({True: t("item.magical", lang), False: t("item.not_magical", lang)},
                  value=form["is_magical"],
                  on_change=lambda e: form.update(is_magical=e.value))
        ui.select(rarity_options, label=t("item.rarity", lang),
                  value=form["rarity"] if form["rarity"] in rarity_options else None,
                  on_change=lambda e: form.update(rarity=e.value)).classes("w-full")
        _aspect_ratio_toggle(form, lang)
        with ui.row().classes("w-full mt-2"):
            _submit_button(page, "item", t("item.generate", lang), t("item.generating", lang),
                           lambda: submit_item(page), mode="specific")
            _submit_button(page, "item", t("item.generate_random", lang), t("item.generating", lang),
                           lambda: submit_item(page, random=True), mode="random", color="secondary")
    render_result_area(page, "item")


def render_item_result(asset: GeneratedAsset, lang: str) -> None:
    data = asset.data
    yes, no = t("common.yes", lang), t("common.no", lang)
    with ui.card().classes("w-full"):
        with ui.row().classes("w-full gap-6 no-wrap items-start"):
            with ui.column().classes("items-center"):
                ui.image(asset.images["image"]).classes("w-72 asset-image")
                _download_button(asset, "image", t("common.download_image", lang))
            with ui.column().classes("flex-grow"):
                ui.label(asset.name).classes("text-2xl font-bold")
                with ui.row().classes("gap-2"):
                    ui.badge(str(data.get("rarity", "")), color="secondary")
                    ui.badge(f"{t('item.is_magical', lang)}: {yes if data.get('isMagical') else no}")
                    ui.badge(f"{t('item.attunement', lang)}: {yes if data.get('attunement') else no}",
                             color="accent")
                _text_section(t("item.description", lang), data.get("description"))
                _text_section(t("item.effect", lang), data.get("effect"))
                _text_section(t("item.value", lang), data.get("value"))
                _export_button(asset, lang)


# ===============================================================
# SCENARIO TAB
# ===============================================================

def render_scenario_panel(page: PageState) -> None:
    lang = page.lang
    form = page.form("scenario")

    with ui.card().classes("w-full"):
        ui.label(t("scenario.title", lang)).classes("text-xl font-bold")
        ui.input(t("scenario.name", lang), placeholder=t("scenario.name_placeholder", lang),
                 value=form["name"],
                 on_change=lambda e: form.update(name=e.value or "")).classes("w-full")
        ui.textarea(t("scenario.description", lang),
                    placeholder=t("scenario.description_placeholder", lang),
                    value=form["description"],
                    on_change=lambda e: form.update(description=e.value or "")).classes("w-full")
        _aspect_ratio_toggle(form, lang)
        with ui.row().classes("w-full mt-2"):
            _submit_button(page, "scenario", t("scenario.generate", lang),
                           t("scenario.generating", lang),
                           lambda: submit_scenario(page), mode="specific")
            _submit_button(page, "scenario", t("scenario.generate_random", lang),
                           t("scenario.generating", lang),
                           lambda: submit_scenario(page, random=True), mode="random", color="secondary")
    render_result_area(page, "scenario")


def render_scenario_result(asset: GeneratedAsset, lang: str) -> None:
    with ui.card().classes("w-full"):
        ui.image(asset.images["image"]).classes("w-full asset-image")
        with ui.row().classes("w-full items-center justify-between"):
            ui.label(asset.name).classes("text-2xl font-bold")
            with ui.row():
                _download_button(asset, "image", t("common.download_image", lang))
                _export_button(asset, lang)
        _text_section(t("scenario.detailed_description", lang), asset.data.get("detailedDescription"))


# ===============================================================
# NPC TAB
# ===============================================================

def render_npc_panel(page: PageState) -> None:
    lang = page.lang
    form = page.form("npc")

    with ui.card().classes("w-full"):
        ui.label(t("npc.title", lang)).classes("text-xl font-bold")
        ui.select(get_npc_type_labels(lang), label=t("npc.select_type", lang),
                  value=form["npc_type"] or None,
                  on_change=lambda e: form.update(npc_type=e.value or "")).classes("w-full")
        ui.select(get_gender_labels(lang), label=t("npc.select_gender", lang),
                  value=form["gender"] or None,
                  on_change=lambda e: form.update(gender=e.value or "")).classes("w-full")
        with ui.row().classes("w-full mt-2"):
            _submit_button(page, "npc", t("npc.generate", lang), t("npc.generating", lang),
                           lambda: submit_npc(page))
    render_result_area(page, "npc")


def render_stat_block(stat_block: StatBlock, npc_type: str, lang: str) -> None:
    labels = get_stat_block_labels(lang)
    with ui.card().classes("w-full stat-block"):
        ui.label(stat_block.name).classes("text-2xl font-bold stat-name")
        ui.label(stat_block.type_line()).classes("italic text-sm text-gray-300")
        ui.separator()
        for key, value in (("ac", stat_block.ac), ("hp", stat_block.hp_line()),
                           ("speed", stat_block.speed)):
            ui.markdown(f"**{labels.get(key, key)}** {value}")
        ui.separator()
        with ui.grid(columns=6).classes("w-full text-center"):
            for key, score, mod in stat_block.abilities():
                with ui.column().classes("items-center gap-0"):
                    ui.label(labels.get(key, key)).classes("font-bold")
                    ui.label(f"{score} ({mod})")
        ui.separator()
        lines = (
            ("saves", format_saves(stat_block.saves)),
            ("skills", format_saves(stat_block.skillsaves)),
            ("damage_vulnerabilities", stat_block.damage_vulnerabilities),
            ("damage_resistances", stat_block.damage_resistances),
            ("damage_immunities", stat_block.damage_immunities),
            ("condition_immunities", stat_block.condition_immunities),
            ("senses", stat_block.senses),
            ("languages", stat_block.languages),
            ("cr", stat_block.cr if stat_block.shows_challenge(npc_type) else ""),
            ("level", stat_block.character_level if stat_block.shows_level(npc_type) else ""),
            ("proficiency_bonus", stat_block.proficiency_bonus),
        )
        for key, value in lines:
            if value:
                ui.markdown(f"**{labels.get(key, key)}** {value}")
        for key, pairs in (("traits", stat_block.traits), ("actions", stat_block.actions),
                           ("reactions", stat_block.reactions),
                           ("legendary_actions", stat_block.legendary_actions)):
            if not pairs:
                continue
            ui.label(labels.get(key, key)).classes("text-lg stat-name mt-2")
            ui.separator()
            for name, desc in pairs:
                ui.markdown(f"***{name}.*** {desc}")
        if stat_block.spells:
            ui.label(labels.get("spells", "spells")).classes("text-lg stat-name mt-2")
            ui.separator()
            for line in stat_block.spells:
                ui.label(line).classes("text-sm")


def render_npc_result(asset: GeneratedAsset, lang: str) -> None:
    data = asset.data
    with ui.card().classes("w-full"):
        with ui.row().classes("w-full gap-6 no-wrap items-start"):
            with ui.column().classes("items-center"):
                ui.label(t("npc.portrait", lang)).classes("font-semibold")
                ui.image(asset.images["portrait"]).classes("w-64 asset-image")
                _download_button(asset, "portrait", t("npc.download_portrait", lang), "portrait")
            with ui.column().classes("flex-grow"):
                ui.label(asset.name).classes("text-2xl font-bold")
                facts = [f"{t('npc.race', lang)}: {data.get('race', '')}",
                         f"{t('npc.class', lang)}: {data.get('class', '')}",
                         f"{t('npc.age', lang)}: {data.get('age', '')}"]
                ui.label(f" {E['dot']} ".join(facts)).classes("text-amber-300")
                _text_section(t("npc.description", lang), data.get("description"))
                _text_section(t("npc.personality", lang), data.get("personality"))
                _text_section(t("npc.belongings", lang), data.get("belongings"))
                _export_button(asset, lang)
    render_stat_block(StatBlock.from_dict(data.get("statBlock")), str(data.get("npcType", "")), lang)
    _render_miniature_pair(asset, lang)


PANEL_RENDERERS = {
    "miniature": render_miniature_panel,
    "item": render_item_panel,
    "scenario": render_scenario_panel,
    "npc": render_npc_panel,
}

RESULT_RENDERERS = {
    "miniature": render_miniature_result,
    "item": render_item_result,
    "scenario": render_scenario_result,
    "npc": render_npc_result,
}


# ===============================================================
# MAIN PAGE
# ===============================================================

@ui.page("/", response_timeout=30)
async def main_page(client: Client):
    ui.colors(primary='#B45309', secondary='#7F1D1D', accent='#0F766E')
    ui.add_head_html(CUSTOM_CSS)

    # ── Spinner until the WebSocket is up ──
    loading = ui.column().classes("w-full items-center mt-20 gap-4")
    with loading:
        ui.spinner("dots", size="lg", color="primary")
        ui.label(t("app.loading", DEFAULT_UI_LANG or DEFAULT_LANG)).classes("text-gray-400")
    try:
        await client.connected(timeout=20)
    except TimeoutError:
        return
    loading.delete()

    init_session()
    page = PageState(S())
    content = ui.column().classes("w-full max-w-5xl mx-auto p-4 gap-4")
    page.root = content

    def switch_language(e):
        if not e.value or e.value == page.lang:
            return
        page.s["ui_lang"] = e.value
        log(f"[UI] Language switched to {e.value}")
        render_page()

    def render_page():
        content.clear()
        page.panels.clear()
        lang = page.lang
        with content:
            with ui.row().classes("w-full items-center justify-between"):
                with ui.column().classes("gap-0"):
                    ui.label(f"{E['swords']} {t('app.title', lang)}").classes("text-3xl font-bold")
                    ui.label(t("app.subtitle", lang)).classes("text-gray-400")
                ui.toggle({code: label for label, code in UI_LANGUAGES.items()}, value=lang,
                          on_change=switch_language)
            if not _server_cfg["api_key"]:
                render_error_banner(t("app.api_missing", lang))
            with ui.tabs().classes("w-full") as tabs:
                tab_widgets = {kind: ui.tab(kind, label=t(f"tabs.{kind}", lang), icon=TAB_ICONS[kind])
                               for kind in TAB_KINDS}
            with ui.tab_panels(tabs, value=page.s["active_tab"],
                               on_change=lambda e: page.s.update(active_tab=e.value)
                               ).classes("w-full bg-transparent"):
                for kind in TAB_KINDS:
                    with ui.tab_panel(tab_widgets[kind]):
                        page.panels[kind] = ui.column().classes("w-full gap-4")
                        page.refresh(kind)
            ui.label(t("app.footer", lang)).classes("text-xs text-gray-500 text-center w-full mt-4")

    render_page()


# ===============================================================
# SERVER START
# ===============================================================

_ssl_kwargs = {}
if SSL_CERTFILE and SSL_KEYFILE:
    _ssl_kwargs = {"ssl_certfile": SSL_CERTFILE, "ssl_keyfile": SSL_KEYFILE}
    log(f"[SSL] Using custom certificate: {SSL_CERTFILE}")

if __name__ in {"__main__", "__mp_main__"}:
    ui.run(
        title="RPG Toolbox",
        port=SERVER_PORT,
        dark=True,
        favicon=E["swords"],
        reload=False,
        show=False,
        reconnect_timeout=RECONNECT_TIMEOUT_SEC,
        **_ssl_kwargs,
    )
