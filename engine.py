#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RPG Toolbox - Tabletop Asset Generator
========================================
Core Module (Framework-Independent)

Builds prompts from the i18n templates, calls the hosted text/image models
and assembles the results the UI renders. Everything here is blocking;
the UI runs it through asyncio.to_thread.
"""

import asyncio
import base64
import concurrent.futures
import io
import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, ClassVar, Optional

import anthropic
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

# PDF export
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    Paragraph, Spacer, HRFlowable, Image, Table, TableStyle,
    BaseDocTemplate, PageTemplate, Frame,
)

from i18n import (
    DEFAULT_LANG, UI_LANGUAGES,
    ASPECT_RATIOS, CREATURE_TYPES, NPC_TYPES, NPC_GENDERS,
    t as _t,
)

# ===============================================================
# CONFIGURATION
# ===============================================================

TEXT_MODEL = "gemini-2.5-pro"
IMAGE_MODEL = "imagen-4.0-generate-001"
EDIT_MODEL = "gemini-2.5-flash-image"
CLAUDE_TEXT_MODEL = "claude-sonnet-4-5-20250929"
TEXT_BACKENDS = ("gemini", "anthropic")

_SCRIPT_DIR = Path(__file__).resolve().parent
GLOBAL_CONFIG_FILE = _SCRIPT_DIR / "config.json"
LOG_DIR = _SCRIPT_DIR / "logs"

# --- Tuning constants ---
CLAUDE_MAX_TOKENS = 4096           # Stat blocks are long; 4k fits the largest NPC schema
PORTRAIT_ASPECT_RATIO = "3:4"      # NPC portraits ignore the caller's ratio
MINIATURE_WORKERS = 2              # Miniature + token render side by side
DEFAULT_ABILITY_SCORE = 10
ABILITY_KEYS = ("str", "dex", "con", "int", "wis", "cha")

# NPC disposition → miniature base color
NPC_CREATURE_TYPE = {
    "enemy": "enemy",
    "ally": "ally",
    "neutral": "npc",
}


# ===============================================================
# FILE LOGGING
# ===============================================================

def setup_file_logging():
    """Set up file logging to logs/ directory. One log file per day.
    Safe to call multiple times -- skips if handlers already exist.
    """
    logger = logging.getLogger("rpg_toolbox")

    if logger.handlers:
        return

    logger.setLevel(logging.DEBUG)

    LOG_DIR.mkdir(exist_ok=True)
    today = datetime.now().strftime("%Y-%m-%d")
    log_path = LOG_DIR / f"rpg_toolbox_{today}.log"

    fh = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-7s | %(message)s",
                                       datefmt="%Y-%m-%d %H:%M:%S"))

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.DEBUG)
    ch.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info(f"=== RPG Toolbox session === Log: {log_path.name}")


def log(msg: str, level: str = "info"):
    """Log a message to both console and log file."""
    logger = logging.getLogger("rpg_toolbox")
    if not logger.handlers:
        setup_file_logging()
    getattr(logger, level, logger.info)(msg)


# ===============================================================
# SERVER CONFIGURATION
# ===============================================================

def load_global_config() -> dict:
    """Load config.json next to the code (api keys, port, default language)."""
    if GLOBAL_CONFIG_FILE.exists():
        try:
            return json.loads(GLOBAL_CONFIG_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


# Later entries win when several are set (GEMINI_API_KEY beats API_KEY)
_ENV_MAP = (
    ("API_KEY", "api_key"),
    ("GOOGLE_API_KEY", "api_key"),
    ("GEMINI_API_KEY", "api_key"),
    ("ANTHROPIC_API_KEY", "anthropic_api_key"),
    ("TEXT_BACKEND", "text_backend"),
    ("PORT", "port"),
    ("DEFAULT_UI_LANG", "default_ui_lang"),
    ("SSL_CERTFILE", "ssl_certfile"),
    ("SSL_KEYFILE", "ssl_keyfile"),
)


def load_server_config(env: Optional[dict] = None) -> dict:
    """Load server configuration with cascade: defaults → config.json → ENV."""
    cfg = {
        "api_key": "",
        "anthropic_api_key": "",
        "text_backend": "gemini",
        "port": 8080,
        "default_ui_lang": "",
        "ssl_certfile": "",
        "ssl_keyfile": "",
    }
    file_cfg = load_global_config()
    for key in cfg:
        if key in file_cfg:
            cfg[key] = file_cfg[key]
    env = os.environ if env is None else env
    for env_key, cfg_key in _ENV_MAP:
        env_val = str(env.get(env_key, "")).strip()
        if not env_val:
            continue
        if cfg_key == "port":
            try:
                cfg[cfg_key] = int(env_val)
            except ValueError:
                log(f"[Config] Ignoring non-numeric PORT={env_val!r}", level="warning")
        else:
            cfg[cfg_key] = env_val
    if cfg["text_backend"] not in TEXT_BACKENDS:
        log(f"[Config] Unknown text backend {cfg['text_backend']!r}, using gemini", level="warning")
        cfg["text_backend"] = "gemini"
    lang = str(cfg["default_ui_lang"]).strip().lower()
    cfg["default_ui_lang"] = lang if lang in UI_LANGUAGES.values() else ""
    return cfg


@dataclass
class GenerationConfig:
    """Per-request settings. The UI layer builds one for every submission,
    so the active language is always explicit rather than ambient.
    """
    lang: str = DEFAULT_LANG
    text_backend: str = "gemini"


# ===============================================================
# ERRORS
# ===============================================================

class GenerationError(Exception):
    """A failure with a message that is ready for display."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GenerationError):
    """Required input is missing; raised before any remote call."""


class ImageGenerationError(GenerationError):
    """A remote call answered without image data."""


def is_auth_error(exc: Exception) -> bool:
    """True when either provider rejected the API key."""
    if isinstance(exc, anthropic.AuthenticationError):
        return True
    if isinstance(exc, genai_errors.ClientError):
        return exc.code in (401, 403) or "API key" in (exc.message or "")
    return False


# ===============================================================
# DATA MODELS
# ===============================================================

@dataclass
class ItemRequest:
    name: str = ""
    is_magical: Optional[bool] = None
    rarity: str = ""
    aspect_ratio: str = "1:1"
    random: bool = False

    error_key: ClassVar[str] = "errors.item_fields"

    def validation_error(self) -> Optional[str]:
        if self.random:
            return None
        if not self.name.strip() or self.is_magical is None or not self.rarity:
            return self.error_key
        return None


@dataclass
class ScenarioRequest:
    name: str = ""
    description: str = ""
    aspect_ratio: str = "16:9"
    random: bool = False

    error_key: ClassVar[str] = "errors.scenario_fields"

    def validation_error(self) -> Optional[str]:
        if self.random:
            return None
        if not self.name.strip() or not self.description.strip():
            return self.error_key
        return None


@dataclass
class MiniatureRequest:
    creature_name: str = ""
    scenery: str = ""
    creature_type: str = ""
    image_bytes: bytes = b""
    mime_type: str = ""

    error_key: ClassVar[str] = "errors.all_fields"

    def validation_error(self) -> Optional[str]:
        if (not self.creature_name.strip() or not self.scenery.strip()
                or self.creature_type not in CREATURE_TYPES or not self.image_bytes):
            return self.error_key
        if not self.mime_type.startswith("image/"):
            return "errors.invalid_image"
        return None


@dataclass
class NpcRequest:
    npc_type: str = ""
    gender: str = ""

    error_key: ClassVar[str] = "errors.npc_fields"

    def validation_error(self) -> Optional[str]:
        if self.npc_type not in NPC_TYPES or self.gender not in NPC_GENDERS:
            return self.error_key
        return None


def validate_request(request, lang: str = DEFAULT_LANG):
    """Raise ValidationError with the localized message if input is incomplete.
    The required fields never depend on ``lang``; only the message does.
    """
    key = request.validation_error()
    if key:
        log(f"[Validate] {type(request).__name__} rejected: {key}")
        raise ValidationError(_t(key, lang))


@dataclass
class GeneratedAsset:
    """Parsed JSON fields plus image data URLs, keyed by role
    ("image", "portrait", "miniature", "token").
    """
    kind: str
    data: dict = field(default_factory=dict)
    images: dict = field(default_factory=dict)

    @property
    def name(self) -> str:
        return str(self.data.get("name", "") or "")

    def image_bytes(self, key: str) -> bytes:
        return decode_data_url(self.images[key])

    def download_name(self, suffix: str = "") -> str:
        base = safe_file_name(self.name, self.kind)
        return f"{base}_{suffix}.png" if suffix else f"{base}.png"


def _pairs(raw) -> list:
    """Normalize named entries from the model into (name, desc) tuples.
    Accepts [[name, desc], ...], [{"name", "description"}, ...], a
    {name: desc} mapping or a single string."""
    if isinstance(raw, str):
        return [(raw, "")] if raw.strip() else []
    if isinstance(raw, dict):
        return [(str(name), str(desc)) for name, desc in raw.items()]
    if not isinstance(raw, list):
        return []
    pairs = []
    for entry in raw:
        if isinstance(entry, (list, tuple)) and entry:
            name = str(entry[0])
            desc = " ".join(str(x) for x in entry[1:])
            pairs.append((name, desc))
        elif isinstance(entry, dict) and entry.get("name"):
            desc = entry.get("description", entry.get("desc", ""))
            pairs.append((str(entry["name"]), str(desc or "")))
        elif isinstance(entry, str):
            pairs.append((entry, ""))
    return pairs


def _named_values(raw) -> list:
    if isinstance(raw, dict):
        raw = [{"name": name, "value": value} for name, value in raw.items()]
    if not isinstance(raw, list):
        return []
    values = []
    for entry in raw:
        if isinstance(entry, dict) and entry.get("name"):
            values.append({"name": str(entry["name"]), "value": entry.get("value", 0)})
    return values


def _lines(raw) -> list:
    if isinstance(raw, str):
        return [raw] if raw.strip() else []
    if not isinstance(raw, list):
        return []
    return [str(s) for s in raw]


@dataclass
class StatBlock:
    """5e-style stat block, display-oriented. ``stats`` is always six scores
    in STR, DEX, CON, INT, WIS, CHA order."""
    name: str = ""
    size: str = ""
    type: str = ""
    subtype: str = ""
    alignment: str = ""
    ac: int = 10
    hp: int = 1
    hit_dice: str = ""
    speed: str = ""
    stats: list = field(default_factory=lambda: [DEFAULT_ABILITY_SCORE] * 6)
    proficiency_bonus: str = ""
    saves: list = field(default_factory=list)
    skillsaves: list = field(default_factory=list)
    damage_vulnerabilities: str = ""
    damage_resistances: str = ""
    damage_immunities: str = ""
    condition_immunities: str = ""
    senses: str = ""
    languages: str = ""
    cr: str = ""
    character_level: Optional[int] = None
    traits: list = field(default_factory=list)
    actions: list = field(default_factory=list)
    reactions: list = field(default_factory=list)
    legendary_actions: list = field(default_factory=list)
    spells: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "StatBlock":
        if not isinstance(data, dict):
            data = {}
        raw_stats = data.get("stats")
        scores = []
        for raw in (raw_stats if isinstance(raw_stats, list) else [])[:6]:
            try:
                scores.append(int(raw))
            except (TypeError, ValueError):
                scores.append(DEFAULT_ABILITY_SCORE)
        scores += [DEFAULT_ABILITY_SCORE] * (6 - len(scores))
        level = data.get("characterLevel")
        return cls(
            name=str(data.get("name", "")),
            size=str(data.get("size", "")),
            type=str(data.get("type", "")),
            subtype=str(data.get("subtype", "") or ""),
            alignment=str(data.get("alignment", "")),
            ac=data.get("ac", 10),
            hp=data.get("hp", 1),
            hit_dice=str(data.get("hit_dice", "")),
            speed=str(data.get("speed", "")),
            stats=scores,
            proficiency_bonus=str(data.get("proficiencyBonus", "") or ""),
            saves=_named_values(data.get("saves")),
            skillsaves=_named_values(data.get("skillsaves")),
            damage_vulnerabilities=str(data.get("damage_vulnerabilities", "") or ""),
            damage_resistances=str(data.get("damage_resistances", "") or ""),
            damage_immunities=str(data.get("damage_immunities", "") or ""),
            condition_immunities=str(data.get("condition_immunities", "") or ""),
            senses=str(data.get("senses", "") or ""),
            languages=str(data.get("languages", "") or ""),
            cr=str(data.get("cr", "") or ""),
            character_level=int(level) if isinstance(level, (int, float)) else None,
            traits=_pairs(data.get("traits")),
            actions=_pairs(data.get("actions")),
            reactions=_pairs(data.get("reactions")),
            legendary_actions=_pairs(data.get("legendary_actions")),
            spells=_lines(data.get("spells")),
        )

    def type_line(self) -> str:
        line = f"{self.size} {self.type}".strip()
        if self.subtype:
            line += f" ({self.subtype})"
        if self.alignment:
            line += f", {self.alignment}"
        return line

    def hp_line(self) -> str:
        return f"{self.hp} ({self.hit_dice})" if self.hit_dice else str(self.hp)

    def abilities(self) -> list:
        """[(key, score, modifier_text), ...] in fixed order."""
        return [(key, score, ability_modifier(score))
                for key, score in zip(ABILITY_KEYS, self.stats)]

    def shows_challenge(self, npc_type: str) -> bool:
        return npc_type == "enemy" and bool(self.cr)

    def shows_level(self, npc_type: str) -> bool:
        return npc_type in ("ally", "neutral") and bool(self.character_level)


def ability_modifier(score: int) -> str:
    mod = (score - 10) // 2
    return f"+{mod}" if mod >= 0 else str(mod)


def _signed(value) -> str:
    """Signed bonus text. "+4" and 4 both give "+4", -1 gives "-1"."""
    text = str(value).strip()
    try:
        number = int(float(text))
    except (ValueError, OverflowError):
        return text if text[:1] in ("+", "-") else f"+{text}"
    return f"+{number}" if number >= 0 else str(number)


def format_saves(saves: list) -> str:
    return ", ".join(f"{s['name'][:1].upper()}{s['name'][1:]} {_signed(s['value'])}" for s in saves)


# ===============================================================
# IMAGE / DATA URL HELPERS
# ===============================================================

def to_data_url(image, mime_type: str = "image/png") -> str:
    """Wrap raw image bytes (or an already-encoded Base64 string) in a data URL."""
    b64 = image if isinstance(image, str) else base64.b64encode(image).decode("ascii")
    return f"data:{mime_type};base64,{b64}"


def decode_data_url(url: str) -> bytes:
    if url.startswith("data:"):
        url = url.split(",", 1)[-1]
    return base64.b64decode(url)


def safe_file_name(name: str, fallback: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE).lower() or fallback


# ===============================================================
# RESPONSE SCHEMAS
# ===============================================================

ITEM_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING", "description": "The name of the item."},
        "description": {"type": "STRING", "description": "A detailed physical and historical description of the item."},
        "effect": {"type": "STRING", "description": "The mechanical effect of the item in a TTRPG context."},
        "value": {"type": "STRING", "description": "The estimated value of the item in gold pieces (e.g., '50 gp')."},
        "rarity": {"type": "STRING", "description": "The rarity of the item."},
        "isMagical": {"type": "BOOLEAN", "description": "Whether the item is magical."},
        "attunement": {"type": "BOOLEAN", "description": "Whether the item requires attunement."},
    },
    "required": ["name", "description", "effect", "value", "rarity", "isMagical", "attunement"],
}

SCENARIO_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING", "description": "The evocative name of the scenario."},
        "detailedDescription": {
            "type": "STRING",
            "description": "A detailed description of the scenario, including sensory details, "
                           "potential plot hooks, and notable features.",
        },
    },
    "required": ["name", "detailedDescription"],
}

_NAMED_VALUE_LIST = {
    "type": "ARRAY",
    "items": {"type": "OBJECT", "properties": {"name": {"type": "STRING"}, "value": {"type": "NUMBER"}}},
}
_PAIR_LIST = {"type": "ARRAY", "items": {"type": "ARRAY", "items": {"type": "STRING"}}}

NPC_STAT_BLOCK_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING"},
        "size": {"type": "STRING"},
        "type": {"type": "STRING"},
        "subtype": {"type": "STRING"},
        "alignment": {"type": "STRING"},
        "ac": {"type": "NUMBER"},
        "hp": {"type": "NUMBER"},
        "hit_dice": {"type": "STRING"},
        "speed": {"type": "STRING"},
        "stats": {"type": "ARRAY", "items": {"type": "NUMBER"}},
        "proficiencyBonus": {"type": "STRING"},
        "saves": _NAMED_VALUE_LIST,
        "skillsaves": _NAMED_VALUE_LIST,
        "damage_vulnerabilities": {"type": "STRING"},
        "damage_resistances": {"type": "STRING"},
        "damage_immunities": {"type": "STRING"},
        "condition_immunities": {"type": "STRING"},
        "senses": {"type": "STRING"},
        "languages": {"type": "STRING"},
        "cr": {"type": "STRING"},
        "characterLevel": {"type": "NUMBER"},
        "traits": _PAIR_LIST,
        "actions": _PAIR_LIST,
        "reactions": _PAIR_LIST,
        "legendary_actions": _PAIR_LIST,
        "spells": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
}

NPC_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING"},
        "npcType": {"type": "STRING", "enum": list(NPC_TYPES)},
        "race": {"type": "STRING"},
        "class": {"type": "STRING"},
        "gender": {"type": "STRING"},
        "age": {"type": "STRING"},
        "description": {"type": "STRING"},
        "personality": {"type": "STRING"},
        "belongings": {"type": "STRING"},
        "scenery": {"type": "STRING"},
        "statBlock": NPC_STAT_BLOCK_SCHEMA,
    },
    "required": ["name", "npcType", "race", "class", "gender", "age", "description",
                 "personality", "belongings", "scenery", "statBlock"],
}


# ===============================================================
# REMOTE GENERATION CLIENT
# ===============================================================

def _extract_inline_image(response) -> bytes:
    """First inline image part of a generate_content response, or b""."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return b""
    for part in candidates[0].content.parts or []:
        if part.inline_data is not None and part.inline_data.data:
            return part.inline_data.data
    return b""


class GeminiBackend:
    """Text, image and image-edit calls against Google's hosted models."""

    def __init__(self, api_key: str, text_model: str = TEXT_MODEL,
                 image_model: str = IMAGE_MODEL, edit_model: str = EDIT_MODEL):
        self.client = genai.Client(api_key=api_key)
        self.text_model = text_model
        self.image_model = image_model
        self.edit_model = edit_model

    def generate_json(self, prompt: str, schema: dict) -> dict:
        response = self.client.models.generate_content(
            model=self.text_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        return json.loads((response.text or "").strip())

    def generate_image(self, prompt: str, aspect_ratio: str) -> bytes:
        response = self.client.models.generate_images(
            model=self.image_model,
            prompt=prompt,
            config=types.GenerateImagesConfig(
                number_of_images=1,
                aspect_ratio=aspect_ratio,
                output_mime_type="image/png",
            ),
        )
        images = response.generated_images or []
        if not images or images[0].image is None:
            return b""
        return images[0].image.image_bytes or b""

    def edit_image(self, image_bytes: bytes, mime_type: str, instruction: str) -> bytes:
        response = self.client.models.generate_content(
            model=self.edit_model,
            contents=[types.Part.from_bytes(data=image_bytes, mime_type=mime_type), instruction],
            config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
        )
        return _extract_inline_image(response)


class ClaudeTextBackend(GeminiBackend):
    """Claude writes the JSON; images still come from Gemini."""

    def __init__(self, api_key: str, anthropic_api_key: str,
                 claude_model: str = CLAUDE_TEXT_MODEL, **kwargs):
        super().__init__(api_key, **kwargs)
        self.text_client = anthropic.Anthropic(api_key=anthropic_api_key)
        self.claude_model = claude_model

    def generate_json(self, prompt: str, schema: dict) -> dict:
        system = f"""<role>Tabletop RPG content generator.</role>
<o>
Return ONLY valid JSON matching this schema, no other text:
{json.dumps(schema, ensure_ascii=False)}
</o>"""
        response = self.text_client.messages.create(
            model=self.claude_model, max_tokens=CLAUDE_MAX_TOKENS, system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        text = response.content[0].text
        match = re.search(r'\{[\s\S]*\}', text)
        if not match:
            raise ValueError(f"No JSON object in model response: {text[:120]!r}")
        return json.loads(match.group())


def make_backend(server_cfg: dict, config: GenerationConfig) -> GeminiBackend:
    """Build the client for one submission. Missing keys surface here as a
    display error instead of failing at server start."""
    api_key = server_cfg.get("api_key", "")
    if not api_key:
        raise GenerationError(_t("app.api_missing", config.lang))
    if config.text_backend == "anthropic" and server_cfg.get("anthropic_api_key"):
        return ClaudeTextBackend(api_key, server_cfg["anthropic_api_key"])
    return GeminiBackend(api_key)


# ===============================================================
# PROMPT ASSEMBLY
# ===============================================================

def build_item_prompt(request: ItemRequest, lang: str = DEFAULT_LANG) -> str:
    if request.random:
        return _t("prompts.item_random", lang)
    magical = _t("item.magical" if request.is_magical else "item.not_magical", lang)
    return _t("prompts.item_specific", lang,
              name=request.name.strip(), is_magical=magical.lower(), rarity=request.rarity)


def build_item_image_prompt(data: dict, lang: str = DEFAULT_LANG) -> str:
    return _t("prompts.item_image", lang,
              name=data.get("name", ""), description=data.get("description", ""))


def build_scenario_prompt(request: ScenarioRequest, lang: str = DEFAULT_LANG) -> str:
    if request.random:
        return _t("prompts.scenario_random", lang)
    return _t("prompts.scenario_specific", lang,
              name=request.name.strip(), description=request.description.strip())


def build_scenario_image_prompt(data: dict, lang: str = DEFAULT_LANG) -> str:
    return _t("prompts.scenario_image", lang,
              name=data.get("name", ""), description=data.get("detailedDescription", ""))


def build_npc_prompt(request: NpcRequest, lang: str = DEFAULT_LANG) -> str:
    return _t("prompts.npc_random", lang,
              npc_type=_t(f"npc_types.{request.npc_type}", lang).lower(),
              gender=_t(f"genders.{request.gender}", lang).lower())


def build_npc_image_prompt(data: dict, lang: str = DEFAULT_LANG) -> str:
    return _t("prompts.npc_image", lang,
              name=data.get("name", ""), race=data.get("race", ""),
              **{"class": data.get("class", "")},
              description=data.get("description", ""), scenery=data.get("scenery", ""))


def build_miniature_prompts(creature_name: str, creature_type: str, scenery: str,
                            lang: str = DEFAULT_LANG) -> tuple:
    """(miniature_prompt, token_prompt) for the image-edit calls."""
    base_color = _t(f"creature_bases.{creature_type}", lang)
    miniature = _t("prompts.miniature", lang, creature_name=creature_name,
                   base_color=base_color, scenery=scenery)
    token = _t("prompts.token", lang, creature_name=creature_name, base_color=base_color)
    return miniature, token


# ===============================================================
# TEMPLATED TWO-STEP GENERATION
# ===============================================================

@dataclass(frozen=True)
class AssetKind:
    """Everything that differs between the text+image asset flows."""
    key: str
    schema: dict
    image_error_key: str
    build_prompt: Callable
    build_image_prompt: Callable
    aspect_ratio: Callable


ITEM_KIND = AssetKind(
    key="item",
    schema=ITEM_SCHEMA,
    image_error_key="errors.item_image_generation",
    build_prompt=build_item_prompt,
    build_image_prompt=build_item_image_prompt,
    aspect_ratio=lambda request: request.aspect_ratio,
)

SCENARIO_KIND = AssetKind(
    key="scenario",
    schema=SCENARIO_SCHEMA,
    image_error_key="errors.scenario_image_generation",
    build_prompt=build_scenario_prompt,
    build_image_prompt=build_scenario_image_prompt,
    aspect_ratio=lambda request: request.aspect_ratio,
)

NPC_KIND = AssetKind(
    key="npc",
    schema=NPC_SCHEMA,
    image_error_key="errors.npc_image_generation",
    build_prompt=build_npc_prompt,
    build_image_prompt=build_npc_image_prompt,
    aspect_ratio=lambda request: PORTRAIT_ASPECT_RATIO,
)


def generate_templated(backend, kind: AssetKind, request, lang: str = DEFAULT_LANG) -> tuple:
    """Validate, write the JSON with the text model, then paint it.
    Returns (parsed_fields, image_bytes)."""
    validate_request(request, lang)
    tag = kind.key.capitalize()
    prompt = kind.build_prompt(request, lang)
    log(f"[{tag}] Text prompt ({lang}): {prompt[:100]}")
    data = backend.generate_json(prompt, kind.schema)
    log(f"[{tag}] Generated: {data.get('name', '?')}")
    aspect_ratio = kind.aspect_ratio(request)
    if aspect_ratio not in ASPECT_RATIOS:
        log(f"[{tag}] Unusual aspect ratio {aspect_ratio!r} passed through", level="warning")
    image = backend.generate_image(kind.build_image_prompt(data, lang), aspect_ratio)
    if not image:
        raise ImageGenerationError(_t(kind.image_error_key, lang))
    return data, image


def generate_item(backend, request: ItemRequest,
                  config: Optional[GenerationConfig] = None) -> GeneratedAsset:
    _cfg = config or GenerationConfig()
    data, image = generate_templated(backend, ITEM_KIND, request, _cfg.lang)
    return GeneratedAsset(kind="item", data=data, images={"image": to_data_url(image)})


def generate_scenario(backend, request: ScenarioRequest,
                      config: Optional[GenerationConfig] = None) -> GeneratedAsset:
    _cfg = config or GenerationConfig()
    data, image = generate_templated(backend, SCENARIO_KIND, request, _cfg.lang)
    return GeneratedAsset(kind="scenario", data=data, images={"image": to_data_url(image)})


# ===============================================================
# MINIATURE & TOKEN
# ===============================================================

def render_miniature_pair(backend, creature_name: str, image_bytes: bytes, mime_type: str,
                          creature_type: str, scenery: str, lang: str = DEFAULT_LANG) -> tuple:
    """Render miniature and token side by side from one source image.
    Both must succeed; a failure of either discards the other."""
    miniature_prompt, token_prompt = build_miniature_prompts(
        creature_name, creature_type, scenery, lang)
    log(f"[Miniature] Rendering {creature_name!r} ({creature_type}) on {scenery!r}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=MINIATURE_WORKERS) as pool:
        miniature_future = pool.submit(backend.edit_image, image_bytes, mime_type, miniature_prompt)
        token_future = pool.submit(backend.edit_image, image_bytes, mime_type, token_prompt)
        miniature = miniature_future.result()
        token = token_future.result()
    if not miniature:
        raise ImageGenerationError(_t("errors.miniature_generation", lang))
    if not token:
        raise ImageGenerationError(_t("errors.token_generation", lang))
    return miniature, token


def generate_miniature_and_token(backend, request: MiniatureRequest,
                                 config: Optional[GenerationConfig] = None) -> GeneratedAsset:
    _cfg = config or GenerationConfig()
    validate_request(request, _cfg.lang)
    miniature, token = render_miniature_pair(
        backend, request.creature_name.strip(), request.image_bytes, request.mime_type,
        request.creature_type, request.scenery.strip(), _cfg.lang)
    return GeneratedAsset(
        kind="miniature",
        data={"name": request.creature_name.strip(), "creature_type": request.creature_type,
              "scenery": request.scenery.strip()},
        images={"miniature": to_data_url(miniature), "token": to_data_url(token)},
    )


# ===============================================================
# NPC PACKAGE
# ===============================================================

def generate_npc_package(backend, request: NpcRequest,
                         config: Optional[GenerationConfig] = None) -> GeneratedAsset:
    """Text → portrait → miniature + token from the portrait."""
    _cfg = config or GenerationConfig()
    data, portrait = generate_templated(backend, NPC_KIND, request, _cfg.lang)
    creature_type = NPC_CREATURE_TYPE.get(data.get("npcType"), NPC_CREATURE_TYPE[request.npc_type])
    miniature, token = render_miniature_pair(
        backend, str(data.get("name", "")), portrait, "image/png",
        creature_type, str(data.get("scenery", "")), _cfg.lang)
    return GeneratedAsset(
        kind="npc",
        data=data,
        images={
            "portrait": to_data_url(portrait),
            "miniature": to_data_url(miniature),
            "token": to_data_url(token),
        },
    )


# ===============================================================
# VIEW STATE (one per generator tab)
# ===============================================================

IDLE = "idle"
VALIDATING = "validating"
IN_FLIGHT = "in_flight"
SUCCESS = "success"
ERROR = "error"


@dataclass
class GenerationView:
    """idle → validating → in_flight → success | error.
    A new submission replaces the previous result; nothing is remembered
    across submissions."""
    status: str = IDLE
    result: Optional[GeneratedAsset] = None
    error: str = ""
    mode: str = ""     # which button started the run ("specific" / "random")

    @property
    def busy(self) -> bool:
        return self.status in (VALIDATING, IN_FLIGHT)

    def _set(self, status: str, on_change: Optional[Callable], lang: str = DEFAULT_LANG):
        self.status = status
        if on_change is None:
            return
        try:
            on_change()
        except Exception as e:
            if status != SUCCESS:
                raise
            # A result the UI cannot show is reported like a failed generation
            log(f"[Generate] Result could not be rendered: {e!r}", level="error")
            self.result = None
            self.error = str(e) or _t("errors.unknown", lang)
            self.status = ERROR
            on_change()

    async def submit(self, generate: Callable, request, config: GenerationConfig,
                     backend_factory: Callable, mode: str = "",
                     on_change: Optional[Callable] = None) -> bool:
        """Run one generation off the event loop. Returns True on success."""
        if self.busy:
            return False
        self.result = None
        self.error = ""
        self.mode = mode
        self._set(VALIDATING, on_change)
        try:
            validate_request(request, config.lang)
            self._set(IN_FLIGHT, on_change)
            backend = backend_factory()
            result = await asyncio.to_thread(generate, backend, request, config)
        except GenerationError as e:
            self.error = e.message
        except Exception as e:
            log(f"[Generate] {type(request).__name__} failed: {e!r}", level="error")
            if is_auth_error(e):
                self.error = _t("errors.invalid_api_key", config.lang)
            else:
                self.error = str(e) or _t("errors.unknown", config.lang)
        else:
            self.result = result
        self.mode = ""
        self._set(SUCCESS if self.result is not None else ERROR, on_change, config.lang)
        return self.status == SUCCESS


# ===============================================================
# ASSET EXPORT (PDF)
# ===============================================================

_PDF_COLOR_DARK = HexColor("#1a1a2e")
_PDF_COLOR_ACCENT = HexColor("#7f1d1d")
_PDF_COLOR_MUTED = HexColor("#666666")
_PDF_COLOR_RULE = HexColor("#cccccc")
_PDF_MAX_IMAGE_W = 120 * mm
_PDF_MAX_IMAGE_H = 110 * mm


def _pdf_styles():
    """Build paragraph styles for asset sheets."""
    base = getSampleStyleSheet()
    _add = base.add
    _add(ParagraphStyle("AssetTitle", fontName="Times-Bold", fontSize=22,
                        leading=28, alignment=TA_CENTER,
                        textColor=_PDF_COLOR_DARK, spaceAfter=4))
    _add(ParagraphStyle("AssetSubtitle", fontName="Times-Italic", fontSize=12,
                        leading=16, alignment=TA_CENTER,
                        textColor=_PDF_COLOR_ACCENT, spaceAfter=4))
    _add(ParagraphStyle("AssetMeta", fontName="Times-Roman", fontSize=9,
                        leading=12, alignment=TA_CENTER,
                        textColor=_PDF_COLOR_MUTED, spaceAfter=10))
    _add(ParagraphStyle("SectionHeading", fontName="Times-Bold", fontSize=13,
                        leading=18, textColor=_PDF_COLOR_ACCENT,
                        spaceBefore=10, spaceAfter=4))
    _add(ParagraphStyle("AssetBody", fontName="Times-Roman", fontSize=11,
                        leading=16, alignment=TA_JUSTIFY,
                        textColor=_PDF_COLOR_DARK, spaceAfter=6))
    return base


def _pdf_escape(text) -> str:
    """Escape text for ReportLab XML paragraphs."""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _pdf_page_footer(canvas, doc):
    canvas.saveState()
    w = A4[0]
    canvas.setStrokeColor(_PDF_COLOR_RULE)
    canvas.setLineWidth(0.5)
    canvas.line(20 * mm, 15 * mm, w - 20 * mm, 15 * mm)
    canvas.setFont("Times-Italic", 8)
    canvas.setFillColor(_PDF_COLOR_MUTED)
    canvas.drawString(20 * mm, 11 * mm, getattr(doc, "footer_text", "RPG Toolbox"))
    canvas.drawRightString(w - 20 * mm, 11 * mm, f"{doc.page}")
    canvas.restoreState()


def _pdf_image(image_bytes: bytes) -> Image:
    """Scale an image to fit the sheet while keeping its aspect ratio."""
    width, height = ImageReader(io.BytesIO(image_bytes)).getSize()
    scale = min(_PDF_MAX_IMAGE_W / width, _PDF_MAX_IMAGE_H / height)
    return Image(io.BytesIO(image_bytes), width=width * scale, height=height * scale)


def _pdf_section(elements: list, styles, title: str, body):
    if not body:
        return
    elements.append(Paragraph(_pdf_escape(title), styles["SectionHeading"]))
    for para in str(body).split("\n\n"):
        if para.strip():
            elements.append(Paragraph(_pdf_escape(para.strip()), styles["AssetBody"]))


def _pdf_stat_block(elements: list, styles, stat_block: StatBlock, npc_type: str, lang: str):
    esc = _pdf_escape
    body = styles["AssetBody"]
    elements.append(HRFlowable(width="100%", thickness=1.5, color=_PDF_COLOR_ACCENT,
                               spaceBefore=8, spaceAfter=4))
    elements.append(Paragraph(esc(stat_block.name), styles["SectionHeading"]))
    elements.append(Paragraph(f"<i>{esc(stat_block.type_line())}</i>", body))
    for label_key, value in (("ac", stat_block.ac), ("hp", stat_block.hp_line()),
                             ("speed", stat_block.speed)):
        elements.append(Paragraph(f"<b>{esc(_t('stat_block.' + label_key, lang))}</b> {esc(value)}", body))

    header = [_t(f"stat_block.{key}", lang) for key, _, _ in stat_block.abilities()]
    scores = [f"{score} ({mod})" for _, score, mod in stat_block.abilities()]
    table = Table([header, scores])
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, 0), "Times-Bold"),
        ("FONTNAME", (0, 1), (-1, 1), "Times-Roman"),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("LINEABOVE", (0, 0), (-1, 0), 0.5, _PDF_COLOR_ACCENT),
        ("LINEBELOW", (0, 1), (-1, 1), 0.5, _PDF_COLOR_ACCENT),
    ]))
    elements.append(Spacer(1, 2 * mm))
    elements.append(table)
    elements.append(Spacer(1, 2 * mm))

    lines = [
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
    ]
    for label_key, value in lines:
        if value:
            elements.append(Paragraph(f"<b>{esc(_t('stat_block.' + label_key, lang))}:</b> {esc(value)}", body))

    for label_key, pairs in (("traits", stat_block.traits), ("actions", stat_block.actions),
                             ("reactions", stat_block.reactions),
                             ("legendary_actions", stat_block.legendary_actions)):
        if not pairs:
            continue
        elements.append(Paragraph(esc(_t(f"stat_block.{label_key}", lang)), styles["SectionHeading"]))
        for name, desc in pairs:
            elements.append(Paragraph(f"<b><i>{esc(name)}.</i></b> {esc(desc)}", body))
    if stat_block.spells:
        elements.append(Paragraph(esc(_t("stat_block.spells", lang)), styles["SectionHeading"]))
        for line in stat_block.spells:
            elements.append(Paragraph(esc(line), body))


def export_asset_pdf(asset: GeneratedAsset, lang: str = DEFAULT_LANG) -> bytes:
    """Build a one-document sheet for a generated asset. Returns PDF bytes."""
    esc = _pdf_escape
    styles = _pdf_styles()
    buf = io.BytesIO()

    doc = BaseDocTemplate(buf, pagesize=A4,
                          leftMargin=20 * mm, rightMargin=20 * mm,
                          topMargin=20 * mm, bottomMargin=22 * mm,
                          title=asset.name or asset.kind)
    doc.footer_text = _t("export.footer", lang)
    frame = Frame(doc.leftMargin, doc.bottomMargin, doc.width, doc.height, id="normal")
    doc.addPageTemplates([PageTemplate(id="sheet", frames=frame, onPage=_pdf_page_footer)])

    data = asset.data
    elements: list = [Paragraph(esc(asset.name or asset.kind), styles["AssetTitle"])]
    if asset.kind == "item":
        facts = " • ".join([
            str(data.get("rarity", "")),
            f"{_t('item.is_magical', lang)}: {_t('common.yes' if data.get('isMagical') else 'common.no', lang)}",
            f"{_t('item.attunement', lang)}: {_t('common.yes' if data.get('attunement') else 'common.no', lang)}",
        ])
        elements.append(Paragraph(esc(facts), styles["AssetSubtitle"]))
    elif asset.kind == "npc":
        subtitle = " ".join(str(data.get(k, "")) for k in ("race", "class")).strip()
        if data.get("age"):
            subtitle += f" • {_t('npc.age', lang)}: {data['age']}"
        elements.append(Paragraph(esc(subtitle), styles["AssetSubtitle"]))
    elements.append(Paragraph(
        esc(_t("export.generated_at", lang, timestamp=datetime.now().strftime("%d.%m.%Y %H:%M"))),
        styles["AssetMeta"]))
    elements.append(HRFlowable(width="100%", thickness=0.5, color=_PDF_COLOR_RULE,
                               spaceBefore=2, spaceAfter=8))

    for role in ("image", "portrait", "miniature", "token"):
        if role in asset.images:
            elements.append(_pdf_image(asset.image_bytes(role)))
            elements.append(Spacer(1, 4 * mm))

    if asset.kind == "item":
        _pdf_section(elements, styles, _t("item.description", lang), data.get("description"))
        _pdf_section(elements, styles, _t("item.effect", lang), data.get("effect"))
        _pdf_section(elements, styles, _t("item.value", lang), data.get("value"))
    elif asset.kind == "scenario":
        _pdf_section(elements, styles, _t("scenario.detailed_description", lang),
                     data.get("detailedDescription"))
    elif asset.kind == "npc":
        _pdf_section(elements, styles, _t("npc.description", lang), data.get("description"))
        _pdf_section(elements, styles, _t("npc.personality", lang), data.get("personality"))
        _pdf_section(elements, styles, _t("npc.belongings", lang), data.get("belongings"))
        _pdf_stat_block(elements, styles, StatBlock.from_dict(data.get("statBlock")),
                        str(data.get("npcType", "")), lang)

    doc.build(elements)
    log(f"[Export] {asset.kind} sheet for {asset.name!r}: {buf.tell()} bytes")
    return buf.getvalue()
