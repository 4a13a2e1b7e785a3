# FILE: tests/conftest.py

import struct
import sys
import threading
import zlib
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest


def make_png(size: int = 4, rgb=(0xB4, 0x53, 0x09)) -> bytes:
    """Minimal solid-color RGB PNG."""
    raw = b''
    for _ in range(size):
        raw += b'\x00' + bytes(rgb) * size

    def _chunk(ctype, data):
        c = ctype + data
        return struct.pack('>I', len(data)) + c + struct.pack('>I', zlib.crc32(c) & 0xffffffff)
    ihdr = struct.pack('>IIBBBBB', size, size, 8, 2, 0, 0, 0)
    return (b'\x89PNG\r\n\x1a\n' + _chunk(b'IHDR', ihdr)
            + _chunk(b'IDAT', zlib.compress(raw)) + _chunk(b'IEND', b''))


class FakeBackend:
    """Stands in for GeminiBackend and records every remote call.

    Image edits answer ``token`` for instructions that mention a token and
    ``miniature`` otherwise. Pass an exception as any result to raise it.
    """

    def __init__(self, text=None, image=b"image-bytes", miniature=b"mini-bytes", token=b"token-bytes"):
        self.text = text if text is not None else {}
        self.image = image
        self.miniature = miniature
        self.token = token
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    @staticmethod
    def _answer(result):
        if isinstance(result, Exception):
            raise result
        return result

    def generate_json(self, prompt, schema):
        self._record("generate_json", prompt, schema)
        return dict(self._answer(self.text))

    def generate_image(self, prompt, aspect_ratio):
        self._record("generate_image", prompt, aspect_ratio)
        return self._answer(self.image)

    def edit_image(self, image_bytes, mime_type, instruction):
        self._record("edit_image", image_bytes, mime_type, instruction)
        if "token" in instruction.lower():
            return self._answer(self.token)
        return self._answer(self.miniature)

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def sample_item():
    return {
        "name": "Sun Blade",
        "description": "A hilt of brass that grows a blade of pure sunlight.",
        "effect": "+2 longsword dealing radiant damage.",
        "value": "12000 gp",
        "rarity": "Rare",
        "isMagical": True,
        "attunement": True,
    }


@pytest.fixture
def sample_npc():
    return {
        "name": "Mirela Voss",
        "npcType": "neutral",
        "race": "Half-Elf",
        "class": "Bard",
        "gender": "female",
        "age": "34",
        "description": "Auburn hair tied with a silver ribbon.",
        "personality": "Curious and quick to laugh.",
        "belongings": "A lute and a ledger of debts.",
        "scenery": "a crowded tavern",
        "statBlock": {
            "name": "Mirela Voss",
            "size": "Medium",
            "type": "humanoid",
            "subtype": "half-elf",
            "alignment": "chaotic good",
            "ac": 14,
            "hp": 27,
            "hit_dice": "6d8",
            "speed": "30 ft.",
            "stats": [10, 14, 12, 13, 11, 17],
            "saves": [{"name": "dex", "value": 4}, {"name": "cha", "value": 5}],
            "skillsaves": [{"name": "performance", "value": 7}],
            "senses": "darkvision 60 ft.",
            "languages": "Common, Elvish",
            "characterLevel": 5,
            "traits": [["Fey Ancestry", "Advantage against being charmed."]],
            "actions": [["Rapier", "+4 to hit, 1d8 + 2 piercing."]],
            "spells": ["Cantrips: vicious mockery, minor illusion"],
        },
    }


@pytest.fixture
def fake_backend():
    return FakeBackend()
