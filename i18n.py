#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RPG Toolbox - Tabletop Asset Generator
===================================================
Central module for all UI-facing text, labels and prompt templates.
Supports English and Portuguese; Portuguese is the default.

Usage:
    from i18n import t, E, UI_LANGUAGES, DEFAULT_LANG, get_rarities, ...
    lang = "pt"                                   # or "en"
    label = t("item.title", lang)                 # → "Crie um Novo Item de RPG"
    msg = t("miniature.selected_file", lang, file_name="orc.png")
    rarities = get_rarities(lang)                 # → ["Comum", "Incomum", ...]
"""

# ===============================================================
# EMOJI / UNICODE CONSTANTS (shared across all modules)
# ===============================================================

E = {
    "swords": "\u2694\ufe0f",
    "dot": "\u00b7",
}


# ===============================================================
# UI LANGUAGE CONFIGURATION
# ===============================================================

UI_LANGUAGES = {
    "English": "en",
    "Português": "pt",
}

DEFAULT_LANG = "pt"

# Fixed option codes; labels come from the string tables below
ASPECT_RATIOS = ("1:1", "3:4", "16:9", "21:9", "9:16")
CREATURE_TYPES = ("enemy", "player", "ally", "npc")
NPC_TYPES = ("ally", "neutral", "enemy")
NPC_GENDERS = ("male", "female", "any")


# ===============================================================
# UI STRINGS: nested tables, addressed with dot notation
# ===============================================================

_STRINGS = {
    # ── ENGLISH ──────────────────────────────────────────────
    "en": {
        "app": {
            "title": "RPG Toolbox",
            "subtitle": "Forge miniatures, tokens, items, scenarios and NPCs for your table.",
            "footer": "Images and text are generated by AI. Review before using them at your table.",
            "loading": "Connecting...",
            "api_missing": "No API key configured. Set GEMINI_API_KEY and restart the server.",
        },
        "tabs": {
            "miniature": "Miniature & Token",
            "item": "Item Generator",
            "scenario": "Scenario Generator",
            "npc": "NPC Generator",
        },
        "common": {
            "aspect_ratio": "Image Aspect Ratio",
            "download_image": "Download Image",
            "export_pdf": "Export PDF",
            "yes": "Yes",
            "no": "No",
            "still_processing": "A generation is already running. Please wait.",
        },
        "miniature": {
            "title": "Turn a creature into a miniature and a token",
            "name": "Creature Name",
            "name_placeholder": "e.g., Goblin Shaman, Ancient Red Dragon",
            "scenery": "Base Scenery",
            "scenery_placeholder": "e.g., mossy forest floor, volcanic rock",
            "creature_type": "Creature Type",
            "image": "Creature Image",
            "upload": "Upload a file",
            "file_types": "PNG, JPG, WEBP up to 10MB",
            "selected_file": "Selected: {file_name}",
            "generating": "Generating...",
            "generate": "Generate Miniature & Token",
            "generated_miniature": "Generated Miniature",
            "generated_token": "Generated Token",
            "download_miniature": "Download Miniature",
            "download_token": "Download Token",
        },
        "creature_types": {
            "enemy": "Enemy",
            "player": "Player",
            "ally": "Ally",
            "npc": "NPC",
        },
        "creature_bases": {
            "enemy": "red",
            "player": "grey",
            "ally": "blue",
            "npc": "yellow",
        },
        "item": {
            "title": "Create a New RPG Item",
            "name": "Item Name",
            "name_placeholder": "e.g., Sun-forged Blade, Cloak of Whispers",
            "type": "Type",
            "magical": "Magical",
            "not_magical": "Not Magical",
            "rarity": "Rarity",
            "select_rarity": "Select rarity...",
            "generating": "Generating Item...",
            "generate": "Generate Item",
            "generate_random": "Generate Random Item",
            "is_magical": "Magical",
            "attunement": "Attunement",
            "description": "Description",
            "effect": "Effect",
            "value": "Value",
        },
        "rarities": ["Common", "Uncommon", "Rare", "Very Rare", "Legendary", "Artifact", "Cursed"],
        "scenario": {
            "title": "Create a New Scenario",
            "name": "Scenario Name",
            "name_placeholder": "e.g., The Sunken Library, Ember Market",
            "description": "Short Description",
            "description_placeholder": "e.g., a flooded archive guarded by drowned scholars",
            "generating": "Generating Scenario...",
            "generate": "Generate Scenario",
            "generate_random": "Generate Random Scenario",
            "detailed_description": "Detailed Description",
        },
        "npc": {
            "title": "Create a Complete NPC Package",
            "select_type": "NPC Type",
            "select_gender": "Gender",
            "generating": "Generating NPC...",
            "generate": "Generate NPC",
            "description": "Description",
            "personality": "Personality",
            "belongings": "Belongings",
            "race": "Race",
            "class": "Class",
            "age": "Age",
            "portrait": "Portrait",
            "miniature": "Miniature",
            "token": "Token",
            "download_portrait": "Download Portrait",
        },
        "npc_types": {
            "ally": "Ally",
            "neutral": "Neutral",
            "enemy": "Enemy",
        },
        "genders": {
            "male": "Male",
            "female": "Female",
            "any": "Any",
        },
        "stat_block": {
            "ac": "Armor Class",
            "hp": "Hit Points",
            "speed": "Speed",
            "str": "STR",
            "dex": "DEX",
            "con": "CON",
            "int": "INT",
            "wis": "WIS",
            "cha": "CHA",
            "saves": "Saving Throws",
            "skills": "Skills",
            "damage_vulnerabilities": "Damage Vulnerabilities",
            "damage_resistances": "Damage Resistances",
            "damage_immunities": "Damage Immunities",
            "condition_immunities": "Condition Immunities",
            "senses": "Senses",
            "languages": "Languages",
            "cr": "Challenge",
            "level": "Level",
            "proficiency_bonus": "Proficiency Bonus",
            "traits": "Traits",
            "spells": "Spellcasting",
            "actions": "Actions",
            "reactions": "Reactions",
            "legendary_actions": "Legendary Actions",
        },
        "errors": {
            "all_fields": "Please fill in all fields and upload an image.",
            "item_fields": "Please provide a name, a type and a rarity for the item.",
            "scenario_fields": "Please provide a name and a short description for the scenario.",
            "npc_fields": "Please select an NPC type and a gender.",
            "invalid_image": "Please select a valid image file.",
            "miniature_generation": "The miniature could not be generated. Please try again.",
            "token_generation": "The token could not be generated. Please try again.",
            "item_image_generation": "The item image could not be generated. Please try again.",
            "scenario_image_generation": "The scenario image could not be generated. Please try again.",
            "npc_image_generation": "The NPC portrait could not be generated. Please try again.",
            "invalid_api_key": "The API key was rejected. Check your configuration.",
            "unknown": "An unknown error occurred.",
        },
        "export": {
            "generated_at": "Generated on {timestamp}",
            "footer": "Created with RPG Toolbox",
        },
        "prompts": {
            "miniature": (
                "Using the creature in this image as reference, create a photorealistic render of a "
                "painted tabletop miniature of {creature_name}. The miniature stands on a round base "
                "with a {base_color} rim, and the top of the base is sculpted as {scenery}. "
                "Keep the creature's silhouette, colors and equipment. Studio lighting, neutral "
                "background, no text."
            ),
            "token": (
                "Using the creature in this image as reference, create a circular top-down virtual "
                "tabletop token of {creature_name}. Show the creature's head and shoulders framed "
                "inside a thick {base_color} ring border. Transparent-looking dark background outside "
                "the ring, crisp details, no text."
            ),
            "item_specific": (
                "Create a tabletop RPG item named \"{name}\". It is {is_magical} and its rarity is "
                "{rarity}. Write a vivid physical and historical description, its mechanical effect "
                "in a 5th edition style, and an estimated value in gold pieces. Answer in English."
            ),
            "item_random": (
                "Invent an original and surprising tabletop RPG item of any rarity. Write a vivid "
                "physical and historical description, its mechanical effect in a 5th edition style, "
                "and an estimated value in gold pieces. Answer in English."
            ),
            "item_image": (
                "A detailed fantasy illustration of the item \"{name}\": {description}. Centered on a "
                "dark parchment background, dramatic lighting, no text."
            ),
            "scenario_specific": (
                "Create a tabletop RPG scenario named \"{name}\" based on this idea: {description}. "
                "Give it an evocative name and a detailed description with sensory details, notable "
                "features and plot hooks. Answer in English."
            ),
            "scenario_random": (
                "Invent an original tabletop RPG scenario. Give it an evocative name and a detailed "
                "description with sensory details, notable features and plot hooks. Answer in English."
            ),
            "scenario_image": (
                "A wide, atmospheric fantasy environment painting of \"{name}\": {description}. "
                "Cinematic composition, no characters in the foreground, no text."
            ),
            "npc_random": (
                "Create a complete tabletop RPG NPC. The NPC is a {npc_type} to the party and their "
                "gender is {gender}. Provide name, race, class, age, a physical description, "
                "personality, notable belongings, a short description of the scenery behind them for "
                "their portrait, and a full 5th edition stat block. Use a challenge rating for enemies "
                "and a character level for allies and neutral NPCs. Answer in English."
            ),
            "npc_image": (
                "A fantasy character portrait of {name}, a {race} {class}. {description} "
                "Background: {scenery}. Painterly style, upper body, no text."
            ),
        },
    },

    # ── PORTUGUESE (default) ─────────────────────────────────
    "pt": {
        "app": {
            "title": "RPG Toolbox",
            "subtitle": "Crie miniaturas, tokens, itens, cenários e NPCs para a sua mesa.",
            "footer": "Imagens e textos são gerados por IA. Revise antes de usar na sua mesa.",
            "loading": "Conectando...",
            "api_missing": "Nenhuma chave de API configurada. Defina GEMINI_API_KEY e reinicie o servidor.",
        },
        "tabs": {
            "miniature": "Miniatura & Token",
            "item": "Gerador de Itens",
            "scenario": "Gerador de Cenários",
            "npc": "Gerador de NPCs",
        },
        "common": {
            "aspect_ratio": "Proporção da Imagem",
            "download_image": "Baixar Imagem",
            "export_pdf": "Exportar PDF",
            "yes": "Sim",
            "no": "Não",
            "still_processing": "Uma geração já está em andamento. Aguarde.",
        },
        "miniature": {
            "title": "Transforme uma criatura em miniatura e token",
            "name": "Nome da Criatura",
            "name_placeholder": "ex.: Xamã Goblin, Dragão Vermelho Ancião",
            "scenery": "Cenário da Base",
            "scenery_placeholder": "ex.: chão de floresta com musgo, rocha vulcânica",
            "creature_type": "Tipo de Criatura",
            "image": "Imagem da Criatura",
            "upload": "Enviar um arquivo",
            "file_types": "PNG, JPG, WEBP até 10MB",
            "selected_file": "Selecionado: {file_name}",
            "generating": "Gerando...",
            "generate": "Gerar Miniatura & Token",
            "generated_miniature": "Miniatura Gerada",
            "generated_token": "Token Gerado",
            "download_miniature": "Baixar Miniatura",
            "download_token": "Baixar Token",
        },
        "creature_types": {
            "enemy": "Inimigo",
            "player": "Jogador",
            "ally": "Aliado",
            "npc": "NPC",
        },
        "creature_bases": {
            "enemy": "vermelha",
            "player": "cinza",
            "ally": "azul",
            "npc": "amarela",
        },
        "item": {
            "title": "Crie um Novo Item de RPG",
            "name": "Nome do Item",
            "name_placeholder": "ex.: Lâmina Forjada ao Sol, Manto dos Sussurros",
            "type": "Tipo",
            "magical": "Mágico",
            "not_magical": "Não Mágico",
            "rarity": "Raridade",
            "select_rarity": "Selecione a raridade...",
            "generating": "Gerando Item...",
            "generate": "Gerar Item",
            "generate_random": "Gerar Item Aleatório",
            "is_magical": "Mágico",
            "attunement": "Sintonia",
            "description": "Descrição",
            "effect": "Efeito",
            "value": "Valor",
        },
        "rarities": ["Comum", "Incomum", "Raro", "Muito Raro", "Lendário", "Artefato", "Amaldiçoado"],
        "scenario": {
            "title": "Crie um Novo Cenário",
            "name": "Nome do Cenário",
            "name_placeholder": "ex.: A Biblioteca Submersa, Mercado das Brasas",
            "description": "Descrição Curta",
            "description_placeholder": "ex.: um arquivo inundado guardado por eruditos afogados",
            "generating": "Gerando Cenário...",
            "generate": "Gerar Cenário",
            "generate_random": "Gerar Cenário Aleatório",
            "detailed_description": "Descrição Detalhada",
        },
        "npc": {
            "title": "Crie um Pacote Completo de NPC",
            "select_type": "Tipo de NPC",
            "select_gender": "Gênero",
            "generating": "Gerando NPC...",
            "generate": "Gerar NPC",
            "description": "Descrição",
            "personality": "Personalidade",
            "belongings": "Pertences",
            "race": "Raça",
            "class": "Classe",
            "age": "Idade",
            "portrait": "Retrato",
            "miniature": "Miniatura",
            "token": "Token",
            "download_portrait": "Baixar Retrato",
        },
        "npc_types": {
            "ally": "Aliado",
            "neutral": "Neutro",
            "enemy": "Inimigo",
        },
        "genders": {
            "male": "Masculino",
            "female": "Feminino",
            "any": "Qualquer",
        },
        "stat_block": {
            "ac": "Classe de Armadura",
            "hp": "Pontos de Vida",
            "speed": "Deslocamento",
            "str": "FOR",
            "dex": "DES",
            "con": "CON",
            "int": "INT",
            "wis": "SAB",
            "cha": "CAR",
            "saves": "Testes de Resistência",
            "skills": "Perícias",
            "damage_vulnerabilities": "Vulnerabilidades a Dano",
            "damage_resistances": "Resistências a Dano",
            "damage_immunities": "Imunidades a Dano",
            "condition_immunities": "Imunidades a Condição",
            "senses": "Sentidos",
            "languages": "Idiomas",
            "cr": "Nível de Desafio",
            "level": "Nível",
            "proficiency_bonus": "Bônus de Proficiência",
            "traits": "Características",
            "spells": "Conjuração",
            "actions": "Ações",
            "reactions": "Reações",
            "legendary_actions": "Ações Lendárias",
        },
        "errors": {
            "all_fields": "Preencha todos os campos e envie uma imagem.",
            "item_fields": "Informe um nome, um tipo e uma raridade para o item.",
            "scenario_fields": "Informe um nome e uma descrição curta para o cenário.",
            "npc_fields": "Selecione um tipo de NPC e um gênero.",
            "invalid_image": "Selecione um arquivo de imagem válido.",
            "miniature_generation": "Não foi possível gerar a miniatura. Tente novamente.",
            "token_generation": "Não foi possível gerar o token. Tente novamente.",
            "item_image_generation": "Não foi possível gerar a imagem do item. Tente novamente.",
            "scenario_image_generation": "Não foi possível gerar a imagem do cenário. Tente novamente.",
            "npc_image_generation": "Não foi possível gerar o retrato do NPC. Tente novamente.",
            "invalid_api_key": "A chave de API foi recusada. Verifique a configuração.",
            "unknown": "Ocorreu um erro desconhecido.",
        },
        "export": {
            "generated_at": "Gerado em {timestamp}",
            "footer": "Criado com RPG Toolbox",
        },
        "prompts": {
            "miniature": (
                "Usando a criatura desta imagem como referência, crie uma renderização "
                "fotorrealista de uma miniatura pintada de RPG de mesa de {creature_name}. A miniatura "
                "fica sobre uma base redonda com borda {base_color}, e o topo da base é esculpido "
                "como {scenery}. Mantenha a silhueta, as cores e o equipamento da criatura. "
                "Iluminação de estúdio, fundo neutro, sem texto."
            ),
            "token": (
                "Usando a criatura desta imagem como referência, crie um token circular visto de "
                "cima para mesa virtual de {creature_name}. Mostre a cabeça e os ombros da "
                "criatura dentro de um anel grosso de cor {base_color}. Fundo escuro fora do anel, "
                "detalhes nítidos, sem texto."
            ),
            "item_specific": (
                "Crie um item de RPG de mesa chamado \"{name}\". Ele é {is_magical} e sua "
                "raridade é {rarity}. Escreva uma descrição física e histórica "
                "vívida, seu efeito mecânico no estilo da 5ª edição e um valor "
                "estimado em peças de ouro. Responda em português."
            ),
            "item_random": (
                "Invente um item de RPG de mesa original e surpreendente, de qualquer raridade. "
                "Escreva uma descrição física e histórica vívida, seu efeito "
                "mecânico no estilo da 5ª edição e um valor estimado em peças "
                "de ouro. Responda em português."
            ),
            "item_image": (
                "Uma ilustração de fantasia detalhada do item \"{name}\": {description}. "
                "Centralizado sobre um fundo de pergaminho escuro, iluminação dramática, "
                "sem texto."
            ),
            "scenario_specific": (
                "Crie um cenário de RPG de mesa chamado \"{name}\" a partir desta ideia: "
                "{description}. Dê um nome evocativo e uma descrição detalhada com "
                "detalhes sensoriais, elementos notáveis e ganchos de aventura. Responda em "
                "português."
            ),
            "scenario_random": (
                "Invente um cenário original de RPG de mesa. Dê um nome evocativo e uma "
                "descrição detalhada com detalhes sensoriais, elementos notáveis e "
                "ganchos de aventura. Responda em português."
            ),
            "scenario_image": (
                "Uma pintura de ambiente de fantasia ampla e atmosférica de \"{name}\": "
                "{description}. Composição cinematográfica, sem personagens em primeiro "
                "plano, sem texto."
            ),
            "npc_random": (
                "Crie um NPC completo de RPG de mesa. O NPC é {npc_type} em relação ao "
                "grupo e seu gênero é {gender}. Informe nome, raça, classe, idade, "
                "descrição física, personalidade, pertences notáveis, uma breve "
                "descrição do cenário atrás dele para o retrato e um bloco de "
                "estatísticas completo da 5ª edição. Use nível de desafio para "
                "inimigos e nível de personagem para aliados e neutros. Responda em português."
            ),
            "npc_image": (
                "Um retrato de personagem de fantasia de {name}, {race} {class}. {description} "
                "Fundo: {scenery}. Estilo pictórico, meio corpo, sem texto."
            ),
        },
    },
}


# ===============================================================
# STRING LOOKUP
# ===============================================================

def t(key: str, lang: str = DEFAULT_LANG, **kwargs):
    """Look up a translated string by dotted key path.

    Walks the nested table of ``lang`` one segment at a time. A missing
    segment returns the key itself. Non-string values (rarity lists, nested
    tables) are returned raw; empty ones fall back to the key. Placeholders
    like ``{name}`` are replaced literally, so stray braces in values are safe.
    """
    node = _STRINGS.get(lang, {})
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return key
        node = node[part]
    if not isinstance(node, str):
        return node or key
    for placeholder, value in kwargs.items():
        node = node.replace(f"{{{placeholder}}}", str(value))
    return node


# ===============================================================
# LABEL HELPERS: language-dependent display labels
# ===============================================================

def get_rarities(lang: str = DEFAULT_LANG) -> list:
    """Localized rarity names, in ascending order."""
    rarities = t("rarities", lang)
    return list(rarities) if isinstance(rarities, list) else []


def get_creature_type_labels(lang: str = DEFAULT_LANG) -> dict:
    """Returns {code: display_label} for miniature creature types."""
    return {code: t(f"creature_types.{code}", lang) for code in CREATURE_TYPES}


def get_npc_type_labels(lang: str = DEFAULT_LANG) -> dict:
    """Returns {code: display_label} for NPC dispositions."""
    return {code: t(f"npc_types.{code}", lang) for code in NPC_TYPES}


def get_gender_labels(lang: str = DEFAULT_LANG) -> dict:
    return {code: t(f"genders.{code}", lang) for code in NPC_GENDERS}


def get_aspect_ratio_options() -> dict:
    """Aspect ratios are language-neutral; returned as a value→label dict for toggles."""
    return {ratio: ratio for ratio in ASPECT_RATIOS}


def get_stat_block_labels(lang: str = DEFAULT_LANG) -> dict:
    """Returns the whole stat block label table for ``lang``."""
    labels = t("stat_block", lang)
    return labels if isinstance(labels, dict) else {}
