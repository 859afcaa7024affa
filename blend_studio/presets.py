# blend_studio/presets.py
# Hazir mockup senaryolari

from typing import Dict, Optional

from pydantic import BaseModel


class MockupPreset(BaseModel):
    id: str
    label: str
    prompt: str


PRESETS: Dict[str, MockupPreset] = {
    p.id: p
    for p in [
        MockupPreset(
            id="shirt",
            label="T-shirt",
            prompt="A high-quality black cotton t-shirt folded on a concrete surface, dramatic studio lighting, the artwork applied to the chest.",
        ),
        MockupPreset(
            id="mug",
            label="Mug",
            prompt="A minimalist white ceramic mug on a light wooden table, soft window light, design magazine style.",
        ),
        MockupPreset(
            id="laptop",
            label="Laptop",
            prompt="An ultra-thin silver laptop open on a modern office desk with a plant in the background, the artwork applied as the screen wallpaper.",
        ),
        MockupPreset(
            id="totebag",
            label="Tote bag",
            prompt="A raw canvas tote bag hanging from the shoulder of a person walking down the street, urban lifestyle photo.",
        ),
        MockupPreset(
            id="box",
            label="Box",
            prompt="A square product box with a matte finish on top of a white podium, soft professional studio lighting.",
        ),
        MockupPreset(
            id="card",
            label="Business cards",
            prompt="Minimalist business cards artfully scattered on a dark stone surface, dramatic lighting and selective focus.",
        ),
        MockupPreset(
            id="bottle",
            label="Bottle",
            prompt="An aluminium or stainless steel sports water bottle in a gym or lifestyle setting, natural lighting, realistic reflections.",
        ),
        MockupPreset(
            id="sticker",
            label="Sticker",
            prompt="A glossy die-cut sticker stuck on the lid of a silver aluminium laptop, shallow focus, high resolution.",
        ),
        MockupPreset(
            id="frame",
            label="Frame",
            prompt="A poster in a thin black frame hanging on a white brick wall, contemporary art gallery style.",
        ),
        MockupPreset(
            id="outdoor",
            label="Billboard",
            prompt="A modern advertising billboard on a busy avenue in a big city, sunny day, realistic low-angle perspective.",
        ),
    ]
}


def resolve_prompt(prompt: Optional[str], preset: Optional[str]) -> str:
    """An explicit prompt wins; otherwise the preset's scenario text, or ""."""
    if prompt and prompt.strip():
        return prompt.strip()
    if preset and preset in PRESETS:
        return PRESETS[preset].prompt
    return ""
