"""Controlled mask type vocabulary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

MaskCategory = Literal["face", "landscape", "subject", "background", "geometric", "range", "other"]


@dataclass(frozen=True, slots=True)
class MaskTypeConfig:
    """Catalog entry for one supported mask type."""

    type: str
    sub_type: str
    sub_category_id: str
    description: str
    category: MaskCategory


MASK_TYPE_CONFIGS: tuple[MaskTypeConfig, ...] = (
    MaskTypeConfig("face_skin", "3", "2", "Facial skin", "face"),
    MaskTypeConfig("iris_pupil", "3", "3", "Iris and pupil", "face"),
    MaskTypeConfig("eyebrows", "3", "9", "Eyebrows", "face"),
    MaskTypeConfig("lips", "3", "6", "Lips", "face"),
    MaskTypeConfig("facial_hair", "3", "13", "Facial hair (beard, mustache)", "face"),
    MaskTypeConfig("body_skin", "3", "4", "Body skin", "face"),
    MaskTypeConfig("eye_whites", "3", "8", "Eye whites (sclera)", "face"),
    MaskTypeConfig("hair", "3", "5", "Hair", "face"),
    MaskTypeConfig("clothing", "3", "11", "Clothing", "face"),
    MaskTypeConfig("teeth", "3", "12", "Teeth", "face"),
    MaskTypeConfig("background", "0", "22", "General background", "background"),
    MaskTypeConfig("architecture", "0", "50001", "Architecture and buildings", "landscape"),
    MaskTypeConfig("mountains", "0", "50002", "Mountains and mountain ranges", "landscape"),
    MaskTypeConfig("artificial_ground", "0", "50003", "Artificial ground (pavement, roads)", "landscape"),
    MaskTypeConfig("natural_ground", "0", "50004", "Natural ground (dirt, grass)", "landscape"),
    MaskTypeConfig("vegetation", "0", "50005", "Vegetation and plants", "landscape"),
    MaskTypeConfig("sky", "0", "50006", "Sky", "landscape"),
    MaskTypeConfig("water", "0", "50007", "Water bodies", "landscape"),
    MaskTypeConfig("subject", "1", "0", "Subject or person", "subject"),
    MaskTypeConfig("person", "1", "0", "Person", "subject"),
    MaskTypeConfig("vehicle", "1", "", "Vehicle", "other"),
    MaskTypeConfig("animal", "1", "", "Animal", "other"),
    MaskTypeConfig("object", "1", "", "General object", "other"),
    MaskTypeConfig("radial", "1", "", "Radial gradient", "geometric"),
    MaskTypeConfig("linear", "1", "", "Linear gradient", "geometric"),
    MaskTypeConfig("brush", "1", "", "Brush stroke", "geometric"),
    MaskTypeConfig("range_color", "1", "", "Color range", "range"),
    MaskTypeConfig("range_luminance", "1", "", "Luminance range", "range"),
)
MASK_TYPE_VALUES: tuple[str, ...] = tuple(config.type for config in MASK_TYPE_CONFIGS)
_MASK_TYPE_MAP: dict[str, MaskTypeConfig] = {config.type: config for config in MASK_TYPE_CONFIGS}

_MASK_TYPE_SYNONYMS: dict[str, str] = {
    "face": "face_skin",
    "skin": "face_skin",
    "facial_skin": "face_skin",
    "face skin": "face_skin",
    "eye": "iris_pupil",
    "eyes": "iris_pupil",
    "iris": "iris_pupil",
    "pupil": "iris_pupil",
    "eye_white": "eye_whites",
    "sclera": "eye_whites",
    "tooth": "teeth",
    "eyebrow": "eyebrows",
    "beard": "facial_hair",
    "mustache": "facial_hair",
    "people": "subject",
    "landscape": "background",
    "mountain": "mountains",
    "building": "architecture",
    "buildings": "architecture",
    "plants": "vegetation",
    "ground": "natural_ground",
    "road": "artificial_ground",
}


def get_mask_config(mask_type: str | None) -> MaskTypeConfig | None:
    """Return the catalog entry for a mask type, if supported."""

    if not mask_type:
        return None
    return _MASK_TYPE_MAP.get(mask_type)


def is_mask_type_supported(mask_type: str | None) -> bool:
    return get_mask_config(mask_type) is not None


def mask_types_by_category(category: MaskCategory) -> list[MaskTypeConfig]:
    """Return catalog entries for one category in catalog order."""

    return [config for config in MASK_TYPE_CONFIGS if config.category == category]


def normalize_mask_type(raw_type: str | None) -> str | None:
    """Map loosely specified proposer mask types onto the controlled vocabulary.

    Empty input stays unspecified; unrecognised text falls back to ``subject``.
    """

    cleaned = " ".join(str(raw_type or "").strip().lower().split())
    if not cleaned:
        return None
    if cleaned in _MASK_TYPE_MAP:
        return cleaned
    synonym = _MASK_TYPE_SYNONYMS.get(cleaned) or _MASK_TYPE_SYNONYMS.get(cleaned.replace(" ", "_"))
    if synonym:
        return synonym
    underscored = cleaned.replace(" ", "_")
    return underscored if underscored in _MASK_TYPE_MAP else "subject"
