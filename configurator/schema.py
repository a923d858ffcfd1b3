from __future__ import annotations

import json
import re
import unicodedata
from enum import Enum
from typing import Any, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# =========================
# Enums / core types
# =========================

class ZoneType(str, Enum):
    leaf = "leaf"
    horizontal = "horizontal"
    vertical = "vertical"


class ZoneContent(str, Enum):
    empty = "empty"
    drawer = "drawer"
    push_drawer = "push_drawer"
    dressing = "dressing"
    door = "door"
    door_right = "door_right"
    door_double = "door_double"
    mirror_door = "mirror_door"
    push_door = "push_door"
    glass_shelf = "glass_shelf"
    pegboard = "pegboard"


class HandleType(str, Enum):
    vertical_bar = "vertical_bar"
    horizontal_bar = "horizontal_bar"
    knob = "knob"
    recessed = "recessed"


class PlinthType(str, Enum):
    none = "none"
    metal = "metal"
    wood = "wood"


class DoorType(str, Enum):
    none = "none"
    single = "single"
    double = "double"


class DoorSide(str, Enum):
    left = "left"
    right = "right"


DOOR_CONTENTS = frozenset(
    {
        ZoneContent.door,
        ZoneContent.door_right,
        ZoneContent.door_double,
        ZoneContent.mirror_door,
        ZoneContent.push_door,
    }
)
DRAWER_CONTENTS = frozenset({ZoneContent.drawer, ZoneContent.push_drawer})

# Leaf doors that count as "zone doors" and suppress the global door.
ZONE_DOOR_CONTENTS = frozenset({ZoneContent.door, ZoneContent.door_right, ZoneContent.door_double})


# =========================
# Aliases / Canonicalization
# =========================

def _canon(s: str) -> str:
    s = s.strip().lower()
    s = s.replace("-", "_")
    s = re.sub(r"\s+", "_", s)
    return s


def _enum_text(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def material_key(name: Any) -> str:
    """Normalize a finish/material label into a pricing table key ("Aggloméré" -> "agglomere")."""
    text = unicodedata.normalize("NFD", str(name or ""))
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Mn")
    return re.sub(r"\s+", "_", text.strip().lower())


ZONE_TYPE_ALIASES = {
    "leaf": "leaf",
    "horizontal": "horizontal",
    "h": "horizontal",
    "vertical": "vertical",
    "v": "vertical",
}

CONTENT_ALIASES = {
    "": "empty",
    "none": "empty",
    "shelf": "empty",
    "shelves": "empty",
    "mirror_door_right": "mirror_door",
    "push_door_right": "push_door",
    "door_left": "door",
    "pushdrawer": "push_drawer",
    "glass": "glass_shelf",
    "wardrobe": "dressing",
}

DOOR_CONTENT_CLEAR = frozenset({"", "none", "empty"})

HANDLE_ALIASES = {
    "bar": "vertical_bar",
    "vertical": "vertical_bar",
    "horizontal": "horizontal_bar",
    "push": "recessed",
}

PLINTH_ALIASES = {
    "": "none",
    "aucun": "none",
    "metal": "metal",
    "métal": "metal",
    "pieds": "metal",
    "wood": "wood",
    "bois": "wood",
    "socle": "wood",
}

DOOR_TYPE_ALIASES = {
    "": "none",
    "simple": "single",
    "double": "double",
}


def _alias(value: Any, table: dict[str, str]) -> Any:
    value = _enum_text(value)
    if value is None:
        return None
    return table.get(_canon(str(value)), _canon(str(value)))


def canonical_content(value: Any) -> ZoneContent:
    """Parse free-text content ("shelf", "push-door-right", ...) into ZoneContent."""
    return ZoneContent(_alias(value, CONTENT_ALIASES) or "empty")


def canonical_handle(value: Any) -> Optional[HandleType]:
    alias = _alias(value, HANDLE_ALIASES)
    if alias in (None, "", "none"):
        return None
    return HandleType(alias)


# =========================
# Colours
# =========================

class ColorRef(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    color_id: Optional[Union[int, str]] = None
    hex: str
    image_url: Optional[str] = None


class ComponentColors(BaseModel):
    """Per-component colour assignments used in multi-colour mode."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    structure: Optional[ColorRef] = None
    drawers: Optional[ColorRef] = None
    doors: Optional[ColorRef] = None
    shelves: Optional[ColorRef] = None
    back: Optional[ColorRef] = None
    base: Optional[ColorRef] = None

    def hex_map(self) -> dict[str, str]:
        return {
            name: ref.hex
            for name in ("structure", "drawers", "doors", "shelves", "back", "base")
            if (ref := getattr(self, name)) is not None
        }


# =========================
# Zone tree
# =========================

class Zone(BaseModel):
    """
    One node of the carcass subdivision tree.

    A node is either a leaf (no children, content set) or a split
    (horizontal / vertical, ordered children, content None).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    type: ZoneType = ZoneType.leaf
    content: Optional[ZoneContent] = None
    door_content: Optional[ZoneContent] = None
    children: Optional[Tuple["Zone", ...]] = None
    split_ratio: Optional[float] = None
    split_ratios: Optional[Tuple[float, ...]] = None
    handle_type: Optional[HandleType] = None
    has_light: bool = False
    has_cable_hole: bool = False
    has_dressing: bool = False
    zone_color: Optional[ColorRef] = None
    glass_shelf_count: Optional[int] = Field(default=None, ge=1, le=5)

    @property
    def is_leaf(self) -> bool:
        return self.type == ZoneType.leaf

    # --- Alias validators (before enum parsing) ---

    @field_validator("content", mode="before")
    @classmethod
    def _v_content(cls, v):
        return _alias(v, CONTENT_ALIASES)

    @field_validator("door_content", mode="before")
    @classmethod
    def _v_door_content(cls, v):
        v = _enum_text(v)
        if v is None or _canon(str(v)) in DOOR_CONTENT_CLEAR:
            return None
        return _alias(v, CONTENT_ALIASES)

    @field_validator("handle_type", mode="before")
    @classmethod
    def _v_handle(cls, v):
        return _alias(v, HANDLE_ALIASES)

    # --- Structural validators ---

    @model_validator(mode="before")
    @classmethod
    def _v_shape(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        zone_type = _alias(data.get("type") or "leaf", ZONE_TYPE_ALIASES)
        children = data.get("children")
        if zone_type == "leaf":
            if children:
                raise ValueError(f"leaf zone {data.get('id')!r} cannot have children")
            data["children"] = None
            if _enum_text(data.get("content")) in (None, ""):
                data["content"] = "empty"
        else:
            if not children:
                raise ValueError(f"{zone_type} zone {data.get('id')!r} requires children")
            data["content"] = None
        data["type"] = zone_type
        return data


Zone.model_rebuild()


def empty_leaf(zone_id: str) -> Zone:
    return Zone(id=zone_id, type=ZoneType.leaf, content=ZoneContent.empty)


# =========================
# Global configuration
# =========================

class GlobalConfig(BaseModel):
    """Carcass-wide options: dimensions, plinth, finish, colours and global door."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    furniture_tag: str = "M1"
    width_mm: int = Field(default=1500, ge=1)
    height_mm: int = Field(default=730, ge=1)
    depth_mm: int = Field(default=500, ge=1)
    height_right_mm: Optional[int] = Field(default=None, ge=1)
    plinth: PlinthType = PlinthType.none
    finish: str = "agglomere"
    color_hex: Optional[str] = None
    selected_color_id: Optional[Union[int, str]] = None
    door_type: DoorType = DoorType.none
    door_side: DoorSide = DoorSide.left
    use_multi_color: bool = False
    component_colors: ComponentColors = Field(default_factory=ComponentColors)
    deleted_panel_ids: Tuple[str, ...] = ()

    @field_validator("furniture_tag", mode="before")
    @classmethod
    def _v_tag(cls, v):
        text = str(v or "").strip()
        return text if re.fullmatch(r"[A-Za-z]+\d*", text) else "M1"

    @field_validator("plinth", mode="before")
    @classmethod
    def _v_plinth(cls, v):
        return _alias(v, PLINTH_ALIASES) or "none"

    @field_validator("door_type", mode="before")
    @classmethod
    def _v_door_type(cls, v):
        return _alias(v, DOOR_TYPE_ALIASES) or "none"

    @field_validator("finish", mode="before")
    @classmethod
    def _v_finish(cls, v):
        return material_key(v) or "agglomere"

    @field_validator("deleted_panel_ids", mode="before")
    @classmethod
    def _v_deleted_panels(cls, v):
        if not v:
            return ()
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError("deleted_panel_ids must be a list of separator ids")
        return tuple(sorted({str(item).strip() for item in v if str(item).strip()}))

    def updated(self, **changes: Any) -> GlobalConfig:
        """Return a validated copy with the given snake_case fields replaced."""
        payload = self.model_dump()
        payload.update(changes)
        return GlobalConfig.model_validate(payload)


# =========================
# Saved configuration record
# =========================

class SavedDimensions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    width: Optional[int] = None
    height: Optional[int] = None
    depth: Optional[int] = None
    height_right: Optional[int] = None


class SavedStyling(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    socle: Optional[PlinthType] = None
    finish: Optional[str] = None
    color: Optional[str] = None
    color_image: Optional[str] = None
    selected_color_id: Optional[Union[int, str]] = None

    @field_validator("socle", mode="before")
    @classmethod
    def _v_socle(cls, v):
        return _alias(v, PLINTH_ALIASES)


class SavedFeatures(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    door_type: Optional[DoorType] = None
    door_side: Optional[DoorSide] = None

    @field_validator("door_type", mode="before")
    @classmethod
    def _v_door_type(cls, v):
        return _alias(v, DOOR_TYPE_ALIASES)


class ConfigData(BaseModel):
    """Rich configuration payload embedded in saved records and catalog models."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    dimensions: SavedDimensions = Field(default_factory=SavedDimensions)
    styling: SavedStyling = Field(default_factory=SavedStyling)
    features: SavedFeatures = Field(default_factory=SavedFeatures)
    advanced_zones: Optional[Zone] = None
    use_multi_color: Optional[bool] = None
    component_colors: Optional[ComponentColors] = None
    deleted_panel_ids: Tuple[str, ...] = ()

    def apply_to(self, config: GlobalConfig) -> GlobalConfig:
        changes: dict[str, Any] = {}
        dims = self.dimensions
        for field_name, value in (
            ("width_mm", dims.width),
            ("height_mm", dims.height),
            ("depth_mm", dims.depth),
            ("height_right_mm", dims.height_right),
        ):
            if value is not None and value > 0:
                changes[field_name] = value
        if self.styling.socle is not None:
            changes["plinth"] = self.styling.socle
        if self.styling.finish:
            changes["finish"] = self.styling.finish
        if self.styling.color:
            changes["color_hex"] = self.styling.color
        if self.styling.selected_color_id is not None:
            changes["selected_color_id"] = self.styling.selected_color_id
        if self.features.door_type is not None:
            changes["door_type"] = self.features.door_type
        if self.features.door_side is not None:
            changes["door_side"] = self.features.door_side
        if self.use_multi_color is not None:
            changes["use_multi_color"] = self.use_multi_color
        if self.component_colors is not None:
            changes["component_colors"] = self.component_colors
        if self.deleted_panel_ids:
            changes["deleted_panel_ids"] = self.deleted_panel_ids
        if not changes:
            return config
        return config.updated(**changes)

    @classmethod
    def from_state(cls, config: GlobalConfig, root: Zone) -> ConfigData:
        return cls(
            dimensions=SavedDimensions(
                width=config.width_mm,
                height=config.height_mm,
                depth=config.depth_mm,
                height_right=config.height_right_mm,
            ),
            styling=SavedStyling(
                socle=config.plinth,
                finish=config.finish,
                color=config.color_hex,
                selected_color_id=config.selected_color_id,
            ),
            features=SavedFeatures(door_type=config.door_type, door_side=config.door_side),
            advanced_zones=root,
            use_multi_color=config.use_multi_color,
            component_colors=config.component_colors,
            deleted_panel_ids=config.deleted_panel_ids,
        )


class SavedConfiguration(BaseModel):
    """Named configuration as stored by the saved-configuration service."""

    id: Optional[Union[int, str]] = None
    name: str = ""
    model_id: Optional[Union[int, str]] = None
    prompt: str = ""
    price: Optional[float] = None
    glb_url: Optional[str] = None
    dxf_url: Optional[str] = None
    config_data: Optional[ConfigData] = None

    @field_validator("config_data", mode="before")
    @classmethod
    def _v_config_data(cls, v):
        # The store returns config_data either as an object or as a JSON string.
        if isinstance(v, str):
            if not v.strip():
                return None
            try:
                return json.loads(v)
            except json.JSONDecodeError as exc:
                raise ValueError(f"config_data is not valid JSON: {exc}") from exc
        return v

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> SavedConfiguration:
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
