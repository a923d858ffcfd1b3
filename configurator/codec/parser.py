"""Prompt string -> (GlobalConfig fragment, Zone) by recursive descent.

Grammar::

    prompt    := header flags node?
    header    := TAG '(' INT ',' INT ',' INT [',' INT] ')'
    flags     := { 'E' | 'b' | 'F' | 'S2' | 'S' | global_door }
    node      := split | door_node | leaf
    split     := ('H' | 'V') ['I'] (INT | '[' NUM {',' NUM} ']') '(' node {',' node} ')'
    door_node := (DOOR | 'G') [DIGIT] '(' node ')'
    leaf      := [DOOR [DIGIT]] [CONTENT [DIGIT]] ['c'] ['D']

A door token in the flags segment is the global door only when it is
followed by the end of input, another flag or a split prefix.

Decoding never raises: a child that cannot be parsed becomes an empty leaf,
a missing header leaves the dimensions unset and trailing text is ignored.
Every degradation is reported as an issue and a diagnostics event.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from configurator.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, emit_simple
from configurator.schema import (
    DoorSide,
    DoorType,
    GlobalConfig,
    HandleType,
    PlinthType,
    Zone,
    ZoneContent,
    ZoneType,
    empty_leaf,
)
from configurator.zones.tree import ROOT_ID, child_panel_path, is_drawer_stack, separator_ids

_HEADER_RE = re.compile(r"\s*([A-Za-z]+\d*)\((\d+),(\d+),(\d+)(?:,(\d+))?\)")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_INT_RE = re.compile(r"\d+")

# Longest tokens first so that "P2" wins over "P".
DOOR_TOKENS = ("P2", "Pm", "Po", "Pd", "Pg", "P")
DOOR_TOKEN_CONTENT: dict[str, ZoneContent] = {
    "P2": ZoneContent.door_double,
    "Pm": ZoneContent.mirror_door,
    "Po": ZoneContent.push_door,
    "Pd": ZoneContent.door_right,
    "Pg": ZoneContent.door,
    "P": ZoneContent.door,
}
GLOBAL_DOOR_TOKENS = {
    "P2": (DoorType.double, DoorSide.left),
    "Pd": (DoorType.single, DoorSide.right),
    "Pg": (DoorType.single, DoorSide.left),
    "P": (DoorType.single, DoorSide.left),
}
HANDLE_BY_CODE: dict[str, HandleType] = {
    "1": HandleType.vertical_bar,
    "2": HandleType.horizontal_bar,
    "3": HandleType.knob,
    "4": HandleType.recessed,
}
_SIMPLE_FLAGS = ("E", "b", "F")
_GLOBAL_DOOR_FOLLOWERS = frozenset("EbFSHVP")


class PromptSyntaxError(ValueError):
    """Raised internally for an unparseable prompt segment."""


@dataclass(frozen=True)
class PromptFragment:
    """The part of GlobalConfig carried by a prompt."""

    furniture_tag: Optional[str] = None
    width_mm: Optional[int] = None
    depth_mm: Optional[int] = None
    height_mm: Optional[int] = None
    height_right_mm: Optional[int] = None
    plinth: PlinthType = PlinthType.none
    door_type: DoorType = DoorType.none
    door_side: DoorSide = DoorSide.left
    deleted_panel_ids: tuple[str, ...] = ()

    @property
    def has_header(self) -> bool:
        return self.width_mm is not None

    def apply_to(self, config: GlobalConfig) -> GlobalConfig:
        changes: dict[str, Any] = {
            "plinth": self.plinth,
            "door_type": self.door_type,
            "door_side": self.door_side,
            "deleted_panel_ids": self.deleted_panel_ids,
        }
        if self.has_header:
            changes.update(
                furniture_tag=self.furniture_tag,
                width_mm=self.width_mm,
                depth_mm=self.depth_mm,
                height_mm=self.height_mm,
                height_right_mm=self.height_right_mm,
            )
        return config.updated(**changes)


@dataclass(frozen=True)
class DecodedPrompt:
    fragment: PromptFragment
    root: Zone
    issues: tuple[str, ...] = ()

    def to_config(self, base: Optional[GlobalConfig] = None) -> GlobalConfig:
        return self.fragment.apply_to(base or GlobalConfig())


@dataclass
class _PromptParser:
    text: str
    pos: int = 0
    end: int = -1
    issues: list[str] = field(default_factory=list)
    invisible: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.end < 0:
            self.end = len(self.text)

    # --- Token helpers ---

    def at_end(self) -> bool:
        return self.pos >= self.end

    def peek(self) -> str:
        return "" if self.at_end() else self.text[self.pos]

    def startswith(self, token: str) -> bool:
        return self.text.startswith(token, self.pos, self.end)

    def accept(self, token: str) -> bool:
        if self.startswith(token):
            self.pos += len(token)
            return True
        return False

    def expect(self, token: str) -> None:
        if not self.accept(token):
            found = self.text[self.pos : self.pos + 8] or "<end>"
            raise PromptSyntaxError(f"expected {token!r} at {self.pos}, found {found!r}")

    def match(self, pattern: re.Pattern[str]) -> Optional[str]:
        found = pattern.match(self.text, self.pos, self.end)
        if found is None:
            return None
        self.pos = found.end()
        return found.group(0)

    def door_token(self) -> Optional[str]:
        for token in DOOR_TOKENS:
            if self.accept(token):
                return token
        return None

    def handle_digit(self) -> Optional[HandleType]:
        code = self.peek()
        if code in HANDLE_BY_CODE:
            self.pos += 1
            return HANDLE_BY_CODE[code]
        return None

    # --- Prompt sections ---

    def header(self) -> Optional[re.Match[str]]:
        found = _HEADER_RE.match(self.text, self.pos, self.end)
        if found is None:
            self.issues.append("missing dimensions header")
            return None
        self.pos = found.end()
        return found

    def flags(self) -> tuple[PlinthType, DoorType, DoorSide]:
        plinth, door_type, door_side = PlinthType.none, DoorType.none, DoorSide.left
        while not self.at_end():
            if self.accept("S2"):
                plinth = PlinthType.wood
                continue
            if self.accept("S"):
                plinth = PlinthType.metal
                continue
            if self.peek() in _SIMPLE_FLAGS:
                self.pos += 1
                continue
            token = next((t for t in GLOBAL_DOOR_TOKENS if self.startswith(t)), None)
            if token is not None:
                follower_pos = self.pos + len(token)
                follower = self.text[follower_pos] if follower_pos < self.end else ""
                if follower == "" or follower in _GLOBAL_DOOR_FOLLOWERS:
                    door_type, door_side = GLOBAL_DOOR_TOKENS[token]
                    self.pos = follower_pos
                    continue
            break
        return plinth, door_type, door_side

    # --- Tree ---

    def node(self, zone_id: str) -> Zone:
        if self.peek() in ("H", "V"):
            return self.split(zone_id)
        start = self.pos
        token = self.door_token()
        if token is None and self.accept("G"):
            token = "G"
        if token is not None:
            handle = self.handle_digit() if token != "G" else None
            if self.accept("("):
                inner = self.node(zone_id)
                self.expect(")")
                update: dict[str, Any] = {}
                if token != "G":
                    update["door_content"] = DOOR_TOKEN_CONTENT[token]
                if handle is not None:
                    update["handle_type"] = handle
                return inner.model_copy(update=update) if update else inner
            if token == "G":
                raise PromptSyntaxError(f"group without children at {start}")
            self.pos = start
        return self.leaf(zone_id)

    def content(
        self, allow_dressing: bool = True
    ) -> Optional[tuple[ZoneContent, Optional[HandleType], Optional[int]]]:
        if self.accept("To"):
            return ZoneContent.push_drawer, None, None
        if self.accept("T"):
            return ZoneContent.drawer, self.handle_digit(), None
        if allow_dressing and self.accept("D"):
            return ZoneContent.dressing, None, None
        if self.accept("v"):
            digits = self.match(_INT_RE)
            count = max(1, min(5, int(digits))) if digits else 1
            return ZoneContent.glass_shelf, None, (count if count > 1 else None)
        if self.accept("p"):
            return ZoneContent.pegboard, None, None
        return None

    def leaf(self, zone_id: str) -> Zone:
        fields: dict[str, Any] = {"id": zone_id, "type": ZoneType.leaf, "content": ZoneContent.empty}
        token = self.door_token()
        if token is not None:
            fields["handle_type"] = self.handle_digit()
            # A "D" after a door is the dressing overlay, not dressing content.
            parsed = self.content(allow_dressing=False)
            if parsed is not None:
                # Legacy "PgT" form: a door mounted in front of another content.
                fields["door_content"] = DOOR_TOKEN_CONTENT[token]
            else:
                fields["content"] = DOOR_TOKEN_CONTENT[token]
        else:
            parsed = self.content()
        if parsed is not None:
            content, handle, count = parsed
            fields["content"] = content
            if handle is not None:
                fields["handle_type"] = handle
            fields["glass_shelf_count"] = count
        if self.accept("c"):
            fields["has_cable_hole"] = True
        if self.accept("D"):
            fields["has_dressing"] = True
        return Zone.model_validate(fields)

    def ratios(self) -> Optional[list[float]]:
        if not self.accept("["):
            self.match(_INT_RE)
            return None
        values: list[float] = []
        while True:
            number = self.match(_NUMBER_RE)
            if number is None:
                raise PromptSyntaxError(f"expected ratio at {self.pos}")
            values.append(float(number))
            if self.accept(","):
                continue
            self.expect("]")
            return values

    def child_segments(self) -> list[tuple[int, int]]:
        """Split `(a,b,...)` at depth-0 commas; leaves pos after the closing paren."""
        segments: list[tuple[int, int]] = []
        depth = 0
        start = self.pos
        while self.pos < self.end:
            char = self.text[self.pos]
            if char in "([":
                depth += 1
            elif char in ")]":
                if depth == 0:
                    segments.append((start, self.pos))
                    self.pos += 1
                    return segments
                depth -= 1
            elif char == "," and depth == 0:
                segments.append((start, self.pos))
                start = self.pos + 1
            self.pos += 1
        self.issues.append(f"unterminated child list at {start}")
        segments.append((start, self.end))
        return segments

    def split(self, zone_id: str) -> Zone:
        zone_type = ZoneType.horizontal if self.accept("H") else ZoneType.vertical
        if zone_type == ZoneType.vertical:
            self.expect("V")
        invisible = self.accept("I")
        ratios = self.ratios()
        self.expect("(")
        segments = self.child_segments()
        count = len(segments)
        children: list[Zone] = []
        for emitted_index, (start, stop) in enumerate(segments):
            logical_index = count - 1 - emitted_index if zone_type == ZoneType.horizontal else emitted_index
            children.append(self.child(f"{zone_id}-{logical_index}", start, stop))
        if zone_type == ZoneType.horizontal:
            children.reverse()
            if ratios is not None:
                ratios.reverse()
        fields: dict[str, Any] = {"id": zone_id, "type": zone_type, "children": tuple(children)}
        if ratios is not None:
            if len(ratios) != count:
                self.issues.append(f"{zone_id}: {len(ratios)} ratios for {count} children")
            elif count == 2:
                fields["split_ratio"] = ratios[0]
            elif count > 2:
                fields["split_ratios"] = tuple(ratios)
        if invisible:
            self.invisible.append(zone_id)
        return Zone.model_validate(fields)

    def child(self, zone_id: str, start: int, stop: int) -> Zone:
        sub = _PromptParser(self.text, pos=start, end=stop, issues=self.issues, invisible=self.invisible)
        try:
            zone = sub.node(zone_id)
            if not sub.at_end():
                raise PromptSyntaxError(f"unexpected {self.text[sub.pos:stop]!r} at {sub.pos}")
            return zone
        except (PromptSyntaxError, ValueError) as exc:
            self.issues.append(f"{zone_id}: {exc}")
            return empty_leaf(zone_id)


def _deleted_separators(root: Zone, invisible: list[str]) -> tuple[str, ...]:
    # "I" on a drawer stack is implied; on any other split every separator was removed.
    if not invisible:
        return ()
    wanted = set(invisible)
    deleted: list[str] = []
    stack = [(root, "")]
    while stack:
        zone, path = stack.pop()
        if zone.id in wanted and not is_drawer_stack(zone):
            deleted.extend(separator_ids(zone, path))
        for index, child in enumerate(zone.children or ()):
            stack.append((child, child_panel_path(zone, path, index)))
    return tuple(sorted(deleted))


def decode_prompt(prompt: str, diag: Optional[DiagnosticsSink] = None) -> DecodedPrompt:
    """Parse a prompt back into a config fragment and a zone tree (best effort)."""
    sink = diag or NoopDiagnosticsSink()
    text = str(prompt or "").strip()
    parser = _PromptParser(text)
    header = parser.header()
    plinth, door_type, door_side = parser.flags()

    fragment_fields: dict[str, Any] = {"plinth": plinth, "door_type": door_type, "door_side": door_side}
    if header is not None:
        width, depth, height = (int(header.group(i)) for i in (2, 3, 4))
        if min(width, depth, height) > 0:
            right = int(header.group(5)) if header.group(5) else None
            fragment_fields.update(
                furniture_tag=header.group(1),
                width_mm=width,
                depth_mm=depth,
                height_mm=height,
                height_right_mm=right if right else None,
            )
        else:
            parser.issues.append("non-positive dimensions ignored")

    try:
        root = empty_leaf(ROOT_ID) if parser.at_end() else parser.node(ROOT_ID)
        if not parser.at_end():
            parser.issues.append(f"trailing text ignored: {text[parser.pos:]!r}")
    except (PromptSyntaxError, ValueError, RecursionError) as exc:
        parser.issues.append(f"{ROOT_ID}: {exc}")
        root = empty_leaf(ROOT_ID)

    fragment_fields["deleted_panel_ids"] = _deleted_separators(root, parser.invisible)
    for issue in parser.issues:
        emit_simple(
            sink,
            code="PROMPT_DEGRADED",
            stage="decode",
            component="codec",
            source="prompt",
            severity=Severity.WARN,
            input_value=text,
            reason=issue,
        )
    return DecodedPrompt(fragment=PromptFragment(**fragment_fields), root=root, issues=tuple(parser.issues))
