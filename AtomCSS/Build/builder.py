import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from AtomCSS.Build.formatter import render_rules
from AtomCSS.Build.parser import ImportantFlagDetector, split_variants
from AtomCSS.Build.tables import AXES, DARK_MEDIA, STATE_PSEUDOS, AtomicRule, ResolvedClass, RuleTables

logger = logging.getLogger(__name__)

UNITLESS = {"opacity", "z-index", "line-height", "font-weight", "flex", "flex-grow", "flex-shrink", "order"}
NUMBER = re.compile(r"^-?\d+(?:\.\d+)?$")
WITH_UNIT = re.compile(r"^-?\d*\.?\d+(?:[a-zA-Z]+|%)$")
HEX = re.compile(r"^hex-([0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def format_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def parse_declarations(block: str) -> List[Tuple[str, str]]:
    declarations = []
    for part in block.split(";"):
        prop, sep, value = part.partition(":")
        if sep and prop.strip() and value.strip():
            declarations.append((prop.strip(), value.strip()))
    return declarations


def _parse_alpha(alpha: str) -> Optional[float]:
    if "_" in alpha:
        alpha = alpha.replace("_", ".", 1)
    elif re.match(r"^\d{2}$", alpha):
        number = int(alpha)
        return number / 10 if number < 10 else number / 100
    try:
        return float(alpha)
    except ValueError:
        return None


def parse_color(value: str) -> Optional[str]:
    match = HEX.match(value)
    if match:
        return "#" + match.group(1)
    parts = value.split("-")
    if parts[0] == "rgb" and len(parts) == 4:
        channels = parts[1:]
        alpha = None
    elif parts[0] == "rgba" and len(parts) == 5:
        channels = parts[1:4]
        alpha = _parse_alpha(parts[4])
        if alpha is None or not 0 <= alpha <= 1:
            return None
    else:
        return None
    if not all(c.isdigit() and 0 <= int(c) <= 255 for c in channels):
        return None
    rgb = ", ".join(str(int(c)) for c in channels)
    if alpha is None:
        return f"rgb({rgb})"
    return f"rgba({rgb}, {format_number(alpha)})"


class ClassResolver:
    """Turns class tokens into ResolvedClass objects using the rule tables.

    Tokens that cannot be resolved (unknown prefix, bad axis, a value that is
    neither numeric nor a color) resolve to None; callers simply drop them.
    """

    def __init__(self, tables: RuleTables, base_unit: str = "px", unit_conversion: float = 1,
                 property_units: Optional[Dict[str, str]] = None):
        self.tables = tables
        self.base_unit = base_unit
        self.property_units = dict(property_units or {})
        self.unit_conversion = unit_conversion
        self.detector = ImportantFlagDetector(tables.important_flags)
        self._prefixes = tables.known_prefixes()

    def split_prefix(self, base: str) -> Optional[Tuple[str, str]]:
        for prefix in self._prefixes:
            if base.startswith(prefix + "-"):
                value = base[len(prefix) + 1:]
                if value and "-" not in value:
                    return prefix, value
        dash = base.find("-")
        if 0 < dash < len(base) - 1:
            return base[:dash], base[dash + 1:]
        return None

    def convert_value(self, value: str, rule: AtomicRule, prop: str) -> Optional[str]:
        if rule.fixed_value is not None:
            return rule.fixed_value
        if value in self.tables.colors:
            return self.tables.colors[value]
        if WITH_UNIT.match(value):
            return value
        if not NUMBER.match(value):
            return None
        if rule.skip_conversion:
            if value == "0":
                return "0"
            size = value
            # legacy: "08" means 0.8
            if value.isdigit() and value[0] == "0" and len(value) > 1:
                size = "0." + value[1:]
            return f"{size}{rule.unit or ''}"
        number = float(value)
        if prop in UNITLESS or rule.unit == "":
            if prop == "opacity" and number > 1:
                number /= 100
            return format_number(number)
        unit = rule.unit if rule.unit is not None else self.property_units.get(prop, self.base_unit)
        return format_number(number * self.unit_conversion) + unit

    def _static_declarations(self, base: str, extra_static: Optional[Dict[str, str]]) -> Optional[List[Tuple[str, str]]]:
        block = self.tables.static_classes.get(base)
        if block is None and extra_static:
            block = extra_static.get(base)
        if block is None:
            return None
        return parse_declarations(block) or None

    def _dynamic_declarations(self, base: str) -> Optional[List[Tuple[str, str]]]:
        split = self.split_prefix(base)
        if split is None:
            return None
        prefix, value = split
        family = self.tables.color_families.get(prefix)
        if family is not None:
            color = family.colors.get(value) or parse_color(value)
            if color:
                return [(family.property, color)]
        rule = self.tables.atomic_rules.get(prefix)
        axis = None
        if rule is None:
            rule = self.tables.atomic_rules.get(prefix[:-1])
            axis = prefix[-1:]
            if rule is None or not rule.axes or axis not in AXES:
                return None
        declarations = []
        for prop in rule.expand(axis):
            converted = self.convert_value(value, rule, prop)
            if converted is None:
                return None
            declarations.append((prop, converted))
        return declarations

    def resolve(self, token: str, extra_static: Optional[Dict[str, str]] = None) -> Optional[ResolvedClass]:
        clean, important = self.detector.strip(token)
        responsive, states, dark, base = split_variants(clean, self.tables.variants)
        if not base:
            return None
        declarations = self._static_declarations(base, extra_static) or self._dynamic_declarations(base)
        if not declarations:
            logger.debug("Skipping unresolvable class %s", token)
            return None
        if important:
            declarations = [(prop, f"{value} !important") for prop, value in declarations]
        media = []
        if responsive:
            breakpoint = self.tables.variants.breakpoints.get(responsive)
            if breakpoint:
                media.append(f"(min-width: {breakpoint})")
            else:
                logger.warning("No breakpoint configured for variant %s", responsive)
        if dark:
            media.append(DARK_MEDIA)
        pseudo = ":".join(STATE_PSEUDOS.get(state, state) for state in states)
        return ResolvedClass(
            selector=token,
            declarations=declarations,
            pseudo_class=pseudo or None,
            media_query=" and ".join(media) or None,
            important=important,
        )

    def resolve_many(self, tokens: Iterable[str], extra_static: Optional[Dict[str, str]] = None) -> List[ResolvedClass]:
        resolved = []
        seen = set()
        for token in tokens:
            if token in seen:
                continue
            seen.add(token)
            result = self.resolve(token, extra_static)
            if result is not None:
                resolved.append(result)
        return resolved


def generate_css(classes: Iterable[str], resolver: ClassResolver, css_format: str = "multiLine",
                 sort: bool = False, extra_static: Optional[Dict[str, str]] = None) -> str:
    return render_rules(resolver.resolve_many(classes, extra_static), css_format, sort)
