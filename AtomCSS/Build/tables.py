from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

AXES = {
    "t": ("top",),
    "r": ("right",),
    "b": ("bottom",),
    "l": ("left",),
    "x": ("left", "right"),
    "y": ("top", "bottom"),
}

STATE_PSEUDOS = {
    "hover": "hover",
    "focus": "focus",
    "active": "active",
    "disabled": "disabled",
    "first": "first-child",
    "last": "last-child",
    "odd": "nth-child(odd)",
    "even": "nth-child(even)",
}

DARK_MEDIA = "(prefers-color-scheme: dark)"


@dataclass(frozen=True)
class AtomicRule:
    prefix: str
    properties: Tuple[str, ...]
    unit: Optional[str] = None
    skip_conversion: bool = False
    fixed_value: Optional[str] = None
    axes: bool = False

    def expand(self, axis: Optional[str]) -> Tuple[str, ...]:
        if axis is None:
            return self.properties
        return tuple(f"{prop}-{side}" for prop in self.properties for side in AXES[axis])


@dataclass(frozen=True)
class ColorFamily:
    name: str
    property: str
    colors: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ImportantFlags:
    prefix: Tuple[str, ...] = ()
    suffix: Tuple[str, ...] = ()
    custom: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VariantTable:
    responsive: Tuple[str, ...] = ()
    states: Tuple[str, ...] = ()
    dark: Tuple[str, ...] = ()
    breakpoints: Dict[str, str] = field(default_factory=dict)


@dataclass
class RuleTables:
    atomic_rules: Dict[str, AtomicRule]
    static_classes: Dict[str, str]
    color_families: Dict[str, ColorFamily]
    colors: Dict[str, str]
    important_flags: ImportantFlags
    variants: VariantTable

    @classmethod
    def from_config(cls, config: Dict) -> "RuleTables":
        colors = {str(k): str(v) for k, v in config.get("colors", {}).items() if v}
        atomic_rules = {}
        for prefix, rule in config.get("atomic_rules", {}).items():
            fixed = rule.get("value")
            atomic_rules[prefix] = AtomicRule(
                prefix=prefix,
                properties=tuple(rule.get("properties", ())),
                unit=rule.get("unit"),
                skip_conversion=bool(rule.get("skip_conversion", False)),
                fixed_value=None if fixed is None else str(fixed),
                axes=bool(rule.get("axes", False)),
            )
        static_classes = {}
        color_families = {}
        for name, entry in config.get("static_classes", {}).items():
            if isinstance(entry, dict):
                merged = dict(colors)
                merged.update({str(k): str(v) for k, v in entry.get("colors", {}).items()})
                color_families[name] = ColorFamily(name, entry["property"], merged)
            else:
                static_classes[name] = entry
        flags = config.get("important_flags", {})
        variants = config.get("variants", {})
        return cls(
            atomic_rules=atomic_rules,
            static_classes=static_classes,
            color_families=color_families,
            colors=colors,
            important_flags=ImportantFlags(
                prefix=tuple(flags.get("prefix", ())),
                suffix=tuple(flags.get("suffix", ())),
                custom=tuple(flags.get("custom", ())),
            ),
            variants=VariantTable(
                responsive=tuple(variants.get("responsive", ())),
                states=tuple(variants.get("states", ())),
                dark=tuple(variants.get("dark", ())),
                breakpoints=dict(config.get("breakpoints", {})),
            ),
        )

    def known_prefixes(self) -> List[str]:
        return sorted(set(self.atomic_rules) | set(self.color_families), key=len, reverse=True)


@dataclass
class ResolvedClass:
    selector: str
    declarations: List[Tuple[str, str]]
    pseudo_class: Optional[str] = None
    media_query: Optional[str] = None
    important: bool = False


@dataclass
class FileClassRecord:
    file_path: str
    dynamic_classes: List[str] = field(default_factory=list)
    static_classes: List[str] = field(default_factory=list)
    style_rules: Dict[str, str] = field(default_factory=dict)

    def all_classes(self) -> List[str]:
        return self.dynamic_classes + self.static_classes
