import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from AtomCSS.Build.formatter import CSS_FORMATS
from AtomCSS.Build.tables import RuleTables

logger = logging.getLogger(__name__)

CONFIG_FILE = "atom-config.json"
DEFAULTS_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "atom.json")
WRITE_MODES = ("rewrite", "appendDelta")
TABLE_KEYS = ("atomic_rules", "static_classes", "colors", "breakpoints", "important_flags", "variants",
              "property_units")
COUNT_KEYS = ("unused_report_limit", "debounce_ms", "parse_retries", "failure_warn_threshold")


class ConfigError(Exception):
    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__("Invalid configuration: " + "; ".join(self.violations))


def load_defaults() -> Dict:
    with open(DEFAULTS_FILE, "r", encoding="utf-8") as f:
        return json.load(f)


def create_default_config(path=CONFIG_FILE):
    default_config = {
        "input_paths": ["."],
        "file_types": ["html"],
        "output_file": "style.css",
        "write_mode": "rewrite",
        "css_format": "multiLine",
        "static_classes": {
            "my-button": "background-color: blue; color: white; padding: 10px 20px; border-radius: 5px;",
            "my-container": "max-width: 960px; margin: 0 auto; padding: 20px;",
        },
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(default_config, f, indent=4)
    logger.info("Created default config file: %s", path)


def merge_config(defaults: Dict, overrides: Dict) -> Dict:
    merged = dict(defaults)
    for key, value in overrides.items():
        if key in TABLE_KEYS and isinstance(value, dict) and isinstance(merged.get(key), dict):
            table = dict(merged[key])
            table.update(value)
            merged[key] = table
        else:
            merged[key] = value
    return merged


def load_config(path=CONFIG_FILE, include_config=True) -> Dict:
    """Returns the shipped defaults with the user file (if any) merged on top.

    A malformed user file raises ConfigError; a missing one is not an error.
    """
    config = load_defaults()
    if not include_config:
        return config
    if not os.path.exists(path):
        logger.debug("No config file at %s, using defaults", path)
        return config
    try:
        with open(path, "r", encoding="utf-8") as f:
            user_config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError([f"{path}: {e}"]) from e
    if not isinstance(user_config, dict):
        raise ConfigError([f"{path}: top level must be an object"])
    return merge_config(config, user_config)


def _is_str_list(value):
    return isinstance(value, list) and all(isinstance(v, str) and v for v in value)


def _is_count(value):
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_config(config: Dict) -> List[str]:
    violations = []
    if not config.get("input_paths") or not _is_str_list(config.get("input_paths")):
        violations.append("input_paths must be a non-empty list of paths")
    if not config.get("file_types") or not _is_str_list(config.get("file_types")):
        violations.append("file_types must be a non-empty list of extensions")
    if not isinstance(config.get("output_file"), str) or not config.get("output_file"):
        violations.append("output_file is required")
    if not isinstance(config.get("base_unit", "px"), str):
        violations.append("base_unit must be a string")
    ratio = config.get("unit_conversion")
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or ratio <= 0:
        violations.append("unit_conversion must be a positive number")
    if config.get("css_format") not in CSS_FORMATS:
        violations.append(f"css_format must be one of {', '.join(CSS_FORMATS)}")
    if config.get("write_mode") not in WRITE_MODES:
        violations.append(f"write_mode must be one of {', '.join(WRITE_MODES)}")
    elif config.get("write_mode") == "appendDelta" and not config.get("rebuild_on_start"):
        violations.append("write_mode appendDelta requires rebuild_on_start")
    for key in COUNT_KEYS:
        if key in config and not _is_count(config[key]):
            violations.append(f"{key} must be a non-negative integer")
    if not isinstance(config.get("style_block_types", []), list) or not all(
            isinstance(t, str) for t in config.get("style_block_types", [])):
        violations.append("style_block_types must be a list of extensions")
    common = config.get("common_css_path")
    if common is not None and (not isinstance(common, str) or not common):
        violations.append("common_css_path must be a path or null")
    tables = {}
    for key in TABLE_KEYS:
        value = config.get(key, {})
        if isinstance(value, dict):
            tables[key] = value
        else:
            violations.append(f"{key} must be an object")
            tables[key] = {}
    for prefix, rule in tables["atomic_rules"].items():
        if not isinstance(rule, dict) or not _is_str_list(rule.get("properties")) or not rule.get("properties"):
            violations.append(f"atomic rule '{prefix}' needs a non-empty properties list")
    for name, entry in tables["static_classes"].items():
        if isinstance(entry, dict):
            if not isinstance(entry.get("property"), str) or not entry.get("property"):
                violations.append(f"color family '{name}' needs a property")
            elif not isinstance(entry.get("colors", {}), dict):
                violations.append(f"color family '{name}' colors must be an object")
        elif not isinstance(entry, str):
            violations.append(f"static class '{name}' must be a declaration string")
    for name, value in tables["colors"].items():
        if not isinstance(value, str):
            violations.append(f"color '{name}' must be a string")
    for name, value in tables["breakpoints"].items():
        if not isinstance(value, str):
            violations.append(f"breakpoint '{name}' must be a string")
    for prop, unit in tables["property_units"].items():
        if not isinstance(unit, str):
            violations.append(f"property_units.{prop} must be a unit string")
    for kind, names in tables["variants"].items():
        if not _is_str_list(names):
            violations.append(f"variants.{kind} must be a list of names")
    responsive = tables["variants"].get("responsive", [])
    for variant in responsive if isinstance(responsive, list) else []:
        if variant not in tables["breakpoints"]:
            violations.append(f"responsive variant '{variant}' has no breakpoint")
    for kind, flags in tables["important_flags"].items():
        if not isinstance(flags, list) or not all(isinstance(f, str) and f for f in flags):
            violations.append(f"important_flags.{kind} must be a list of non-empty strings")
    return violations


@dataclass
class Settings:
    input_paths: List[str]
    file_types: List[str]
    output_file: str
    tables: RuleTables
    base_unit: str = "px"
    property_units: Dict[str, str] = field(default_factory=dict)
    unit_conversion: float = 1
    css_format: str = "multiLine"
    sort_classes: bool = False
    write_mode: str = "rewrite"
    incremental_only_add: bool = False
    rebuild_on_start: bool = True
    unused_report_limit: int = 200
    debounce_ms: int = 300
    parse_retries: int = 3
    failure_warn_threshold: int = 3
    style_block_types: tuple = ("vue",)
    common_css_path: Optional[str] = None
    config_path: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict, config_path=None) -> "Settings":
        violations = validate_config(config)
        if violations:
            raise ConfigError(violations)
        return cls(
            input_paths=list(config["input_paths"]),
            file_types=[t.lstrip(".").lower() for t in config["file_types"]],
            output_file=config["output_file"],
            tables=RuleTables.from_config(config),
            base_unit=config.get("base_unit", "px"),
            property_units=dict(config.get("property_units", {})),
            unit_conversion=config["unit_conversion"],
            css_format=config["css_format"],
            sort_classes=bool(config.get("sort_classes", False)),
            write_mode=config["write_mode"],
            incremental_only_add=bool(config.get("incremental_only_add", False)),
            rebuild_on_start=bool(config.get("rebuild_on_start", True)),
            unused_report_limit=int(config.get("unused_report_limit", 200)),
            debounce_ms=int(config.get("debounce_ms", 300)),
            parse_retries=int(config.get("parse_retries", 3)),
            failure_warn_threshold=int(config.get("failure_warn_threshold", 3)),
            style_block_types=tuple(t.lstrip(".").lower() for t in config.get("style_block_types", ())),
            common_css_path=config.get("common_css_path"),
            config_path=os.path.abspath(config_path) if config_path else None,
        )

    @classmethod
    def load(cls, path=CONFIG_FILE, include_config=True, **overrides) -> "Settings":
        config = load_config(path, include_config)
        config.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_config(config, path if include_config else None)
