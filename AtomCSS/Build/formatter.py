import re
from typing import Iterable, List, Sequence, Tuple

from AtomCSS.Build.tables import ResolvedClass

CSS_FORMATS = ("multiLine", "singleLine", "compressed")
MIN_WIDTH = re.compile(r"min-width\s*:\s*([\d.]+)")


def escape_class_name(cls):
    escaped = re.sub(r"([^A-Za-z0-9_-])", r"\\\1", cls)
    # identifiers cannot start with a digit
    if escaped[:1].isdigit():
        escaped = f"\\{ord(escaped[0]):x} {escaped[1:]}"
    return escaped


def unescape_class_name(cls):
    def replace(match):
        if match.group(1):
            return chr(int(match.group(1), 16))
        return match.group(2)

    return re.sub(r"\\([0-9a-fA-F]{1,6}) ?|\\(.)", replace, cls)


def full_selector(resolved: ResolvedClass) -> str:
    selector = "." + escape_class_name(resolved.selector)
    if resolved.pseudo_class:
        selector += ":" + resolved.pseudo_class
    return selector


def _block(selector: str, declarations: Sequence[Tuple[str, str]], css_format: str, indent: str = "") -> str:
    if css_format == "compressed":
        body = ";".join(f"{prop}:{value}" for prop, value in declarations)
        return f"{selector}{{{body}}}"
    if css_format == "singleLine":
        body = "; ".join(f"{prop}: {value}" for prop, value in declarations)
        return f"{selector} {{ {body}; }}"
    lines = [f"{indent}{selector} {{"]
    lines.extend(f"{indent}  {prop}: {value};" for prop, value in declarations)
    lines.append(f"{indent}}}")
    return "\n".join(lines)


def format_rule(resolved: ResolvedClass, css_format: str = "multiLine") -> str:
    selector = full_selector(resolved)
    if not resolved.media_query:
        return _block(selector, resolved.declarations, css_format)
    condition = resolved.media_query
    if css_format == "compressed":
        condition = re.sub(r":\s+", ":", condition)
        return f"@media{condition}{{{_block(selector, resolved.declarations, css_format)}}}"
    if css_format == "singleLine":
        return f"@media {condition} {{ {_block(selector, resolved.declarations, css_format)} }}"
    return f"@media {condition} {{\n{_block(selector, resolved.declarations, css_format, indent='  ')}\n}}"


def _media_width(resolved: ResolvedClass) -> float:
    match = MIN_WIDTH.search(resolved.media_query or "")
    return float(match.group(1)) if match else float("inf")


def sort_rules(rules: Iterable[ResolvedClass]) -> List[ResolvedClass]:
    """Alphabetical, case-insensitive order by selector with @media rules last."""
    rules = list(rules)
    base = [r for r in rules if not r.media_query]
    media = [r for r in rules if r.media_query]
    base.sort(key=lambda r: full_selector(r).lower())
    media.sort(key=lambda r: (_media_width(r), full_selector(r).lower()))
    return base + media


def render_rules(rules: Iterable[ResolvedClass], css_format: str = "multiLine", sort: bool = False) -> str:
    rules = list(rules)
    if sort:
        rules = sort_rules(rules)
    else:
        rules = [r for r in rules if not r.media_query] + [r for r in rules if r.media_query]
    formatted = [format_rule(r, css_format) for r in rules]
    if not formatted:
        return ""
    if css_format == "compressed":
        return "".join(formatted)
    return "\n".join(formatted) + "\n"
