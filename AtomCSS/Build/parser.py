import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from AtomCSS.Build.tables import FileClassRecord, ImportantFlags, RuleTables, VariantTable

STYLE_RULE = re.compile(r"([^{}]+)\{([^{}]*)\}")
SINGLE_CLASS = re.compile(r"\.(-?[A-Za-z_][\w-]*)")
COMMENT = re.compile(r"/\*.*?\*/", re.S)


class ImportantFlagDetector:
    """Strips important markers from class tokens.

    Prefix flags are tried first, then suffix flags, then custom substrings;
    the first match wins and only that marker is removed.
    """

    def __init__(self, flags: ImportantFlags):
        self.flags = flags

    def strip(self, token: str) -> Tuple[str, bool]:
        for flag in self.flags.prefix:
            if flag and token.startswith(flag) and len(token) > len(flag):
                return token[len(flag):], True
        for flag in self.flags.suffix:
            if flag and token.endswith(flag) and len(token) > len(flag):
                return token[: -len(flag)], True
        for flag in self.flags.custom:
            if flag and flag in token and token != flag:
                return token.replace(flag, "", 1), True
        return token, False


def split_variants(token: str, variants: VariantTable) -> Tuple[Optional[str], List[str], bool, str]:
    parts = token.split(":")
    responsive = None
    states = []
    dark = False
    i = 0
    while i < len(parts) - 1:
        part = parts[i]
        if responsive is None and part in variants.responsive:
            responsive = part
        elif part in variants.states:
            states.append(part)
        elif part in variants.dark:
            dark = True
        else:
            break
        i += 1
    return responsive, states, dark, ":".join(parts[i:])


def extract_class_tokens(markup: str) -> List[str]:
    soup = BeautifulSoup(markup, "html.parser")
    tokens = []
    seen = set()
    for tag in soup.find_all(class_=True):
        value = tag.get("class")
        if isinstance(value, str):
            value = value.split()
        for token in value or ():
            if token not in seen:
                seen.add(token)
                tokens.append(token)
    return tokens


def extract_style_rules(markup: str) -> Dict[str, str]:
    soup = BeautifulSoup(markup, "html.parser")
    rules = {}
    for style in soup.find_all("style"):
        text = COMMENT.sub("", style.get_text())
        depth, pos = 0, 0
        for match in STYLE_RULE.finditer(text):
            depth += text.count("{", pos, match.start()) - text.count("}", pos, match.start())
            pos = match.end()
            # only top-level rules whose whole selector is one class
            single = SINGLE_CLASS.fullmatch(match.group(1).strip())
            body = match.group(2).strip()
            if depth == 0 and single and body:
                rules[single.group(1)] = body if body.endswith(";") else body + ";"
    return rules


def parse_markup(markup: str, tables: RuleTables, file_path: str = "", style_blocks: bool = False) -> FileClassRecord:
    detector = ImportantFlagDetector(tables.important_flags)
    style_rules = extract_style_rules(markup) if style_blocks else {}
    record = FileClassRecord(file_path=file_path, style_rules=style_rules)
    for token in extract_class_tokens(markup):
        clean, _ = detector.strip(token)
        base = split_variants(clean, tables.variants)[3]
        if base in tables.static_classes or base in style_rules:
            record.static_classes.append(token)
        elif "-" in base:
            record.dynamic_classes.append(token)
    for name in style_rules:
        if name not in record.static_classes:
            record.static_classes.append(name)
    return record
