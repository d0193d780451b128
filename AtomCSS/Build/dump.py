import asyncio
import logging
import os
import re
from typing import Set, Tuple

from AtomCSS.Build.formatter import unescape_class_name

logger = logging.getLogger(__name__)

BASE_START = "/* ATOMCSS:BASE_START */"
BASE_END = "/* ATOMCSS:BASE_END */"
DELTA_START = "/* ATOMCSS:DELTA_START */"

COMMENT = re.compile(r"/\*.*?\*/", re.S)
SELECTOR_BLOCK = re.compile(r"([^{}]*)\{")
CLASS_NAME = re.compile(r"\.((?:\\[0-9a-fA-F]{1,6} |\\.|[A-Za-z0-9_-])+)")


def _ensure_parent(path):
    output_dir = os.path.dirname(path)
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)


def write_css(path, css):
    _ensure_parent(path)
    with open(path, "w", encoding="utf-8") as f:
        f.write(css)


def write_base(path, css):
    """Writes the startup render followed by the marker that delta appends go after."""
    _ensure_parent(path)
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"{BASE_START}\n{css.strip()}\n{BASE_END}\n{DELTA_START}\n")


def append_css(path, css):
    fragment = css.strip()
    if not fragment:
        return 0
    _ensure_parent(path)
    with open(path, "a", encoding="utf-8") as f:
        f.write(fragment + "\n")
    return len(fragment)


def extract_classes(css: str) -> Tuple[Set[str], Set[str]]:
    """Recovers class names from previously generated CSS.

    Returns (dynamic, static): hyphenated names are treated as dynamic, the
    rest as static. Only selector text is inspected, at-rule preludes and
    declaration blocks are skipped.
    """
    dynamic, static = set(), set()
    for match in SELECTOR_BLOCK.finditer(COMMENT.sub("", css)):
        selector = match.group(1).strip()
        if not selector or selector.startswith("@"):
            continue
        for raw in CLASS_NAME.findall(selector):
            if raw[0].isdigit():
                continue
            name = unescape_class_name(raw)
            (dynamic if "-" in name else static).add(name)
    return dynamic, static


def _read_text(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def read_common_css(path) -> str:
    """Contents of the shared stylesheet placed ahead of generated rules, empty when missing."""
    try:
        return _read_text(path).strip()
    except FileNotFoundError:
        logger.warning("Common CSS file %s not found, skipping", path)
        return ""


async def recover_baseline(path) -> Tuple[Set[str], Set[str]]:
    try:
        css = await asyncio.to_thread(_read_text, path)
    except FileNotFoundError:
        logger.debug("No previous output at %s, starting without a baseline", path)
        return set(), set()
    dynamic, static = extract_classes(css)
    logger.info("Recovered %d classes from %s", len(dynamic) + len(static), path)
    return dynamic, static
