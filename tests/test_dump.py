import asyncio

from AtomCSS.Build.builder import ClassResolver, generate_css
from AtomCSS.Build.dump import (
    BASE_END,
    BASE_START,
    DELTA_START,
    append_css,
    extract_classes,
    recover_baseline,
    write_base,
    write_css,
)


def test_write_css_creates_parent_dirs(tmp_path):
    out = tmp_path / "dist" / "css" / "style.css"
    write_css(str(out), ".w-10{width:10px}")
    assert out.read_text() == ".w-10{width:10px}"


def test_base_block_then_appends(tmp_path):
    out = tmp_path / "style.css"
    write_base(str(out), ".w-10{width:10px}\n")
    assert append_css(str(out), ".p-1{padding:1px}") > 0
    assert append_css(str(out), "   ") == 0
    assert out.read_text().splitlines() == [
        BASE_START,
        ".w-10{width:10px}",
        BASE_END,
        DELTA_START,
        ".p-1{padding:1px}",
    ]


def test_extract_classes_from_generated_css(tables):
    resolver = ClassResolver(tables)
    tokens = ["flex", "w-100_i", "sm:w-10", "hover:p-2", "!m-1", "dark:bg-white", "2xl:w-12"]
    for css_format in ("multiLine", "singleLine", "compressed"):
        css = generate_css(tokens, resolver, css_format)
        dynamic, static = extract_classes(css)
        assert static == {"flex"}
        assert dynamic == {"w-100_i", "sm:w-10", "hover:p-2", "!m-1", "dark:bg-white", "2xl:w-12"}


def test_extract_classes_ignores_comments_and_declarations():
    css = "/* .not-a-class { } */\n.w-10 { width: 10.5px; }\n@media (min-width: 640px) { .p-1 { padding: 1px; } }"
    dynamic, static = extract_classes(css)
    assert dynamic == {"w-10", "p-1"}
    assert static == set()


def test_recover_baseline(tmp_path):
    out = tmp_path / "style.css"
    out.write_text(f"{BASE_START}\n.flex {{ display: flex; }}\n.w-5 {{ width: 5px; }}\n{BASE_END}\n{DELTA_START}\n")
    dynamic, static = asyncio.run(recover_baseline(str(out)))
    assert dynamic == {"w-5"}
    assert static == {"flex"}


def test_recover_baseline_without_output(tmp_path):
    assert asyncio.run(recover_baseline(str(tmp_path / "missing.css"))) == (set(), set())


def test_extract_classes_unescapes_punctuation():
    dynamic, static = extract_classes(".a\\~b{color:red}.w\\=1{width:1px}.bg-\\[x\\]{color:blue}")
    assert static == {"a~b", "w=1"}
    assert dynamic == {"bg-[x]"}
