from AtomCSS.Build.parser import (
    ImportantFlagDetector,
    extract_class_tokens,
    extract_style_rules,
    parse_markup,
    split_variants,
)
from AtomCSS.Build.tables import ImportantFlags


def test_flag_priority_prefix_then_suffix_then_custom():
    detector = ImportantFlagDetector(ImportantFlags(prefix=("!",), suffix=("_i",), custom=("--imp",)))
    assert detector.strip("!w-10") == ("w-10", True)
    assert detector.strip("w-10_i") == ("w-10", True)
    assert detector.strip("w--imp-10") == ("w-10", True)
    assert detector.strip("w-10") == ("w-10", False)
    # only the first matching marker is removed
    assert detector.strip("!w-10_i") == ("w-10_i", True)


def test_bare_flag_is_not_a_flagged_token():
    detector = ImportantFlagDetector(ImportantFlags(prefix=("!",), suffix=("_i",)))
    assert detector.strip("!") == ("!", False)
    assert detector.strip("_i") == ("_i", False)


def test_split_variants(tables):
    assert split_variants("w-10", tables.variants) == (None, [], False, "w-10")
    assert split_variants("lg:hover:focus:w-20", tables.variants) == ("lg", ["hover", "focus"], False, "w-20")
    assert split_variants("hover:md:p-4", tables.variants) == ("md", ["hover"], False, "p-4")
    assert split_variants("dark:bg-black", tables.variants) == (None, [], True, "bg-black")


def test_unknown_variant_stops_the_chain(tables):
    assert split_variants("print:w-10", tables.variants) == (None, [], False, "print:w-10")


def test_extract_class_tokens_handles_quoting_and_self_closing():
    markup = """
    <div class="flex  p-10">
      <img class='w-100 h-50' />
      <span class="flex w-100">x</span>
      <p>no classes</p>
    </div>
    """
    assert extract_class_tokens(markup) == ["flex", "p-10", "w-100", "h-50"]


def test_parse_markup_classifies_tokens(tables):
    record = parse_markup('<div class="flex p-10 w-100_i container sm:hidden"></div>', tables, "a.html")
    assert record.file_path == "a.html"
    assert record.static_classes == ["flex", "sm:hidden"]
    assert record.dynamic_classes == ["p-10", "w-100_i"]


def test_style_block_rules_become_static_classes(tables):
    markup = """
    <template><div class="card p-2"></div></template>
    <style scoped>
    /* card */
    .card { border: 1px solid #ccc; padding: 4px }
    </style>
    """
    assert extract_style_rules(markup) == {"card": "border: 1px solid #ccc; padding: 4px;"}
    record = parse_markup(markup, tables, "Card.vue", style_blocks=True)
    assert record.static_classes == ["card"]
    assert record.dynamic_classes == ["p-2"]
    assert record.style_rules["card"].startswith("border")


def test_style_blocks_ignored_unless_enabled(tables):
    markup = '<div class="card"></div><style>.card { color: red; }</style>'
    record = parse_markup(markup, tables, "page.html")
    assert record.static_classes == []
    assert record.style_rules == {}


def test_only_single_class_selectors_become_style_rules():
    markup = """
    <style>
    .list .item { color: red; }
    .card:hover { color: blue; }
    a.link, .btn { color: green; }
    @media (min-width: 640px) { .wide { width: 100%; } }
    .card { border-radius: 4px; }
    </style>
    """
    assert extract_style_rules(markup) == {"card": "border-radius: 4px;"}
