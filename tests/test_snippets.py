"""Snippet scanner: declaration detection and block boundaries per language."""
import pytest

from memoria.indexer.snippets import (
    RegexSymbolDetector,
    SnippetScanner,
    detect_language,
    detector_for,
    extract_snippets,
    is_code_language,
    register_detector,
)


def _spans(snippets):
    return [(s.kind, s.symbol, s.start_line, s.end_line) for s in snippets]


class TestLanguageDetection:
    @pytest.mark.parametrize("path,language", [
        ("src/app.py", "python"),
        ("web/index.TSX", "typescript"),
        ("lib/Main.java", "java"),
        ("notes/README.md", "markdown"),
        ("Makefile", "text"),
        ("data.unknown", "text"),
    ])
    def test_by_extension(self, path, language):
        assert detect_language(path) == language

    def test_code_languages(self):
        assert is_code_language("python")
        assert is_code_language("json")
        assert not is_code_language("markdown")
        assert not is_code_language("text")


class TestPythonBlocks:
    def test_docstring_with_column_zero_text(self):
        source = (
            "def greet(name):\n"
            '    """Say hello.\n'
            "\n"
            "Args at column zero inside the docstring.\n"
            '    """\n'
            '    return f"hello {name}"\n'
            "\n"
            "\n"
            "class Greeter:\n"
            "    def hi(self):\n"
            '        return greet("x")\n'
            "\n"
            'VERSION = "1.0"\n'
        )
        snippets = extract_snippets(source, "python")
        assert _spans(snippets) == [
            ("function", "greet", 1, 6),
            ("class", "Greeter", 9, 11),
            ("variable", "VERSION", 13, 13),
        ]
        assert snippets[0].content.endswith('return f"hello {name}"')

    def test_multiline_signature(self):
        source = "def build(\n    name,\n    size=3,\n):\n    return name * size\nx = 1\n"
        assert _spans(extract_snippets(source, "python")) == [
            ("function", "build", 1, 5),
            ("variable", "x", 6, 6),
        ]

    def test_multiline_variable(self):
        source = 'CONFIG = {\n    "a": 1,\n}\ndef f():\n    pass\n'
        assert _spans(extract_snippets(source, "python")) == [
            ("variable", "CONFIG", 1, 3),
            ("function", "f", 4, 5),
        ]

    def test_module_docstring_is_not_scanned(self):
        source = (
            '"""Module helpers.\n'
            "\n"
            "Example:\n"
            "    result = compute(3)\n"
            '"""\n'
            "\n"
            "def compute(n):\n"
            "    return n * 2\n"
            '"""One line."""\n'
            "LIMIT = 3\n"
        )
        assert _spans(extract_snippets(source, "python")) == [
            ("function", "compute", 7, 8),
            ("variable", "LIMIT", 10, 10),
        ]

    def test_async_def_and_comparison(self):
        source = "async def fetch():\n    return 1\nif x == 1:\n    pass\n"
        assert _spans(extract_snippets(source, "python")) == [("function", "fetch", 1, 2)]


class TestBraceBlocks:
    def test_one_line_function(self):
        snippets = extract_snippets("function add(a, b) { return a + b; }", "javascript")
        assert _spans(snippets) == [("function", "add", 1, 1)]

    def test_nested_class_then_const(self):
        source = (
            "class Counter {\n"
            "  constructor() {\n"
            "    this.n = 0;\n"
            "  }\n"
            "}\n"
            "const c = new Counter();\n"
        )
        assert _spans(extract_snippets(source, "javascript")) == [
            ("class", "Counter", 1, 5),
            ("variable", "c", 6, 6),
        ]

    def test_async_function_name(self):
        source = "async function load(url) {\n  return fetch(url);\n}\n"
        assert _spans(extract_snippets(source, "javascript")) == [("function", "load", 1, 3)]

    def test_rust_struct_and_impl(self):
        source = (
            "struct Point {\n"
            "    x: i32,\n"
            "}\n"
            "impl Point {\n"
            "    fn new() -> Self {\n"
            "        Point { x: 0 }\n"
            "    }\n"
            "}\n"
        )
        assert _spans(extract_snippets(source, "rust")) == [
            ("class", "Point", 1, 3),
            ("class", "Point", 4, 8),
        ]

    def test_semicolon_declaration_is_one_line(self):
        source = "int size();\nint total() {\n  return 0;\n}\n"
        assert _spans(extract_snippets(source, "java")) == [
            ("function", "size", 1, 1),
            ("function", "total", 2, 4),
        ]

    def test_unknown_language_uses_javascript_patterns(self):
        source = "function foo() {\n  return 1;\n}\n"
        assert _spans(SnippetScanner("kotlin").scan(source)) == [("function", "foo", 1, 3)]

    def test_end_of_file_flushes_open_block(self):
        source = "function broken() {\n  let x = 1;\n"
        snippets = extract_snippets(source, "javascript")
        assert _spans(snippets) == [("function", "broken", 1, 2)]
        assert snippets[0].content == "function broken() {\n  let x = 1;"

    def test_no_declarations(self):
        assert extract_snippets("just some prose\nwith two lines", "javascript") == []


class TestDetectors:
    def test_detector_is_cached(self):
        assert detector_for("go") is detector_for("go")

    def test_regex_detector_returns_last_group(self):
        detector = RegexSymbolDetector.for_language("java")
        assert detector.detect("    public static void main(String[] args) {") == ("function", "main")
        assert detector.detect("// nothing here") is None

    def test_register_custom_detector(self):
        class EverythingIsAFunction:
            def detect(self, line):
                return ("function", "anon") if line.strip() else None

        register_detector("toylang-test", EverythingIsAFunction())
        snippets = SnippetScanner("toylang-test").scan("a;\nb;")
        assert _spans(snippets) == [("function", "anon", 1, 1), ("function", "anon", 2, 2)]
