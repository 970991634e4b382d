"""
Glob matching and file selection tests
"""

import logging

import pytest

from translate_repo_ai.matching import (
    FileSelector,
    TreeEntry,
    build_target_path,
    compile_pattern,
)


@pytest.mark.parametrize(
    "pattern, path, expected",
    [
        ("**/*.md", "README.md", True),
        ("**/*.md", "docs/a/b/README.md", True),
        ("**/*.md", "README.mdx", False),
        ("docs/*.md", "docs/x.md", True),
        ("docs/*.md", "docs/sub/x.md", False),
        ("docs/**", "docs/sub/deep/x.md", True),
        ("docs/**", "documents/x.md", False),
        ("docs/**/*.md", "docs/a/b/x.md", True),
        ("*.md", "README.md", True),
        ("*.md", "docs/README.md", False),
        ("README.?d", "README.md", True),
        ("README.?d", "README.d", False),
        ("?.md", "a/b.md", False),
        ("README.md", "README.md", True),
        ("README.md", "READMEXmd", False),
        ("**/*.MD", "README.md", False),
        ("docs/[abc].md", "docs/b.md", True),
        ("docs/[!abc].md", "docs/b.md", False),
        ("docs/[!abc].md", "docs/d.md", True),
        ("v1.0+/*.md", "v1.0+/notes.md", True),
        ("v1.0+/*.md", "v1x0/notes.md", False),
    ],
)
def test_glob_semantics(pattern, path, expected):
    assert compile_pattern(pattern).matches(path) is expected


def test_patterns_are_anchored():
    matcher = compile_pattern("docs/*.md")
    assert not matcher.matches("x/docs/a.md")
    assert not matcher.matches("docs/a.md.bak")


@pytest.mark.parametrize("pattern", ["", "   ", "docs/[abc.md"])
def test_malformed_patterns_match_nothing(pattern, caplog):
    with caplog.at_level(logging.WARNING, logger="translate_repo_ai.matching"):
        matcher = compile_pattern(pattern)

    assert not matcher.valid
    assert matcher.error
    assert not matcher.matches("docs/a.md")
    assert not matcher.matches("")
    assert "Ignoring" in caplog.text


def test_selector_include_or_semantics():
    selector = FileSelector(["docs/*.md", "*.rst"])
    assert selector.matches("docs/guide.md")
    assert selector.matches("index.rst")
    assert not selector.matches("src/app.py")


def test_selector_exclude_patterns():
    selector = FileSelector(["**/*.md"], ["**/fr/**", "CHANGELOG.md"])
    assert selector.matches("docs/guide.md")
    assert not selector.matches("docs/fr/guide.md")
    assert not selector.matches("CHANGELOG.md")


def test_selector_with_no_patterns_selects_nothing():
    assert not FileSelector([]).matches("README.md")


def test_selector_skips_invalid_patterns_but_keeps_valid_ones():
    selector = FileSelector(["docs/[oops", "**/*.md"])
    assert [m.pattern for m in selector.invalid_patterns] == ["docs/[oops"]
    assert selector.matches("README.md")


def test_select_only_files():
    entries = [
        TreeEntry("docs", type="tree"),
        TreeEntry("docs.md", type="tree"),
        TreeEntry("docs/guide.md"),
        TreeEntry("docs/link.md", mode="120000"),
        TreeEntry("vendor/sub.md", type="commit", mode="160000"),
        TreeEntry("README.md", mode="100644"),
    ]
    selected = FileSelector(["**/*.md"]).select(entries)
    assert [e.path for e in selected] == ["docs/guide.md", "README.md"]


def test_tree_entry_from_api():
    entry = TreeEntry.from_api(
        {"path": "a.md", "type": "blob", "sha": "abc", "size": 3, "mode": "100644"}
    )
    assert entry.is_file
    assert entry.sha == "abc"


@pytest.mark.parametrize(
    "source, style, expected",
    [
        ("docs/guide.md", "directory", "docs/fr/guide.md"),
        ("README.md", "directory", "fr/README.md"),
        ("docs/guide.md", "suffix", "docs/guide.fr.md"),
        ("README.md", "suffix", "README.fr.md"),
        ("LICENSE", "suffix", "LICENSE.fr"),
        (".github/notes", "suffix", ".github/notes.fr"),
    ],
)
def test_build_target_path(source, style, expected):
    assert build_target_path(source, "fr", style) == expected
