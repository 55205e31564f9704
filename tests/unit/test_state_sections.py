# pylint: disable=missing-module-docstring,missing-function-docstring

from state_store.sections import is_heading, merge_sections, parse_sections


def test_is_heading_requires_hash_and_text() -> None:
    assert is_heading("# Title")
    assert is_heading("### Deep")
    assert not is_heading("#")
    assert not is_heading("plain # text")


def test_parse_sections_drops_preamble_and_keeps_order() -> None:
    content = "preamble\n# Root\nroot body\n## A\nalpha\n## B\nbeta"

    sections = parse_sections(content)

    assert list(sections) == ["# Root", "## A", "## B"]
    assert sections["## A"] == "alpha"
    assert "preamble" not in "".join(sections.values())


def test_merge_keeps_base_section_and_appends_new_ones() -> None:
    """
    First write wins:
    - a header already present keeps the older body
    - unseen headers are appended
    """
    full = "# Root\n\n## A\nalpha\n\n## B\nbeta"
    partial = "## B\nnew body\n\n## C\ngamma"

    merged = parse_sections(merge_sections(full, partial))

    assert list(merged) == ["# Root", "## A", "## B", "## C"]
    assert merged["## A"].strip() == "alpha"
    assert merged["## B"].strip() == "beta"
    assert merged["## C"].strip() == "gamma"
    assert "new body" not in merge_sections(full, partial)


def test_merge_with_empty_newer_is_stable() -> None:
    base = "## A\nalpha"
    assert parse_sections(merge_sections(base, "")) == parse_sections(base)
