"""Unit tests for HTML cleaning and slug helpers."""

import pytest

from feed_ingest.text import (
    SlugAllocator,
    clean_html_content,
    first_image_src,
    make_excerpt,
    slugify,
)


class TestCleanHtmlContent:
    """HTML stripping used for excerpts."""

    @pytest.mark.parametrize(
        "html_input, expected_output",
        [
            ("<p>Simple paragraph</p>", "Simple paragraph"),
            ("<div><h1>Title</h1><p>Content</p></div>", "Title Content"),
            ("<script>alert('xss')</script><p>Safe content</p>", "Safe content"),
            ("<style>body{color:red}</style><p>Styled content</p>", "Styled content"),
            ("Plain text without HTML", "Plain text without HTML"),
            ("<p>Multiple  \n\n  spaces   and\tlines</p>", "Multiple spaces and lines"),
        ],
    )
    def test_cleaning_cases(self, html_input, expected_output):
        assert clean_html_content(html_input) == expected_output

    def test_empty_and_none_content(self):
        assert clean_html_content("") == ""
        assert clean_html_content(None) == ""
        assert clean_html_content("   ") == ""
        assert clean_html_content("<p><br/></p>") == ""

    def test_excerpt_truncates_to_length(self):
        html = "<p>" + "word " * 100 + "</p>"

        excerpt = make_excerpt(html)

        assert len(excerpt) == 200
        assert "<" not in excerpt


class TestFirstImageSrc:
    def test_finds_first_image(self):
        html = (
            '<p>Intro</p><img alt="no source"/>'
            '<img src="https://cdn.example.com/one.png"/>'
            '<img src="https://cdn.example.com/two.png"/>'
        )
        assert first_image_src(html) == "https://cdn.example.com/one.png"

    def test_no_image(self):
        assert first_image_src("<p>No pictures here</p>") is None
        assert first_image_src("") is None
        assert first_image_src(None) is None


class TestSlugs:
    @pytest.mark.parametrize(
        "title, expected",
        [
            ("Hello World", "hello-world"),
            ("  Rock & Roll!  ", "rock-roll"),
            ("Český Krumlov", "cesky-krumlov"),
            ("¡Hola señor!", "hola-senor"),
            ("", "untitled"),
            ("???", "untitled"),
            (None, "untitled"),
        ],
    )
    def test_slugify(self, title, expected):
        assert slugify(title) == expected

    def test_suffixes_strictly_increase_within_one_millisecond(self):
        allocator = SlugAllocator(clock=lambda: 1_700_000_000.0)

        first = allocator.allocate("Same Title")
        second = allocator.allocate("Same Title")
        third = allocator.allocate("Same Title")

        assert first == "same-title-1700000000000"
        assert second == "same-title-1700000000001"
        assert third == "same-title-1700000000002"

    def test_suffix_follows_clock_when_it_moves_ahead(self):
        ticks = iter([10.0, 20.0])
        allocator = SlugAllocator(clock=lambda: next(ticks))

        assert allocator.next_suffix() == 10_000
        assert allocator.next_suffix() == 20_000
