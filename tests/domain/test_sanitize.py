"""Tests for release-notes sanitisation."""

from macup.domain.sanitize import sanitize_release_notes


class TestSanitizeReleaseNotes:
    """HTML is reduced to Markdown-like text; Markdown passes through."""

    def test_markdown_is_only_trimmed(self):
        notes = "  ## 2.0\n- Faster startup  "
        assert sanitize_release_notes(notes) == "## 2.0\n- Faster startup"

    def test_list_items_become_bullets(self):
        html = "<ul><li>Fixed crash</li><li>New icon</li></ul>"
        assert sanitize_release_notes(html) == "- Fixed crash\n- New icon"

    def test_links_become_markdown(self):
        html = '<p>See <a href="https://example.com/notes">notes</a></p>'
        assert (
            sanitize_release_notes(html)
            == "See [notes](https://example.com/notes)"
        )

    def test_emphasis_and_headings(self):
        html = "<h2>New</h2><p><strong>Bold</strong> and <em>soft</em></p>"
        result = sanitize_release_notes(html)
        assert "### New" in result
        assert "**Bold** and *soft*" in result

    def test_entities_are_unescaped(self):
        assert sanitize_release_notes("<p>A &amp; B</p>") == "A & B"

    def test_comments_are_dropped(self):
        html = "<!-- signature: abc --><p>Notes</p>"
        assert sanitize_release_notes(html) == "Notes"

    def test_semicolon_list_becomes_bullets(self):
        html = "<span>Fix one; Fix two; Fix three</span>"
        assert (
            sanitize_release_notes(html)
            == "- Fix one\n- Fix two\n- Fix three"
        )

    def test_truncates_to_max_length(self):
        html = "<p>" + "x" * 100 + "</p>"
        assert len(sanitize_release_notes(html, max_length=10)) == 10
