"""
Section parser tests

Tests segmentation of markdown into typed sections, tag attachment,
anchor normalisation, and start/tag filtering.
"""

import pytest

from readmerunner.lib.parser import (
    Parser,
    sections_parse,
    anchor_normalize,
    heading_extract,
    lines_split,
)
from readmerunner.models.parser import Section, SectionKind


MARKDOWN = """# Title
[tags]:# (always)
some content

## Section One

[tags]:# (foo bar)

```bash
echo "Hello, world!"
```

### Subsection

[tags]:# (bar)
[prompt]:# (name "What is your name?")
"""

TITLE = Section(SectionKind.HEADER, ("# Title", "some content", ""), ("always",))
SECTION_ONE = Section(SectionKind.HEADER, ("## Section One", "", ""), ("foo", "bar"))
CODE = Section(SectionKind.CODE, ("```bash", 'echo "Hello, world!"', "```"), ("foo", "bar"))
BLANK = Section(SectionKind.TEXT, ("",), ("foo", "bar"))
SUBSECTION = Section(SectionKind.HEADER, ("### Subsection", ""), ("bar",))
PROMPT = Section(SectionKind.PROMPT, ('[prompt]:# (name "What is your name?")',), ("bar",))


class TestSegmentation:
    """Test pass 1: splitting into sections"""

    def test_empty_document(self):
        """Empty source has no sections"""
        assert sections_parse("") == []

    def test_example_document(self):
        """Full example splits into six sections in order"""
        assert sections_parse(MARKDOWN) == [TITLE, SECTION_ONE, CODE, BLANK, SUBSECTION, PROMPT]

    def test_bytes_input(self):
        """Raw bytes are decoded as UTF-8"""
        assert sections_parse(MARKDOWN.encode("utf-8")) == sections_parse(MARKDOWN)

    def test_non_utf8_bytes(self):
        """Undecodable bytes are replaced instead of aborting the parse"""
        sections = sections_parse("# Caf\xe9\ntext\n".encode("latin-1"))
        assert sections == [Section(SectionKind.HEADER, ("# Caf\ufffd", "text"), ())]

    def test_tag_lines_never_rendered(self):
        """Tag directives are consumed"""
        for section in sections_parse(MARKDOWN):
            assert not any(line.startswith("[tags]:#") for line in section.lines)

    def test_code_fence_delimiters_kept(self):
        """Code sections start and end with fence lines"""
        code = [s for s in sections_parse(MARKDOWN) if s.kind is SectionKind.CODE][0]
        assert code.lines[0].startswith("```")
        assert code.lines[-1] == "```"
        assert code.language == "bash"
        assert code.body == 'echo "Hello, world!"'

    def test_heading_inside_code_is_code(self):
        """'#' lines inside a fence are snippet comments, not headers"""
        sections = sections_parse("```bash\n# a comment\necho hi\n```\n")
        assert len(sections) == 1
        assert sections[0].kind is SectionKind.CODE
        assert sections[0].lines == ("```bash", "# a comment", "echo hi", "```")

    def test_text_before_first_header(self):
        """Leading plain text forms a TEXT section"""
        sections = sections_parse("intro\n# Head\n")
        assert [s.kind for s in sections] == [SectionKind.TEXT, SectionKind.HEADER]
        assert sections[0].lines == ("intro",)

    def test_prompt_is_standalone(self):
        """A prompt directive is its own one-line section"""
        sections = sections_parse('text\n[prompt]:# (x "X?")\nmore\n')
        assert [s.kind for s in sections] == [SectionKind.TEXT, SectionKind.PROMPT, SectionKind.TEXT]
        assert sections[2].lines == ("more",)

    def test_malformed_tags_ignored(self):
        """Bad tag lines are dropped without tagging anything"""
        sections = sections_parse("# Head\n[tags]:# ()\ntext\n")
        assert sections == [Section(SectionKind.HEADER, ("# Head", "text"), ())]

    def test_tags_before_header_apply_to_header(self):
        """Tags declared just above a header label that header"""
        sections = sections_parse("[tags]:# (setup)\n# Head\n")
        assert sections[0].tags == ("setup",)

    def test_tags_accumulate(self):
        """Consecutive tag lines add up"""
        sections = sections_parse("# Head\n[tags]:# (a)\n[tags]:# (b c)\n```sh\nls\n```\n")
        assert sections[0].tags == ("a", "b", "c")
        assert sections[1].tags == ("a", "b", "c")

    def test_tags_reset_after_later_header(self):
        """Tags do not reach sections following a later header"""
        document = (
            "# One\n[tags]:# (first)\n"
            "## Two\ntext\n"
            "```bash\necho hi\n```\n"
            "after\n"
        )
        sections = sections_parse(document)
        two = [s.lines[0] for s in sections].index("## Two")
        after_two = sections[two + 1:]
        assert len(after_two) == 2
        for section in after_two:
            assert "first" not in section.tags

    def test_crlf_line_endings(self):
        """Windows line endings are stripped"""
        sections = sections_parse("# Head\r\ntext\r\n")
        assert sections[0].lines == ("# Head", "text")

    def test_sections_are_immutable(self):
        """Sections cannot be modified after parsing"""
        section = sections_parse("# Head\n")[0]
        with pytest.raises(AttributeError):
            section.tags = ("x",)


class TestFiltering:
    """Test pass 2: start anchor and tag filtering"""

    def test_start_anchor(self):
        """Start skips to the matching header; 'always' sections stay"""
        assert sections_parse(MARKDOWN, "subsection") == [TITLE, SUBSECTION, PROMPT]

    def test_requested_tags(self):
        """Only sections sharing a requested tag run"""
        assert sections_parse(MARKDOWN, "", ["foo"]) == [TITLE, SECTION_ONE, CODE, BLANK]

    def test_tags_and_start(self):
        """Both filters combine"""
        assert sections_parse(MARKDOWN, "subsection", ["bar"]) == [TITLE, SUBSECTION, PROMPT]

    def test_unknown_tags_with_start(self):
        """Nothing but 'always' sections survive unknown tags"""
        assert sections_parse(MARKDOWN, "subsection", ["baz"]) == [TITLE]

    @pytest.mark.parametrize("tags", [[], [""], ["baz"], ["always"]])
    def test_nonexistent_start_is_empty(self, tags):
        """A start anchor matching no heading yields nothing"""
        assert sections_parse(MARKDOWN, "nonexistent", tags) == []

    @pytest.mark.parametrize("tags", [[], ["foo"], ["bar"], ["zzz"]])
    @pytest.mark.parametrize("start", ["", "section-one", "subsection"])
    def test_always_is_universal(self, start, tags):
        """An 'always' section appears for every matching start and tag list"""
        assert TITLE in sections_parse(MARKDOWN, start, tags)

    def test_start_anchor_is_normalized(self):
        """Heading text works as well as its anchor"""
        assert sections_parse(MARKDOWN, "Section One") == sections_parse(MARKDOWN, "section-one")

    def test_first_matching_heading_starts(self):
        """Duplicate headings start at the first match"""
        document = "# Title\n## Sub\none\n## Sub\ntwo\n"
        sections = sections_parse(document, "sub")
        assert [s.lines[-1] for s in sections] == ["one", "two"]

    def test_filtering_is_idempotent(self):
        """Filtering the same segments twice gives the same result"""
        parser = Parser(MARKDOWN)
        segments = parser.segments_build()
        first = parser.sections_filter(segments, "subsection", ["bar"])
        second = parser.sections_filter(segments, "subsection", ["bar"])
        assert first == second
        assert parser.segments_build() == segments


class TestHeadingsAndAnchors:
    """Test heading extraction and anchor normalisation"""

    @pytest.mark.parametrize(
        "line, text, level",
        [
            ("# Title", "Title", 1),
            ("###   Spaced out   ", "Spaced out", 3),
            ("  ## Indented", "Indented", 2),
            ("#", "", 1),
        ],
    )
    def test_heading_extract(self, line, text, level):
        assert heading_extract(line) == (text, level)

    @pytest.mark.parametrize(
        "heading, anchor",
        [
            ("Section One", "section-one"),
            ("Step 2: Install (Linux)", "step-2-install-linux"),
            ("Hello,   World!", "hello-world"),
            ("already-an-anchor", "already-an-anchor"),
            ("Dash -- dash", "dash-dash"),
            ("Café Résumé", "café-résumé"),
            ("", ""),
        ],
    )
    def test_anchor_normalize(self, heading, anchor):
        assert anchor_normalize(heading) == anchor

    @pytest.mark.parametrize(
        "heading",
        ["Section One", "  Leading and trailing  ", "a - - b", "Ünïcödé 123", "!!!", "--x--"],
    )
    def test_anchor_idempotent(self, heading):
        """Normalising an anchor again changes nothing"""
        once = anchor_normalize(heading)
        assert anchor_normalize(once) == once


class TestLinesSplit:
    """Test line splitting"""

    def test_trailing_newline(self):
        assert lines_split("a\nb\n") == ["a", "b"]

    def test_no_trailing_newline(self):
        assert lines_split("a\nb") == ["a", "b"]

    def test_blank_lines_kept(self):
        assert lines_split("a\n\n\nb\n") == ["a", "", "", "b"]
