"""Tests for HTML-to-Markdown rewriting and message chunking."""

import pytest

from relay.utils.text import LINE_BREAK, escape_html, html_to_markdown, split_large_message


@pytest.mark.parametrize(
    "html,expected",
    [
        ('<a href="https://x.co">site</a>', "[site](https://x.co)"),
        ("<i>it</i>", "_it_"),
        ("<b>bold</b>", "*bold*"),
        ("<B>bold</B>", "*bold*"),
        ("<u>under</u>", "~under~"),
        ("<code>x = 1</code>", "`x = 1`"),
        ("<pre>block</pre>", "```block```"),
        ("<blockquote>one\ntwo</blockquote>", "> one\n> two"),
        ("<blockquote expandable>one\r\ntwo</blockquote>", "**> one\n> two"),
        ('<tg-emoji emoji-id="5368324170671202286">"👍"</tg-emoji>', "![👍](tg://emoji?id=5368324170671202286)"),
        ("a &lt;b&gt; c", "a <b> c"),
    ],
)
def test_html_rules(html, expected):
    assert html_to_markdown(html) == expected


def test_html_rules_compose():
    html = '<b>Hi</b> <i>there</i>, see <a href="https://x.co">this</a>'
    assert html_to_markdown(html) == "*Hi* _there_, see [this](https://x.co)"


def test_plain_text_unchanged():
    text = "Nothing to see *here* (really)"
    assert html_to_markdown(text) == text


def test_conversion_is_idempotent_without_entities():
    once = html_to_markdown("<b>x</b> <code>y</code>")
    assert html_to_markdown(once) == once


def test_escaped_tags_convert_on_a_second_pass():
    once = html_to_markdown("&lt;b&gt;x&lt;/b&gt;")
    assert once == "<b>x</b>"
    assert html_to_markdown(once) == "*x*"


def test_falsy_input_returned_as_is():
    assert html_to_markdown("") == ""
    assert html_to_markdown(None) is None


def test_escape_html():
    assert escape_html("<b>") == "&lt;b&gt;"
    assert html_to_markdown(escape_html("a <b> c")) == "a <b> c"
    assert escape_html(None) is None


def test_short_text_is_single_chunk():
    assert split_large_message("hello", 10) == ["hello"]


def test_text_at_limit_is_single_chunk():
    text = "a" * 5 + LINE_BREAK + "b" * 4
    assert split_large_message(text, 10) == [text]


def test_splits_on_line_boundaries():
    text = LINE_BREAK.join(["aaaa", "bbbb", "cccc"])
    assert split_large_message(text, 9) == ["aaaa\nbbbb", "cccc"]


def test_packing_example():
    lines = ["x" * 24] * 100
    chunks = split_large_message(LINE_BREAK.join(lines), 1000)
    assert [len(c.split(LINE_BREAK)) for c in chunks] == [40, 40, 20]
    assert all(len(c) <= 1000 for c in chunks)


def test_join_gives_back_input():
    text = LINE_BREAK.join(f"line {i}" for i in range(50))
    chunks = split_large_message(text, 40)
    assert LINE_BREAK.join(chunks) == text
    assert all(len(c) <= 40 for c in chunks)


def test_overlong_line_is_hard_split():
    text = "ab\n" + "x" * 25 + "\ncd"
    assert split_large_message(text, 10) == ["ab", "x" * 10, "x" * 10, "x" * 5 + "\ncd"]


def test_empty_lines_are_kept():
    assert split_large_message("a\n\nb", 3) == ["a\n", "b"]


def test_trailing_line_break_after_full_line():
    text = "x" * 10 + LINE_BREAK
    chunks = split_large_message(text, 10)
    assert chunks == ["x" * 10, ""]
    assert LINE_BREAK.join(chunks) == text


def test_empty_input():
    assert split_large_message("", 10) == []
    assert split_large_message(None, 10) == []


def test_invalid_limit():
    with pytest.raises(ValueError):
        split_large_message("text", 0)
