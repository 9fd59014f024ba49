import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("bs4")

from bc2notion.parsers.notion_local import convert_html_to_blocks, limit_nesting
from bc2notion.parsers.notion_schema import children_of, paragraph, plain_text


def blocks_of_type(blocks, t):
    return [b for b in blocks if b.get("type") == t]


def text_of(b):
    return plain_text(b[b["type"]].get("rich_text") or [])


def test_paragraph_with_bold_word():
    blocks = convert_html_to_blocks("<p>Hello <b>world</b></p>")
    assert len(blocks) == 1 and blocks[0]["type"] == "paragraph"
    items = blocks[0]["paragraph"]["rich_text"]
    assert items[0] == {"type": "text", "text": {"content": "Hello "}}
    assert items[1]["text"]["content"] == "world"
    assert items[1]["annotations"] == {"bold": True}


def test_long_paragraph_becomes_three_blocks():
    blocks = convert_html_to_blocks("<p>" + "a" * 5000 + "</p>", max_text_length=2000)
    assert [b["type"] for b in blocks] == ["paragraph"] * 3
    assert [len(text_of(b)) for b in blocks] == [2000, 2000, 1000]


def test_headings_and_divider():
    blocks = convert_html_to_blocks("<h1>Top</h1><h5>Deep</h5><hr/>")
    assert [b["type"] for b in blocks] == ["heading_1", "heading_3", "divider"]


def test_two_line_breaks_end_a_paragraph():
    blocks = convert_html_to_blocks("<div>first<br><br>second<br>third</div>")
    assert [text_of(b) for b in blocks] == ["first", "second third"]


def test_list_nesting_is_capped_at_three_levels():
    html = "<ul><li>a<ul><li>b<ul><li>c<ul><li>d</li></ul></li></ul></li></ul></li></ul>"
    blocks = convert_html_to_blocks(html)
    assert len(blocks) == 1
    a = blocks[0]
    assert a["type"] == "bulleted_list_item" and text_of(a) == "a"
    b = children_of(a)[0]
    assert text_of(b) == "b"
    # "d" is promoted to a sibling of "c"
    assert [text_of(x) for x in children_of(b)] == ["c", "d"]
    assert all(not children_of(x) for x in children_of(b))


def test_ordered_list_and_checkbox_items():
    blocks = convert_html_to_blocks(
        '<ol><li>one</li></ol><ul><li><input type="checkbox" checked> Buy milk</li>'
        '<li><input type="checkbox"> Call</li></ul>'
    )
    assert blocks[0]["type"] == "numbered_list_item"
    todos = blocks_of_type(blocks, "to_do")
    assert [text_of(t) for t in todos] == ["Buy milk", "Call"]
    assert [t["to_do"]["checked"] for t in todos] == [True, False]


def test_table_rows_become_code_blocks():
    html = "<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td></td></tr><tr><td></td></tr></table>"
    blocks = convert_html_to_blocks(html)
    assert [b["type"] for b in blocks] == ["code", "code"]
    assert text_of(blocks[0]) == "A\t|\tB"
    assert blocks[0]["code"]["language"] == "plain text"


def test_code_block_keeps_whitespace_verbatim():
    blocks = convert_html_to_blocks("<pre><code>\n  indented\n\tline\n\n</code></pre>")
    assert plain_text(blocks[0]["code"]["rich_text"]) == "\n  indented\n\tline\n\n"


def test_code_block_language_is_normalized():
    blocks = convert_html_to_blocks('<pre class="language-py"><code>print(1)\n</code></pre>')
    assert blocks[0]["type"] == "code"
    assert blocks[0]["code"]["language"] == "python"
    assert text_of(blocks[0]) == "print(1)"


def test_toggle_with_summary_and_body():
    blocks = convert_html_to_blocks("<details><summary>More</summary><p>Inside</p></details>")
    assert blocks[0]["type"] == "toggle"
    assert text_of(blocks[0]) == "More"
    assert [text_of(c) for c in children_of(blocks[0])] == ["Inside"]


def test_blockquote_and_iframe_embed():
    blocks = convert_html_to_blocks(
        '<blockquote>wise words</blockquote><iframe src="https://www.youtube.com/embed/xyz"></iframe>'
    )
    assert blocks[0]["type"] == "quote"
    assert blocks[1] == {"object": "block", "type": "embed", "embed": {"url": "https://www.youtube.com/embed/xyz"}}


def test_unknown_wrappers_do_not_hide_content():
    blocks = convert_html_to_blocks("<custom-box><section><p>inside</p></section></custom-box>")
    assert [text_of(b) for b in blocks] == ["inside"]


def test_empty_and_whitespace_html():
    assert convert_html_to_blocks(None) == []
    assert convert_html_to_blocks("   ") == []


def test_limit_nesting_keeps_order_of_promoted_blocks():
    deep = paragraph("l3", children=[paragraph("l4a"), paragraph("l4b")])
    tree = [paragraph("l1", children=[paragraph("l2", children=[deep])]), paragraph("next")]
    out = limit_nesting(tree, max_depth=3)
    level2 = children_of(out[0])[0]
    assert [text_of(b) for b in children_of(level2)] == ["l3", "l4a", "l4b"]
    assert text_of(out[1]) == "next"


def test_formatting_wrapper_around_media_keeps_its_annotations():
    html = '<p><b><a href="https://example.com/doc">see <img src="https://example.com/a.png"> here</a></b></p>'
    blocks = convert_html_to_blocks(html)
    assert [b["type"] for b in blocks] == ["paragraph", "image", "paragraph"]
    before = blocks[0]["paragraph"]["rich_text"][0]
    after = blocks[2]["paragraph"]["rich_text"][0]
    assert before["text"]["content"].strip() == "see" and after["text"]["content"] == "here"
    for item in (before, after):
        assert item["annotations"] == {"bold": True}
        assert item["text"]["link"] == {"url": "https://example.com/doc"}


def test_checkbox_item_without_text_is_logged(capsys):
    blocks = convert_html_to_blocks('<ul><li><input type="checkbox" checked><ul><li>child</li></ul></li></ul>')
    assert [b["type"] for b in blocks] == ["bulleted_list_item"]
    assert text_of(blocks[0]) == "child"
    assert "Checked to-do without text" in capsys.readouterr().out
