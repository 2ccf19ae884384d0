# eoffice/core/body_markup.py
"""
Reduce the letter body (rich-text HTML from the editor, or plain text) to
paragraph/list blocks with fpdf2 markdown emphasis:

    **bold**   __italic__   --underline--

Only the structure a letter body needs survives: paragraphs, line breaks,
ordered/unordered lists and table rows (cells joined with " | ").
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import List, Optional

_TAG_RE = re.compile(r"<[a-zA-Z/!][^>]*>")
# A marker character followed by the same character would open a style
_MD_DOUBLED = re.compile(r"([*_-])(?=\1)")
# Invisible unless the line breaks right there
SOFT_HYPHEN = "\u00ad"

_BLOCK_TAGS = {"p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "tr"}
_EMPHASIS = {"b": "**", "strong": "**", "i": "__", "em": "__", "u": "--"}


@dataclass
class Block:
    text: str
    kind: str = "p"          # "p" | "li"
    prefix: str = ""         # "1." / "-" for list items
    level: int = 0           # list nesting depth
    align: str = "J"
    markdown: bool = True    # False: text is printed verbatim


@dataclass
class _List:
    ordered: bool
    counter: int = 0


def looks_like_html(text: str) -> bool:
    return bool(_TAG_RE.search(text or ""))


def _escape_markdown(text: str) -> str:
    return _MD_DOUBLED.sub(lambda m: m.group(1) + SOFT_HYPHEN, text)


def plain_text_blocks(text: str) -> List[Block]:
    """Blank line → new paragraph; single newline → line break."""
    blocks: List[Block] = []
    for para in re.split(r"\n\s*\n", (text or "").replace("\r\n", "\n")):
        para = para.strip()
        if para:
            blocks.append(Block(text=para, markdown=False))
    return blocks


class _BodyParser(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.blocks: List[Block] = []
        self._buf: List[str] = []
        self._lists: List[_List] = []
        self._current_li: Optional[Block] = None
        self._align = "J"
        self._open_emphasis: List[str] = []
        self._row_cells: List[str] = []

    # ---- helpers ----
    def _flush(self) -> None:
        text = "".join(self._buf)
        self._buf = []
        # Close emphasis that spans the block end, reopen it on the next block
        closing = "".join(reversed(self._open_emphasis))
        text = re.sub(r"[ \t]+", " ", text + closing)
        text = "\n".join(line.strip() for line in text.split("\n")).strip()
        if not text or not text.replace("**", "").replace("__", "").replace("--", "").strip():
            if self._open_emphasis:
                self._buf.append("".join(self._open_emphasis))
            return
        if self._current_li is not None:
            li = self._current_li
            self.blocks.append(Block(text=text, kind="li", prefix=li.prefix, level=li.level, align=self._align))
            # Continuation blocks of the same item carry no bullet
            self._current_li = Block(text="", kind="li", prefix="", level=li.level)
        else:
            self.blocks.append(Block(text=text, align=self._align))
        if self._open_emphasis:
            self._buf.append("".join(self._open_emphasis))

    # ---- parser callbacks ----
    def handle_starttag(self, tag, attrs):
        attrs = dict(attrs)
        if tag in _EMPHASIS:
            self._buf.append(_EMPHASIS[tag])
            self._open_emphasis.append(_EMPHASIS[tag])
        elif tag == "br":
            self._buf.append("\n")
        elif tag in ("ol", "ul"):
            self._flush()
            self._lists.append(_List(ordered=(tag == "ol")))
        elif tag == "li":
            self._flush()
            if not self._lists:
                self._lists.append(_List(ordered=False))
            lst = self._lists[-1]
            lst.counter += 1
            prefix = f"{lst.counter}." if lst.ordered else "-"
            self._current_li = Block(text="", kind="li", prefix=prefix, level=len(self._lists) - 1)
        elif tag in ("td", "th"):
            self._buf = []
        elif tag in _BLOCK_TAGS:
            self._flush()
            align = (attrs.get("align") or "").lower()
            style = (attrs.get("style") or "").lower()
            if align == "center" or "text-align: center" in style or "text-align:center" in style:
                self._align = "C"
            elif align == "right" or "text-align: right" in style or "text-align:right" in style:
                self._align = "R"
            else:
                self._align = "J"

    def handle_endtag(self, tag):
        if tag in _EMPHASIS:
            marker = _EMPHASIS[tag]
            if marker in self._open_emphasis:
                self._open_emphasis.remove(marker)
                self._buf.append(marker)
        elif tag in ("td", "th"):
            self._row_cells.append("".join(self._buf).strip())
            self._buf = []
        elif tag == "tr":
            if self._row_cells:
                self._buf = [" | ".join(self._row_cells)]
                self._row_cells = []
            self._flush()
        elif tag == "li":
            self._flush()
            self._current_li = None
        elif tag in ("ol", "ul"):
            self._flush()
            if self._lists:
                self._lists.pop()
            self._current_li = None
        elif tag in _BLOCK_TAGS:
            self._flush()
            self._align = "J"

    def handle_data(self, data):
        self._buf.append(_escape_markdown(data.replace("\n", " ")))

    def close(self):
        super().close()
        self._open_emphasis = []
        self._flush()


def html_to_blocks(markup: str) -> List[Block]:
    parser = _BodyParser()
    parser.feed(markup or "")
    parser.close()
    return parser.blocks


def body_blocks(body: str) -> List[Block]:
    """Blocks for either an HTML or a plain-text body."""
    if looks_like_html(body):
        return html_to_blocks(body)
    return plain_text_blocks(html.unescape(body or ""))


def strip_markup(body: str) -> str:
    """Plain text of a body, used for verification snippets."""
    text = _TAG_RE.sub(" ", body or "")
    return " ".join(html.unescape(text).split())
