"""
Minimal markdown to HTML conversion for AI-generated plans and gift lists.

Only a small subset is recognised (headers, bold, italics, bullet lists,
inline code, links, paragraph and line breaks). Input is HTML-escaped before
any substitution, so markup embedded in model output is shown as text.
"""

import html
import re

_H3 = re.compile(r"^### (.*)$", re.MULTILINE)
_H2 = re.compile(r"^## (.*)$", re.MULTILINE)
_H1 = re.compile(r"^# (.*)$", re.MULTILINE)
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"\*(?!\s)([^*\n]+?)(?<!\s)\*")
_LIST_ITEM = re.compile(r"^[ \t]*[-+*][ \t]+(.*)$", re.MULTILINE)
_CODE = re.compile(r"`([^`\n]+)`")
_LINK = re.compile(r"\[([^\]\n]+)\]\(((?:https?://|mailto:)[^)\s]+)\)")

_LIST_WRAP = re.compile(r"^(<li>.*</li>)$", re.MULTILINE)
_BLOCK_CLOSE_NEWLINE = re.compile(r"(</h[1-3]>|</ul>)\n(?!\n)")
_NEWLINE_BLOCK_OPEN = re.compile(r"(?<!\n)\n(<h[1-3]>|<ul>)")


def render_markdown(markdown_text: str) -> str:
    """Convert a constrained markdown string into an HTML fragment"""
    text = html.escape(markdown_text or "").replace("\r\n", "\n")

    text = _H3.sub(r"<h3>\1</h3>", text)
    text = _H2.sub(r"<h2>\1</h2>", text)
    text = _H1.sub(r"<h1>\1</h1>", text)
    text = _BOLD.sub(r"<strong>\1</strong>", text)
    text = _ITALIC.sub(r"<em>\1</em>", text)
    text = _LIST_ITEM.sub(r"<li>\1</li>", text)
    text = _CODE.sub(r"<code>\1</code>", text)
    text = _LINK.sub(r'<a href="\2" target="_blank" rel="noopener noreferrer">\1</a>', text)

    # One <ul> per item, then merge neighbours into a single container
    text = _LIST_WRAP.sub(r"<ul>\1</ul>", text)
    text = text.replace("</ul>\n<ul>", "")

    text = _BLOCK_CLOSE_NEWLINE.sub(r"\1", text)
    text = _NEWLINE_BLOCK_OPEN.sub(r"\1", text)
    text = re.sub(r"\n{2,}", "</p><p>", text)
    text = text.replace("\n", "<br>")

    return f"<p>{text}</p>"
