"""Convert contract HTML into plain text suitable for PDF rendering."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

EMPTY_CONTRACT_TEXT = "El contrato no tiene contenido disponible."

_DROPPED_TAGS = ["script", "style", "noscript", "template", "head"]
_HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
_EXCESS_BLANK_LINES = re.compile(r"\n\s*\n\s*\n")


def _mark(tag, before: str, after: str) -> None:
    if before:
        tag.insert(0, before)
    tag.append(after)
    tag.unwrap()


def html_to_text(content: str) -> str:
    """Return a readable plain-text rendition of ``content``.

    Scripts and stylesheets are dropped. Headings and paragraphs become
    blank-line separated blocks, list items are dash-prefixed, bold/italic
    markers become ``*``/``_`` and entities are decoded. Empty results fall
    back to :data:`EMPTY_CONTRACT_TEXT`.
    """
    if not content or not content.strip():
        return EMPTY_CONTRACT_TEXT

    soup = BeautifulSoup(content, "lxml")
    for tag in soup.find_all(_DROPPED_TAGS):
        tag.decompose()

    # Inline markers first so block text keeps them.
    for tag in soup.find_all(["em", "i"]):
        _mark(tag, "_", "_")
    for tag in soup.find_all(["strong", "b"]):
        _mark(tag, "*", "*")
    for tag in soup.find_all("br"):
        tag.replace_with("\n")
    for tag in soup.find_all("li"):
        _mark(tag, "- ", "\n")
    for tag in soup.find_all(["ul", "ol", "div"]):
        _mark(tag, "\n", "\n")
    for tag in soup.find_all("p"):
        _mark(tag, "", "\n\n")
    for tag in soup.find_all(_HEADINGS):
        _mark(tag, "\n\n", "\n\n")

    text = soup.get_text().replace("\xa0", " ")
    while _EXCESS_BLANK_LINES.search(text):
        text = _EXCESS_BLANK_LINES.sub("\n\n", text)
    text = text.strip()

    return text or EMPTY_CONTRACT_TEXT
