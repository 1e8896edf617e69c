from __future__ import annotations
import re
from typing import Iterable

_WS_RE = re.compile(r"(\s+)")

URL_PREFIXES = ("http://", "https://")


def is_url_token(word: str) -> bool:
    return word.startswith(URL_PREFIXES)


def split_paragraphs(text: str) -> list[str]:
    return text.split("\n")


def split_words(paragraph: str) -> list[str]:
    """Alternating word / whitespace pieces; joining them gives the paragraph back."""
    return [p for p in _WS_RE.split(paragraph) if p]


def reassemble(paragraphs: Iterable[Iterable[str]]) -> str:
    return "\n".join("".join(pieces) for pieces in paragraphs)
