from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pygments import lex
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_by_name, guess_lexer
from pygments.token import (
    Comment,
    Keyword,
    Name,
    Number,
    Operator,
    Punctuation,
    String,
    _TokenType,
)
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

TOKEN_TYPES = (
    "comment",
    "keyword",
    "string",
    "number",
    "operator",
    "punctuation",
    "function",
    "class-name",
    "variable",
    "tag",
    "attr-name",
    "regex",
    "plain",
)

# Most specific first; the first ancestor match wins.
_PYGMENTS_MAP: list[tuple[_TokenType, str]] = [
    (String.Regex, "regex"),
    (Comment, "comment"),
    (Keyword, "keyword"),
    (String, "string"),
    (Number, "number"),
    (Operator, "operator"),
    (Punctuation, "punctuation"),
    (Name.Function, "function"),
    (Name.Class, "class-name"),
    (Name.Tag, "tag"),
    (Name.Attribute, "attr-name"),
    (Name.Variable, "variable"),
    (Name.Builtin, "function"),
]


@dataclass(frozen=True)
class Token:
    token_type: str
    text: str


class SyntaxTokenizer(ABC):
    @abstractmethod
    def tokenize(self, line_text: str, language: str) -> list[Token]:
        """Split one line into classified tokens whose texts join back to the line."""


def classify(token_type: _TokenType) -> str:
    for ancestor, name in _PYGMENTS_MAP:
        if token_type in ancestor:
            return name
    return "plain"


@lru_cache(maxsize=32)
def _lexer_for(language: str) -> Lexer:
    try:
        return get_lexer_by_name(language, stripnl=False, ensurenl=False)
    except ClassNotFound:
        logger.debug("No lexer for language %r, using plain text", language)
        return TextLexer(stripnl=False, ensurenl=False)


def detect_language(code: str) -> Optional[str]:
    """Best-guess language alias for ``code``, or None when nothing fits."""
    if not code.strip():
        return None
    try:
        lexer = guess_lexer(code)
    except ClassNotFound:
        return None
    if isinstance(lexer, TextLexer) or not lexer.aliases:
        return None
    return lexer.aliases[0]


class PygmentsTokenizer(SyntaxTokenizer):
    def tokenize(self, line_text: str, language: str) -> list[Token]:
        if not line_text:
            return []

        tokens: list[Token] = []
        for ttype, value in lex(line_text, _lexer_for(language or "text")):
            if not value:
                continue
            kind = classify(ttype)
            if tokens and tokens[-1].token_type == kind:
                tokens[-1] = Token(kind, tokens[-1].text + value)
            else:
                tokens.append(Token(kind, value))

        # Some lexers still append a trailing newline.
        text = "".join(t.text for t in tokens)
        if text != line_text and text.rstrip("\n") == line_text and tokens:
            last = tokens[-1]
            trimmed = last.text.rstrip("\n")
            tokens = tokens[:-1] + ([Token(last.token_type, trimmed)] if trimmed else [])
        return tokens
