"""Tokenizer for IPFLang source text."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TokenType(Enum):
    KEYWORD = "keyword"
    IDENT = "identifier"
    NUMBER = "number"
    STRING = "string"
    SYMBOL = "symbol"
    EOF = "end of input"


KEYWORDS = frozenset(
    {
        # declarations
        "VERSION",
        "GROUP",
        "INPUT",
        "ENDINPUT",
        "FEE",
        "ENDFEE",
        "RETURN",
        "VERIFY",
        # input kinds and attributes
        "NUMBER",
        "BOOLEAN",
        "LIST",
        "MULTILIST",
        "DATE",
        "AMOUNT",
        "BETWEEN",
        "CHOICE",
        "DEFAULT",
        "CURRENCY",
        "WEIGHT",
        "AS",
        # fee bodies
        "OPTIONAL",
        "LET",
        "YIELD",
        "IF",
        # directives
        "COMPLETE",
        "MONOTONIC",
        "WITH",
        "RESPECT",
        "TO",
        "INCREASING",
        "DECREASING",
        # expressions
        "AND",
        "OR",
        "NOT",
        "CONTAINS",
        "TRUE",
        "FALSE",
    }
)

# Longest symbols first so "<=" wins over "<".
_SYMBOLS = ("==", "!=", "<>", "<=", ">=", "=", "<", ">", "+", "-", "*", "/", "(", ")", ",")


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    line: int
    column: int

    def describe(self) -> str:
        if self.type == TokenType.EOF:
            return "end of input"
        return f"'{self.value}'"


@dataclass(frozen=True)
class LexError:
    message: str
    line: int
    column: int


@dataclass
class Lexer:
    """Converts source text into a token list.

    Unknown characters and unterminated strings are recorded in ``errors``
    and skipped, so a single pass reports every lexical problem.
    """

    source: str
    pos: int = 0
    line: int = 1
    column: int = 1
    tokens: list[Token] = field(default_factory=list)
    errors: list[LexError] = field(default_factory=list)

    def tokenize(self) -> list[Token]:
        while self.pos < len(self.source):
            self._skip_whitespace_and_comments()
            if self.pos >= len(self.source):
                break

            ch = self.source[self.pos]
            if ch == "'":
                self._read_string()
            elif ch.isdigit():
                self._read_number()
            elif ch.isalpha() or ch == "_":
                self._read_word()
            else:
                self._read_symbol()

        self.tokens.append(Token(TokenType.EOF, "", self.line, self.column))
        return self.tokens

    def _peek(self, offset: int = 0) -> str:
        pos = self.pos + offset
        if pos < len(self.source):
            return self.source[pos]
        return ""

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _skip_whitespace_and_comments(self) -> None:
        while self.pos < len(self.source):
            ch = self._peek()
            if ch.isspace():
                self._advance()
            elif ch == "#":
                while self.pos < len(self.source) and self._peek() != "\n":
                    self._advance()
            else:
                break

    def _read_string(self) -> None:
        line, column = self.line, self.column
        self._advance()  # opening quote
        chars: list[str] = []
        while self.pos < len(self.source):
            ch = self._peek()
            if ch == "\n":
                break
            if ch == "'":
                # '' inside a string is an escaped quote
                if self._peek(1) == "'":
                    self._advance()
                    chars.append(self._advance())
                    continue
                self._advance()
                self.tokens.append(Token(TokenType.STRING, "".join(chars), line, column))
                return
            chars.append(self._advance())
        self.errors.append(LexError("Unterminated string literal", line, column))

    def _read_number(self) -> None:
        line, column = self.line, self.column
        start = self.pos
        while self._peek().isdigit():
            self._advance()
        if self._peek() == "." and self._peek(1).isdigit():
            self._advance()
            while self._peek().isdigit():
                self._advance()
        self.tokens.append(Token(TokenType.NUMBER, self.source[start : self.pos], line, column))

    def _read_word(self) -> None:
        line, column = self.line, self.column
        start = self.pos
        while self._peek().isalnum() or self._peek() == "_":
            self._advance()
        word = self.source[start : self.pos]
        kind = TokenType.KEYWORD if word in KEYWORDS else TokenType.IDENT
        self.tokens.append(Token(kind, word, line, column))

    def _read_symbol(self) -> None:
        line, column = self.line, self.column
        for sym in _SYMBOLS:
            if self.source.startswith(sym, self.pos):
                for _ in sym:
                    self._advance()
                self.tokens.append(Token(TokenType.SYMBOL, sym, line, column))
                return
        ch = self._advance()
        self.errors.append(LexError(f"Unexpected character {ch!r}", line, column))


def tokenize(source: str) -> tuple[list[Token], list[LexError]]:
    lexer = Lexer(source)
    tokens = lexer.tokenize()
    return tokens, lexer.errors
