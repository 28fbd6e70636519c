"""Lexical analysis for the Kaleidoscope language. The lexer pulls characters from any iterable of characters (a string,
or a text stream wrapped with read_chars) one at a time and produces tokens lazily.

Token grammar:

```
<identifier> ::= [a-zA-Z][a-zA-Z0-9_]*   ; "def" and "extern" are keywords
<number>     ::= [0-9.]+                 ; at most one ".", a second "." directly after the run is an error
<comment>    ::= "#" <char>* <newline>   ; skipped, produces no token
<char>       ::= any other character     ; operators and punctuation: + - * / < > ( ) , ;
```
"""

from dataclasses import dataclass
from enum import Enum
import string


EOF = ""  # what the character source yields once it is exhausted

WHITESPACE = frozenset(string.whitespace)
DIGITS = frozenset(string.digits)
ALPHA = frozenset(string.ascii_letters)
IDENTIFIER_CHARS = ALPHA | DIGITS | {"_"}
NEWLINES = frozenset("\n\r")


class TokenKind(Enum):
    EOF = "end of input"
    DEF = "def"
    EXTERN = "extern"
    NUMBER = "number"
    IDENTIFIER = "identifier"
    CHAR = "char"
    ERROR = "error"


KEYWORDS = {"def": TokenKind.DEF, "extern": TokenKind.EXTERN}


@dataclass(frozen=True)
class Loc:
    """Position of a token: 1-based line and column, and 0-based character offset into the source."""
    line: int
    col: int
    offset: int

    def __str__(self):
        return f"{self.line}:{self.col}"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str = ""
    value: object = None  # float for numbers, str for identifiers and chars
    loc: Loc = Loc(1, 1, 0)

    def is_char(self, char):
        return self.kind is TokenKind.CHAR and self.value == char


def read_chars(stream):
    """Yields the characters of a text stream one at a time, so that interactive input is consumed lazily."""
    while True:
        char = stream.read(1)
        if not char:
            return
        yield char


def to_number(text):
    """Permissive decimal to float conversion: text that float() rejects (such as a lone '.') becomes 0.0."""
    try:
        return float(text)
    except ValueError:
        return 0.0


def format_token(token):
    """Debug rendering of a token, e.g. '(identifier, foo)' or '(char, +)'."""
    if token.kind is TokenKind.NUMBER:
        return f"({token.kind.value}, {token.value})"
    if token.kind is TokenKind.EOF:
        return "(end, 0)"
    return f"({token.kind.value}, {token.text})"


class Lexer:
    """Converts a character stream into tokens. Holds exactly one character of pushback (the character read but not
    yet consumed by a token) and keeps the text of every line read so far for error messages.
    """

    def __init__(self, source):
        self._chars = iter(source)
        self._last_char = " "

        self.line = 1
        self.col = 0
        self.offset = 0  # number of characters read
        self.lines = [""]

    def _getchar(self):
        char = next(self._chars, EOF)
        if char:
            self.offset += 1
            if char == "\n":
                self.line += 1
                self.col = 0
                self.lines.append("")
            else:
                self.col += 1
                self.lines[-1] += char
        return char

    def _loc(self):
        if self._last_char:
            return Loc(self.line, self.col, self.offset - 1)
        return Loc(self.line, self.col + 1, self.offset)

    def line_text(self, line):
        """Returns the text of 1-based line (possibly only partly read), or None if it was never reached."""
        if 0 < line <= len(self.lines):
            return self.lines[line - 1]
        return None

    def next_token(self):
        while True:
            while self._last_char in WHITESPACE:
                self._last_char = self._getchar()

            loc = self._loc()

            if self._last_char in ALPHA:
                return self._identifier(loc)

            if self._last_char in DIGITS or self._last_char == ".":
                return self._number(loc)

            if self._last_char == "#":
                while self._last_char and self._last_char not in NEWLINES:
                    self._last_char = self._getchar()
                continue

            if self._last_char == EOF:
                return Token(TokenKind.EOF, loc=loc)

            char = self._last_char
            self._last_char = self._getchar()
            return Token(TokenKind.CHAR, char, char, loc)

    def _identifier(self, loc):
        text = ""
        while self._last_char in IDENTIFIER_CHARS:
            text += self._last_char
            self._last_char = self._getchar()

        kind = KEYWORDS.get(text, TokenKind.IDENTIFIER)
        return Token(kind, text, text, loc)

    def _number(self, loc):
        text = ""
        decimal = False
        while self._last_char in DIGITS or (not decimal and self._last_char == "."):
            text += self._last_char
            if self._last_char == ".":
                decimal = True
            self._last_char = self._getchar()

        if decimal and self._last_char == ".":
            # swallow the rest of the malformed literal so that lexing resumes after it
            while self._last_char in DIGITS or self._last_char == ".":
                text += self._last_char
                self._last_char = self._getchar()
            return Token(TokenKind.ERROR, text, None, loc)

        return Token(TokenKind.NUMBER, text, to_number(text), loc)

    def tokens(self):
        """Yields tokens up to and including the end of input token."""
        while True:
            token = self.next_token()
            yield token
            if token.kind is TokenKind.EOF:
                return
