"""
Parser for structured literals passed in a single query parameter.

Grammar::

    document := object | sequence | value
    object   := pair ("," pair)*
    pair     := key ":" value
    sequence := value ("," value)+
    value    := list | mapping | scalar
    list     := "[" [value ("," value)*] "]"
    mapping  := "{" [pair ("," pair)*] "}"
    key      := bare | quoted
    scalar   := bare | quoted

Bare scalars are coerced (``true``, ``false``, ``null``, integers, decimals);
quoted scalars are always strings. Parentheses are reserved.

    >>> parse_literal("mode:slow,max:3")
    {'mode': 'slow', 'max': 3}
    >>> parse_literal("key:value,key2:[a,b]")
    {'key': 'value', 'key2': ['a', 'b']}
"""

import re
from typing import Any, Dict, List, NamedTuple, Optional


class LiteralSyntaxError(ValueError):
    """Raised when a structured literal does not match the grammar."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} at position {position}")
        self.position = position


class _Token(NamedTuple):
    kind: str
    value: str
    position: int


_DELIMITERS = ',:[]{}()"'
_BARE = rf'[^{re.escape(_DELIMITERS)}\s](?:[^{re.escape(_DELIMITERS)}]*[^{re.escape(_DELIMITERS)}\s])?'

_TOKEN_RE = re.compile(
    rf'''\s*(?:
        (?P<quoted>"(?:[^"\\]|\\.)*")
      | (?P<punct>[,:\[\]{{}}])
      | (?P<reserved>[()])
      | (?P<bare>{_BARE})
    )''',
    re.VERBOSE,
)
_INT_RE = re.compile(r"-?\d+")
_FLOAT_RE = re.compile(r"-?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?|-?\d+[eE][-+]?\d+")
_ESCAPE_RE = re.compile(r"\\(.)")

_KEYWORDS = {"true": True, "false": False, "null": None}


def tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    position = 0
    length = len(text)
    while position < length:
        if text[position:].strip() == "":
            break
        match = _TOKEN_RE.match(text, position)
        if match is None:
            offset = position + len(text[position:]) - len(text[position:].lstrip())
            raise LiteralSyntaxError(f"Unexpected character {text[offset]!r}", offset)
        kind = match.lastgroup
        tokens.append(_Token(kind, match.group(kind), match.start(kind)))
        position = match.end()
    return tokens


def coerce_scalar(raw: str) -> Any:
    """Coerce a bare scalar to bool, None, int or float where it looks like one."""
    if raw in _KEYWORDS:
        return _KEYWORDS[raw]
    if _INT_RE.fullmatch(raw):
        return int(raw)
    if _FLOAT_RE.fullmatch(raw):
        return float(raw)
    return raw


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    def peek(self, offset: int = 0) -> Optional[_Token]:
        index = self.index + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def advance(self) -> _Token:
        token = self.peek()
        if token is None:
            raise LiteralSyntaxError("Unexpected end of input", len(self.text))
        self.index += 1
        return token

    def expect(self, value: str) -> None:
        token = self.advance()
        if token.kind != "punct" or token.value != value:
            raise LiteralSyntaxError(f"Expected {value!r}, found {token.value!r}", token.position)

    def at(self, value: str, offset: int = 0) -> bool:
        token = self.peek(offset)
        return token is not None and token.kind == "punct" and token.value == value

    def starts_pair(self) -> bool:
        token = self.peek()
        return token is not None and token.kind in ("bare", "quoted") and self.at(":", 1)

    def document(self) -> Any:
        if not self.tokens:
            raise LiteralSyntaxError("Empty value", 0)

        if self.starts_pair():
            result: Any = self.pairs(closing=None)
        else:
            first = self.value()
            if self.peek() is None:
                return first
            result = [first]
            while self.at(","):
                self.advance()
                if self.starts_pair():
                    raise LiteralSyntaxError("Cannot mix key:value pairs and plain values", self.peek().position)
                result.append(self.value())

        trailing = self.peek()
        if trailing is not None:
            raise LiteralSyntaxError(f"Unexpected {trailing.value!r}", trailing.position)
        return result

    def pairs(self, closing: Optional[str]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        while True:
            key_token = self.advance()
            if key_token.kind == "bare":
                key = key_token.value
            elif key_token.kind == "quoted":
                key = _unquote(key_token.value)
            else:
                raise LiteralSyntaxError(f"Expected a key, found {key_token.value!r}", key_token.position)
            self.expect(":")
            result[key] = self.value()

            if not self.at(","):
                break
            self.advance()
            if closing is not None and self.at(closing):
                raise LiteralSyntaxError("Trailing comma", self.peek().position)
        return result

    def value(self) -> Any:
        token = self.advance()
        if token.kind == "bare":
            return coerce_scalar(token.value)
        if token.kind == "quoted":
            return _unquote(token.value)
        if token.kind == "reserved":
            raise LiteralSyntaxError(f"Reserved character {token.value!r}", token.position)
        if token.value == "[":
            return self.array()
        if token.value == "{":
            return self.mapping()
        raise LiteralSyntaxError(f"Expected a value, found {token.value!r}", token.position)

    def array(self) -> List[Any]:
        items: List[Any] = []
        if self.at("]"):
            self.advance()
            return items
        while True:
            items.append(self.value())
            if self.at(","):
                self.advance()
                continue
            self.expect("]")
            return items

    def mapping(self) -> Dict[str, Any]:
        if self.at("}"):
            self.advance()
            return {}
        result = self.pairs(closing="}")
        self.expect("}")
        return result


def _unquote(token: str) -> str:
    return _ESCAPE_RE.sub(r"\1", token[1:-1])


def parse_literal(text: str) -> Any:
    """Parse a structured literal such as ``mode:slow,max:3``."""
    if text is None:
        raise LiteralSyntaxError("Empty value", 0)
    return _Parser(text).document()
