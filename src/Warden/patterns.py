# src/Warden/patterns.py
"""Command pattern tokenizer and matcher.

A pattern such as ``tag create {key} [value]`` is parsed once, at registration
time, into an immutable token tuple:

- a plain word is a static token that must appear verbatim,
- ``{name}`` captures one whitespace-delimited word,
- ``[name]`` captures a quoted run of text.

Matching walks tokens and input left to right in a single pass with no
backtracking across token boundaries. Quoted input may be delimited by double
quotes, by square brackets (balanced, so ``[a [b] c]`` captures ``a [b] c``)
or by a triple-backtick code fence, which is kept in the capture. There are no
escape sequences: a closing delimiter can never appear inside a quoted capture.
When no opening delimiter is present the parameter falls back to bare-word
capture.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from Warden.errors import PatternError

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_WORD_RE = re.compile(r"\S+")

CODE_FENCE = "```"


@dataclass(frozen=True)
class Static:
    text: str

    def usage(self) -> str:
        return self.text


@dataclass(frozen=True)
class BareParam:
    name: str

    def usage(self) -> str:
        return "{" + self.name + "}"


@dataclass(frozen=True)
class QuotedParam:
    name: str

    def usage(self) -> str:
        return f"[{self.name}]"


Token = Static | BareParam | QuotedParam


def parse_pattern(pattern: str) -> tuple[Token, ...]:
    """Parse a pattern string into tokens, raising PatternError if malformed."""
    words = pattern.split()
    if not words:
        raise PatternError(pattern, "empty pattern")

    tokens: list[Token] = []
    seen: set[str] = set()
    for word in words:
        opener = word[0]
        if opener in "{[":
            closer = "}" if opener == "{" else "]"
            if len(word) < 2 or not word.endswith(closer):
                raise PatternError(pattern, f"unterminated {opener!r} in {word!r}")
            name = word[1:-1]
            if not name:
                raise PatternError(pattern, "empty parameter name")
            if not _NAME_RE.match(name):
                raise PatternError(pattern, f"invalid parameter name {name!r}")
            if name in seen:
                raise PatternError(pattern, f"duplicate parameter name {name!r}")
            seen.add(name)
            tokens.append(BareParam(name) if opener == "{" else QuotedParam(name))
        elif any(ch in word for ch in "{}[]"):
            raise PatternError(pattern, f"stray bracket in static segment {word!r}")
        else:
            tokens.append(Static(word))
    return tuple(tokens)


def render_usage(tokens: Sequence[Token]) -> str:
    return " ".join(token.usage() for token in tokens)


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _at_boundary(text: str, pos: int) -> bool:
    return pos >= len(text) or text[pos].isspace()


def _match_static(word: str, text: str, pos: int, case_insensitive: bool) -> int | None:
    end = pos + len(word)
    segment = text[pos:end]
    if case_insensitive:
        if segment.casefold() != word.casefold():
            return None
    elif segment != word:
        return None
    if not _at_boundary(text, end):
        return None
    return end


def _take_word(text: str, pos: int) -> tuple[str, int] | None:
    m = _WORD_RE.match(text, pos)
    if m is None:
        return None
    return m.group(0), m.end()


def _take_bracketed(text: str, pos: int) -> tuple[str, int] | None:
    depth = 0
    for i in range(pos, len(text)):
        ch = text[i]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[pos + 1 : i], i + 1
    return None


def _take_quoted(text: str, pos: int) -> tuple[str, int] | None:
    if pos >= len(text):
        return None
    if text.startswith(CODE_FENCE, pos):
        close = text.find(CODE_FENCE, pos + len(CODE_FENCE))
        if close == -1:
            return None
        end = close + len(CODE_FENCE)
        return text[pos:end], end
    if text[pos] == '"':
        close = text.find('"', pos + 1)
        if close == -1:
            return None
        return text[pos + 1 : close], close + 1
    if text[pos] == "[":
        return _take_bracketed(text, pos)
    # Lenient mode: no opening delimiter, capture a single word
    return _take_word(text, pos)


def match_tokens(
    tokens: Sequence[Token], text: str, *, case_insensitive: bool = False
) -> dict[str, str] | None:
    """Match ``text`` against ``tokens``.

    Returns the captured parameters, or None when the input does not satisfy
    the whole pattern. A failed match never yields partial captures.
    """
    text = text.strip()
    pos = 0
    captures: dict[str, str] = {}
    for token in tokens:
        if isinstance(token, Static):
            end = _match_static(token.text, text, pos, case_insensitive)
            if end is None:
                return None
            pos = end
        else:
            taken = _take_word(text, pos) if isinstance(token, BareParam) else _take_quoted(
                text, pos
            )
            if taken is None:
                return None
            value, end = taken
            if not _at_boundary(text, end):
                return None
            captures[token.name] = value
            pos = end
        pos = _skip_ws(text, pos)
    if pos != len(text):
        return None
    return captures


@dataclass(frozen=True)
class Pattern:
    """A parsed command pattern. Immutable and safe to match concurrently."""

    source: str
    tokens: tuple[Token, ...]

    @classmethod
    def compile(cls, source: str) -> Pattern:
        return cls(source=source, tokens=parse_pattern(source))

    @property
    def usage(self) -> str:
        return render_usage(self.tokens)

    @property
    def path(self) -> tuple[str, ...]:
        """The leading static words, e.g. ``("tag", "create")``."""
        words: list[str] = []
        for token in self.tokens:
            if not isinstance(token, Static):
                break
            words.append(token.text)
        return tuple(words)

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(t.name for t in self.tokens if not isinstance(t, Static))

    def match(self, text: str, *, case_insensitive: bool = False) -> dict[str, str] | None:
        return match_tokens(self.tokens, text, case_insensitive=case_insensitive)

    def fill(self, values: Mapping[str, str]) -> str:
        """Substitute ``values`` into the parameter slots, quoting where needed."""
        parts: list[str] = []
        for token in self.tokens:
            if isinstance(token, Static):
                parts.append(token.text)
            elif isinstance(token, BareParam):
                parts.append(values[token.name])
            else:
                parts.append(f"[{values[token.name]}]")
        return " ".join(parts)
