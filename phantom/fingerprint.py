"""PhantomKeystroke Fingerprint Injector - region-aware command rewriting.

This module provides:
- A shell/PowerShell-like segmenter that splits a command into protected
  spans (operators, command words, flags, literals) and deceptive spans
  (identifiers, comments, display strings, whitespace)
- FingerprintInjector, which rewrites only the deceptive spans using a
  RegionProfile and a seeded PRNG
- protected_tokens(), the executable token sequence of a command

Text that cannot be segmented is returned untouched (fail closed).
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from enum import Enum

from phantom.exceptions import InjectionSkipped
from phantom.regions import (
    LexicalMarker,
    MarkerPlacement,
    PunctuationRule,
    RegionProfile,
    SubstitutionRule,
)

logger = logging.getLogger(__name__)


class SpanKind(Enum):
    OPERATOR = "operator"
    COMMAND = "command"
    FLAG = "flag"
    LITERAL = "literal"
    IDENTIFIER = "identifier"
    DISPLAY_STRING = "display_string"
    COMMENT = "comment"
    WHITESPACE = "whitespace"


DECEPTIVE_KINDS = frozenset(
    {SpanKind.IDENTIFIER, SpanKind.DISPLAY_STRING, SpanKind.COMMENT, SpanKind.WHITESPACE}
)

# Longest first
_OPERATORS = ("2>&1", "2>>", "&>", "2>", ">>", "&&", "||", "|", ";", "&", ">", "<", "(", ")")
_OPERATOR_CHARS = frozenset("|&;<>()")
_REDIRECTS = frozenset({"2>>", "&>", "2>", ">>", ">", "<"})
_SEPARATORS = frozenset({"|", "||", "&&", ";", "&", "("})
_INCOMPLETE_TAIL = frozenset({"|", "||", "&&"})

PREFIX_COMMANDS = frozenset({"sudo", "nohup", "time", "env", "xargs"})
DISPLAY_COMMANDS = frozenset({"echo", "printf", "write-host", "write-output", "print"})
RESERVED_WORDS = frozenset(
    {
        "if", "then", "else", "elif", "fi", "for", "in", "do", "done", "while",
        "until", "case", "esac", "function", "select", "{", "}", "!", "[[", "]]",
    }
)

_ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


@dataclass(frozen=True)
class Span:
    offset: int
    text: str
    kind: SpanKind

    @property
    def protected(self) -> bool:
        return self.kind not in DECEPTIVE_KINDS


@dataclass(frozen=True)
class Change:
    """One applied rule: kind is translation, substitution, marker or punctuation."""

    rule: str
    before: str
    after: str


@dataclass
class DiffEntry:
    """All changes applied to the span starting at offset in the original text."""

    offset: int
    kind: SpanKind
    before: str
    after: str
    changes: list[Change] = field(default_factory=list)


@dataclass
class FingerprintedCommand:
    """
    Result of one injection.

    Attributes:
        original_text: Command as typed by the operator
        rewritten_text: Command after regional rewriting
        diff_map: Span offset -> DiffEntry for every rewritten span
        skipped_reason: Set when segmentation failed and nothing was changed
    """

    original_text: str
    rewritten_text: str
    diff_map: dict[int, DiffEntry] = field(default_factory=dict)
    skipped_reason: str | None = None

    @property
    def changed(self) -> bool:
        return self.rewritten_text != self.original_text


# =============================================================================
# SEGMENTATION
# =============================================================================


def _match_operator(text: str, i: int) -> str | None:
    for op in _OPERATORS:
        if text.startswith(op, i):
            return op
    return None


def _scan_single_quoted(text: str, i: int) -> int:
    end = text.find("'", i)
    if end < 0:
        msg = "unterminated single quote"
        raise InjectionSkipped(msg)
    return end + 1


def _scan_backtick(text: str, i: int) -> int:
    end = text.find("`", i)
    if end < 0:
        msg = "unterminated backtick substitution"
        raise InjectionSkipped(msg)
    return end + 1


def _scan_double_quoted(text: str, i: int) -> int:
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
        elif ch == '"':
            return i + 1
        elif ch == "`":
            i = _scan_backtick(text, i + 1)
        elif text.startswith("$(", i):
            i = _scan_substitution(text, i + 2)
        else:
            i += 1
    msg = "unterminated double quote"
    raise InjectionSkipped(msg)


def _scan_substitution(text: str, i: int) -> int:
    depth = 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "'":
            i = _scan_single_quoted(text, i + 1)
            continue
        if ch == '"':
            i = _scan_double_quoted(text, i + 1)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    msg = "unterminated $( substitution"
    raise InjectionSkipped(msg)


def _scan_word(text: str, i: int) -> int:
    n = len(text)
    while i < n:
        if text.startswith("$(", i):
            i = _scan_substitution(text, i + 2)
            continue
        ch = text[i]
        if ch.isspace() or ch in _OPERATOR_CHARS:
            break
        if ch == "\\":
            i += 2
        elif ch == "'":
            i = _scan_single_quoted(text, i + 1)
        elif ch == '"':
            i = _scan_double_quoted(text, i + 1)
        elif ch == "`":
            i = _scan_backtick(text, i + 1)
        else:
            i += 1
    return min(i, n)


def _lex(text: str) -> list[tuple[int, str, str]]:
    tokens = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            j = i
            while j < n and text[j].isspace():
                j += 1
            tokens.append((i, text[i:j], "ws"))
            i = j
            continue
        if ch == "#":
            tokens.append((i, text[i:], "comment"))
            break
        if text.startswith("<<", i):
            msg = "heredoc redirection"
            raise InjectionSkipped(msg)
        op = _match_operator(text, i)
        if op:
            tokens.append((i, op, "op"))
            i += len(op)
            continue
        j = _scan_word(text, i)
        tokens.append((i, text[i:j], "word"))
        i = j
    return tokens


def _is_display_string(token: str, command: str | None) -> bool:
    if command not in DISPLAY_COMMANDS or len(token) < 2:
        return False
    quote = token[0]
    if quote not in "'\"" or token[-1] != quote:
        return False
    body = token[1:-1]
    return not any(c in body for c in (quote, "$", "`", "\\"))


def _classify_argument(token: str, command: str | None) -> SpanKind:
    if token.startswith("-"):
        return SpanKind.FLAG
    if _is_display_string(token, command):
        return SpanKind.DISPLAY_STRING
    if token.isidentifier() and token not in RESERVED_WORDS:
        return SpanKind.IDENTIFIER
    return SpanKind.LITERAL


def segment(text: str) -> list[Span]:
    """
    Split a command line into classified spans.

    Raises:
        InjectionSkipped: Text uses grammar the segmenter does not model
    """
    if _CONTROL_CHARS.search(text):
        msg = "control characters in command"
        raise InjectionSkipped(msg)

    spans: list[Span] = []
    expect_command = True
    redirect_target = False
    command: str | None = None

    for offset, token, kind in _lex(text):
        if kind == "ws":
            spans.append(Span(offset, token, SpanKind.WHITESPACE))
        elif kind == "comment":
            spans.append(Span(offset, token, SpanKind.COMMENT))
        elif kind == "op":
            spans.append(Span(offset, token, SpanKind.OPERATOR))
            if token in _REDIRECTS:
                redirect_target = True
            elif token in _SEPARATORS:
                expect_command = True
                command = None
        elif redirect_target:
            redirect_target = False
            spans.append(Span(offset, token, SpanKind.LITERAL))
        elif expect_command:
            spans.append(Span(offset, token, SpanKind.COMMAND))
            # Assignments, prefixes and their flags precede the real command word
            if (
                _ASSIGNMENT.match(token)
                or token in PREFIX_COMMANDS
                or token in RESERVED_WORDS
                or token.startswith("-")
            ):
                continue
            expect_command = False
            command = token.rsplit("/", 1)[-1].lower()
        else:
            spans.append(Span(offset, token, _classify_argument(token, command)))

    return spans


def protected_tokens(text: str) -> list[str]:
    """Executable token sequence; identical before and after injection."""
    return [span.text for span in segment(text) if span.protected]


# =============================================================================
# INJECTOR
# =============================================================================


def _referenced_in(name: str, tokens: list[str]) -> bool:
    """True if name appears as a whole word (path component, $name, ${name}) in any token."""
    pattern = re.compile(rf"(?<![A-Za-z0-9_]){re.escape(name)}(?![A-Za-z0-9_])")
    return any(pattern.search(token) for token in tokens)


def _match_case(original: str, replacement: str) -> str:
    if original.isupper():
        return replacement.upper()
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


class FingerprintInjector:
    """
    Rewrites deceptive spans with regional artifacts.
    Every random draw comes from the caller's rng, in span order, so a
    fixed seed reproduces the same rewrite.
    """

    def inject(self, text: str, profile: RegionProfile, rng: random.Random) -> FingerprintedCommand:
        try:
            spans = segment(text)
        except InjectionSkipped as e:
            logger.warning("Fingerprint injection skipped (%s): %r", e, text)
            return FingerprintedCommand(text, text, {}, skipped_reason=str(e))

        # Renames are fixed before any span is rewritten. A name that also
        # occurs inside a protected span (data/, ./data, $data) keeps its
        # spelling everywhere.
        protected = [span.text for span in spans if span.protected]
        renames: dict[str, tuple[str, list[Change]]] = {}
        for span in spans:
            if span.kind is not SpanKind.IDENTIFIER or span.text in renames:
                continue
            if _referenced_in(span.text, protected):
                renames[span.text] = (span.text, [])
            else:
                renames[span.text] = self._plan_identifier(span.text, profile, rng)

        pieces: list[str] = []
        diff_map: dict[int, DiffEntry] = {}
        for span in spans:
            if span.kind is SpanKind.IDENTIFIER:
                new, changes = renames[span.text]
            elif span.kind is SpanKind.COMMENT:
                body, changes = self._rewrite_free_text(span.text[1:], profile, rng)
                new = "#" + body
            elif span.kind is SpanKind.DISPLAY_STRING:
                quote = span.text[0]
                body, changes = self._rewrite_free_text(span.text[1:-1], profile, rng)
                new = f"{quote}{body}{quote}"
            else:
                pieces.append(span.text)
                continue

            pieces.append(new)
            if changes:
                diff_map[span.offset] = DiffEntry(span.offset, span.kind, span.text, new, list(changes))

        rewritten = "".join(pieces)

        if self._accepts_trailing_comment(text, spans):
            marker = self._pick_marker(profile.lexical_markers, MarkerPlacement.COMMENT, rng)
            if marker is not None:
                comment = f" # {marker.token}"
                rewritten += comment
                diff_map[len(text)] = DiffEntry(
                    len(text), SpanKind.COMMENT, "", comment, [Change("marker", "", comment)]
                )

        logger.debug("Injected %d change(s) for persona %s", len(diff_map), profile.code)
        return FingerprintedCommand(text, rewritten, diff_map)

    def _plan_identifier(
        self, name: str, profile: RegionProfile, rng: random.Random
    ) -> tuple[str, list[Change]]:
        changes: list[Change] = []
        translated = dict(profile.identifier_translations).get(name.lower())
        if translated and rng.random() < profile.translation_probability:
            new = _match_case(name, translated)
            changes.append(Change("translation", name, new))
        else:
            new, changes = self._substitute(name, profile.char_substitution_rules, rng)

        marker = self._pick_marker(profile.lexical_markers, MarkerPlacement.SUFFIX, rng)
        if marker is not None:
            new = f"{new}_{marker.token}"
            changes.append(Change("marker", "", f"_{marker.token}"))

        # A rename must stay a plain argument word
        if not new.isidentifier() or new in RESERVED_WORDS:
            return name, []
        return new, changes

    def _rewrite_free_text(
        self, body: str, profile: RegionProfile, rng: random.Random
    ) -> tuple[str, list[Change]]:
        body, changes = self._substitute(body, profile.char_substitution_rules, rng)
        body, punctuation = self._punctuate(body, profile.punctuation_rules)
        return body, changes + punctuation

    @staticmethod
    def _substitute(
        text: str, rules: tuple[SubstitutionRule, ...], rng: random.Random
    ) -> tuple[str, list[Change]]:
        out = []
        changes = []
        for ch in text:
            new = ch
            for rule in rules:
                if rule.source == ch and rng.random() < rule.probability:
                    new = rule.replacement
                    changes.append(Change("substitution", ch, new))
                    break
            out.append(new)
        return "".join(out), changes

    @staticmethod
    def _punctuate(text: str, rules: tuple[PunctuationRule, ...]) -> tuple[str, list[Change]]:
        if not rules:
            return text, []
        table = {rule.source: rule for rule in rules}
        out = ""
        changes = []
        for ch in text:
            rule = table.get(ch)
            if rule is None:
                out += ch
                continue
            replacement = rule.replacement
            if rule.space_before and out and not out[-1].isspace():
                replacement = " " + replacement
            if replacement != ch:
                changes.append(Change("punctuation", ch, replacement))
            out += replacement
        return out, changes

    @staticmethod
    def _pick_marker(
        markers: tuple[LexicalMarker, ...], placement: MarkerPlacement, rng: random.Random
    ) -> LexicalMarker | None:
        for marker in markers:
            if marker.placement is placement and rng.random() < marker.probability:
                return marker
        return None

    @staticmethod
    def _accepts_trailing_comment(text: str, spans: list[Span]) -> bool:
        if not text.strip() or text.rstrip().endswith("\\"):
            return False
        if any(span.kind is SpanKind.COMMENT for span in spans):
            return False
        tail = [span for span in spans if span.kind is not SpanKind.WHITESPACE]
        return not (tail and tail[-1].kind is SpanKind.OPERATOR and tail[-1].text in _INCOMPLETE_TAIL)
