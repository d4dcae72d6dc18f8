# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import enum
import logging
import re
import typing as t

log = logging.getLogger(__name__)

# RFC 4515 - String Representation of Search Filters
#
#     filter         = LPAREN filtercomp RPAREN
#     filtercomp     = and / or / not / item
#     and            = AMPERSAND filterlist
#     or             = VERTBAR filterlist
#     not            = EXCLAMATION filter
#     item           = simple / present / substring / extensible
#     simple         = attr filtertype assertionvalue
#     filtertype     = equal / approx / greaterorequal / lessorequal
#     extensible     = ( attr [dnattrs] [matchingrule] COLON EQUALS assertionvalue )
#                      / ( [dnattrs] matchingrule COLON EQUALS assertionvalue )
#     present        = attr EQUALS ASTERISK
#     substring      = attr EQUALS [initial] any [final]
#
# The attribute of an extensible item includes the ':dn' and ':rule' parts, it
# ends at the ':' of ':='.
_WHITESPACE_PATTERN = re.compile(r"[ \t\r\n]+")
_ATTRIBUTE_PATTERN = re.compile(r"(?:[^()=~<>: \t\r\n]|[~<>:](?!=))+")
_VALUE_PART_PATTERN = re.compile(r"\*|[^*]+")
_ERROR_PATTERN = re.compile(r"[^()]+")


class FilterTokenKind(str, enum.Enum):
    LPAR = "lpar"
    RPAR = "rpar"
    AND = "and"
    OR = "or"
    NOT = "not"
    ATTRIBUTE = "attribute"
    EQUAL = "equal"
    APROX = "aprox"
    GREATER = "greater"
    LESS = "less"
    PRESENT = "present"
    EXTENSIBLE = "extensible"
    VALUE = "value"
    ASTERISK = "asterisk"
    WHITESPACE = "whitespace"
    ERROR = "error"
    EOF = "eof"


OPERATOR_KINDS = [
    FilterTokenKind.EQUAL,
    FilterTokenKind.APROX,
    FilterTokenKind.GREATER,
    FilterTokenKind.LESS,
    FilterTokenKind.PRESENT,
    FilterTokenKind.EXTENSIBLE,
]

_LOGICAL_KINDS = {
    "&": FilterTokenKind.AND,
    "|": FilterTokenKind.OR,
    "!": FilterTokenKind.NOT,
}

# Longer operators are checked first so '~=' is not seen as '~' + '='.
_OPERATORS = [
    ("~=", FilterTokenKind.APROX),
    (">=", FilterTokenKind.GREATER),
    ("<=", FilterTokenKind.LESS),
    (":=", FilterTokenKind.EXTENSIBLE),
    ("=", FilterTokenKind.EQUAL),
]


@dataclasses.dataclass(frozen=True)
class FilterToken:
    """A token of an LDAP filter string.

    Args:
        kind: The type of token.
        text: The source text of the token.
        offset: The offset of the token in the filter string.
    """

    kind: FilterTokenKind
    text: str
    offset: int

    @property
    def length(self) -> int:
        return len(self.text)

    @property
    def end(self) -> int:
        return self.offset + len(self.text)


def _scan_operator(
    text: str,
    pos: int,
) -> t.Optional[t.Tuple[FilterTokenKind, int]]:
    # '=*' is only a presence check if nothing else follows the '*'.
    if text.startswith("=*", pos) and (pos + 2 == len(text) or text[pos + 2] == ")"):
        return FilterTokenKind.PRESENT, pos + 2

    for operator, kind in _OPERATORS:
        if text.startswith(operator, pos):
            return kind, pos + len(operator)

    return None


def tokenize_filter(
    filter: t.Optional[str],
) -> t.List[FilterToken]:
    """Tokenize an LDAP filter string.

    Scans the filter string into a list of tokens. How a character is treated
    depends on the token that came before it, an '&' is only an AND after a
    '(' and everything between an operator and the next parenthesis is the
    value. Tokenizing never fails, text that does not fit where it appears is
    returned as an ERROR token that runs to the next parenthesis. The tokens
    cover the whole input and the list always ends with an EOF token.

    Args:
        filter: The LDAP filter string, None is treated as an empty string.

    Returns:
        List[FilterToken]: The tokens of the filter.
    """
    text = filter or ""
    tokens: t.List[FilterToken] = []
    last: t.Optional[FilterTokenKind] = None

    def add(kind: FilterTokenKind, start: int, end: int) -> int:
        tokens.append(FilterToken(kind, text[start:end], start))
        return end

    pos = 0
    while pos < len(text):
        char = text[pos]

        if char == "(":
            pos = add(FilterTokenKind.LPAR, pos, pos + 1)
            last = FilterTokenKind.LPAR
            continue

        elif char == ")":
            pos = add(FilterTokenKind.RPAR, pos, pos + 1)
            last = FilterTokenKind.RPAR
            continue

        if last in OPERATOR_KINDS and last != FilterTokenKind.PRESENT:
            # The value runs to the next parenthesis, whitespace included.
            value_end = _ERROR_PATTERN.match(text, pos)
            region_end = value_end.end() if value_end else pos
            for part in _VALUE_PART_PATTERN.finditer(text, pos, region_end):
                kind = FilterTokenKind.ASTERISK if part.group(0) == "*" else FilterTokenKind.VALUE
                add(kind, part.start(), part.end())

            pos = region_end
            last = FilterTokenKind.VALUE
            continue

        if last != FilterTokenKind.ATTRIBUTE:
            whitespace = _WHITESPACE_PATTERN.match(text, pos)
            if whitespace:
                pos = add(FilterTokenKind.WHITESPACE, pos, whitespace.end())
                continue

        if last == FilterTokenKind.LPAR and char in _LOGICAL_KINDS:
            last = _LOGICAL_KINDS[char]
            pos = add(last, pos, pos + 1)
            continue

        if last == FilterTokenKind.ATTRIBUTE:
            operator = _scan_operator(text, pos)
            if operator:
                last = operator[0]
                pos = add(last, pos, operator[1])
                continue

        elif last in [None, FilterTokenKind.LPAR]:
            attribute = _ATTRIBUTE_PATTERN.match(text, pos)
            if attribute:
                last = FilterTokenKind.ATTRIBUTE
                pos = add(last, pos, attribute.end())
                continue

        error = _ERROR_PATTERN.match(text, pos)
        error_end = error.end() if error else pos + 1
        pos = add(FilterTokenKind.ERROR, pos, error_end)
        last = FilterTokenKind.ERROR

    tokens.append(FilterToken(FilterTokenKind.EOF, "", len(text)))
    log.debug("Scanned %d filter tokens from %d characters", len(tokens), len(text))

    return tokens
