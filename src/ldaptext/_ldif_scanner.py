# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import enum
import logging
import re
import typing as t

log = logging.getLogger(__name__)

# RFC 2849 - the subset of the grammar the scanner needs to recognise lines.
#
#     version-spec         = "version:" FILL version-number
#     dn-spec              = "dn:" (FILL distinguishedName /
#                                   ":" FILL base64-distinguishedName)
#     control              = "control:" FILL ldap-oid
#                            0*1(1*SPACE ("true" / "false"))
#                            0*1(value-spec) SEP
#     attrval-spec         = AttributeDescription value-spec SEP
#     value-spec           = ":" (FILL 0*1(SAFE-STRING) /
#                                 ":" FILL (BASE64-STRING) /
#                                 "<" FILL url)
#     changerecord         = "changetype:" FILL
#                            (change-add / change-delete /
#                             change-modify / change-moddn)
#     mod-spec             = ("add:" / "delete:" / "replace:")
#                            FILL AttributeDescription SEP
#                            *attrval-spec
#                            "-" SEP
#     SEP                  = (CR LF / LF)
#
# A line break followed by a single space or tab continues the previous line.
_LINE_BREAK_PATTERN = re.compile(r"\r\n|\n")
_FOLD_PATTERN = re.compile(r"(?:\r\n|\n)[ \t]")

_ATTRIBUTE_DESCRIPTION_PATTERN = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9.;\-]*")
_VALUE_TYPE_PATTERN = re.compile(r":(?P<type>[:<]?) *")
_NUMBER_PATTERN = re.compile(r"[0-9]+")
_OID_PATTERN = re.compile(r"[0-9]+(?:\.[0-9]+)*")
_CRITICALITY_PATTERN = re.compile(r" +(?:true|false)", re.IGNORECASE)
_MODSPEC_SEP_PATTERN = re.compile(r"- *")

CHANGE_TYPES = ["add", "delete", "modify", "moddn", "modrdn"]
MOD_TYPES = ["add", "delete", "replace"]


class LdifTokenKind(str, enum.Enum):
    COMMENT = "comment"
    VERSION_SPEC = "version-spec"
    DN_SPEC = "dn-spec"
    CONTROL_SPEC = "control-spec"
    CHANGETYPE_SPEC = "changetype-spec"
    MODTYPE_SPEC = "modtype-spec"
    ATTRIBUTE = "attribute"
    VALUE_TYPE_SAFE = "value-type-safe"
    VALUE_TYPE_BASE64 = "value-type-base64"
    VALUE_TYPE_URL = "value-type-url"
    VALUE = "value"
    NUMBER = "number"
    OID = "oid"
    CRITICALITY = "criticality"
    CHANGETYPE = "changetype"
    MODSPEC_SEP = "modspec-sep"
    SEP = "sep"
    UNKNOWN = "unknown"
    ERROR = "error"
    EOF = "eof"


VALUE_TYPE_KINDS = [
    LdifTokenKind.VALUE_TYPE_SAFE,
    LdifTokenKind.VALUE_TYPE_BASE64,
    LdifTokenKind.VALUE_TYPE_URL,
]

_KEYWORD_KINDS = {
    "version": LdifTokenKind.VERSION_SPEC,
    "dn": LdifTokenKind.DN_SPEC,
    "control": LdifTokenKind.CONTROL_SPEC,
    "changetype": LdifTokenKind.CHANGETYPE_SPEC,
    "add": LdifTokenKind.MODTYPE_SPEC,
    "delete": LdifTokenKind.MODTYPE_SPEC,
    "replace": LdifTokenKind.MODTYPE_SPEC,
}

_VALUE_TYPE_KIND_MAP = {
    "": LdifTokenKind.VALUE_TYPE_SAFE,
    ":": LdifTokenKind.VALUE_TYPE_BASE64,
    "<": LdifTokenKind.VALUE_TYPE_URL,
}


def unfold(value: str) -> str:
    """Removes the LDIF line folding from a string.

    Args:
        value: The raw LDIF text that may contain folded lines.

    Returns:
        str: The text with every line break + single space/tab removed.
    """
    return _FOLD_PATTERN.sub("", value)


@dataclasses.dataclass(frozen=True)
class LdifToken:
    """A token of an LDIF document.

    The text is the exact slice of the source document the token was scanned
    from. If the token spans a folded line, the fold marker is part of the
    text but not of the value.

    Args:
        kind: The type of token.
        text: The raw source text of the token.
        offset: The offset of the token in the source document.
    """

    kind: LdifTokenKind
    text: str
    offset: int

    @property
    def length(self) -> int:
        return len(self.text)

    @property
    def end(self) -> int:
        return self.offset + len(self.text)

    @property
    def value(self) -> str:
        """The token text with any line folding removed."""
        return unfold(self.text)


class _LogicalLine:
    """An unfolded view of a single logical LDIF line.

    Keeps the unfolded text of the line as well as the position in the source
    document of each unfolded character so tokens found in the unfolded text
    can be mapped back onto the source.
    """

    def __init__(
        self,
        source: str,
        start: int,
        end: int,
    ) -> None:
        self.source = source
        self.start = start
        self.end = end

        pieces: t.List[str] = []
        self._positions: t.List[int] = []
        segment_start = start
        for fold in _FOLD_PATTERN.finditer(source, start, end):
            pieces.append(source[segment_start : fold.start()])
            self._positions.extend(range(segment_start, fold.start()))
            segment_start = fold.end()

        pieces.append(source[segment_start:end])
        self._positions.extend(range(segment_start, end))
        self.text = "".join(pieces)

    def source_offset(self, index: int) -> int:
        if index >= len(self._positions):
            return self.end

        return self._positions[index]


def _iter_logical_lines(
    ldif: str,
) -> t.Iterator[t.Tuple[int, int, int]]:
    """Yields the content start, content end, and line end of each line."""
    length = len(ldif)
    pos = 0
    while pos < length:
        line_break = _LINE_BREAK_PATTERN.match(ldif, pos)
        if line_break:
            # Empty line, never treated as a fold.
            yield pos, pos, line_break.end()
            pos = line_break.end()
            continue

        search_pos = pos
        while True:
            line_break = _LINE_BREAK_PATTERN.search(ldif, search_pos)
            if not line_break:
                content_end = line_end = length
                break

            next_char = line_break.end()
            if next_char < length and ldif[next_char] in " \t":
                search_pos = next_char + 1
                continue

            content_end = line_break.start()
            line_end = line_break.end()
            break

        yield pos, content_end, line_end
        pos = line_end


def _scan_line(
    line: _LogicalLine,
) -> t.List[LdifToken]:
    """Scans the tokens of a single logical line without the line separator."""
    tokens: t.List[LdifToken] = []
    text = line.text

    def add(kind: LdifTokenKind, start: int, end: int) -> None:
        source_start = line.source_offset(start)
        source_end = line.source_offset(end)
        tokens.append(LdifToken(kind, line.source[source_start:source_end], source_start))

    if not text:
        return tokens

    if text.startswith("#"):
        add(LdifTokenKind.COMMENT, 0, len(text))
        return tokens

    if _MODSPEC_SEP_PATTERN.fullmatch(text):
        add(LdifTokenKind.MODSPEC_SEP, 0, len(text))
        return tokens

    attr_match = _ATTRIBUTE_DESCRIPTION_PATTERN.match(text)
    if not attr_match:
        add(LdifTokenKind.UNKNOWN, 0, len(text))
        return tokens

    spec_kind = _KEYWORD_KINDS.get(attr_match.group(0).lower(), LdifTokenKind.ATTRIBUTE)
    add(spec_kind, 0, attr_match.end())

    value_type_match = _VALUE_TYPE_PATTERN.match(text, attr_match.end())
    if not value_type_match:
        # 'cn foo' - the rest of the line cannot be interpreted.
        if attr_match.end() < len(text):
            add(LdifTokenKind.ERROR, attr_match.end(), len(text))
        return tokens

    add(_VALUE_TYPE_KIND_MAP[value_type_match.group("type")], value_type_match.start(), value_type_match.end())
    pos = value_type_match.end()
    rest = text[pos:]
    if not rest:
        return tokens

    if spec_kind == LdifTokenKind.VERSION_SPEC:
        kind = LdifTokenKind.NUMBER if _NUMBER_PATTERN.fullmatch(rest) else LdifTokenKind.VALUE
        add(kind, pos, len(text))

    elif spec_kind == LdifTokenKind.CHANGETYPE_SPEC:
        kind = LdifTokenKind.CHANGETYPE if rest.lower() in CHANGE_TYPES else LdifTokenKind.VALUE
        add(kind, pos, len(text))

    elif spec_kind == LdifTokenKind.MODTYPE_SPEC:
        # Only a modify record treats this as a mod-spec, the record decides
        # whether the rest is an attribute description or a plain value.
        kind = LdifTokenKind.ATTRIBUTE if _ATTRIBUTE_DESCRIPTION_PATTERN.fullmatch(rest) else LdifTokenKind.VALUE
        add(kind, pos, len(text))

    elif spec_kind == LdifTokenKind.CONTROL_SPEC:
        _scan_control(text, pos, add)

    else:
        add(LdifTokenKind.VALUE, pos, len(text))

    return tokens


def _scan_control(
    text: str,
    pos: int,
    add: t.Callable[[LdifTokenKind, int, int], None],
) -> None:
    oid_match = _OID_PATTERN.match(text, pos)
    if not oid_match:
        add(LdifTokenKind.ERROR, pos, len(text))
        return

    add(LdifTokenKind.OID, pos, oid_match.end())
    pos = oid_match.end()

    criticality_match = _CRITICALITY_PATTERN.match(text, pos)
    if criticality_match:
        add(LdifTokenKind.CRITICALITY, pos, criticality_match.end())
        pos = criticality_match.end()

    value_type_match = _VALUE_TYPE_PATTERN.match(text, pos)
    if value_type_match:
        add(_VALUE_TYPE_KIND_MAP[value_type_match.group("type")], pos, value_type_match.end())
        pos = value_type_match.end()
        if pos < len(text):
            add(LdifTokenKind.VALUE, pos, len(text))
            pos = len(text)

    if pos < len(text):
        add(LdifTokenKind.ERROR, pos, len(text))


def tokenize_ldif(
    ldif: t.Optional[str],
) -> t.List[LdifToken]:
    """Tokenize an LDIF document.

    Scans the LDIF text into a flat list of tokens. The tokens are contiguous,
    concatenating the text of each token reproduces the input exactly. The
    list always ends with an EOF token at the length of the input. Malformed
    input never raises an exception, text that cannot be interpreted is
    returned as an UNKNOWN or ERROR token.

    Args:
        ldif: The LDIF text to tokenize, None is treated as an empty document.

    Returns:
        List[LdifToken]: The tokens of the document.
    """
    ldif = ldif or ""
    tokens: t.List[LdifToken] = []

    for start, content_end, line_end in _iter_logical_lines(ldif):
        tokens.extend(_scan_line(_LogicalLine(ldif, start, content_end)))
        if line_end > content_end:
            tokens.append(LdifToken(LdifTokenKind.SEP, ldif[content_end:line_end], content_end))

    tokens.append(LdifToken(LdifTokenKind.EOF, "", len(ldif)))
    log.debug("Scanned %d LDIF tokens from %d characters", len(tokens), len(ldif))

    return tokens


def split_lines(
    tokens: t.Iterable[LdifToken],
) -> t.Iterator[t.List[LdifToken]]:
    """Groups a token stream into lines.

    Each group ends with the SEP token of the line, except for a final line
    that is not terminated by a line separator. The EOF token is not part of
    any group.

    Args:
        tokens: The tokens from tokenize_ldif.

    Returns:
        Iterator[List[LdifToken]]: The tokens of each line.
    """
    current: t.List[LdifToken] = []
    for token in tokens:
        if token.kind == LdifTokenKind.EOF:
            break

        current.append(token)
        if token.kind == LdifTokenKind.SEP:
            yield current
            current = []

    if current:
        yield current
