# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import base64
import dataclasses
import enum
import logging
import typing as t

from ._ldif_scanner import (
    VALUE_TYPE_KINDS,
    LdifToken,
    LdifTokenKind,
    split_lines,
    tokenize_ldif,
)

log = logging.getLogger(__name__)


class LdifSyntaxError(ValueError):
    """Exception used for invalid LDIF documents.

    This exception is raised by :meth:`LdifFile.raise_for_invalid` when the
    parsed document contains an invalid line or record. Parsing itself never
    raises this error. It provides the full LDIF text as well as the offset and
    length of the part that is invalid.

    Args:
        msg: Details of the syntax error.
        ldif: The LDIF text.
        offset: The offset of the invalid part in the LDIF text.
        length: The length after offset that is invalid.
    """

    def __init__(
        self,
        msg: str,
        ldif: str,
        offset: int,
        length: int,
    ) -> None:
        super().__init__(msg)
        self.ldif = ldif
        self.offset = offset
        self.length = length


class LdifLineKind(str, enum.Enum):
    VERSION = "version"
    DN = "dn"
    ATTR_VAL = "attr-val"
    CONTROL = "control"
    CHANGETYPE = "changetype"
    MODSPEC = "modspec"
    MODSPEC_SEP = "modspec-sep"
    COMMENT = "comment"
    SEP = "sep"
    INVALID = "invalid"


class LdifValueType(str, enum.Enum):
    SAFE = "safe"
    BASE64 = "base64"
    URL = "url"


class ChangeType(str, enum.Enum):
    ADD = "add"
    DELETE = "delete"
    MODIFY = "modify"
    MODDN = "moddn"


class ModType(str, enum.Enum):
    ADD = "add"
    DELETE = "delete"
    REPLACE = "replace"


class RecordKind(str, enum.Enum):
    CONTENT = "content"
    ADD = "add"
    DELETE = "delete"
    MODIFY = "modify"
    MODDN = "moddn"
    UNKNOWN = "unknown"


_VALUE_TYPE_MAP = {
    LdifTokenKind.VALUE_TYPE_SAFE: LdifValueType.SAFE,
    LdifTokenKind.VALUE_TYPE_BASE64: LdifValueType.BASE64,
    LdifTokenKind.VALUE_TYPE_URL: LdifValueType.URL,
}

_CHANGE_TYPE_MAP = {
    "add": ChangeType.ADD,
    "delete": ChangeType.DELETE,
    "modify": ChangeType.MODIFY,
    "moddn": ChangeType.MODDN,
    "modrdn": ChangeType.MODDN,
}


def _decode_value(
    value_type: t.Optional[LdifValueType],
    raw_value: str,
) -> t.Union[str, bytes]:
    if value_type != LdifValueType.BASE64:
        return raw_value

    b_value = base64.b64decode(raw_value.strip(), validate=True)
    try:
        return b_value.decode("utf-8")
    except UnicodeDecodeError:
        return b_value


@dataclasses.dataclass(frozen=True)
class LdifLine:
    """Base class for all LDIF lines.

    A line is built from the tokens of one logical LDIF line, including the
    line separator that terminates it. Lines are immutable, everything they
    expose is derived from their tokens. A structurally invalid line is never
    an error when parsing, it is reported through :attr:`invalid_cause`.

    Currently the following lines are known:

        :class:`LdifVersionLine`
        :class:`LdifDnLine`
        :class:`LdifAttrValLine`
        :class:`LdifControlLine`
        :class:`LdifChangeTypeLine`
        :class:`LdifModSpecLine`
        :class:`LdifModSpecSepLine`
        :class:`LdifCommentLine`
        :class:`LdifSepLine`
        :class:`LdifInvalidLine`
    """

    kind: LdifLineKind
    "The type of line."

    tokens: t.Tuple[LdifToken, ...]
    "The tokens that make up the line."

    @property
    def offset(self) -> int:
        return self.tokens[0].offset if self.tokens else 0

    @property
    def length(self) -> int:
        return sum(token.length for token in self.tokens)

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def separator(self) -> str:
        """The line separator that terminates the line, empty at EOF."""
        token = self._find_token(LdifTokenKind.SEP)
        return token.text if token else ""

    @property
    def invalid_cause(self) -> t.Optional[str]:
        """A description of why the line is invalid or None if valid."""
        cause = self._get_invalid_cause()
        if cause:
            return cause

        error_token = self._find_token(LdifTokenKind.ERROR)
        if error_token:
            return f"Unexpected text '{error_token.value}'"

        return None

    @property
    def is_valid(self) -> bool:
        return self.invalid_cause is None

    def to_raw_string(self) -> str:
        """The exact source text of the line."""
        return "".join(token.text for token in self.tokens)

    def _find_token(
        self,
        *kinds: LdifTokenKind,
    ) -> t.Optional[LdifToken]:
        return next((token for token in self.tokens if token.kind in kinds), None)

    def _get_invalid_cause(self) -> t.Optional[str]:
        return None


@dataclasses.dataclass(frozen=True)
class _LdifValueLine(LdifLine):
    """Common behaviour for lines in the form 'name: value'."""

    @property
    def name(self) -> str:
        return self.tokens[0].value

    @property
    def value_type(self) -> t.Optional[LdifValueType]:
        token = self._find_token(*VALUE_TYPE_KINDS)
        return _VALUE_TYPE_MAP[token.kind] if token else None

    @property
    def raw_value(self) -> str:
        """The unfolded value as written in the source."""
        for idx, token in enumerate(self.tokens):
            if token.kind in VALUE_TYPE_KINDS:
                if idx + 1 < len(self.tokens) and self.tokens[idx + 1].kind not in [
                    LdifTokenKind.SEP,
                    LdifTokenKind.ERROR,
                ]:
                    return self.tokens[idx + 1].value

                break

        return ""

    @property
    def value(self) -> t.Union[str, bytes]:
        """The decoded value.

        Base64 values are decoded to a string if they represent valid UTF-8,
        otherwise the raw bytes are returned. An invalid base64 value results
        in the raw value as written.
        """
        try:
            return _decode_value(self.value_type, self.raw_value)
        except ValueError:
            return self.raw_value

    def _get_invalid_cause(self) -> t.Optional[str]:
        if self.value_type is None:
            return f"Missing colon ':' after '{self.name}'"

        if self.value_type == LdifValueType.BASE64:
            try:
                _decode_value(self.value_type, self.raw_value)
            except ValueError:
                return f"Invalid base64 value for '{self.name}'"

        return None


@dataclasses.dataclass(frozen=True)
class LdifVersionLine(_LdifValueLine):
    """LDIF version line, 'version: 1'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.VERSION)

    @property
    def version(self) -> str:
        return self.raw_value

    def _get_invalid_cause(self) -> t.Optional[str]:
        if self.value_type is None:
            return "Missing colon ':' after 'version'"

        if not self.version:
            return "Missing version number"

        if self.value_type != LdifValueType.SAFE or not self._find_token(LdifTokenKind.NUMBER):
            return f"Invalid version number '{self.version}'"

        if self.version != "1":
            return f"Unsupported LDIF version '{self.version}', only version 1 is supported"

        return None


@dataclasses.dataclass(frozen=True)
class LdifDnLine(_LdifValueLine):
    """LDIF distinguished name line, 'dn: cn=foo' or 'dn:: <base64>'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.DN)

    @property
    def dn(self) -> str:
        value = self.value
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")

        return value

    def _get_invalid_cause(self) -> t.Optional[str]:
        cause = super()._get_invalid_cause()
        if cause:
            return cause

        if self.value_type == LdifValueType.URL:
            return "A DN cannot reference a URL"

        if isinstance(self.value, bytes):
            return "DN is not valid UTF-8"

        if not self.raw_value:
            return "Missing DN"

        return None


@dataclasses.dataclass(frozen=True)
class LdifAttrValLine(_LdifValueLine):
    """LDIF attribute value line, 'attr: value', 'attr:: <base64>' or 'attr:< url'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.ATTR_VAL)

    @property
    def attribute(self) -> str:
        return self.name


@dataclasses.dataclass(frozen=True)
class LdifControlLine(LdifLine):
    """LDIF control line, 'control: <oid> [true|false] [value-spec]'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.CONTROL)

    @property
    def oid(self) -> t.Optional[str]:
        token = self._find_token(LdifTokenKind.OID)
        return token.value if token else None

    @property
    def criticality(self) -> t.Optional[bool]:
        """The criticality if specified or None if omitted."""
        token = self._find_token(LdifTokenKind.CRITICALITY)
        if token is None:
            return None

        return token.value.strip().lower() == "true"

    @property
    def value_type(self) -> t.Optional[LdifValueType]:
        # The first value type belongs to 'control:' itself.
        value_types = [token for token in self.tokens if token.kind in VALUE_TYPE_KINDS]
        return _VALUE_TYPE_MAP[value_types[1].kind] if len(value_types) > 1 else None

    @property
    def raw_value(self) -> t.Optional[str]:
        if self.value_type is None:
            return None

        token = self._find_token(LdifTokenKind.VALUE)
        return token.value if token else ""

    @property
    def value(self) -> t.Optional[t.Union[str, bytes]]:
        if self.value_type is None or self.raw_value is None:
            return None

        try:
            return _decode_value(self.value_type, self.raw_value)
        except ValueError:
            return self.raw_value

    def _get_invalid_cause(self) -> t.Optional[str]:
        if not self._find_token(*VALUE_TYPE_KINDS):
            return "Missing colon ':' after 'control'"

        if self.oid is None:
            return "Missing control OID"

        if self.value_type == LdifValueType.BASE64:
            try:
                _decode_value(self.value_type, self.raw_value or "")
            except ValueError:
                return "Invalid base64 control value"

        return None


@dataclasses.dataclass(frozen=True)
class LdifChangeTypeLine(_LdifValueLine):
    """LDIF change type line, 'changetype: modify'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.CHANGETYPE)

    @property
    def keyword(self) -> str:
        """The change type as written, 'modrdn' stays 'modrdn'."""
        return self.raw_value

    @property
    def change_type(self) -> t.Optional[ChangeType]:
        return _CHANGE_TYPE_MAP.get(self.raw_value.lower())

    def _get_invalid_cause(self) -> t.Optional[str]:
        if self.value_type is None:
            return "Missing colon ':' after 'changetype'"

        if not self.raw_value:
            return "Missing change type"

        if self.value_type != LdifValueType.SAFE or self.change_type is None:
            return f"Invalid change type '{self.raw_value}', expecting add, delete, modify, moddn or modrdn"

        return None


@dataclasses.dataclass(frozen=True)
class LdifModSpecLine(_LdifValueLine):
    """LDIF modification start line, 'add: attr', 'delete: attr' or 'replace: attr'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.MODSPEC)

    @property
    def keyword(self) -> str:
        return self.name

    @property
    def mod_type(self) -> ModType:
        return ModType(self.name.lower())

    @property
    def attribute(self) -> str:
        return self.raw_value

    def _get_invalid_cause(self) -> t.Optional[str]:
        if self.value_type is None:
            return f"Missing colon ':' after '{self.keyword}'"

        if not self.attribute:
            return f"Missing attribute description after '{self.keyword}:'"

        if self.value_type != LdifValueType.SAFE or not self._find_token(LdifTokenKind.ATTRIBUTE):
            return f"Invalid attribute description '{self.attribute}'"

        return None


@dataclasses.dataclass(frozen=True)
class LdifModSpecSepLine(LdifLine):
    """LDIF modification end line, '-'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.MODSPEC_SEP)


@dataclasses.dataclass(frozen=True)
class LdifCommentLine(LdifLine):
    """LDIF comment line, '# comment'."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.COMMENT)

    @property
    def comment(self) -> str:
        """The unfolded comment including the leading '#'."""
        return self.tokens[0].value


@dataclasses.dataclass(frozen=True)
class LdifSepLine(LdifLine):
    """An empty line, separates records."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.SEP)


@dataclasses.dataclass(frozen=True)
class LdifInvalidLine(LdifLine):
    """A line that could not be recognised."""

    kind: LdifLineKind = dataclasses.field(init=False, repr=False, default=LdifLineKind.INVALID)

    def _get_invalid_cause(self) -> t.Optional[str]:
        text = "".join(token.value for token in self.tokens if token.kind != LdifTokenKind.SEP)
        return f"Unknown line '{text}'"


_LINE_TYPES: t.Dict[LdifTokenKind, t.Type[LdifLine]] = {
    LdifTokenKind.VERSION_SPEC: LdifVersionLine,
    LdifTokenKind.DN_SPEC: LdifDnLine,
    LdifTokenKind.ATTRIBUTE: LdifAttrValLine,
    LdifTokenKind.CONTROL_SPEC: LdifControlLine,
    LdifTokenKind.CHANGETYPE_SPEC: LdifChangeTypeLine,
    LdifTokenKind.MODTYPE_SPEC: LdifModSpecLine,
    LdifTokenKind.MODSPEC_SEP: LdifModSpecSepLine,
    LdifTokenKind.COMMENT: LdifCommentLine,
    LdifTokenKind.SEP: LdifSepLine,
}


def parse_line(
    tokens: t.Sequence[LdifToken],
) -> LdifLine:
    """Build an LDIF line from its tokens.

    Creates the most specific line type based on the first token of the line.
    This never fails, a line that cannot be recognised is returned as an
    :class:`LdifInvalidLine`.

    Args:
        tokens: The tokens of the line as produced by split_lines.

    Returns:
        LdifLine: The line object.
    """
    line_tokens = tuple(tokens)
    if not line_tokens:
        return LdifInvalidLine(tokens=line_tokens)

    line_type = _LINE_TYPES.get(line_tokens[0].kind, LdifInvalidLine)
    return line_type(tokens=line_tokens)


@dataclasses.dataclass(frozen=True)
class LdifModSpec:
    """A modification block inside a modify change record.

    Args:
        mod_spec_line: The line that starts the block, 'add: attr'.
        attr_val_lines: The values of the modification.
        sep_line: The '-' line that ends the block, None if missing.
    """

    mod_spec_line: LdifModSpecLine
    attr_val_lines: t.Tuple[LdifAttrValLine, ...]
    sep_line: t.Optional[LdifModSpecSepLine]

    @property
    def mod_type(self) -> ModType:
        return self.mod_spec_line.mod_type

    @property
    def attribute(self) -> str:
        return self.mod_spec_line.attribute


@dataclasses.dataclass(frozen=True)
class LdifRecord:
    """An LDIF record.

    A record is a group of lines, starting with a DN line, that describe an
    entry or a change operation. A record that does not follow the LDIF record
    rules is still kept, its problem is available through
    :attr:`invalid_cause`.

    Args:
        kind: The type of record.
        lines: The lines of the record including comments and the empty line
            that terminated it.
        mod_specs: The modification blocks of a modify record.
        record_cause: The record level rule violation if any.
    """

    kind: RecordKind
    lines: t.Tuple[LdifLine, ...]
    mod_specs: t.Tuple[LdifModSpec, ...] = ()
    record_cause: t.Optional[str] = None

    @property
    def dn_line(self) -> t.Optional[LdifDnLine]:
        return next((line for line in self.lines if isinstance(line, LdifDnLine)), None)

    @property
    def dn(self) -> t.Optional[str]:
        dn_line = self.dn_line
        return dn_line.dn if dn_line else None

    @property
    def change_type_line(self) -> t.Optional[LdifChangeTypeLine]:
        return next((line for line in self.lines if isinstance(line, LdifChangeTypeLine)), None)

    @property
    def control_lines(self) -> t.List[LdifControlLine]:
        return [line for line in self.lines if isinstance(line, LdifControlLine)]

    @property
    def attr_val_lines(self) -> t.List[LdifAttrValLine]:
        return [line for line in self.lines if isinstance(line, LdifAttrValLine)]

    @property
    def offset(self) -> int:
        return self.lines[0].offset if self.lines else 0

    @property
    def length(self) -> int:
        return sum(line.length for line in self.lines)

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def invalid_line(self) -> t.Optional[LdifLine]:
        return next((line for line in self.lines if not line.is_valid), None)

    @property
    def invalid_cause(self) -> t.Optional[str]:
        """A description of why the record is invalid or None if valid."""
        invalid_line = self.invalid_line
        if invalid_line:
            return invalid_line.invalid_cause

        return self.record_cause

    @property
    def is_valid(self) -> bool:
        return self.invalid_cause is None

    def to_raw_string(self) -> str:
        return "".join(line.to_raw_string() for line in self.lines)


def _as_attr_val_line(line: LdifLine) -> LdifLine:
    # 'add: foo' outside a modify record is an attribute called add.
    if isinstance(line, LdifModSpecLine):
        return LdifAttrValLine(tokens=line.tokens)

    return line


def _check_content_lines(
    lines: t.List[LdifLine],
) -> t.Tuple[t.List[LdifLine], t.Optional[str]]:
    converted = [_as_attr_val_line(line) for line in lines]
    cause: t.Optional[str] = None
    has_values = False
    for line in converted:
        if isinstance(line, LdifAttrValLine):
            has_values = True

        elif not isinstance(line, (LdifCommentLine, LdifSepLine)) and cause is None:
            cause = f"Unexpected {line.kind.value} line in record"

    if cause is None and not has_values:
        cause = "Record must contain at least one attribute value line"

    return converted, cause


def _check_delete_lines(
    lines: t.List[LdifLine],
) -> t.Optional[str]:
    for line in lines:
        if not isinstance(line, (LdifCommentLine, LdifSepLine)):
            return "A delete record cannot contain any more lines after the change type"

    return None


def _check_moddn_lines(
    lines: t.List[LdifLine],
) -> t.Tuple[t.List[LdifLine], t.Optional[str]]:
    converted = [_as_attr_val_line(line) for line in lines]
    seen: t.Dict[str, LdifAttrValLine] = {}
    for line in converted:
        if isinstance(line, (LdifCommentLine, LdifSepLine)):
            continue

        if not isinstance(line, LdifAttrValLine):
            return converted, f"Unexpected {line.kind.value} line in moddn record"

        name = line.attribute.lower()
        if name not in ["newrdn", "deleteoldrdn", "newsuperior"]:
            return converted, f"Unexpected attribute '{line.attribute}' in moddn record"

        if name in seen:
            return converted, f"Duplicate '{line.attribute}' line in moddn record"

        seen[name] = line

    if "newrdn" not in seen:
        return converted, "Missing newrdn line in moddn record"

    if "deleteoldrdn" not in seen:
        return converted, "Missing deleteoldrdn line in moddn record"

    if seen["deleteoldrdn"].value not in ["0", "1"]:
        return converted, "Invalid deleteoldrdn value, expecting 0 or 1"

    return converted, None


def _check_modify_lines(
    lines: t.List[LdifLine],
) -> t.Tuple[t.List[LdifModSpec], t.Optional[str]]:
    mod_specs: t.List[LdifModSpec] = []
    cause: t.Optional[str] = None

    current: t.Optional[LdifModSpecLine] = None
    values: t.List[LdifAttrValLine] = []

    def finish(sep_line: t.Optional[LdifModSpecSepLine]) -> None:
        if current is not None:
            mod_specs.append(LdifModSpec(current, tuple(values), sep_line))

    for line in lines:
        if isinstance(line, (LdifCommentLine, LdifSepLine)):
            continue

        line_cause: t.Optional[str] = None
        if isinstance(line, LdifModSpecLine):
            if current is not None:
                line_cause = f"Missing '-' to end the modification of '{current.attribute}'"
                finish(None)

            current = line
            values = []

        elif isinstance(line, LdifAttrValLine):
            if current is None:
                line_cause = f"Attribute '{line.attribute}' is outside of a modification"

            elif line.attribute.lower() != current.attribute.lower():
                line_cause = (
                    f"Attribute '{line.attribute}' does not match the modification attribute '{current.attribute}'"
                )

            else:
                values.append(line)

        elif isinstance(line, LdifModSpecSepLine):
            if current is None:
                line_cause = "Unexpected '-' without a modification"

            else:
                finish(line)
                current = None
                values = []

        else:
            line_cause = f"Unexpected {line.kind.value} line in modify record"

        if cause is None:
            cause = line_cause

    if current is not None:
        finish(None)
        if cause is None:
            cause = f"Missing '-' to end the modification of '{current.attribute}'"

    if cause is None and not mod_specs:
        cause = "A modify record must contain at least one modification"

    return mod_specs, cause


def parse_record(
    lines: t.Sequence[LdifLine],
) -> LdifRecord:
    """Build an LDIF record from its lines.

    Groups the lines of a record and validates the record structure. The
    first non-comment line must be a DN line, optionally followed by control
    lines and a change type line. The remaining lines are validated based on
    the change type. This never fails, a record that breaks the rules is
    returned with the reason set in ``record_cause``.

    Args:
        lines: The lines of the record including comments and the trailing
            empty line.

    Returns:
        LdifRecord: The record object.
    """
    all_lines = list(lines)

    idx = 0
    while idx < len(all_lines) and isinstance(all_lines[idx], LdifCommentLine):
        idx += 1

    if idx == len(all_lines) or not isinstance(all_lines[idx], LdifDnLine):
        return LdifRecord(
            kind=RecordKind.UNKNOWN,
            lines=tuple(all_lines),
            record_cause="Record must start with a dn line",
        )

    idx += 1
    has_controls = False
    change_type_line: t.Optional[LdifChangeTypeLine] = None
    while idx < len(all_lines):
        line = all_lines[idx]
        if isinstance(line, LdifControlLine):
            has_controls = True

        elif isinstance(line, LdifChangeTypeLine):
            change_type_line = line
            idx += 1
            break

        elif not isinstance(line, LdifCommentLine):
            break

        idx += 1

    header = all_lines[:idx]
    body = all_lines[idx:]

    if change_type_line is None:
        body, cause = _check_content_lines(body)
        if has_controls:
            cause = "Missing changetype line after control"

        return LdifRecord(kind=RecordKind.CONTENT, lines=tuple(header + body), record_cause=cause)

    change_type = change_type_line.change_type
    if change_type == ChangeType.ADD:
        body, cause = _check_content_lines(body)
        return LdifRecord(kind=RecordKind.ADD, lines=tuple(header + body), record_cause=cause)

    elif change_type == ChangeType.DELETE:
        return LdifRecord(
            kind=RecordKind.DELETE,
            lines=tuple(header + body),
            record_cause=_check_delete_lines(body),
        )

    elif change_type == ChangeType.MODIFY:
        mod_specs, cause = _check_modify_lines(body)
        return LdifRecord(
            kind=RecordKind.MODIFY,
            lines=tuple(header + body),
            mod_specs=tuple(mod_specs),
            record_cause=cause,
        )

    elif change_type == ChangeType.MODDN:
        body, cause = _check_moddn_lines(body)
        return LdifRecord(kind=RecordKind.MODDN, lines=tuple(header + body), record_cause=cause)

    else:
        # The change type line itself reports the invalid value.
        return LdifRecord(kind=RecordKind.UNKNOWN, lines=tuple(header + body))


@dataclasses.dataclass(frozen=True)
class LdifFile:
    """A parsed LDIF document.

    Contains every line of the document in order as well as the records built
    from them. Lines that are not part of a record, the version line, comment
    blocks and extra empty lines between records, are only present in
    :attr:`lines`.

    Args:
        lines: All the lines of the document.
        records: The records of the document.
    """

    lines: t.Tuple[LdifLine, ...] = ()
    records: t.Tuple[LdifRecord, ...] = ()

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def version_line(self) -> t.Optional[LdifVersionLine]:
        return next((line for line in self.lines if isinstance(line, LdifVersionLine)), None)

    @property
    def version(self) -> t.Optional[str]:
        version_line = self.version_line
        return version_line.version if version_line else None

    @property
    def invalid_records(self) -> t.List[LdifRecord]:
        return [record for record in self.records if not record.is_valid]

    @property
    def is_valid(self) -> bool:
        return all(line.is_valid for line in self.lines) and not self.invalid_records

    def line_at(
        self,
        offset: int,
    ) -> t.Optional[LdifLine]:
        """Get the line that contains the character at offset."""
        return next((line for line in self.lines if line.offset <= offset < line.end), None)

    def record_at(
        self,
        offset: int,
    ) -> t.Optional[LdifRecord]:
        """Get the record that contains the character at offset."""
        return next((record for record in self.records if record.offset <= offset < record.end), None)

    def raise_for_invalid(self) -> None:
        """Raises an LdifSyntaxError for the first invalid part of the document.

        Raises:
            LdifSyntaxError: The document contains an invalid line or record.
        """
        record_lines = {id(line) for record in self.records for line in record.lines}
        problems: t.List[t.Tuple[LdifLine, str]] = []
        for line in self.lines:
            if id(line) not in record_lines and not line.is_valid:
                problems.append((line, line.invalid_cause or ""))

        for record in self.invalid_records:
            invalid_line = record.invalid_line or record.dn_line or record.lines[0]
            problems.append((invalid_line, record.invalid_cause or ""))

        if problems:
            line, cause = min(problems, key=lambda p: p[0].offset)
            raise LdifSyntaxError(
                cause,
                ldif=self.to_raw_string(),
                offset=line.offset,
                length=line.length,
            )

    def to_raw_string(self) -> str:
        """The exact source text the file was parsed from."""
        return "".join(line.to_raw_string() for line in self.lines)


def parse_file(
    ldif: t.Optional[str],
) -> LdifFile:
    """Parse an LDIF document.

    Tokenizes the LDIF text, builds the lines and groups them into records.
    Records are separated by one or more empty lines. Comment blocks, empty
    lines and the version line before the first record are kept as file
    lines. This never fails, an empty or None document results in a file with
    no records.

    Args:
        ldif: The LDIF text to parse.

    Returns:
        LdifFile: The parsed document.
    """
    lines = [parse_line(tokens) for tokens in split_lines(tokenize_ldif(ldif))]

    file_lines: t.List[LdifLine] = []
    records: t.List[LdifRecord] = []
    version_seen = False

    idx = 0
    while idx < len(lines):
        if isinstance(lines[idx], LdifSepLine):
            file_lines.append(lines[idx])
            idx += 1
            continue

        block_end = idx
        while block_end < len(lines) and not isinstance(lines[block_end], LdifSepLine):
            block_end += 1

        block = lines[idx:block_end]
        if not records and not version_seen:
            version_idx = 0
            while version_idx < len(block) and isinstance(block[version_idx], LdifCommentLine):
                version_idx += 1

            if version_idx < len(block) and isinstance(block[version_idx], LdifVersionLine):
                version_seen = True
                file_lines.extend(block[: version_idx + 1])
                block = block[version_idx + 1 :]

        if all(isinstance(line, LdifCommentLine) for line in block):
            file_lines.extend(block)
            idx = block_end
            continue

        # The empty line that ends the record belongs to it.
        if block_end < len(lines):
            block.append(lines[block_end])
            block_end += 1

        record = parse_record(block)
        records.append(record)
        file_lines.extend(record.lines)
        idx = block_end

    ldif_file = LdifFile(lines=tuple(file_lines), records=tuple(records))
    log.debug(
        "Parsed LDIF document with %d lines and %d records, %d invalid",
        len(file_lines),
        len(records),
        len(ldif_file.invalid_records),
    )

    return ldif_file
