# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import base64
import dataclasses
import logging
import re
import typing as t

from ._ldif import (
    LdifAttrValLine,
    LdifChangeTypeLine,
    LdifCommentLine,
    LdifControlLine,
    LdifDnLine,
    LdifFile,
    LdifLine,
    LdifModSpecLine,
    LdifModSpecSepLine,
    LdifRecord,
    LdifSepLine,
    LdifValueType,
    LdifVersionLine,
)

log = logging.getLogger(__name__)

# SAFE-INIT-CHAR excludes NUL, LF, CR, SPACE, ':' and '<'. The remaining
# characters must be 7-bit without NUL, LF, CR. Control characters and DEL are
# also encoded so the text stays printable in an editor.
_UNSAFE_INIT_CHARS = [" ", ":", "<"]
_UNSAFE_CHAR_PATTERN = re.compile(r"[\x00-\x1F\x7F-\U0010FFFF]")

LINE_SEPARATORS = ["\n", "\r\n"]


@dataclasses.dataclass
class LdifFormatParameters:
    """Parameters used when formatting LDIF text.

    Custom options used to control how the LDIF model is written back to text.
    Parsing accepts either line separator regardless of these parameters.

    Args:
        space_after_colon: Add a space after the ':' that follows an attribute.
        line_width: The column at which long lines are folded.
        line_separator: The line separator to use, either '\\n' or '\\r\\n'.
    """

    space_after_colon: bool = True
    line_width: int = 76
    line_separator: str = "\n"

    def __post_init__(self) -> None:
        if self.line_width < 2:
            raise ValueError(f"line_width must be 2 or more, received {self.line_width}")

        if self.line_separator not in LINE_SEPARATORS:
            raise ValueError(f"line_separator must be '\\n' or '\\r\\n', received {self.line_separator!r}")


def must_base64_encode(
    value: t.Union[str, bytes],
) -> bool:
    """Checks whether an LDIF value must be base64 encoded.

    A value must be encoded if it is not a SAFE-STRING as defined by RFC 2849.
    This is the case when it starts with a space, ':' or '<', ends with a
    space, contains a control character or non-ASCII character, or is not valid
    UTF-8. A ':' or '<' after the first character does not require encoding.

    Args:
        value: The value to check.

    Returns:
        bool: Whether the value needs to be base64 encoded.
    """
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return True

    if not value:
        return False

    if value[0] in _UNSAFE_INIT_CHARS or value.endswith(" "):
        return True

    return bool(_UNSAFE_CHAR_PATTERN.search(value))


def fold_line(
    line: str,
    params: LdifFormatParameters,
) -> str:
    """Folds a logical line at the configured line width.

    The first physical line holds line_width characters, each continuation
    line starts with a single space followed by up to line_width - 1
    characters. Every physical line is terminated with the line separator.

    Args:
        line: The logical line without a line separator.
        params: The formatting parameters.

    Returns:
        str: The folded line.
    """
    width = params.line_width
    parts = [line[:width]]
    pos = width
    while pos < len(line):
        parts.append(" " + line[pos : pos + width - 1])
        pos += width - 1

    return "".join(f"{p}{params.line_separator}" for p in parts)


def format_value_spec(
    name: str,
    value: t.Union[str, bytes],
    params: LdifFormatParameters,
) -> str:
    """Formats 'name: value' or 'name:: base64' without folding.

    Args:
        name: The attribute description or keyword before the colon.
        value: The value to format.
        params: The formatting parameters.

    Returns:
        str: The unfolded logical line.
    """
    space = " " if params.space_after_colon else ""
    if must_base64_encode(value):
        b_value = value.encode("utf-8") if isinstance(value, str) else value
        return f"{name}::{space}{base64.b64encode(b_value).decode()}"

    elif not value:
        return f"{name}:"

    else:
        str_value = value.decode("utf-8") if isinstance(value, bytes) else value
        return f"{name}:{space}{str_value}"


def format_attr_val(
    attribute: str,
    value: t.Union[str, bytes],
    params: t.Optional[LdifFormatParameters] = None,
) -> str:
    """Formats an attribute value as a folded LDIF line.

    Args:
        attribute: The attribute description.
        value: The attribute value.
        params: The formatting parameters, defaults are used if omitted.

    Returns:
        str: The LDIF line including the line separator.
    """
    params = params or LdifFormatParameters()
    return fold_line(format_value_spec(attribute, value, params), params)


def _format_url_spec(
    name: str,
    url: str,
    params: LdifFormatParameters,
) -> str:
    space = " " if params.space_after_colon else ""
    return f"{name}:<{space}{url}"


def format_line(
    line: LdifLine,
    params: LdifFormatParameters,
) -> str:
    """Formats a single LDIF line.

    The line is rebuilt from its values using the parameters specified. An
    invalid line cannot be rebuilt, its source text is returned as is.

    Args:
        line: The line to format.
        params: The formatting parameters.

    Returns:
        str: The formatted line including the line separator.
    """
    if not line.is_valid:
        return line.to_raw_string()

    space = " " if params.space_after_colon else ""
    sep = params.line_separator

    if isinstance(line, LdifSepLine):
        return sep

    elif isinstance(line, LdifCommentLine):
        return f"{line.comment}{sep}"

    elif isinstance(line, LdifModSpecSepLine):
        return f"-{sep}"

    elif isinstance(line, LdifVersionLine):
        return fold_line(f"version:{space}{line.version}", params)

    elif isinstance(line, LdifDnLine):
        return fold_line(format_value_spec("dn", line.dn, params), params)

    elif isinstance(line, LdifChangeTypeLine):
        return fold_line(f"changetype:{space}{line.keyword}", params)

    elif isinstance(line, LdifModSpecLine):
        return fold_line(f"{line.keyword}:{space}{line.attribute}", params)

    elif isinstance(line, LdifControlLine):
        control = f"control:{space}{line.oid}"
        if line.criticality is not None:
            control += " true" if line.criticality else " false"

        if line.value_type == LdifValueType.URL:
            control = _format_url_spec(control, line.raw_value or "", params)

        elif line.value is not None:
            control = format_value_spec(control, line.value, params)

        return fold_line(control, params)

    elif isinstance(line, LdifAttrValLine):
        if line.value_type == LdifValueType.URL:
            return fold_line(_format_url_spec(line.attribute, line.raw_value, params), params)

        return fold_line(format_value_spec(line.attribute, line.value, params), params)

    else:
        return line.to_raw_string()


def format_record(
    record: LdifRecord,
    params: LdifFormatParameters,
) -> str:
    """Formats all the lines of an LDIF record."""
    return "".join(format_line(line, params) for line in record.lines)


def format_ldif(
    ldif: t.Union[LdifFile, LdifRecord, LdifLine],
    params: t.Optional[LdifFormatParameters] = None,
) -> str:
    """Formats an LDIF model as text.

    Writes the file, record, or line back to LDIF text using the parameters
    specified. Text produced by this function is reproduced exactly when it is
    parsed and formatted again with the same parameters.

    The model should be valid before it is formatted. Invalid lines are
    written as they appeared in the source, this is a best effort and does not
    guarantee the output is valid LDIF.

    Args:
        ldif: The LDIF file, record, or line to format.
        params: The formatting parameters, defaults are used if omitted.

    Returns:
        str: The LDIF text.
    """
    params = params or LdifFormatParameters()

    if isinstance(ldif, LdifFile):
        log.debug("Formatting LDIF document with %d records", ldif.record_count)
        return "".join(format_line(line, params) for line in ldif.lines)

    elif isinstance(ldif, LdifRecord):
        return format_record(ldif, params)

    elif isinstance(ldif, LdifLine):
        return format_line(ldif, params)

    else:
        raise TypeError(f"Cannot format LDIF from {type(ldif).__name__}")
