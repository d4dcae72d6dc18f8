# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from ._filter import (
    FilterAnd,
    FilterComponent,
    FilterComponentKind,
    FilterItem,
    FilterModel,
    FilterNot,
    FilterOperator,
    FilterOr,
    FilterSyntaxError,
    parse_filter,
)
from ._filter_scanner import FilterToken, FilterTokenKind, tokenize_filter
from ._ldif import (
    ChangeType,
    LdifAttrValLine,
    LdifChangeTypeLine,
    LdifCommentLine,
    LdifControlLine,
    LdifDnLine,
    LdifFile,
    LdifInvalidLine,
    LdifLine,
    LdifLineKind,
    LdifModSpec,
    LdifModSpecLine,
    LdifModSpecSepLine,
    LdifRecord,
    LdifSepLine,
    LdifSyntaxError,
    LdifValueType,
    LdifVersionLine,
    ModType,
    RecordKind,
    parse_file,
    parse_line,
    parse_record,
)
from ._ldif_format import (
    LdifFormatParameters,
    format_attr_val,
    format_ldif,
    must_base64_encode,
)
from ._ldif_scanner import LdifToken, LdifTokenKind, tokenize_ldif

__all__ = [
    "ChangeType",
    "FilterAnd",
    "FilterComponent",
    "FilterComponentKind",
    "FilterItem",
    "FilterModel",
    "FilterNot",
    "FilterOperator",
    "FilterOr",
    "FilterSyntaxError",
    "FilterToken",
    "FilterTokenKind",
    "LdifAttrValLine",
    "LdifChangeTypeLine",
    "LdifCommentLine",
    "LdifControlLine",
    "LdifDnLine",
    "LdifFile",
    "LdifFormatParameters",
    "LdifInvalidLine",
    "LdifLine",
    "LdifLineKind",
    "LdifModSpec",
    "LdifModSpecLine",
    "LdifModSpecSepLine",
    "LdifRecord",
    "LdifSepLine",
    "LdifSyntaxError",
    "LdifToken",
    "LdifTokenKind",
    "LdifValueType",
    "LdifVersionLine",
    "ModType",
    "RecordKind",
    "format_attr_val",
    "format_ldif",
    "must_base64_encode",
    "parse_file",
    "parse_filter",
    "parse_line",
    "parse_record",
    "tokenize_filter",
    "tokenize_ldif",
]
