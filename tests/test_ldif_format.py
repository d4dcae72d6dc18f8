# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import base64
import re
import typing as t

import pytest

import ldaptext._ldif as l
import ldaptext._ldif_format as fmt
import ldaptext._ldif_scanner as s

from .conftest import get_test_data


class TestLdifFormatParameters:
    def test_defaults(self) -> None:
        params = fmt.LdifFormatParameters()

        assert params.space_after_colon is True
        assert params.line_width == 76
        assert params.line_separator == "\n"

    @pytest.mark.parametrize("width", [-1, 0, 1])
    def test_invalid_line_width(self, width: int) -> None:
        expected = f"line_width must be 2 or more, received {width}"

        with pytest.raises(ValueError, match=re.escape(expected)):
            fmt.LdifFormatParameters(line_width=width)

    @pytest.mark.parametrize("separator", ["", "\r", "\n\r", " "])
    def test_invalid_line_separator(self, separator: str) -> None:
        with pytest.raises(ValueError, match="line_separator must be"):
            fmt.LdifFormatParameters(line_separator=separator)


class TestMustBase64Encode:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("foo", False),
            ("", False),
            ("cn=foo,dc=example,dc=com", False),
            ("a::b", False),
            ("a:<b", False),
            ("a<b", False),
            ("foo bar", False),
            (" foo", True),
            (":foo", True),
            ("::foo", True),
            ("<foo", True),
            ("foo ", True),
            ("äöü", True),
            ("foo\nbar", True),
            ("foo\rbar", True),
            ("foo\x00", True),
            ("foo\x7f", True),
            (b"foo", False),
            (b"\xff", True),
            (b"\xc3\xa4", True),
        ],
    )
    def test_must_base64_encode(self, value: t.Union[str, bytes], expected: bool) -> None:
        assert fmt.must_base64_encode(value) == expected


class TestFormatAttrVal:
    def test_safe_value(self) -> None:
        assert fmt.format_attr_val("cn", "foo") == "cn: foo\n"

    def test_no_space_after_colon(self) -> None:
        params = fmt.LdifFormatParameters(space_after_colon=False)

        assert fmt.format_attr_val("cn", "foo", params) == "cn:foo\n"
        assert fmt.format_attr_val("cn", "äöü", params) == "cn::w6TDtsO8\n"

    def test_non_ascii_value(self) -> None:
        assert fmt.format_attr_val("cn", "äöü") == "cn:: w6TDtsO8\n"

    def test_double_colon_mid_value(self) -> None:
        assert fmt.format_attr_val("description", "foo::bar") == "description: foo::bar\n"

    def test_leading_space_value(self) -> None:
        expected = f"description:: {base64.b64encode(b' foo').decode()}\n"

        assert fmt.format_attr_val("description", " foo") == expected

    def test_empty_value(self) -> None:
        assert fmt.format_attr_val("description", "") == "description:\n"

    def test_binary_value(self) -> None:
        assert fmt.format_attr_val("jpegPhoto", b"\xff\xd8\xff") == "jpegPhoto:: /9j/\n"

    def test_utf8_bytes_value(self) -> None:
        assert fmt.format_attr_val("cn", b"foo") == "cn: foo\n"

    def test_line_separator(self) -> None:
        params = fmt.LdifFormatParameters(line_separator="\r\n")

        assert fmt.format_attr_val("cn", "foo", params) == "cn: foo\r\n"

    def test_fold(self) -> None:
        params = fmt.LdifFormatParameters(line_width=10)
        actual = fmt.format_attr_val("description", "abcdefghijklmnop", params)

        assert actual == "descriptio\n n: abcdef\n ghijklmno\n p\n"

    def test_fold_exact_width(self) -> None:
        params = fmt.LdifFormatParameters(line_width=11)

        assert fmt.format_attr_val("cn", "abcdefg", params) == "cn: abcdefg\n"
        assert fmt.format_attr_val("cn", "abcdefgh", params) == "cn: abcdefg\n h\n"

    def test_fold_long_value(self) -> None:
        value = "x" * 200
        params = fmt.LdifFormatParameters(line_width=78, line_separator="\r\n")
        actual = fmt.format_attr_val("description", value, params)

        physical = actual.split("\r\n")
        assert physical[-1] == ""
        physical = physical[:-1]

        assert len(physical) == 3
        assert len(physical[0]) == 78
        assert len(physical[1]) == 78
        for line in physical[1:]:
            assert line.startswith(" ")
            assert not line.startswith("  ")

        assert s.unfold(actual) == f"description: {value}\r\n"


class TestFormatLdif:
    @pytest.mark.parametrize("name", ["content.ldif", "changes.ldif"])
    def test_round_trip(self, name: str) -> None:
        ldif = get_test_data(name)

        assert fmt.format_ldif(l.parse_file(ldif)) == ldif

    def test_round_trip_windows(self) -> None:
        ldif = "dn: cn=foo,ou=system\r\ncn: foo\r\n"
        params = fmt.LdifFormatParameters(space_after_colon=True, line_width=78, line_separator="\r\n")
        ldif_file = l.parse_file(ldif)

        assert ldif_file.record_count == 1
        assert [line.kind for line in ldif_file.records[0].lines] == [
            l.LdifLineKind.DN,
            l.LdifLineKind.ATTR_VAL,
        ]
        assert fmt.format_ldif(ldif_file, params) == ldif

    def test_idempotent(self) -> None:
        params = fmt.LdifFormatParameters(space_after_colon=False, line_width=20, line_separator="\r\n")
        ldif = (
            "dn: cn=foo bar baz,ou=users,dc=example,dc=com\n"
            "changetype: modify\n"
            "replace: description\n"
            "description: äöü and a long value that needs folding\n"
            "-\n"
        )

        first = fmt.format_ldif(l.parse_file(ldif), params)
        second = fmt.format_ldif(l.parse_file(first), params)

        assert first == second
        assert l.parse_file(first).is_valid
        assert l.parse_file(first).records[0].mod_specs[0].attr_val_lines[0].value == (
            "äöü and a long value that needs folding"
        )

    def test_folded_round_trip(self) -> None:
        params = fmt.LdifFormatParameters(line_width=10)
        ldif = "dn: cn=foo\n" + fmt.format_attr_val("description", "abcdefghijklmnop", params)

        assert ldif == "dn: cn=foo\ndescriptio\n n: abcdef\n ghijklmno\n p\n"
        assert fmt.format_ldif(l.parse_file(ldif), params) == ldif

    def test_change_separator(self) -> None:
        ldif = "version: 1\n\ndn: cn=foo\ncn: foo\n"
        params = fmt.LdifFormatParameters(line_separator="\r\n")

        actual = fmt.format_ldif(l.parse_file(ldif), params)

        assert actual == "version: 1\r\n\r\ndn: cn=foo\r\ncn: foo\r\n"

    def test_unfold_short_lines(self) -> None:
        ldif = "dn: cn=foo\ncn: fo\n o\n"

        assert fmt.format_ldif(l.parse_file(ldif)) == "dn: cn=foo\ncn: foo\n"

    def test_no_final_line_separator(self) -> None:
        ldif = "dn: cn=foo\ncn: foo"

        assert fmt.format_ldif(l.parse_file(ldif)) == "dn: cn=foo\ncn: foo\n"

    def test_invalid_line_kept_as_is(self) -> None:
        ldif = "dn: cn=foo\ncn foo\r\nsn: bar\n"

        assert fmt.format_ldif(l.parse_file(ldif)) == ldif

    def test_long_comment_not_folded(self) -> None:
        comment = "# " + "c" * 100
        ldif = f"{comment}\n\ndn: cn=foo\ncn: foo\n"

        assert fmt.format_ldif(l.parse_file(ldif)) == ldif

    def test_format_record(self) -> None:
        ldif_file = l.parse_file(get_test_data("changes.ldif"))
        record = ldif_file.records[4]

        actual = fmt.format_ldif(record)

        assert actual == (
            "# Delete with a control\n"
            "dn: ou=Product Development,dc=airius,dc=com\n"
            "control: 1.2.840.113556.1.4.805 true\n"
            "changetype: delete\n"
        )

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("version:1\n", "version: 1\n"),
            ("DN:cn=foo\n", "dn: cn=foo\n"),
            ("dn:: Y249Zm9v\n", "dn: cn=foo\n"),
            ("cn:: w6TDtsO8\n", "cn:: w6TDtsO8\n"),
            ("cn:<   file:///foo\n", "cn:< file:///foo\n"),
            ("control: 1.2.3 TRUE: foo\n", "control: 1.2.3 true: foo\n"),
            ("control: 1.2.3 false:: w6TDtsO8\n", "control: 1.2.3 false:: w6TDtsO8\n"),
            ("control: 1.2.3:< file:///foo\n", "control: 1.2.3:< file:///foo\n"),
            ("changetype:modrdn\n", "changetype: modrdn\n"),
            ("replace:cn\n", "replace: cn\n"),
            ("-   \n", "-\n"),
            ("# comment\n", "# comment\n"),
            ("\r\n", "\n"),
        ],
    )
    def test_format_line(self, line: str, expected: str) -> None:
        ldif_line = l.parse_line(next(s.split_lines(s.tokenize_ldif(line))))

        assert fmt.format_ldif(ldif_line) == expected

    def test_format_invalid_type(self) -> None:
        with pytest.raises(TypeError, match="Cannot format LDIF from str"):
            fmt.format_ldif("dn: cn=foo")  # type: ignore[arg-type]

    @pytest.mark.parametrize("ldif", [None, ""])
    def test_format_empty(self, ldif: t.Optional[str]) -> None:
        assert fmt.format_ldif(l.parse_file(ldif)) == ""
