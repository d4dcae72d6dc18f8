# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import typing as t

import pytest

import ldaptext._ldif_scanner as s

from .conftest import get_test_data

K = s.LdifTokenKind


def token_summary(ldif: t.Optional[str]) -> t.List[t.Tuple[s.LdifTokenKind, str, int]]:
    return [(token.kind, token.text, token.offset) for token in s.tokenize_ldif(ldif)]


class TestTokenizeLdif:
    @pytest.mark.parametrize("ldif", [None, ""])
    def test_empty(self, ldif: t.Optional[str]) -> None:
        assert token_summary(ldif) == [(K.EOF, "", 0)]

    def test_dn_and_attribute(self) -> None:
        actual = token_summary("dn: cn=foo\ncn: foo\n")

        assert actual == [
            (K.DN_SPEC, "dn", 0),
            (K.VALUE_TYPE_SAFE, ": ", 2),
            (K.VALUE, "cn=foo", 4),
            (K.SEP, "\n", 10),
            (K.ATTRIBUTE, "cn", 11),
            (K.VALUE_TYPE_SAFE, ": ", 13),
            (K.VALUE, "foo", 15),
            (K.SEP, "\n", 18),
            (K.EOF, "", 19),
        ]

    def test_windows_line_separator(self) -> None:
        actual = token_summary("dn: cn=foo\r\ncn: foo\r\n")

        assert actual == [
            (K.DN_SPEC, "dn", 0),
            (K.VALUE_TYPE_SAFE, ": ", 2),
            (K.VALUE, "cn=foo", 4),
            (K.SEP, "\r\n", 10),
            (K.ATTRIBUTE, "cn", 12),
            (K.VALUE_TYPE_SAFE, ": ", 14),
            (K.VALUE, "foo", 16),
            (K.SEP, "\r\n", 19),
            (K.EOF, "", 21),
        ]

    def test_value_types(self) -> None:
        actual = token_summary("cn: a\ncn:: Zm9v\ncn:< file:///foo\ncn:\n")

        assert [(kind, text) for kind, text, _ in actual] == [
            (K.ATTRIBUTE, "cn"),
            (K.VALUE_TYPE_SAFE, ": "),
            (K.VALUE, "a"),
            (K.SEP, "\n"),
            (K.ATTRIBUTE, "cn"),
            (K.VALUE_TYPE_BASE64, ":: "),
            (K.VALUE, "Zm9v"),
            (K.SEP, "\n"),
            (K.ATTRIBUTE, "cn"),
            (K.VALUE_TYPE_URL, ":< "),
            (K.VALUE, "file:///foo"),
            (K.SEP, "\n"),
            (K.ATTRIBUTE, "cn"),
            (K.VALUE_TYPE_SAFE, ":"),
            (K.SEP, "\n"),
            (K.EOF, ""),
        ]

    def test_folded_value(self) -> None:
        tokens = s.tokenize_ldif("dn: cn=foo,\n dc=com\n")

        value = tokens[2]
        assert value.kind == K.VALUE
        assert value.text == "cn=foo,\n dc=com"
        assert value.value == "cn=foo,dc=com"
        assert value.offset == 4
        assert value.length == 15
        assert tokens[3].kind == K.SEP
        assert tokens[3].offset == 19

    def test_folded_with_tab(self) -> None:
        tokens = s.tokenize_ldif("cn: foo\r\n\tbar\r\n")

        assert tokens[2].kind == K.VALUE
        assert tokens[2].value == "foobar"

    def test_empty_line_is_not_a_fold(self) -> None:
        actual = token_summary("\n foo\n")

        assert actual == [
            (K.SEP, "\n", 0),
            (K.UNKNOWN, " foo", 1),
            (K.SEP, "\n", 5),
            (K.EOF, "", 6),
        ]

    def test_version(self) -> None:
        actual = token_summary("version: 1\n")

        assert actual[:3] == [
            (K.VERSION_SPEC, "version", 0),
            (K.VALUE_TYPE_SAFE, ": ", 7),
            (K.NUMBER, "1", 9),
        ]

    def test_comment(self) -> None:
        actual = token_summary("# comment: here\n")

        assert actual == [
            (K.COMMENT, "# comment: here", 0),
            (K.SEP, "\n", 15),
            (K.EOF, "", 16),
        ]

    def test_control(self) -> None:
        actual = token_summary("control: 1.2.840.113556.1.4.805 true:: Zm9v\n")

        assert [(kind, text) for kind, text, _ in actual] == [
            (K.CONTROL_SPEC, "control"),
            (K.VALUE_TYPE_SAFE, ": "),
            (K.OID, "1.2.840.113556.1.4.805"),
            (K.CRITICALITY, " true"),
            (K.VALUE_TYPE_BASE64, ":: "),
            (K.VALUE, "Zm9v"),
            (K.SEP, "\n"),
            (K.EOF, ""),
        ]

    def test_control_invalid_oid(self) -> None:
        actual = token_summary("control: abc")

        assert [kind for kind, _, _ in actual] == [K.CONTROL_SPEC, K.VALUE_TYPE_SAFE, K.ERROR, K.EOF]

    @pytest.mark.parametrize(
        "value, kind",
        [
            ("add", K.CHANGETYPE),
            ("delete", K.CHANGETYPE),
            ("modify", K.CHANGETYPE),
            ("moddn", K.CHANGETYPE),
            ("modrdn", K.CHANGETYPE),
            ("MODIFY", K.CHANGETYPE),
            ("rename", K.VALUE),
        ],
    )
    def test_changetype(self, value: str, kind: s.LdifTokenKind) -> None:
        actual = token_summary(f"changetype: {value}\n")

        assert actual[0][0] == K.CHANGETYPE_SPEC
        assert actual[2] == (kind, value, 12)

    @pytest.mark.parametrize("keyword", ["add", "delete", "replace", "Replace"])
    def test_mod_spec(self, keyword: str) -> None:
        actual = token_summary(f"{keyword}: description\n")

        assert actual[0] == (K.MODTYPE_SPEC, keyword, 0)
        assert actual[2][:2] == (K.ATTRIBUTE, "description")

    def test_mod_spec_sep(self) -> None:
        actual = token_summary("-\n")

        assert actual == [
            (K.MODSPEC_SEP, "-", 0),
            (K.SEP, "\n", 1),
            (K.EOF, "", 2),
        ]

    def test_keyword_case_insensitive(self) -> None:
        actual = token_summary("DN: cn=foo")

        assert actual[0] == (K.DN_SPEC, "DN", 0)

    def test_missing_colon(self) -> None:
        actual = token_summary("cn foo\n")

        assert actual == [
            (K.ATTRIBUTE, "cn", 0),
            (K.ERROR, " foo", 2),
            (K.SEP, "\n", 6),
            (K.EOF, "", 7),
        ]

    def test_unknown_line(self) -> None:
        actual = token_summary(":foo")

        assert actual == [
            (K.UNKNOWN, ":foo", 0),
            (K.EOF, "", 4),
        ]

    def test_no_final_line_separator(self) -> None:
        actual = token_summary("cn: foo")

        assert actual[-2:] == [
            (K.VALUE, "foo", 4),
            (K.EOF, "", 7),
        ]

    @pytest.mark.parametrize("name", ["content.ldif", "changes.ldif", "invalid.ldif"])
    def test_tokens_are_contiguous(self, name: str) -> None:
        ldif = get_test_data(name)
        tokens = s.tokenize_ldif(ldif)

        assert "".join(token.text for token in tokens) == ldif
        for previous, token in zip(tokens, tokens[1:]):
            assert previous.end == token.offset

        assert tokens[-1].kind == K.EOF
        assert tokens[-1].offset == len(ldif)


class TestSplitLines:
    def test_split_lines(self) -> None:
        lines = list(s.split_lines(s.tokenize_ldif("dn: a=b\n\ncn: b")))

        assert [[token.kind for token in line] for line in lines] == [
            [K.DN_SPEC, K.VALUE_TYPE_SAFE, K.VALUE, K.SEP],
            [K.SEP],
            [K.ATTRIBUTE, K.VALUE_TYPE_SAFE, K.VALUE],
        ]

    def test_split_lines_empty(self) -> None:
        assert list(s.split_lines(s.tokenize_ldif(""))) == []


class TestUnfold:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("foo", "foo"),
            ("foo\n bar", "foobar"),
            ("foo\r\n bar", "foobar"),
            ("foo\n\tbar", "foobar"),
            ("foo\n  bar", "foo bar"),
            ("foo\nbar", "foo\nbar"),
        ],
    )
    def test_unfold(self, value: str, expected: str) -> None:
        assert s.unfold(value) == expected
