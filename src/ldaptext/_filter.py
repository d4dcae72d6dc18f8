# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import base64
import dataclasses
import enum
import logging
import re
import typing as t

from ._filter_scanner import (
    OPERATOR_KINDS,
    FilterToken,
    FilterTokenKind,
    tokenize_filter,
)

log = logging.getLogger(__name__)

_ATTRIBUTE_PATTERN = re.compile(
    r"""^
(?:
    (?:
        # Alphanumeric with hyphen (must start with alpha)
        [a-zA-Z][a-zA-Z0-9\-]*
    )
    | # or
    (?:
        # OID string
        (?:
            # Number without leading 0 (except 0 itself)
            (?:[0-9])|(?:[1-9][0-9]*)
        )
        (?:
            # Optionally repeated but with . as separator
            \.(?:(?:[0-9])|(?:[1-9][0-9]*))
        )*
    )
)
(?:
    # Optional attr options start with ; and are alphanumeric with hyphen
    ;[a-zA-Z0-9\-]+
)*
$""",
    re.VERBOSE,
)
_HEX_PATTERN = re.compile("^[a-fA-F0-9]{2}$")
_LDAP_ESCAPE_PATTERN = re.compile(r"(\\.{,2})".encode("utf-8"))


class FilterSyntaxError(ValueError):
    """Exception used for LDAP filter syntax erros.

    This exception is raised by :meth:`FilterModel.raise_for_invalid` when the
    parsed filter is not valid. Parsing itself never raises this error. It
    provides the full filter used as well as the offset and length of the
    subset that is invalid.

    Args:
        msg: Details of the syntax error.
        filter: The LDAP filter string.
        offset: The offset of the filter provided that failed.
        length: The length after offset that was part of the failure.
    """

    def __init__(
        self,
        msg: str,
        filter: str,
        offset: int,
        length: int,
    ) -> None:
        super().__init__(msg)
        self.filter = filter
        self.offset = offset
        self.length = length


class FilterComponentKind(str, enum.Enum):
    AND = "and"
    OR = "or"
    NOT = "not"
    ITEM = "item"


class FilterOperator(str, enum.Enum):
    EQUAL = "equal"
    APPROX = "approx"
    GREATER_OR_EQUAL = "greater-or-equal"
    LESS_OR_EQUAL = "less-or-equal"
    PRESENT = "present"
    SUBSTRING = "substring"
    EXTENSIBLE = "extensible"


_OPERATOR_MAP = {
    FilterTokenKind.EQUAL: FilterOperator.EQUAL,
    FilterTokenKind.APROX: FilterOperator.APPROX,
    FilterTokenKind.GREATER: FilterOperator.GREATER_OR_EQUAL,
    FilterTokenKind.LESS: FilterOperator.LESS_OR_EQUAL,
    FilterTokenKind.PRESENT: FilterOperator.PRESENT,
    FilterTokenKind.EXTENSIBLE: FilterOperator.EXTENSIBLE,
}


def _unpack_filter_value(
    value: str,
) -> bytes:
    """Unpack a filter value.

    Unpacks the raw filter value string into the bytes it represents. This will
    escape the ocurrences of '\\[0-9a-fA-F]{2}' with the raw byte value that
    hex escape represents.

    Args:
        value: The value to unpack.

    Returns:
        bytes: The unpacked bytes of the value.

    Raises:
        ValueError: The value contains an invalid escape sequence.
    """

    def rplcr(matchobj: re.Match) -> bytes:
        raw_value = matchobj.group(1)[1:].decode("utf-8", errors="surrogateescape")
        if _HEX_PATTERN.match(raw_value):
            return base64.b16decode(raw_value.upper())

        else:
            raise ValueError(f"Invalid hex characters following \\ '{raw_value}', requires 2 [0-9a-fA-F]")

    b_value = value.encode("utf-8", errors="surrogateescape")
    return _LDAP_ESCAPE_PATTERN.sub(rplcr, b_value)


def _check_extensible_header(
    header: str,
) -> t.Optional[str]:
    """Validates the extensible filter header.

    Checks the extensible filter header, including the attribute, dn setting,
    and rule, in the form 'attr:dn:rule'.

    Args:
        header: The header to check.

    Returns:
        Optional[str]: The reason the header is invalid or None if valid.
    """
    header_split = list(header.split(":"))
    attribute = header_split.pop(0)
    if attribute and not _ATTRIBUTE_PATTERN.match(attribute):
        return "Invalid extensible filter attribute"

    if header_split and header_split[0] == "dn":
        header_split.pop(0)

    rule: t.Optional[str] = None
    if header_split:
        rule = header_split.pop(0)
        if not _ATTRIBUTE_PATTERN.match(rule):
            return "Invalid extensible filter rule"

    if header_split:
        return "Extra data found in extensible filter header"

    if not attribute and not rule:
        return "Extensible filter requires an attribute or matching rule"

    return None


def _unexpected_cause(tokens: t.Sequence[FilterToken]) -> str:
    token = tokens[0]
    if token.kind == FilterTokenKind.RPAR:
        return "Unbalanced closing ')' without a starting '('"

    return f"Unexpected text '{token.text}'"


@dataclasses.dataclass(frozen=True)
class FilterComponent:
    """Base class for all LDAP filter components.

    A component is a node of the parsed filter tree. Components are stored in
    a flat list on the :class:`FilterModel` and reference their parent and
    children by id, the index in that list. Use
    :meth:`FilterModel.get_parent` and :meth:`FilterModel.get_children` to
    navigate the tree.

    Currently the following components are known:

        :class:`FilterAnd`
        :class:`FilterOr`
        :class:`FilterNot`
        :class:`FilterItem`

    A component that does not follow the filter grammar is still created, the
    problem is reported through :attr:`invalid_cause`.
    """

    kind: FilterComponentKind
    "The type of component."

    id: int
    "The index of the component in FilterModel.components."

    parent: t.Optional[int]
    "The id of the parent component, None for a top level component."

    start_token: FilterToken
    "The '(' that opens the component, or the attribute of a bare item."

    stop_token: t.Optional[FilterToken] = None
    "The ')' that closes the component, None if not closed."

    children: t.Tuple[int, ...] = ()
    "The ids of the nested components."

    error_tokens: t.Tuple[FilterToken, ...] = ()
    "Tokens inside the component that do not fit the component grammar."

    @property
    def is_closed(self) -> bool:
        return self.stop_token is not None

    @property
    def offset(self) -> int:
        return self.start_token.offset

    @property
    def end(self) -> t.Optional[int]:
        """The end of the component span, None if not closed."""
        return self.stop_token.end if self.stop_token else None

    @property
    def length(self) -> t.Optional[int]:
        end = self.end
        return None if end is None else end - self.offset

    @property
    def invalid_cause(self) -> t.Optional[str]:
        """A description of why the component is invalid or None if valid."""
        raise NotImplementedError()  # pragma: nocover

    @property
    def is_valid(self) -> bool:
        return self.invalid_cause is None

    def _get_unclosed_cause(self) -> t.Optional[str]:
        if self.error_tokens:
            return _unexpected_cause(self.error_tokens)

        if self.stop_token is None:
            return "Missing closing parenthesis ')'"

        return None


@dataclasses.dataclass(frozen=True)
class _FilterLogical(FilterComponent):
    operator_token: t.Optional[FilterToken] = None
    "The '&', '|' or '!' after the opening '('."

    _operator_name = ""
    _operator_char = ""

    @property
    def invalid_cause(self) -> t.Optional[str]:
        if self.operator_token is None:
            return f"Missing {self._operator_name} character '{self._operator_char}'"

        if not self.children:
            return "Missing filters"

        return self._get_unclosed_cause()


@dataclasses.dataclass(frozen=True)
class FilterAnd(_FilterLogical):
    """LDAP Filter And.

    All nested filters must be true, ``(&(condition=1)(condition=2)...)``.
    """

    kind: FilterComponentKind = dataclasses.field(init=False, repr=False, default=FilterComponentKind.AND)

    _operator_name = "AND"
    _operator_char = "&"


@dataclasses.dataclass(frozen=True)
class FilterOr(_FilterLogical):
    """LDAP Filter Or.

    Only one of the nested filters must be true, ``(|(condition=1)(condition=2)...)``.
    """

    kind: FilterComponentKind = dataclasses.field(init=False, repr=False, default=FilterComponentKind.OR)

    _operator_name = "OR"
    _operator_char = "|"


@dataclasses.dataclass(frozen=True)
class FilterNot(_FilterLogical):
    """LDAP Filter Not.

    Inverses the nested filter, ``(!(attribute=1))``. Only one nested filter
    is allowed.
    """

    kind: FilterComponentKind = dataclasses.field(init=False, repr=False, default=FilterComponentKind.NOT)

    _operator_name = "NOT"
    _operator_char = "!"

    @property
    def invalid_cause(self) -> t.Optional[str]:
        if self.operator_token is not None and len(self.children) > 1:
            return "NOT filter accepts exactly one component"

        return super().invalid_cause


@dataclasses.dataclass(frozen=True)
class FilterItem(FilterComponent):
    """LDAP Filter Item.

    A single attribute assertion like ``(attribute=value)``, ``(attribute=*)``
    or ``(attribute=start*end)``. An item that is not surrounded by
    parentheses, ``attribute=value``, starts with the attribute token and ends
    with its last token.
    """

    kind: FilterComponentKind = dataclasses.field(init=False, repr=False, default=FilterComponentKind.ITEM)

    attribute_token: t.Optional[FilterToken] = None
    "The attribute description, includes ':dn:rule' for an extensible item."

    operator_token: t.Optional[FilterToken] = None
    "The filter type after the attribute."

    value_tokens: t.Tuple[FilterToken, ...] = ()
    "The VALUE and ASTERISK tokens after the operator."

    @property
    def attribute(self) -> t.Optional[str]:
        return self.attribute_token.text if self.attribute_token else None

    @property
    def operator(self) -> t.Optional[FilterOperator]:
        if self.operator_token is None:
            return None

        if self.operator_token.kind == FilterTokenKind.EQUAL and any(
            token.kind == FilterTokenKind.ASTERISK for token in self.value_tokens
        ):
            return FilterOperator.SUBSTRING

        return _OPERATOR_MAP[self.operator_token.kind]

    @property
    def value(self) -> str:
        """The assertion value as written, escapes are not decoded."""
        return "".join(token.text for token in self.value_tokens)

    @property
    def substrings(self) -> t.Tuple[t.Optional[str], t.List[str], t.Optional[str]]:
        """The initial, any, and final parts of a substring value."""
        parts = self.value.split("*")
        if len(parts) == 1:
            return parts[0] or None, [], None

        return parts[0] or None, [p for p in parts[1:-1] if p], parts[-1] or None

    @property
    def invalid_cause(self) -> t.Optional[str]:
        if self.children:
            return "Nested '(' without filter conditional"

        if not (self.attribute_token or self.operator_token or self.value_tokens or self.error_tokens):
            return "No filter found"

        if self.attribute_token is None:
            return "Missing attribute"

        if self.operator_token is None:
            return "Missing operator"

        operator = self.operator
        if operator == FilterOperator.EXTENSIBLE:
            header_cause = _check_extensible_header(self.attribute_token.text)
            if header_cause:
                return header_cause

        elif not _ATTRIBUTE_PATTERN.match(self.attribute_token.text):
            return "Filter attribute is invalid"

        if operator != FilterOperator.PRESENT and not self.value_tokens:
            return "Missing value"

        has_wildcard = any(token.kind == FilterTokenKind.ASTERISK for token in self.value_tokens)
        if has_wildcard and operator not in [FilterOperator.SUBSTRING, FilterOperator.EQUAL]:
            return f"Wildcard '*' is not allowed with the '{self.operator_token.text}' operator"

        for previous, token in zip(self.value_tokens, self.value_tokens[1:]):
            if previous.kind == token.kind == FilterTokenKind.ASTERISK:
                return "Cannot have 2 consecutive '*' in substring filter value"

        for token in self.value_tokens:
            if token.kind == FilterTokenKind.VALUE:
                try:
                    _unpack_filter_value(token.text)
                except ValueError as e:
                    return str(e)

        return self._get_unclosed_cause()


@dataclasses.dataclass(frozen=True)
class FilterModel:
    """A parsed LDAP filter.

    Contains the tokens of the filter string and the component tree built from
    them. The components are kept in a flat list in the order their opening
    token appears, the first component in ``roots`` is the filter itself.
    Anything after the first top level component, or text that could not be
    placed in a component, makes the model invalid but is kept so that the
    whole string can still be inspected.

    Args:
        filter: The LDAP filter string that was parsed.
        tokens: The tokens of the filter string, ends with EOF.
        components: Every component of the filter, indexed by id.
        roots: The ids of the top level components.
        error_tokens: Top level tokens outside of any component.
    """

    filter: str
    tokens: t.Tuple[FilterToken, ...] = ()
    components: t.Tuple[FilterComponent, ...] = ()
    roots: t.Tuple[int, ...] = ()
    error_tokens: t.Tuple[FilterToken, ...] = ()

    @property
    def root(self) -> t.Optional[FilterComponent]:
        return self.components[self.roots[0]] if self.roots else None

    @property
    def invalid_cause(self) -> t.Optional[str]:
        """The filter level problem or None, components report their own."""
        unbalanced = next((token for token in self.error_tokens if token.kind == FilterTokenKind.RPAR), None)
        if unbalanced and (not self.roots or unbalanced.offset < self.components[self.roots[0]].offset):
            return "Unbalanced closing ')' without a starting '('"

        if not self.roots:
            return "No filter found"

        if len(self.roots) > 1 or self.error_tokens:
            return "Extra data found at filter end"

        return None

    @property
    def invalid_components(self) -> t.List[FilterComponent]:
        return [component for component in self.components if not component.is_valid]

    @property
    def is_valid(self) -> bool:
        return self.invalid_cause is None and not self.invalid_components

    def get_parent(
        self,
        component: FilterComponent,
    ) -> t.Optional[FilterComponent]:
        return self.components[component.parent] if component.parent is not None else None

    def get_children(
        self,
        component: FilterComponent,
    ) -> t.List[FilterComponent]:
        return [self.components[child] for child in component.children]

    def token_at(
        self,
        offset: int,
    ) -> t.Optional[FilterToken]:
        """Get the token that contains the character at offset."""
        return next(
            (token for token in self.tokens if token.offset <= offset < token.end),
            None,
        )

    def component_at(
        self,
        offset: int,
    ) -> t.Optional[FilterComponent]:
        """Get the innermost component at the cursor offset.

        The cursor offset is the position between two characters, the
        character before the cursor is used for the lookup. At offset 0 there
        is no character before the cursor so the first character is used.
        Only closed components are considered.

        Args:
            offset: The cursor offset in the filter string.

        Returns:
            Optional[FilterComponent]: The innermost component whose span
            contains the character or None if there is no such component.
        """
        char_offset = max(offset - 1, 0)
        found: t.Optional[FilterComponent] = None
        for component in self.components:
            end = component.end
            if end is None or not (component.offset <= char_offset < end):
                continue

            if found is None or (end - component.offset) < (found.length or 0):
                found = component

        return found

    def matching_parenthesis(
        self,
        offset: int,
    ) -> t.Optional[int]:
        """Get the offset of the parenthesis paired with the one before the cursor.

        Args:
            offset: The cursor offset in the filter string.

        Returns:
            Optional[int]: The offset of the matching parenthesis or None if
            the character before the cursor is not a parenthesis or it has no
            pair.
        """
        token = self.token_at(offset - 1)
        if token is None or token.kind not in [FilterTokenKind.LPAR, FilterTokenKind.RPAR]:
            return None

        for component in self.components:
            if component.stop_token is None:
                continue

            if component.start_token == token:
                return component.stop_token.offset

            elif component.stop_token == token:
                return component.start_token.offset

        return None

    def raise_for_invalid(self) -> None:
        """Raises a FilterSyntaxError for the first invalid part of the filter.

        Raises:
            FilterSyntaxError: The filter is not valid.
        """
        problems: t.List[t.Tuple[int, int, str]] = []

        model_cause = self.invalid_cause
        if model_cause:
            # The first stray token or the second top level filter.
            offsets = [token.offset for token in self.error_tokens[:1]]
            offsets += [self.components[root].offset for root in self.roots[1:2]]
            offset = min(offsets) if offsets else 0
            problems.append((offset, len(self.filter) - offset, model_cause))

        for component in self.invalid_components:
            length = component.length
            if length is None:
                length = len(self.filter) - component.offset
            problems.append((component.offset, length, component.invalid_cause or ""))

        if problems:
            offset, length, cause = min(problems, key=lambda p: p[0])
            raise FilterSyntaxError(cause, filter=self.filter, offset=offset, length=length)


_LOGICAL_TYPES: t.Dict[FilterTokenKind, t.Type[_FilterLogical]] = {
    FilterTokenKind.AND: FilterAnd,
    FilterTokenKind.OR: FilterOr,
    FilterTokenKind.NOT: FilterNot,
}


@dataclasses.dataclass
class _ComponentFrame:
    """A component that has been opened but not yet closed."""

    id: int
    parent: t.Optional[int]
    start_token: FilterToken
    logical_token: t.Optional[FilterToken] = None
    children: t.List[int] = dataclasses.field(default_factory=list)
    error_tokens: t.List[FilterToken] = dataclasses.field(default_factory=list)
    attribute_token: t.Optional[FilterToken] = None
    operator_token: t.Optional[FilterToken] = None
    value_tokens: t.List[FilterToken] = dataclasses.field(default_factory=list)


class _FilterParser:
    """Parser over the filter tokens.

    Nested components are tracked with an explicit stack of open frames so the
    nesting depth is not limited by the Python recursion limit. A component id
    is reserved when its '(' is found so that the children can reference their
    parent, the component itself is created once its closing token is found.
    """

    def __init__(
        self,
        tokens: t.List[FilterToken],
    ) -> None:
        self.tokens = tokens
        self.pos = 0
        self.components: t.List[t.Optional[FilterComponent]] = []

    def peek(self) -> FilterToken:
        while self.tokens[self.pos].kind == FilterTokenKind.WHITESPACE:
            self.pos += 1

        return self.tokens[self.pos]

    def next(self) -> FilterToken:
        token = self.peek()
        if token.kind != FilterTokenKind.EOF:
            self.pos += 1

        return token

    def reserve(self) -> int:
        self.components.append(None)
        return len(self.components) - 1

    def parse(self) -> t.Tuple[t.List[int], t.List[FilterToken]]:
        roots: t.List[int] = []
        error_tokens: t.List[FilterToken] = []

        while True:
            token = self.peek()
            if token.kind == FilterTokenKind.EOF:
                break

            elif token.kind == FilterTokenKind.LPAR:
                roots.append(self.parse_component(None))

            elif token.kind == FilterTokenKind.ATTRIBUTE and not roots and not error_tokens:
                roots.append(self.parse_bare_item())

            else:
                error_tokens.append(self.next())

        return roots, error_tokens

    def open_frame(
        self,
        parent: t.Optional[int],
    ) -> _ComponentFrame:
        frame = _ComponentFrame(id=self.reserve(), parent=parent, start_token=self.next())
        if self.peek().kind in _LOGICAL_TYPES:
            frame.logical_token = self.next()

        return frame

    def close_frame(
        self,
        frame: _ComponentFrame,
        stop_token: t.Optional[FilterToken],
    ) -> None:
        component: FilterComponent
        if frame.logical_token is not None:
            component = _LOGICAL_TYPES[frame.logical_token.kind](
                id=frame.id,
                parent=frame.parent,
                start_token=frame.start_token,
                stop_token=stop_token,
                children=tuple(frame.children),
                error_tokens=tuple(frame.error_tokens),
                operator_token=frame.logical_token,
            )

        else:
            component = FilterItem(
                id=frame.id,
                parent=frame.parent,
                start_token=frame.start_token,
                stop_token=stop_token,
                children=tuple(frame.children),
                error_tokens=tuple(frame.error_tokens),
                attribute_token=frame.attribute_token,
                operator_token=frame.operator_token,
                value_tokens=tuple(frame.value_tokens),
            )

        self.components[frame.id] = component

    def parse_component(
        self,
        parent: t.Optional[int],
    ) -> int:
        """Parses the component at the current '(' and everything nested in it."""
        stack = [self.open_frame(parent)]
        component_id = stack[0].id

        while stack:
            frame = stack[-1]
            token = self.peek()
            if token.kind == FilterTokenKind.EOF:
                self.close_frame(stack.pop(), None)

            elif token.kind == FilterTokenKind.RPAR:
                self.close_frame(stack.pop(), self.next())

            elif token.kind == FilterTokenKind.LPAR:
                # An item keeps a nested '((cn=foo))' so it can be inspected.
                child = self.open_frame(frame.id)
                frame.children.append(child.id)
                stack.append(child)

            elif frame.logical_token is not None:
                frame.error_tokens.append(self.next())

            elif token.kind == FilterTokenKind.ATTRIBUTE and frame.attribute_token is None:
                frame.attribute_token = self.next()

            elif token.kind in OPERATOR_KINDS and frame.operator_token is None:
                frame.operator_token = self.next()

            elif (
                token.kind in [FilterTokenKind.VALUE, FilterTokenKind.ASTERISK] and frame.operator_token is not None
            ):
                frame.value_tokens.append(self.next())

            else:
                frame.error_tokens.append(self.next())

        return component_id

    def parse_bare_item(self) -> int:
        component_id = self.reserve()
        attribute_token = self.next()
        stop_token = attribute_token
        operator_token: t.Optional[FilterToken] = None
        value_tokens: t.List[FilterToken] = []
        error_tokens: t.List[FilterToken] = []

        while True:
            token = self.peek()
            if token.kind in [FilterTokenKind.EOF, FilterTokenKind.LPAR, FilterTokenKind.RPAR]:
                break

            elif token.kind in OPERATOR_KINDS and operator_token is None:
                operator_token = self.next()

            elif token.kind in [FilterTokenKind.VALUE, FilterTokenKind.ASTERISK] and operator_token is not None:
                value_tokens.append(self.next())

            else:
                error_tokens.append(self.next())

            stop_token = token

        self.components[component_id] = FilterItem(
            id=component_id,
            parent=None,
            start_token=attribute_token,
            stop_token=stop_token,
            error_tokens=tuple(error_tokens),
            attribute_token=attribute_token,
            operator_token=operator_token,
            value_tokens=tuple(value_tokens),
        )
        return component_id


def parse_filter(
    filter: t.Optional[str],
) -> FilterModel:
    """Parse an LDAP filter string.

    Tokenizes the filter string and builds the component tree. Parsing never
    fails, a filter that is incomplete or malformed still results in a model
    with the best effort components marked as invalid. This makes it possible
    to inspect a filter while it is being typed. Use
    :meth:`FilterModel.raise_for_invalid` to raise a
    :class:`FilterSyntaxError` for an invalid filter.

    Args:
        filter: The LDAP filter string to parse, None is treated as an empty
            filter.

    Returns:
        FilterModel: The parsed filter.
    """
    filter = filter or ""
    tokens = tokenize_filter(filter)
    parser = _FilterParser(tokens)
    roots, error_tokens = parser.parse()

    components: t.List[FilterComponent] = []
    for component in parser.components:
        # Every reserved id is filled in before parse returns.
        assert component is not None
        components.append(component)

    model = FilterModel(
        filter=filter,
        tokens=tuple(tokens),
        components=tuple(components),
        roots=tuple(roots),
        error_tokens=tuple(error_tokens),
    )
    log.debug(
        "Parsed filter with %d components, %d invalid",
        len(components),
        len(model.invalid_components),
    )

    return model
