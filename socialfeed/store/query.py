"""
Incremental builder for parameterised SQL.

A query is an ordered list of tokens, each either a literal SQL fragment or a
bound parameter. Placeholders (:p1 … :pN) are assigned in one pass when the
query is rendered, so placeholder numbers always equal parameter positions.
There is deliberately no way to splice a value into the SQL text itself.
"""
import re
from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy import bindparam, text
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.sql.selectable import TextualSelect

# Escape character for LIKE patterns built by like_pattern(); portable across
# MySQL, PostgreSQL and SQLite (backslash is not).
LIKE_ESCAPE = "!"

_PLACEHOLDER = re.compile(r"(?<!:):[A-Za-z_]")


@dataclass(frozen=True)
class _Fragment:
    sql: str


@dataclass(frozen=True)
class _Param:
    value: Any


class QueryBuilder:
    def __init__(self) -> None:
        self._tokens: list[Union[_Fragment, _Param]] = []

    def sql(self, fragment: str) -> "QueryBuilder":
        """Append literal SQL. Fragments may not contain bind placeholders."""
        if _PLACEHOLDER.search(fragment):
            raise ValueError("literal fragments must not contain bind placeholders")
        self._tokens.append(_Fragment(fragment))
        return self

    def param(self, value: Any) -> "QueryBuilder":
        """Append a placeholder bound to `value`."""
        self._tokens.append(_Param(value))
        return self

    def _render(self) -> tuple[str, list[Any]]:
        parts: list[str] = []
        params: list[Any] = []
        for token in self._tokens:
            if isinstance(token, _Param):
                params.append(token.value)
                parts.append(f":p{len(params)}")
            else:
                parts.append(token.sql)
        return "".join(parts), params

    @property
    def text(self) -> str:
        return self._render()[0]

    @property
    def params(self) -> list[Any]:
        return self._render()[1]

    @property
    def bindings(self) -> dict[str, Any]:
        return {f"p{i}": value for i, value in enumerate(self.params, start=1)}

    def statement(self, **column_types) -> Union[TextClause, TextualSelect]:
        """
        Executable SQLAlchemy statement. Bind types are inferred from the
        values (so datetimes go through the dialect's processor); keyword
        arguments declare result column types.
        """
        sql, params = self._render()
        stmt = text(sql).bindparams(
            *(bindparam(f"p{i}", value) for i, value in enumerate(params, start=1))
        )
        if column_types:
            return stmt.columns(**column_types)
        return stmt


def like_pattern(value: str) -> str:
    """Case-folded '%value%' with LIKE wildcards in `value` escaped."""
    escaped = (
        value.lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"
