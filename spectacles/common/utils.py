# Copyright 2021-present StarRocks, Inc. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.sql import quoted_name
from sqlalchemy.sql.expression import TableClause


ViewNameType = Union[str, quoted_name, TableClause]

# One identifier part: "quoted", `quoted`, [quoted] or bare.
_IDENT = r'(?:"[^"]*"|`[^`]*`|\[[^\]]*\]|[^\s.(\"`\[]+)'

_CREATE_VIEW_PREFIX_PATTERN = re.compile(
    r'^\s*CREATE\b.*?\bVIEW\s+(?:IF\s+NOT\s+EXISTS\s+)?'
    rf'(?:{_IDENT}\s*\.\s*)*{_IDENT}'
    r'\s*(?:\((?P<columns>[^)]*)\)\s*)?AS\s+',
    re.IGNORECASE | re.DOTALL,
)
_WHITESPACE_PATTERN = re.compile(r'\s+')
_INT_PATTERN = re.compile(r'^[-+]?\d+$')
_FLOAT_PATTERN = re.compile(r'^[-+]?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?$')


def split_view_name(view_name: ViewNameType, schema: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """
    Normalize a view reference to ``(name, schema)``.

    A view may be referenced by a plain string, by a ``quoted_name`` (which
    keeps its forced-quoting flag), or by a ``Table``/``TableClause`` such as
    a reflected view. An explicit ``schema`` wins over the table's schema.
    """
    if isinstance(view_name, TableClause):
        return view_name.name, schema if schema is not None else view_name.schema
    if isinstance(view_name, str):
        if not view_name:
            raise ValueError("View name must not be empty")
        return view_name, schema
    raise TypeError(
        f"View name must be a str, quoted_name or Table, got {type(view_name).__name__}"
    )


def gen_simple_qualified_name(name: str, schema: Optional[str] = None) -> str:
    """Generate a simple `schema.name` string, without quotes. Used in log messages."""
    return f"{schema}.{name}" if schema else name


def normalize_definition(sql: Optional[str]) -> Optional[str]:
    """
    Normalize a reflected view definition to its bare SELECT text.

    SQLite, MySQL and SQL Server report the whole ``CREATE ... VIEW <name> AS``
    statement, PostgreSQL reports the query with a trailing semicolon.
    """
    if sql is None:
        return None
    sql = _CREATE_VIEW_PREFIX_PATTERN.sub('', sql, count=1)
    return sql.strip().rstrip(';').rstrip()


def _unquote_identifier(ident: str) -> str:
    ident = ident.strip()
    if len(ident) >= 2 and (ident[0], ident[-1]) in (('"', '"'), ('`', '`'), ('[', ']')):
        return ident[1:-1]
    return ident


def parse_view_column_names(sql: Optional[str]) -> Optional[List[str]]:
    """
    Return the column list of a reflected ``CREATE VIEW <name> (a, b) AS ...``
    statement, unquoted, or None when the statement has none.

    Example:
        >>> parse_view_column_names('CREATE VIEW v ("a", b) AS SELECT 1, 2')
        ['a', 'b']
    """
    if sql is None:
        return None
    match = _CREATE_VIEW_PREFIX_PATTERN.match(sql)
    if match is None or match.group('columns') is None:
        return None
    names = [_unquote_identifier(name) for name in match.group('columns').split(',')]
    return [name for name in names if name] or None


def normalize_sql_for_compare(sql: Optional[str]) -> Optional[str]:
    """
    Normalize an SQL string for comparison only.
    - Lowercases it
    - Removes comments and identifier backticks / double quotes
    - Collapses whitespace and trailing semicolons
    """
    if sql is None:
        return None
    sql = re.sub(r"--.*?(?:\n|$)", " ", sql)
    sql = sql.lower().replace('`', '').replace('"', '')
    sql = _WHITESPACE_PATTERN.sub(' ', sql).strip()
    return sql.rstrip(';').rstrip()


def coerce_option_value(value: Any) -> Any:
    """Convert a textual option value (as reflected) to int, float or bool when it looks like one."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if _INT_PATTERN.match(text):
        return int(text)
    if _FLOAT_PATTERN.match(text):
        return float(text)
    if text.lower() in ('true', 'on'):
        return True
    if text.lower() in ('false', 'off'):
        return False
    return text


def parse_storage_parameters(options: Optional[Iterable[str]]) -> Dict[str, Any]:
    """
    Parse ``key=value`` storage parameter strings, such as PostgreSQL's
    ``pg_class.reloptions``, into a dict with coerced values.

    Example:
        >>> parse_storage_parameters(['fillfactor=50', 'autovacuum_enabled=false'])
        {'fillfactor': 50, 'autovacuum_enabled': False}
    """
    result: Dict[str, Any] = {}
    for item in options or ():
        key, sep, value = item.partition('=')
        if not sep:
            continue
        result[key.strip()] = coerce_option_value(value)
    return result


_OPTION_KEY_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?$')


def validate_option_key(key: str) -> str:
    """Storage parameter names are rendered verbatim, so only plain (optionally dotted) identifiers are allowed."""
    if not isinstance(key, str) or not _OPTION_KEY_PATTERN.match(key):
        raise ValueError(f"Invalid storage parameter name: {key!r}")
    return key
