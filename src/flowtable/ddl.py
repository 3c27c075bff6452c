'''
Statement parsing for `TableEnvironment.execute_sql`.

Only the statements that manage the catalog are parsed here, queries are
handed to the polars SQL engine verbatim:

    CREATE TABLE [IF NOT EXISTS] name (
        col TYPE [NOT NULL] [COMMENT '...'],
        ...
        [PRIMARY KEY (col, ...) NOT ENFORCED]
    ) [COMMENT '...'] WITH ('key' = 'value', ...)

    DROP TABLE [IF EXISTS] name
    INSERT { INTO | OVERWRITE } [TABLE] name [(col, ...)] <query>
    SHOW TABLES
    { DESCRIBE | DESC } name
    EXPLAIN <query>
    <query>                      -- SELECT ... / WITH ... SELECT ...

'''
from __future__ import annotations

import re
from typing import Iterable, Iterator, Literal

from flowtable.errors import SqlParseError
from flowtable.structs import FrozenStruct


class ColumnDef(FrozenStruct, frozen=True):
    name: str
    type: str
    nullable: bool = True
    comment: str | None = None


class CreateTable(FrozenStruct, frozen=True, tag='create_table'):
    name: str
    columns: list[ColumnDef]
    options: dict[str, str]
    if_not_exists: bool = False
    primary_key: list[str] | None = None
    comment: str | None = None


class DropTable(FrozenStruct, frozen=True, tag='drop_table'):
    name: str
    if_exists: bool = False


class Insert(FrozenStruct, frozen=True, tag='insert'):
    table: str
    query: str
    overwrite: bool = False
    columns: list[str] | None = None


class ShowTables(FrozenStruct, frozen=True, tag='show_tables'):
    ...


class Describe(FrozenStruct, frozen=True, tag='describe'):
    name: str


class Explain(FrozenStruct, frozen=True, tag='explain'):
    query: str


class Query(FrozenStruct, frozen=True, tag='query'):
    query: str


Statement = CreateTable | DropTable | Insert | ShowTables | Describe | Explain | Query


_ident = r'(?:`[^`]+`|[A-Za-z_][A-Za-z0-9_]*)'
_qualified = rf'{_ident}(?:\.{_ident})*'


def _unquote_ident(text: str) -> str:
    return '.'.join(
        part[1:-1] if part.startswith('`') else part
        for part in re.findall(_ident, text)
    )


ScanKind = Literal['code', 'quoted', 'comment']


def _scan(sql: str) -> Iterator[tuple[int, str, ScanKind]]:
    '''
    Walk `sql` yielding (index, char, kind), where kind tells apart plain
    code from string literals, quoted identifiers and comments.

    '''
    i = 0
    n = len(sql)
    while i < n:
        c = sql[i]

        if sql.startswith('--', i):
            end = sql.find('\n', i)
            end = n if end == -1 else end
            for j in range(i, end):
                yield j, sql[j], 'comment'
            i = end
            continue

        if sql.startswith('/*', i):
            end = sql.find('*/', i + 2)
            if end == -1:
                raise SqlParseError('Unterminated block comment', sql)
            for j in range(i, end + 2):
                yield j, sql[j], 'comment'
            i = end + 2
            continue

        if c in ('\'', '`'):
            j = i + 1
            while True:
                if j >= n:
                    raise SqlParseError('Unterminated quoted literal', sql)

                if sql[j] == c:
                    # doubled quote is an escaped quote
                    if j + 1 < n and sql[j + 1] == c:
                        j += 2
                        continue
                    break

                j += 1

            for k in range(i, j + 1):
                yield k, sql[k], 'quoted'
            i = j + 1
            continue

        yield i, c, 'code'
        i += 1


def strip_comments(sql: str) -> str:
    return ''.join(
        c for _, c, kind in _scan(sql) if kind != 'comment'
    )



def split_statements(script: str) -> list[str]:
    '''
    Split a script on `;` separators that are not inside literals or
    comments, dropping empty statements.

    '''
    script = strip_comments(script)
    statements = []
    start = 0
    for i, c, kind in _scan(script):
        if kind == 'code' and c == ';':
            statements.append(script[start:i])
            start = i + 1

    statements.append(script[start:])
    return [s.strip() for s in statements if s.strip()]


def _split_top_level(text: str, sep: str = ',') -> list[str]:
    parts = []
    depth = 0
    start = 0
    for i, c, kind in _scan(text):
        if kind != 'code':
            continue

        if c in '(<':
            depth += 1

        elif c in ')>':
            depth -= 1

        elif c == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1

    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


def _matching_paren(text: str, open_idx: int) -> int:
    depth = 0
    for i, c, kind in _scan(text):
        if i < open_idx or kind != 'code':
            continue

        if c == '(':
            depth += 1

        elif c == ')':
            depth -= 1
            if depth == 0:
                return i

    raise SqlParseError('Unbalanced parentheses', text)


def _unquote_string(text: str) -> str:
    text = text.strip()
    if len(text) < 2 or text[0] != '\'' or text[-1] != '\'':
        raise SqlParseError(f'Expected a quoted string, got {text!r}')

    return text[1:-1].replace('\'\'', '\'')


_column_re = re.compile(
    rf'^(?P<name>{_ident})\s+(?P<rest>.+)$',
    re.DOTALL
)
_comment_re = re.compile(r'\s+COMMENT\s+(?P<comment>\'(?:[^\']|\'\')*\')\s*$', re.IGNORECASE | re.DOTALL)
_not_null_re = re.compile(r'\s+(?P<not>NOT\s+)?NULL\s*$', re.IGNORECASE)
_pk_re = re.compile(
    r'^(?:CONSTRAINT\s+\S+\s+)?PRIMARY\s+KEY\s*\((?P<cols>[^)]*)\)(?:\s+NOT\s+ENFORCED)?$',
    re.IGNORECASE | re.DOTALL
)


def _parse_column(text: str, statement: str) -> ColumnDef:
    match = _column_re.match(text)
    if not match:
        raise SqlParseError(f'Malformed column definition {text!r}', statement)

    name = _unquote_ident(match.group('name'))
    rest = ' ' + match.group('rest').strip()

    comment = None
    if m := _comment_re.search(rest):
        comment = _unquote_string(m.group('comment'))
        rest = rest[:m.start()]

    nullable = True
    if m := _not_null_re.search(rest):
        nullable = m.group('not') is None
        rest = rest[:m.start()]

    type_text = rest.strip()
    if re.match(r'^AS\b', type_text, re.IGNORECASE):
        raise SqlParseError(f'Computed column {name!r} is not supported', statement)

    if re.search(r'\bMETADATA\b', type_text, re.IGNORECASE):
        raise SqlParseError(f'Metadata column {name!r} is not supported', statement)

    if not type_text:
        raise SqlParseError(f'Column {name!r} is missing a type', statement)

    return ColumnDef(name=name, type=type_text, nullable=nullable, comment=comment)


_option_re = re.compile(
    r'^(?P<key>\'(?:[^\']|\'\')*\')\s*=\s*(?P<value>\'(?:[^\']|\'\')*\')$',
    re.DOTALL
)


def _parse_options(text: str, statement: str) -> dict[str, str]:
    options: dict[str, str] = {}
    for item in _split_top_level(text):
        match = _option_re.match(item)
        if not match:
            raise SqlParseError(f'Malformed table option {item!r}', statement)

        key = _unquote_string(match.group('key'))
        if key in options:
            raise SqlParseError(f'Duplicate table option {key!r}', statement)

        options[key] = _unquote_string(match.group('value'))

    return options


_create_re = re.compile(
    rf'^CREATE\s+(?:TEMPORARY\s+)?TABLE\s+(?P<ine>IF\s+NOT\s+EXISTS\s+)?(?P<name>{_qualified})\s*\(',
    re.IGNORECASE
)


def parse_create_table(statement: str) -> CreateTable:
    match = _create_re.match(statement)
    if not match:
        raise SqlParseError('Malformed CREATE TABLE statement', statement)

    open_idx = match.end() - 1
    close_idx = _matching_paren(statement, open_idx)

    columns: list[ColumnDef] = []
    primary_key = None
    for item in _split_top_level(statement[open_idx + 1:close_idx]):
        if pk := _pk_re.match(item):
            if primary_key is not None:
                raise SqlParseError('Multiple primary keys defined', statement)
            primary_key = [
                _unquote_ident(c.strip()) for c in pk.group('cols').split(',')
            ]
            continue

        if re.match(r'^WATERMARK\b', item, re.IGNORECASE):
            raise SqlParseError('Watermarks are not supported', statement)

        columns.append(_parse_column(item, statement))

    if not columns:
        raise SqlParseError('CREATE TABLE requires at least one column', statement)

    names = [c.name for c in columns]
    for key in primary_key or []:
        if key not in names:
            raise SqlParseError(f'Primary key column {key!r} not defined', statement)

    tail = statement[close_idx + 1:].strip()

    comment = None
    if m := re.match(r'^COMMENT\s+(?P<c>\'(?:[^\']|\'\')*\')\s*', tail, re.IGNORECASE):
        comment = _unquote_string(m.group('c'))
        tail = tail[m.end():]

    options: dict[str, str] = {}
    if tail:
        with_match = re.match(r'^WITH\s*\(', tail, re.IGNORECASE)
        if not with_match:
            raise SqlParseError(f'Unexpected text after column list: {tail!r}', statement)

        w_open = with_match.end() - 1
        w_close = _matching_paren(tail, w_open)
        if tail[w_close + 1:].strip():
            raise SqlParseError('Unexpected text after WITH clause', statement)

        options = _parse_options(tail[w_open + 1:w_close], statement)

    return CreateTable(
        name=_unquote_ident(match.group('name')),
        columns=columns,
        options=options,
        if_not_exists=match.group('ine') is not None,
        primary_key=primary_key,
        comment=comment,
    )


_drop_re = re.compile(
    rf'^DROP\s+(?:TEMPORARY\s+)?TABLE\s+(?P<ie>IF\s+EXISTS\s+)?(?P<name>{_qualified})$',
    re.IGNORECASE
)
_insert_re = re.compile(
    rf'^INSERT\s+(?P<mode>INTO|OVERWRITE)\s+(?:TABLE\s+)?(?P<name>{_qualified})\s*'
    r'(?:\((?P<cols>[^)]*)\)\s*)?(?P<query>(?:SELECT|WITH)\b.*)$',
    re.IGNORECASE | re.DOTALL
)
_describe_re = re.compile(rf'^(?:DESCRIBE|DESC)\s+(?P<name>{_qualified})$', re.IGNORECASE)


def parse_statement(statement: str) -> Statement:
    '''
    Classify and parse a single statement (no trailing `;`).

    '''
    sql = strip_comments(statement).strip().rstrip(';').strip()
    if not sql:
        raise SqlParseError('Empty statement', statement)

    keyword = sql.split(None, 1)[0].upper()
    match keyword:
        case 'CREATE':
            return parse_create_table(sql)

        case 'DROP':
            if not (m := _drop_re.match(sql)):
                raise SqlParseError('Malformed DROP TABLE statement', statement)

            return DropTable(
                name=_unquote_ident(m.group('name')),
                if_exists=m.group('ie') is not None,
            )

        case 'INSERT':
            if not (m := _insert_re.match(sql)):
                raise SqlParseError('Malformed INSERT statement', statement)

            cols = None
            if m.group('cols') is not None:
                cols = [_unquote_ident(c.strip()) for c in m.group('cols').split(',')]

            return Insert(
                table=_unquote_ident(m.group('name')),
                query=m.group('query').strip(),
                overwrite=m.group('mode').upper() == 'OVERWRITE',
                columns=cols,
            )

        case 'SHOW':
            if ' '.join(sql.upper().split()) != 'SHOW TABLES':
                raise SqlParseError('Only SHOW TABLES is supported', statement)

            return ShowTables()

        case 'DESCRIBE' | 'DESC':
            if not (m := _describe_re.match(sql)):
                raise SqlParseError('Malformed DESCRIBE statement', statement)

            return Describe(name=_unquote_ident(m.group('name')))

        case 'EXPLAIN':
            parts = sql.split(None, 1)
            if len(parts) < 2:
                raise SqlParseError('EXPLAIN requires a query', statement)

            return Explain(query=parts[1])

        case 'SELECT' | 'WITH':
            return Query(query=sql)

    raise SqlParseError(f'Unsupported statement {keyword!r}', statement)


def to_engine_sql(query: str) -> str:
    '''
    Rewrite backtick quoted identifiers as double quoted ones, the quoting
    the polars SQL engine understands.

    '''
    out = []
    for _, c, kind in _scan(strip_comments(query)):
        if kind == 'quoted' and c == '`':
            c = '"'

        out.append(c)

    return ''.join(out)


def referenced_names(query: str, candidates: Iterable[str]) -> list[str]:
    '''
    Which of `candidates` appear as identifiers in the code (not literal)
    parts of `query`.

    '''
    chars = []
    span_quote = None
    for _, c, kind in _scan(strip_comments(query)):
        if kind != 'quoted':
            span_quote = None
            chars.append(c)
            continue

        if span_quote is None:
            span_quote = c

        # blank out string literals, keep quoted identifiers
        chars.append(c if span_quote == '`' else ' ')

    code = ''.join(chars)
    tokens: set[str] = set()
    for tok in re.findall(_qualified, code):
        name = _unquote_ident(tok)
        tokens.add(name)
        tokens.update(name.split('.'))

    return [name for name in candidates if name in tokens]
