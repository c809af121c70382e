"""
Clause-boundary view of a single SELECT statement.

This is not a SQL parser.  It only finds the top-level SELECT / FROM /
WHERE / GROUP BY / HAVING / ORDER BY / LIMIT / OFFSET keywords (ignoring
anything inside quotes or parentheses) so that rewrites can append to a
clause instead of guessing an insertion point with a regex.  Statements it
cannot split (CTEs, UNIONs, non-SELECTs) yield ``None`` and callers leave
them untouched.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

_KEYWORD_RE = re.compile(r"(select|from|where|group\s+by|having|order\s+by|limit|offset)\b", re.IGNORECASE)
_CLAUSE_ORDER = ["select", "from", "where", "group_by", "having", "order_by", "limit", "offset"]
_CLAUSE_KEYWORDS = {
    "select": "SELECT",
    "from": "FROM",
    "where": "WHERE",
    "group_by": "GROUP BY",
    "having": "HAVING",
    "order_by": "ORDER BY",
    "limit": "LIMIT",
    "offset": "OFFSET",
}
_TABLE_REF_RE = re.compile(r'^\s*"?(?:\w+"?\.)?"?(\w+)"?(?:\s+(?:as\s+)?(\w+))?', re.IGNORECASE)
_NOT_ALIAS = {
    "join", "left", "right", "full", "inner", "outer", "cross", "natural", "on", "using", "where",
}
_AGGREGATE_CALL_RE = re.compile(r"\b(?:count|sum|avg|min|max)\s*\(", re.IGNORECASE)
_QUOTED_RE = re.compile(r"('(?:[^']|'')*'|\"[^\"]*\")")
_ALIAS_TAIL_RE = re.compile(r"\bas\s+$", re.IGNORECASE)
_BARE_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")


def _scan_keywords(sql: str) -> list[tuple[str, int, int]]:
    """(clause, start, end) for each top-level clause keyword, in order."""
    found: list[tuple[str, int, int]] = []
    depth = 0
    quote: str | None = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        if quote:
            if ch == quote:
                if i + 1 < len(sql) and sql[i + 1] == quote:
                    i += 2
                    continue
                quote = None
            i += 1
            continue
        if ch in "'\"":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif depth == 0 and (i == 0 or not (sql[i - 1].isalnum() or sql[i - 1] in "_.")):
            m = _KEYWORD_RE.match(sql, i)
            if m:
                key = re.sub(r"\s+", "_", m.group(1).lower())
                found.append((key, m.start(), m.end()))
                i = m.end()
                continue
        i += 1
    return found


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split *text* on *sep* where it is not nested in parentheses or quotes."""
    parts: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []
    for ch in text:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


def replace_outside_quotes(text: str, rewrite: Callable[[str], str]) -> str:
    """Apply *rewrite* to the unquoted stretches of *text*, leaving literals alone."""
    pieces = _QUOTED_RE.split(text)
    return "".join(
        piece if i % 2 else rewrite(piece)
        for i, piece in enumerate(pieces)
    )


@dataclass
class SqlClauses:
    select: str
    from_: str = ""
    where: str = ""
    group_by: str = ""
    having: str = ""
    order_by: str = ""
    limit: str = ""
    offset: str = ""
    terminated: bool = False

    # ── Table references ─────────────────────────────

    def _table_ref(self) -> tuple[str | None, str | None]:
        m = _TABLE_REF_RE.match(self.from_)
        if not m:
            return None, None
        alias = m.group(2)
        if alias and alias.lower() in _NOT_ALIAS:
            alias = None
        return m.group(1).lower(), alias

    @property
    def primary_table(self) -> str | None:
        """First table named in FROM (schema prefix and quotes dropped)."""
        return self._table_ref()[0]

    @property
    def primary_ref(self) -> str | None:
        """Name the rest of the statement uses for the primary table (its alias if any)."""
        table, alias = self._table_ref()
        return alias or table

    def has_join(self, table: str) -> bool:
        return re.search(rf"\bjoin\s+(?:\w+\.)?\"?{re.escape(table)}\b", self.from_, re.IGNORECASE) is not None

    def add_join(self, join_clause: str) -> None:
        self.from_ = f"{self.from_} {join_clause}".strip()

    # ── Projection ───────────────────────────────────

    def select_items(self) -> list[str]:
        return split_top_level(self.select)

    def set_select_items(self, items: list[str]) -> None:
        self.select = ", ".join(items)

    def qualify_select_items(self, ref: str) -> None:
        """Prefix plain column names in the select list with *ref*."""
        self.set_select_items([
            f"{ref}.{item}" if _BARE_IDENTIFIER_RE.match(item) else item
            for item in self.select_items()
        ])

    @property
    def is_aggregate(self) -> bool:
        return bool(self.group_by) or _AGGREGATE_CALL_RE.search(self.select) is not None

    # ── Rendering ────────────────────────────────────

    def render(self) -> str:
        parts = []
        for name in _CLAUSE_ORDER:
            body = getattr(self, "from_" if name == "from" else name)
            if name == "select" or body:
                parts.append(f"{_CLAUSE_KEYWORDS[name]} {body}")
        sql = " ".join(parts)
        return sql + ";" if self.terminated else sql


def split_clauses(sql: str) -> SqlClauses | None:
    """Split a single SELECT into its clauses, or ``None`` if it does not fit the model."""
    text = sql.strip()
    terminated = text.endswith(";")
    text = text.rstrip(";").strip()
    if ";" in text:
        return None

    keywords = _scan_keywords(text)
    if not keywords or keywords[0][0] != "select" or keywords[0][1] != 0:
        return None

    seen = [k for k, _, _ in keywords]
    if len(seen) != len(set(seen)):
        return None
    if [k for k in _CLAUSE_ORDER if k in seen] != seen:
        return None

    bodies: dict[str, str] = {}
    for idx, (key, _, end) in enumerate(keywords):
        stop = keywords[idx + 1][1] if idx + 1 < len(keywords) else len(text)
        bodies[key] = text[end:stop].strip()

    return SqlClauses(
        select=bodies.get("select", ""),
        from_=bodies.get("from", ""),
        where=bodies.get("where", ""),
        group_by=bodies.get("group_by", ""),
        having=bodies.get("having", ""),
        order_by=bodies.get("order_by", ""),
        limit=bodies.get("limit", ""),
        offset=bodies.get("offset", ""),
        terminated=terminated,
    )


def qualify_column(text: str, column: str, ref: str) -> str:
    """Prefix every bare reference to *column* in *text* with ``ref.``.

    Qualified references, function names, output aliases (``AS column``) and
    quoted literals are left alone.
    """
    pattern = re.compile(rf"(?<![\w.\"]){re.escape(column)}\b(?!\s*[.(])", re.IGNORECASE)

    def _rewrite(piece: str) -> str:
        out: list[str] = []
        last = 0
        for m in pattern.finditer(piece):
            out.append(piece[last:m.start()])
            if _ALIAS_TAIL_RE.search(piece[:m.start()]):
                out.append(m.group(0))
            else:
                out.append(f"{ref}.{m.group(0)}")
            last = m.end()
        out.append(piece[last:])
        return "".join(out)

    return replace_outside_quotes(text, _rewrite)
