"""
Intent detector -- turns a free-text question into a QueryIntent.

Everything here is deterministic keyword / regex / synonym matching against
the schema.  Only a question that names no table and mentions no known
column fails (``TableNotFoundError``); every other sub-detector degrades to
an empty result.
"""
from __future__ import annotations

import re
from typing import Union

from src.core.config import get_settings
from src.core.errors import NoTableMatchedError
from src.core.logging import get_logger
from src.nlq.intent import Aggregate, Condition, Join, OrderBy, QueryIntent
from src.schema.models import Table, find_table

logger = get_logger(__name__)

# ── Synonym maps ─────────────────────────────────────────

TABLE_SYNONYMS: dict[str, str] = {
    "doctor":        "doctors",
    "physician":     "doctors",
    "physicians":    "doctors",
    "specialist":    "doctors",
    "specialists":   "doctors",
    "patient":       "patients",
    "organization":  "organizations",
    "organisation":  "organizations",
    "organisations": "organizations",
    "org":           "organizations",
    "orgs":          "organizations",
    "clinic":        "organizations",
    "clinics":       "organizations",
    "hospital":      "organizations",
    "hospitals":     "organizations",
}

COLUMN_SYNONYMS: dict[str, list[str]] = {
    "specialty":       ["speciality", "specialization", "specialisation", "field"],
    "gender":          ["sex"],
    "contact_number":  ["contact", "phone", "phone number", "telephone"],
    "phone":           ["phone number", "telephone", "mobile", "contact"],
    "email":           ["e-mail", "mail"],
    "medical_history": ["history", "medical record", "medical records"],
    "last_visit":      ["visit", "appointment", "last seen"],
    "address":         ["location"],
    "created_at":      ["created", "creation date"],
}

# ── Keyword patterns ─────────────────────────────────────

_ALL_COLUMNS_RE = re.compile(r"\b(?:all|everything|every\s+column)\b|\*")

_VALUE = r"(?P<value>'[^']*'|\"[^\"]*\"|[\w@.\-]+)"
_FIELD = r"\b(?P<field>\w+)"

# Most specific first: a span consumed by an earlier template is not re-read.
_CONDITION_PATTERNS: list[tuple[str, str]] = [
    (r"\s+(?:is\s+not|isn't|not\s+equals?(?:\s+to)?|does\s+not\s+equal|!=|<>)\s+", "!="),
    (r"\s+(?:>=|(?:is\s+)?(?:at\s+least|greater\s+than\s+or\s+equal\s+to|more\s+than\s+or\s+equal\s+to))\s+", ">="),
    (r"\s+(?:<=|(?:is\s+)?(?:at\s+most|less\s+than\s+or\s+equal\s+to|no\s+more\s+than))\s+", "<="),
    (r"\s+(?:>|(?:is\s+)?(?:greater\s+than|more\s+than|higher\s+than|over|above))\s+", ">"),
    (r"\s+(?:<|(?:is\s+)?(?:less\s+than|smaller\s+than|lower\s+than|fewer\s+than|under|below))\s+", "<"),
    (r"\s+(?:contains|containing|includes|including|like|has)\s+", "LIKE"),
    (r"\s+(?:is\s+equal\s+to|equal\s+to|equals|==|=|is)\s+", "="),
]
_CONDITION_RES: list[tuple[re.Pattern, str]] = [
    (re.compile(_FIELD + middle + _VALUE, re.IGNORECASE), op) for middle, op in _CONDITION_PATTERNS
]

_OLDER_THAN_RE = re.compile(r"\b(?:older\s+than|over|above|aged\s+over)\s+(\d+)", re.IGNORECASE)
_YOUNGER_THAN_RE = re.compile(r"\b(?:younger\s+than|under|below|aged\s+under)\s+(\d+)", re.IGNORECASE)
_FEMALE_RE = re.compile(r"\b(?:female|females|women|woman)\b", re.IGNORECASE)
_MALE_RE = re.compile(r"\b(?:male|males|men|man)\b", re.IGNORECASE)

_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

_AGGREGATE_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:count|number|total\s+number)\s+of\s+(?:the\s+)?(\w+)"), "count"),
    (re.compile(r"\bhow\s+many\b()"), "count"),
    (re.compile(r"\bcount\s+(?:the\s+|all\s+)?(\w+)"), "count"),
    (re.compile(r"\b(?:average|avg|mean)\s+(?:of\s+)?(?:the\s+)?(\w+)"), "avg"),
    (re.compile(r"\b(?:sum|total)\s+(?:of\s+)?(?:the\s+)?(\w+)"), "sum"),
    (re.compile(r"\b(?:minimum|min|lowest|smallest)\s+(?:of\s+)?(?:the\s+)?(\w+)"), "min"),
    (re.compile(r"\b(?:maximum|max|highest|largest|greatest)\s+(?:of\s+)?(?:the\s+)?(\w+)"), "max"),
]
_RANGE_PHRASE_RE = re.compile(
    r"\b(?:highest|lowest|largest|smallest|high|low)\s+to\s+(?:highest|lowest|largest|smallest|high|low)\b"
)
_AGGREGATE_KEYWORD_RE = re.compile(
    r"\b(?:count|how\s+many|number\s+of|sum|total|average|avg|mean|min|minimum|max|maximum)\b"
)

_GROUP_EXPLICIT_RE = re.compile(
    r"\b(?:group(?:ed)?|categori[sz]e[ds]?|broken\s+down)\s+by\s+(\w+(?:\s*(?:,|and)\s*\w+)*)"
)
_GROUP_IMPLICIT_RE = re.compile(r"\b(?:by|per|for\s+each|each)\s+(\w+)")
_GENDER_GROUP_RE = re.compile(
    r"\bgender\s+(?:distribution|breakdown|split)\b|\bdistribution\s+of\s+gender\b|\b(?:by|per)\s+gender\b"
)

_SORT_BY_RE = re.compile(r"\b(?:sort(?:ed)?|order(?:ed)?|rank(?:ed)?|arrange[d]?)\s+(?:them\s+)?by\s+(\w+)(?:\s+(\w+))?")
_SORT_STRIP_RE = re.compile(r"\b(?:sort(?:ed)?|order(?:ed)?|rank(?:ed)?|arrange[d]?)\s+(?:them\s+)?by\s+\w+")
_SORT_DESC_PHRASES = [
    "descending", "highest to lowest", "largest to smallest", "high to low",
    "most recent", "newest", "latest",
]
_SORT_ASC_PHRASES = [
    "ascending", "lowest to highest", "smallest to largest", "low to high",
    "alphabetical", "alphabetically", "earliest",
]
_EXPLICIT_DESC_RE = re.compile(r"\b(?:desc|descending)\b")
_EXPLICIT_ASC_RE = re.compile(r"\b(?:asc|ascending)\b")
_OLDEST_RE = re.compile(r"\b(?:oldest|eldest|elder|elderly)\b")
_YOUNGEST_RE = re.compile(r"\b(?:youngest|young|younger)\b")

_LIMIT_PATTERNS: list[re.Pattern] = [
    re.compile(r"\btop\s+(\d+)"),
    re.compile(r"\bfirst\s+(\d+)"),
    re.compile(r"\blimit(?:\s+(?:to|of))?\s+(\d+)"),
    re.compile(r"\b(\d+)\s+(?:results?|rows?|records?|entries)\b"),
    re.compile(r"\bshow(?:\s+me)?\s+(\d+)"),
    re.compile(r"\bonly\s+(\d+)"),
]
_OFFSET_RE = re.compile(r"\b(?:skip|offset)\s+(?:the\s+first\s+)?(\d+)")

_JOIN_TYPE_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bleft\s+(?:outer\s+)?join\b|\bincluding\s+all\b|\bwith\s+or\s+without\b"), "left"),
    (re.compile(r"\bright\s+(?:outer\s+)?join\b"), "right"),
    (re.compile(r"\bfull\s+(?:outer\s+)?join\b|\ball\s+records\b"), "full"),
]

# Joins applied regardless of the generic foreign-key heuristics.
_FIXED_JOINS: dict[frozenset[str], tuple[str, str]] = {
    frozenset({"patients", "doctors"}): ("patients.doctor_id = doctors.id", "left"),
}


# ── Text helpers ─────────────────────────────────────────

def _singular(word: str) -> str:
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def _phrase_re(phrase: str) -> re.Pattern:
    """Whole-word regex for *phrase*, tolerant of plurals and spaced underscores."""
    base = re.escape(phrase.lower()).replace("_", r"[_\s]")
    variants = [base + r"(?:s|es)?"]
    if phrase.endswith("y"):
        variants.append(re.escape(phrase.lower()[:-1]).replace("_", r"[_\s]") + "ies")
    return re.compile(r"\b(?:" + "|".join(variants) + r")\b")


def _find(text: str, phrase: str) -> int:
    """Position of the first whole-word mention of *phrase* in *text*, or -1."""
    m = _phrase_re(phrase).search(text)
    return m.start() if m else -1


def _coerce(raw: str) -> Union[int, float, str]:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    value = value.rstrip(".")
    if _NUMBER_RE.match(value):
        return float(value) if "." in value else int(value)
    return value


def _overlaps(span: tuple[int, int], taken: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in taken)


# ── Detector ─────────────────────────────────────────────

class IntentDetector:
    """Heuristic question -> QueryIntent detection over a fixed schema."""

    def __init__(self, tables: list[Table], default_limit: int | None = None):
        self.tables = [t for t in tables if t.columns]
        self.default_limit = default_limit if default_limit is not None else get_settings().default_row_limit

    # ── Lookups ──────────────────────────────────────

    def _table(self, name: str) -> Table | None:
        return find_table(self.tables, name)

    def _resolve_column(self, table: Table, word: str) -> str | None:
        """Map a word from the question to a column of *table* (name, plural, or synonym)."""
        w = word.lower().strip()
        for candidate in (w, _singular(w), w.replace(" ", "_")):
            col = table.column(candidate)
            if col is not None:
                return col.name
        for col_name, synonyms in COLUMN_SYNONYMS.items():
            if (w in synonyms or _singular(w) in synonyms) and table.has_column(col_name):
                return table.column(col_name).name
        return None

    def _resolve_table(self, word: str) -> Table | None:
        w = word.lower().strip()
        table = self._table(w) or self._table(TABLE_SYNONYMS.get(w, ""))
        if table is None:
            table = self._table(TABLE_SYNONYMS.get(_singular(w), ""))
        return table

    def _named_tables(self, q: str) -> list[str]:
        """Tables named directly or by synonym, ordered by first mention."""
        positions: dict[str, int] = {}
        for table in self.tables:
            pos = _find(q, table.name)
            if pos >= 0:
                positions[table.name] = pos
        for word, table_name in TABLE_SYNONYMS.items():
            table = self._table(table_name)
            if table is None:
                continue
            pos = _find(q, word)
            if pos >= 0 and pos < positions.get(table.name, len(q) + 1):
                positions[table.name] = pos
        return sorted(positions, key=positions.__getitem__)

    def _mentioned_columns(self, q: str, table: Table) -> list[tuple[str, int, int]]:
        """(column, score, position) for every column the question refers to."""
        found: list[tuple[str, int, int]] = []
        for col in table.columns:
            pos = _find(q, col.name)
            if pos >= 0:
                found.append((col.name, 2, pos))
                continue
            for synonym in COLUMN_SYNONYMS.get(col.name, []):
                pos = _find(q, synonym)
                if pos >= 0:
                    found.append((col.name, 1, pos))
                    break
        return found

    # ── Tables ───────────────────────────────────────

    def detect_table(self, text: str) -> str | None:
        """Primary table: name, then synonym, then a column only one table has."""
        q = text.lower()
        named = self._named_tables(q)
        if named:
            return named[0]

        for table in self.tables:
            for col in table.columns:
                owners = [t for t in self.tables if t.has_column(col.name)]
                if len(owners) == 1 and _find(q, col.name) >= 0:
                    logger.debug("Table %s inferred from column %s", table.name, col.name)
                    return table.name
        return None

    def detect_tables(self, text: str, default: str | None = None) -> list[str]:
        """Every table the question refers to.

        Falls back to the table with the most mentioned columns, then to
        *default*.  Raises ``NoTableMatchedError`` when neither applies.
        """
        q = text.lower()
        named = self._named_tables(q)
        if named:
            return named

        best: str | None = None
        best_count = 0
        for table in self.tables:
            count = len(self._mentioned_columns(q, table))
            if count > best_count:
                best, best_count = table.name, count
        if best is not None:
            return [best]

        if default is not None:
            return [default]
        raise NoTableMatchedError([t.name for t in self.tables])

    # ── Projection ───────────────────────────────────

    def detect_aggregates(self, text: str, table: str) -> list[Aggregate]:
        tbl = self._table(table)
        if tbl is None:
            return []
        q = _RANGE_PHRASE_RE.sub(lambda m: " " * len(m.group(0)), text.lower())

        found: list[tuple[int, Aggregate]] = []
        seen: set[str] = set()
        for pattern, function in _AGGREGATE_PATTERNS:
            for m in pattern.finditer(q):
                word = m.group(1)
                column = self._resolve_column(tbl, word) if word else None
                if function == "count":
                    if column:
                        agg = Aggregate(function="count", field=column, alias=f"count_{column}")
                    else:
                        agg = Aggregate(function="count", field="*", alias="count")
                elif column:
                    agg = Aggregate(function=function, field=column, alias=f"{function}_{column}")
                else:
                    continue
                if agg.alias not in seen and not (agg.function == "count" and "count" in seen and agg.field == "*"):
                    seen.add(agg.alias)
                    found.append((m.start(), agg))
        found.sort(key=lambda item: item[0])
        return [agg for _, agg in found]

    def detect_columns(self, text: str, table: str) -> list[str]:
        tbl = self._table(table)
        if tbl is None:
            return []
        q = text.lower()

        if _ALL_COLUMNS_RE.search(q):
            return tbl.column_names()

        aggregates = self.detect_aggregates(text, table)
        if aggregates:
            return [aggregates[0].expression]

        mentioned = self._mentioned_columns(q, tbl)
        if not mentioned:
            return tbl.column_names()
        # stable: equal scores keep schema order
        mentioned.sort(key=lambda item: -item[1])
        return [name for name, _, _ in mentioned]

    # ── Filters ──────────────────────────────────────

    def detect_conditions(self, text: str, table: str) -> list[Condition]:
        tbl = self._table(table)
        if tbl is None:
            return []

        conditions: list[Condition] = []
        taken: list[tuple[int, int]] = []

        for pattern, operator in _CONDITION_RES:
            for m in pattern.finditer(text):
                if _overlaps(m.span(), taken):
                    continue
                col = tbl.column(m.group("field"))
                if col is None:
                    continue
                value = _coerce(m.group("value"))
                if operator == "LIKE":
                    value = f"%{value}%"
                conditions.append(Condition(field=col.name, operator=operator, value=value))
                taken.append(m.span())

        if tbl.has_column("age"):
            for pattern, operator in ((_OLDER_THAN_RE, ">"), (_YOUNGER_THAN_RE, "<")):
                for m in pattern.finditer(text):
                    if not _overlaps(m.span(), taken):
                        conditions.append(Condition(field="age", operator=operator, value=int(m.group(1))))
                        taken.append(m.span())

        if tbl.has_column("gender") and not any(c.field == "gender" for c in conditions):
            female = _FEMALE_RE.search(text)
            male = _MALE_RE.search(text)
            if female and not male:
                conditions.append(Condition(field="gender", operator="=", value="female"))
            elif male and not female:
                conditions.append(Condition(field="gender", operator="=", value="male"))

        return conditions

    # ── Grouping / sorting / paging ──────────────────

    def _group_target(self, tbl: Table, word: str) -> str | None:
        column = self._resolve_column(tbl, word)
        if column:
            return column
        other = self._resolve_table(word)
        if other is not None and other.name != tbl.name and other.has_column("name"):
            return f"{other.name}.name"
        return None

    def detect_grouping(self, text: str, table: str) -> list[str]:
        tbl = self._table(table)
        if tbl is None:
            return []
        q = _SORT_STRIP_RE.sub(" ", text.lower())

        groups: list[str] = []
        for m in _GROUP_EXPLICIT_RE.finditer(q):
            for word in re.split(r"\s*(?:,|\band\b)\s*", m.group(1)):
                target = self._group_target(tbl, word) if word else None
                if target and target not in groups:
                    groups.append(target)

        if _AGGREGATE_KEYWORD_RE.search(q):
            for m in _GROUP_IMPLICIT_RE.finditer(q):
                target = self._group_target(tbl, m.group(1))
                if target and target not in groups:
                    groups.append(target)

        if tbl.has_column("gender") and "gender" not in groups and _GENDER_GROUP_RE.search(q):
            groups.append("gender")
        return groups

    def detect_sorting(self, text: str, table: str) -> list[OrderBy]:
        tbl = self._table(table)
        if tbl is None:
            return []
        q = text.lower()

        direction = "asc"
        triggered = False
        if any(p in q for p in _SORT_DESC_PHRASES):
            direction, triggered = "desc", True
        elif any(p in q for p in _SORT_ASC_PHRASES):
            triggered = True
        if _EXPLICIT_DESC_RE.search(q):
            direction = "desc"
        elif _EXPLICIT_ASC_RE.search(q):
            direction = "asc"

        fields: list[str] = []
        m = _SORT_BY_RE.search(q)
        if m:
            triggered = True
            two_words = f"{m.group(1)}_{m.group(2)}" if m.group(2) else None
            field = (two_words and tbl.column(two_words) and tbl.column(two_words).name) or self._resolve_column(
                tbl, m.group(1)
            )
            if field:
                fields.append(field)

        if triggered and not fields:
            mentioned = sorted(self._mentioned_columns(q, tbl), key=lambda item: item[2])
            if mentioned:
                fields.append(mentioned[0][0])

        if fields:
            return [OrderBy(field=f, direction=direction) for f in fields]

        if tbl.has_column("age"):
            if _OLDEST_RE.search(q):
                return [OrderBy(field="age", direction="desc")]
            if _YOUNGEST_RE.search(q):
                return [OrderBy(field="age", direction="asc")]
        return []

    def detect_limit(self, text: str) -> int:
        q = text.lower()
        for pattern in _LIMIT_PATTERNS:
            m = pattern.search(q)
            if m:
                return int(m.group(1))
        return self.default_limit

    def detect_offset(self, text: str) -> int | None:
        m = _OFFSET_RE.search(text.lower())
        return int(m.group(1)) if m else None

    # ── Joins ────────────────────────────────────────

    def _join_condition(self, primary: Table, other: Table) -> str | None:
        fk = primary.foreign_key_to(other.name)
        if fk:
            return f"{primary.name}.{fk.column} = {other.name}.{fk.foreign_column}"
        fk = other.foreign_key_to(primary.name)
        if fk:
            return f"{other.name}.{fk.column} = {primary.name}.{fk.foreign_column}"

        key = f"{_singular(other.name)}_id"
        if primary.has_column(key):
            return f"{primary.name}.{key} = {other.name}.id"
        key = f"{_singular(primary.name)}_id"
        if other.has_column(key):
            return f"{other.name}.{key} = {primary.name}.id"
        return None

    def detect_joins(self, text: str, primary_table: str) -> list[Join]:
        primary = self._table(primary_table)
        if primary is None:
            return []
        q = text.lower()

        join_type = "inner"
        for pattern, jtype in _JOIN_TYPE_PATTERNS:
            if pattern.search(q):
                join_type = jtype
                break

        joins: list[Join] = []
        for name in self._named_tables(q):
            if name == primary.name:
                continue
            fixed = _FIXED_JOINS.get(frozenset({primary.name, name}))
            if fixed:
                joins.append(Join(table=name, condition=fixed[0], type=fixed[1]))
                continue
            condition = self._join_condition(primary, self._table(name))
            if condition is None:
                logger.debug("No join path between %s and %s -- skipping", primary.name, name)
                continue
            joins.append(Join(table=name, condition=condition, type=join_type))
        return joins

    # ── Composition ──────────────────────────────────

    def detect_intent(self, text: str) -> QueryIntent:
        """Run every sub-detector and assemble the QueryIntent.

        Raises ``TableNotFoundError`` when no table can be tied to *text*.
        """
        primary = self.detect_table(text) or self.detect_tables(text)[0]
        tbl = self._table(primary)

        aggregates = self.detect_aggregates(text, primary)
        conditions = self.detect_conditions(text, primary)
        group_by = self.detect_grouping(text, primary)
        order_by = self.detect_sorting(text, primary)
        joins = self.detect_joins(text, primary)

        joined_tables = {j.table for j in joins}
        group_by = [g for g in group_by if "." not in g or g.split(".", 1)[0] in joined_tables]
        if group_by and not aggregates:
            aggregates = [Aggregate(function="count", field="*", alias="count")]

        if aggregates:
            columns = [a.expression for a in aggregates]
        else:
            columns = self.detect_columns(text, primary)
            filter_only = {c.field for c in conditions} | {o.field for o in order_by}
            if columns and set(columns) <= filter_only and not _ALL_COLUMNS_RE.search(text.lower()):
                columns = tbl.column_names()
            for join in joins:
                joined = self._table(join.table)
                if joined is not None and joined.has_column("name"):
                    columns.append(f"{join.table}.name AS {_singular(join.table)}_name")

        if aggregates:
            only_count = len(aggregates) == 1 and aggregates[0].function == "count" and aggregates[0].field == "*"
            intent_type = "group" if group_by else ("count" if only_count else "aggregate")
        elif joins:
            intent_type = "join"
        elif conditions:
            intent_type = "filter"
        elif order_by:
            intent_type = "sort"
        else:
            intent_type = "select"

        intent = QueryIntent(
            type=intent_type,
            table=primary,
            columns=columns,
            conditions=conditions,
            group_by=group_by,
            order_by=order_by,
            joins=joins,
            limit=self.detect_limit(text),
            offset=self.detect_offset(text),
            aggregate=aggregates,
        )
        logger.info("Detector -> %s", intent.model_dump_json(indent=None))
        return intent
