from dataclasses import dataclass
from typing import List, Optional, Tuple
import sqlparse
from sqlparse import tokens as T
from sqlparse.sql import Token


DROP = "DROP"
ALTER = "ALTER"
CREATE = "CREATE"
RENAME = "RENAME"

SCHEMA = "SCHEMA"
TABLE = "TABLE"

_DDL_OPERATIONS = frozenset([DROP, ALTER, CREATE, RENAME])
_OBJECT_ALIASES = {"DATABASE": SCHEMA}
_MODIFIERS = frozenset(["TEMPORARY", "ONLINE", "OFFLINE", "IGNORE"])
_QUOTES = "`\"'"
_EXISTENCE_CLAUSES = (("IF", "EXISTS"), ("IF", "NOT", "EXISTS"))


@dataclass(frozen=True)
class ObjectRef:
    """A schema-qualified object name. schema is None when the statement omits it."""

    schema: Optional[str]
    name: Optional[str]


@dataclass(frozen=True)
class SqlOperation:
    """
    Classification of one SQL statement.

    Attributes:
        operation: Leading verb, upper-cased (DROP, ALTER, INSERT, ...).
        object_type: Object kind for DDL verbs (TABLE, SCHEMA, INDEX, ...),
            None otherwise. DATABASE is reported as SCHEMA.
        targets: Objects the statement names. For DROP SCHEMA the schema is
            carried in ObjectRef.schema and ObjectRef.name is None.
    """

    operation: str
    object_type: Optional[str] = None
    targets: Tuple[ObjectRef, ...] = ()


def classify(query: str) -> Optional[SqlOperation]:
    """
    Classify a SQL statement by operation, object type and target names.

    Only the first statement of the text is considered.

    Args:
        query: The SQL text.

    Returns:
        Optional[SqlOperation]: The classification, or None when the text is
            empty or a DDL statement's structure cannot be recognised.
    """
    statements = [s for s in sqlparse.parse(query or "") if str(s).strip()]
    if not statements:
        return None

    words = _significant_tokens(statements[0].flatten())
    if not words:
        return None

    operation = _keyword(words[0])
    if operation not in _DDL_OPERATIONS:
        return SqlOperation(operation=operation)

    position = 1
    while position < len(words) and _keyword(words[position]) in _MODIFIERS:
        position += 1

    if position >= len(words):
        return None

    if operation == RENAME:
        object_type = _keyword(words[position])
        if object_type != TABLE:
            return SqlOperation(operation=operation, object_type=object_type)
        return _rename_targets(words, position + 1)

    object_type = _keyword(words[position])
    object_type = _OBJECT_ALIASES.get(object_type, object_type)
    position = _skip_existence_clause(words, position + 1)

    if object_type == SCHEMA:
        names, _ = _read_name(words, position)
        if not names:
            return None
        return SqlOperation(operation, object_type, (ObjectRef(names[-1], None),))

    if object_type != TABLE:
        return SqlOperation(operation=operation, object_type=object_type)

    if operation == DROP:
        targets = _read_name_list(words, position)
        if not targets:
            return None
        return SqlOperation(operation, object_type, tuple(targets))

    names, position = _read_name(words, position)
    if not names:
        return None
    targets = [_object_ref(names)]

    if operation == ALTER:
        renamed = _altered_name(words, position)
        if renamed is not None:
            targets.append(renamed)

    return SqlOperation(operation, object_type, tuple(targets))


def _significant_tokens(tokens) -> List[Token]:
    significant = []
    for token in tokens:
        if token.is_whitespace or token.ttype in T.Comment:
            continue
        if token.ttype in T.Punctuation and token.value == ";":
            break
        significant.append(token)
    return significant


def _keyword(token: Token) -> str:
    """Upper-cased token text with inner whitespace collapsed."""
    return " ".join(token.value.upper().split())


def _skip_existence_clause(words: List[Token], position: int) -> int:
    """
    Skip IF [NOT] EXISTS.

    Depending on its version sqlparse yields the clause as separate words or
    as one compound keyword such as "IF EXISTS".
    """
    clause: List[str] = []
    end = position
    while end < len(words) and len(clause) < 3:
        clause.extend(_keyword(words[end]).split())
        end += 1
        if tuple(clause) in _EXISTENCE_CLAUSES:
            return end
    return position


def _is_name(token: Token) -> bool:
    return not (token.ttype in T.Punctuation or token.ttype in T.Operator)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        return value[1:-1]
    return value


def _read_name(words: List[Token], position: int) -> Tuple[List[str], int]:
    """Read a possibly dotted name starting at position."""
    parts: List[str] = []
    while position < len(words) and _is_name(words[position]):
        parts.append(_unquote(words[position].value))
        position += 1
        if position < len(words) and words[position].value == ".":
            position += 1
            continue
        break
    return parts, position


def _object_ref(parts: List[str]) -> ObjectRef:
    if len(parts) == 1:
        return ObjectRef(None, parts[0])
    return ObjectRef(parts[-2], parts[-1])


def _read_name_list(words: List[Token], position: int) -> List[ObjectRef]:
    targets = []
    while position < len(words):
        parts, position = _read_name(words, position)
        if not parts:
            break
        targets.append(_object_ref(parts))
        if position < len(words) and words[position].value == ",":
            position += 1
            continue
        break
    return targets


def _rename_targets(words: List[Token], position: int) -> Optional[SqlOperation]:
    targets = []
    while position < len(words):
        old, position = _read_name(words, position)
        if not old or position >= len(words) or _keyword(words[position]) != "TO":
            return None
        new, position = _read_name(words, position + 1)
        if not new:
            return None
        targets.extend([_object_ref(old), _object_ref(new)])
        if position < len(words) and words[position].value == ",":
            position += 1
            continue
        break

    if not targets:
        return None
    return SqlOperation(RENAME, TABLE, tuple(targets))


def _altered_name(words: List[Token], position: int) -> Optional[ObjectRef]:
    """Find the new name of an ALTER TABLE ... RENAME [TO|AS] statement."""
    while position < len(words):
        if _keyword(words[position]) == "RENAME":
            position += 1
            if position < len(words) and _keyword(words[position]) in ("TO", "AS"):
                position += 1
            if position < len(words) and _keyword(words[position]) in (
                "COLUMN",
                "INDEX",
                "KEY",
            ):
                return None
            parts, _ = _read_name(words, position)
            return _object_ref(parts) if parts else None
        position += 1
    return None
