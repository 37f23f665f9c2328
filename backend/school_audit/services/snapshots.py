"""Before/after snapshot payloads attached to audit entries.

A snapshot is one of two shapes, chosen by the caller at write time:

  KeyValueSnapshot   plain field -> value mapping (``{"IsActive": false}``)
  FieldDiffSnapshot  ordered list of per-field changes, used by revision requests

Both are stored as JSON text. The diff shape is stored under a ``ChangedFields``
key so readers that only understand plain mappings still see valid JSON; the
shape itself is kept in a separate kind column (``key_value``/``field_diff``) so
a key/value mapping that happens to use that key reads back unchanged.
``None`` means "no snapshot" and is stored as SQL NULL.
"""
from __future__ import annotations
import json
from dataclasses import dataclass, field as dc_field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from school_audit.errors import ValidationError

CHANGED_FIELDS_KEY = 'ChangedFields'

KEY_VALUE = 'key_value'
FIELD_DIFF = 'field_diff'
SNAPSHOT_KINDS = (KEY_VALUE, FIELD_DIFF)


@dataclass(frozen=True)
class KeyValueSnapshot:
    values: Mapping[str, Any] = dc_field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True)
class FieldDiff:
    field: str
    old_value: Any = None
    new_value: Any = None

    def to_json(self) -> Dict[str, Any]:
        return {'field': self.field, 'oldValue': self.old_value, 'newValue': self.new_value}


@dataclass(frozen=True)
class FieldDiffSnapshot:
    changes: Tuple[FieldDiff, ...] = ()

    @classmethod
    def of(cls, changes: Iterable[Union[FieldDiff, Mapping[str, Any]]]) -> 'FieldDiffSnapshot':
        out: List[FieldDiff] = []
        for c in changes:
            if isinstance(c, FieldDiff):
                out.append(c)
            else:
                out.append(_diff_from_mapping(c))
        return cls(tuple(out))

    def to_json(self) -> Dict[str, Any]:
        return {CHANGED_FIELDS_KEY: [c.to_json() for c in self.changes]}


Snapshot = Union[KeyValueSnapshot, FieldDiffSnapshot]


def _diff_from_mapping(raw: Mapping[str, Any]) -> FieldDiff:
    if not isinstance(raw, Mapping) or not raw.get('field'):
        raise ValidationError('ChangedFields items must be objects with a field name')
    return FieldDiff(str(raw['field']), raw.get('oldValue'), raw.get('newValue'))


def as_snapshot(value: Union[Snapshot, Mapping[str, Any], None]) -> Optional[Snapshot]:
    """Normalize writer input: a bare mapping is declared key/value by the caller."""
    if value is None or isinstance(value, (KeyValueSnapshot, FieldDiffSnapshot)):
        return value
    if isinstance(value, Mapping):
        return KeyValueSnapshot(dict(value))
    raise ValidationError(f'snapshot must be a mapping, got {type(value).__name__}')


def snapshot_from_json(value: Any, name: str = 'snapshot', kind: Optional[str] = None) -> Optional[Snapshot]:
    """Read a snapshot from a request body value.

    ``kind`` declares the shape. Without it, an object whose only key is
    ``ChangedFields`` holding a list is a diff snapshot and any other object is
    key/value.
    """
    if kind is not None and kind not in SNAPSHOT_KINDS:
        raise ValidationError(f'{name} kind must be one of {", ".join(SNAPSHOT_KINDS)}', field=name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f'{name} must be an object or null', field=name)
    if kind == KEY_VALUE:
        return KeyValueSnapshot(value)
    fields = value.get(CHANGED_FIELDS_KEY)
    if kind == FIELD_DIFF:
        if set(value) != {CHANGED_FIELDS_KEY} or not isinstance(fields, list):
            raise ValidationError(f'{name} must be {{"{CHANGED_FIELDS_KEY}": [...]}}', field=name)
        return FieldDiffSnapshot.of(fields)
    if set(value) == {CHANGED_FIELDS_KEY} and isinstance(fields, list):
        return FieldDiffSnapshot.of(fields)
    return KeyValueSnapshot(value)


def snapshot_kind(snapshot: Optional[Snapshot]) -> Optional[str]:
    """Shape tag stored beside the snapshot text."""
    if snapshot is None:
        return None
    return FIELD_DIFF if isinstance(snapshot, FieldDiffSnapshot) else KEY_VALUE


def encode_snapshot(snapshot: Optional[Snapshot]) -> Optional[str]:
    if snapshot is None:
        return None
    try:
        return json.dumps(snapshot.to_json(), ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        raise ValidationError(f'snapshot is not serializable: {e}')


def _legacy_diff(items: Any) -> Optional[FieldDiffSnapshot]:
    if not isinstance(items, list) or not items:
        return None
    try:
        return FieldDiffSnapshot.of(items)
    except ValidationError:
        return None


def decode_snapshot(text: Optional[str], kind: Optional[str] = None) -> Optional[Snapshot]:
    """Stored text -> snapshot.

    ``kind`` is the shape recorded at write time and is trusted as-is. Rows written
    before the kind columns existed carry no tag, so their shape is inferred.
    """
    if text is None:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = text
    if kind == FIELD_DIFF and isinstance(parsed, dict):
        return FieldDiffSnapshot.of(parsed.get(CHANGED_FIELDS_KEY) or [])
    if kind == KEY_VALUE:
        return KeyValueSnapshot(parsed if isinstance(parsed, dict) else {'value': parsed})
    if isinstance(parsed, dict):
        if len(parsed) == 1:
            diff = _legacy_diff(parsed.get(CHANGED_FIELDS_KEY))
            if diff is not None:
                return diff
        return KeyValueSnapshot(parsed)
    # Legacy rows stored the ChangedFields list on its own
    diff = _legacy_diff(parsed)
    if diff is not None:
        return diff
    # ...or bare scalars ("Pending") rather than objects
    return KeyValueSnapshot({'value': parsed})


def snapshot_to_json(text: Optional[str], kind: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Stored text -> JSON-ready value for API responses."""
    snap = decode_snapshot(text, kind)
    return snap.to_json() if snap is not None else None
