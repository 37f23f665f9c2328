import json
import pytest
from school_audit.errors import ValidationError
from school_audit.services.snapshots import (
    FieldDiff, FieldDiffSnapshot, KeyValueSnapshot, as_snapshot, decode_snapshot, encode_snapshot,
    snapshot_from_json, snapshot_kind, snapshot_to_json,
)


def test_none_is_stored_as_null_not_empty_object():
    assert encode_snapshot(None) is None
    assert decode_snapshot(None) is None
    assert snapshot_to_json(None) is None


def test_empty_mapping_is_distinct_from_none():
    text = encode_snapshot(as_snapshot({}))
    assert text == '{}'
    assert snapshot_to_json(text) == {}


def test_nested_key_value_round_trip():
    values = {'Status': 'Pending', 'Guardian': {'Name': 'Ana Cruz', 'Phone': None}, 'Tags': [1, 'two']}
    snap = decode_snapshot(encode_snapshot(as_snapshot(values)))
    assert isinstance(snap, KeyValueSnapshot)
    assert snap.to_json() == values


def test_field_diff_round_trip_keeps_order():
    diff = FieldDiffSnapshot.of([
        FieldDiff('LastName', 'Santos', 'Reyes'),
        {'field': 'Birthdate', 'oldValue': '2010-01-01', 'newValue': '2010-02-01'},
    ])
    stored = encode_snapshot(diff)
    assert json.loads(stored) == {'ChangedFields': [
        {'field': 'LastName', 'oldValue': 'Santos', 'newValue': 'Reyes'},
        {'field': 'Birthdate', 'oldValue': '2010-01-01', 'newValue': '2010-02-01'},
    ]}
    back = decode_snapshot(stored)
    assert isinstance(back, FieldDiffSnapshot)
    assert [c.field for c in back.changes] == ['LastName', 'Birthdate']


def test_unicode_is_kept_readable():
    assert 'Peña' in encode_snapshot(as_snapshot({'Name': 'Peña'}))


def test_non_mapping_writer_input_rejected():
    with pytest.raises(ValidationError):
        as_snapshot(['not', 'a', 'mapping'])


def test_diff_item_without_field_rejected():
    with pytest.raises(ValidationError):
        FieldDiffSnapshot.of([{'oldValue': 1}])


def test_request_body_snapshot_shapes():
    assert snapshot_from_json(None) is None
    assert isinstance(snapshot_from_json({'ChangedFields': []}), FieldDiffSnapshot)
    # extra keys make it a plain mapping
    assert isinstance(snapshot_from_json({'ChangedFields': [], 'Note': 'x'}), KeyValueSnapshot)
    with pytest.raises(ValidationError):
        snapshot_from_json('Pending', 'oldValue')


def test_legacy_scalar_text_decodes_to_value_mapping():
    assert snapshot_to_json('Pending') == {'value': 'Pending'}
    assert snapshot_to_json('42') == {'value': 42}


def test_malformed_changed_fields_falls_back_to_mapping():
    assert snapshot_to_json('{"ChangedFields": [1, 2]}') == {'ChangedFields': [1, 2]}


def test_declared_kind_wins_over_shape():
    values = {'ChangedFields': [{'field': 'LastName', 'note': 'typo'}]}
    snap = as_snapshot(values)
    assert snapshot_kind(snap) == 'key_value'
    assert snapshot_to_json(encode_snapshot(snap), snapshot_kind(snap)) == values


def test_snapshot_kind_tags():
    assert snapshot_kind(None) is None
    assert snapshot_kind(KeyValueSnapshot({})) == 'key_value'
    assert snapshot_kind(FieldDiffSnapshot.of([])) == 'field_diff'


def test_field_diff_kind_decodes_changed_fields():
    text = encode_snapshot(FieldDiffSnapshot.of([FieldDiff('Section', 'A', 'B')]))
    back = decode_snapshot(text, 'field_diff')
    assert isinstance(back, FieldDiffSnapshot)
    assert back.changes == (FieldDiff('Section', 'A', 'B'),)


def test_legacy_bare_list_decodes_as_field_diff():
    back = decode_snapshot('[{"field": "Address", "oldValue": "A", "newValue": "B"}]')
    assert isinstance(back, FieldDiffSnapshot)
    assert back.to_json() == {'ChangedFields': [{'field': 'Address', 'oldValue': 'A', 'newValue': 'B'}]}
    # a list that is not made of field items stays a wrapped value
    assert snapshot_to_json('[1, 2]') == {'value': [1, 2]}


def test_request_body_declared_kind():
    body = {'ChangedFields': [{'field': 'LastName'}]}
    assert isinstance(snapshot_from_json(body, 'newValue', 'key_value'), KeyValueSnapshot)
    assert isinstance(snapshot_from_json(body, 'newValue', 'field_diff'), FieldDiffSnapshot)
    with pytest.raises(ValidationError):
        snapshot_from_json({'Status': 'Pending'}, 'newValue', 'field_diff')
    with pytest.raises(ValidationError):
        snapshot_from_json(body, 'newValue', 'diff')
