import pytest

from fl_disease.pseudodb.sqlite_db import SQLiteDBHandler


@pytest.fixture
def db(tmp_path):
    handler = SQLiteDBHandler(str(tmp_path / 'models.db'))
    handler.initialize_DB()
    return handler


def test_save_and_load_model(db):
    db.save_model('cancer_model', '{"a": 1}', b'\x00\x01\x02')
    assert db.load_model('cancer_model') == ('{"a": 1}', b'\x00\x01\x02')


def test_last_save_wins(db):
    db.save_model('cancer_model', 'v1', b'1')
    db.save_model('cancer_model', 'v2', b'22')
    db.save_normalization('cancer_normalization', '{"mins": {}}')
    db.save_normalization('cancer_normalization', '{"maxs": {}}')
    assert db.load_model('cancer_model') == ('v2', b'22')
    assert db.load_normalization('cancer_normalization') == '{"maxs": {}}'
    assert len(db.list_models()) == 1


def test_missing_keys(db):
    assert db.load_model('flu_model') is None
    assert db.load_normalization('flu_normalization') is None


def test_list_models(db):
    db.save_model('cancer_model', 't', b'')
    db.save_model('parkinson_model', 't', b'')
    keys = [k for k, _ in db.list_models()]
    assert sorted(keys) == ['cancer_model', 'parkinson_model']


def test_initialize_is_repeatable(db):
    db.save_model('cancer_model', 't', b'x')
    db.initialize_DB()
    assert db.load_model('cancer_model') == ('t', b'x')
