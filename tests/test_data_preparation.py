import pytest

from fl_disease.lib.util.errors import FormatError
from fl_disease.examples.tabular_disease.data_preparation import (
    encode_records, parse_csv, parse_header, parse_number, validate_csv)
from fl_disease.examples.tabular_disease.schemas import (
    CANCER, DIABETES, HEART_DISEASE, KIDNEY_DISEASE, get_schema)

from conftest import make_csv, make_rows, to_csv

DIABETES_HEADER = 'gender,age,hypertension,heart_disease,smoking_history,bmi,HbA1c_level,blood_glucose_level,diabetes'


# ---------- parser ----------

def test_parse_csv_aligns_values_to_header():
    header, rows = parse_csv('a, b ,c\n1,2,3\n 4 ,5,6\n')
    assert header == ['a', 'b', 'c']
    assert rows == [{'a': '1', 'b': '2', 'c': '3'}, {'a': '4', 'b': '5', 'c': '6'}]


def test_parse_csv_accepts_tabs_and_crlf():
    header, rows = parse_csv('a\tb\r\n1\t2\r\n')
    assert header == ['a', 'b']
    assert rows == [{'a': '1', 'b': '2'}]


def test_parse_csv_short_line_gives_none():
    _, rows = parse_csv('a,b,c\n1,2\n')
    assert rows == [{'a': '1', 'b': '2', 'c': None}]


def test_parse_csv_does_not_handle_quotes():
    # documented limitation: the comma inside quotes still splits
    _, rows = parse_csv('name,age\n"Doe, John",40\n')
    assert rows[0] == {'name': '"Doe', 'age': 'John"'}


@pytest.mark.parametrize('text', ['', '   \n\n  '])
def test_parse_csv_empty_input(text):
    assert parse_csv(text) == ([], [])
    assert parse_header(text) == []


def test_parse_csv_rejects_blank_header():
    with pytest.raises(FormatError):
        parse_csv(',,\n1,2,3')


def test_parse_csv_decodes_bytes():
    header, rows = parse_csv('\ufeffa,b\n1,2'.encode('utf-8'))
    assert header == ['a', 'b']
    assert len(rows) == 1


def test_parse_csv_drops_bom_from_text():
    header, _ = parse_csv('\ufeffa,b\n1,2')
    assert header == ['a', 'b']
    assert parse_header('\ufeffa,b\n1,2') == ['a', 'b']


def test_validate_text_read_with_bom():
    text = make_csv(CANCER, 120).encode('utf-8-sig').decode('utf-8')
    assert text.startswith('\ufeff')
    result = validate_csv(text, CANCER.required_columns, CANCER.min_rows)
    assert result.is_valid
    assert result.details['missing_columns'] == []


def test_parse_csv_rejects_binary_garbage():
    with pytest.raises(FormatError):
        parse_csv(b'\xff\xfe\x00\x81')


# ---------- validator ----------

def test_validate_scenario_diabetes_250_rows(diabetes_csv):
    assert diabetes_csv.splitlines()[0] == DIABETES_HEADER
    result = validate_csv(diabetes_csv, DIABETES.required_columns, DIABETES.min_rows)
    assert result.is_valid
    assert result.details['row_count'] == 250
    assert result.details['column_count'] == 9
    assert result.details['missing_columns'] == []
    assert len(result.preview) == 5
    assert result.preview[0]['gender'] in ('Male', 'Female')


@pytest.mark.parametrize('n', [3, 4, 5, 6, 12])
def test_validate_preview_is_min_5_rows(n):
    csv = make_csv(CANCER, n)
    result = validate_csv(csv, CANCER.required_columns, min_rows=3)
    assert result.is_valid
    assert result.details['row_count'] == n
    assert len(result.preview) == min(5, n)


def test_validate_reports_every_missing_column():
    rows = make_rows(HEART_DISEASE, 150)
    present = [c for c in HEART_DISEASE.required_columns if c not in ('chol', 'thal', 'target')]
    result = validate_csv(to_csv(rows, present), HEART_DISEASE.required_columns, HEART_DISEASE.min_rows)
    assert not result.is_valid
    assert result.message == 'Missing required columns'
    assert set(result.details['missing_columns']) == {'chol', 'thal', 'target'}
    assert result.details['column_count'] == len(present)
    assert result.preview == []


def test_validate_extra_columns_are_fine():
    rows = make_rows(CANCER, 120)
    for r in rows:
        r['id'] = 'x'
    result = validate_csv(to_csv(rows, ('id',) + CANCER.required_columns), CANCER.required_columns, CANCER.min_rows)
    assert result.is_valid


def test_validate_row_floor_message_cites_counts():
    result = validate_csv(make_csv(DIABETES, 20), DIABETES.required_columns, DIABETES.min_rows)
    assert not result.is_valid
    assert result.message == 'Insufficient data. Found 20 rows, need at least 200 rows.'
    assert result.details['row_count'] == 20


@pytest.mark.parametrize('text', ['', DIABETES_HEADER + '\n'])
def test_validate_empty_file(text):
    result = validate_csv(text, DIABETES.required_columns, DIABETES.min_rows)
    assert not result.is_valid
    assert result.details is None
    assert 'empty' in result.message


def test_validation_result_external_shape():
    result = validate_csv(make_csv(DIABETES, 20), DIABETES.required_columns, DIABETES.min_rows)
    assert result.to_dict() == {
        'isValid': False,
        'message': result.message,
        'details': {'rowCount': 20, 'columnCount': 9, 'missingColumns': []},
        'preview': [],
    }


# ---------- encoder ----------

@pytest.mark.parametrize('raw,integer,expected', [
    ('1.5', False, 1.5),
    (' 2 ', False, 2.0),
    ('1.9', True, 1.0),
    ('-1.9', True, -1.0),
    ('N/A', False, None),
    ('', False, None),
    (None, False, None),
    ('nan', False, None),
    ('inf', False, None),
])
def test_parse_number(raw, integer, expected):
    assert parse_number(raw, integer) == expected


def test_encoding_is_idempotent(any_schema):
    _, rows = parse_csv(make_csv(any_schema, 40, seed=3))
    first = encode_records(rows, any_schema)
    second = encode_records(rows, any_schema)
    assert first.records == second.records
    assert len(first.records) == 40
    assert all(len(r.features) == any_schema.feature_count for r in first.records)
    assert {r.label for r in first.records} <= {0, 1}


def test_non_numeric_bmi_row_is_dropped():
    csv = make_csv(DIABETES, 250, overrides={10: {'bmi': 'N/A'}, 99: {'bmi': 'abc'}})
    _, rows = parse_csv(csv)
    dataset = encode_records(rows, DIABETES)
    assert len(dataset.records) == 248
    assert [s.row_number for s in dataset.skipped] == [11, 100]
    assert dataset.skipped[0].reason.startswith('bmi')


def test_diabetes_categorical_defaults():
    row = dict(make_rows(DIABETES, 1)[0],
               gender='Female', smoking_history='ever', hypertension='?', diabetes='')
    dataset = encode_records([row], DIABETES)
    (rec,) = dataset.records
    features = dict(zip(DIABETES.feature_names, rec.features))
    assert features['gender'] == 0
    assert features['smoking_history'] == 3     # unknown -> 'No Info'
    assert features['hypertension'] == 0
    assert rec.label == 0


def test_kidney_defaults_unparseable_numerics_to_zero():
    rows = make_rows(KIDNEY_DISEASE, 3)
    rows[0]['bp'] = 'N/A'
    rows[1]['age'] = 'N/A'
    rows[2]['age'] = '0'
    dataset = encode_records(rows, KIDNEY_DISEASE)
    assert len(dataset.records) == 1
    assert dataset.records[0].features[KIDNEY_DISEASE.feature_names.index('bp')] == 0.0
    assert [s.row_number for s in dataset.skipped] == [2, 3]


def test_kidney_categories_are_case_insensitive():
    row = dict(make_rows(KIDNEY_DISEASE, 1)[0], rbc='Abnormal', htn='YES', classification='CKD')
    (rec,) = encode_records([row], KIDNEY_DISEASE).records
    names = KIDNEY_DISEASE.feature_names
    assert rec.features[names.index('rbc')] == 1.0
    assert rec.features[names.index('htn')] == 1.0
    assert rec.label == 1


def test_required_label_must_parse_and_be_binary():
    rows = make_rows(HEART_DISEASE, 3)
    rows[0]['target'] = 'yes'
    rows[1]['target'] = '2'
    rows[2]['target'] = '1.0'
    dataset = encode_records(rows, HEART_DISEASE)
    assert [r.label for r in dataset.records] == [1]
    assert len(dataset.skipped) == 2


def test_skip_ratio():
    rows = make_rows(CANCER, 4)
    rows[0]['mean_area'] = ''
    dataset = encode_records(rows, CANCER)
    assert dataset.skip_ratio == 0.25


def test_get_schema_unknown_disease():
    with pytest.raises(KeyError, match='Known'):
        get_schema('flu')
