import numpy as np
import pytest

from fl_disease.examples.tabular_disease.data_preparation import EncodedRecord, encode_records
from fl_disease.examples.tabular_disease.normalization import (
    NormalizationParameters, fit_normalization, normalize_dataset, transform)
from fl_disease.examples.tabular_disease.schemas import CANCER, DIABETES, HEART_DISEASE

from conftest import make_rows


def _cancer(*rows):
    return [EncodedRecord(tuple(float(v) for v in r), i % 2) for i, r in enumerate(rows)]


def test_min_max_bounds():
    records = _cancer((1, 10, 5, 100, 0.1),
                      (3, 20, 5, 300, 0.2),
                      (2, 15, 5, 200, 0.3))
    features, labels, params = normalize_dataset(records, CANCER)
    assert features.dtype == np.float32
    assert features.shape == (3, 5)
    assert labels.shape == (3, 1)
    assert features[0, 0] == 0.0 and features[1, 0] == 1.0
    assert features[2, 0] == pytest.approx(0.5)
    assert params.mins['mean_area'] == 100.0
    assert params.maxs['mean_area'] == 300.0


def test_constant_column_maps_to_half():
    records = _cancer((1, 10, 5, 100, 0.1), (3, 20, 5, 300, 0.2))
    features, _, _ = normalize_dataset(records, CANCER)
    assert np.all(features[:, 2] == 0.5)


def test_every_value_within_unit_interval(any_schema):
    dataset = encode_records(make_rows(any_schema, 60, seed=11), any_schema)
    features, labels, _ = normalize_dataset(dataset.records, any_schema)
    assert features.shape == (60, any_schema.feature_count)
    assert features.min() >= 0.0 and features.max() <= 1.0
    assert set(np.unique(labels)) <= {0.0, 1.0}


def test_heart_ordinals_use_fixed_denominators():
    row = dict(make_rows(HEART_DISEASE, 1)[0], cp='3', restecg='1', slope='2', ca='2', thal='3', sex='1')
    dataset = encode_records([row, make_rows(HEART_DISEASE, 2, seed=5)[1]], HEART_DISEASE)
    features, _, params = normalize_dataset(dataset.records, HEART_DISEASE)
    scaled = dict(zip(HEART_DISEASE.feature_names, features[0]))
    assert scaled['cp'] == 1.0
    assert scaled['restecg'] == 0.5
    assert scaled['slope'] == 1.0
    assert scaled['ca'] == 0.5
    assert scaled['thal'] == 1.0
    assert scaled['sex'] == 1.0
    assert 'cp' not in params.mins


def test_diabetes_smoking_scaled_by_three():
    row = dict(make_rows(DIABETES, 1)[0], smoking_history='former')
    dataset = encode_records([row, row], DIABETES)
    features, _, params = normalize_dataset(dataset.records, DIABETES)
    idx = DIABETES.feature_names.index('smoking_history')
    assert features[0, idx] == pytest.approx(1 / 3)
    assert set(params.mins) == {'age', 'bmi', 'HbA1c_level', 'blood_glucose_level'}


def test_transform_reuses_training_parameters():
    train = _cancer((0, 0, 0, 0, 0), (10, 10, 10, 10, 10))
    params = fit_normalization(train, CANCER)
    out = transform(_cancer((5, 20, -10, 10, 0)), CANCER, params)
    assert out[0].tolist() == pytest.approx([0.5, 2.0, -1.0, 1.0, 0.0])


def test_parameters_json():
    params = NormalizationParameters(mins={'age': 1.0}, maxs={'age': 80.0})
    assert NormalizationParameters.from_json(params.to_json()) == params
    assert params.to_json() == '{"mins": {"age": 1.0}, "maxs": {"age": 80.0}}'


def test_empty_dataset_is_rejected():
    with pytest.raises(ValueError):
        fit_normalization([], CANCER)
