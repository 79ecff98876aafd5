"""
Feature scaling.

Continuous columns are min-max scaled with parameters computed over the whole
encoded dataset; binary columns pass through; ordinal/categorical codes are
divided by the fixed denominator declared in the schema. The parameters are
returned to the caller and shipped with the model so inference applies the
identical transform.
"""
import json
import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd

from fl_disease.lib.util.states import FeatureKind
from .data_preparation import EncodedRecord
from .schemas import DiseaseSchema

CONSTANT_FEATURE_VALUE = 0.5


@dataclass(frozen=True)
class NormalizationParameters:
    mins: Dict[str, float]
    maxs: Dict[str, float]

    def to_json(self) -> str:
        return json.dumps({'mins': self.mins, 'maxs': self.maxs})

    @classmethod
    def from_json(cls, text) -> 'NormalizationParameters':
        data = json.loads(text)
        return cls(mins={k: float(v) for k, v in data['mins'].items()},
                   maxs={k: float(v) for k, v in data['maxs'].items()})


def records_to_frame(records: Sequence[EncodedRecord], schema: DiseaseSchema) -> pd.DataFrame:
    return pd.DataFrame([r.features for r in records],
                        columns=list(schema.feature_names),
                        dtype='float64')


def fit_normalization(records: Sequence[EncodedRecord], schema: DiseaseSchema) -> NormalizationParameters:
    """Per continuous column min/max over every row."""
    if not records:
        raise ValueError('Cannot compute normalization parameters of an empty dataset')
    frame = records_to_frame(records, schema)
    cont = list(schema.continuous_columns)
    mins = frame[cont].min()
    maxs = frame[cont].max()
    return NormalizationParameters(mins={c: float(mins[c]) for c in cont},
                                   maxs={c: float(maxs[c]) for c in cont})


def transform(records: Sequence[EncodedRecord],
              schema: DiseaseSchema,
              params: NormalizationParameters) -> np.ndarray:
    """
    Scale encoded records into a float32 matrix (rows x feature_count).
    A column whose min equals its max maps to 0.5 on every row.
    """
    frame = records_to_frame(records, schema)
    for spec in schema.features:
        col = spec.column
        if spec.kind == FeatureKind.continuous:
            lo, hi = params.mins[col], params.maxs[col]
            if hi == lo:
                frame[col] = CONSTANT_FEATURE_VALUE
            else:
                frame[col] = (frame[col] - lo) / (hi - lo)
        elif spec.kind in (FeatureKind.ordinal, FeatureKind.categorical):
            frame[col] = frame[col] / spec.scale
    return frame.to_numpy(dtype=np.float32)


def normalize_dataset(records: Sequence[EncodedRecord],
                      schema: DiseaseSchema) -> Tuple[np.ndarray, np.ndarray, NormalizationParameters]:
    """
    Returns:
        features (rows x feature_count), labels (rows x 1), parameters
    """
    params = fit_normalization(records, schema)
    features = transform(records, schema, params)
    labels = np.asarray([[r.label] for r in records], dtype=np.float32).reshape(-1, 1)

    positives = int(labels.sum())
    logging.info(f'📐 Normalized {features.shape[0]}x{features.shape[1]} features '
                 f'(positive={positives}, negative={len(labels) - positives})')
    logging.debug(f'📊 Data ranges: mins={params.mins} maxs={params.maxs}')
    return features, labels, params
