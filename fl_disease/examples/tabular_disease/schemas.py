"""
Disease schemas.

Each supported disease is a DiseaseSchema value: which columns the contributor
CSV must carry, how each one is parsed and scaled, the label column, and the
policy constants (row floor, epoch floor, batch size). The pipeline itself is
shared by all of them.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from fl_disease.lib.util.states import FeatureKind, OnMissing


@dataclass(frozen=True)
class FeatureSpec:
    """
    One input column.

    categories maps raw strings to codes; a value that is not in the map (or
    is missing) falls back to `default`. Numeric columns are parsed as float,
    `integer=True` truncates the parsed value toward zero. `scale` is the
    fixed denominator applied to ordinal/categorical codes.
    """
    column: str
    kind: FeatureKind = FeatureKind.continuous
    required: bool = True
    default: float = 0.0
    categories: Optional[Dict[str, int]] = None
    case_insensitive: bool = False
    integer: bool = False
    scale: float = 1.0


@dataclass(frozen=True)
class LabelSpec:
    column: str
    categories: Optional[Dict[str, int]] = None
    case_insensitive: bool = False
    required: bool = True
    default: int = 0


@dataclass(frozen=True)
class DiseaseSchema:
    name: str
    features: Tuple[FeatureSpec, ...]
    label: LabelSpec
    min_rows: int
    on_missing: OnMissing = OnMissing.drop
    key_columns: Tuple[str, ...] = field(default_factory=tuple)
    min_epochs: int = 10
    batch_size: int = 32

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(f.column for f in self.features)

    @property
    def feature_count(self) -> int:
        return len(self.features)

    @property
    def required_columns(self) -> Tuple[str, ...]:
        return self.feature_names + (self.label.column,)

    @property
    def continuous_columns(self) -> Tuple[str, ...]:
        return tuple(f.column for f in self.features if f.kind == FeatureKind.continuous)

    @property
    def model_key(self) -> str:
        return f'{self.name}_model'

    @property
    def normalization_key(self) -> str:
        return f'{self.name}_normalization'

    @property
    def artifact_names(self) -> Tuple[str, str, str]:
        return (f'{self.name}_model.json',
                f'{self.name}_model.weights.bin',
                f'{self.name}_normalization.json')


def _continuous(*columns: str) -> Tuple[FeatureSpec, ...]:
    return tuple(FeatureSpec(c) for c in columns)


def _int_flag(column: str, required: bool = True) -> FeatureSpec:
    return FeatureSpec(column, FeatureKind.binary, required=required, integer=True)


def _ordinal(column: str, scale: float) -> FeatureSpec:
    return FeatureSpec(column, FeatureKind.ordinal, integer=True, scale=scale)


def _yes_no(column: str, no: str, yes: str) -> FeatureSpec:
    return FeatureSpec(column, FeatureKind.binary, required=False,
                       categories={no: 0, yes: 1}, case_insensitive=True)


DIABETES = DiseaseSchema(
    name='diabetes',
    features=(
        FeatureSpec('gender', FeatureKind.binary, required=False, categories={'Male': 1}),
        FeatureSpec('age'),
        _int_flag('hypertension', required=False),
        _int_flag('heart_disease', required=False),
        FeatureSpec('smoking_history', FeatureKind.categorical, required=False, default=3,
                    categories={'never': 0, 'former': 1, 'current': 2, 'No Info': 3},
                    scale=3),
        FeatureSpec('bmi'),
        FeatureSpec('HbA1c_level'),
        FeatureSpec('blood_glucose_level'),
    ),
    label=LabelSpec('diabetes', required=False),
    min_rows=200,
)

CANCER = DiseaseSchema(
    name='cancer',
    features=_continuous('mean_radius', 'mean_texture', 'mean_perimeter',
                         'mean_area', 'mean_smoothness'),
    label=LabelSpec('diagnosis'),
    min_rows=100,
)

HEART_DISEASE = DiseaseSchema(
    name='heart_disease',
    features=(
        FeatureSpec('age'),
        _int_flag('sex'),
        _ordinal('cp', 3),
        FeatureSpec('trestbps'),
        FeatureSpec('chol'),
        _int_flag('fbs'),
        _ordinal('restecg', 2),
        FeatureSpec('thalach'),
        _int_flag('exang'),
        FeatureSpec('oldpeak'),
        _ordinal('slope', 2),
        _ordinal('ca', 4),
        _ordinal('thal', 3),
    ),
    label=LabelSpec('target'),
    min_rows=100,
)

# kidney lab panels are sparse: unparseable numerics become 0 and only rows
# without an age are dropped
KIDNEY_DISEASE = DiseaseSchema(
    name='kidney_disease',
    features=(
        _continuous('age', 'bp', 'sg', 'al', 'su')
        + (_yes_no('rbc', 'normal', 'abnormal'),
           _yes_no('pc', 'normal', 'abnormal'),
           _yes_no('pcc', 'notpresent', 'present'),
           _yes_no('ba', 'notpresent', 'present'))
        + _continuous('bgr', 'bu', 'sc', 'sod', 'pot', 'hemo', 'pcv', 'wc', 'rc')
        + (_yes_no('htn', 'no', 'yes'),
           _yes_no('dm', 'no', 'yes'),
           _yes_no('cad', 'no', 'yes'),
           _yes_no('appet', 'good', 'poor'),
           _yes_no('pe', 'no', 'yes'),
           _yes_no('ane', 'no', 'yes'))
    ),
    label=LabelSpec('classification', categories={'notckd': 0, 'ckd': 1},
                    case_insensitive=True, required=False),
    min_rows=50,
    on_missing=OnMissing.default_zero,
    key_columns=('age',),
)

PARKINSON = DiseaseSchema(
    name='parkinson',
    features=_continuous(
        'MDVP:Fo(Hz)', 'MDVP:Fhi(Hz)', 'MDVP:Flo(Hz)', 'MDVP:Jitter(%)',
        'MDVP:Jitter(Abs)', 'MDVP:RAP', 'MDVP:PPQ', 'Jitter:DDP',
        'MDVP:Shimmer', 'MDVP:Shimmer(dB)', 'Shimmer:APQ3', 'Shimmer:APQ5',
        'MDVP:APQ', 'Shimmer:DDA', 'NHR', 'HNR', 'RPDE', 'DFA',
        'spread1', 'spread2', 'D2', 'PPE'),
    label=LabelSpec('status'),
    min_rows=50,
    batch_size=16,
)

SCHEMAS: Dict[str, DiseaseSchema] = {
    s.name: s for s in (DIABETES, CANCER, HEART_DISEASE, KIDNEY_DISEASE, PARKINSON)
}


def get_schema(disease: str) -> DiseaseSchema:
    try:
        return SCHEMAS[disease]
    except KeyError:
        raise KeyError(f'Unknown disease {disease!r}. Known: {sorted(SCHEMAS)}') from None
