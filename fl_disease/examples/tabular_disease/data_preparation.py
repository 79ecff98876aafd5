"""
Data Preparation for contributor CSV files.

Steps:
 1. Parse the raw CSV text into string records (header-aligned)
 2. Validate the structure against the disease schema (columns, row floor)
 3. Encode every record into a numeric feature vector + binary label,
    reporting the rows that had to be skipped
"""
import re
import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from fl_disease.lib.util.errors import FormatError
from fl_disease.lib.util.states import OnMissing
from .schemas import DiseaseSchema, FeatureSpec

RawRecord = Dict[str, Optional[str]]

DELIMITER = re.compile(r',|\t')
PREVIEW_ROWS = 5


def _decode(csv_text: Union[str, bytes]) -> str:
    if isinstance(csv_text, bytes):
        try:
            return csv_text.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise FormatError(f'File is not UTF-8 text: {e}') from e
    if not isinstance(csv_text, str):
        raise FormatError(f'Expected CSV text, got {type(csv_text).__name__}')
    return csv_text[1:] if csv_text.startswith('\ufeff') else csv_text


def _split_line(line: str) -> List[str]:
    return [v.strip() for v in DELIMITER.split(line)]


def parse_header(csv_text: Union[str, bytes]) -> List[str]:
    """Column names of the first line, or [] for empty input."""
    text = _decode(csv_text).strip()
    if not text:
        return []
    return _split_line(text.split('\n', 1)[0])


def parse_csv(csv_text: Union[str, bytes]) -> Tuple[List[str], List[RawRecord]]:
    """
    Parse comma- or tab-delimited text.

    The first line is the header; every following line is aligned to it by
    position. Quoted values are not supported, a delimiter inside a value
    splits it. Values missing at the end of a short line are None.

    Returns:
        (header, records). Empty input gives ([], []).
    """
    text = _decode(csv_text).strip()
    if not text:
        return [], []

    lines = text.split('\n')
    header = _split_line(lines[0])
    if not any(header):
        raise FormatError('CSV header has no column names')

    records = []
    for line in lines[1:]:
        values = _split_line(line)
        records.append({h: (values[i] if i < len(values) else None)
                        for i, h in enumerate(header)})

    logging.debug(f'Parsed {len(records)} rows, header: {header}')
    return header, records


@dataclass
class ValidationResult:
    is_valid: bool
    message: str
    details: Optional[Dict[str, Any]] = None
    preview: List[RawRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        details = None
        if self.details is not None:
            details = {
                'rowCount': self.details['row_count'],
                'columnCount': self.details['column_count'],
                'missingColumns': list(self.details['missing_columns']),
            }
        return {
            'isValid': self.is_valid,
            'message': self.message,
            'details': details,
            'preview': list(self.preview),
        }


def validate_csv(csv_text: Union[str, bytes],
                 required_columns: Sequence[str],
                 min_rows: int) -> ValidationResult:
    """
    Structural check of a contributor file: required columns present and at
    least `min_rows` data rows. Values are never inspected.
    """
    try:
        header, records = parse_csv(csv_text)
    except FormatError as e:
        return ValidationResult(False, f'Error parsing CSV file. Please check the format. ({e.message})')
    return validate_records(header, records, required_columns, min_rows)


def validate_records(header: Sequence[str],
                     records: Sequence[RawRecord],
                     required_columns: Sequence[str],
                     min_rows: int) -> ValidationResult:
    """Same checks as validate_csv on an already parsed file."""
    if not records:
        return ValidationResult(False, 'CSV file is empty or has no data rows')

    row_count = len(records)
    present = set(header)
    missing = [c for c in required_columns if c not in present]
    details = {
        'row_count': row_count,
        'column_count': len(header),
        'missing_columns': missing,
    }

    if missing:
        return ValidationResult(False, 'Missing required columns', details)

    if row_count < min_rows:
        return ValidationResult(
            False,
            f'Insufficient data. Found {row_count} rows, need at least {min_rows} rows.',
            details)

    return ValidationResult(True,
                            f'Validation successful! {row_count} rows found.',
                            details,
                            records[:PREVIEW_ROWS])


@dataclass(frozen=True)
class EncodedRecord:
    features: Tuple[float, ...]
    label: int


@dataclass(frozen=True)
class SkippedRow:
    row_number: int   # 1-based, header excluded
    reason: str


@dataclass
class EncodedDataset:
    records: List[EncodedRecord]
    skipped: List[SkippedRow]

    @property
    def skip_ratio(self) -> float:
        total = len(self.records) + len(self.skipped)
        return len(self.skipped) / total if total else 0.0


def parse_number(raw: Optional[str], integer: bool = False) -> Optional[float]:
    """
    Strict numeric parse. None for missing, non-numeric or non-finite text.
    Integers are truncated toward zero after the float parse ('1.0' -> 1).
    """
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return float(math.trunc(value)) if integer else value


def _lookup(categories: Dict[str, int], raw: Optional[str], case_insensitive: bool) -> Optional[int]:
    if raw is None:
        return None
    key = raw.lower() if case_insensitive else raw
    return categories.get(key)


def _encode_feature(spec: FeatureSpec, raw: Optional[str], schema: DiseaseSchema) -> Optional[float]:
    """Encoded value, or None when the row has to be dropped"""
    if spec.categories is not None:
        code = _lookup(spec.categories, raw, spec.case_insensitive)
        return float(spec.default if code is None else code)

    value = parse_number(raw, spec.integer)
    if value is not None:
        return value
    if schema.on_missing == OnMissing.default_zero:
        return 0.0
    if spec.required:
        return None
    return float(spec.default)


def _encode_label(schema: DiseaseSchema, raw: Optional[str]) -> Optional[int]:
    label = schema.label
    if label.categories is not None:
        code = _lookup(label.categories, raw, label.case_insensitive)
    else:
        value = parse_number(raw, integer=True)
        code = None if value is None else int(value)
    if code is None and not label.required:
        code = label.default
    return code


def encode_record(record: RawRecord, schema: DiseaseSchema) -> Tuple[Optional[EncodedRecord], Optional[str]]:
    """
    Encode one raw record.

    Returns:
        (EncodedRecord, None) on success, (None, reason) when the row is dropped
    """
    features = []
    for spec in schema.features:
        raw = record.get(spec.column)
        value = _encode_feature(spec, raw, schema)
        if value is None:
            return None, f'{spec.column}: cannot parse {raw!r}'
        features.append(value)

    for column in schema.key_columns:
        if features[schema.feature_names.index(column)] == 0:
            return None, f'{column}: missing key value {record.get(column)!r}'

    raw_label = record.get(schema.label.column)
    label = _encode_label(schema, raw_label)
    if label is None:
        return None, f'{schema.label.column}: cannot parse label {raw_label!r}'
    if label not in (0, 1):
        return None, f'{schema.label.column}: label {label} is not 0/1'

    return EncodedRecord(tuple(features), label), None


def encode_records(records: Sequence[RawRecord], schema: DiseaseSchema) -> EncodedDataset:
    """
    Encode all records with the schema's parse/missing-value policy.
    Dropped rows are not errors; they are returned with their reason.
    """
    encoded, skipped = [], []
    for i, record in enumerate(records, start=1):
        enc, reason = encode_record(record, schema)
        if enc is None:
            skipped.append(SkippedRow(i, reason))
        else:
            encoded.append(enc)

    logging.info(f'✅ Encoding complete ({schema.name}): {len(encoded)} valid rows, '
                 f'{len(skipped)} skipped')
    for s in skipped[:5]:
        logging.debug(f'   row {s.row_number} skipped: {s.reason}')

    return EncodedDataset(encoded, skipped)
