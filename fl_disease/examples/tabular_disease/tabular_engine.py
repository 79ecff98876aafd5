"""
Contributor training engine.

One pipeline for every registered disease:

    parse -> validate (gate) -> encode -> normalize -> build + train -> export

Uso:
    python -m fl_disease.examples.tabular_disease.tabular_engine \
        --disease diabetes --csv data/diabetes.csv --epochs 10
"""
import asyncio
import argparse
import functools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Union

import numpy as np
import torch

from fl_disease.agent.client import Client
from fl_disease.lib.util.errors import EncodingError, FormatError, SchemaError
from fl_disease.lib.util.helpers import read_config, set_config_file, setup_logging
from .conversion import Converter
from .data_preparation import RawRecord, ValidationResult, encode_record, encode_records, \
    parse_csv, validate_csv, validate_records
from .mlp import DiseaseMLP, build_model
from .normalization import NormalizationParameters, normalize_dataset, transform
from .schemas import DiseaseSchema, get_schema
from .tabular_training import ProgressCallback, execute_tabular_training

LogSink = Callable[[Dict[str, str]], None]


@dataclass
class TrainingResult:
    success: bool
    final_loss: float
    final_accuracy: float
    upload_status: str
    encoded_rows: int = 0
    skipped_rows: int = 0
    normalization: Optional[NormalizationParameters] = field(default=None, repr=False)


class _Events:
    """Forwards pipeline events to logging and to the caller's optional sink"""

    def __init__(self, sink: Optional[LogSink]):
        self.sink = sink

    def __call__(self, stage: str, message: str, level: int = logging.INFO):
        logging.log(level, message)
        if self.sink is not None:
            self.sink({'stage': stage, 'message': message})


def _schema(disease: Union[str, DiseaseSchema]) -> DiseaseSchema:
    return disease if isinstance(disease, DiseaseSchema) else get_schema(disease)


def validate(csv_text: Union[str, bytes], disease: Union[str, DiseaseSchema]) -> ValidationResult:
    """Structural validation of a contributor file for one disease."""
    schema = _schema(disease)
    return validate_csv(csv_text, schema.required_columns, schema.min_rows)


async def train(csv_text: Union[str, bytes],
                disease: Union[str, DiseaseSchema],
                epochs: int,
                on_progress: Optional[ProgressCallback] = None,
                client: Optional[Client] = None,
                on_log: Optional[LogSink] = None,
                max_skip_ratio: Optional[float] = None,
                seed: Optional[int] = None) -> TrainingResult:
    """
    Train the disease model on a contributor CSV and export it.

    Raises the stage error of the first failing step: FormatError, SchemaError,
    EncodingError, TrainingError, LocalSaveError or RemoteUploadError. Nothing
    is retried.

    The fit runs in the loop's default executor so other tasks keep running;
    on_progress is therefore called from that worker thread.
    """
    schema = _schema(disease)
    if epochs < schema.min_epochs:
        raise ValueError(f'{schema.name} needs at least {schema.min_epochs} epochs, got {epochs}')

    emit = _Events(on_log)
    if client is None:
        client = Client()
    if max_skip_ratio is None:
        max_skip_ratio = client.config.get('max_skip_ratio')
    if seed is None:
        seed = client.config.get('seed')

    emit('parse', f'🚀 {schema.name} training started, epochs: {epochs}')

    # 1) Parse + structural gate
    header, records = parse_csv(csv_text)
    result = validate_records(header, records, schema.required_columns, schema.min_rows)
    if not result.is_valid:
        if result.details is None:
            raise FormatError(result.message)
        raise SchemaError(result.message, result.details)
    emit('validate', f'📊 {len(records)} rows passed validation')

    # 2) Encode
    dataset = encode_records(records, schema)
    if not dataset.records:
        raise EncodingError(f'No valid data after encoding ({len(dataset.skipped)} rows skipped)')
    if dataset.skipped:
        emit('encode', f'⚠️ {len(dataset.skipped)} of {len(records)} rows skipped', logging.WARNING)
    if max_skip_ratio is not None and dataset.skip_ratio > max_skip_ratio:
        raise EncodingError(f'{dataset.skip_ratio:.1%} of rows skipped, '
                            f'limit is {max_skip_ratio:.1%}')

    # 3) Normalize
    features, labels, params = normalize_dataset(dataset.records, schema)

    # 4) Build + train
    net = build_model(schema, seed=seed)
    emit('fit', f'🧠 Model ready: {schema.feature_count} features, hidden {list(net.hidden)}')
    loop = asyncio.get_running_loop()
    history = await loop.run_in_executor(None, functools.partial(
        execute_tabular_training, net, features, labels, epochs, schema.batch_size,
        on_progress=on_progress, seed=seed))
    emit('fit', f'✅ Training finished: loss={history.final_loss:.4f} '
                f'accuracy={history.final_accuracy:.4f}')

    # 5) Export
    artifact = Converter.to_artifact(net, schema, params)
    upload_status = await client.export(artifact, schema)
    emit('upload', f'☁️ {schema.name} artifacts exported ({upload_status})')

    return TrainingResult(
        success=True,
        final_loss=history.final_loss,
        final_accuracy=history.final_accuracy,
        upload_status=upload_status,
        encoded_rows=len(dataset.records),
        skipped_rows=len(dataset.skipped),
        normalization=params,
    )


def predict(record: RawRecord,
            disease: Union[str, DiseaseSchema],
            params: NormalizationParameters,
            net: DiseaseMLP) -> float:
    """
    Probability for one raw record, scaled with the parameters the model was
    trained with.
    """
    schema = _schema(disease)
    enc, reason = encode_record(record, schema)
    if enc is None:
        raise EncodingError(f'Record cannot be encoded: {reason}')
    x = transform([enc], schema, params)
    net.eval()
    with torch.no_grad():
        prob = net(torch.from_numpy(np.ascontiguousarray(x)))
    return float(prob.item())


def main(argv=None):
    ap = argparse.ArgumentParser(description='Train a disease model on a local CSV and export it')
    ap.add_argument('--disease', required=True)
    ap.add_argument('--csv', required=True, help='Path to the contributor CSV file')
    ap.add_argument('--epochs', type=int, default=10)
    ap.add_argument('--config', default=None, help='Agent config (defaults to setups/config_agent.json)')
    args = ap.parse_args(argv)

    config = read_config(args.config or set_config_file('agent'))
    log_file = setup_logging(config.get('log_dir', './logs'), 'contributor')
    logging.info('=== Disease model contributor ===')
    logging.info(f'Log file: {log_file}')

    with open(args.csv, encoding='utf-8-sig') as f:
        csv_text = f.read()

    def show_progress(pct, logs):
        logging.info(f'Progress {pct}% | val_accuracy={logs["val_accuracy"]:.4f}')

    result = asyncio.run(train(csv_text, args.disease, args.epochs, show_progress,
                               client=Client(config)))
    logging.info(f'=== Done: {result} ===')


if __name__ == '__main__':
    main()
