# tests/conftest.py
import random
from typing import Dict, Iterable, Optional

import pytest

from fl_disease.agent.client import Client
from fl_disease.lib.util.errors import RemoteUploadError
from fl_disease.lib.util.states import FeatureKind
from fl_disease.examples.tabular_disease.schemas import DiseaseSchema, SCHEMAS, DIABETES


def _value(spec, rng: random.Random) -> str:
    if spec.categories is not None:
        return rng.choice(sorted(spec.categories))
    if spec.kind == FeatureKind.binary:
        return str(rng.randint(0, 1))
    if spec.kind == FeatureKind.ordinal:
        return str(rng.randint(0, int(spec.scale)))
    return f'{rng.uniform(1.0, 100.0):.3f}'


def make_rows(schema: DiseaseSchema, n: int, seed: int = 0) -> list:
    rng = random.Random(seed)
    rows = []
    for i in range(n):
        row = {spec.column: _value(spec, rng) for spec in schema.features}
        if schema.label.categories is not None:
            row[schema.label.column] = sorted(schema.label.categories)[i % 2]
        else:
            row[schema.label.column] = str(i % 2)
        rows.append(row)
    return rows


def to_csv(rows: list, columns: Optional[Iterable[str]] = None, delimiter: str = ',') -> str:
    columns = list(columns or rows[0].keys())
    lines = [delimiter.join(columns)]
    for row in rows:
        lines.append(delimiter.join(row.get(c, '') for c in columns))
    return '\n'.join(lines) + '\n'


def make_csv(schema: DiseaseSchema, n: int, seed: int = 0, overrides: Dict[int, Dict[str, str]] = None) -> str:
    """Synthetic contributor file; overrides maps row index -> {column: raw value}"""
    rows = make_rows(schema, n, seed)
    for idx, values in (overrides or {}).items():
        rows[idx].update(values)
    return to_csv(rows, schema.required_columns)


class FakeRemote:
    """In-memory stand-in for RemoteArtifactStore"""

    def __init__(self, fail_on: Optional[str] = None):
        self.uploads = {}
        self.fail_on = fail_on

    async def upload(self, path, data, content_type):
        if self.fail_on is not None and self.fail_on in path:
            raise RemoteUploadError(f'simulated network failure for {path}', path)
        self.uploads[path] = (data, content_type)
        return len(data)


@pytest.fixture
def agent_config(tmp_path) -> dict:
    return {
        'storage_ip': '127.0.0.1',
        'storage_socket': 9017,
        'upload_timeout': 5,
        'local_db_path': str(tmp_path / 'db'),
        'local_db_name': 'contributor_models',
        'seed': 7,
    }


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def client(agent_config, fake_remote) -> Client:
    return Client(agent_config, remote=fake_remote)


@pytest.fixture
def diabetes_csv() -> str:
    return make_csv(DIABETES, 250)


@pytest.fixture(params=sorted(SCHEMAS))
def any_schema(request) -> DiseaseSchema:
    return SCHEMAS[request.param]
