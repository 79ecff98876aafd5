"""
Conversion utilities between trained DiseaseMLP networks and the exported
artifact blobs.

    <disease>_model.json          topology + weights manifest
    <disease>_model.weights.bin   raw little-endian tensors in manifest order
    <disease>_normalization.json  min/max table
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import numpy as np
import torch

from fl_disease.lib.util.helpers import sha256_hex
from .mlp import DiseaseMLP
from .normalization import NormalizationParameters
from .schemas import DiseaseSchema

ARTIFACT_FORMAT = 'fl-disease-mlp'
FORMAT_VERSION = 1

JSON_CONTENT_TYPE = 'application/json'
BINARY_CONTENT_TYPE = 'application/octet-stream'

# little-endian on the wire whatever the host order is
_DTYPES = {
    torch.float32: '<f4',
    torch.int64: '<i8',
}


@dataclass(frozen=True)
class ModelArtifact:
    disease: str
    topology: Dict[str, Any]
    weight_specs: Tuple[Dict[str, Any], ...]
    weight_data: bytes
    normalization: NormalizationParameters
    generated_by: str
    created_at: str

    @property
    def model_name(self) -> str:
        return f'{self.disease}_model.json'

    @property
    def weights_name(self) -> str:
        return f'{self.disease}_model.weights.bin'

    @property
    def normalization_name(self) -> str:
        return f'{self.disease}_normalization.json'

    @property
    def checksum(self) -> str:
        return sha256_hex(self.weight_data)

    def model_json(self) -> bytes:
        doc = {
            'modelTopology': self.topology,
            'weightsManifest': [{
                'paths': [self.weights_name],
                'weights': list(self.weight_specs),
            }],
            'format': ARTIFACT_FORMAT,
            'formatVersion': FORMAT_VERSION,
            'generatedBy': self.generated_by,
            'createdAt': self.created_at,
            'weightsSha256': self.checksum,
        }
        return json.dumps(doc).encode('utf-8')

    def normalization_json(self) -> bytes:
        return self.normalization.to_json().encode('utf-8')

    def blobs(self) -> List[Tuple[str, bytes, str]]:
        """(name, data, content type) for the three artifact files"""
        return [
            (self.model_name, self.model_json(), JSON_CONTENT_TYPE),
            (self.weights_name, self.weight_data, BINARY_CONTENT_TYPE),
            (self.normalization_name, self.normalization_json(), JSON_CONTENT_TYPE),
        ]


class Converter:
    """
    Convierte modelos DiseaseMLP entre formato PyTorch y artefactos exportables.
    """

    @staticmethod
    def to_artifact(net: DiseaseMLP,
                    schema: DiseaseSchema,
                    normalization: NormalizationParameters) -> ModelArtifact:
        specs, chunks = [], []
        for name, tensor in net.state_dict().items():
            dtype = _DTYPES.get(tensor.dtype)
            if dtype is None:
                raise TypeError(f'Unsupported tensor dtype {tensor.dtype} for {name}')
            specs.append({'name': name, 'shape': list(tensor.shape), 'dtype': dtype})
            chunks.append(tensor.detach().cpu().numpy().astype(dtype).tobytes())

        topology = net.topology()
        topology['disease'] = schema.name
        topology['feature_names'] = list(schema.feature_names)

        return ModelArtifact(
            disease=schema.name,
            topology=topology,
            weight_specs=tuple(specs),
            weight_data=b''.join(chunks),
            normalization=normalization,
            generated_by=f'torch {torch.__version__}',
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    @staticmethod
    def from_blobs(model_json: bytes, weight_data: bytes) -> DiseaseMLP:
        """
        Rebuild a network from <disease>_model.json + weights bytes.
        Returns the network in eval mode.
        """
        doc = json.loads(model_json)
        if doc.get('format') != ARTIFACT_FORMAT:
            raise ValueError(f"Unknown model format {doc.get('format')!r}")
        expected = doc.get('weightsSha256')
        if expected is not None and expected != sha256_hex(weight_data):
            raise ValueError('Weights do not match the checksum recorded in the model manifest')

        config = doc['modelTopology']['config']
        net = DiseaseMLP(in_features=config['in_features'],
                         hidden=[(h['units'], h['dropout']) for h in config['hidden']])

        state_dict, offset = {}, 0
        for spec in doc['weightsManifest'][0]['weights']:
            dtype = np.dtype(spec['dtype'])
            count = int(np.prod(spec['shape'], dtype=np.int64))
            size = count * dtype.itemsize
            if offset + size > len(weight_data):
                raise ValueError(f"Weights blob too short for {spec['name']}")
            arr = np.frombuffer(weight_data, dtype=dtype, count=count, offset=offset)
            state_dict[spec['name']] = torch.from_numpy(arr.reshape(spec['shape']).astype(dtype.newbyteorder('=')))
            offset += size
        if offset != len(weight_data):
            raise ValueError(f'Weights blob has {len(weight_data) - offset} trailing bytes')

        net.load_state_dict(state_dict)
        net.eval()
        return net
