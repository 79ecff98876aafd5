import os
import asyncio
import logging
from typing import Optional, Tuple

from websockets.exceptions import WebSocketException

from fl_disease.lib.util.communication_handler import send
from fl_disease.lib.util.errors import LocalSaveError, RemoteUploadError
from fl_disease.lib.util.helpers import generate_id, read_config, set_config_file
from fl_disease.lib.util.messengers import generate_upload_message, generate_download_message
from fl_disease.lib.util.states import StorageReplyType, UploadReplyLocation, ArtifactReplyLocation
from fl_disease.pseudodb.sqlite_db import SQLiteDBHandler
from fl_disease.examples.tabular_disease.conversion import Converter, ModelArtifact
from fl_disease.examples.tabular_disease.mlp import DiseaseMLP
from fl_disease.examples.tabular_disease.normalization import NormalizationParameters
from fl_disease.examples.tabular_disease.schemas import DiseaseSchema

GLOBAL_PREFIX = 'global/'


class RemoteArtifactStore:
    """
    Websocket client of the artifact storage (see pseudodb.pseudo_storage)
    """

    def __init__(self, contributor_id: str, ip: str, socket: int, timeout: float = 30):
        self.contributor_id = contributor_id
        self.ip = ip
        self.socket = socket
        self.timeout = timeout

    async def _request(self, msg, path: str):
        try:
            return await send(msg, self.ip, self.socket, timeout=self.timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise RemoteUploadError(f'Storage {self.ip}:{self.socket} unreachable for {path}: {e}', path) from e

    async def upload(self, path: str, data: bytes, content_type: str) -> int:
        """
        Upsert one blob; returns the size acknowledged by the storage
        """
        msg = generate_upload_message(self.contributor_id, path, data, content_type)
        reply = await self._request(msg, path)
        if not reply or reply[0] != StorageReplyType.confirmation:
            reason = reply[1] if reply and len(reply) > 1 else 'no reply'
            raise RemoteUploadError(f'Storage rejected {path}: {reason}', path)
        logging.info(f'☁️ Uploaded to storage: {path}')
        return reply[int(UploadReplyLocation.size)]

    async def download(self, path: str) -> Tuple[bytes, str]:
        """
        :return: (data, content_type)
        """
        reply = await self._request(generate_download_message(self.contributor_id, path), path)
        if not reply or reply[0] != StorageReplyType.artifact:
            reason = reply[1] if reply and len(reply) > 1 else 'no reply'
            raise RemoteUploadError(f'Storage could not serve {path}: {reason}', path)
        return reply[int(ArtifactReplyLocation.data)], reply[int(ArtifactReplyLocation.content_type)]


class Client:
    """
    Client class instance provides the persistence interface between the
    contributor's training logic, its local model store and the remote
    artifact storage
    """

    def __init__(self, config: Optional[dict] = None, remote: Optional[RemoteArtifactStore] = None):

        # Unique ID in the system
        self.id = generate_id()

        # Read config
        if config is None:
            config = read_config(set_config_file("agent"))
        self.config = config

        # Local store location
        self.data_path = self.config.get('local_db_path', './db')
        self.db_name = self.config.get('local_db_name', 'contributor_models')
        if not os.path.exists(self.data_path):
            os.makedirs(self.data_path)

        self.db_file = f'{self.data_path}/{self.db_name}.db'
        self.dbhandler = SQLiteDBHandler(self.db_file)
        self.dbhandler.initialize_DB()

        # Comm. info of the artifact storage
        self.storage_ip = self.config.get('storage_ip', '127.0.0.1')
        self.storage_socket = self.config.get('storage_socket', 9017)
        self.remote = remote or RemoteArtifactStore(self.id, self.storage_ip, self.storage_socket,
                                                    timeout=self.config.get('upload_timeout', 30))

        logging.info(f"--- Contributor client initialized (local store: {self.db_file}) ---")
        logging.info(f"🗄️  Artifact storage: {self.storage_ip}:{self.storage_socket}")

    def save_local(self, artifact: ModelArtifact, schema: DiseaseSchema):
        """
        Model entry under <disease>_model, normalization under <disease>_normalization
        """
        try:
            self.dbhandler.save_model(schema.model_key,
                                      artifact.model_json().decode('utf-8'),
                                      artifact.weight_data)
            self.dbhandler.save_normalization(schema.normalization_key,
                                              artifact.normalization.to_json())
        except Exception as e:
            raise LocalSaveError(f'Could not save {schema.model_key} to {self.db_file}: {e}') from e

    async def upload_global(self, artifact: ModelArtifact):
        """
        Upload the three blobs one after the other to global/<name>.
        Stops at the first failure, earlier blobs stay uploaded.
        """
        for name, data, content_type in artifact.blobs():
            await self.remote.upload(f'{GLOBAL_PREFIX}{name}', data, content_type)
        logging.info(f'☁️ All {artifact.disease} model files uploaded')

    async def export(self, artifact: ModelArtifact, schema: DiseaseSchema) -> str:
        """
        Local save first, then remote upload.
        :return: upload status
        """
        self.save_local(artifact, schema)
        logging.info(f'💾 Saved model → {schema.model_key}')
        await self.upload_global(artifact)
        return 'completed'

    def load_local(self, schema: DiseaseSchema) -> Optional[Tuple[DiseaseMLP, NormalizationParameters]]:
        """
        Rebuild the last locally saved model of a disease, None if never saved
        """
        entry = self.dbhandler.load_model(schema.model_key)
        params = self.dbhandler.load_normalization(schema.normalization_key)
        if entry is None or params is None:
            return None
        topology, weights = entry
        return Converter.from_blobs(topology.encode('utf-8'), weights), NormalizationParameters.from_json(params)
