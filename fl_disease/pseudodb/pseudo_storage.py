import os
import pickle
import logging
import mimetypes
from pathlib import Path
from typing import Any, List

from fl_disease.lib.util.helpers import generate_id, read_config, set_config_file, setup_logging
from fl_disease.lib.util.states import StorageMsgType, UploadMSGLocation, DownloadMSGLocation
from fl_disease.lib.util.messengers import generate_confirmation_message, generate_artifact_message, \
     generate_error_message
from fl_disease.lib.util.communication_handler import init_storage_server, send_websocket, receive

GLOBAL_PREFIX = 'global/'
CONTENT_TYPES_DIR = '.content-types'


class PseudoStorage:
    """
    Pseudo object storage that receives model artifacts from contributors
    and keeps them in one bucket directory on the file system.
    Uploads are upserts: the same path is simply overwritten.
    """

    def __init__(self, config=None):

        # Storage ID just in case
        self.id = generate_id()

        # read the config file
        if config is None:
            config = read_config(set_config_file("storage"))
        self.config = config

        # Initialize storage IP and Port
        self.storage_ip = self.config.get('storage_ip', '0.0.0.0')
        self.storage_socket = self.config.get('storage_socket', 9017)

        # if there is no directory to save artifacts create the dir
        self.bucket = self.config.get('bucket', 'federated-models')
        self.bucket_path = Path(self.config.get('storage_path', './storage')) / self.bucket
        self.bucket_path.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        """
        Only flat 'global/<artifact-name>' paths are accepted
        """
        if not isinstance(path, str) or not path.startswith(GLOBAL_PREFIX):
            raise ValueError(f'path must start with {GLOBAL_PREFIX!r}: {path!r}')
        name = path[len(GLOBAL_PREFIX):]
        if not name or '/' in name or '\\' in name or name in ('.', '..'):
            raise ValueError(f'invalid artifact name in {path!r}')
        return self.bucket_path / 'global' / name

    async def handler(self, websocket):
        """
        Receives upload/download requests from contributors and replies.
        A malformed request gets an error reply instead of a dropped connection.
        :param websocket:
        :return:
        """
        try:
            # receive a request
            msg = await receive(websocket)

            # Extract the message type
            msg_type = msg[0] if isinstance(msg, list) and len(msg) > 0 else None

            if msg_type == StorageMsgType.upload.value:
                reply = self._store(msg)

            elif msg_type == StorageMsgType.download.value:
                reply = self._load(msg)

            else:
                # Error for undefined message type
                logging.error(f'Undefined Storage Access Message Type: {msg_type}')
                reply = generate_error_message(f'unknown_msg_type_{msg_type}')

        except (ValueError, OSError, IndexError, TypeError, KeyError, pickle.UnpicklingError) as e:
            logging.error(f'Storage request failed: {e}')
            reply = generate_error_message(str(e))

        # reply to the sender
        await send_websocket(reply, websocket)

    def _content_type_file(self, fname: Path) -> Path:
        return self.bucket_path / CONTENT_TYPES_DIR / fname.name

    def _store(self, msg: List[Any]) -> List[Any]:
        """
        write the uploaded blob and its content type, overwriting any previous version
        """
        if len(msg) <= int(UploadMSGLocation.content_type):
            raise ValueError(f'upload message has {len(msg)} fields')
        path = msg[int(UploadMSGLocation.path)]
        data = msg[int(UploadMSGLocation.data)]
        content_type = msg[int(UploadMSGLocation.content_type)]
        contributor_id = msg[int(UploadMSGLocation.contributor_id)]
        if not isinstance(data, (bytes, bytearray)):
            raise ValueError(f'upload payload for {path!r} is not bytes')
        if not isinstance(content_type, str) or not content_type:
            raise ValueError(f'upload content type for {path!r} is missing')
        if not isinstance(contributor_id, str):
            raise ValueError(f'upload contributor id for {path!r} is not a string')

        fname = self.resolve(path)
        _write_atomic(fname, data)
        _write_atomic(self._content_type_file(fname), content_type.encode('utf-8'))

        short_id = contributor_id[:8] + '...' if len(contributor_id) > 12 else contributor_id
        logging.info(f'--- Artifact stored: {path} ({len(data)} bytes, {content_type}, from {short_id}) ---')
        return generate_confirmation_message(path, len(data))

    def _load(self, msg: List[Any]) -> List[Any]:
        if len(msg) <= int(DownloadMSGLocation.path):
            raise ValueError(f'download message has {len(msg)} fields')
        path = msg[int(DownloadMSGLocation.path)]
        fname = self.resolve(path)
        if not fname.exists():
            return generate_error_message(f'not_found {path}')

        with open(fname, 'rb') as f:
            data = f.read()
        ct_file = self._content_type_file(fname)
        if ct_file.exists():
            content_type = ct_file.read_text(encoding='utf-8')
        else:
            content_type = mimetypes.guess_type(fname.name)[0] or 'application/octet-stream'
        logging.info(f'--- Artifact served: {path} ---')
        return generate_artifact_message(path, data, content_type)


def _write_atomic(fname: Path, data: bytes):
    fname.parent.mkdir(parents=True, exist_ok=True)
    tmp = fname.with_name(fname.name + '.part')
    with open(tmp, 'wb') as f:
        f.write(data)
    os.replace(tmp, fname)


if __name__ == "__main__":
    ps = PseudoStorage()
    log_file = setup_logging(ps.config.get('log_dir', './logs'), 'storage_server')
    logging.info("=" * 60)
    logging.info("--- Pseudo Storage Server Started ---")
    logging.info(f"Log file: {log_file}")
    logging.info(f"Bucket: {ps.bucket_path}")
    logging.info("=" * 60)

    init_storage_server(ps.handler, ps.storage_ip, ps.storage_socket)
