import time
from typing import Any, List

from fl_disease.lib.util.states import StorageMsgType, StorageReplyType


def generate_upload_message(contributor_id: str,
                            path: str,
                            data: bytes,
                            content_type: str) -> List[Any]:
    msg = list()
    msg.append(StorageMsgType.upload.value)  # 0
    msg.append(contributor_id)  # 1
    msg.append(path)  # 2
    msg.append(data)  # 3
    msg.append(content_type)  # 4
    msg.append(time.time())  # 5
    return msg


def generate_download_message(contributor_id: str, path: str) -> List[Any]:
    msg = list()
    msg.append(StorageMsgType.download.value)  # 0
    msg.append(contributor_id)  # 1
    msg.append(path)  # 2
    return msg


def generate_confirmation_message(path: str, size: int) -> List[Any]:
    msg = list()
    msg.append(StorageReplyType.confirmation)  # 0
    msg.append(path)  # 1
    msg.append(size)  # 2
    return msg


def generate_artifact_message(path: str, data: bytes, content_type: str) -> List[Any]:
    msg = list()
    msg.append(StorageReplyType.artifact)  # 0
    msg.append(path)  # 1
    msg.append(data)  # 2
    msg.append(content_type)  # 3
    return msg


def generate_error_message(reason: str) -> List[Any]:
    """Error reply sent back by the storage server"""
    return [StorageReplyType.error, reason]
