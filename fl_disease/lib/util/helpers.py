import os
import json
import time
import uuid
import hashlib
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


def set_config_file(config_type: str) -> str:
    """
    Path of the JSON config for a component ('agent' or 'storage').
    Looks in ./setups unless FL_DISEASE_SETUPS points somewhere else.
    """
    setups_dir = os.environ.get('FL_DISEASE_SETUPS', os.path.join(os.getcwd(), 'setups'))
    return os.path.join(setups_dir, f'config_{config_type}.json')


def read_config(config_path: str) -> Dict[str, Any]:
    with open(config_path) as jf:
        config = json.load(jf)
    return config


def generate_id() -> str:
    """
    Unique id for a component instance
    """
    seed = f'{uuid.uuid4()}{time.time()}'
    return hashlib.sha256(seed.encode('utf-8')).hexdigest()


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def setup_logging(log_dir: str, name: str) -> str:
    """
    Console + rotating file logging (5MB, 3 backups).
    Logs go to <log_dir>/<name>.log
    """
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_file = os.path.join(log_dir, f'{name}.log')

    log_format = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5*1024*1024,
        backupCount=3,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    return log_file
