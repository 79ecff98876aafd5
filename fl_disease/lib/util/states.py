from enum import Enum, IntEnum


# TYPES
class OnMissing(str, Enum):
    """
    Policy applied by the encoder when a numeric field cannot be parsed
    """
    drop = 'drop'
    default_zero = 'default_zero'


class FeatureKind(str, Enum):
    """
    How a feature is scaled before it reaches the network
    """
    continuous = 'continuous'    # min-max over the dataset
    binary = 'binary'            # 0/1 passthrough
    ordinal = 'ordinal'          # integer code / fixed denominator
    categorical = 'categorical'  # mapped code / fixed denominator


class StorageMsgType(Enum):
    """
    Message types defined in the communication protocol between a contributor and the artifact storage
    """
    upload = 0
    download = 1


class StorageReplyType:
    confirmation = 'confirmation'
    artifact = 'artifact'
    error = 'error'


# MSG LOCATION
class UploadMSGLocation(IntEnum):
    """
    index indicator to read an upload message
    """
    msg_type = 0
    contributor_id = 1
    path = 2
    data = 3
    content_type = 4
    gene_time = 5


class DownloadMSGLocation(IntEnum):
    """
    index indicator to read a download message
    """
    msg_type = 0
    contributor_id = 1
    path = 2


class UploadReplyLocation(IntEnum):
    """
    index indicator to read the reply to an upload
    """
    reply_type = 0
    path = 1
    size = 2


class ArtifactReplyLocation(IntEnum):
    """
    index indicator to read the reply to a download
    """
    reply_type = 0
    path = 1
    data = 2
    content_type = 3
