from objstore.domain.multipart import (
    IncompleteUploadError,
    InvalidPartError,
    MultipartError,
    SessionClosedError,
    UnknownSessionError,
)

from .base import BaseService, ConfigurationMissingError, ObjectMissingError, ServiceError
from .bundle import ServiceBundle, get_service_bundle
from .codecs import (
    CorruptPayloadError,
    DecryptionError,
    UnsupportedChecksumError,
    UnsupportedCompressionError,
)
from .credentials import CredentialProvider
from .multipart_service import MultipartUploadService
from .storage_service import PartialMoveError, StorageService

__all__ = [
    "BaseService",
    "ServiceError",
    "ConfigurationMissingError",
    "ObjectMissingError",
    "ServiceBundle",
    "get_service_bundle",
    "CredentialProvider",
    "StorageService",
    "PartialMoveError",
    "MultipartUploadService",
    "MultipartError",
    "UnknownSessionError",
    "InvalidPartError",
    "IncompleteUploadError",
    "SessionClosedError",
    "DecryptionError",
    "CorruptPayloadError",
    "UnsupportedCompressionError",
    "UnsupportedChecksumError",
]
