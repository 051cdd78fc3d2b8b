"""Object storage: request signing, transports and the storage client."""

from .client import ObjectStorageClient, ObjectAddress, content_hash, guess_content_type
from .signing import AwsSigV4Signer, OssSigner, RequestDescription, SigningStrategy, create_signer
from .transport import HttpRequest, HttpResponse, ProxyTransport, RequestsTransport, Transport

__all__ = [
    'ObjectStorageClient',
    'ObjectAddress',
    'content_hash',
    'guess_content_type',
    'AwsSigV4Signer',
    'OssSigner',
    'RequestDescription',
    'SigningStrategy',
    'create_signer',
    'HttpRequest',
    'HttpResponse',
    'ProxyTransport',
    'RequestsTransport',
    'Transport',
]
