"""Client module - HTTP transport, pacing, and the upload pipeline."""

from panupload.client.api import HTTPClient, PrecreateResult
from panupload.client.auth import EnvTokenProvider, StaticTokenProvider, TokenProvider
from panupload.client.pacer import Pacer
from panupload.client.paths import RemotePathResolver
from panupload.client.upload import FileUploader, UploadOutcome

__all__ = [
    "EnvTokenProvider",
    "FileUploader",
    "HTTPClient",
    "Pacer",
    "PrecreateResult",
    "RemotePathResolver",
    "StaticTokenProvider",
    "TokenProvider",
    "UploadOutcome",
]
