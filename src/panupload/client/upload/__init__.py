from panupload.client.upload.finalizer import Finalizer
from panupload.client.upload.negotiator import Negotiator
from panupload.client.upload.transmitter import BlockTransmitter
from panupload.client.upload.uploader import FileUploader, UploadOutcome

__all__ = [
    "BlockTransmitter",
    "FileUploader",
    "Finalizer",
    "Negotiator",
    "UploadOutcome",
]
