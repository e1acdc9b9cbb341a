"""panupload - content-addressed chunked uploads with rapid-upload support."""

__version__ = "0.1.0"
