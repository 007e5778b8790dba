from __future__ import annotations

from .image import DecodedImage, decode_image_payload, decode_image_resource, encode_image
from .stores import BlobStore, MemoryBlobStore, SqliteBlobStore

__all__ = [
    "DecodedImage",
    "decode_image_payload",
    "decode_image_resource",
    "encode_image",
    "BlobStore",
    "MemoryBlobStore",
    "SqliteBlobStore",
]
