"""
Clients Package
External collaborators reached over the network.
"""

from .blob_storage import BlobStorage, UploadedImage

__all__ = [
    "BlobStorage",
    "UploadedImage",
]
