"""blobmirror - key-addressed blob storage mirrored across backends."""

from blobmirror.storage import AccessPolicy, ReplicatingStore, StoredObject

__version__ = "0.1.0"

__all__ = ["AccessPolicy", "ReplicatingStore", "StoredObject", "__version__"]
