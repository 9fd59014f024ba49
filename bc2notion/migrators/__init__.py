"""
Destination side of the migration: typed HTTP retries, batching, the
Notion client, file uploads and the per-content-type conversions.
"""

from .batcher import BatchDeliveryError, plan_batches
from .http_client import ResilientHttpClient, RetryPolicy
from .notion_api import NotionClient, StructuralError
from .notion_uploads import FileUploader

__all__ = [
    "BatchDeliveryError",
    "plan_batches",
    "ResilientHttpClient",
    "RetryPolicy",
    "NotionClient",
    "StructuralError",
    "FileUploader",
]
