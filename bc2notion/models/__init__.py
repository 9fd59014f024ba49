from .asset import AssetReference, AssetState, DownloadedAsset, UploadOutcome
from .batch import Batch
from .notion_span import Annotations, Span, utf16_len
from .progress import ProgressRecord, Status

__all__ = [
    "AssetReference",
    "AssetState",
    "DownloadedAsset",
    "UploadOutcome",
    "Batch",
    "Annotations",
    "Span",
    "utf16_len",
    "ProgressRecord",
    "Status",
]
