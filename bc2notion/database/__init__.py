from .progress_store import ProgressStore

__all__ = ["ProgressStore"]
