from .basecamp_extractor import BasecampClient

__all__ = ["BasecampClient"]
