# Classification and rotation decisions for one rescan pass.
from .file_classifier import FileClassifier, classify_file_name
from .rotation_policy import RotationPolicy

__all__ = [
    "FileClassifier",
    "RotationPolicy",
    "classify_file_name",
]
