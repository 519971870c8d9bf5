from .base import ALREADY_INDEXED, INDEXED, SKIPPED, Index
from .scene import SceneIndex

__all__ = ["ALREADY_INDEXED", "INDEXED", "SKIPPED", "Index", "SceneIndex"]
