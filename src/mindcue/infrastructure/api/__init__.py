from .client import StudyApiClient
from .decoder import ResponseDecoder

__all__ = ["ResponseDecoder", "StudyApiClient"]
