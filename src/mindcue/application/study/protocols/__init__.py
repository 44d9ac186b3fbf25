from .credential_provider import CredentialProvider
from .study_api import StudyApiProtocol

__all__ = ["CredentialProvider", "StudyApiProtocol"]
