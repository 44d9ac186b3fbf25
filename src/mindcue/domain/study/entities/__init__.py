from .card import Card
from .graded_response import GradedResponse
from .study_session import StudySession

__all__ = ["Card", "GradedResponse", "StudySession"]
