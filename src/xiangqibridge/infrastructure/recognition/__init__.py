from .client import RecognitionClient, RecognitionError, RecognitionResult

__all__ = ["RecognitionClient", "RecognitionError", "RecognitionResult"]
