"""
Domain errors.

Only ConfigurationError and MarketDataUnavailable are fatal; every other
failure is converted into a safe default at the call site that raised it.
"""


class CommentatorError(Exception):
    """Base class for all commentator errors"""


class ConfigurationError(CommentatorError):
    """Engine cannot start with the given configuration"""


class MarketDataUnavailable(CommentatorError):
    """Initial market snapshot could not be fetched"""


class FeedUnavailable(CommentatorError):
    """Push feed could not be connected or never acknowledged the subscription"""


class TextGenerationError(CommentatorError):
    """Text-generation collaborator failed or returned unusable output"""


class SpeechSynthesisError(CommentatorError):
    """TTS collaborator failed"""
