"""
Defines custom exception classes for the application.
"""

class ChatPromptException(Exception):
    """Base exception class for chatprompt application."""
    pass

class FormatterError(ChatPromptException):
    """Raised when a prompt cannot be formatted or a prompt family is unknown."""
    pass

class ProviderError(ChatPromptException):
    """Raised when an error occurs with a generation engine."""
    pass

class ConfigError(ChatPromptException):
    """Raised when there is a configuration error."""
    pass

class SessionError(ChatPromptException):
    """Raised when a chat session cannot be set up."""
    pass

class DocumentError(ChatPromptException):
    """Raised when a context document cannot be read."""
    pass
