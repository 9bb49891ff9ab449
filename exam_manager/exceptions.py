"""
Custom exceptions for the exam manager backup service.
Provides specific exception types for better error handling and recovery.
"""


class ExamManagerException(Exception):
    """Base exception for exam manager application"""
    pass


class ConfigurationException(ExamManagerException):
    """Raised when an environment setting cannot be parsed"""
    def __init__(self, setting: str, message: str):
        self.setting = setting
        super().__init__(f"Invalid configuration for {setting}: {message}")


class AuthenticationException(ExamManagerException):
    """Raised when a bearer token is missing or cannot be verified"""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Authentication failed: {reason}")
