"""Custom exceptions for the contact timeline engine."""


class ContactTimelineError(Exception):
    """Base exception for all contact timeline errors."""


class ConfigurationError(ContactTimelineError):
    """Exception raised for configuration related errors."""


class AuthenticationError(ContactTimelineError):
    """Exception raised for authentication failures."""


class GmailAPIError(ContactTimelineError):
    """Exception raised for Gmail API related errors."""


class EmailFetchError(ContactTimelineError):
    """Exception raised when a page of contact emails cannot be fetched."""


class EmailStoreError(ContactTimelineError):
    """Exception raised by the local email store."""


class ValidationError(ContactTimelineError):
    """Exception raised for data validation errors."""
