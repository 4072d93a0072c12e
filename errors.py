"""
Error taxonomy for the console.

Every error carries the HTTP status the app's error handler answers with and
a message that is safe to show the user as a notification.
"""


class ConsoleError(Exception):
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or "Request failed")
        self.message = message or self.__class__.__doc__ or "Request failed"

    def to_dict(self):
        return {"error": self.message, "kind": self.__class__.__name__}


class AuthenticationError(ConsoleError):
    """Authentication failed"""
    status_code = 401


class ValidationError(ConsoleError):
    """Invalid input"""
    status_code = 400


class PermissionDenied(ConsoleError):
    """You do not have permission to perform this action"""
    status_code = 403


class NotFound(ConsoleError):
    """Not found"""
    status_code = 404


class InvitationError(ConsoleError):
    """Invitation not found or expired"""
    status_code = 410


class IllegalTransition(ConsoleError):
    """Illegal order status transition"""
    status_code = 409


class ProfileResolutionError(ConsoleError):
    """Could not load or create your profile"""
    status_code = 500


class PartialFailure(ConsoleError):
    """The operation only partly completed"""
    status_code = 500
