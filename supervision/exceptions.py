"""
Exceptions raised by the supervision package
"""


class SupervisionError(Exception):
    """Base class for supervision failures"""
    pass


class SupervisionSetupError(SupervisionError):
    """The monitored executable could not be started"""

    def __init__(self, message: str, command=None):
        super().__init__(message)
        self.command = command


class SessionStateError(SupervisionError):
    """Operation not valid for the session's current lifecycle state"""
    pass


class ConfigurationError(SupervisionError):
    """Invalid supervisor configuration"""
    pass
