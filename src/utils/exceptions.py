"""
Exceptions raised by the endpoint scripts
Every entry point catches RmmScriptError, logs it and exits cleanly
"""


class RmmScriptError(Exception):
    """Base exception for all script errors"""

    def __init__(self, message, code="UNKNOWN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(RmmScriptError):
    """Malformed rule, bad time format, invalid day name or bad parameter"""

    def __init__(self, message):
        super().__init__(message, code="CONFIGURATION_ERROR")


class NotYetDue(RmmScriptError):
    """Valid rule, but now is outside the permitted day or window"""

    def __init__(self, message):
        super().__init__(message, code="NOT_YET_DUE")


class AlreadySatisfied(RmmScriptError):
    """Uptime shows the action already happened inside this window"""

    def __init__(self, message="already rebooted this window"):
        super().__init__(message, code="ALREADY_SATISFIED")


class MissingStateError(RmmScriptError):
    """Required external state is missing (start record, session marker)"""

    def __init__(self, message):
        super().__init__(message, code="MISSING_STATE")


class FieldStoreError(RmmScriptError):
    """A custom field or tag call against the platform failed"""

    def __init__(self, message):
        super().__init__(message, code="FIELD_STORE_ERROR")


class InstallError(RmmScriptError):
    """Download, signature or install step failed"""

    def __init__(self, message):
        super().__init__(message, code="INSTALL_ERROR")
