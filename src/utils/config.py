"""
Script variable helpers
NinjaOne hands script variables to the process as environment variables
"""
import os

from src.utils.exceptions import ConfigurationError


def env_str(name, default='', environ=None):
    """Return a stripped string variable, or default when unset or blank"""
    environ = os.environ if environ is None else environ
    value = environ.get(name)
    if value is None or not str(value).strip():
        return default
    return str(value).strip()


def env_int(name, default, environ=None):
    """Return an integer variable; anything non-numeric is a configuration error"""
    raw = env_str(name, None, environ)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")

