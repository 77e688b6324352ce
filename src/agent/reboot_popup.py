"""
Reboot Popup - Reminds the logged-in user to restart after too many days of uptime
Text can be overridden per policy and is machine-translated to the requested language
"""
import html
import logging
import re
import subprocess
import sys
from dataclasses import dataclass

import requests

from src.agent import system_status
from src.utils.config import env_int, env_str
from src.utils.exceptions import ConfigurationError, RmmScriptError
from src.utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)

TRANSLATE_URL = "https://translate.googleapis.com/translate_a/single"
TRANSLATE_TIMEOUT = 5
LANGUAGE_PATTERN = re.compile(r'^[a-zA-Z]{2}$')

DEFAULT_TITLE = "Restart required"
DEFAULT_MESSAGE = ("Your computer has not been restarted in {days} days. "
                   "Please save your work and restart at your earliest convenience.")
DEFAULT_BUTTON = "OK"


@dataclass
class PopupConfig:
    threshold_days: int = 7
    language: str = 'en'
    title: str = DEFAULT_TITLE
    message: str = DEFAULT_MESSAGE
    button: str = DEFAULT_BUTTON

    @classmethod
    def from_env(cls, environ=None):
        config = cls(
            threshold_days=env_int('THRESHOLD_DAYS', 7, environ),
            language=env_str('LANGUAGE', 'en', environ).lower(),
            title=env_str('POPUP_TITLE', DEFAULT_TITLE, environ),
            message=env_str('POPUP_MESSAGE', DEFAULT_MESSAGE, environ),
            button=env_str('POPUP_BUTTON', DEFAULT_BUTTON, environ),
        )
        if config.threshold_days < 0:
            raise ConfigurationError("THRESHOLD_DAYS cannot be negative")
        return config


def validate_language(code):
    if not LANGUAGE_PATTERN.match(code or ''):
        raise ConfigurationError(f"Language must be a 2-letter code, got '{code}'")
    return code.lower()


def translate(text, language, timeout=TRANSLATE_TIMEOUT):
    """
    Translate English text; any failure returns the original text.
    The response is a nested list whose first element holds
    [translated, original, ...] segments.
    """
    if not text or language == 'en':
        return text
    try:
        response = requests.get(
            TRANSLATE_URL,
            params={'client': 'gtx', 'sl': 'en', 'tl': language, 'dt': 't', 'q': text},
            timeout=timeout
        )
        response.raise_for_status()
        segments = response.json()[0]
        translated = ''.join(segment[0] for segment in segments if segment and segment[0])
        return translated or text
    except (requests.RequestException, ValueError, IndexError, TypeError) as e:
        logger.warning(f"Translation to '{language}' failed, using original text: {e}")
        return text


def build_toast(title, message, button):
    """Toast XML with a single dismiss button"""
    title, message, button = (html.escape(v, quote=True) for v in (title, message, button))
    return (
        '<toast scenario="reminder">'
        '<visual><binding template="ToastGeneric">'
        f'<text>{title}</text>'
        f'<text>{message}</text>'
        '</binding></visual>'
        '<actions>'
        f'<action content="{button}" arguments="dismiss" activationType="system"/>'
        '</actions>'
        '</toast>'
    )


def show_popup(title, message, button):
    """Raise the toast for the logged-in user through PowerShell"""
    xml = build_toast(title, message, button).replace("'", "''")
    ps = (
        "[Windows.UI.Notifications.ToastNotificationManager,Windows.UI.Notifications,ContentType=WindowsRuntime]|Out-Null;"
        "[Windows.Data.Xml.Dom.XmlDocument,Windows.Data.Xml.Dom.XmlDocument,ContentType=WindowsRuntime]|Out-Null;"
        "$x=[Windows.Data.Xml.Dom.XmlDocument]::new();"
        f"$x.LoadXml('{xml}');"
        "$t=[Windows.UI.Notifications.ToastNotification]::new($x);"
        "$a='{1AC14E77-02E7-4E5D-B744-2EB1AE5198B7}\\WindowsPowerShell\\v1.0\\powershell.exe';"
        "[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier($a).Show($t)"
    )
    subprocess.run(
        ["powershell.exe", "-WindowStyle", "Hidden", "-NonInteractive",
         "-ExecutionPolicy", "Bypass", "-Command", ps],
        capture_output=True, text=True, timeout=30, check=True
    )


def run(config, uptime_days=None):
    """Returns True when the popup was shown"""
    if uptime_days is None:
        uptime_days = system_status.uptime_days()
    days = int(uptime_days)

    if uptime_days < config.threshold_days:
        logger.info(f"Uptime {days} day(s) is below the {config.threshold_days} day threshold")
        return False

    try:
        language = validate_language(config.language)
    except ConfigurationError as e:
        logger.warning(f"{e.message}; showing English text")
        language = 'en'

    message = config.message.replace('{days}', str(days))
    title = translate(config.title, language)
    message = translate(message, language)
    button = translate(config.button, language)

    show_popup(title, message, button)
    logger.info(f"Reboot reminder shown after {days} day(s) of uptime ({language})")
    return True


def main(environ=None):
    configure_logging('RebootPopup')
    try:
        run(PopupConfig.from_env(environ))
    except RmmScriptError as e:
        logger.warning(f"[{e.code}] {e.message}")
    except subprocess.SubprocessError as e:
        logger.error(f"Could not show popup (no user logged in?): {e}")
    except Exception as e:
        logger.exception(f"Reboot popup failed: {e}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
