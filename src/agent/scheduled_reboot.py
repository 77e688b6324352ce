"""
Scheduled Reboot - Restarts the device inside an administrator-defined window

Run periodically by a condition or scheduled script. The rule is read from a
custom field (or the REBOOT_SCHEDULE variable) on every run; nothing is kept
between runs except the fresh boot's own uptime, which stops a reboot loop.
"""
import logging
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime

from src.agent import system_status
from src.agent.field_store import store_from_env
from src.agent.reboot_window import DEFAULT_WINDOW_MINUTES, evaluate_config
from src.utils.config import env_int, env_str
from src.utils.exceptions import ConfigurationError, RmmScriptError
from src.utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)

STAMP_FORMAT = '%Y-%m-%d %H:%M'


@dataclass
class RebootConfig:
    schedule: str = ''
    schedule_field: str = 'rebootSchedule'
    last_reboot_field: str = 'lastScheduledReboot'
    window_minutes: int = DEFAULT_WINDOW_MINUTES
    restart_delay_seconds: int = 60

    @classmethod
    def from_env(cls, environ=None):
        config = cls(
            schedule=env_str('REBOOT_SCHEDULE', '', environ),
            schedule_field=env_str('REBOOT_SCHEDULE_FIELD', cls.schedule_field, environ),
            last_reboot_field=env_str('LAST_REBOOT_FIELD', cls.last_reboot_field, environ),
            window_minutes=env_int('REBOOT_WINDOW_MINUTES', DEFAULT_WINDOW_MINUTES, environ),
            restart_delay_seconds=env_int('RESTART_DELAY_SECONDS', 60, environ),
        )
        if config.window_minutes < 1:
            raise ConfigurationError("REBOOT_WINDOW_MINUTES must be at least 1")
        if config.restart_delay_seconds < 0:
            raise ConfigurationError("RESTART_DELAY_SECONDS cannot be negative")
        return config


def run(config, store, now=None, uptime_minutes=None):
    """
    Evaluate the schedule and restart when permitted.
    Returns the Decision; every non-permitted outcome is raised as a
    script error by Decision.raise_for_status and handled by the caller.
    """
    now = now or datetime.now()
    schedule = config.schedule
    if not schedule:
        schedule = store.read([config.schedule_field])[config.schedule_field]
    if uptime_minutes is None:
        uptime_minutes = system_status.uptime_minutes()

    logger.info(f"Schedule '{schedule}', window {config.window_minutes} min, uptime {uptime_minutes:.0f} min")

    decision = evaluate_config(schedule, now, config.window_minutes, uptime_minutes)
    decision.raise_for_status()

    logger.info(f"Reboot permitted: {decision.reason}")
    system_status.request_restart(config.restart_delay_seconds)
    store.write({config.last_reboot_field: now.strftime(STAMP_FORMAT)})
    return decision


def main(environ=None):
    configure_logging('ScheduledReboot')
    try:
        config = RebootConfig.from_env(environ)
        run(config, store_from_env(environ))
    except RmmScriptError as e:
        logger.info(f"No reboot [{e.code}]: {e.message}")
    except subprocess.CalledProcessError as e:
        logger.error(f"Restart command failed: {e.stderr or e}")
    except Exception as e:
        logger.exception(f"Scheduled reboot failed: {e}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
