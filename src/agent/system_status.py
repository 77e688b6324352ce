"""
System Status - Uptime, process lookups and restart requests
"""
import logging
import subprocess
import sys
import time

import psutil

logger = logging.getLogger(__name__)


def uptime_minutes():
    """Minutes since the last restart"""
    return (time.time() - psutil.boot_time()) / 60


def uptime_days():
    return uptime_minutes() / (60 * 24)


def find_processes(name):
    """Running processes whose name matches, ignoring case and a trailing .exe"""
    wanted = name.lower()
    if wanted.endswith('.exe'):
        wanted = wanted[:-4]

    found = []
    for proc in psutil.process_iter(['pid', 'name']):
        proc_name = (proc.info.get('name') or '').lower()
        if proc_name.endswith('.exe'):
            proc_name = proc_name[:-4]
        if proc_name == wanted:
            found.append(proc)
    return found


def pid_running(pid):
    return psutil.pid_exists(pid)


def request_restart(delay_seconds=60):
    """Schedule an OS restart; raises CalledProcessError if the command fails"""
    if sys.platform == "win32":
        cmd = ['shutdown', '/r', '/t', str(delay_seconds), '/c', 'Scheduled maintenance reboot']
    else:
        # shutdown on macOS/Linux takes whole minutes
        delay_minutes = max((delay_seconds + 59) // 60, 0)
        cmd = ['shutdown', '-r', f'+{delay_minutes}']

    subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=30)
    logger.info(f"Restart scheduled in {delay_seconds} seconds")
