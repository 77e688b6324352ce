"""
Session Tracker - Records remote session start/end into custom fields

    session_tracker start   run when the remote session process appears
    session_tracker end     run when it goes away

Start writes a marker file named after the session process id; end matches
markers whose process has exited back to their start time and appends the
finished session to the history ledger.
"""
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from src.agent import session_ledger, system_status
from src.agent.field_store import store_from_env
from src.agent.session_ledger import SessionRecord
from src.utils.config import env_int, env_str
from src.utils.exceptions import ConfigurationError, MissingStateError, RmmScriptError
from src.utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)

STAMP_FORMAT = '%Y-%m-%d %H:%M'
MARKER_SUFFIX = '.session'


def default_marker_dir():
    if sys.platform == "win32":
        return Path(os.getenv("PROGRAMDATA", "C:/ProgramData")) / "RmmScripts" / "sessions"
    return Path("/tmp/rmm-sessions")


@dataclass
class SessionConfig:
    process_name: str = 'ncstreamer'
    history_field: str = 'sessionHistory'
    start_field: str = 'sessionStart'
    end_field: str = 'sessionEnd'
    active_field: str = 'sessionActive'
    active_tag: str = 'Remote Session Active'
    marker_dir: Path = None
    capacity: int = session_ledger.DEFAULT_CAPACITY
    size_limit: int = session_ledger.DEFAULT_SIZE_LIMIT

    @classmethod
    def from_env(cls, environ=None):
        marker_dir = env_str('SESSION_MARKER_DIR', '', environ)
        config = cls(
            process_name=env_str('SESSION_PROCESS', cls.process_name, environ),
            history_field=env_str('SESSION_HISTORY_FIELD', cls.history_field, environ),
            start_field=env_str('SESSION_START_FIELD', cls.start_field, environ),
            end_field=env_str('SESSION_END_FIELD', cls.end_field, environ),
            active_field=env_str('SESSION_ACTIVE_FIELD', cls.active_field, environ),
            active_tag=env_str('SESSION_ACTIVE_TAG', cls.active_tag, environ),
            marker_dir=Path(marker_dir) if marker_dir else None,
            capacity=env_int('SESSION_HISTORY_CAPACITY', session_ledger.DEFAULT_CAPACITY, environ),
            size_limit=env_int('SESSION_HISTORY_SIZE_LIMIT', session_ledger.DEFAULT_SIZE_LIMIT, environ),
        )
        if config.capacity < 1:
            raise ConfigurationError("SESSION_HISTORY_CAPACITY must be at least 1")
        return config

    def __post_init__(self):
        if self.marker_dir is None:
            self.marker_dir = default_marker_dir()


class SessionTracker:
    """Start/end handling against a FieldStore and a marker directory"""

    def __init__(self, config, store):
        self.config = config
        self.store = store
        self.marker_dir = Path(config.marker_dir)

    def marker_path(self, pid):
        return self.marker_dir / f"{pid}{MARKER_SUFFIX}"

    def markers(self):
        if not self.marker_dir.exists():
            return []
        found = []
        for path in sorted(self.marker_dir.glob(f"*{MARKER_SUFFIX}")):
            try:
                found.append((int(path.stem), path))
            except ValueError:
                logger.warning(f"Ignoring unexpected marker file: {path.name}")
        return found

    def start(self, now=None):
        """Mark every newly seen session process as started"""
        now = now or datetime.now()
        processes = system_status.find_processes(self.config.process_name)
        if not processes:
            raise MissingStateError(f"No running '{self.config.process_name}' process found")

        self.marker_dir.mkdir(parents=True, exist_ok=True)
        started = []
        for proc in processes:
            marker = self.marker_path(proc.pid)
            if marker.exists():
                logger.info(f"Session for PID {proc.pid} already recorded")
                continue
            marker.write_text(now.strftime(STAMP_FORMAT), encoding="utf-8")
            started.append(proc.pid)

        if not started:
            return started

        self.store.write({
            self.config.start_field: now.strftime(STAMP_FORMAT),
            self.config.active_field: True,
        })
        self.store.set_tag(self.config.active_tag)
        logger.info(f"Remote session started at {now:%Y-%m-%d %H:%M} (PID {', '.join(map(str, started))})")
        return started

    def _start_time(self, marker):
        text = marker.read_text(encoding="utf-8").strip()
        start = session_ledger.parse_timestamp(text) if text else None
        if start is None:
            fallback = self.store.read([self.config.start_field])[self.config.start_field]
            start = session_ledger.parse_timestamp(fallback) if fallback else None
        if start is None:
            raise MissingStateError(f"No session start record for {marker.name}")
        return start

    def end(self, now=None):
        """Close every session whose process has exited; returns the new records"""
        now = now or datetime.now()
        markers = self.markers()
        if not markers:
            raise MissingStateError("No session marker found, nothing to close")

        finished = [(pid, path) for pid, path in markers if not system_status.pid_running(pid)]
        if not finished:
            logger.info("All tracked sessions are still running")
            return []

        live = len(markers) - len(finished)
        records = []
        for pid, marker in finished:
            try:
                start = self._start_time(marker)
            except MissingStateError as e:
                # An unreadable marker can never be closed; drop it so later sessions still get recorded
                logger.warning(f"[{e.code}] {e.message}; discarding marker")
                marker.unlink()
                continue
            record = SessionRecord(start, now)
            # Read the ledger right before writing so the update is against the latest snapshot
            existing = self.store.read([self.config.history_field])[self.config.history_field]
            update = session_ledger.append(existing, record, self.config.capacity, self.config.size_limit)
            self.store.write({
                self.config.history_field: update.table,
                self.config.end_field: update.last_end.strftime(STAMP_FORMAT),
                self.config.active_field: live > 0 or update.active,
            })
            marker.unlink()
            records.append(record)
            logger.info(f"Session for PID {pid} ended: {record.duration_text}")

        if live == 0:
            if not records:
                self.store.write({self.config.active_field: False})
            self.store.remove_tag(self.config.active_tag)
        return records


def main(argv=None, environ=None):
    argv = sys.argv[1:] if argv is None else argv
    configure_logging('SessionTracker')
    try:
        if len(argv) != 1 or argv[0] not in ('start', 'end'):
            raise ConfigurationError("Usage: session_tracker start|end")
        tracker = SessionTracker(SessionConfig.from_env(environ), store_from_env(environ))
        if argv[0] == 'start':
            tracker.start()
        else:
            tracker.end()
    except RmmScriptError as e:
        logger.warning(f"[{e.code}] {e.message}")
    except Exception as e:
        logger.exception(f"Session tracking failed: {e}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
