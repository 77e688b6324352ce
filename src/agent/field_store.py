"""
Field Store - Read and write device custom fields and tags
NinjaCliFieldStore talks to the platform, JsonFieldStore keeps a local state file
"""
import json
import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path

from src.utils.exceptions import FieldStoreError

logger = logging.getLogger(__name__)

CLI_TIMEOUT = 30
# Well under the 8191 character cmd.exe and 32767 character CreateProcess limits
STDIN_THRESHOLD = 8000


def default_cli_path():
    if sys.platform == "win32":
        return Path(os.getenv("PROGRAMDATA", "C:/ProgramData")) / "NinjaRMMAgent" / "ninjarmm-cli.exe"
    if sys.platform == "darwin":
        return Path("/Applications/NinjaRMMAgent/programdata/ninjarmm-cli")
    return Path("/opt/NinjaRMMAgent/programdata/ninjarmm-cli")


class FieldStore(ABC):
    """Snapshot style access to device state: read the current values, write new ones"""

    @abstractmethod
    def read(self, names):
        """Return {name: value} for the requested fields; missing fields map to ''"""

    @abstractmethod
    def write(self, values):
        """Persist every {name: value} pair"""

    @abstractmethod
    def set_tag(self, name):
        pass

    @abstractmethod
    def remove_tag(self, name):
        pass


class NinjaCliFieldStore(FieldStore):
    """Custom fields and tags through ninjarmm-cli"""

    def __init__(self, cli_path=None, timeout=CLI_TIMEOUT):
        self.cli_path = Path(cli_path) if cli_path else default_cli_path()
        self.timeout = timeout

    def _run(self, *args, input=None):
        cmd = [str(self.cli_path), *args]
        try:
            result = subprocess.run(
                cmd,
                input=input,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            raise FieldStoreError(f"ninjarmm-cli {args[0]} timed out")
        except OSError as e:
            raise FieldStoreError(f"ninjarmm-cli not available: {e}")

        if result.returncode != 0:
            raise FieldStoreError(f"ninjarmm-cli {' '.join(args[:2])} failed: {result.stderr.strip()}")
        return result.stdout

    def read(self, names):
        values = {}
        for name in names:
            values[name] = self._run("get", name).strip()
        return values

    def write(self, values):
        for name, value in values.items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            value = str(value)
            # Large values (the session history table) would overflow the Windows command line
            if len(value) > STDIN_THRESHOLD:
                self._run("set", "--stdin", name, input=value)
            else:
                self._run("set", name, value)
            logger.debug(f"Set field {name}")

    def set_tag(self, name):
        self._run("tag-set", name)
        logger.info(f"Tag set: {name}")

    def remove_tag(self, name):
        self._run("tag-remove", name)
        logger.info(f"Tag removed: {name}")


class JsonFieldStore(FieldStore):
    """Fields and tags kept in a JSON state file"""

    def __init__(self, path):
        self.path = Path(path)

    def load(self):
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError as e:
            raise FieldStoreError(f"State file {self.path} is not valid JSON: {e}")

    def save(self, state):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state, indent=2, default=str), encoding="utf-8")

    def read(self, names):
        fields = self.load().get("fields", {})
        return {name: fields.get(name, "") for name in names}

    def write(self, values):
        state = self.load()
        state.setdefault("fields", {}).update(values)
        self.save(state)

    def set_tag(self, name):
        state = self.load()
        tags = state.setdefault("tags", [])
        if name not in tags:
            tags.append(name)
        self.save(state)

    def remove_tag(self, name):
        state = self.load()
        state["tags"] = [t for t in state.get("tags", []) if t != name]
        self.save(state)

    def tags(self):
        return list(self.load().get("tags", []))


def store_from_env(environ=None):
    """RMM_STATE_FILE switches to the JSON store, otherwise the platform CLI is used"""
    environ = os.environ if environ is None else environ
    state_file = environ.get("RMM_STATE_FILE")
    if state_file:
        return JsonFieldStore(state_file)
    return NinjaCliFieldStore(environ.get("NINJA_CLI_PATH") or None)
