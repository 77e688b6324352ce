"""
Agent Installer - Installs the NinjaOne agent on macOS
Supports a generated installer URL, or the generic installer plus a token
"""
import logging
import os
import re
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from src.utils.config import env_str
from src.utils.exceptions import ConfigurationError, InstallError, RmmScriptError
from src.utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)

APP_PATH = Path('/Applications/NinjaRMMAgent')
GENERIC_PACKAGE = 'NinjaOneAgent-x64.pkg'
SIGNER = 'NinjaRMM LLC'
TOKEN_PATTERN = re.compile(r'^[0-9a-fA-F]{8}-([0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}$')
DOWNLOAD_TIMEOUT = 120


@dataclass
class InstallConfig:
    url: str = ''
    token: str = ''
    folder: Path = Path('/tmp')
    app_path: Path = APP_PATH

    @classmethod
    def from_env(cls, environ=None):
        return cls(
            url=env_str('INSTALL_URL', '', environ),
            token=env_str('INSTALL_TOKEN', '', environ),
            folder=Path(env_str('INSTALL_FOLDER', '/tmp', environ)),
        )

    @property
    def filename(self):
        return unquote(os.path.basename(urlparse(self.url).path))

    @property
    def package_path(self):
        return self.folder / self.filename


def validate(config):
    """Check URL, package type and token combination before anything is downloaded"""
    if not config.url:
        raise ConfigurationError("Please provide a URL")

    if config.app_path.is_dir():
        raise InstallError("NinjaOne agent already installed. Please remove before installing")

    if not config.filename.endswith('.pkg'):
        raise ConfigurationError("Only PKG files are supported")

    if config.filename == GENERIC_PACKAGE:
        if not config.token:
            raise ConfigurationError("A generic install URL was provided with no token")
        if not TOKEN_PATTERN.match(config.token):
            raise ConfigurationError("An invalid token was provided")
        logger.info("Token provided and generic installer being used")
    elif config.token:
        raise ConfigurationError(
            "A token was provided, but the URL is for a generated installer. "
            "Use either a generic installer URL with a token, or a generated URL without one"
        )


def write_token(config):
    """The generic installer picks the token up from a hidden file next to the package"""
    token_file = config.folder / '.~'
    token_file.write_text(config.token + '\n')
    return token_file


def download(url, target, timeout=DOWNLOAD_TIMEOUT):
    logger.info("Downloading installer...")
    try:
        response = requests.get(url, stream=True, timeout=timeout)
        response.raise_for_status()
        with open(target, 'wb') as f:
            for chunk in response.iter_content(chunk_size=8192):
                f.write(chunk)
    except (requests.RequestException, OSError) as e:
        raise InstallError(f"Download failed: {e}")

    if not target.exists() or target.stat().st_size == 0:
        raise InstallError("Downloaded an empty file")


def verify_signature(package):
    try:
        result = subprocess.run(
            ['pkgutil', '--check-signature', str(package)],
            capture_output=True,
            text=True,
            timeout=60
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        raise InstallError(f"Signature check failed: {e}")

    if SIGNER not in result.stdout:
        raise InstallError("PKG file is not signed by NinjaOne")


def install_package(package, app_path):
    logger.info("Download successful. Beginning installation...")
    try:
        result = subprocess.run(
            ['installer', '-pkg', str(package), '-target', '/'],
            capture_output=True,
            text=True,
            timeout=600
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        raise InstallError(f"Installer did not complete: {e}")

    if result.stdout:
        logger.info(result.stdout.strip())
    if not app_path.is_dir():
        raise InstallError(f"Failed to install the NinjaOne agent: {result.stderr.strip()}")


def run(config):
    if os.geteuid() != 0:
        raise ConfigurationError("This script must be run as root")

    logger.info("Performing checks...")
    validate(config)
    if config.token:
        write_token(config)

    package = config.package_path
    try:
        download(config.url, package)
        verify_signature(package)
        install_package(package, config.app_path)
    finally:
        if package.exists():
            package.unlink()

    logger.info("Successfully installed NinjaOne!")
    return True


def main(environ=None):
    configure_logging('NinjaOneInstall')
    try:
        run(InstallConfig.from_env(environ))
    except RmmScriptError as e:
        logger.error(f"[{e.code}] {e.message}")
    except Exception as e:
        logger.exception(f"Install failed: {e}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
