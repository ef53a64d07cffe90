import os
import re
from datetime import timedelta
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError


DEFAULT_ENV_FILE = '/etc/backup.env'
DEFAULT_STOP_LABEL_VALUE = 'true'

_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')
_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1,
    'm': 60,
    'h': 3600,
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go-style duration string such as "1m", "90s" or "1h30m".

    A bare "0" is accepted as zero. Raises ValueError for anything else that
    does not match.
    """
    value = value.strip()
    if value in ('0', '+0', '-0'):
        return timedelta(0)

    sign = 1
    if value[:1] in ('+', '-'):
        sign = -1 if value[0] == '-' else 1
        value = value[1:]

    if not value:
        raise ValueError("invalid duration: empty string")

    seconds = 0.0
    position = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(value):
        raise ValueError(f"invalid duration: {value!r}")

    return timedelta(seconds=sign * seconds)


def load_env_file(path: str = DEFAULT_ENV_FILE) -> bool:
    """
    Load variables from an env file into the process environment.

    Variables already set in the environment win. A missing file is not an
    error, the container may be configured through its environment alone.

    Returns:
        True if the file existed and was loaded
    """
    if not os.path.exists(path):
        return False
    return load_dotenv(path, override=False)


class Config:
    """
    Run configuration, parsed once from the environment.

    Each stage receives this object instead of reading the environment itself.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ

        # Sources
        self.backup_sources = env.get('BACKUP_SOURCES') or '/backup'
        self.backup_filename = env.get('BACKUP_FILENAME', '')
        if not self.backup_filename:
            raise ConfigError("BACKUP_FILENAME not given")
        self.temp_dir = env.get('BACKUP_TEMP_DIR') or '/tmp'

        # Local archive
        self.backup_archive = env.get('BACKUP_ARCHIVE') or None

        # Retention
        self.retention_days = self._parse_int(env, 'BACKUP_RETENTION_DAYS')
        leeway = env.get('BACKUP_PRUNING_LEEWAY') or '1m'
        try:
            self.pruning_leeway = parse_duration(leeway)
        except ValueError as e:
            raise ConfigError(f"error parsing BACKUP_PRUNING_LEEWAY: {e}") from e
        self.pruning_prefix = env.get('BACKUP_PRUNING_PREFIX', '')

        # Containers
        # Unset means the default value; an explicit empty string matches
        # any value of the label.
        self.stop_container_label = env.get(
            'BACKUP_STOP_CONTAINER_LABEL', DEFAULT_STOP_LABEL_VALUE
        )
        self.docker_socket = env.get('DOCKER_SOCKET') or '/var/run/docker.sock'

        # Encryption
        self.encryption_passphrase = env.get('BACKUP_ENCRYPTION_PASSPHRASE', '')

        # Lock
        self.lock_file = env.get('BACKUP_LOCK_FILE') or '/var/dockervolumebackup.lock'

        # S3
        self.s3_bucket = env.get('AWS_S3_BUCKET_NAME') or None
        self.s3_endpoint = env.get('AWS_ENDPOINT') or None
        self.s3_endpoint_proto = env.get('AWS_ENDPOINT_PROTO') or 'https'
        self.aws_access_key_id = env.get('AWS_ACCESS_KEY_ID') or None
        self.aws_secret_access_key = env.get('AWS_SECRET_ACCESS_KEY') or None
        self.aws_region = env.get('AWS_REGION') or 'us-east-1'

        # Logging
        self.log_level = (env.get('LOG_LEVEL') or 'INFO').upper()
        self.log_file = env.get('LOG_FILE') or None

    @staticmethod
    def _parse_int(env: Mapping[str, str], key: str) -> Optional[int]:
        raw = env.get(key, '')
        if raw == '':
            return None
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigError(f"error parsing {key} as int: {raw!r}") from e

    @property
    def s3_endpoint_url(self) -> Optional[str]:
        """Endpoint URL for boto3, or None to talk to AWS directly."""
        if not self.s3_endpoint:
            return None
        if '://' in self.s3_endpoint:
            return self.s3_endpoint
        return f"{self.s3_endpoint_proto}://{self.s3_endpoint}"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'Config':
        """Load the env file, then build the config from the process environment."""
        load_env_file(env_file or os.environ.get('BACKUP_ENV_FILE', DEFAULT_ENV_FILE))
        return cls()
