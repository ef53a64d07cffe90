"""
Command line entry point.

    volume-backup run        take a backup using the environment configuration
    volume-backup decrypt    decrypt an encrypted backup file
"""

import logging
import os
from pathlib import Path
from typing import Optional

import typer

from . import __version__, configure_logging
from .backup.containers import create_docker_client
from .backup.encryption import decrypt_file
from .backup.executor import BackupExecutor
from .config import Config, DEFAULT_ENV_FILE
from .errors import BackupError, LockError, RestartAggregateError
from .utils.lock import RunLock


app = typer.Typer(
    name="volume-backup",
    help="Back up docker volumes to S3 and local archives",
    add_completion=False,
)

logger = logging.getLogger(__name__)


@app.command()
def run(
    env_file: Path = typer.Option(
        Path(os.environ.get('BACKUP_ENV_FILE', DEFAULT_ENV_FILE)),
        "--env-file",
        help="Env file to load before reading the environment",
    ),
):
    """Take a backup, copy it to the configured storages and prune old ones."""
    try:
        config = Config.from_env(str(env_file))
    except BackupError as e:
        configure_logging()
        logger.error(str(e))
        raise typer.Exit(1)

    executor = None
    logging_ready = False
    try:
        with RunLock(config.lock_file) as lock:
            configure_logging(config.log_level, config.log_file)
            logging_ready = True
            logger.info(f"volume-backup {__version__}")
            docker_client = create_docker_client(config.docker_socket)
            executor = BackupExecutor(config, docker_client=docker_client)
            executor.stats.locked_seconds = lock.locked_seconds
            logger.info("Successfully initialized resources.")
            executor.execute()
    except LockError as e:
        if not logging_ready:
            configure_logging()
        logger.error(str(e))
        raise typer.Exit(1)
    except RestartAggregateError:
        # Already logged when restoring containers
        raise typer.Exit(1)
    except BackupError as e:
        if executor is None or executor.error is not e:
            logger.error(str(e))
        raise typer.Exit(1)


@app.command()
def decrypt(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Encrypted backup file"),
    passphrase: str = typer.Option(
        ...,
        "--passphrase",
        envvar="BACKUP_ENCRYPTION_PASSPHRASE",
        prompt=True,
        hide_input=True,
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Where to write the archive (default: next to the encrypted file)",
    ),
):
    """Decrypt a backup file written with BACKUP_ENCRYPTION_PASSPHRASE."""
    try:
        name, data = decrypt_file(str(path), passphrase)
    except BackupError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    target = (output_dir or path.parent) / os.path.basename(name)
    if target.exists():
        typer.echo(f"Error: {target} already exists", err=True)
        raise typer.Exit(1)

    target.write_bytes(data)
    typer.echo(f"Decrypted {path.name} to {target}")


def cli_main():
    app()


if __name__ == "__main__":
    cli_main()
