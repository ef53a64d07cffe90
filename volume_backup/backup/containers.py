"""
Stopping and restarting containers around a backup.

Containers labelled with docker-volume-backup.stop-during-backup are stopped
before the archive is taken so their volumes are in a consistent state. The
containers that were actually stopped are restored afterwards no matter how
the backup went: plain containers are started again, containers that belong
to a swarm service are brought back by force-updating their service.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, TypeVar

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from ..errors import (
    ConfigError,
    DiscoveryError,
    RestartAggregateError,
    ServiceNotFoundError,
    StopAggregateError,
)
from .stats import ContainerStats


STOP_LABEL = 'docker-volume-backup.stop-during-backup'
SWARM_SERVICE_LABEL = 'com.docker.swarm.service.name'

# docker-py passes transport failures from requests through unwrapped
ENGINE_ERRORS = (DockerException, RequestException)

T = TypeVar('T')

logger = logging.getLogger(__name__)


@dataclass
class ContainerSet:
    """Running containers and the subset to stop during the backup."""

    all: list = field(default_factory=list)
    to_stop: list = field(default_factory=list)


def label_filter(value: str) -> str:
    """
    Build the docker label filter for the stop label.

    An empty value matches every container carrying the label, whatever its
    value.
    """
    if value == '':
        return STOP_LABEL
    return f"{STOP_LABEL}={value}"


def create_docker_client(socket_path: str):
    """
    Create a docker client talking to the engine socket, if it is mounted.

    Returns:
        DockerClient, or None when no socket is available

    Raises:
        ConfigError: If the socket exists but no client can be created
    """
    if not os.path.exists(socket_path):
        logger.info(f"No docker socket at {socket_path}, containers will not be stopped")
        return None
    try:
        return docker.DockerClient(base_url=f"unix://{socket_path}")
    except DockerException as e:
        raise ConfigError(f"failed to create docker client: {e}") from e


class ContainerManager:
    """
    Stops labelled containers for the duration of an action.

    Attributes:
        client: docker.DockerClient, or None when no engine is available
        stats: Container counters for the run summary
        stopped: Containers stopped so far, the exact set to restore
        restart_error: Failure of the last restore step, if any
    """

    def __init__(self, client, stop_label_value: str = 'true'):
        self.client = client
        self.stop_label_value = stop_label_value
        self.stats = ContainerStats()
        self.stopped: list = []
        self.restart_error: Optional[RestartAggregateError] = None

    def discover(self) -> ContainerSet:
        """
        List running containers and those marked to be stopped.

        Raises:
            DiscoveryError: If the container engine cannot be queried
        """
        try:
            all_containers = self.client.containers.list()
        except ENGINE_ERRORS as e:
            raise DiscoveryError(f"error querying for containers: {e}") from e

        try:
            to_stop = self.client.containers.list(
                filters={'label': label_filter(self.stop_label_value)}
            )
        except ENGINE_ERRORS as e:
            raise DiscoveryError(f"error querying for containers to stop: {e}") from e

        self.stats.all = len(all_containers)
        self.stats.to_stop = len(to_stop)
        return ContainerSet(all=all_containers, to_stop=to_stop)

    def pause(self, containers: list) -> Tuple[list, Optional[StopAggregateError]]:
        """
        Stop each container, carrying on past individual failures.

        Returns:
            Tuple of (containers that were stopped, aggregated stop error or None)
        """
        self.stopped = []
        errors = []

        for container in containers:
            try:
                container.stop()
            except ENGINE_ERRORS as e:
                logger.warning(f"Failed to stop container {_describe(container)}: {e}")
                errors.append(e)
            else:
                self.stopped.append(container)

        self.stats.stopped = len(self.stopped)
        self.stats.stop_errors = len(errors)
        return self.stopped, StopAggregateError.from_errors(errors)

    def resume(self, stopped: list):
        """
        Restore every container that was stopped.

        Containers of a swarm service are not started directly; their service
        is force-updated once instead, so swarm reschedules the tasks itself.

        Raises:
            RestartAggregateError: If any container or service could not be
                restored, or a service disappeared in the meantime
        """
        services_requiring_update = []
        errors = []

        for container in stopped:
            service_name = (container.labels or {}).get(SWARM_SERVICE_LABEL)
            if service_name is not None:
                if service_name not in services_requiring_update:
                    services_requiring_update.append(service_name)
                continue
            try:
                container.start()
            except ENGINE_ERRORS as e:
                logger.warning(f"Failed to restart container {_describe(container)}: {e}")
                errors.append(e)

        for service_name in services_requiring_update:
            try:
                service = self._find_service(service_name)
            except ENGINE_ERRORS as e:
                errors.append(e)
                continue
            if service is None:
                errors.insert(0, ServiceNotFoundError(f"couldn't find service with name {service_name}"))
                raise RestartAggregateError(errors)
            try:
                service.force_update()
            except ENGINE_ERRORS as e:
                logger.warning(f"Failed to force update service {service_name}: {e}")
                errors.append(e)

        if errors:
            raise RestartAggregateError(errors)

    def _find_service(self, name: str):
        # The engine's name filter matches prefixes, so compare exactly.
        for service in self.client.services.list(filters={'name': name}):
            if service.name == name:
                return service
        return None

    def run_with_containers_paused(self, thunk: Callable[[], T]) -> Optional[T]:
        """
        Stop the labelled containers, run thunk, then restore them.

        The thunk only runs if every container stopped cleanly. Restoring
        always happens, whatever the thunk or the stop step did; a restore
        failure is logged and kept in restart_error rather than raised, so it
        cannot hide the outcome of the action itself.

        Raises:
            DiscoveryError: If containers cannot be listed
            StopAggregateError: If any container failed to stop
        """
        if self.client is None:
            return thunk()

        container_set = self.discover()
        logger.info(
            f"Stopping {len(container_set.to_stop)} out of {len(container_set.all)} running containers"
        )

        try:
            _, stop_error = self.pause(container_set.to_stop)
            if stop_error is not None:
                raise stop_error
            return thunk()
        finally:
            self.restart_error = None
            try:
                self.resume(self.stopped)
            except RestartAggregateError as e:
                self.restart_error = e
                logger.error(str(e))
            else:
                if self.stopped:
                    logger.info(f"Restarted {len(self.stopped)} container(s)")


def _describe(container) -> str:
    name = getattr(container, 'name', None)
    short_id = getattr(container, 'short_id', None) or str(getattr(container, 'id', ''))[:12]
    return f"{name} ({short_id})" if name else short_id
