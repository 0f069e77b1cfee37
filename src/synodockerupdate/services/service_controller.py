"""Synology package service control."""

from typing import Callable

from synodockerupdate.constants import SYNO_SERVICE_CTL
from synodockerupdate.models import ServiceStatus


class ServiceController:
    """Wraps ``synoservicectl`` for the Docker package service."""

    def __init__(self, logger, run_cmd: Callable, servicectl_bin: str = SYNO_SERVICE_CTL):
        self.logger = logger
        self.run_cmd = run_cmd
        self.servicectl_bin = servicectl_bin

    def status(self, service_name: str) -> ServiceStatus:
        result = self.run_cmd(
            [self.servicectl_bin, "--status", service_name],
            check=False,
            capture_output=True,
        )
        output = (result.stdout or "").lower()
        if "running" in output:
            return ServiceStatus.RUNNING
        if "stop" in output:
            return ServiceStatus.STOPPED
        return ServiceStatus.UNKNOWN

    def stop(self, service_name: str) -> bool:
        """Stop the service when it is running. Returns True if a stop was issued."""
        if self.status(service_name) != ServiceStatus.RUNNING:
            self.logger.info("Service %s is not running", service_name)
            return False

        self.run_cmd([self.servicectl_bin, "--stop", service_name], capture_output=True)
        return True

    def start(self, service_name: str) -> ServiceStatus:
        """Start the service and report the status polled right after."""
        self.run_cmd(
            [self.servicectl_bin, "--start", service_name],
            check=False,
            capture_output=True,
        )
        status = self.status(service_name)
        self.logger.debug("Service %s status after start: %s", service_name, status.value)
        return status
