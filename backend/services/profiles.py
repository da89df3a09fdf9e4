"""
Profile lookups against the external user/driver profile services.

The dispatch core only needs to know whether a profile exists; profile CRUD
lives elsewhere. The implementation is chosen by ``DISPATCH["PROFILE_DIRECTORY"]``.
"""

import logging

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from common.exceptions import UpstreamDependencyError

logger = logging.getLogger(__name__)


class ProfileDirectory:
    """Answers "does a profile exist for this identity"."""

    def rider_exists(self, rider_id: int) -> bool:
        raise NotImplementedError

    def driver_exists(self, driver_id: int) -> bool:
        raise NotImplementedError


class HttpProfileDirectory(ProfileDirectory):
    """
    Looks profiles up over HTTP.

    200 means the profile exists, 404 means it does not. Anything else
    (timeouts, connection errors, 5xx) raises UpstreamDependencyError; the
    lookup is never retried.
    """

    def __init__(self, rider_url=None, driver_url=None, timeout=None):
        config = settings.DISPATCH
        self.rider_url = rider_url or config["RIDER_PROFILE_URL"]
        self.driver_url = driver_url or config["DRIVER_PROFILE_URL"]
        self.timeout = timeout or config["PROFILE_LOOKUP_TIMEOUT"]

    def rider_exists(self, rider_id: int) -> bool:
        return self._exists(self.rider_url.format(rider_id=rider_id), "rider", rider_id)

    def driver_exists(self, driver_id: int) -> bool:
        return self._exists(self.driver_url.format(driver_id=driver_id), "driver", driver_id)

    def _exists(self, url: str, kind: str, identity: int) -> bool:
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("%s profile lookup for %s failed: %s", kind, identity, exc)
            raise UpstreamDependencyError(f"{kind} profile service unavailable") from exc

        if response.status_code == 404:
            return False
        if response.ok:
            return True

        logger.warning("%s profile lookup for %s returned HTTP %s",
                       kind, identity, response.status_code)
        raise UpstreamDependencyError(
            f"{kind} profile service returned HTTP {response.status_code}"
        )


def get_profile_directory() -> ProfileDirectory:
    """Instantiate the configured profile directory."""
    return import_string(settings.DISPATCH["PROFILE_DIRECTORY"])()
