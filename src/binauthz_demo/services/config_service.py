"""Resolution of the target project, zone and signer identity.

Precedence, highest first:

1. explicit CLI flag
2. ``BINAUTHZ_*`` environment variable
3. ``.env`` file in the working directory
4. the active gcloud configuration (``gcloud config get-value``)

Steps 2 and 3 are handled by ``Settings``; step 4 is a local read and never
reaches a remote API.
"""

import logging
from typing import Optional

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.payloads.resources import ClusterTarget
from binauthz_demo.services.gcloud_service import GcloudService

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """A required input could not be resolved from any source."""


class ConfigService:
    def __init__(self, gcloud_service: GcloudService, settings: Optional[Settings] = None):
        self.gcloud_service = gcloud_service
        self.settings = settings or default_settings

    async def _resolve(self, flag: Optional[str], configured: Optional[str], gcloud_property: str) -> Optional[str]:
        if flag:
            return flag
        if configured:
            return configured
        value = await self.gcloud_service.get_config_value(gcloud_property)
        if value:
            logger.debug("Using %s=%s from gcloud config", gcloud_property, value)
        return value

    async def resolve_project(self, flag: Optional[str] = None) -> str:
        project = await self._resolve(flag, self.settings.PROJECT_ID, "project")
        if not project:
            raise ConfigurationError(
                "No project specified. Please specify a project with -p or set a default project with:\n"
                "gcloud config set project PROJECT_ID"
            )
        return project

    async def resolve_zone(self, flag: Optional[str] = None) -> str:
        zone = await self._resolve(flag, self.settings.ZONE, "compute/zone")
        if not zone:
            raise ConfigurationError(
                "No zone specified. Please specify a zone with -z or set a default zone with:\n"
                "gcloud config set compute/zone ZONE"
            )
        return zone

    async def resolve_signer(self, flag: Optional[str] = None) -> str:
        signer = await self._resolve(flag, self.settings.SIGNER_EMAIL, "core/account")
        if not signer:
            raise ConfigurationError(
                "No signer identity found. Pass --signer or log in with: gcloud auth login"
            )
        return signer

    async def resolve_cluster(
        self, cluster: Optional[str] = None, zone: Optional[str] = None, project: Optional[str] = None
    ) -> ClusterTarget:
        resolved_zone = await self.resolve_zone(zone)
        resolved_project = await self.resolve_project(project)
        return ClusterTarget(
            name=cluster or self.settings.CLUSTER_NAME,
            zone=resolved_zone,
            project=resolved_project,
        )
