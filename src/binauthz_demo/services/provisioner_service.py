import logging
from typing import Optional

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.logger import _m, get_extra_info
from binauthz_demo.payloads.resources import ClusterTarget
from binauthz_demo.services.command_service import CommandService
from binauthz_demo.services.const import REQUIRED_APIS
from binauthz_demo.services.gcloud_service import GcloudService

logger = logging.getLogger(__name__)


class ProvisionerService:
    """Creates and deletes the demo GKE cluster.

    Creation does not wait for the cluster to become ready; kubectl
    credentials are configured as soon as the create call returns.
    """

    def __init__(
        self,
        gcloud_service: GcloudService,
        command_service: CommandService,
        settings: Optional[Settings] = None,
    ):
        self.gcloud_service = gcloud_service
        self.command_service = command_service
        self.settings = settings or default_settings

    async def enable_apis(self, project: str) -> None:
        for api in REQUIRED_APIS:
            logger.info(_m("Enabling API", extra=get_extra_info({"api": api, "project": project})))
            await self.gcloud_service.enable_service(api, project)

    async def create_cluster(self, target: ClusterTarget) -> str:
        """Create ``target`` with Binary Authorization enabled; returns the cluster version used."""
        extra = get_extra_info(target.model_dump())
        await self.enable_apis(target.project)

        version = await self.gcloud_service.get_default_cluster_version(target.zone, target.project)
        logger.info(_m(f"Using GKE version: {version or '<default>'}", extra))

        await self.gcloud_service.create_cluster(
            target,
            machine_type=self.settings.MACHINE_TYPE,
            num_nodes=self.settings.NUM_NODES,
            cluster_version=version or None,
        )
        logger.info(_m("Configuring kubectl", extra))
        await self.gcloud_service.get_cluster_credentials(target)
        return version

    async def list_nodes(self) -> str:
        result = await self.command_service.run([self.settings.KUBECTL_BIN, "get", "nodes"], check=False)
        return result.stdout if result.ok else result.stderr

    async def delete_cluster(self, target: ClusterTarget) -> None:
        logger.info(_m("Deleting cluster", get_extra_info(target.model_dump())))
        await self.gcloud_service.delete_cluster(target)
