import asyncio
import logging
import time
from typing import Optional

import aiohttp

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.logger import _m, get_extra_info
from binauthz_demo.payloads.resources import ClusterTarget, NotePayload, ValidationReport
from binauthz_demo.services.command_service import CommandError
from binauthz_demo.services.const import (
    ENFORCING_EVALUATION_MODES,
    VALIDATION_NOTE_DESCRIPTION,
    VALIDATION_NOTE_PREFIX,
)
from binauthz_demo.services.container_analysis_service import (
    ContainerAnalysisError,
    ContainerAnalysisService,
)
from binauthz_demo.services.gcloud_service import GcloudService

logger = logging.getLogger(__name__)

PROBE_ERRORS = (CommandError, ContainerAnalysisError, aiohttp.ClientError, asyncio.TimeoutError, ValueError)


class ValidatorService:
    """Read-only checks that the Binary Authorization pieces are wired together.

    Each probe maps its outcome to a boolean; a failing probe never stops the
    remaining ones.
    """

    def __init__(
        self,
        gcloud_service: GcloudService,
        container_analysis_service: ContainerAnalysisService,
        settings: Optional[Settings] = None,
    ):
        self.gcloud_service = gcloud_service
        self.container_analysis_service = container_analysis_service
        self.settings = settings or default_settings

    async def check_policy_service(self, project: str) -> bool:
        try:
            await self.gcloud_service.export_policy(project)
        except PROBE_ERRORS as e:
            logger.warning(_m("Binary Authorization policy was NOT available", {"error": str(e)}))
            return False
        return True

    async def check_metadata_service(self, project: str) -> bool:
        note_id = f"{VALIDATION_NOTE_PREFIX}-{int(time.time())}"
        note = NotePayload.for_authority(project, note_id, VALIDATION_NOTE_DESCRIPTION)
        try:
            await self.container_analysis_service.create_note(project, note_id, note)
        except PROBE_ERRORS as e:
            logger.warning(_m("Container Analysis API was NOT available", {"error": str(e)}))
            return False

        try:
            await self.container_analysis_service.delete_note(project, note_id)
        except PROBE_ERRORS as e:
            logger.warning(_m("Failed to clean up validation note", {"note_id": note_id, "error": str(e)}))
        return True

    async def check_cluster_enforcement(self, target: ClusterTarget) -> bool:
        try:
            cluster = await self.gcloud_service.describe_cluster(target)
        except PROBE_ERRORS as e:
            logger.warning(_m("Failed to describe cluster", {"cluster": target.name, "error": str(e)}))
            return False

        binauthz = cluster.get("binaryAuthorization") or {}
        if str(binauthz.get("enabled", "")).lower() == "true":
            return True
        return binauthz.get("evaluationMode") in ENFORCING_EVALUATION_MODES

    async def validate(self, target: ClusterTarget) -> ValidationReport:
        policy_available = await self.check_policy_service(target.project)
        metadata_available = await self.check_metadata_service(target.project)
        cluster_enforcing = await self.check_cluster_enforcement(target)

        report = ValidationReport(
            policy_available=policy_available,
            metadata_available=metadata_available,
            cluster_enforcing=cluster_enforcing,
            cluster=target,
        )
        logger.info(_m("Validation finished", get_extra_info({**report.model_dump(exclude={"cluster"}), "passed": report.passed})))
        return report
