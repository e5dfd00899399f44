import json
import logging
from typing import Any, Optional

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.logger import _m
from binauthz_demo.payloads.resources import ClusterTarget
from binauthz_demo.services.command_service import CommandError, CommandResult, CommandService
from binauthz_demo.services.const import (
    ALREADY_EXISTS_MARKERS,
    NOT_FOUND_MARKERS,
    UNSET_CONFIG_VALUE,
)

logger = logging.getLogger(__name__)


class GcloudError(CommandError):
    """A gcloud invocation failed."""


class ResourceAlreadyExistsError(GcloudError):
    """gcloud reported ALREADY_EXISTS for a create call."""


class ResourceNotFoundError(GcloudError):
    """gcloud reported NOT_FOUND for a read call."""


def _classify(result: CommandResult) -> GcloudError:
    stderr = result.stderr
    if any(marker in stderr for marker in ALREADY_EXISTS_MARKERS):
        return ResourceAlreadyExistsError(result)
    if any(marker in stderr for marker in NOT_FOUND_MARKERS):
        return ResourceNotFoundError(result)
    return GcloudError(result)


class GcloudService:
    """Thin typed layer over the gcloud CLI."""

    def __init__(self, command_service: CommandService, settings: Optional[Settings] = None):
        self.command_service = command_service
        self.settings = settings or default_settings

    async def _run(self, *args: str, project: Optional[str] = None, extra: Optional[dict] = None) -> CommandResult:
        command = [self.settings.GCLOUD_BIN, *args]
        if project:
            command.append(f"--project={project}")
        result = await self.command_service.run(command, check=False, extra=extra)
        if not result.ok:
            error = _classify(result)
            logger.debug(_m(f"gcloud error: {type(error).__name__}", {"command": result.command_line}))
            raise error
        return result

    async def get_config_value(self, prop: str) -> Optional[str]:
        """Read a property from the active gcloud configuration; local only."""
        result = await self.command_service.run(
            [self.settings.GCLOUD_BIN, "config", "get-value", prop], check=False
        )
        if not result.ok:
            return None
        value = result.stdout.strip()
        if not value or value == UNSET_CONFIG_VALUE:
            return None
        return value

    async def print_access_token(self) -> str:
        result = await self._run("auth", "print-access-token")
        return result.stdout.strip()

    # ---- cluster control plane -------------------------------------------------

    async def enable_service(self, api: str, project: str) -> None:
        await self._run("services", "enable", api, project=project)

    async def get_default_cluster_version(self, zone: str, project: str) -> str:
        result = await self._run(
            "container",
            "get-server-config",
            f"--zone={zone}",
            "--format=value(defaultClusterVersion)",
            project=project,
        )
        return result.stdout.strip()

    async def create_cluster(
        self, target: ClusterTarget, machine_type: str, num_nodes: int, cluster_version: Optional[str]
    ) -> None:
        args = [
            "container",
            "clusters",
            "create",
            target.name,
            f"--zone={target.zone}",
            "--enable-binauthz",
            f"--machine-type={machine_type}",
            f"--num-nodes={num_nodes}",
        ]
        if cluster_version:
            args.append(f"--cluster-version={cluster_version}")
        await self._run(*args, project=target.project, extra={"cluster": target.name})

    async def get_cluster_credentials(self, target: ClusterTarget) -> None:
        await self._run(
            "container", "clusters", "get-credentials", target.name, f"--zone={target.zone}", project=target.project
        )

    async def describe_cluster(self, target: ClusterTarget) -> dict[str, Any]:
        result = await self._run(
            "container",
            "clusters",
            "describe",
            target.name,
            f"--zone={target.zone}",
            "--format=json",
            project=target.project,
        )
        return json.loads(result.stdout or "{}")

    async def delete_cluster(self, target: ClusterTarget) -> None:
        await self._run(
            "container", "clusters", "delete", target.name, f"--zone={target.zone}", "--quiet", project=target.project
        )

    # ---- binary authorization --------------------------------------------------

    async def export_policy(self, project: str) -> str:
        result = await self._run("beta", "container", "binauthz", "policy", "export", project=project)
        return result.stdout

    async def describe_attestor(self, attestor: str, project: str) -> Optional[dict[str, Any]]:
        """Return the attestor resource, or None when it does not exist."""
        try:
            result = await self._run(
                "beta", "container", "binauthz", "attestors", "describe", attestor, "--format=json", project=project
            )
        except ResourceNotFoundError:
            return None
        return json.loads(result.stdout or "{}")

    async def create_attestor(self, attestor: str, note_id: str, note_project: str, project: str) -> None:
        await self._run(
            "beta",
            "container",
            "binauthz",
            "attestors",
            "create",
            attestor,
            f"--attestation-authority-note={note_id}",
            f"--attestation-authority-note-project={note_project}",
            project=project,
        )

    async def add_attestor_pgp_key(self, attestor: str, public_key_file: str, project: str) -> None:
        await self._run(
            "beta",
            "container",
            "binauthz",
            "attestors",
            "public-keys",
            "add",
            f"--attestor={attestor}",
            f"--pgp-public-key-file={public_key_file}",
            project=project,
        )

    async def create_signature_payload(self, artifact_url: str) -> str:
        result = await self._run(
            "beta", "container", "binauthz", "create-signature-payload", f"--artifact-url={artifact_url}"
        )
        return result.stdout

    async def create_attestation(
        self, artifact_url: str, attestor_ref: str, signature_file: str, public_key_id: str, project: str
    ) -> None:
        await self._run(
            "beta",
            "container",
            "binauthz",
            "attestations",
            "create",
            f"--artifact-url={artifact_url}",
            f"--attestor={attestor_ref}",
            f"--signature-file={signature_file}",
            f"--public-key-id={public_key_id}",
            project=project,
            extra={"artifact_url": artifact_url},
        )

    async def list_attestations(self, attestor_ref: str, artifact_url: str, project: str) -> list[dict[str, Any]]:
        result = await self._run(
            "beta",
            "container",
            "binauthz",
            "attestations",
            "list",
            f"--attestor={attestor_ref}",
            f"--artifact-url={artifact_url}",
            "--format=json",
            project=project,
        )
        return json.loads(result.stdout or "[]")

    # ---- registry ----------------------------------------------------------------

    async def list_image_digests(self, image_url: str, tag: Optional[str] = None) -> list[str]:
        args = ["container", "images", "list-tags", image_url, "--format=get(digest)"]
        if tag:
            args.append(f"--filter=tags:{tag}")
        result = await self._run(*args)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]
