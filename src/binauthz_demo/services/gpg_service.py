import logging
from typing import Optional

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.logger import _m
from binauthz_demo.services.command_service import CommandService

logger = logging.getLogger(__name__)


class GpgError(RuntimeError):
    """Raised when gpg output cannot be used."""


class GpgService:
    def __init__(self, command_service: CommandService, settings: Optional[Settings] = None):
        self.command_service = command_service
        self.settings = settings or default_settings

    def _command(self, *args: str) -> list[str]:
        return [self.settings.GPG_BIN, *args]

    async def has_key(self, identity: str) -> bool:
        result = await self.command_service.run(self._command("--list-keys", identity), check=False)
        return result.ok

    async def generate_key(self, identity: str) -> None:
        logger.info(_m("Generating signing key", {"identity": identity}))
        await self.command_service.run(
            self._command("--batch", "--passphrase", "", "--quick-generate-key", "--yes", identity)
        )

    async def ensure_key(self, identity: str) -> bool:
        """Generate a key for ``identity`` unless one exists. Returns True when a key was created."""
        if await self.has_key(identity):
            logger.debug(_m("Reusing existing signing key", {"identity": identity}))
            return False
        await self.generate_key(identity)
        return True

    async def export_public_key(self, identity: str) -> str:
        result = await self.command_service.run(self._command("--armor", "--export", identity))
        if not result.stdout.strip():
            raise GpgError(f"gpg exported no public key for {identity}")
        return result.stdout

    async def fingerprint(self, identity: str) -> str:
        result = await self.command_service.run(self._command("--with-colons", "--fingerprint", identity))
        for line in result.stdout.splitlines():
            fields = line.split(":")
            # fpr:::::::::<FINGERPRINT>:
            if fields[0] == "fpr" and len(fields) > 9 and fields[9]:
                return fields[9]
        raise GpgError(f"No fingerprint found for {identity}")

    async def sign(self, identity: str, payload_file: str, signature_file: str) -> None:
        await self.command_service.run(
            self._command(
                "--batch",
                "--yes",
                "--local-user",
                identity,
                "--armor",
                "--output",
                signature_file,
                "--sign",
                payload_file,
            )
        )
