import logging
from pathlib import Path
from typing import Any, Optional

from binauthz_demo.core.config import Settings, settings as default_settings
from binauthz_demo.core.logger import _m, get_extra_info
from binauthz_demo.daos.step_record_dao import StepRecordDao
from binauthz_demo.payloads.resources import AttestationRequest, AttestationResult, NotePayload
from binauthz_demo.services.const import ATTESTATION_WORKFLOW
from binauthz_demo.services.container_analysis_service import (
    ContainerAnalysisService,
    NoteAlreadyExistsError,
)
from binauthz_demo.services.gcloud_service import (
    GcloudError,
    GcloudService,
    ResourceAlreadyExistsError,
)
from binauthz_demo.services.gpg_service import GpgService
from binauthz_demo.services.pipeline import Pipeline, Step

logger = logging.getLogger(__name__)


class AttestationError(RuntimeError):
    """Raised when an image cannot be attested."""


class ImageNotFoundError(AttestationError):
    """The registry reported no digest for the requested image and tag."""


def _public_key_ids(attestor: dict[str, Any]) -> set[str]:
    note = attestor.get("userOwnedGrafeasNote") or attestor.get("userOwnedDrydockNote") or {}
    return {str(key.get("id", "")).upper() for key in note.get("publicKeys", [])}


def _signing_key_ids(occurrence: dict[str, Any]) -> set[str]:
    attestation = occurrence.get("attestation") or {}
    key_ids = set()
    pgp = attestation.get("pgpSignedAttestation") or {}
    if pgp.get("pgpKeyId"):
        key_ids.add(str(pgp["pgpKeyId"]).upper())
    generic = attestation.get("genericSignedAttestation") or {}
    for signature in generic.get("signatures", []):
        if signature.get("publicKeyId"):
            key_ids.add(str(signature["publicKeyId"]).upper())
    return key_ids


class AttestationService:
    """Issues a signed attestation for one image digest.

    The workflow is an ordered pipeline: note, signing key, attestor, attestor
    key, digest, signature payload, signature, attestation, verification. An
    attestation is only submitted once the attestor is registered and the
    digest resolved; the ordering is the only guarantee of that.
    """

    def __init__(
        self,
        gcloud_service: GcloudService,
        gpg_service: GpgService,
        container_analysis_service: ContainerAnalysisService,
        step_record_dao: StepRecordDao,
        settings: Optional[Settings] = None,
    ):
        self.gcloud_service = gcloud_service
        self.gpg_service = gpg_service
        self.container_analysis_service = container_analysis_service
        self.step_record_dao = step_record_dao
        self.settings = settings or default_settings

    @property
    def work_dir(self) -> Path:
        return Path(self.settings.WORK_DIR)

    def resolve_image_url(self, image_path: str, project: str) -> str:
        """Qualify a bare repository name with the default registry and project."""
        image_path = image_path.strip().rstrip("/")
        head, _, rest = image_path.partition("/")
        if rest and ("." in head or ":" in head or head == "localhost"):
            return image_path
        return f"{self.settings.DEFAULT_REGISTRY}/{project}/{image_path}"

    def steps(self) -> list[Step]:
        return [
            Step("create-note", self._create_note),
            Step("ensure-signing-key", self._ensure_signing_key),
            Step("register-attestor", self._register_attestor),
            Step("add-public-key", self._add_public_key),
            Step("resolve-digest", self._resolve_digest),
            Step("create-signature-payload", self._create_signature_payload),
            Step("sign-payload", self._sign_payload),
            Step("create-attestation", self._create_attestation),
            Step("verify-attestation", self._verify_attestation, always_run=True),
        ]

    async def attest(self, request: AttestationRequest, resume: bool = False) -> AttestationResult:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        logger.info(_m("Attesting container image", get_extra_info(request.model_dump())))

        context: dict[str, Any] = {"request": request}
        pipeline = Pipeline(ATTESTATION_WORKFLOW, request.scope, self.steps(), self.step_record_dao)
        skipped = await pipeline.run(context, resume=resume)

        return AttestationResult(
            image_url=context["image_url"],
            digest=context["digest"],
            attestor_ref=context["attestor_ref"],
            public_key_id=context["public_key_id"],
            attestations=context.get("attestations", []),
            skipped_steps=skipped,
        )

    async def _create_note(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        note = NotePayload.for_authority(request.project, request.note_id, request.note_description)
        note_file = self.work_dir / self.settings.NOTE_PAYLOAD_FILE
        note_file.write_text(note.model_dump_json(indent=2))

        existing = await self.container_analysis_service.get_note(request.project, request.note_id)
        if existing is not None:
            logger.info(_m("Note already registered", {"note": note.name}))
        else:
            try:
                await self.container_analysis_service.create_note(request.project, request.note_id, note)
            except NoteAlreadyExistsError:
                logger.info(_m("Note already exists, continuing", {"note": note.name}))
        return {"note_name": note.name, "note_payload_file": str(note_file)}

    async def _ensure_signing_key(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        generated = await self.gpg_service.ensure_key(request.signer_email)

        armored = await self.gpg_service.export_public_key(request.signer_email)
        key_file = self.work_dir / self.settings.PUBLIC_KEY_FILE
        if key_file.exists() and key_file.read_text() == armored:
            logger.info(_m("Reusing exported public key", {"file": str(key_file)}))
        else:
            key_file.write_text(armored)

        fingerprint = await self.gpg_service.fingerprint(request.signer_email)
        return {"public_key_file": str(key_file), "fingerprint": fingerprint, "key_generated": generated}

    async def _register_attestor(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        attestor = await self.gcloud_service.describe_attestor(request.attestor, request.project)
        if attestor is not None:
            logger.info(_m("Attestor already registered", {"attestor": request.attestor_ref}))
        else:
            try:
                await self.gcloud_service.create_attestor(
                    request.attestor, request.note_id, request.project, request.project
                )
            except ResourceAlreadyExistsError:
                logger.info(_m("Attestor already exists, continuing", {"attestor": request.attestor_ref}))
        return {"attestor_ref": request.attestor_ref}

    async def _add_public_key(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        fingerprint = context["fingerprint"]
        attestor = await self.gcloud_service.describe_attestor(request.attestor, request.project) or {}
        if fingerprint.upper() in _public_key_ids(attestor):
            logger.info(_m("PGP key already added to attestor", {"fingerprint": fingerprint}))
        else:
            try:
                await self.gcloud_service.add_attestor_pgp_key(
                    request.attestor, context["public_key_file"], request.project
                )
            except ResourceAlreadyExistsError:
                logger.info(_m("PGP key already added, continuing", {"fingerprint": fingerprint}))
        return {"public_key_id": fingerprint}

    async def _resolve_digest(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        image_url = self.resolve_image_url(request.image_path, request.project)
        try:
            digests = await self.gcloud_service.list_image_digests(image_url, request.image_tag)
        except GcloudError as exc:
            raise ImageNotFoundError(f"Image {image_url}:{request.image_tag} not found") from exc
        if not digests:
            raise ImageNotFoundError(f"Image {image_url}:{request.image_tag} not found")

        digest = digests[0]
        logger.info(_m("Resolved image digest", {"image": image_url, "digest": digest}))
        return {"image_url": image_url, "digest": digest, "artifact_url": f"{image_url}@{digest}"}

    async def _create_signature_payload(self, context: dict[str, Any]) -> dict[str, Any]:
        payload = await self.gcloud_service.create_signature_payload(context["artifact_url"])
        payload_file = self.work_dir / self.settings.SIGNATURE_PAYLOAD_FILE
        payload_file.write_text(payload)
        return {"payload_file": str(payload_file)}

    async def _sign_payload(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        signature_file = self.work_dir / self.settings.SIGNATURE_FILE
        await self.gpg_service.sign(request.signer_email, context["payload_file"], str(signature_file))
        return {"signature_file": str(signature_file)}

    async def _create_attestation(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        existing = await self.gcloud_service.list_attestations(
            context["attestor_ref"], context["artifact_url"], request.project
        )
        key_id = context["public_key_id"].upper()
        if any(key_id in _signing_key_ids(occurrence) for occurrence in existing):
            logger.info(_m("Attestation already present for this key", {"artifact_url": context["artifact_url"]}))
            return {"attestation_created": False}

        await self.gcloud_service.create_attestation(
            context["artifact_url"],
            context["attestor_ref"],
            context["signature_file"],
            context["public_key_id"],
            request.project,
        )
        return {"attestation_created": True}

    async def _verify_attestation(self, context: dict[str, Any]) -> dict[str, Any]:
        request: AttestationRequest = context["request"]
        attestations = await self.gcloud_service.list_attestations(
            context["attestor_ref"], context["artifact_url"], request.project
        )
        return {"attestations": attestations}
