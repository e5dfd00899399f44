from typing import Any, Optional

from pydantic import BaseModel, Field


class ClusterTarget(BaseModel):
    name: str
    zone: str
    project: str


class NoteHint(BaseModel):
    human_readable_name: str


class AttestationAuthority(BaseModel):
    hint: NoteHint


class NotePayload(BaseModel):
    """Container Analysis note body for an attestation authority."""

    name: str
    attestation_authority: AttestationAuthority

    @classmethod
    def for_authority(cls, project: str, note_id: str, description: str) -> "NotePayload":
        return cls(
            name=f"projects/{project}/notes/{note_id}",
            attestation_authority=AttestationAuthority(hint=NoteHint(human_readable_name=description)),
        )


class AttestationRequest(BaseModel):
    project: str
    image_path: str
    image_tag: str
    attestor: str
    note_id: str
    note_description: str
    signer_email: str

    @property
    def attestor_ref(self) -> str:
        return f"projects/{self.project}/attestors/{self.attestor}"

    @property
    def scope(self) -> str:
        return f"{self.project}/{self.attestor}/{self.image_path}:{self.image_tag}"


class AttestationResult(BaseModel):
    image_url: str
    digest: str
    attestor_ref: str
    public_key_id: str
    attestations: list[dict[str, Any]] = Field(default_factory=list)
    skipped_steps: list[str] = Field(default_factory=list)

    @property
    def artifact_url(self) -> str:
        return f"{self.image_url}@{self.digest}"


class ValidationReport(BaseModel):
    policy_available: bool
    metadata_available: bool
    cluster_enforcing: bool
    cluster: Optional[ClusterTarget] = None

    @property
    def passed(self) -> bool:
        return self.policy_available and self.metadata_available and self.cluster_enforcing
