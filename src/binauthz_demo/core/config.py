from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BINAUTHZ_", extra="ignore")
    PROJECT_NAME: str = "binauthz-demo"
    ENV: str = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")

    # Target resolution; unset values fall back to the ambient gcloud configuration
    PROJECT_ID: Optional[str] = Field(default=None)
    ZONE: Optional[str] = Field(default=None)
    SIGNER_EMAIL: Optional[str] = Field(default=None)

    CLUSTER_NAME: str = Field(default="my-cluster-1")
    MACHINE_TYPE: str = Field(default="n1-standard-1")
    NUM_NODES: int = Field(default=2)

    ATTESTOR: str = Field(default="manually-verified")
    NOTE_ID: str = Field(default="Human-Attestor-Note")
    NOTE_DESCRIPTION: str = Field(default="Human Attestation Note Demo")
    IMAGE_TAG: str = Field(default="latest")
    DEFAULT_REGISTRY: str = Field(default="gcr.io")

    CONTAINER_ANALYSIS_URL: str = Field(default="https://containeranalysis.googleapis.com/v1beta1")
    HTTP_TIMEOUT: int = Field(default=60)

    WORK_DIR: str = Field(default=".")
    NOTE_PAYLOAD_FILE: str = Field(default="note_payload.json")
    PUBLIC_KEY_FILE: str = Field(default="generated-key.pgp")
    SIGNATURE_PAYLOAD_FILE: str = Field(default="generated_payload.json")
    SIGNATURE_FILE: str = Field(default="generated_signature.pgp")

    STATE_DB_URI: str = Field(default="sqlite:///.binauthz_state.db")

    GCLOUD_BIN: str = Field(default="gcloud")
    KUBECTL_BIN: str = Field(default="kubectl")
    GPG_BIN: str = Field(default="gpg")


settings = Settings()
