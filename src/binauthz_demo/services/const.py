REQUIRED_APIS = [
    "container.googleapis.com",
    "containerregistry.googleapis.com",
    "containeranalysis.googleapis.com",
    "binaryauthorization.googleapis.com",
]

ENFORCING_EVALUATION_MODES = {
    "PROJECT_SINGLETON_POLICY_ENFORCE",
    "POLICY_BINDINGS",
    "POLICY_BINDINGS_AND_PROJECT_SINGLETON_POLICY_ENFORCE",
}

# gRPC status names gcloud echoes on stderr
ALREADY_EXISTS_MARKERS = ("ALREADY_EXISTS", "already exists")
NOT_FOUND_MARKERS = ("NOT_FOUND", "not found", "does not exist")

UNSET_CONFIG_VALUE = "(unset)"

VALIDATION_NOTE_PREFIX = "test-validation-note"
VALIDATION_NOTE_DESCRIPTION = "Test Validation Note"

ATTESTATION_WORKFLOW = "attest-image"
