"""Resource provisioning: naming, database and blob steps, saga orchestration."""

from .blob import BlobConfig, BlobStep
from .compensation import CompensationStack
from .contracts import (
    CompensatingAction,
    ProvisioningOutcome,
    ProvisioningStep,
    ResourceProvisioner,
    ResourceRecord,
    RollbackRecord,
    StepResult,
)
from .execution import ExecutionResult, ProvisioningRequest, execute_provisioning
from .naming import blob_store_name, database_names, sanitize_name
from .orchestrator import ProvisioningOrchestrator
from .service import (
    DatabaseCredentials,
    DatabaseProvisioningConfig,
    DatabaseProvisioningService,
    DatabaseStep,
    ProvisioningResult,
    ValidationReport,
    classify_error,
    validate_credentials,
)

__all__ = [
    'BlobConfig',
    'BlobStep',
    'CompensatingAction',
    'CompensationStack',
    'DatabaseCredentials',
    'DatabaseProvisioningConfig',
    'DatabaseProvisioningService',
    'DatabaseStep',
    'ExecutionResult',
    'ProvisioningOrchestrator',
    'ProvisioningOutcome',
    'ProvisioningRequest',
    'ProvisioningResult',
    'ProvisioningStep',
    'ResourceProvisioner',
    'ResourceRecord',
    'RollbackRecord',
    'StepResult',
    'ValidationReport',
    'blob_store_name',
    'classify_error',
    'database_names',
    'execute_provisioning',
    'sanitize_name',
    'validate_credentials',
]
