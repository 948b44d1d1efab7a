from .compiler import compile_workflow, expand_matrix, slice_id
from .definition import (
    PULL_REQUEST_INTO_MAIN,
    PUSH_TO_MAIN,
    CustomStep,
    DeployEnvironment,
    EnvironmentInjection,
    GitPullRequestTrigger,
    GitPushTrigger,
    ManualBoolInput,
    ManualChoiceInput,
    ManualStringInput,
    ManualTrigger,
    MatrixDimension,
    ParamInjection,
    RunnerPool,
    ScheduleTrigger,
    SecretInjection,
    SetupPythonStep,
    UseCustomArtifactProvider,
    VariableGroup,
    VaultEnvironmentInjection,
    VaultSecretInjection,
    WorkflowDefinition,
    WorkflowTargetDefinition,
)
from .devops import DevopsWorkflowWriter
from .generator import BACKENDS, check_workflows, generate_workflows, writer_for
from .github import GithubWorkflowWriter
from .model import WorkflowJobModel, WorkflowModel, WorkflowStepModel
from .shell import ShellWorkflowWriter
from .writer import WorkflowWriter

__all__ = [
    "compile_workflow", "expand_matrix", "slice_id",
    "PULL_REQUEST_INTO_MAIN", "PUSH_TO_MAIN",
    "CustomStep", "DeployEnvironment", "EnvironmentInjection", "GitPullRequestTrigger", "GitPushTrigger",
    "ManualBoolInput", "ManualChoiceInput", "ManualStringInput", "ManualTrigger",
    "MatrixDimension", "ParamInjection", "RunnerPool", "ScheduleTrigger", "SecretInjection", "SetupPythonStep",
    "UseCustomArtifactProvider", "VariableGroup", "VaultEnvironmentInjection", "VaultSecretInjection",
    "WorkflowDefinition", "WorkflowTargetDefinition",
    "DevopsWorkflowWriter", "GithubWorkflowWriter", "ShellWorkflowWriter", "WorkflowWriter",
    "BACKENDS", "check_workflows", "generate_workflows", "writer_for",
    "WorkflowJobModel", "WorkflowModel", "WorkflowStepModel",
]
