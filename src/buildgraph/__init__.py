from .dag import ConfigurationError, resolve
from .dsl import TargetBuilder, TargetRegistry, build, matrix, sh, step_ref, target, workflow
from .model import BuildModel, RunState, Step, TargetDefinition
from .params import ParamCatalog, ParamSource, param
from .runner import BuildResult, Services, TaskContext, execute, run_build

__all__ = [
    "ConfigurationError", "resolve",
    "TargetBuilder", "TargetRegistry", "build", "matrix", "sh", "step_ref", "target", "workflow",
    "BuildModel", "RunState", "Step", "TargetDefinition",
    "ParamCatalog", "ParamSource", "param",
    "BuildResult", "Services", "TaskContext", "execute", "run_build",
]
