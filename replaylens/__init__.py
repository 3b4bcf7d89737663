from replaylens.core.engine import WorkflowEngine
from replaylens.core.types import (
    ClickStep,
    Execution,
    ExecutionStatus,
    ExtractStep,
    GroupStep,
    InputStep,
    NavigationStep,
    Pattern,
    Step,
    StepType,
    Suggestion,
    Template,
    TemplateVariable,
    ValidateStep,
    VariableType,
    WaitCondition,
    WaitStep,
    Workflow,
    WorkflowMetadata,
    step_from_dict,
)
from replaylens.events import EngineEvents, EventChannel
from replaylens.exceptions import (
    ActionTimeoutError,
    AlreadyRecordingError,
    ExecutionError,
    NotRecordingError,
    RecoveryExhaustedError,
    ReplayLensError,
    StepExecutionError,
    WaitTimeoutError,
    WorkflowNotFoundError,
)
from replaylens.executor.surface import BrowserControlSurface, PlaywrightControlSurface
from replaylens.storage.store import WorkflowStore

__version__ = "0.1.0"

__all__ = [
    "WorkflowEngine",
    "BrowserControlSurface",
    "PlaywrightControlSurface",
    "WorkflowStore",
    "EngineEvents",
    "EventChannel",
    # Data model
    "ClickStep",
    "Execution",
    "ExecutionStatus",
    "ExtractStep",
    "GroupStep",
    "InputStep",
    "NavigationStep",
    "Pattern",
    "Step",
    "StepType",
    "Suggestion",
    "Template",
    "TemplateVariable",
    "ValidateStep",
    "VariableType",
    "WaitCondition",
    "WaitStep",
    "Workflow",
    "WorkflowMetadata",
    "step_from_dict",
    # Errors
    "ActionTimeoutError",
    "AlreadyRecordingError",
    "ExecutionError",
    "NotRecordingError",
    "RecoveryExhaustedError",
    "ReplayLensError",
    "StepExecutionError",
    "WaitTimeoutError",
    "WorkflowNotFoundError",
]
