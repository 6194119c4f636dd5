"""Platform-wide exception hierarchy."""

class AgentPlatformError(Exception):
    """Base exception for all agent platform errors."""
    pass

class WorkflowError(AgentPlatformError):
    """Error in workflow construction or execution."""
    def __init__(self, message: str, workflow: str | None = None):
        self.workflow = workflow
        super().__init__(f"Workflow '{workflow}': {message}" if workflow else message)

class GraphError(WorkflowError):
    """Invalid dependency graph operation: unknown id, self-dependency or cycle."""
    pass

class StepExecutionError(WorkflowError):
    """A single step failed. Captured per step, never aborts a run by itself."""
    def __init__(self, step_id: str, message: str, original_error: Exception | None = None):
        self.step_id = step_id
        self.original_error = original_error
        super().__init__(message)

class StructuralError(WorkflowError):
    """Workflow is malformed or inconsistent at run start."""
    pass

class WorkflowLoadError(WorkflowError):
    """Workflow definition file could not be parsed or resolved."""
    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")
