"""Domain errors for hawkradeploy."""


class DeployError(RuntimeError):
    """Raised when installation or removal cannot continue safely."""


class OperationCancelled(DeployError):
    """Raised when the operator declines a prompt. Not a failure."""
