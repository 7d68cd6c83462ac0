"""
Error types and actionable error messages for krane.

Setup failures (authentication, cluster access, configuration) are raised as
ActionableError and abort the run. Per-image failures are raised as KraneError
subclasses by the job executor and folded into the run summary.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class KraneError(Exception):
    """Base class for per-image failures raised while mirroring"""


class InvalidNameError(KraneError):
    """Raised when an image reference cannot be turned into a valid ECR repository name"""

    def __init__(self, image: str, repository_name: str):
        self.image = image
        self.repository_name = repository_name
        super().__init__(
            f"repository name '{repository_name}' does not match ECR naming rules "
            f"(lowercase, numbers, dots, dashes, underscores only)"
        )


class InvalidPlatformError(KraneError):
    """Raised when a --platform value is not a single os/arch pair"""


class RepositoryError(KraneError):
    """Raised when the destination repository could not be created"""


class TagCheckError(KraneError):
    """Raised when the existence of a destination tag could not be determined"""


class MirrorError(KraneError):
    """Raised when the registry-to-registry copy fails"""

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        super().__init__(message)


class CancelledError(KraneError):
    """Raised when a job is aborted because the run was cancelled"""


def create_ecr_auth_error(region: str, error: Exception) -> ActionableError:
    """Create actionable error for ECR / STS authentication failures"""
    error_str = str(error).lower()

    suggestions = [
        "Verify AWS credentials are configured (aws configure, AWS_PROFILE or instance role)",
        f"Check that ECR is available in region '{region}'",
        "Check AWS IAM permissions: sts:GetCallerIdentity, ecr:GetAuthorizationToken, "
        "ecr:CreateRepository, ecr:DescribeImages and the ecr push actions",
    ]

    if "expired" in error_str:
        suggestions.insert(0, "Refresh your AWS session (aws sso login or new temporary credentials)")

    if "credentials" in error_str:
        suggestions.insert(0, "Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY or AWS_PROFILE")

    return ActionableError(
        message=f"Failed to authenticate with AWS ECR in region {region}",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=suggestions,
        details={
            "region": region,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_kubernetes_error(operation: str, error: Exception) -> ActionableError:
    """Create actionable error for Kubernetes API failures"""
    error_str = str(error).lower()

    suggestions = [
        "Verify Kubernetes cluster access (kubectl cluster-info)",
        "Check if running in-cluster or using kubeconfig (KUBECONFIG)",
        "Verify RBAC permissions to list pods",
        "Check if the namespace exists and is accessible"
    ]

    if "403" in error_str or "forbidden" in error_str:
        suggestions.insert(0, "Check Kubernetes RBAC permissions")
        suggestions.insert(1, "Verify the service account may list pods, replicasets and jobs")

    if "404" in error_str or "not found" in error_str:
        suggestions.insert(0, "Check if the namespace name is correct")

    return ActionableError(
        message=f"Kubernetes operation failed: {operation}",
        category=ErrorCategory.PERMISSION if "403" in error_str or "forbidden" in error_str else ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "operation": operation,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )
