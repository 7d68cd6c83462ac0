"""
krane - mirror container images running in Kubernetes into AWS ECR.
"""

__version__ = "0.3.0"
