"""
AWS ECR client used as the mirror destination.

Wraps boto3 ECR and STS clients: resolves the account registry URL, fetches
authorization tokens for skopeo, creates repositories idempotently and checks
whether a tag already exists.
"""

import base64
from typing import Any, Tuple

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from krane.error_utils import RepositoryError, TagCheckError, create_ecr_auth_error
from krane.image_names import TranslatedImage, translate_image_name
from krane.logging_utils import get_logger

logger = get_logger(__name__)

ALREADY_EXISTS_CODES = ("RepositoryAlreadyExistsException",)
NOT_FOUND_CODES = ("RepositoryNotFoundException", "ImageNotFoundException")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class EcrClient:
    """Destination registry client for AWS ECR."""

    def __init__(
        self,
        region: str,
        ecr_client: Any = None,
        sts_client: Any = None,
        connect_timeout: int = 10,
        read_timeout: int = 60,
    ):
        """Initialize EcrClient and discover the AWS account ID.

        Args:
            region: AWS region hosting the registry
            ecr_client: Pre-built boto3 ECR client (created when None)
            sts_client: Pre-built boto3 STS client (created when None)
            connect_timeout: Socket connect timeout for AWS calls, in seconds
            read_timeout: Socket read timeout for AWS calls, in seconds

        Raises:
            ActionableError: If the AWS identity cannot be resolved
        """
        self.region = region
        if ecr_client is None or sts_client is None:
            import boto3

            boto_config = Config(
                region_name=region,
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                # One attempt per call, jobs are never retried
                retries={"mode": "standard", "max_attempts": 1},
            )
            ecr_client = ecr_client or boto3.client("ecr", config=boto_config)
            sts_client = sts_client or boto3.client("sts", config=boto_config)
        self._ecr = ecr_client
        self._sts = sts_client

        try:
            identity = self._sts.get_caller_identity()
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to get AWS account ID: {e}")
            raise create_ecr_auth_error(region, e) from e
        self.account_id = identity["Account"]

    @property
    def registry_url(self) -> str:
        """ECR registry host for this account and region."""
        return f"{self.account_id}.dkr.ecr.{self.region}.amazonaws.com"

    def get_auth_token(self) -> Tuple[str, str]:
        """Retrieve ECR credentials for registry operations.

        Returns:
            Tuple of (username, password)

        Raises:
            ActionableError: If no usable token is returned
        """
        try:
            response = self._ecr.get_authorization_token()
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to get ECR auth token: {e}")
            raise create_ecr_auth_error(self.region, e) from e

        auth_data = response.get("authorizationData") or []
        if not auth_data:
            raise create_ecr_auth_error(self.region, ValueError("no authorization data returned"))

        token = base64.b64decode(auth_data[0]["authorizationToken"]).decode("utf-8")
        if ":" not in token:
            raise create_ecr_auth_error(self.region, ValueError("invalid auth token format"))
        username, password = token.split(":", 1)
        return username, password

    def convert_image_name(self, image: str, prefix: str) -> TranslatedImage:
        """Translate a source image into this registry's coordinates."""
        return translate_image_name(image, prefix, self.registry_url)

    def ensure_repository(self, repository_name: str) -> bool:
        """Create an ECR repository if it doesn't already exist.

        Returns:
            True if the repository was created, False if it already existed

        Raises:
            RepositoryError: For any failure other than "already exists"
        """
        try:
            self._ecr.create_repository(repositoryName=repository_name)
        except ClientError as e:
            if _error_code(e) in ALREADY_EXISTS_CODES:
                logger.debug(f"📦 Repository {repository_name} already exists")
                return False
            raise RepositoryError(f"failed to create repository {repository_name}: {e}") from e
        except BotoCoreError as e:
            raise RepositoryError(f"failed to create repository {repository_name}: {e}") from e

        logger.info(f"✅ Created ECR repository: {repository_name}")
        return True

    def tag_exists(self, repository_name: str, tag: str) -> bool:
        """Check whether a tag exists in an ECR repository.

        A missing repository or image counts as "does not exist".

        Raises:
            TagCheckError: If the lookup itself fails
        """
        try:
            response = self._ecr.describe_images(
                repositoryName=repository_name,
                imageIds=[{"imageTag": tag}],
            )
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise TagCheckError(f"could not check existing tag for {repository_name}:{tag}: {e}") from e
        except BotoCoreError as e:
            raise TagCheckError(f"could not check existing tag for {repository_name}:{tag}: {e}") from e
        return len(response.get("imageDetails", [])) > 0
