"""
Image reference helpers.

Translates source image references discovered in the cluster into ECR
repository names and tags, e.g.

- registry.k8s.io/ingress-nginx/controller:v1.12.3@sha256:abc... -> krane/ingress-nginx/controller:v1.12.3
- docker.io/library/busybox@sha256:abcdef... -> krane/library/busybox:sha-abcdef...
- busybox:1.37 -> krane/busybox:1.37
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from krane.error_utils import InvalidNameError, InvalidPlatformError

DIGEST_MARKER = "@sha256:"
SHORT_DIGEST_LENGTH = 12
DEFAULT_TAG = "latest"
DEFAULT_REGISTRY = "docker.io"

# ECR repository names: (?:[a-z0-9]+(?:[._-][a-z0-9]+)*/)*[a-z0-9]+(?:[._-][a-z0-9]+)*
ECR_REPOSITORY_PATTERN = re.compile(r"^(?:[a-z0-9]+(?:[._-][a-z0-9]+)*/)*[a-z0-9]+(?:[._-][a-z0-9]+)*$")


@dataclass(frozen=True)
class TranslatedImage:
    """Destination coordinates of a source image"""
    target_image: str
    repository_name: str
    tag: str


@dataclass(frozen=True)
class Platform:
    """A single os/arch[/variant] platform"""
    os: str
    architecture: str
    variant: str = ""

    def __str__(self) -> str:
        value = f"{self.os}/{self.architecture}"
        return f"{value}/{self.variant}" if self.variant else value


def looks_like_registry_host(segment: str) -> bool:
    """Return True when the first path segment of a reference is a registry host."""
    return "." in segment or ":" in segment or segment == "localhost"


def is_valid_repository_name(name: str) -> bool:
    return bool(ECR_REPOSITORY_PATTERN.match(name))


def split_digest(image: str) -> Tuple[str, str]:
    """Split ``repo@sha256:<hex>`` into ``(repo, hex)``; digest is "" when absent."""
    at = image.find(DIGEST_MARKER)
    if at == -1:
        return image, ""
    return image[:at], image[at + len(DIGEST_MARKER):]


def translate_image_name(image: str, prefix: str, registry_url: str) -> TranslatedImage:
    """Convert a source image reference into an ECR repository name and target reference.

    The source registry host is dropped, the remaining path is lowercased and
    placed under ``prefix``. Explicit tags win; digest-only references get a
    deterministic ``sha-<12 hex>`` tag; anything else becomes ``latest``.

    Args:
        image: Source image reference as found in a pod spec
        prefix: Repository namespace in the destination registry (e.g. "krane")
        registry_url: Destination registry host

    Returns:
        TranslatedImage with target reference, repository name and tag

    Raises:
        InvalidNameError: If the resulting repository name violates ECR naming rules
    """
    reference, digest = split_digest(image)

    parts = reference.split("/")
    if len(parts) > 1 and looks_like_registry_host(parts[0]):
        parts = parts[1:]

    name, tag = parts[-1], ""
    colon = name.rfind(":")
    if colon != -1:
        name, tag = name[:colon], name[colon + 1:]
    parts[-1] = name

    if not tag:
        tag = f"sha-{digest[:SHORT_DIGEST_LENGTH]}" if digest else DEFAULT_TAG

    repo_path = "/".join(parts).lower().replace(":", "-").replace("@", "-")
    repository_name = f"{prefix}/{repo_path}"

    if not is_valid_repository_name(repository_name):
        raise InvalidNameError(image, repository_name)

    return TranslatedImage(
        target_image=f"{registry_url}/{repository_name}:{tag}",
        repository_name=repository_name,
        tag=tag,
    )


def tag_of(target_image: str) -> str:
    """Return the tag after the last ':' of a target reference, or ""."""
    reference = target_image.rsplit("/", 1)[-1]
    if ":" not in reference:
        return ""
    return reference.rsplit(":", 1)[1]


def normalize_image_reference(image: str) -> str:
    """Prefix references without a registry host with docker.io/."""
    parts = image.split("/", 1)
    if len(parts) == 2 and looks_like_registry_host(parts[0]):
        return image
    return f"{DEFAULT_REGISTRY}/{image}"


def parse_platform(platform: Optional[str]) -> Optional[Platform]:
    """Parse a ``--platform`` value.

    Args:
        platform: "os/arch" or "os/arch/variant"; empty means all platforms

    Returns:
        Platform, or None when every platform of a manifest list should be kept

    Raises:
        InvalidPlatformError: For comma-separated lists or malformed values
    """
    if platform is None or not platform.strip():
        return None
    platform = platform.strip()
    if "," in platform:
        raise InvalidPlatformError(f"multiple platforms not supported: {platform}")
    parts = platform.split("/")
    if len(parts) not in (2, 3) or not all(parts):
        raise InvalidPlatformError(f"invalid platform format, expected os/arch: {platform}")
    return Platform(*parts)
