"""
Skopeo client for registry-to-registry image copies.

This module drives ``skopeo copy`` to mirror an image (all platforms of a
manifest list, or a single os/arch) from its source registry straight into
the destination registry, without pulling it to local disk.
"""

import shutil
import subprocess
import threading
import time
from typing import List, Optional

from krane.error_utils import ActionableError, CancelledError, ErrorCategory, MirrorError
from krane.image_names import Platform, normalize_image_reference, parse_platform
from krane.logging_utils import get_logger

logger = get_logger(__name__)

# How often a running copy checks for cancellation, in seconds
POLL_INTERVAL = 0.5


class SkopeoClient:
    """Standardized Skopeo client for mirror operations."""

    def __init__(
        self,
        binary: str = "skopeo",
        dest_creds: Optional[str] = None,
        dest_tls_verify: bool = True,
        src_authfile: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize SkopeoClient.

        Args:
            binary: Name or path of the skopeo executable
            dest_creds: Destination credentials in "user:password" format
            dest_tls_verify: Whether to verify TLS for the destination registry
            src_authfile: Auth file for the source registries (default: skopeo's own lookup)
            timeout: Upper bound for a single copy, in seconds (None = unbounded)
        """
        self.binary = binary
        self.dest_creds = dest_creds
        self.dest_tls_verify = dest_tls_verify
        self.src_authfile = src_authfile
        self.timeout = timeout

    def ensure_available(self) -> None:
        """Fail early when the skopeo binary cannot be found."""
        if shutil.which(self.binary) is None:
            raise ActionableError(
                message=f"skopeo executable '{self.binary}' not found",
                category=ErrorCategory.CONFIGURATION,
                suggestions=[
                    "Install skopeo (https://github.com/containers/skopeo/blob/main/install.md)",
                    "Or point skopeo.binary in config.yaml / SKOPEO_BINARY at the executable",
                ],
            )

    @staticmethod
    def _redact_command_for_logging(cmd: List[str]) -> List[str]:
        """Return a copy of the command with any credentials redacted."""
        redacted = list(cmd)

        creds_flags = ("--creds", "--src-creds", "--dest-creds")
        token_flags = ("--password", "--src-registry-token", "--dest-registry-token")

        for i, token in enumerate(redacted):
            if token in creds_flags and i + 1 < len(redacted):
                value = redacted[i + 1]
                if isinstance(value, str) and ":" in value:
                    user, _ = value.split(":", 1)
                    redacted[i + 1] = f"{user}:****"
            if token in token_flags and i + 1 < len(redacted):
                redacted[i + 1] = "****"

        return redacted

    def build_copy_command(self, src_ref: str, dest_ref: str, platform: Optional[Platform] = None) -> List[str]:
        """Build the ``skopeo copy`` command line for one image.

        Args:
            src_ref: Source image reference (registry-less references go to docker.io)
            dest_ref: Destination image reference
            platform: Restrict the copy to this platform; None copies the whole manifest list
        """
        cmd = [self.binary, "copy"]
        if platform is None:
            cmd.append("--all")
        else:
            cmd.extend(["--override-os", platform.os, "--override-arch", platform.architecture])
            if platform.variant:
                cmd.extend(["--override-variant", platform.variant])

        if self.src_authfile:
            cmd.extend(["--src-authfile", self.src_authfile])

        cmd.append(f"--dest-tls-verify={'true' if self.dest_tls_verify else 'false'}")
        if self.dest_creds:
            cmd.extend(["--dest-creds", self.dest_creds])

        cmd.extend([f"docker://{normalize_image_reference(src_ref)}", f"docker://{dest_ref}"])
        return cmd

    def mirror(
        self,
        src_ref: str,
        dest_ref: str,
        platform: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Copy an image from its source registry to the destination.

        Args:
            src_ref: Source image reference as found in the cluster
            dest_ref: Full destination reference (registry/repository:tag)
            platform: Optional single "os/arch"; empty preserves multi-arch manifests
            cancel_event: When set, the running copy is terminated

        Raises:
            InvalidPlatformError: If platform is not a single os/arch (before any network call)
            CancelledError: If cancel_event was set before or during the copy
            MirrorError: If skopeo fails or times out
        """
        cmd = self.build_copy_command(src_ref, dest_ref, parse_platform(platform))
        log_cmd = " ".join(self._redact_command_for_logging(cmd))

        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError(f"cancelled before copying {src_ref}")

        logger.debug(f"Running: {log_cmd}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                # Own process group; Ctrl-C reaches krane, which stops the copy itself
                start_new_session=True,
            )
        except OSError as e:
            raise MirrorError(f"could not start skopeo: {e}") from e

        started = time.monotonic()
        while True:
            try:
                _, stderr = proc.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    self._stop(proc)
                    raise CancelledError(f"copy of {src_ref} cancelled")
                if self.timeout and time.monotonic() - started > self.timeout:
                    self._stop(proc)
                    logger.error(f"Skopeo copy timed out after {self.timeout}s: {log_cmd}")
                    raise MirrorError(f"copy of {src_ref} timed out after {self.timeout}s")

        if proc.returncode != 0:
            stderr = (stderr or "").strip()
            logger.debug(f"Skopeo copy failed: {log_cmd}")
            raise MirrorError(f"mirror failed {src_ref} -> {dest_ref}: {stderr or f'exit code {proc.returncode}'}",
                              stderr=stderr)

    @staticmethod
    def _stop(proc: subprocess.Popen) -> None:
        """Terminate a running skopeo process, killing it if it lingers."""
        proc.terminate()
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
