from __future__ import annotations

import re
from pathlib import Path

import structlog

from cicd_pipeline.core import (
    AuthError,
    Settings,
    StageExecutionError,
    TransientError,
    run_command,
)
from cicd_pipeline.pipeline import TagSet

log = structlog.get_logger(__name__)

_TRANSIENT_RE = re.compile(
    r"(timeout|timed out|connection reset|connection refused|"
    r"502 Bad Gateway|503 Service Unavailable|504 Gateway|TLS handshake)",
    re.IGNORECASE,
)

# registries that reject images outside an owner namespace
_NAMESPACED_HOSTS = frozenset({"ghcr.io"})


class DockerRegistry:
    """
    Pushes an archived image to the container registry.

    The archive is the one that was scanned, so the pushed image is the
    gated image; nothing is rebuilt here.
    """

    def __init__(self, settings: Settings) -> None:
        self.host = settings.registry_host
        self.username = settings.registry_username
        self.password = settings.registry_password
        self.timeout_s = settings.command_timeout_s
        self.cwd = Path(settings.workspace)

    def login(self) -> None:
        if not self.username or self.password is None:
            raise AuthError(
                f"No registry credentials for {self.host} "
                "(set CICD_REGISTRY_USERNAME / CICD_REGISTRY_PASSWORD)"
            )
        res = run_command(
            ["docker", "login", self.host, "--username", self.username, "--password-stdin"],
            cwd=self.cwd,
            input_text=self.password.get_secret_value(),
            timeout_s=self.timeout_s,
            check=False,
        )
        if not res.ok:
            raise AuthError(f"Registry {self.host} rejected credentials: {res.output_tail(3)}")
        log.info("registry.login", host=self.host, username=self.username)

    def publish(self, image_archive: Path, *, image_name: str, tags: TagSet) -> list[str]:
        repository = image_name.removeprefix(f"{self.host}/")
        if self.host in _NAMESPACED_HOSTS and "/" not in repository:
            raise StageExecutionError(
                f"{self.host} requires an owner namespace in {image_name!r} "
                "(set CICD_IMAGE_OWNER or GITHUB_REPOSITORY_OWNER)"
            )
        self.login()
        run_command(
            ["docker", "load", "--input", str(image_archive)],
            cwd=self.cwd,
            timeout_s=self.timeout_s,
        )

        pushed: list[str] = []
        for tag in tags:
            ref = f"{image_name}:{tag.value}"
            res = run_command(
                ["docker", "push", ref], cwd=self.cwd, timeout_s=self.timeout_s, check=False
            )
            if not res.ok:
                tail = res.output_tail()
                if _TRANSIENT_RE.search(tail):
                    raise TransientError(f"push of {ref} failed: {tail}")
                raise StageExecutionError(
                    f"push of {ref} failed",
                    command=res.command,
                    returncode=res.returncode,
                    output_tail=tail,
                )
            pushed.append(ref)
            log.info("registry.pushed", ref=ref)
        return pushed
