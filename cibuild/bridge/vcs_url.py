"""Repository URL parsing.

Accepted forms::

    https://github.com/owner/project
    https://github.com/owner/project.git
    ssh://git@github.com/owner/project.git
    git@github.com:owner/project.git
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from cibuild.models.project import VcsUrl

_SCP_LIKE = re.compile(r"^[\w.-]+@(?P<host>[\w.-]+):(?P<path>[^/].*)$")


class ParseError(ValueError):
    """Raised when a repository URL cannot be parsed."""

    def __init__(self, vcs_url: object, reason: str = "") -> None:
        self.vcs_url = vcs_url
        message = f"Cannot parse repository URL {vcs_url!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


def parse(vcs_url: str) -> VcsUrl:
    """Split *vcs_url* into host, owner and project name."""
    if not isinstance(vcs_url, str) or not vcs_url.strip():
        raise ParseError(vcs_url, "empty url")

    url = vcs_url.strip()
    match = _SCP_LIKE.match(url)
    if match:
        host, path = match.group("host"), match.group("path")
    else:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https", "ssh", "git") or not parsed.hostname:
            raise ParseError(vcs_url, "unsupported scheme or missing host")
        host, path = parsed.hostname, parsed.path

    segments = [s for s in path.strip("/").split("/") if s]
    if len(segments) != 2:
        raise ParseError(vcs_url, "expected <owner>/<project>")

    owner, project = segments
    if project.endswith(".git"):
        project = project[: -len(".git")]
    if not project:
        raise ParseError(vcs_url, "empty project name")
    return VcsUrl(host=host, owner=owner, project=project)


def project_name(vcs_url: str) -> str:
    return parse(vcs_url).project
