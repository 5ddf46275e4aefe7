"""cibuild: validated, mirrored Build records for a CI backend.

  - Build aggregate with rule-gated, atomic commits
  - Best-effort mirroring of committed builds into a document store
  - Per-build log routing, including remote command output
"""

__version__ = "0.1.0"
__description__ = "Validated transactional Build aggregate for a CI backend"

from cibuild.core.build import BuildAggregate, create_build
from cibuild.cli.app import app as cli

__all__ = ["BuildAggregate", "create_build", "cli", "__version__"]
