from __future__ import annotations

from octetbucket.models.base import Base as Base  # noqa: F401
from octetbucket.models.blob import StoredBlobRow  # noqa: F401
