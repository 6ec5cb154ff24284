"""In-memory extension state store.

This is the only component allowed to mutate endpoint state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping

from sipstatus.models.endpoint import CanonicalStatus, Endpoint, is_numeric_extension
from sipstatus.state.events import StatusUpdate
from sipstatus.state.policy import extension_sort_key

_logger = logging.getLogger(__name__)

EndpointPredicate = Callable[[Endpoint], bool]


class StateStore:
    """Mapping of extension to :class:`Endpoint`, safe to share across threads.

    Entries are created on first update or description preload and are never
    removed. Every read returns copies, so callers can hold on to snapshots
    without seeing later mutations.

    Upstream callbacks may run on a different thread than the HTTP loop, so
    a plain lock guards the mapping. Each write holds it for one dict
    operation; snapshots hold it for one pass over the entries.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._endpoints: dict[str, Endpoint] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)

    def upsert(self, extension: str, status: str) -> Endpoint | None:
        """Set the status of *extension*, creating the entry if needed.

        Non-numeric ids are ignored and ``None`` is returned. The description
        of an existing entry is left alone.
        """
        if not is_numeric_extension(extension):
            _logger.debug("Ignoring non-numeric extension %r", extension)
            return None

        with self._lock:
            endpoint = self._endpoints.get(extension)
            if endpoint is not None:
                _logger.debug(
                    "Existing endpoint state change extension=%s old_state=%s new_state=%s",
                    extension,
                    endpoint.status,
                    status,
                )
                endpoint.status = status
            else:
                _logger.debug("New endpoint added extension=%s state=%s", extension, status)
                endpoint = Endpoint(extension=extension, status=status)
                self._endpoints[extension] = endpoint
            return endpoint.model_copy()

    def apply(self, update: StatusUpdate) -> Endpoint | None:
        """Apply a normalized update."""
        return self.upsert(update.extension, update.status)

    def preload(
        self,
        descriptions: Mapping[str, str],
        *,
        default_status: str = CanonicalStatus.UNAVAILABLE,
    ) -> int:
        """Seed entries from the descriptor source.

        New entries get *default_status*; existing entries only get their
        description refreshed. Returns the number of entries accepted.
        """
        accepted = 0
        with self._lock:
            for extension, description in descriptions.items():
                if not is_numeric_extension(extension):
                    continue
                endpoint = self._endpoints.get(extension)
                if endpoint is None:
                    self._endpoints[extension] = Endpoint(
                        extension=extension,
                        description=description,
                        status=str(default_status),
                    )
                else:
                    endpoint.description = description
                accepted += 1
        return accepted

    def get(self, extension: str) -> Endpoint | None:
        with self._lock:
            endpoint = self._endpoints.get(extension)
            return endpoint.model_copy() if endpoint is not None else None

    def snapshot(self, predicate: EndpointPredicate | None = None) -> list[Endpoint]:
        """Return copies of all entries matching *predicate*, sorted by extension."""
        with self._lock:
            selected = [
                endpoint.model_copy()
                for endpoint in self._endpoints.values()
                if predicate is None or predicate(endpoint)
            ]
        selected.sort(key=lambda endpoint: extension_sort_key(endpoint.extension))
        return selected
