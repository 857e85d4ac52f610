"""NpzRunLogStore — persist a :class:`RunLog` as a single archive.

The archive is a compressed numpy ``.npz`` container:

* ``channels`` — channel names in recorded order
* ``meta`` — JSON-encoded run metadata
* ``c{i}_stamps`` — float64 stamps of channel ``i``
* ``c{i}_records`` — JSON-encoded records of channel ``i``

Nothing is pickled.  Writes go to a temporary file next to the destination
and are moved into place with :func:`os.replace`, so a reader never sees a
half-written log.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import zipfile
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from fleet_sync.recording.messages import record_from_json, record_to_json
from fleet_sync.recording.multiplexer import RecordingError
from fleet_sync.recording.runlog import RunLog

logger = logging.getLogger(__name__)


class NpzRunLogStore:
    """File-backed :class:`~fleet_sync.recording.multiplexer.PersistenceSink`.

    Parameters
    ----------
    path:
        Destination file.  Used verbatim; no suffix is appended.
    """

    def __init__(self, path: str | Path = "sim.bag") -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def write(self, log: RunLog) -> None:
        """Write *log* atomically.

        Raises
        ------
        RecordingError
            If the file cannot be created or moved into place.
        """
        arrays = self._to_arrays(log)
        destination = self._path
        tmp_name: str | None = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=destination.parent,
                prefix=f".{destination.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                np.savez_compressed(handle, **arrays)
            os.replace(tmp_name, destination)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise RecordingError(f"Could not write run log to {destination}: {exc}") from exc

        if not log.total_records:
            logger.warning("Saved empty run log to %s", destination)
        logger.info(
            "Saved %d records on %d channels to %s",
            log.total_records,
            len(log),
            destination,
        )

    def load(self) -> RunLog:
        """Read the log at :attr:`path`.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        RecordingError
            If the file is not a run-log archive.
        """
        if not self._path.exists():
            raise FileNotFoundError(f"Run log not found at {self._path}.")
        try:
            with np.load(self._path, allow_pickle=False) as data:
                names = [str(name) for name in data["channels"]]
                metadata = json.loads(str(data["meta"].item())) if "meta" in data else {}
                channels = {
                    name: tuple(record_from_json(str(raw)) for raw in data[f"c{i}_records"])
                    for i, name in enumerate(names)
                }
                stamps = {
                    name: tuple(float(s) for s in data[f"c{i}_stamps"])
                    for i, name in enumerate(names)
                }
            log = RunLog(channels=channels, metadata=metadata, channel_stamps=stamps)
        except (KeyError, ValueError, OSError, zipfile.BadZipFile) as exc:
            raise RecordingError(f"{self._path} is not a readable run log: {exc}") from exc

        logger.info("Loaded %d records on %d channels from %s", log.total_records, len(log), self._path)
        return log

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_arrays(log: RunLog) -> dict[str, NDArray[np.generic]]:
        arrays: dict[str, NDArray[np.generic]] = {
            "channels": np.array(log.names, dtype=np.str_),
            "meta": np.array(json.dumps(dict(log.metadata), default=str), dtype=np.str_),
        }
        for i, name in enumerate(log.names):
            records = log[name]
            arrays[f"c{i}_stamps"] = np.array(log.stamps(name), dtype=np.float64)
            arrays[f"c{i}_records"] = np.array(
                [record_to_json(record) for record in records], dtype=np.str_
            )
        return arrays

    def __repr__(self) -> str:
        return f"NpzRunLogStore(path={str(self._path)!r})"
