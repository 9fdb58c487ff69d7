"""Emulator binary discovery for vmctl."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from vmctl.constants import DEFAULT_EMULATOR_PATHS, EMULATOR_BINARY
from vmctl.exceptions import EmulatorNotFoundError
from vmctl.models import ControllerConfig
from vmctl.utils import log, which

SystemLookup = Callable[[str], Optional[str]]


def is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def find_emulator(
    candidate_paths: Sequence[Union[str, Path]],
    system_lookup: SystemLookup,
    binary: str = EMULATOR_BINARY,
) -> Path:
    """Return the first executable candidate, else whatever ``system_lookup`` resolves.

    Candidates are probed in order; the lookup is only consulted when none of
    them is an executable regular file.
    """
    searched = [Path(candidate) for candidate in candidate_paths]
    for path in searched:
        if is_executable_file(path):
            log("DEBUG", f"Emulator found at {path}")
            return path

    resolved = system_lookup(binary)
    if resolved is not None and resolved.strip():
        log("DEBUG", f"Emulator resolved via PATH lookup: {resolved.strip()}")
        return Path(resolved.strip())

    raise EmulatorNotFoundError(binary, searched)


class EmulatorLocator:
    def __init__(
        self,
        candidate_paths: Sequence[Union[str, Path]] = DEFAULT_EMULATOR_PATHS,
        binary: str = EMULATOR_BINARY,
        system_lookup: SystemLookup = which,
    ) -> None:
        self.candidate_paths = [Path(path) for path in candidate_paths]
        self.binary = binary
        self.system_lookup = system_lookup

    @classmethod
    def from_config(cls, config: ControllerConfig, system_lookup: SystemLookup = which) -> "EmulatorLocator":
        return cls(config.emulator_paths, binary=config.emulator_binary, system_lookup=system_lookup)

    def find(self) -> Path:
        return find_emulator(self.candidate_paths, self.system_lookup, self.binary)
