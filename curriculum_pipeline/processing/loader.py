"""Lazily imported parsing libraries, owned by whoever builds the extractors."""

from __future__ import annotations

import importlib
import logging
import threading
from types import ModuleType
from typing import Callable

logger = logging.getLogger(__name__)


class LazyLibrary:
    """
    Get-or-create accessor for a heavyweight parser module.

    The module is imported on the first get() and cached on the instance.
    Double-checked locking keeps concurrent first calls from importing twice.
    """

    def __init__(
        self,
        module_name: str,
        loader: Callable[[str], ModuleType] | None = None,
    ) -> None:
        self._module_name = module_name
        self._loader = loader or importlib.import_module
        self._module: ModuleType | None = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._module_name

    @property
    def loaded(self) -> bool:
        return self._module is not None

    def get(self) -> ModuleType:
        if self._module is None:
            with self._lock:
                if self._module is None:
                    logger.info("Loading parser library | module=%s", self._module_name)
                    self._module = self._loader(self._module_name)
        return self._module
