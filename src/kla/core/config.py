"""
Global configuration for KLA.

Provides:
- Default element type for newly created storage
- Kernel configuration (worker-pool size, parallel threshold)

The kernel configuration is resolved once from the environment at import
time and then passed explicitly to the algebra kernel. Kernels read it and
never mutate it; changing the thread count produces a new
:class:`KernelConfig`.

Environment:
    KLA_NUM_THREADS: Worker-pool size (default: os.cpu_count())
    KLA_PARALLEL_THRESHOLD: Minimum work size before a kernel is split
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Optional, Union

from .error import InvalidInputError

logger = logging.getLogger("kla.config")


# =============================================================================
# Kernel Configuration
# =============================================================================

@dataclass(frozen=True)
class KernelConfig:
    """
    Worker-pool settings read by the algebra kernel.

    Attributes:
        num_threads: Number of workers used to split large products and
            reductions. 1 disables splitting.
        parallel_threshold: Minimum number of stored elements an operand
            must have before work is split across workers.
    """
    num_threads: int = 1
    parallel_threshold: int = 1 << 16

    def __post_init__(self):
        if self.num_threads < 1:
            raise InvalidInputError(f"num_threads must be >= 1, got {self.num_threads}")
        if self.parallel_threshold < 1:
            raise InvalidInputError(
                f"parallel_threshold must be >= 1, got {self.parallel_threshold}"
            )

    def use_parallel(self, work: int) -> bool:
        """Whether an operand of `work` elements should be split."""
        return self.num_threads > 1 and work >= self.parallel_threshold


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return default


def _kernel_from_env() -> KernelConfig:
    threads = max(1, _env_int("KLA_NUM_THREADS", os.cpu_count() or 1))
    threshold = max(1, _env_int("KLA_PARALLEL_THRESHOLD", KernelConfig.parallel_threshold))
    return KernelConfig(num_threads=threads, parallel_threshold=threshold)


# =============================================================================
# Global Configuration State
# =============================================================================

class _Config:
    """
    Global configuration singleton.

    Holds the default element type and the process-wide kernel defaults.
    """

    def __init__(self):
        # float64 is the most compatible default
        self._default_dtype = "float64"
        self._kernel = _kernel_from_env()
        logger.debug("Kernel defaults resolved: %s", self._kernel)

    @property
    def default_dtype(self) -> str:
        """Get default element type string."""
        return self._default_dtype

    @default_dtype.setter
    def default_dtype(self, value) -> None:
        """Set default element type (DType or string)."""
        from ..matrix._dtypes import normalize_dtype, validate_dtype
        value = normalize_dtype(value)
        validate_dtype(value)
        self._default_dtype = value

    @property
    def kernel(self) -> KernelConfig:
        """Process-wide kernel configuration."""
        return self._kernel

    @kernel.setter
    def kernel(self, value: KernelConfig) -> None:
        if not isinstance(value, KernelConfig):
            raise TypeError(f"Expected KernelConfig, got {type(value).__name__}")
        self._kernel = value


# Global config instance
_config = _Config()


# =============================================================================
# Public API
# =============================================================================

def get_config() -> _Config:
    """Get global configuration instance."""
    return _config


def get_kernel_config(config: Optional[KernelConfig] = None) -> KernelConfig:
    """Return `config` if given, else the process-wide default."""
    return config if config is not None else _config.kernel


def set_num_threads(num_threads: int) -> KernelConfig:
    """
    Replace the process-wide kernel configuration with one using
    `num_threads` workers.

    Returns:
        The new default KernelConfig
    """
    _config.kernel = replace(_config.kernel, num_threads=num_threads)
    return _config.kernel


def set_default_dtype(dtype: Union[str, "object"]) -> None:
    """
    Set default element type for newly created storage.

    Example:
        >>> kla.set_default_dtype('float32')
        >>> m = kla.matrix.zeros(3, 3)  # float32 storage
    """
    _config.default_dtype = dtype
