"""Layout Types and Storage Metadata.

This module defines the physical layout tags for matrix storage and the
ownership model shared by storages and views.

Layout Types:
    - DENSE / DENSE_COLUMN: Contiguous row- or column-major buffer
    - DENSE_LARGE: Dense, addressed through row blocks
    - DIAGONAL: A single stored diagonal at a fixed offset
    - SPARSE: Hash of (row, col) -> value, duplicates accumulate on build
    - SPARSE_RC / SPARSE_CC: Compressed row / column
    - SPARSE_RCM / SPARSE_CCM: Per-row / per-column entry lists that may
      hold several entries per coordinate until canonicalized

Example:
    >>> mat.info().layout     # Layout.SPARSE_RC
    >>> view.info().ownership # Ownership.VIEW
"""

from enum import Enum
from typing import Tuple, Optional
from dataclasses import dataclass

__all__ = [
    'Layout',
    'Ownership',
    'StorageInfo',
]


# =============================================================================
# Enumerations
# =============================================================================

class Layout(Enum):
    """Physical storage layout of a matrix or vector."""
    DENSE = 'dense'
    DENSE_COLUMN = 'dense_column'
    DENSE_LARGE = 'dense_large'
    DIAGONAL = 'diagonal'
    SPARSE = 'sparse'
    SPARSE_RC = 'sparse_rc'
    SPARSE_CC = 'sparse_cc'
    SPARSE_RCM = 'sparse_rcm'
    SPARSE_CCM = 'sparse_ccm'

    @property
    def is_sparse(self) -> bool:
        return self not in (Layout.DENSE, Layout.DENSE_COLUMN, Layout.DENSE_LARGE)


class Ownership(Enum):
    """Data ownership model.

    Attributes:
        OWNED: The object owns its buffers.
               Created by: constructors, copy(), like()

        VIEW: The object aliases another storage through an index
              transform. It keeps the backing storage alive and never
              copies its values.
              Created by: view_transpose(), view_part(), view_row(), ...
    """
    OWNED = 'owned'
    VIEW = 'view'


# =============================================================================
# Storage Information
# =============================================================================

@dataclass
class StorageInfo:
    """Storage metadata for a matrix or vector.

    Attributes:
        layout: Physical layout of the backing storage.
        ownership: OWNED for storage, VIEW for views.
        dtype: Element type string.
        shape: Logical dimensions.
        nnz: Number of explicitly stored entries of the backing storage.

    Note:
        This is primarily for introspection and debugging.
    """
    layout: Layout
    ownership: Ownership
    dtype: str
    shape: Tuple[int, ...]
    nnz: int

    # Optional metadata
    offset: Optional[int] = None  # Diagonal offset for DIAGONAL
    is_transposed: bool = False   # Set for transpose views

    def __repr__(self) -> str:
        return (
            f"StorageInfo(layout={self.layout.value}, "
            f"ownership={self.ownership.value}, "
            f"dtype={self.dtype}, shape={self.shape}, nnz={self.nnz})"
        )
