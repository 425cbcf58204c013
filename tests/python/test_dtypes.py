"""
Tests for element type handling.
"""

import pytest
import numpy as np

import kla
import kla.matrix as km
from kla.matrix import (
    DType,
    DenseMatrix2D,
    normalize_dtype,
    validate_dtype,
    is_float_dtype,
    is_int_dtype,
    dtype_itemsize,
    to_numpy_dtype,
    from_numpy_dtype,
    machine_epsilon,
)


class TestDType:
    """Test DType enum."""

    def test_dtype_values(self):
        """Test DType enum values."""
        assert DType.float32.value == 'float32'
        assert DType.float64.value == 'float64'
        assert DType.int32.value == 'int32'
        assert DType.int64.value == 'int64'

    def test_module_constants(self):
        """Test module-level constants."""
        assert km.float32 == DType.float32
        assert km.float64 == DType.float64
        assert kla.int64 == DType.int64

    def test_str_and_repr(self):
        assert str(DType.float32) == 'float32'
        assert repr(DType.int32) == 'DType.int32'


class TestNormalize:
    """Test normalize / validate helpers."""

    def test_normalize_forms(self):
        """Enum, string and numpy types all normalize to strings."""
        assert normalize_dtype(DType.float32) == 'float32'
        assert normalize_dtype('float64') == 'float64'
        assert normalize_dtype(np.float32) == 'float32'
        assert normalize_dtype(np.dtype(np.int32)) == 'int32'

    def test_normalize_rejects_other_types(self):
        with pytest.raises(TypeError):
            normalize_dtype(3.5)

    def test_validate(self):
        validate_dtype('int64')
        with pytest.raises(ValueError, match="Invalid dtype"):
            validate_dtype('complex128')

    def test_predicates(self):
        assert is_float_dtype('float32')
        assert not is_float_dtype(DType.int32)
        assert is_int_dtype('int64')
        assert dtype_itemsize('float32') == 4
        assert dtype_itemsize(DType.int64) == 8


class TestNumpyMapping:
    """Test conversion between numpy dtypes and element types."""

    def test_to_numpy(self):
        assert to_numpy_dtype('float64') is np.float64
        assert to_numpy_dtype(DType.int32) is np.int32

    @pytest.mark.parametrize("np_dtype,expected", [
        (np.float32, 'float32'),
        (np.float64, 'float64'),
        (np.float16, 'float64'),
        (np.int32, 'int32'),
        (np.int8, 'int64'),
        (np.uint16, 'int64'),
        (np.bool_, 'int32'),
    ])
    def test_from_numpy(self, np_dtype, expected):
        """Unsupported widths widen to the closest supported type."""
        assert from_numpy_dtype(np_dtype) == expected

    def test_from_numpy_complex_rejected(self):
        with pytest.raises(ValueError):
            from_numpy_dtype(np.complex128)

    def test_machine_epsilon(self):
        assert machine_epsilon('float32') == pytest.approx(np.finfo(np.float32).eps)
        assert machine_epsilon('float64') == pytest.approx(np.finfo(np.float64).eps)
        # integer arithmetic is carried out in float64
        assert machine_epsilon('int32') == machine_epsilon('float64')


class TestDefaultDtype:
    """Test the configured default element type."""

    def test_default_is_float64(self):
        assert DenseMatrix2D(2, 2).dtype == 'float64'

    def test_set_default_dtype(self):
        """New storage picks up the configured default."""
        kla.set_default_dtype(DType.float32)
        try:
            assert km.zeros(2, 2).dtype == 'float32'
            assert km.zeros(2, 2, layout='sparse_rc').np_dtype is np.float32
        finally:
            kla.set_default_dtype('float64')

    def test_set_default_dtype_invalid(self):
        with pytest.raises(ValueError):
            kla.set_default_dtype('float128')

    def test_explicit_dtype(self):
        m = DenseMatrix2D(2, 2, dtype=km.int32)
        assert m.dtype == 'int32'
        assert m.to_numpy().dtype == np.int32
