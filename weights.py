"""
Binary weight store.

Layout (little endian): a uint32 table count, then for each table a uint64
element count followed by that many float32 values.
"""

import os
import struct
from pathlib import Path
from typing import Sequence

import numpy as np
import torch

_COUNT = struct.Struct("<I")
_LENGTH = struct.Struct("<Q")
_DTYPE = np.dtype("<f4")


class WeightStoreError(OSError):
    """The weight file could not be read or written."""


def save_weights(path: str | Path, tables: Sequence[torch.Tensor]) -> None:
    try:
        with open(path, "wb") as f:
            f.write(_COUNT.pack(len(tables)))
            for table in tables:
                data = table.detach().cpu().contiguous().numpy().astype(_DTYPE, copy=False)
                f.write(_LENGTH.pack(data.size))
                data.tofile(f)
    except OSError as e:
        raise WeightStoreError(f"cannot write weights to {path}: {e}") from e


def load_weights(path: str | Path) -> list[torch.Tensor]:
    """Read every table of a weight file. Nothing is returned unless all of it parses."""
    try:
        f = open(path, "rb")
    except OSError as e:
        raise WeightStoreError(f"cannot open weights at {path}: {e}") from e

    with f:
        header = f.read(_COUNT.size)
        if len(header) != _COUNT.size:
            raise WeightStoreError(f"{path}: missing table count")
        (count,) = _COUNT.unpack(header)

        tables = []
        for i in range(count):
            prefix = f.read(_LENGTH.size)
            if len(prefix) != _LENGTH.size:
                raise WeightStoreError(f"{path}: table {i} of {count} is missing")
            (length,) = _LENGTH.unpack(prefix)
            remaining = os.fstat(f.fileno()).st_size - f.tell()
            if length * _DTYPE.itemsize > remaining:
                raise WeightStoreError(
                    f"{path}: table {i} claims {length} values, only {remaining} bytes left"
                )

            data = np.fromfile(f, dtype=_DTYPE, count=length)
            if data.size != length:
                raise WeightStoreError(
                    f"{path}: table {i} is truncated ({data.size} of {length} values)"
                )
            tables.append(torch.from_numpy(data.astype(np.float32, copy=False)))

        if f.read(1):
            raise WeightStoreError(f"{path}: trailing data after {count} tables")
    return tables
