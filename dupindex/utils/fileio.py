# dupindex/utils/fileio.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Union


def write_atomic(path: Union[str, Path], data: Union[bytes, str]) -> None:
    """Write ``data`` to ``path`` through a temporary file and rename.

    Readers never observe a half-written file; the previous content stays
    in place until the rename succeeds.
    """
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    if isinstance(data, str):
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(data)
    else:
        with open(tmp, "wb") as f:
            f.write(data)
    os.replace(tmp, path)
