import json
import os
from pathlib import Path


def write_json_atomic(path: Path, data) -> None:
    """
    Writes ``data`` as JSON to a temporary file next to ``path`` and swaps it in.

    Readers in other processes see either the old file or the new one, never a
    truncated one. Raises OSError when the file cannot be written; the
    temporary file is removed in that case.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=4)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
