from __future__ import annotations

from typing import Dict, Sequence, Tuple

from .types import CLASS_NAMES


def load_class_names(metadata_path: str) -> Dict[int, str]:
    """
    Load class names from a lightweight `metadata.yaml` as written next to
    exported models:

        names:
          0: RR
          1: RW
          ...

    Only the `names:` block is read.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # A new top-level key ends the block.
            if not raw[:1].isspace():
                break

            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    return names


def class_names_tuple(names: Dict[int, str], default: Sequence[str] = CLASS_NAMES) -> Tuple[str, ...]:
    """
    Turn an {id: name} mapping into the ordered label tuple the detector uses.
    Ids must be contiguous from 0 and match the model's class count.
    """

    if not names:
        return tuple(default)
    ids = sorted(names)
    if ids != list(range(len(ids))):
        raise ValueError(f"Class ids must be contiguous from 0, got {ids}")
    if len(ids) != len(default):
        raise ValueError(f"Model has {len(default)} classes, metadata lists {len(ids)}")
    return tuple(names[i] for i in ids)
