import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from pathlib import Path
from typing import Dict, Tuple

from pxwriter.io.run_store import iter_events

def accumulate_hitmaps(run_path: str, collection: str | None = None) -> Dict[int, np.ndarray]:
    """
    Sum hits per pixel over all events, one 2D (row, column) map per sensor ID.
    Maps are sized to the largest pixel index seen.
    """
    coords: Dict[int, list] = {}
    for rec in iter_events(run_path):
        for col in rec.collections:
            if collection is not None and col.name != collection:
                continue
            for sid in np.unique(col.hits["sensor_id"]):
                sel = col.hits[col.hits["sensor_id"] == sid]
                coords.setdefault(int(sid), []).append(np.stack([sel["y"], sel["x"]], axis=1))

    maps: Dict[int, np.ndarray] = {}
    for sid, parts in coords.items():
        yx = np.concatenate(parts, axis=0)
        shape: Tuple[int, int] = (int(yx[:, 0].max()) + 1, int(yx[:, 1].max()) + 1)
        img = np.zeros(shape, dtype=np.uint32)
        np.add.at(img, (yx[:, 0], yx[:, 1]), 1)
        maps[sid] = img
    return maps

def save_hitmap_png(run_path: str, out_png: str | None = None, collection: str | None = None):
    run_path = str(run_path)
    maps = accumulate_hitmaps(run_path, collection)
    if not maps:
        raise ValueError(f"No hits found in {run_path}" + (f" for collection {collection}" if collection else ""))

    if out_png is None:
        out_png = str(Path(run_path).with_suffix(".png"))

    n = len(maps)
    fig, axes = plt.subplots(1, n, figsize=(4 * n, 3.5), squeeze=False)
    for ax, (sid, img) in zip(axes[0], sorted(maps.items())):
        im = ax.imshow(img, origin="lower", aspect="auto")
        fig.colorbar(im, ax=ax)
        ax.set_title(f"sensor {sid}")
        ax.set_xlabel("column")
        ax.set_ylabel("row")
    fig.suptitle(Path(run_path).name + (" : " + collection if collection else ""))
    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return out_png
