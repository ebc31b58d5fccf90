from __future__ import annotations

import typer
from typing import Optional

from pxwriter.vis.hitmap import save_hitmap_png

app = typer.Typer(help="pxwriter run-file visualization tools")

@app.command("hitmap")
def hitmap(
    run_path: str = typer.Argument(..., help="Path to a pxwriter run file (HDF5)"),
    collection: Optional[str] = typer.Option(None, "--collection", "-c", help="Only this output collection"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
):
    """Render per-sensor pixel hit maps of a run file to a PNG."""
    out_png = save_hitmap_png(run_path, out_png=out, collection=collection)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
