from __future__ import annotations

import os
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

import numpy as np
import typer
from tqdm import tqdm

from pxwriter.config.assignment import CollectionAssignment, CollectionAssignmentResolver
from pxwriter.config.load import load_config, snapshot_config_toml
from pxwriter.config.schemas import Config, WriterCfg
from pxwriter.errors import LifecycleError
from pxwriter.geometry.detector import GeometryRegistry
from pxwriter.io.adapters import make_adapter
from pxwriter.io.event_record import EventRecordBuilder, OutputRecord
from pxwriter.io.gear import GeometryExporter
from pxwriter.io.run_store import RunFileSession, SessionState
from pxwriter.physics.hits import PixelHitMessage
from pxwriter.sim.synth import synth_pixel_events
from pxwriter.utils.logger import configure, logger

EventMessages = Tuple[int, List[PixelHitMessage]]


@dataclass(frozen=True)
class WriterSummary:
    n_events: int
    event_file: Path
    geometry_file: Optional[Path]


class WriterModule:
    """
    Event-record writer plus GEAR geometry export for one run.

    Lifecycle mirrors the framework module it serves:

      WriterModule(...)  resolve detector -> collection assignment
      initialize()       open the run file, write the run header
      run(n, messages)   build and append one event (thread-safe)
      finalize()         close the run file, write the geometry once
    """

    def __init__(
        self,
        writer_cfg: WriterCfg,
        registry: GeometryRegistry,
        *,
        output_dir: str | Path = ".",
        run_number: int = 1,
        config_text: Optional[str] = None,
    ):
        self.cfg = writer_cfg
        self.registry = registry
        self.output_dir = Path(output_dir)
        self.run_number = int(run_number)
        self.config_text = config_text

        self.assignment: CollectionAssignment = CollectionAssignmentResolver.from_cfg(
            writer_cfg, registry.names
        ).resolve()
        self.builder = EventRecordBuilder(
            self.assignment,
            run_number=self.run_number,
            event_type=writer_cfg.event_type,
            pixel_type=writer_cfg.pixel_type,
            dump_mc_truth=writer_cfg.dump_mc_truth,
        )
        self.exporter = GeometryExporter(writer_cfg.detector_name, self.assignment.detector_to_id)
        self.session = RunFileSession()

        self.event_file: Optional[Path] = None
        self.geometry_file: Optional[Path] = None

    def create_output_file(self, name: str, extension: str) -> Path:
        """Place `name` under output_dir, adding `extension` if it has none."""
        p = Path(name)
        if not p.suffix:
            p = p.with_suffix("." + extension)
        if not p.is_absolute():
            p = self.output_dir / p
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    def initialize(self) -> None:
        if self.cfg.geometry_file:
            self.geometry_file = self.create_output_file(self.cfg.geometry_file, "xml")
        self.event_file = self.create_output_file(self.cfg.file_name, "h5")
        self.session.open(self.event_file, self.run_number, self.cfg.detector_name, config_text=self.config_text)
        logger.debug("Collections: %s", self.assignment.collection_names)

    def run(self, event_number: int, messages: Iterable[PixelHitMessage]) -> OutputRecord:
        record = self.builder.build(event_number, messages)
        self.session.append(record)
        logger.debug("Event %d: %d hits", event_number, record.n_hits)
        return record

    def finalize(self) -> WriterSummary:
        n = self.session.close()
        logger.info("Wrote %d events to file:\n%s", n, self.event_file)

        if self.geometry_file is not None:
            self.exporter.write(self.geometry_file, self.registry)
            logger.info("Wrote GEAR geometry to file:\n%s", self.geometry_file)

        return WriterSummary(n, self.event_file, self.geometry_file)

    def abort(self) -> int:
        """Close the run file after a failure, keeping the events already written."""
        if self.session.state is SessionState.OPEN:
            return self.session.close()
        return self.session.events_written


def _resolve_workers(workers) -> int:
    if workers == "auto":
        return max(1, os.cpu_count() or 1)
    if isinstance(workers, int):
        return max(0, workers)
    raise ValueError("workers must be int or 'auto'")


def process_events(
    module: WriterModule,
    events: Iterable[EventMessages],
    *,
    workers: int | str = "auto",
    progress: bool = True,
) -> int:
    """
    Feed events through module.run. workers == 0 runs in the calling thread;
    otherwise events are processed on a thread pool and appended through the
    session monitor.
    """
    if module.session.state is not SessionState.OPEN:
        raise LifecycleError("process_events requires an initialized WriterModule")

    n_workers = _resolve_workers(workers)
    done = 0

    if n_workers == 0:
        for ev, msgs in (tqdm(events, desc="events", unit="evt") if progress else events):
            module.run(ev, msgs)
            done += 1
        return done

    # at most `window` events are held in memory at once
    window = 2 * n_workers
    source = iter(events)
    pending: Set[Future] = set()
    with ThreadPoolExecutor(max_workers=n_workers) as ex:
        pbar = tqdm(desc=f"events x{n_workers}", unit="evt") if progress else None
        try:
            exhausted = False
            while True:
                while not exhausted and len(pending) < window:
                    item = next(source, None)
                    if item is None:
                        exhausted = True
                        break
                    ev, msgs = item
                    pending.add(ex.submit(module.run, ev, msgs))
                if not pending:
                    break
                finished, pending = wait(pending, return_when=FIRST_COMPLETED)
                for fut in finished:
                    fut.result()
                    done += 1
                    if pbar:
                        pbar.update(1)
        except BaseException:
            for f in pending:
                f.cancel()
            raise
        finally:
            if pbar:
                pbar.close()
    return done


def _iter_source_events(cfg: Config, registry: GeometryRegistry) -> Iterable[EventMessages]:
    """
    Event source for a standalone run.

    - "table": pixel hits read from cfg.io.input_path (CSV / Parquet / HDF5)
    - "synthetic": straight tracks generated with cfg.run.seed
    """
    if cfg.io.input_format == "table":
        return make_adapter().iter_events(cfg.io.input_path)
    rng = np.random.default_rng(cfg.run.seed)
    return synth_pixel_events(registry, cfg.run.n_events, cfg.run.hits_per_detector, rng=rng)


def run_pipeline(
    cfg_path: str,
    *,
    workers: Optional[int] = None,
    n_events: Optional[int] = None,
    diagnostics_level: Optional[int] = None,
) -> WriterSummary:
    """
    Run a full writer session from a TOML config file.

    CLI flags override the corresponding [run] fields when not None.
    """
    cfg = load_config(cfg_path)
    if workers is not None:
        cfg.run.workers = workers
    if n_events is not None:
        cfg.run.n_events = n_events
    if diagnostics_level is not None:
        cfg.run.diagnostics_level = diagnostics_level

    configure(cfg.run.diagnostics_level)
    logger.info("[run] config = %s", cfg_path)
    logger.info("[run] source=%s -> output_dir=%s", cfg.io.input_format, cfg.io.output_dir)

    registry = GeometryRegistry.from_cfg(cfg.detectors, cfg.field)
    module = WriterModule(
        cfg.writer,
        registry,
        output_dir=cfg.io.output_dir,
        run_number=cfg.run.run_number,
        config_text=snapshot_config_toml(cfg_path),
    )
    module.initialize()

    try:
        process_events(
            module,
            _iter_source_events(cfg, registry),
            workers=cfg.run.workers,
            progress=cfg.run.progress,
        )
    except BaseException:
        n = module.abort()
        logger.error("Run aborted after %d events; partial file kept at %s", n, module.event_file)
        raise

    return module.finalize()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Pixel-hit event writer and GEAR geometry exporter (pxwriter.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-j",
        help="Override [run].workers (0 = process events in the main thread)",
    ),
    n_events: Optional[int] = typer.Option(
        None,
        "--n-events",
        "-n",
        help="Override [run].n_events for the synthetic source",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Set [run].diagnostics_level = 2",
    ),
):
    """
    Write one run: event file plus GEAR geometry.
    """
    summary = run_pipeline(
        cfg_path,
        workers=workers,
        n_events=n_events,
        diagnostics_level=2 if verbose else None,
    )
    typer.echo(str(summary.event_file))
    if summary.geometry_file is not None:
        typer.echo(str(summary.geometry_file))


if __name__ == "__main__":
    app()
