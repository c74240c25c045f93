from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .calcname import CalcnameError, resolve_metadata
from .config import AnalysisConfig, BandWindow, DegeneracyOptions, load_analysis_config
from .decompose import DEFAULT_ATOL, SymmetryVector, find_degeneracies, symdata2representation
from .formatting import format_kpoint, format_kvec, format_symmetry_vector
from .irreps import OperatorMismatchError
from .mpbio import SymmetryDataError, load_symdata
from .storage import list_results, read_symmetry_vector, write_symmetry_vector
from .synthetic import demo_calculation

console = Console()
app = typer.Typer(help="Symmetry vectors of photonic bands from MPB symmetry-eigenvalue output.")

DOMAIN_ERRORS = (CalcnameError, SymmetryDataError, OperatorMismatchError, ValueError, OSError)

# analyze options that a --config file replaces
CONFIG_OPTIONS = (
    "bands",
    "sgnum",
    "dim",
    "parentdir",
    "symeigs_dir",
    "timereversal",
    "isprimitive",
    "atol",
    "kidx",
    "flip_ksign",
    "widen",
    "check_reference",
)


def configure_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    handlers: List[logging.Handler] = []
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        handlers.append(fh)
    ch = RichHandler(
        level=logging.DEBUG if verbose else logging.INFO,
        console=Console(stderr=True),
        rich_tracebacks=True,
    )
    handlers.append(ch)
    logging.basicConfig(level=logging.DEBUG, format="%(message)s", handlers=handlers, force=True)


def _results_table(vector: SymmetryVector) -> Table:
    table = Table("k", "label", "k-vector", "bands", "irrep content", "overlaps", "flags")
    for kp in vector.kpoints:
        flags = []
        if kp.widened:
            flags.append("widened")
        if kp.singular:
            flags.append("ω≈0")
        overlaps = ", ".join(f"{m.real:.3f}" for m in kp.overlaps)
        content = format_kpoint(kp)
        table.add_row(
            str(kp.kidx),
            kp.klabel,
            format_kvec(kp.kvec),
            f"{kp.bands[0] + 1}-{kp.bands[-1] + 1}",
            content if kp.resolved else f"[yellow]{content}[/]",
            overlaps,
            ", ".join(flags),
        )
    return table


def run_analysis(
    config: AnalysisConfig,
    output: Optional[Path] = None,
    raw_yaml: Optional[str] = None,
    config_hash: Optional[str] = None,
) -> SymmetryVector:
    """Compute, print and optionally store the symmetry vector described by ``config``."""

    vector = symdata2representation(config.calcname, **config.analysis_kwargs())
    console.print(_results_table(vector))
    style = "green" if vector.resolved else "yellow"
    console.print(f"[bold {style}]{escape(format_symmetry_vector(vector))}[/]")
    if output is not None:
        write_symmetry_vector(output, vector, raw_yaml, config_hash)
        console.print(f"[cyan]Stored {vector.calcname} in {output}.[/]")
    return vector


@app.command(name="analyze")
def analyze_command(
    ctx: typer.Context,
    calcname: Optional[str] = typer.Argument(None, help="Calculation name, e.g. dim3-sg68-symeigs-res32."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML analysis configuration."),
    bands: str = typer.Option("1:2", help="1-based inclusive band window, e.g. 1:2."),
    sgnum: Optional[int] = typer.Option(None, help="Space-group number (parsed from the name if omitted)."),
    dim: Optional[int] = typer.Option(None, help="Dimension (parsed from the name if omitted)."),
    parentdir: Path = typer.Option(Path("."), help="Folder with the dispersion file."),
    symeigs_dir: str = typer.Option(
        ".",
        help="Symeigs folder relative to parentdir; may use {sgnum} and {dim}, e.g. output/plane_group_{sgnum}.",
    ),
    timereversal: bool = typer.Option(True, help="Use physically irreducible irreps where possible."),
    isprimitive: bool = typer.Option(True, help="Calculation uses a primitive setting."),
    atol: float = typer.Option(DEFAULT_ATOL, help="Tolerance on integral multiplicities."),
    kidx: Optional[List[int]] = typer.Option(None, help="Restrict to these MPB k indices (repeatable)."),
    flip_ksign: bool = typer.Option(False, help="Negate the k-vectors of the dispersion file."),
    widen: bool = typer.Option(True, help="Widen the band window over degeneracies when needed."),
    check_reference: bool = typer.Option(True, help="Compare operators with the tabulated space group."),
    output: Optional[Path] = typer.Option(None, help="HDF5 file to store the result in."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages."),
    log_file: Optional[Path] = typer.Option(None, help="Write a DEBUG log to this file."),
) -> None:
    """Symmetry vector of a band window."""

    configure_logging(verbose, log_file)
    raw_yaml = config_hash = None
    try:
        if config_path is not None:
            if calcname is not None:
                console.print("[red]Pass either a calculation name or --config, not both.[/]")
                raise typer.Exit(code=1)
            ignored = [
                "--" + name.replace("_", "-")
                for name in CONFIG_OPTIONS
                if getattr(ctx.get_parameter_source(name), "name", None) == "COMMANDLINE"
            ]
            if ignored:
                console.print(f"[yellow]Ignoring {', '.join(ignored)}; --config sets the analysis.[/]")
            config, raw_yaml, config_hash = load_analysis_config(config_path)
        else:
            if calcname is None:
                console.print("[red]Pass a calculation name or --config.[/]")
                raise typer.Exit(code=1)
            config = AnalysisConfig(
                calcname=calcname,
                bands=BandWindow.parse(bands),
                sgnum=sgnum,
                dim=dim,
                parentdir=parentdir,
                symeigs_dir=symeigs_dir,
                timereversal=timereversal,
                isprimitive=isprimitive,
                atol=atol,
                flip_ksign=flip_ksign,
                kidxs=tuple(kidx) if kidx else None,
                degeneracy=DegeneracyOptions(widen=widen),
                check_reference=check_reference,
            )
            config.validate()
        run_analysis(config, output, raw_yaml, config_hash)
    except DOMAIN_ERRORS as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1) from exc


@app.command(name="inspect")
def inspect_command(
    calcname: str = typer.Argument(..., help="Calculation name."),
    sgnum: Optional[int] = typer.Option(None, help="Space-group number."),
    dim: Optional[int] = typer.Option(None, help="Dimension."),
    parentdir: Path = typer.Option(Path("."), help="Folder with the dispersion file."),
    symeigs_dir: str = typer.Option(
        ".", help="Symeigs folder relative to parentdir, e.g. output/plane_group_{sgnum}."
    ),
    flip_ksign: bool = typer.Option(False, help="Negate the k-vectors of the dispersion file."),
    isprimitive: bool = typer.Option(True, help="k-vectors are in the primitive reciprocal basis."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show the operations of every k-point."),
) -> None:
    """List k-points, their little groups and degenerate bands."""

    configure_logging(verbose)
    try:
        sgnum, dim = resolve_metadata(calcname, sgnum, dim)
        lgs = load_symdata(
            calcname,
            sgnum,
            dim,
            parentdir=parentdir,
            symeigs_dir=symeigs_dir,
            flip_ksign=flip_ksign,
            isprimitive=isprimitive,
        )
    except DOMAIN_ERRORS as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1) from exc

    console.print(f"[bold cyan]{calcname}[/]: space group {sgnum}, {dim}D, {len(lgs)} k-points")
    table = Table("k", "label", "k-vector", "|G_k|", "degenerate bands")
    for lg in lgs:
        groups = [g for g in find_degeneracies(lg.freqs) if len(g) > 1]
        degenerate = " ".join("{" + ",".join(str(b + 1) for b in g) + "}" for g in groups)
        table.add_row(str(lg.kidx), lg.klabel, format_kvec(lg.kvec), str(lg.order), degenerate or "-")
    console.print(table)
    if verbose:
        for lg in lgs:
            ops = "  ".join(op.xyzt() for op in lg.operations)
            console.print(f"{lg.klabel} (k {lg.kidx}): {ops}")


@app.command(name="show")
def show_command(
    h5_path: Path = typer.Argument(..., help="HDF5 results file."),
    calcname: Optional[str] = typer.Option(None, help="Only show this calculation."),
) -> None:
    """Print stored symmetry vectors."""

    h5_path = Path(h5_path)
    if not h5_path.exists():
        console.print(f"[red]File {h5_path} does not exist.[/]")
        raise typer.Exit(code=1)

    names = list_results(h5_path)
    if not names:
        console.print("[yellow]No results recorded yet.[/]")
        return
    targets = [calcname] if calcname else names
    table = Table("calcname", "sg", "dim", "bands", "symmetry vector", "multiplicities")
    for name in targets:
        if name not in names:
            console.print(f"[yellow]Result {name} not found.[/]")
            continue
        vector = read_symmetry_vector(h5_path, name)
        mults = str(vector.as_array().tolist()) if vector.resolved else "-"
        table.add_row(
            name,
            str(vector.sgnum),
            str(vector.dim),
            f"{vector.bands[0] + 1}-{vector.bands[-1] + 1}",
            escape(format_symmetry_vector(vector)),
            mults,
        )
    console.print(table)


@app.command(name="synthesize")
def synthesize_command(
    parentdir: Path = typer.Option(Path("synthetic"), help="Output folder."),
    sgnum: int = typer.Option(11, help="Plane-group number."),
    shuffle: bool = typer.Option(True, help="Scramble the band order like raw MPB output."),
    seed: int = typer.Option(0, help="Seed for the band shuffle."),
) -> None:
    """Write a synthetic 2D calculation at Γ, X and M for testing."""

    configure_logging()
    rng = np.random.default_rng(seed) if shuffle else None
    try:
        calcname = demo_calculation(parentdir, sgnum=sgnum, rng=rng)
    except DOMAIN_ERRORS as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Wrote {calcname} to {parentdir}.[/]")
    console.print(f"Try: bandsym analyze {calcname} --parentdir {parentdir} --bands 1:2")


__all__ = ["app", "configure_logging", "run_analysis"]


if __name__ == "__main__":  # pragma: no cover
    app()
