"""Command-line interface for ATAC-Bridge.

Provides CLI commands for the individual analysis steps and the full workflow.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from .. import __version__


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logger = logging.getLogger("atac_bridge")
    logger.setLevel(level)
    return logger


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="atac-bridge")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """ATAC-Bridge: map scATAC-seq data onto a labelled multiome reference.

    Quantifies a query fragment file over the reference peaks, integrates the
    two datasets and transfers labels and gene expression to the query.

    Examples:

        # Count fragments per barcode
        atac-bridge count-fragments --fragments atac_fragments.tsv.gz --out counts.csv

        # Build the query peak matrix
        atac-bridge quantify --fragments atac_fragments.tsv.gz \\
            --reference multiome.h5ad --counts counts.csv --out query.h5ad

        # Transfer labels
        atac-bridge transfer --reference multiome.h5ad --query query.h5ad --out mapped.h5ad

        # Run full workflow from config
        atac-bridge run --config workflow.yaml
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command("count-fragments")
@click.option("--fragments", "-f", "fragment_path", required=True,
              type=click.Path(exists=True), help="Fragment file (.tsv.gz)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output CSV of per-barcode counts")
@click.option("--min-fragments", type=int, default=None,
              help="Also write the selected cells (more fragments than this)")
@click.option("--max-fragments", type=int, default=None,
              help="Upper fragment bound for selected cells")
@click.option("--no-index-check", is_flag=True, help="Do not require a .tbi index")
@click.pass_context
def count_fragments_cmd(
    ctx: click.Context,
    fragment_path: str,
    output_path: str,
    min_fragments: Optional[int],
    max_fragments: Optional[int],
    no_index_check: bool,
) -> None:
    """Count fragments per cell barcode."""
    logger = ctx.obj["logger"]

    from atac_bridge.core.fragments import (
        count_fragments,
        select_cells,
        validate_fragment_file,
    )
    from atac_bridge.io import write_table

    try:
        path = validate_fragment_file(fragment_path, require_index=not no_index_check)
        counts = count_fragments(path)
        write_table(counts, output_path)
        click.echo(f"Counted fragments for {len(counts):,} barcodes -> {output_path}")

        if min_fragments is not None:
            cells = select_cells(counts, min_fragments, max_fragments)
            selected_path = Path(output_path).with_name(
                Path(output_path).stem + "_selected.csv"
            )
            write_table(counts.loc[cells], selected_path)
            click.echo(f"Selected {len(cells):,} cells -> {selected_path}")
    except (FileNotFoundError, ValueError) as e:
        logger.debug("count-fragments failed", exc_info=True)
        _fail(str(e))


@cli.command()
@click.option("--fragments", "-f", "fragment_path", required=True,
              type=click.Path(exists=True), help="Query fragment file (.tsv.gz)")
@click.option("--reference", "-r", "reference_path", required=True,
              type=click.Path(exists=True), help="Reference AnnData whose peaks are counted")
@click.option("--counts", "counts_path", required=True, type=click.Path(exists=True),
              help="Per-barcode counts from count-fragments")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output AnnData (.h5ad)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Workflow YAML ('fragments' and 'quantification' sections)")
@click.pass_context
def quantify(
    ctx: click.Context,
    fragment_path: str,
    reference_path: str,
    counts_path: str,
    output_path: str,
    config: Optional[str],
) -> None:
    """Quantify query fragments over the reference peaks and apply cell QC."""
    logger = ctx.obj["logger"]

    from atac_bridge.core.fragments import FragmentConfig, select_cells
    from atac_bridge.core.quantification import (
        QuantificationConfig,
        create_chromatin_object,
        quantify_features,
    )
    from atac_bridge.io import read_h5ad, read_table, write_h5ad

    frag_cfg = FragmentConfig.from_yaml(Path(config)) if config else FragmentConfig()
    quant_cfg = (
        QuantificationConfig.from_yaml(Path(config)) if config else QuantificationConfig()
    )

    try:
        reference = read_h5ad(reference_path)
        counts = read_table(counts_path)
        cells = select_cells(counts, frag_cfg.min_fragments, frag_cfg.max_fragments)
        matrix = quantify_features(
            fragment_path,
            peaks=reference.var_names,
            cells=cells,
            chrom_sizes=quant_cfg.genome,
            sorted_by_barcode=quant_cfg.sorted_by_barcode,
            counting_strategy=quant_cfg.counting_strategy,
            logger=logger,
        )
        result = create_chromatin_object(
            matrix, quant_cfg, fragment_counts=counts.loc[cells], logger=logger
        )
    except (FileNotFoundError, ValueError) as e:
        logger.debug("quantify failed", exc_info=True)
        _fail(str(e))

    write_h5ad(result.adata, output_path)
    click.echo(
        f"Quantified {result.n_cells_kept:,} cells x {result.n_features_kept:,} peaks"
    )
    click.echo(f"Output saved to: {output_path}")


@cli.command()
@click.option("--reference", "-r", "reference_path", required=True,
              type=click.Path(exists=True), help="Reference AnnData (.h5ad)")
@click.option("--query", "-q", "query_path", required=True,
              type=click.Path(exists=True), help="Query AnnData (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Merged, integrated AnnData (.h5ad)")
@click.option("--method", type=click.Choice(["mnc", "harmony"]), default=None,
              help="Integration method (overrides config)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Workflow YAML ('reduction' and 'integration' sections)")
@click.pass_context
def integrate(
    ctx: click.Context,
    reference_path: str,
    query_path: str,
    output_path: str,
    method: Optional[str],
    config: Optional[str],
) -> None:
    """Merge reference and query and integrate their embeddings."""
    logger = ctx.obj["logger"]

    from atac_bridge.core.integration import IntegrationConfig, IntegrationEngine
    from atac_bridge.core.reduction import ReductionConfig
    from atac_bridge.io import read_h5ad, write_h5ad

    int_cfg = IntegrationConfig.from_yaml(Path(config)) if config else IntegrationConfig()
    red_cfg = ReductionConfig.from_yaml(Path(config)) if config else ReductionConfig()
    if method:
        int_cfg.method = method

    try:
        engine = IntegrationEngine(int_cfg, reduction=red_cfg, logger=logger)
        result = engine.run(read_h5ad(reference_path), read_h5ad(query_path))
    except (FileNotFoundError, ValueError) as e:
        logger.debug("integrate failed", exc_info=True)
        _fail(str(e))

    write_h5ad(result.adata, output_path)
    click.echo(
        "Dataset mixing: "
        f"{result.mixing['unintegrated']:.3f} merged -> "
        f"{result.mixing['integrated']:.3f} integrated"
    )
    click.echo(f"Output saved to: {output_path}")


@cli.command()
@click.option("--reference", "-r", "reference_path", required=True,
              type=click.Path(exists=True), help="Labelled reference AnnData (.h5ad)")
@click.option("--query", "-q", "query_path", required=True,
              type=click.Path(exists=True), help="Query AnnData (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Mapped query AnnData (.h5ad)")
@click.option("--label-key", default=None, help="Reference label column (overrides config)")
@click.option("--expression", "expression_path", type=click.Path(exists=True),
              help="Reference gene expression AnnData to transfer")
@click.option("--gene", "genes", multiple=True, help="Gene to transfer (repeatable)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Workflow YAML ('reduction' and 'transfer' sections)")
@click.pass_context
def transfer(
    ctx: click.Context,
    reference_path: str,
    query_path: str,
    output_path: str,
    label_key: Optional[str],
    expression_path: Optional[str],
    genes: Tuple[str, ...],
    config: Optional[str],
) -> None:
    """Map the query onto the reference and transfer labels (and expression)."""
    logger = ctx.obj["logger"]

    from atac_bridge.core.reduction import ReductionConfig
    from atac_bridge.core.transfer import ReferenceMapper, TransferConfig
    from atac_bridge.io import read_h5ad, write_h5ad, write_table

    transfer_cfg = TransferConfig.from_yaml(Path(config)) if config else TransferConfig()
    red_cfg = ReductionConfig.from_yaml(Path(config)) if config else ReductionConfig()
    if label_key:
        transfer_cfg.label_key = label_key

    try:
        reference = read_h5ad(reference_path)
        query = read_h5ad(query_path)
        mapper = ReferenceMapper(transfer_cfg, reduction=red_cfg, logger=logger)
        mapper.fit(reference)
        result = mapper.map_query(query)
        if expression_path:
            mapper.transfer_expression(
                query, read_h5ad(expression_path), genes=list(genes) or None
            )
    except (FileNotFoundError, ValueError) as e:
        logger.debug("transfer failed", exc_info=True)
        _fail(str(e))

    write_h5ad(query, output_path)
    anchors_path = Path(output_path).with_name(Path(output_path).stem + "_anchors.csv")
    write_table(result.anchors, anchors_path, index=False)

    click.echo(f"Found {result.n_anchors:,} anchors (mean score {result.mean_score:.3f})")
    for label, count in sorted(result.label_counts.items(), key=lambda x: -x[1]):
        click.echo(f"  {label}: {count:,}")
    click.echo(f"Output saved to: {output_path}")


@cli.command()
@click.option("--config", "-c", required=True, type=click.Path(exists=True),
              help="Workflow configuration file (YAML)")
@click.option("--start-step", help="Step to start from")
@click.option("--end-step", help="Step to end at")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.option("--force", is_flag=True, help="Ignore checkpoint and re-run all steps")
@click.option("--resume", is_flag=True, help="Resume from the first incomplete step")
@click.pass_context
def run(
    ctx: click.Context,
    config: str,
    start_step: Optional[str],
    end_step: Optional[str],
    dry_run: bool,
    force: bool,
    resume: bool,
) -> None:
    """Run the full workflow from a YAML configuration.

    Steps: fragments -> quantify -> reduce -> integrate / transfer -> plots
    """
    verbose = ctx.obj["verbose"] or ctx.obj["debug"]

    from atac_bridge.pipeline import WorkflowConfig, WorkflowExecutor, WorkflowLogger
    from atac_bridge.workflow import build_workflow

    workflow_config = WorkflowConfig(config).load()
    valid, errors = workflow_config.validate()
    if not valid:
        for error in errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(1)

    steps = build_workflow(workflow_config)
    click.echo(f"Workflow steps: {' -> '.join(s.step_id for s in steps)}")

    workflow_logger = WorkflowLogger(
        workflow_config.paths["log_dir"], log_level="DEBUG" if verbose else "INFO"
    )
    workflow_logger.setup()

    executor = WorkflowExecutor(
        steps, workflow_logger, state_file=workflow_config.paths["state_file"]
    )

    if resume and not force:
        resume_step = executor.get_resume_step()
        if resume_step:
            click.echo(f"Resuming from step: {resume_step}")
            start_step = resume_step

    try:
        executor.run(
            start_step=start_step,
            end_step=end_step,
            dry_run=dry_run,
            force=force,
        )
    except Exception as e:
        click.echo(f"Workflow failed: {type(e).__name__}: {e}", err=True)
        click.echo(f"See log: {workflow_logger.log_file}", err=True)
        sys.exit(1)
    finally:
        workflow_logger.close()

    if dry_run:
        click.echo("Dry run - no steps were executed")
    else:
        click.echo("Workflow completed successfully")
        click.echo(f"Result saved to: {workflow_config.paths['result']}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
