"""The reference-mapping workflow as executor steps.

fragments -> quantify -> reduce -> integrate
                           \\-> transfer -> plots (also after integrate)
"""

import logging
from typing import Any, Dict, List

import pandas as pd

from .core.fragments import count_fragments, select_cells, validate_fragment_file
from .core.integration import IntegrationEngine
from .core.quantification import create_chromatin_object, quantify_features
from .core.reduction import reduce, run_umap
from .core.transfer import ReferenceMapper
from .io import log_json, read_h5ad
from .pipeline.config import WorkflowConfig
from .pipeline.step import Step
from .viz import generate_figures

logger = logging.getLogger(__name__)

STEP_ORDER = ["fragments", "quantify", "reduce", "integrate", "transfer", "plots"]


def build_workflow(config: WorkflowConfig) -> List[Step]:
    """Create the workflow steps for a loaded configuration.

    Parameters
    ----------
    config : WorkflowConfig
        Loaded configuration

    Returns
    -------
    List[Step]
        Steps in definition order
    """
    out = config.output_dir
    summary_path = out / "run_summary.jsonl"

    frag_cfg = config.section("fragments")
    quant_cfg = config.section("quantification")
    red_cfg = config.section("reduction")
    int_cfg = config.section("integration")
    transfer_cfg = config.section("transfer")
    plot_cfg = config.section("plots")

    def fragments_step(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        path = validate_fragment_file(
            config.path("fragments"), require_index=frag_cfg.require_index
        )
        counts = count_fragments(path, chunksize=frag_cfg.chunksize)
        cells = select_cells(
            counts,
            min_fragments=frag_cfg.min_fragments,
            max_fragments=frag_cfg.max_fragments,
        )
        log_json(summary_path, {
            "step": "fragments",
            "n_barcodes": len(counts),
            "n_selected": len(cells),
        })
        return {"fragment_counts": counts, "cell_counts": counts.loc[cells]}

    def quantify_step(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        reference = read_h5ad(config.path("reference"))
        cell_counts = results["fragments"]["cell_counts"]
        counts = quantify_features(
            config.path("fragments"),
            peaks=reference.var_names,
            cells=cell_counts.index,
            chrom_sizes=quant_cfg.genome,
            sorted_by_barcode=quant_cfg.sorted_by_barcode,
            counting_strategy=quant_cfg.counting_strategy,
        )
        result = create_chromatin_object(
            counts, quant_cfg, fragment_counts=cell_counts
        )
        log_json(summary_path, {
            "step": "quantify",
            "n_cells_quantified": result.n_cells_quantified,
            "n_cells_kept": result.n_cells_kept,
            "n_features_kept": result.n_features_kept,
            "dropped": result.dropped,
        })
        return {"query": result.adata}

    def reduce_step(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        reference = read_h5ad(config.path("reference"))
        query = results["quantify"]["query"].copy()
        for name, adata in (("reference", reference), ("query", query)):
            use_rep, _ = reduce(adata, red_cfg)
            run_umap(adata, use_rep=use_rep, dims=red_cfg.dims, config=red_cfg.umap)
            logger.info("Reduced %s: %s + X_umap", name, use_rep)
        return {"reference": reference, "query": query}

    def integrate_step(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        engine = IntegrationEngine(int_cfg, reduction=red_cfg)
        result = engine.run(results["reduce"]["reference"], results["reduce"]["query"])
        mixing = pd.DataFrame(
            {"mixing": result.mixing}
        ).rename_axis("embedding")
        log_json(summary_path, {
            "step": "integrate",
            "method": int_cfg.method,
            "n_cells": result.n_cells,
            "mixing": result.mixing,
        })
        return {"merged": result.adata, "mixing": mixing}

    def transfer_step(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        reference = results["reduce"]["reference"].copy()
        query = results["reduce"]["query"].copy()

        mapper = ReferenceMapper(transfer_cfg, reduction=red_cfg).fit(reference)
        result = mapper.map_query(query)

        expression_path = config.path("expression")
        if expression_path is not None:
            expression = read_h5ad(expression_path)
            mapper.transfer_expression(query, expression)
        else:
            logger.info("paths.expression not set; skipping expression transfer")

        label = transfer_cfg.label_key
        predictions = query.obs[[f"predicted_{label}", f"predicted_{label}_score"]].copy()
        log_json(summary_path, {
            "step": "transfer",
            "n_anchors": result.n_anchors,
            "mean_score": result.mean_score,
            "low_confidence": result.low_confidence,
            "label_counts": result.label_counts,
        })
        return {
            "result": query,
            "reference": reference,
            "anchors": result.anchors.set_index("query_cell"),
            "predictions": predictions,
        }

    def plots_step(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        if not plot_cfg.enabled:
            logger.info("Plots disabled")
            return {}
        figures = generate_figures(
            out / plot_cfg.output_subdir,
            merged=results["integrate"]["merged"],
            reference=results["transfer"]["reference"],
            query=results["transfer"]["result"],
            label_key=transfer_cfg.label_key,
            batch_key=int_cfg.batch_key,
            genes=plot_cfg.genes or None,
            max_genes=plot_cfg.max_genes,
            fmt=plot_cfg.fmt,
            point_size=plot_cfg.point_size,
            dpi=plot_cfg.dpi,
        )
        return {"figures": figures}

    return [
        Step(
            step_id="fragments",
            name="Fragment counting and cell selection",
            func=fragments_step,
            outputs={
                "fragment_counts": str(out / "fragment_counts.csv"),
                "cell_counts": str(out / "selected_cells.csv"),
            },
        ),
        Step(
            step_id="quantify",
            name="Peak quantification and QC",
            func=quantify_step,
            depends_on=["fragments"],
            outputs={"query": str(out / "query_counts.h5ad")},
        ),
        Step(
            step_id="reduce",
            name="Dimensionality reduction",
            func=reduce_step,
            depends_on=["quantify"],
            outputs={
                "reference": str(out / "reference_reduced.h5ad"),
                "query": str(out / "query_reduced.h5ad"),
            },
        ),
        Step(
            step_id="integrate",
            name="Dataset merging and integration",
            func=integrate_step,
            depends_on=["reduce"],
            outputs={
                "merged": str(out / "merged_integrated.h5ad"),
                "mixing": str(out / "dataset_mixing.csv"),
            },
        ),
        Step(
            step_id="transfer",
            name="Reference mapping and transfer",
            func=transfer_step,
            depends_on=["reduce"],
            outputs={
                "result": config.paths["result"],
                "reference": str(out / "reference_mapped.h5ad"),
                "anchors": str(out / "transfer_anchors.csv"),
                "predictions": str(out / "predictions.csv"),
            },
        ),
        Step(
            step_id="plots",
            name="Figures",
            func=plots_step,
            depends_on=["integrate", "transfer"],
        ),
    ]
