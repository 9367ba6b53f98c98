import argparse
import logging
import os
import sys
from pathlib import Path

import pandas as pd

from analysis.dfa import run_dfa
from analysis.pca import run_pca
from analysis.plots import (
    plot_biplot,
    plot_classification_table,
    plot_dfa_scatter,
    plot_loadings,
    plot_pca_scatter,
    plot_scree,
    save_figure,
)
from mapping.range_map import load_layer, localities_to_points, plot_range_map
from preprocessing.data_utils import (
    describe_measurements,
    load_measurements,
    log_transform,
    select_measurements,
)
from preprocessing.missing_data import PruneResult, prune_missing
from utils.helpers import load_config, setup_logging, write_text

logger = logging.getLogger(__name__)


def prepare_dataset(config: dict) -> tuple[pd.DataFrame, pd.DataFrame, PruneResult]:
    """Loads the spreadsheet and reduces it to a complete measurement table

    Args:
        config(dict): Parsed configuration

    Returns:
        tuple[pd.DataFrame, pd.DataFrame, PruneResult]: The raw specimen table, the
        complete measurements and the pruning record
    """
    data_cfg = config["data"]
    prep_cfg = config["preprocessing"]

    raw = load_measurements(data_cfg["path"], data_cfg["sheet_name"], data_cfg["id_column"])

    exclude = list(data_cfg["exclude_columns"]) + [
        data_cfg["group_column"],
        data_cfg["longitude_column"],
        data_cfg["latitude_column"],
    ]
    measurements = select_measurements(raw, data_cfg["measurement_columns"], exclude)
    logger.info(f"Measurements:\n{describe_measurements(measurements).to_string()}")

    if prep_cfg["log_transform"]:
        measurements = log_transform(measurements, prep_cfg["log_base"])
        logger.info(f"Log{prep_cfg['log_base']}-transformed measurements")

    pruned = prune_missing(
        measurements,
        max_column_missing=prep_cfg["max_column_missing"],
        min_columns=prep_cfg["min_columns"],
        min_rows=prep_cfg["min_rows"],
    )
    return raw, pruned.data, pruned


def _groups(raw: pd.DataFrame, data: pd.DataFrame, column: str):
    if column not in raw.columns:
        logger.warning(f"Group column '{column}' not found, specimens will not be grouped")
        return None
    return raw.loc[data.index, column]


def run_pca_walkthrough(config: dict, raw: pd.DataFrame, data: pd.DataFrame, pruned: PruneResult, output_dir: str):
    """Runs the PCA and writes its report, tables and figures"""
    pca_cfg = config["pca"]
    dpi = config["output"]["dpi"]

    result = run_pca(data, pca_cfg["use_correlation"], pca_cfg["n_components"])
    groups = _groups(raw, data, config["data"]["group_column"])

    report = "\n\n".join(
        [
            pruned.summary(),
            "Descriptive statistics:\n" + describe_measurements(data).to_string(float_format=lambda v: f"{v:.4f}"),
            result.summary(),
        ]
    )
    write_text(os.path.join(output_dir, "pca_report.txt"), report)
    result.scores.to_csv(os.path.join(output_dir, "pca_scores.csv"))
    result.loadings.to_csv(os.path.join(output_dir, "pca_loadings.csv"))

    save_figure(
        plot_pca_scatter(result, groups, hulls=pca_cfg["hulls"], ellipses=pca_cfg["ellipses"]),
        os.path.join(output_dir, "pca_scatter.png"),
        dpi,
    )
    save_figure(plot_scree(result), os.path.join(output_dir, "pca_scree.png"), dpi)
    save_figure(
        plot_loadings(result, pca_cfg["loadings_components"]),
        os.path.join(output_dir, "pca_loadings.png"),
        dpi,
    )
    save_figure(
        plot_biplot(result, groups, n_arrows=pca_cfg["biplot_arrows"]),
        os.path.join(output_dir, "pca_biplot.png"),
        dpi,
    )
    return result


def run_dfa_walkthrough(config: dict, raw: pd.DataFrame, data: pd.DataFrame, output_dir: str):
    """Runs the DFA and writes its report, tables and figures"""
    dfa_cfg = config["dfa"]
    dpi = config["output"]["dpi"]
    group_column = config["data"]["group_column"]

    if group_column not in raw.columns:
        raise ValueError(f"Group column '{group_column}' not found, cannot run a DFA")

    result = run_dfa(
        data,
        raw.loc[data.index, group_column],
        priors=dfa_cfg["priors"],
        min_group_size=dfa_cfg["min_group_size"],
    )

    misclassified = result.misclassified()
    report = result.summary()
    if not misclassified.empty:
        report += "\n\nMisclassified specimens (jackknifed):\n" + misclassified.to_string()
    write_text(os.path.join(output_dir, "dfa_report.txt"), report)

    result.scores.assign(actual=result.groups, jackknifed=result.jackknife).to_csv(
        os.path.join(output_dir, "dfa_scores.csv")
    )
    result.structure.to_csv(os.path.join(output_dir, "dfa_structure.csv"))

    save_figure(plot_dfa_scatter(result), os.path.join(output_dir, "dfa_scatter.png"), dpi)
    save_figure(
        plot_classification_table(result),
        os.path.join(output_dir, "dfa_classification.png"),
        dpi,
    )
    return result


def run_map_walkthrough(config: dict, raw: pd.DataFrame, output_dir: str):
    """Draws the range map with the specimen localities"""
    map_cfg = config["map"]
    data_cfg = config["data"]

    range_polygons = load_layer(map_cfg["range"], map_cfg["crs"])
    boundaries = load_layer(map_cfg["boundaries"], map_cfg["crs"]) if map_cfg["boundaries"] else None

    points = None
    if data_cfg["longitude_column"] in raw.columns and data_cfg["latitude_column"] in raw.columns:
        points = localities_to_points(raw, data_cfg["longitude_column"], data_cfg["latitude_column"])
    else:
        logger.warning("No coordinate columns found, drawing the range only")

    fig = plot_range_map(
        boundaries,
        range_polygons,
        points,
        group_column=data_cfg["group_column"],
        padding=map_cfg["padding"],
        title=map_cfg["title"],
    )
    return save_figure(fig, os.path.join(output_dir, "range_map.png"), config["output"]["dpi"])


def main(argv: list[str] | None = None) -> int:
    home_directory = Path(__file__).parent.parent

    parser = argparse.ArgumentParser(
        description="PCA, DFA and range map walkthroughs for skull and mandible measurements."
    )
    parser.add_argument(
        "command", choices=["pca", "dfa", "map", "all"], help="Walkthrough to run."
    )
    parser.add_argument(
        "--config",
        default=str(home_directory / "configs" / "config.yaml"),
        help="Path to the YAML configuration.",
    )
    parser.add_argument("--output-dir", help="Overrides output.dir from the configuration.")
    parser.add_argument("--log-file", help="Also append the log to this file; overrides output.log_file.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debugging details.")
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level, log_file=args.log_file)

    try:
        config = load_config(args.config)
        if not args.log_file and config["output"]["log_file"]:
            setup_logging(level, log_file=config["output"]["log_file"])
        output_dir = args.output_dir or config["output"]["dir"]
        os.makedirs(output_dir, exist_ok=True)

        if args.command == "map":
            raw = load_measurements(
                config["data"]["path"], config["data"]["sheet_name"], config["data"]["id_column"]
            )
            run_map_walkthrough(config, raw, output_dir)
            return 0

        raw, data, pruned = prepare_dataset(config)

        if args.command in ("pca", "all"):
            run_pca_walkthrough(config, raw, data, pruned, output_dir)
        if args.command in ("dfa", "all"):
            run_dfa_walkthrough(config, raw, data, output_dir)
        if args.command == "all":
            run_map_walkthrough(config, raw, output_dir)

    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error(f"{args.command} walkthrough failed: {e}")
        if args.verbose:
            logger.exception(e)
        return 1

    logger.info(f"Results saved to {output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
