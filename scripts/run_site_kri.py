#!/usr/bin/env python3
"""Run site KRI and QTL analyses on CSV extracts.

Reads the subject, deviation, adverse-event and withdrawal tables, computes
the KRIs and QTL bands, and writes a CSV per summary plus one Excel workbook.

Usage:
    python scripts/run_site_kri.py --subjects subjects.csv --deviations deviations.csv \
        --adverse-events ae.csv --withdrawals withdrawals.csv --output-dir exports
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

from site_kri.analysis import KRIExporter, SiteKRIAnalyzer, ValidationError, summarize_demographics
from site_kri.config import config, setup_logging, get_logger, ConfigurationError
from site_kri.config.constants import DEVIATION_DATE, ENROLLMENT_DATE

logger = get_logger("run_site_kri")


def read_table(path: Path, date_columns=()) -> pd.DataFrame:
    """Read a CSV extract, parsing the given date columns when present."""
    df = pd.read_csv(path)
    for column in date_columns:
        if column in df.columns:
            df[column] = pd.to_datetime(df[column], errors="coerce")
    logger.info(f"Read {len(df)} rows from {path}")
    return df


def run(args: argparse.Namespace) -> int:
    subjects = read_table(args.subjects, [ENROLLMENT_DATE])
    analyzer = SiteKRIAnalyzer()
    exporter = KRIExporter(args.output_dir)

    kri_results = {}
    qtl_results = {}

    if args.deviations:
        deviations = read_table(args.deviations, [DEVIATION_DATE])
        kri_results["Deviations"] = analyzer.deviation_kri(subjects, deviations)
        qtl_results["Deviation Rate QTL"] = analyzer.site_rate_qtl(kri_results["Deviations"], "deviations")
        qtl_results["Cumulative Deviation QTL"] = analyzer.deviation_qtl(deviations)

    if args.adverse_events:
        adverse_events = read_table(args.adverse_events)
        kri_results["Adverse Events"] = analyzer.adverse_event_kri(subjects, adverse_events)

    if args.withdrawals:
        withdrawals = read_table(args.withdrawals)
        qtl_results["Withdrawal QTL"] = analyzer.withdrawal_qtl(subjects, withdrawals)

    exporter.export_to_csv(summarize_demographics(subjects), "site_demographics.csv")
    for name, result in kri_results.items():
        exporter.export_to_csv(result.summary, f"{name.lower().replace(' ', '_')}_kri.csv")
        for metric, count in result.flag_counts.items():
            logger.info(f"{name}: {count} site(s) flagged for {metric}")

    if kri_results or qtl_results:
        exporter.export_to_excel(kri_results, qtl_results)
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Compute site KRIs and QTL bands from CSV extracts"
    )
    parser.add_argument("--subjects", type=Path, required=True, help="Subject table CSV")
    parser.add_argument("--deviations", type=Path, help="Protocol deviation table CSV")
    parser.add_argument("--adverse-events", type=Path, help="Adverse event table CSV")
    parser.add_argument("--withdrawals", type=Path, help="Exposure/withdrawal table CSV")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=config.export.exports_path,
        help="Directory for CSV and Excel outputs",
    )
    parser.add_argument("--log-level", default=config.app.log_level, help="Logging level")

    args = parser.parse_args()
    setup_logging(args.log_level, log_file=config.app.log_file)

    if not args.subjects.exists():
        logger.error(f"Subject table not found: {args.subjects}")
        sys.exit(1)

    try:
        sys.exit(run(args))
    except (ValidationError, ConfigurationError) as e:
        logger.error(f"Analysis failed: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
