"""Export of KRI summaries and QTL results to CSV and Excel."""

import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional
from datetime import datetime
import io

from ..config import config
from ..config.constants import (
    FLAG_COLORS,
    QTL_BAND_COLORS,
    BAND_SECONDARY_COLOR,
    FLAG_SUFFIX,
    metric_column,
)
from ..config.logging_config import get_logger
from .kri import KRIResult
from .qtl import QTLResult

logger = get_logger("export")


class KRIExporter:
    """Export KRI and QTL tables to files or in-memory buffers."""

    def __init__(self, output_dir: Optional[Path] = None):
        """
        Initialize exporter.

        Args:
            output_dir: Directory for file exports.
        """
        self.output_dir = Path(output_dir or config.export.exports_path)

    def export_to_csv(
        self,
        df: pd.DataFrame,
        filename: Optional[str] = None,
        columns: Optional[List[str]] = None,
    ) -> Path:
        """
        Export DataFrame to CSV file.

        Args:
            df: DataFrame to export.
            filename: Output filename (generated if None).
            columns: Columns to include (all if None).

        Returns:
            Path to exported file.
        """
        filename = filename or self.generate_filename("site_kri", "csv")
        if columns:
            df = df[[c for c in columns if c in df.columns]]

        self.output_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.output_dir / filename
        df.to_csv(filepath, index=False, encoding="utf-8")

        logger.info(f"Exported {len(df)} rows to {filepath}")
        return filepath

    def export_to_csv_buffer(
        self,
        df: pd.DataFrame,
        columns: Optional[List[str]] = None,
    ) -> io.StringIO:
        """Export DataFrame to an in-memory CSV buffer."""
        if columns:
            df = df[[c for c in columns if c in df.columns]]

        buffer = io.StringIO()
        df.to_csv(buffer, index=False, encoding="utf-8")
        buffer.seek(0)
        return buffer

    def export_to_excel(
        self,
        kri_results: Dict[str, KRIResult],
        qtl_results: Optional[Dict[str, QTLResult]] = None,
        filename: Optional[str] = None,
    ) -> Path:
        """
        Export KRI and QTL results to a formatted Excel workbook.

        Args:
            kri_results: KRI results keyed by sheet name (e.g. "Deviations").
            qtl_results: QTL results keyed by sheet name.
            filename: Output filename (generated if None).

        Returns:
            Path to exported file.
        """
        filename = filename or self.generate_filename("site_kri", "xlsx")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.output_dir / filename

        self._write_workbook(filepath, kri_results, qtl_results or {})

        logger.info(f"Exported {len(kri_results)} KRI and {len(qtl_results or {})} QTL sheets to {filepath}")
        return filepath

    def export_to_excel_buffer(
        self,
        kri_results: Dict[str, KRIResult],
        qtl_results: Optional[Dict[str, QTLResult]] = None,
    ) -> io.BytesIO:
        """Export KRI and QTL results to an in-memory Excel buffer."""
        buffer = io.BytesIO()
        self._write_workbook(buffer, kri_results, qtl_results or {})
        buffer.seek(0)
        return buffer

    def _write_workbook(
        self,
        target,
        kri_results: Dict[str, KRIResult],
        qtl_results: Dict[str, QTLResult],
    ) -> None:
        with pd.ExcelWriter(target, engine="openpyxl") as writer:
            for name, result in kri_results.items():
                sheet = name[:31]
                result.summary.to_excel(writer, sheet_name=sheet, index=False)
                flag_columns = [metric_column(m, FLAG_SUFFIX) for m in result.metrics]
                self._format_sheet(writer.sheets[sheet], flag_columns, FLAG_COLORS)

            if kri_results:
                overall = pd.concat(
                    [r.overall.to_frame().assign(analysis=name) for name, r in kri_results.items()],
                    ignore_index=True,
                )
                overall.to_excel(writer, sheet_name="Overall", index=False)
                self._format_sheet(writer.sheets["Overall"], [], {})

                flag_counts = pd.DataFrame([
                    {"analysis": name, "metric": metric, "groups_flagged": count}
                    for name, r in kri_results.items()
                    for metric, count in r.flag_counts.items()
                ])
                flag_counts.to_excel(writer, sheet_name="Flag Counts", index=False)
                self._format_sheet(writer.sheets["Flag Counts"], [], {})

            for name, result in qtl_results.items():
                sheet = name[:31]
                result.data.to_excel(writer, sheet_name=sheet, index=False)
                colors = {**QTL_BAND_COLORS, result.percentiles.secondary_label: BAND_SECONDARY_COLOR}
                self._format_sheet(writer.sheets[sheet], [result.band_column], colors)

            if qtl_results:
                thresholds = pd.DataFrame([
                    {
                        "analysis": name,
                        "metric": r.metric,
                        "lower_limit": r.lower_limit,
                        "secondary_limit": r.secondary_limit,
                        "upper_limit": r.upper_limit,
                    }
                    for name, r in qtl_results.items()
                ])
                thresholds.to_excel(writer, sheet_name="QTL Limits", index=False)
                self._format_sheet(writer.sheets["QTL Limits"], [], {})

    def _format_sheet(
        self,
        worksheet,
        label_columns: List[str],
        colors: Dict[str, str],
    ) -> None:
        """Apply header styling and colour label cells by value."""
        from openpyxl.styles import Font, PatternFill, Alignment

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")

        for cell in worksheet[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            worksheet.column_dimensions[cell.column_letter].width = max(12, len(str(cell.value)) + 2)

        for cell in worksheet[1]:
            if cell.value not in label_columns:
                continue
            for row in worksheet.iter_rows(min_row=2, min_col=cell.column, max_col=cell.column):
                label_cell = row[0]
                color = colors.get(label_cell.value)
                if color:
                    label_cell.fill = PatternFill(start_color=color, end_color=color, fill_type="solid")

        worksheet.freeze_panes = "A2"
        worksheet.auto_filter.ref = worksheet.dimensions

    def generate_filename(
        self,
        base_name: str = "site_kri",
        extension: str = "csv",
        include_timestamp: bool = True,
    ) -> str:
        """Generate export filename."""
        if include_timestamp:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            return f"{base_name}_{timestamp}.{extension}"
        return f"{base_name}.{extension}"
