"""Percentile-based quality tolerance limits (QTL)."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import pandas as pd

from ..config.config_loader import QTLPercentiles, get_qtl_percentiles
from ..config.constants import BAND_BELOW, BAND_WITHIN, BAND_ABOVE, QTL_BAND
from ..config.logging_config import get_logger
from .exceptions import ValidationError

logger = get_logger("qtl")


@dataclass
class QTLResult:
    """Thresholds for one metric and the input rows labelled with a band."""

    data: pd.DataFrame
    metric: str
    lower_limit: float
    secondary_limit: float
    upper_limit: float
    percentiles: QTLPercentiles
    band_column: str = QTL_BAND

    @property
    def thresholds(self) -> Tuple[float, float, float]:
        return (self.lower_limit, self.secondary_limit, self.upper_limit)

    @property
    def band_counts(self) -> Dict[str, int]:
        """Rows per band, in band order; unlabelled (null) rows are not counted."""
        counts = self.data[self.band_column].value_counts()
        labels = [BAND_BELOW, BAND_WITHIN, self.percentiles.secondary_label, BAND_ABOVE]
        return {label: int(counts.get(label, 0)) for label in labels}


class QTLThresholdEngine:
    """
    Derives lower/secondary/upper limits from one numeric column and bands rows.

    Bands (a value equal to a limit stays in the inner band):
        value < lower              -> "Below QTL"
        value > upper              -> "Above QTL"
        secondary < value <= upper -> "Above 45th Percentile"
        otherwise                  -> "Within QTL"
    """

    def __init__(
        self,
        metric: str,
        percentiles: Optional[QTLPercentiles] = None,
        band_column: str = QTL_BAND,
    ):
        self.metric = metric
        self.percentiles = percentiles or get_qtl_percentiles()
        self.band_column = band_column

    def _values(self, data: pd.DataFrame) -> pd.Series:
        if self.metric not in data.columns:
            raise ValidationError(
                f"QTL metric column '{self.metric}' not found",
                column=self.metric,
                details={"columns": list(data.columns)},
            )
        values = data[self.metric]
        if pd.api.types.is_bool_dtype(values) or not pd.api.types.is_numeric_dtype(values):
            raise ValidationError(
                f"QTL metric column '{self.metric}' must be numeric (dtype {values.dtype})",
                column=self.metric,
            )
        if values.notna().sum() == 0:
            raise ValidationError(
                f"QTL metric column '{self.metric}' has no non-null values",
                column=self.metric,
            )
        return values.astype(float)

    def compute_thresholds(self, data: pd.DataFrame) -> Tuple[float, float, float]:
        """
        Percentile limits of the metric column, ignoring nulls.

        Raises:
            ValidationError: If the column is unusable or the secondary limit
                is not strictly below the upper limit.
        """
        values = self._values(data).dropna()
        lower, secondary, upper = (float(v) for v in values.quantile(list(self.percentiles.quantiles)))

        if not secondary < upper:
            raise ValidationError(
                f"QTL secondary limit ({secondary}) must be below the upper limit ({upper}) "
                f"for '{self.metric}'",
                column=self.metric,
                details={"lower": lower, "secondary": secondary, "upper": upper},
            )
        return (lower, secondary, upper)

    def classify(self, value: float, lower: float, secondary: float, upper: float) -> Optional[str]:
        """Band label for a single value; None for a missing value."""
        if pd.isna(value):
            return None
        if value < lower:
            return BAND_BELOW
        if value > upper:
            return BAND_ABOVE
        if value > secondary:
            return self.percentiles.secondary_label
        return BAND_WITHIN

    def evaluate(self, data: pd.DataFrame) -> QTLResult:
        """Compute the limits and label every row of data."""
        lower, secondary, upper = self.compute_thresholds(data)

        annotated = data.copy()
        annotated[self.band_column] = pd.Series(
            [self.classify(v, lower, secondary, upper) for v in data[self.metric].astype(float)],
            index=data.index,
            dtype=object,
        )

        result = QTLResult(
            data=annotated,
            metric=self.metric,
            lower_limit=lower,
            secondary_limit=secondary,
            upper_limit=upper,
            percentiles=self.percentiles,
            band_column=self.band_column,
        )
        logger.info(
            f"QTL for {self.metric}: lower={lower:.4f}, secondary={secondary:.4f}, "
            f"upper={upper:.4f}; bands {result.band_counts}"
        )
        return result
