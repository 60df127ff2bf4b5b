"""Export session results to CSV or Excel."""

import logging
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Union

import pandas as pd

from takedown_monitor.features.schema import REPORT_COLUMNS, FinalResult, FinalStatus

logger = logging.getLogger(__name__)


def results_to_frame(results: list[FinalResult]) -> pd.DataFrame:
    """Results as a DataFrame with report columns in report order."""
    records = []
    for result in results:
        record = asdict(result)
        for key, value in record.items():
            if isinstance(value, Enum):
                record[key] = value.value
        records.append(record)

    df = pd.DataFrame(records, columns=list(REPORT_COLUMNS) + ["session_id", "snippet"])
    return df[list(REPORT_COLUMNS)]


def export_session(results: list[FinalResult], path: Union[str, Path]) -> Path:
    """
    Write results to ``path``.

    ``.xlsx`` files get an "All Results" sheet plus "Illegal Sites" and
    "Pending Review" sheets when those are non-empty. Any other suffix is
    written as CSV.

    Returns:
        Path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = results_to_frame(results)

    if path.suffix.lower() == ".xlsx":
        illegal = df[df["final_status"] == FinalStatus.ILLEGAL.value]
        pending = df[df["final_status"] == FinalStatus.PENDING.value]

        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="All Results", index=False)
            if not illegal.empty:
                illegal.to_excel(writer, sheet_name="Illegal Sites", index=False)
            if not pending.empty:
                pending.to_excel(writer, sheet_name="Pending Review", index=False)
    else:
        df.to_csv(path, index=False)

    logger.info("Exported %d results to %s", len(df), path)
    return path
