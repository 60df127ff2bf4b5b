from __future__ import annotations

import pandas as pd
from openpyxl import load_workbook

from takedown_monitor.export import export_session, results_to_frame
from takedown_monitor.features.schema import REPORT_COLUMNS, FinalResult, FinalStatus, MatchStatus, Verdict


def _result(url: str, final_status: FinalStatus, status=MatchStatus.UNKNOWN, judgment=None) -> FinalResult:
    return FinalResult(
        session_id="s1",
        title="Solo Leveling",
        url=url,
        domain=url.split("/")[2],
        search_query="Solo Leveling raw",
        page=1,
        rank=1,
        status=status,
        final_status=final_status,
        llm_judgment=judgment,
        llm_reason="because" if judgment else None,
    )


RESULTS = [
    _result("https://piratesite.cc/1", FinalStatus.ILLEGAL, status=MatchStatus.ILLEGAL),
    _result("https://unknownsite.io/1", FinalStatus.PENDING, judgment=Verdict.UNCERTAIN),
    _result("https://webtoons.com/1", FinalStatus.LEGAL, status=MatchStatus.LEGAL),
]


def test_frame_uses_report_columns_and_plain_values() -> None:
    df = results_to_frame(RESULTS)

    assert list(df.columns) == list(REPORT_COLUMNS)
    assert df.loc[1, "llm_judgment"] == "uncertain"
    assert df.loc[0, "status"] == "illegal"


def test_csv_export(tmp_path) -> None:
    path = export_session(RESULTS, tmp_path / "out" / "s1.csv")

    df = pd.read_csv(path)
    assert list(df.columns) == list(REPORT_COLUMNS)
    assert len(df) == 3


def test_xlsx_export_sheets(tmp_path) -> None:
    path = export_session(RESULTS, tmp_path / "s1.xlsx")

    assert load_workbook(path).sheetnames == ["All Results", "Illegal Sites", "Pending Review"]


def test_xlsx_export_skips_empty_sheets(tmp_path) -> None:
    path = export_session(RESULTS[2:], tmp_path / "legal.xlsx")

    assert load_workbook(path).sheetnames == ["All Results"]
