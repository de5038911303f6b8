import pandas as pd

REQUIRED_COLUMNS = {"Scenario", "MonthIndex", "YearIndex", "MonthInYear"}
FLOW_COLUMNS = ["Contribution", "Inflow", "Cofinancing", "TaxRefund", "Growth"]


def _prepare(df: pd.DataFrame) -> pd.DataFrame:
    missing = REQUIRED_COLUMNS.difference(df.columns)
    if missing:
        raise KeyError(f"Missing required columns: {', '.join(sorted(missing))}")
    return df.sort_values(["Scenario", "MonthIndex"]).copy()


def aggregate_period(df: pd.DataFrame, freq: str = "M") -> pd.DataFrame:
    """Aggregate monthly trajectory records to monthly/quarterly/yearly rows.

    Flow columns are summed over the period, ``Balance`` is the period-end value.
    """
    if df.empty:
        return df

    freq = (freq or "M").upper()
    df = _prepare(df)

    if freq == "M":
        df["PeriodValue"] = df["MonthIndex"]
        df["Period"] = "Y" + df["YearIndex"].astype(str) + "-" + df["MonthInYear"].map("{:02d}".format)
        return df

    if freq == "Q":
        quarter = ((df["MonthInYear"] - 1) // 3 + 1).astype(int)
        df["PeriodValue"] = df["YearIndex"] * 4 + quarter
        df["Period"] = "Y" + df["YearIndex"].astype(str) + " Q" + quarter.astype(str)
    elif freq == "Y":
        df["PeriodValue"] = df["YearIndex"]
        df["Period"] = "Y" + df["YearIndex"].astype(str)
    else:
        raise ValueError(f"Unsupported frequency {freq!r}; expected M, Q or Y")

    keys = ["Scenario", "PeriodValue"]
    flows = [col for col in FLOW_COLUMNS if col in df.columns]
    grouped = df.groupby(keys, as_index=False)
    last = grouped.last()
    if flows:
        sums = grouped[flows].sum()
        last = last.drop(columns=flows).merge(sums, on=keys)
    return last


def yearly_breakdown(df: pd.DataFrame) -> list[dict]:
    """Per-year flow totals and year-end balance for charting."""
    if df.empty:
        return []
    yearly = aggregate_period(df, "Y")
    rows = []
    for row in yearly.itertuples(index=False):
        rows.append(
            {
                "year": int(row.YearIndex),
                "contributions": float(row.Contribution),
                "inflows": float(row.Inflow),
                "cofinancing": float(row.Cofinancing),
                "tax_refund": float(row.TaxRefund),
                "growth": float(row.Growth),
                "balance": float(row.Balance),
            }
        )
    return rows
