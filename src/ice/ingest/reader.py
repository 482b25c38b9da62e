from pathlib import Path
from typing import List, Tuple, Union
import pandas as pd
from ice.ingest.rows import ParsedRow, parse_rows
from ice.logging import logger
from ice.models.employee import Source


def read_rows(path: Union[str, Path], source: Source) -> Tuple[List[ParsedRow], List[str]]:
    """
    Read a CSV export whose columns already use the row field names
    (fullName or full_name, date, hours, articleId, ...).

    Returns the valid rows plus one message per rejected row. Empty cells are
    treated as missing values.
    """
    path = Path(path)
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except pd.errors.EmptyDataError:
        logger.warning(f"{path.name} is empty")
        return [], [f"{path.name}: file is empty"]

    df.columns = [str(c).strip() for c in df.columns]
    records = [
        {k: v for k, v in record.items() if v.strip() != ""}
        for record in df.to_dict(orient="records")
    ]
    rows, errors = parse_rows(records, source)
    logger.info(f"Read {path.name}: {len(rows)} rows, {len(errors)} rejected")
    return rows, errors
