from ice.ingest.rows import ArticleRow, HoursRow, ParsedRow, parse_row, parse_rows

__all__ = [
    "ArticleRow",
    "HoursRow",
    "ParsedRow",
    "parse_row",
    "parse_rows",
]
