from ice.models.employee import Employee, EmployeeAlias, Source
from ice.models.records import DailyHours, Article
from ice.models.import_log import ImportLog

__all__ = [
    "Employee", "EmployeeAlias", "Source",
    "DailyHours", "Article",
    "ImportLog",
]
