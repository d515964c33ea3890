"""
Data Exchange Package

JSON export and import of money records.
"""

from expense_os.services.exchange.json_export import (
    DEFAULT_EXPORT_FILE_NAME,
    ExchangeError,
    ImportSummary,
    export_records,
    import_records,
    record_from_dict,
    record_to_dict,
    write_export,
)

__all__ = [
    "DEFAULT_EXPORT_FILE_NAME",
    "ExchangeError",
    "ImportSummary",
    "export_records",
    "import_records",
    "record_from_dict",
    "record_to_dict",
    "write_export",
]
