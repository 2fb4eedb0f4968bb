"""
Workbook decoding and encoding.

Governed sheets travel through the merge as plain row matrices: pandas reads
them (openpyxl engine) and openpyxl writes them back. The pass-through sheet
is never turned into rows; it is kept as a handle on its source payload and
re-attached as a native openpyxl worksheet so styles, merged cells, formulas
and column widths survive untouched.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)

Row = List[Any]
SheetRows = List[Row]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class WorkbookDecodeError(Exception):
    """Raised when an uploaded file cannot be read as a workbook."""
    def __init__(self, filename: str, cause: Exception):
        self.filename = filename
        self.cause = cause
        super().__init__(f"{filename}: {cause}")


class WorkbookEncodeError(Exception):
    """Raised when the merged sheets cannot be serialized."""
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to write merged workbook: {cause}")


@dataclass
class PassThroughSheet:
    """Opaque handle on a sheet that is copied as-is from one source file."""
    source_filename: str
    sheet_name: str
    payload: bytes = field(repr=False)


@dataclass
class DecodedWorkbook:
    """
    Governed sheets of one uploaded file plus its pass-through handle.

    Attributes:
        filename: Name of the uploaded file
        sheets: Sheet name -> row matrix, only for requested sheets that exist
        pass_through: Handle on the pass-through sheet when the file has one
    """
    filename: str
    sheets: Dict[str, SheetRows] = field(default_factory=dict)
    pass_through: Optional[PassThroughSheet] = None


def is_empty_cell(value: Any) -> bool:
    """True for None, NaN/NaT and the empty string; whitespace counts as content."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _frame_to_rows(df: pd.DataFrame) -> SheetRows:
    # Frame is rectangular, so every row already has the sheet's full width
    return [
        ["" if is_empty_cell(value) else value for value in values]
        for values in df.itertuples(index=False, name=None)
    ]


def decode_workbook(
    filename: str,
    payload: bytes,
    sheet_names: Sequence[str],
    pass_through_name: Optional[str] = None
) -> DecodedWorkbook:
    """
    Read the named sheets of a workbook into row matrices.

    Absent cells come back as "" so every row of a sheet has the same width.
    Sheets that are not in the workbook are left out of the result.

    Args:
        filename: Name of the uploaded file, used in errors and logs
        payload: Raw workbook bytes
        sheet_names: Governed sheets to read as rows
        pass_through_name: Sheet to carry through untouched, if present

    Returns:
        DecodedWorkbook for the file

    Raises:
        WorkbookDecodeError: If the bytes are not a readable workbook
    """
    decoded = DecodedWorkbook(filename=filename)
    try:
        with pd.ExcelFile(io.BytesIO(payload), engine="openpyxl") as excel_file:
            available = list(excel_file.sheet_names)
            for name in sheet_names:
                if name not in available:
                    logger.debug("Sheet not present", extra={"file_name": filename, "sheet": name})
                    continue
                df = excel_file.parse(name, header=None, dtype=object, na_filter=False)
                decoded.sheets[name] = _frame_to_rows(df)
    except Exception as e:
        logger.error(
            "Failed to read workbook",
            extra={"file_name": filename, "error": str(e), "error_type": type(e).__name__}
        )
        raise WorkbookDecodeError(filename, e) from e

    if pass_through_name and pass_through_name in available:
        decoded.pass_through = PassThroughSheet(
            source_filename=filename,
            sheet_name=pass_through_name,
            payload=payload
        )

    logger.debug(
        "Decoded workbook",
        extra={
            "file_name": filename,
            "sheets": {name: len(rows) for name, rows in decoded.sheets.items()},
            "has_pass_through": decoded.pass_through is not None
        }
    )
    return decoded


def _clean_cell(value: Any) -> Any:
    if is_empty_cell(value):
        return None
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _write_rows(worksheet: Worksheet, rows: SheetRows) -> None:
    """Write cell values as-is; strings are never turned into formulas."""
    for row_index, row in enumerate(rows, start=1):
        for column_index, value in enumerate(row, start=1):
            cell = worksheet.cell(row=row_index, column=column_index, value=_clean_cell(value))
            # Governed rows hold cached values only, so "=..." here is question text
            if cell.data_type == "f":
                cell.data_type = "s"


def _load_pass_through_workbook(sheet: PassThroughSheet) -> Workbook:
    """Open the source workbook and strip every sheet except the pass-through one."""
    workbook = load_workbook(io.BytesIO(sheet.payload))
    removed = set()
    for name in list(workbook.sheetnames):
        if name != sheet.sheet_name:
            del workbook[name]
            removed.add(name)

    # Workbook-level names pointing at deleted sheets would leave a broken file
    for name, defined in list(workbook.defined_names.items()):
        if {sheet_title for sheet_title, _ in defined.destinations} & removed:
            del workbook.defined_names[name]
    return workbook


def _select_first_sheet(workbook: Workbook) -> None:
    for worksheet in workbook.worksheets:
        worksheet.sheet_view.tabSelected = False
    workbook.active = 0
    workbook.active.sheet_view.tabSelected = True


def encode_workbook(
    sheets: Sequence[Tuple[str, SheetRows]],
    pass_through: Optional[PassThroughSheet] = None
) -> bytes:
    """
    Write row-matrix sheets (and the pass-through sheet) into one xlsx payload.

    Sheets are written in the given order; the pass-through sheet, when
    present, follows them as the last tab.

    Args:
        sheets: Ordered (sheet name, rows) pairs
        pass_through: Handle of the sheet to copy natively, or None

    Returns:
        bytes: The xlsx file content

    Raises:
        WorkbookEncodeError: If the workbook cannot be built or saved
    """
    try:
        if pass_through is None:
            workbook = Workbook()
            workbook.remove(workbook.active)
        else:
            workbook = _load_pass_through_workbook(pass_through)

        for index, (name, rows) in enumerate(sheets):
            worksheet = workbook.create_sheet(title=name, index=index)
            _write_rows(worksheet, rows)

        _select_first_sheet(workbook)
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
    except Exception as e:
        logger.error("Failed to write workbook", extra={"error": str(e), "error_type": type(e).__name__})
        raise WorkbookEncodeError(e) from e
