import logging
import time
import uuid
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from settings import Settings, get_settings
from utils.grouping import sanitize_download_name
from utils.natural_sort import natural_sorted
from utils.result import Result
from utils.workbook_codec import (
    DecodedWorkbook,
    PassThroughSheet,
    Row,
    SheetRows,
    WorkbookDecodeError,
    WorkbookEncodeError,
    decode_workbook,
    encode_workbook,
    is_empty_cell,
)

logger = logging.getLogger(__name__)

class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.pop('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


class UnclassifiedRowError(Exception):
    """A data row has no block number and no block above it to inherit from."""
    def __init__(self, row_number: int, id_column: int, filename: Optional[str] = None):
        self.row_number = row_number
        self.id_column = id_column
        self.filename = filename
        location = f" in '{filename}'" if filename else ""
        super().__init__(
            f"Row {row_number}{location} has no block number in column {id_column + 1} "
            f"and no block above it"
        )


class GovernedSheet(NamedTuple):
    """A sheet whose rows are regrouped by the block number in id_column."""
    name: str
    id_column: int


@dataclass
class UploadedWorkbook:
    """One input file: its name and raw bytes."""
    filename: str
    payload: bytes = field(repr=False)


# Response model for one merged group
class MergedWorkbook(BaseModel):
    """
    Output of merging one group.

    Attributes:
        group_key: Key shared by the merged files
        file_name: Download name of the output workbook
        source_file_count: Number of input files merged
        sheet_row_counts: Data rows written per governed sheet (header excluded)
        payload: The xlsx bytes (never serialized into JSON responses)
    """
    group_key: str
    file_name: str
    source_file_count: int
    sheet_row_counts: Dict[str, int] = Field(default_factory=dict)
    payload: bytes = Field(default=b"", exclude=True, repr=False)


def is_blank_row(row: Row) -> bool:
    return all(is_empty_cell(value) for value in row)


def collect_blocks(rows: SheetRows, id_column: int, on_unclassified: str = "drop") -> Dict[str, List[Row]]:
    """
    Assign each data row of one sheet to its question block.

    A row with a value in id_column opens (or continues) the block named by
    that value; a row with an empty id_column belongs to the block above it.
    Fully empty rows are skipped without changing the current block. Rows
    before the first block number cannot be placed: they are dropped, or
    rejected when on_unclassified is "error".

    Args:
        rows: Sheet rows, header first
        id_column: 0-indexed column holding the block number
        on_unclassified: "drop" or "error"

    Returns:
        Block number -> rows, in first-seen block order

    Raises:
        UnclassifiedRowError: For a row that cannot be placed, when on_unclassified is "error"
    """
    blocks: Dict[str, List[Row]] = {}
    current = ""
    # Spreadsheet row numbers: header is row 1
    for row_number, row in enumerate(rows[1:], start=2):
        if is_blank_row(row):
            continue

        value = row[id_column] if id_column < len(row) else ""
        if not is_empty_cell(value):
            block_id = str(value).strip()
            if block_id:
                current = block_id

        if not current:
            if on_unclassified == "error":
                raise UnclassifiedRowError(row_number, id_column)
            logger.debug("Dropping row without block number", extra={"row_number": row_number})
            continue

        blocks.setdefault(current, []).append(row)
    return blocks


def merge_sheet_blocks(
    sources: Sequence[Tuple[str, Optional[SheetRows]]],
    id_column: int,
    on_unclassified: str = "drop"
) -> SheetRows:
    """
    Merge one governed sheet across the files of a group.

    The header comes from the first file whose sheet has any rows. Blocks
    from all files are combined per block number, keeping file order inside
    each block, and the blocks are emitted in natural order.

    Args:
        sources: (filename, rows) per file in processing order; rows is None
            when the file lacks the sheet
        id_column: 0-indexed column holding the block number
        on_unclassified: Policy passed to collect_blocks

    Returns:
        Header row followed by the reordered data rows
    """
    header: Optional[Row] = None
    merged: Dict[str, List[Row]] = {}

    for filename, rows in sources:
        if not rows:
            continue
        if header is None:
            header = list(rows[0])
        try:
            blocks = collect_blocks(rows, id_column, on_unclassified)
        except UnclassifiedRowError as e:
            raise UnclassifiedRowError(e.row_number, e.id_column, filename=filename) from e
        for block_id, block_rows in blocks.items():
            merged.setdefault(block_id, []).extend(block_rows)

    output: SheetRows = [header if header is not None else []]
    for block_id in natural_sorted(merged):
        output.extend(merged[block_id])
    return output


# Workbook merger with per-group error handling
class WorkbookMerger:
    """
    Merges the workbooks of one group into a single output workbook.

    This class:
    - Decodes every file of the group
    - Regroups both governed sheets by block number
    - Picks the pass-through sheet from the first file that has one
    - Encodes the assembled sheets into one xlsx payload
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def governed_sheets(self) -> List[GovernedSheet]:
        return [
            GovernedSheet(self.settings.governed_sheet_a, self.settings.sheet_a_id_column),
            GovernedSheet(self.settings.governed_sheet_b, self.settings.sheet_b_id_column),
        ]

    def merge_group(self, group_key: str, files: Sequence[UploadedWorkbook]) -> Result[MergedWorkbook]:
        """
        Merge the files of one group.

        A file that cannot be read fails the whole group; nothing is written
        for a group that fails.

        Args:
            group_key: Key shared by the files
            files: Files in processing order

        Returns:
            Result[MergedWorkbook]: The merged workbook, or the failure with its group and file
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "group_key": group_key,
            "file_count": len(files)
        }

        logger.info("Merging workbook group", extra=log_context)

        try:
            with LogContext("workbook decoding", **log_context):
                decoded = self._decode_files(files)

            with LogContext("block merging", **log_context):
                sheets = self._merge_governed_sheets(decoded)
                pass_through = self._first_pass_through(decoded)

            with LogContext("workbook encoding", **log_context):
                payload = encode_workbook(sheets, pass_through)

        except WorkbookDecodeError as e:
            logger.warning(
                f"Workbook could not be read: {e.filename}",
                extra={**log_context, "file_name": e.filename, "error": str(e.cause)}
            )
            return Result.decode_failure(e.filename, str(e.cause), group_key=group_key)
        except UnclassifiedRowError as e:
            logger.warning(f"Unclassified row: {str(e)}", extra=log_context)
            return Result.fail(str(e), status_code=HTTPStatus.BAD_REQUEST, group_key=group_key, filename=e.filename)
        except WorkbookEncodeError as e:
            logger.error(f"Merged workbook could not be written: {str(e)}", extra=log_context)
            return Result.server_error(str(e), group_key=group_key)
        except Exception as e:
            logger.exception("Unexpected error during group merge", extra={**log_context, "error": str(e)})
            return Result.server_error(f"Merge error: {str(e)}", group_key=group_key)

        merged = MergedWorkbook(
            group_key=group_key,
            file_name=sanitize_download_name(group_key, default=self.settings.default_output_name),
            source_file_count=len(files),
            sheet_row_counts={name: len(rows) - 1 for name, rows in sheets},
            payload=payload
        )
        logger.info(
            f"Successfully merged {len(files)} files into {merged.file_name}",
            extra={**log_context, "sheet_row_counts": merged.sheet_row_counts}
        )
        return Result.ok(merged)

    def _decode_files(self, files: Sequence[UploadedWorkbook]) -> List[DecodedWorkbook]:
        sheet_names = [sheet.name for sheet in self.governed_sheets]
        return [
            decode_workbook(
                upload.filename,
                upload.payload,
                sheet_names,
                pass_through_name=self.settings.pass_through_sheet
            )
            for upload in files
        ]

    def _merge_governed_sheets(self, decoded: Sequence[DecodedWorkbook]) -> List[Tuple[str, SheetRows]]:
        """Merge each governed sheet independently, in fixed tab order."""
        sheets = []
        for sheet in self.governed_sheets:
            sources = [(workbook.filename, workbook.sheets.get(sheet.name)) for workbook in decoded]
            rows = merge_sheet_blocks(sources, sheet.id_column, self.settings.unclassified_rows)
            sheets.append((sheet.name, rows))
        return sheets

    @staticmethod
    def _first_pass_through(decoded: Sequence[DecodedWorkbook]) -> Optional[PassThroughSheet]:
        # First file in processing order wins; later copies are ignored
        for workbook in decoded:
            if workbook.pass_through is not None:
                logger.debug(
                    "Using pass-through sheet",
                    extra={"file_name": workbook.filename, "sheet": workbook.pass_through.sheet_name}
                )
                return workbook.pass_through
        return None
