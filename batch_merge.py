import logging
from http import HTTPStatus
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from excel_merge_process import MergedWorkbook, UploadedWorkbook, WorkbookMerger
from settings import Settings, get_settings
from utils.grouping import get_group_key, group_filenames
from utils.result import Result

logger = logging.getLogger(__name__)


class GroupPreview(BaseModel):
    """Files that would be merged together under one group key."""
    group_key: str
    file_names: List[str]
    file_count: int


class GroupFailure(BaseModel):
    """
    A group that produced no output.

    Attributes:
        group_key: Key of the failed group
        file_names: Files belonging to the group
        error: Why the group failed
        status_code: HTTP-style status of the failure
        file_name: The file that caused the failure, when known
    """
    group_key: str
    file_names: List[str]
    error: str
    status_code: int
    file_name: Optional[str] = None


class BatchMergeReport(BaseModel):
    """
    Outcome of merging every group of one upload.

    Attributes:
        success: True when at least one group was merged
        total_groups: Number of groups the upload was split into
        results: Merged groups, in group processing order
        failures: Failed groups, in group processing order
    """
    success: bool = False
    total_groups: int = 0
    results: List[MergedWorkbook] = Field(default_factory=list)
    failures: List[GroupFailure] = Field(default_factory=list)


class BatchMerger:
    """
    Splits an upload into merge groups and merges each group in turn.

    Groups are independent: a group that fails is recorded and the next
    group is still merged.
    """

    def __init__(self, merger: Optional[WorkbookMerger] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.merger = merger or WorkbookMerger(self.settings)

    @staticmethod
    def partition(files: Iterable[UploadedWorkbook]) -> Dict[str, List[UploadedWorkbook]]:
        """Group files by key, in order of each key's first file."""
        groups: Dict[str, List[UploadedWorkbook]] = {}
        for upload in files:
            groups.setdefault(get_group_key(upload.filename), []).append(upload)
        return groups

    @staticmethod
    def preview(filenames: Iterable[str]) -> List[GroupPreview]:
        return [
            GroupPreview(group_key=key, file_names=names, file_count=len(names))
            for key, names in group_filenames(filenames).items()
        ]

    def run(self, files: Sequence[UploadedWorkbook]) -> Result[BatchMergeReport]:
        """
        Merge every group of an upload.

        Args:
            files: Uploaded files in the order they were supplied

        Returns:
            Result[BatchMergeReport]: Successful when at least one group merged;
                a failure (still carrying the report) when every group failed,
                or an empty-input failure when no files were given
        """
        if not files:
            logger.warning("Merge requested without any files")
            return Result.empty_input("No files were supplied for merging")

        groups = self.partition(files)
        report = BatchMergeReport(total_groups=len(groups))
        logger.info(f"Merging {len(files)} files in {len(groups)} groups")

        for group_key, members in groups.items():
            result = self.merger.merge_group(group_key, members)
            if result.is_success():
                report.results.append(result.data)
                continue

            logger.warning(
                f"Group merge failed: {result.error}",
                extra={"group_key": group_key, "status_code": result.status_code.value}
            )
            report.failures.append(GroupFailure(
                group_key=group_key,
                file_names=[upload.filename for upload in members],
                error=result.error or "Merge failed",
                status_code=result.status_code.value,
                file_name=result.context.get("filename")
            ))

        report.success = bool(report.results)
        logger.info(
            f"Merged {len(report.results)} of {report.total_groups} groups",
            extra={"failed_groups": [failure.group_key for failure in report.failures]}
        )

        if not report.success:
            return Result.fail(
                f"All {report.total_groups} merge groups failed",
                status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
                data=report
            )
        return Result.ok(report)
