from fastapi import FastAPI, File, UploadFile, Body
import os
import json
import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from http import HTTPStatus

from batch_merge import BatchMerger
from excel_merge_process import UploadedWorkbook
from settings import Settings, get_settings
from utils.archive import ZIP_MEDIA_TYPE, build_archive, unique_name
from utils.result import Result
from utils.workbook_codec import XLSX_MEDIA_TYPE

settings = get_settings()

# Create logs directory if it doesn't exist
log_dir = settings.log_dir
os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)

ALLOWED_EXTENSIONS = (".xlsx",)
FAILED_GROUPS_HEADER = "X-Merge-Failed-Groups"


# Initialize FastAPI app with metadata
app = FastAPI(
    title=settings.app_name,
    description="API for grouping exam workbooks by file name and merging their question blocks",
    version="2.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", FAILED_GROUPS_HEADER],
)


def content_disposition(filename: str) -> str:
    """
    Build a Content-Disposition attachment header value.

    Non-ASCII names (e.g. Japanese group keys) are sent with RFC 5987 encoding.

    Args:
        filename: Download file name

    Returns:
        Header value
    """
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def result_response(result: Result) -> JSONResponse:
    return JSONResponse(status_code=result.status_code.value, content=result.to_dict())


async def read_uploads(files: List[UploadFile], settings: Settings) -> Result[List[UploadedWorkbook]]:
    """
    Read uploaded files into memory after checking their count, type and size.

    Args:
        files: Files from the multipart request
        settings: Limits to enforce

    Returns:
        Result containing the uploaded workbooks, or the validation error
    """
    try:
        if len(files) > settings.max_files:
            logger.warning(f"Too many files uploaded: {len(files)}")
            return Result.fail(
                f"Too many files, maximum is {settings.max_files}",
                status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE
            )

        limit_bytes = settings.max_file_mb * 1024 * 1024
        uploads = []
        for upload in files:
            filename = upload.filename or "workbook.xlsx"
            if not filename.lower().endswith(ALLOWED_EXTENSIONS):
                logger.warning(f"Rejected non-xlsx upload: {filename}")
                return Result.fail(
                    f"File {filename} is not an .xlsx workbook",
                    status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
                    filename=filename
                )

            payload = await upload.read()
            if len(payload) > limit_bytes:
                logger.warning(f"Rejected oversized upload: {filename} ({len(payload)} bytes)")
                return Result.fail(
                    f"File {filename} exceeds {settings.max_file_mb}MB",
                    status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
                    filename=filename
                )

            logger.info(f"Received {filename} ({len(payload) / (1024 * 1024):.2f} MB)")
            uploads.append(UploadedWorkbook(filename=filename, payload=payload))

        return Result.ok(uploads)
    finally:
        # Rejections return early; every spooled file is still released
        for upload in files:
            await upload.close()


# API Endpoints
@app.get("/health", tags=["Service"])
async def health():
    """Liveness check."""
    return {"status": "ok", "version": app.version}


@app.post("/groups/preview", tags=["Grouping"])
async def preview_groups(filenames: List[str] = Body(..., embed=True)):
    """
    Show how file names would be grouped before uploading them.

    Files named like "A_中学_1.xlsx" and "A_中学_2.xlsx" share the group
    "A_中学"; a name without a trailing "_<number>" is a group of its own.

    Returns:
        list: One entry per group, in order of each group's first file
    """
    logger.info(f"Previewing groups for {len(filenames)} file names")
    return [group.model_dump() for group in BatchMerger.preview(filenames)]


@app.post("/merge", tags=["Workbook Merge"])
async def merge_workbooks(files: Optional[List[UploadFile]] = File(None)):
    """
    Merge uploaded exam workbooks, one output workbook per group.

    Returns:
        - A single .xlsx named after the group when the upload forms one group
        - A zip archive of .xlsx files when it forms several groups; groups that
          failed are listed in the X-Merge-Failed-Groups header
        - A JSON error when no files were sent, validation failed, or every group failed
    """
    upload_result = await read_uploads(files or [], settings)
    if upload_result.is_failure():
        return result_response(upload_result)

    batch_result = BatchMerger(settings=settings).run(upload_result.data)

    # Single exit point for failures
    if batch_result.is_failure():
        return result_response(batch_result)

    report = batch_result.data
    if report.total_groups == 1:
        merged = report.results[0]
        logger.info(f"Returning merged workbook {merged.file_name}")
        return Response(
            content=merged.payload,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": content_disposition(merged.file_name)}
        )

    entries = {}
    for merged in report.results:
        entries[unique_name(merged.file_name, set(entries))] = merged.payload

    failed_groups = [failure.group_key for failure in report.failures]
    logger.info(f"Returning archive with {len(entries)} workbooks, {len(failed_groups)} failed groups")
    return Response(
        content=build_archive(entries),
        media_type=ZIP_MEDIA_TYPE,
        headers={
            "Content-Disposition": content_disposition(settings.archive_name),
            FAILED_GROUPS_HEADER: json.dumps(failed_groups)
        }
    )


@app.post("/merge/report", tags=["Workbook Merge"])
async def merge_report(files: Optional[List[UploadFile]] = File(None)):
    """
    Merge uploaded workbooks and report per-group outcomes without the files.

    Returns:
        dict: Result envelope whose data is the batch report (groups merged,
            row counts, failures with the group and file that caused them)
    """
    upload_result = await read_uploads(files or [], settings)
    if upload_result.is_failure():
        return result_response(upload_result)

    return result_response(BatchMerger(settings=settings).run(upload_result.data))


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Exam Workbook Merger API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
