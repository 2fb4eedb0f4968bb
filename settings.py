import os
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Settings(BaseSettings):
    """
    Runtime settings for the workbook merger service.

    Every value can be overridden with an environment variable using the
    EXAM_MERGE_ prefix (or a .env file), for example:
    - EXAM_MERGE_MAX_FILE_MB
    - EXAM_MERGE_UNCLASSIFIED_ROWS
    - EXAM_MERGE_GOVERNED_SHEET_A
    """

    model_config = SettingsConfigDict(env_prefix="EXAM_MERGE_", env_file=".env", extra="ignore")

    app_name: str = "Exam Workbook Merger API"
    cors_origins: List[str] = ["*"]

    # Sheet names must match exactly in every uploaded workbook
    governed_sheet_a: str = "構成"
    governed_sheet_b: str = "内容"
    pass_through_sheet: str = "テンプレ"

    # 0-indexed column holding the question block number
    sheet_a_id_column: int = 4
    sheet_b_id_column: int = 0

    # What to do with a data row that has no block number and none above it
    unclassified_rows: Literal["drop", "error"] = "drop"

    max_file_mb: int = 25
    max_files: int = 200

    default_output_name: str = "merged"
    archive_name: str = "merged_workbooks.zip"

    log_dir: str = os.path.join(BASE_DIR, "logs")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
