"""
Exam Workbook Merger

This package provides an API that merges exam-content workbooks. Uploaded
files are grouped by file name (a trailing "_<number>" is ignored), and the
question blocks of the two structured sheets of every file in a group are
combined into one workbook ordered by block number.

Key modules:
- main.py: FastAPI application with API endpoints
- batch_merge.py: Splits an upload into groups and merges each group
- excel_merge_process.py: Block collection and per-group merge logic
- settings.py: Environment-driven configuration
- utils/workbook_codec.py: Reading and writing workbooks
- utils/grouping.py, utils/natural_sort.py: Group keys and natural ordering
- utils/result.py: Result pattern implementation for error handling
"""
