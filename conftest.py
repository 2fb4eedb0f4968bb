"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and provides helpers
for building workbook payloads in memory.
"""
import io
import os
import sys

import pytest
from openpyxl import Workbook

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

SHEET_A = "構成"
SHEET_B = "内容"
TEMPLATE_SHEET = "テンプレ"

HEADER_A = ["No", "Unit", "Topic", "Level", "Question"]
HEADER_B = ["Question", "Body", "Answer"]


def build_workbook(sheets):
    """
    Build xlsx bytes from a mapping of sheet name to rows.

    Args:
        sheets: Dict of sheet name -> list of rows, in tab order

    Returns:
        bytes: The xlsx file content
    """
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(title=name)
        for row in rows:
            worksheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_workbook():
    """
    Fixture providing the workbook builder.

    Returns:
        callable: build_workbook
    """
    return build_workbook


@pytest.fixture
def exam_workbook():
    """
    Fixture providing a factory for a typical exam workbook.

    The factory takes the block numbers for both structured sheets and builds
    one question row per number (plus a continuation row under each block).

    Returns:
        callable: factory(tag, numbers, template=False) -> bytes
    """
    def factory(tag, numbers, template=False):
        rows_a = [HEADER_A]
        rows_b = [HEADER_B]
        for number in numbers:
            rows_a.append([f"{tag}-{number}", "u", "t", "l", number])
            rows_a.append([f"{tag}-{number}-cont", "u", "t", "l", None])
            rows_b.append([number, f"{tag} body {number}", "a"])
        sheets = {SHEET_A: rows_a, SHEET_B: rows_b}
        if template:
            sheets[TEMPLATE_SHEET] = [["template", tag]]
        return build_workbook(sheets)

    return factory
