"""
Unit tests for entry-point task prompts.
"""

import json

import pytest

from ai_tier_router.core import tasks
from ai_tier_router.core.request import BoardSummary, Context, FileUploadDescriptor, TableSummary

ROWS = [{"region": f"r{i}", "sales": i} for i in range(80)]


class TestUploadPrompt:
    """Test the schema-mapping prompt."""

    def test_lists_file_details(self):
        upload = FileUploadDescriptor(file_name="stock.xlsx", headers=("qty", "desc"), file_type="xlsx")

        prompt = tasks.upload_prompt(upload)

        assert "File: stock.xlsx" in prompt
        assert "Type: xlsx" in prompt
        assert 'Headers: ["qty", "desc"]' in prompt
        assert prompt.endswith(tasks.JSON_ONLY)

    def test_sample_limited_to_five_rows(self):
        rows = tuple({"qty": i} for i in range(8))
        upload = FileUploadDescriptor(file_name="a.csv", headers=("qty",), file_type="csv", sample_rows=rows)

        prompt = tasks.upload_prompt(upload)

        assert '"qty": 4' in prompt
        assert '"qty": 5' not in prompt


class TestChartPrompt:
    """Test chart prompt sampling and deep mode."""

    @pytest.mark.parametrize("deep_mode,size", [(False, 20), (True, 50)])
    def test_sample_size(self, deep_mode, size):
        prompt = tasks.chart_prompt("sales by region", ROWS, deep_mode)

        assert f"Sample data ({size} rows):" in prompt
        assert f'"region": "r{size - 1}"' in prompt
        assert f'"region": "r{size}"' not in prompt

    def test_small_data_sent_whole(self):
        prompt = tasks.chart_prompt("sales by region", ROWS[:3])

        assert "Total rows: 3" in prompt
        assert "Sample data (3 rows):" in prompt

    def test_deep_mode_asks_for_insights(self):
        prompt = tasks.chart_prompt("sales by region", ROWS, deep_mode=True)

        assert "Additional Analysis Required:" in prompt
        assert '"insights" array' in prompt

    def test_non_json_values_serialized(self):
        from datetime import date

        prompt = tasks.chart_prompt("sales", [{"day": date(2024, 1, 2)}])

        assert '"day": "2024-01-02"' in prompt


class TestTablePrompt:
    def test_sample_limited_to_thirty_rows(self):
        prompt = tasks.table_prompt("top regions", ROWS)

        assert "Source Data (80 total rows, showing 30):" in prompt
        assert "User Request: top regions" in prompt
        assert '"columns": [{"key"' in prompt


class TestForecastPrompt:
    def test_periods_and_history(self):
        history = [{"month": "2024-01", "revenue": 10}, {"month": "2024-02", "revenue": 12}]

        prompt = tasks.forecast_prompt("revenue outlook", history, periods=4)

        assert "Historical Data (2 periods):" in prompt
        assert "Forecast 4 future periods." in prompt
        assert json.dumps(history, indent=2) in prompt

    def test_default_periods(self):
        assert "Forecast 6 future periods." in tasks.forecast_prompt("outlook", [])


class TestTipsPrompt:
    """Test tips prompt context lines."""

    def test_defaults_without_context(self):
        prompt = tasks.tips_prompt()

        assert "- Department: General" in prompt
        assert "- Role: User" in prompt
        assert "Focus Area" not in prompt

    def test_board_and_focus_lines(self):
        context = Context(department="ops", role="lead", board=BoardSummary(name="Launch", item_count=12))

        prompt = tasks.tips_prompt(context, focus_area="handoffs")

        assert "- Current Board: Launch with 12 tasks" in prompt
        assert "- Focus Area: handoffs" in prompt
        assert "Current Table" not in prompt

    def test_table_line(self):
        context = Context(table=TableSummary(name="Leads", row_count=40))

        assert "- Current Table: Leads with 40 rows" in tasks.tips_prompt(context)


class TestGtdPrompt:
    def test_input_quoted(self):
        prompt = tasks.gtd_prompt("email Sam the Q3 deck")

        assert 'Input: "email Sam the Q3 deck"' in prompt
        assert "Department Context" not in prompt
        assert "waiting_for" in prompt

    def test_department_context(self):
        prompt = tasks.gtd_prompt("book venue", Context(department="events"))

        assert "Department Context: events" in prompt
