"""
Task prompts for the engine's entry points.

Each builder turns caller data into the prompt text sent as the caller
turn. The system instruction still comes from the PromptAssembler; these
only describe the task and its expected JSON output.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from .request import Context, FileUploadDescriptor

UPLOAD_SAMPLE_ROWS = 5
CHART_SAMPLE_ROWS = 20
DEEP_CHART_SAMPLE_ROWS = 50
TABLE_SAMPLE_ROWS = 30
DEFAULT_FORECAST_PERIODS = 6

JSON_ONLY = "Output valid JSON only, no markdown formatting."


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def upload_prompt(upload: FileUploadDescriptor) -> str:
    """Ask for a normalized schema mapping of an uploaded file."""
    sample = list(upload.sample_rows[:UPLOAD_SAMPLE_ROWS])
    return f"""Analyze this file structure and generate a normalized schema mapping.

File: {upload.file_name}
Type: {upload.file_type}
Headers: {json.dumps(list(upload.headers))}
Sample Data: {_dump(sample)}

Generate a JSON response with:
1. "originalSchema": the headers as given
2. "mappedSchema": an object mapping each original header to a camelCase name
3. "dataTypes": an object mapping each camelCase name to string, number, date, currency, percentage or boolean

Rules for mapping:
- Use camelCase for every mapped name
- Standardize common business terms (qty -> quantity, amt -> amount, desc -> description)
- Detect currencies and percentages separately from plain numbers
- Identify date formats

{JSON_ONLY}"""


def chart_prompt(prompt: str, data: Sequence[Dict[str, Any]], deep_mode: bool = False) -> str:
    """Ask for an ECharts configuration over a sample of the data."""
    sample = list(data[:DEEP_CHART_SAMPLE_ROWS if deep_mode else CHART_SAMPLE_ROWS])
    lines = [
        "Generate an ECharts configuration for the following request.",
        "",
        f"User Request: {prompt}",
        "",
        "Data Summary:",
        f"- Total rows: {len(data)}",
        f"- Sample data ({len(sample)} rows):",
        _dump(sample),
        "",
    ]
    if deep_mode:
        lines += [
            "Additional Analysis Required:",
            "- Identify the best chart type for this data",
            "- Include trend lines if showing time series",
            "- Add statistical annotations (avg, min, max) where relevant",
            "- Suggest data groupings if appropriate",
            "",
        ]
    lines += [
        "Output Requirements:",
        "1. Valid ECharts option JSON",
        "2. A chart type suited to the data",
        "3. Axis labels and a title",
        "4. A color scheme that reads well on dashboards",
        "5. A responsive tooltip",
        "6. A legend when there is more than one series",
    ]
    if deep_mode:
        lines.append('Also include an "insights" array with 2-3 key observations about the data.')
    lines += ["", JSON_ONLY]
    return "\n".join(lines)


def table_prompt(prompt: str, source_data: Sequence[Dict[str, Any]]) -> str:
    """Ask for a shaped data table built from the source rows."""
    sample = list(source_data[:TABLE_SAMPLE_ROWS])
    return f"""Generate a data table based on this request.

User Request: {prompt}

Source Data ({len(source_data)} total rows, showing {len(sample)}):
{_dump(sample)}

Output a JSON object with:
{{
  "columns": [{{"key": "...", "label": "...", "type": "string|number|date|currency|percentage"}}],
  "rows": [{{...}}],
  "summary": "one sentence describing the table"
}}

Requirements:
- Select and transform the columns relevant to the request
- Apply aggregations where the request asks for them
- Sort rows in a meaningful order
- Format numbers and dates consistently
- Limit the output to the 50 most relevant rows

{JSON_ONLY}"""


def forecast_prompt(
    prompt: str,
    historical_data: Sequence[Dict[str, Any]],
    periods: int = DEFAULT_FORECAST_PERIODS,
) -> str:
    """Ask for a forecast of future periods from historical data."""
    return f"""Generate a forecast based on this historical data.

User Request: {prompt}

Historical Data ({len(historical_data)} periods):
{_dump(list(historical_data))}

Forecast {periods} future periods.

Output JSON:
{{
  "predictions": [{{"period": "...", "value": 0, "confidence": 0.0}}],
  "trend": "up|down|stable",
  "insights": ["..."],
  "methodology": "...",
  "assumptions": ["..."],
  "risks": ["..."]
}}

Requirements:
- Choose a methodology that suits the data
- Give each prediction a confidence between 0 and 1
- Account for seasonality
- Call out anomalies in the history
- Keep insights actionable

{JSON_ONLY}"""


def tips_prompt(context: Optional[Context] = None, focus_area: Optional[str] = None) -> str:
    """Ask for prioritized tips for the caller's situation."""
    context = context or Context()
    lines = [
        "Generate actionable tips and recommendations.",
        "",
        "Context:",
        f"- Department: {context.department or 'General'}",
        f"- Role: {context.role or 'User'}",
    ]
    if context.board is not None:
        lines.append(f"- Current Board: {context.board.name} with {context.board.item_count} tasks")
    if context.table is not None:
        lines.append(f"- Current Table: {context.table.name} with {context.table.row_count} rows")
    if focus_area:
        lines.append(f"- Focus Area: {focus_area}")
    lines += [
        "",
        "Generate 3-5 relevant tips as a JSON array:",
        '[{"category": "...", "priority": "high|medium|low", "title": "...", '
        '"description": "...", "actionItems": ["..."]}]',
        "",
        "Requirements:",
        "- Prioritize by impact",
        "- Keep each tip specific and actionable",
        "- Make action items measurable",
        "- Consider the department's work",
        "- Mix quick wins with strategic improvements",
        "",
        JSON_ONLY,
    ]
    return "\n".join(lines)


def gtd_prompt(text: str, context: Optional[Context] = None) -> str:
    """Ask for Getting Things Done tasks extracted from free text."""
    lines: List[str] = [
        "Extract actionable GTD (Getting Things Done) tasks from this input.",
        "",
        f'Input: "{text}"',
    ]
    if context is not None and context.department:
        lines.append(f"Department Context: {context.department}")
    lines += [
        "",
        "Output a JSON array of tasks:",
        '[{"title": "...", "description": "...", "priority": "urgent|high|medium|low", '
        '"dueDate": "YYYY-MM-DD or null", '
        '"category": "next_action|waiting_for|someday|project|reference", "subtasks": ["..."]}]',
        "",
        "GTD Rules:",
        "- Every title starts with a verb",
        "- urgent: due within 24 hours or blocking other work",
        "- high: due within a week",
        "- medium: due within two weeks",
        "- low: no deadline",
        "- Break complex items into subtasks",
        "- Record dependencies on other people as waiting_for",
        "",
        JSON_ONLY,
    ]
    return "\n".join(lines)
