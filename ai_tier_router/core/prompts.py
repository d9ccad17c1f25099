"""
System instruction assembly.

Composition order:
1. Tier persona and capability block
2. Request-kind output-format addendum
3. Department guidance
4. Caller role line
5. Project context block
6. Board or table data summary

Blocks 1-3 depend only on (tier, kind, department) and form the cacheable
scaffold. Blocks 4-6 are rebuilt from the context on every request. Missing
optional fields are omitted entirely.
"""

from typing import Dict, List, Optional

from .departments import DepartmentPromptLookup
from .request import Context
from .tiers import RequestKind, Tier

TIER_PERSONAS: Dict[Tier, str] = {
    Tier.CLEANER: """You are the Data Processor module.
Your role is to analyze and normalize uploaded data structures.

Capabilities:
- Analyze file structures (CSV, Excel, JSON)
- Detect and classify data types
- Generate normalized schema mappings
- Standardize column names to camelCase
- Identify data quality issues

Rules:
- Output JSON only, no markdown formatting
- Map business terms to standard names (qty -> quantity, amt -> amount)
- Detect currencies, percentages and dates separately
- Flag potential data quality issues""",

    Tier.WORKER: """You are the Intelligence Engine.
A fast assistant for everyday business requests.

Capabilities:
- Generate chart configurations (ECharts format)
- Create data tables and summaries
- Help with task management and GTD methodology
- Provide concise, actionable insights
- Answer questions about data and metrics

Guidelines:
- Be concise and direct
- For charts, output valid ECharts option JSON only
- For tables, output structured JSON with columns and rows
- For tasks, extract actionable items with clear priorities
- Consider department context when available""",

    Tier.THINKER: """You are the Strategic Advisor module.
An expert business analyst designed for deep, multi-step analysis.

Capabilities:
- Multi-dimensional data analysis across departments
- Pattern recognition and anomaly detection
- Predictive forecasting with confidence intervals
- Strategic recommendations with action plans
- Risk assessment and mitigation strategies
- Scenario planning and what-if analysis

Guidelines:
- Provide thorough, well-reasoned analysis
- Support every insight with data references
- Include confidence levels (0-100%) for predictions
- Offer multiple scenarios when uncertainty exists
- Identify risks and mitigation strategies""",
}

KIND_ADDENDA: Dict[RequestKind, str] = {
    RequestKind.CHART: """Chart Generation Instructions:
- Output a valid ECharts option object as JSON
- Pick the chart type that fits the data (bar, line, pie, scatter, area, radar, funnel)
- Set sensible colors, legends and tooltips
- For comparisons use grouped or stacked bars; for trends use line or area charts""",

    RequestKind.TABLE: """Table Generation Instructions:
- Output JSON: { columns: [{key, label, type}], rows: [{...}], summary: string }
- Include column data types (string, number, date, boolean)
- Sort rows meaningfully and limit to the most relevant when data is large""",

    RequestKind.FORECAST: """Forecasting Instructions:
- Output JSON: { predictions: [{period, value, confidence}], trend, insights, methodology }
- Include confidence values between 0 and 1
- Identify trend direction (up, down, stable)
- List key assumptions and risks to the forecast""",

    RequestKind.TIPS: """Tips Generation Instructions:
- Output a JSON array of { category, priority, title, description, actionItems }
- Prioritize by impact (high, medium, low)
- Make every tip specific with clear action items""",

    RequestKind.GTD: """GTD Task Generation Instructions:
- Extract actionable tasks from the request
- Output a JSON array of { title, description, priority, dueDate, category, subtasks }
- Use priority levels: urgent, high, medium, low
- Break complex items into subtasks""",

    RequestKind.ANALYSIS: """Deep Analysis Instructions:
- Provide multi-factor analysis with clear sections
- Identify patterns, trends and anomalies, with root causes where applicable
- Provide confidence levels for insights
- End with prioritized recommendations""",
}


class PromptAssembler:
    """Builds tier-specific system instructions."""

    def __init__(self, departments: Optional[DepartmentPromptLookup] = None):
        self.departments = departments or DepartmentPromptLookup()

    def build(
        self,
        tier: Tier,
        context: Optional[Context] = None,
        request_kind: Optional[RequestKind] = None,
    ) -> str:
        """Build the full system instruction for a tier. Pure and deterministic."""
        department = context.department if context else None
        scaffold = self.scaffold(tier, request_kind, department)
        return self.attach_context(scaffold, context)

    def scaffold(
        self,
        tier: Tier,
        request_kind: Optional[RequestKind] = None,
        department: Optional[str] = None,
    ) -> str:
        """Persona, kind addendum and department guidance."""
        blocks: List[str] = [TIER_PERSONAS[tier]]

        if request_kind is not None and request_kind in KIND_ADDENDA:
            blocks.append(KIND_ADDENDA[request_kind])

        if department:
            guidance = self.departments.lookup(department)
            if guidance:
                blocks.append(f"Department Context ({department}):\n{guidance}")

        return "\n\n".join(blocks)

    def attach_context(self, scaffold: str, context: Optional[Context] = None) -> str:
        """Append the per-request context blocks to a scaffold."""
        if context is None:
            return scaffold

        blocks: List[str] = [scaffold]

        if context.role:
            blocks.append(f"User Role: {context.role}")

        if context.project_context:
            blocks.append(f"Project Context:\n{context.project_context}")

        if context.board is not None:
            block = f'Current Board: "{context.board.name}" with {context.board.item_count} tasks'
            if context.board.columns:
                block += f"\nAvailable columns: {', '.join(context.board.columns)}"
            blocks.append(block)

        if context.table is not None:
            block = f'Current Table: "{context.table.name}" with {context.table.row_count} rows'
            if context.table.columns:
                block += f"\nTable columns: {', '.join(context.table.columns)}"
            blocks.append(block)

        return "\n\n".join(blocks)
