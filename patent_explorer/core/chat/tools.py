import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import ValidationError

from patent_explorer.database import AsyncSessionLocal
from patent_explorer.exceptions import ConfigurationError
from patent_explorer.models.user_profile import SubscriptionTier
from patent_explorer.schemas.tools import (
    ChartType,
    CodeExecutionArgs,
    CreateCSVArgs,
    CreateChartArgs,
    PatentAnalysisArgs,
    PatentSearchArgs,
    ToolArgs,
    WebSearchArgs,
)
from patent_explorer.services import artifact_service, valyu_service
from patent_explorer.services.daytona_service import DaytonaSandboxClient
from patent_explorer.services.polar_service import PolarEventTracker
from patent_explorer.services.telemetry import track

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 10000
USPTO_FAVICON = "https://www.uspto.gov/favicon.ico"
USPTO_DISPLAY_SOURCE = "USPTO (via Valyu)"

@dataclass
class ToolContext:
    """Per-request values every tool can see."""
    user_id: Optional[str] = None
    user_tier: str = SubscriptionTier.FREE.value
    session_id: Optional[str] = None
    is_development: bool = True

    @property
    def metered(self) -> bool:
        # Usage is billed only for signed-in pay-per-use users inside a session, in production
        return bool(
            self.user_id
            and self.session_id
            and self.user_tier == SubscriptionTier.PAY_PER_USE.value
            and not self.is_development
        )

@dataclass
class Tool:
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: Callable[[Any, ToolContext], Awaitable[Any]]

    def schema(self) -> Dict[str, Any]:
        """OpenAI function-calling declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_model.model_json_schema(by_alias=True),
            },
        }

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Any:
        try:
            args = self.args_model.model_validate(arguments)
        except ValidationError as e:
            logger.warning(f"[{self.name}] Invalid arguments: {e.errors()}")
            return {
                "error": True,
                "message": f"Invalid arguments for {self.name}: {e}. Fix the arguments and call the tool again.",
            }
        return await self.handler(args, context)

# Search tools

async def _track_search_cost(tool_type: str, log_tag: str, response: Dict[str, Any], query: str, context: ToolContext) -> None:
    if not context.metered:
        return
    try:
        await PolarEventTracker().track_valyu_usage(
            context.user_id,
            context.session_id,
            tool_type,
            response.get("total_deduction_dollars") or 0,
            {"query": query, "resultCount": len(response.get("results") or []), "success": True},
        )
    except Exception as e:
        logger.error(f"[{log_tag}] Failed to track usage: {e}")

async def _valyu_search(
    tool_type: str,
    log_tag: str,
    query: str,
    max_results: int,
    context: ToolContext,
    **search_options,
) -> Dict[str, Any]:
    response = await valyu_service.search(query, max_results, **search_options)
    results = response.get("results") or []
    track("Valyu API Call", {"toolType": tool_type, "query": query, "resultCount": len(results)})
    await _track_search_cost(tool_type, log_tag, response, query, context)
    return response

async def patent_search(args: PatentSearchArgs, context: ToolContext) -> str:
    try:
        response = await _valyu_search(
            "patentSearch", "PatentSearch", args.query, args.max_results, context,
            search_type="proprietary",
            included_sources=[valyu_service.USPTO_SOURCE],
            relevance_threshold=0.4,
        )
    except ConfigurationError as e:
        return f"❌ {e}"
    except Exception as e:
        logger.error(f"[PatentSearch] {e}")
        return f"❌ Error searching patents: {e}"

    results = response.get("results") or []
    return json.dumps({
        "type": "patents",
        "query": args.query,
        "resultCount": len(results),
        "results": results,
        "favicon": USPTO_FAVICON,
        "displaySource": USPTO_DISPLAY_SOURCE,
    }, indent=2)

async def patent_analysis(args: PatentAnalysisArgs, context: ToolContext) -> str:
    try:
        response = await _valyu_search(
            "patentAnalysis", "PatentAnalysis", args.query, args.max_results, context,
            search_type="proprietary",
            included_sources=[valyu_service.USPTO_SOURCE],
            relevance_threshold=0.5,
        )
    except ConfigurationError as e:
        return f"❌ {e}"
    except Exception as e:
        logger.error(f"[PatentAnalysis] {e}")
        return f"❌ Error analyzing patents: {e}"

    # Results go to the model untouched so every patent number it sees came from the index
    results = response.get("results") or []
    return json.dumps({
        "type": "patent_analysis",
        "query": args.query,
        "resultCount": len(results),
        "results": results,
        "favicon": USPTO_FAVICON,
        "displaySource": USPTO_DISPLAY_SOURCE,
    }, indent=2)

async def web_search(args: WebSearchArgs, context: ToolContext) -> str:
    try:
        response = await _valyu_search(
            "webSearch", "WebSearch", args.query, args.max_results, context,
            search_type="all",
        )
    except ConfigurationError as e:
        return f"❌ {e}"
    except Exception as e:
        logger.error(f"[WebSearch] {e}")
        return f"❌ Error performing web search: {e}"

    results = response.get("results") or []
    return json.dumps({
        "type": "web_search",
        "query": args.query,
        "resultCount": len(results),
        "results": results,
    }, indent=2)

# Code execution

def format_execution(code: str, output: str, elapsed_ms: int, description: Optional[str] = None) -> str:
    description_line = f"**Description**: {description}\n" if description else ""
    return (
        "🐍 **Python Code Execution**\n"
        f"{description_line}\n"
        "\n```python\n"
        f"{code}\n"
        "```\n\n"
        "**Output:**\n"
        "```\n"
        f"{output or '(No output produced)'}\n"
        "```\n\n"
        f"⏱️ **Execution Time**: {elapsed_ms}ms"
    )

async def code_execution(args: CodeExecutionArgs, context: ToolContext) -> str:
    started = time.monotonic()
    if len(args.code) > MAX_CODE_LENGTH:
        return "🚫 **Error**: Code too long. Please limit your code to 10,000 characters."

    try:
        sandbox = DaytonaSandboxClient.from_settings()
    except ConfigurationError as e:
        return f"❌ **Configuration Error**: {e}"

    try:
        async with sandbox.provision() as sandbox_id:
            execution = await sandbox.run_code(sandbox_id, args.code)
            elapsed_ms = int((time.monotonic() - started) * 1000)

            track("Python Code Executed", {
                "success": execution.exit_code == 0,
                "codeLength": len(args.code),
                "executionTime": elapsed_ms,
                "hasDescription": bool(args.description),
            })

            if context.metered and execution.exit_code == 0:
                try:
                    await PolarEventTracker().track_daytona_usage(
                        context.user_id,
                        context.session_id,
                        elapsed_ms,
                        {"codeLength": len(args.code), "success": True, "description": args.description or "Code execution"},
                    )
                except Exception as e:
                    logger.error(f"[CodeExecution] Failed to track usage: {e}")

            if execution.exit_code != 0:
                return f"❌ **Execution Error**: {execution.result or 'Unknown error'}"
            return format_execution(args.code, execution.result, elapsed_ms, args.description)
    except Exception as e:
        logger.error(f"[CodeExecution] {e}")
        return f"❌ **Error**: {e}"

# Artifacts

def _numeric_values(values: List[Any]) -> List[float]:
    numbers = []
    for value in values:
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if not math.isnan(number):
            numbers.append(number)
    return numbers

def chart_date_range(chart_type: str, data_series: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Span shown under a chart: first and last x of the first series for
    time series charts, the X and Y value ranges for scatter and quadrant.
    """
    if chart_type in (ChartType.SCATTER.value, ChartType.QUADRANT.value):
        xs = _numeric_values([point.get("x") for s in data_series for point in s["data"]])
        ys = _numeric_values([point.get("y") for s in data_series for point in s["data"]])
        if not xs or not ys:
            return None
        return {
            "start": f"X: {min(xs):.1f}-{max(xs):.1f}",
            "end": f"Y: {min(ys):.1f}-{max(ys):.1f}",
        }

    if data_series and data_series[0]["data"]:
        first = data_series[0]["data"]
        return {"start": first[0]["x"], "end": first[-1]["x"]}
    return None

async def create_chart(args: CreateChartArgs, context: ToolContext) -> Dict[str, Any]:
    chart_type = args.type.value
    data_series = [series.model_dump(exclude_none=True) for series in args.data_series]
    total_points = sum(len(series["data"]) for series in data_series)

    track("Chart Created", {
        "chartType": chart_type,
        "title": args.title,
        "seriesCount": len(data_series),
        "totalDataPoints": total_points,
        "hasDescription": bool(args.description),
        "hasScatterData": any(p.get("size") or p.get("label") for s in data_series for p in s["data"]),
    })

    chart_data = {
        "chartType": chart_type,
        "title": args.title,
        "xAxisLabel": args.x_axis_label,
        "yAxisLabel": args.y_axis_label,
        "dataSeries": data_series,
        "description": args.description,
        "metadata": {
            "totalSeries": len(data_series),
            "totalDataPoints": total_points,
            "dateRange": chart_date_range(chart_type, data_series),
        },
    }

    chart_id = None
    try:
        async with AsyncSessionLocal() as db:
            chart = await artifact_service.create_chart(db, chart_data, context.session_id, context.user_id)
            chart_id = chart.id
    except Exception as e:
        logger.error(f"[createChart] Error saving chart: {e}")

    result = dict(chart_data)
    if chart_id:
        result["chartId"] = chart_id
        result["imageUrl"] = f"/api/charts/{chart_id}/image"
    return result

async def create_csv(args: CreateCSVArgs, context: ToolContext) -> Dict[str, Any]:
    header_count = len(args.headers)
    invalid_rows = [row for row in args.rows if len(row) != header_count]
    if invalid_rows:
        return {
            "error": True,
            "message": (
                f"❌ **CSV Validation Error**: All rows must have {header_count} columns to match headers. "
                f"Found {len(invalid_rows)} invalid row(s). Please regenerate the CSV with matching column counts."
            ),
            "title": args.title,
            "headers": args.headers,
            "expectedColumns": header_count,
            "invalidRowCount": len(invalid_rows),
        }

    try:
        csv_content = artifact_service.serialize_csv(args.headers, args.rows)
    except Exception as e:
        return {"error": True, "message": f"❌ **CSV Creation Error**: {e}", "title": args.title}

    csv_id = None
    try:
        async with AsyncSessionLocal() as db:
            artifact = await artifact_service.create_csv(
                db, args.title, args.headers, args.rows, args.description, context.session_id, context.user_id
            )
            csv_id = artifact.id
    except Exception as e:
        logger.error(f"[createCSV] Error saving CSV: {e}")

    track("CSV Created", {
        "title": args.title,
        "rowCount": len(args.rows),
        "columnCount": header_count,
        "hasDescription": bool(args.description),
        "savedToDb": bool(csv_id),
    })

    result = {
        "title": args.title,
        "description": args.description,
        "headers": args.headers,
        "rows": args.rows,
        "csvContent": csv_content,
        "rowCount": len(args.rows),
        "columnCount": header_count,
    }
    if csv_id:
        result["csvId"] = csv_id
        result["csvUrl"] = f"/api/csvs/{csv_id}"
        result["_instructions"] = (
            "IMPORTANT: Include this EXACT line in your markdown response to display the table:\n\n"
            f"![csv](csv:{csv_id})\n\n"
            "Do not write [View Table] or any other text - use the image syntax above."
        )
    return result

TOOLS: Dict[str, Tool] = {
    tool.name: tool
    for tool in [
        Tool(
            name="patentSearch",
            description=(
                "Search USPTO patents by technology, inventor, assignee, claims, or patent number. Returns real patent data "
                "including patent numbers, titles, abstracts, filing dates, inventors, and assignees. When users ask for "
                '"examples" or multiple patents, use maxResults=15-20. For single patent lookups, maxResults=5-10 is sufficient.'
            ),
            args_model=PatentSearchArgs,
            handler=patent_search,
        ),
        Tool(
            name="patentAnalysis",
            description=(
                "Deep dive into specific patents for detailed analysis including citations, patent families, legal status, "
                "and related patents. Use this for comprehensive patent research and competitive intelligence."
            ),
            args_model=PatentAnalysisArgs,
            handler=patent_analysis,
        ),
        Tool(
            name="webSearch",
            description="Search the web for general information on any topic",
            args_model=WebSearchArgs,
            handler=web_search,
        ),
        Tool(
            name="codeExecution",
            description=(
                "Execute Python code securely in a Daytona Sandbox for patent data analysis, statistical calculations, and "
                "trend analysis. CRITICAL: Always include print() statements to show results. Maximum 10,000 characters."
            ),
            args_model=CodeExecutionArgs,
            handler=code_execution,
        ),
        Tool(
            name="createChart",
            description=(
                'Create interactive charts for patent data visualization. Types: "line" (time series), "bar" (categorical '
                'comparisons), "area" (cumulative data), "scatter" (positioning/correlation, each series a category and each '
                'point an entity with x, y, size, label), "quadrant" (2x2 matrix with reference lines). '
                "ALL REQUIRED FIELDS MUST BE PROVIDED. Embed the result with ![Chart Title](/api/charts/<chartId>/image)."
            ),
            args_model=CreateChartArgs,
            handler=create_chart,
        ),
        Tool(
            name="createCSV",
            description=(
                "Create downloadable CSV files for patent data, comparison tables and time series exports. Every row must "
                "match the headers. After creating a CSV you MUST reference it in your response with this exact syntax: "
                "![csv](csv:<csvId>)"
            ),
            args_model=CreateCSVArgs,
            handler=create_csv,
        ),
    ]
}

def tool_schemas() -> List[Dict[str, Any]]:
    return [tool.schema() for tool in TOOLS.values()]

async def run_tool(name: str, arguments: Dict[str, Any], context: ToolContext) -> Any:
    tool = TOOLS.get(name)
    if tool is None:
        return {"error": True, "message": f"Unknown tool: {name}"}
    logger.info(f"[Tools] Running {name}")
    return await tool.execute(arguments, context)
