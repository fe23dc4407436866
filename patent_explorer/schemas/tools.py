from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Union

class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class PatentSearchArgs(ToolArgs):
    query: str = Field(description='Patent search query (e.g., "solid-state battery manufacturing", "Tesla autonomous driving", "US11234567")')
    max_results: int = Field(
        default=15, ge=1, le=20, alias="maxResults",
        description='Maximum number of results (integer between 1 and 20). Use 15-20 when the user asks for "examples" or multiple patents.',
    )

class PatentAnalysisArgs(ToolArgs):
    query: str = Field(description='Patent analysis query (e.g., "US11234567", "patent citations for solid-state battery", "patent family US11234567")')
    max_results: int = Field(default=5, ge=1, le=10, alias="maxResults", description="Maximum number of results (integer between 1 and 10)")

class WebSearchArgs(ToolArgs):
    query: str = Field(description="Search query for any topic")
    max_results: int = Field(default=5, ge=1, le=20, alias="maxResults", description="Maximum number of results (integer between 1 and 20)")

class CodeExecutionArgs(ToolArgs):
    code: str = Field(description="Python code to execute - MUST include print() statements")
    description: Optional[str] = Field(default=None, description="Brief description of the calculation")

class ChartType(str, Enum):
    LINE = "line"
    BAR = "bar"
    AREA = "area"
    SCATTER = "scatter"
    QUADRANT = "quadrant"

class DataPoint(BaseModel):
    x: Union[float, str] = Field(description="X-axis value - date/label string for time series, number for scatter/quadrant")
    y: float = Field(description="Y-axis numeric value. Required for all chart types.")
    size: Optional[float] = Field(default=None, description="Bubble size for scatter/quadrant charts")
    label: Optional[str] = Field(default=None, description='Entity name for scatter/quadrant points (e.g., "US11234567")')

class DataSeries(BaseModel):
    name: str = Field(description="Series name; for scatter/quadrant the category used for color coding")
    data: List[DataPoint] = Field(description="Data points of the series")

class CreateChartArgs(ToolArgs):
    title: str = Field(description='Chart title (e.g., "Solid-State Battery Patents - Filing Trends")')
    type: ChartType = Field(description='"line" (time series), "bar" (comparisons), "area" (cumulative), "scatter" (positioning), "quadrant" (2x2 matrix)')
    x_axis_label: str = Field(alias="xAxisLabel", description='X-axis label (e.g., "Year")')
    y_axis_label: str = Field(alias="yAxisLabel", description='Y-axis label (e.g., "Number of Patents")')
    data_series: List[DataSeries] = Field(alias="dataSeries", min_length=1, description="One or more data series")
    description: Optional[str] = Field(default=None, description="Optional description explaining what the chart shows")

class CreateCSVArgs(ToolArgs):
    title: str = Field(description="Title for the CSV file (used as filename)")
    description: Optional[str] = Field(default=None, description="Optional description of the data")
    headers: List[str] = Field(description="Column headers for the CSV")
    rows: List[List[str]] = Field(description="Data rows - each row is an array matching the headers")
