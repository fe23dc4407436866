"""
Tests for chart creation, persistence and SVG rendering.
"""

from __future__ import annotations

import asyncio

import pytest

from patent_explorer.core.chat.tools import ToolContext, chart_date_range, create_chart
from patent_explorer.models.artifacts import Chart
from patent_explorer.schemas.tools import CreateChartArgs
from patent_explorer.utils.chart_renderer import render_chart_svg

FILING_TRENDS = {
    "title": "Solid-State Battery Patents - Filing Trends",
    "type": "line",
    "xAxisLabel": "Year",
    "yAxisLabel": "Number of Patents",
    "dataSeries": [
        {"name": "Toyota", "data": [{"x": "2015", "y": 12}, {"x": "2020", "y": 40}, {"x": "2024", "y": 95}]},
        {"name": "Samsung", "data": [{"x": "2015", "y": 5}, {"x": "2024", "y": 61}]},
    ],
}

LANDSCAPE = {
    "title": "Assignee Landscape",
    "type": "quadrant",
    "xAxisLabel": "Portfolio Size",
    "yAxisLabel": "Citation Impact",
    "dataSeries": [
        {"name": "Automotive", "data": [{"x": 120, "y": 3.5, "size": 40, "label": "Toyota"}]},
        {"name": "Electronics", "data": [{"x": 45, "y": 1.2, "size": 10, "label": "Samsung & Co"}]},
    ],
}


@pytest.mark.asyncio
async def test_line_chart_is_persisted_with_metadata(db_session) -> None:
    result = await create_chart(CreateChartArgs.model_validate(FILING_TRENDS), ToolContext(user_id="user-1"))

    assert result["chartType"] == "line"
    assert result["metadata"]["totalSeries"] == 2
    assert result["metadata"]["totalDataPoints"] == 5
    assert result["metadata"]["dateRange"] == {"start": "2015", "end": "2024"}
    chart_id = result["chartId"]
    assert result["imageUrl"] == f"/api/charts/{chart_id}/image"

    stored = db_session.get(Chart, chart_id)
    assert stored.user_id == "user-1"
    assert stored.chart_data["title"] == FILING_TRENDS["title"]


def test_scatter_date_range_reports_value_spans() -> None:
    series = LANDSCAPE["dataSeries"]

    assert chart_date_range("quadrant", series) == {"start": "X: 45.0-120.0", "end": "Y: 1.2-3.5"}
    assert chart_date_range("line", []) is None


def test_svg_rendering_for_each_chart_type() -> None:
    for chart_type in ("line", "bar", "area"):
        svg = render_chart_svg({**FILING_TRENDS, "chartType": chart_type})
        assert svg.startswith("<svg")
        assert svg.endswith("</svg>")
        assert "Toyota" in svg

    quadrant = render_chart_svg({**LANDSCAPE, "chartType": "quadrant"})
    assert "stroke-dasharray" in quadrant
    assert "Samsung &amp; Co" in quadrant


def test_chart_endpoints(client) -> None:
    result = asyncio.run(create_chart(CreateChartArgs.model_validate(FILING_TRENDS), ToolContext()))
    chart_id = result["chartId"]

    response = client.get(f"/api/charts/{chart_id}")
    assert response.status_code == 200
    assert response.json()["chartData"]["chartType"] == "line"

    image = client.get(f"/api/charts/{chart_id}/image")
    assert image.status_code == 200
    assert image.headers["content-type"].startswith("image/svg+xml")
    assert image.text.startswith("<svg")

    assert client.get("/api/charts/00000000-0000-0000-0000-00000000dead/image").status_code == 404
