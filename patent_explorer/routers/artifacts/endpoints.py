import logging
import re
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.init_db import get_db
from patent_explorer.services import artifact_service
from patent_explorer.utils.chart_renderer import render_chart_svg

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Artifacts"])

def _filename(title: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "_", title or "").strip("_")
    return f"{slug or 'data'}.csv"

# Public: anyone holding an artifact's UUID can read it, so markdown <img> embeds load without a token

@router.get("/charts/{chart_id}")
async def get_chart(chart_id: str, db: AsyncSession = Depends(get_db)):
    chart = await artifact_service.get_chart(db, chart_id)
    if not chart:
        raise HTTPException(status_code=404, detail="Chart not found")
    return {
        "id": chart.id,
        "sessionId": chart.session_id,
        "chartData": chart.chart_data,
        "createdAt": chart.created_at.isoformat() if chart.created_at else None,
    }

@router.get("/charts/{chart_id}/image")
async def get_chart_image(chart_id: str, db: AsyncSession = Depends(get_db)):
    chart = await artifact_service.get_chart(db, chart_id)
    if not chart:
        raise HTTPException(status_code=404, detail="Chart not found")
    svg = render_chart_svg(chart.chart_data)
    # Charts never change once created
    return Response(content=svg, media_type="image/svg+xml", headers={"Cache-Control": "public, max-age=31536000, immutable"})

@router.get("/csvs/{csv_id}")
async def get_csv(csv_id: str, db: AsyncSession = Depends(get_db)):
    artifact = await artifact_service.get_csv(db, csv_id)
    if not artifact:
        raise HTTPException(status_code=404, detail="CSV not found")
    return artifact_service.csv_to_dict(artifact)

@router.get("/csvs/{csv_id}/download")
async def download_csv(csv_id: str, db: AsyncSession = Depends(get_db)):
    artifact = await artifact_service.get_csv(db, csv_id)
    if not artifact:
        raise HTTPException(status_code=404, detail="CSV not found")
    content = artifact_service.serialize_csv(artifact.headers, artifact.rows)
    logger.info(f"Serving CSV download {csv_id}")
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{_filename(artifact.title)}"'},
    )
