import csv
import io
import logging
from uuid import uuid4
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.models.artifacts import Chart, CSVArtifact

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"

def serialize_csv(headers: List[str], rows: List[List[str]]) -> str:
    """
    Render headers and rows as CSV text with ``\\n`` line endings. Cells
    holding commas, quotes or newlines are quoted, with quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")

def _owner_fields(user_id: Optional[str]) -> Dict[str, Optional[str]]:
    if user_id:
        return {"user_id": user_id, "anonymous_id": None}
    return {"user_id": None, "anonymous_id": ANONYMOUS_OWNER}

async def create_chart(db: AsyncSession, chart_data: Dict[str, Any], session_id: Optional[str], user_id: Optional[str]) -> Chart:
    chart = Chart(id=str(uuid4()), session_id=session_id, chart_data=chart_data, **_owner_fields(user_id))
    db.add(chart)
    await db.commit()
    logger.info(f"Saved chart {chart.id} (session: {session_id})")
    return chart

async def get_chart(db: AsyncSession, chart_id: str) -> Optional[Chart]:
    result = await db.execute(select(Chart).where(Chart.id == chart_id))
    return result.scalar_one_or_none()

async def create_csv(
    db: AsyncSession,
    title: str,
    headers: List[str],
    rows: List[List[str]],
    description: Optional[str],
    session_id: Optional[str],
    user_id: Optional[str],
) -> CSVArtifact:
    artifact = CSVArtifact(
        id=str(uuid4()),
        session_id=session_id,
        title=title,
        description=description,
        headers=headers,
        rows=rows,
        **_owner_fields(user_id),
    )
    db.add(artifact)
    await db.commit()
    logger.info(f"Saved CSV {artifact.id} with {len(rows)} rows (session: {session_id})")
    return artifact

async def get_csv(db: AsyncSession, csv_id: str) -> Optional[CSVArtifact]:
    result = await db.execute(select(CSVArtifact).where(CSVArtifact.id == csv_id))
    return result.scalar_one_or_none()

def csv_to_dict(artifact: CSVArtifact) -> Dict[str, Any]:
    return {
        "id": artifact.id,
        "sessionId": artifact.session_id,
        "title": artifact.title,
        "description": artifact.description,
        "headers": artifact.headers,
        "rows": artifact.rows,
        "csvContent": serialize_csv(artifact.headers, artifact.rows),
        "rowCount": len(artifact.rows),
        "columnCount": len(artifact.headers),
        "createdAt": artifact.created_at.isoformat() if artifact.created_at else None,
    }
