import re
from typing import Any, Dict, Iterable, List

# ![csv](csv:<id>)
CSV_REFERENCE = re.compile(r"!\[[^\]]*\]\(csv:([0-9a-fA-F-]{8,})\)")
# ![Title](/api/charts/<id>/image)
CHART_REFERENCE = re.compile(r"!\[[^\]]*\]\(/api/charts/([0-9a-fA-F-]{8,})/image\)")

def _unique(matches: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for match in matches:
        if match not in seen:
            seen.append(match)
    return seen

def _texts(messages: Iterable[Dict[str, Any]]) -> Iterable[str]:
    for message in messages:
        for part in message.get("parts") or []:
            if part.get("type") == "text" and part.get("text"):
                yield part["text"]

def extract_csv_ids(text: str) -> List[str]:
    return _unique(CSV_REFERENCE.findall(text or ""))

def extract_chart_ids(text: str) -> List[str]:
    return _unique(CHART_REFERENCE.findall(text or ""))

def collect_artifact_references(messages: Iterable[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Chart and CSV ids embedded in the text parts of a transcript, in first-seen order."""
    texts = list(_texts(messages))
    return {
        "charts": _unique(chart_id for text in texts for chart_id in extract_chart_ids(text)),
        "csvs": _unique(csv_id for text in texts for csv_id in extract_csv_ids(text)),
    }
