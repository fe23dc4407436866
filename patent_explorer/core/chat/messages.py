import json
import re
from uuid import uuid4
from typing import Any, Dict, List, Optional

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

TOOL_PART_PREFIX = "tool-"

def is_uuid(value: Optional[str]) -> bool:
    return bool(value and UUID_PATTERN.match(value))

def normalize_message_id(value: Optional[str]) -> str:
    """Keep UUID ids, replace the client's short ids with fresh UUIDs."""
    return value if is_uuid(value) else str(uuid4())

def message_parts(message: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Parts of a UI message, accepting the older ``content`` shapes too."""
    parts = message.get("parts")
    if isinstance(parts, list) and parts:
        return parts
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return content
    return parts or []

def message_text(message: Dict[str, Any]) -> str:
    return "".join(part.get("text", "") for part in message_parts(message) if part.get("type") == "text")

def tool_name(part: Dict[str, Any]) -> Optional[str]:
    part_type = part.get("type", "")
    if part_type == "dynamic-tool":
        return part.get("toolName")
    if part_type.startswith(TOOL_PART_PREFIX):
        return part_type[len(TOOL_PART_PREFIX):]
    return None

def serialize_tool_output(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, default=str)

def _assistant_to_openai(parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Turn one assistant UI message into OpenAI chat messages. Each step (split
    on ``step-start``) becomes an assistant message, followed by one ``tool``
    message per completed tool call of that step.
    """
    converted: List[Dict[str, Any]] = []
    text: List[str] = []
    calls: List[Dict[str, Any]] = []
    results: List[Dict[str, Any]] = []

    def flush():
        content = "".join(text) or None
        if calls:
            converted.append({"role": "assistant", "content": content, "tool_calls": list(calls)})
            converted.extend(results)
        elif content:
            converted.append({"role": "assistant", "content": content})
        text.clear()
        calls.clear()
        results.clear()

    for part in parts:
        part_type = part.get("type")
        if part_type == "step-start":
            flush()
        elif part_type == "text":
            text.append(part.get("text", ""))
        elif tool_name(part):
            state = part.get("state")
            if state == "output-available":
                output = part.get("output")
            elif state == "output-error":
                output = part.get("errorText") or "Tool execution failed"
            else:
                # Calls that never produced a result cannot be replayed
                continue
            call_id = part.get("toolCallId") or f"call_{uuid4().hex[:24]}"
            calls.append({
                "id": call_id,
                "type": "function",
                "function": {"name": tool_name(part), "arguments": json.dumps(part.get("input") or {})},
            })
            results.append({"role": "tool", "tool_call_id": call_id, "content": serialize_tool_output(output)})
    flush()
    return converted

def to_openai_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert AI SDK UI messages into the OpenAI chat completions format."""
    converted: List[Dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        if role == "assistant":
            converted.extend(_assistant_to_openai(message_parts(message)))
        elif role in ("user", "system"):
            converted.append({"role": role, "content": message_text(message)})
    return converted

class UIMessageBuilder:
    """Accumulates the assistant UI message while its stream is produced."""

    def __init__(self, message_id: Optional[str] = None):
        self.id = message_id or str(uuid4())
        self.parts: List[Dict[str, Any]] = []
        self._open: Optional[Dict[str, Any]] = None

    def start_step(self):
        self._open = None
        self.parts.append({"type": "step-start"})

    def _append(self, part_type: str, delta: str):
        if self._open is None or self._open["type"] != part_type:
            self._open = {"type": part_type, "text": ""}
            self.parts.append(self._open)
        self._open["text"] += delta

    def add_text(self, delta: str):
        self._append("text", delta)

    def add_reasoning(self, delta: str):
        self._append("reasoning", delta)

    def close_part(self):
        self._open = None

    def add_tool_result(self, call_id: str, name: str, arguments: Dict[str, Any], output: Any, error: bool = False):
        self._open = None
        part = {"type": f"{TOOL_PART_PREFIX}{name}", "toolCallId": call_id, "input": arguments}
        if error:
            part.update({"state": "output-error", "errorText": serialize_tool_output(output)})
        else:
            part.update({"state": "output-available", "output": output})
        self.parts.append(part)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": "assistant", "parts": list(self.parts)}

def build_transcript(
    messages: List[Dict[str, Any]],
    assistant_message: Optional[Dict[str, Any]],
    processing_time_ms: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    The session's complete message list after a turn, ready for
    ``save_chat_messages``: incoming messages plus the new assistant message,
    ids normalized to UUIDs, processing time on the final assistant message.
    """
    conversation = list(messages)
    if assistant_message and assistant_message.get("parts"):
        conversation.append(assistant_message)

    transcript = []
    for index, message in enumerate(conversation):
        is_last_assistant = message.get("role") == "assistant" and index == len(conversation) - 1
        transcript.append({
            "id": normalize_message_id(message.get("id")),
            "role": message.get("role"),
            "content": message_parts(message),
            "processing_time_ms": processing_time_ms if is_last_assistant else None,
        })
    return transcript
