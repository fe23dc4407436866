"""
Multi-step tool-calling generation, streamed to the client in the AI SDK
UI message stream protocol (v1) over server-sent events.

Generation runs in a background task that writes SSE frames to a queue; the
HTTP response only drains that queue. A client that goes away stops reading
but never stops generation, so the turn is always persisted.
"""
import asyncio
import json
import logging
import time
from uuid import uuid4
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from patent_explorer.core.chat.messages import UIMessageBuilder, serialize_tool_output
from patent_explorer.core.chat.tools import ToolContext, run_tool, tool_schemas
from patent_explorer.services.polar_service import PolarEventTracker
from patent_explorer.services.provider_selector import ModelSelection

logger = logging.getLogger(__name__)

UI_STREAM_HEADERS = {
    "x-vercel-ai-ui-message-stream": "v1",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DONE = "data: [DONE]\n\n"

# Strong references so running generations are not garbage collected
_background_tasks: Set[asyncio.Task] = set()

def sse(chunk: Dict[str, Any]) -> str:
    return f"data: {json.dumps(chunk, ensure_ascii=False, default=str)}\n\n"

def _reasoning_delta(delta: Any) -> Optional[str]:
    # OpenAI-compatible servers disagree on the field name
    return getattr(delta, "reasoning_content", None) or getattr(delta, "reasoning", None)

class ChatStreamer:
    """
    Runs one chat turn against an OpenAI-compatible endpoint.

    Usage:
        streamer = ChatStreamer(selection, messages, context, system_prompt, on_finish)
        await streamer.open()          # errors here are returned as JSON
        streamer.start()
        return StreamingResponse(streamer.events(), ...)
    """

    def __init__(
        self,
        selection: ModelSelection,
        messages: List[Dict[str, Any]],
        context: ToolContext,
        system_prompt: str,
        on_finish: Callable[[Dict[str, Any], int], Awaitable[None]],
        max_steps: int = 10,
        max_duration_seconds: float = 800,
    ):
        self.selection = selection
        self.client = selection.client()
        self.messages = list(messages)
        self.context = context
        self.system_prompt = system_prompt
        self.on_finish = on_finish
        self.max_steps = max_steps
        self.max_duration_seconds = max_duration_seconds
        self.builder = UIMessageBuilder()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.started_at = time.monotonic()
        self.input_tokens = 0
        self.output_tokens = 0
        self._first_stream = None
        # Streamed parts that still owe their "-end" chunk, by part type
        self._open_parts: Dict[str, str] = {}
        self.task: Optional[asyncio.Task] = None

    async def _create_completion(self):
        return await self.client.chat.completions.create(
            model=self.selection.model,
            messages=[{"role": "system", "content": self.system_prompt}] + self.messages,
            tools=tool_schemas(),
            tool_choice="auto",
            stream=True,
            **self.selection.request_options(),
        )

    async def open(self):
        """Open the first completion so provider errors surface before any bytes are sent."""
        self._first_stream = await self._create_completion()

    async def close(self):
        try:
            await self.client.close()
        except Exception as e:
            logger.warning(f"[Chat API] Failed to close model client: {e}")

    def start(self) -> asyncio.Task:
        self.task = asyncio.create_task(self._produce())
        _background_tasks.add(self.task)
        self.task.add_done_callback(_background_tasks.discard)
        return self.task

    async def events(self) -> AsyncIterator[str]:
        while True:
            frame = await self.queue.get()
            if frame is None:
                break
            yield frame

    async def _emit(self, chunk: Dict[str, Any]):
        await self.queue.put(sse(chunk))

    async def _produce(self):
        await self._emit({"type": "start", "messageId": self.builder.id})
        try:
            await asyncio.wait_for(self._run_steps(), timeout=self.max_duration_seconds)
        except asyncio.TimeoutError:
            logger.error(f"[Chat API] Generation exceeded {self.max_duration_seconds}s")
            await self._end_open_parts()
            await self._emit({"type": "error", "errorText": f"Generation exceeded the maximum duration of {self.max_duration_seconds} seconds."})
        except Exception as e:
            logger.exception("[Chat API] Stream error")
            await self._end_open_parts()
            await self._emit({"type": "error", "errorText": str(e) or "An unexpected error occurred"})
        finally:
            processing_time_ms = int((time.monotonic() - self.started_at) * 1000)
            logger.info(f"[Chat API] Processing completed in {processing_time_ms} ms")
            await self.close()
            await self._report_usage()
            try:
                await self.on_finish(self.builder.to_dict(), processing_time_ms)
            except Exception:
                logger.exception("[Chat API] Error saving messages")
            await self._emit({"type": "finish"})
            await self.queue.put(DONE)
            await self.queue.put(None)

    async def _report_usage(self):
        if not self.selection.metered_user_id:
            return
        try:
            await PolarEventTracker().track_llm_usage(
                self.selection.metered_user_id,
                self.selection.model,
                self.input_tokens,
                self.output_tokens,
                self.context.session_id,
            )
        except Exception as e:
            logger.error(f"[Chat API] Failed to track LLM usage: {e}")

    async def _run_steps(self):
        for step in range(self.max_steps):
            stream = self._first_stream or await self._create_completion()
            self._first_stream = None

            await self._emit({"type": "start-step"})
            self.builder.start_step()
            text, calls = await self._consume(stream, step)

            if not calls:
                await self._emit({"type": "finish-step"})
                return

            self.messages.append({
                "role": "assistant",
                "content": text or None,
                "tool_calls": [
                    {"id": call["id"], "type": "function", "function": {"name": call["name"], "arguments": call["arguments"]}}
                    for call in calls
                ],
            })
            for call in calls:
                await self._run_tool_call(call)
            await self._emit({"type": "finish-step"})

        logger.warning(f"[Chat API] Stopped after {self.max_steps} steps")

    async def _open_part(self, part_type: str, part_id: str):
        if part_type not in self._open_parts:
            self._open_parts[part_type] = part_id
            await self._emit({"type": f"{part_type}-start", "id": part_id})

    async def _end_part(self, part_type: str):
        part_id = self._open_parts.pop(part_type, None)
        if part_id is not None:
            await self._emit({"type": f"{part_type}-end", "id": part_id})

    async def _end_open_parts(self):
        for part_type in ("reasoning", "text"):
            await self._end_part(part_type)
        self.builder.close_part()

    async def _consume(self, stream, step: int):
        """Forward one completion's deltas; return its text and the tool calls it requested."""
        text_id, reasoning_id = f"text-{step}", f"reasoning-{step}"
        text: List[str] = []
        calls: Dict[int, Dict[str, Any]] = {}

        async for chunk in stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self.input_tokens += usage.prompt_tokens or 0
                self.output_tokens += usage.completion_tokens or 0
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta

            reasoning = _reasoning_delta(delta)
            if reasoning:
                await self._open_part("reasoning", reasoning_id)
                await self._emit({"type": "reasoning-delta", "id": reasoning_id, "delta": reasoning})
                self.builder.add_reasoning(reasoning)

            if delta.content:
                await self._end_part("reasoning")
                await self._open_part("text", text_id)
                await self._emit({"type": "text-delta", "id": text_id, "delta": delta.content})
                self.builder.add_text(delta.content)
                text.append(delta.content)

            for tool_call in delta.tool_calls or []:
                call = calls.setdefault(tool_call.index, {"id": None, "name": "", "arguments": "", "announced": False})
                if tool_call.id:
                    call["id"] = tool_call.id
                function = tool_call.function
                if function and function.name:
                    call["name"] += function.name
                if not call["announced"] and call["id"] and call["name"]:
                    call["announced"] = True
                    await self._emit({"type": "tool-input-start", "toolCallId": call["id"], "toolName": call["name"]})
                if function and function.arguments:
                    call["arguments"] += function.arguments
                    if call["announced"]:
                        await self._emit({"type": "tool-input-delta", "toolCallId": call["id"], "inputTextDelta": function.arguments})

        await self._end_open_parts()

        ordered = []
        for index in sorted(calls):
            call = calls[index]
            call["id"] = call["id"] or f"call_{uuid4().hex[:24]}"
            ordered.append(call)
        return "".join(text), ordered

    async def _run_tool_call(self, call: Dict[str, Any]):
        call_id, name = call["id"], call["name"]
        try:
            arguments = json.loads(call["arguments"] or "{}")
        except json.JSONDecodeError:
            arguments = None

        if not isinstance(arguments, dict):
            output = {"error": True, "message": f"Arguments for {name} were not valid JSON. Fix the arguments and call the tool again."}
            await self._emit({"type": "tool-input-available", "toolCallId": call_id, "toolName": name, "input": {}})
            await self._emit({"type": "tool-output-available", "toolCallId": call_id, "output": output})
            self.builder.add_tool_result(call_id, name, {}, output)
            self.messages.append({"role": "tool", "tool_call_id": call_id, "content": serialize_tool_output(output)})
            return

        await self._emit({"type": "tool-input-available", "toolCallId": call_id, "toolName": name, "input": arguments})
        try:
            output = await run_tool(name, arguments, self.context)
        except Exception as e:
            logger.exception(f"[Chat API] Tool {name} failed")
            error_text = str(e) or "Tool execution failed"
            await self._emit({"type": "tool-output-error", "toolCallId": call_id, "errorText": error_text})
            self.builder.add_tool_result(call_id, name, arguments, error_text, error=True)
            self.messages.append({"role": "tool", "tool_call_id": call_id, "content": error_text})
            return

        await self._emit({"type": "tool-output-available", "toolCallId": call_id, "output": output})
        self.builder.add_tool_result(call_id, name, arguments, output)
        self.messages.append({"role": "tool", "tool_call_id": call_id, "content": serialize_tool_output(output)})
