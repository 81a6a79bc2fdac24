import asyncio
import logging
import sys
import threading
import uuid
from contextlib import aclosing
from typing import List, Optional, Sequence, TextIO, Tuple

from .backend import ChatBackendClient, End, TextChunk, ToolCallRequested
from .errors import BackendError, BackendProtocolError, BackendUnavailableError
from .messages import ConversationHistory, Message
from .tool_registry import ToolDescriptor, ToolInvocationRequest, ToolRegistry

logger = logging.getLogger(__name__)

EXIT_COMMAND = "exit"
USER_PROMPT = "You: "
ASSISTANT_PROMPT = "Assistant: "
INVALID_INPUT_MESSAGE = "Please enter a valid message."


class ChatLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that automatically injects session_id into structured logs."""

    def __init__(self, logger, session_id):
        self.session_id = session_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["session_id"] = self.session_id
        return msg, kwargs


class ChatLoop:
    """Console session driver.

    Reads a line, sends the conversation to the backend, streams the reply
    and runs any tool calls the model requests, until ``exit`` or end of
    input.

    Messages produced during a turn are staged and only committed to the
    history once the turn completes, so a failed turn leaves nothing but the
    user's message behind.
    """

    def __init__(
        self,
        backend: ChatBackendClient,
        registry: ToolRegistry,
        history: ConversationHistory,
        max_tool_round_trips: int = 8,
        request_timeout: Optional[float] = None,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None,
        session_id: Optional[str] = None,
    ):
        self.backend = backend
        self.registry = registry
        self.history = history
        self.max_tool_round_trips = max_tool_round_trips  # Prevent infinite tool call loops
        self.request_timeout = request_timeout
        self.input_stream = input_stream or sys.stdin
        self.output_stream = output_stream or sys.stdout
        self.logger = ChatLoggerAdapter(logger, session_id or str(uuid.uuid4()))

    def write(self, text: str) -> None:
        self.output_stream.write(text)
        self.output_stream.flush()

    def log_item(self, item_type: str, extra: dict, level: int = logging.INFO):
        structured = {"log_type": item_type, **extra}
        self.logger.log(
            level,
            f"{item_type.replace('_', ' ').title()} received",
            extra={"structured": structured},
        )

    async def read_input(self) -> Optional[str]:
        """Prompt for one line. Returns None at end of input."""
        self.write(USER_PROMPT)
        line = await self._readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    async def _readline(self) -> str:
        """Read a line on a daemon thread.

        A read still blocked at Ctrl-C must not hold up shutdown, so the
        default executor (joined by asyncio.run) is not used.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def deliver(setter, value):
            if not future.done():
                setter(value)

        def read():
            try:
                line = self.input_stream.readline()
            except (OSError, ValueError) as e:
                outcome = (future.set_exception, e)
            else:
                outcome = (future.set_result, line)
            try:
                loop.call_soon_threadsafe(deliver, *outcome)
            except RuntimeError:
                # The event loop closed while the read was pending
                logger.debug("Discarding input read after the event loop closed")

        threading.Thread(target=read, name="kernel-chat-stdin", daemon=True).start()
        return await future

    async def run(self) -> int:
        """Run the session until exit. Returns the number of completed turns."""
        self.write("Welcome to the Kernel Chat console!\n")
        self.write(f"To exit the chat, type '{EXIT_COMMAND}'.\n\n")

        completed_turns = 0
        while True:
            line = await self.read_input()
            if line is None:
                self.write("\n")
                self.logger.info("Input closed, ending session")
                break
            if line == EXIT_COMMAND:
                self.logger.info("Exit command received, ending session")
                break
            if not line.strip():
                self.write(f"{INVALID_INPUT_MESSAGE}\n")
                continue

            try:
                await self.run_turn(line)
            except BackendError as e:
                self.log_item(
                    "turn_error",
                    {"error_type": type(e).__name__, "content": str(e)},
                    level=logging.WARNING,
                )
                self.write(f"\n[error] {e}\n\n")
                continue
            completed_turns += 1
        return completed_turns

    async def run_turn(self, user_text: str) -> str:
        """Process a single user message with the tool call loop.

        Returns the final assistant text.

        Raises:
            BackendError: If the backend fails or keeps requesting tools past
                the round trip limit
        """
        self.history.append(Message.user(user_text))
        self.log_item("user_input", {"content": user_text})

        tools = self.registry.describe_all()
        staged: List[Message] = []
        round_trips = 0

        self.write(ASSISTANT_PROMPT)
        while True:
            text, requests = await self._stream_once(staged, tools)
            if not requests:
                break
            if round_trips >= self.max_tool_round_trips:
                raise BackendProtocolError(
                    f"Backend requested more than {self.max_tool_round_trips} tool round trips"
                )
            round_trips += 1
            staged.append(Message.assistant(text, tuple(requests)))
            staged.extend(self._dispatch(request) for request in requests)

        for message in staged:
            self.history.append(message)
        self.history.append(Message.assistant(text))
        self.log_item("assistant_output", {"content": text, "round_trips": round_trips})
        self.write("\n\n")
        return text

    def _dispatch(self, request: ToolInvocationRequest) -> Message:
        self.log_item(
            "tool_call",
            {
                "tool_name": request.tool_name,
                "arguments": request.arguments,
                "call_id": request.call_id,
            },
        )
        output = self.registry.execute(request)
        self.log_item("tool_result", {"tool_name": request.tool_name, "result": output})
        return Message.tool(output, request.call_id)

    async def _stream_once(
        self, staged: Sequence[Message], tools: Sequence[ToolDescriptor]
    ) -> Tuple[str, List[ToolInvocationRequest]]:
        """Drive one backend call, echoing text as it arrives."""
        context = [*self.history.as_sequence(), *staged]
        parts: List[str] = []
        requests: List[ToolInvocationRequest] = []
        completed = False

        async with aclosing(self.backend.stream_completion(context, tools)) as stream:
            while not completed:
                try:
                    fragment = await self._next_fragment(stream)
                except StopAsyncIteration:
                    break
                if isinstance(fragment, TextChunk):
                    self.write(fragment.text)
                    parts.append(fragment.text)
                elif isinstance(fragment, ToolCallRequested):
                    requests.append(fragment.request)
                elif isinstance(fragment, End):
                    completed = True
                else:
                    raise BackendProtocolError(f"Unexpected response fragment: {fragment!r}")

        if not completed:
            raise BackendProtocolError("Backend stream ended without a completion marker")
        return "".join(parts), requests

    async def _next_fragment(self, stream):
        if self.request_timeout is None:
            return await anext(stream)
        try:
            return await asyncio.wait_for(anext(stream), self.request_timeout)
        except asyncio.TimeoutError:
            raise BackendUnavailableError(
                f"No response from backend within {self.request_timeout} seconds"
            ) from None
