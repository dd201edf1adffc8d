import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from concierge.agent.callbacks import AgentCallbacks
from concierge.agent.context.budget import SystemPromptBuilder
from concierge.agent.context.memory import MemoryProvider
from concierge.agent.context.proactive import ProactiveContext
from concierge.agent.context.pruner import HistoryTrimmer
from concierge.agent.context.summarizer import ProviderSummarizer, Summarizer, SummaryState
from concierge.agent.core.execution import (
    ToolExecutor,
    ToolFailed,
    ToolMismatched,
    ToolOutcome,
)
from concierge.agent.core.state_machine import RunState, StateMachine
from concierge.agent.structs import (
    AgentConfig,
    AgentResponse,
    ContextStats,
    Message,
    Role,
    ToolCall,
    ToolExecution,
)
from concierge.agent.templates import ConversationTemplate
from concierge.agent.validation import CREATIVE_REDIRECT, ToolCallValidator
from concierge.config.settings import Settings
from concierge.exceptions import (
    ContextOverflowError,
    MaxIterationsReachedError,
    NoProviderError,
    OrchestrationError,
)
from concierge.providers.base import BaseProvider
from concierge.tools.base import ToolDefinition
from concierge.tools.registry import ToolRegistry
from concierge.utils.retry import RetryPolicy

LOOP_DETECTED_MESSAGE = (
    "I'm sorry, I seem to be going in circles on that one. "
    "Could you rephrase your request or give me a bit more detail?"
)
EMPTY_RESPONSE_MESSAGE = "I'm not sure how to help with that. Could you rephrase it?"

LOOP_WINDOW = 3
NULL_CONTENT = "null"

_TOPIC_WORD = re.compile(r"[a-z]{4,}")


@dataclass
class StreamResult:
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_executions: List[ToolExecution] = field(default_factory=list)


class Orchestrator:
    """
    Drives one bounded reason/act/observe run per user message.

    Owns the conversation state (messages, trimmed count, summary, active
    template). One run at a time: an overlapping call to `run` raises
    OrchestrationError.
    """

    def __init__(
        self,
        provider: Optional[BaseProvider],
        registry: ToolRegistry,
        config: Optional[AgentConfig] = None,
        settings: Optional[Settings] = None,
        callbacks: Optional[AgentCallbacks] = None,
        memory: Optional[MemoryProvider] = None,
        proactive: Optional[ProactiveContext] = None,
        summarizer: Optional[Summarizer] = None,
        validator: Optional[ToolCallValidator] = None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings or Settings()
        self.config = config or AgentConfig.from_settings(self.settings)
        self.provider = provider
        self.registry = registry
        self.callbacks = callbacks or AgentCallbacks()
        self.memory = memory
        self.validator = validator or ToolCallValidator()

        if proactive is None and self.settings.proactive_context_enabled:
            proactive = ProactiveContext(registry, timeout=self.settings.prefetch_timeout)
        self.proactive = proactive

        if summarizer is None and provider is not None:
            summarizer = ProviderSummarizer(provider)
        self.summary_state = SummaryState(summarizer)
        self.trimmer = HistoryTrimmer.from_settings(self.settings, self.summary_state)
        self.prompt_builder = SystemPromptBuilder.from_settings(self.settings)
        self.executor = ToolExecutor(registry, timeout_seconds=self.settings.tool_timeout)
        self.retry = RetryPolicy(
            max_attempts=self.config.max_retries,
            base_delay=self.config.base_retry_delay,
            sleep=sleep,
        )

        self.state = StateMachine()
        self.messages: List[Message] = []
        self.template: Optional[ConversationTemplate] = None

        self._lock = asyncio.Lock()
        self._cancelled = False
        self._recent_signatures: List[str] = []
        self._executed_tools: List[str] = []
        self._proactive_text: Optional[str] = None
        self.logger = logging.getLogger("Orchestrator")

    # --- Public API ---

    async def run(self, text: str, attachment: Optional[bytes] = None) -> AgentResponse:
        """
        Process one user message to a final response.

        Raises:
            NoProviderError: No provider configured.
            OrchestrationError: Another run is in progress.
            MaxIterationsReachedError: The loop did not converge.
            asyncio.CancelledError: `cancel()` was called mid-stream.
        """
        if self.provider is None:
            error = NoProviderError()
            self._notify("on_error", error)
            raise error
        if self._lock.locked():
            raise OrchestrationError("A run is already in progress on this conversation.")

        async with self._lock:
            self._cancelled = False
            self._recent_signatures = []
            self._executed_tools = []
            try:
                return await self._run(text, attachment)
            except asyncio.CancelledError:
                self.logger.info("Run cancelled")
                raise
            except Exception as e:
                if self.state.can_transition_to(RunState.ERROR):
                    self._set_state(RunState.ERROR)
                self._notify("on_error", e)
                raise
            finally:
                if self.state.is_terminal:
                    self._set_state(RunState.IDLE)
                else:
                    self.state.reset()

    def cancel(self) -> None:
        """Abort the current stream at the next chunk."""
        self._cancelled = True

    def get_context_stats(self) -> ContextStats:
        return self.trimmer.stats(self.messages)

    def get_history(self) -> List[Message]:
        return list(self.messages)

    def get_messages_for_save(self) -> List[Message]:
        """Everything except the system prompt, which is rebuilt every run."""
        return [m for m in self.messages if m.role != Role.SYSTEM]

    def load_messages(self, messages: List[Message]) -> None:
        system = [m for m in self.messages[:1] if m.role == Role.SYSTEM]
        self.messages = system + [m for m in messages if m.role != Role.SYSTEM]
        self.trimmer.reset()

    def reset(self) -> None:
        """Clear history, keeping the system prompt."""
        self.messages = [m for m in self.messages[:1] if m.role == Role.SYSTEM]
        self.trimmer.reset()
        self._recent_signatures = []

    async def reset_for_new_conversation(self) -> None:
        self.reset()
        self.template = None
        if self.provider is not None:
            await self.provider.reset_session()

    def apply_template(self, template: ConversationTemplate) -> Optional[str]:
        """Activate a template; returns its opening prompt, if any."""
        self.template = template
        self.logger.info("Applied template: %s", template.id)
        return template.initial_prompt

    def clear_template(self) -> None:
        self.template = None

    # --- Run loop ---

    async def _run(self, text: str, attachment: Optional[bytes]) -> AgentResponse:
        self._set_state(RunState.PREPARING_PROMPT)
        self._notify("on_thinking")
        self._proactive_text = await self._prefetch(text)
        self._install_system_prompt(self._build_system_prompt(text))

        self._set_state(RunState.TRIMMING)
        self.messages.append(Message.user(text, attachment))
        removed = self.trimmer.trim(self.messages)
        if removed:
            self._notify("on_history_trimmed", removed, self.trimmer.trimmed_count)

        self._set_state(RunState.SELECTING_TOOLS)
        if self.validator.is_creative_writing(text):
            self.logger.info("Creative-writing request intercepted")
            return self._finish_locally(CREATIVE_REDIRECT)

        definitions, fallback = self._select_tools(text)
        if fallback is not None:
            return self._finish_locally(fallback)

        # Fixed for the whole run.
        allowed = frozenset(d.name for d in definitions)
        tool_schemas = [d.to_function_schema() for d in definitions]
        self.logger.debug("Advertising tools: %s", sorted(allowed))

        for iteration in range(1, self.config.max_iterations + 1):
            self._set_state(RunState.STREAMING)
            result = await self._stream_with_retry(tool_schemas, text)

            if self.provider.handles_tools_natively and result.tool_executions:
                self._set_state(RunState.HANDLING_TOOL_CALLS)
                self._record_native_executions(result.tool_executions)
                assistant = Message.assistant(result.content)
                self.messages.append(assistant)
                return self._validate_and_finish(text, assistant, iteration)

            assistant = Message.assistant(result.content, result.tool_calls)
            self.messages.append(assistant)

            if not result.tool_calls:
                return self._validate_and_finish(text, assistant, iteration)

            self._set_state(RunState.HANDLING_TOOL_CALLS)
            await self._handle_tool_calls(text, result.tool_calls, allowed)

            if self._is_looping(result.tool_calls):
                self.logger.warning(
                    "Loop detected: %s repeated %d times",
                    self._recent_signatures[-1],
                    LOOP_WINDOW,
                )
                self._set_state(RunState.LOOP_DETECTED)
                self.messages.append(Message.assistant(LOOP_DETECTED_MESSAGE))
                self._notify("on_response", LOOP_DETECTED_MESSAGE)
                return AgentResponse(
                    LOOP_DETECTED_MESSAGE, RunState.LOOP_DETECTED, iteration
                )

        self._set_state(RunState.MAX_ITERATIONS_REACHED)
        raise MaxIterationsReachedError(self.config.max_iterations)

    # --- Prompt ---

    async def _prefetch(self, text: str) -> Optional[str]:
        if self.proactive is None:
            return None
        return await self.proactive.build(text)

    def _build_system_prompt(self, text: str) -> str:
        memories = None
        if self.memory is not None:
            topics = set(_TOPIC_WORD.findall(text.lower()))
            if topics:
                memories = self.memory.get_relevant_for_conversation(topics)
            else:
                memories = self.memory.get_for_prompt()

        return self.prompt_builder.build(
            template_focus=self.template.system_prompt_focus if self.template else None,
            summary=self.summary_state.summary,
            memories=memories,
            proactive=self._proactive_text,
            disabled_tools=self.registry.get_disabled_tool_descriptions(),
        )

    def _install_system_prompt(self, prompt: str) -> None:
        message = Message.system(prompt)
        if self.messages and self.messages[0].role == Role.SYSTEM:
            self.messages[0] = message
        else:
            self.messages.insert(0, message)

    # --- Tool selection ---

    def _select_tools(self, text: str) -> Tuple[List[ToolDefinition], Optional[str]]:
        """
        Returns:
            (definitions to advertise, locally computed answer or None)
        """
        if self.validator.is_conversational(text):
            return [], None

        available = [
            d
            for d in self.registry.get_definitions()
            if self.template is None or self.template.allows(d.name)
        ]

        restricted = self.validator.restricted_tool_name(text)
        if restricted is None:
            return available[: self.provider.max_tools], None

        narrowed = [d for d in available if d.name == restricted]
        if narrowed:
            return narrowed, None

        self.logger.info("Restricted tool '%s' is unavailable", restricted)
        if restricted == "calculator":
            answer = self.validator.attempt_math_fallback(text)
            if answer is not None:
                return [], answer
        return [], None

    # --- Streaming ---

    async def _stream_once(self, tools: List[Dict[str, Any]]) -> StreamResult:
        result = StreamResult()
        parts: List[str] = []
        self._notify("on_thinking")

        async for chunk in self.provider.stream_complete(list(self.messages), tools):
            if self._cancelled:
                raise asyncio.CancelledError("Run cancelled by caller")
            if chunk.content and chunk.content != NULL_CONTENT:
                parts.append(chunk.content)
                self._notify("on_stream_chunk", chunk.content)
            if chunk.tool_calls is not None:
                result.tool_calls = list(chunk.tool_calls)
            if chunk.tool_executions:
                result.tool_executions.extend(chunk.tool_executions)

        result.content = "".join(parts)
        return result

    async def _stream_with_retry(self, tools: List[Dict[str, Any]], text: str) -> StreamResult:
        recovered = False
        while True:
            if self._cancelled:
                raise asyncio.CancelledError("Run cancelled by caller")
            try:
                return await self.retry.run(lambda: self._stream_once(tools))
            except ContextOverflowError:
                if recovered:
                    raise
                recovered = True
                self.logger.warning("Context overflow reported; trimming aggressively")
                removed = await self.trimmer.aggressive_trim(self.messages, self.provider)
                if removed:
                    self._notify("on_history_trimmed", removed, self.trimmer.trimmed_count)
                self._install_system_prompt(self._build_system_prompt(text))

    # --- Tool handling ---

    async def _handle_tool_calls(
        self, user_text: str, tool_calls: List[ToolCall], allowed: frozenset
    ) -> None:
        for call in tool_calls:
            self._notify("on_tool_call", call.name, call.arguments)
            outcome = await self._run_tool_call(user_text, call, allowed)
            content = outcome.render()
            self.messages.append(Message.tool(call.id, call.name, content))
            self._notify("on_tool_result", call.name, outcome.success, content)

    async def _run_tool_call(
        self, user_text: str, call: ToolCall, allowed: frozenset
    ) -> ToolOutcome:
        mismatch = self.validator.detect_mismatch(user_text, call.name)
        if mismatch:
            self.logger.info("Tool mismatch for '%s': %s", call.name, mismatch)
            return ToolMismatched(mismatch)

        if call.name not in allowed:
            self.logger.info("Model requested unadvertised tool '%s'", call.name)
            return ToolFailed(
                f"Tool '{call.name}' is not available for this request.",
                "Answer directly without calling tools."
                if not allowed
                else f"Available tools: {', '.join(sorted(allowed))}",
            )

        outcome = await self.executor.execute(call)
        if outcome.success:
            self._executed_tools.append(call.name)
        return outcome

    def _record_native_executions(self, executions: List[ToolExecution]) -> None:
        # Backend order is kept; tool results precede the assistant message.
        for execution in executions:
            call = ToolCall(name=execution.name, arguments=execution.arguments)
            self._notify("on_tool_call", execution.name, execution.arguments)
            self.messages.append(Message.tool(call.id, execution.name, execution.result))
            self._notify("on_tool_result", execution.name, execution.success, execution.result)
            if execution.success:
                self._executed_tools.append(execution.name)

    def _is_looping(self, tool_calls: List[ToolCall]) -> bool:
        signature = "|".join(call.signature for call in tool_calls)
        self._recent_signatures.append(signature)
        self._recent_signatures = self._recent_signatures[-LOOP_WINDOW:]
        return (
            len(self._recent_signatures) == LOOP_WINDOW
            and len(set(self._recent_signatures)) == 1
        )

    # --- Completion ---

    def _validate_and_finish(
        self, user_text: str, assistant: Message, iterations: int
    ) -> AgentResponse:
        self._set_state(RunState.VALIDATING)
        corrected = self.validator.check_coherence(
            user_text, assistant.content, self._executed_tools
        )
        final = corrected if corrected is not None else assistant.content
        final = self.validator.apply_refusal_fallback(final)
        if not final.strip():
            final = EMPTY_RESPONSE_MESSAGE
        assistant.content = final
        return self._finish(final, iterations)

    def _finish_locally(self, content: str) -> AgentResponse:
        self.messages.append(Message.assistant(content))
        return self._finish(content, 0)

    def _finish(self, content: str, iterations: int) -> AgentResponse:
        self._set_state(RunState.DONE)
        self._notify("on_response", content)
        return AgentResponse(content, RunState.DONE, iterations)

    # --- Plumbing ---

    def _set_state(self, state: RunState) -> None:
        self.state.transition_to(state)
        self._notify("on_status_changed", state.value)

    def _notify(self, name: str, *args) -> None:
        try:
            getattr(self.callbacks, name)(*args)
        except Exception as e:
            self.logger.warning("Callback %s failed: %s", name, e)
