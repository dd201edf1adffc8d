# Test suite for the orchestrator run loop

import asyncio
import json

import pytest

from concierge.agent.context.memory import InMemoryMemoryStore
from concierge.agent.context.summarizer import Summarizer
from concierge.agent.core.orchestrator import (
    EMPTY_RESPONSE_MESSAGE,
    LOOP_DETECTED_MESSAGE,
    Orchestrator,
)
from concierge.agent.core.state_machine import RunState
from concierge.agent.structs import AgentConfig, Message, Role, StreamChunk, ToolCall, ToolExecution
from concierge.agent.templates import BUILTIN_TEMPLATES
from concierge.agent.validation import CREATIVE_REDIRECT, REFUSAL_FALLBACK
from concierge.config.settings import Settings
from concierge.exceptions import (
    ContextOverflowError,
    MaxIterationsReachedError,
    NoProviderError,
    OrchestrationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
)
from concierge.tools.registry import ToolRegistry
from concierge.utils.token_estimation import estimate_tokens

from tests.conftest import (
    RecordingCallbacks,
    ScriptedProvider,
    StaticTool,
    no_sleep,
    text_turn,
    tool_turn,
)

OPEN_REQUEST = "Please summarize the article about climate policy"


class StubSummarizer(Summarizer):
    def __init__(self, result="Earlier the user asked about tea."):
        self.result = result
        self.calls = 0

    async def summarize(self, transcript: str) -> str:
        self.calls += 1
        return self.result


class GatedProvider(ScriptedProvider):
    """Blocks inside the stream until `gate` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()

    async def stream_complete(self, messages, tools):
        self.calls.append({"messages": list(messages), "tools": list(tools)})
        await self.gate.wait()
        for chunk in text_turn(self.default_text):
            yield chunk


def build(provider, registry, settings, **kwargs):
    kwargs.setdefault("callbacks", RecordingCallbacks())
    return Orchestrator(provider, registry, settings=settings, sleep=no_sleep, **kwargs)


def tool_messages(orchestrator):
    return [m for m in orchestrator.messages if m.role == Role.TOOL]


class TestBasicRuns:
    @pytest.mark.asyncio
    async def test_percentage_question_restricted_to_calculator(self, registry, settings):
        provider = ScriptedProvider(
            [
                tool_turn(ToolCall("calculator", '{"expression": "20% of 85"}')),
                text_turn("20% of 85 is 17."),
            ]
        )
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("What's 20% of 85?")

        assert provider.advertised_tool_names(0) == ["calculator"]
        assert "17" in response.content
        assert response.state == RunState.DONE
        assert response.iterations == 2
        assert not response.was_aborted
        assert tool_messages(orchestrator)[0].content == "20% of 85 = 17"
        assert orchestrator.state.current == RunState.IDLE

    @pytest.mark.asyncio
    async def test_conversational_message_advertises_no_tools(self, registry, settings):
        provider = ScriptedProvider([text_turn("Hello! How can I help?")])
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("Hi there")

        assert provider.advertised_tool_names(0) == []
        assert response.content == "Hello! How can I help?"
        assert [m.role for m in orchestrator.messages] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    @pytest.mark.asyncio
    async def test_unrestricted_request_respects_provider_tool_limit(self, registry, settings):
        provider = ScriptedProvider(max_tools=2)
        orchestrator = build(provider, registry, settings)

        await orchestrator.run(OPEN_REQUEST)

        assert provider.advertised_tool_names(0) == ["calculator", "weather"]

    @pytest.mark.asyncio
    async def test_creative_request_bypasses_provider(self, registry, settings):
        provider = ScriptedProvider()
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("Tell me a story")

        assert response.content == CREATIVE_REDIRECT
        assert response.iterations == 0
        assert provider.calls == []
        assert orchestrator.messages[-1].content == CREATIVE_REDIRECT

    @pytest.mark.asyncio
    async def test_math_fallback_when_calculator_unavailable(self, registry, settings):
        registry.disable("calculator")
        provider = ScriptedProvider()
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("What is 9*8?")

        assert response.content == "9 * 8 = 72"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_disabled_tools_are_listed_in_system_prompt(self, registry, settings):
        registry.disable("reminders")
        provider = ScriptedProvider()
        orchestrator = build(provider, registry, settings)

        await orchestrator.run(OPEN_REQUEST)

        system = provider.calls[0]["messages"][0]
        assert system.role == Role.SYSTEM
        assert "- reminders: reminders lookups" in system.content
        assert "reminders" not in provider.advertised_tool_names(0)

    @pytest.mark.asyncio
    async def test_memories_reach_system_prompt(self, registry, settings):
        memory = InMemoryMemoryStore()
        memory.add("Prefers metric units", topics=["weather"])
        provider = ScriptedProvider([text_turn("It is 21 degrees.")])
        orchestrator = build(provider, registry, settings, memory=memory)

        await orchestrator.run("What's the weather like?")

        assert "USER FACTS:\n- Prefers metric units [weather]" in provider.calls[0]["messages"][0].content


class TestToolHandling:
    @pytest.mark.asyncio
    async def test_tool_failure_is_reported_with_suggestion(self, settings):
        calendar = StaticTool("calendar", error="Calendar access denied")
        registry = ToolRegistry([calendar])
        callbacks = RecordingCallbacks()
        provider = ScriptedProvider(
            [tool_turn(ToolCall("calendar", "{}")), text_turn("I couldn't read your calendar.")]
        )
        orchestrator = build(provider, registry, settings, callbacks=callbacks)

        response = await orchestrator.run("What's on my calendar?")

        payload = json.loads(tool_messages(orchestrator)[0].content)
        assert payload["error"] == "Calendar access denied"
        assert "Settings > Privacy > Calendars" in payload["suggestion"]
        assert ("on_tool_result", "calendar", False, tool_messages(orchestrator)[0].content) in callbacks.events
        assert response.content == "I couldn't read your calendar."

    @pytest.mark.asyncio
    async def test_mismatched_tool_is_not_executed(self, registry, settings):
        weather = registry.get_tool("weather")
        provider = ScriptedProvider(
            [tool_turn(ToolCall("weather", "{}")), text_turn("Sorry about that.")]
        )
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("What is 9*8?")

        assert weather.calls == []
        payload = json.loads(tool_messages(orchestrator)[0].content)
        assert "does not match" in payload["error"]
        assert "calculator" in payload["suggestion"]
        # No calculator run, so the local arithmetic result replaces the answer.
        assert response.content == "9 * 8 = 72"

    @pytest.mark.asyncio
    async def test_unadvertised_tool_is_rejected(self, registry, settings):
        provider = ScriptedProvider(
            [tool_turn(ToolCall("reminders", "{}")), text_turn("Hello!")]
        )
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("Hi there")

        assert registry.get_tool("reminders").calls == []
        payload = json.loads(tool_messages(orchestrator)[0].content)
        assert "not available" in payload["error"]
        assert payload["suggestion"] == "Answer directly without calling tools."
        assert response.content == "Hello!"

    @pytest.mark.asyncio
    async def test_tool_result_follows_its_call(self, registry, settings):
        call = ToolCall("weather", '{"location": "Paris"}')
        provider = ScriptedProvider([tool_turn(call), text_turn("Sunny in Paris.")])
        orchestrator = build(provider, registry, settings)

        await orchestrator.run("What's the weather in Paris?")

        roles = [m.role for m in orchestrator.messages]
        assert roles == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert orchestrator.messages[2].tool_calls == [call]
        assert orchestrator.messages[3].tool_call_id == call.id
        assert registry.get_tool("weather").calls == [{"location": "Paris"}]

    @pytest.mark.asyncio
    async def test_native_tool_results_precede_assistant_message(self, registry, settings):
        provider = ScriptedProvider(
            [
                [
                    StreamChunk(
                        tool_executions=[
                            ToolExecution("weather", '{"location": "Oslo"}', "Rain, 8°C")
                        ]
                    ),
                    StreamChunk(content="It's raining in Oslo."),
                    StreamChunk(is_complete=True),
                ]
            ],
            native=True,
        )
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("What's the weather in Oslo?")

        assert len(provider.calls) == 1
        assert [m.role for m in orchestrator.messages[2:]] == [Role.TOOL, Role.ASSISTANT]
        assert orchestrator.messages[2].content == "Rain, 8°C"
        assert response.content == "It's raining in Oslo."


class TestLoopControl:
    @pytest.mark.asyncio
    async def test_identical_calls_trigger_loop_detection(self, registry, settings):
        provider = ScriptedProvider(
            [tool_turn(ToolCall("weather", '{"location": "Paris"}')) for _ in range(5)]
        )
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("What's the weather in Paris?")

        assert response.content == LOOP_DETECTED_MESSAGE
        assert response.state == RunState.LOOP_DETECTED
        assert response.iterations == 3
        assert not response.was_aborted
        assert len(provider.calls) == 3
        assert orchestrator.messages[-1].content == LOOP_DETECTED_MESSAGE

    @pytest.mark.asyncio
    async def test_varied_calls_hit_iteration_limit(self, registry, settings):
        provider = ScriptedProvider(
            [tool_turn(ToolCall("weather", json.dumps({"location": f"city {i}"}))) for i in range(5)]
        )
        callbacks = RecordingCallbacks()
        orchestrator = build(
            provider,
            registry,
            settings,
            config=AgentConfig(max_iterations=3),
            callbacks=callbacks,
        )

        with pytest.raises(MaxIterationsReachedError):
            await orchestrator.run("What's the weather?")

        assert len(provider.calls) == 3
        assert "on_error" in callbacks.names()
        assert orchestrator.state.current == RunState.IDLE


class TestErrors:
    @pytest.mark.asyncio
    async def test_missing_provider(self, registry, settings):
        callbacks = RecordingCallbacks()
        orchestrator = Orchestrator(None, registry, settings=settings, callbacks=callbacks)
        with pytest.raises(NoProviderError):
            await orchestrator.run("Hi")
        assert callbacks.names() == ["on_error"]

    @pytest.mark.asyncio
    async def test_overlapping_run_is_rejected(self, registry, settings):
        provider = GatedProvider(default_text="First")
        orchestrator = build(provider, registry, settings)

        first = asyncio.create_task(orchestrator.run("Hi there"))
        while not provider.calls:
            await asyncio.sleep(0)

        with pytest.raises(OrchestrationError):
            await orchestrator.run("Hello again")

        provider.gate.set()
        response = await first
        assert response.content == "First"

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, registry, settings):
        provider = ScriptedProvider(
            [ProviderRateLimitError("429"), ProviderConnectionError("reset"), text_turn("Done")]
        )
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run("Hi there")

        assert response.content == "Done"
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_retry_exhaustion_reraises(self, registry, settings):
        provider = ScriptedProvider([ProviderConnectionError("down")] * 3)
        orchestrator = build(provider, registry, settings)

        with pytest.raises(ProviderConnectionError):
            await orchestrator.run("Hi there")
        assert len(provider.calls) == 3
        assert orchestrator.state.current == RunState.IDLE

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self, registry, settings):
        provider = ScriptedProvider([ProviderError("model not found")])
        orchestrator = build(provider, registry, settings)

        with pytest.raises(ProviderError):
            await orchestrator.run("Hi there")
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_context_overflow_trims_and_retries_once(self, registry, settings):
        provider = ScriptedProvider([ContextOverflowError("prompt too long"), text_turn("Recovered")])
        summarizer = StubSummarizer()
        orchestrator = build(provider, registry, settings, summarizer=summarizer)
        orchestrator.load_messages(
            [
                Message.user("I like green tea"),
                Message.assistant("Noted."),
                Message.user("And oolong"),
                Message.assistant("Noted too."),
            ]
        )

        response = await orchestrator.run("Hi there")

        assert response.content == "Recovered"
        assert provider.resets == 1
        assert summarizer.calls == 1
        retried = provider.calls[1]["messages"]
        assert "CONVERSATION SUMMARY:\nEarlier the user asked about tea." in retried[0].content
        assert [m.content for m in retried[1:]] == ["Noted too.", "Hi there"]

    @pytest.mark.asyncio
    async def test_second_context_overflow_propagates(self, registry, settings):
        provider = ScriptedProvider([ContextOverflowError("too long"), ContextOverflowError("still")])
        orchestrator = build(provider, registry, settings, summarizer=StubSummarizer())

        with pytest.raises(ContextOverflowError):
            await orchestrator.run("Hi there")

    @pytest.mark.asyncio
    async def test_cancel_aborts_stream(self, registry, settings):
        provider = ScriptedProvider([text_turn("Hello world"), text_turn("Again")])
        orchestrator = build(provider, registry, settings)

        class CancelOnChunk(RecordingCallbacks):
            def on_stream_chunk(self, chunk):
                orchestrator.cancel()

        orchestrator.callbacks = CancelOnChunk()

        with pytest.raises(asyncio.CancelledError):
            await orchestrator.run("Hi there")
        assert orchestrator.state.current == RunState.IDLE

        orchestrator.callbacks = RecordingCallbacks()
        response = await orchestrator.run("Hi there")
        assert response.content == "Again"

    @pytest.mark.asyncio
    async def test_failing_callbacks_do_not_break_run(self, registry, settings):
        class Exploding:
            def __getattr__(self, name):
                def boom(*args):
                    raise RuntimeError(f"{name} exploded")

                return boom

        provider = ScriptedProvider([text_turn("Still fine")])
        orchestrator = build(provider, registry, settings, callbacks=Exploding())

        response = await orchestrator.run("Hi there")

        assert response.content == "Still fine"


class TestResponseValidation:
    @pytest.mark.asyncio
    async def test_refusal_is_replaced(self, registry, settings):
        provider = ScriptedProvider([text_turn("I'm sorry, but I can't help with that.")])
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run(OPEN_REQUEST)

        assert response.content == REFUSAL_FALLBACK
        assert orchestrator.messages[-1].content == REFUSAL_FALLBACK

    @pytest.mark.asyncio
    async def test_empty_response_gets_fallback(self, registry, settings):
        provider = ScriptedProvider([[StreamChunk(content="null"), StreamChunk(is_complete=True)]])
        orchestrator = build(provider, registry, settings)

        response = await orchestrator.run(OPEN_REQUEST)

        assert response.content == EMPTY_RESPONSE_MESSAGE

    @pytest.mark.asyncio
    async def test_callbacks_see_the_run(self, registry, settings):
        callbacks = RecordingCallbacks()
        provider = ScriptedProvider(
            [tool_turn(ToolCall("calculator", '{"expression": "2+2"}')), text_turn("2+2 is 4")]
        )
        orchestrator = build(provider, registry, settings, callbacks=callbacks)

        await orchestrator.run("What is 2+2?")

        names = callbacks.names()
        assert names[0] == "on_status_changed"
        assert ("on_tool_call", "calculator", '{"expression": "2+2"}') in callbacks.events
        assert ("on_tool_result", "calculator", True, "2+2 = 4") in callbacks.events
        assert names[-1] == "on_status_changed"
        assert ("on_response", "2+2 is 4") in callbacks.events
        assert ("on_status_changed", "idle") in callbacks.events


class TestConversationLifecycle:
    @pytest.mark.asyncio
    async def test_long_conversation_is_trimmed_and_summarized(self, registry):
        settings = Settings(_env_file=None, context_window=2300)  # 200 history tokens
        summarizer = StubSummarizer("The user has been dictating notes.")
        callbacks = RecordingCallbacks()
        provider = ScriptedProvider(default_text="Noted.")
        orchestrator = build(provider, registry, settings, summarizer=summarizer, callbacks=callbacks)

        for i in range(50):
            await orchestrator.run(f"Please note item {i} for the shopping list lorem ipsum dolor")
            assert orchestrator.messages[0].role == Role.SYSTEM

        await orchestrator.summary_state.wait()
        assert orchestrator.summary_state.summary == "The user has been dictating notes."
        assert summarizer.calls == 1
        assert orchestrator.trimmer.trimmed_count > 0
        assert "on_history_trimmed" in callbacks.names()
        history = orchestrator.trimmer.history_tokens(orchestrator.messages)
        assert history <= settings.max_history_tokens + estimate_tokens("Noted.")

        await orchestrator.run("Please note one more item for the list")
        system = provider.calls[-1]["messages"][0].content
        assert "CONVERSATION SUMMARY:\nThe user has been dictating notes." in system

    @pytest.mark.asyncio
    async def test_save_reset_and_load(self, registry, settings):
        provider = ScriptedProvider([text_turn("Hello!")])
        orchestrator = build(provider, registry, settings)
        await orchestrator.run("Hi there")

        saved = orchestrator.get_messages_for_save()
        assert [m.role for m in saved] == [Role.USER, Role.ASSISTANT]

        orchestrator.reset()
        assert [m.role for m in orchestrator.get_history()] == [Role.SYSTEM]

        orchestrator.load_messages(saved)
        assert [m.content for m in orchestrator.get_history()[1:]] == ["Hi there", "Hello!"]
        stats = orchestrator.get_context_stats()
        assert stats.message_count == 3
        assert stats.trimmed_count == 0

    @pytest.mark.asyncio
    async def test_reset_for_new_conversation(self, registry, settings):
        provider = ScriptedProvider()
        orchestrator = build(provider, registry, settings)
        orchestrator.apply_template(BUILTIN_TEMPLATES["quick_math"])
        await orchestrator.run("Hi there")

        await orchestrator.reset_for_new_conversation()

        assert orchestrator.template is None
        assert provider.resets == 1
        assert orchestrator.get_messages_for_save() == []


class TestTemplates:
    def test_apply_returns_initial_prompt(self, registry, settings):
        orchestrator = build(ScriptedProvider(), registry, settings)
        assert orchestrator.apply_template(BUILTIN_TEMPLATES["morning_briefing"]) == (
            "Give me my morning briefing."
        )
        assert orchestrator.apply_template(BUILTIN_TEMPLATES["quick_math"]) is None
        orchestrator.clear_template()
        assert orchestrator.template is None

    @pytest.mark.asyncio
    async def test_template_filters_tools_and_sets_focus(self, registry, settings):
        provider = ScriptedProvider()
        orchestrator = build(provider, registry, settings)
        orchestrator.apply_template(BUILTIN_TEMPLATES["morning_briefing"])

        await orchestrator.run(OPEN_REQUEST)

        assert provider.advertised_tool_names(0) == ["weather", "calendar", "reminders"]
        assert "FOCUS: Give a short morning briefing" in provider.calls[0]["messages"][0].content

    @pytest.mark.asyncio
    async def test_template_without_calculator_answers_math_locally(self, registry, settings):
        provider = ScriptedProvider()
        orchestrator = build(provider, registry, settings)
        orchestrator.apply_template(BUILTIN_TEMPLATES["morning_briefing"])

        response = await orchestrator.run("What is 9*8?")

        assert response.content == "9 * 8 = 72"
        assert provider.calls == []
