import asyncio
from datetime import datetime, timezone

import pytest

from backend.counsel.core.errors import CompletionError
from backend.counsel.models.session import SessionRecord
from backend.counsel.orchestration.llm import extract_text
from backend.counsel.services import interaction as ia
from backend.counsel.services.interaction import InteractionController
from backend.tests.stubs import RecordingStore, StubClient


def _controller(client, **kwargs) -> InteractionController:
    controller = InteractionController(client, **kwargs)
    client.controller = controller
    return controller


class MissingCandidatesClient:
    """Answers like an upstream that returned an envelope without candidates."""

    async def complete(self, prompt: str) -> str:
        return extract_text({"promptFeedback": {"blockReason": "OTHER"}})


BLANKS = ["", "   ", "\n\t  "]


@pytest.mark.anyio
@pytest.mark.parametrize("text", BLANKS)
async def test_counsel_rejects_blank_input_without_network(text):
    client = StubClient(["never"])
    controller = _controller(client)

    state = await controller.request_counsel(text)

    assert state.error == ia.COUNSEL_INPUT_REQUIRED
    assert client.prompts == []
    assert state.is_loading_counsel is False


@pytest.mark.anyio
@pytest.mark.parametrize("text", BLANKS)
async def test_prayer_rejects_blank_input_without_network(text):
    client = StubClient(["never"])
    controller = _controller(client)

    state = await controller.request_prayer_prompt(text)

    assert state.error == ia.PRAYER_INPUT_REQUIRED
    assert client.prompts == []
    assert state.is_loading_prayer is False


@pytest.mark.anyio
@pytest.mark.parametrize("problem", ["", "I feel lost"])
async def test_steps_require_counsel_regardless_of_problem(problem):
    client = StubClient(["never"])
    controller = _controller(client)

    state = await controller.request_actionable_steps("  ", problem)

    assert state.error == ia.STEPS_COUNSEL_REQUIRED
    assert client.prompts == []
    assert state.is_loading_actions is False


@pytest.mark.anyio
async def test_counsel_scenario_anxious_about_job():
    client = StubClient(["Trust in the Lord."])
    controller = _controller(client)

    state = await controller.request_counsel("I feel anxious about my job")

    assert client.prompts[0].startswith("Provide biblical counsel")
    assert client.prompts[0].endswith('The input is: "I feel anxious about my job"')
    assert state.counsel == "Trust in the Lord."
    assert state.error == ""
    assert state.problem_text == "I feel anxious about my job"


@pytest.mark.anyio
async def test_counsel_missing_candidates_sets_fixed_error_and_leaves_counsel_empty():
    controller = InteractionController(MissingCandidatesClient())

    state = await controller.request_counsel("I feel anxious about my job")

    assert state.error == ia.COUNSEL_FAILED
    assert state.counsel == ""
    assert state.is_loading_counsel is False


@pytest.mark.anyio
async def test_new_counsel_clears_downstream_outputs_and_error():
    client = StubClient(["counsel one", "a prayer", "some steps", "counsel two"])
    controller = _controller(client)

    await controller.request_counsel("first problem")
    await controller.request_prayer_prompt("first problem")
    await controller.request_actionable_steps(controller.state.counsel, "first problem")
    controller.report_error("stale message")
    assert controller.state.prayer_prompt == "a prayer"
    assert controller.state.actionable_steps == "some steps"

    state = await controller.request_counsel("second problem")

    # Cleared before the call went out
    during = client.observed[-1]
    assert during.is_loading_counsel is True
    assert during.counsel == during.prayer_prompt == during.actionable_steps == during.error == ""
    # And still clear after it finished
    assert state.counsel == "counsel two"
    assert state.prayer_prompt == ""
    assert state.actionable_steps == ""
    assert state.error == ""


@pytest.mark.anyio
async def test_loading_flag_only_true_while_call_is_outstanding():
    client = StubClient(["ok"])
    controller = _controller(client)
    assert controller.state.busy is False

    state = await controller.request_counsel("problem")

    assert client.observed[0].is_loading_counsel is True
    assert client.observed[0].is_loading_prayer is False
    assert state.is_loading_counsel is False
    assert state.busy is False


@pytest.mark.anyio
async def test_loading_flags_cleared_after_failures():
    client = StubClient(error=CompletionError("boom"))
    controller = _controller(client)
    controller._advance(counsel="earlier counsel")

    s1 = await controller.request_prayer_prompt("problem")
    s2 = await controller.request_actionable_steps("earlier counsel", "problem")
    s3 = await controller.request_counsel("problem")

    assert [o.busy for o in client.observed] == [True, True, True]
    assert s1.error == ia.PRAYER_FAILED and s1.is_loading_prayer is False
    assert s2.error == ia.STEPS_FAILED and s2.is_loading_actions is False
    assert s3.error == ia.COUNSEL_FAILED and s3.is_loading_counsel is False
    assert s3.busy is False


@pytest.mark.anyio
async def test_prayer_prompt_fully_replaced_on_each_call():
    client = StubClient(["Lord, grant me patience.", "Lord, heal my friend."])
    controller = _controller(client)

    first = await controller.request_prayer_prompt("I am impatient")
    second = await controller.request_prayer_prompt("My friend is ill")

    assert first.prayer_prompt == "Lord, grant me patience."
    assert second.prayer_prompt == "Lord, heal my friend."
    assert "patience" not in second.prayer_prompt
    assert '"My friend is ill"' in client.prompts[1]


@pytest.mark.anyio
async def test_prayer_prompt_does_not_touch_counsel_or_steps():
    client = StubClient(["counsel", "steps", "prayer"])
    controller = _controller(client)
    await controller.request_counsel("problem")
    await controller.request_actionable_steps("counsel", "problem")

    state = await controller.request_prayer_prompt("problem")

    assert state.counsel == "counsel"
    assert state.actionable_steps == "steps"
    assert state.prayer_prompt == "prayer"


@pytest.mark.anyio
async def test_steps_prompt_uses_given_counsel_and_problem():
    client = StubClient(["1. Pray daily"])
    controller = _controller(client)

    state = await controller.request_actionable_steps("Seek first the kingdom.", "I am overwhelmed")

    assert 'biblical counsel: "Seek first the kingdom."' in client.prompts[0]
    assert 'original problem: "I am overwhelmed"' in client.prompts[0]
    assert state.actionable_steps == "1. Pray daily"


@pytest.mark.anyio
async def test_successful_counsel_appends_exactly_one_record():
    store = RecordingStore()
    client = StubClient(["Trust in the Lord."])
    controller = _controller(client, store=store, identity="user-1")

    await controller.request_counsel("  I feel anxious about my job ")

    assert len(store.appended) == 1
    identity, record = store.appended[0]
    assert identity == "user-1"
    assert record.problem == "  I feel anxious about my job "
    assert record.counsel == "Trust in the Lord."
    assert record.user_id == "user-1"


@pytest.mark.anyio
async def test_failed_counsel_appends_nothing():
    store = RecordingStore()
    controller = _controller(StubClient(error=CompletionError("down")), store=store, identity="user-1")

    await controller.request_counsel("problem")

    assert store.appended == []


@pytest.mark.anyio
async def test_prayer_and_steps_are_not_persisted():
    store = RecordingStore()
    controller = _controller(StubClient(["prayer", "steps"]), store=store, identity="user-1")

    await controller.request_prayer_prompt("problem")
    await controller.request_actionable_steps("counsel", "problem")

    assert store.appended == []


@pytest.mark.anyio
async def test_save_failure_keeps_counsel_and_reports_error():
    store = RecordingStore(fail_append=True)
    controller = _controller(StubClient(["Trust in the Lord."]), store=store, identity="user-1")

    state = await controller.request_counsel("problem")

    assert state.counsel == "Trust in the Lord."
    assert state.error == ia.SAVE_FAILED
    assert state.is_loading_counsel is False


@pytest.mark.anyio
async def test_reentrant_call_of_same_action_is_ignored():
    release = asyncio.Event()

    class SlowClient:
        def __init__(self):
            self.prompts = []

        async def complete(self, prompt: str) -> str:
            self.prompts.append(prompt)
            await release.wait()
            return "done"

    client = SlowClient()
    controller = InteractionController(client)

    first = asyncio.create_task(controller.request_counsel("problem"))
    while not client.prompts:
        await asyncio.sleep(0)
    assert controller.state.is_loading_counsel is True

    ignored = await controller.request_counsel("another problem")
    assert ignored.is_loading_counsel is True
    assert len(client.prompts) == 1

    release.set()
    final = await first
    assert final.counsel == "done"
    assert final.is_loading_counsel is False


def test_apply_history_sorts_newest_first_with_pending_last():
    controller = InteractionController(StubClient())
    older = SessionRecord(id="a", problem="p", counsel="c", user_id="u", timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = SessionRecord(id="b", problem="p", counsel="c", user_id="u", timestamp=datetime(2024, 6, 1, tzinfo=timezone.utc))
    pending = SessionRecord(id="c", problem="p", counsel="c", user_id="u", timestamp=None)

    state = controller.apply_history([pending, older, newer])

    assert [r.id for r in state.history] == ["b", "a", "c"]


def test_initial_error_is_visible_from_the_start():
    controller = InteractionController(StubClient(), initial_error=ia.INIT_FAILED)
    assert controller.state.error == ia.INIT_FAILED


def test_state_is_replaced_not_mutated():
    controller = InteractionController(StubClient())
    before = controller.state
    after = controller.report_error("oops")
    assert before.error == ""
    assert after is not before
    with pytest.raises(Exception):
        before.error = "changed"
