"""Tests for the editor-session SyncEngine."""

import asyncio

import pytest
from conftest import run, wait_until

from personastudio.errors import EmptyInputError, GatewayError, ValidationError
from personastudio.schemas import ExtractedParameters, Persona
from personastudio.services import EditorMode, SyncEngine, SyncTrigger


def saved_persona(**fields):
    return Persona(id="p1", **fields)


class TestPassiveRegeneration:
    """Debounced summary refresh after parameter edits."""

    def test_rapid_edits_fire_once_with_latest_state(self, fake_gateway):
        engine = SyncEngine(fake_gateway, debounce_seconds=0.2)

        async def scenario():
            engine.open(None)
            engine.edit_field("name", "A")
            await asyncio.sleep(0.05)
            engine.edit_field("name", "Ad")
            await asyncio.sleep(0.05)
            engine.edit_field("name", "Ada")

            # Window restarted at the last edit
            await asyncio.sleep(0.1)
            assert fake_gateway.summary_calls == []

            await engine.wait_idle()

        run(scenario())

        assert len(fake_gateway.summary_calls) == 1
        assert fake_gateway.summary_calls[0].name == "Ada"
        assert engine.state.summary == "Summary of Ada the"

    def test_open_does_not_schedule(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada", summary="kept"))
            assert not engine.regeneration_pending
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.summary_calls == []
        assert engine.state.summary == "kept"

    def test_summary_edit_does_not_schedule(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada"))
            engine.edit_summary("Hand written")
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.summary_calls == []
        assert engine.state.summary == "Hand written"

    def test_unchanged_value_does_not_schedule(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada"))
            engine.edit_field("name", "Ada")
            assert not engine.regeneration_pending
            await asyncio.sleep(0.1)

        run(scenario())
        assert fake_gateway.summary_calls == []

    def test_only_fires_in_editor_mode(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada"))
            engine.edit_field("role", "Detective")
            engine.set_mode(EditorMode.AI_TOOLS)
            await engine.wait_idle()

            engine.set_mode(EditorMode.CHAT)
            engine.edit_field("role", "Inspector")
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.summary_calls == []
        assert engine.state.role == "Inspector"

    def test_blank_name_skips_passive_request(self, engine, fake_gateway):
        async def scenario():
            engine.open(None)
            engine.edit_field("role", "Detective")
            await engine.wait_idle()

        run(scenario())

        assert fake_gateway.summary_calls == []
        assert engine.error is None

    def test_passive_failure_is_silent(self, engine, fake_gateway, gateway_error):
        fake_gateway.summary_error = gateway_error

        async def scenario():
            engine.open(saved_persona(name="Ada", summary="old"))
            engine.edit_field("role", "Detective")
            await engine.wait_idle()

        run(scenario())

        assert len(fake_gateway.summary_calls) == 1
        assert engine.error is None
        assert engine.state.summary == "old"

    def test_edits_during_flight_coalesce_into_one_follow_up(self, engine, fake_gateway):
        async def scenario():
            fake_gateway.summary_gate = asyncio.Event()
            engine.open(saved_persona(name="Ada"))
            engine.edit_field("role", "Clerk")
            await wait_until(lambda: len(fake_gateway.summary_calls) == 1)

            engine.edit_field("role", "Sergeant")
            await asyncio.sleep(0.1)
            engine.edit_field("role", "Detective")
            await asyncio.sleep(0.1)
            assert len(fake_gateway.summary_calls) == 1

            fake_gateway.summary_gate.set()
            await engine.wait_idle()

        run(scenario())

        assert len(fake_gateway.summary_calls) == 2
        assert fake_gateway.summary_calls[1].role == "Detective"
        assert engine.state.summary == "Summary of Ada the Detective"

    def test_result_for_outdated_parameters_is_dropped(self, engine, fake_gateway):
        async def scenario():
            fake_gateway.summary_gate = asyncio.Event()
            engine.open(saved_persona(name="Ada", summary="untouched"))
            engine.edit_field("role", "Clerk")
            await wait_until(lambda: len(fake_gateway.summary_calls) == 1)

            # Switching tabs postpones the follow-up, so only staleness is in play
            engine.edit_field("role", "Detective")
            engine.set_mode(EditorMode.AI_TOOLS)
            fake_gateway.summary_gate.set()
            await engine.wait_idle()
            assert engine.state.summary == "untouched"
            assert engine.regeneration_pending

            engine.set_mode(EditorMode.EDITOR)
            await engine.wait_idle()

        run(scenario())

        assert len(fake_gateway.summary_calls) == 2
        assert engine.state.summary == "Summary of Ada the Detective"

    def test_updates_made_in_another_tab_refresh_on_return(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada", summary="old"))
            engine.set_mode(EditorMode.AI_TOOLS)
            engine.apply_parameter_updates({"role": "Detective"})
            await asyncio.sleep(0.1)
            assert fake_gateway.summary_calls == []

            engine.set_mode(EditorMode.EDITOR)
            await engine.wait_idle()

        run(scenario())

        assert len(fake_gateway.summary_calls) == 1
        assert engine.state.summary == "Summary of Ada the Detective"
        assert not engine.regeneration_pending

    def test_return_to_editor_without_edits_does_not_schedule(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada", summary="kept"))
            engine.set_mode(EditorMode.CHAT)
            engine.set_mode(EditorMode.EDITOR)
            assert not engine.regeneration_pending
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.summary_calls == []

    def test_refresh_cut_off_by_closed_loop_resumes_later(self, engine, fake_gateway):
        engine.open(saved_persona(name="Ada", summary="old"))

        async def refine():
            engine.apply_parameter_updates({"role": "Detective"})

        run(refine())
        assert engine.regeneration_pending
        assert fake_gateway.summary_calls == []

        run(engine.wait_idle())

        assert engine.state.summary == "Summary of Ada the Detective"
        assert not engine.regeneration_pending

    def test_hand_edited_summary_survives_inflight_refresh(self, engine, fake_gateway):
        async def scenario():
            fake_gateway.summary_gate = asyncio.Event()
            engine.open(saved_persona(name="Ada"))
            engine.edit_field("role", "Clerk")
            await wait_until(lambda: len(fake_gateway.summary_calls) == 1)

            engine.edit_summary("Written by hand")
            fake_gateway.summary_gate.set()
            await engine.wait_idle()

        run(scenario())

        assert engine.state.summary == "Written by hand"


class TestExplicitRegeneration:
    """Refresh Summary button."""

    def test_applies_summary(self, engine, fake_gateway):
        engine.open(saved_persona(name="Ada", role="Detective", summary="old"))

        summary = run(engine.request_summary_regeneration(SyncTrigger.EXPLICIT))

        assert summary == "Summary of Ada the Detective"
        assert engine.state.summary == summary
        assert engine.error is None

    def test_blank_name_raises_without_call(self, engine, fake_gateway):
        engine.open(None)

        with pytest.raises(EmptyInputError):
            run(engine.request_summary_regeneration(SyncTrigger.EXPLICIT))

        assert fake_gateway.summary_calls == []
        assert engine.error

    def test_failure_surfaces_and_keeps_state(self, engine, fake_gateway, gateway_error):
        fake_gateway.summary_error = gateway_error
        engine.open(saved_persona(name="Ada", summary="old"))

        with pytest.raises(GatewayError):
            run(engine.request_summary_regeneration(SyncTrigger.EXPLICIT))

        assert engine.error == "model unavailable"
        assert engine.state.summary == "old"

        engine.dismiss_error()
        assert engine.error is None

    def test_result_after_reopen_is_discarded(self, engine, fake_gateway):
        other = Persona(id="p2", name="Bea", summary="Bea's summary")

        async def scenario():
            fake_gateway.summary_gate = asyncio.Event()
            engine.open(saved_persona(name="Ada"))
            task = asyncio.ensure_future(engine.request_summary_regeneration(SyncTrigger.EXPLICIT))
            await wait_until(lambda: len(fake_gateway.summary_calls) == 1)

            engine.open(other)
            fake_gateway.summary_gate.set()
            return await task

        assert run(scenario()) is None
        assert engine.persona_id == "p2"
        assert engine.state.summary == "Bea's summary"

    def test_result_after_close_is_discarded(self, engine, fake_gateway):
        async def scenario():
            fake_gateway.summary_gate = asyncio.Event()
            engine.open(saved_persona(name="Ada", summary="old"))
            token = engine.token
            task = asyncio.ensure_future(engine.request_summary_regeneration(SyncTrigger.EXPLICIT))
            await wait_until(lambda: len(fake_gateway.summary_calls) == 1)

            engine.close()
            assert engine.token != token
            fake_gateway.summary_gate.set()
            return await task

        assert run(scenario()) is None
        assert engine.state.summary == "old"
        assert not engine.is_open


class TestBulkOverwrites:
    """Extraction, research and undo."""

    def test_sync_from_summary_merges_and_arms_undo(self, engine, fake_gateway):
        before = saved_persona(name="Old", other="Loves tea", summary="Ada is a detective.")

        async def scenario():
            engine.open(before)
            await engine.request_extraction_from_summary()
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.extract_calls == [("Ada is a detective.", "summary")]
        assert engine.state.role == "Detective"
        # Blank extracted `other` never wipes the existing value
        assert engine.state.other == "Loves tea"
        assert engine.state.summary == "Ada is a detective."
        assert fake_gateway.summary_calls == []
        assert engine.undo.armed

        assert engine.undo_last() is True
        assert engine.state == before.snapshot()
        assert engine.undo_last() is False

    def test_empty_summary_raises_without_arming(self, engine, fake_gateway):
        engine.open(saved_persona(name="Ada", summary="  "))

        with pytest.raises(EmptyInputError):
            run(engine.request_extraction_from_summary())

        assert not engine.undo.armed
        assert fake_gateway.extract_calls == []

    def test_failed_extraction_disarms_undo(self, engine, fake_gateway, gateway_error):
        fake_gateway.extract_error = gateway_error
        before = saved_persona(name="Ada", role="Clerk")
        engine.open(before)

        with pytest.raises(GatewayError):
            run(engine.request_extraction_from_document("Some reference text"))

        assert engine.undo.consume() is None
        assert engine.state == before.snapshot()
        assert engine.error == "model unavailable"

    def test_two_actions_keep_only_second_snapshot(self, engine, fake_gateway):
        engine.open(saved_persona(name="Ada", summary="text"))
        run(engine.request_extraction_from_document("first document"))
        after_first = engine.state

        fake_gateway.extracted = ExtractedParameters(
            name="Ada", role="Inspector", tone="", personality="", worldview="", experience="",
        )
        run(engine.request_extraction_from_document("second document"))

        assert engine.undo_last()
        assert engine.state == after_first
        assert not engine.undo_last()

    def test_document_extraction_schedules_summary_refresh(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada"))
            await engine.request_extraction_from_document("A dossier")
            await engine.wait_idle()

        run(scenario())

        assert fake_gateway.extract_calls == [("A dossier", "document")]
        assert len(fake_gateway.summary_calls) == 1
        assert engine.state.summary == "Summary of Ada the Detective"

    def test_web_generation_replaces_sources(self, engine, fake_gateway):
        engine.open(saved_persona(name="Ada", sources=[{"title": "Old", "uri": "https://old.example"}]))

        run(engine.request_web_generation("Ada Lovelace"))

        assert [s.uri for s in engine.state.sources] == ["https://example.com/ada"]
        assert engine.state.role == "Detective"
        assert engine.undo.armed

    def test_blank_topic_raises(self, engine):
        engine.open(None)
        with pytest.raises(EmptyInputError):
            run(engine.request_web_generation(" "))

    def test_personality_analysis_replaces_profile(self, engine):
        engine.open(saved_persona(name="Ada"))

        profile = run(engine.request_personality_analysis())

        assert profile.type == "INTJ"
        assert engine.state.mbti_profile == profile

    def test_refinement_updates_ignore_unknown_fields(self, engine):
        engine.open(saved_persona(name="Ada", other="Loves tea"))

        engine.apply_parameter_updates({"tone": "Warm", "summary": "nope", "age": "40", "other": ""})

        assert engine.state.tone == "Warm"
        assert engine.state.summary == ""
        assert engine.state.other == "Loves tea"

    def test_unknown_field_edit_raises(self, engine):
        engine.open(None)
        with pytest.raises(ValueError):
            engine.edit_field("age", "40")


class TestSessionLifecycle:
    """Revert, save and reopen."""

    def test_revert_clears_undo(self, engine, fake_gateway, store):
        async def scenario():
            engine.edit_field("name", "Ada")
            await engine.save(store)
            engine.edit_field("role", "Detective")
            await engine.save(store)
            await engine.request_extraction_from_document("dossier")
            assert engine.undo.armed

            engine.revert(engine.history.entries[0])

        engine.open(None)
        run(scenario())

        assert engine.state.role == ""
        assert not engine.undo.armed

    def test_undo_drops_queued_refresh(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada", summary="kept"))
            await engine.request_extraction_from_document("dossier")
            assert engine.regeneration_pending
            engine.undo_last()
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.summary_calls == []
        assert engine.state.summary == "kept"

    def test_save_blank_name_surfaces_error(self, engine, store):
        engine.open(None)
        engine.edit_field("role", "Detective")

        with pytest.raises(ValidationError):
            run(engine.save(store))

        assert engine.error == "Persona name is required"
        assert engine.state.role == "Detective"
        assert len(store) == 0

    def test_save_reopens_on_saved_persona(self, engine, store):
        engine.open(None)
        engine.edit_field("name", "Ada")

        persona = run(engine.save(store))

        assert engine.persona_id == persona.id
        assert engine.state == persona.snapshot()
        assert engine.history.entries == []

    def test_close_cancels_pending_refresh(self, engine, fake_gateway):
        async def scenario():
            engine.open(saved_persona(name="Ada"))
            engine.edit_field("role", "Detective")
            engine.close()
            await asyncio.sleep(0.1)

        run(scenario())

        assert fake_gateway.summary_calls == []
        assert not engine.regeneration_pending
