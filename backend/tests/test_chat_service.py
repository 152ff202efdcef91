"""
SafetyAI - Chat Service Tests

Tests for escalation rules, reference documents, role guidance and
session-aware query processing.

Run with: pytest tests/test_chat_service.py -v
"""

import pytest

from safetyai.core.exceptions import TransientTransportError
from safetyai.core.types import UserContext
from safetyai.gemini.client import DummyGenerationClient
from safetyai.gemini.models import FinishReason, text_response
from safetyai.services.chat_service import (
    EMPTY_QUERY_REPLY,
    FAILURE_REPLY,
    ChatService,
    requires_escalation,
    requires_human_review,
    retrieve_relevant_documents,
    role_guidance,
)


class TestEscalation:
    """Tests for requires_escalation / requires_human_review."""

    def test_query_keyword(self):
        assert requires_escalation("There was an accident on site", "Stay calm.", 0.95)

    def test_response_keyword(self):
        assert requires_escalation("What gloves?", "Please consult your safety officer.", 0.95)

    def test_low_confidence(self):
        assert requires_escalation("What gloves?", "Nitrile gloves.", 0.6)

    def test_no_escalation(self):
        assert not requires_escalation("What gloves?", "Nitrile gloves.", 0.95)

    def test_human_review(self):
        assert requires_human_review("Contact the EHS team.")
        assert not requires_human_review("Speak with the team lead.")


class TestReferenceDocuments:
    """Tests for retrieve_relevant_documents."""

    def test_keyword_groups(self):
        titles = [d.title for d in retrieve_relevant_documents("Which PPE for chemical handling?")]
        assert titles == [
            "PPE Selection Guide",
            "PPE Inspection and Maintenance",
            "Chemical Hazard Communication",
            "Chemical Spill Response",
        ]

    def test_no_match(self):
        assert retrieve_relevant_documents("When is lunch?") == []

    def test_capped(self):
        query = "osha fire ppe training chemical"
        assert len(retrieve_relevant_documents(query)) == 10
        assert len(retrieve_relevant_documents(query, limit=3)) == 3


class TestRoleGuidance:
    """Tests for role_guidance."""

    def test_keyword_rule(self):
        assert "lockout/tagout" in role_guidance("The machine jammed", "Maintenance")

    def test_role_default(self):
        assert role_guidance("Where is the exit?", "Supervisor").startswith("Lead by example")

    def test_alias(self):
        assert role_guidance("This looks unsafe", "Employee") == role_guidance("This looks unsafe", "Worker")

    def test_unknown_or_missing_role(self):
        assert role_guidance("Anything", "Astronaut") == ""
        assert role_guidance("Anything", None) == ""


class TestChatService:
    """Tests for ChatService.process_query."""

    @pytest.mark.asyncio
    async def test_answer_with_actions(self, test_settings, dummy_client, session_store):
        service = ChatService(dummy_client, session_store, test_settings)
        reply = await service.process_query("How do I store ladders?", "s1")

        assert reply.is_success
        assert reply.session_id == "s1"
        assert reply.confidence == 0.95
        assert reply.suggested_actions
        assert not reply.requires_escalation
        snapshot = await session_store.snapshot("s1")
        assert snapshot["query_history"] == ["How do I store ladders?"]
        assert snapshot["response_history"] == [reply.response]

    @pytest.mark.asyncio
    async def test_empty_query(self, test_settings, dummy_client, session_store):
        """Empty queries get a fixed reply without a call or a session."""
        service = ChatService(dummy_client, session_store, test_settings)
        reply = await service.process_query("   ", "s1")

        assert reply.response == EMPTY_QUERY_REPLY
        assert reply.confidence == 1.0
        assert dummy_client.calls == 0
        assert await session_store.count() == 0

    @pytest.mark.asyncio
    async def test_second_query_framed_with_history(self, test_settings, dummy_client, session_store):
        service = ChatService(dummy_client, session_store, test_settings)
        await service.process_query("Do I need a helmet?", "s1")
        await service.process_query("And gloves?", "s1")

        first_prompt = dummy_client.requests[0].contents[0].parts[0].text
        second_prompt = dummy_client.requests[1].contents[0].parts[0].text
        assert "Previous:" not in first_prompt
        assert "Previous: Do I need a helmet?\n\nCurrent question: And gloves?" in second_prompt

    @pytest.mark.asyncio
    async def test_role_guidance_appended(self, test_settings, dummy_client, session_store):
        service = ChatService(dummy_client, session_store, test_settings)
        reply = await service.process_query(
            "A worker skipped the briefing", "s1", UserContext(role="Supervisor", location="Dock 4"),
        )

        assert "\n\n**For Supervisor:** Ensure your team understands" in reply.response
        prompt = dummy_client.requests[0].contents[0].parts[0].text
        assert "As a Supervisor, A worker skipped the briefing (Location: Dock 4)" in prompt

    @pytest.mark.asyncio
    async def test_escalation_on_incident_query(self, test_settings, dummy_client, session_store):
        service = ChatService(dummy_client, session_store, test_settings)
        reply = await service.process_query("Someone had an injury, what now?", "s1")

        assert reply.requires_escalation

    @pytest.mark.asyncio
    async def test_low_confidence_escalates(self, test_settings, session_store):
        client = DummyGenerationClient(script=[text_response("Filtered answer", FinishReason.SAFETY)])
        reply = await ChatService(client, session_store, test_settings).process_query("What gloves?", "s1")

        assert reply.confidence == 0.60
        assert reply.requires_escalation

    @pytest.mark.asyncio
    async def test_failure_apology(self, test_settings, session_store):
        client = DummyGenerationClient(script=[TransientTransportError("busy", status=503)])
        reply = await ChatService(client, session_store, test_settings).process_query("What gloves?", "s1")

        assert not reply.is_success
        assert reply.response == FAILURE_REPLY
        assert reply.confidence == 0.0
        assert reply.requires_human_review
        assert reply.requires_escalation
        assert reply.error_message == "busy"

    @pytest.mark.asyncio
    async def test_failure_keeps_histories_paired(self, test_settings, session_store):
        """A failed turn records the apology so a later turn lines up with its query."""
        client = DummyGenerationClient(script=[
            TransientTransportError("busy", status=503),
            text_response("Use cut-resistant gloves.", FinishReason.STOP),
        ])
        service = ChatService(client, session_store, test_settings)

        await service.process_query("What gloves?", "s1")
        after_failure = await session_store.snapshot("s1")
        assert after_failure["query_history"] == ["What gloves?"]
        assert after_failure["response_history"] == [FAILURE_REPLY]

        await service.process_query("For glass handling?", "s1")
        session = await session_store.snapshot("s1")
        assert session["query_history"] == ["What gloves?", "For glass handling?"]
        assert session["response_history"][0] == FAILURE_REPLY
        assert session["response_history"][1].startswith("Use cut-resistant gloves.")
