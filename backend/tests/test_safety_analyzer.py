"""
SafetyAI - Safety Analyzer Tests

Tests for the heuristic classifier, recommendation/compliance tables
and remote analysis with fallback.

Run with: pytest tests/test_safety_analyzer.py -v
"""

import pytest

from safetyai.core.exceptions import PermanentTransportError, TransientTransportError
from safetyai.core.types import IncidentType, SeverityLevel
from safetyai.gemini.client import DummyGenerationClient
from safetyai.gemini.models import FinishReason, text_response
from safetyai.services.safety_analyzer import (
    GENERAL_DUTY_CLAUSE,
    NO_TEXT_SUMMARY,
    RECORDKEEPING_STANDARD,
    HeuristicClassifier,
    SafetyAnalyzer,
    generate_recommendations,
    map_to_standards,
)


@pytest.fixture
def classifier() -> HeuristicClassifier:
    return HeuristicClassifier()


class TestHeuristicClassifier:
    """Tests for keyword classification and escalation."""

    def test_slip_with_injury(self, classifier, slip_incident_text):
        """Slip plus injury: SLIP, at least MEDIUM, risk between 5 and 7."""
        result = classifier.classify(slip_incident_text)

        assert result.incident_type is IncidentType.SLIP
        assert result.severity.rank >= SeverityLevel.MEDIUM.rank
        assert 5 <= result.risk_score <= 7
        assert result.source == "heuristic"
        assert result.confidence == 0.75

    def test_first_rule_wins(self, classifier):
        """A fall that also mentions a wet floor is a FALL."""
        result = classifier.classify("Worker fell after stepping on a wet floor")
        assert result.incident_type is IncidentType.FALL
        assert result.severity is SeverityLevel.HIGH

    def test_risk_clamped_at_ten(self, classifier):
        """Fire + injury + hospital: 9 + 2 + 3 clamps to 10 and forces CRITICAL."""
        result = classifier.classify("Fire in the paint shop, two workers injured, taken to hospital")

        assert result.incident_type is IncidentType.FIRE
        assert result.risk_score == 10
        assert result.severity is SeverityLevel.CRITICAL

    def test_near_miss_injury_lifts_low_to_medium(self, classifier):
        result = classifier.classify("Near miss with a forklift, minor injury to a hand")

        assert result.incident_type is IncidentType.NEAR_MISS
        assert result.severity is SeverityLevel.MEDIUM
        assert result.risk_score == 5

    def test_unmatched_text_is_other(self, classifier):
        result = classifier.classify("Paperwork was filed late")

        assert result.incident_type is IncidentType.OTHER
        assert result.severity is SeverityLevel.MEDIUM
        assert result.risk_score == 4

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text_default(self, classifier, text):
        result = classifier.classify(text)

        assert result.source == "default"
        assert result.summary == NO_TEXT_SUMMARY
        assert result.incident_type is IncidentType.OTHER

    def test_key_factors_capped_in_keyword_order(self, classifier):
        text = "Chemical spill near equipment caused a fall and injury; unsafe hazard after an accident"
        result = classifier.classify(text)

        assert result.key_factors == ["injury", "accident", "hazard", "unsafe", "equipment"]

    def test_reproducible(self, classifier, slip_incident_text):
        assert classifier.classify(slip_incident_text).to_dict() == classifier.classify(slip_incident_text).to_dict()

    def test_baseline_investigation_recommendation(self, classifier):
        result = classifier.classify("Electric shock at panel 3")

        assert result.incident_type is IncidentType.ELECTRICAL
        assert result.recommendations[0].description.startswith("Conduct thorough incident investigation")


class TestTables:
    """Tests for recommendation and compliance tables."""

    def test_recommendations_by_type(self, classifier):
        fall = classifier.classify("Worker fell from scaffolding")
        recs = generate_recommendations(fall)

        assert len(recs) == 1
        assert "fall protection" in recs[0].description
        assert recs[0].estimated_cost == 2500

    def test_recommendations_are_copies(self, classifier):
        fall = classifier.classify("Worker fell from scaffolding")
        generate_recommendations(fall)[0].description = "changed"
        assert "fall protection" in generate_recommendations(fall)[0].description

    def test_standards_always_include_baseline(self, classifier):
        mapping = map_to_standards(classifier.classify("Paperwork was filed late"))

        assert mapping.osha_standards[:2] == [RECORDKEEPING_STANDARD, GENERAL_DUTY_CLAUSE]
        assert mapping.local_regulations

    def test_standards_type_specific(self, classifier):
        mapping = map_to_standards(classifier.classify("Worker fell from a ladder"))
        assert any("1926.501" in s for s in mapping.osha_standards)


class TestSafetyAnalyzer:
    """Tests for SafetyAnalyzer."""

    def test_classify_enriches(self, test_settings, dummy_client, slip_incident_text):
        """Heuristic analysis carries the baseline and type-specific recommendations."""
        analyzer = SafetyAnalyzer(dummy_client, test_settings)
        result = analyzer.classify(slip_incident_text)

        assert len(result.recommendations) == 2
        assert result.compliance_mapping.osha_standards
        assert dummy_client.calls == 0

    @pytest.mark.asyncio
    async def test_remote_analysis(self, test_settings, dummy_client, slip_incident_text):
        """The canned JSON payload decodes into an AI result."""
        analyzer = SafetyAnalyzer(dummy_client, test_settings)
        result = await analyzer.analyze(slip_incident_text)

        assert result.source == "ai"
        assert result.incident_type is IncidentType.SLIP
        assert result.severity is SeverityLevel.MEDIUM
        assert result.confidence == 0.95
        assert result.compliance_mapping.osha_standards == ["29 CFR 1910.22 - Walking-Working Surfaces"]
        assert dummy_client.calls == 1

    @pytest.mark.asyncio
    async def test_use_ai_false_skips_remote(self, test_settings, dummy_client, slip_incident_text):
        analyzer = SafetyAnalyzer(dummy_client, test_settings)
        result = await analyzer.analyze(slip_incident_text, use_ai=False)

        assert result.source == "heuristic"
        assert dummy_client.calls == 0

    @pytest.mark.asyncio
    async def test_empty_text_makes_no_call(self, test_settings, dummy_client):
        analyzer = SafetyAnalyzer(dummy_client, test_settings)
        result = await analyzer.analyze_with_ai("  ")

        assert result.source == "default"
        assert dummy_client.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [TransientTransportError("busy", status=503), PermanentTransportError("denied", status=403)],
    )
    async def test_transport_failure_falls_back(self, test_settings, slip_incident_text, error):
        """Remote failure yields the heuristic result instead of raising."""
        client = DummyGenerationClient(script=[error])
        result = await SafetyAnalyzer(client, test_settings).analyze_with_ai(slip_incident_text)

        assert result.source == "heuristic"
        assert result.incident_type is IncidentType.SLIP

    @pytest.mark.asyncio
    async def test_unexpected_failure_falls_back(self, test_settings, slip_incident_text):
        client = DummyGenerationClient(script=[RuntimeError("boom")])
        result = await SafetyAnalyzer(client, test_settings).analyze_with_ai(slip_incident_text)

        assert result.source == "heuristic"

    @pytest.mark.asyncio
    async def test_unusable_payload_penalized(self, test_settings, slip_incident_text):
        """Prose instead of JSON: heuristic content at confidence * penalty."""
        client = DummyGenerationClient(script=[text_response("I cannot analyze this.", FinishReason.STOP)])
        result = await SafetyAnalyzer(client, test_settings).analyze_with_ai(slip_incident_text)

        assert result.source == "fallback"
        assert result.incident_type is IncidentType.SLIP
        assert result.confidence == pytest.approx(0.95 * test_settings.parse_failure_penalty)

    @pytest.mark.asyncio
    async def test_overflowing_risk_score_decodes(self, test_settings, slip_incident_text):
        """A riskScore of 1e999 decodes to the neutral score instead of failing the request."""
        payload = '{"riskScore": 1e999, "incidentType": "Fall", "severity": "High"}'
        client = DummyGenerationClient(script=[text_response(payload, FinishReason.STOP)])
        result = await SafetyAnalyzer(client, test_settings).analyze_with_ai(slip_incident_text)

        assert result.source == "ai"
        assert result.incident_type is IncidentType.FALL
        assert result.risk_score == 5
