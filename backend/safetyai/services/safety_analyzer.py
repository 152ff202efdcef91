"""
SafetyAI - Safety Analyzer Service

Turns incident text into a structured AnalysisResult.

Architecture:
    - HeuristicClassifier: keyword decision table plus escalation rules,
      used standalone or as the fallback when remote analysis fails
    - SafetyAnalyzer: remote analysis through the generation client,
      falling back to the heuristic classifier
    - generate_recommendations / map_to_standards: type-specific tables

Safety Notes:
    - Analyses are DECISION SUPPORT for safety staff, not a final finding
    - The heuristic classifier is deliberately simple; its confidence is fixed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from safetyai.config import Settings
from safetyai.core.exceptions import InterpretationError, SafetyAIError
from safetyai.core.logging import OperationLog
from safetyai.core.types import (
    AnalysisResult,
    ComplianceMapping,
    IncidentType,
    SafetyRecommendation,
    SeverityLevel,
    clamp_risk_score,
)
from safetyai.gemini.client import GenerationClient
from safetyai.gemini.interpreter import calculate_confidence, decode_safety_analysis
from safetyai.gemini.request_builder import build_safety_analysis_request

NO_TEXT_SUMMARY = "No text provided for analysis"


# =============================================================================
# Heuristic Classifier
# =============================================================================

class HeuristicClassifier:
    """
    Keyword-based incident classifier.

    The assessment logic:
    1. First matching row of INCIDENT_RULES sets type, base severity, base risk
    2. Injury vocabulary adds 2 to the risk and lifts LOW severity to MEDIUM
    3. Hospitalization vocabulary adds 3 to the risk and forces CRITICAL
    4. The risk score is clamped to 1-10 after all adjustments

    Reproducible: identical text always yields an identical result.
    """

    # (keywords, incident type, base severity, base risk score), first match wins
    INCIDENT_RULES: Tuple[Tuple[Tuple[str, ...], IncidentType, SeverityLevel, int], ...] = (
        (("fall", "fell", "falling"), IncidentType.FALL, SeverityLevel.HIGH, 7),
        (("slip", "slipped", "wet"), IncidentType.SLIP, SeverityLevel.MEDIUM, 5),
        (("equipment", "machine", "malfunction"), IncidentType.EQUIPMENT_FAILURE, SeverityLevel.HIGH, 6),
        (("chemical", "exposure", "spill"), IncidentType.CHEMICAL_EXPOSURE, SeverityLevel.CRITICAL, 8),
        (("fire", "burn", "flame"), IncidentType.FIRE, SeverityLevel.CRITICAL, 9),
        (("electric", "shock", "voltage"), IncidentType.ELECTRICAL, SeverityLevel.CRITICAL, 8),
        (("near miss", "almost", "close call"), IncidentType.NEAR_MISS, SeverityLevel.LOW, 3),
    )
    DEFAULT_RULE = (IncidentType.OTHER, SeverityLevel.MEDIUM, 4)

    INJURY_KEYWORDS = ("injury", "injured", "hurt")
    HOSPITAL_KEYWORDS = ("hospital", "emergency", "ambulance")
    INJURY_RISK_INCREMENT = 2
    HOSPITAL_RISK_INCREMENT = 3

    KEY_FACTOR_KEYWORDS = (
        "injury", "accident", "hazard", "unsafe", "equipment",
        "fall", "slip", "fire", "chemical",
    )
    MAX_KEY_FACTORS = 5

    CONFIDENCE = 0.75

    def classify(self, text: str) -> AnalysisResult:
        """
        Classify incident text.

        Empty or whitespace-only text yields the neutral default result.
        """
        if not text or not text.strip():
            return AnalysisResult.create_default(NO_TEXT_SUMMARY)

        text_lower = text.lower()

        incident_type, severity, risk_score = self.DEFAULT_RULE
        for keywords, rule_type, rule_severity, rule_risk in self.INCIDENT_RULES:
            if self._contains_any(text_lower, keywords):
                incident_type, severity, risk_score = rule_type, rule_severity, rule_risk
                break

        # --- Escalation ---
        if self._contains_any(text_lower, self.INJURY_KEYWORDS):
            risk_score += self.INJURY_RISK_INCREMENT
            if severity is SeverityLevel.LOW:
                severity = SeverityLevel.MEDIUM

        if self._contains_any(text_lower, self.HOSPITAL_KEYWORDS):
            risk_score += self.HOSPITAL_RISK_INCREMENT
            severity = SeverityLevel.CRITICAL

        risk_score = clamp_risk_score(risk_score)

        key_factors = [kw for kw in self.KEY_FACTOR_KEYWORDS if kw in text_lower][:self.MAX_KEY_FACTORS]

        return AnalysisResult(
            incident_type=incident_type,
            severity=severity,
            risk_score=risk_score,
            summary=(
                f"Safety incident analysis identified a {incident_type.value} incident "
                f"with {severity.value} severity level. Risk assessment score: {risk_score}/10."
            ),
            key_factors=key_factors,
            recommendations=[investigation_recommendation()],
            confidence=self.CONFIDENCE,
            source="heuristic",
        )

    @staticmethod
    def _contains_any(text_lower: str, keywords: Tuple[str, ...]) -> bool:
        return any(kw in text_lower for kw in keywords)


# =============================================================================
# Recommendation and Compliance Tables
# =============================================================================

def investigation_recommendation() -> SafetyRecommendation:
    """Baseline recommendation attached to every heuristic analysis."""
    return SafetyRecommendation(
        type="Administrative",
        description="Conduct thorough incident investigation and document findings",
        priority="High",
        estimated_cost=200,
        estimated_time_hours=4,
        responsible_role="Safety Manager",
    )


_RECOMMENDATIONS: Dict[IncidentType, SafetyRecommendation] = {
    IncidentType.FALL: SafetyRecommendation(
        type="Preventive",
        description="Install fall protection systems and ensure proper use of safety harnesses",
        priority="High",
        estimated_cost=2500,
        estimated_time_hours=16,
        responsible_role="Safety Manager",
    ),
    IncidentType.SLIP: SafetyRecommendation(
        type="Preventive",
        description="Improve floor surfaces and implement spill cleanup procedures",
        priority="Medium",
        estimated_cost=1200,
        estimated_time_hours=8,
        responsible_role="Facility Manager",
    ),
    IncidentType.EQUIPMENT_FAILURE: SafetyRecommendation(
        type="Corrective",
        description="Conduct equipment inspection and implement preventive maintenance",
        priority="High",
        estimated_cost=3000,
        estimated_time_hours=24,
        responsible_role="Maintenance Supervisor",
    ),
    IncidentType.CHEMICAL_EXPOSURE: SafetyRecommendation(
        type="Corrective",
        description="Review chemical handling procedures, update safety data sheets and stock spill containment kits",
        priority="High",
        estimated_cost=2000,
        estimated_time_hours=16,
        responsible_role="Safety Manager",
    ),
    IncidentType.FIRE: SafetyRecommendation(
        type="Preventive",
        description="Inspect fire suppression equipment and run fire evacuation drills",
        priority="High",
        estimated_cost=1500,
        estimated_time_hours=12,
        responsible_role="Facility Manager",
    ),
    IncidentType.ELECTRICAL: SafetyRecommendation(
        type="Corrective",
        description="Perform an electrical safety inspection and enforce lockout/tagout procedures",
        priority="High",
        estimated_cost=2000,
        estimated_time_hours=16,
        responsible_role="Maintenance Supervisor",
    ),
}

_DEFAULT_RECOMMENDATION = SafetyRecommendation(
    type="Administrative",
    description="Conduct incident investigation and implement safety training",
    priority="Medium",
    estimated_cost=500,
    estimated_time_hours=8,
    responsible_role="Safety Manager",
)


def generate_recommendations(analysis: AnalysisResult) -> List[SafetyRecommendation]:
    """Type-specific recommendation for an analysis (fresh copies)."""
    template = _RECOMMENDATIONS.get(analysis.incident_type, _DEFAULT_RECOMMENDATION)
    return [SafetyRecommendation(**template.to_dict())]


GENERAL_DUTY_CLAUSE = "OSH Act Section 5(a)(1) - General Duty Clause"
RECORDKEEPING_STANDARD = "29 CFR 1904 - Recording and Reporting"
INCIDENT_INVESTIGATION_CLAUSE = "Clause 10.2 - Incident investigation"
LOCAL_GENERAL_REQUIREMENTS = "Local Safety Code - General Requirements"

# incident type -> (OSHA standards, ISO 45001 requirements)
_STANDARDS: Dict[IncidentType, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    IncidentType.FALL: (
        (
            "29 CFR 1926.501 - Duty to have fall protection",
            "29 CFR 1910.28 - Duty to have fall protection and falling object protection",
        ),
        ("Clause 8.1.2 - Eliminating hazards and reducing OH&S risks",),
    ),
    IncidentType.SLIP: (
        ("29 CFR 1910.22 - Walking-Working Surfaces: General requirements",),
        ("Clause 8.1.2 - Eliminating hazards and reducing OH&S risks",),
    ),
    IncidentType.EQUIPMENT_FAILURE: (
        (
            "29 CFR 1910.212 - General requirements for all machines",
            "29 CFR 1910.147 - Control of hazardous energy (lockout/tagout)",
        ),
        ("Clause 8.1 - Operational planning and control",),
    ),
    IncidentType.CHEMICAL_EXPOSURE: (
        ("29 CFR 1910.1200 - Hazard Communication",),
        ("Clause 6.1.2 - Hazard identification and assessment of risks",),
    ),
    IncidentType.FIRE: (
        (
            "29 CFR 1910.39 - Fire prevention plans",
            "29 CFR 1910.157 - Portable fire extinguishers",
        ),
        ("Clause 8.2 - Emergency preparedness and response",),
    ),
    IncidentType.ELECTRICAL: (
        (
            "29 CFR 1910.303 - Electrical: General requirements",
            "29 CFR 1910.333 - Selection and use of work practices",
        ),
        ("Clause 8.1 - Operational planning and control",),
    ),
}


def map_to_standards(analysis: AnalysisResult) -> ComplianceMapping:
    """
    Regulatory references for an analysis.

    Recordkeeping, the General Duty Clause, incident investigation and the
    local general requirements are always included; type-specific
    standards are appended after them.
    """
    osha, iso = _STANDARDS.get(analysis.incident_type, ((), ()))
    return ComplianceMapping(
        osha_standards=[RECORDKEEPING_STANDARD, GENERAL_DUTY_CLAUSE, *osha],
        iso45001_requirements=[INCIDENT_INVESTIGATION_CLAUSE, *iso],
        local_regulations=[LOCAL_GENERAL_REQUIREMENTS],
    )


# =============================================================================
# Analyzer
# =============================================================================

class SafetyAnalyzer:
    """
    Safety analysis over the generation client, with heuristic fallback.

    Usage:
        analyzer = SafetyAnalyzer(client, settings)
        result = await analyzer.analyze("Worker fell from a ladder")
    """

    def __init__(
        self,
        client: GenerationClient,
        settings: Settings,
        classifier: Optional[HeuristicClassifier] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._client = client
        self._penalty = settings.parse_failure_penalty
        self._classifier = classifier or HeuristicClassifier()
        self._logger = logger or logging.getLogger(__name__)

    def classify(self, text: str) -> AnalysisResult:
        """Heuristic-only analysis, enriched with recommendations and standards."""
        return self._enrich(self._classifier.classify(text))

    async def analyze(
        self,
        text: str,
        use_ai: bool = True,
        cancel: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        """Analyze incident text remotely (default) or heuristically."""
        if use_ai:
            return await self.analyze_with_ai(text, cancel=cancel)
        return self.classify(text)

    async def analyze_with_ai(
        self,
        text: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        """
        Remote analysis. Never raises.

        - Empty text: default result, no remote call
        - Remote failure: heuristic result
        - Unusable payload: heuristic result at the penalized remote confidence
        """
        if not text or not text.strip():
            return AnalysisResult.create_default(NO_TEXT_SUMMARY)

        with OperationLog("safety_analysis", self._logger) as op:
            try:
                response = await self._client.generate(build_safety_analysis_request(text), cancel=cancel)
            except SafetyAIError as e:
                op.error("Remote analysis failed, using heuristic classifier", error=e.message)
                return self.classify(text)
            except Exception:
                self._logger.exception("Unexpected remote analysis failure, using heuristic classifier")
                return self.classify(text)

            confidence = calculate_confidence(response)
            try:
                result = decode_safety_analysis(response.first_text()).to_result(confidence)
            except InterpretationError as e:
                op.progress("Analysis payload unusable, using heuristic classifier", reason=e.message)
                result = self.classify(text)
                result.confidence = confidence * self._penalty
                result.source = "fallback"
                op.complete(source=result.source, confidence=result.confidence)
                return result

            result = self._enrich(result)
            op.complete(
                incident_type=result.incident_type.value,
                risk_score=result.risk_score,
                confidence=result.confidence,
            )
            return result

    @staticmethod
    def _enrich(result: AnalysisResult) -> AnalysisResult:
        """Fill in recommendations and compliance mapping where absent."""
        if result.source == "default":
            return result
        if result.source == "heuristic" or not result.recommendations:
            result.recommendations.extend(generate_recommendations(result))
        mapping = result.compliance_mapping
        if not (mapping.osha_standards or mapping.iso45001_requirements or mapping.local_regulations):
            result.compliance_mapping = map_to_standards(result)
        return result
