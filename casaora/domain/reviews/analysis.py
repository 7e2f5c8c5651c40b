"""
Review sentiment analysis.

Classifies sentiment, detects safety flags and decides whether a review can
be published straight away or needs an admin.
"""

import logging
import time
from typing import Optional

from ..amara.llm import StructuredLLM
from ..amara.schemas import ReviewAnalysis

logger = logging.getLogger(__name__)

AUTO_PUBLISH_BLOCKING_FLAGS = (
    "potential_safety_issue",
    "harassment_claim",
    "theft_allegation",
    "property_damage",
    "fraudulent_activity",
)
ADMIN_ALERT_FLAGS = (
    "potential_safety_issue",
    "harassment_claim",
    "theft_allegation",
    "property_damage",
)

SYSTEM_PROMPT_EN = """You are a review analysis specialist for Casaora, a professional household services platform.

**Your Job:**
Analyze customer reviews to:
1. Classify sentiment (positive, negative, neutral, mixed)
2. Identify key categories (quality, punctuality, professionalism, etc.)
3. Detect safety flags or critical issues
4. Determine if admin review is required
5. Suggest appropriate responses

**Critical Flags (Require Immediate Attention):**
- potential_safety_issue: Any safety concern
- harassment_claim: Harassment of any kind
- payment_dispute: Payment disputes, incorrect charges
- no_show: Professional didn't show up
- property_damage: Damage to customer property
- theft_allegation: Theft allegation
- fraudulent_activity: Fraudulent activity

**Severity Levels:**
- critical: Requires immediate action (safety, theft, harassment)
- high: Requires urgent review (damage, serious dispute)
- medium: Requires review but not urgent
- low: Informational, no action needed

Be objective, fair, and prioritize platform safety. Suggested responses should
be professional, empathetic and solution-oriented."""

SYSTEM_PROMPT_ES = """Eres un especialista en análisis de reseñas para Casaora, una plataforma de servicios domésticos profesionales.

**Tu Trabajo:**
Analizar reseñas de clientes para:
1. Clasificar sentimiento (positivo, negativo, neutral, mixto)
2. Identificar categorías principales (calidad, puntualidad, profesionalismo, etc.)
3. Detectar banderas de seguridad o problemas críticos
4. Determinar si se requiere revisión administrativa
5. Sugerir respuestas apropiadas

**Banderas Críticas (Requieren Atención Inmediata):**
- potential_safety_issue, harassment_claim, payment_dispute, no_show,
  property_damage, theft_allegation, fraudulent_activity

**Niveles de Severidad:**
- critical: Requiere acción inmediata (seguridad, robo, acoso)
- high: Requiere revisión urgente (daño, disputa seria)
- medium: Requiere revisión pero no urgente
- low: Informativo, no requiere acción

Sé objetivo, justo y enfócate en la seguridad de la plataforma."""


def get_review_analysis_prompt(locale: str = "en") -> str:
    return SYSTEM_PROMPT_ES if locale == "es" else SYSTEM_PROMPT_EN


def build_review_message(text: str, rating: Optional[int] = None) -> str:
    if rating:
        return f"Review ({rating}/5 stars):\n\n{text}"
    return f"Review:\n\n{text}"


def analyze_review(
    text: str, rating: Optional[int] = None, locale: str = "en", llm: Optional[StructuredLLM] = None
) -> ReviewAnalysis:
    llm = llm or StructuredLLM()
    started = time.monotonic()
    try:
        analysis = llm.generate(
            ReviewAnalysis,
            system=get_review_analysis_prompt(locale),
            user_message=build_review_message(text, rating),
            temperature=0.2,
        )
    except Exception as e:
        logger.error(f"❌ Review analysis failed after {time.monotonic() - started:.2f}s: {e}")
        raise

    auto_publish, _ = should_auto_publish(analysis)
    logger.info(
        f"🧠 Review analyzed: sentiment={analysis.sentiment} severity={analysis.severity} "
        f"flags={analysis.flags} auto_publish={auto_publish} "
        f"({time.monotonic() - started:.2f}s, {locale})"
    )
    return analysis


def analyze_batch_reviews(reviews: list[dict], llm: Optional[StructuredLLM] = None) -> list[ReviewAnalysis]:
    """Analyze [{"text", "rating"?, "locale"?}, ...] in order"""
    llm = llm or StructuredLLM()
    return [
        analyze_review(r["text"], r.get("rating"), r.get("locale", "en"), llm=llm) for r in reviews
    ]


def should_auto_publish(analysis: ReviewAnalysis) -> tuple[bool, str]:
    if analysis.action_required:
        return False, f"Requires admin review (severity: {analysis.severity})"

    if any(flag in AUTO_PUBLISH_BLOCKING_FLAGS for flag in analysis.flags):
        return False, f"Critical flag detected: {', '.join(analysis.flags)}"

    if analysis.sentiment == "negative" and analysis.severity == "high":
        return False, "Negative review with high severity - requires review"

    risk_level = analysis.professional_impact.risk_level
    if analysis.sentiment == "positive" and risk_level == "none":
        return True, "Positive review with no risk"

    if analysis.sentiment in ("neutral", "mixed") and risk_level == "none":
        return True, "Neutral review with no risk"

    return False, "Default to manual review for safety"


def should_notify_admin(analysis: ReviewAnalysis) -> bool:
    if analysis.severity == "critical":
        return True
    if analysis.severity == "high" and analysis.action_required:
        return True
    return any(flag in ADMIN_ALERT_FLAGS for flag in analysis.flags)


RECOMMENDED_ACTIONS = {
    "escalate_to_manager": {
        "action": "Escalate to Manager",
        "priority": "critical",
        "steps": [
            "Review full booking details and timeline",
            "Contact both customer and professional",
            "Verify claims with evidence",
            "Determine if professional should be suspended",
            "Coordinate with support team for resolution",
        ],
    },
    "contact_both_parties": {
        "action": "Contact Both Parties",
        "priority": "high",
        "steps": [
            "Reach out to customer for more details",
            "Contact professional for their perspective",
            "Review booking evidence (messages, photos)",
            "Mediate resolution if possible",
            "Decide on review publication",
        ],
    },
    "request_clarification": {
        "action": "Request Clarification",
        "priority": "medium",
        "steps": [
            "Email customer asking for specific details",
            "Set 48-hour response deadline",
            "If clarified, re-analyze review",
            "If no response, publish with disclaimer",
        ],
    },
    "hold_for_review": {
        "action": "Manual Review Required",
        "priority": "medium",
        "steps": [
            "Review full context of booking",
            "Check for similar reviews about this professional",
            "Verify compliance with review guidelines",
            "Approve or request edits",
        ],
    },
}

DEFAULT_ACTION = {
    "action": "Publish",
    "priority": "low",
    "steps": ["Publish review immediately", "Monitor for customer/professional responses"],
}


def get_recommended_action(analysis: ReviewAnalysis) -> dict:
    action = RECOMMENDED_ACTIONS.get(analysis.professional_impact.suggested_action, DEFAULT_ACTION)
    return {**action, "steps": list(action["steps"])}
