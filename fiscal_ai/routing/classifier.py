import logging
from typing import Iterable, Optional

from ..config import Settings, settings as default_settings
from .models import Domain, QueryOptions, RoutingDecision, RoutingReason
from .tiers import Tier, baseline_cost

logger = logging.getLogger(__name__)


# Definitional / factual markers
SIMPLE_KEYWORDS = (
    "qu'est-ce que", "qu'est ce que", "c'est quoi", "what is", "what's",
    "définition", "definition", "quand", "when",
    "combien", "how much", "basique", "basic", "simple",
)

# Analysis and multi-part reasoning markers
COMPLEX_KEYWORDS = (
    "stratégie", "strategie", "strategy", "optimis", "optimiz",
    "analyse", "analysis", "analyze", "compar", "conformité", "compliance",
    "audit", "plan d'action", "action plan", "projection", "forecast",
    "prévision", "évaluation", "recommandation", "plusieurs", "multiple",
)

URGENT_KEYWORDS = (
    "urgent", "urgence", "immédiat", "mise en demeure", "redressement",
    "contrôle fiscal", "controle fiscal", "pénalité", "penalite", "sanction",
    "retard de déclaration", "retard déclaration",
)

DOMAIN_KEYWORDS = (
    (Domain.COMPLIANCE, ("urssaf", "déclaration", "cotisation", "échéance", "conformité", "compliance")),
    (Domain.FISCAL, ("tva", "bic", "bnc", "impôt", "fiscal", "régime")),
    (Domain.CALCULATION, ("calcul", "combien", "charge", "net", "brut", "coût")),
    (Domain.STRATEGY, ("stratégie", "optimi", "croissance", "développement", "plan")),
)


def normalize(text: str) -> str:
    return text.lower().replace("’", "'").replace("`", "'").strip()


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


class QueryClassifier:
    """Deterministic lexical classifier; no I/O"""

    def __init__(
        self,
        simple_length_threshold: Optional[int] = None,
        complex_length_threshold: Optional[int] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.simple_length_threshold = simple_length_threshold or config.simple_length_threshold
        self.complex_length_threshold = complex_length_threshold or config.complex_length_threshold

    def classify(self, text: str, options: Optional[QueryOptions] = None) -> Tier:
        return self.decide(text, options).tier

    def decide(self, text: str, options: Optional[QueryOptions] = None) -> RoutingDecision:
        options = options or QueryOptions()
        domain = self.detect_domain(text)

        if options.force_tier is not None:
            return RoutingDecision(
                tier=options.force_tier,
                reason=RoutingReason.FORCED,
                estimated_cost=baseline_cost(options.force_tier),
                domain=domain,
            )

        lexical_tier = self._lexical_tier(text)

        if options.urgent or self.is_urgent(text):
            return RoutingDecision(
                tier=Tier.URGENT,
                reason=RoutingReason.URGENCY,
                estimated_cost=baseline_cost(Tier.URGENT),
                domain=Domain.COMPLIANCE,
                classified_tier=lexical_tier,
            )

        return RoutingDecision(
            tier=lexical_tier,
            reason=RoutingReason.CLASSIFIED,
            estimated_cost=baseline_cost(lexical_tier),
            domain=domain,
            classified_tier=lexical_tier,
        )

    def _lexical_tier(self, text: str) -> Tier:
        lowered = normalize(text)
        length = len(text.strip())

        # Simple markers are checked first: ties resolve to the cheaper path
        if _contains_any(lowered, SIMPLE_KEYWORDS):
            return Tier.SIMPLE
        if _contains_any(lowered, COMPLEX_KEYWORDS) or length > self.complex_length_threshold:
            return Tier.COMPLEX
        if length > self.simple_length_threshold:
            return Tier.MODERATE
        return Tier.SIMPLE

    def is_urgent(self, text: str) -> bool:
        return _contains_any(normalize(text), URGENT_KEYWORDS)

    def detect_domain(self, text: str) -> Domain:
        lowered = normalize(text)
        for domain, keywords in DOMAIN_KEYWORDS:
            if _contains_any(lowered, keywords):
                return domain
        return Domain.GENERAL

    def quick_cost_estimate(self, text: str, options: Optional[QueryOptions] = None) -> float:
        return self.decide(text, options).estimated_cost
