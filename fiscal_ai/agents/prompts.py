import json
import re
from typing import List

from ..routing.models import AgentContext, Domain


BASE_PROMPT = (
    "Tu es un assistant fiscal pour micro-entrepreneurs français. "
    "Réponds en français, de façon précise et factuelle, en citant les seuils, "
    "taux et échéances applicables quand ils sont pertinents."
)

DOMAIN_PROMPTS = {
    Domain.COMPLIANCE: "Concentre-toi sur les obligations déclaratives, URSSAF et les échéances.",
    Domain.FISCAL: "Concentre-toi sur le régime fiscal (BNC, BIC, TVA, impôt sur le revenu).",
    Domain.CALCULATION: "Donne des calculs chiffrés étape par étape avec les montants en euros.",
    Domain.STRATEGY: "Propose des options concrètes et compare leurs avantages et inconvénients.",
    Domain.GENERAL: "Reste concis et oriente vers les démarches utiles.",
}

_BULLET = re.compile(r"^\s*(?:[-•*]|\d+[.)])\s+(.*\S)\s*$")


def system_prompt_for(domain: Domain, concise: bool = False) -> str:
    prompt = f"{BASE_PROMPT} {DOMAIN_PROMPTS.get(domain, DOMAIN_PROMPTS[Domain.GENERAL])}"
    if concise:
        prompt += " Réponds en trois phrases maximum."
    return prompt


def render_context(context: AgentContext) -> str:
    """Plain-text summary of whatever context is present; empty when nothing is"""
    sections = []

    if context.fiscal_profile:
        sections.append(
            "Profil fiscal :\n" + json.dumps(context.fiscal_profile, ensure_ascii=False, default=str)[:1500]
        )
    if context.memory_summary:
        sections.append(context.memory_summary)
    if context.web_results:
        lines = [f"- {r.get('title')} ({r.get('url')}) : {r.get('snippet', '')}" for r in context.web_results]
        sections.append("Sources web récentes :\n" + "\n".join(lines))
    if context.workspace_data:
        pages = context.workspace_data.get("pages", [])
        lines = [f"- {p.get('title')} : {p.get('summary', '')}" for p in pages]
        summary = context.workspace_data.get("summary")
        if summary:
            lines.insert(0, summary)
        sections.append("Espace de travail :\n" + "\n".join(lines))

    return "\n\n".join(sections)


def extract_recommendations(text: str, limit: int = 5) -> List[str]:
    items = []
    for line in text.splitlines():
        match = _BULLET.match(line)
        if match:
            items.append(match.group(1)[:200])
        if len(items) >= limit:
            break
    return items
