"""Template personas built only from search parameters.

Used as the last step of the fallback chain; makes no network calls.
"""
from __future__ import annotations

import re
from typing import Any

from leadgen.models.persona import PERSONA_BATCH_SIZE, PersonaKind
from leadgen.models.search import SearchContext, SearchType
from leadgen.services.validation import BANNED_TITLE_TERMS, PLACEHOLDER_TOKENS, normalize_title

# Whole words carrying a banned title term, e.g. "Profiles" or "Personalization".
_BANNED_WORD_RE = re.compile(r"\w*(?:" + "|".join(BANNED_TITLE_TERMS) + r")\w*", re.IGNORECASE)

# (title suffix, company size, revenue, deal size, timeline, total companies, conversion rate)
_CUSTOMER_TIERS = (
    ("SMB Adopters", "Small (10-50)", "$1M-$10M", "$5K-$20K", "1-2 months", 5000, 6),
    ("Mid-Market Transformers", "Mid (50-500)", "$10M-$100M", "$20K-$80K", "2-4 months", 1200, 4),
    ("Enterprise Innovators", "Enterprise (500+)", "$100M+", "$100K-$500K", "4-6 months", 200, 2),
)
_SUPPLIER_TIERS = (
    ("Niche Suppliers", "Small (10-50)", "$1M-$10M", "$5K-$20K", "1-2 months", 5000, 6),
    ("Regional Vendors", "Mid (50-500)", "$10M-$100M", "$20K-$80K", "2-4 months", 1200, 4),
    ("National Providers", "Enterprise (500+)", "$100M+", "$100K-$500K", "4-6 months", 200, 2),
)

# (role, level, department, experience, total decision makers, conversion rate)
_CUSTOMER_ROLES = (
    ("Chief Technology Officer", "executive", "Technology", "15+ years", 1500, 5),
    ("Director of Operations", "director", "Operations", "10-15 years", 3000, 4),
    ("Procurement Manager", "manager", "Procurement", "5-10 years", 6000, 3),
)
_SUPPLIER_ROLES = (
    ("Chief Procurement Officer", "executive", "Procurement", "15+ years", 1500, 5),
    ("Supply Chain Director", "director", "Supply Chain", "10-15 years", 3000, 4),
    ("Sourcing Manager", "manager", "Purchasing", "5-10 years", 6000, 3),
)


def template_label(value: str, default: str) -> str:
    """Label safe to place in template titles and fields: no banned terms, never a placeholder."""
    label = " ".join(_BANNED_WORD_RE.sub(" ", value or "").split())
    if not label or label.lower() in PLACEHOLDER_TOKENS:
        return default
    return label


def _labels(context: SearchContext) -> tuple[str, str]:
    return template_label(context.primary_industry, "General"), template_label(context.primary_country, "Global")


def business_personas(context: SearchContext) -> list[dict[str, Any]]:
    industry, country = _labels(context)
    is_supplier = context.search_type is SearchType.SUPPLIER
    tiers = _SUPPLIER_TIERS if is_supplier else _CUSTOMER_TIERS

    personas: list[dict[str, Any]] = []
    for i, (suffix, size, revenue, deal, timeline, total, conversion) in enumerate(tiers[:PERSONA_BATCH_SIZE]):
        personas.append(
            {
                "title": f"{industry} {suffix}",
                "rank": i + 1,
                "match_score": 85 + (2 - i) * 3,
                "demographics": {
                    "industry": industry,
                    "companySize": size,
                    "geography": country,
                    "revenue": revenue,
                },
                "characteristics": {
                    "painPoints": ["Lead volatility" if is_supplier else "Inefficient workflows", "Integration complexity"],
                    "motivations": ["Recurring revenue" if is_supplier else "Operational efficiency", "Risk reduction"],
                    "challenges": ["Budget constraints", "Change management"],
                    "decisionFactors": ["ROI", "Scalability", "Support"],
                },
                "behaviors": {
                    "buyingProcess": "RFP → Sample → Contract" if is_supplier else "Pilot → Stakeholder alignment → Rollout",
                    "decisionTimeline": timeline,
                    "budgetRange": deal,
                    "preferredChannels": ["Email", "Website", "Referral"],
                },
                "market_potential": {
                    "totalCompanies": total,
                    "avgDealSize": deal,
                    "conversionRate": conversion,
                },
                "locations": [country],
            }
        )
    return personas


def decision_maker_personas(context: SearchContext) -> list[dict[str, Any]]:
    industry, country = _labels(context)
    roles = _SUPPLIER_ROLES if context.search_type is SearchType.SUPPLIER else _CUSTOMER_ROLES

    personas: list[dict[str, Any]] = []
    for i, (role, level, department, experience, total, conversion) in enumerate(roles[:PERSONA_BATCH_SIZE]):
        personas.append(
            {
                "title": f"{industry} {role}",
                "rank": i + 1,
                "match_score": 85 + (2 - i) * 3,
                "demographics": {
                    "level": level,
                    "department": department,
                    "experience": experience,
                    "geography": country,
                },
                "characteristics": {
                    "responsibilities": ["Strategy", "Budget", "Vendor oversight"],
                    "painPoints": ["Manual processes", "Fragmented data"],
                    "motivations": ["Team productivity", "Measurable ROI"],
                    "challenges": ["Budget approval", "Legacy systems"],
                    "decisionFactors": ["ROI", "Ease of adoption", "Vendor reliability"],
                },
                "behaviors": {
                    "decisionMaking": "Data-driven with stakeholder sign-off",
                    "communicationStyle": "Concise and outcome-focused",
                    "buyingProcess": "Evaluation → Business case → Approval",
                    "preferredChannels": ["Email", "LinkedIn", "Industry events"],
                },
                "market_potential": {
                    "totalDecisionMakers": total,
                    "avgInfluence": max(60, 90 - 5 * i),
                    "conversionRate": conversion,
                },
            }
        )
    return personas


def deterministic_personas(kind: PersonaKind, context: SearchContext) -> list[dict[str, Any]]:
    if kind is PersonaKind.BUSINESS:
        records = business_personas(context)
    else:
        records = decision_maker_personas(context)
    return ensure_unique_titles(records, _labels(context)[0])


def ensure_unique_titles(records: list[dict[str, Any]], industry: str) -> list[dict[str, Any]]:
    """Suffix repeated titles with " - {industry} {rank}" so the batch has distinct titles."""
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for index, record in enumerate(records):
        title = record.get("title", "")
        if normalize_title(title) in seen:
            rank = record.get("rank") or index + 1
            record = {**record, "title": f"{title} - {industry} {rank}"}
        seen.add(normalize_title(record["title"]))
        out.append(record)
    return out
