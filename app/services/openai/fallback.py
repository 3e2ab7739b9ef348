"""
Deterministic explanation generator.

Used whenever the oracle is unavailable or its output fails validation, so
every story group always has a complete six-part explanation.
"""

from __future__ import annotations

from typing import Any

from app.services.openai.contexts import ExplanationEvent


TICKER_NAMES = {
    "AAPL": "Apple",
    "MSFT": "Microsoft",
    "GOOGL": "Google",
    "AMZN": "Amazon",
    "TSLA": "Tesla",
    "META": "Meta",
    "NVDA": "Nvidia",
    "JPM": "JPMorgan",
    "V": "Visa",
    "JNJ": "Johnson & Johnson",
}

DEFAULT_SUMMARY = (
    "Markets are responding to recent developments. This reflects the normal process "
    "of financial markets adjusting to new information. Changes like these happen "
    "regularly as economic conditions evolve."
)

WHY_IT_HAPPENED = {
    "regulation": (
        "Government agencies periodically introduce new rules (called regulations) to govern "
        "how companies operate. These changes typically aim to protect consumers or ensure fair "
        "markets. Companies need time to adjust their operations to comply, which creates "
        "temporary uncertainty."
    ),
    "macro": (
        "Large economic trends (called macroeconomic events) affect the entire financial system. "
        "Things like interest rate changes, inflation shifts, or employment trends influence how "
        "companies perform. Markets react to these changes as investors adjust their expectations "
        "about future company earnings."
    ),
    "earnings": (
        "Companies regularly report their financial results (called earnings). When results "
        "exceed or miss expectations, markets react based on what this means for the company's "
        "future. This is normal and expected behavior as investors process new financial data."
    ),
}

DEFAULT_WHY_IT_HAPPENED = (
    "This situation unfolded as markets responded to new information. Investors process this "
    "data and adjust their views about future prospects. This is a natural part of how "
    "financial markets function."
)


def company_names(holdings: list[str]) -> str:
    return ", ".join(TICKER_NAMES.get(t.upper(), t) for t in holdings)


def generate_fallback_explanation(event: ExplanationEvent, holdings: list[str]) -> dict[str, Any]:
    impact_level = event.impact_level or "medium"
    scope_type = event.scope_type or "market"

    if holdings:
        why_it_matters = (
            f"If you own {company_names(holdings)}, this news affects the market environment "
            "around your investments. It does not mean you should buy more or sell now. "
            "For those without these holdings, this may not directly impact you right now. "
            "Understanding the context helps you feel less anxious about normal market activity."
        )
    else:
        why_it_matters = (
            "This development affects the broader market, even if you don't have specific "
            "investments yet. It's part of normal economic cycles. Understanding these trends "
            "helps you build confidence as you grow your portfolio."
        )

    scenarios = [
        {
            "scenario": "Situation stabilizes within 2-4 weeks",
            "likelihood": "Medium",
            "whatConfirmsIt": "Market volatility decreases; news coverage fades; investors adjust and move on",
            "whatMakesItUnlikely": "Ongoing negative developments; major economic deterioration; regulatory escalation",
        }
    ]
    if impact_level == "high":
        scenarios.append(
            {
                "scenario": "Market overreacts temporarily with sharp price swings",
                "likelihood": "Medium",
                "whatConfirmsIt": "Stock prices move 5%+ in either direction; emotional trading increases",
                "whatMakesItUnlikely": "Markets remain calm; pricing remains stable; minimal trading volume",
            }
        )
    scenarios.append(
        {
            "scenario": "Situation evolves gradually with minor ongoing adjustments",
            "likelihood": "Low",
            "whatConfirmsIt": "News continues trickling out; prices shift incrementally; gradual repricing",
            "whatMakesItUnlikely": "Sudden resolution; clear outcome emerges quickly; market stabilizes",
        }
    )

    keep_in_mind = [
        "Market volatility is normal. Price swings happen regularly and are part of healthy markets.",
        "Your investment strategy is based on your long-term goals, not daily events. "
        "Don't change your plan based on news cycles."
        if holdings
        else "Building wealth takes time. Single events rarely derail long-term plans.",
        'It\'s common to feel the urge to "do something" when you hear news. Most investors '
        "who stay calm do better than those who react emotionally.",
        "Media coverage tends to emphasize dramatic stories. That's their job, not a signal "
        "that you need to act.",
        "Checking your portfolio daily increases anxiety without improving outcomes. "
        "Trust your diversification."
        if holdings
        else "The market will always have noise. Focus on long-term trends, not daily headlines.",
    ]

    first_source = event.raw_articles[0].source if event.raw_articles else None
    sources = [
        {
            "name": first_source or "Financial News",
            "type": "Secondary",
            "reason": "News coverage and market analysis",
        },
        {
            "name": "Federal Reserve / Central Bank Data",
            "type": "Primary",
            "reason": "Official economic and policy information",
        },
        {
            "name": "Market Data & Historical Patterns",
            "type": "Primary",
            "reason": "Context for how similar situations typically resolve",
        },
    ]

    high = impact_level == "high"
    return {
        "classification": {
            "eventType": scope_type,
            "timeHorizon": "short" if high else "medium",
            "marketAwareness": "high" if high else "medium",
            "action": "MONITOR" if high else "NO_ACTION",
        },
        "summary": event.short_summary or DEFAULT_SUMMARY,
        "whyItMattersForYou": why_it_matters,
        "whyThisHappened": WHY_IT_HAPPENED.get(scope_type, DEFAULT_WHY_IT_HAPPENED),
        "mostLikelyScenarios": scenarios,
        "whatToKeepInMind": keep_in_mind,
        "sources": sources,
        "fallback": True,
    }
