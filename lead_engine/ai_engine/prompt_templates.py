"""
lead_engine/ai_engine/prompt_templates.py — All LangChain prompt templates for the AI engine.

Four prompt chains:
  1. LEAD_ANALYSIS       — lead profile + score + history → structured analysis JSON
  2. FOLLOW_UP_STRATEGY  — lead profile + stage → JSON array of next actions
  3. EMAIL_TEMPLATE      — lead profile + template type → plain email body
  4. SALES_INSIGHTS      — pipeline summary → JSON array of strategic insights
"""

from langchain_core.prompts import ChatPromptTemplate


# ── 1. Lead Analysis ──────────────────────────────────────────────────────────

LEAD_ANALYSIS_PROMPT = ChatPromptTemplate.from_messages([
    (
        "system",
        (
            "You are an expert sales analyst for the product described below. "
            "You assess inbound leads realistically and concisely.\n\n"
            "PRODUCT: {product_description}"
        ),
    ),
    (
        "human",
        """Analyze this lead and provide insights.

LEAD PROFILE:
- Name: {owner_name}
- Interest Level: {interest_level}/{interest_scale}
- Business Type: {business_type}
- Monthly Revenue: {monthly_revenue}
- Employees: {number_of_employees}
- Territory: {territory}
- Pain Points: {pain_points}
- Specific Needs: {specific_needs}

Current Score: {current_score}/100

HISTORICAL CONTEXT:
- Similar leads: {similar_leads_count}
- Average conversion: {conversion_rate_pct}%
- Average close time: {avg_days_to_close} days

Provide:
1. Analysis (2-3 sentences on lead quality and potential)
2. Top 3 recommendations for maximizing conversion
3. Confidence level (0-100)
4. Key insights about this prospect

Return ONLY a valid JSON object in exactly this format:
{{
  "analysis": "...",
  "recommendations": ["...", "...", "..."],
  "confidence": 85,
  "insights": ["...", "...", "..."]
}}
""",
    ),
])


# ── 2. Follow-up Strategy ─────────────────────────────────────────────────────

FOLLOW_UP_STRATEGY_PROMPT = ChatPromptTemplate.from_messages([
    (
        "system",
        (
            "You are a sales expert for the product described below. "
            "You recommend specific, actionable next steps for individual leads.\n\n"
            "PRODUCT: {product_description}"
        ),
    ),
    (
        "human",
        """Analyze this lead and generate 3-5 specific, actionable follow-up recommendations.

LEAD INFORMATION:
- Name: {owner_name}
- Interest Level: {interest_level}/{interest_scale}
- Current Stage: {stage}
- Business Type: {business_type}
- Pain Points: {pain_points}
- Specific Needs: {specific_needs}
- Monthly Revenue: {monthly_revenue}
- Territory: {territory}

Focus on:
1. Timing and urgency
2. Personalization based on their specific situation
3. Next best actions to move them forward
4. Risk mitigation strategies

Start each recommendation with the action itself (e.g. "Call ...", "Email ...", "Schedule ...").
Return ONLY a JSON array of recommendation strings, no other text.
""",
    ),
])


# ── 3. Email Template ─────────────────────────────────────────────────────────

EMAIL_TEMPLATE_PROMPT = ChatPromptTemplate.from_messages([
    (
        "system",
        (
            "You write short, personalized sales emails that get replies. "
            "Professional but friendly tone. Write like a real person, not a marketing bot.\n\n"
            "PRODUCT: {product_description}"
        ),
    ),
    (
        "human",
        """Generate a personalized {template_type} email for this prospect.

LEAD DETAILS:
- Name: {owner_name}
- Business Type: {business_type}
- Interest Level: {interest_level}/{interest_scale}
- Pain Points: {pain_points}
- Specific Needs: {specific_needs}
- Territory: {territory}

GUIDELINES:
- Address their specific pain points
- Highlight the product's benefits for their business type
- Include a clear call-to-action
- Keep it under 200 words
- Do NOT use placeholder text like [Name] or [Company]

Return only the email body, no subject line or other text.
""",
    ),
])


# ── 4. Sales Insights ─────────────────────────────────────────────────────────

SALES_INSIGHTS_PROMPT = ChatPromptTemplate.from_messages([
    (
        "system",
        (
            "You are a sales performance analyst for the product described below.\n\n"
            "PRODUCT: {product_description}"
        ),
    ),
    (
        "human",
        """Analyze this performance data and provide 3-4 strategic insights.

SALES DATA:
- Total Submissions: {total_submissions}
- Conversion Rate: {conversion_rate_pct}%
- Pipeline Size: {pipeline_size}
- Territory: {territory}
- Recent Submissions Trend: {trend}

KEY METRICS:
- Average Interest Level: {average_interest}
- Top Business Types: {top_business_types}
- Common Pain Points: {common_pain_points}

Focus on:
1. Performance optimization opportunities
2. Market trends in the territory
3. Lead quality improvements
4. Territory-specific strategies

Return insights as a JSON array of strings, no other text.
""",
    ),
])
