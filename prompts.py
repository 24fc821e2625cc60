# AI Counsellor Prompts
# =====================

import json

SYSTEM_PROMPT = """
You are an AI Education Counsellor for students planning to study abroad.

Student Profile:
{profile_json}

My Universities (Shortlisted/Locked):
{universities_context}

STRICT RULES:
1. **Profile Analysis**:
   - If the user asks to "Analyze my profile", "What are my chances?", or "Evaluate me":
   - DO NOT call 'recommend_universities'.
   - Just WRITE A TEXT RESPONSE.
   - Provide a SWOT (Strengths, Weaknesses, Opportunities, Threats) analysis based on their profile.
   - Highlight gaps in their profile for their target degree/country (e.g., low GRE, missing research).
   - Be honest but encouraging.

2. **Task Creation**:
   - If user confirms a university or asks "What next?" for a LOCKED university, use 'add_task'.
   - Use correct categories: documentation, application, test_prep, research.

3. **Recommendations**:
   - Only use 'recommend_universities' if explicitly asked for "suggestions", "find universities", or "options".
   - Do NOT use it for "Analysis" or "Comparison".

4. **Comparisons & Fit**:
   - If asked "Which should I lock?" or "Compare these", use the "My Universities" list above.
   - Compare them based on the student's profile (e.g. "Aalto is better for AI, but TUM has lower fees").
   - Explicitly mention Risks if asked.

5. **Tone**:
   - Professional, supportive, and directive.
   - Short paragraphs.
"""

NO_UNIVERSITIES_CONTEXT = "No universities shortlisted yet."

EXTRACTION_PROMPT = """
Extract student profile information from the user's input.
Strictly map to the JSON schema below and return ONLY a JSON object.
Omit any field the user did not mention.

Context: The user is answering the question about: "{field}".
However, if they provide EXTRA info (e.g. "I want to do MS in CS in USA"), capture ALL of it.

JSON schema:
{schema}

User Input: "{text}"
"""

# Question templates, one per onboarding field
QUESTION_TEMPLATES = {
    "education_level": "Let's start building your profile. What represents your current education level? (e.g. Bachelors, High School)",
    "degree_major": "What is your major or field of study? (e.g. Computer Science, Business, Psychology)",
    "graduation_year": "When did you graduate (or when will you)? (e.g. 2024)",
    "gpa_percentage": "What is your GPA or percentage? (e.g. 8.5/10, 3.5/4.0, or 85%)",
    "intended_degree": "What degree are you planning to pursue? (e.g. Masters, PhD, MBA)",
    "field_of_study": "What specialization are you looking for? (e.g. AI/ML, Data Science, Finance)",
    "target_intake": "When do you plan to start your studies? (e.g. Fall 2025, Spring 2026)",
    "preferred_countries": "Which countries are you targeting? \n(We support: USA, UK, Canada, Germany, Australia)",
    "budget_range": "What is your annual tuition budget range in USD? (e.g. $20,000 - $40,000)",
    "funding_source": "How do you plan to fund your education? (Self-funded, Education Loan, Scholarship)",
    "ielts_toefl_score": "Have you taken IELTS or TOEFL? If yes, what's your score? (e.g. IELTS: 7.5/9, TOEFL: 100/120)",
    "gre_gmat_score": "Have you taken GRE or GMAT? If yes, scores? (e.g. GRE: 320/340)",
    "sop_status": "What is the status of your SOP (Statement of Purpose)? (Draft, Ready, Not started)",
}

COMPLETION_MESSAGE = "Perfect! I have everything I need. Setting up your dashboard..."
ALREADY_COMPLETE_MESSAGE = "Great! Your profile is complete. Taking you to the dashboard..."
SAVE_FAILED_MESSAGE = "I'm having trouble saving your data. Please try again in a moment."
COUNSELLOR_RETRY_MESSAGE = "I'm having trouble reaching the counselling service right now. Please try again in a moment."


def get_question(field: str) -> str:
    return QUESTION_TEMPLATES[field]


def get_extraction_prompt(field: str, text: str, schema: dict) -> str:
    return EXTRACTION_PROMPT.format(field=field, text=text, schema=json.dumps(schema, indent=2))


def get_system_prompt(profile: dict, universities_context: str) -> str:
    """Returns the AI Counsellor system prompt bound to the student's context."""
    return SYSTEM_PROMPT.format(
        profile_json=json.dumps(profile, indent=2, default=str),
        universities_context=universities_context or NO_UNIVERSITIES_CONTEXT,
    )
