"""
Prompt building blocks for the conversation persona and the feedback analyst
"""
from typing import List, Optional

LANGUAGE_CONFIG = {
    "english": {"name": "English", "instruction": "Respond ONLY in English. Help the user practice English conversation."},
    "spanish": {"name": "Spanish", "instruction": "Respond ONLY in Spanish (Español). Help the user practice Spanish conversation."},
    "french": {"name": "French", "instruction": "Respond ONLY in French (Français). Help the user practice French conversation."},
    "italian": {"name": "Italian", "instruction": "Respond ONLY in Italian (Italiano). Help the user practice Italian conversation."},
    "german": {"name": "German", "instruction": "Respond ONLY in German (Deutsch). Help the user practice German conversation."},
}

SCENARIO_PROMPTS = {
    "restaurant": "You are an experienced and polite waiter at a sophisticated restaurant. Keep the conversation natural about food orders, drinks, menu recommendations and customer service.",
    "interview": "You are a professional HR interviewer at a large company. Ask typical job interview questions, evaluate answers and give implicit feedback. Be professional but welcoming.",
    "hotel": "You are a 5-star hotel receptionist. Help with check-in, check-out, reservations, room service and hotel information. Be courteous and helpful.",
    "airport": "You are an airport agent working at check-in or immigration. Ask questions about documents, luggage, destination and security procedures. Be professional.",
    "shopping": "You are a salesperson at a clothing or department store. Help customers find products, discuss sizes, prices, colors and make suggestions. Be friendly and helpful.",
    "business": "You are an executive in a business meeting. Discuss projects, goals, results and strategies professionally. Use corporate vocabulary.",
    "hospital": "You are a doctor or nurse at a hospital. Ask about symptoms, medical history, make simple diagnoses and give recommendations. Be empathetic and professional.",
    "transport": "You are a ride-share driver. Talk about destination, preferred route, traffic conditions and make small talk. Be friendly.",
}

DEFAULT_SCENARIO_PROMPT = "You are a helpful language assistant. Help the user practice conversation."

LEVEL_INSTRUCTIONS = {
    "basic": "The user is a beginner. Use simple phrases, basic vocabulary and speak slowly. Correct errors gently. Avoid complex grammar.",
    "intermediate": "The user has intermediate level. Use moderately complex phrases and varied vocabulary. Introduce some idiomatic expressions.",
    "advanced": "The user is advanced. Use idiomatic expressions, sophisticated vocabulary and complex structures. Challenge them with nuanced language.",
}

# CEFR levels estimated from past performance
ADAPTIVE_LEVEL_INSTRUCTIONS = {
    "A1": "Absolute beginner. Use only the most basic words and very short sentences. Avoid any complex structures.",
    "A2": "Elementary level. Use simple everyday vocabulary and basic sentence patterns. Keep it very accessible.",
    "B1": "Lower intermediate. Can handle familiar situations. Use clear standard language with some variety.",
    "B2": "Upper intermediate. Good command of the language. Use more complex structures and wider vocabulary.",
    "C1": "Advanced. Use sophisticated language, idioms, and subtle nuances. Challenge them intellectually.",
    "C2": "Near-native. Use the full range of the language naturally, including humor and cultural references.",
}

FEEDBACK_LANGUAGES = {
    "pt-BR": "Brazilian Portuguese",
    "en": "English",
}

TRANSCRIPTION_PROMPT = (
    "Transcribe the following audio to text. Return ONLY the transcribed text, "
    "without explanations or extra formatting. If there is no clear speech, return an empty string."
)


def level_instruction(user_level: Optional[str], adaptive_level: Optional[str]) -> str:
    """Adaptive CEFR level wins over the declared level."""
    if adaptive_level and adaptive_level in ADAPTIVE_LEVEL_INSTRUCTIONS:
        return ADAPTIVE_LEVEL_INSTRUCTIONS[adaptive_level]
    if user_level in ADAPTIVE_LEVEL_INSTRUCTIONS:
        return ADAPTIVE_LEVEL_INSTRUCTIONS[user_level]
    return LEVEL_INSTRUCTIONS.get(user_level, LEVEL_INSTRUCTIONS["intermediate"])


def build_system_prompt(
    scenario_id: str,
    user_language: str = "english",
    user_level: Optional[str] = None,
    adaptive_level: Optional[str] = None,
    include_instant_feedback: bool = False,
    ui_language: Optional[str] = None,
) -> str:
    lang = LANGUAGE_CONFIG.get(user_language, LANGUAGE_CONFIG["english"])
    scenario = SCENARIO_PROMPTS.get(scenario_id, DEFAULT_SCENARIO_PROMPT)

    prompt = f"""{lang["instruction"]}

SCENARIO: {scenario}

USER LEVEL: {level_instruction(user_level, adaptive_level)}

CRITICAL INSTRUCTIONS:
- You MUST respond ONLY in {lang["name"]}. Never switch to another language.
- Keep responses short (1-3 sentences) to simulate natural conversation.
- Ask questions to keep the conversation flowing.
- If the user makes errors, continue naturally (corrections will be in feedback).
- Stay strictly in the scenario context.
- Be encouraging and patient.
- Adapt your vocabulary and complexity to the user's level."""

    if include_instant_feedback:
        feedback_lang = FEEDBACK_LANGUAGES.get(ui_language or "pt-BR", FEEDBACK_LANGUAGES["pt-BR"])
        prompt += f"""

INSTANT FEEDBACK:
- If the user's last message has a mistake, end your reply with one line starting with "💡" that shows the corrected sentence and a very short explanation in {feedback_lang}.
- If there is no mistake, do not add the feedback line."""

    return prompt


def build_analysis_prompts(messages: List[dict], scenario_id: str, user_level: Optional[str], user_language: str):
    """Return (system_prompt, user_prompt) for the conversation analysis call."""
    lang = LANGUAGE_CONFIG.get(user_language, LANGUAGE_CONFIG["english"])["name"]
    conversation = "\n".join(
        f"{'Student' if m['role'] == 'user' else 'AI'}: {m['content']}" for m in messages
    )
    student_lines = "\n".join(m["content"] for m in messages if m["role"] == "user")

    system_prompt = (
        f"You are a {lang} teacher specialized in conversation analysis. "
        f"The conversation scenario is: {scenario_id}. "
        f"Declared student level: {user_level or 'unknown'}. "
        f"Analyze ONLY the student's messages and give honest but encouraging feedback. "
        f"Explanations, improvements and praise must be written in Brazilian Portuguese."
    )

    user_prompt = f"""Analyze this {lang} practice conversation and return JSON with exactly this structure:

{{
  "overallScore": <number 0-100>,
  "grammar": <number 0-100>,
  "vocabulary": <number 0-100>,
  "clarity": <number 0-100>,
  "fluency": <number 0-100>,
  "contextCoherence": <number 0-100>,
  "errors": [
    {{"original": "<sentence with error>", "corrected": "<corrected sentence>", "category": "<grammar|vocabulary|spelling|punctuation>", "explanation": "<explanation>"}}
  ],
  "improvements": ["<suggestion>"],
  "correctPhrases": ["<praise>"],
  "estimatedLevel": "<A1|A2|B1|B2|C1|C2>"
}}

Conversation:
{conversation}

Student messages:
{student_lines}

Return ONLY the JSON, no markdown. Use an empty errors array when there are no mistakes."""

    return system_prompt, user_prompt
