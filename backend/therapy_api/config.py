# backend/therapy_api/config.py
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./therapy.db")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_S = float(os.getenv("OPENAI_TIMEOUT_S", "15"))

KAFKA_BOOTSTRAP = os.getenv("KAFKA_BOOTSTRAP", "localhost:9092")
KAFKA_TOPIC_EVENTS = os.getenv("KAFKA_TOPIC_EVENTS", "therapy.events")
KAFKA_GROUP_WORKFLOWS = os.getenv("KAFKA_GROUP_WORKFLOWS", "therapy-workflows")

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

THERAPEUTIC_SYSTEM_PROMPT = """
You are a licensed-style AI therapy assistant inside a wellness app.
Core rules:
- Be warm, validating and concise. Use a gentle CBT-informed style.
- Never diagnose or prescribe medication.
- Ask at most one focused question at a time.
- If the user mentions self-harm or danger to others, respond with care and
  encourage contacting local emergency services or a crisis line.
- Suggest small, achievable next steps rather than promising outcomes.
"""

ANALYSIS_SYSTEM_PROMPT = (
    "You analyse messages from a therapy chat. "
    "Return a single JSON object only, no prose and no markdown."
)

# keys are the JSON field names the model must return
ANALYSIS_GUIDELINE = {
    "emotionalState": "one lower-case word for the dominant emotion (e.g. 'anxious', 'calm', 'hopeful')",
    "themes": "list of 1-5 short topic labels present in the message",
    "riskLevel": "number from 0 (no risk) to 10 (immediate danger to self or others)",
    "recommendedApproach": "one short label for the therapeutic approach to use (e.g. 'grounding', 'cbt', 'supportive')",
    "progressIndicators": "list of short labels showing signs of progress, may be empty",
}

FALLBACK_REPLY = (
    "I hear you. I'm here with you. "
    "Could you tell me more about what you're feeling right now?"
)
