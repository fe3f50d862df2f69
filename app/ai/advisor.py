# app/ai/advisor.py
"""
Asistente de IA para tickets: sugerencia de respuesta (OpenAI) y análisis
estructurado (Gemini). Ambos se llaman por HTTP con `requests`.
"""

import json
import logging
import re

from flask import current_app
import requests

from app.exceptions import AIError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION = "No se pudo generar una sugerencia."
DEFAULT_CATEGORY = "General"
TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"

CATEGORY_KEYWORDS = ("categoria", "categoría")
RESOLUTION_KEYWORDS = ("resolução", "instrução", "resolución", "instrucción")

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
_PARAGRAPH_RE = re.compile(r"\n\s*\n+")

ANALYSIS_PROMPT = """Eres un asistente especializado en el análisis de tickets de soporte técnico.

Analiza el siguiente ticket y proporciona:

1. ANÁLISIS: Un análisis detallado del problema descrito, identificando la causa raíz y los aspectos importantes.

2. CATEGORÍA: Clasifica el ticket en una de las siguientes opciones (devuelve solo el nombre de la categoría):
   - General
   - Facturación
   - Técnico
   - Funcionalidad

3. INSTRUCCIONES DE RESOLUCIÓN: Un paso a paso claro y concreto para resolver el problema.

FORMATO DE RESPUESTA:
Responde en JSON con las siguientes claves:
{{
  "analysis": "tu análisis",
  "category": "nombre de la categoría",
  "resolutionInstructions": "instrucciones paso a paso"
}}

TICKET A ANALIZAR:
{context}"""

SUGGESTION_PROMPT = """Eres un agente de soporte. Sugiere una respuesta para la siguiente conversación de un ticket:

Ticket: {title}
Descripción: {description}

Conversación:
{transcript}

Respuesta sugerida:"""


def format_timestamp(value):
    if value is None:
        return "Fecha no disponible"
    if hasattr(value, "strftime"):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)


def build_transcript(messages):
    """Líneas '<remitente>: <contenido>' en orden cronológico."""
    return "\n".join(f"{m.get('sender_id')}: {m.get('content')}" for m in messages)


def build_ticket_context(ticket, messages):
    """Bloque de contexto con los datos del ticket y sus seguimientos fechados."""
    followups = "\n\n".join(
        f"Seguimiento {index} ({format_timestamp(m.get('created_at'))}):\n{m.get('content')}"
        for index, m in enumerate(messages, start=1)
    )
    return "\n".join([
        f"TÍTULO DEL TICKET: {ticket.get('title')}",
        "",
        f"DESCRIPCIÓN: {ticket.get('description')}",
        "",
        f"ESTADO: {ticket.get('status')}",
        f"PRIORIDAD: {ticket.get('priority')}",
        f"CATEGORÍA ACTUAL: {ticket.get('category') or 'No especificada'}",
        "",
        "SEGUIMIENTOS:",
        followups or "No hay seguimientos registrados.",
    ])


def _extract_json(text):
    match = _JSON_BLOCK_RE.search(text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _fallback_analysis(text):
    """Divide la respuesta en párrafos y busca la categoría y las instrucciones por palabra clave."""
    parts = [p.strip() for p in _PARAGRAPH_RE.split(text) if p.strip()]

    category = None
    for part in parts:
        if any(keyword in part.lower() for keyword in CATEGORY_KEYWORDS) and ":" in part:
            value = part.split(":", 1)[1].strip()
            category = value.splitlines()[0].strip() if value else None
            break

    resolution = next(
        (p for p in parts if any(keyword in p.lower() for keyword in RESOLUTION_KEYWORDS)),
        parts[-1] if parts else None,
    )
    return {
        "analysis": parts[0] if parts else text[:500],
        "category": category,
        "resolutionInstructions": resolution or text[500:],
    }


def parse_analysis(text):
    """
    Interpreta la respuesta del modelo. Primero intenta el primer bloque {...}
    como JSON; si no, recurre a la división por párrafos. Los tres campos
    devueltos nunca están vacíos.
    """
    text = text or ""
    data = _extract_json(text)
    if data is None:
        logger.warning("[AI] La respuesta del modelo no contiene JSON válido, se usa el análisis heurístico")
        data = _fallback_analysis(text)

    fallback_text = text.strip() or "No se pudo analizar el ticket."
    return {
        "analysis": str(data.get("analysis") or "").strip() or fallback_text,
        "category": str(data.get("category") or "").strip() or DEFAULT_CATEGORY,
        "resolutionInstructions": str(data.get("resolutionInstructions") or "").strip() or fallback_text,
    }


class AIAdvisor:
    def __init__(self, openai_api_key="", openai_model="gpt-4o-mini",
                 openai_api_url="https://api.openai.com/v1/chat/completions",
                 gemini_api_key="", gemini_model="gemini-2.0-flash",
                 gemini_api_url="https://generativelanguage.googleapis.com/v1beta/models",
                 timeout=60, http=None):
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model
        self.openai_api_url = openai_api_url
        self.gemini_api_key = gemini_api_key
        self.gemini_model = gemini_model
        self.gemini_api_url = gemini_api_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, config, **kwargs):
        return cls(
            openai_api_key=config.get("OPENAI_API_KEY", ""),
            openai_model=config.get("OPENAI_MODEL", "gpt-4o-mini"),
            openai_api_url=config.get("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions"),
            gemini_api_key=config.get("GEMINI_API_KEY", ""),
            gemini_model=config.get("GEMINI_MODEL", "gemini-2.0-flash"),
            gemini_api_url=config.get("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta/models"),
            timeout=config.get("AI_REQUEST_TIMEOUT", 60),
            **kwargs,
        )

    def _post(self, label, url, payload, headers=None, params=None):
        try:
            response = self.http.post(url, json=payload, headers=headers, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[AI] Error en la llamada a {label}: {e}")
            raise AIError(original_exception=e)

    def suggest_response(self, ticket, messages):
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY no configurada")

        prompt = SUGGESTION_PROMPT.format(
            title=ticket.get("title"),
            description=ticket.get("description"),
            transcript=build_transcript(messages),
        )
        data = self._post(
            "OpenAI",
            self.openai_api_url,
            {"model": self.openai_model, "messages": [{"role": "user", "content": prompt}]},
            headers={"Authorization": f"Bearer {self.openai_api_key}"},
        )
        try:
            suggestion = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            suggestion = None
        return (suggestion or "").strip() or DEFAULT_SUGGESTION

    def analyze_ticket(self, ticket, messages):
        if not self.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY no configurada")

        prompt = ANALYSIS_PROMPT.format(context=build_ticket_context(ticket, messages))
        data = self._post(
            "Gemini",
            f"{self.gemini_api_url}/{self.gemini_model}:generateContent",
            {"contents": [{"parts": [{"text": prompt}]}]},
            params={"key": self.gemini_api_key},
        )
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning("[AI] Respuesta de Gemini sin texto")
            text = ""
        return parse_analysis(text)


def get_ai_advisor():
    """Asistente de IA de la aplicación actual (creado una vez en create_app)."""
    return current_app.extensions["ai_advisor"]
