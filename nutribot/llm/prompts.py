"""Prompt templates — identity, compliance posture, per-intent bodies.

Prompts are in Spanish (the service's user language). Every builder receives
data that has already been through the privacy pipeline and returns a
GenerationRequest ready for the provider chain.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from nutribot.llm.providers import GenerationRequest, Intent
from nutribot.privacy.context import PrivacyContext

IDENTITY = (
    "Eres NutriBot, un asistente de nutrición especializado que cumple con las leyes de "
    "privacidad españolas (GDPR y LOPDGDD)."
)

INSTRUCTIONS = """INSTRUCCIONES IMPORTANTES:
- Proporciona consejos nutricionales basados en evidencia científica
- Siempre menciona que no eres un sustituto de un profesional de la salud
- Respeta la privacidad del usuario y no solicites información personal innecesaria
- Usa un tono profesional pero amigable
- Responde en español
- Mantén las respuestas concisas pero informativas"""

MEAL_PLAN_DAYS: dict[str, int] = {
    "1_day": 1,
    "3_days": 3,
    "7_days": 7,
    "14_days": 14,
    "30_days": 30,
}


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _join(values: Any) -> str:
    if isinstance(values, str):
        return values
    if isinstance(values, Sequence):
        return ", ".join(str(v) for v in values)
    return str(values)


def compliance_posture(context: PrivacyContext) -> str:
    regimes = ", ".join(sorted(flag.upper() for flag in context.compliance_flags)) or "ninguno"
    if context.anonymization_enabled:
        anonymization = f"sí (nivel {context.anonymization_level.value})"
    else:
        anonymization = "no"
    return (
        "POSTURA DE CUMPLIMIENTO:\n"
        f"- Normativas aplicadas: {regimes}\n"
        f"- Datos anonimizados: {anonymization}\n"
        f"- Minimización de datos: {'sí' if context.data_minimization_enabled else 'no'}"
    )


def build_system_prompt(context: PrivacyContext, profile: Mapping[str, Any] | None = None) -> str:
    """Identity + instructions + compliance posture + profile context."""
    profile = profile or {}
    lines = ["CONTEXTO DEL USUARIO:"]
    summary = {k: v for k, v in profile.items() if k in ("age", "gender", "activityLevel", "weight", "height")}
    lines.append(f"Perfil: {_dump(summary)}" if summary else "Perfil no disponible")
    restrictions = [*_as_list(profile.get("allergies")), *_as_list(profile.get("dietaryPreferences"))]
    if restrictions:
        lines.append(f"Restricciones: {_join(restrictions)}")
    if profile.get("goals"):
        lines.append(f"Objetivos: {_join(profile['goals'])}")

    return "\n\n".join([IDENTITY, INSTRUCTIONS, compliance_posture(context), "\n".join(lines)])


# ── Assessment ───────────────────────────────────────────────────────


def question_request(
    context: PrivacyContext,
    health_data: Mapping[str, Any],
    previous_answers: Sequence[Mapping[str, Any]],
    question_number: int,
    total_questions: int,
) -> GenerationRequest:
    prompt = (
        f"EVALUACIÓN DE SALUD - PREGUNTA {question_number} DE {total_questions}\n\n"
        f"DATOS DE SALUD DEL USUARIO:\n{_dump(health_data)}\n\n"
        f"RESPUESTAS PREVIAS:\n{_dump(list(previous_answers))}\n\n"
        "Genera la siguiente pregunta de la evaluación de salud, considerando las respuestas previas. "
        "Responde solo con la pregunta:"
    )
    return GenerationRequest(
        intent=Intent.ASSESSMENT_QUESTION,
        system_prompt=build_system_prompt(context, health_data),
        prompt=prompt,
        question_number=question_number,
    )


def recommendations_request(
    context: PrivacyContext,
    health_data: Mapping[str, Any],
    answers: Sequence[Mapping[str, Any]],
) -> GenerationRequest:
    prompt = (
        "RECOMENDACIONES FINALES\n\n"
        f"DATOS DE SALUD:\n{_dump(health_data)}\n\n"
        f"RESPUESTAS DE LA EVALUACIÓN:\n{_dump(list(answers))}\n\n"
        "Genera recomendaciones nutricionales personalizadas basadas en la evaluación:"
    )
    return GenerationRequest(
        intent=Intent.RECOMMENDATIONS,
        system_prompt=build_system_prompt(context, health_data),
        prompt=prompt,
    )


# ── Advice ───────────────────────────────────────────────────────────


def advice_request(context: PrivacyContext, payload: Mapping[str, Any]) -> GenerationRequest:
    query = str(payload.get("query", ""))
    extra = payload.get("context") or {}
    prompt = f"CONSULTA DEL USUARIO: {query}\n\n"
    if extra:
        prompt += f"CONTEXTO ADICIONAL:\n{_dump(extra)}\n\n"
    prompt += "Proporciona consejos nutricionales específicos y útiles:"
    profile = extra if isinstance(extra, Mapping) else {}
    return GenerationRequest(
        intent=Intent.ADVICE,
        system_prompt=build_system_prompt(context, {**profile, **payload}),
        prompt=prompt,
        user_text=query,
    )


def meal_plan_request(context: PrivacyContext, payload: Mapping[str, Any]) -> GenerationRequest:
    days = MEAL_PLAN_DAYS.get(str(payload.get("duration")), 7)
    preferences = payload.get("preferences") or {}
    restrictions = payload.get("restrictions") or []
    prompt = (
        "PLAN DE COMIDAS\n\n"
        f"DURACIÓN: {days} días\n"
        f"PREFERENCIAS: {_dump(preferences) if preferences else 'Ninguna especificada'}\n"
        f"RESTRICCIONES: {_join(restrictions) if restrictions else 'Ninguna especificada'}\n\n"
        "Genera un plan de comidas detallado y personalizado:"
    )
    user_text = " ".join(["plan", _dump(preferences) if preferences else "", _join(restrictions)])
    return GenerationRequest(
        intent=Intent.MEAL_PLAN,
        system_prompt=build_system_prompt(context, payload),
        prompt=prompt,
        user_text=user_text,
    )


def progress_request(context: PrivacyContext, payload: Mapping[str, Any]) -> GenerationRequest:
    metrics = payload.get("metrics") or {}
    prompt = (
        "ANÁLISIS DE PROGRESO\n\n"
        f"MÉTRICAS:\n{_dump(metrics)}\n"
        f"FECHA: {payload.get('date', 'no indicada')}\n\n"
        "Proporciona insights sobre el progreso y sugerencias de mejora:"
    )
    return GenerationRequest(
        intent=Intent.PROGRESS,
        system_prompt=build_system_prompt(context, payload),
        prompt=prompt,
        user_text=" ".join(str(k) for k in metrics),
    )
