"""Rule-based responder — the deterministic floor of the provider chain.

Always available, never raises. Keywords are matched by substring against the
lower-cased user text (never the system prompt, which would match everything).
Assessment questions and final recommendations come from fixed tables so an
assessment can always progress without a model.
"""

from __future__ import annotations

from typing import Any

from nutribot.llm.providers import GenerationRequest, GenerationResult, Intent

RULE_BASED_MODEL = "fallback-rule-based"
DEFAULT_MODEL = "fallback-default"

# Checked in insertion order; first match wins
KEYWORD_RESPONSES: dict[str, str] = {
    "hola": "¡Hola! Soy NutriBot, tu asistente de nutrición. ¿En qué puedo ayudarte hoy?",
    "nutrición": (
        "Puedo ayudarte con consejos nutricionales, planes de comidas y evaluaciones de salud. "
        "¿Qué te interesa específicamente?"
    ),
    "evaluación": "Te ayudo a realizar una evaluación de salud personalizada. ¿Estás listo para comenzar?",
    "plan": (
        "Puedo crear un plan de comidas adaptado a tus necesidades. "
        "¿Tienes alguna preferencia o restricción alimentaria?"
    ),
    "peso": (
        "Para ayudarte con objetivos de peso, necesitaría conocer tu situación actual. "
        "¿Te gustaría hacer una evaluación completa?"
    ),
    "energía": (
        "Los alimentos ricos en nutrientes como frutas, verduras, proteínas magras y granos enteros "
        "pueden ayudarte a mantener niveles de energía estables."
    ),
    "ejercicio": (
        "La nutrición y el ejercicio van de la mano. "
        "¿Te gustaría consejos sobre qué comer antes, durante o después del ejercicio?"
    ),
    "vegetariano": (
        "Una dieta vegetariana bien planificada puede ser muy saludable. "
        "¿Te gustaría consejos sobre cómo asegurar una nutrición completa?"
    ),
    "vegano": (
        "Las dietas veganas requieren atención especial a ciertos nutrientes como B12, hierro y calcio. "
        "¿Te gustaría más información?"
    ),
    "gluten": (
        "Si tienes sensibilidad al gluten, hay muchas alternativas deliciosas disponibles. "
        "¿Te gustaría sugerencias de alimentos?"
    ),
    "diabetes": (
        "La gestión de la diabetes requiere atención especial a los carbohidratos y el control del "
        "azúcar en sangre. Siempre consulta con tu médico."
    ),
    "colesterol": (
        "Una dieta baja en grasas saturadas y rica en fibra puede ayudar a controlar el colesterol. "
        "¿Te gustaría consejos específicos?"
    ),
    "presión": (
        "Reducir el sodio y aumentar el potasio puede ayudar con la presión arterial. "
        "¿Te gustaría más información?"
    ),
    "digestión": "Los alimentos ricos en fibra, probióticos y una buena hidratación pueden mejorar la digestión.",
    "sueño": "Evitar comidas pesadas antes de dormir y alimentos con cafeína puede mejorar la calidad del sueño.",
    "estrés": "Alimentos ricos en omega-3, vitaminas B y magnesio pueden ayudar a manejar el estrés.",
    "privacidad": (
        "Tu privacidad es nuestra prioridad. Todos los datos están encriptados y anonimizados "
        "según las leyes españolas de protección de datos."
    ),
    "ayuda": (
        "Puedo ayudarte con: evaluaciones de salud, consejos nutricionales, planes de comidas, "
        "y seguimiento de progreso. ¿Qué necesitas?"
    ),
}

DEFAULT_RESPONSE = (
    "Gracias por tu consulta. Soy NutriBot y estoy aquí para ayudarte con nutrición y salud. "
    "¿Puedes ser más específico sobre lo que necesitas?"
)

FALLBACK_QUESTIONS: tuple[str, ...] = (
    "¿Cuántas comidas haces al día y a qué horas sueles hacerlas?",
    "¿Qué sueles desayunar en un día normal?",
    "¿Cuántos vasos de agua bebes al día aproximadamente?",
    "¿Con qué frecuencia comes frutas y verduras a lo largo de la semana?",
    "¿Cuántas veces por semana consumes carne, pescado, huevos o legumbres?",
    "¿Sueles picar entre horas? Si es así, ¿qué tipo de alimentos?",
    "¿Con qué frecuencia tomas bebidas azucaradas, alcohol o café?",
    "¿Cuántas veces por semana comes fuera de casa o pides comida preparada?",
    "¿Cuántas horas duermes de media y cómo valorarías la calidad de tu sueño?",
    "¿Qué tipo de actividad física realizas y cuántos días a la semana?",
    "¿Cómo describirías tu nivel de estrés habitual y cómo afecta a tu alimentación?",
    "¿Tienes molestias digestivas frecuentes, como hinchazón, ardor o estreñimiento?",
    "¿Tomas algún suplemento o medicación de forma habitual?",
    "¿Qué alimentos te cuesta más reducir o cuáles echas de menos en tu dieta?",
    "¿Qué cambio concreto te sentirías capaz de mantener durante las próximas semanas?",
)

FALLBACK_RECOMMENDATIONS = (
    "Recomendaciones generales basadas en tu evaluación:\n"
    "1. Reparte tu alimentación en 3-5 comidas regulares y evita saltarte el desayuno.\n"
    "2. Incluye verduras en la comida y la cena, y 2-3 piezas de fruta al día.\n"
    "3. Prioriza proteínas magras, legumbres y pescado varias veces por semana.\n"
    "4. Bebe agua de forma regular a lo largo del día y limita las bebidas azucaradas.\n"
    "5. Mantén una actividad física adaptada a tu nivel y cuida las horas de sueño.\n"
    "Estas recomendaciones son orientativas y no sustituyen el consejo de un profesional de la salud."
)


def fallback_question(question_number: int) -> str:
    """Deterministic question for a 1-based question number."""
    index = (max(question_number, 1) - 1) % len(FALLBACK_QUESTIONS)
    return FALLBACK_QUESTIONS[index]


class RuleBasedResponder:
    """Deterministic keyword responder. Implements the Provider protocol."""

    name = "rule_based"

    def match(self, text: str) -> tuple[str | None, str]:
        """Return (matched keyword, response) for free text."""
        lowered = text.lower()
        for key, response in KEYWORD_RESPONSES.items():
            if key in lowered:
                return key, response
        return None, DEFAULT_RESPONSE

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        if request.intent is Intent.ASSESSMENT_QUESTION:
            return GenerationResult(
                text=fallback_question(request.question_number or 1),
                model=RULE_BASED_MODEL,
                provider=self.name,
            )
        if request.intent is Intent.RECOMMENDATIONS:
            return GenerationResult(text=FALLBACK_RECOMMENDATIONS, model=RULE_BASED_MODEL, provider=self.name)

        key, response = self.match(request.user_text)
        return GenerationResult(
            text=response,
            model=RULE_BASED_MODEL if key is not None else DEFAULT_MODEL,
            provider=self.name,
            matched_key=key,
        )

    async def health(self) -> dict[str, Any]:
        return {"provider": self.name, "status": "healthy", "available": True}

    async def close(self) -> None:
        return None
