"""AI advisory: client fee advice and email template drafting."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol

import structlog

from practice_desk.analytics.profitability import ProfitabilityResult
from practice_desk.models import AiAnalysis, Client

logger = structlog.get_logger(__name__)

RATE_LIMIT_MESSAGE = "AI request limit reached. Wait a minute and try again."

TEMPLATE_VARIABLES = (
    "name",
    "responsible_name",
    "nif",
    "email",
    "phone",
    "address",
    "sector",
    "entityType",
    "turnover",
    "avenca_atual",
    "nova_avenca",
)

ANALYSIS_SYSTEM_PROMPT = (
    "Atue como um Consultor Sénior de Gestão para Gabinetes de Contabilidade em "
    "Portugal. Responda apenas com um objeto JSON, sem texto adicional."
)

EMAIL_SYSTEM_PROMPT = (
    "Atue como especialista em comunicação de um gabinete de contabilidade em "
    "Portugal. Responda apenas com um objeto JSON, sem texto adicional."
)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class AdvisoryError(Exception):
    """The advisory model failed or replied in an unexpected shape."""

    pass


class TextGenerator(Protocol):
    async def generate(self, system_prompt: str, prompt: str) -> Any: ...


@dataclass(frozen=True)
class EmailTemplateDraft:
    subject: str
    body: str


def extract_first_json_object(text: str) -> dict[str, Any]:
    """Parse the outermost JSON object in a model reply.

    Markdown code fences are ignored.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    match = _OBJECT_RE.search(cleaned)
    if not match:
        raise AdvisoryError("The model did not return a JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AdvisoryError("The model returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise AdvisoryError("The model returned JSON that is not an object")
    return data


def round_fee(value: Any) -> int:
    """Round a suggested fee to whole euros, halves going up."""
    if isinstance(value, bool):
        raise AdvisoryError("Suggested fee is not a number")
    try:
        fee = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise AdvisoryError("Suggested fee is not a number") from exc
    if not fee.is_finite():
        raise AdvisoryError("Suggested fee is not a number")
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_rate_limit_error(error: Exception) -> bool:
    message = str(error).lower()
    return "429" in message or "rate limit" in message or "resource_exhausted" in message


def build_analysis_prompt(client: Client, result: ProfitabilityResult) -> str:
    return "\n".join(
        [
            "Analise o seguinte cliente e forneça uma análise estratégica e uma "
            "sugestão de avença.",
            "",
            "DADOS DO CLIENTE:",
            f"Nome: {client.name}",
            f"Setor: {client.sector}",
            f"Volume Documental: {client.document_count}",
            f"Nº Colaboradores: {client.employee_count}",
            f"Avença Mensal Atual: {client.monthly_fee}€",
            "",
            "DADOS DE RENTABILIDADE (ANUAL):",
            f"Custo Estimado (Interno): {result.total_annual_cost:.2f}€",
            f"Receita Anual: {result.total_annual_revenue:.2f}€",
            f"Margem de Lucro: {result.profitability:.1f}%",
            f"Preço/Hora Efetivo: {result.hourly_return:.2f}€",
            "",
            "Responda com a estrutura:",
            '{"parecer": "parecer estratégico curto, no máximo 3 parágrafos; com margem '
            'abaixo de 20% sugira argumentos de renegociação ou eficiência, acima '
            'sugira como fidelizar", "avenca_sugerida": 123}',
        ]
    )


def build_email_prompt(topic: str, tone: str) -> str:
    variables = ", ".join("{{" + name + "}}" for name in TEMPLATE_VARIABLES)
    return "\n".join(
        [
            f'Crie um template de email (assunto e corpo) sobre o tópico: "{topic}".',
            f"O tom do email deve ser: {tone}.",
            "Texto curto e direto (máximo ~140 palavras), com **negrito** apenas no "
            "essencial e linhas do tipo \"Campo: valor\" quando fizer sentido.",
            "Estrutura: saudação curta, motivo numa frase, pontos importantes, fecho cordial.",
            f"Variáveis disponíveis: {variables}.",
            "",
            "Responda com a estrutura:",
            '{"subject": "assunto, com variáveis se necessário", '
            '"body": "corpo em texto simples, com \\n para novas linhas"}',
        ]
    )


class AdvisoryService:
    """Turns client figures into advice through a text generator."""

    def __init__(self, generator: TextGenerator):
        self._generator = generator
        self._logger = logger.bind(component="advisory")

    async def _ask(self, system_prompt: str, prompt: str) -> dict[str, Any]:
        try:
            response = await self._generator.generate(system_prompt, prompt)
        except Exception as exc:
            if is_rate_limit_error(exc):
                self._logger.warning("advisory_rate_limited")
                raise AdvisoryError(RATE_LIMIT_MESSAGE) from exc
            raise AdvisoryError(f"Advisory request failed: {exc}") from exc
        return extract_first_json_object(getattr(response, "content", response))

    async def analyze_client(
        self,
        client: Client,
        result: ProfitabilityResult,
        refresh: bool = False,
    ) -> AiAnalysis:
        """Return advice for a client, caching it on ``client.ai_analysis``.

        A cached analysis is returned as is unless ``refresh`` is set.
        """
        if client.ai_analysis is not None and not refresh:
            return client.ai_analysis

        data = await self._ask(ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt(client, result))
        advice = data.get("parecer")
        fee = data.get("avenca_sugerida")
        if not isinstance(advice, str) or not isinstance(fee, (int, float, str)):
            raise AdvisoryError("The model returned JSON in an unexpected format")

        analysis = AiAnalysis(advice_text=advice, suggested_fee=round_fee(fee))
        client.ai_analysis = analysis
        self._logger.info(
            "client_analyzed", client_id=client.id, suggested_fee=analysis.suggested_fee
        )
        return analysis

    async def generate_email_template(self, topic: str, tone: str) -> EmailTemplateDraft:
        """Draft an email whose ``{{variable}}`` placeholders are left unfilled."""
        if not topic.strip() or not tone.strip():
            raise AdvisoryError("Topic and tone are required")

        data = await self._ask(EMAIL_SYSTEM_PROMPT, build_email_prompt(topic, tone))
        subject = data.get("subject")
        body = data.get("body")
        if not subject or not body:
            raise AdvisoryError("The model reply is missing subject or body")
        return EmailTemplateDraft(subject=str(subject), body=str(body))
