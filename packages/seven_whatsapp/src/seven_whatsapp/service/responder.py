"""
AI Responder

Generates agent replies through an OpenAI-compatible chat completions API
(OpenRouter by default).
"""

import logging
from collections.abc import Callable

import httpx

from sevencore.settings import get_settings
from seven_commerce.contracts.payloads import ChatMessage
from seven_commerce.persistence.models import Product
from seven_commerce.services.orders import format_amount
from seven_whatsapp.persistence.models import Agent

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "Tu es un assistant commercial professionnel pour une boutique. "
    "Tu aides les clients avec leurs achats.\n"
    "- Réponds toujours dans la langue du client\n"
    "- Sois concis: 2-3 phrases maximum\n"
    "- Ne te présente jamais, va droit au but"
)

CONTEXT_RULE = (
    "\n\nUtilise la conversation récente fournie. Si le client a déjà été salué, "
    "ne redis pas \"Bonjour\" au début de ta réponse."
)

CATALOG_TITLE = "📦 CATALOGUE PRODUITS"

CATALOG_RULE = (
    "Pour les noms de produits, prix, disponibilité et descriptions, utilise UNIQUEMENT "
    f"la section \"{CATALOG_TITLE}\". N'invente aucun prix ni aucune caractéristique. "
    "Si un produit est en rupture, dis-le poliment et propose une alternative."
)

EMPTY_CATALOG = (
    "Le catalogue produits est actuellement vide. Ne propose aucun prix ni aucun produit "
    "et propose de mettre le client en relation avec un conseiller si besoin."
)


def _stock_label(stock: int, low_threshold: int) -> str:
    if stock <= 0:
        return "⛔ RUPTURE DE STOCK"
    if stock <= low_threshold:
        return f"⚠️ STOCK LIMITÉ ({stock} unités)"
    return f"✅ En stock ({stock})"


def format_catalog(products: list[Product], low_threshold: int = 5) -> str:
    """
    Catalog section of the system prompt.

    One line per product: name, SKU, price, stock label and category, with
    the description indented on the next line.
    """
    if not products:
        return f"{CATALOG_TITLE}\n{EMPTY_CATALOG}"

    lines = [CATALOG_TITLE]
    for product in products:
        line = f"- {product.name}"
        if product.sku:
            line += f" ({product.sku})"
        line += f": {format_amount(product.price)} FCFA {_stock_label(product.stock or 0, low_threshold)}"
        if product.category:
            line += f" | {product.category}"
        lines.append(line)
        if product.description:
            lines.append(f"  {product.description.strip()}")
    lines.append("")
    lines.append(CATALOG_RULE)
    return "\n".join(lines)


class AiResponderError(Exception):
    pass


class AiResponder:
    """
    Chat completions client.

    `generate` never raises: any failure is logged and reported as None so
    the caller can fall back to a static text.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        history_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_url = (api_url or settings.AI_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.timeout = timeout or settings.AI_TIMEOUT
        self.history_size = history_size or settings.AI_HISTORY_SIZE
        self.default_model = settings.AI_DEFAULT_MODEL
        self.low_stock_threshold = settings.LOW_STOCK_THRESHOLD
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def model_for(self, agent: Agent) -> str:
        return agent.model or self.default_model

    def build_messages(
        self,
        agent: Agent,
        history: list[ChatMessage],
        text: str,
        products: list[Product] | None = None,
    ) -> list[dict[str, str]]:
        """
        System prompt, the last messages of the history, then the current message.

        When `products` is given (even empty) the tenant catalog is appended
        to the system prompt.
        """
        prompt = ((agent.system_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT) + CONTEXT_RULE
        if products is not None:
            prompt += "\n\n" + format_catalog(products, self.low_stock_threshold)
        messages = [{"role": "system", "content": prompt}]

        for msg in history[-self.history_size:]:
            if not msg.content:
                continue
            role = "user" if msg.role == "user" else "assistant"
            messages.append({"role": role, "content": msg.content})

        messages.append({"role": "user", "content": text})
        return messages

    async def _complete(self, payload: dict) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.api_url}/chat/completions", headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise AiResponderError(f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
        except httpx.RequestError as e:
            raise AiResponderError(f"Request failed: {e}") from e
        except ValueError as e:
            raise AiResponderError("Invalid JSON response") from e

        if not isinstance(data, dict):
            raise AiResponderError("Unexpected response shape")
        choices = data.get("choices") or []
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise AiResponderError("Empty completion")
        return content.strip()

    async def generate(
        self,
        agent: Agent,
        history: list[ChatMessage],
        text: str,
        on_error: Callable[[Agent, str], None] | None = None,
        products: list[Product] | None = None,
    ) -> str | None:
        """
        Generate a reply to `text`.

        Args:
            agent: Agent whose prompt, model and sampling settings apply
            history: Conversation history, oldest first, without `text`
            text: Current customer message
            on_error: Called with the agent and error message on failure
            products: Tenant catalog to show the model, if any

        Returns:
            Reply text, or None when no reply could be produced
        """
        if not self.is_configured:
            logger.warning("AI_API_KEY not configured, skipping AI reply")
            return None

        model = self.model_for(agent)
        payload = {
            "model": model,
            "messages": self.build_messages(agent, history, text, products),
            "temperature": agent.temperature if agent.temperature is not None else 0.7,
            "max_tokens": agent.max_tokens or 500,
        }

        try:
            reply = await self._complete(payload)
        except AiResponderError as e:
            logger.error(f"AI reply failed: {e}", extra={"agent_id": str(agent.id), "model": model})
            if on_error:
                on_error(agent, str(e))
            return None

        logger.info(f"AI reply generated ({len(reply)} chars)", extra={"agent_id": str(agent.id), "model": model})
        return reply
