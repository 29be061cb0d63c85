"""
Content Generator — title/body text for low-stock alerts.

Two tiers:
  1. A deterministic templated title/body is always built first. It is the
     guaranteed fallback and the audit copy kept as `original_body`.
  2. When AI enhancement is requested, the text-generation provider is asked
     for a JSON {title, message}. Any failure in that path falls back to tier 1.

No returned text may contain a bracketed numeric citation such as [1] or [2, 3].
"""

import asyncio
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import structlog

from alerts.inventory import LowStockProduct
from alerts.llm import MoonshotClient, TextGenerator
from core.config import get_settings

logger = structlog.get_logger()

# Fixed per-item urgency bands, independent of the merchant's thresholds
ITEM_CRITICAL_QTY = 1
ITEM_URGENT_QTY = 2

CITATION_PATTERN = re.compile(r"\[\s*\d+(?:\s*,\s*\d+)*\s*\]")
CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
TITLE_PATTERN = re.compile(r'"title"\s*:\s*"((?:[^"\\]|\\.)*)"')
MESSAGE_PATTERN = re.compile(r'"message"\s*:\s*"((?:[^"\\]|\\.)*)"')

# Width of alerts.title
TITLE_MAX_LENGTH = 255

SYSTEM_PROMPT = (
    "You are a helpful business assistant that provides concise, actionable responses. "
    "Always respond in plain text without citations, references, or bracketed numbers."
)


class Urgency(str, Enum):
    CRITICAL = "critical"
    LOW = "low"


@dataclass(frozen=True)
class GeneratedContent:
    title: str
    body: str
    is_ai_enhanced: bool
    original_body: str


# ──────────────────────────────────────────────────────────────────────────
# Provider response parsing
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ParsedStructured:
    title: str
    message: str


@dataclass(frozen=True)
class ParsedPartial:
    title: str | None
    message: str | None


@dataclass(frozen=True)
class Unparsed:
    raw: str


ParsedResponse = ParsedStructured | ParsedPartial | Unparsed


def strip_citations(text: str) -> str:
    """Remove [n] / [n,m,...] citation markers and tidy the spacing they leave."""
    cleaned = CITATION_PATTERN.sub("", text)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r" +([.,;:!?])", r"\1", cleaned)
    return cleaned.strip()


def _clean_field(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = strip_citations(value)
    return cleaned or None


def fit_title(text: str) -> str:
    """Truncate to the stored title width, marking the cut with an ellipsis."""
    if len(text) <= TITLE_MAX_LENGTH:
        return text
    return text[: TITLE_MAX_LENGTH - 1].rstrip() + "…"


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


def parse_ai_response(raw: str) -> ParsedResponse:
    """JSON first, then regex recovery of the title/message fields, else Unparsed."""
    text = raw.strip()
    fenced = CODE_FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        title = _clean_field(data.get("title"))
        message = _clean_field(data.get("message"))
    else:
        title_match = TITLE_PATTERN.search(text)
        message_match = MESSAGE_PATTERN.search(text)
        title = _clean_field(_unescape(title_match.group(1))) if title_match else None
        message = _clean_field(_unescape(message_match.group(1))) if message_match else None

    if title and len(title) > TITLE_MAX_LENGTH:
        title = None

    if title and message:
        return ParsedStructured(title=title, message=message)
    if title or message:
        return ParsedPartial(title=title, message=message)
    return Unparsed(raw=raw)


# ──────────────────────────────────────────────────────────────────────────
# Deterministic templates
# ──────────────────────────────────────────────────────────────────────────


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def item_glyph(quantity: int) -> str:
    if quantity <= ITEM_CRITICAL_QTY:
        return "🔴"
    if quantity <= ITEM_URGENT_QTY:
        return "🟠"
    return "🟡"


def _single_product_advice(quantity: int) -> str:
    if quantity <= ITEM_CRITICAL_QTY:
        return "CRITICAL - Immediate restocking required!"
    if quantity <= ITEM_URGENT_QTY:
        return "URGENT - Restock soon to avoid stockout"
    return "Consider restocking to maintain inventory levels"


def basic_title(products: Sequence[LowStockProduct], urgency: Urgency) -> str:
    count = len(products)
    if urgency is Urgency.CRITICAL:
        return f"🚨 Critical Stock: {products[0].name}" if count == 1 else f"🚨 Critical Stock Alert ({count} items)"
    return f"⚠️ Low Stock: {products[0].name}" if count == 1 else f"⚠️ Low Stock Alert ({count} items)"


def basic_body(products: Sequence[LowStockProduct]) -> str:
    if len(products) == 1:
        product = products[0]
        return (
            f"📦 {product.name}: Only {_plural(product.quantity, 'unit')} remaining. "
            f"{_single_product_advice(product.quantity)}"
        )

    critical_count = sum(1 for p in products if p.quantity <= ITEM_CRITICAL_QTY)
    urgent_count = sum(1 for p in products if ITEM_CRITICAL_QTY < p.quantity <= ITEM_URGENT_QTY)

    lines = [f"📊 {len(products)} products need attention:", ""]
    lines.extend(f"{item_glyph(p.quantity)} {p.name}: {p.quantity} left" for p in products)

    rollup = []
    if critical_count:
        rollup.append(f"🚨 {_plural(critical_count, 'item')} critically low - Immediate action needed!")
    if urgent_count:
        verb = "needs" if urgent_count == 1 else "need"
        rollup.append(f"⚠️ {_plural(urgent_count, 'item')} {verb} restocking soon")
    if rollup:
        lines.append("")
        lines.extend(rollup)
    return "\n".join(lines)


def summary_text(products: Sequence[LowStockProduct]) -> tuple[str, str]:
    """Condensed digest: short title plus one sentence naming at most three products."""
    count = len(products)
    critical_count = sum(1 for p in products if p.quantity <= ITEM_URGENT_QTY)

    title = f"{count} Product{'s' if count != 1 else ''} Low Stock"
    if critical_count:
        title = f"⚠️ {critical_count} Critical Stock Alert"

    names = ", ".join(p.name for p in products[:3])
    remaining = f" and {count - 3} more" if count > 3 else ""
    critical_note = f"{_plural(critical_count, 'item')} critically low. " if critical_count else ""
    message = (
        f"{names}{remaining} {'are' if count > 1 else 'is'} running low. "
        f"{critical_note}Consider restocking soon to avoid stockouts and lost sales."
    )
    return title, message


def build_prompt(products: Sequence[LowStockProduct], merchant_name: str, threshold: int) -> str:
    product_list = ", ".join(f"{p.name} ({p.quantity} left, Price: ₹{p.price:g})" for p in products)
    critical_count = sum(1 for p in products if p.quantity <= ITEM_URGENT_QTY)
    return (
        f"As a business advisor, create a concise and actionable low stock notification for {merchant_name}.\n\n"
        f"Products running low: {product_list}\n"
        f"Stock threshold: {threshold}\n"
        f"Critical items (≤{ITEM_URGENT_QTY} units): {critical_count}\n\n"
        "Requirements:\n"
        "- Create a brief, professional title (max 8 words)\n"
        "- Write a clear, actionable message (2-3 sentences max)\n"
        "- Focus on business impact and urgency\n"
        "- Include practical next steps\n"
        "- Use encouraging, professional tone\n"
        "- NO citations, references, or bracketed numbers\n"
        "- Plain text only\n\n"
        "Format your response as JSON:\n"
        '{\n  "title": "Brief alert title",\n  "message": "Actionable message with next steps"\n}'
    )


# ──────────────────────────────────────────────────────────────────────────
# Generator
# ──────────────────────────────────────────────────────────────────────────


def build_content_generator() -> "ContentGenerator":
    """Wire the Moonshot client when a key is configured; templates only otherwise."""
    settings = get_settings()
    text_generator = MoonshotClient() if settings.moonshot_api_key else None
    return ContentGenerator(text_generator)


class ContentGenerator:
    def __init__(
        self,
        text_generator: TextGenerator | None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
    ):
        settings = get_settings()
        self.text_generator = text_generator
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.llm_timeout_seconds
        self.max_tokens = max_tokens if max_tokens is not None else settings.llm_max_tokens
        self.temperature = temperature if temperature is not None else settings.llm_temperature

    async def generate(
        self,
        products: Sequence[LowStockProduct],
        merchant_name: str,
        threshold: int,
        urgency: Urgency,
        ai_enhanced: bool = False,
    ) -> GeneratedContent:
        if not products:
            raise ValueError("Cannot build alert content for an empty product list")

        title = fit_title(strip_citations(basic_title(products, urgency)))
        body = strip_citations(basic_body(products))
        fallback = GeneratedContent(title=title, body=body, is_ai_enhanced=False, original_body=body)

        if not ai_enhanced or self.text_generator is None:
            return fallback

        try:
            # Bounds the whole call, provider retries included
            raw = await asyncio.wait_for(
                self.text_generator.generate(
                    SYSTEM_PROMPT,
                    build_prompt(products, merchant_name, threshold),
                    self.max_tokens,
                    self.temperature,
                ),
                timeout=self.timeout_seconds,
            )
            parsed = parse_ai_response(raw)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "content.enhancement_failed",
                merchant_name=merchant_name,
                product_count=len(products),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return fallback

        if not isinstance(parsed, ParsedStructured):
            logger.warning(
                "content.enhancement_unusable",
                merchant_name=merchant_name,
                result=type(parsed).__name__,
            )
            return fallback

        return GeneratedContent(
            title=parsed.title,
            body=parsed.message,
            is_ai_enhanced=True,
            original_body=body,
        )
