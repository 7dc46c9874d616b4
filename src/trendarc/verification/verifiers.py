"""Verifier backends for context-aware keyword disambiguation.

Two implementations share the five-line response format:

- RuleBasedVerifier: deterministic sense table with cue words. Used in tests
  and whenever no AI provider is configured.
- LLMVerifier: Claude, GPT, or Ollama over httpx. Raises on any failure so
  the caller can fall back to the default result.

Usage:
    verifier = build_verifier(settings)
    text = await verifier.respond(request)
"""

import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

import httpx

from trendarc.clients.base import APIProviderError
from trendarc.clients.gdelt import coerce_date
from trendarc.config import Settings, settings
from trendarc.verification.keywords import suggest_category
from trendarc.verification.models import (
    ContextualRelevanceResult,
    VerificationRequest,
    format_contextual_response,
)

logger = logging.getLogger(__name__)


class Verifier(ABC):
    """Answers a VerificationRequest with the five-line wire text."""

    @abstractmethod
    async def respond(self, request: VerificationRequest) -> str: ...


@dataclass(frozen=True)
class Sense:
    name: str
    domains: tuple[str, ...]
    cues: tuple[str, ...]


SENSES: dict[str, list[Sense]] = {
    "apple": [
        Sense("Apple Inc. (technology company)", ("technology", "business"),
              ("iphone", "ipad", "mac", "macbook", "ios", "tim cook", "cupertino", "app store",
               "launch", "keynote", "wwdc", "stock", "shares", "earnings", "device")),
        Sense("apple (fruit)", ("food",),
              ("harvest", "orchard", "growers", "fruit", "crop", "farm", "farmers",
               "cider", "pie", "recipe", "bushel", "season")),
    ],
    "java": [
        Sense("Java (programming language)", ("technology",),
              ("jdk", "jvm", "oracle", "programming", "developers", "code", "openjdk",
               "spring", "release", "language", "software")),
        Sense("Java (Indonesian island)", ("places",),
              ("island", "indonesia", "jakarta", "earthquake", "volcano", "tsunami",
               "flood", "bali", "surabaya")),
        Sense("java (coffee)", ("food",),
              ("coffee", "brew", "espresso", "cafe", "roast", "beans", "starbucks")),
    ],
    "python": [
        Sense("Python (programming language)", ("technology",),
              ("programming", "developers", "code", "pypi", "django", "pandas",
               "release", "language", "software", "guido")),
        Sense("python (snake)", ("animals",),
              ("snake", "burmese", "everglades", "reptile", "wildlife", "swallowed",
               "zoo", "bitten", "captured")),
    ],
    "tesla": [
        Sense("Tesla, Inc. (car company)", ("automotive", "business", "technology"),
              ("musk", "model", "cybertruck", "deliveries", "electric", "vehicle",
               "autopilot", "gigafactory", "stock", "recall")),
        Sense("Nikola Tesla (scientist)", ("science",),
              ("nikola", "inventor", "scientist", "alternating", "edison", "museum",
               "birthday", "coil")),
    ],
    "amazon": [
        Sense("Amazon (company)", ("technology", "business"),
              ("prime", "bezos", "aws", "jassy", "delivery", "warehouse", "alexa",
               "kindle", "stock", "retail")),
        Sense("Amazon (rainforest and river)", ("places", "animals"),
              ("rainforest", "river", "deforestation", "brazil", "basin", "tribe",
               "drought", "fires", "jungle")),
    ],
    "mercury": [
        Sense("Mercury (planet)", ("science",),
              ("planet", "orbit", "nasa", "retrograde", "transit", "probe", "bepicolombo")),
        Sense("mercury (chemical element)", ("science", "health"),
              ("poisoning", "toxic", "fish", "contamination", "thermometer", "element")),
        Sense("Freddie Mercury (singer)", ("entertainment",),
              ("freddie", "queen", "singer", "rhapsody", "concert")),
    ],
    "mars": [
        Sense("Mars (planet)", ("science",),
              ("planet", "rover", "nasa", "perseverance", "orbit", "mission", "spacex")),
        Sense("Bruno Mars (singer)", ("entertainment",),
              ("bruno", "singer", "album", "concert", "grammy", "song")),
        Sense("Mars (confectionery company)", ("food", "business"),
              ("chocolate", "candy", "snickers", "confectionery")),
    ],
    "swift": [
        Sense("Swift (programming language)", ("technology",),
              ("xcode", "ios", "programming", "developers", "code", "language", "swiftui")),
        Sense("Taylor Swift (singer)", ("entertainment",),
              ("taylor", "tour", "album", "concert", "singer", "eras", "grammy")),
    ],
    "ruby": [
        Sense("Ruby (programming language)", ("technology",),
              ("rails", "gem", "programming", "developers", "code", "language")),
        Sense("ruby (gemstone)", ("business",),
              ("gemstone", "jewel", "jewelry", "auction", "carat", "necklace")),
    ],
    "rust": [
        Sense("Rust (programming language)", ("technology",),
              ("cargo", "compiler", "programming", "developers", "code", "language", "linux")),
        Sense("rust (corrosion)", ("science",),
              ("corrosion", "metal", "steel", "oxidation", "bridge")),
        Sense("Rust (film)", ("entertainment",),
              ("baldwin", "film", "shooting", "set", "movie")),
    ],
    "go": [
        Sense("Go (programming language)", ("technology",),
              ("golang", "programming", "developers", "code", "language", "compiler")),
        Sense("Go (board game)", ("games",),
              ("board", "alphago", "baduk", "tournament", "stones")),
    ],
    "oracle": [
        Sense("Oracle (software company)", ("technology", "business"),
              ("database", "cloud", "ellison", "earnings", "stock", "software", "java")),
        Sense("oracle (prophecy)", ("entertainment",),
              ("delphi", "prophecy", "ancient", "myth", "prediction")),
    ],
    "delta": [
        Sense("Delta Air Lines", ("business", "places"),
              ("airline", "flights", "airport", "passengers", "outage", "cancellations")),
        Sense("Delta variant (COVID-19)", ("health", "science"),
              ("variant", "covid", "cases", "vaccine", "infections", "hospital")),
        Sense("river delta", ("places",),
              ("river", "mekong", "nile", "mississippi", "flooding", "wetlands")),
    ],
    "spark": [
        Sense("Apache Spark (data engine)", ("technology",),
              ("apache", "databricks", "hadoop", "cluster", "data", "analytics", "pyspark")),
        Sense("Chevrolet Spark (car)", ("automotive",),
              ("chevrolet", "chevy", "hatchback", "gm", "dealers", "mpg")),
        Sense("spark (fire)", ("science", "places"),
              ("wildfire", "blaze", "fire", "ignited", "firefighters", "sparks")),
    ],
    "pearl": [
        Sense("pearl (gemstone)", ("business",),
              ("necklace", "jewelry", "oyster", "gemstone", "auction", "cultured")),
        Sense("Pearl Jam (band)", ("entertainment",),
              ("jam", "vedder", "band", "tour", "album", "concert")),
        Sense("Pearl Harbor", ("places",),
              ("harbor", "hawaii", "attack", "memorial", "veterans", "navy")),
    ],
    "crystal": [
        Sense("crystal (mineral)", ("science",),
              ("mineral", "quartz", "lattice", "geology", "cave", "crystalline")),
        Sense("Crystal Palace (football club)", ("sports",),
              ("palace", "premier", "league", "striker", "goal", "manager")),
        Sense("crystal meth (drug)", ("health",),
              ("meth", "methamphetamine", "drug", "overdose", "addiction", "seized")),
    ],
    "mint": [
        Sense("mint (herb)", ("food",),
              ("herb", "leaves", "tea", "recipe", "garden", "peppermint", "mojito")),
        Sense("mint (currency)", ("business",),
              ("coins", "coin", "treasury", "minted", "currency", "penny")),
        Sense("Linux Mint (operating system)", ("technology",),
              ("linux", "distro", "desktop", "cinnamon", "ubuntu", "release")),
    ],
    "iris": [
        Sense("iris (flower)", ("animals",),
              ("flower", "bloom", "garden", "bulbs", "petals", "plants")),
        Sense("iris (eye)", ("health", "science"),
              ("eye", "pupil", "retina", "scan", "biometric", "vision")),
    ],
    "olive": [
        Sense("olive (fruit and oil)", ("food",),
              ("oil", "harvest", "groves", "mediterranean", "recipe", "prices", "drought")),
        Sense("Olive Garden (restaurant chain)", ("business", "food"),
              ("garden", "restaurant", "darden", "breadsticks", "chain", "menu")),
    ],
    "sage": [
        Sense("sage (herb)", ("food",),
              ("herb", "leaves", "recipe", "stuffing", "garden", "seasoning")),
        Sense("Sage Group (software company)", ("technology", "business"),
              ("accounting", "software", "payroll", "cloud", "shares", "earnings")),
    ],
    "basil": [
        Sense("basil (herb)", ("food",),
              ("herb", "pesto", "leaves", "recipe", "garden", "tomato")),
        Sense("Basil Fawlty (TV character)", ("entertainment",),
              ("fawlty", "towers", "cleese", "sitcom", "bbc", "episode")),
    ],
}

# Context categories (and common aliases) mapped to sense domains
CATEGORY_DOMAINS = {
    "technology": "technology",
    "tech": "technology",
    "products": "technology",
    "software": "technology",
    "programming": "technology",
    "gadgets": "technology",
    "food": "food",
    "fruit": "food",
    "drinks": "food",
    "beverages": "food",
    "cooking": "food",
    "entertainment": "entertainment",
    "movies": "entertainment",
    "music": "entertainment",
    "people": "entertainment",
    "tv": "entertainment",
    "sports": "sports",
    "games": "games",
    "gaming": "games",
    "places": "places",
    "travel": "places",
    "geography": "places",
    "animals": "animals",
    "nature": "animals",
    "wildlife": "animals",
    "science": "science",
    "space": "science",
    "automotive": "automotive",
    "cars": "automotive",
    "brands": "business",
    "business": "business",
    "finance": "business",
    "health": "health",
}

_NEAR_DAYS = 7


def _cue_count(cues: tuple[str, ...], text: str) -> int:
    return sum(1 for cue in cues if re.search(rf"\b{re.escape(cue)}(?:s|es)?\b", text))


def infer_sense(keyword: str, text: str) -> tuple[Sense | None, int]:
    """Sense of ``keyword`` with the most cue words in ``text``.

    Returns:
        (sense, cue count); (None, 0) for unknown keywords or no cues.
        Ties go to the sense listed first.
    """
    best: Sense | None = None
    best_hits = 0
    lowered = text.lower()
    for sense in SENSES.get(keyword.strip().lower(), []):
        hits = _cue_count(sense.cues, lowered)
        if hits > best_hits:
            best, best_hits = sense, hits
    return best, best_hits


def context_domain(request: VerificationRequest) -> str | None:
    """Domain implied by the comparison: category, then term patterns, then cues."""
    context = request.context
    if context.category:
        domain = CATEGORY_DOMAINS.get(context.category.strip().lower())
        if domain:
            return domain

    suggested = suggest_category(context.term_a, context.term_b)
    if suggested and suggested in CATEGORY_DOMAINS and suggested != "brands":
        return CATEGORY_DOMAINS[suggested]

    sense, _ = infer_sense(request.keyword, f"{context.term_a} {context.term_b}")
    return sense.domains[0] if sense else None


def _days_apart(event_date: str, target: date) -> int | None:
    try:
        return abs((coerce_date(event_date) - target).days)
    except ValueError:
        return None


class RuleBasedVerifier(Verifier):
    """Deterministic verifier driven by the SENSES table.

    Args:
        threshold: Minimum relevance for CONTEXT_MATCH: YES
    """

    def __init__(self, threshold: int | None = None) -> None:
        self.threshold = settings.context_match_threshold if threshold is None else threshold

    def evaluate(self, request: VerificationRequest) -> ContextualRelevanceResult:
        event = request.event
        keyword = request.keyword
        text = f"{event.title} {event.description}"
        sense, hits = infer_sense(keyword, text)
        domain = context_domain(request)

        if sense is None or domain is None:
            interpretation = sense.name if sense else "Unknown"
            missing = "comparison context" if sense else f'sense of "{keyword}"'
            return ContextualRelevanceResult(
                relevance_score=50,
                interpretation=interpretation,
                reasoning=f"Could not determine the {missing} from the available text.",
                confidence=50 if sense is None else (90 if hits >= 2 else 75),
                context_match=False,
            )

        confidence = 90 if hits >= 2 else 75
        if domain not in sense.domains:
            return ContextualRelevanceResult(
                relevance_score=5,
                interpretation=sense.name,
                reasoning=(
                    f'The event refers to {sense.name}, but comparing "{request.context.term_a}" '
                    f'vs "{request.context.term_b}" implies a {domain} sense.'
                ),
                confidence=confidence,
                context_match=False,
            )

        days = _days_apart(event.date, request.target_date)
        relevance = 95 if days is not None and days <= _NEAR_DAYS else 88
        return ContextualRelevanceResult(
            relevance_score=relevance,
            interpretation=sense.name,
            reasoning=f"The event refers to {sense.name}, consistent with a {domain} comparison.",
            confidence=confidence,
            context_match=relevance >= self.threshold,
        )

    async def respond(self, request: VerificationRequest) -> str:
        return format_contextual_response(self.evaluate(request))


# Default models per provider
_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "ollama": "llama3.1:8b",
}

_SYSTEM_PROMPT = (
    "You decide which meaning of an ambiguous keyword a news event refers to, and whether "
    "that meaning fits the comparison the user is looking at.\n\n"
    "Answer with exactly five lines and nothing else:\n"
    "RELEVANCE: <0-100, how well the event's meaning fits the comparison>\n"
    "INTERPRETATION: <the meaning of the keyword used by the event>\n"
    "REASONING: <one or two sentences>\n"
    "CONFIDENCE: <0-100, how sure you are of the interpretation>\n"
    "CONTEXT_MATCH: <YES or NO>\n\n"
    "Say YES only when RELEVANCE is 70 or more and the meaning belongs to the comparison's "
    "category. A fruit harvest does not match a smartphone comparison."
)


class LLMVerifier(Verifier):
    """Generative-model verifier.

    Responses are cached per instance by a hash of the request.

    Args:
        provider: 'openai', 'anthropic', or 'ollama'
        api_key: API key for the provider (None for ollama)
        model: Model ID (defaults per provider)
        base_url: Ollama base URL
        max_tokens: Maximum response tokens
        timeout: HTTP timeout in seconds
    """

    def __init__(
        self,
        provider: str,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str = "http://localhost:11434",
        max_tokens: int = 300,
        timeout: float = 15.0,
    ) -> None:
        self.provider = provider
        self.api_key = api_key
        self.model = model or _DEFAULT_MODELS.get(provider, provider)
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._cache: dict[str, str] = {}

    def _cache_key(self, request: VerificationRequest) -> str:
        canonical = json.dumps(
            {
                "event": [request.event.title, request.event.description, request.event.date],
                "keyword": request.keyword.lower(),
                "context": [request.context.term_a, request.context.term_b, request.context.category],
                "target_date": request.target_date,
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _build_user_message(self, request: VerificationRequest) -> str:
        event = request.event
        context = request.context
        return (
            f'Comparison: "{context.term_a}" vs "{context.term_b}"'
            f" (category: {context.category or 'not specified'})\n"
            f'Ambiguous keyword: "{request.keyword}"\n'
            f"Peak date: {request.target_date.isoformat()}\n\n"
            f"Event title: {event.title}\n"
            f"Event description: {event.description or event.title}\n"
            f"Event date: {event.date}\n"
            f"Sources: {event.source or 'unknown'}"
        )

    async def respond(self, request: VerificationRequest) -> str:
        """Ask the model; raises APIProviderError on any failure."""
        key = self._cache_key(request)
        if key in self._cache:
            logger.debug("Verifier cache hit for %s", request.keyword)
            return self._cache[key]

        user_message = self._build_user_message(request)
        if self.provider == "anthropic":
            result = await self._call_anthropic(_SYSTEM_PROMPT, user_message)
        elif self.provider == "openai":
            result = await self._call_openai(_SYSTEM_PROMPT, user_message)
        elif self.provider == "ollama":
            result = await self._call_ollama(_SYSTEM_PROMPT, user_message)
        else:
            raise APIProviderError(f"Unknown AI provider: {self.provider}")

        if not result:
            raise APIProviderError(f"{self.provider} returned an empty response")
        self._cache[key] = result
        logger.info("Verifier answered for %s (%s)", request.keyword, self.provider)
        return result

    @staticmethod
    def _check(response: httpx.Response, provider: str) -> dict:
        if response.status_code != 200:
            logger.warning("%s API error: %d %s", provider, response.status_code, response.text[:200])
            raise APIProviderError(
                f"{provider} API error: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text[:500],
            )
        return response.json()

    async def _call_anthropic(self, system: str, user: str) -> str | None:
        """Call Anthropic Messages API."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                "https://api.anthropic.com/v1/messages",
                headers={
                    "x-api-key": self.api_key or "",
                    "anthropic-version": "2023-06-01",
                    "content-type": "application/json",
                },
                json={
                    "model": self.model,
                    "max_tokens": self.max_tokens,
                    "temperature": 0,
                    "system": system,
                    "messages": [{"role": "user", "content": user}],
                },
            )
        content = self._check(response, "Anthropic").get("content", [])
        if content and content[0].get("type") == "text":
            return content[0]["text"]
        return None

    async def _call_openai(self, system: str, user: str) -> str | None:
        """Call OpenAI Chat Completions API."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                "https://api.openai.com/v1/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "max_tokens": self.max_tokens,
                    "temperature": 0,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                },
            )
        choices = self._check(response, "OpenAI").get("choices", [])
        if choices:
            return choices[0].get("message", {}).get("content")
        return None

    async def _call_ollama(self, system: str, user: str) -> str | None:
        """Call Ollama Chat API (local)."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "stream": False,
                    "options": {"temperature": 0},
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                },
            )
        message = self._check(response, "Ollama").get("message", {})
        return message.get("content") if message else None


def build_verifier(config: Settings | None = None) -> Verifier:
    """LLMVerifier when an AI provider (and key, if needed) is configured, else rules."""
    config = config or settings
    provider = config.ai_provider
    keys = {"anthropic": config.anthropic_api_key, "openai": config.openai_api_key}

    if provider == "ollama" or (provider and keys.get(provider)):
        logger.info("Using %s verifier", provider)
        return LLMVerifier(
            provider=provider,
            api_key=keys.get(provider),
            model=config.ai_model,
            base_url=config.ollama_base_url,
            max_tokens=config.ai_max_tokens,
            timeout=config.verification_timeout,
        )
    if provider:
        logger.warning("AI provider %s configured without an API key; using rule-based verifier", provider)
    return RuleBasedVerifier(threshold=config.context_match_threshold)
