"""Front-office classification.

Two strategies share one contract: given postings, return a Classification for
every input index. Anything uncertain is rejected, since a missed role costs
less than a back-office role on a front-office board.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Protocol, Sequence

from opentelemetry import trace
from pydantic import BaseModel, ValidationError, field_validator

from fosync.schemas.postings import FUNCTIONS, LEVELS, CanonicalPosting, Classification, Function, Level
from fosync.services.classifier_client import ClassifierError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_BATCH_SIZE = 20

_EXCLUDED_TITLE_RE = re.compile(
    r"\b(?:"
    r"engineer(?:ing)?|developer|software|technolog(?:y|ist)|it|devops|sre|programmer|"
    r"data\s+scien(?:ce|tist)|cyber\s*security|"
    r"operations|ops|middle\s+office|back\s+office|settlements?|reconciliation|(?:trade|client|desk)\s+support|"
    r"compliance|legal|counsel|attorney|paralegal|lawyer|"
    r"hr|human\s+resources|recruit(?:er|ing|ment)|talent\s+acquisition|"
    r"accountant|accounting|controller|payroll|audit(?:or)?|"
    r"(?:executive|administrative|personal)\s+assistant|receptionist|facilities|"
    r"(?:credit|market|operational|model|enterprise)\s+risk|risk\s+(?:management|manager|officer)"
    r")\b",
    re.IGNORECASE,
)

# First match wins, so narrower categories come before the ones whose keywords they contain.
_FUNCTION_PATTERNS: tuple[tuple[Function, re.Pattern[str]], ...] = (
    ("Quant", re.compile(r"\bquant(?:itative)?\s+(?:research(?:er)?|strateg(?:y|ist)|analyst)\b", re.IGNORECASE)),
    (
        "Research",
        re.compile(
            r"\b(?:equity|credit|fixed\s+income|macro|investment|sell[- ]side|buy[- ]side)\s+research\b"
            r"|\bresearch\s+(?:analyst|associate)\b|\bstrategist\b",
            re.IGNORECASE,
        ),
    ),
    (
        "PE",
        re.compile(
            r"\bprivate\s+equity\b|\bventure\s+capital\b|\bbuyouts?\b|\bgrowth\s+equity\b"
            r"|\binfrastructure\s+invest|\bprivate\s+credit\b",
            re.IGNORECASE,
        ),
    ),
    (
        "IBD",
        re.compile(
            r"\binvestment\s+bank|\bM&A\b|\bmergers\b|\b(?:ECM|DCM|IBD)\b|\b(?:equity|debt)\s+capital\s+markets\b"
            r"|\blever(?:aged)?\s+finance\b|\brestructuring\b|\bcorporate\s+finance\b|\bcoverage\b|\bbanker\b",
            re.IGNORECASE,
        ),
    ),
    (
        "PB",
        re.compile(
            r"\bprivate\s+bank|\bwealth\b|\brelationship\s+manager\b|\bfinancial\s+advis|\bprivate\s+client",
            re.IGNORECASE,
        ),
    ),
    (
        "AM",
        re.compile(
            r"\bportfolio\s+manag|\basset\s+manag|\bfund\s+manag|\binvestment\s+(?:manager|analyst|associate)\b"
            r"|\bhedge\s+fund\b|\bchief\s+investment\b|\b(?:PM|CIO)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "S&T",
        re.compile(
            r"\btrad(?:er|ing)\b|\bsales\b|\bstructur(?:er|ing)\b|\bmarket\s+mak|\bderivatives\b"
            r"|\bfixed\s+income\b|\bequities\b|\bFX\b|\bcommodit(?:y|ies)\b|\brates\b",
            re.IGNORECASE,
        ),
    ),
)

_LEVEL_PATTERNS: tuple[tuple[Level, re.Pattern[str]], ...] = (
    ("Partner", re.compile(r"\bpartner\b", re.IGNORECASE)),
    ("MD", re.compile(r"\bmanaging\s+director\b|\bMD\b", re.IGNORECASE)),
    ("Director", re.compile(r"\bdirector\b|\bED\b|\bhead\s+of\b", re.IGNORECASE)),
    ("VP", re.compile(r"\bvice\s+president\b|\b[SA]?VP\b", re.IGNORECASE)),
    ("Associate", re.compile(r"\bassociate\b", re.IGNORECASE)),
    ("Analyst", re.compile(r"\banalyst\b|\bintern(?:ship)?\b", re.IGNORECASE)),
)

_FUNCTION_ALIASES: dict[str, Function] = {
    **{name.lower(): name for name in FUNCTIONS},  # type: ignore[misc]
    "sales & trading": "S&T",
    "sales and trading": "S&T",
    "investment banking": "IBD",
    "asset management": "AM",
    "private equity": "PE",
    "equity research": "Research",
    "private banking": "PB",
    "wealth management": "PB",
    "quant research": "Quant",
    "quantitative research": "Quant",
}
_LEVEL_ALIASES: dict[str, Level] = {
    **{name.lower(): name for name in LEVELS},  # type: ignore[misc]
    "vice president": "VP",
    "managing director": "MD",
    "executive director": "Director",
}

CLASSIFICATION_INSTRUCTIONS = """You are classifying finance job postings for a front office jobs board.

FRONT OFFICE (revenue-generating) roles include:
- Sales & Trading (equities, fixed income, FX, commodities, derivatives, structured products) -> "S&T"
- Investment Banking (M&A advisory, ECM, DCM, leveraged finance, coverage) -> "IBD"
- Asset Management (portfolio management, fund management, hedge fund strategies) -> "AM"
- Private Equity / Venture Capital / Infrastructure investing -> "PE"
- Equity Research / Credit Research / Market Strategy -> "Research"
- Private Banking / Wealth Management (client-facing coverage) -> "PB"
- Quantitative Research (quant researcher, quant strategist) -> "Quant"

NOT front office (reject these):
- Operations, middle office, back office
- Technology / Software Engineering / Quant Developer / Quant Engineer
- Compliance, Legal, Risk Management (non-trading)
- HR, Finance, Accounting, Admin
- Data Science (unless clearly investment-focused)

Ambiguous analyst or associate titles at recognized finance firms lean toward front office.

Levels: "Analyst", "Associate", "VP", "Director", "MD", "Partner", or null when unclear.

Respond with exactly one JSON object per job, one per line, and nothing else:
{"index": <number>, "is_front_office": true|false, "function": "S&T"|"IBD"|"AM"|"PE"|"Research"|"PB"|"Quant"|null, "level": "Analyst"|"Associate"|"VP"|"Director"|"MD"|"Partner"|null}

Jobs:
"""


class CompletionClient(Protocol):
    async def complete(self, prompt: str) -> str: ...


def is_excluded_title(title: str) -> bool:
    return _EXCLUDED_TITLE_RE.search(title) is not None


def match_function(title: str) -> Function | None:
    return next((function for function, pattern in _FUNCTION_PATTERNS if pattern.search(title)), None)


def match_level(title: str) -> Level | None:
    return next((level for level, pattern in _LEVEL_PATTERNS if pattern.search(title)), None)


def classify_title(title: str) -> Classification:
    if is_excluded_title(title):
        return Classification.rejected()
    return Classification(is_front_office=True, function=match_function(title), level=match_level(title))


class HeuristicClassifier:
    """Title rules only. Used for feeds that already carry nothing but finance roles."""

    async def classify(self, postings: Sequence[CanonicalPosting]) -> dict[int, Classification]:
        return {index: classify_title(posting.title) for index, posting in enumerate(postings)}


class BatchClassificationLine(BaseModel):
    index: int
    is_front_office: bool
    function: Function | None = None
    level: Level | None = None

    @field_validator("function", mode="before")
    @classmethod
    def _coerce_function(cls, value: Any) -> Function | None:
        return _FUNCTION_ALIASES.get(value.strip().lower()) if isinstance(value, str) else None

    @field_validator("level", mode="before")
    @classmethod
    def _coerce_level(cls, value: Any) -> Level | None:
        return _LEVEL_ALIASES.get(value.strip().lower()) if isinstance(value, str) else None


def build_batch_prompt(postings: Sequence[CanonicalPosting]) -> str:
    lines = [f"{index}: {json.dumps(posting.title)} at {posting.firm}" for index, posting in enumerate(postings)]
    return CLASSIFICATION_INSTRUCTIONS + "\n".join(lines)


def parse_batch_response(text: str, batch_size: int) -> dict[int, Classification]:
    """Parse one JSON object per line; lines that fail to parse are dropped individually."""
    parsed: dict[int, Classification] = {}
    for line in text.splitlines():
        record = _parse_line(line)
        if record is None or not 0 <= record.index < batch_size:
            continue
        parsed.setdefault(
            record.index,
            Classification(is_front_office=record.is_front_office, function=record.function, level=record.level),
        )
    return parsed


def _parse_line(line: str) -> BatchClassificationLine | None:
    start = line.find("{")
    end = line.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        payload = json.loads(line[start : end + 1])
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return BatchClassificationLine.model_validate(payload)
    except ValidationError:
        return None


class LLMClassifier:
    def __init__(
        self,
        client: CompletionClient,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        delay_seconds: float = 0.0,
    ) -> None:
        self.client = client
        self.batch_size = max(1, batch_size)
        self.delay_seconds = delay_seconds

    async def classify(self, postings: Sequence[CanonicalPosting]) -> dict[int, Classification]:
        results: dict[int, Classification] = {}
        candidates: list[int] = []
        for index, posting in enumerate(postings):
            if is_excluded_title(posting.title):
                results[index] = Classification.rejected()
            else:
                candidates.append(index)

        for batch_number, start in enumerate(range(0, len(candidates), self.batch_size)):
            if batch_number > 0:
                await asyncio.sleep(self.delay_seconds)
            batch = candidates[start : start + self.batch_size]
            verdicts = await self._classify_batch([postings[index] for index in batch])
            for position, index in enumerate(batch):
                results[index] = verdicts.get(position, Classification.rejected())
        return results

    async def _classify_batch(self, batch: list[CanonicalPosting]) -> dict[int, Classification]:
        with tracer.start_as_current_span("sync.classify_batch") as span:
            span.set_attribute("classifier.batch_size", len(batch))
            try:
                text = await self.client.complete(build_batch_prompt(batch))
            except ClassifierError as exc:
                logger.warning("classification batch failed size=%s error=%s; rejecting batch", len(batch), exc)
                return {}

            verdicts = parse_batch_response(text, len(batch))
            if len(verdicts) < len(batch):
                logger.info(
                    "classification batch partially parsed size=%s parsed=%s; rejecting the rest",
                    len(batch),
                    len(verdicts),
                )
            return verdicts
