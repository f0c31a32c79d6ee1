"""Transaction categorization: keyword rules, model-assisted batches, label cleanup.

Each transaction goes Unclassified -> (rule matched | model requested) ->
standardized. Inflows are always ``Income``. Outflows are sent to the remote
classifier in token-budgeted batches when one is configured; any failure or
length mismatch sends the whole batch down the rule path instead.
"""

import math
import re
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from loguru import logger

from statement_ingest.categories import CANONICAL_LABELS, DEFAULT_CATEGORIES, INCOME, OTHER
from statement_ingest.clients.llm import LLMClient, LLMError
from statement_ingest.config import IngestSettings
from statement_ingest.logging_config import DebugArtifacts
from statement_ingest.models import (
    CategoriesConfig,
    CategorizationResponse,
    Direction,
    ParsedTransaction,
)
from statement_ingest.prompts.categorize import CATEGORIZE_SYSTEM, CATEGORIZE_USER

CHARS_PER_TOKEN = 4
PER_ITEM_TOKEN_OVERHEAD = 8
MAX_PROMPT_DESCRIPTION_CHARS = 200

RULE = "rule"
MODEL = "model"

_CANONICAL_BY_KEY = {label.casefold(): label for label in CANONICAL_LABELS}

# Identifier-style and shorthand labels seen from rule tables and models
_SPECIAL_CASES = {
    "diningout": "Dining Out",
    "personalcare": "Personal Care",
    "personal": "Personal Care",
    "childcare": "Child Care",
    "bankfees": "Bank Fees",
    "uncategorizedexpense": "Uncategorized Expense",
    "gifts": "Gifts/Donations",
    "donations": "Gifts/Donations",
    "giftsdonations": "Gifts/Donations",
    "savings": "Savings/Investments",
    "investments": "Savings/Investments",
    "savingsinvestments": "Savings/Investments",
}

_CAMEL_RE = re.compile(r"(?<=[a-z])(?=[A-Z])")


def _title_case(label: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in label.split())


def standardize_category(label: str | None) -> str:
    """Map a raw label onto the canonical label set.

    Tries, in order: case-insensitive exact match, identifier special cases,
    camelCase expansion, substring containment. Labels that still do not match
    are passed through title-cased rather than forced to ``Other``.
    """
    raw = (label or "").strip().strip("\"'.")
    if not raw:
        return OTHER

    key = raw.casefold()
    if key in _CANONICAL_BY_KEY:
        return _CANONICAL_BY_KEY[key]

    compact = re.sub(r"[\s_/&-]+", "", key)
    if compact in _SPECIAL_CASES:
        return _SPECIAL_CASES[compact]

    expanded = _CAMEL_RE.sub(" ", raw).replace("_", " ")
    expanded_key = " ".join(expanded.split()).casefold()
    if expanded_key in _CANONICAL_BY_KEY:
        return _CANONICAL_BY_KEY[expanded_key]

    for canonical in CANONICAL_LABELS:
        if canonical == OTHER:
            continue
        ckey = canonical.casefold()
        if ckey in expanded_key or (len(expanded_key) >= 4 and expanded_key in ckey):
            return canonical

    titled = _title_case(expanded)
    logger.warning(f"Category drift: unrecognized label {label!r} kept as {titled!r}")
    return titled


def categorize_by_rules(
    description: str,
    direction: Direction,
    categories: CategoriesConfig = DEFAULT_CATEGORIES,
) -> str:
    """Assign a category from the keyword table.

    Inflows are always ``Income``; outflows take the first category whose
    keywords appear in the description, else ``Other``.
    """
    if direction is Direction.INFLOW:
        return INCOME

    lowered = description.lower()
    for category in categories.categories:
        if category.name == INCOME:
            continue
        if any(keyword in lowered for keyword in category.keywords):
            return standardize_category(category.name)
    return OTHER


def estimate_tokens(text: str) -> int:
    """Rough token count for budgeting (about four characters per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _item_tokens(tx: ParsedTransaction) -> int:
    return estimate_tokens(tx.description[:MAX_PROMPT_DESCRIPTION_CHARS]) + PER_ITEM_TOKEN_OVERHEAD


def build_batches(
    items: Sequence[tuple[int, ParsedTransaction]],
    token_budget: int,
    max_items: int,
) -> Iterator[list[tuple[int, ParsedTransaction]]]:
    """Yield batches whose estimated token cost stays within ``token_budget``.

    A single item larger than the budget still gets a batch of its own.
    """
    batch: list[tuple[int, ParsedTransaction]] = []
    used = 0
    for item in items:
        cost = _item_tokens(item[1])
        if batch and (used + cost > token_budget or len(batch) >= max_items):
            yield batch
            batch, used = [], 0
        batch.append(item)
        used += cost
    if batch:
        yield batch


@dataclass(frozen=True)
class CategoryAssignment:
    """Category chosen for one transaction and the path that chose it."""

    category: str
    source: str = RULE


class Categorizer:
    """Categorizes parsed transactions with rules and an optional remote model."""

    def __init__(
        self,
        categories: CategoriesConfig = DEFAULT_CATEGORIES,
        client: LLMClient | None = None,
        settings: IngestSettings | None = None,
        debug_artifacts: DebugArtifacts | None = None,
    ):
        self.categories = categories
        self.client = client
        self.settings = settings or IngestSettings()
        self.debug_artifacts = debug_artifacts or DebugArtifacts()
        self._system = CATEGORIZE_SYSTEM.format(categories=self.categories.to_prompt_text())
        overhead = estimate_tokens(self._system) + estimate_tokens(CATEGORIZE_USER)
        self.token_budget = max(
            PER_ITEM_TOKEN_OVERHEAD,
            self.settings.context_token_limit - self.settings.completion_token_reserve - overhead,
        )

    def categorize(self, transactions: Sequence[ParsedTransaction], upload: str = "") -> list[CategoryAssignment]:
        """Categorize transactions, preserving input order.

        Args:
            transactions: Parsed transactions to categorize
            upload: Upload name under which model exchanges are saved as debug artifacts

        Returns:
            One assignment per input transaction
        """
        results: list[CategoryAssignment | None] = [None] * len(transactions)
        pending: list[tuple[int, ParsedTransaction]] = []

        for i, tx in enumerate(transactions):
            if tx.direction is Direction.INFLOW or self.client is None:
                results[i] = self._rule(tx)
            else:
                pending.append((i, tx))

        if pending:
            batches = list(build_batches(pending, self.token_budget, self.settings.max_batch_items))
            logger.info(f"Categorizing {len(pending)} transactions in {len(batches)} model batches")
            for n, batch in enumerate(batches):
                if n > 0 and self.settings.inter_batch_delay:
                    time.sleep(self.settings.inter_batch_delay)
                for i, assignment in zip(
                    (i for i, _ in batch),
                    self._categorize_batch(batch, batch_num=n + 1, upload=upload),
                ):
                    results[i] = assignment

        return [r for r in results if r is not None]

    def _rule(self, tx: ParsedTransaction) -> CategoryAssignment:
        return CategoryAssignment(categorize_by_rules(tx.description, tx.direction, self.categories))

    def _categorize_batch(
        self,
        batch: list[tuple[int, ParsedTransaction]],
        batch_num: int = 0,
        upload: str = "",
    ) -> list[CategoryAssignment]:
        """Ask the model for one label per transaction; fall back to rules for the whole batch."""
        transactions_text = "\n".join(
            f"{n}. [{tx.direction.value}] {tx.description[:MAX_PROMPT_DESCRIPTION_CHARS]}"
            for n, (_, tx) in enumerate(batch, start=1)
        )
        prompt = CATEGORIZE_USER.format(count=len(batch), transactions=transactions_text)
        self.debug_artifacts.save_json(
            upload or "categorize",
            f"batch_{batch_num}_request",
            {"system": self._system, "prompt": prompt},
        )

        try:
            response = self.client.generate_structured(
                prompt=prompt,
                response_model=CategorizationResponse,
                system=self._system,
                max_tokens=self.settings.completion_token_reserve,
            )
        except LLMError as e:
            logger.warning(f"Batch {batch_num} categorization failed, using rules: {e}")
            return [self._rule(tx) for _, tx in batch]

        self.debug_artifacts.save_json(upload or "categorize", f"batch_{batch_num}_response", response)

        if len(response.categories) != len(batch):
            logger.warning(
                f"Batch {batch_num}: model returned {len(response.categories)} labels "
                f"for {len(batch)} transactions, using rules"
            )
            return [self._rule(tx) for _, tx in batch]

        return [CategoryAssignment(standardize_category(label), MODEL) for label in response.categories]
