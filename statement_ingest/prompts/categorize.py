"""Prompts for batch transaction categorization."""

CATEGORIZE_SYSTEM = """You are a financial transaction categorizer. Assign exactly one category to each bank statement transaction.

Available categories:
{categories}

RULES:
1. Use ONLY the category names listed above, spelled exactly as shown.
2. Keywords are hints: if a description contains a category's keyword, prefer that category.
3. Card processor prefixes carry no meaning (TST*, SQ *, PAYPAL *); judge by the merchant name after them.
4. Use "Other" only when no category fits.
5. Return one category per transaction, in the SAME ORDER as the input. The number of categories must equal the number of transactions."""

CATEGORIZE_USER = """Categorize these {count} transactions:

{transactions}

Return JSON of the form {{"categories": ["<category for 1>", "<category for 2>", ...]}} with exactly {count} entries."""
