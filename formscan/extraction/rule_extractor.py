"""Rule-based field extraction from recognized text.

Applies the rule table of a document type to the normalized text. A
rule that does not match leaves its key out of the result; partial and
empty results are valid outcomes.
"""

import re
from dataclasses import dataclass, field

from formscan.utils.logger import get_logger

from .field_rules import DEFAULT_FIELD_CONFIG, FieldConfig

logger = get_logger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass
class ExtractionResult:
    """Fields extracted from one document's recognized text."""

    doc_type: str
    resolved_doc_type: str
    fields: dict[str, str] = field(default_factory=dict)
    raw_text: str = ""
    expected_keys: tuple[str, ...] = ()

    def form_fields(self) -> dict[str, str]:
        """Return every expected key, with ``""`` for unmatched ones."""
        return {key: self.fields.get(key, "") for key in self.expected_keys}


def normalize_text(text: str) -> str:
    """Trim lines, drop empty ones and join them with single newlines."""
    lines = (line.strip() for line in _LINE_BREAK.split(text))
    return "\n".join(line for line in lines if line)


def extract_fields(
    text: str,
    doc_type: str,
    config: FieldConfig = DEFAULT_FIELD_CONFIG,
) -> ExtractionResult:
    """Extract structured fields from recognized text.

    Args:
        text: Raw recognized text.
        doc_type: Document type selecting the rule table. Unknown types
            use the generic table.
        config: Rule tables to use.

    Returns:
        Extraction result holding matched fields and the raw text.
    """
    corpus = normalize_text(text)
    resolved, rules = config.rules_for(doc_type)

    fields: dict[str, str] = {}
    for rule in rules:
        value = rule.apply(corpus)
        if value is not None:
            fields[rule.key] = value

    logger.info(
        "Extracted %d/%d fields for doc type '%s'", len(fields), len(rules), resolved
    )
    return ExtractionResult(
        doc_type=doc_type,
        resolved_doc_type=resolved,
        fields=fields,
        raw_text=text,
        expected_keys=tuple(rule.key for rule in rules),
    )


class RuleExtractor:
    """Field extractor bound to a rule configuration.

    Args:
        config: Rule tables; the built-in tables when omitted.
    """

    def __init__(self, config: FieldConfig | None = None) -> None:
        self.config = config or DEFAULT_FIELD_CONFIG

    @property
    def doc_types(self) -> list[str]:
        return list(self.config)

    def extract(self, text: str, doc_type: str) -> ExtractionResult:
        return extract_fields(text, doc_type, self.config)
