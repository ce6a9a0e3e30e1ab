"""Declarative field rule tables keyed by document type.

Each document type maps to an ordered tuple of :class:`FieldRule`. The
built-in table is assembled once at import; additional document types
can be loaded from YAML, but the built-ins are always present.
"""

import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

import yaml

from formscan.utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_DOC_TYPE = "generic"
# Generic rule key holding the whole corpus; never submitted as a field.
CORPUS_FIELD_KEY = "text"


def collapse_spaces(value: str) -> str:
    """Collapse runs of two or more whitespace characters into one space."""
    return re.sub(r"\s{2,}", " ", value)


def strip_whitespace(value: str) -> str:
    """Remove all whitespace."""
    return re.sub(r"\s+", "", value)


POSTPROCESSORS: dict[str, Callable[[str], str]] = {
    "collapse_spaces": collapse_spaces,
    "strip_whitespace": strip_whitespace,
}


@dataclass(frozen=True)
class FieldRule:
    """How to pull one field value out of recognized text.

    Attributes:
        key: Field identifier, unique within a document type.
        label: Display name.
        pattern: Compiled regex searched against the whole corpus.
        capture_group: Group holding the value. When ``None`` the first
            group is used if the pattern has any, else the whole match.
        postprocess: Names of :data:`POSTPROCESSORS` applied in order.
    """

    key: str
    label: str
    pattern: re.Pattern[str]
    capture_group: int | None = None
    postprocess: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.capture_group is not None and not (
            0 <= self.capture_group <= self.pattern.groups
        ):
            raise ValueError(
                f"Rule '{self.key}' uses group {self.capture_group} but pattern "
                f"has {self.pattern.groups} groups"
            )
        unknown = [name for name in self.postprocess if name not in POSTPROCESSORS]
        if unknown:
            raise ValueError(f"Rule '{self.key}' has unknown postprocess {unknown}")

    @property
    def resolved_group(self) -> int:
        """Index of the group whose text becomes the value."""
        if self.capture_group is not None:
            return self.capture_group
        return 1 if self.pattern.groups else 0

    @property
    def capture_strategy(self) -> str:
        """Describe which part of a match becomes the value."""
        if self.capture_group is not None:
            return f"group {self.capture_group}"
        return "first group" if self.pattern.groups else "whole match"

    def apply(self, corpus: str) -> str | None:
        """Search the corpus and return the cleaned value, if any.

        Args:
            corpus: Normalized recognized text.

        Returns:
            Trimmed, post-processed value, or ``None`` when the pattern
            does not match or the capture group did not participate.
        """
        match = self.pattern.search(corpus)
        if match is None:
            return None
        value = match.group(self.resolved_group)
        if value is None:
            return None
        value = value.strip()
        for name in self.postprocess:
            value = POSTPROCESSORS[name](value)
        return value


def _rule(
    key: str,
    label: str,
    pattern: str,
    group: int | None = None,
    postprocess: tuple[str, ...] = (),
    flags: int = re.IGNORECASE,
) -> FieldRule:
    return FieldRule(key, label, re.compile(pattern, flags), group, postprocess)


_DATE = r"([0-9]{1,2}[./-][0-9]{1,2}[./-][0-9]{2,4})"

DIE_REPAIR_REQUEST_RULES: tuple[FieldRule, ...] = (
    _rule(
        "part_name",
        "Part Name",
        r"part\s*name\s*[:\-]?\s*(.+)",
        postprocess=("collapse_spaces",),
    ),
    _rule("part_no", "Part No", r"part\s*no\.?\s*[:\-]?\s*([A-Za-z0-9\-/]+)"),
    _rule("model", "Model", r"model\s*[:\-]?\s*(.+)"),
    _rule("issued_by", "Issued By", r"(issued\s*by\.?)\s*[:\-]?\s*(.+)", group=2),
    _rule("date", "Date", r"\bdate\b\s*[:\-]?\s*" + _DATE),
    _rule(
        "time",
        "Time",
        r"\btime\b\s*[:\-]?\s*([0-9]{1,2}[:.][0-9]{2}\s*(?:am|pm|hrs)?)",
        postprocess=("strip_whitespace",),
    ),
    _rule(
        "completed_date",
        "Completed Date",
        r"(completed\s*date)\s*[:\-]?\s*" + _DATE,
        group=2,
    ),
    _rule("verified_by", "Verified By", r"(verified\s*by)\s*[:\-]?\s*(.+)", group=2),
    _rule("stage", "Stage", r"\bstage\b\s*[:\-]?\s*([A-Za-z0-9]+)"),
    _rule("point", "Point", r"\bpoint\b\s*[:\-]?\s*(.+)"),
    _rule(
        "problem_reported",
        "Problem Reported",
        r"(problem\s*reported)\s*[:\-]?\s*(.+)",
        group=2,
    ),
)

GENERIC_RULES: tuple[FieldRule, ...] = (
    _rule(CORPUS_FIELD_KEY, "All Text", r"(.*)", flags=re.DOTALL),
)


class FieldConfig(Mapping[str, tuple[FieldRule, ...]]):
    """Read-only mapping from document type to its ordered rules.

    Args:
        tables: Rule tables keyed by document type. The generic table is
            always added.
    """

    def __init__(self, tables: Mapping[str, tuple[FieldRule, ...]]) -> None:
        merged = {GENERIC_DOC_TYPE: GENERIC_RULES}
        for doc_type, rules in tables.items():
            keys = [rule.key for rule in rules]
            if len(keys) != len(set(keys)):
                raise ValueError(f"Duplicate field keys in doc type '{doc_type}'")
            merged[doc_type] = tuple(rules)
        self._tables = MappingProxyType(merged)

    def __getitem__(self, doc_type: str) -> tuple[FieldRule, ...]:
        return self._tables[doc_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def rules_for(self, doc_type: str) -> tuple[str, tuple[FieldRule, ...]]:
        """Return the resolved document type and its rules.

        Unknown document types fall back to the generic table.
        """
        if doc_type in self._tables:
            return doc_type, self._tables[doc_type]
        logger.debug("Unknown doc type '%s', using generic rules", doc_type)
        return GENERIC_DOC_TYPE, self._tables[GENERIC_DOC_TYPE]

    @classmethod
    def builtin(cls) -> "FieldConfig":
        return cls({"die_repair_request": DIE_REPAIR_REQUEST_RULES})

    @classmethod
    def from_yaml(cls, path: Path) -> "FieldConfig":
        """Load extra document types from YAML on top of the built-ins.

        The file maps document types to lists of rules with ``key``,
        ``label``, ``pattern`` and optional ``group``, ``postprocess``
        and ``ignore_case`` (default true)::

            invoice:
              - key: invoice_no
                label: Invoice No
                pattern: 'invoice\\s*no\\.?\\s*[:\\-]?\\s*(\\S+)'

        Args:
            path: YAML rules file. Missing files yield only the built-ins.

        Returns:
            Field configuration with built-in and loaded tables.
        """
        tables: dict[str, tuple[FieldRule, ...]] = {
            "die_repair_request": DIE_REPAIR_REQUEST_RULES
        }
        if not path.exists():
            logger.debug("No rules file at %s, using built-in rules", path)
            return cls(tables)

        with open(path) as f:
            raw = yaml.safe_load(f) or {}

        for doc_type, entries in raw.items():
            if doc_type in (GENERIC_DOC_TYPE, "die_repair_request"):
                raise ValueError(f"Cannot redefine built-in doc type '{doc_type}'")
            tables[doc_type] = tuple(
                _rule(
                    entry["key"],
                    entry.get("label", entry["key"]),
                    entry["pattern"],
                    group=entry.get("group"),
                    postprocess=tuple(entry.get("postprocess", ())),
                    flags=re.IGNORECASE if entry.get("ignore_case", True) else 0,
                )
                for entry in entries
            )
        logger.info("Loaded %d doc types from %s", len(raw), path)
        return cls(tables)


DEFAULT_FIELD_CONFIG = FieldConfig.builtin()


def load_field_config(rules_path: str | None) -> FieldConfig:
    """Return the built-in tables, extended from ``rules_path`` when given."""
    if rules_path is None:
        return DEFAULT_FIELD_CONFIG
    return FieldConfig.from_yaml(Path(rules_path))
