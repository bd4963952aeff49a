#!/usr/bin/env python3
"""
LoRA Variant Classifier - filename based High/Low noise detection
Turns a file or version name into a normalized grouping key plus an
optional High/Low variant label
"""

import logging
import re
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class VariantLabel(Enum):
    """Closed set of variant labels a LoRA file can carry"""
    HIGH = "High"
    LOW = "Low"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LoraVariantClassification:
    """Classification result for a single seed"""
    normalized_key: str
    variant_label: Optional[VariantLabel] = None

    @property
    def label_text(self) -> str:
        return self.variant_label.value if self.variant_label else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "normalized_key": self.normalized_key,
            "variant_label": self.variant_label.value if self.variant_label else None,
        }


EMPTY_CLASSIFICATION = LoraVariantClassification("", None)

VARIANT_ALIASES = MappingProxyType({
    "highnoise": VariantLabel.HIGH,
    "high_noise": VariantLabel.HIGH,
    "high": VariantLabel.HIGH,
    "hn": VariantLabel.HIGH,
    "lownoise": VariantLabel.LOW,
    "low_noise": VariantLabel.LOW,
    "low": VariantLabel.LOW,
    "ln": VariantLabel.LOW,
})

# sorted() is stable, so equal-length aliases keep table order
ALIASES_BY_LENGTH: Tuple[Tuple[str, VariantLabel], ...] = tuple(
    sorted(VARIANT_ALIASES.items(), key=lambda item: len(item[0]), reverse=True)
)

# Trailing marker stripped from a kept token, tried in order
SUFFIX_MARKERS = MappingProxyType({
    VariantLabel.HIGH: ("hn", "h"),
    VariantLabel.LOW: ("ln", "l"),
})

KNOWN_EXTENSIONS = (".safetensors", ".pt", ".ckpt", ".bin")

TOKEN_SEPARATORS = " _-.()[]{}"
_SPLIT_RE = re.compile("[" + re.escape(TOKEN_SEPARATORS) + "]")

_ALIAS_PATTERNS = MappingProxyType({
    alias: re.compile(re.escape(alias), re.IGNORECASE) for alias in VARIANT_ALIASES
})

_VERSION_RE = re.compile(r"[ve]\d+")
_PATH_SPLIT_RE = re.compile(r"[\\/]")


def _not_alphanumeric(char: Optional[str]) -> bool:
    return char is None or not (char.isalpha() or char.isdecimal())


def _not_lowercase_letter(char: Optional[str]) -> bool:
    return char is None or not (char.isalpha() and char.islower())


def find_bounded(text: str, alias: str,
                 boundary: Callable[[Optional[str]], bool]) -> Iterator[int]:
    """Yield start offsets of alias in text whose neighbours satisfy boundary.

    Matching is case-insensitive and overlapping occurrences are all
    considered. A missing neighbour (string edge) is passed as None.
    """
    pattern = _ALIAS_PATTERNS.get(alias) or re.compile(re.escape(alias), re.IGNORECASE)
    pos = 0
    while True:
        match = pattern.search(text, pos)
        if match is None:
            return
        start, end = match.span()
        before = text[start - 1] if start > 0 else None
        after = text[end] if end < len(text) else None
        if boundary(before) and boundary(after):
            yield start
        pos = start + 1


def normalize_source(value: Optional[str]) -> Optional[str]:
    """Trim a raw name and drop a known model file extension"""
    if value is None or not value.strip():
        return None

    trimmed = value.strip()
    lowered = trimmed.lower()
    for extension in KNOWN_EXTENSIONS:
        if lowered.endswith(extension):
            # Scanners report both / and \ separated paths
            file_name = _PATH_SPLIT_RE.split(trimmed)[-1]
            stem = file_name[:-len(extension)]
            return stem if stem.strip() else trimmed

    return trimmed


def tokenize(text: str) -> List[str]:
    """Split text on the separator characters, dropping empty fragments"""
    return [fragment.strip() for fragment in _SPLIT_RE.split(text) if fragment.strip()]


def _trim_numeric_edges(token: str) -> str:
    return token.strip("0123456789")


def _detect_from_raw_segments(source: str) -> Optional[VariantLabel]:
    for alias, label in ALIASES_BY_LENGTH:
        for _ in find_bounded(source, alias, _not_alphanumeric):
            return label
    return None


def _detect_from_token(token: str) -> Optional[VariantLabel]:
    label = VARIANT_ALIASES.get(token.lower())
    if label:
        return label

    trimmed = _trim_numeric_edges(token)
    if trimmed != token:
        label = VARIANT_ALIASES.get(trimmed.lower())
        if label:
            return label

    # Mixed-case runs such as HIGHNoise or MommyH_high
    for alias, label in ALIASES_BY_LENGTH:
        for _ in find_bounded(trimmed, alias, _not_lowercase_letter):
            return label
    return None


def detect_variant_label(source: str, tokens: Optional[Sequence[str]] = None) -> Optional[VariantLabel]:
    """Find a High/Low marker in the source string.

    The whole string is scanned for a separator-delimited alias first, then
    each token is checked for an exact, digit-trimmed or embedded alias.
    """
    label = _detect_from_raw_segments(source)
    if label:
        return label

    if tokens is None:
        tokens = tokenize(source)

    for token in tokens:
        label = _detect_from_token(token)
        if label:
            return label
    return None


def remove_variant_segments(source: str) -> str:
    """Remove every separator-delimited alias from the source"""
    result = source
    changed = True
    while changed:
        changed = False
        for alias, _ in ALIASES_BY_LENGTH:
            start = next(find_bounded(result, alias, _not_alphanumeric), None)
            while start is not None:
                result = result[:start] + result[start + len(alias):]
                changed = True
                start = next(find_bounded(result, alias, _not_alphanumeric), None)
    return result


def is_version_token(token: str) -> bool:
    """Check for version or epoch markers such as v1, ver2, e100, epoch10"""
    lower = token.lower()
    if not lower:
        return False
    if lower.startswith("ver") or lower == "v" or lower.startswith("epoch"):
        return True
    return bool(_VERSION_RE.fullmatch(lower))


def _has_subsequent_alphabetic_token(tokens: Sequence[str], index: int) -> bool:
    for token in tokens[index + 1:]:
        lower = token.lower()
        if lower in VARIANT_ALIASES or is_version_token(lower) or lower.isdecimal():
            continue
        if any(char.isalpha() for char in lower):
            return True
    return False


def _trim_suffix(token: str, suffix: str) -> str:
    if len(token) <= len(suffix) or not token.lower().endswith(suffix):
        return token

    segment = token[-len(suffix):]
    if not any(char.isupper() for char in segment):
        return token
    if token[-len(suffix) - 1].isdecimal():
        return token
    return token[:-len(suffix)]


def _remove_substring(token: str, alias: str) -> str:
    pattern = _ALIAS_PATTERNS[alias]
    while pattern.search(token):
        token = pattern.sub("", token, count=1)
    return token


def normalize_token(token: str, variant_label: Optional[VariantLabel]) -> str:
    """Strip High/Low suffix markers and embedded aliases of the label"""
    if variant_label is None:
        return token

    for suffix in SUFFIX_MARKERS[variant_label]:
        token = _trim_suffix(token, suffix)

    for alias, label in ALIASES_BY_LENGTH:
        if label is variant_label:
            token = _remove_substring(token, alias)
    return token


def build_normalized_key(source: str, variant_label: Optional[VariantLabel]) -> str:
    """Build the lowercase grouping key for a normalized source string"""
    tokens = tokenize(remove_variant_segments(source))

    kept = []
    for index, token in enumerate(tokens):
        lower = token.lower()
        if lower in VARIANT_ALIASES or lower == "noise" or is_version_token(lower):
            continue

        if lower[0].isdecimal():
            # Leading numbers survive only as part of a longer title, never as epoch counters
            if not lower.isdecimal() or not _has_subsequent_alphabetic_token(tokens, index):
                continue

        normalized = normalize_token(token, variant_label)
        if normalized:
            kept.append(normalized)

    return "".join(kept).lower()


def classify_source(source: Optional[str]) -> LoraVariantClassification:
    """Classify one normalized source string"""
    if not source:
        return EMPTY_CLASSIFICATION

    label = detect_variant_label(source, tokenize(source))
    return LoraVariantClassification(build_normalized_key(source, label), label)


def _requires_fallback(classification: LoraVariantClassification) -> bool:
    return classification.variant_label is None or not classification.normalized_key


def _merge_classifications(primary: LoraVariantClassification,
                           fallback: LoraVariantClassification) -> LoraVariantClassification:
    return LoraVariantClassification(
        normalized_key=primary.normalized_key or fallback.normalized_key,
        variant_label=primary.variant_label or fallback.variant_label,
    )


def classify_names(file_name: Optional[str], version_name: Optional[str] = None) -> LoraVariantClassification:
    """Classify from a file name, falling back to the version name"""
    classification = classify_source(normalize_source(file_name))

    if _requires_fallback(classification):
        fallback = classify_source(normalize_source(version_name))
        classification = _merge_classifications(classification, fallback)

    return classification


class LoraVariantClassifier:
    """Classifies seeds, optionally memoizing by (file_name, version_name)"""

    def __init__(self, cache_size: int = 0):
        self.cache_size = cache_size
        if cache_size > 0:
            self._classify_names = lru_cache(maxsize=cache_size)(classify_names)
        else:
            self._classify_names = classify_names

    def classify(self, seed) -> LoraVariantClassification:
        """Classify a seed exposing file_name and version_name"""
        if seed is None:
            raise ValueError("seed is required for classification")

        classification = self._classify_names(
            getattr(seed, "file_name", None),
            getattr(seed, "version_name", None),
        )
        logger.debug("Classified %r -> key=%r label=%s",
                     getattr(seed, "file_name", None),
                     classification.normalized_key,
                     classification.label_text or "-")
        return classification

    def cache_info(self):
        """Return lru_cache statistics, or None when caching is disabled"""
        if hasattr(self._classify_names, "cache_info"):
            return self._classify_names.cache_info()
        return None


_default_classifier = LoraVariantClassifier()


def classify(seed) -> LoraVariantClassification:
    """Classify a seed with the default, uncached classifier"""
    return _default_classifier.classify(seed)
