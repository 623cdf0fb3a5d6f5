# === NAVMAP v1 ===
# {
#   "module": "IdentityBench.UnifiedSearch.config",
#   "purpose": "Unified search configuration models and manager",
#   "sections": [
#     {"id": "parsingconfig", "name": "ParsingConfig", "anchor": "class-parsingconfig", "kind": "class"},
#     {"id": "classificationconfig", "name": "ClassificationConfig", "anchor": "class-classificationconfig", "kind": "class"},
#     {"id": "rankingconfig", "name": "RankingConfig", "anchor": "class-rankingconfig", "kind": "class"},
#     {"id": "retrievalconfig", "name": "RetrievalConfig", "anchor": "class-retrievalconfig", "kind": "class"},
#     {"id": "unifiedsearchconfig", "name": "UnifiedSearchConfig", "anchor": "class-unifiedsearchconfig", "kind": "class"},
#     {"id": "unifiedsearchconfigmanager", "name": "UnifiedSearchConfigManager", "anchor": "class-unifiedsearchconfigmanager", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Configuration surface area for unified identity search.

Every tunable of the pipeline lives in one of four frozen sections:

- ``ParsingConfig`` names the envelope markers understood by
  :mod:`IdentityBench.UnifiedSearch.parsing` (``$hit``, ``$source``,
  ``$score``, ``$data``) and the payload keys that carry the entity key.
- ``ClassificationConfig`` controls source-label normalisation (collection and
  view prefixes) and optional per-source field precedence overrides consumed by
  :mod:`IdentityBench.UnifiedSearch.classification`.
- ``RankingConfig`` holds the over-fetch multiplier. The search collaborator is
  asked for ``limit * overfetch_factor`` hits because an entity only qualifies
  once hits for every required category have arrived; a larger factor lowers
  false negatives at the cost of bigger responses.
- ``RetrievalConfig`` sizes the detail lookup fan-out and the time budgets of
  both collaborator calls.

:class:`UnifiedSearchConfigManager` loads these sections from JSON or YAML and
supports thread-safe reloads.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, Mapping, Optional, Tuple

import yaml

from .errors import ConfigurationError

# --- Globals ---

__all__ = (
    "ParsingConfig",
    "ClassificationConfig",
    "RankingConfig",
    "RetrievalConfig",
    "UnifiedSearchConfig",
    "UnifiedSearchConfigManager",
)


# --- Public Classes ---


@dataclass(frozen=True)
class ParsingConfig:
    """Envelope markers recognised by the response hit parser.

    Attributes:
        hit_array_key: Key of the array holding hit objects.
        count_key: Key of the advertised hit count.
        source_key: Key of the collection label inside a hit.
        score_key: Key of the numeric score inside a hit.
        payload_key: Key of the nested document payload.
        entity_key_fields: Payload keys checked, in order, for the entity key.
        fragment_chars: Characters of a dropped element kept for diagnostics.
    """

    hit_array_key: str = "$hit"
    count_key: str = "$count"
    source_key: str = "$source"
    score_key: str = "$score"
    payload_key: str = "$data"
    entity_key_fields: Tuple[str, ...] = ("CUSTOMER_NUMBER", "customer_number")
    fragment_chars: int = 80

    def __post_init__(self) -> None:
        if not self.entity_key_fields:
            raise ConfigurationError("ParsingConfig.entity_key_fields must not be empty")
        object.__setattr__(self, "entity_key_fields", tuple(self.entity_key_fields))


@dataclass(frozen=True)
class ClassificationConfig:
    """Source-label normalisation and field precedence overrides.

    Attributes:
        collection_prefix: Prefix applied to collection names (``bench_``).
        view_prefix_template: Template for use-case view names; ``{prefix}``
            is replaced with ``collection_prefix``.
        precedence_overrides: Optional mapping of source label to an ordered
            list of candidate field names, replacing the built-in precedence.
    """

    collection_prefix: str = ""
    view_prefix_template: str = "v_{prefix}uc_"
    precedence_overrides: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def view_prefix(self) -> str:
        return self.view_prefix_template.format(prefix=self.collection_prefix)


@dataclass(frozen=True)
class RankingConfig:
    """Ranking and over-fetch parameters.

    Attributes:
        overfetch_factor: Multiplier applied to ``limit`` for the search call.
        default_limit: Limit used when a caller omits one.
    """

    overfetch_factor: int = 10
    default_limit: int = 10

    def __post_init__(self) -> None:
        if int(self.overfetch_factor) < 1:
            raise ConfigurationError("RankingConfig.overfetch_factor must be >= 1")
        if int(self.default_limit) < 1:
            raise ConfigurationError("RankingConfig.default_limit must be >= 1")


@dataclass(frozen=True)
class RetrievalConfig:
    """Collaborator fan-out and time budgets.

    Attributes:
        detail_max_workers: Thread count for detail lookups; ``None`` or ``1``
            performs them sequentially.
        search_timeout_seconds: Budget for the whole request, ``None`` for no limit.
        detail_timeout_seconds: Budget passed to each detail lookup.
        index_name: Unified search index; defaults to ``idx_{prefix}uc_unified``.
    """

    detail_max_workers: Optional[int] = None
    search_timeout_seconds: Optional[float] = None
    detail_timeout_seconds: Optional[float] = None
    index_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.detail_max_workers is not None and self.detail_max_workers < 1:
            raise ConfigurationError("RetrievalConfig.detail_max_workers must be >= 1")
        for name in ("search_timeout_seconds", "detail_timeout_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"RetrievalConfig.{name} must be positive")


@dataclass(frozen=True)
class UnifiedSearchConfig:
    """Complete configuration for unified search.

    Examples:
        >>> config = UnifiedSearchConfig.from_dict({"ranking": {"overfetch_factor": 20}})
        >>> config.ranking.overfetch_factor
        20
    """

    parsing: ParsingConfig = ParsingConfig()
    classification: ClassificationConfig = ClassificationConfig()
    ranking: RankingConfig = RankingConfig()
    retrieval: RetrievalConfig = RetrievalConfig()

    def index_name(self) -> str:
        """Return the unified index name, derived from the collection prefix if unset."""
        if self.retrieval.index_name:
            return self.retrieval.index_name
        return f"idx_{self.classification.collection_prefix}uc_unified"

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> UnifiedSearchConfig:
        """Construct a config object from a dictionary payload.

        Args:
            payload: Nested mapping with optional ``parsing``,
                ``classification``, ``ranking`` and ``retrieval`` sections.

        Returns:
            Fully populated :class:`UnifiedSearchConfig`.

        Raises:
            ConfigurationError: If the payload or a section is not a mapping,
                or a section contains unknown keys.
        """
        if not isinstance(payload, Mapping):
            raise ConfigurationError(
                "UnifiedSearchConfig.from_dict expected a mapping payload, "
                f"received {type(payload).__name__}"
            )

        def coerce_section(name: str) -> dict[str, Any]:
            section = payload.get(name)
            if section is None:
                return {}
            if not isinstance(section, Mapping):
                raise ConfigurationError(
                    f"UnifiedSearchConfig.{name} must be a mapping or null, "
                    f"received {type(section).__name__}"
                )
            return dict(section)

        parsing_payload = coerce_section("parsing")
        if "entity_key_fields" in parsing_payload:
            parsing_payload["entity_key_fields"] = tuple(parsing_payload["entity_key_fields"])
        classification_payload = coerce_section("classification")
        overrides = classification_payload.get("precedence_overrides") or {}
        if not isinstance(overrides, Mapping):
            raise ConfigurationError(
                "UnifiedSearchConfig.classification.precedence_overrides must be a mapping"
            )
        classification_payload["precedence_overrides"] = {
            str(source).lower(): tuple(str(name).lower() for name in fields)
            for source, fields in overrides.items()
        }
        try:
            return UnifiedSearchConfig(
                parsing=ParsingConfig(**parsing_payload),
                classification=ClassificationConfig(**classification_payload),
                ranking=RankingConfig(**coerce_section("ranking")),
                retrieval=RetrievalConfig(**coerce_section("retrieval")),
            )
        except TypeError as exc:
            raise ConfigurationError(f"Invalid unified search configuration: {exc}") from exc


class UnifiedSearchConfigManager:
    """File-backed configuration manager with reload support.

    Internals:
    - ``_path``: Path to the JSON/YAML configuration file.
    - ``_lock``: Re-entrant lock guarding concurrent reloads.
    - ``_config``: Cached :class:`UnifiedSearchConfig` instance.

    Examples:
        >>> manager = UnifiedSearchConfigManager(Path("search.yaml"))  # doctest: +SKIP
        >>> isinstance(manager.get(), UnifiedSearchConfig)  # doctest: +SKIP
        True
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = RLock()
        self._config = self._load()

    @classmethod
    def from_config(cls, config: UnifiedSearchConfig) -> "UnifiedSearchConfigManager":
        """Wrap an in-memory configuration without touching the filesystem."""
        manager = cls.__new__(cls)
        manager._path = None
        manager._lock = RLock()
        manager._config = config
        return manager

    def get(self) -> UnifiedSearchConfig:
        """Return the currently cached configuration."""
        with self._lock:
            return self._config

    def reload(self) -> UnifiedSearchConfig:
        """Reload configuration from disk, replacing the cached instance.

        Returns:
            Freshly loaded :class:`UnifiedSearchConfig`.

        Raises:
            FileNotFoundError: If the configuration path is missing.
            ConfigurationError: If the file is invalid JSON or YAML.
        """
        with self._lock:
            if self._path is None:
                return self._config
            self._config = self._load()
            return self._config

    def _load(self) -> UnifiedSearchConfig:
        if not self._path.exists():
            raise FileNotFoundError(f"Configuration file {self._path} not found")
        raw = self._path.read_text(encoding="utf-8")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            payload = self._load_yaml(raw)
        return UnifiedSearchConfig.from_dict(payload)

    def _load_yaml(self, raw: str) -> dict[str, Any]:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Failed to parse YAML configuration at {self._path}: {exc}"
            ) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError("YAML configuration must define a mapping")
        return data
