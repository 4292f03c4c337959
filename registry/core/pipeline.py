"""
Registry Pipeline - End-to-End Orchestration

Runs the stages on in-memory DataFrames:

    raw export -> SchemaNormalizer -> Reshaper -> GroupReconciler   (per source)
    per-source records -> RegistryMerger -> RegistryEnricher -> summary

Reading and writing files is left to DataProcessor / the callers.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from shared.config import get_settings
from .enrichment import RegistryEnricher
from .name_canonicalizer import NameCanonicalizer
from .reconciler import GroupConflict, GroupReconciler
from .registry_merger import RegistryMerger
from .reshaper import Reshaper
from .schema_normalizer import SchemaNormalizer
from .summary import RegistrySummary, format_summary, summarize_registry

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything produced by one pipeline run"""
    registry: pd.DataFrame
    per_source: Dict[str, pd.DataFrame] = field(default_factory=dict)
    slots: Optional[pd.DataFrame] = None
    unidentified: Optional[pd.DataFrame] = None
    conflicts: List[GroupConflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    summary: Optional[RegistrySummary] = None
    merge_summary: str = ""

    @property
    def summary_text(self) -> str:
        return format_summary(self.summary) if self.summary else ""


class RegistryPipeline:
    """
    Build the final database registry from two extraction exports

    Args:
        canonicalizer: Name rule set shared by all stages
        strict_consistency: Raise on within-group conflicts instead of warning
        source_names: Labels of the two exports
    """

    def __init__(
        self,
        canonicalizer: Optional[NameCanonicalizer] = None,
        strict_consistency: Optional[bool] = None,
        source_names: Optional[List[str]] = None
    ):
        settings = get_settings()
        self.canonicalizer = canonicalizer or NameCanonicalizer()
        self.source_names = list(source_names or [settings.source_1_label, settings.source_2_label])
        if len(self.source_names) != 2 or self.source_names[0] == self.source_names[1]:
            raise ValueError(
                f"Expected two distinct source labels, got: {self.source_names}"
            )

        conflicts = self.canonicalizer.find_rule_conflicts()
        if conflicts:
            logger.warning(f"⚠️ Name rule table has {len(conflicts)} ordering conflicts")

        self.normalizer = SchemaNormalizer()
        self.reshaper = Reshaper(self.canonicalizer)
        self.reconciler = GroupReconciler(self.canonicalizer, strict_consistency=strict_consistency)
        self.merger = RegistryMerger(strict_consistency=strict_consistency)
        self.enricher = RegistryEnricher(self.canonicalizer)

    def run(
        self,
        source_1: pd.DataFrame,
        source_2: pd.DataFrame,
        contacts: Optional[pd.DataFrame] = None
    ) -> PipelineResult:
        """
        Run all stages

        Args:
            source_1: Raw export of the first search strategy
            source_2: Raw export of the second search strategy
            contacts: Optional contact registry

        Returns:
            PipelineResult with the Final Registry and diagnostics

        Raises:
            SchemaMismatchError: A slot header has no slot number
            CanonicalizationConflictError: Conflicts found in strict mode,
                within one source or between the two
        """
        logger.info("🚀 Starting registry pipeline")

        warnings: List[str] = []
        conflicts: List[GroupConflict] = []
        per_source: Dict[str, pd.DataFrame] = {}
        slot_tables: List[pd.DataFrame] = []
        unidentified_tables: List[pd.DataFrame] = []

        for source_name, raw in zip(self.source_names, [source_1, source_2]):
            logger.info(f"📋 Processing {source_name}: {len(raw)} publications")

            normalized = self.normalizer.normalize(raw)
            warnings.extend(f"{source_name}: {w}" for w in normalized.warnings)

            slots = self.reshaper.reshape(
                normalized.dataframe, normalized.slot_count, source=source_name
            )
            reconciled = self.reconciler.reconcile(slots, source=source_name)

            conflicts.extend(reconciled.conflicts)
            warnings.extend(f"{source_name}: {c.describe()}" for c in reconciled.conflicts)
            per_source[source_name] = reconciled.records
            slot_tables.append(slots)
            unidentified_tables.append(reconciled.unidentified)

        logger.info("📋 Merging sources")
        merge_result = self.merger.merge(
            [per_source[name] for name in self.source_names],
            source_names=self.source_names,
            slots=slot_tables
        )
        conflicts.extend(merge_result.conflicts)
        warnings.extend(c.describe() for c in merge_result.conflicts)

        logger.info("📋 Filtering and enriching")
        enrichment = self.enricher.enrich(merge_result.merged_dataframe, contacts)

        unidentified = pd.concat(unidentified_tables, ignore_index=True)
        summary = summarize_registry(enrichment.registry, unidentified)

        logger.info(
            f"✅ Registry pipeline complete: {len(enrichment.registry)} databases, "
            f"{len(conflicts)} conflicts, {len(warnings)} warnings"
        )

        return PipelineResult(
            registry=enrichment.registry,
            per_source=per_source,
            slots=pd.concat(slot_tables, ignore_index=True),
            unidentified=unidentified,
            conflicts=conflicts,
            warnings=warnings,
            excluded=enrichment.excluded,
            summary=summary,
            merge_summary=merge_result.merge_summary,
        )
