"""
Name Canonicalizer - Controlled Vocabulary for Database Names

Maps free-text database names from the extraction form onto one display
name per real-world database. Rules are evaluated top to bottom and the
first match wins, so a specific rule must precede any broader rule that
would also match its inputs (e.g. Optum Labs before generic Optum).
"""

import re
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from shared.config import UNIDENTIFIED_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanonicalRule:
    """Case-insensitive pattern and the canonical name it resolves to"""
    pattern: str
    canonical: str

    def __post_init__(self):
        object.__setattr__(self, '_regex', re.compile(self.pattern, re.IGNORECASE))

    def matches(self, value: str) -> bool:
        return self._regex.search(value) is not None


# ===== Rule Table =====
# Order matters: each canonical name must not be caught by an earlier rule.

CANONICAL_RULES: List[CanonicalRule] = [
    CanonicalRule(
        r"^(NI|N/A|not identified|not identifiable|not reported|not specified|unknown|unnamed|none)$",
        UNIDENTIFIED_NAME
    ),
    CanonicalRule(
        r"AP-?HP|assistance\s*publique",
        "Assistance Publique - Hôpitaux de Paris (AP-HP)"
    ),
    CanonicalRule(
        r"\bKPSC\b|kaiser\s*permanente\s*(of\s*)?southern\s*california",
        "Kaiser Permanente Southern California (KPSC)"
    ),
    CanonicalRule(
        r"\bKPNC\b|kaiser\s*permanente\s*(of\s*)?northern\s*california",
        "Kaiser Permanente Northern California (KPNC)"
    ),
    CanonicalRule(r"m(oun)?t\.?\s*sinai", "Mount Sinai Health System"),
    CanonicalRule(r"optum\s*labs|\bOLDW\b", "Optum Labs Data Warehouse (OLDW)"),
    CanonicalRule(
        r"optum.*(\bEHR\b|electronic\s*health)",
        "Optum de-identified Electronic Health Record dataset"
    ),
    CanonicalRule(r"optum|clinformatics", "Optum Clinformatics Data Mart (CDM)"),
    CanonicalRule(
        r"veterans?\s*(affairs|health)|\bVA\b|\bVHA\b|corporate\s*data\s*warehouse",
        "US Department of Veterans Affairs (VA) Corporate Data Warehouse"
    ),
    CanonicalRule(r"tri\s*-?\s*net\s*-?\s*x", "TriNetX"),
    CanonicalRule(r"\bMIMIC", "Medical Information Mart for Intensive Care (MIMIC)"),
    CanonicalRule(r"\beICU\b", "eICU Collaborative Research Database"),
    CanonicalRule(
        r"\bN3C\b|national\s*covid\s*cohort",
        "National COVID Cohort Collaborative (N3C)"
    ),
    CanonicalRule(
        r"\bCPRD\b|clinical\s*practice\s*research\s*datalink",
        "Clinical Practice Research Datalink (CPRD)"
    ),
    CanonicalRule(r"premier", "Premier Healthcare Database"),
    CanonicalRule(r"cerner", "Cerner Real-World Data"),
    CanonicalRule(r"cosmos", "Epic Cosmos"),
    CanonicalRule(
        r"\bSNDS\b|syst[eè]me\s*national\s*des\s*donn[ée]es\s*de\s*sant[ée]",
        "Système National des Données de Santé (SNDS)"
    ),
    CanonicalRule(
        r"danish\s*national\s*patient|\bDNPR\b",
        "Danish National Patient Registry (DNPR)"
    ),
    CanonicalRule(
        r"swedish\s*(national\s*)?patient\s*regist",
        "Swedish National Patient Register"
    ),
    CanonicalRule(r"clalit", "Clalit Health Services"),
    CanonicalRule(
        r"\bNHIS\b|korea\w*\s*national\s*health\s*insurance",
        "Korean National Health Insurance Service (NHIS)"
    ),
    CanonicalRule(
        r"\bCDARS\b|clinical\s*data\s*analysis\s*and\s*reporting",
        "Hong Kong Clinical Data Analysis and Reporting System (CDARS)"
    ),
    CanonicalRule(r"market\s*scan", "IBM MarketScan Research Databases"),
    CanonicalRule(r"uk\s*bio\s*bank", "UK Biobank"),
    CanonicalRule(r"flatiron", "Flatiron Health"),
    CanonicalRule(r"pcornet", "PCORnet"),
    CanonicalRule(r"medicare", "Medicare Fee-for-Service claims (CMS)"),
    CanonicalRule(r"sidiap", "SIDIAP"),
    CanonicalRule(r"\bJMDC\b", "JMDC Claims Database"),
    CanonicalRule(r"iqvia", "IQVIA Medical Research Data (IMRD)"),
    CanonicalRule(r"geisinger", "Geisinger Health System"),
    CanonicalRule(r"nyu\s*langone|\bNYU\b", "NYU Langone Health"),
    CanonicalRule(
        r"columbia\s*univ|new\s*york[-\s]*presbyterian",
        "Columbia University Irving Medical Center / NewYork-Presbyterian"
    ),
    CanonicalRule(
        r"mass(achusetts)?\s*general|partners\s*healthcare|\bMGB\b",
        "Mass General Brigham"
    ),
    CanonicalRule(r"\bSCREAM\b", "Stockholm CREAtinine Measurements (SCREAM)"),
    CanonicalRule(r"lombard", "Lombardy Regional Healthcare Database"),
]


class NameCanonicalizer:
    """
    Ordered first-match classifier over free-text database names

    Non-matching names pass through (trimmed); missing values stay missing.
    """

    def __init__(self, rules: Optional[Iterable[CanonicalRule]] = None):
        self.rules = list(rules) if rules is not None else list(CANONICAL_RULES)

    @property
    def canonical_names(self) -> List[str]:
        """Canonical names the rule set can produce, in rule order"""
        seen = []
        for rule in self.rules:
            if rule.canonical not in seen:
                seen.append(rule.canonical)
        return seen

    def canonicalize(self, value):
        """
        Resolve one free-text name

        Args:
            value: Raw name (may be missing)

        Returns:
            Canonical name, the trimmed input if no rule matches,
            or the missing value unchanged
        """
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return value

        text = str(value).strip()
        for rule in self.rules:
            if rule.matches(text):
                return rule.canonical
        return text

    def canonicalize_series(self, names: pd.Series) -> pd.Series:
        """Apply canonicalize() element-wise, keeping index and missingness"""
        return names.map(self.canonicalize, na_action='ignore')

    def find_rule_conflicts(self) -> List[Tuple[str, str]]:
        """
        Find canonical names that an earlier rule would capture

        A non-empty result means the rule table is not idempotent.

        Returns:
            List of (canonical_name, capturing_canonical_name)
        """
        conflicts = []
        for position, rule in enumerate(self.rules):
            for earlier in self.rules[:position]:
                if earlier.canonical != rule.canonical and earlier.matches(rule.canonical):
                    conflicts.append((rule.canonical, earlier.canonical))
                    break

        for canonical, captured_by in conflicts:
            logger.warning(
                f"Canonical name '{canonical}' is captured by the earlier rule "
                f"for '{captured_by}'"
            )
        return conflicts

    def is_known(self, name: str) -> bool:
        return name in self.canonical_names
